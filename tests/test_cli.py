from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from load_doctor import __version__
from load_doctor.fields import FIELDS

ROOT = Path(__file__).resolve().parents[1]
CLI = [sys.executable, "-m", "load_doctor.cli"]

CLEAN_ROWS = [
    ["L1", "Dallas", "2025-08-29T20:00:00Z", "Austin", "2025-08-30T20:00:00Z", "Booked", "Pat", "", "101", "Acme"],
    ["L2", "Dallas", "2025-08-29T21:00:00Z", "Austin", "2025-08-30T21:00:00Z", "Booked", "Sam", "", "102", "Acme"],
]


def run_cli(*args: str, env: dict[str, str] | None = None) -> subprocess.CompletedProcess[str]:
    merged_env = {key: value for key, value in os.environ.items() if not key.startswith("LOAD_DOCTOR_")}
    if env:
        merged_env.update(env)
    return subprocess.run(
        [*CLI, *args],
        cwd=ROOT,
        capture_output=True,
        text=True,
        env=merged_env,
    )


def write_csv(path: Path, rows: list[list[str]], headers: list[str] | None = None) -> Path:
    lines = [",".join(headers or FIELDS)] + [",".join(row) for row in rows]
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class LoadDoctorCliTests(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def test_version(self):
        proc = run_cli("version")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(proc.stdout.strip(), __version__)

    def test_analyze_clean_sheet_returns_exit_0(self):
        path = write_csv(self.dir / "clean.csv", CLEAN_ROWS)
        proc = run_cli("analyze", str(path))
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("OK: yes", proc.stderr)
        self.assertIn("Loads: 2", proc.stderr)

    def test_analyze_json_stdout_contains_only_json(self):
        path = write_csv(self.dir / "clean.csv", CLEAN_ROWS)
        proc = run_cli("analyze", str(path), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "load_doctor.analysis")
        self.assertTrue(payload["ok"])
        self.assertEqual(payload["loads"][1]["loadId"], "L2")
        self.assertEqual(proc.stderr.strip(), "")

    def test_analyze_with_errors_returns_exit_3_and_writes_output(self):
        path = write_csv(self.dir / "dupes.csv", [CLEAN_ROWS[0], CLEAN_ROWS[0]])
        out = self.dir / "reports" / "analysis.json"
        proc = run_cli("analyze", str(path), "-o", str(out))
        self.assertEqual(proc.returncode, 3, proc.stderr)
        self.assertIn("DUPLICATE_ID", proc.stderr)
        payload = json.loads(out.read_text(encoding="utf-8"))
        self.assertFalse(payload["ok"])
        self.assertNotIn("loads", payload)

    def test_header_overrides(self):
        headers = list(FIELDS)
        headers[0] = "Number"
        path = write_csv(self.dir / "override.csv", CLEAN_ROWS, headers=headers)
        proc = run_cli("analyze", str(path), "--json", "--map", "Number=loadId")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["mapping"]["Number"], "loadId")

    def test_bad_override_returns_exit_1(self):
        path = write_csv(self.dir / "clean.csv", CLEAN_ROWS)
        proc = run_cli("analyze", str(path), "--map", "Number=truck")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown field", proc.stderr)

    def test_missing_input_returns_exit_1(self):
        proc = run_cli("analyze", str(self.dir / "absent.csv"))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("File not found", proc.stderr)

    def test_unreadable_input_returns_exit_2(self):
        bad = self.dir / "corrupt.xlsx"
        bad.write_bytes(b"not a workbook")
        proc = run_cli("analyze", str(bad))
        self.assertEqual(proc.returncode, 2)
        self.assertIn("Could not read workbook", proc.stderr)

    def test_header_only_sheet_returns_exit_2(self):
        path = write_csv(self.dir / "empty.csv", [])
        proc = run_cli("analyze", str(path), "--json")
        self.assertEqual(proc.returncode, 2)
        self.assertEqual(json.loads(proc.stdout)["issues"][0]["code"], "GRID_READ_FAILED")

    def test_config_file_sets_the_fallback_zone(self):
        rows = [list(CLEAN_ROWS[0])]
        rows[0][2] = "2025-08-29 14:00"
        path = write_csv(self.dir / "zoneless.csv", rows)
        config = self.dir / "settings.json"
        config.write_text(json.dumps({"default_zone": "America/Chicago"}), encoding="utf-8")
        proc = run_cli("analyze", str(path), "--json", "--config", str(config))
        self.assertEqual(proc.returncode, 3, proc.stderr)
        payload = json.loads(proc.stdout)
        assumed = [issue for issue in payload["issues"] if issue["code"] == "ASSUMED_TIMEZONE"]
        self.assertEqual(assumed[0]["rows"], [2])
        self.assertIn("America/Chicago", assumed[0]["message"])

    def test_invalid_config_returns_exit_1(self):
        path = write_csv(self.dir / "clean.csv", CLEAN_ROWS)
        proc = run_cli("analyze", str(path), env={"LOAD_DOCTOR_DEFAULT_ZONE": "Nowhere/Special"})
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown timezone", proc.stderr)

    def test_plan_json(self):
        path = write_csv(self.dir / "split.csv", [["L1", "2025-08-29", "2:30 PM"]], headers=["loadId", "PU Date", "PU Time"])
        proc = run_cli("plan", str(path), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "load_doctor.autofix_plan")
        self.assertEqual(payload["dateFixes"][0]["fixableCount"], 1)
        self.assertEqual(path.read_text(encoding="utf-8").splitlines()[0], "loadId,PU Date,PU Time")

    def test_apply_writes_normalized_copy(self):
        path = write_csv(self.dir / "split.csv", [["L1", "2025-08-29", "2:30 PM"]], headers=["loadId", "PU Date", "PU Time"])
        out = self.dir / "fixed.csv"
        proc = run_cli("apply", str(path), "--normalize-dates", "--timezone-offset=-06:00", "--output", str(out), "--json")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        payload = json.loads(proc.stdout)
        self.assertEqual(payload["contract"]["name"], "load_doctor.autofix_apply")
        self.assertEqual(payload["createdColumns"], ["fromAppointmentDateTimeUTC"])
        self.assertEqual(
            out.read_text(encoding="utf-8"),
            "loadId,PU Date,PU Time,fromAppointmentDateTimeUTC\nL1,2025-08-29,2:30 PM,2025-08-29T20:30:00Z\n",
        )
        self.assertEqual(path.read_text(encoding="utf-8"), "loadId,PU Date,PU Time\nL1,2025-08-29,2:30 PM\n")

    def test_apply_requires_an_action_and_a_destination(self):
        path = write_csv(self.dir / "clean.csv", CLEAN_ROWS)
        proc = run_cli("apply", str(path), "--output", str(self.dir / "out.csv"))
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Nothing to apply", proc.stderr)
        proc = run_cli("apply", str(path), "--normalize-dates")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("--in-place", proc.stderr)

    def test_apply_rejects_a_bad_offset(self):
        path = write_csv(self.dir / "clean.csv", CLEAN_ROWS)
        proc = run_cli("apply", str(path), "--normalize-dates", "--in-place", "--timezone-offset", "central")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Invalid UTC offset", proc.stderr)

    def test_saved_status_remaps_apply_to_analysis(self):
        env = {"LOAD_DOCTOR_PREFERENCES_DIR": str(self.dir / "prefs")}
        proc = run_cli("remap", "--user", "pat@example.com", "--field", "status", "BKD=Booked", "--json", env=env)
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertEqual(json.loads(proc.stdout)["status"], {"BKD": "Booked"})

        rows = [list(CLEAN_ROWS[0]), list(CLEAN_ROWS[1])]
        rows[1][5] = "BKD"
        path = write_csv(self.dir / "statuses.csv", rows)
        proc = run_cli("analyze", str(path), "--json", "--user", "pat@example.com", env=env)
        payload = json.loads(proc.stdout)
        self.assertNotIn("STATUS_VOCAB", [issue["code"] for issue in payload["issues"]])
        self.assertEqual(payload["loads"][1]["status"], "Booked")

        proc = run_cli("analyze", str(path), "--json", "--user", "sam@example.com", env=env)
        self.assertIn("STATUS_VOCAB", [issue["code"] for issue in json.loads(proc.stdout)["issues"]])

    def test_remap_requires_a_preferences_directory(self):
        proc = run_cli("remap", "--field", "status", "BKD=Booked")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("preferences_dir", proc.stderr)

    def test_explain_known_code(self):
        proc = run_cli("explain", "timezone_missing")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("Code: TIMEZONE_MISSING", proc.stdout)
        self.assertIn("Severity: error", proc.stdout)

    def test_explain_json_and_unknown_code(self):
        proc = run_cli("explain", "STATUS_VOCAB", "--json")
        self.assertEqual(json.loads(proc.stdout)["severity"], "warn")
        proc = run_cli("explain", "NOPE")
        self.assertEqual(proc.returncode, 1)
        self.assertIn("Unknown issue code", proc.stderr)

    def test_analyze_help_says_the_rate_limit_is_per_process(self):
        proc = run_cli("analyze", "--help")
        self.assertEqual(proc.returncode, 0, proc.stderr)
        self.assertIn("rate_limit_per_minute", proc.stdout)

    def test_missing_subcommand_returns_exit_1(self):
        proc = run_cli()
        self.assertEqual(proc.returncode, 1)


if __name__ == "__main__":
    unittest.main()
