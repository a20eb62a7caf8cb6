import unittest
from datetime import time

from load_doctor.autofix import ApplyOptions, apply_fixes, plan_fixes
from load_doctor.grid import MemoryGrid

HEADERS = ["VRID", "Origin", "PU Date", "PU Time", "Destination", "DEL", "Status", "Driver", "Truck", "Broker"]
ROWS = [
    ["L1", "Dallas", "2025-08-29", "2:30 PM", "Austin", "2025-08-30T15:00:00Z", "Booked", "Pat", 101, "Acme"],
    ["L2", "Dallas", "2025-08-29", "", "Austin", "2025-08-30 10:00", "Booked", "Sam", 102, "Acme"],
    ["L3", "Dallas", "8/31/2025", "08:00", "Austin", 0.5, "Booked", "Lee", 103, "Acme"],
]

FROM = "fromAppointmentDateTimeUTC"
TO = "toAppointmentDateTimeUTC"


def make_grid():
    return MemoryGrid([list(HEADERS)] + [list(row) for row in ROWS])


def split_and_dedicated_grid():
    return MemoryGrid([["loadId", FROM, "PU Date", "PU Time"], ["L1", "2025-08-29 14:00", "2025-08-29", "2:30 PM"]])


class PlanTests(unittest.TestCase):
    def test_plan_lists_missing_columns_and_safe_date_fixes(self):
        plan = plan_fixes(make_grid().get_snapshot(500))
        self.assertEqual(plan["missingColumns"], [{"field": FROM, "suggestedHeader": FROM}])
        self.assertEqual(
            plan["dateFixes"],
            [
                {"field": FROM, "targetHeader": FROM, "createColumn": True, "fixableCount": 2, "totalRows": 3},
                {"field": TO, "targetHeader": TO, "createColumn": True, "fixableCount": 1, "totalRows": 3},
            ],
        )
        self.assertIn("1 required column(s) missing", plan["summary"])

    def test_plan_does_not_touch_the_grid(self):
        grid = make_grid()
        plan_fixes(grid.get_snapshot(500))
        self.assertEqual(grid.rows[0], HEADERS)

    def test_fields_without_safe_values_are_left_out(self):
        grid = MemoryGrid([["loadId", "PU"], ["L1", "2025-08-29 14:00"]])
        plan = plan_fixes(grid.get_snapshot(500))
        self.assertEqual(plan["dateFixes"], [])

    def test_existing_field_named_column_is_reused(self):
        grid = MemoryGrid([["loadId", FROM], ["L1", "2025-08-29 14:00 -0600"]])
        plan = plan_fixes(grid.get_snapshot(500))
        self.assertEqual(plan["dateFixes"][0]["createColumn"], False)

    def test_split_columns_make_a_zone_less_dedicated_value_fixable(self):
        plan = plan_fixes(split_and_dedicated_grid().get_snapshot(500))
        self.assertEqual(
            plan["dateFixes"],
            [{"field": FROM, "targetHeader": FROM, "createColumn": False, "fixableCount": 1, "totalRows": 1}],
        )

    def test_time_only_values_east_of_utc_are_not_fixable(self):
        grid = MemoryGrid([["loadId", FROM], ["L1", time(2, 0)]])
        plan = plan_fixes(grid.get_snapshot(500), tz="Asia/Tokyo")
        self.assertEqual(plan["dateFixes"], [])


class ApplyTests(unittest.TestCase):
    def test_apply_creates_columns_and_writes_normalized_values(self):
        grid = make_grid()
        result = apply_fixes(grid, ApplyOptions(create_missing_columns=True, normalize_dates=True))

        self.assertEqual(result["createdColumns"], [FROM, TO])
        self.assertEqual(
            result["normalized"],
            [
                {"field": FROM, "header": FROM, "rowsUpdated": 2},
                {"field": TO, "header": TO, "rowsUpdated": 1},
            ],
        )
        snapshot = grid.get_snapshot(500)
        self.assertEqual(snapshot.headers, HEADERS + [FROM, TO])
        self.assertEqual([row[10] for row in snapshot.rows], ["2025-08-29T14:30:00Z", None, "2025-08-31T08:00:00Z"])
        self.assertEqual([row[11] for row in snapshot.rows], ["2025-08-30T15:00:00Z", None, None])

    def test_source_columns_are_left_alone(self):
        grid = make_grid()
        apply_fixes(grid, ApplyOptions(create_missing_columns=True, normalize_dates=True))
        self.assertEqual([row[:10] for row in grid.rows[1:]], ROWS)

    def test_second_run_changes_nothing(self):
        grid = make_grid()
        options = ApplyOptions(create_missing_columns=True, normalize_dates=True)
        apply_fixes(grid, options)
        before = [list(row) for row in grid.rows]

        result = apply_fixes(grid, options)
        self.assertEqual(result["createdColumns"], [])
        self.assertEqual([item["rowsUpdated"] for item in result["normalized"]], [0, 0])
        self.assertEqual(grid.rows, before)

    def test_fixed_offset_applies_to_split_values(self):
        grid = make_grid()
        apply_fixes(grid, ApplyOptions(normalize_dates=True, timezone_offset="-05:00"))
        snapshot = grid.get_snapshot(500)
        self.assertEqual(snapshot.headers[10], FROM)
        self.assertEqual(snapshot.rows[0][10], "2025-08-29T19:30:00Z")
        self.assertEqual(snapshot.rows[2][10], "2025-08-31T13:00:00Z")

    def test_create_only_adds_empty_columns(self):
        grid = make_grid()
        result = apply_fixes(grid, ApplyOptions(create_missing_columns=True))
        self.assertEqual(result["createdColumns"], [FROM])
        self.assertEqual(result["normalized"], [])
        self.assertEqual(grid.rows[0][-1], FROM)
        self.assertEqual(len(grid.rows[1]), len(HEADERS))

    def test_no_options_is_a_no_op(self):
        grid = make_grid()
        result = apply_fixes(grid, ApplyOptions())
        self.assertEqual(result, {"createdColumns": [], "normalized": [], "message": "Created 0 column(s); normalized 0 cell(s)."})
        self.assertEqual(grid.rows[0], HEADERS)

    def test_existing_dedicated_value_is_normalized_in_place(self):
        grid = MemoryGrid([["loadId", FROM], ["L1", "2025-08-29 14:00 -0600"], ["L2", "2025-08-29 14:00"]])
        result = apply_fixes(grid, ApplyOptions(normalize_dates=True))
        self.assertEqual(result["normalized"], [{"field": FROM, "header": FROM, "rowsUpdated": 1}])
        self.assertEqual(grid.rows[1][1], "2025-08-29T20:00:00Z")
        self.assertEqual(grid.rows[2][1], "2025-08-29 14:00")

    def test_split_columns_take_precedence_over_a_zone_less_dedicated_value(self):
        grid = split_and_dedicated_grid()
        result = apply_fixes(grid, ApplyOptions(normalize_dates=True))
        self.assertEqual(result["normalized"], [{"field": FROM, "header": FROM, "rowsUpdated": 1}])
        self.assertEqual(grid.rows[1], ["L1", "2025-08-29T14:30:00Z", "2025-08-29", "2:30 PM"])

    def test_fixed_offset_reaches_a_row_with_a_dedicated_value(self):
        grid = split_and_dedicated_grid()
        apply_fixes(grid, ApplyOptions(normalize_dates=True, timezone_offset="-05:00"))
        self.assertEqual(grid.rows[1][1], "2025-08-29T19:30:00Z")

    def test_time_only_values_are_never_written_as_dates(self):
        grid = MemoryGrid([["loadId", FROM], ["L1", time(2, 0)]])
        result = apply_fixes(grid, ApplyOptions(normalize_dates=True), tz="Asia/Tokyo")
        self.assertEqual(result["normalized"], [])
        self.assertEqual(grid.rows[1][1], time(2, 0))

    def test_invalid_offset_is_rejected_before_writing(self):
        grid = make_grid()
        with self.assertRaises(ValueError):
            apply_fixes(grid, ApplyOptions(normalize_dates=True, timezone_offset="central"))
        self.assertEqual(grid.rows[0], HEADERS)


if __name__ == "__main__":
    unittest.main()
