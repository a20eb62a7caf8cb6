"""Load sheet analysis: header mapping, row validation and UTC timestamp normalization."""

__version__ = "0.3.0"
