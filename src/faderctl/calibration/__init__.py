"""Fader calibration."""

from .engine import CalibrationEngine, format_table, generate_test_speeds, select_optimal, summarize_runs

__all__ = [
    "CalibrationEngine",
    "format_table",
    "generate_test_speeds",
    "select_optimal",
    "summarize_runs",
]
