"""Reporting module - run outcomes and JSON output."""

from .json_reporter import JsonReporter
from .run_report import OutcomeStatus, RunReport, StepOutcome

__all__ = [
    "JsonReporter",
    "OutcomeStatus",
    "RunReport",
    "StepOutcome",
]
