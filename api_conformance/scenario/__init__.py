"""Scenario module - YAML conformance scenario parsing."""

from .schema import (
    BodySource,
    Scenario,
    ScenarioContext,
    StatusExpectation,
    Step,
    ValidationError,
    ValidationResult,
)
from .parser import parse_scenario, parse_scenario_text, parse_step_data
from .suite import load_suite
from .validator import validate_scenario

__all__ = [
    "BodySource",
    "Scenario",
    "ScenarioContext",
    "StatusExpectation",
    "Step",
    "ValidationError",
    "ValidationResult",
    "load_suite",
    "parse_scenario",
    "parse_scenario_text",
    "parse_step_data",
    "validate_scenario",
]
