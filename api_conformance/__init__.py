"""Cross-engine HTTP conformance runner for search engine REST APIs."""

from .config import EngineConfig, EngineRegistry, ExecutionConfig, load_engines
from .errors import (
    BuildError,
    ConfigurationError,
    ConformanceError,
    MismatchError,
    ParseError,
    TransportFailure,
)
from .reporting.run_report import RunReport
from .runner.dispatcher import Dispatcher, run_scenario
from .scenario.parser import parse_scenario, parse_scenario_text
from .scenario.suite import load_suite

__version__ = "0.1.0"

__all__ = [
    "BuildError",
    "ConfigurationError",
    "ConformanceError",
    "Dispatcher",
    "EngineConfig",
    "EngineRegistry",
    "ExecutionConfig",
    "MismatchError",
    "ParseError",
    "RunReport",
    "TransportFailure",
    "load_engines",
    "load_suite",
    "parse_scenario",
    "parse_scenario_text",
    "run_scenario",
]
