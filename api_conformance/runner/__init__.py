"""Runner module - engine lanes and step execution."""

from .dispatcher import Dispatcher, ExecutionContext, run_scenario

__all__ = [
    "Dispatcher",
    "ExecutionContext",
    "run_scenario",
]
