"""Run report: per (step, engine, method) outcomes of a conformance run."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class OutcomeStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepOutcome:
    """Outcome of one step executed against one engine with one method."""
    scenario: str
    step_index: int
    engine: str
    method: str
    endpoint: str
    status: OutcomeStatus
    description: Optional[str] = None
    attempts: int = 0
    duration_ms: int = 0
    status_code: Optional[int] = None
    error_type: Optional[str] = None
    message: str = ""
    diff: list[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.status is OutcomeStatus.PASSED

    @property
    def failed(self) -> bool:
        return self.status is OutcomeStatus.FAILED

    @property
    def key(self) -> tuple[str, int, str, str]:
        return (self.scenario, self.step_index, self.engine, self.method)

    def headline(self) -> str:
        return f"[{self.engine}] {self.scenario} #{self.step_index} {self.method} {self.endpoint}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "scenario": self.scenario,
            "step": self.step_index,
            "engine": self.engine,
            "method": self.method,
            "endpoint": self.endpoint,
            "description": self.description,
            "status": self.status.value,
            "attempts": self.attempts,
            "duration_ms": self.duration_ms,
            "status_code": self.status_code,
            "error_type": self.error_type,
            "message": self.message,
            "diff": self.diff,
        }


class RunReport:
    """Accumulates outcomes; a run passes iff no outcome failed.

    Engine lanes record concurrently, so ``record`` is thread-safe.
    """

    def __init__(self, engines: Optional[list[str]] = None):
        self.engines = list(engines or [])
        self.outcomes: list[StepOutcome] = []
        self.duration_ms: int = 0
        self._lock = threading.Lock()

    def record(self, outcome: StepOutcome) -> None:
        with self._lock:
            self.outcomes.append(outcome)

    def extend(self, other: "RunReport") -> None:
        with self._lock:
            self.outcomes.extend(other.outcomes)
            for engine in other.engines:
                if engine not in self.engines:
                    self.engines.append(engine)

    @property
    def all_passed(self) -> bool:
        return not any(o.failed for o in self.outcomes)

    @property
    def passed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.passed)

    @property
    def failed_count(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is OutcomeStatus.SKIPPED)

    @property
    def total_count(self) -> int:
        return len(self.outcomes)

    @property
    def failures(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.failed]

    def for_engine(self, engine: str) -> list[StepOutcome]:
        return [o for o in self.outcomes if o.engine == engine]

    def summary(self) -> str:
        """Human-readable summary listing every failure with its diff."""
        lines = [
            f"Results: {self.passed_count}/{self.total_count} passed, "
            f"{self.failed_count} failed, {self.skipped_count} skipped"
        ]
        for outcome in self.failures:
            lines.append(f"  [FAIL] {outcome.headline()}")
            if outcome.description:
                lines.append(f"         {outcome.description}")
            lines.append(f"         {outcome.error_type}: {outcome.message}")
            lines.extend(f"           {line}" for line in outcome.diff)
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": "passed" if self.all_passed else "failed",
            "engines": self.engines,
            "summary": {
                "total": self.total_count,
                "passed": self.passed_count,
                "failed": self.failed_count,
                "skipped": self.skipped_count,
                "duration_ms": self.duration_ms,
            },
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
