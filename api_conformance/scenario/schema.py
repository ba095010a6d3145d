"""Scenario data models for HTTP conformance scenarios.

Defines dataclasses for parsed YAML scenario files. A Scenario and its Steps
are read-only once parsed.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union


class StatusExpectation(str, Enum):
    """Status expectations that are not a specific status code."""
    SUCCESS = "success"  # field absent: any 2xx
    ANY = "any"  # explicit null: any status, including failures


class BodySource(str, Enum):
    """Supported request body sources."""
    JSON = "json"
    NDJSON = "ndjson"
    FILE = "body_from_file"


VALID_METHODS = {"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"}
BODY_SOURCE_FIELDS = {e.value for e in BodySource}
STEP_FIELDS = {
    "description",
    "method",
    "api_root",
    "endpoint",
    "headers",
    "params",
    "json",
    "ndjson",
    "body_from_file",
    "num_retries",
    "sleep_after",
    "engines",
    "status_code",
    "expected",
    "ordered",
    "ignored_fields",
}
CONTEXT_FIELDS = {"api_root", "headers", "params"}

StatusCode = Union[int, StatusExpectation]


@dataclass(frozen=True)
class Step:
    """A single request/expectation unit."""
    index: int
    methods: tuple[str, ...]
    endpoint: str
    description: Optional[str] = None
    api_root: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    json_body: Any = None
    ndjson: Optional[list[Any]] = None
    body_from_file: Optional[str] = None
    num_retries: int = 0
    sleep_after: float = 0.0
    engines: Optional[frozenset[str]] = None
    status_code: StatusCode = StatusExpectation.SUCCESS
    expected: Any = None
    ordered: bool = False
    ignored_fields: frozenset[str] = frozenset()
    # Keys commented out inside `expected`, per top-level record (None: mapping expectation).
    commented_fields: dict[Optional[int], frozenset[str]] = field(default_factory=dict)
    base_dir: Optional[Path] = None

    @property
    def body_source(self) -> Optional[BodySource]:
        if self.json_body is not None:
            return BodySource.JSON
        if self.ndjson is not None:
            return BodySource.NDJSON
        if self.body_from_file is not None:
            return BodySource.FILE
        return None

    @property
    def has_expectation(self) -> bool:
        return self.expected is not None

    @property
    def accepts_any_status(self) -> bool:
        return self.status_code is StatusExpectation.ANY

    def status_matches(self, status: int) -> bool:
        """Whether an actual status satisfies the status expectation."""
        if self.status_code is StatusExpectation.ANY:
            return True
        if self.status_code is StatusExpectation.SUCCESS:
            return 200 <= status < 300
        return status == self.status_code

    def applies_to(self, engine: str) -> bool:
        """Whether this step runs against the given engine."""
        return self.engines is None or engine in self.engines

    def ignored_in(self, record: Optional[int]) -> frozenset[str]:
        """Keys never compared within one top-level expected record."""
        return self.ignored_fields | self.commented_fields.get(record, frozenset())

    @property
    def label(self) -> str:
        methods = ",".join(self.methods)
        return f"#{self.index} {methods} {self.endpoint}"


@dataclass(frozen=True)
class ScenarioContext:
    """Defaults applied to every step of a scenario for one engine."""
    api_root: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)

    def merged(self, other: "ScenarioContext") -> "ScenarioContext":
        """Overlay ``other`` on top of this context."""
        return ScenarioContext(
            api_root=other.api_root or self.api_root,
            headers={**self.headers, **other.headers},
            params={**self.params, **other.params},
        )


@dataclass(frozen=True)
class Scenario:
    """An ordered sequence of steps forming one scenario file."""
    name: str
    steps: tuple[Step, ...] = ()
    source: str = "<inline>"
    engines: Optional[frozenset[str]] = None
    contexts: dict[Optional[str], ScenarioContext] = field(default_factory=dict)
    always_run: bool = False
    warnings: tuple["ValidationError", ...] = ()

    @property
    def total_steps(self) -> int:
        """Total number of steps."""
        return len(self.steps)

    def applies_to(self, engine: str) -> bool:
        return self.engines is None or engine in self.engines

    def context_for(self, engine: str) -> ScenarioContext:
        """Resolve defaults for an engine: shared context, then engine-specific."""
        context = self.contexts.get(None, ScenarioContext())
        if engine in self.contexts:
            context = context.merged(self.contexts[engine])
        return context


@dataclass
class ValidationError:
    """A single validation finding."""
    path: str
    message: str
    severity: str = "error"  # "error" or "warning"


@dataclass
class ValidationResult:
    """Result of scenario validation."""
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationError] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def __str__(self) -> str:
        if self.valid:
            msg = "Valid"
            if self.warnings:
                msg += f" ({self.warning_count} warnings)"
            return msg
        return f"Invalid: {self.error_count} errors, {self.warning_count} warnings"
