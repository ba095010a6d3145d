"""Error taxonomy for conformance runs.

ParseError and ConfigurationError abort a run before any request is sent.
BuildError, TransportFailure and MismatchError are recorded against a single
(step, engine, method) execution and never escape the dispatcher.
"""

from typing import Optional


class ConformanceError(Exception):
    """Base class for all conformance runner errors."""


class ParseError(ConformanceError):
    """A scenario document is malformed."""

    def __init__(
        self,
        message: str,
        document_index: Optional[int] = None,
        field: Optional[str] = None,
        source: str = "<inline>",
    ):
        self.document_index = document_index
        self.field = field
        self.source = source
        location = source
        if document_index is not None:
            location += f", document {document_index}"
        if field is not None:
            location += f", field '{field}'"
        super().__init__(f"{message} ({location})")


class ConfigurationError(ConformanceError):
    """Engine configuration does not fit the scenarios being run."""


class StepExecutionError(ConformanceError):
    """Failure of one (step, engine, method) execution."""


class BuildError(StepExecutionError):
    """The request for a step could not be built."""


class TransportFailure(StepExecutionError):
    """Network-level failure: connection refused, timeout, ..."""


class MismatchError(StepExecutionError):
    """Actual response does not satisfy the step expectation."""

    def __init__(self, message: str, diff: Optional[list[str]] = None):
        self.diff = diff or []
        super().__init__(message)

    def __str__(self) -> str:
        message = super().__str__()
        if not self.diff:
            return message
        return message + "\n" + "\n".join(f"  {line}" for line in self.diff)
