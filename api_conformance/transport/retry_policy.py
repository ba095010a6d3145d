"""Retry policy and controller for step execution.

Retries model settle time in the engines (index refresh, bulk commit), not
congestion, so the delay between attempts is fixed.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol

from ..errors import TransportFailure
from ..scenario.schema import Step
from .http_client import HttpResponse, PreparedRequest

logger = logging.getLogger(__name__)


class Transport(Protocol):
    def send(self, request: PreparedRequest) -> HttpResponse: ...


@dataclass
class RetryPolicy:
    """Fixed-delay retry policy."""
    delay: float = 0.5

    def get_delay(self, attempt: int) -> float:
        """Delay in seconds before retry ``attempt`` (0 = first retry)."""
        return self.delay


def default_retry_policy() -> RetryPolicy:
    """Create default retry policy: 0.5s between attempts."""
    return RetryPolicy()


def no_delay_retry_policy() -> RetryPolicy:
    """Create a policy that retries immediately (tests, local engines)."""
    return RetryPolicy(delay=0.0)


@dataclass
class ExecutionRecord:
    """Transient state of one (step, engine, method) execution."""
    request: PreparedRequest
    attempts: int = 0
    elapsed_ms: int = 0
    response: Optional[HttpResponse] = None
    error: Optional[TransportFailure] = None
    statuses: list[int] = field(default_factory=list)

    @property
    def transport_failed(self) -> bool:
        return self.response is None and self.error is not None


class RetryController:
    """Executes a request up to ``num_retries + 1`` times."""

    def __init__(
        self,
        transport: Transport,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.policy = policy or default_retry_policy()
        self._sleep = sleep

    def execute(self, request: PreparedRequest, step: Step) -> ExecutionRecord:
        """Send ``request`` until its status satisfies ``step`` or retries run out.

        The last response (or transport error) is kept in the record.
        """
        record = ExecutionRecord(request=request)
        start = time.monotonic()
        max_attempts = step.num_retries + 1

        for attempt in range(max_attempts):
            record.attempts = attempt + 1
            try:
                response = self.transport.send(request)
            except TransportFailure as e:
                record.response = None
                record.error = e
                logger.info("Attempt %d/%d for %s failed: %s", record.attempts, max_attempts, request, e)
            else:
                record.response = response
                record.error = None
                record.statuses.append(response.status_code)
                if step.status_matches(response.status_code):
                    break
                logger.info(
                    "Attempt %d/%d for %s returned status %d",
                    record.attempts, max_attempts, request, response.status_code,
                )

            if attempt < max_attempts - 1:
                self._sleep(self.policy.get_delay(attempt))

        record.elapsed_ms = int((time.monotonic() - start) * 1000)
        return record

    def settle(self, step: Step) -> None:
        """Wait ``sleep_after`` seconds so the engine can catch up."""
        if step.sleep_after > 0:
            logger.debug("Settling %.1fs after step %s", step.sleep_after, step.label)
            self._sleep(step.sleep_after)
