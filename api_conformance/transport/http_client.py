"""HTTP transport for talking to engines under test.

A thin wrapper around a ``requests.Session``. It never raises on HTTP error
statuses (a 400 may be exactly what a step expects); only network-level
failures surface, as TransportFailure.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import requests

from ..errors import TransportFailure

logger = logging.getLogger(__name__)


@dataclass
class PreparedRequest:
    """A fully resolved request, ready to be sent."""
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None

    def __str__(self) -> str:
        return f"{self.method} {self.url}"


@dataclass
class HttpResponse:
    """Status, headers and raw body of an engine response."""
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    url: str = ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.body.decode("utf-8"))


class HttpTransport:
    """Sends PreparedRequests over a pooled requests session.

    One transport belongs to one engine lane; sessions are not shared
    between threads.
    """

    def __init__(self, request_timeout: float = 30.0):
        """Initialize HTTP transport.

        Args:
            request_timeout: Per-request timeout in seconds.
        """
        self.request_timeout = request_timeout
        self._session = requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def send(self, request: PreparedRequest) -> HttpResponse:
        """Send a request and return the raw response.

        Raises:
            TransportFailure: On connection errors and timeouts.
        """
        logger.debug("-> %s", request)
        try:
            response = self._session.request(
                request.method,
                request.url,
                headers=request.headers,
                params=request.params or None,
                data=request.body,
                timeout=self.request_timeout,
            )
        except requests.Timeout as e:
            raise TransportFailure(f"Timeout after {self.request_timeout}s: {request}") from e
        except requests.ConnectionError as e:
            raise TransportFailure(f"Connection failed: {request}: {e}") from e
        except requests.RequestException as e:
            raise TransportFailure(f"Request failed: {request}: {e}") from e

        logger.debug("<- %s %s", response.status_code, request)
        return HttpResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=response.content,
            url=response.url,
        )

    def close(self) -> None:
        """Close the HTTP session."""
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
