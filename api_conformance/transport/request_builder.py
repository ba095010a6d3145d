"""Builds concrete HTTP requests from declarative steps."""

import gzip
import json
import re
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import urljoin, urlparse

from ..errors import BuildError
from ..scenario.schema import BodySource, ScenarioContext, Step
from .http_client import PreparedRequest

JSON_CONTENT_TYPE = "application/json"
NDJSON_CONTENT_TYPE = "application/x-ndjson"
_PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_]\w*)\}")

PayloadLoader = Callable[[Path, bool], bytes]


def load_payload_file(path: Path, decompress: bool = False) -> bytes:
    """Read a payload file, gunzipping it when asked to."""
    if decompress:
        with gzip.open(path, "rb") as f:
            return f.read()
    return path.read_bytes()


def encode_ndjson(records: list[Any]) -> bytes:
    """Serialize records as newline-delimited compact JSON.

    String records are taken as already-serialized JSON lines and must parse.
    """
    lines = []
    for i, record in enumerate(records):
        if isinstance(record, str):
            try:
                record = json.loads(record)
            except ValueError as e:
                raise BuildError(f"ndjson record {i} is not valid JSON: {e}") from e
        lines.append(_dumps(record, f"ndjson record {i}"))
    return ("\n".join(lines) + "\n").encode("utf-8")


def decompose_ndjson(body: bytes) -> list[Any]:
    """Inverse of encode_ndjson: one decoded record per non-empty line."""
    return [json.loads(line) for line in body.decode("utf-8").splitlines() if line.strip()]


def _dumps(value: Any, what: str) -> str:
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise BuildError(f"{what} is not JSON serializable: {e}") from e


def resolve_root(base_url: str, api_root: Optional[str]) -> str:
    """Pick the URL prefix: absolute api_root, api_root relative to the engine, or the engine itself."""
    if not api_root:
        return base_url
    if urlparse(api_root).scheme:
        return api_root
    return urljoin(base_url.rstrip("/") + "/", api_root)


def _has_header(headers: dict[str, str], name: str) -> bool:
    return any(k.lower() == name.lower() for k in headers)


class RequestBuilder:
    """Turns a Step into a PreparedRequest for one engine."""

    def __init__(
        self,
        payload_loader: Optional[PayloadLoader] = None,
        variables: Optional[dict[str, str]] = None,
    ):
        """Initialize request builder.

        Args:
            payload_loader: Reads ``body_from_file`` payloads. Called with the
                resolved path and whether the bytes must be decompressed.
            variables: Values substituted for ``{name}`` in endpoints.
        """
        self.payload_loader = payload_loader or load_payload_file
        self.variables = dict(variables or {})

    def build(
        self,
        step: Step,
        method: str,
        base_url: str,
        api_root: Optional[str] = None,
        context: Optional[ScenarioContext] = None,
    ) -> PreparedRequest:
        """Build the request for ``step`` sent with ``method``.

        Raises:
            BuildError: If the body cannot be produced.
        """
        context = context or ScenarioContext()
        url = self.build_url(step.endpoint, base_url, api_root)
        headers = {**context.headers, **step.headers}
        params = {**context.params, **step.params}
        body, content_type = self._encode_body(step, headers)

        if content_type and not _has_header(headers, "Content-Type"):
            headers["Content-Type"] = content_type

        return PreparedRequest(
            method=method,
            url=url,
            headers=headers,
            params=params,
            body=body,
        )

    def build_url(self, endpoint: str, base_url: str, api_root: Optional[str] = None) -> str:
        root = resolve_root(base_url, api_root)
        path = _PLACEHOLDER_PATTERN.sub(self._substitute_placeholder, endpoint)
        return f"{root.rstrip('/')}/{path.lstrip('/')}"

    def _substitute_placeholder(self, match: re.Match) -> str:
        return self.variables.get(match.group(1), match.group(0))

    def _encode_body(self, step: Step, headers: dict[str, str]) -> tuple[Optional[bytes], Optional[str]]:
        source = step.body_source
        if source is None:
            return None, None

        if source is BodySource.JSON:
            return _dumps(step.json_body, "json body").encode("utf-8"), JSON_CONTENT_TYPE

        if source is BodySource.NDJSON:
            return encode_ndjson(step.ndjson), NDJSON_CONTENT_TYPE

        path = Path(step.body_from_file)
        if not path.is_absolute() and step.base_dir is not None:
            path = step.base_dir / path
        # Declared gzip encoding means the engine inflates the payload itself.
        server_side = any(
            k.lower() == "content-encoding" and v.lower() == "gzip"
            for k, v in headers.items()
        )
        decompress = path.suffix == ".gz" and not server_side
        try:
            return self.payload_loader(path, decompress), None
        except OSError as e:
            raise BuildError(f"Cannot read body_from_file '{path}': {e}") from e
