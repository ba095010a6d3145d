"""Shared fixtures: a scripted transport and an in-process fake search engine."""

from __future__ import annotations

import fnmatch
import gzip
import json
import sys
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Iterator
from urllib.parse import parse_qs, urlparse

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api_conformance.errors import TransportFailure  # noqa: E402
from api_conformance.transport.http_client import HttpResponse, PreparedRequest  # noqa: E402


class ScriptedTransport:
    """Returns queued responses (or raises queued TransportFailures) in order.

    The last entry repeats once the queue is exhausted.
    """

    def __init__(self, responses: list[Any]):
        self.responses = list(responses)
        self.sent: list[PreparedRequest] = []
        self.closed = False

    def send(self, request: PreparedRequest) -> HttpResponse:
        self.sent.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, int):
            return HttpResponse(status_code=item, body=b"{}")
        status, body = item
        return HttpResponse(status_code=status, body=json.dumps(body).encode("utf-8"))

    def close(self) -> None:
        self.closed = True


def transport_error(message: str = "connection refused") -> TransportFailure:
    return TransportFailure(message)


class FakeSearchEngine:
    """Tiny in-memory engine speaking the endpoints used by the scenarios.

    - ``POST /api/v1/indexes/``          create an index (``index_id``)
    - ``DELETE /api/v1/indexes/<id>``    delete an index
    - ``POST /api/v1/_elastic/_bulk``    ndjson bulk ingestion
    - ``GET /api/v1/_elastic/_cat/indices[/<pattern>]?format=json``
    - ``PUT|DELETE /api/v1/_elastic/<index>``  Elasticsearch-style index management
    """

    def __init__(self, drop_documents: int = 0):
        self.drop_documents = drop_documents
        self.indexes: dict[str, list[dict]] = {}
        self.requests: list[tuple[str, str]] = []
        self.lock = threading.Lock()

    def handle(self, method: str, raw_path: str, headers: dict[str, str], body: bytes) -> tuple[int, Any]:
        url = urlparse(raw_path)
        path = url.path
        query = {k: v[-1] for k, v in parse_qs(url.query).items()}
        with self.lock:
            self.requests.append((method, raw_path))
            if headers.get("content-encoding", "").lower() == "gzip":
                body = gzip.decompress(body)

            if path.startswith("/api/v1/indexes"):
                return self._indexes(method, path[len("/api/v1/indexes"):].strip("/"), body)
            if path == "/api/v1/_elastic/_bulk" and method == "POST":
                return self._bulk(body)
            if path.startswith("/api/v1/_elastic/_cat/indices") and method == "GET":
                pattern = path[len("/api/v1/_elastic/_cat/indices"):].strip("/") or "*"
                return self._cat_indices(pattern, query)
            name = path[len("/api/v1/_elastic/"):].strip("/")
            if path.startswith("/api/v1/_elastic/") and method in ("PUT", "DELETE") and name and "/" not in name:
                return self._es_index(method, name)
        return 404, {"error": f"no route for {method} {path}"}

    def _indexes(self, method: str, index_id: str, body: bytes) -> tuple[int, Any]:
        if method == "POST" and not index_id:
            config = json.loads(body)
            name = config["index_id"]
            if name in self.indexes:
                return 400, {"message": f"index `{name}` already exists"}
            self.indexes[name] = []
            return 200, {"index_id": name}
        if method == "DELETE" and index_id:
            if self.indexes.pop(index_id, None) is None:
                return 404, {"message": f"index `{index_id}` not found"}
            return 200, [{"file_name": f"{index_id}.split"}]
        return 405, {"message": "method not allowed"}

    def _es_index(self, method: str, name: str) -> tuple[int, Any]:
        if method == "PUT":
            if name in self.indexes:
                return 400, {"error": {"type": "resource_already_exists_exception", "index": name}}
            self.indexes[name] = []
            return 200, {"acknowledged": True, "index": name}
        if self.indexes.pop(name, None) is None:
            return 404, {"error": {"type": "index_not_found_exception", "index": name}}
        return 200, {"acknowledged": True}

    def _bulk(self, body: bytes) -> tuple[int, Any]:
        lines = [json.loads(line) for line in body.decode("utf-8").splitlines() if line.strip()]
        added: list[tuple[str, dict]] = []
        for action, doc in zip(lines[0::2], lines[1::2]):
            index = action.get("create", action.get("index", {})).get("_index")
            if index not in self.indexes:
                return 404, {"error": {"type": "index_not_found_exception", "index": index}}
            added.append((index, doc))
        if self.drop_documents:
            added = added[:-self.drop_documents]
        for index, doc in added:
            self.indexes[index].append(doc)
        return 200, {"errors": False, "items": len(added)}

    def _cat_indices(self, pattern: str, query: dict[str, str]) -> tuple[int, Any]:
        if query.get("format") != "json":
            return 400, {"error": "only format=json is supported"}
        unsupported = sorted(set(query) - {"format", "h", "health"})
        if unsupported:
            return 400, {"error": f"unsupported parameters: {', '.join(unsupported)}"}
        records = []
        for name in sorted(self.indexes):
            if not fnmatch.fnmatch(name, pattern):
                continue
            record = {
                "health": "green",
                "status": "open",
                "index": name,
                "uuid": f"{name}:01HN2SDANHDN6WFAFNH7BBMQ8C",
                "pri": "1",
                "rep": "1",
                "docs.count": str(len(self.indexes[name])),
                "docs.deleted": "0",
            }
            if query.get("health") and query["health"] != record["health"]:
                continue
            if query.get("h"):
                record = {k: record[k] for k in query["h"].split(",") if k in record}
            records.append(record)
        if pattern != "*" and "*" not in pattern and not records and pattern not in self.indexes:
            return 404, {"error": f"index {pattern} not found"}
        return 200, records


def _start_server(engine: FakeSearchEngine) -> tuple[ThreadingHTTPServer, threading.Thread]:
    class Handler(BaseHTTPRequestHandler):
        def _dispatch(self) -> None:
            length = int(self.headers.get("Content-Length") or 0)
            body = self.rfile.read(length) if length else b""
            headers = {k.lower(): v for k, v in self.headers.items()}
            status, payload = engine.handle(self.command, self.path, headers, body)
            data = json.dumps(payload).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        do_GET = do_POST = do_PUT = do_DELETE = _dispatch  # noqa: N815 - HTTP handler requirement

        def log_message(self, format: str, *args: object) -> None:  # pragma: no cover - silence logs
            return

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server, thread


@pytest.fixture
def fake_engine_factory() -> Iterator[Callable[..., tuple[FakeSearchEngine, str]]]:
    """Start fake engines; yields a factory returning ``(engine, base_url)``."""
    servers: list[tuple[ThreadingHTTPServer, threading.Thread]] = []

    def start(drop_documents: int = 0) -> tuple[FakeSearchEngine, str]:
        engine = FakeSearchEngine(drop_documents=drop_documents)
        server, thread = _start_server(engine)
        servers.append((server, thread))
        return engine, f"http://127.0.0.1:{server.server_address[1]}/api/v1/_elastic/"

    yield start

    for server, thread in servers:
        server.shutdown()
        server.server_close()
        thread.join(timeout=2)


@pytest.fixture
def sleeps() -> list[float]:
    """Collects requested sleeps; pass ``sleeps.append`` as the sleep function."""
    return []


def bulk_records(index: str, count: int, start: int = 0) -> list[dict]:
    records: list[dict] = []
    for i in range(start, start + count):
        records.append({"create": {"_index": index}})
        records.append({"id": i, "actor": {"id": 1000 + i}, "public": i % 2 == 0})
    return records
