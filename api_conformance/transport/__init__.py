"""Transport module - request building and HTTP communication."""

from .http_client import HttpResponse, HttpTransport, PreparedRequest
from .request_builder import (
    RequestBuilder,
    decompose_ndjson,
    encode_ndjson,
    load_payload_file,
)
from .retry_policy import (
    ExecutionRecord,
    RetryController,
    RetryPolicy,
    default_retry_policy,
    no_delay_retry_policy,
)

__all__ = [
    "HttpResponse",
    "HttpTransport",
    "PreparedRequest",
    "RequestBuilder",
    "decompose_ndjson",
    "encode_ndjson",
    "load_payload_file",
    "ExecutionRecord",
    "RetryController",
    "RetryPolicy",
    "default_retry_policy",
    "no_delay_retry_policy",
]
