"""YAML scenario parser for the conformance runner.

A scenario file is a stream of YAML documents separated by ``---`` lines.
Each non-empty document maps to exactly one Step, indexed by its position in
the stream so that empty documents still count. Unknown keys are rejected so that
fixture typos fail loudly instead of being ignored.
"""

import re
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from ..errors import ParseError
from .schema import (
    CONTEXT_FIELDS,
    STEP_FIELDS,
    VALID_METHODS,
    BODY_SOURCE_FIELDS,
    Scenario,
    ScenarioContext,
    StatusExpectation,
    Step,
    ValidationError,
)

_DELIMITER = re.compile(r"^---(?:\s+(.*))?$")
_COMMENTED_KEY = re.compile(r"^(\s*)(?:-\s+)?#\s*([A-Za-z_][\w.\-]*)\s*:(?:\s|$)")
_TOP_LEVEL_KEY = re.compile(r"^([A-Za-z_][\w.\-]*)\s*:")
_LIST_ITEM = re.compile(r"^(\s*)-(?:\s|$)")


def parse_scenario(file_path: Union[str, Path]) -> Scenario:
    """Parse a YAML scenario file into a Scenario object.

    Args:
        file_path: Path to the YAML scenario file.

    Returns:
        Parsed Scenario object.

    Raises:
        FileNotFoundError: If the scenario file doesn't exist.
        ParseError: If a document is malformed or has invalid fields.
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Scenario file not found: {file_path}")

    if file_path.suffix not in (".yaml", ".yml"):
        raise ParseError(f"Expected .yaml or .yml file, got: {file_path.suffix}", source=str(file_path))

    text = file_path.read_text(encoding="utf-8")
    return parse_scenario_text(
        text,
        source=str(file_path),
        name=file_path.stem,
        base_dir=file_path.parent,
    )


def parse_scenario_text(
    text: str,
    source: str = "<inline>",
    name: Optional[str] = None,
    base_dir: Optional[Path] = None,
) -> Scenario:
    """Parse scenario text made of one or more ``---`` separated documents."""
    steps: list[Step] = []
    warnings: list[ValidationError] = []

    for index, raw in enumerate(split_documents(text)):
        data = _load_document(raw.body, index, source)
        if data is None:
            continue
        commented, stray = _scan_commented_keys(raw.body)
        for key in stray:
            warnings.append(ValidationError(
                path=f"{source}[{index}]",
                message=f"Commented-out key '{key}' outside 'expected' has no effect.",
                severity="warning",
            ))
        step = parse_step_data(
            data,
            index=index,
            source=source,
            description=raw.description,
            commented_fields=commented,
            base_dir=base_dir,
        )
        steps.append(step)

    return Scenario(
        name=name or source,
        steps=tuple(steps),
        source=source,
        warnings=tuple(warnings),
    )


class _RawDocument:
    """Text of one document plus the comment attached to its delimiter."""

    def __init__(self, body: str, description: Optional[str] = None):
        self.body = body
        self.description = description


def split_documents(text: str) -> list[_RawDocument]:
    """Split a multi-document stream on ``---`` delimiter lines."""
    documents: list[_RawDocument] = []
    lines: list[str] = []
    description: Optional[str] = None

    for line in text.splitlines():
        match = _DELIMITER.match(line)
        if match is None:
            lines.append(line)
            continue
        documents.append(_RawDocument("\n".join(lines), description))
        lines = []
        trailer = (match.group(1) or "").strip()
        description = trailer.lstrip("#").strip() or None

    documents.append(_RawDocument("\n".join(lines), description))

    for doc in documents:
        if doc.description is None:
            doc.description = _leading_comment(doc.body)
    return documents


def _leading_comment(body: str) -> Optional[str]:
    comments = []
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if not stripped.startswith("#") or _COMMENTED_KEY.match(line):
            break
        comments.append(stripped.lstrip("#").strip())
    return " ".join(comments) or None


def _load_document(body: str, index: int, source: str) -> Optional[dict]:
    try:
        data = yaml.safe_load(body)
    except yaml.YAMLError as e:
        raise ParseError(f"Invalid YAML: {e}", document_index=index, source=source) from e

    if data is None:
        return None
    if not isinstance(data, dict):
        raise ParseError(
            f"Document must be a YAML mapping, got {type(data).__name__}",
            document_index=index,
            source=source,
        )
    return data


def _scan_commented_keys(body: str) -> tuple[dict[Optional[int], set[str]], list[str]]:
    """Find ``#key: value`` lines.

    Returns the keys commented out inside the ``expected`` block, grouped by
    the top-level record they sit in (``None`` when ``expected`` is a
    mapping), and the ones found anywhere else.
    """
    commented: dict[Optional[int], set[str]] = {}
    stray: list[str] = []
    block: Optional[str] = None
    item_indent: Optional[int] = None  # indentation of the records of a list expectation
    is_list: Optional[bool] = None
    record = -1

    for line in body.splitlines():
        top = _TOP_LEVEL_KEY.match(line)
        if top:
            block = top.group(1)
            is_list, item_indent, record = None, None, -1
            continue

        if block == "expected":
            stripped = line.strip()
            item = _LIST_ITEM.match(line)
            if is_list is None and stripped and not stripped.startswith("#"):
                is_list = item is not None
                item_indent = len(item.group(1)) if item else None
            if is_list and item and len(item.group(1)) == item_indent:
                record += 1

        match = _COMMENTED_KEY.match(line)
        if match is None:
            continue
        indent, key = len(match.group(1)), match.group(2)
        in_record = line.lstrip().startswith("-")

        if block == "expected" and is_list and record >= 0 and (indent > item_indent or in_record):
            commented.setdefault(record, set()).add(key)
        elif block == "expected" and is_list is False and indent:
            commented.setdefault(None, set()).add(key)
        elif block is not None:
            stray.append(key)

    return commented, stray


def parse_step_data(
    data: dict,
    index: int = 0,
    source: str = "<inline>",
    description: Optional[str] = None,
    commented_fields: Optional[dict[Optional[int], set[str]]] = None,
    base_dir: Optional[Path] = None,
) -> Step:
    """Build a Step from one loaded YAML document.

    Raises:
        ParseError: On unknown keys, missing required fields or invalid values.
    """
    def fail(message: str, field_name: Optional[str] = None) -> ParseError:
        return ParseError(message, document_index=index, field=field_name, source=source)

    unknown = sorted(set(data) - STEP_FIELDS)
    if unknown:
        raise fail(f"Unknown field(s): {', '.join(unknown)}", unknown[0])

    for field_name in ("method", "endpoint"):
        if field_name not in data:
            raise fail("Missing required field", field_name)

    body_fields = sorted(f for f in BODY_SOURCE_FIELDS if data.get(f) is not None)
    if len(body_fields) > 1:
        raise fail(f"At most one body source allowed, got: {', '.join(body_fields)}", body_fields[1])

    methods = _parse_methods(data["method"], fail)

    endpoint = data["endpoint"]
    if not isinstance(endpoint, str):
        raise fail("'endpoint' must be a string", "endpoint")

    status_code = _parse_status(data, fail)
    expected = data.get("expected")
    if expected is not None:
        if not isinstance(expected, (list, dict)):
            raise fail("'expected' must be a list or a mapping", "expected")
        if status_code is StatusExpectation.ANY:
            raise fail("'expected' cannot be combined with 'status_code: null'", "status_code")
        if isinstance(status_code, int) and not 200 <= status_code < 300:
            raise fail(
                f"'expected' requires a success status code, got {status_code}",
                "status_code",
            )

    ndjson = data.get("ndjson")
    if ndjson is not None and not isinstance(ndjson, list):
        raise fail("'ndjson' must be a list of records", "ndjson")

    json_body = data.get("json")
    if json_body is not None and not isinstance(json_body, (dict, list)):
        raise fail("'json' must be a mapping or a list", "json")

    body_from_file = data.get("body_from_file")
    if body_from_file is not None and not isinstance(body_from_file, str):
        raise fail("'body_from_file' must be a path string", "body_from_file")

    api_root = data.get("api_root")
    if api_root is not None and not isinstance(api_root, str):
        raise fail("'api_root' must be a string", "api_root")

    explicit = data.get("ignored_fields", [])
    if not isinstance(explicit, list) or not all(isinstance(k, str) for k in explicit):
        raise fail("'ignored_fields' must be a list of strings", "ignored_fields")

    ordered = data.get("ordered", False)
    if not isinstance(ordered, bool):
        raise fail("'ordered' must be a boolean", "ordered")

    text = data.get("description", description)

    return Step(
        index=index,
        methods=methods,
        endpoint=endpoint,
        description=str(text) if text is not None else None,
        api_root=api_root,
        headers=_parse_string_map(data.get("headers"), "headers", fail),
        params=_parse_string_map(data.get("params"), "params", fail),
        json_body=json_body,
        ndjson=ndjson,
        body_from_file=body_from_file,
        num_retries=_parse_non_negative(data.get("num_retries", 0), "num_retries", fail, int),
        sleep_after=float(_parse_non_negative(data.get("sleep_after", 0), "sleep_after", fail)),
        engines=_parse_engines(data.get("engines"), fail),
        status_code=status_code,
        expected=expected,
        ordered=ordered,
        ignored_fields=frozenset(explicit),
        commented_fields={record: frozenset(keys) for record, keys in (commented_fields or {}).items()},
        base_dir=base_dir,
    )


def parse_context_data(data: Any, source: str = "<inline>") -> ScenarioContext:
    """Parse a ``_ctx`` document holding defaults shared by a directory."""
    if data is None:
        return ScenarioContext()

    def fail(message: str, field_name: Optional[str] = None) -> ParseError:
        return ParseError(message, field=field_name, source=source)

    if not isinstance(data, dict):
        raise fail(f"Context must be a YAML mapping, got {type(data).__name__}")

    unknown = sorted(set(data) - CONTEXT_FIELDS)
    if unknown:
        raise fail(f"Unknown context field(s): {', '.join(unknown)}", unknown[0])

    api_root = data.get("api_root")
    if api_root is not None and not isinstance(api_root, str):
        raise fail("'api_root' must be a string", "api_root")

    return ScenarioContext(
        api_root=api_root,
        headers=_parse_string_map(data.get("headers"), "headers", fail),
        params=_parse_string_map(data.get("params"), "params", fail),
    )


def _parse_methods(value: Any, fail) -> tuple[str, ...]:
    raw = value if isinstance(value, list) else [value]
    if not raw:
        raise fail("'method' must name at least one HTTP method", "method")
    methods = []
    for item in raw:
        if not isinstance(item, str) or item.upper() not in VALID_METHODS:
            raise fail(f"Invalid HTTP method: {item!r}", "method")
        if item.upper() not in methods:
            methods.append(item.upper())
    return tuple(methods)


def _parse_status(data: dict, fail):
    if "status_code" not in data:
        return StatusExpectation.SUCCESS
    value = data["status_code"]
    if value is None:
        return StatusExpectation.ANY
    if isinstance(value, bool) or not isinstance(value, int) or not 100 <= value <= 599:
        raise fail(f"Invalid status code: {value!r}", "status_code")
    return value


def _parse_engines(value: Any, fail) -> Optional[frozenset[str]]:
    if value is None:
        return None
    raw = value if isinstance(value, list) else [value]
    if not raw or not all(isinstance(e, str) and e for e in raw):
        raise fail("'engines' must be a non-empty list of engine names", "engines")
    return frozenset(raw)


def _parse_string_map(value: Any, field_name: str, fail) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise fail(f"'{field_name}' must be a mapping", field_name)
    return {str(k): _to_string(v) for k, v in value.items()}


def _to_string(value: Any) -> str:
    # YAML turns `refresh: true` into a bool; engines expect the lowercase literal.
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_non_negative(value: Any, field_name: str, fail, kind=(int, float)):
    if isinstance(value, bool) or not isinstance(value, kind) or value < 0:
        raise fail(f"'{field_name}' must be a non-negative number", field_name)
    return value
