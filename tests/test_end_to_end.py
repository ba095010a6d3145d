"""Runs scenarios over real HTTP against in-process fake engines."""

from __future__ import annotations

import gzip
import json
from pathlib import Path

from conftest import bulk_records

from api_conformance.config import EngineRegistry, ExecutionConfig
from api_conformance.reporting.run_report import OutcomeStatus
from api_conformance.runner.dispatcher import Dispatcher
from api_conformance.scenario.parser import parse_scenario_text
from api_conformance.scenario.suite import load_suite
from api_conformance.transport.request_builder import encode_ndjson

SAMPLE_SUITE = Path(__file__).resolve().parents[1] / "scenarios" / "es_compatibility"

INGEST_AND_COUNT = """\
# Delete possibly remaining index
method: DELETE
api_root: ../
endpoint: indexes/gharchive
status_code: null
---
# Create index
method: POST
endpoint: indexes/
json:
  version: "0.7"
  index_id: gharchive
---
# Ingest documents
method: POST
api_root: ./
endpoint: _bulk
params:
  refresh: true
ndjson: {records}
---
method: GET
endpoint: "_cat/indices?format=json"
expected:
- index: gharchive
  docs.count: '100'
  #uuid: gharchive:01HN2SDANHDN6WFAFNH7BBMQ8C
"""


def _dispatcher(urls: dict[str, str], sleeps: list[float]) -> Dispatcher:
    registry = EngineRegistry.from_mapping(urls)
    return Dispatcher(registry, ExecutionConfig(request_timeout=5.0, retry_delay=0.0), sleep=sleeps.append)


def _ingest_scenario():
    return parse_scenario_text(
        INGEST_AND_COUNT.format(records=json.dumps(bulk_records("gharchive", 100))),
        name="ingest-and-count",
    )


def test_conforming_engine_has_no_failures(fake_engine_factory, sleeps) -> None:
    engine, url = fake_engine_factory()

    report = _dispatcher({"quickwit": url}, sleeps).run_scenario(_ingest_scenario())

    assert report.all_passed, report.summary()
    assert report.total_count == 4
    assert len(engine.indexes["gharchive"]) == 100
    assert engine.requests[2] == ("POST", "/api/v1/_elastic/_bulk?refresh=true")


def test_dropped_document_yields_one_mismatch(fake_engine_factory, sleeps) -> None:
    _, good_url = fake_engine_factory()
    _, lossy_url = fake_engine_factory(drop_documents=1)

    report = _dispatcher({"quickwit": good_url, "lossy": lossy_url}, sleeps).run_scenario(_ingest_scenario())

    assert all(o.passed for o in report.for_engine("quickwit"))
    failures = report.failures
    assert len(failures) == 1
    assert failures[0].engine == "lossy"
    assert failures[0].error_type == "MismatchError"
    assert any('docs.count: expected "100", got "99"' in line for line in failures[0].diff)


def test_sample_suite_passes_on_both_engines(fake_engine_factory, sleeps) -> None:
    qw, qw_url = fake_engine_factory()
    es, es_url = fake_engine_factory()
    scenarios = load_suite(SAMPLE_SUITE)

    report = _dispatcher({"quickwit": qw_url, "elasticsearch": es_url}, sleeps).run_scenarios(scenarios)

    assert report.all_passed, report.summary()
    assert report.skipped_count == 0
    # Both teardowns removed the index again.
    assert qw.indexes == {} and es.indexes == {}
    assert ("POST", "/api/v1/indexes/") in qw.requests
    assert ("PUT", "/api/v1/_elastic/gharchive") in es.requests


def test_sample_suite_aborts_lossy_lane_and_still_tears_down(fake_engine_factory, sleeps) -> None:
    _, qw_url = fake_engine_factory()
    es, es_url = fake_engine_factory(drop_documents=1)

    report = _dispatcher({"quickwit": qw_url, "elasticsearch": es_url}, sleeps).run_scenarios(
        load_suite(SAMPLE_SUITE)
    )

    failures = report.failures
    assert len(failures) == 1
    assert failures[0].engine == "elasticsearch"
    assert any("docs.count" in line for line in failures[0].diff)
    assert report.skipped_count > 0
    assert all(o.passed for o in report.for_engine("quickwit"))
    assert es.indexes == {}


def test_gzip_payload_from_file(fake_engine_factory, sleeps, tmp_path: Path) -> None:
    engine, url = fake_engine_factory()
    (tmp_path / "bulk.json.gz").write_bytes(gzip.compress(encode_ndjson(bulk_records("logs", 5))))
    text = (
        "method: POST\napi_root: ../\nendpoint: indexes/\njson: {index_id: logs}\n"
        "---\n"
        "method: POST\napi_root: ./\nendpoint: _bulk\n"
        "headers: {content-encoding: gzip}\nbody_from_file: bulk.json.gz\n"
        "---\n"
        "method: POST\nendpoint: _bulk\nbody_from_file: bulk.json.gz\n"
        "---\n"
        "method: GET\nendpoint: _cat/indices/logs?format=json&h=index,docs.count\n"
        "expected: [{index: logs, docs.count: '10'}]\n"
    )

    report = _dispatcher({"quickwit": url}, sleeps).run_scenario(parse_scenario_text(text, base_dir=tmp_path))

    assert report.all_passed, report.summary()
    assert len(engine.indexes["logs"]) == 10


def test_expected_error_status(fake_engine_factory, sleeps) -> None:
    _, url = fake_engine_factory()
    text = (
        "method: GET\nendpoint: _cat/indices/missing?format=json\nstatus_code: 404\n"
        "---\n"
        "method: GET\nendpoint: _cat/indices\nstatus_code: 400\n"
    )

    report = _dispatcher({"quickwit": url}, sleeps).run_scenario(parse_scenario_text(text))

    assert report.all_passed, report.summary()
    assert [o.status_code for o in report.outcomes] == [404, 400]


def test_unreachable_engine_is_a_transport_failure(sleeps) -> None:
    report = _dispatcher({"down": "http://127.0.0.1:9/"}, sleeps).run_scenario(
        parse_scenario_text("method: GET\nendpoint: _cat/indices?format=json\nnum_retries: 1\n")
    )

    outcome = report.outcomes[0]
    assert outcome.status is OutcomeStatus.FAILED
    assert outcome.error_type == "TransportFailure"
    assert outcome.attempts == 2
