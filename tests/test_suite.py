from __future__ import annotations

from pathlib import Path

import pytest

from api_conformance.errors import ParseError
from api_conformance.scenario.suite import load_suite, split_engine_suffix

STEP = "method: GET\nendpoint: {endpoint}\n"


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def suite_dir(tmp_path: Path) -> Path:
    root = tmp_path / "scenarii"
    _write(root / "_ctx.yaml", "api_root: /api/v1/_elastic/\nheaders:\n  X-Suite: root\n")
    _write(root / "_ctx.quickwit.yaml", "api_root: /api/v1/_elastic/\nparams:\n  engine: qw\n")
    _write(root / "_ctx.elasticsearch.yaml", "api_root: /\n")
    _write(root / "_setup.yaml", STEP.format(endpoint="setup"))
    _write(root / "_setup.quickwit.yaml", STEP.format(endpoint="setup-qw"))
    _write(root / "0002-second.yaml", STEP.format(endpoint="second"))
    _write(root / "0001-first.yaml", STEP.format(endpoint="first"))
    _write(root / "0003-es-only.elasticsearch.yaml", STEP.format(endpoint="es"))
    _write(root / "notes.txt", "not a scenario")
    _write(root / "_teardown.yaml", STEP.format(endpoint="teardown"))
    _write(root / "nested" / "_ctx.yaml", "headers:\n  X-Suite: nested\n")
    _write(root / "nested" / "0001-inner.yaml", STEP.format(endpoint="inner"))
    return root


def test_split_engine_suffix() -> None:
    assert split_engine_suffix(Path("_setup.quickwit.yaml")) == ("_setup", "quickwit")
    assert split_engine_suffix(Path("0021-cat-indices.yaml")) == ("0021-cat-indices", None)


def test_suite_order(suite_dir: Path) -> None:
    scenarios = load_suite(suite_dir)

    assert [s.name for s in scenarios] == [
        "_setup.quickwit",
        "_setup",
        "0001-first",
        "0002-second",
        "0003-es-only.elasticsearch",
        "0001-inner",
        "_teardown",
    ]


def test_engine_suffix_restricts_scenario(suite_dir: Path) -> None:
    scenarios = {s.name: s for s in load_suite(suite_dir)}

    assert scenarios["_setup.quickwit"].engines == frozenset({"quickwit"})
    assert scenarios["0003-es-only.elasticsearch"].applies_to("elasticsearch")
    assert not scenarios["0003-es-only.elasticsearch"].applies_to("quickwit")
    assert scenarios["0001-first"].engines is None


def test_teardown_always_runs(suite_dir: Path) -> None:
    scenarios = {s.name: s for s in load_suite(suite_dir)}

    assert scenarios["_teardown"].always_run
    assert not scenarios["0001-first"].always_run


def test_contexts_are_resolved_per_engine(suite_dir: Path) -> None:
    first = next(s for s in load_suite(suite_dir) if s.name == "0001-first")

    qw = first.context_for("quickwit")
    es = first.context_for("elasticsearch")
    assert qw.api_root == "/api/v1/_elastic/"
    assert qw.params == {"engine": "qw"}
    assert qw.headers == {"X-Suite": "root"}
    assert es.api_root == "/"
    assert es.params == {}


def test_nested_contexts_inherit_and_override(suite_dir: Path) -> None:
    inner = next(s for s in load_suite(suite_dir) if s.name == "0001-inner")

    ctx = inner.context_for("quickwit")
    assert ctx.headers == {"X-Suite": "nested"}
    assert ctx.api_root == "/api/v1/_elastic/"


def test_test_filter_keeps_setup_and_teardown(suite_dir: Path) -> None:
    scenarios = load_suite(suite_dir, ["0002-*"])

    assert [s.name for s in scenarios] == ["_setup.quickwit", "_setup", "0002-second", "_teardown"]


def test_filter_matching_nothing_loads_nothing(suite_dir: Path) -> None:
    assert load_suite(suite_dir, ["9999-*"]) == []


def test_single_file_uses_sibling_context(suite_dir: Path) -> None:
    scenarios = load_suite(suite_dir / "0001-first.yaml")

    assert len(scenarios) == 1
    assert scenarios[0].context_for("elasticsearch").api_root == "/"


def test_unknown_context_field(tmp_path: Path) -> None:
    _write(tmp_path / "_ctx.yaml", "api_roots: /\n")
    _write(tmp_path / "0001-a.yaml", STEP.format(endpoint="a"))

    with pytest.raises(ParseError, match="api_roots"):
        load_suite(tmp_path)


def test_missing_suite(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_suite(tmp_path / "absent")
