"""Directory suite loader.

A suite directory holds scenario files that run in name order, framed by
optional setup and teardown files::

    es_compatibility/
        _ctx.yaml                 # defaults for every engine
        _ctx.quickwit.yaml        # defaults for quickwit only
        _setup.quickwit.yaml      # runs first, quickwit only
        0001-create.yaml
        0021-cat-indices.yaml
        0030-only-es.elasticsearch.yaml
        _teardown.yaml            # runs last, even after a failure

Subdirectories are suites of their own and inherit the parent contexts.
"""

import fnmatch
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional, Union

import yaml

from ..errors import ParseError
from .parser import parse_context_data, parse_scenario
from .schema import Scenario, ScenarioContext

SCENARIO_SUFFIXES = (".yaml", ".yml")
CONTEXT_PREFIX = "_ctx"
SETUP_PREFIX = "_setup"
TEARDOWN_PREFIX = "_teardown"

Contexts = dict[Optional[str], ScenarioContext]


def split_engine_suffix(path: Path) -> tuple[str, Optional[str]]:
    """Split ``name.engine.yaml`` into ``("name", "engine")``."""
    stem = path.stem
    if "." in stem:
        base, engine = stem.rsplit(".", 1)
        if base and engine:
            return base, engine
    return stem, None


def load_suite(
    root: Union[str, Path],
    test_filters: Optional[Iterable[str]] = None,
) -> list[Scenario]:
    """Load every scenario below ``root`` in execution order.

    Args:
        root: A suite directory or a single scenario file.
        test_filters: Glob patterns matched against paths relative to
            ``root``. When given, only matching test files run; the setup
            and teardown files of their directories still run.

    Returns:
        Scenarios ordered setup, tests, subdirectories, teardown.
    """
    root = Path(root)
    if not root.exists():
        raise FileNotFoundError(f"Suite not found: {root}")

    if root.is_file():
        scenario = parse_scenario(root)
        _, engine = split_engine_suffix(root)
        contexts = _load_contexts(root.parent, {})
        return [_attach(scenario, engine, contexts)]

    filters = list(test_filters or [])
    return _load_directory(root, root, {}, filters)


def _load_directory(
    directory: Path,
    root: Path,
    inherited: Contexts,
    filters: list[str],
) -> list[Scenario]:
    contexts = _load_contexts(directory, inherited)
    setups: list[Path] = []
    tests: list[Path] = []
    teardowns: list[Path] = []
    subdirs: list[Path] = []

    for entry in sorted(directory.iterdir()):
        if entry.is_dir():
            if not entry.name.startswith((".", "_")):
                subdirs.append(entry)
            continue
        if entry.suffix not in SCENARIO_SUFFIXES:
            continue
        base, _ = split_engine_suffix(entry)
        if base == CONTEXT_PREFIX:
            continue
        if base == SETUP_PREFIX:
            setups.append(entry)
        elif base == TEARDOWN_PREFIX:
            teardowns.append(entry)
        elif not base.startswith("_"):
            if _selected(entry, root, filters):
                tests.append(entry)

    children: list[Scenario] = []
    for subdir in subdirs:
        children.extend(_load_directory(subdir, root, contexts, filters))

    if not tests and not children:
        return []

    scenarios: list[Scenario] = []
    for path in setups:
        scenarios.append(_load_file(path, contexts))
    for path in tests:
        scenarios.append(_load_file(path, contexts))
    scenarios.extend(children)
    for path in teardowns:
        scenarios.append(_load_file(path, contexts, always_run=True))
    return scenarios


def _selected(path: Path, root: Path, filters: list[str]) -> bool:
    if not filters:
        return True
    relative = path.relative_to(root).as_posix()
    return any(
        fnmatch.fnmatch(relative, pattern) or fnmatch.fnmatch(path.name, pattern)
        for pattern in filters
    )


def _load_file(path: Path, contexts: Contexts, always_run: bool = False) -> Scenario:
    _, engine = split_engine_suffix(path)
    scenario = parse_scenario(path)
    return _attach(scenario, engine, contexts, always_run)


def _attach(
    scenario: Scenario,
    engine: Optional[str],
    contexts: Contexts,
    always_run: bool = False,
) -> Scenario:
    return replace(
        scenario,
        engines=frozenset([engine]) if engine else None,
        contexts=dict(contexts),
        always_run=always_run,
    )


def _load_contexts(directory: Path, inherited: Contexts) -> Contexts:
    """Overlay this directory's ``_ctx`` files on the inherited contexts."""
    contexts = dict(inherited)
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix not in SCENARIO_SUFFIXES:
            continue
        base, engine = split_engine_suffix(path)
        if base != CONTEXT_PREFIX:
            continue
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ParseError(f"Invalid YAML: {e}", source=str(path)) from e
        context = parse_context_data(data, source=str(path))
        contexts[engine] = contexts.get(engine, ScenarioContext()).merged(context)
    return contexts
