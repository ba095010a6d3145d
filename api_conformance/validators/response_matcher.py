"""Response matcher: compares engine responses against step expectations.

Comparison rules:

- Mappings are compared as subsets. Every key of the expected mapping must
  be present in the actual one with a matching value; extra actual keys are
  ignored. Ignored fields and keys starting with ``#`` are never compared.
  Keys commented out in the scenario only apply to the top-level expected
  record they were written in.
- Lists are compared as multisets unless the step is ``ordered``: lengths
  must be equal and there must be a one-to-one pairing in which every
  expected item matches its partner. The pairing is a maximum bipartite
  matching, so the result does not depend on input order.
- Scalars are compared exactly. The one coercion: an expected string
  matches a number whose ``str()`` is equal (``'100'`` vs ``100``).
"""

import json
from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import MismatchError
from ..scenario.schema import StatusExpectation, Step
from ..transport.http_client import HttpResponse

MAX_SNIPPET = 500


@dataclass
class MatchResult:
    """Successful match of a response."""
    status_code: int
    body_checked: bool = False
    pairing: dict[int, int] = field(default_factory=dict)  # expected index -> actual index


def _render(value: Any) -> str:
    text = json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)
    if len(text) > MAX_SNIPPET:
        return text[:MAX_SNIPPET] + "..."
    return text


def _join(path: str, key: str) -> str:
    return f"{path}.{key}"


def _kind(value: Any) -> str:
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "list"
    if value is None:
        return "null"
    return type(value).__name__


def scalars_equal(expected: Any, actual: Any) -> bool:
    """Exact equality, plus expected strings against their numeric spelling."""
    if isinstance(expected, bool) or isinstance(actual, bool):
        return isinstance(expected, bool) and isinstance(actual, bool) and expected == actual
    if isinstance(expected, str) and isinstance(actual, (int, float)):
        return str(actual) == expected
    if type(expected) is not type(actual) and not (
        isinstance(expected, (int, float)) and isinstance(actual, (int, float))
    ):
        return False
    return expected == actual


def max_bipartite_matching(compatible: list[list[bool]], n_actual: int) -> dict[int, int]:
    """Kuhn's augmenting-path matching. Returns expected index -> actual index."""
    owner = [-1] * n_actual

    def assign(i: int, seen: list[bool]) -> bool:
        for j in range(n_actual):
            if compatible[i][j] and not seen[j]:
                seen[j] = True
                if owner[j] == -1 or assign(owner[j], seen):
                    owner[j] = i
                    return True
        return False

    for i in range(len(compatible)):
        assign(i, [False] * n_actual)

    return {i: j for j, i in enumerate(owner) if i != -1}


class ResponseMatcher:
    """Checks status and body of a response against a Step."""

    def match_response(self, response: HttpResponse, step: Step) -> MatchResult:
        """Decode ``response`` and match it against ``step``.

        Raises:
            MismatchError: If status or body do not satisfy the step.
        """
        self.check_status(response.status_code, step, response.text)
        if not step.has_expectation:
            return MatchResult(status_code=response.status_code)
        try:
            body = response.json()
        except ValueError:
            raise MismatchError(
                "Response body is not valid JSON",
                [f"body: {response.text[:MAX_SNIPPET]}"],
            )
        return self.match(response.status_code, body, step)

    def match(self, status_code: int, body: Any, step: Step) -> MatchResult:
        """Match an already decoded body.

        Raises:
            MismatchError: If status or body do not satisfy the step.
        """
        self.check_status(status_code, step, None)
        if not step.has_expectation:
            return MatchResult(status_code=status_code)

        comparator = _Comparator(step)
        diff = comparator.compare(step.expected, body, "$", comparator.root_ignored())
        if diff:
            raise MismatchError(f"Response body does not match expectation for {step.label}", diff)
        return MatchResult(
            status_code=status_code,
            body_checked=True,
            pairing=comparator.top_level_pairing,
        )

    @staticmethod
    def check_status(status_code: int, step: Step, body_text: Optional[str]) -> None:
        if step.status_matches(status_code):
            return
        if step.status_code is StatusExpectation.SUCCESS:
            wanted = "a 2xx status"
        else:
            wanted = f"status {step.status_code}"
        diff = [f"body: {body_text[:MAX_SNIPPET]}"] if body_text else []
        raise MismatchError(f"Expected {wanted}, got {status_code}", diff)


class _Comparator:
    """Recursive structural comparison returning a list of differences."""

    def __init__(self, step: Step):
        self.step = step
        self.ordered = step.ordered
        self.top_level_pairing: dict[int, int] = {}

    def root_ignored(self) -> frozenset[str]:
        if isinstance(self.step.expected, dict):
            return self.step.ignored_in(None)
        return self.step.ignored_fields

    def item_ignored(self, path: str, index: int, ignored: frozenset[str]) -> frozenset[str]:
        # Records of the top-level list carry their own commented keys.
        if path == "$":
            return self.step.ignored_in(index)
        return ignored

    def compare(self, expected: Any, actual: Any, path: str, ignored: frozenset[str]) -> list[str]:
        if isinstance(expected, dict):
            return self._compare_mapping(expected, actual, path, ignored)
        if isinstance(expected, list):
            return self._compare_list(expected, actual, path, ignored)
        if scalars_equal(expected, actual):
            return []
        return [f"{path}: expected {_render(expected)}, got {_render(actual)}"]

    @staticmethod
    def is_ignored(key: str, ignored: frozenset[str]) -> bool:
        return key in ignored or key.startswith("#")

    def _compare_mapping(self, expected: dict, actual: Any, path: str, ignored: frozenset[str]) -> list[str]:
        if not isinstance(actual, dict):
            return [f"{path}: expected an object, got {_kind(actual)}"]
        diff = []
        for key, value in expected.items():
            key = str(key)
            if self.is_ignored(key, ignored):
                continue
            if key not in actual:
                diff.append(f"{_join(path, key)}: missing (expected {_render(value)})")
                continue
            diff.extend(self.compare(value, actual[key], _join(path, key), ignored))
        return diff

    def _compare_list(self, expected: list, actual: Any, path: str, ignored: frozenset[str]) -> list[str]:
        if not isinstance(actual, list):
            return [f"{path}: expected a list, got {_kind(actual)}"]
        if self.ordered:
            return self._compare_positional(expected, actual, path, ignored)
        return self._compare_unordered(expected, actual, path, ignored)

    def _compare_positional(self, expected: list, actual: list, path: str, ignored: frozenset[str]) -> list[str]:
        diff = []
        if len(expected) != len(actual):
            diff.append(f"{path}: expected {len(expected)} items, got {len(actual)}")
        for i, (exp, act) in enumerate(zip(expected, actual)):
            diff.extend(self.compare(exp, act, f"{path}[{i}]", self.item_ignored(path, i, ignored)))
        if path == "$" and not diff:
            self.top_level_pairing = {i: i for i in range(len(expected))}
        return diff

    def _compare_unordered(self, expected: list, actual: list, path: str, ignored: frozenset[str]) -> list[str]:
        diffs = [
            [
                self.compare(exp, act, f"{path}[{j}]", self.item_ignored(path, i, ignored))
                for j, act in enumerate(actual)
            ]
            for i, exp in enumerate(expected)
        ]
        compatible = [[not d for d in row] for row in diffs]
        pairing = max_bipartite_matching(compatible, len(actual))

        if len(pairing) == len(expected) == len(actual):
            if path == "$":
                self.top_level_pairing = pairing
            return []

        diff = []
        if len(expected) != len(actual):
            diff.append(f"{path}: expected {len(expected)} items, got {len(actual)}")

        paired_actual = set(pairing.values())
        unpaired_actual = [j for j in range(len(actual)) if j not in paired_actual]
        for i, exp in enumerate(expected):
            if i in pairing:
                continue
            diff.append(f"{path}: no match for expected[{i}] {_render(exp)}")
            candidates = unpaired_actual or list(range(len(actual)))
            if candidates:
                closest = min(candidates, key=lambda j: len(diffs[i][j]))
                diff.append(f"  closest is actual[{closest}], differing at:")
                diff.extend(f"    {line}" for line in diffs[i][closest])
        for j in unpaired_actual:
            diff.append(f"{path}: surplus actual[{j}] {_render(actual[j])}")
        return diff
