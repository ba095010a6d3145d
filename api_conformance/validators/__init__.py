"""Validators module - response matching."""

from .response_matcher import (
    MatchResult,
    ResponseMatcher,
    max_bipartite_matching,
    scalars_equal,
)

__all__ = [
    "MatchResult",
    "ResponseMatcher",
    "max_bipartite_matching",
    "scalars_equal",
]
