"""
Textual similarity between a recipe ingredient and an inventory product.

Scores:

    exact match (case/whitespace-insensitive)      -> 1.0
    one string contains the other                  -> 0.8
    otherwise: tokens of ``a`` that equal, contain, or are contained in
    some token of ``b``, divided by the larger token count

There is no edit-distance partial credit. Callers depend on the ``Matcher``
protocol so a stronger strategy can be dropped in later.
"""

from __future__ import annotations

from typing import List, Protocol

EXACT_SCORE = 1.0
CONTAINMENT_SCORE = 0.8


class Matcher(Protocol):
    def score(self, a: str, b: str) -> float:
        ...


def normalize(text: str) -> str:
    if not isinstance(text, str):
        return ""
    return " ".join(text.lower().split())


def tokenize(text: str) -> List[str]:
    return normalize(text).split()


def _token_overlap(tokens_a: List[str], tokens_b: List[str]) -> float:
    matches = 0
    for ta in tokens_a:
        for tb in tokens_b:
            if ta == tb or ta in tb or tb in ta:
                matches += 1
                break
    return matches / max(len(tokens_a), len(tokens_b))


def similarity(a: str, b: str) -> float:
    """Score in [0, 1]; empty input never matches anything."""
    s1 = normalize(a)
    s2 = normalize(b)
    if not s1 or not s2:
        return 0.0
    if s1 == s2:
        return EXACT_SCORE
    if s1 in s2 or s2 in s1:
        return CONTAINMENT_SCORE
    return _token_overlap(s1.split(), s2.split())


class TokenContainmentMatcher:
    def score(self, a: str, b: str) -> float:
        return similarity(a, b)


DEFAULT_MATCHER: Matcher = TokenContainmentMatcher()
