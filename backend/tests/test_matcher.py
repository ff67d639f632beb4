"""Tests for the token-containment similarity score."""
import pytest

from services.matcher import (
    CONTAINMENT_SCORE,
    DEFAULT_MATCHER,
    EXACT_SCORE,
    normalize,
    similarity,
    tokenize,
)


class TestNormalize:
    def test_lowercases_and_collapses_whitespace(self):
        assert normalize("  Whole   Wheat\tPASTA ") == "whole wheat pasta"

    def test_non_string_is_empty(self):
        assert normalize(None) == ""
        assert tokenize(None) == []


class TestSimilarity:
    def test_exact_match_ignores_case_and_spacing(self):
        assert similarity("Black Beans", "  black   beans") == EXACT_SCORE

    def test_containment(self):
        assert similarity("Black Beans", "Canned Black Beans") == CONTAINMENT_SCORE
        assert similarity("Canned Black Beans", "Black Beans") == CONTAINMENT_SCORE

    def test_token_overlap_uses_larger_token_count(self):
        # "cheddar" matches, "cheese" does not: 1 / 2
        assert similarity("Cheddar Cheese", "Shredded Cheddar") == pytest.approx(0.5)

    def test_token_containment_counts_partial_tokens(self):
        # "bean" is contained in "beans", "dry" matches nothing: 1 / 2
        assert similarity("dry bean", "pinto beans") == pytest.approx(0.5)

    def test_unrelated_strings_score_zero(self):
        assert similarity("Fresh Basil", "Whole Wheat Pasta") == 0.0

    @pytest.mark.parametrize("a,b", [("", "pasta"), ("pasta", ""), ("   ", "pasta"), ("", "")])
    def test_empty_input_never_matches(self, a, b):
        assert similarity(a, b) == 0.0

    def test_score_is_bounded(self):
        for a, b in [("rice", "brown rice"), ("a b c", "a b c d e"), ("milk", "milk")]:
            assert 0.0 <= similarity(a, b) <= 1.0

    def test_default_matcher_delegates(self):
        assert DEFAULT_MATCHER.score("Rice", "rice") == EXACT_SCORE
