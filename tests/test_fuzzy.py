"""
Unit tests for FuzzyMatcher tiers and ranking.
"""

import pytest

from rundiff.fuzzy import (
    APPROX_CEILING,
    EXACT_BASE,
    NUMBER_SCORE,
    PREFIX_BASE,
    FuzzyMatcher,
    fold_case,
    is_subsequence,
)


@pytest.fixture
def matcher():
    return FuzzyMatcher()


class TestTiers:
    """Test strategy priority"""

    def test_number_tier(self, matcher):
        result = matcher.match("12", "item 12: ok")
        assert result.score == NUMBER_SCORE
        assert result.indices == [5, 6]

    def test_number_beats_approximate(self, matcher):
        number = matcher.match("12", "item 12: ok")
        approximate = matcher.match("12", "1 x 2")
        assert approximate is not None
        assert number.score > approximate.score

    def test_exact_tier(self, matcher):
        result = matcher.match("build", "make build")
        assert result.score == EXACT_BASE + 5 * 10
        assert result.indices == [5, 6, 7, 8, 9]

    def test_prefix_strategy(self, matcher):
        result = matcher.prefix_match("mak", "make build")
        assert result.score == PREFIX_BASE + 3 * 8
        assert matcher.prefix_match("build", "make build") is None

    def test_approximate_below_positional_tiers(self, matcher):
        result = matcher.match("mkbld", "make build")
        assert 0 < result.score <= APPROX_CEILING
        assert result.score < PREFIX_BASE

    def test_no_match(self, matcher):
        assert matcher.match("xyz", "make build") is None

    def test_empty_pattern_matches_everything(self, matcher):
        assert matcher.match("", "anything").score == 0


class TestApproximate:
    """Test subsequence scoring"""

    def test_smart_case_insensitive_for_lowercase(self, matcher):
        assert matcher.fuzzy_match("mb", "Make Build") is not None

    def test_smart_case_sensitive_with_uppercase(self, matcher):
        assert matcher.fuzzy_match("MB", "make build") is None

    def test_compact_window_chosen(self, matcher):
        assert matcher.fuzzy_match("tst", "t-test").indices == [2, 4, 5]

    def test_contiguous_scores_higher(self, matcher):
        tight = matcher.fuzzy_match("abc", "xabcx")
        loose = matcher.fuzzy_match("abc", "xaxbxcx")
        assert tight.score > loose.score

    def test_case_folding_keeps_positions(self, matcher):
        assert fold_case("İstanbul") == "istanbul"
        result = matcher.match("ix", "İx")
        assert result.indices == [0, 1]

    def test_expanding_lowercase_inside_text(self, matcher):
        result = matcher.match("lsix", "ls İstanbul/x")
        assert result is not None
        assert result.indices[-1] == len("ls İstanbul/x") - 1


class TestMatchAndSort:
    """Test ranking of candidates"""

    def test_sorted_by_score(self, matcher):
        items = [("loose", "1 x 2"), ("number", "item 12: ok"), ("none", "abc")]
        ranked = matcher.match_and_sort("12", items)
        assert [item for item, _, _ in ranked] == ["number", "loose"]

    def test_ties_prefer_shorter_text(self, matcher):
        items = [("long", "xxab"), ("short", "xab")]
        ranked = matcher.match_and_sort("ab", items)
        assert [item for item, _, _ in ranked] == ["short", "long"]


class TestIsSubsequence:

    def test_in_order(self):
        assert is_subsequence("mkb", "make build")

    def test_out_of_order(self):
        assert not is_subsequence("bm", "make")

    def test_empty_needle(self):
        assert is_subsequence("", "anything")
