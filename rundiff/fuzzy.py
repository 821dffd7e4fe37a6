"""
Fuzzy Matcher - Tiered scoring of candidate strings against a typed pattern
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Tuple, TypeVar

T = TypeVar("T")

NUMBER_SCORE = 1200
EXACT_BASE, EXACT_PER_CHAR = 1000, 10
PREFIX_BASE, PREFIX_PER_CHAR = 800, 8

# Approximate scores stay below every positional tier.
APPROX_CEILING = PREFIX_BASE - 1

SCORE_MATCH = 16
BONUS_FIRST_CHAR = 8
BONUS_BOUNDARY = 8
BONUS_CAMEL = 7
BONUS_CONSECUTIVE = 4
PENALTY_GAP_START = 3
PENALTY_GAP_EXTENSION = 1

_SEPARATORS = set(" /\\_-.:|,;=@'\"")


def fold_case(text: str) -> str:
    """Lower-case one code point per character so positions still index ``text``."""
    return "".join(ch.lower()[:1] for ch in text)


@dataclass
class MatchResult:
    """Score and matched character positions of one candidate."""
    score: int
    indices: List[int] = field(default_factory=list)


class FuzzyMatcher:
    """
    fzf/skim style matcher.

    Strategies are tried by priority, and each tier scores strictly higher
    than the next:
    - number match (all-digit pattern found in text)
    - exact substring
    - prefix
    - approximate subsequence match
    """

    def number_match(self, pattern: str, text: str) -> Optional[MatchResult]:
        if not pattern.isdigit() or not pattern.isascii():
            return None
        pos = text.find(pattern)
        if pos < 0:
            return None
        return MatchResult(NUMBER_SCORE, list(range(pos, pos + len(pattern))))

    def exact_match(self, pattern: str, text: str) -> Optional[MatchResult]:
        pos = text.find(pattern)
        if pos < 0:
            return None
        score = EXACT_BASE + len(pattern) * EXACT_PER_CHAR
        return MatchResult(score, list(range(pos, pos + len(pattern))))

    def prefix_match(self, pattern: str, text: str) -> Optional[MatchResult]:
        if not text.startswith(pattern):
            return None
        score = PREFIX_BASE + len(pattern) * PREFIX_PER_CHAR
        return MatchResult(score, list(range(len(pattern))))

    def fuzzy_match(self, pattern: str, text: str) -> Optional[MatchResult]:
        """
        Subsequence match with smart case.

        The earliest complete occurrence is found scanning forward, then
        tightened by scanning backward from its end, so ``tst`` in
        ``t-test`` scores the compact ``test`` window rather than the
        leading ``t``.
        """
        if not pattern:
            return MatchResult(0)

        case_sensitive = pattern != pattern.lower()
        pat = pattern if case_sensitive else pattern.lower()
        hay = text if case_sensitive else fold_case(text)

        end = self._forward_end(pat, hay)
        if end < 0:
            return None
        start = self._backward_start(pat, hay, end)

        indices: List[int] = []
        score = 0
        pi = 0
        prev = -1
        for i in range(start, end + 1):
            if pi == len(pat):
                break
            if hay[i] != pat[pi]:
                continue
            score += SCORE_MATCH + self._position_bonus(text, i)
            if prev >= 0:
                gap = i - prev - 1
                if gap == 0:
                    score += BONUS_CONSECUTIVE
                else:
                    score -= PENALTY_GAP_START + PENALTY_GAP_EXTENSION * (gap - 1)
            indices.append(i)
            prev = i
            pi += 1

        return MatchResult(max(1, min(score, APPROX_CEILING)), indices)

    def match(self, pattern: str, text: str) -> Optional[MatchResult]:
        """Comprehensive match: try each strategy by priority."""
        if not pattern:
            # Empty pattern matches all content
            return MatchResult(0)

        for strategy in (self.number_match, self.exact_match, self.prefix_match):
            result = strategy(pattern, text)
            if result is not None:
                return result

        return self.fuzzy_match(pattern, text)

    def match_and_sort(
        self, pattern: str, items: Iterable[Tuple[T, str]]
    ) -> List[Tuple[T, str, MatchResult]]:
        """
        Keep matching items, best first.

        Equal scores prefer the shorter text.
        """
        results = []
        for item, text in items:
            result = self.match(pattern, text)
            if result is not None:
                results.append((item, text, result))

        results.sort(key=lambda r: (-r[2].score, len(r[1])))
        return results

    @staticmethod
    def _forward_end(pat: str, hay: str) -> int:
        pi = 0
        for i, ch in enumerate(hay):
            if ch == pat[pi]:
                pi += 1
                if pi == len(pat):
                    return i
        return -1

    @staticmethod
    def _backward_start(pat: str, hay: str, end: int) -> int:
        pi = len(pat) - 1
        for i in range(end, -1, -1):
            if hay[i] == pat[pi]:
                pi -= 1
                if pi < 0:
                    return i
        return 0

    @staticmethod
    def _position_bonus(text: str, i: int) -> int:
        if i == 0:
            return BONUS_FIRST_CHAR
        prev, cur = text[i - 1], text[i]
        if prev in _SEPARATORS:
            return BONUS_BOUNDARY
        if prev.islower() and cur.isupper():
            return BONUS_CAMEL
        if not prev.isdigit() and cur.isdigit():
            return BONUS_CAMEL
        return 0


def is_subsequence(needle: str, haystack: str) -> bool:
    """True when every character of ``needle`` appears in ``haystack`` in order."""
    it = iter(haystack)
    return all(ch in it for ch in needle)
