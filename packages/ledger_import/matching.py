"""Merchant-name scoring against category keywords and patterns.

Pure functions over ``CategoryRule`` snapshots; no database access.

Scoring (``coverage`` = matched span length / merchant length):

- ``exact``: keyword is a case-sensitive substring. 1.0 on equality, else
  ``min(0.95, 0.55 + 0.45 * coverage)``.
- ``keyword``: case-insensitive containment. 0.95 on equality, else
  ``min(0.9, 0.45 + 0.45 * coverage)``. A merchant name of 4+ characters
  found inside a longer keyword scores ``min(0.9, 0.8 * len(merchant) /
  len(keyword))``; shorter fragments never match that keyword.
- ``pattern``: case-insensitive regex search (invalid regexes are matched
  literally). ``min(1.0, 0.6 + 0.4 * coverage)``.
- ``fuzzy``: rapidfuzz partial-ratio alignment at or above the threshold.
  ``0.75 * ratio / 100``.

Keywords cascade exact -> keyword -> reverse keyword -> fuzzy and keep the
first method that fires. Patterns use ``pattern``. The category name is only
compared fuzzily.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from functools import lru_cache

from rapidfuzz import fuzz

from .models import CategoryMatch, CategoryRule, MatchingStats, MatchMethod, MethodStats

# Lower rank wins a tie on confidence and span length.
METHOD_RANK: dict[MatchMethod, int] = {
    MatchMethod.EXACT: 0,
    MatchMethod.PATTERN: 1,
    MatchMethod.KEYWORD: 2,
    MatchMethod.FUZZY: 3,
}

# Shorter terms produce too many accidental partial alignments.
_FUZZY_MIN_TERM_LEN = 3
# Shorter merchant names never match fuzzily or as a keyword fragment.
_MIN_FRAGMENT_LEN = 4


@dataclass(frozen=True, slots=True)
class MatchHit:
    position: int
    rule: CategoryRule
    method: MatchMethod
    matched_text: str
    confidence: float

    def sort_key(self) -> tuple[float, int, int, int]:
        return (
            -round(self.confidence, 6),
            -len(self.matched_text),
            METHOD_RANK[self.method],
            self.position,
        )

    def to_match(self) -> CategoryMatch:
        return CategoryMatch(
            category_id=self.rule.id,
            category_name=self.rule.name,
            category_type=self.rule.category_type,
            matched_text=self.matched_text,
            confidence=round(self.confidence, 4),
            method=self.method,
        )


@lru_cache(maxsize=1024)
def _compile(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error:
        return re.compile(re.escape(pattern), re.IGNORECASE)


def _coverage(span: str, merchant: str) -> float:
    return min(1.0, len(span) / len(merchant)) if merchant else 0.0


def score_keyword(
    merchant: str, keyword: str, *, fuzzy_threshold: float
) -> tuple[MatchMethod, str, float] | None:
    """Best method for one keyword: ``(method, matched_text, confidence)``."""

    kw = keyword.strip()
    if not kw:
        return None
    if kw in merchant:
        if kw == merchant:
            return MatchMethod.EXACT, kw, 1.0
        return MatchMethod.EXACT, kw, min(0.95, 0.55 + 0.45 * _coverage(kw, merchant))

    folded = merchant.casefold()
    kw_folded = kw.casefold()
    start = folded.find(kw_folded)
    if start >= 0:
        if kw_folded == folded:
            return MatchMethod.KEYWORD, merchant, 0.95
        span = merchant[start : start + len(kw)] if len(folded) == len(merchant) else kw
        return MatchMethod.KEYWORD, span, min(0.9, 0.45 + 0.45 * _coverage(span, merchant))

    if folded in kw_folded:
        # Merchant is a fragment of a longer keyword.
        if len(folded) < _MIN_FRAGMENT_LEN:
            return None
        return MatchMethod.KEYWORD, merchant, min(0.9, 0.8 * len(folded) / len(kw_folded))

    return score_fuzzy(merchant, kw, fuzzy_threshold=fuzzy_threshold)


def score_fuzzy(
    merchant: str, term: str, *, fuzzy_threshold: float
) -> tuple[MatchMethod, str, float] | None:
    term_folded = term.strip().casefold()
    if len(term_folded) < _FUZZY_MIN_TERM_LEN:
        return None
    folded = merchant.casefold()
    if len(folded) < _MIN_FRAGMENT_LEN:
        return None
    alignment = fuzz.partial_ratio_alignment(term_folded, folded, score_cutoff=fuzzy_threshold)
    if alignment is None or alignment.score < fuzzy_threshold:
        return None
    source = merchant if len(folded) == len(merchant) else folded
    span = source[alignment.dest_start : alignment.dest_end] or term_folded
    return MatchMethod.FUZZY, span, 0.75 * alignment.score / 100.0


def score_pattern(merchant: str, pattern: str) -> tuple[MatchMethod, str, float] | None:
    m = _compile(pattern).search(merchant)
    if m is None or not m.group(0):
        return None
    span = m.group(0)
    return MatchMethod.PATTERN, span, min(1.0, 0.6 + 0.4 * _coverage(span, merchant))


def collect_hits(
    merchant_name: str, rules: Sequence[CategoryRule], *, fuzzy_threshold: float
) -> list[MatchHit]:
    """Every (category, term) hit for ``merchant_name``, unordered."""

    merchant = merchant_name.strip()
    if not merchant:
        return []
    hits: list[MatchHit] = []
    for position, rule in enumerate(rules):
        scored: list[tuple[MatchMethod, str, float] | None] = []
        scored.extend(
            score_keyword(merchant, kw, fuzzy_threshold=fuzzy_threshold) for kw in rule.keywords
        )
        scored.extend(score_pattern(merchant, p) for p in rule.merchant_patterns)
        scored.append(score_fuzzy(merchant, rule.name, fuzzy_threshold=fuzzy_threshold))
        for res in scored:
            if res is None:
                continue
            method, span, confidence = res
            hits.append(MatchHit(position, rule, method, span, confidence))
    return hits


def best_hit(hits: Iterable[MatchHit]) -> MatchHit | None:
    """Highest confidence, then longest span, then method rank, then category order."""

    return min(hits, key=MatchHit.sort_key, default=None)


def find_best_match(
    merchant_name: str,
    rules: Sequence[CategoryRule],
    *,
    fuzzy_threshold: float = 80.0,
    min_confidence: float = 0.1,
) -> CategoryMatch | None:
    hit = best_hit(collect_hits(merchant_name, rules, fuzzy_threshold=fuzzy_threshold))
    if hit is None or hit.confidence < min_confidence:
        return None
    return hit.to_match()


def matching_stats(
    merchant_name: str, rules: Sequence[CategoryRule], *, fuzzy_threshold: float = 80.0
) -> MatchingStats:
    hits = collect_hits(merchant_name, rules, fuzzy_threshold=fuzzy_threshold)
    methods: dict[str, MethodStats] = {}
    for method in MatchMethod:
        of_method = [h for h in hits if h.method is method]
        top = best_hit(of_method)
        if top is None:
            continue
        methods[method.value] = MethodStats(
            best_score=round(top.confidence, 4),
            match_count=len(of_method),
            best_category=top.rule.name,
        )
    return MatchingStats(merchant_name=merchant_name, methods=methods)


__all__ = [
    "METHOD_RANK",
    "MatchHit",
    "best_hit",
    "collect_hits",
    "find_best_match",
    "matching_stats",
    "score_fuzzy",
    "score_keyword",
    "score_pattern",
]
