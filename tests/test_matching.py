from __future__ import annotations

import pytest

from ledger_import.matching import (
    MatchHit,
    best_hit,
    find_best_match,
    matching_stats,
    score_fuzzy,
    score_keyword,
    score_pattern,
)
from ledger_import.models import CategoryRule, CategoryType, MatchMethod


def _rule(name: str, *, keywords=(), patterns=(), rid: str | None = None) -> CategoryRule:
    return CategoryRule(
        id=rid or f"id-{name.lower()}",
        name=name,
        category_type=CategoryType.EXPENSE,
        is_system=True,
        keywords=tuple(keywords),
        merchant_patterns=tuple(patterns),
    )


COFFEE = _rule("Coffee", patterns=["starbucks", "costa"])
GROCERIES = _rule("Groceries", keywords=["grocery"], patterns=["tesco", "safeway"])
TRANSPORT = _rule("Transport", keywords=["uber"])


def test_pattern_match_on_merchant_name():
    m = find_best_match("STARBUCKS #4521", [COFFEE, GROCERIES, TRANSPORT])

    assert m is not None
    assert m.category_name == "Coffee"
    assert m.method is MatchMethod.PATTERN
    assert m.matched_text == "STARBUCKS"
    assert 0 < m.confidence <= 1
    # 0.6 + 0.4 * 9/15
    assert m.confidence == pytest.approx(0.84)


@pytest.mark.parametrize("name", ["", "   "])
def test_empty_merchant_never_matches(name):
    assert find_best_match(name, [COFFEE, GROCERIES]) is None


def test_no_rules_no_match():
    assert find_best_match("STARBUCKS", []) is None


def test_keyword_cascade_prefers_case_sensitive_containment():
    exact = score_keyword("UBER TRIP", "UBER", fuzzy_threshold=80)
    folded = score_keyword("UBER TRIP", "uber", fuzzy_threshold=80)

    assert exact is not None and exact[0] is MatchMethod.EXACT
    assert folded is not None and folded[0] is MatchMethod.KEYWORD
    assert folded[1] == "UBER"
    assert exact[2] > folded[2]


def test_whole_name_equality_scores_highest():
    assert score_keyword("Uber", "Uber", fuzzy_threshold=80) == (MatchMethod.EXACT, "Uber", 1.0)
    assert score_keyword("UBER", "uber", fuzzy_threshold=80) == (
        MatchMethod.KEYWORD,
        "UBER",
        0.95,
    )


def test_fuzzy_tolerates_misspelling():
    res = score_fuzzy("WALMRT SUPERCENTER", "walmart", fuzzy_threshold=80)

    assert res is not None
    method, _span, confidence = res
    assert method is MatchMethod.FUZZY
    assert 0.6 <= confidence <= 0.75


def test_fuzzy_span_keeps_merchant_casing():
    res = score_fuzzy("Walmrt Supercenter", "walmart", fuzzy_threshold=80)

    assert res is not None
    _method, span, _confidence = res
    assert span.startswith("Walmr")
    assert span in "Walmrt Supercenter"


def test_merchant_inside_longer_keyword_is_a_weaker_keyword_match():
    res = score_keyword("Starbuck", "starbucks coffee", fuzzy_threshold=80)

    assert res is not None
    method, span, confidence = res
    assert method is MatchMethod.KEYWORD
    assert span == "Starbuck"
    # 0.8 * 8/16
    assert confidence == pytest.approx(0.4)


@pytest.mark.parametrize("merchant", ["Cof", "co"])
def test_short_fragments_of_keywords_and_names_do_not_match(merchant):
    assert score_keyword(merchant, "coffee", fuzzy_threshold=80) is None
    assert find_best_match(merchant, [_rule("Coffee", keywords=["coffee shop"])]) is None


def test_fuzzy_ignores_very_short_terms():
    assert score_keyword("BQ STATION", "bp", fuzzy_threshold=80) is None


def test_fuzzy_respects_threshold():
    assert score_fuzzy("WALMRT SUPERCENTER", "walmart", fuzzy_threshold=99) is None


def test_invalid_regex_is_matched_literally():
    res = score_pattern("(COSTA) HOUSE", "(costa")
    assert res is not None
    assert res[0] is MatchMethod.PATTERN
    assert res[1] == "(COSTA"


def test_regex_patterns_are_case_insensitive():
    res = score_pattern("McDonalds 42", "mcdonald'?s")
    assert res is not None and res[1] == "McDonalds"


def test_confidence_is_bounded():
    rules = [
        _rule("Exact", keywords=["COSTA"]),
        _rule("Folded", keywords=["costa"]),
        _rule("Pattern", patterns=["^costa$"]),
    ]
    for rule in rules:
        m = find_best_match("COSTA", [rule])
        assert m is not None
        assert 0 < m.confidence <= 1


def test_min_confidence_filters_weak_matches():
    assert find_best_match("STARBUCKS #4521", [COFFEE], min_confidence=0.99) is None


def _hit(rule, method, text, confidence, position=0) -> MatchHit:
    return MatchHit(position, rule, method, text, confidence)


def test_tie_break_prefers_higher_confidence_first():
    a = _hit(COFFEE, MatchMethod.FUZZY, "STARBUCKS COFFEE", 0.70)
    b = _hit(GROCERIES, MatchMethod.KEYWORD, "TESCO", 0.71, position=1)
    assert best_hit([a, b]) is b


def test_tie_break_prefers_longer_span_on_equal_confidence():
    a = _hit(COFFEE, MatchMethod.PATTERN, "STAR", 0.8)
    b = _hit(GROCERIES, MatchMethod.FUZZY, "STARBUCKS", 0.8, position=1)
    assert best_hit([a, b]) is b


def test_tie_break_uses_method_rank_then_category_order():
    pattern = _hit(GROCERIES, MatchMethod.PATTERN, "TESCO", 0.8, position=1)
    keyword = _hit(COFFEE, MatchMethod.KEYWORD, "COSTA", 0.8, position=0)
    assert best_hit([keyword, pattern]) is pattern

    first = _hit(COFFEE, MatchMethod.PATTERN, "COSTA", 0.8, position=0)
    second = _hit(GROCERIES, MatchMethod.PATTERN, "TESCO", 0.8, position=1)
    assert best_hit([second, first]) is first


def test_tie_break_ignores_float_noise():
    a = _hit(COFFEE, MatchMethod.PATTERN, "STAR", 0.8 + 1e-12)
    b = _hit(GROCERIES, MatchMethod.PATTERN, "STARBUCKS", 0.8, position=1)
    assert best_hit([a, b]) is b


def test_identical_rules_resolve_by_snapshot_order():
    a = _rule("Coffee A", patterns=["starbucks"])
    b = _rule("Coffee B", patterns=["starbucks"])

    assert find_best_match("STARBUCKS", [a, b]).category_name == "Coffee A"
    assert find_best_match("STARBUCKS", [b, a]).category_name == "Coffee B"


def test_repeated_calls_are_deterministic():
    rules = [COFFEE, GROCERIES, TRANSPORT]
    first = find_best_match("TESCO EXPRESS UBER", rules)
    for _ in range(5):
        assert find_best_match("TESCO EXPRESS UBER", rules) == first


def test_matching_stats_groups_hits_by_method():
    stats = matching_stats("STARBUCKS TESCO", [COFFEE, GROCERIES])

    assert stats.merchant_name == "STARBUCKS TESCO"
    pattern = stats.methods["pattern"]
    assert pattern.match_count == 2
    assert pattern.best_category == "Coffee"
    assert "exact" not in stats.methods


def test_matching_stats_without_hits_is_empty():
    assert matching_stats("ZZQX HOLDINGS", [COFFEE]).methods == {}
