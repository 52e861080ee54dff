from __future__ import annotations

import logging

import pytest
from ledger_db.client import session_scope

from ledger_import import api
from ledger_import.categorize import CategoryMatcher
from ledger_import.models import MatchMethod
from ledger_import.settings import MatcherSettings
from ledger_import.store import CategoryStore

from tests.helpers.db import OTHER_OWNER_ID, OWNER_ID, seed_category

_NAME_SHAPES = ("STARBUCKS #{i}", "TESCO STORES {i}", "UNKNOWN VENDOR {i}", "UBER TRIP {i}")


def _names(n: int) -> list[str]:
    return [_NAME_SHAPES[i % len(_NAME_SHAPES)].format(i=i) for i in range(n)]


def test_match_merchant_pattern(db_url: str, categories: dict[str, str]):
    m = api.match_merchant(OWNER_ID, "STARBUCKS #4521", database_url=db_url)

    assert m is not None
    assert m.category_id == categories["Coffee"]
    assert m.category_name == "Coffee"
    assert m.method is MatchMethod.PATTERN
    assert 0 < m.confidence <= 1


@pytest.mark.parametrize("name", ["", "   ", None])
def test_match_merchant_blank_name(db_url: str, categories: dict[str, str], name):
    assert api.match_merchant(OWNER_ID, name, database_url=db_url) is None


def test_match_merchant_unknown(db_url: str, categories: dict[str, str]):
    assert api.match_merchant(OWNER_ID, "ZZQX HOLDINGS", database_url=db_url) is None


def test_owner_categories_are_private(db_url: str, categories: dict[str, str]):
    mine = api.match_merchant(OWNER_ID, "PETCO 0191", database_url=db_url)
    assert mine is not None and mine.category_id == categories["Pets"]

    assert api.match_merchant(OTHER_OWNER_ID, "PETCO 0191", database_url=db_url) is None


def test_inactive_categories_are_ignored(db_url: str):
    seed_category(database_url=db_url, name="Old Coffee", merchant_patterns=["starbucks"],
                  is_active=False)
    assert api.match_merchant(OWNER_ID, "STARBUCKS", database_url=db_url) is None


def test_equal_candidates_resolve_by_category_name(db_url: str):
    b = seed_category(database_url=db_url, name="B Cafe", merchant_patterns=["starbucks"])
    a = seed_category(database_url=db_url, name="A Cafe", merchant_patterns=["starbucks"])

    for _ in range(3):
        m = api.match_merchant(OWNER_ID, "STARBUCKS", database_url=db_url)
        assert m is not None and m.category_id == a
    assert b != a


@pytest.mark.parametrize("n", [0, 1, 50, 51])
def test_batch_results_do_not_depend_on_batch_size(
    db_url: str, categories: dict[str, str], n: int
):
    names = _names(n)
    with session_scope(database_url=db_url) as s:
        one = CategoryMatcher(CategoryStore(s), settings=MatcherSettings(batch_size=1))
        fifty = CategoryMatcher(CategoryStore(s), settings=MatcherSettings(batch_size=50))
        by_one = one.match_merchant_batch(OWNER_ID, names)
        by_fifty = fifty.match_merchant_batch(OWNER_ID, names)
        singles = {
            name: m for name in names if (m := one.match_merchant(OWNER_ID, name)) is not None
        }

    assert by_one == by_fifty == singles
    assert all(not name.startswith("UNKNOWN") for name in by_one)


def test_batch_skips_blank_and_repeated_names(db_url: str, categories: dict[str, str]):
    out = api.match_merchant_batch(
        OWNER_ID, ["", None, "  ", "STARBUCKS", "STARBUCKS", "UBER"], database_url=db_url
    )
    assert set(out) == {"STARBUCKS", "UBER"}
    assert out["UBER"].category_name == "Transport"


def test_batch_loads_categories_once(
    db_url: str, categories: dict[str, str], monkeypatch: pytest.MonkeyPatch
):
    calls = {"n": 0}
    real = CategoryStore.list_active_categories

    def counting(self, owner_id):
        calls["n"] += 1
        return real(self, owner_id)

    monkeypatch.setattr(CategoryStore, "list_active_categories", counting)

    out = api.match_merchant_batch(OWNER_ID, _names(120), database_url=db_url)

    assert calls["n"] == 1
    assert len(out) == 90


def test_batch_omits_names_that_fail(
    db_url: str, categories: dict[str, str], caplog: pytest.LogCaptureFixture
):
    caplog.set_level(logging.WARNING, logger="ledger_import")

    class _Flaky(CategoryMatcher):
        def match_with_rules(self, merchant_name, rules):
            if merchant_name == "TESCO EXPRESS":
                raise RuntimeError("bad rule")
            return super().match_with_rules(merchant_name, rules)

    with session_scope(database_url=db_url) as s:
        out = _Flaky(CategoryStore(s)).match_merchant_batch(
            OWNER_ID, ["STARBUCKS", "TESCO EXPRESS", "UBER"]
        )

    assert set(out) == {"STARBUCKS", "UBER"}
    assert any("name_failed" in r.getMessage() for r in caplog.records)


def test_matching_stats(db_url: str, categories: dict[str, str]):
    stats = api.get_matching_stats(OWNER_ID, "STARBUCKS TESCO", database_url=db_url)

    assert stats is not None
    assert stats.methods["pattern"].match_count == 2
    assert stats.methods["pattern"].best_category == "Coffee"
    assert api.get_matching_stats(OWNER_ID, "  ", database_url=db_url) is None
