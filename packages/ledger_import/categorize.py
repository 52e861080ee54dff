"""Category matching service.

``CategoryMatcher`` loads the owner's active categories from a
``CategoryStore`` and scores merchant names with ``ledger_import.matching``.

- ``match_merchant``: best single match or ``None``.
- ``match_merchant_batch``: one category snapshot for many names, processed
  in ``batch_size`` slices; names that fail or do not match are omitted.
- ``get_matching_stats``: per-method diagnostics for one name.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .logging_setup import get_logger
from .matching import find_best_match, matching_stats
from .models import CategoryMatch, CategoryRule, MatchingStats
from .settings import MatcherSettings
from .store import CategoryStore

_logger = get_logger("ledger_import.categorize")


def _batched(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class CategoryMatcher:
    def __init__(
        self, categories: CategoryStore, *, settings: MatcherSettings | None = None
    ) -> None:
        self.categories = categories
        self.settings = settings or MatcherSettings()

    def load_rules(self, owner_id: str) -> list[CategoryRule]:
        return self.categories.list_active_categories(owner_id)

    def match_merchant(self, owner_id: str, merchant_name: str | None) -> CategoryMatch | None:
        if not merchant_name or not merchant_name.strip():
            return None
        return self.match_with_rules(merchant_name, self.load_rules(owner_id))

    def match_with_rules(
        self, merchant_name: str, rules: Sequence[CategoryRule]
    ) -> CategoryMatch | None:
        return find_best_match(
            merchant_name,
            rules,
            fuzzy_threshold=self.settings.fuzzy_threshold,
            min_confidence=self.settings.min_confidence,
        )

    def match_merchant_batch(
        self, owner_id: str, merchant_names: Iterable[str | None]
    ) -> dict[str, CategoryMatch]:
        """Match many names against a single category snapshot.

        Duplicate names are matched once. A failure on one name is logged and
        that name is left out of the result.
        """

        names = list(dict.fromkeys(n for n in merchant_names if n and n.strip()))
        if not names:
            return {}

        rules = self.load_rules(owner_id)
        out: dict[str, CategoryMatch] = {}
        failures = 0
        for batch_no, batch in enumerate(_batched(names, self.settings.batch_size)):
            for name in batch:
                try:
                    match = self.match_with_rules(name, rules)
                except Exception as exc:  # noqa: BLE001
                    failures += 1
                    _logger.warning(
                        "match_batch:name_failed owner=%s name=%r error=%s", owner_id, name, exc
                    )
                    continue
                if match is not None:
                    out[name] = match
            _logger.debug(
                "match_batch:slice owner=%s batch=%d size=%d", owner_id, batch_no, len(batch)
            )

        _logger.info(
            "match_batch:done owner=%s names=%d matched=%d failed=%d",
            owner_id,
            len(names),
            len(out),
            failures,
        )
        return out

    def get_matching_stats(self, owner_id: str, merchant_name: str | None) -> MatchingStats | None:
        if not merchant_name or not merchant_name.strip():
            return None
        return self.stats_with_rules(merchant_name, self.load_rules(owner_id))

    def stats_with_rules(self, merchant_name: str, rules: Sequence[CategoryRule]) -> MatchingStats:
        return matching_stats(merchant_name, rules, fuzzy_threshold=self.settings.fuzzy_threshold)


__all__ = ["CategoryMatcher"]
