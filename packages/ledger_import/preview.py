"""Read-only categorization previews.

``PreviewService`` runs the category matcher over a proposed batch without
writing anything, so a caller can review suggestions before ``run_import``.
It also analyses lists of free-text descriptions for tuning.
"""

from __future__ import annotations

import dataclasses
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime

from .categorize import CategoryMatcher
from .errors import ValidationError
from .logging_setup import get_logger
from .models import (
    CandidateInput,
    CategorizationAnalysis,
    CategoryMatch,
    DescriptionAnalysis,
    MatchingStats,
    NormalizedRecord,
    PreviewResult,
    TransactionPreview,
)
from .normalizer import normalize_candidate
from .settings import ImportSettings

_logger = get_logger("ledger_import.preview")


def _rate(part: int, whole: int) -> float:
    return part / whole if whole else 0.0


class PreviewService:
    def __init__(
        self,
        matcher: CategoryMatcher,
        *,
        settings: ImportSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.matcher = matcher
        self.settings = settings or ImportSettings()
        self._clock = clock or (lambda: datetime.now(UTC))

    def preview(self, owner_id: str, candidates: Sequence[CandidateInput]) -> PreviewResult:
        """Suggest a category for each candidate; nothing is persisted.

        Candidates that fail validation are reported with their error and are
        never counted as categorized. Candidates that already carry a category
        keep it and are not matched.
        """

        total = len(candidates)
        if total == 0:
            return PreviewResult(total=0, will_be_categorized=0, success_rate=0.0)

        now = self._clock()
        records: list[NormalizedRecord | ValidationError] = []
        for idx, candidate in enumerate(candidates):
            try:
                records.append(normalize_candidate(candidate, owner_id, index=idx, now=now))
            except ValidationError as exc:
                records.append(exc)

        wanted = [
            r.search_text for r in records if isinstance(r, NormalizedRecord) and not r.category_id
        ]
        matches = self.matcher.match_merchant_batch(owner_id, wanted) if wanted else {}

        threshold = self.settings.auto_categorize_threshold
        previews: list[TransactionPreview] = []
        for idx, (candidate, rec) in enumerate(zip(candidates, records, strict=True)):
            if isinstance(rec, ValidationError):
                previews.append(_invalid_preview(idx, candidate, rec))
                continue
            if rec.category_id:
                previews.append(
                    TransactionPreview(
                        index=idx,
                        description=rec.description,
                        merchant_name=rec.merchant_name,
                        original_category_id=rec.category_id,
                    )
                )
                continue
            match = matches.get(rec.search_text)
            previews.append(_match_preview(rec, match, threshold))

        categorized = sum(1 for p in previews if p.will_be_categorized)
        result = PreviewResult(
            total=total,
            will_be_categorized=categorized,
            success_rate=_rate(categorized, total),
            previews=tuple(previews),
        )
        _logger.info(
            "preview:done owner=%s total=%d categorized=%d rate=%.2f",
            owner_id,
            total,
            categorized,
            result.success_rate,
        )
        return result

    def analyze(self, owner_id: str, descriptions: Sequence[str]) -> CategorizationAnalysis:
        """Match and explain each description against one category snapshot."""

        total = len(descriptions)
        rules = self.matcher.load_rules(owner_id) if total else []
        results: list[DescriptionAnalysis] = []
        method_counts: Counter[str] = Counter()
        for text in descriptions:
            if not text or not text.strip():
                continue
            match = self.matcher.match_with_rules(text, rules)
            stats = self.matcher.stats_with_rules(text, rules)
            results.append(DescriptionAnalysis(description=text, match=match, stats=stats))
            if match is not None:
                method_counts[match.method.value] += 1

        successful = sum(method_counts.values())
        return CategorizationAnalysis(
            total=total,
            successful=successful,
            success_rate=_rate(successful, total),
            results=tuple(results),
            method_counts=dict(method_counts),
        )

    def explain(
        self, owner_id: str, merchant_name: str
    ) -> tuple[TransactionPreview, MatchingStats | None]:
        """Single-name preview plus its per-method stats."""

        rules = self.matcher.load_rules(owner_id)
        text = merchant_name.strip()
        match = self.matcher.match_with_rules(text, rules) if text else None
        stats = self.matcher.stats_with_rules(text, rules) if text else None
        preview = TransactionPreview(
            index=0, description=merchant_name, merchant_name=merchant_name
        )
        if match is not None:
            preview = _with_match(preview, match, self.settings.auto_categorize_threshold)
        return preview, stats


def _invalid_preview(
    idx: int, candidate: CandidateInput, exc: ValidationError
) -> TransactionPreview:
    if isinstance(candidate, Mapping):
        description = str(candidate.get("description") or "")
        merchant = candidate.get("merchant_name")
    else:
        description = str(getattr(candidate, "description", "") or "")
        merchant = getattr(candidate, "merchant_name", None)
    return TransactionPreview(
        index=idx,
        description=description,
        merchant_name=merchant,
        error=str(exc),
    )


def _match_preview(
    rec: NormalizedRecord, match: CategoryMatch | None, threshold: float
) -> TransactionPreview:
    base = TransactionPreview(
        index=rec.index, description=rec.description, merchant_name=rec.merchant_name
    )
    if match is None:
        return base
    return _with_match(base, match, threshold)


def _with_match(
    preview: TransactionPreview, match: CategoryMatch, threshold: float
) -> TransactionPreview:
    return dataclasses.replace(
        preview,
        suggested_category_id=match.category_id,
        suggested_category_name=match.category_name,
        confidence=match.confidence,
        method=match.method,
        will_be_categorized=match.confidence >= threshold,
    )


__all__ = ["PreviewService"]
