"""Batch import of statement candidates into the ledger.

``BatchImporter.run`` never raises for a bad row. Validation failures,
duplicates, and per-row constraint violations are counted as skipped and
described in ``ImportResult``. Only failures that affect the whole batch
propagate: ``TransientStorageFailure`` and a failed identifier lookup.

Rows are written one at a time (one SAVEPOINT each); the caller owns the
enclosing transaction and commits it.
"""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime

from .categorize import CategoryMatcher
from .duplicates import DuplicateDetector
from .errors import ConstraintKind, StorageConstraintViolation, ValidationError
from .logging_setup import get_logger
from .models import CandidateInput, CandidateRecord, ImportResult, NormalizedRecord
from .normalizer import normalize_candidate
from .settings import ImportSettings
from .store import LedgerStore

_logger = get_logger("ledger_import.importer")


def _describe(record: NormalizedRecord) -> str:
    if record.external_id:
        return f"{record.description} (FitID: {record.external_id})"
    return record.description


def describe_violation(record: NormalizedRecord, exc: StorageConstraintViolation) -> str:
    """Human-readable message for a row rejected by the store."""

    label = _describe(record)
    if exc.kind is ConstraintKind.DUPLICATE_KEY:
        return f"Duplicate transaction: {label}"
    if exc.kind is ConstraintKind.FOREIGN_KEY:
        if exc.reference == "account":
            return f"Invalid account for transaction: {label}"
        if exc.reference == "category":
            return f"Invalid category for transaction: {label}"
        return f"Foreign key constraint violation for transaction: {label}"
    if exc.kind is ConstraintKind.MISSING_FIELD:
        return f"Missing required field for transaction: {label}"
    if exc.kind is ConstraintKind.CHECK:
        return f"Data validation error for transaction: {label}"
    return f"Database error for transaction: {label}: {exc.detail or exc}"


def _candidate_description(candidate: CandidateInput) -> str:
    if isinstance(candidate, CandidateRecord):
        raw = candidate.description
    elif isinstance(candidate, Mapping):
        raw = candidate.get("description")
    else:
        raw = None
    return str(raw).strip() if raw is not None else ""


class BatchImporter:
    def __init__(
        self,
        ledger: LedgerStore,
        *,
        matcher: CategoryMatcher | None = None,
        settings: ImportSettings | None = None,
        detector: DuplicateDetector | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ledger = ledger
        self.matcher = matcher
        self.settings = settings or ImportSettings()
        self.detector = detector or DuplicateDetector(ledger)
        self._clock = clock or (lambda: datetime.now(UTC))

    def run(
        self,
        owner_id: str,
        candidates: Sequence[CandidateInput],
        *,
        cancel: threading.Event | None = None,
    ) -> ImportResult:
        total = len(candidates)
        if total == 0:
            return ImportResult()

        now = self._clock()
        errors: list[str] = []
        valid: list[NormalizedRecord] = []
        for idx, candidate in enumerate(candidates):
            try:
                valid.append(normalize_candidate(candidate, owner_id, index=idx, now=now))
            except ValidationError as exc:
                desc = _candidate_description(candidate)
                errors.append(f"Transaction {idx} ({desc!r}): {exc}")
                _logger.info(
                    "run_import:invalid owner=%s index=%d field=%s", owner_id, idx, exc.field
                )

        report = self.detector.partition(owner_id, valid)
        pending = self._auto_categorize(owner_id, report.to_insert)

        created_ids: list[str] = []
        categorized = 0
        cancelled = False
        attempted = 0
        for record in pending:
            if cancel is not None and cancel.is_set():
                cancelled = True
                _logger.warning(
                    "run_import:cancelled owner=%s attempted=%d remaining=%d",
                    owner_id,
                    attempted,
                    len(pending) - attempted,
                )
                break
            attempted += 1
            try:
                new_id = self.ledger.insert_transaction(record)
            except StorageConstraintViolation as exc:
                errors.append(describe_violation(record, exc))
                _logger.info(
                    "run_import:rejected owner=%s index=%d kind=%s reference=%s",
                    owner_id,
                    record.index,
                    exc.kind.value,
                    exc.reference,
                )
                continue
            created_ids.append(new_id)
            if record.category_source == "rule":
                categorized += 1

        created = len(created_ids)
        skipped = total - created - (len(pending) - attempted)
        result = ImportResult(
            total=total,
            created=created,
            skipped=skipped,
            created_ids=tuple(created_ids),
            duplicates=report.markers,
            errors=tuple(errors),
            categorized=categorized,
            cancelled=cancelled,
        )
        _logger.info(
            "run_import:done owner=%s total=%d created=%d skipped=%d duplicates=%d "
            "errors=%d categorized=%d cancelled=%s",
            owner_id,
            result.total,
            result.created,
            result.skipped,
            len(result.duplicates),
            len(result.errors),
            result.categorized,
            result.cancelled,
        )
        return result

    def _auto_categorize(
        self, owner_id: str, records: Sequence[NormalizedRecord]
    ) -> list[NormalizedRecord]:
        """Attach matcher suggestions to uncategorized records; best effort."""

        out = list(records)
        if self.matcher is None or not self.settings.auto_categorize:
            return out
        wanted = [r.search_text for r in out if r.category_id is None]
        if not wanted:
            return out
        try:
            matches = self.matcher.match_merchant_batch(owner_id, wanted)
        except Exception as exc:  # noqa: BLE001
            _logger.warning("run_import:categorize_failed owner=%s error=%s", owner_id, exc)
            return out

        threshold = self.settings.auto_categorize_threshold
        for i, record in enumerate(out):
            if record.category_id is not None:
                continue
            match = matches.get(record.search_text)
            if match is None or match.confidence < threshold:
                continue
            out[i] = dataclasses.replace(
                record,
                category_id=match.category_id,
                category_source="rule",
                category_confidence=match.confidence,
            )
        return out


__all__ = ["BatchImporter", "describe_violation"]
