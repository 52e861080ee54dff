"""Public API for the ``ledger_import`` package.

Each function opens its own database session (``database_url`` falls back to
``DATABASE_URL``). Imports commit on success and roll back on a raised error;
previews and matching never write.

Callers that manage their own ``Session`` can use the service classes
directly: ``BatchImporter``, ``PreviewService``, ``CategoryMatcher``.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence

from ledger_db.client import get_session, session_scope
from sqlalchemy.orm import Session

from .categorize import CategoryMatcher
from .fanout import run_per_owner
from .importer import BatchImporter
from .logging_setup import get_logger, log_elapsed
from .models import (
    CandidateInput,
    CategorizationAnalysis,
    CategoryMatch,
    ImportResult,
    MatchingStats,
    PreviewResult,
)
from .preview import PreviewService
from .settings import ImportSettings
from .store import CategoryStore, LedgerStore

_logger = get_logger("ledger_import.api")


def _settings(settings: ImportSettings | None) -> ImportSettings:
    return settings if settings is not None else ImportSettings.from_env()


def _matcher(session: Session, settings: ImportSettings) -> CategoryMatcher:
    return CategoryMatcher(CategoryStore(session), settings=settings.matcher)


def run_import(
    owner_id: str,
    candidates: Sequence[CandidateInput],
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
    cancel: threading.Event | None = None,
) -> ImportResult:
    """Import ``candidates`` into ``owner_id``'s ledger and commit.

    Per-record problems are reported in the returned ``ImportResult``. Rows
    written before a cancellation are committed.
    """

    cfg = _settings(settings)
    with (
        log_elapsed(_logger, "run_import", owner=owner_id, candidates=len(candidates)),
        session_scope(database_url=database_url) as session,
    ):
        importer = BatchImporter(
            LedgerStore(session), matcher=_matcher(session, cfg), settings=cfg
        )
        return importer.run(str(owner_id), candidates, cancel=cancel)


def run_imports(
    jobs: Mapping[str, Sequence[CandidateInput]],
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
    concurrency: int | None = None,
    stop_on_error: bool = True,
) -> dict[str, ImportResult]:
    """Import batches for several owners concurrently, one session per owner."""

    cfg = _settings(settings)
    workers = concurrency if concurrency is not None else cfg.max_workers

    def _one(owner_id: str, candidates: Sequence[CandidateInput]) -> ImportResult:
        return run_import(owner_id, candidates, database_url=database_url, settings=cfg)

    _logger.info("run_imports:start owners=%d concurrency=%d", len(jobs), workers)
    with log_elapsed(_logger, "run_imports", owners=len(jobs)):
        return run_per_owner(jobs, _one, concurrency=workers, stop_on_error=stop_on_error)


def preview_import(
    owner_id: str,
    candidates: Sequence[CandidateInput],
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> PreviewResult:
    cfg = _settings(settings)
    session = get_session(database_url=database_url)
    try:
        with log_elapsed(_logger, "preview_import", owner=owner_id, candidates=len(candidates)):
            return PreviewService(_matcher(session, cfg), settings=cfg).preview(
                str(owner_id), candidates
            )
    finally:
        session.close()


def match_merchant(
    owner_id: str,
    merchant_name: str | None,
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> CategoryMatch | None:
    cfg = _settings(settings)
    session = get_session(database_url=database_url)
    try:
        return _matcher(session, cfg).match_merchant(str(owner_id), merchant_name)
    finally:
        session.close()


def match_merchant_batch(
    owner_id: str,
    merchant_names: Iterable[str | None],
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> dict[str, CategoryMatch]:
    cfg = _settings(settings)
    session = get_session(database_url=database_url)
    try:
        return _matcher(session, cfg).match_merchant_batch(str(owner_id), merchant_names)
    finally:
        session.close()


def get_matching_stats(
    owner_id: str,
    merchant_name: str | None,
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> MatchingStats | None:
    cfg = _settings(settings)
    session = get_session(database_url=database_url)
    try:
        return _matcher(session, cfg).get_matching_stats(str(owner_id), merchant_name)
    finally:
        session.close()


def analyze_categorization(
    owner_id: str,
    descriptions: Sequence[str],
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> CategorizationAnalysis:
    cfg = _settings(settings)
    session = get_session(database_url=database_url)
    try:
        return PreviewService(_matcher(session, cfg), settings=cfg).analyze(
            str(owner_id), descriptions
        )
    finally:
        session.close()


__all__ = [
    "analyze_categorization",
    "get_matching_stats",
    "match_merchant",
    "match_merchant_batch",
    "preview_import",
    "run_import",
    "run_imports",
]
