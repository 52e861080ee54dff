"""SQLAlchemy-backed ledger and category stores.

Both stores operate on a caller-owned ``Session``; committing is the caller's
job (see ``ledger_db.client.session_scope``). Every single-row write and every
per-candidate signature lookup runs inside a SAVEPOINT so that one failing
statement never poisons the surrounding transaction.

Driver errors are translated into the typed errors of ``ledger_import.errors``
using error *codes* (Postgres SQLSTATE, SQLite extended result names) rather
than message text.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from ledger_db.models.ledger import LedgerAccount, LedgerCategory, LedgerTransaction
from sqlalchemy import exists, func, or_, select
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.orm import Session

from .errors import (
    ConstraintKind,
    StorageConstraintViolation,
    StorageError,
    TransientStorageFailure,
)
from .logging_setup import get_logger
from .models import CategoryRule, NormalizedRecord

_logger = get_logger("ledger_import.store")

# Stored amounts within this distance of a candidate's amount are "equal".
SIGNATURE_AMOUNT_EPSILON = Decimal("0.01")
# Amounts are stored at cent precision, so "less than a cent apart" means equal
# to the cent. Half a cent keeps that true where the backend computes the
# difference in binary floating point (SQLite).
_SIGNATURE_SQL_TOLERANCE = SIGNATURE_AMOUNT_EPSILON / 2

# Upper bound on bound parameters per IN (...) lookup.
_IN_CHUNK = 500

_SQLSTATE_KINDS: dict[str, ConstraintKind] = {
    "23505": ConstraintKind.DUPLICATE_KEY,
    "23503": ConstraintKind.FOREIGN_KEY,
    "23502": ConstraintKind.MISSING_FIELD,
    "23514": ConstraintKind.CHECK,
}

_SQLITE_KINDS: dict[str, ConstraintKind] = {
    "SQLITE_CONSTRAINT_UNIQUE": ConstraintKind.DUPLICATE_KEY,
    "SQLITE_CONSTRAINT_PRIMARYKEY": ConstraintKind.DUPLICATE_KEY,
    "SQLITE_CONSTRAINT_FOREIGNKEY": ConstraintKind.FOREIGN_KEY,
    "SQLITE_CONSTRAINT_NOTNULL": ConstraintKind.MISSING_FIELD,
    "SQLITE_CONSTRAINT_CHECK": ConstraintKind.CHECK,
}


def constraint_kind(exc: IntegrityError) -> ConstraintKind:
    """Classify an ``IntegrityError`` by its driver error code."""

    orig = exc.orig
    # psycopg 3 exposes ``sqlstate``; psycopg2 exposes ``pgcode``.
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in _SQLSTATE_KINDS:
        return _SQLSTATE_KINDS[code]
    name = getattr(orig, "sqlite_errorname", None)
    if name in _SQLITE_KINDS:
        return _SQLITE_KINDS[name]
    return ConstraintKind.GENERIC


def _is_transient(exc: SQLAlchemyError) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError)):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


def _chunks(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class LedgerStore:
    """Reads and single-row writes against ``ledger_transactions``."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_external_ids(self, owner_id: str, normalized_ids: Iterable[str]) -> set[str]:
        """Return the subset of ``normalized_ids`` held by live rows of ``owner_id``.

        Inputs must already be normalized (trim + casefold). A failure here is
        fatal to the batch and is raised as a ``StorageError``.
        """

        wanted = sorted({i for i in normalized_ids if i})
        found: set[str] = set()
        if not wanted:
            return found
        try:
            for chunk in _chunks(wanted, _IN_CHUNK):
                stmt = select(LedgerTransaction.external_id_norm).where(
                    LedgerTransaction.user_id == owner_id,
                    LedgerTransaction.external_id_norm.in_(chunk),
                    LedgerTransaction.is_deleted.is_(False),
                )
                found.update(v for v in self.session.execute(stmt).scalars() if v)
        except SQLAlchemyError as exc:
            raise self._translate_read_error(exc) from exc
        return found

    def has_signature_match(self, owner_id: str, record: NormalizedRecord) -> bool:
        """True when a live row shares account, date, description and amount.

        Amounts match within ``SIGNATURE_AMOUNT_EPSILON``; descriptions compare
        trimmed and case-folded.
        """

        stmt = select(
            exists().where(
                LedgerTransaction.user_id == owner_id,
                LedgerTransaction.account_id == record.account_id,
                LedgerTransaction.transaction_date == record.transaction_date,
                LedgerTransaction.description_norm == record.description_key,
                func.abs(LedgerTransaction.amount - record.amount) < _SIGNATURE_SQL_TOLERANCE,
                LedgerTransaction.is_deleted.is_(False),
            )
        )
        try:
            with self.session.begin_nested():
                return bool(self.session.execute(stmt).scalar())
        except SQLAlchemyError as exc:
            raise self._translate_read_error(exc) from exc

    def insert_transaction(self, record: NormalizedRecord) -> str:
        """Insert one row and return its id, or raise a typed storage error."""

        row = LedgerTransaction(
            id=record.id,
            user_id=record.user_id,
            account_id=record.account_id,
            category_id=record.category_id,
            external_id=record.external_id,
            external_id_norm=record.external_id_key,
            transaction_date=record.transaction_date,
            description=record.description,
            description_norm=record.description_key,
            merchant_name=record.merchant_name,
            memo=record.memo,
            amount=record.amount,
            currency_code=record.currency,
            tags=list(record.tags),
            category_source=record.category_source,
            category_confidence=(
                Decimal(str(round(record.category_confidence, 2)))
                if record.category_confidence is not None
                else None
            ),
            needs_review=record.needs_review,
            is_deleted=False,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        try:
            with self.session.begin_nested():
                self.session.add(row)
                self.session.flush()
        except IntegrityError as exc:
            kind = constraint_kind(exc)
            reference = None
            if kind is ConstraintKind.FOREIGN_KEY:
                reference = self._missing_reference(record)
            raise StorageConstraintViolation(kind, str(exc.orig), reference=reference) from exc
        except SQLAlchemyError as exc:
            if _is_transient(exc):
                raise TransientStorageFailure(str(exc)) from exc
            raise StorageConstraintViolation(ConstraintKind.GENERIC, str(exc)) from exc
        return row.id

    def _missing_reference(self, record: NormalizedRecord) -> str | None:
        """Name the referenced row that does not exist, when determinable."""

        try:
            with self.session.begin_nested():
                if not self.session.execute(
                    select(exists().where(LedgerAccount.id == record.account_id))
                ).scalar():
                    return "account"
                if record.category_id is not None and not self.session.execute(
                    select(exists().where(LedgerCategory.id == record.category_id))
                ).scalar():
                    return "category"
        except SQLAlchemyError as exc:
            _logger.warning("insert:reference_probe_failed error=%s", exc)
        return None

    @staticmethod
    def _translate_read_error(exc: SQLAlchemyError) -> StorageError:
        if _is_transient(exc):
            return TransientStorageFailure(str(exc))
        return StorageError(str(exc))


class CategoryStore:
    """Read-only access to the categories visible to an owner."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def list_active_categories(self, owner_id: str) -> list[CategoryRule]:
        """Active system categories first, then the owner's; each by name, then id."""

        stmt = (
            select(LedgerCategory)
            .where(
                or_(LedgerCategory.user_id == owner_id, LedgerCategory.user_id.is_(None)),
                LedgerCategory.is_active.is_(True),
            )
            .order_by(
                LedgerCategory.user_id.is_not(None),
                LedgerCategory.name,
                LedgerCategory.id,
            )
        )
        try:
            rows = self.session.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            if _is_transient(exc):
                raise TransientStorageFailure(str(exc)) from exc
            raise StorageError(str(exc)) from exc
        return [
            CategoryRule(
                id=row.id,
                name=row.name,
                category_type=row.category_type,
                is_system=row.user_id is None,
                keywords=tuple(k for k in (row.keywords or []) if isinstance(k, str) and k.strip()),
                merchant_patterns=tuple(
                    p for p in (row.merchant_patterns or []) if isinstance(p, str) and p.strip()
                ),
            )
            for row in rows
        ]


__all__ = [
    "SIGNATURE_AMOUNT_EPSILON",
    "CategoryStore",
    "LedgerStore",
    "constraint_kind",
]
