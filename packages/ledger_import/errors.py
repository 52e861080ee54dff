"""Typed errors raised by the import pipeline.

Per-record problems (``ValidationError``, ``StorageConstraintViolation``) are
recovered by the batch importer and reported in ``ImportResult.errors``.
``TransientStorageFailure`` always propagates; the caller decides whether to
retry the whole batch.
"""

from __future__ import annotations

import enum


class LedgerImportError(Exception):
    """Base class for all errors raised by ``ledger_import``."""


class ValidationError(LedgerImportError):
    """A candidate record is structurally invalid."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class StorageError(LedgerImportError):
    """The ledger store rejected or failed an operation."""


class ConstraintKind(str, enum.Enum):
    DUPLICATE_KEY = "duplicate_key"
    FOREIGN_KEY = "foreign_key"
    MISSING_FIELD = "missing_field"
    CHECK = "check"
    GENERIC = "generic"


class StorageConstraintViolation(StorageError):
    """A single row was rejected by a database constraint.

    ``reference`` names the missing referenced row for foreign-key violations
    when it could be determined (``"account"`` or ``"category"``).
    """

    def __init__(
        self,
        kind: ConstraintKind,
        detail: str = "",
        *,
        reference: str | None = None,
    ) -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail
        self.reference = reference


class TransientStorageFailure(StorageError):
    """Connectivity or locking failure; retrying the batch may succeed."""


__all__ = [
    "ConstraintKind",
    "LedgerImportError",
    "StorageConstraintViolation",
    "StorageError",
    "TransientStorageFailure",
    "ValidationError",
]
