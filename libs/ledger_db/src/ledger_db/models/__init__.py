"""Shared SQLAlchemy models registry for the ledger database.

Currently includes the ledger domain models used by ``ledger_import``.
"""

from .ledger import (
    Base,
    CategoryType,
    LedgerAccount,
    LedgerCategory,
    LedgerTransaction,
    LedgerUser,
)

__all__ = [
    "Base",
    "CategoryType",
    "LedgerAccount",
    "LedgerCategory",
    "LedgerTransaction",
    "LedgerUser",
]
