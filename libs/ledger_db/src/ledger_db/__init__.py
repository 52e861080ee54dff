"""ledger_db: shared database library (SQLAlchemy/Alembic).

Public exports
--------------
- ``Base`` and ``metadata`` for Alembic autogenerate/targeting
- ORM models in ``ledger_db.models.ledger`` (re-exported for convenience)
- Engine/session helpers in ``ledger_db.client``
"""

from __future__ import annotations

from .models.ledger import (
    Base,
    CategoryType,
    LedgerAccount,
    LedgerCategory,
    LedgerTransaction,
    LedgerUser,
)

# Re-export SQLAlchemy metadata for Alembic's env.py
metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "CategoryType",
    "LedgerAccount",
    "LedgerCategory",
    "LedgerTransaction",
    "LedgerUser",
]
