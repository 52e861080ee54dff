from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    CHAR,
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CategoryType(str, enum.Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


# ---------------------------
# Reference: users / accounts
# ---------------------------
#
# Both tables are owned by the account-management layer. They are declared
# here so that ledger rows can carry enforced foreign keys.


class LedgerUser(Base):
    __tablename__ = "ledger_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )


class LedgerAccount(Base):
    __tablename__ = "ledger_accounts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ledger_users.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )


# ---------------------------
# Reference: ledger_categories
# ---------------------------


class LedgerCategory(Base):
    __tablename__ = "ledger_categories"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # NULL owner marks a system-wide category shared by every user.
    user_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("ledger_users.id", ondelete="CASCADE"), nullable=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    category_type: Mapped[CategoryType] = mapped_column(
        Enum(
            CategoryType,
            native_enum=False,
            create_constraint=True,
            length=20,
            name="ck_ledger_categories_type",
            values_callable=lambda members: [m.value for m in members],
        ),
        nullable=False,
        server_default=text("'expense'"),
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("true"))
    # Ordered lists; evaluation order is the list order.
    keywords: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    merchant_patterns: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )

    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_ledger_categories_owner_name"),)


# ---------------------------
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ledger_users.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("ledger_accounts.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("ledger_categories.id", ondelete="SET NULL"), nullable=True
    )
    # Statement-issued identifier ("FitID") exactly as received, after trimming.
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # Trimmed + case-folded copy of ``external_id`` written by the ledger store.
    # Duplicate lookups and the partial unique index both use this column so
    # stored and incoming identifiers are compared under the same folding.
    external_id_norm: Mapped[str | None] = mapped_column(String(255), nullable=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    # Trimmed + case-folded description used by signature matching.
    description_norm: Mapped[str] = mapped_column(Text, nullable=False)
    merchant_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    memo: Mapped[str | None] = mapped_column(Text, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency_code: Mapped[str] = mapped_column(
        CHAR(3), nullable=False, server_default=text("'USD'")
    )
    tags: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    category_source: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'unknown'")
    )
    category_confidence: Mapped[Decimal | None] = mapped_column(Numeric(3, 2), nullable=True)
    needs_review: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=text("false")
    )
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=text("now()")
    )

    __table_args__ = (
        CheckConstraint(
            "category_source in ('import','rule','manual','unknown')",
            name="ck_ledger_tx_category_source",
        ),
        CheckConstraint(
            (
                "category_confidence IS NULL OR "
                "(category_confidence >= 0 AND category_confidence <= 1)"
            ),
            name="ck_ledger_tx_category_confidence",
        ),
        CheckConstraint("length(currency_code) = 3", name="ck_ledger_tx_currency_code"),
        Index(
            "ix_ledger_tx_owner_account_date",
            "user_id",
            "account_id",
            "transaction_date",
        ),
        # Only live rows reserve an identifier so a deleted transaction can be
        # imported again.
        Index(
            "uq_ledger_tx_owner_external_id",
            "user_id",
            "external_id_norm",
            unique=True,
            postgresql_where=text("external_id_norm IS NOT NULL AND is_deleted = false"),
            sqlite_where=text("external_id_norm IS NOT NULL AND is_deleted = 0"),
        ),
    )


__all__ = [
    "Base",
    "CategoryType",
    "LedgerAccount",
    "LedgerCategory",
    "LedgerTransaction",
    "LedgerUser",
]
