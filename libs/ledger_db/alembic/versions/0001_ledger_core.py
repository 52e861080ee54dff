# ruff: noqa: I001
"""Ledger core tables: users, accounts, categories, transactions.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2026-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "ledger_users",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("display_name", sa.String(200), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    op.create_table(
        "ledger_accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("ledger_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
    )

    op.create_table(
        "ledger_categories",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("ledger_users.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "category_type",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'expense'"),
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("merchant_patterns", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint(
            "category_type in ('income','expense','transfer')",
            name="ck_ledger_categories_type",
        ),
        sa.UniqueConstraint("user_id", "name", name="uq_ledger_categories_owner_name"),
    )

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(36),
            sa.ForeignKey("ledger_users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "account_id",
            sa.String(36),
            sa.ForeignKey("ledger_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "category_id",
            sa.String(36),
            sa.ForeignKey("ledger_categories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("external_id_norm", sa.String(255), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("description_norm", sa.Text(), nullable=False),
        sa.Column("merchant_name", sa.String(200), nullable=True),
        sa.Column("memo", sa.Text(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency_code", sa.CHAR(3), nullable=False, server_default=sa.text("'USD'")),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column(
            "category_source",
            sa.String(),
            nullable=False,
            server_default=sa.text("'unknown'"),
        ),
        sa.Column("category_confidence", sa.Numeric(3, 2), nullable=True),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_deleted", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        *_timestamps(),
        sa.CheckConstraint(
            "category_source in ('import','rule','manual','unknown')",
            name="ck_ledger_tx_category_source",
        ),
        sa.CheckConstraint(
            "category_confidence IS NULL OR "
            "(category_confidence >= 0 AND category_confidence <= 1)",
            name="ck_ledger_tx_category_confidence",
        ),
        sa.CheckConstraint("length(currency_code) = 3", name="ck_ledger_tx_currency_code"),
    )

    op.create_index(
        "ix_ledger_tx_owner_account_date",
        "ledger_transactions",
        ["user_id", "account_id", "transaction_date"],
    )
    # Partial unique index: only live rows reserve a statement identifier.
    op.create_index(
        "uq_ledger_tx_owner_external_id",
        "ledger_transactions",
        ["user_id", "external_id_norm"],
        unique=True,
        postgresql_where=sa.text("external_id_norm IS NOT NULL AND is_deleted = false"),
        sqlite_where=sa.text("external_id_norm IS NOT NULL AND is_deleted = 0"),
    )


def downgrade() -> None:
    op.drop_index("uq_ledger_tx_owner_external_id", table_name="ledger_transactions")
    op.drop_index("ix_ledger_tx_owner_account_date", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")
    op.drop_table("ledger_categories")
    op.drop_table("ledger_accounts")
    op.drop_table("ledger_users")
