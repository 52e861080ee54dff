"""Data types for the import pipeline.

``CandidateRecord`` is the validated shape of one incoming statement entry
(pydantic). Everything produced by the pipeline is an immutable dataclass.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, TypeAlias

from ledger_db.models.ledger import CategoryType
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Tried in order after ISO-8601. US month-first wins for ambiguous dates.
_DATE_FORMATS: tuple[str, ...] = (
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%m-%d-%Y",
    "%d-%m-%Y",
)


def parse_transaction_date(value: Any) -> date | None:
    """Coerce ``value`` into a ``date``; ``None``/blank means "not provided"."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"unable to parse transaction date: {s!r}")


class CandidateRecord(BaseModel):
    """One transaction as produced by a statement parser, before import."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str | None = None
    user_id: str | None = None
    account_id: str | None = None
    external_id: str | None = Field(
        default=None, validation_alias=AliasChoices("external_id", "fit_id")
    )
    amount: Decimal
    transaction_date: date | None = Field(
        default=None, validation_alias=AliasChoices("transaction_date", "date")
    )
    description: str = ""
    merchant_name: str | None = None
    memo: str | None = None
    tags: list[str] = Field(default_factory=list)
    currency: str = "USD"
    category_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("transaction_date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> date | None:
        return parse_transaction_date(v)

    @field_validator("id", "user_id", "account_id", "category_id", mode="before")
    @classmethod
    def _stringify_ids(cls, v: Any) -> Any:
        if isinstance(v, uuid.UUID):
            return str(v)
        return v

    @field_validator("description", mode="before")
    @classmethod
    def _none_description(cls, v: Any) -> Any:
        return "" if v is None else v


# Parsers may hand over validated records or plain dicts in the same shape.
CandidateInput: TypeAlias = CandidateRecord | Mapping[str, Any]


@dataclass(frozen=True, slots=True)
class NormalizedRecord:
    """A cleaned candidate, ready for duplicate checks and persistence."""

    index: int
    id: str
    user_id: str
    account_id: str
    # Trimmed identifier or ``None``; ``original_external_id`` is untouched.
    external_id: str | None
    original_external_id: str | None
    amount: Decimal
    transaction_date: date
    description: str
    merchant_name: str | None
    memo: str | None
    tags: tuple[str, ...]
    currency: str
    category_id: str | None
    category_source: str
    category_confidence: float | None
    needs_review: bool
    created_at: datetime
    updated_at: datetime

    @property
    def external_id_key(self) -> str | None:
        return normalize_external_id(self.external_id)

    @property
    def description_key(self) -> str:
        return normalize_description(self.description)

    @property
    def search_text(self) -> str:
        """Text used for category matching: merchant, else description."""
        return self.merchant_name or self.description


def normalize_external_id(value: str | None) -> str | None:
    if value is None:
        return None
    s = value.strip().casefold()
    return s or None


def normalize_description(value: str | None) -> str:
    return (value or "").strip().casefold()


class MatchMethod(str, enum.Enum):
    EXACT = "exact"
    PATTERN = "pattern"
    KEYWORD = "keyword"
    FUZZY = "fuzzy"


@dataclass(frozen=True, slots=True)
class CategoryRule:
    """Immutable snapshot of an active category used by the matcher."""

    id: str
    name: str
    category_type: CategoryType
    is_system: bool
    keywords: tuple[str, ...] = ()
    merchant_patterns: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CategoryMatch:
    category_id: str
    category_name: str
    category_type: CategoryType
    matched_text: str
    confidence: float
    method: MatchMethod


@dataclass(frozen=True, slots=True)
class MethodStats:
    best_score: float
    match_count: int
    best_category: str


@dataclass(frozen=True, slots=True)
class MatchingStats:
    merchant_name: str
    # Keyed by ``MatchMethod`` value; methods without any hit are absent.
    methods: dict[str, MethodStats] = field(default_factory=dict)


class DuplicateStrategy(str, enum.Enum):
    EXTERNAL_ID = "external_id"
    SIGNATURE = "signature"


@dataclass(frozen=True, slots=True)
class DuplicateHit:
    record: NormalizedRecord
    strategy: DuplicateStrategy
    marker: str


@dataclass(frozen=True, slots=True)
class ImportResult:
    total: int = 0
    created: int = 0
    skipped: int = 0
    created_ids: tuple[str, ...] = ()
    duplicates: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    # Created rows whose category was assigned by the matcher.
    categorized: int = 0
    cancelled: bool = False


@dataclass(frozen=True, slots=True)
class TransactionPreview:
    index: int
    description: str
    merchant_name: str | None
    original_category_id: str | None = None
    suggested_category_id: str | None = None
    suggested_category_name: str | None = None
    confidence: float = 0.0
    method: MatchMethod | None = None
    will_be_categorized: bool = False
    error: str | None = None


@dataclass(frozen=True, slots=True)
class PreviewResult:
    total: int
    will_be_categorized: int
    success_rate: float
    previews: tuple[TransactionPreview, ...] = ()


@dataclass(frozen=True, slots=True)
class DescriptionAnalysis:
    description: str
    match: CategoryMatch | None
    stats: MatchingStats | None


@dataclass(frozen=True, slots=True)
class CategorizationAnalysis:
    total: int
    successful: int
    success_rate: float
    results: tuple[DescriptionAnalysis, ...] = ()
    # Winning matches per ``MatchMethod`` value.
    method_counts: dict[str, int] = field(default_factory=dict)


__all__ = [
    "CandidateInput",
    "CandidateRecord",
    "CategorizationAnalysis",
    "CategoryMatch",
    "CategoryRule",
    "CategoryType",
    "DescriptionAnalysis",
    "DuplicateHit",
    "DuplicateStrategy",
    "ImportResult",
    "MatchMethod",
    "MatchingStats",
    "MethodStats",
    "NormalizedRecord",
    "PreviewResult",
    "TransactionPreview",
    "normalize_description",
    "normalize_external_id",
    "parse_transaction_date",
]
