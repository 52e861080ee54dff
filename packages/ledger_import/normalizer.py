"""Single-record cleaning and validation.

``normalize_candidate`` turns one ``CandidateRecord`` (or a plain mapping in
the same shape) into a ``NormalizedRecord`` or raises ``ValidationError``.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .logging_setup import get_logger
from .models import CandidateRecord, NormalizedRecord

_logger = get_logger("ledger_import.normalizer")

_CENT = Decimal("0.01")
# Stored as Numeric(12, 2).
_MAX_AMOUNT = Decimal("1e10")


def _norm_str(v: str | None) -> str | None:
    if v is None:
        return None
    s = v.strip()
    return s if s else None


def _clean_tags(tags: Iterable[str]) -> tuple[str, ...]:
    return tuple(t.strip() for t in tags if t and t.strip())


def coerce_candidate(candidate: CandidateRecord | Mapping[str, Any]) -> CandidateRecord:
    if isinstance(candidate, CandidateRecord):
        return candidate
    try:
        return CandidateRecord.model_validate(candidate)
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ())) or None
        raise ValidationError(
            f"invalid candidate: {first.get('msg', str(exc))}", field=loc
        ) from exc


def normalize_candidate(
    candidate: CandidateRecord | Mapping[str, Any],
    owner_id: str,
    *,
    index: int = 0,
    now: datetime | None = None,
) -> NormalizedRecord:
    """Clean and validate one candidate for ``owner_id``.

    Raises ``ValidationError`` when the account is missing, the description
    is blank after trimming, or the amount does not fit the ledger column.
    A zero amount is accepted but flagged for review.
    """

    rec = coerce_candidate(candidate)
    ts = now or datetime.now(UTC)

    account_id = _norm_str(rec.account_id)
    if account_id is None:
        raise ValidationError("account_id is required", field="account_id")

    description = rec.description.strip()
    if not description:
        raise ValidationError("description is required", field="description")

    try:
        amount = rec.amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValidationError("amount out of range", field="amount") from exc
    if not amount.is_finite() or abs(amount) >= _MAX_AMOUNT:
        raise ValidationError("amount out of range", field="amount")
    needs_review = amount == 0
    if needs_review:
        _logger.warning(
            "normalize:zero_amount index=%d description=%r", index, description
        )

    category_id = _norm_str(rec.category_id)
    return NormalizedRecord(
        index=index,
        id=_norm_str(rec.id) or str(uuid.uuid4()),
        user_id=str(owner_id),
        account_id=account_id,
        external_id=_norm_str(rec.external_id),
        original_external_id=rec.external_id,
        amount=amount,
        transaction_date=rec.transaction_date or ts.date(),
        description=description,
        merchant_name=_norm_str(rec.merchant_name),
        memo=_norm_str(rec.memo),
        tags=_clean_tags(rec.tags),
        currency=(rec.currency or "").strip().upper() or "USD",
        category_id=category_id,
        category_source="import" if category_id else "unknown",
        category_confidence=None,
        needs_review=needs_review,
        created_at=rec.created_at or ts,
        updated_at=rec.updated_at or ts,
    )


__all__ = ["coerce_candidate", "normalize_candidate"]
