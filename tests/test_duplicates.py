from __future__ import annotations

import logging
from datetime import UTC, date, datetime

import pytest
from ledger_db.client import session_scope

from ledger_import.duplicates import DuplicateDetector, signature_marker
from ledger_import.errors import StorageError
from ledger_import.models import DuplicateStrategy
from ledger_import.normalizer import normalize_candidate
from ledger_import.store import LedgerStore

from tests.helpers.db import (
    ACCOUNT_ID,
    OTHER_ACCOUNT_ID,
    OTHER_OWNER_ID,
    OWNER_ID,
    SECOND_ACCOUNT_ID,
    insert_ledger_row,
)

NOW = datetime(2025, 3, 10, tzinfo=UTC)
DAY = date(2025, 3, 1)


def _records(*payloads, owner_id: str = OWNER_ID):
    out = []
    for idx, overrides in enumerate(payloads):
        payload = {
            "account_id": ACCOUNT_ID,
            "amount": "-4.50",
            "transaction_date": DAY.isoformat(),
            "description": "Coffee Shop",
        }
        payload.update(overrides)
        out.append(normalize_candidate(payload, owner_id, index=idx, now=NOW))
    return out


def _partition(db_url: str, records, *, owner_id: str = OWNER_ID, store_cls=LedgerStore):
    with session_scope(database_url=db_url) as s:
        return DuplicateDetector(store_cls(s)).partition(owner_id, records)


def test_external_id_match_ignores_case_and_whitespace(db_url: str):
    insert_ledger_row(database_url=db_url, description="Earlier", amount="1",
                      transaction_date=DAY, external_id="abc123")

    report = _partition(db_url, _records({"external_id": "  ABC123 "}))

    assert report.to_insert == ()
    (hit,) = report.duplicates
    assert hit.strategy is DuplicateStrategy.EXTERNAL_ID
    assert hit.marker == "  ABC123 "
    assert report.markers == ("  ABC123 ",)


def test_stored_identifier_is_compared_normalized_too(db_url: str):
    insert_ledger_row(database_url=db_url, description="Earlier", amount="1",
                      transaction_date=DAY, external_id="  ABC123 ")

    report = _partition(db_url, _records({"external_id": "abc123"}))
    assert len(report.duplicates) == 1


def test_external_id_match_spans_accounts_but_not_owners(db_url: str):
    insert_ledger_row(database_url=db_url, description="x", amount="1", transaction_date=DAY,
                      account_id=SECOND_ACCOUNT_ID, external_id="F-1")
    insert_ledger_row(database_url=db_url, description="x", amount="1", transaction_date=DAY,
                      user_id=OTHER_OWNER_ID, account_id=OTHER_ACCOUNT_ID, external_id="F-2")

    report = _partition(db_url, _records({"external_id": "F-1"}, {"external_id": "F-2"}))

    assert report.markers == ("F-1",)
    assert [r.external_id for r in report.to_insert] == ["F-2"]


def test_soft_deleted_rows_are_not_duplicates(db_url: str):
    insert_ledger_row(database_url=db_url, description="Coffee Shop", amount="-4.50",
                      transaction_date=DAY, external_id="F-1", is_deleted=True)
    insert_ledger_row(database_url=db_url, description="Coffee Shop", amount="-4.50",
                      transaction_date=DAY, is_deleted=True)

    report = _partition(db_url, _records({"external_id": "F-1"}, {}))

    assert report.duplicates == ()
    assert len(report.to_insert) == 2


def test_identifier_candidates_never_fall_back_to_signature(db_url: str):
    insert_ledger_row(database_url=db_url, description="Coffee Shop", amount="-4.50",
                      transaction_date=DAY)

    report = _partition(db_url, _records({"external_id": "NEW-1"}))
    assert report.duplicates == ()


def test_signature_match_without_identifier(db_url: str):
    insert_ledger_row(database_url=db_url, description="Coffee Shop", amount="-4.50",
                      transaction_date=DAY)

    report = _partition(db_url, _records({"description": "  COFFEE shop"}))

    (hit,) = report.duplicates
    assert hit.strategy is DuplicateStrategy.SIGNATURE
    assert hit.marker == "SIG_COFFEE shop_-4.50_2025-03-01"
    assert hit.marker == signature_marker(hit.record)


@pytest.mark.parametrize(
    "overrides",
    [
        {"account_id": SECOND_ACCOUNT_ID},
        {"amount": "-4.51"},
        {"amount": "4.50"},
        {"transaction_date": "2025-03-02"},
        {"description": "Coffee Shop 2"},
    ],
)
def test_signature_requires_every_component(db_url: str, overrides):
    insert_ledger_row(database_url=db_url, description="Coffee Shop", amount="-4.50",
                      transaction_date=DAY)

    report = _partition(db_url, _records(overrides))
    assert report.duplicates == ()


def test_partition_preserves_input_order(db_url: str):
    insert_ledger_row(database_url=db_url, description="x", amount="1", transaction_date=DAY,
                      external_id="DUP")

    records = _records(
        {"description": "first"},
        {"external_id": "DUP"},
        {"description": "second", "external_id": "NEW"},
        {"description": "third"},
    )
    report = _partition(db_url, records)

    assert [r.index for r in report.to_insert] == [0, 2, 3]


def test_empty_input(db_url: str):
    report = _partition(db_url, [])
    assert report.to_insert == () and report.duplicates == ()


class _BrokenSignatureStore(LedgerStore):
    def has_signature_match(self, owner_id, record):
        raise StorageError("signature lookup unavailable")


def test_signature_lookup_failure_keeps_candidate(db_url: str, caplog: pytest.LogCaptureFixture):
    caplog.set_level(logging.WARNING, logger="ledger_import")
    insert_ledger_row(database_url=db_url, description="Coffee Shop", amount="-4.50",
                      transaction_date=DAY)

    report = _partition(db_url, _records({}), store_cls=_BrokenSignatureStore)

    assert len(report.to_insert) == 1
    assert report.duplicates == ()
    assert any("signature_lookup_failed" in r.getMessage() for r in caplog.records)


class _BrokenIdentifierStore(LedgerStore):
    def find_by_external_ids(self, owner_id, normalized_ids):
        raise StorageError("identifier lookup unavailable")


def test_identifier_lookup_failure_propagates(db_url: str):
    with pytest.raises(StorageError):
        _partition(db_url, _records({"external_id": "F-1"}), store_cls=_BrokenIdentifierStore)
