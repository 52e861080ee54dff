"""Two-tier duplicate detection against an owner's live ledger rows.

Public surface:
- ``DuplicateDetector.partition``: split normalized candidates into rows to
  insert (input order preserved) and ``DuplicateHit`` entries with markers.
- ``signature_marker``: the synthetic marker reported for signature matches.

Candidates carrying a statement identifier are matched by identifier only
(one batched lookup). Candidates without one are matched by signature:
account, date, amount to the cent, and folded description. Both strategies
ignore soft-deleted rows and run before any insert of the batch, so they see
the same snapshot.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .logging_setup import get_logger
from .models import DuplicateHit, DuplicateStrategy, NormalizedRecord
from .store import LedgerStore

_logger = get_logger("ledger_import.duplicates")


def signature_marker(record: NormalizedRecord) -> str:
    return (
        f"SIG_{record.description}_{record.amount:.2f}_"
        f"{record.transaction_date.isoformat()}"
    )


@dataclass(frozen=True, slots=True)
class DuplicateReport:
    to_insert: tuple[NormalizedRecord, ...]
    duplicates: tuple[DuplicateHit, ...]

    @property
    def markers(self) -> tuple[str, ...]:
        return tuple(hit.marker for hit in self.duplicates)


class DuplicateDetector:
    def __init__(self, ledger: LedgerStore) -> None:
        self.ledger = ledger

    def partition(self, owner_id: str, records: Sequence[NormalizedRecord]) -> DuplicateReport:
        """Partition ``records`` into new rows and duplicates of existing rows.

        A failing identifier lookup propagates. A failing signature lookup is
        logged and the candidate is kept for insertion.
        """

        if not records:
            return DuplicateReport(to_insert=(), duplicates=())

        keys = [r.external_id_key for r in records if r.external_id_key is not None]
        existing = self.ledger.find_by_external_ids(owner_id, keys) if keys else set()

        to_insert: list[NormalizedRecord] = []
        hits: list[DuplicateHit] = []
        for record in records:
            key = record.external_id_key
            if key is not None:
                if key in existing:
                    # Report the identifier exactly as the statement supplied it.
                    hits.append(
                        DuplicateHit(
                            record=record,
                            strategy=DuplicateStrategy.EXTERNAL_ID,
                            marker=record.original_external_id or record.external_id or key,
                        )
                    )
                else:
                    to_insert.append(record)
                continue

            if self._signature_exists(owner_id, record):
                hits.append(
                    DuplicateHit(
                        record=record,
                        strategy=DuplicateStrategy.SIGNATURE,
                        marker=signature_marker(record),
                    )
                )
            else:
                to_insert.append(record)

        _logger.info(
            "dedup:done owner=%s candidates=%d new=%d duplicates=%d",
            owner_id,
            len(records),
            len(to_insert),
            len(hits),
        )
        return DuplicateReport(to_insert=tuple(to_insert), duplicates=tuple(hits))

    def _signature_exists(self, owner_id: str, record: NormalizedRecord) -> bool:
        try:
            return self.ledger.has_signature_match(owner_id, record)
        except Exception as exc:  # noqa: BLE001
            # Fail open: the candidate stays in the insert set.
            _logger.warning(
                "dedup:signature_lookup_failed owner=%s index=%d error=%s",
                owner_id,
                record.index,
                exc,
            )
            return False


__all__ = ["DuplicateDetector", "DuplicateReport", "signature_marker"]
