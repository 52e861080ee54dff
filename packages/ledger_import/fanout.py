"""Bounded-concurrency fan-out of per-owner jobs over a thread pool.

Each owner appears once (jobs are keyed by owner), so two workers never
import into the same ledger at the same time. Work inside one job stays
sequential.

- ``stop_on_error`` (default True): the first failure propagates and jobs
  that have not started are cancelled.
- ``stop_on_error=False``: every job runs; failures are raised together as an
  ``ExceptionGroup`` once all jobs finish.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

from .logging_setup import get_logger

InT = TypeVar("InT")
OutT = TypeVar("OutT")

_logger = get_logger("ledger_import.fanout")


def run_per_owner(
    jobs: Mapping[str, InT],
    worker: Callable[[str, InT], OutT],
    *,
    concurrency: int,
    stop_on_error: bool = True,
) -> dict[str, OutT]:
    """Run ``worker(owner_id, payload)`` for every job, at most ``concurrency`` at once.

    Returns results keyed by owner in the iteration order of ``jobs``.
    """

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    pending = iter(jobs.items())
    results: dict[str, OutT] = {}
    errors: list[Exception] = []
    future_to_owner: dict[Future, str] = {}

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        try:
            owner_id, payload = next(pending)
        except StopIteration:
            return None
        fut = pool.submit(worker, owner_id, payload)
        future_to_owner[fut] = owner_id
        return fut

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)
            for fut in done:
                owner_id = future_to_owner.pop(fut)
                try:
                    results[owner_id] = fut.result()
                except Exception as e:  # noqa: BLE001
                    _logger.warning("fanout:job_failed owner=%s error=%s", owner_id, e)
                    e.add_note(f"owner_id={owner_id}")
                    if stop_on_error:
                        pool.shutdown(wait=False, cancel_futures=True)
                        raise
                    errors.append(e)

            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)

    if errors:
        raise ExceptionGroup("run_per_owner: one or more owner jobs failed", errors)

    return {owner_id: results[owner_id] for owner_id in jobs if owner_id in results}


__all__ = ["run_per_owner"]
