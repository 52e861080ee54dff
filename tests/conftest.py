# ruff: noqa: E402, I001
"""Pytest configuration for test isolation.

- Puts ``packages/``, ``libs/ledger_db/src`` and the repo root on ``sys.path``
  so tests run from a plain checkout.
- Clears ``DATABASE_URL`` and ``LEDGER_IMPORT_*`` variables so a developer's
  environment never leaks into assertions.
- Resets the package logger after each test; the CLI configures logging once
  per process, which would otherwise stop ``caplog`` from seeing records.
- ``db_url`` bootstraps a fresh SQLite ledger per test with one owner, two
  accounts, and a small category set.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "ledger_db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from ledger_db.client import dispose_engines
from ledger_import import logging_setup

from tests.helpers.db import (
    ACCOUNT_ID,
    OTHER_ACCOUNT_ID,
    OTHER_OWNER_ID,
    OWNER_ID,
    SECOND_ACCOUNT_ID,
    bootstrap_sqlite_db,
    seed_category,
    seed_owner,
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in list(os.environ):
        if name == "DATABASE_URL" or name.startswith("LEDGER_IMPORT_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def _reset_package_logger() -> Iterator[None]:
    yield
    logger = logging.getLogger("ledger_import")
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    logging_setup._CONFIGURED = False


@pytest.fixture
def db_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "ledger.sqlite")
    monkeypatch.setenv("DATABASE_URL", url)
    seed_owner(database_url=url, user_id=OWNER_ID, account_ids=(ACCOUNT_ID, SECOND_ACCOUNT_ID))
    seed_owner(database_url=url, user_id=OTHER_OWNER_ID, account_ids=(OTHER_ACCOUNT_ID,))
    yield url
    dispose_engines()


@pytest.fixture
def categories(db_url: str) -> dict[str, str]:
    """Seed a small category set; returns ``name -> id``."""

    return {
        "Coffee": seed_category(
            database_url=db_url, name="Coffee", merchant_patterns=["starbucks", "costa"]
        ),
        "Groceries": seed_category(
            database_url=db_url,
            name="Groceries",
            keywords=["grocery", "supermarket"],
            merchant_patterns=["tesco", "safeway"],
        ),
        "Transport": seed_category(database_url=db_url, name="Transport", keywords=["uber"]),
        "Pets": seed_category(
            database_url=db_url, name="Pets", user_id=OWNER_ID, keywords=["petco"]
        ),
    }
