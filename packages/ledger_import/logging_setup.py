"""Logging for the ``ledger_import`` package.

Library modules call ``get_logger("ledger_import.<module>")`` and never attach
handlers. Entrypoints (the CLI, the seeder, a host service) call
``configure_logging`` once; until then the package logger only carries a
``NullHandler``.

Environment:

- ``LEDGER_IMPORT_LOG_LEVEL``: level name or number, default ``INFO``.
- ``LEDGER_IMPORT_LOG_FORMAT``: ``logging.Formatter`` format string.

Messages use ``<operation>:<event> key=value ...`` so they grep well.
"""

from __future__ import annotations

import logging
import os
import sys
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import IO, Any

_PKG_LOGGER_NAME = "ledger_import"
_LEVEL_ENV = "LEDGER_IMPORT_LOG_LEVEL"
_FORMAT_ENV = "LEDGER_IMPORT_LOG_FORMAT"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _parse_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelName(name)
    # getLevelName returns "Level X" for unknown names.
    return numeric if isinstance(numeric, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach one ``StreamHandler`` to the package logger; later calls are no-ops.

    Logs go to ``stderr`` by default so stdout stays free for command output.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or os.getenv(_FORMAT_ENV) or _DEFAULT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolved)
    # Records are emitted here only, not again through the root logger.
    logger.propagate = False
    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


@contextmanager
def log_elapsed(logger: logging.Logger, op: str, **fields: Any) -> Iterator[None]:
    """Log ``<op>:elapsed ms=<n> key=value ...`` at DEBUG when the block exits.

    The line is written whether the block returns or raises.
    """

    start = time.perf_counter()
    try:
        yield
    finally:
        ms = (time.perf_counter() - start) * 1000.0
        detail = " ".join(f"{k}={v}" for k, v in fields.items())
        logger.debug("%s:elapsed ms=%.1f %s", op, ms, detail)


__all__ = ["configure_logging", "get_logger", "log_elapsed"]
