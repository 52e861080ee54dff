"""Runtime configuration for matching and importing.

Defaults are usable as-is. ``ImportSettings.from_env()`` applies the
``LEDGER_IMPORT_*`` environment overrides; unparseable values are ignored with
a warning and the default is kept.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .logging_setup import get_logger

_logger = get_logger("ledger_import.settings")


@dataclass(frozen=True, slots=True)
class MatcherSettings:
    # Merchant names handled per iteration of a batch match. Bounds the
    # working set only; results never depend on it.
    batch_size: int = 50
    # Best matches below this confidence are reported as "no match".
    min_confidence: float = 0.1
    # rapidfuzz partial-ratio score (0-100) a fuzzy comparison must reach.
    fuzzy_threshold: float = 80.0

    def __post_init__(self) -> None:
        if not isinstance(self.batch_size, int) or self.batch_size < 1:
            raise ValueError("batch_size must be a positive integer")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError("min_confidence must be within [0, 1]")
        if not 0.0 <= self.fuzzy_threshold <= 100.0:
            raise ValueError("fuzzy_threshold must be within [0, 100]")


@dataclass(frozen=True, slots=True)
class ImportSettings:
    auto_categorize: bool = True
    # A suggested category is applied (or previewed as applied) at or above this.
    auto_categorize_threshold: float = 0.3
    # Upper bound on concurrent per-owner imports in ``run_imports``.
    max_workers: int = 4
    matcher: MatcherSettings = field(default_factory=MatcherSettings)

    def __post_init__(self) -> None:
        if not 0.0 <= self.auto_categorize_threshold <= 1.0:
            raise ValueError("auto_categorize_threshold must be within [0, 1]")
        if not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise ValueError("max_workers must be a positive integer")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ImportSettings:
        env = os.environ if environ is None else environ
        matcher = MatcherSettings(
            batch_size=_env_int(env, "LEDGER_IMPORT_MATCH_BATCH_SIZE", 50, minimum=1),
            min_confidence=_env_float(env, "LEDGER_IMPORT_MIN_CONFIDENCE", 0.1, upper=1.0),
            fuzzy_threshold=_env_float(env, "LEDGER_IMPORT_FUZZY_THRESHOLD", 80.0, upper=100.0),
        )
        return cls(
            auto_categorize=_env_bool(env, "LEDGER_IMPORT_AUTO_CATEGORIZE", True),
            auto_categorize_threshold=_env_float(
                env, "LEDGER_IMPORT_AUTO_CATEGORIZE_THRESHOLD", 0.3, upper=1.0
            ),
            max_workers=_env_int(env, "LEDGER_IMPORT_MAX_WORKERS", 4, minimum=1),
            matcher=matcher,
        )


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        _logger.warning("settings:invalid name=%s value=%r", name, raw)
        return default
    if value < minimum:
        _logger.warning("settings:out_of_range name=%s value=%d", name, value)
        return default
    return value


def _env_float(env: Mapping[str, str], name: str, default: float, *, upper: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = float(raw.strip())
    except ValueError:
        _logger.warning("settings:invalid name=%s value=%r", name, raw)
        return default
    if not 0.0 <= value <= upper:
        _logger.warning("settings:out_of_range name=%s value=%s", name, value)
        return default
    return value


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    val = raw.strip().lower()
    if val in {"1", "true", "yes", "on"}:
        return True
    if val in {"0", "false", "no", "off"}:
        return False
    _logger.warning("settings:invalid name=%s value=%r", name, raw)
    return default


__all__ = ["ImportSettings", "MatcherSettings"]
