# ruff: noqa: I001
"""CLI for the ``ledger_import`` package.

Thin Typer commands over ``ledger_import.api``. Environment variables (notably
``DATABASE_URL`` and the ``LEDGER_IMPORT_*`` settings) are loaded from a local
``.env`` with ``python-dotenv`` before any command runs. Results are printed
to stdout as JSON; logs go to stderr.

Candidate files are JSON arrays of objects in the ``CandidateRecord`` shape,
for example::

    [{"account_id": "...", "fit_id": "A1", "amount": "-4.50",
      "transaction_date": "2025-03-01", "description": "STARBUCKS #4521"}]
"""

from __future__ import annotations

import dataclasses
import enum
import json
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .errors import LedgerImportError
from .logging_setup import configure_logging


def _jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _emit(value: Any) -> None:
    typer.echo(json.dumps(_jsonable(value), indent=2, ensure_ascii=False))


def _load_candidates(path: Path) -> list[dict[str, Any]]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        typer.echo(f"Error: cannot read candidates from {path}: {e}", err=True)
        raise typer.Exit(1) from e
    if not isinstance(data, list) or not all(isinstance(d, dict) for d in data):
        typer.echo("Error: candidate file must contain a JSON array of objects", err=True)
        raise typer.Exit(1)
    return data


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank-statement transactions into a ledger with duplicate "
        "detection and rule-based categorization."
    ),
)

# Module-level option objects keep calls out of parameter defaults (ruff B008).
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
CANDIDATES_ARGUMENT = typer.Argument(
    ...,
    help="JSON file holding an array of candidate transactions.",
    dir_okay=False,
    file_okay=True,
    exists=False,
)


@app.command("match")
def match_cmd(
    owner_id: str,
    merchant_name: str,
    *,
    stats: bool = typer.Option(False, "--stats", help="Include per-method matching stats."),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Show the best category for a merchant name."""

    from .api import get_matching_stats, match_merchant

    try:
        match = match_merchant(owner_id, merchant_name, database_url=database_url)
        payload: dict[str, Any] = {"merchant_name": merchant_name, "match": match}
        if stats:
            payload["stats"] = get_matching_stats(
                owner_id, merchant_name, database_url=database_url
            )
    except LedgerImportError as e:
        typer.echo(f"Error: match failed: {e}", err=True)
        raise typer.Exit(1) from e
    _emit(payload)


@app.command("preview")
def preview_cmd(
    owner_id: str,
    candidates_file: Annotated[Path, CANDIDATES_ARGUMENT],
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Preview suggested categories for a candidate file without importing."""

    from .api import preview_import

    candidates = _load_candidates(candidates_file)
    try:
        result = preview_import(owner_id, candidates, database_url=database_url)
    except LedgerImportError as e:
        typer.echo(f"Error: preview failed: {e}", err=True)
        raise typer.Exit(1) from e
    _emit(result)


@app.command("run")
def run_cmd(
    owner_id: str,
    candidates_file: Annotated[Path, CANDIDATES_ARGUMENT],
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Import a candidate file into the owner's ledger."""

    from .api import run_import

    candidates = _load_candidates(candidates_file)
    try:
        result = run_import(owner_id, candidates, database_url=database_url)
    except LedgerImportError as e:
        typer.echo(f"Error: import failed: {e}", err=True)
        raise typer.Exit(2) from e
    _emit(result)


@app.command("analyze")
def analyze_cmd(
    owner_id: str,
    descriptions: list[str],
    *,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Categorize free-text descriptions and report per-method statistics."""

    from .api import analyze_categorization

    try:
        result = analyze_categorization(owner_id, descriptions, database_url=database_url)
    except LedgerImportError as e:
        typer.echo(f"Error: analysis failed: {e}", err=True)
        raise typer.Exit(1) from e
    _emit(result)


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover - exercised via console script
    app()
