"""CLI for the ``bank_reconciliation`` package.

A Typer console interface over the engine and the transaction store. The root
callback loads a local ``.env`` with ``python-dotenv`` (never overriding the
shell) and configures logging; each command then reads
:class:`~bank_reconciliation.config.EngineConfig` from the environment and
opens the store named by ``DATABASE_URL`` (or ``--database-url``).

Destructive commands (discarding duplicates, repairing links, removing a
split) ask for confirmation unless ``--yes`` is given.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError

from db.client import create_schema, session_scope

from .config import EngineConfig
from .dedup import find_duplicates, screen_import
from .errors import ReconciliationError
from .links import clean_orphans, repair_reconciled_flags, scan_links
from .logging_setup import configure_logging, get_logger
from .matching import find_by_sequence, sequence_from_filename
from .models import AllocationInput, MatchContext, RawBankLine, TransactionRecord
from .normalizers import amount_literal, format_amount
from .persistence import delete_transactions, load_transactions, save_transactions
from .scoring import classify, eligible_candidates, group_by_amount, rank
from .suggest import suggest
from .term_ui import confirm_action, select_account_code
from .ventilation import (
    find_orphan_children,
    repair_orphan_children,
    split,
    unsplit,
    validate_allocations,
)

_logger = get_logger("bank_reconciliation.cli")


# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


def _load_config() -> EngineConfig:
    try:
        return EngineConfig.from_env()
    except ValueError as e:
        raise _fail(f"invalid configuration: {e}") from e


def _open_store(database_url: str | None) -> None:
    try:
        create_schema(database_url=database_url)
    except RuntimeError as e:
        raise _fail(str(e)) from e


def _parse_amount(raw: str) -> Decimal:
    try:
        return Decimal(amount_literal(raw))
    except InvalidOperation as e:
        raise typer.BadParameter(f"not a decimal amount: {raw!r}") from e


def _find(records: list[TransactionRecord], transaction_id: str) -> TransactionRecord:
    for rec in records:
        if rec.id == transaction_id:
            return rec
    raise _fail(f"transaction {transaction_id!r} not found")


def _describe(rec: TransactionRecord) -> str:
    return "\t".join(
        [
            rec.id,
            rec.execution_date.isoformat(),
            format_amount(rec.amount),
            rec.counterparty_name,
            rec.communication,
        ]
    )


def _confirmed(message: str, *, assume_yes: bool) -> bool:
    if assume_yes:
        return True
    return confirm_action(message)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Reconcile imported bank lines: detect re-imports, split payments, "
        "repair entity links and rank or categorize candidates."
    ),
)

DATE_FORMATS = ["%Y-%m-%d"]


@app.command("import-lines")
def import_lines_cmd(
    json_path: Annotated[
        Path,
        typer.Option(
            "--json-path",
            help="JSON file holding a list of parsed bank lines.",
            dir_okay=False,
            file_okay=True,
        ),
    ],
    *,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Fingerprint bank lines and store the ones not seen before."""

    try:
        payload = json.loads(json_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise _fail(f"file not found: {json_path}") from e
    except json.JSONDecodeError as e:
        raise _fail(f"invalid JSON in {json_path}: {e}") from e
    if not isinstance(payload, list):
        raise _fail("expected a JSON list of bank lines")

    try:
        lines = [RawBankLine.model_validate(item) for item in payload]
    except ValidationError as e:
        raise _fail(f"invalid bank line: {e}") from e

    _logger.info("import %s: %d line(s)", json_path, len(lines))
    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        screen = screen_import(lines, load_transactions(session))
        save_transactions(session, screen.new)

    typer.echo(
        f"imported={len(screen.new)} already_present={len(screen.already_present)} "
        f"conflicts={len(screen.conflicts)}"
    )
    for rec in screen.already_present:
        typer.echo(f"skipped\t{_describe(rec)}")
    for rec in screen.conflicts:
        typer.echo(
            f"Warning: id {rec.id!r} already used by another record, line skipped", err=True
        )


@app.command("find-duplicates")
def find_duplicates_cmd(
    *,
    current_account: Annotated[
        str | None,
        typer.Option(help="Only consider this account (defaults to RECON_CURRENT_ACCOUNT)."),
    ] = None,
    discard: Annotated[
        bool, typer.Option(help="Delete every member of each group except the earliest id.")
    ] = False,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")
    ] = False,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Report groups of records sharing a fingerprint."""

    config = _load_config()
    account = current_account or config.current_account
    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        groups = find_duplicates(load_transactions(session), current_account=account)
        if not groups:
            typer.echo("No duplicates found.")
            return
        for group in groups:
            typer.echo(f"group {group.fingerprint[:12]} ({len(group.records)} records)")
            typer.echo(f"  keep\t{_describe(group.keep)}")
            for rec in group.discard:
                typer.echo(f"  dup\t{_describe(rec)}")

        if not discard:
            return
        spurious = [rec.id for g in groups for rec in g.discard]
        if not _confirmed(f"Delete {len(spurious)} duplicate record(s)?", assume_yes=yes):
            typer.echo("Aborted.")
            return
        removed = delete_transactions(session, spurious)
    typer.echo(f"discarded={removed}")


@app.command("scan-links")
def scan_links_cmd(
    *,
    fix: Annotated[bool, typer.Option(help="Collapse duplicate links and persist.")] = False,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")
    ] = False,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Report transactions whose links contain the same entity more than once."""

    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        report, repaired = scan_links(load_transactions(session), fix=fix)
        typer.echo(
            f"scanned={report.scanned} with_links={report.with_links} "
            f"multiple={report.with_multiple_links} duplicates={report.with_duplicate_keys}"
        )
        for tx_id in report.duplicate_ids:
            typer.echo(f"  {tx_id}")
        if not repaired:
            return
        if not _confirmed(f"Repair {len(repaired)} transaction(s)?", assume_yes=yes):
            typer.echo("Aborted.")
            return
        save_transactions(session, repaired)
    typer.echo(f"repaired={len(repaired)}")


@app.command("clean-links")
def clean_links_cmd(
    catalog_path: Annotated[
        Path,
        typer.Option(
            "--catalog",
            help='JSON object mapping entity type to existing ids, e.g. {"event": ["E1"]}.',
            dir_okay=False,
            file_okay=True,
        ),
    ],
    *,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")
    ] = False,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Drop links to entities missing from the catalog and fix reconciled flags."""

    try:
        raw = json.loads(catalog_path.read_text(encoding="utf-8"))
    except (FileNotFoundError, json.JSONDecodeError) as e:
        raise _fail(f"cannot read catalog {catalog_path}: {e}") from e
    if not isinstance(raw, dict):
        raise _fail("catalog must be a JSON object")
    existing = {str(k): {str(v) for v in ids} for k, ids in raw.items()}

    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        records = load_transactions(session)
        report, cleaned = clean_orphans(records, existing)
        by_id = {r.id: r for r in records}
        by_id.update({r.id: r for r in cleaned})
        checked, flagged = repair_reconciled_flags(by_id.values())
        typer.echo(
            f"orphans_removed={report.links_removed} "
            f"transactions_updated={report.transactions_updated} "
            f"flags_fixed={len(flagged)} checked={checked}"
        )
        for etype, n in sorted(report.removed_by_type.items()):
            typer.echo(f"  {etype}: {n}")

        changed = {r.id: r for r in cleaned}
        changed.update({r.id: r for r in flagged})
        if not changed:
            return
        if not _confirmed(f"Update {len(changed)} transaction(s)?", assume_yes=yes):
            typer.echo("Aborted.")
            return
        save_transactions(session, changed.values())
    typer.echo(f"updated={len(changed)}")


@app.command("rank")
def rank_cmd(
    *,
    mode: Annotated[str, typer.Option(help="event, inscription or expense.")],
    amount: Annotated[str | None, typer.Option(help="Expected amount (magnitude).")] = None,
    name: Annotated[str | None, typer.Option(help="Expected counterparty name.")] = None,
    on: Annotated[
        datetime | None,
        typer.Option("--date", formats=DATE_FORMATS, help="Expected date (YYYY-MM-DD)."),
    ] = None,
    event_date: Annotated[
        datetime | None,
        typer.Option(formats=DATE_FORMATS, help="Event date; wins over --date."),
    ] = None,
    limit: Annotated[int, typer.Option(min=1, help="Maximum candidates to print.")] = 20,
    group: Annotated[bool, typer.Option(help="Group candidates by similar amount.")] = False,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Print the most relevant candidate transactions for an entity."""

    config = _load_config()
    try:
        context = MatchContext(
            mode=mode,
            target_amount=_parse_amount(amount) if amount is not None else None,
            target_name=name,
            target_date=on.date() if on else None,
            event_date=event_date.date() if event_date else None,
        )
    except ValidationError as e:
        raise _fail(f"invalid match context: {e}") from e

    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        candidates = eligible_candidates(load_transactions(session), context)

    if group:
        for representative, members in group_by_amount(candidates, config.group_tolerance):
            typer.echo(f"~{format_amount(representative)} ({len(members)})")
            for rec in members:
                typer.echo(f"  {_describe(rec)}")
        return

    ranked = rank(candidates, context, weights=config.weights)[:limit]
    triage = classify(
        ranked,
        auto_threshold=config.auto_threshold,
        suggest_threshold=config.suggest_threshold,
    )
    bands = {id(c): "high" for c in triage.auto} | {id(c): "medium" for c in triage.suggested}
    for cand in ranked:
        typer.echo(
            f"{cand.score:6.1f}\t{bands.get(id(cand), 'low')}\t{_describe(cand.transaction)}"
            f"\t{', '.join(cand.match.reasons)}"
        )


@app.command("suggest-category")
def suggest_category_cmd(
    transaction_id: Annotated[str, typer.Argument(help="Transaction id.")],
    *,
    limit: Annotated[int, typer.Option(min=1)] = 5,
    apply: Annotated[
        bool, typer.Option(help="Pick an account code interactively and store it.")
    ] = False,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Suggest account codes from already-categorized transactions."""

    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        records = load_transactions(session)
        target = _find(records, transaction_id)
        suggestions = suggest(target, records, limit=limit)
        if not suggestions:
            typer.echo("No suggestion.")
        for s in suggestions:
            typer.echo(f"{s.account_code}\t{s.count}\t{s.match_reason}\t{s.category or ''}")
        if not apply:
            return

        default = suggestions[0].account_code if suggestions else ""
        code = select_account_code([s.account_code for s in suggestions], default=default)
        if code is None:
            typer.echo("Skipped.")
            return
        categories = {s.account_code: s.category for s in suggestions}
        save_transactions(
            session,
            [replace(target, account_code=code, category=categories.get(code, target.category))],
        )
    typer.echo(f"{transaction_id}\t{code}")


@app.command("split")
def split_cmd(
    transaction_id: Annotated[str, typer.Argument(help="Transaction id.")],
    *,
    amounts: Annotated[
        list[str],
        typer.Option("--amount", help="Allocation magnitude; repeat once per line."),
    ],
    descriptions: Annotated[
        list[str] | None,
        typer.Option("--description", help="Allocation label; repeat in --amount order."),
    ] = None,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Split a transaction into allocation lines."""

    labels = list(descriptions or [])
    allocations = [
        AllocationInput(
            amount=_parse_amount(raw),
            description=labels[i] if i < len(labels) else None,
        )
        for i, raw in enumerate(amounts)
    ]

    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        target = _find(load_transactions(session, ids=[transaction_id]), transaction_id)
        check = validate_allocations(target, allocations)
        for problem in check.errors:
            typer.echo(f"Warning: {problem}", err=True)
        try:
            result = split(target, allocations)
        except ReconciliationError as e:
            raise _fail(str(e)) from e
        save_transactions(session, [result.parent, *result.children])

    for child in result.children:
        typer.echo(_describe(child))


@app.command("unsplit")
def unsplit_cmd(
    transaction_id: Annotated[str, typer.Argument(help="Parent transaction id.")],
    *,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")
    ] = False,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Remove a split: restore the parent and delete its allocation lines."""

    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        records = load_transactions(session)
        parent = _find(records, transaction_id)
        children = [r for r in records if r.parent_id == transaction_id]
        try:
            restored = unsplit(parent, children)
        except ReconciliationError as e:
            raise _fail(str(e)) from e
        if not _confirmed(
            f"Delete {len(children)} allocation line(s) of {transaction_id}?", assume_yes=yes
        ):
            typer.echo("Aborted.")
            return
        delete_transactions(session, [c.id for c in children])
        save_transactions(session, [restored])
    typer.echo(f"restored {transaction_id}")


@app.command("orphan-children")
def orphan_children_cmd(
    *,
    action: Annotated[
        str | None,
        typer.Option(help="delete or convert the orphans; report only when omitted."),
    ] = None,
    yes: Annotated[
        bool, typer.Option("--yes", "-y", help="Do not ask for confirmation.")
    ] = False,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Report allocation lines whose parent is missing or no longer split."""

    if action not in (None, "delete", "convert"):
        raise _fail(f"unknown action {action!r}; use delete or convert")

    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        records = load_transactions(session)
        report = find_orphan_children(records)
        typer.echo(
            f"orphans={len(report.orphans)} total={format_amount(report.total_amount)} "
            f"missing_parents={len(report.missing_parent_ids)}"
        )
        for rec in report.orphans:
            typer.echo(f"  {rec.parent_id}\t{_describe(rec)}")
        if action is None or not report.orphans:
            return
        if not _confirmed(
            f"{action.capitalize()} {len(report.orphans)} orphan line(s)?", assume_yes=yes
        ):
            typer.echo("Aborted.")
            return
        converted, delete_ids = repair_orphan_children(records, action=action)
        delete_transactions(session, delete_ids)
        save_transactions(session, converted)
    past = "deleted" if action == "delete" else "converted"
    typer.echo(f"{past}={len(report.orphans)}")


@app.command("lookup")
def lookup_cmd(
    reference: Annotated[
        str, typer.Argument(help="Bank sequence number (2024-123) or a receipt file name.")
    ],
    *,
    database_url: Annotated[
        str | None, typer.Option(help="Override DATABASE_URL (falls back to env var).")
    ] = None,
) -> None:
    """Find the transaction carrying a bank sequence number."""

    sequence = sequence_from_filename(reference) or reference.strip()
    _open_store(database_url)
    with session_scope(database_url=database_url) as session:
        found = find_by_sequence(load_transactions(session), sequence)
    if found is None:
        raise _fail(f"no transaction with sequence {sequence}")
    typer.echo(_describe(found))


@app.callback(invoke_without_command=True)
def _root(ctx: typer.Context) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging()

    if ctx.invoked_subcommand is None:
        typer.echo("No subcommand provided. Use --help to see available commands.")
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m bank_reconciliation.cli`
    main()
