"""
Event Ledger Audit Tool — independent chain verification from the command line.

Opens the event database directly (no running service needed), recomputes
every hash in the chain and prints a per-event-type summary. Optionally lists
entries, filtered by event type, by the caller address that emitted them,
or by both.

Usage:
    python -m authority_ledger.ledger.audit
    python -m authority_ledger.ledger.audit --database-url sqlite:///events.db
    python -m authority_ledger.ledger.audit --list --event-type document_submitted
    python -m authority_ledger.ledger.audit --list --actor 0xaaaa... --limit 20
    python -m authority_ledger.ledger.audit --list --event-type position_revoked --actor 0xaaaa...
"""

from __future__ import annotations

import argparse
import sys
import time

from rich.console import Console
from rich.table import Table

from authority_ledger.config import settings
from authority_ledger.ledger.models import EventEntryDB
from authority_ledger.ledger.service import EventLedgerService

console = Console()


def _summary_table(counts: dict[str, int]) -> Table:
    table = Table(title="Events by type")
    table.add_column("Event type", style="green")
    table.add_column("Count", justify="right")
    for event_type, count in counts.items():
        table.add_row(event_type, str(count))
    return table


def _entry_table(entries: list[EventEntryDB]) -> Table:
    table = Table(show_lines=True)
    table.add_column("Seq", style="cyan", justify="right")
    table.add_column("Event", style="green")
    table.add_column("Actor", style="yellow")
    table.add_column("Subject")
    table.add_column("Hash", style="dim")
    table.add_column("Emitted (UTC)")
    for entry in sorted(entries, key=lambda e: e.sequence_number):
        content = entry.content or {}
        subject = content.get("division_id") or content.get("address") or content.get("new_admin") or ""
        table.add_row(
            str(entry.sequence_number),
            entry.event_type,
            entry.actor,
            str(subject),
            entry.entry_hash[:12],
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
        )
    return table


def run_audit(
    database_url: str,
    list_entries: bool = False,
    event_type: str | None = None,
    actor: str | None = None,
    limit: int = 100,
) -> bool:
    """
    Verify the event chain and report on it.

    Args:
        database_url: SQLAlchemy connection string.
        list_entries: Also print matching entries.
        event_type: Only list entries of this type.
        actor: Only list entries emitted by this address. Combines with
            event_type when both are given.
        limit: Maximum number of entries to list.

    Returns:
        True if the chain verifies.
    """
    ledger = EventLedgerService(database_url)
    console.rule("[bold blue]Event ledger audit")
    console.print(f"Database: {database_url}")

    if ledger.get_entry_count() == 0:
        console.print("[yellow]Ledger is empty; nothing to verify[/yellow]")
        return True

    started = time.perf_counter()
    is_valid, verified, message = ledger.verify_chain()
    elapsed = time.perf_counter() - started

    if is_valid:
        console.print(f"[bold green]VALID[/bold green] {verified} entries in {elapsed:.3f}s")
    else:
        console.print(f"[bold red]INVALID[/bold red] at position {verified}: {message}")

    console.print(_summary_table(ledger.count_by_type()))

    if list_entries:
        entries = ledger.find_entries(event_type=event_type, actor=actor, limit=limit)
        console.print(_entry_table(entries))

    return is_valid


def main() -> None:
    parser = argparse.ArgumentParser(description="Verify the document authority event ledger")
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="SQLAlchemy connection string (default: from settings)",
    )
    parser.add_argument("--list", dest="list_entries", action="store_true", help="List entries")
    parser.add_argument("--event-type", help="Only list entries of this event type")
    parser.add_argument("--actor", help="Only list entries emitted by this address")
    parser.add_argument("--limit", type=int, default=100, help="Maximum entries to list")
    args = parser.parse_args()

    ok = run_audit(
        args.database_url,
        list_entries=args.list_entries,
        event_type=args.event_type,
        actor=args.actor,
        limit=args.limit,
    )
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
