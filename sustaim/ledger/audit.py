"""
Ledger Audit Tool: independent verification of the persisted counters.

The global totals and project counters are stored redundantly next to the
per-batch counters. This tool reloads the committed state and checks that
the redundant copies still agree:

1. total_issued == sum of batch issued amounts
2. total_burned == sum of batch burned amounts
3. project counters sum to the same two totals
4. num_projects == number of registered projects
5. no batch has burned more than it issued (warning only)

Usage:
    python -m sustaim.ledger.audit
    python -m sustaim.ledger.audit --database-url sqlite:///sustaim.db
    python -m sustaim.ledger.audit --verbose
"""

from __future__ import annotations

import argparse
import sys
import time

from rich.console import Console
from rich.table import Table

from sustaim.config import settings
from sustaim.ledger.schema import LedgerSnapshot
from sustaim.ledger.store import LedgerStore

console = Console()


def verify_state(snapshot: LedgerSnapshot) -> tuple[bool, int, list[str]]:
    """
    Check the redundant counters of `snapshot` against each other.

    Returns:
        Tuple of (is_valid, checks_run, messages). Warnings are reported in
        `messages` with a "warning:" prefix and do not invalidate the state.
    """
    messages: list[str] = []
    checks = 0
    valid = True

    def expect(condition: bool, message: str) -> None:
        nonlocal checks, valid
        checks += 1
        if not condition:
            valid = False
            messages.append(message)

    batch_issued = sum(b.issued_amount for b in snapshot.batch_buckets.values())
    batch_burned = sum(b.burned_amount for b in snapshot.batch_buckets.values())
    project_issued = sum(b.issued_amount for b in snapshot.project_buckets.values())
    project_burned = sum(b.burned_amount for b in snapshot.project_buckets.values())

    expect(
        snapshot.total_issued == batch_issued,
        f"total_issued {snapshot.total_issued} != batch sum {batch_issued}",
    )
    expect(
        snapshot.total_burned == batch_burned,
        f"total_burned {snapshot.total_burned} != batch sum {batch_burned}",
    )
    expect(
        snapshot.total_issued == project_issued,
        f"total_issued {snapshot.total_issued} != project sum {project_issued}",
    )
    expect(
        snapshot.total_burned == project_burned,
        f"total_burned {snapshot.total_burned} != project sum {project_burned}",
    )
    expect(
        snapshot.num_projects == len(snapshot.projects),
        f"num_projects {snapshot.num_projects} != {len(snapshot.projects)} registered",
    )

    for batch_id, bucket in sorted(snapshot.batch_buckets.items()):
        checks += 1
        if bucket.burned_amount > bucket.issued_amount:
            messages.append(
                f"warning: batch {batch_id} burned {bucket.burned_amount} "
                f"> issued {bucket.issued_amount}"
            )

    return valid, checks, messages


def run_audit(database_url: str, verbose: bool = False) -> bool:
    """
    Run a full counter consistency audit.

    Args:
        database_url: SQLAlchemy connection string.
        verbose: Print per-batch counters if True.

    Returns:
        True if the persisted state is consistent, False otherwise.
    """
    console.print("\n[bold blue]═══ Sustaim Ledger Audit ═══[/bold blue]\n")

    store = LedgerStore(database_url)
    store.initialize()
    snapshot = store.load()

    if snapshot is None:
        console.print("[yellow]⚠ Ledger is empty, nothing to verify[/yellow]")
        return True

    console.print(f"  Projects: [bold]{snapshot.num_projects}[/bold]")
    console.print(f"  Batches: [bold]{len(snapshot.batch_buckets)}[/bold]")
    console.print(f"  Total issued: [bold]{snapshot.total_issued}[/bold]")
    console.print(f"  Total burned: [bold]{snapshot.total_burned}[/bold]")

    console.print("  Verifying counters...", end=" ")
    start_time = time.time()
    is_valid, checks_run, messages = verify_state(snapshot)
    elapsed = time.time() - start_time

    if is_valid:
        console.print("[bold green]✓ CONSISTENT[/bold green]")
    else:
        console.print("[bold red]✗ INCONSISTENT[/bold red]")
    console.print(f"  Checks run: [bold]{checks_run}[/bold] in {elapsed:.3f}s")
    for message in messages:
        style = "yellow" if message.startswith("warning:") else "red"
        console.print(f"  [{style}]{message}[/{style}]")

    if verbose:
        console.print("\n[bold]Batch Counters:[/bold]")
        table = Table(show_lines=True)
        table.add_column("Batch", style="cyan")
        table.add_column("Project", style="green")
        table.add_column("Issued", justify="right")
        table.add_column("Burned", justify="right")
        table.add_column("Outstanding", justify="right", style="yellow")

        for batch_id, bucket in sorted(snapshot.batch_buckets.items()):
            table.add_row(
                str(batch_id),
                str(snapshot.batch_projects.get(batch_id, 0)),
                str(bucket.issued_amount),
                str(bucket.burned_amount),
                str(bucket.outstanding),
            )
        console.print(table)

    console.print("\n[bold blue]═══ Audit Complete ═══[/bold blue]\n")
    return is_valid


def main() -> None:
    parser = argparse.ArgumentParser(description="Sustaim ledger counter auditor")
    parser.add_argument(
        "--database-url",
        default=None,
        help="SQLAlchemy connection string (defaults to .env settings)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show per-batch counters",
    )
    args = parser.parse_args()

    is_valid = run_audit(args.database_url or settings.database_url, verbose=args.verbose)
    sys.exit(0 if is_valid else 1)


if __name__ == "__main__":
    main()
