#!/usr/bin/env python3
"""
View stored claims from the database.

Usage:
    python view_claims.py                     # List all claims
    python view_claims.py CLM-xxx             # View specific claim details
    python view_claims.py --status submitted  # Filter by status
    python view_claims.py --route BOR286      # Filter by route
    python view_claims.py --stats             # Show statistics
"""

import argparse
import json
import sys
from datetime import datetime

from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from dutyback.routing import ClaimRoute, check_deadline, get_route_info
from dutyback.storage import get_claim_store, StoredClaim
from dutyback.wizard import ClaimStatus

console = Console()


STATUS_STYLES = {
    ClaimStatus.SUBMITTED.value: "green",
    ClaimStatus.DECIDED.value: "green",
    ClaimStatus.EXPORTED.value: "cyan",
    ClaimStatus.IDENTIFIERS_PENDING.value: "yellow",
    ClaimStatus.EVIDENCE_MISSING.value: "yellow",
    ClaimStatus.READY_FOR_REVIEW.value: "blue",
}


def format_datetime(dt_str: str) -> str:
    """Format ISO datetime to readable format."""
    if not dt_str:
        return ""
    try:
        dt = datetime.fromisoformat(dt_str.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except (ValueError, TypeError):
        return str(dt_str)[:16]


def styled_status(status: str) -> str:
    style = STATUS_STYLES.get(status)
    return f"[{style}]{status}[/{style}]" if style else status


def make_summary_table(claims: list[StoredClaim]) -> Table:
    """Create summary table with key claim info."""
    table = Table(
        title="📋 All Claims",
        box=box.ROUNDED,
        header_style="bold cyan",
    )

    table.add_column("Claim ID", style="bold")
    table.add_column("Created", style="dim")
    table.add_column("Status")
    table.add_column("Route")
    table.add_column("Channel")
    table.add_column("Claim Type")
    table.add_column("Import Date")

    for claim in claims:
        answers = claim.answers
        table.add_row(
            claim.claim_id,
            format_datetime(claim.created_at),
            styled_status(claim.status),
            claim.route or "-",
            answers.get("channel") or "",
            answers.get("claim_type") or "",
            answers.get("import_date") or "",
        )

    return table


def print_claim_detail(claim: StoredClaim):
    """Print detailed view of a single claim."""
    table = Table(box=box.ROUNDED, show_header=False, padding=(0, 1))
    table.add_column("Field", style="bold cyan", width=22)
    table.add_column("Value", overflow="fold")

    table.add_row("Status", styled_status(claim.status))
    table.add_row("Created", format_datetime(claim.created_at))
    table.add_row("Updated", format_datetime(claim.updated_at))
    if claim.notes:
        table.add_row("Notes", claim.notes)

    for key, value in claim.answers.items():
        if value in (None, [], False):
            continue
        if isinstance(value, list):
            value = ", ".join(value)
        table.add_row(key.replace("_", " ").title(), str(value))

    if claim.route:
        info = get_route_info(ClaimRoute(claim.route))
        route_result = claim.route_result or {}
        table.add_row("Route", info.name)
        table.add_row("Reason", route_result.get("reason", ""))
        table.add_row("Required Evidence", ", ".join(route_result.get("required_evidence", [])))
        table.add_row("Required Identifiers", ", ".join(route_result.get("required_identifiers", [])) or "-")

        import_date = claim.answers.get("import_date")
        deadline = check_deadline(
            info.route,
            datetime.fromisoformat(import_date).date() if import_date else None,
        )
        style = "green" if deadline.is_eligible else "red"
        table.add_row("Deadline", f"[{style}]{deadline.message}[/{style}]")

    console.print(Panel(table, title=f"Claim {claim.claim_id}", border_style="cyan"))


def print_stats(store):
    """Print database statistics."""
    table = Table(title="Database Statistics", box=box.SIMPLE_HEAVY, header_style="bold cyan")
    table.add_column("Group")
    table.add_column("Value")
    table.add_column("Count", justify="right")

    table.add_row("Total", "", str(store.count()))

    for status in ClaimStatus:
        count = store.count(status=status)
        if count > 0:
            table.add_row("Status", styled_status(status.value), str(count))

    routes: dict = {}
    for claim in store.list_all(limit=1000):
        if claim.route:
            routes[claim.route] = routes.get(claim.route, 0) + 1
    for route, count in sorted(routes.items()):
        table.add_row("Route", route, str(count))

    console.print(table)
    console.print(f"[dim]Database: {store.db_path}[/dim]")


def export_claim(claim: StoredClaim):
    """Export a claim to JSON."""
    data = {
        "claim_id": claim.claim_id,
        "status": claim.status,
        "created_at": claim.created_at,
        "updated_at": claim.updated_at,
        "route": claim.route,
        "route_result": claim.route_result,
        "answers": claim.answers,
        "notes": claim.notes,
    }
    print(json.dumps(data, indent=2))


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(description="View stored claims")
    parser.add_argument("claim_id", nargs="?", help="Specific claim ID to view")
    parser.add_argument("--status", choices=[s.value for s in ClaimStatus], help="Filter by status")
    parser.add_argument("--route", choices=[r.value for r in ClaimRoute], help="Filter by claim route")
    parser.add_argument("--stats", action="store_true", help="Show statistics")
    parser.add_argument("--export", action="store_true", help="Export claim as JSON")
    parser.add_argument("--limit", type=int, default=50, help="Max claims to list")

    args = parser.parse_args()

    store = get_claim_store()

    if args.stats:
        print_stats(store)
        return

    if args.claim_id:
        # View specific claim
        claim = store.get(args.claim_id)
        if claim:
            if args.export:
                export_claim(claim)
            else:
                print_claim_detail(claim)
        else:
            console.print(f"\n[red]Claim not found: {args.claim_id}[/red]")
            sys.exit(1)
    else:
        # List claims
        claims = store.list_all(
            status=args.status,
            route=args.route,
            limit=args.limit
        )
        if not claims:
            console.print("\n[yellow]No claims found.[/yellow]")
            return
        console.print(make_summary_table(claims))
        console.print(f"Total: {len(claims)} claim(s)")


if __name__ == "__main__":
    main()
