#!/usr/bin/env python3
"""
View contractor links and scope sheets from the database.

Usage:
    python view_scope_sheets.py                    # Summary of all scope sheets
    python view_scope_sheets.py --claim claim-1    # Only one claim
    python view_scope_sheets.py --drafts           # Drafts only
    python view_scope_sheets.py --submitted        # Final submissions only
    python view_scope_sheets.py --detail           # One panel per sheet with its areas
    python view_scope_sheets.py --links            # Contractor links
"""

import argparse
import os
import sys
from datetime import datetime

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from src.storage import ScopeSheetStore, StoredMagicLink, StoredScopeSheet
from src.wizard.catalog import get_category
from src.wizard.encoding import decode_phase

console = Console()


def format_datetime(dt_str: str) -> str:
    """Format ISO datetime to readable format."""
    if not dt_str:
        return ""
    try:
        dt = datetime.fromisoformat(dt_str.replace("Z", "+00:00"))
        return dt.strftime("%Y-%m-%d %H:%M")
    except (ValueError, TypeError):
        return str(dt_str)[:16]


def truncate(text: str, max_len: int = 50) -> str:
    """Truncate text with ellipsis."""
    if not text:
        return ""
    text = str(text)
    if len(text) > max_len:
        return text[:max_len-3] + "..."
    return text


def describe_step(sheet: StoredScopeSheet) -> str:
    if not sheet.is_draft:
        return "[green]submitted[/green]"
    phase = decode_phase(sheet.draft_step)
    label = phase.name.value
    if label == "tour":
        label = f"tour {phase.index + 1}/{len(sheet.areas)}"
    return f"[yellow]{label}[/yellow]"


def make_summary_table(sheets: list[StoredScopeSheet]) -> Table:
    """Create summary table with key scope sheet info."""
    table = Table(
        title="Scope Sheets",
        box=box.ROUNDED,
        header_style="bold cyan",
        show_lines=True,
    )

    table.add_column("Claim", style="bold")
    table.add_column("Updated", style="dim")
    table.add_column("Stage")
    table.add_column("Rev", justify="right")
    table.add_column("Areas")
    table.add_column("Photos", justify="right")
    table.add_column("Notes")

    for sheet in sheets:
        labels = []
        photos = 0
        for area in sheet.areas:
            category = get_category(area.get("category_key", ""))
            labels.append(category.label if category else area.get("category_key", "?"))
            photos += len(area.get("photo_ids") or [])

        table.add_row(
            sheet.claim_id,
            format_datetime(sheet.updated_at),
            describe_step(sheet),
            str(sheet.revision) if sheet.is_draft else "-",
            truncate(", ".join(labels), 40),
            str(photos),
            truncate(sheet.general_notes or "", 30),
        )

    return table


def show_sheet_detail(sheet: StoredScopeSheet) -> None:
    """Print one scope sheet with a table per area."""
    kind = "Draft" if sheet.is_draft else "Submission"
    console.print(Panel(f"[bold cyan]{kind} for claim {sheet.claim_id}[/bold cyan]", expand=False))
    console.print(f"  Stage: {describe_step(sheet)}")
    console.print(f"  Updated: {format_datetime(sheet.updated_at)}")
    if sheet.submitted_at:
        console.print(f"  Submitted: {format_datetime(sheet.submitted_at)}")

    for area in sheet.areas:
        category = get_category(area.get("category_key", ""))
        table = Table(
            title=category.label if category else area.get("category_key", "?"),
            box=box.ROUNDED,
            show_header=False,
            padding=(0, 1),
        )
        table.add_column("Field", style="bold cyan", width=14)
        table.add_column("Value", overflow="fold")

        tags = area.get("tags") or []
        table.add_row("Tags", ", ".join(t.replace("_", " ") for t in tags) or "-")
        dimensions = area.get("dimensions") or {}
        table.add_row(
            "Dimensions",
            ", ".join(f"{k}: {v:g}" for k, v in dimensions.items()) or "-",
        )
        table.add_row("Photos", str(len(area.get("photo_ids") or [])))
        table.add_row("Notes", area.get("notes") or "-")
        console.print(table)

    if sheet.general_notes:
        console.print(f"\n[bold]General notes[/bold]: {sheet.general_notes}")
    console.print()


def make_links_table(links: list[StoredMagicLink]) -> Table:
    table = Table(title="Contractor Links", box=box.ROUNDED, header_style="bold cyan")
    table.add_column("Claim", style="bold")
    table.add_column("Contractor")
    table.add_column("Email")
    table.add_column("Status")
    table.add_column("Expires", style="dim")

    for link in links:
        status = "[green]completed[/green]" if link.status == "completed" else link.status
        table.add_row(
            link.claim_id,
            truncate(link.contractor_name, 20),
            truncate(link.contractor_email, 30),
            status,
            format_datetime(link.expires_at),
        )
    return table


def main():
    parser = argparse.ArgumentParser(description="View stored scope sheets")
    parser.add_argument("--claim", help="Only show this claim")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--drafts", action="store_true", help="Only drafts")
    group.add_argument("--submitted", action="store_true", help="Only final submissions")
    parser.add_argument("--detail", action="store_true", help="Show each sheet's areas")
    parser.add_argument("--links", action="store_true", help="Show contractor links")
    parser.add_argument("--limit", type=int, default=50, help="Max rows")
    args = parser.parse_args()

    store = ScopeSheetStore()
    console.print(f"\n[bold]Database:[/bold] {store.db_path.resolve()}\n")

    if args.links:
        links = store.list_links(claim_id=args.claim, limit=args.limit)
        if not links:
            console.print("[yellow]No contractor links yet.[/yellow]")
            return
        console.print(make_links_table(links))
        return

    is_draft = True if args.drafts else False if args.submitted else None
    sheets = store.list_sheets(claim_id=args.claim, is_draft=is_draft, limit=args.limit)
    if not sheets:
        console.print("[yellow]No scope sheets yet.[/yellow]")
        return

    if args.detail:
        for sheet in sheets:
            show_sheet_detail(sheet)
    else:
        console.print(make_summary_table(sheets))
        console.print(f"\nTotal: {len(sheets)} scope sheet(s)")


if __name__ == "__main__":
    main()
