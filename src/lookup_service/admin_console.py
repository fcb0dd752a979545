"""
Operator console for the lookup orchestrator.
Rich-based tables for slot status and statistics, plus admin actions
(set global slot, rotate, replace a key) and one-off lookups.
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from lookup_rotator import LookupOrchestrator, LookupRotatorError, load_lookup_config
from lookup_rotator.credential_store import SlotStatus
from lookup_rotator.error_handler import AllProvidersFailedError
from lookup_rotator.models import LookupOutcome
from lookup_rotator.utils.paths import get_default_root

console = Console()


def render_slots(provider: str, rows: List[SlotStatus], out: Console = console) -> Table:
    table = Table(title=f"{provider} credential slots")
    table.add_column("Slot", justify="right")
    table.add_column("Variable")
    table.add_column("Configured")
    table.add_column("Key")
    table.add_column("Active")
    for row in rows:
        table.add_row(
            str(row.slot),
            row.env_name or "-",
            "[green]yes[/green]" if row.configured else "[red]no[/red]",
            row.masked,
            "[bold cyan]*[/bold cyan]" if row.is_active_globally else "",
        )
    out.print(table)
    return table


def render_stats(stats: Dict[str, Any], out: Console = console) -> None:
    creds = Table(title="Credentials")
    for column in ("Provider", "Total", "Configured", "Active", "Available"):
        creds.add_column(column)
    for name, row in stats["credentials"].items():
        creds.add_row(
            name,
            str(row["total"]),
            str(row["configured"]),
            str(row["active"]),
            str(row["available"]),
        )
    out.print(creds)

    budgets = Table(title="Rate budgets")
    for column in ("Provider", "Used", "Limit", "Remaining"):
        budgets.add_column(column)
    for name, row in stats["rate_limits"].items():
        limit = row.get("limit")
        budgets.add_row(
            name,
            str(row["used"]),
            str(limit) if limit is not None else "unlimited",
            str(row["remaining"]) if row.get("remaining") is not None else "-",
        )
    out.print(budgets)

    caches = Table(title="Caches")
    for column in ("Capability", "Entries", "Fresh", "Hits", "Misses"):
        caches.add_column(column)
    for name, row in stats["caches"].items():
        caches.add_row(
            name, str(row["entries"]), str(row["fresh"]), str(row["hits"]), str(row["misses"])
        )
    out.print(caches)


def render_outcome(outcome: LookupOutcome, out: Console = console) -> None:
    lines = [
        f"{key}: {value}"
        for key, value in outcome.result.to_dict().items()
        if value not in (None, [], "")
    ]
    source = "cache" if outcome.from_cache else outcome.provider
    out.print(
        Panel("\n".join(lines), title=f"{outcome.capability} {outcome.subject}", subtitle=source)
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Lookup orchestrator admin console")
    parser.add_argument("--data-dir", type=str, default=None)
    parser.add_argument("--config", type=str, default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    slots = sub.add_parser("slots", help="Show the credential slots of a provider.")
    slots.add_argument("provider")

    sub.add_parser("stats", help="Show slot, rate budget and cache statistics.")

    rotate = sub.add_parser("rotate", help="Move a provider to its next configured slot.")
    rotate.add_argument("provider")

    set_global = sub.add_parser("set-global", help="Select a provider's global slot.")
    set_global.add_argument("provider")
    set_global.add_argument("slot", type=int)

    set_key = sub.add_parser("set-key", help="Replace the key stored in a slot.")
    set_key.add_argument("provider")
    set_key.add_argument("slot", type=int)

    lookup = sub.add_parser("lookup", help="Run a single lookup.")
    lookup.add_argument("capability")
    lookup.add_argument("subject")
    lookup.add_argument("--caller", default=None)

    sub.add_parser("purge-cache", help="Drop expired cache entries.")
    return parser


async def run_command(args: argparse.Namespace, orchestrator: LookupOrchestrator) -> int:
    """Execute one parsed command. Returns the process exit code."""
    try:
        if args.command == "slots":
            render_slots(args.provider, orchestrator.list_slots(args.provider))
        elif args.command == "stats":
            render_stats(orchestrator.stats())
        elif args.command == "rotate":
            new_slot = orchestrator.rotate(args.provider)
            console.print(f"[green]{args.provider} now uses slot {new_slot}[/green]")
        elif args.command == "set-global":
            orchestrator.set_global_slot(args.provider, args.slot)
            console.print(f"[green]{args.provider} global slot set to {args.slot}[/green]")
        elif args.command == "set-key":
            secret = Prompt.ask(f"New key for {args.provider} slot {args.slot}", password=True)
            orchestrator.replace_credential(args.provider, args.slot, secret.strip())
            console.print(f"[green]Key for {args.provider} slot {args.slot} replaced[/green]")
        elif args.command == "lookup":
            outcome = await orchestrator.resolve(args.capability, args.subject, args.caller)
            render_outcome(outcome)
        elif args.command == "purge-cache":
            for name, count in orchestrator.purge_expired_cache().items():
                console.print(f"{name}: {count} expired entries removed")
    except AllProvidersFailedError as e:
        console.print(f"[red]{e.build_log_message()}[/red]")
        return 2
    except LookupRotatorError as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    return 0


async def _amain(args: argparse.Namespace, root: Path) -> int:
    orchestrator = LookupOrchestrator.from_config(
        load_lookup_config(args.config),
        env_vars=os.environ,
        data_dir=root,
        env_file=root / ".env",
    )
    async with orchestrator:
        return await run_command(args, orchestrator)


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    root = Path(args.data_dir).expanduser() if args.data_dir else get_default_root()
    load_dotenv(root / ".env")
    sys.exit(asyncio.run(_amain(args, root)))


if __name__ == "__main__":
    main()
