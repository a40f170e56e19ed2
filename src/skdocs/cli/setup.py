"""Setup commands: init, audit."""

from __future__ import annotations

from pathlib import Path

import click
from rich.panel import Panel
from rich.table import Table

from ..audit import AuditEvent, AuditLog
from ..config import CONFIG_RELPATH, DocsConfig, save_config
from ._common import console, home_option, load_service, run


def register_setup_commands(main: click.Group) -> None:
    """Register top-level setup commands."""

    @main.command("init")
    @click.argument("user_id")
    @home_option
    def init(user_id, home):
        """Create USER_ID's ephemeral key pair and publish its public half."""
        home_path = Path(home).expanduser()
        if not (home_path / CONFIG_RELPATH).exists():
            save_config(home_path, DocsConfig())

        service = load_service(home)
        actor = run(service.register_user(user_id))

        console.print()
        console.print(
            Panel(
                f"User: [cyan]{user_id}[/]\n"
                f"Ephemeral public key: [dim]{actor.key_pair.public}[/]\n"
                f"Store: [bold]{service.store.name}[/]\n"
                f"Merge policy: [bold]{service.config.staleness_policy.value}[/]",
                title="SKDocs initialized",
                border_style="green",
            )
        )
        console.print()

    @main.command("audit")
    @home_option
    @click.option("--doc", "doc_id", default=None, help="Only entries for this document.")
    @click.option(
        "--event", type=click.Choice([e.value for e in AuditEvent]), default=None,
        help="Only entries of this event type.",
    )
    @click.option("--limit", default=20, show_default=True, help="Most recent entries to show.")
    def audit(home, doc_id, event, limit):
        """Show the most recent audit log entries."""
        entries = AuditLog(Path(home).expanduser()).entries(
            doc_id=doc_id, event=AuditEvent(event) if event else None, limit=limit,
        )
        if not entries:
            console.print("[dim]No audit entries.[/]")
            return

        table = Table(title="Audit log")
        table.add_column("When", style="dim")
        table.add_column("Event", style="cyan", no_wrap=True)
        table.add_column("Doc", style="dim", overflow="fold")
        table.add_column("Actor")
        table.add_column("Detail")
        for e in entries:
            table.add_row(
                e.at.strftime("%Y-%m-%d %H:%M:%S"), e.event.value, e.doc_id or "", e.actor or "", e.detail,
            )
        console.print(table)
