"""Branch commands: propose, list, show, merge, reject, expire."""

from __future__ import annotations

import click
from rich.table import Table

from ..models import BranchStatus
from ._common import (
    console,
    home_option,
    load_actor,
    load_service,
    read_content,
    run,
    status_icon,
    user_option,
)


def register_branch_commands(main: click.Group) -> None:
    """Register the branch command group."""

    @main.group()
    def branch():
        """Propose edits to shared documents and resolve them."""

    @branch.command("propose")
    @click.argument("doc_id")
    @home_option
    @user_option
    @click.option("--text", default=None, help="Proposed content; otherwise --file or stdin.")
    @click.option("--file", "file", type=click.File("r"), default=None)
    def branch_propose(doc_id, home, user_id, text, file):
        """Propose new content for DOC_ID as a pending branch."""
        service = load_service(home)
        content = read_content(text, file)
        branch_id = run(service.propose_branch(doc_id, content, load_actor(service, user_id)))
        console.print(f"\n  Proposed [yellow]{branch_id}[/] on [cyan]{doc_id}[/]\n")

    @branch.command("list")
    @click.argument("doc_id")
    @home_option
    @user_option
    @click.option(
        "--status", type=click.Choice([s.value for s in BranchStatus]), default=None,
        help="Only show branches in this state.",
    )
    def branch_list(doc_id, home, user_id, status):
        """List branches proposed on DOC_ID."""
        service = load_service(home)
        branches = run(service.list_branches(
            doc_id, load_actor(service, user_id), BranchStatus(status) if status else None,
        ))
        if not branches:
            console.print("[dim]No branches.[/]")
            return

        table = Table(title=f"Branches on {doc_id}")
        table.add_column("ID", style="yellow")
        table.add_column("Author")
        table.add_column("Status")
        table.add_column("Parent", justify="right")
        table.add_column("Created", style="dim")
        table.add_column("Reason", style="dim")
        for b in branches:
            table.add_row(
                b.id,
                b.created_by,
                status_icon(b.status),
                f"v{b.parent_version}",
                b.created_at.strftime("%Y-%m-%d %H:%M"),
                b.reason or "",
            )
        console.print(table)

    @branch.command("show")
    @click.argument("doc_id")
    @click.argument("branch_id")
    @home_option
    @user_option
    def branch_show(doc_id, branch_id, home, user_id):
        """Print a branch's proposed content."""
        service = load_service(home)
        text = run(service.read_branch(doc_id, branch_id, load_actor(service, user_id)))
        click.echo(text, nl=False)

    @branch.command("merge")
    @click.argument("doc_id")
    @click.argument("branch_id")
    @home_option
    @user_option
    def branch_merge(doc_id, branch_id, home, user_id):
        """Merge BRANCH_ID into DOC_ID (owner only)."""
        service = load_service(home)
        doc = run(service.merge(doc_id, branch_id, load_actor(service, user_id)))
        console.print(f"\n  Merged [yellow]{branch_id}[/] into [cyan]{doc_id}[/], now v{doc.version}\n")

    @branch.command("reject")
    @click.argument("doc_id")
    @click.argument("branch_id")
    @home_option
    @user_option
    @click.option("--reason", default=None, help="Why the branch was rejected.")
    def branch_reject(doc_id, branch_id, home, user_id, reason):
        """Reject BRANCH_ID on DOC_ID (owner only)."""
        service = load_service(home)
        run(service.reject(doc_id, branch_id, load_actor(service, user_id), reason))
        console.print(f"\n  Rejected [yellow]{branch_id}[/]\n")

    @branch.command("expire")
    @click.argument("doc_id")
    @home_option
    @user_option
    def branch_expire(doc_id, home, user_id):
        """Reject pending branches older than the configured expiry."""
        service = load_service(home)
        expired = run(service.expire_branches(doc_id, load_actor(service, user_id)))
        console.print(f"\n  Expired {len(expired)} branch(es)\n")
