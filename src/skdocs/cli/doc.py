"""Document commands: new, cat, write, share, revoke, publish, unpublish, open-link, list, rm, inbox."""

from __future__ import annotations

import click
from rich.table import Table

from ..keys import encode_key
from ..models import AccessLevel
from ..router import WriteRoute
from ..service import ShareLink
from ._common import (
    console,
    home_option,
    load_actor,
    load_service,
    read_content,
    run,
    user_option,
)


def register_doc_commands(main: click.Group) -> None:
    """Register the doc command group."""

    @main.group()
    def doc():
        """Create, read, write, and share encrypted documents."""

    @doc.command("new")
    @home_option
    @user_option
    @click.option("--title", default="", help="Document title (stored unencrypted).")
    @click.option("--tag", "tags", multiple=True, help="Tag (repeatable).")
    @click.option("--text", default=None, help="Content; otherwise --file or stdin.")
    @click.option("--file", "file", type=click.File("r"), default=None)
    @click.option("--show-key", is_flag=True, help="Print the encoded document key.")
    def doc_new(home, user_id, title, tags, text, file, show_key):
        """Create a new encrypted document."""
        service = load_service(home)
        actor = load_actor(service, user_id, create=True)
        content = read_content(text, file)
        doc_id, key = run(service.create_document(content, actor, title=title, tags=list(tags)))

        console.print(f"\n  Created [cyan]{doc_id}[/]")
        if show_key:
            console.print(f"  Key: [dim]{encode_key(key)}[/]")
        console.print()

    @doc.command("cat")
    @click.argument("doc_id")
    @home_option
    @user_option
    def doc_cat(doc_id, home, user_id):
        """Print a document's decrypted content."""
        service = load_service(home)
        text = run(service.open_document(doc_id, load_actor(service, user_id)))
        click.echo(text, nl=False)

    @doc.command("write")
    @click.argument("doc_id")
    @home_option
    @user_option
    @click.option("--text", default=None, help="New content; otherwise --file or stdin.")
    @click.option("--file", "file", type=click.File("r"), default=None)
    def doc_write(doc_id, home, user_id, text, file):
        """Commit new content (direct write when solo, a branch when shared)."""
        service = load_service(home)
        content = read_content(text, file)
        result = run(service.write_document(doc_id, content, load_actor(service, user_id)))

        if result.route == WriteRoute.LAST_WRITE_WINS:
            console.print(f"\n  Saved [cyan]{doc_id}[/] [dim]v{result.version}[/]\n")
        else:
            console.print(
                f"\n  Proposed branch [yellow]{result.branch_id}[/] "
                f"on [cyan]{doc_id}[/], waiting for the owner to merge\n"
            )

    @doc.command("share")
    @click.argument("doc_id")
    @click.argument("recipient")
    @home_option
    @user_option
    @click.option(
        "--access", type=click.Choice([a.value for a in AccessLevel]),
        default=AccessLevel.READ.value, show_default=True,
    )
    def doc_share(doc_id, recipient, home, user_id, access):
        """Share DOC_ID with RECIPIENT by wrapping its key for them."""
        service = load_service(home)
        run(service.share_with(doc_id, recipient, access, load_actor(service, user_id)))
        console.print(f"\n  Shared [cyan]{doc_id}[/] with [bold]{recipient}[/] ({access})\n")

    @doc.command("revoke")
    @click.argument("doc_id")
    @click.argument("recipient")
    @home_option
    @user_option
    def doc_revoke(doc_id, recipient, home, user_id):
        """Revoke RECIPIENT's future access to DOC_ID."""
        service = load_service(home)
        had = run(service.revoke(doc_id, recipient, load_actor(service, user_id)))
        if had:
            console.print(f"\n  Revoked [bold]{recipient}[/] from [cyan]{doc_id}[/]\n")
        else:
            console.print(f"\n  [yellow]{recipient} had no access to {doc_id}[/]\n")

    @doc.command("publish")
    @click.argument("doc_id")
    @home_option
    @user_option
    def doc_publish(doc_id, home, user_id):
        """Make DOC_ID readable by anyone holding its share link."""
        service = load_service(home)
        link = run(service.make_public(doc_id, load_actor(service, user_id)))
        console.print("\n  Share link fragment (keep the key part private):")
        click.echo(link.as_fragment())

    @doc.command("unpublish")
    @click.argument("doc_id")
    @home_option
    @user_option
    def doc_unpublish(doc_id, home, user_id):
        """Withdraw DOC_ID's share link."""
        service = load_service(home)
        run(service.make_private(doc_id, load_actor(service, user_id)))
        console.print(f"\n  [cyan]{doc_id}[/] is private again\n")

    @doc.command("open-link")
    @click.argument("fragment")
    @home_option
    def doc_open_link(fragment, home):
        """Read a public document from a share link fragment."""
        service = load_service(home)
        try:
            link = ShareLink.parse(fragment)
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="FRAGMENT") from exc
        click.echo(run(service.read_shared(link.token, link.key)), nl=False)

    @doc.command("list")
    @home_option
    @user_option
    def doc_list(home, user_id):
        """List documents you own or collaborate on."""
        service = load_service(home)
        docs = run(service.list_documents(user_id))
        if not docs:
            console.print("[dim]No documents.[/]")
            return

        table = Table(title=f"Documents for {user_id}")
        table.add_column("ID", style="cyan")
        table.add_column("Title")
        table.add_column("Owner")
        table.add_column("Version", justify="right")
        table.add_column("Shared with")
        table.add_column("Updated", style="dim")
        for d in sorted(docs, key=lambda d: d.metadata.updated_at, reverse=True):
            table.add_row(
                d.id,
                d.metadata.title or "[dim]untitled[/]",
                d.sharing.owner,
                str(d.version),
                ", ".join(sorted(d.sharing.collaborators)) or ("public" if d.sharing.is_public else "-"),
                d.metadata.updated_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    @doc.command("rm")
    @click.argument("doc_id")
    @home_option
    @user_option
    @click.confirmation_option(prompt="Delete this document and all its branches?")
    def doc_rm(doc_id, home, user_id):
        """Delete DOC_ID along with its key, branches, and shares."""
        service = load_service(home)
        run(service.delete_document(doc_id, load_actor(service, user_id)))
        console.print(f"\n  Deleted [cyan]{doc_id}[/]\n")

    @doc.command("inbox")
    @home_option
    @user_option
    def doc_inbox(home, user_id):
        """Documents other users have shared with you."""
        service = load_service(home)
        notes = run(service.shared_with_me(load_actor(service, user_id)))
        if not notes:
            console.print("[dim]Nothing shared with you yet.[/]")
            return
        for n in notes:
            console.print(
                f"  [cyan]{n.doc_id}[/] from [bold]{n.sender}[/] "
                f"({n.access.value}) [dim]{n.shared_at:%Y-%m-%d %H:%M}[/]"
            )
