"""Shared utilities for all CLI command modules.

Provides the Rich console instance, the service loader, and the
coroutine runner that turns core errors into clean exits.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import IO, Any, Awaitable, NoReturn, Optional

import click
from rich.console import Console

from .. import DOCS_HOME
from ..errors import SkDocsError
from ..models import Actor, BranchStatus
from ..service import DocumentService

console = Console()
logger = logging.getLogger("skdocs.cli")

home_option = click.option(
    "--home", default=DOCS_HOME, type=click.Path(), show_default=True,
    help="SKDocs home directory.",
)
user_option = click.option(
    "--user", "user_id", envvar="SKDOCS_USER", required=True,
    help="Acting user (or set SKDOCS_USER).",
)


def load_service(home: str) -> DocumentService:
    """Build a DocumentService for the given home directory."""
    home_path = Path(home).expanduser()
    home_path.mkdir(parents=True, exist_ok=True)
    return DocumentService.from_home(home_path)


def run(coro: Awaitable[Any]) -> Any:
    """Run a coroutine, reporting core errors by code and exiting non-zero."""
    try:
        return asyncio.run(coro)
    except SkDocsError as exc:
        fail(exc)
    except ValueError as exc:
        console.print(f"[bold red]Invalid input:[/] {exc}")
        sys.exit(2)


def read_content(text: Optional[str], file: Optional[IO[str]]) -> str:
    """Content from --text, --file, or stdin, in that order."""
    if text is not None:
        return text
    if file is not None:
        return file.read()
    return click.get_text_stream("stdin").read()


def status_icon(status: BranchStatus) -> str:
    """Map branch status to a Rich-formatted indicator."""
    return {
        BranchStatus.PENDING: "[bold yellow]PENDING[/]",
        BranchStatus.MERGED: "[bold green]MERGED[/]",
        BranchStatus.REJECTED: "[bold red]REJECTED[/]",
    }.get(status, "[dim]UNKNOWN[/]")


def fail(exc: SkDocsError) -> NoReturn:
    """Report a core error by its code and exit non-zero."""
    hint = " [dim](retry later)[/]" if exc.retryable else ""
    console.print(f"[bold red]{exc.code}[/] {exc.message}{hint}")
    sys.exit(1)


def load_actor(service: DocumentService, user_id: str, create: bool = False) -> Actor:
    """Load a registered user, optionally registering them on first use."""
    if create and not service.keys.exists(user_id):
        return run(service.register_user(user_id))
    try:
        return service.actor(user_id)
    except SkDocsError as exc:
        fail(exc)
    except ValueError as exc:
        console.print(f"[bold red]Invalid input:[/] {exc}")
        sys.exit(2)
