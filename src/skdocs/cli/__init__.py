"""
SKDocs CLI — encrypted documents from the command line.

Each command group lives in its own module and is registered onto the
main Click group here.

Entry point: skdocs.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="skdocs")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
def main(verbose):
    """SKDocs — end-to-end encrypted documents.

    Your words. Your keys. Your merge button.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .setup import register_setup_commands
from .doc import register_doc_commands
from .branch import register_branch_commands

register_setup_commands(main)
register_doc_commands(main)
register_branch_commands(main)
