#!/usr/bin/env python3
"""
apimirror - API Management configuration mirror

A CLI tool for exporting an API Management service into a portable snapshot
and replaying that snapshot into another service.
"""

import typer
from rich.console import Console

from . import __version__
from .commands import config
from .commands.export import export_snapshot
from .commands.import_snapshot import import_snapshot

app = typer.Typer(
    help="apimirror - Export and import API Management service configuration snapshots.",
    add_completion=True,
    no_args_is_help=True,
)
console = Console()

# Add subcommands
app.command("export")(export_snapshot)
app.command("import")(import_snapshot)
app.add_typer(config.app, name="config")


# Add version command
@app.command()
def version():
    """Show the application version and exit."""
    console.print(f"apimirror version: {__version__}")
    raise typer.Exit()


if __name__ == "__main__":
    app()
