"""Import command for apimirror."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from ..mirror.exceptions import StructuralError
from ..mirror.manager import ImportManager
from ..mirror.models import ResourceKind
from ..utils.config import Config
from ..utils.logging_config import setup_logging
from .common import (
    build_client,
    console,
    display_run_summary,
    kinds_option,
    log_file_option,
    resource_group_option,
    service_option,
    subscription_option,
    token_option,
    verbose_option,
    workers_option,
)

config = Config()


def import_snapshot(
    input_path: Path = typer.Argument(..., help="Snapshot directory to replay"),
    subscription: str = subscription_option(),
    resource_group: str = resource_group_option(),
    service: str = service_option(),
    kinds: Optional[str] = kinds_option(
        "Comma-separated kinds to import (named_values,loggers,backends,apis,products,all)"
    ),
    links: Optional[Path] = typer.Option(
        None, "--links", "-l", help="CSV file of fromId,toId rows linking APIs into products"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Validate the snapshot and report without writing to the target"
    ),
    workers: Optional[int] = workers_option(),
    token: Optional[str] = token_option(),
    output_format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
    log_file: Optional[str] = log_file_option(),
    verbose: bool = verbose_option(),
):
    """Import a snapshot directory into an API Management service.

    Resources are created or replaced by id in dependency order; API to
    product links are applied last. Per-resource failures are reported in the
    summary and do not change the exit status.

    Examples:
        # Replay a snapshot
        $ apimirror import ./snapshot -s <subscription> -g target-rg -n target-apim

        # Check a snapshot without touching the target
        $ apimirror import ./snapshot -s <subscription> -g target-rg -n target-apim --dry-run
    """
    setup_logging(verbose=verbose, log_file=log_file)

    try:
        resource_kinds = (
            ResourceKind.parse_list(kinds) if kinds else config.get_resource_kinds("import")
        )
        settings = config.get_mirror_settings(max_workers=workers)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    client = build_client(config, subscription, resource_group, service, token, settings)
    manager = ImportManager(
        client,
        input_path,
        kinds=resource_kinds,
        settings=settings,
        links_file=links,
        dry_run=dry_run,
    )

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Importing into {service}...", total=None)
            summary = manager.import_snapshot()
    except StructuralError as e:
        console.print(f"[red]Import failed: {e}[/red]")
        raise typer.Exit(1)
    finally:
        client.close()

    if output_format.lower() == "json":
        console.print_json(json.dumps(summary.to_dict()))
    else:
        title = f"Import of {input_path} into {service}"
        if dry_run:
            title += " (dry run)"
        display_run_summary(summary, title)
