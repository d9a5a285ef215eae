"""Export command for apimirror."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.progress import Progress, SpinnerColumn, TextColumn

from .. import __version__
from ..mirror.exceptions import StructuralError
from ..mirror.manager import ExportManager
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


def export_snapshot(
    output_path: Path = typer.Argument(..., help="Directory the snapshot is written to"),
    subscription: str = subscription_option(),
    resource_group: str = resource_group_option(),
    service: str = service_option(),
    kinds: Optional[str] = kinds_option(
        "Comma-separated kinds to export (apis,products,backends,loggers,named_values,all)"
    ),
    include_secrets: Optional[bool] = typer.Option(
        None,
        "--include-secrets/--skip-secrets",
        help="Keep secret named values as placeholders with their value cleared",
    ),
    definition_format: Optional[str] = typer.Option(
        None, "--definition-format", help="Export format requested for API definitions"
    ),
    workers: Optional[int] = workers_option(),
    token: Optional[str] = token_option(),
    output_format: str = typer.Option("table", "--format", "-f", help="Output format: table or json"),
    log_file: Optional[str] = log_file_option(),
    verbose: bool = verbose_option(),
):
    """Export an API Management service into a snapshot directory.

    Writes one directory per resource with its entity document, policy and
    (for APIs) interface definition. Secret values are never written.

    Examples:
        # Export everything
        $ apimirror export ./snapshot -s <subscription> -g my-rg -n my-apim

        # Export only APIs and products
        $ apimirror export ./snapshot -s <subscription> -g my-rg -n my-apim --kinds apis,products
    """
    setup_logging(verbose=verbose, log_file=log_file)

    try:
        resource_kinds = (
            ResourceKind.parse_list(kinds) if kinds else config.get_resource_kinds("export")
        )
        settings = config.get_mirror_settings(
            include_secrets=include_secrets,
            definition_format=definition_format,
            max_workers=workers,
        )
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    client = build_client(config, subscription, resource_group, service, token, settings)
    manager = ExportManager(
        client, output_path, kinds=resource_kinds, settings=settings, tool_version=__version__
    )

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            progress.add_task(f"Exporting {service}...", total=None)
            summary = manager.export()
    except StructuralError as e:
        console.print(f"[red]Export failed: {e}[/red]")
        raise typer.Exit(1)
    finally:
        client.close()

    if output_format.lower() == "json":
        console.print_json(json.dumps(summary.to_dict()))
    else:
        display_run_summary(summary, f"Export of {service} to {output_path}")
