"""Common command infrastructure for apimirror CLI commands.

This module provides shared functionality for the export and import commands:
- Service coordinate, token and verbosity options
- Client construction from configuration
- Run summary display
"""

import logging
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from ..api_clients.manager import ManagementClientManager
from ..mirror.models import MirrorSettings, RunSummary, ServiceCoordinates
from ..utils.config import TOKEN_ENV_VAR, Config

# Shared instances
console = Console()
logger = logging.getLogger(__name__)


def subscription_option() -> Any:
    return typer.Option(
        ..., "--subscription", "-s", help="Subscription id of the service", envvar="APIMIRROR_SUBSCRIPTION"
    )


def resource_group_option() -> Any:
    return typer.Option(
        ..., "--resource-group", "-g", help="Resource group of the service", envvar="APIMIRROR_RESOURCE_GROUP"
    )


def service_option() -> Any:
    return typer.Option(
        ..., "--service", "-n", help="API Management service name", envvar="APIMIRROR_SERVICE"
    )


def token_option() -> Any:
    return typer.Option(
        None,
        "--token",
        help=f"Bearer token of an established management session (default: ${TOKEN_ENV_VAR})",
    )


def kinds_option(help_text: str) -> Any:
    return typer.Option(None, "--kinds", "-k", help=help_text)


def workers_option() -> Any:
    return typer.Option(None, "--workers", "-w", min=1, help="Resources processed in parallel")


def verbose_option() -> Any:
    """Create a verbose option for CLI commands."""
    return typer.Option(False, "--verbose", "-v", help="Show detailed output")


def log_file_option() -> Any:
    return typer.Option(None, "--log-file", help="Also write JSON logs to this file")


def build_client(
    config: Config,
    subscription: str,
    resource_group: str,
    service: str,
    token: Optional[str],
    settings: MirrorSettings,
) -> ManagementClientManager:
    """
    Create a client manager for one service instance.

    Raises:
        typer.Exit: If the coordinates are invalid or no token is available
    """
    access_token = config.get_access_token(token)
    if not access_token:
        console.print(
            f"[red]Error: No access token. Pass --token or set {TOKEN_ENV_VAR}.[/red]"
        )
        raise typer.Exit(1)

    try:
        coordinates = ServiceCoordinates(subscription, resource_group, service)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    logger.debug(f"Created client for {coordinates.resource_path} (api-version {settings.api_version})")
    return ManagementClientManager(coordinates, access_token, settings)


def display_run_summary(summary: RunSummary, title: str) -> None:
    """Display per-kind counts, failures and warnings of a run."""
    table = Table(title=title)
    table.add_column("Kind", style="cyan")
    table.add_column("Attempted", justify="right")
    table.add_column("Applied", justify="right", style="green")
    table.add_column("Skipped", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")

    for kind, counts in summary.counts().items():
        table.add_row(
            kind,
            str(counts.attempted),
            str(counts.applied),
            str(counts.skipped),
            str(counts.failed),
        )

    console.print(table)

    failures = summary.failures()
    if failures:
        failure_table = Table(title="Failures")
        failure_table.add_column("Resource", style="cyan")
        failure_table.add_column("Phase")
        failure_table.add_column("Category")
        failure_table.add_column("Reason", style="red")
        for outcome in failures:
            failure_table.add_row(
                f"{outcome.kind}/{outcome.resource_id}",
                outcome.phase,
                outcome.category.value if outcome.category else "",
                outcome.reason or "",
            )
        console.print(failure_table)

    for message in summary.outcome_warnings():
        console.print(f"[yellow]Warning: {message}[/yellow]")

    if summary.has_failures:
        status = "[yellow]Completed with failures[/yellow]"
    elif summary.has_warnings:
        status = "[yellow]Completed with warnings[/yellow]"
    else:
        status = "[green]✓ Completed[/green]"
    console.print(f"{status} in {summary.duration_seconds:.2f} seconds")
