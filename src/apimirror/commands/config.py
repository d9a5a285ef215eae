"""Configuration command for apimirror."""

from typing import Any, Dict, Tuple

import typer
import yaml
from rich.table import Table

from ..mirror.models import ResourceKind
from ..utils.config import Config
from .common import console

config = Config()

_KIND_NAMES = [kind.value for kind in ResourceKind]

# Valid configuration keys and their types
VALID_CONFIG_KEYS: Dict[str, Dict[str, Any]] = {
    "api": {
        "base_url": str,
        "api_version": str,
        "timeout_seconds": float,
        "max_retries": int,
        "backoff_seconds": float,
        "max_pages": int,
        "max_items": int,
    },
    "export": {
        "definition_format": ["openapi+json-link", "openapi-link", "swagger-link", "wsdl-link"],
        "include_secrets": bool,
        "resource_kinds": str,
    },
    "import": {
        "resource_kinds": str,
        "link_from_kind": _KIND_NAMES,
        "link_to_kind": _KIND_NAMES,
    },
    "performance": {"max_workers": int},
}


def validate_config_key(key: str) -> Tuple[bool, str, Any]:
    """
    Validate a configuration key path.

    Args:
        key: Configuration key path (e.g., "api.timeout_seconds")

    Returns:
        Tuple of (is_valid, error_message, expected_type_or_choices)
    """
    key_parts = key.split(".")
    if len(key_parts) != 2:
        return False, "Configuration key must look like 'section.key' (e.g., 'api.timeout_seconds')", None

    section, name = key_parts
    if section not in VALID_CONFIG_KEYS:
        return False, f"Invalid section '{section}'. Valid sections: {', '.join(VALID_CONFIG_KEYS)}", None
    if name not in VALID_CONFIG_KEYS[section]:
        valid_keys = ", ".join(VALID_CONFIG_KEYS[section])
        return False, f"Invalid key '{name}' in '{section}'. Valid keys: {valid_keys}", None
    return True, "", VALID_CONFIG_KEYS[section][name]


def validate_config_value(key: str, value: str, expected: Any) -> Tuple[bool, str, Any]:
    """
    Validate and convert a configuration value.

    Returns:
        Tuple of (is_valid, error_message, converted_value)
    """
    if isinstance(expected, list):
        if value in expected:
            return True, "", value
        return False, f"Invalid value '{value}' for key '{key}'. Valid values: {', '.join(expected)}", None

    if expected is bool:
        if value.lower() in ("true", "false"):
            return True, "", value.lower() == "true"
        return False, f"Key '{key}' expects true or false", None

    if expected in (int, float):
        try:
            converted = expected(value)
        except ValueError:
            return False, f"Key '{key}' expects a number, got '{value}'", None
        if converted <= 0 and key != "api.max_retries":
            return False, f"Key '{key}' must be positive", None
        return True, "", converted

    if key.endswith("resource_kinds"):
        try:
            ResourceKind.parse_list(value)
        except ValueError as e:
            return False, str(e), None
    return True, "", value


app = typer.Typer(help="Show and change apimirror configuration")


@app.command("show")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, yaml, json"),
):
    """Show the effective configuration (defaults, file and environment)."""
    mirror_config = config.get_mirror_config()

    if format.lower() == "json":
        console.print_json(data=mirror_config)
    elif format.lower() == "yaml":
        console.print(yaml.safe_dump(mirror_config, default_flow_style=False, indent=2))
    else:
        table = Table(title="apimirror Configuration", show_header=True, header_style="bold magenta")
        table.add_column("Section", style="cyan")
        table.add_column("Key", style="green")
        table.add_column("Value", style="yellow")
        for section, values in mirror_config.items():
            if not isinstance(values, dict):
                continue
            for name, value in values.items():
                table.add_row(section, name, str(value))
        console.print(table)
        console.print(f"[dim]Configuration file: {config.get_config_file_path()}[/dim]")


@app.command("set")
def set_config(
    key: str = typer.Argument(..., help="Configuration key (e.g., api.timeout_seconds)"),
    value: str = typer.Argument(..., help="Configuration value"),
):
    """Set a configuration value."""
    is_valid, error_msg, expected = validate_config_key(key)
    if not is_valid:
        console.print(f"[red]Error: Invalid key '{key}'. {error_msg}[/red]")
        raise typer.Exit(1)

    is_valid, error_msg, converted_value = validate_config_value(key, value, expected)
    if not is_valid:
        console.print(f"[red]Error: {error_msg}[/red]")
        raise typer.Exit(1)

    try:
        config.set(key, converted_value)
    except OSError as e:
        console.print(f"[red]Error setting configuration: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"[green]✓ Set {key} = {converted_value}[/green]")


@app.command("get")
def get_config(
    key: str = typer.Argument(..., help="Configuration key (e.g., api.timeout_seconds)"),
):
    """Get an effective configuration value."""
    current: Any = config.get_mirror_config()
    for part in key.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            console.print(f"[red]Error: Key '{key}' not found in configuration.[/red]")
            raise typer.Exit(1)

    console.print(f"[blue]{key}: {current}[/blue]")
