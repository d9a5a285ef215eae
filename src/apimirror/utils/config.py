"""Configuration utilities for apimirror."""

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from rich.console import Console

from ..mirror.models import MirrorSettings, ResourceKind

console = Console()

CONFIG_DIR = Path.home() / ".apimirror"
CONFIG_FILE_YAML = CONFIG_DIR / "config.yaml"

ENV_PREFIX = "APIMIRROR_"
TOKEN_ENV_VAR = "APIMIRROR_ACCESS_TOKEN"

# Default mirror configuration
DEFAULT_MIRROR_CONFIG = {
    "api": {
        "base_url": "https://management.azure.com",
        "api_version": "2022-08-01",
        "timeout_seconds": 30,
        "max_retries": 3,
        "backoff_seconds": 1.0,
        "max_pages": 1000,  # Upper bound on pages per collection
        "max_items": 100000,
    },
    "export": {
        "definition_format": "openapi+json-link",  # Options: openapi+json-link, openapi-link, wsdl-link
        "include_secrets": False,
        "resource_kinds": "all",
    },
    "import": {
        "resource_kinds": "all",
        "link_from_kind": "apis",
        "link_to_kind": "products",
    },
    "performance": {
        "max_workers": 1,
    },
}


class Config:
    """Manages apimirror configuration stored as YAML."""

    def __init__(self, config_file: Optional[Path] = None):
        """Initialize the configuration manager."""
        self.config_data: Dict[str, Any] = {}
        self._config_file = Path(config_file) if config_file else CONFIG_FILE_YAML
        self._config_loaded = False

    def _ensure_config_dir(self):
        """Ensure the configuration directory exists."""
        config_dir = self._config_file.parent
        if not config_dir.exists():
            config_dir.mkdir(parents=True)
            console.print(f"Created configuration directory: {config_dir}")

    def _ensure_config_loaded(self):
        """Ensure configuration is loaded from file."""
        if not self._config_loaded:
            self._load_config()
            self._config_loaded = True

    def reload_config(self):
        """Force reload configuration from file."""
        self._config_loaded = False
        self._ensure_config_loaded()

    def _load_config(self):
        """Load the configuration from file."""
        if not self._config_file.exists():
            self.config_data = {}
            return

        try:
            with open(self._config_file, "r", encoding="utf-8") as f:
                self.config_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            console.print(
                f"[red]Error: Configuration file {self._config_file} is not valid YAML: {e}[/red]"
            )
            self.config_data = {}
        except OSError as e:
            console.print(f"[red]Error reading configuration file {self._config_file}: {e}[/red]")
            self.config_data = {}

        if not isinstance(self.config_data, dict):
            console.print(
                f"[yellow]Warning: Ignoring {self._config_file}; top level must be a mapping[/yellow]"
            )
            self.config_data = {}

    def save_config(self):
        """Save the current configuration to the YAML file."""
        self._ensure_config_dir()
        with open(self._config_file, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.config_data, f, default_flow_style=False, sort_keys=False, indent=2)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value with dot notation support.

        Args:
            key: Configuration key (supports dot notation like "api.timeout_seconds")
            default: Default value if key doesn't exist

        Returns:
            Configuration value
        """
        self._ensure_config_loaded()

        value: Any = self.config_data
        for part in key.split("."):
            if isinstance(value, dict) and part in value:
                value = value[part]
            else:
                return default
        return value

    def set(self, key: str, value: Any):
        """Set a configuration value (dot notation creates nested sections) and save it."""
        self._ensure_config_loaded()

        parts = key.split(".")
        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]
        current[parts[-1]] = value
        self.save_config()

    def delete(self, key: str):
        """Delete a configuration value if present and save."""
        self._ensure_config_loaded()

        parts = key.split(".")
        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                return
            current = current[part]
        if parts[-1] in current:
            del current[parts[-1]]
            self.save_config()

    def get_all(self) -> Dict[str, Any]:
        self._ensure_config_loaded()
        return copy.deepcopy(self.config_data)

    def get_config_file_path(self) -> Path:
        return self._config_file

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = copy.deepcopy(base)
        for key, value in override.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = copy.deepcopy(value)
        return result

    def get_mirror_config(self) -> Dict[str, Any]:
        """
        Get mirror configuration with defaults and environment variable overrides.

        Environment variables take the form ``APIMIRROR_<SECTION>_<KEY>``, for
        example ``APIMIRROR_API_TIMEOUT_SECONDS``; ``APIMIRROR_MAX_WORKERS`` is
        accepted as a shorthand for ``performance.max_workers``.

        Returns:
            Dictionary containing the merged configuration
        """
        self._ensure_config_loaded()
        mirror_config = self._deep_merge(DEFAULT_MIRROR_CONFIG, self.config_data)

        api = mirror_config["api"]
        api["base_url"] = os.environ.get(f"{ENV_PREFIX}API_BASE_URL", api["base_url"])
        api["api_version"] = os.environ.get(f"{ENV_PREFIX}API_VERSION", api["api_version"])
        api["timeout_seconds"] = self._get_env_float(
            f"{ENV_PREFIX}API_TIMEOUT_SECONDS", api["timeout_seconds"]
        )
        api["max_retries"] = self._get_env_int(f"{ENV_PREFIX}API_MAX_RETRIES", api["max_retries"])
        api["backoff_seconds"] = self._get_env_float(
            f"{ENV_PREFIX}API_BACKOFF_SECONDS", api["backoff_seconds"]
        )
        api["max_pages"] = self._get_env_int(f"{ENV_PREFIX}API_MAX_PAGES", api["max_pages"])
        api["max_items"] = self._get_env_int(f"{ENV_PREFIX}API_MAX_ITEMS", api["max_items"])

        export = mirror_config["export"]
        export["definition_format"] = os.environ.get(
            f"{ENV_PREFIX}EXPORT_DEFINITION_FORMAT", export["definition_format"]
        )
        export["include_secrets"] = self._get_env_bool(
            f"{ENV_PREFIX}EXPORT_INCLUDE_SECRETS", export["include_secrets"]
        )

        performance = mirror_config["performance"]
        performance["max_workers"] = self._get_env_int(
            f"{ENV_PREFIX}MAX_WORKERS", performance["max_workers"]
        )

        return mirror_config

    def get_mirror_settings(self, **overrides: Any) -> MirrorSettings:
        """
        Build typed runtime settings from the merged configuration.

        Args:
            **overrides: Field values (e.g. from CLI options) taking precedence; None is ignored

        Raises:
            ValueError: If a configured value is invalid
        """
        mirror_config = self.get_mirror_config()
        api = mirror_config["api"]
        export = mirror_config["export"]
        import_config = mirror_config["import"]

        values: Dict[str, Any] = {
            "base_url": str(api["base_url"]).rstrip("/"),
            "api_version": str(api["api_version"]),
            "timeout_seconds": float(api["timeout_seconds"]),
            "max_retries": int(api["max_retries"]),
            "backoff_seconds": float(api["backoff_seconds"]),
            "max_pages": int(api["max_pages"]),
            "max_items": int(api["max_items"]),
            "definition_format": str(export["definition_format"]),
            "include_secrets": bool(export["include_secrets"]),
            "max_workers": int(mirror_config["performance"]["max_workers"]),
            "link_from_kind": ResourceKind.parse(str(import_config["link_from_kind"])),
            "link_to_kind": ResourceKind.parse(str(import_config["link_to_kind"])),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return MirrorSettings(**values)

    def get_resource_kinds(self, operation: str) -> List[ResourceKind]:
        """Resource kinds configured for "export" or "import"."""
        value = self.get_mirror_config().get(operation, {}).get("resource_kinds", "all")
        if isinstance(value, list):
            value = ",".join(str(v) for v in value)
        return ResourceKind.parse_list(value)

    def get_access_token(self, token: Optional[str] = None) -> Optional[str]:
        """Return the explicit token, else the one from the environment."""
        return token or os.environ.get(TOKEN_ENV_VAR) or None

    def _get_env_bool(self, env_var: str, default: bool) -> bool:
        """
        Get boolean value from environment variable.

        Args:
            env_var: Environment variable name
            default: Default value if env var is not set

        Returns:
            Boolean value
        """
        value = os.environ.get(env_var)
        if value is None:
            return default
        return value.strip().lower() in ("true", "1", "yes", "on")

    def _get_env_int(self, env_var: str, default: int) -> int:
        value = os.environ.get(env_var)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            console.print(
                f"[yellow]Warning: Invalid integer value for {env_var}: {value}. Using default: {default}[/yellow]"
            )
            return default

    def _get_env_float(self, env_var: str, default: float) -> float:
        value = os.environ.get(env_var)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError:
            console.print(
                f"[yellow]Warning: Invalid number for {env_var}: {value}. Using default: {default}[/yellow]"
            )
            return default
