"""Command modules for apimirror."""

from . import config, export, import_snapshot

__all__ = [
    "config",
    "export",
    "import_snapshot",
]
