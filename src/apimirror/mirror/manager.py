"""
Export and import orchestration.

``ExportManager`` walks the remote collections of each requested kind and writes
a snapshot; ``ImportManager`` replays a snapshot kind by kind in dependency
order and applies link edges last. Both return a ``RunSummary``; per-resource
failures never abort a run.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, TypeVar, Union
from uuid import uuid4

from ..api_clients.manager import ManagementClientManager
from .error_handling import FailureIsolationPolicy
from .exceptions import SnapshotValidationError, StructuralError
from .exporters import ProductExportAdapter, create_export_adapter
from .importers import create_import_adapter
from .links import LinkResolver
from .models import (
    IMPORT_ORDER,
    LinkEdge,
    MirrorSettings,
    ResourceKind,
    RunSummary,
    SnapshotMetadata,
)
from .snapshot import SnapshotEntry, SnapshotReader, SnapshotWriter, read_link_file

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_all(items: List[T], work: Callable[[T], object], max_workers: int) -> None:
    """Run work over items sequentially, or in a thread pool when max_workers > 1."""
    if max_workers <= 1 or len(items) <= 1:
        for item in items:
            work(item)
        return

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {executor.submit(work, item): item for item in items}
        for future in as_completed(futures):
            # Work is failure-isolated; only structural errors propagate
            future.result()


class ExportManager:
    """Exports a service instance into a snapshot tree."""

    def __init__(
        self,
        client: ManagementClientManager,
        output_path: Union[str, Path],
        kinds: Optional[Iterable[ResourceKind]] = None,
        settings: Optional[MirrorSettings] = None,
        tool_version: str = "unknown",
    ):
        self.client = client
        self.settings = settings or client.settings
        self.kinds = list(kinds) if kinds else list(IMPORT_ORDER)
        self.writer = SnapshotWriter(output_path)
        self.tool_version = tool_version
        self.summary = RunSummary("export")
        self.isolation = FailureIsolationPolicy(self.summary)

    def export(self) -> RunSummary:
        """
        Export every requested kind.

        Raises:
            StructuralError: If no resource at all was discovered
        """
        start_time = time.time()
        self.writer.prepare()
        logger.info(f"Exporting {self.client.coordinates.service_name} to {self.writer.root}")

        discovered: Dict[ResourceKind, int] = {}
        edges: List[LinkEdge] = []
        for kind in self.kinds:
            adapter = create_export_adapter(
                kind, self.client, self.writer, self.isolation, self.settings
            )
            reader = adapter.reader()
            resource_ids = list(adapter.list_ids(reader))
            if reader.partial:
                self.summary.warn(
                    f"{kind.value}: partial collection after {reader.items_read} items ({reader.error})"
                )
            if reader.truncated:
                self.summary.warn(f"{kind.value}: collection truncated at {reader.items_read} items")
            discovered[kind] = len(resource_ids)
            logger.info(f"Discovered {len(resource_ids)} {kind.value}")

            run_all(resource_ids, adapter.export, self.settings.max_workers)

            if isinstance(adapter, ProductExportAdapter):
                edges.extend(adapter.edges)

        if not any(discovered.values()):
            raise StructuralError("No resources were discovered on the source service")

        if ResourceKind.PRODUCTS in self.kinds:
            self.writer.write_links(edges)

        counts = self.summary.counts()
        metadata = SnapshotMetadata(
            snapshot_id=str(uuid4()),
            timestamp=datetime.now(),
            source=self.client.coordinates,
            tool_version=self.tool_version,
            definition_format=self.settings.definition_format,
            resource_kinds=self.kinds,
            resource_counts={
                kind.value: counts[kind.value].applied for kind in self.kinds if kind.value in counts
            },
        )
        self.writer.write_manifest(metadata)

        logger.info(f"Export finished in {time.time() - start_time:.2f}s")
        return self.summary.finish()


class ImportManager:
    """Replays a snapshot tree against a target service instance."""

    def __init__(
        self,
        client: ManagementClientManager,
        input_path: Union[str, Path],
        kinds: Optional[Iterable[ResourceKind]] = None,
        settings: Optional[MirrorSettings] = None,
        links_file: Optional[Union[str, Path]] = None,
        dry_run: bool = False,
    ):
        self.client = client
        self.settings = settings or client.settings
        requested = set(kinds) if kinds else set(IMPORT_ORDER)
        self.kinds = [kind for kind in IMPORT_ORDER if kind in requested]
        self.reader = SnapshotReader(input_path)
        self.links_file = Path(links_file).expanduser() if links_file else None
        self.dry_run = dry_run
        self.summary = RunSummary("import")
        self.isolation = FailureIsolationPolicy(self.summary)

    def load_entries(self) -> Dict[ResourceKind, List[SnapshotEntry]]:
        """Read the snapshot and check there is something to import."""
        self.reader.validate_root()
        manifest = self.reader.read_manifest()
        if manifest:
            logger.info(
                f"Snapshot {manifest.snapshot_id} from {manifest.source.service_name} "
                f"taken {manifest.timestamp.isoformat()}"
            )

        entries = {kind: list(self.reader.read_kind(kind)) for kind in self.kinds}
        valid = sum(1 for items in entries.values() for entry in items if not entry.skippable)
        if valid == 0:
            raise StructuralError(f"No valid resources found in snapshot {self.reader.root}")
        return entries

    def load_edges(self) -> List[LinkEdge]:
        from_kind = self.settings.link_from_kind
        to_kind = self.settings.link_to_kind
        if self.links_file is not None:
            try:
                edges, rejected = read_link_file(self.links_file, from_kind, to_kind)
            except (SnapshotValidationError, OSError) as e:
                raise StructuralError(str(e))
            for message in rejected:
                self.summary.warn(f"{self.links_file.name}: {message}")
            if not edges:
                raise StructuralError(f"No valid rows in link mapping file {self.links_file}")
            return edges
        return self.reader.read_links(from_kind, to_kind) or []

    def import_snapshot(self) -> RunSummary:
        """
        Import every requested kind, then resolve links.

        Raises:
            StructuralError: If the snapshot path is missing or holds no valid resources,
                or an explicit link file has no valid rows
        """
        start_time = time.time()
        entries = self.load_entries()
        edges = self.load_edges()

        for kind in self.kinds:
            adapter = create_import_adapter(
                kind, self.client, self.isolation, self.settings, dry_run=self.dry_run
            )
            logger.info(f"Importing {len(entries[kind])} {kind.value}")
            run_all(entries[kind], adapter.import_entry, self.settings.max_workers)

        if edges:
            # Runs strictly after every kind above has finished
            if self.dry_run:
                known = {
                    kind: [e.descriptor.id for e in entries.get(kind, []) if not e.skippable]
                    for kind in self.kinds
                }
            else:
                known = {kind: self.summary.applied_ids(kind.value) for kind in self.kinds}
            resolver = LinkResolver(self.client, self.isolation, known=known, dry_run=self.dry_run)
            logger.info(f"Resolving {len(edges)} links")
            resolver.resolve(edges)

        logger.info(f"Import finished in {time.time() - start_time:.2f}s")
        return self.summary.finish()
