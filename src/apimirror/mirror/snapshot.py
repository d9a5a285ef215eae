"""
Snapshot file-tree persistence.

A snapshot is a directory with one subtree per resource kind and one directory
per resource id. Each resource directory holds the canonical entity document and
any fixed-named artifacts (definition document, policy document)::

    <root>/manifest.json
    <root>/apis/orders-api/openapi.json
    <root>/apis/orders-api/policy.xml
    <root>/apis/orders-api/api-entity.json
    <root>/named-values/<id>/named-value-entity.json
    <root>/product-apis.csv

The layout is the interchange format between export and import runs.
"""

import csv
import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .exceptions import SnapshotValidationError, StructuralError
from .models import (
    DEFINITION_FILES,
    MANIFEST_FILE,
    POLICY_FILE,
    PRODUCT_APIS_FILE,
    Artifact,
    ArtifactBundle,
    ContentKind,
    LinkEdge,
    ResourceDescriptor,
    ResourceKind,
    SnapshotMetadata,
    sanitize_id,
)

logger = logging.getLogger(__name__)

LINK_FILE_HEADER = ["fromId", "toId"]


def serialize_entity(entity: Dict[str, Any]) -> bytes:
    """Serialize an entity document deterministically."""
    return (json.dumps(entity, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")


def entity_artifact(kind: ResourceKind, entity: Dict[str, Any]) -> Artifact:
    return Artifact(kind.entity_file, ContentKind.JSON, serialize_entity(entity))


class SnapshotWriter:
    """Writes resources into a snapshot tree. A single writer owns the tree."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser()
        self._claims: Dict[Tuple[ResourceKind, str], str] = {}
        self._lock = threading.Lock()

    def prepare(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def resource_dir(self, kind: ResourceKind, resource_id: str) -> Path:
        return self.root / kind.directory / sanitize_id(resource_id)

    def claim(self, kind: ResourceKind, resource_id: str) -> Optional[str]:
        """
        Reserve the resource directory of an id for this run.

        Returns:
            The id already holding the directory when a different id sanitizes
            to the same name, otherwise None
        """
        key = (kind, sanitize_id(resource_id))
        with self._lock:
            owner = self._claims.setdefault(key, resource_id)
        return owner if owner != resource_id else None

    def write_artifact(self, descriptor: ResourceDescriptor, artifact: Artifact) -> Path:
        """Write (or overwrite) one artifact of a resource."""
        directory = self.resource_dir(descriptor.kind, descriptor.id)
        path = directory / artifact.name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(artifact.data)
        logger.debug(f"Wrote {path} ({artifact.size} bytes)")
        return path

    def write(self, descriptor: ResourceDescriptor, bundle: ArtifactBundle) -> List[Path]:
        """Write every artifact of a resource, creating its directory idempotently."""
        self.resource_dir(descriptor.kind, descriptor.id).mkdir(parents=True, exist_ok=True)
        return [self.write_artifact(descriptor, artifact) for artifact in bundle]

    def remove_artifact(self, descriptor: ResourceDescriptor, name: str) -> None:
        """Drop a stale artifact left over from an earlier export."""
        path = self.resource_dir(descriptor.kind, descriptor.id) / name
        if path.exists():
            path.unlink()

    def write_manifest(self, metadata: SnapshotMetadata) -> Path:
        path = self.prepare() / MANIFEST_FILE
        path.write_text(json.dumps(metadata.to_dict(), indent=2) + "\n", encoding="utf-8")
        return path

    def write_links(self, edges: Iterable[LinkEdge], file_name: str = PRODUCT_APIS_FILE) -> Path:
        """Write link edges as ``fromId,toId`` rows."""
        path = self.prepare() / file_name
        rows = sorted({(edge.from_id, edge.to_id) for edge in edges})
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(LINK_FILE_HEADER)
            writer.writerows(rows)
        return path


@dataclass
class SnapshotEntry:
    """A resource reconstructed from a snapshot directory."""

    descriptor: ResourceDescriptor
    bundle: ArtifactBundle
    entity: Dict[str, Any] = field(default_factory=dict)
    directory: Optional[Path] = None
    skip_reason: Optional[str] = None

    @property
    def skippable(self) -> bool:
        return self.skip_reason is not None


class SnapshotReader:
    """Reads a snapshot tree for replay. The tree is treated as read-only."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).expanduser()

    def validate_root(self) -> None:
        if not self.root.exists():
            raise StructuralError(f"Snapshot path does not exist: {self.root}")
        if not self.root.is_dir():
            raise StructuralError(f"Snapshot path is not a directory: {self.root}")

    def read_manifest(self) -> Optional[SnapshotMetadata]:
        path = self.root / MANIFEST_FILE
        if not path.exists():
            return None
        try:
            return SnapshotMetadata.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring unreadable snapshot manifest {path}: {e}")
            return None

    def kinds(self) -> List[ResourceKind]:
        """Kinds that have a subtree in the snapshot."""
        return [kind for kind in ResourceKind if (self.root / kind.directory).is_dir()]

    def read_kind(self, kind: ResourceKind) -> Iterator[SnapshotEntry]:
        """Yield one entry per resource directory of a kind, in name order."""
        kind_dir = self.root / kind.directory
        if not kind_dir.is_dir():
            return
        for directory in sorted(p for p in kind_dir.iterdir() if p.is_dir()):
            yield self.read_resource(kind, directory)

    def read_resource(self, kind: ResourceKind, directory: Path) -> SnapshotEntry:
        entity: Dict[str, Any] = {}
        skip_reason: Optional[str] = None

        entity_path = directory / kind.entity_file
        if entity_path.exists():
            try:
                loaded = json.loads(entity_path.read_text(encoding="utf-8"))
                if not isinstance(loaded, dict):
                    raise ValueError("entity document is not an object")
                entity = loaded
            except ValueError as e:
                skip_reason = f"unreadable entity file {entity_path.name}: {e}"

        # The directory name is sanitized; the entity's name carries the original id
        descriptor = ResourceDescriptor.from_entity(kind, entity, fallback_id=directory.name)

        bundle = ArtifactBundle()
        if entity_path.exists():
            bundle.add(Artifact(kind.entity_file, ContentKind.JSON, entity_path.read_bytes()))
        for content_kind, name in DEFINITION_FILES.items():
            path = directory / name
            if path.exists():
                bundle.add(Artifact(name, content_kind, path.read_bytes()))
        policy_path = directory / POLICY_FILE
        if policy_path.exists():
            bundle.add(Artifact(POLICY_FILE, ContentKind.XML, policy_path.read_bytes()))

        if skip_reason is None and kind == ResourceKind.APIS and bundle.definition() is None:
            skip_reason = "no interface-definition document"

        return SnapshotEntry(
            descriptor=descriptor,
            bundle=bundle,
            entity=entity,
            directory=directory,
            skip_reason=skip_reason,
        )

    def read_links(
        self,
        from_kind: ResourceKind = ResourceKind.APIS,
        to_kind: ResourceKind = ResourceKind.PRODUCTS,
        file_name: str = PRODUCT_APIS_FILE,
    ) -> Optional[List[LinkEdge]]:
        """Read the link file exported with the snapshot, or None if there is none."""
        path = self.root / file_name
        if not path.exists():
            return None
        edges, _ = read_link_file(path, from_kind, to_kind)
        return edges


def read_link_file(
    path: Union[str, Path],
    from_kind: ResourceKind = ResourceKind.APIS,
    to_kind: ResourceKind = ResourceKind.PRODUCTS,
) -> Tuple[List[LinkEdge], List[str]]:
    """
    Read ``fromId,toId`` rows from a CSV mapping file.

    A header row is optional. Rows missing either id are reported, not fatal.

    Returns:
        Tuple of (valid edges, messages describing rejected rows)
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise SnapshotValidationError(f"Link mapping file not found: {path}")

    edges: List[LinkEdge] = []
    rejected: List[str] = []
    with open(path, newline="", encoding="utf-8-sig") as f:
        for line_number, row in enumerate(csv.reader(f), start=1):
            cells = [cell.strip() for cell in row]
            if not any(cells) or cells[0].startswith("#"):
                continue
            if line_number == 1 and [c.lower() for c in cells[:2]] == [
                h.lower() for h in LINK_FILE_HEADER
            ]:
                continue
            if len(cells) < 2 or not cells[0] or not cells[1]:
                rejected.append(f"line {line_number}: expected fromId,toId but got {row!r}")
                continue
            edges.append(LinkEdge(from_kind, cells[0], to_kind, cells[1]))

    for message in rejected:
        logger.warning(f"Skipping mapping row in {path.name}: {message}")
    return edges, rejected
