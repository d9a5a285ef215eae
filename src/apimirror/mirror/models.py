"""
Data models for snapshot export and import operations.

This module defines the data structures shared by the export and import paths,
including resource descriptors, artifacts, link edges, per-resource outcomes
and the run summary.
"""

import re
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from .exceptions import ErrorCategory

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class ResourceKind(Enum):
    """Kinds of API Management resources mirrored by the tool."""

    APIS = "apis"
    PRODUCTS = "products"
    BACKENDS = "backends"
    LOGGERS = "loggers"
    NAMED_VALUES = "named_values"

    @property
    def collection(self) -> str:
        """Path segment of the remote collection."""
        return _COLLECTION_SEGMENTS[self]

    @property
    def directory(self) -> str:
        """Directory name of the kind's subtree inside a snapshot."""
        return _SNAPSHOT_DIRECTORIES[self]

    @property
    def entity_file(self) -> str:
        """Fixed file name of the canonical entity document."""
        return _ENTITY_FILES[self]

    @property
    def has_policy(self) -> bool:
        return self in (ResourceKind.APIS, ResourceKind.PRODUCTS)

    @classmethod
    def parse(cls, value: str) -> "ResourceKind":
        """Parse a kind from CLI/config text, accepting dashes and the remote segment."""
        normalized = value.strip().lower().replace("-", "_")
        for kind in cls:
            if normalized in (kind.value, kind.collection.lower()):
                return kind
        valid = ", ".join(kind.value for kind in cls)
        raise ValueError(f"Invalid resource kind '{value}'. Valid kinds: {valid}")

    @classmethod
    def parse_list(cls, value: Optional[str]) -> List["ResourceKind"]:
        """Parse a comma-separated list; empty or 'all' means every kind in import order."""
        if not value or value.strip().lower() == "all":
            return list(IMPORT_ORDER)
        requested = {cls.parse(part) for part in value.split(",") if part.strip()}
        return [kind for kind in IMPORT_ORDER if kind in requested]


_COLLECTION_SEGMENTS = {
    ResourceKind.APIS: "apis",
    ResourceKind.PRODUCTS: "products",
    ResourceKind.BACKENDS: "backends",
    ResourceKind.LOGGERS: "loggers",
    ResourceKind.NAMED_VALUES: "namedValues",
}

_SNAPSHOT_DIRECTORIES = {
    ResourceKind.APIS: "apis",
    ResourceKind.PRODUCTS: "products",
    ResourceKind.BACKENDS: "backends",
    ResourceKind.LOGGERS: "loggers",
    ResourceKind.NAMED_VALUES: "named-values",
}

_ENTITY_FILES = {
    ResourceKind.APIS: "api-entity.json",
    ResourceKind.PRODUCTS: "product-entity.json",
    ResourceKind.BACKENDS: "backend-entity.json",
    ResourceKind.LOGGERS: "logger-entity.json",
    ResourceKind.NAMED_VALUES: "named-value-entity.json",
}

# Named values first (referenced from policies), products last.
IMPORT_ORDER = [
    ResourceKind.NAMED_VALUES,
    ResourceKind.LOGGERS,
    ResourceKind.BACKENDS,
    ResourceKind.APIS,
    ResourceKind.PRODUCTS,
]


class ContentKind(Enum):
    """Declared content type of an artifact."""

    JSON = "json"
    XML = "xml"
    TEXT = "text"

    @classmethod
    def detect(cls, data: bytes) -> "ContentKind":
        """Guess the content kind of a document from its leading bytes."""
        head = data.lstrip(b"\xef\xbb\xbf \t\r\n")[:1]
        if head in (b"{", b"["):
            return cls.JSON
        if head == b"<":
            return cls.XML
        return cls.TEXT


# Fixed artifact file names.
DEFINITION_FILES = {
    ContentKind.JSON: "openapi.json",
    ContentKind.TEXT: "openapi.yaml",
    ContentKind.XML: "definition.xml",
}
POLICY_FILE = "policy.xml"
MANIFEST_FILE = "manifest.json"
PRODUCT_APIS_FILE = "product-apis.csv"


def sanitize_id(resource_id: str) -> str:
    """Make a resource id safe for use as a single path segment."""
    sanitized = _UNSAFE_ID_CHARS.sub("_", resource_id)
    if sanitized in ("", ".", ".."):
        sanitized = sanitized.replace(".", "_") or "_"
    return sanitized


@dataclass
class ResourceDescriptor:
    """A single remote resource identified by kind and id."""

    kind: ResourceKind
    id: str
    display_path: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not self.id:
            raise ValueError("resource id cannot be empty")

    @property
    def safe_id(self) -> str:
        return sanitize_id(self.id)

    @property
    def label(self) -> str:
        return f"{self.kind.value}/{self.id}"

    @classmethod
    def from_entity(
        cls, kind: ResourceKind, entity: Dict[str, Any], fallback_id: Optional[str] = None
    ) -> "ResourceDescriptor":
        """Build a descriptor from a remote entity document."""
        resource_id = entity.get("name") or fallback_id
        if not resource_id and entity.get("id"):
            resource_id = str(entity["id"]).rstrip("/").rsplit("/", 1)[-1]
        properties = entity.get("properties") or {}
        display_path = properties.get("path") or properties.get("displayName") or ""
        return cls(kind=kind, id=resource_id or "", display_path=display_path, properties=properties)


@dataclass
class Artifact:
    """A named byte stream attached to a resource."""

    name: str
    content_kind: ContentKind
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def text(self) -> str:
        return self.data.decode("utf-8")


@dataclass
class ArtifactBundle:
    """Artifacts of one resource keyed by their fixed file name."""

    artifacts: Dict[str, Artifact] = field(default_factory=dict)

    def add(self, artifact: Artifact) -> None:
        self.artifacts[artifact.name] = artifact

    def get(self, name: str) -> Optional[Artifact]:
        return self.artifacts.get(name)

    def definition(self) -> Optional[Artifact]:
        """Return the interface-definition document, whichever content kind it has."""
        for name in DEFINITION_FILES.values():
            if name in self.artifacts:
                return self.artifacts[name]
        return None

    def policy(self) -> Optional[Artifact]:
        return self.artifacts.get(POLICY_FILE)

    def names(self) -> List[str]:
        return list(self.artifacts)

    def __iter__(self) -> Iterator[Artifact]:
        return iter(self.artifacts.values())

    def __len__(self) -> int:
        return len(self.artifacts)


@dataclass
class CollectionPage:
    """One page of a remote collection."""

    items: List[Dict[str, Any]]
    continuation: Optional[str] = None


@dataclass(frozen=True)
class LinkEdge:
    """Association between two resources that must both exist before it is applied."""

    from_kind: ResourceKind
    from_id: str
    to_kind: ResourceKind
    to_id: str

    @property
    def label(self) -> str:
        return f"{self.from_kind.value}/{self.from_id} -> {self.to_kind.value}/{self.to_id}"


@dataclass(frozen=True)
class ServiceCoordinates:
    """Address of an API Management service instance."""

    subscription_id: str
    resource_group: str
    service_name: str

    def __post_init__(self):
        for name in ("subscription_id", "resource_group", "service_name"):
            if not getattr(self, name):
                raise ValueError(f"{name} cannot be empty")

    @property
    def resource_path(self) -> str:
        return (
            f"/subscriptions/{self.subscription_id}/resourceGroups/{self.resource_group}"
            f"/providers/Microsoft.ApiManagement/service/{self.service_name}"
        )

    def to_dict(self) -> Dict[str, str]:
        return {
            "subscription_id": self.subscription_id,
            "resource_group": self.resource_group,
            "service_name": self.service_name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServiceCoordinates":
        return cls(**data)


@dataclass
class MirrorSettings:
    """Runtime settings threaded through clients, adapters and managers."""

    base_url: str = "https://management.azure.com"
    api_version: str = "2022-08-01"
    timeout_seconds: float = 30.0
    max_retries: int = 3
    backoff_seconds: float = 1.0
    max_pages: int = 1000
    max_items: int = 100000
    definition_format: str = "openapi+json-link"
    include_secrets: bool = False
    max_workers: int = 1
    link_from_kind: ResourceKind = ResourceKind.APIS
    link_to_kind: ResourceKind = ResourceKind.PRODUCTS

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")
        if self.max_pages < 1:
            raise ValueError("max_pages must be at least 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")


class OutcomeStatus(Enum):
    """Result of a single per-resource operation."""

    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class OperationOutcome:
    """Outcome of one resource (or link edge) operation."""

    kind: str
    resource_id: str
    phase: str
    status: OutcomeStatus
    reason: Optional[str] = None
    category: Optional[ErrorCategory] = None
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def applied(cls, kind: str, resource_id: str, phase: str, warnings: Optional[List[str]] = None):
        return cls(kind, resource_id, phase, OutcomeStatus.APPLIED, warnings=warnings or [])

    @classmethod
    def skipped(cls, kind: str, resource_id: str, phase: str, reason: str):
        return cls(kind, resource_id, phase, OutcomeStatus.SKIPPED, reason=reason)

    @classmethod
    def failed(
        cls,
        kind: str,
        resource_id: str,
        phase: str,
        reason: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
    ):
        return cls(kind, resource_id, phase, OutcomeStatus.FAILED, reason=reason, category=category)

    @property
    def ok(self) -> bool:
        return self.status != OutcomeStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "resource_id": self.resource_id,
            "phase": self.phase,
            "status": self.status.value,
            "reason": self.reason,
            "category": self.category.value if self.category else None,
            "warnings": self.warnings,
        }


@dataclass
class KindCounts:
    """Attempted/applied/skipped/failed counters for one kind."""

    attempted: int = 0
    applied: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "attempted": self.attempted,
            "applied": self.applied,
            "skipped": self.skipped,
            "failed": self.failed,
        }


class RunSummary:
    """Thread-safe aggregation of per-resource outcomes."""

    def __init__(self, operation: str):
        self.operation = operation
        self.started_at = datetime.now()
        self.finished_at: Optional[datetime] = None
        self.outcomes: List[OperationOutcome] = []
        self.warnings: List[str] = []
        self._lock = threading.Lock()

    def record(self, outcome: OperationOutcome) -> OperationOutcome:
        with self._lock:
            self.outcomes.append(outcome)
        return outcome

    def warn(self, message: str) -> None:
        with self._lock:
            self.warnings.append(message)

    def finish(self) -> "RunSummary":
        self.finished_at = datetime.now()
        return self

    def counts(self) -> Dict[str, KindCounts]:
        result: Dict[str, KindCounts] = {}
        with self._lock:
            for outcome in self.outcomes:
                counts = result.setdefault(outcome.kind, KindCounts())
                counts.attempted += 1
                if outcome.status == OutcomeStatus.APPLIED:
                    counts.applied += 1
                elif outcome.status == OutcomeStatus.SKIPPED:
                    counts.skipped += 1
                else:
                    counts.failed += 1
        return result

    def failures(self) -> List[OperationOutcome]:
        with self._lock:
            return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    def outcome_warnings(self) -> List[str]:
        with self._lock:
            messages = list(self.warnings)
            for outcome in self.outcomes:
                messages.extend(
                    f"{outcome.kind}/{outcome.resource_id}: {w}" for w in outcome.warnings
                )
        return messages

    def applied_ids(self, kind: str) -> List[str]:
        with self._lock:
            return [
                o.resource_id
                for o in self.outcomes
                if o.kind == kind and o.status == OutcomeStatus.APPLIED
            ]

    @property
    def has_failures(self) -> bool:
        return bool(self.failures())

    @property
    def has_warnings(self) -> bool:
        return self.has_failures or bool(self.outcome_warnings())

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.now()
        return (end - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "counts": {kind: counts.to_dict() for kind, counts in self.counts().items()},
            "failures": [o.to_dict() for o in self.failures()],
            "warnings": self.outcome_warnings(),
        }


@dataclass
class SnapshotMetadata:
    """Metadata written to the root of every snapshot."""

    snapshot_id: str
    timestamp: datetime
    source: ServiceCoordinates
    tool_version: str
    definition_format: str
    resource_kinds: List[ResourceKind] = field(default_factory=list)
    resource_counts: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self):
        if not self.snapshot_id:
            raise ValueError("snapshot_id cannot be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "snapshot_id": self.snapshot_id,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source.to_dict(),
            "tool_version": self.tool_version,
            "definition_format": self.definition_format,
            "resource_kinds": [kind.value for kind in self.resource_kinds],
            "resource_counts": self.resource_counts,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SnapshotMetadata":
        return cls(
            snapshot_id=data["snapshot_id"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            source=ServiceCoordinates.from_dict(data["source"]),
            tool_version=data.get("tool_version", "unknown"),
            definition_format=data.get("definition_format", ""),
            resource_kinds=[ResourceKind(k) for k in data.get("resource_kinds", [])],
            resource_counts=data.get("resource_counts", {}),
        )
