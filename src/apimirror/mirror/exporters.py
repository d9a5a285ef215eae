"""
Per-kind export adapters.

Each adapter enumerates its collection, fetches one resource at a time and
writes the normalized documents into the snapshot. Secret-bearing fields are
cleared before anything is serialized.
"""

import copy
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Union
from urllib.parse import quote

from ..api_clients.manager import ManagementClientManager
from ..api_clients.pagination import PagedCollectionReader
from .error_handling import FailureIsolationPolicy
from .exceptions import DecodeError, ErrorCategory, ResourceNotFoundError
from .models import (
    DEFINITION_FILES,
    POLICY_FILE,
    Artifact,
    ArtifactBundle,
    ContentKind,
    LinkEdge,
    MirrorSettings,
    OperationOutcome,
    OutcomeStatus,
    ResourceDescriptor,
    ResourceKind,
)
from .snapshot import SnapshotWriter, entity_artifact

logger = logging.getLogger(__name__)

POLICY_FORMAT = "rawxml"

# Fields cleared on every entity of a kind before it reaches the snapshot.
# Dotted entries address nested objects under ``properties``.
SECRET_FIELDS = {
    ResourceKind.BACKENDS: ["credentials", "proxy.password"],
    ResourceKind.LOGGERS: ["credentials"],
}


def _clear_field(properties: Dict[str, Any], field_path: str) -> None:
    *parents, leaf = field_path.split(".")
    target: Any = properties
    for name in parents:
        target = target.get(name)
        if not isinstance(target, dict):
            return
    if leaf in target:
        target[leaf] = None


def is_secret_named_value(entity: Dict[str, Any]) -> bool:
    properties = entity.get("properties") or {}
    return bool(properties.get("secret")) or bool(properties.get("keyVault"))


def redact_secrets(kind: ResourceKind, entity: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of an entity with every secret-bearing field set to None."""
    redacted = copy.deepcopy(entity)
    properties = redacted.get("properties")
    if not isinstance(properties, dict):
        return redacted
    if kind == ResourceKind.NAMED_VALUES and is_secret_named_value(redacted):
        properties["value"] = None
    for field_path in SECRET_FIELDS.get(kind, []):
        _clear_field(properties, field_path)
    return redacted


# --- Definition export response shapes ---


@dataclass
class InlineDocument:
    """The export response embeds the document under ``value``."""

    data: bytes


@dataclass
class LinkedDocument:
    """The export response points at the document with a (pre-signed) URL."""

    url: str


@dataclass
class RawDocument:
    """The export response is the document itself."""

    data: bytes
    recognized: bool = True


DefinitionResponse = Union[InlineDocument, LinkedDocument, RawDocument]

_DOCUMENT_MARKERS = ("openapi", "swagger", "paths", "info")


def resolve_definition_response(body: bytes) -> DefinitionResponse:
    """Classify an export response into one of the three known shapes."""
    try:
        parsed = json.loads(body.decode("utf-8-sig"))
    except (UnicodeDecodeError, ValueError):
        # YAML, WSDL or another non-JSON document
        return RawDocument(body)

    if isinstance(parsed, dict):
        value = parsed.get("value")
        if isinstance(value, dict) and isinstance(value.get("link"), str):
            return LinkedDocument(value["link"])
        if isinstance(parsed.get("link"), str):
            return LinkedDocument(parsed["link"])
        if isinstance(value, str) and value.strip():
            return InlineDocument(value.encode("utf-8"))
        if isinstance(value, (dict, list)) and value:
            return InlineDocument(json.dumps(value, indent=2).encode("utf-8"))
        if any(marker in parsed for marker in _DOCUMENT_MARKERS):
            return RawDocument(body)

    logger.debug("Definition response matched no known shape; keeping raw bytes")
    return RawDocument(body, recognized=False)


def _policy_text(response: Any) -> str:
    """Extract the raw policy document from a policy GET response."""
    if response is None:
        return ""
    if isinstance(response, str):
        return response
    if isinstance(response, dict):
        properties = response.get("properties")
        if isinstance(properties, dict) and isinstance(properties.get("value"), str):
            return properties["value"]
        if isinstance(response.get("value"), str):
            return response["value"]
    raise DecodeError("Policy response has no document value")


@dataclass
class ExportResult:
    """What one resource export produced."""

    descriptor: ResourceDescriptor
    bundle: ArtifactBundle
    outcome: OperationOutcome


class ResourceExportAdapter:
    """Exports entity-only resources (backends, loggers, named values)."""

    kind: ResourceKind = ResourceKind.BACKENDS

    def __init__(
        self,
        client: ManagementClientManager,
        writer: SnapshotWriter,
        isolation: FailureIsolationPolicy,
        settings: Optional[MirrorSettings] = None,
        kind: Optional[ResourceKind] = None,
    ):
        self.client = client
        self.writer = writer
        self.isolation = isolation
        self.settings = settings or client.settings
        if kind is not None:
            self.kind = kind

    def resource_path(self, resource_id: str, *segments: str) -> str:
        parts = [self.kind.collection, quote(resource_id, safe="")]
        parts.extend(segments)
        return "/".join(parts)

    def reader(self) -> PagedCollectionReader:
        return PagedCollectionReader(self.client, self.kind.collection)

    def list_ids(self, reader: Optional[PagedCollectionReader] = None) -> Iterator[str]:
        """Yield the ids of the remote collection, skipping items this adapter ignores."""
        for item in reader or self.reader():
            if not isinstance(item, dict):
                continue
            if not self.include_item(item):
                continue
            resource_id = item.get("name") or str(item.get("id", "")).rsplit("/", 1)[-1]
            if resource_id:
                yield resource_id

    def include_item(self, item: Dict[str, Any]) -> bool:
        return True

    def fetch_entity(self, resource_id: str) -> Dict[str, Any]:
        entity = self.client.get_json(self.resource_path(resource_id))
        if not isinstance(entity, dict):
            raise DecodeError(f"Entity response for {self.kind.value}/{resource_id} is not an object")
        return redact_secrets(self.kind, entity)

    def export(self, resource_id: str) -> ExportResult:
        """Export one resource and record its outcome."""
        descriptor = ResourceDescriptor(self.kind, resource_id)
        bundle = ArtifactBundle()
        failures: List[OperationOutcome] = []

        holder = self.writer.claim(self.kind, resource_id)
        if holder is not None:
            directory = self.writer.resource_dir(self.kind, resource_id).name
            reason = f"snapshot directory '{directory}' already holds '{holder}'"
            logger.warning(f"Not exporting {descriptor.label}: {reason}")
            self.isolation.summary.warn(f"{descriptor.label}: {reason}")
            outcome = OperationOutcome.skipped(self.kind.value, resource_id, "export", reason)
            self.isolation.summary.record(outcome)
            return ExportResult(descriptor, bundle, outcome)

        for phase, step in self.steps():
            outcome = self.isolation.attempt(
                self.kind, resource_id, phase, lambda step=step: step(descriptor, bundle)
            )
            if outcome.status == OutcomeStatus.FAILED:
                failures.append(outcome)

        if failures and all(o.category == ErrorCategory.NOT_FOUND for o in failures):
            # Deleted between listing and fetching
            outcome = OperationOutcome.skipped(
                self.kind.value, resource_id, "export", "resource no longer exists"
            )
        elif failures:
            reason = "; ".join(f"{o.phase}: {o.reason}" for o in failures)
            outcome = OperationOutcome.failed(
                self.kind.value, resource_id, "export", reason, failures[0].category
            )
        else:
            outcome = OperationOutcome.applied(self.kind.value, resource_id, "export")
        self.isolation.summary.record(outcome)
        return ExportResult(descriptor, bundle, outcome)

    def steps(self):
        return [("export-entity", self.export_entity)]

    def export_entity(self, descriptor: ResourceDescriptor, bundle: ArtifactBundle) -> None:
        entity = self.fetch_entity(descriptor.id)
        source = ResourceDescriptor.from_entity(self.kind, entity, fallback_id=descriptor.id)
        descriptor.display_path = source.display_path
        descriptor.properties = source.properties
        artifact = entity_artifact(self.kind, entity)
        self.writer.write_artifact(descriptor, artifact)
        bundle.add(artifact)

    def export_policy(self, descriptor: ResourceDescriptor, bundle: ArtifactBundle) -> None:
        """Store the raw policy document if the resource has a non-empty one."""
        try:
            response = self.client.get_json(
                self.resource_path(descriptor.id, "policies", "policy"),
                params={"format": POLICY_FORMAT},
            )
        except ResourceNotFoundError:
            # No policy configured is the common case
            self.writer.remove_artifact(descriptor, POLICY_FILE)
            return
        text = _policy_text(response)
        if not text.strip():
            self.writer.remove_artifact(descriptor, POLICY_FILE)
            return
        artifact = Artifact(POLICY_FILE, ContentKind.XML, text.encode("utf-8"))
        self.writer.write_artifact(descriptor, artifact)
        bundle.add(artifact)


class NamedValueExportAdapter(ResourceExportAdapter):
    """Named values; secret values never leave the service."""

    kind = ResourceKind.NAMED_VALUES

    def include_item(self, item: Dict[str, Any]) -> bool:
        if is_secret_named_value(item) and not self.settings.include_secrets:
            logger.info(f"Skipping secret named value {item.get('name')}")
            return False
        return True


class ProductExportAdapter(ResourceExportAdapter):
    """Products: entity, policy and the list of member APIs."""

    kind = ResourceKind.PRODUCTS

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._edges: List[LinkEdge] = []
        self._lock = threading.Lock()

    def steps(self):
        return [
            ("export-entity", self.export_entity),
            ("export-policy", self.export_policy),
            ("export-memberships", self.export_memberships),
        ]

    def export_memberships(self, descriptor: ResourceDescriptor, bundle: ArtifactBundle) -> None:
        reader = PagedCollectionReader(self.client, self.resource_path(descriptor.id, "apis"))
        edges = []
        for item in reader:
            api_id = item.get("name") if isinstance(item, dict) else None
            if api_id:
                edges.append(
                    LinkEdge(ResourceKind.APIS, api_id, ResourceKind.PRODUCTS, descriptor.id)
                )
        if reader.partial:
            raise reader.error or DecodeError("membership listing incomplete")
        with self._lock:
            self._edges.extend(edges)

    @property
    def edges(self) -> List[LinkEdge]:
        with self._lock:
            return list(self._edges)


class ApiExportAdapter(ResourceExportAdapter):
    """APIs: interface definition, policy document and entity metadata."""

    kind = ResourceKind.APIS

    def include_item(self, item: Dict[str, Any]) -> bool:
        # Only the current revision is mirrored
        properties = item.get("properties") or {}
        return properties.get("isCurrent", True) is not False

    def steps(self):
        return [
            ("export-definition", self.export_definition),
            ("export-policy", self.export_policy),
            ("export-entity", self.export_entity),
        ]

    def materialize(self, response: DefinitionResponse) -> bytes:
        if isinstance(response, LinkedDocument):
            return self.client.get_raw(response.url, authenticated=False)
        if isinstance(response, RawDocument) and not response.recognized:
            logger.warning("Unrecognized definition export response; stored as raw bytes")
        return response.data

    def export_definition(self, descriptor: ResourceDescriptor, bundle: ArtifactBundle) -> None:
        body = self.client.get_raw(
            self.resource_path(descriptor.id),
            params={"format": self.settings.definition_format, "export": "true"},
        )
        data = self.materialize(resolve_definition_response(body))
        if not data.strip():
            raise DecodeError("Definition export returned an empty document")
        content_kind = ContentKind.detect(data)
        name = DEFINITION_FILES[content_kind]
        # A previous export may have used a different format
        for other in DEFINITION_FILES.values():
            if other != name:
                self.writer.remove_artifact(descriptor, other)
        artifact = Artifact(name, content_kind, data)
        self.writer.write_artifact(descriptor, artifact)
        bundle.add(artifact)


ADAPTERS = {
    ResourceKind.APIS: ApiExportAdapter,
    ResourceKind.PRODUCTS: ProductExportAdapter,
    ResourceKind.NAMED_VALUES: NamedValueExportAdapter,
    ResourceKind.BACKENDS: ResourceExportAdapter,
    ResourceKind.LOGGERS: ResourceExportAdapter,
}


def create_export_adapter(
    kind: ResourceKind,
    client: ManagementClientManager,
    writer: SnapshotWriter,
    isolation: FailureIsolationPolicy,
    settings: Optional[MirrorSettings] = None,
) -> ResourceExportAdapter:
    adapter_class = ADAPTERS[kind]
    return adapter_class(client, writer, isolation, settings, kind=kind)
