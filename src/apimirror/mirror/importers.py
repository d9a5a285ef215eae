"""
Per-kind import adapters.

Every import is an idempotent create-or-replace keyed by the resource id: the
target's existing resource is fully overwritten, never merged. Policies are
applied as a second, independent call after the entity call succeeds.
"""

import copy
import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

from ..api_clients.manager import ManagementClientManager
from .error_handling import FailureIsolationPolicy
from .exceptions import DecodeError, MirrorError, SnapshotValidationError
from .exporters import POLICY_FORMAT, is_secret_named_value
from .models import (
    Artifact,
    ArtifactBundle,
    ContentKind,
    MirrorSettings,
    OperationOutcome,
    OutcomeStatus,
    ResourceDescriptor,
    ResourceKind,
)
from .snapshot import SnapshotEntry

logger = logging.getLogger(__name__)

# Server-computed properties rejected (or ignored) on PUT.
READ_ONLY_PROPERTIES = {
    ResourceKind.APIS: {"isCurrent", "isOnline", "provisioningState"},
    ResourceKind.PRODUCTS: {"provisioningState"},
    ResourceKind.BACKENDS: {"provisioningState"},
    ResourceKind.LOGGERS: {"provisioningState"},
    ResourceKind.NAMED_VALUES: {"provisioningState"},
}

# Properties naming other resources on the target; dropped by the direct-replace retry.
API_REFERENCE_PROPERTIES = ("apiVersionSetId", "sourceApiId")

_XML_ROOT = re.compile(rb"<(?![?!])\s*(?:[\w.-]+:)?([\w.-]+)")

SECRET_NOT_REPLAYED = "secret value not replayed; rebind it on the target out-of-band"


def _without_nulls(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _without_nulls(item) for key, item in value.items() if item is not None}
    return copy.deepcopy(value)


def writable_properties(kind: ResourceKind, properties: Dict[str, Any]) -> Dict[str, Any]:
    """Drop read-only and null (redacted) properties from an entity, nested ones included."""
    read_only = READ_ONLY_PROPERTIES.get(kind, set())
    return {
        key: _without_nulls(value)
        for key, value in properties.items()
        if key not in read_only and value is not None
    }


def definition_format(artifact: Artifact) -> str:
    """Pick the import format for a definition document from its content."""
    if artifact.content_kind == ContentKind.XML:
        root = _XML_ROOT.search(artifact.data)
        if root is not None and root.group(1) == b"application":
            return "wadl-xml"
        return "wsdl"
    if artifact.content_kind == ContentKind.JSON:
        try:
            document = json.loads(artifact.data.decode("utf-8-sig"))
        except ValueError:
            return "openapi+json"
        if isinstance(document, dict) and "swagger" in document:
            return "swagger-json"
        return "openapi+json"
    return "openapi"


class ResourceImportAdapter:
    """Imports entity-only resources (backends, loggers) with one replace call."""

    kind: ResourceKind = ResourceKind.BACKENDS

    def __init__(
        self,
        client: ManagementClientManager,
        isolation: FailureIsolationPolicy,
        settings: Optional[MirrorSettings] = None,
        dry_run: bool = False,
        kind: Optional[ResourceKind] = None,
    ):
        self.client = client
        self.isolation = isolation
        self.settings = settings or client.settings
        self.dry_run = dry_run
        if kind is not None:
            self.kind = kind

    def resource_path(self, resource_id: str, *segments: str) -> str:
        parts = [self.kind.collection, quote(resource_id, safe="")]
        parts.extend(segments)
        return "/".join(parts)

    def import_entry(self, entry: SnapshotEntry) -> OperationOutcome:
        """Import one snapshot entry and record the outcome in the run summary."""
        if entry.skippable:
            logger.warning(f"Skipping {entry.descriptor.label}: {entry.skip_reason}")
            outcome = OperationOutcome.skipped(
                self.kind.value, entry.descriptor.id, "import", entry.skip_reason or ""
            )
            return self.isolation.summary.record(outcome)
        return self.isolation.run(
            self.kind,
            entry.descriptor.id,
            "import",
            lambda: self.import_resource(entry.descriptor, entry.bundle),
        )

    def import_resource(
        self, descriptor: ResourceDescriptor, bundle: ArtifactBundle
    ) -> OperationOutcome:
        """
        Create or replace one resource on the target.

        Returns:
            applied (possibly with warnings), skipped, or failed with a reason
        """
        if self.dry_run:
            logger.info(f"[dry-run] would import {descriptor.label}")
            return OperationOutcome.skipped(self.kind.value, descriptor.id, "import", "dry run")

        warnings: List[str] = []
        entity_outcome = self.isolation.attempt(
            self.kind,
            descriptor.id,
            "import-entity",
            lambda: self.apply_entity(descriptor, bundle, warnings),
        )
        if entity_outcome.status == OutcomeStatus.FAILED:
            return OperationOutcome.failed(
                self.kind.value,
                descriptor.id,
                "import-entity",
                entity_outcome.reason or "entity import failed",
                entity_outcome.category,
            )

        policy = bundle.policy()
        if self.kind.has_policy and policy is not None:
            policy_outcome = self.isolation.attempt(
                self.kind, descriptor.id, "import-policy", lambda: self.apply_policy(descriptor, policy)
            )
            if policy_outcome.status == OutcomeStatus.FAILED:
                # The entity stays in place
                warnings.append(f"policy not applied: {policy_outcome.reason}")

        return OperationOutcome.applied(self.kind.value, descriptor.id, "import", warnings)

    def build_payload(self, descriptor: ResourceDescriptor) -> Dict[str, Any]:
        return {"properties": writable_properties(self.kind, descriptor.properties)}

    def apply_entity(
        self, descriptor: ResourceDescriptor, bundle: ArtifactBundle, warnings: List[str]
    ) -> None:
        self.client.put_json(self.resource_path(descriptor.id), self.build_payload(descriptor))
        logger.info(f"Replaced {descriptor.label}")

    def apply_policy(self, descriptor: ResourceDescriptor, policy: Artifact) -> None:
        try:
            text = policy.text()
        except UnicodeDecodeError as e:
            raise SnapshotValidationError(f"policy document is not UTF-8: {e}")
        self.client.put_json(
            self.resource_path(descriptor.id, "policies", "policy"),
            {"properties": {"format": POLICY_FORMAT, "value": text}},
        )
        logger.info(f"Applied policy to {descriptor.label} ({policy.size} bytes)")


class NamedValueImportAdapter(ResourceImportAdapter):
    """Named values; secret values are never sent."""

    kind = ResourceKind.NAMED_VALUES

    def build_payload(self, descriptor: ResourceDescriptor) -> Dict[str, Any]:
        payload = super().build_payload(descriptor)
        if is_secret_named_value({"properties": descriptor.properties}):
            payload["properties"].pop("value", None)
        return payload

    def apply_entity(
        self, descriptor: ResourceDescriptor, bundle: ArtifactBundle, warnings: List[str]
    ) -> None:
        super().apply_entity(descriptor, bundle, warnings)
        properties = descriptor.properties
        if properties.get("secret") and not properties.get("keyVault"):
            warnings.append(SECRET_NOT_REPLAYED)


class ProductImportAdapter(ResourceImportAdapter):
    kind = ResourceKind.PRODUCTS


class ApiImportAdapter(ResourceImportAdapter):
    """APIs: import from the definition document, falling back to a direct replace."""

    kind = ResourceKind.APIS

    def definition(self, bundle: ArtifactBundle) -> Tuple[Artifact, str, str]:
        artifact = bundle.definition()
        if artifact is None:
            raise SnapshotValidationError("no interface-definition document")
        try:
            document = artifact.text()
        except UnicodeDecodeError as e:
            raise DecodeError(f"definition document is not UTF-8: {e}")
        return artifact, definition_format(artifact), document

    def import_payload(self, descriptor: ResourceDescriptor, fmt: str, document: str) -> Dict[str, Any]:
        """
        Definition-driven payload.

        The document supplies operations and schemas; every writable entity
        property travels alongside it so the target matches the source.
        """
        properties = writable_properties(self.kind, descriptor.properties)
        properties["format"] = fmt
        properties["value"] = document
        return {"properties": properties}

    def replace_payload(self, descriptor: ResourceDescriptor, fmt: str, document: str) -> Dict[str, Any]:
        """Full entity payload with the raw document embedded, minus cross-resource references."""
        payload = self.import_payload(descriptor, fmt, document)
        for key in API_REFERENCE_PROPERTIES:
            payload["properties"].pop(key, None)
        return payload

    def apply_entity(
        self, descriptor: ResourceDescriptor, bundle: ArtifactBundle, warnings: List[str]
    ) -> None:
        _, fmt, document = self.definition(bundle)
        path = self.resource_path(descriptor.id)
        try:
            self.client.put_json(path, self.import_payload(descriptor, fmt, document))
            logger.info(f"Imported {descriptor.label} from {fmt} definition")
            return
        except MirrorError as e:
            logger.warning(
                f"Definition import failed for {descriptor.label} ({e}); retrying as direct replace"
            )
            first_error = e

        try:
            self.client.put_json(path, self.replace_payload(descriptor, fmt, document))
        except MirrorError as e:
            raise type(e)(f"definition import: {first_error}; direct replace: {e}", e.url)
        warnings.append(f"imported by direct replace after definition import failed: {first_error}")
        logger.info(f"Replaced {descriptor.label} with embedded {fmt} document")


ADAPTERS = {
    ResourceKind.APIS: ApiImportAdapter,
    ResourceKind.PRODUCTS: ProductImportAdapter,
    ResourceKind.NAMED_VALUES: NamedValueImportAdapter,
    ResourceKind.BACKENDS: ResourceImportAdapter,
    ResourceKind.LOGGERS: ResourceImportAdapter,
}


def create_import_adapter(
    kind: ResourceKind,
    client: ManagementClientManager,
    isolation: FailureIsolationPolicy,
    settings: Optional[MirrorSettings] = None,
    dry_run: bool = False,
) -> ResourceImportAdapter:
    adapter_class = ADAPTERS[kind]
    return adapter_class(client, isolation, settings, dry_run=dry_run, kind=kind)
