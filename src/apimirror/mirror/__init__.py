"""
Snapshot export and import engine for API Management services.

This package provides:
- Per-kind export adapters writing a portable snapshot tree
- Per-kind import adapters replaying a snapshot with create-or-replace calls
- Late linking of APIs into products
- Failure isolation so one resource never aborts a run

Import the orchestrators from ``apimirror.mirror.manager``.
"""

from .exceptions import (
    DecodeError,
    ErrorCategory,
    MirrorError,
    ResourceNotFoundError,
    SnapshotValidationError,
    StructuralError,
    TransportError,
)
from .models import (
    IMPORT_ORDER,
    Artifact,
    ArtifactBundle,
    CollectionPage,
    ContentKind,
    LinkEdge,
    MirrorSettings,
    OperationOutcome,
    OutcomeStatus,
    ResourceDescriptor,
    ResourceKind,
    RunSummary,
    ServiceCoordinates,
    SnapshotMetadata,
    sanitize_id,
)

__all__ = [
    # Errors
    "MirrorError",
    "TransportError",
    "DecodeError",
    "ResourceNotFoundError",
    "SnapshotValidationError",
    "StructuralError",
    "ErrorCategory",
    # Models
    "IMPORT_ORDER",
    "Artifact",
    "ArtifactBundle",
    "CollectionPage",
    "ContentKind",
    "LinkEdge",
    "MirrorSettings",
    "OperationOutcome",
    "OutcomeStatus",
    "ResourceDescriptor",
    "ResourceKind",
    "RunSummary",
    "ServiceCoordinates",
    "SnapshotMetadata",
    "sanitize_id",
]
