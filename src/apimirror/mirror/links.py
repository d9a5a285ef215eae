"""
Late cross-resource linking.

Link edges (API membership in products) are applied after every resource kind
has been imported. Each edge is checked for both endpoints first; an edge whose
endpoint is missing on the target is skipped with a warning.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import quote

from ..api_clients.manager import ManagementClientManager
from .error_handling import FailureIsolationPolicy
from .exceptions import SnapshotValidationError
from .models import LinkEdge, OperationOutcome, ResourceKind

logger = logging.getLogger(__name__)

LINKS_LABEL = "links"


class LinkResolver:
    """Ensures declared associations exist between already-imported resources."""

    def __init__(
        self,
        client: ManagementClientManager,
        isolation: FailureIsolationPolicy,
        known: Optional[Dict[ResourceKind, Iterable[str]]] = None,
        dry_run: bool = False,
    ):
        """
        Args:
            client: Client for the target service
            isolation: Failure isolation policy shared with the import pass
            known: Ids per kind already confirmed present (imported in this run)
            dry_run: Report edges without applying them
        """
        self.client = client
        self.isolation = isolation
        self.dry_run = dry_run
        self._exists: Dict[Tuple[ResourceKind, str], bool] = {}
        for kind, ids in (known or {}).items():
            for resource_id in ids:
                self._exists[(kind, resource_id)] = True

    def link_path(self, edge: LinkEdge) -> str:
        """Return the association URL path for an edge."""
        pair = {edge.from_kind: edge.from_id, edge.to_kind: edge.to_id}
        if set(pair) != {ResourceKind.APIS, ResourceKind.PRODUCTS}:
            raise SnapshotValidationError(
                f"Unsupported link between {edge.from_kind.value} and {edge.to_kind.value}"
            )
        product_id = quote(pair[ResourceKind.PRODUCTS], safe="")
        api_id = quote(pair[ResourceKind.APIS], safe="")
        return f"products/{product_id}/apis/{api_id}"

    def exists(self, kind: ResourceKind, resource_id: str) -> bool:
        key = (kind, resource_id)
        if key not in self._exists:
            self._exists[key] = self.client.exists(f"{kind.collection}/{quote(resource_id, safe='')}")
        return self._exists[key]

    def missing_endpoints(self, edge: LinkEdge) -> List[str]:
        missing = []
        for kind, resource_id in ((edge.from_kind, edge.from_id), (edge.to_kind, edge.to_id)):
            if not resource_id or not self.exists(kind, resource_id):
                missing.append(f"{kind.value}/{resource_id or '<empty>'}")
        return missing

    def apply(self, edge: LinkEdge) -> OperationOutcome:
        path = self.link_path(edge)
        missing = self.missing_endpoints(edge)
        if missing:
            logger.warning(f"Skipping link {edge.label}: missing on target: {', '.join(missing)}")
            return OperationOutcome.skipped(
                LINKS_LABEL, edge.label, "link", f"missing on target: {', '.join(missing)}"
            )
        if self.dry_run:
            logger.info(f"[dry-run] would link {edge.label}")
            return OperationOutcome.skipped(LINKS_LABEL, edge.label, "link", "dry run")
        self.client.put_json(path, {})
        logger.info(f"Linked {edge.label}")
        return OperationOutcome.applied(LINKS_LABEL, edge.label, "link")

    def resolve(self, edges: Iterable[LinkEdge]) -> List[OperationOutcome]:
        """Apply every edge once, in order; duplicates are applied a single time."""
        outcomes = []
        seen: Set[LinkEdge] = set()
        for edge in edges:
            if edge in seen:
                continue
            seen.add(edge)
            outcomes.append(
                self.isolation.run(LINKS_LABEL, edge.label, "link", lambda edge=edge: self.apply(edge))
            )
        return outcomes
