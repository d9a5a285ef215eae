"""Shared fixtures for mirror tests: an in-memory API Management service."""

import copy
import json
from typing import Any, Dict, List, Optional, Tuple

import pytest

from src.apimirror.mirror.error_handling import FailureIsolationPolicy
from src.apimirror.mirror.exceptions import MirrorError, ResourceNotFoundError, TransportError
from src.apimirror.mirror.models import MirrorSettings, RunSummary, ServiceCoordinates

COLLECTIONS = ("apis", "products", "backends", "loggers", "namedValues")


class FakeApim:
    """
    Client-shaped fake of one service instance.

    Entities are stored by their relative path (``apis/orders-api``); policies
    by the owning resource path; link memberships as ``products/<p>/apis/<a>``.
    Errors can be injected per ``(method, path)``.
    """

    def __init__(self, name: str = "apim", page_size: int = 2):
        self.settings = MirrorSettings(max_retries=1, backoff_seconds=0)
        self.coordinates = ServiceCoordinates("sub-1", "rg-1", name)
        self.page_size = page_size
        self.entities: Dict[str, Dict[str, Any]] = {}
        self.policies: Dict[str, str] = {}
        self.definitions: Dict[str, bytes] = {}
        self.signed_links: Dict[str, bytes] = {}
        self.memberships: set = set()
        self.errors: Dict[Tuple[str, str], Exception] = {}
        self.calls: List[Tuple[str, str, Any]] = []
        self.closed = False

    # --- seeding helpers ---

    def add(self, collection: str, resource_id: str, **properties: Any) -> Dict[str, Any]:
        entity = {
            "id": f"{self.coordinates.resource_path}/{collection}/{resource_id}",
            "type": f"Microsoft.ApiManagement/service/{collection}",
            "name": resource_id,
            "properties": properties,
        }
        self.entities[f"{collection}/{resource_id}"] = entity
        return entity

    def add_api(self, api_id: str, document: bytes, policy: Optional[str] = None, **properties: Any):
        properties.setdefault("path", api_id.replace("-api", ""))
        properties.setdefault("displayName", api_id)
        properties.setdefault("isCurrent", True)
        entity = self.add("apis", api_id, **properties)
        self.definitions[api_id] = document
        if policy is not None:
            self.policies[f"apis/{api_id}"] = policy
        return entity

    def fail(self, method: str, path: str, error: Exception) -> None:
        self.errors[(method, path)] = error

    # --- client surface ---

    def _check(self, method: str, path: str) -> None:
        error = self.errors.get((method, path))
        if error is not None:
            raise error

    def _page(self, path: str, items: List[Dict[str, Any]], start: int) -> Dict[str, Any]:
        chunk = items[start : start + self.page_size]
        page: Dict[str, Any] = {"value": copy.deepcopy(chunk)}
        if start + self.page_size < len(items):
            page["nextLink"] = f"https://fake.invalid/{path}?skip={start + self.page_size}"
        return page

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self.calls.append(("GET", path, params))
        start = 0
        if path.startswith("https://fake.invalid/"):
            path, _, query = path[len("https://fake.invalid/") :].partition("?skip=")
            start = int(query)
        self._check("GET", path)
        segments = path.split("/")

        if len(segments) == 1 and segments[0] in COLLECTIONS:
            items = [
                entity
                for key, entity in sorted(self.entities.items())
                if key.split("/")[0] == segments[0]
            ]
            return self._page(path, items, start)

        if len(segments) == 3 and segments[0] == "products" and segments[2] == "apis":
            if f"products/{segments[1]}" not in self.entities:
                raise ResourceNotFoundError(f"Not found: {path}")
            items = [
                self.entities[f"apis/{api_id}"]
                for product_id, api_id in sorted(self.memberships)
                if product_id == segments[1] and f"apis/{api_id}" in self.entities
            ]
            return self._page(path, items, start)

        if len(segments) == 4 and segments[2:] == ["policies", "policy"]:
            owner = "/".join(segments[:2])
            if owner not in self.policies:
                raise ResourceNotFoundError(f"Not found: {path}")
            return {"properties": {"format": "rawxml", "value": self.policies[owner]}}

        if path in self.entities:
            return copy.deepcopy(self.entities[path])
        raise ResourceNotFoundError(f"Not found: {path}")

    def get_raw(
        self, path: str, params: Optional[Dict[str, Any]] = None, authenticated: bool = True
    ) -> bytes:
        self.calls.append(("GET-RAW", path, params))
        self._check("GET-RAW", path)
        if not authenticated:
            if path not in self.signed_links:
                raise ResourceNotFoundError(f"Not found: {path}")
            return self.signed_links[path]
        api_id = path.split("/")[1]
        if api_id not in self.definitions:
            raise ResourceNotFoundError(f"Not found: {path}")
        return self.definitions[api_id]

    def put_json(
        self, path: str, body: Dict[str, Any], params: Optional[Dict[str, Any]] = None
    ) -> Any:
        self.calls.append(("PUT", path, copy.deepcopy(body)))
        self._check("PUT", path)
        segments = path.split("/")

        if len(segments) == 4 and segments[2:] == ["policies", "policy"]:
            owner = "/".join(segments[:2])
            if owner not in self.entities:
                raise ResourceNotFoundError(f"Not found: {owner}")
            self.policies[owner] = body["properties"]["value"]
            return None

        if len(segments) == 4 and segments[0] == "products" and segments[2] == "apis":
            self.memberships.add((segments[1], segments[3]))
            return None

        properties = copy.deepcopy(body.get("properties", {}))
        if segments[0] == "apis":
            document = properties.pop("value", None)
            properties.pop("format", None)
            if document is not None:
                self.definitions[segments[1]] = json.dumps({"value": document}).encode("utf-8")
        self.add(segments[0], segments[1], **properties)
        return copy.deepcopy(self.entities[path])

    def exists(self, path: str) -> bool:
        try:
            self.get_json(path)
            return True
        except ResourceNotFoundError:
            return False

    def close(self) -> None:
        self.closed = True

    def puts(self, prefix: str = "") -> List[Tuple[str, Any]]:
        return [(path, body) for method, path, body in self.calls if method == "PUT" and path.startswith(prefix)]


@pytest.fixture
def source_apim():
    return FakeApim("source-apim")


@pytest.fixture
def target_apim():
    return FakeApim("target-apim")


@pytest.fixture
def summary():
    return RunSummary("test")


@pytest.fixture
def isolation(summary):
    return FailureIsolationPolicy(summary)


@pytest.fixture
def transport_error():
    def build(message: str = "connection reset", status_code: Optional[int] = 503) -> MirrorError:
        return TransportError(message, status_code=status_code)

    return build
