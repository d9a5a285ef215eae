"""API Management client utilities for apimirror."""

import functools
import json
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar, cast

import requests

from ..mirror.exceptions import DecodeError, ResourceNotFoundError, TransportError
from ..mirror.models import MirrorSettings, ServiceCoordinates

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def with_retry(func: F) -> F:
    """Retry a client call on retryable transport errors using the client's settings."""

    @functools.wraps(func)
    def wrapper(self: "ManagementClientManager", *args: Any, **kwargs: Any) -> Any:
        attempts = max(1, self.settings.max_retries)
        for attempt in range(1, attempts + 1):
            try:
                return func(self, *args, **kwargs)
            except TransportError as e:
                if not e.is_retryable or attempt == attempts:
                    raise
                delay = self.settings.backoff_seconds * (2 ** (attempt - 1))
                logger.debug(
                    f"Retry {attempt}/{attempts - 1} for {func.__name__} after {delay:.1f}s: {e}"
                )
                time.sleep(delay)
        # Unreachable: the loop either returns or raises
        raise TransportError(f"{func.__name__} exhausted retries")

    return cast(F, wrapper)


class ManagementClientManager:
    """Manages authenticated HTTP access to one API Management service instance."""

    def __init__(
        self,
        coordinates: ServiceCoordinates,
        token: str,
        settings: Optional[MirrorSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the client manager.

        Args:
            coordinates: Subscription, resource group and service name to address
            token: Bearer token of an already established management session
            settings: Timeouts, retries and API version
            session: Optional pre-built requests session (used by tests)
        """
        if not token:
            raise ValueError("An access token is required")
        self.coordinates = coordinates
        self.settings = settings or MirrorSettings()
        self._token = token
        self.session = session or requests.Session()
        self._anonymous_session: Optional[requests.Session] = None

    @property
    def service_url(self) -> str:
        return self.settings.base_url.rstrip("/") + self.coordinates.resource_path

    def url(self, path: str) -> str:
        """Build an absolute URL for a path relative to the service resource."""
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.service_url}/{path.lstrip('/')}"

    def _params(self, url: str, params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        merged = dict(params or {})
        # Continuation links already carry their api-version
        if "api-version=" not in url:
            merged.setdefault("api-version", self.settings.api_version)
        return merged

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self._token}", "Accept": "application/json"}
        if extra:
            headers.update(extra)
        return headers

    def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        authenticated: bool = True,
    ) -> requests.Response:
        if authenticated:
            session = self.session
            headers = self._headers({"Content-Type": "application/json"} if body is not None else None)
            params = self._params(url, params)
        else:
            # Export links are pre-signed; never forward the bearer token to them
            if self._anonymous_session is None:
                self._anonymous_session = requests.Session()
            session = self._anonymous_session
            headers = {}

        logger.debug(f"{method} {url}")
        try:
            response = session.request(
                method,
                url,
                params=params,
                data=json.dumps(body) if body is not None else None,
                headers=headers,
                timeout=self.settings.timeout_seconds,
            )
        except requests.Timeout as e:
            raise TransportError(f"Timed out after {self.settings.timeout_seconds}s: {e}", url)
        except requests.RequestException as e:
            raise TransportError(f"Request failed: {e}", url)

        if response.status_code == 404:
            raise ResourceNotFoundError(f"Not found: {method} {url}", url)
        if response.status_code >= 400:
            raise TransportError(
                f"{method} {url} returned {response.status_code}: {response.text[:500]}",
                url,
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _decode(response: requests.Response, url: str) -> Optional[Any]:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"Response from {url} is not valid JSON: {e}", url)

    @with_retry
    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """GET a management URL and decode its JSON body (None for an empty body)."""
        url = self.url(path)
        return self._decode(self._send("GET", url, params=params), url)

    @with_retry
    def get_raw(
        self, path: str, params: Optional[Dict[str, Any]] = None, authenticated: bool = True
    ) -> bytes:
        """GET a URL and return the body bytes untouched."""
        url = self.url(path)
        return self._send("GET", url, params=params, authenticated=authenticated).content

    @with_retry
    def put_json(
        self, path: str, body: Dict[str, Any], params: Optional[Dict[str, Any]] = None
    ) -> Optional[Any]:
        """PUT a JSON body (create-or-replace) and decode the response."""
        url = self.url(path)
        return self._decode(self._send("PUT", url, params=params, body=body), url)

    def exists(self, path: str) -> bool:
        """Return True if a GET of the path succeeds, False on 404."""
        try:
            self.get_json(path)
            return True
        except ResourceNotFoundError:
            return False

    def close(self) -> None:
        self.session.close()
        if self._anonymous_session is not None:
            self._anonymous_session.close()
