"""
Paginated enumeration of remote collections.

List endpoints return ``{"value": [...], "nextLink": "..."}``; a few return the
items under ``items`` instead. The continuation link is followed verbatim.
"""

import logging
from typing import Any, Dict, Iterator, List, Optional, Set

from ..mirror.exceptions import MirrorError, ResourceNotFoundError
from ..mirror.models import CollectionPage
from .manager import ManagementClientManager

logger = logging.getLogger(__name__)

ITEM_FIELDS = ("value", "items")
CONTINUATION_FIELD = "nextLink"


def parse_page(response: Any) -> Optional[CollectionPage]:
    """Turn a decoded list response into a page, or None if it is not one."""
    if not isinstance(response, dict):
        return None
    items: List[Dict[str, Any]] = []
    for field_name in ITEM_FIELDS:
        candidate = response.get(field_name)
        if isinstance(candidate, list):
            items = candidate
            break
    continuation = response.get(CONTINUATION_FIELD) or None
    return CollectionPage(items=items, continuation=continuation)


class PagedCollectionReader:
    """
    Lazy, finite, non-restartable iterator over the items of a remote collection.

    A transport or decode failure on any page ends the iteration and marks the
    collection as partial; items already yielded stay valid.
    """

    def __init__(
        self,
        client: ManagementClientManager,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        max_pages: Optional[int] = None,
        max_items: Optional[int] = None,
    ):
        self.client = client
        self.path = path
        self.params = params
        self.max_pages = max_pages or client.settings.max_pages
        self.max_items = max_items or client.settings.max_items
        self.pages_read = 0
        self.items_read = 0
        self.partial = False
        self.truncated = False
        self.error: Optional[MirrorError] = None
        self._started = False

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        if self._started:
            raise RuntimeError(f"Collection reader for {self.path} has already been consumed")
        self._started = True
        return self._iterate()

    def _iterate(self) -> Iterator[Dict[str, Any]]:
        next_url: Optional[str] = self.path
        params = self.params
        visited: Set[str] = set()

        while next_url:
            if self.pages_read >= self.max_pages:
                logger.warning(f"Stopping {self.path}: page limit of {self.max_pages} reached")
                self.truncated = True
                return
            visited.add(next_url)

            try:
                response = self.client.get_json(next_url, params=params)
            except ResourceNotFoundError:
                logger.debug(f"Collection {self.path} not found; treating as empty")
                return
            except MirrorError as e:
                logger.warning(
                    f"Partial collection {self.path}: page {self.pages_read + 1} failed: {e}"
                )
                self.partial = True
                self.error = e
                return

            page = parse_page(response)
            if page is None:
                return
            self.pages_read += 1

            for item in page.items:
                if self.items_read >= self.max_items:
                    logger.warning(f"Stopping {self.path}: item limit of {self.max_items} reached")
                    self.truncated = True
                    return
                self.items_read += 1
                yield item

            next_url = page.continuation
            # The continuation already encodes the query
            params = None
            if next_url and next_url in visited:
                logger.warning(f"Stopping {self.path}: continuation link repeats {next_url}")
                self.truncated = True
                return


def list_collection(client: ManagementClientManager, path: str, **kwargs: Any) -> List[Dict[str, Any]]:
    """Read a whole collection into a list, ignoring partial-collection status."""
    return list(PagedCollectionReader(client, path, **kwargs))
