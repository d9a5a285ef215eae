"""API Management client access.

This package provides:
- Authenticated HTTP access to a service instance with bounded timeouts and retry
- Paginated enumeration of list endpoints
"""

from .manager import ManagementClientManager, with_retry
from .pagination import PagedCollectionReader, list_collection, parse_page

__all__ = [
    "ManagementClientManager",
    "PagedCollectionReader",
    "list_collection",
    "parse_page",
    "with_retry",
]
