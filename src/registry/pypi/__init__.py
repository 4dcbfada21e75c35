"""PEP 691 simple-index client, document parsing and caching."""

from .cache import DocumentCache
from .client import IndexClient
from .parse import parse_listing, parse_metadata, read_wheel_metadata

__all__ = [
    "DocumentCache",
    "IndexClient",
    "parse_listing",
    "parse_metadata",
    "read_wheel_metadata",
]
