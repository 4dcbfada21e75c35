"""Concurrent, greedy dependency resolution.

Turns root requirements into a Resolution (normalized name to pinned version)
by walking the dependency graph as it is discovered from the index.
"""

from .candidates import parse_candidate_filename, select_candidate
from .dispatcher import (
    FetchDispatcher,
    FetchFailed,
    FetchListing,
    FetchMetadata,
    ListingReady,
    MetadataReady,
)
from .errors import (
    DispatchError,
    IndexFetchError,
    RequirementParseError,
    ResolutionError,
    ResolutionTimeout,
)
from .markers import current_environment, evaluate_markers
from .resolver import Resolver, ResolverState, resolve, resolve_sync

__all__ = [
    "parse_candidate_filename",
    "select_candidate",
    "FetchDispatcher",
    "FetchFailed",
    "FetchListing",
    "FetchMetadata",
    "ListingReady",
    "MetadataReady",
    "DispatchError",
    "IndexFetchError",
    "RequirementParseError",
    "ResolutionError",
    "ResolutionTimeout",
    "current_environment",
    "evaluate_markers",
    "Resolver",
    "ResolverState",
    "resolve",
    "resolve_sync",
]
