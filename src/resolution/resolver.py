"""Greedy, concurrent resolution of requirements into pinned versions.

The resolver seeds one listing request per root requirement, then drains
response batches from the dispatcher: a listing picks a wheel and requests
its metadata; metadata pins the package (first pin wins) and enqueues the
dependencies whose markers apply. The run ends once no package is in flight.
There is no backtracking: a later, conflicting constraint on an already
pinned package is not checked.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from contextlib import AsyncExitStack
from enum import Enum
from typing import AbstractSet, Dict, FrozenSet, Iterable, List, Optional, Set

from packaging.requirements import Requirement
from packaging.tags import Tag, sys_tags
from packaging.utils import NormalizedName, canonicalize_name

from constants import Constants
from common.logging_utils import Timer, extra_context, is_debug_enabled
from versioning.models import CandidateListing, DistributionMetadata, Resolution

from .candidates import select_candidate
from .dispatcher import (
    FetchDispatcher,
    FetchFailed,
    FetchListing,
    FetchMetadata,
    FetchResponse,
    IndexClientProtocol,
    ListingReady,
    MetadataReady,
)
from .errors import DispatchError, IndexFetchError, ResolutionError, ResolutionTimeout
from .markers import current_environment, evaluate_markers

logger = logging.getLogger(__name__)


class ResolverState(Enum):
    """Lifecycle of a single resolution run."""
    SEEDING = "seeding"
    DRAINING = "draining"
    DONE = "done"


class Resolver:
    """Drives one resolution run over an injected dispatcher.

    The dispatcher only needs ``submit(request)`` and an awaitable
    ``next_batch()``; all state lives here and is mutated from a single task.
    """

    def __init__(
        self,
        dispatcher,
        environment: Optional[Dict[str, str]] = None,
        tags: Optional[Iterable[Tag]] = None,
    ):
        self._dispatcher = dispatcher
        self._environment = environment if environment is not None else current_environment()
        self._tags: FrozenSet[Tag] = frozenset(tags if tags is not None else sys_tags())
        self._resolution = Resolution()
        self._in_flight: Set[NormalizedName] = set()
        self._outstanding: Counter = Counter()
        self._roots: Set[NormalizedName] = set()
        self.state = ResolverState.SEEDING

    @property
    def resolution(self) -> Resolution:
        return self._resolution

    @property
    def in_flight(self) -> AbstractSet[NormalizedName]:
        """Names requested but not yet finalized (read-only view)."""
        return frozenset(self._in_flight)

    def seed(self, requirements: Iterable[Requirement]) -> None:
        """Emit a listing request for every root requirement.

        Duplicate roots are not collapsed; each gets its own request.
        """
        for requirement in requirements:
            name = canonicalize_name(requirement.name)
            logger.debug("Adding root requirement: %s", requirement)
            self._roots.add(name)
            self._in_flight.add(name)
            self._submit(name, FetchListing(requirement=requirement))

    async def run(self, requirements: Iterable[Requirement]) -> Resolution:
        """Resolve ``requirements`` and return the finished Resolution."""
        if self.state is not ResolverState.SEEDING:
            raise ResolutionError("A Resolver instance can only run once")
        self.seed(requirements)
        self.state = ResolverState.DRAINING
        while self._in_flight:
            batch = await self._dispatcher.next_batch()
            for response in batch:
                self._handle(response)
        self.state = ResolverState.DONE
        return self._resolution

    def _submit(self, name: NormalizedName, request) -> None:
        self._outstanding[name] += 1
        self._dispatcher.submit(request)

    def _settle(self, name: NormalizedName) -> None:
        """Account for one answered request for ``name``."""
        if self._outstanding[name] > 1:
            self._outstanding[name] -= 1
        else:
            self._outstanding.pop(name, None)

    def _handle(self, response: FetchResponse) -> None:
        if isinstance(response, ListingReady):
            self._on_listing(response.listing, response.requirement)
        elif isinstance(response, MetadataReady):
            self._on_metadata(response.metadata, response.requirement)
        elif isinstance(response, FetchFailed):
            error = response.error
            if isinstance(error, ResolutionError):
                raise error
            raise IndexFetchError(
                f"Fetch for {response.request.requirement.name} failed: {error}"
            ) from error
        else:
            raise DispatchError(f"Unexpected response from dispatcher: {response!r}")

    def _on_listing(self, listing: CandidateListing, requirement: Requirement) -> None:
        name = canonicalize_name(requirement.name)
        self._settle(name)
        if name in self._resolution:
            return

        file = select_candidate(listing, requirement, self._tags)
        if file is None:
            if self._outstanding[name]:
                # Another request for this name can still pin it.
                logger.debug("No compatible wheel found for %s; awaiting other requests", requirement)
                return
            # Finalized without a pin so the run can still terminate.
            self._in_flight.discard(name)
            if name in self._roots:
                logger.warning("No compatible wheel found for %s; dropping it", requirement)
            else:
                logger.debug("No compatible wheel found for %s; dropping it", requirement)
            return

        if is_debug_enabled(logger):
            logger.debug(
                "Selected candidate",
                extra=extra_context(
                    event="candidate_selected",
                    component="resolver",
                    package=name,
                    candidate_file=file.filename,
                ),
            )
        self._submit(name, FetchMetadata(requirement=requirement, file=file))

    def _on_metadata(self, metadata: DistributionMetadata, requirement: Requirement) -> None:
        name = canonicalize_name(requirement.name)
        self._settle(name)
        self._in_flight.discard(name)
        if not self._resolution.pin(name, metadata.version):
            return
        logger.debug("Selected version %s for %s", metadata.version, requirement)

        extras = requirement.extras
        for dependency in metadata.requires_dist:
            if not evaluate_markers(dependency, self._environment, extras):
                logger.debug("Ignoring %s due to environment mismatch", dependency)
                continue

            dependency_name = canonicalize_name(dependency.name)
            if dependency_name in self._resolution:
                continue
            if dependency_name in self._in_flight:
                continue

            self._in_flight.add(dependency_name)
            logger.debug("Adding transitive dependency: %s", dependency)
            self._submit(dependency_name, FetchListing(requirement=dependency))


async def resolve(
    requirements: Iterable[Requirement],
    client: IndexClientProtocol,
    environment: Optional[Dict[str, str]] = None,
    tags: Optional[Iterable[Tag]] = None,
    max_concurrency: int = Constants.MAX_CONCURRENT_FETCHES,
    batch_size: int = Constants.RESPONSE_BATCH_SIZE,
    timeout: Optional[float] = None,
) -> Resolution:
    """Resolve requirements against ``client`` into a Resolution.

    Args:
        requirements: Root requirements.
        client: Index client providing ``fetch_listing`` and ``fetch_metadata``.
        environment: Marker environment; defaults to the running interpreter.
        tags: Supported platform tags; defaults to ``packaging.tags.sys_tags()``.
        max_concurrency: Maximum concurrent fetches.
        batch_size: Maximum responses handled per loop wake-up.
        timeout: Optional wall-clock limit in seconds for the whole run.

    Raises:
        IndexFetchError: A listing or metadata fetch failed; no partial result.
        ResolutionTimeout: ``timeout`` elapsed first.
    """
    roots: List[Requirement] = list(requirements)
    with Timer() as timer:
        async with FetchDispatcher(client, max_concurrency, batch_size) as dispatcher:
            resolver = Resolver(dispatcher, environment=environment, tags=tags)
            try:
                resolution = await asyncio.wait_for(resolver.run(roots), timeout)
            except asyncio.TimeoutError as exc:
                raise ResolutionTimeout(
                    f"Resolution did not finish within {timeout} seconds"
                ) from exc
    logger.info(
        "Resolved %d package(s) from %d requirement(s)",
        len(resolution),
        len(roots),
        extra=extra_context(
            event="resolution_complete",
            component="resolver",
            duration_ms=timer.duration_ms(),
            peak_concurrency=dispatcher.peak_concurrency,
        ),
    )
    return resolution


def resolve_sync(requirements: Iterable[Requirement], client: IndexClientProtocol, **kwargs) -> Resolution:
    """Run :func:`resolve` on a fresh event loop.

    Clients that are async context managers are entered for the duration
    of the run.
    """

    async def _run() -> Resolution:
        async with AsyncExitStack() as stack:
            if hasattr(client, "__aenter__"):
                await stack.enter_async_context(client)
            return await resolve(requirements, client, **kwargs)

    return asyncio.run(_run())
