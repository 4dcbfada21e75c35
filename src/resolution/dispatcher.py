"""Bounded-concurrency fetch pipeline between the resolver and the index.

The resolver submits requests without waiting; a fixed pool of worker tasks
executes them against the index client and pushes responses onto a single
queue, which the resolver drains in arrival-ordered batches.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Protocol, Union

from packaging.requirements import Requirement
from packaging.utils import canonicalize_name

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled
from versioning.models import CandidateFile, CandidateListing, DistributionMetadata

from .errors import DispatchError

logger = logging.getLogger(__name__)


class IndexClientProtocol(Protocol):
    """What the dispatcher needs from an index client."""

    async def fetch_listing(self, name: str) -> CandidateListing: ...

    async def fetch_metadata(self, file: CandidateFile) -> DistributionMetadata: ...


@dataclass
class FetchListing:
    """Request all candidate files for a requirement's package."""
    requirement: Requirement


@dataclass
class FetchMetadata:
    """Request the metadata of the file chosen for a requirement."""
    requirement: Requirement
    file: CandidateFile


@dataclass
class ListingReady:
    listing: CandidateListing
    requirement: Requirement


@dataclass
class MetadataReady:
    metadata: DistributionMetadata
    requirement: Requirement


@dataclass
class FetchFailed:
    """The client raised while executing ``request``."""
    request: FetchRequest
    error: BaseException


FetchRequest = Union[FetchListing, FetchMetadata]
FetchResponse = Union[ListingReady, MetadataReady, FetchFailed]


class FetchDispatcher:
    """Executes fetch requests on a pool of worker tasks.

    ``submit`` never blocks; at most ``max_concurrency`` fetches run at once
    and the rest wait in the inbound queue. ``next_batch`` waits for at least
    one completed response and returns up to ``batch_size`` of them.
    """

    def __init__(
        self,
        client: IndexClientProtocol,
        max_concurrency: int = Constants.MAX_CONCURRENT_FETCHES,
        batch_size: int = Constants.RESPONSE_BATCH_SIZE,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._client = client
        self._max_concurrency = max_concurrency
        self._batch_size = batch_size
        self._requests: Optional[asyncio.Queue] = None
        self._responses: Optional[asyncio.Queue] = None
        self._workers: List[asyncio.Task] = []
        self._closed = False
        self._active = 0
        self.peak_concurrency = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Create the queues and spawn the worker pool."""
        if self._closed:
            raise DispatchError("Dispatcher is closed")
        if self._workers:
            return
        self._requests = asyncio.Queue()
        self._responses = asyncio.Queue()
        self._workers = [
            asyncio.create_task(self._worker(), name=f"wheelpin-fetch-{index}")
            for index in range(self._max_concurrency)
        ]

    def submit(self, request: FetchRequest) -> None:
        """Queue a request for execution."""
        if self._closed or self._requests is None:
            raise DispatchError("Dispatcher is not running")
        self._requests.put_nowait(request)

    async def next_batch(self) -> List[FetchResponse]:
        """Wait for the next batch of completed responses."""
        if self._closed or self._responses is None:
            raise DispatchError("Dispatcher is not running")
        batch = [await self._responses.get()]
        while len(batch) < self._batch_size:
            try:
                batch.append(self._responses.get_nowait())
            except asyncio.QueueEmpty:
                break
        return batch

    async def close(self) -> None:
        """Cancel the workers; queued and running fetches are abandoned."""
        self._closed = True
        workers, self._workers = self._workers, []
        for task in workers:
            task.cancel()
        if workers:
            await asyncio.gather(*workers, return_exceptions=True)

    async def _worker(self) -> None:
        assert self._requests is not None and self._responses is not None
        while True:
            request = await self._requests.get()
            self._active += 1
            self.peak_concurrency = max(self.peak_concurrency, self._active)
            try:
                response = await self._execute(request)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # Delivered to the resolver, which aborts the run
                response = FetchFailed(request=request, error=exc)
            finally:
                self._active -= 1
            self._responses.put_nowait(response)

    async def _execute(self, request: FetchRequest) -> FetchResponse:
        if isinstance(request, FetchListing):
            name = canonicalize_name(request.requirement.name)
            if is_debug_enabled(logger):
                logger.debug(
                    "Fetching listing",
                    extra=extra_context(event="fetch_listing", component="dispatcher", package=name),
                )
            listing = await self._client.fetch_listing(name)
            return ListingReady(listing=listing, requirement=request.requirement)
        if isinstance(request, FetchMetadata):
            if is_debug_enabled(logger):
                logger.debug(
                    "Fetching metadata",
                    extra=extra_context(
                        event="fetch_metadata",
                        component="dispatcher",
                        candidate_file=request.file.filename,
                    ),
                )
            metadata = await self._client.fetch_metadata(request.file)
            return MetadataReady(metadata=metadata, requirement=request.requirement)
        raise DispatchError(f"Unsupported fetch request: {request!r}")

    async def __aenter__(self) -> "FetchDispatcher":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
