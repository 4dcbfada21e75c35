"""Async client for a PEP 691 simple index: listings and core metadata."""
from __future__ import annotations

import asyncio
import json
import logging
import urllib.parse
from typing import Dict, Optional

import aiohttp

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer
from resolution.errors import IndexFetchError
from versioning.models import CandidateFile, CandidateListing, DistributionMetadata

from .cache import DocumentCache
from .parse import parse_listing, parse_metadata, read_wheel_metadata

logger = logging.getLogger(__name__)


class IndexClient:
    """Fetches candidate listings and distribution metadata from an index.

    Transient failures (connection errors, timeouts, 5xx) are retried up to
    ``retries`` times; anything still failing raises IndexFetchError.
    """

    def __init__(
        self,
        index_url: str = Constants.INDEX_URL,
        timeout: float = Constants.REQUEST_TIMEOUT,
        retries: int = Constants.HTTP_RETRY_MAX,
        cache: Optional[DocumentCache] = None,
    ):
        """Initialize the index client.

        Args:
            index_url: Base URL of the simple index, e.g. https://pypi.org/simple.
            timeout: Per-request timeout in seconds.
            retries: Attempts per request before giving up.
            cache: Optional document cache shared across runs.
        """
        self._index_url = index_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retries = max(1, retries)
        self._cache = cache
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def index_url(self) -> str:
        """Base URL of the simple index."""
        return self._index_url

    async def start(self) -> None:
        """Start the HTTP session."""
        if self._session is None:
            connector = aiohttp.TCPConnector(limit=Constants.MAX_CONCURRENT_FETCHES)
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=connector,
                headers={"User-Agent": Constants.USER_AGENT},
            )

    async def stop(self) -> None:
        """Stop the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    def listing_url(self, name: str) -> str:
        """Return the simple-index project URL for a normalized name."""
        return f"{self._index_url}/{urllib.parse.quote(name)}/"

    async def fetch_listing(self, name: str) -> CandidateListing:
        """Fetch the candidate listing for a normalized package name."""
        url = self.listing_url(name)
        body = await self._get(url, accept=Constants.SIMPLE_JSON_CONTENT_TYPE)
        try:
            document = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise IndexFetchError(f"Invalid JSON listing for {name}", url=safe_url(url)) from exc
        return parse_listing(name, document, base_url=url)

    async def fetch_metadata(self, file: CandidateFile) -> DistributionMetadata:
        """Fetch core metadata for one candidate file.

        Uses the index-served ``.metadata`` document when advertised, otherwise
        downloads the wheel and reads METADATA from the archive.
        """
        url, _, _fragment = file.url.partition("#")
        if file.core_metadata:
            body = await self._get(f"{url}.metadata")
        else:
            if is_debug_enabled(logger):
                logger.debug(
                    "No core metadata advertised; downloading wheel",
                    extra=extra_context(
                        event="metadata_fallback",
                        component="index_client",
                        target=safe_url(url),
                    ),
                )
            body = read_wheel_metadata(await self._get(url, use_cache=False), file.filename)
        return parse_metadata(body, source=safe_url(url))

    async def _get(self, url: str, accept: str = "", use_cache: bool = True) -> bytes:
        """GET ``url`` with retries and caching; returns the response body."""
        cache_key = DocumentCache.make_key(url, accept)
        if use_cache and self._cache is not None:
            cached = self._cache.get(cache_key)
            if cached is not None:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP cache hit",
                        extra=extra_context(
                            event="cache_hit",
                            component="index_client",
                            target=safe_url(url),
                        ),
                    )
                return cached

        if self._session is None:
            await self.start()
        assert self._session is not None

        headers: Dict[str, str] = {"Accept": accept} if accept else {}
        last_error = ""
        for attempt in range(self._retries):
            if attempt:
                await asyncio.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** (attempt - 1)))
            with Timer() as t:
                try:
                    async with self._session.get(url, headers=headers) as response:
                        status = response.status
                        body = await response.read()
                except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    last_error = str(exc) or type(exc).__name__
                    logger.debug(
                        "HTTP request exception",
                        extra=extra_context(
                            event="http_exception",
                            component="index_client",
                            outcome="request_exception",
                            attempt=attempt + 1,
                            target=safe_url(url),
                        ),
                    )
                    continue

            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP response",
                    extra=extra_context(
                        event="http_response",
                        component="index_client",
                        status_code=status,
                        duration_ms=t.duration_ms(),
                        attempt=attempt + 1,
                        target=safe_url(url),
                    ),
                )

            if status >= 500:
                last_error = f"HTTP {status}"
                continue
            if status != 200:
                raise IndexFetchError(
                    f"Index returned HTTP {status} for {safe_url(url)}",
                    url=safe_url(url),
                    status=status,
                )
            if use_cache and self._cache is not None:
                self._cache.set(cache_key, body)
            return body

        raise IndexFetchError(
            f"Request to {safe_url(url)} failed after {self._retries} attempts: {last_error}",
            url=safe_url(url),
        )

    async def __aenter__(self) -> "IndexClient":
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.stop()
