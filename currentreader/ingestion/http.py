"""
Conditional HTTP Fetcher
========================

Outbound GET requests with a bounded timeout, cache-validator headers and a
304 short-circuit. All upstream failures are mapped onto the application's
feed error types so callers only ever see CurrentReader exceptions.
"""

import asyncio
import ssl
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

import aiohttp
import certifi

from ..config.settings import get_settings
from ..database.models import CacheValidator
from ..utils.exceptions import FeedTimeoutError, FeedNetworkError, UpstreamError
from ..utils.logging import get_logger_for_component

HTML_ACCEPT = "text/html,application/xhtml+xml"


class FetchStatus(str, Enum):
    OK = "ok"
    NOT_MODIFIED = "not_modified"


@dataclass
class FetchResponse:
    """Outcome of a conditional GET that reached upstream."""

    url: str
    status: FetchStatus
    status_code: int
    body: Optional[bytes] = None
    validators: CacheValidator = field(default_factory=CacheValidator)
    content_type: Optional[str] = None
    fetch_time: Optional[datetime] = None

    def __post_init__(self):
        if not self.fetch_time:
            self.fetch_time = datetime.now(timezone.utc)

    @property
    def not_modified(self) -> bool:
        return self.status == FetchStatus.NOT_MODIFIED


def build_conditional_headers(validators: Optional[CacheValidator]) -> Dict[str, str]:
    """Request headers carrying the caller's cache validators, if any."""
    headers = {}
    if validators is None:
        return headers
    if validators.etag:
        headers["If-None-Match"] = validators.etag
    if validators.last_modified:
        headers["If-Modified-Since"] = validators.last_modified
    return headers


class ConditionalFetcher:
    """aiohttp-based fetcher for feeds and web pages."""

    def __init__(self, timeout: Optional[float] = None, max_concurrent: Optional[int] = None):
        """Initialize fetcher.

        Args:
            timeout: Per-request timeout in seconds (default from config)
            max_concurrent: Concurrent requests the session should allow (default from config)
        """
        settings = get_settings()
        self.timeout = timeout or settings.fetch.timeout_seconds
        self.max_concurrent = max_concurrent or settings.fetch.max_concurrent_refreshes
        self.limit_per_host = settings.fetch.limit_per_host
        self.user_agent = settings.fetch.user_agent
        self.accept = settings.fetch.accept
        self.logger = get_logger_for_component("fetcher")

        # SSL context for secure requests
        self.ssl_context = ssl.create_default_context(cafile=certifi.where())

    @asynccontextmanager
    async def get_session(self):
        """Get configured aiohttp session."""
        connector = aiohttp.TCPConnector(
            ssl=self.ssl_context,
            limit=self.max_concurrent * 2,
            limit_per_host=self.limit_per_host,
            enable_cleanup_closed=True,
        )

        timeout = aiohttp.ClientTimeout(total=self.timeout)

        headers = {
            "User-Agent": self.user_agent,
            "Accept": self.accept,
        }

        async with aiohttp.ClientSession(
            connector=connector, timeout=timeout, headers=headers
        ) as session:
            yield session

    async def fetch(
        self,
        url: str,
        session: aiohttp.ClientSession,
        validators: Optional[CacheValidator] = None,
        timeout: Optional[float] = None,
    ) -> FetchResponse:
        """Conditionally GET a feed document.

        Args:
            url: Feed URL
            session: aiohttp session for requests
            validators: Cache validators remembered from the previous fetch
            timeout: Override of the per-request timeout in seconds

        Returns:
            FetchResponse, either ``ok`` with a body or ``not_modified``

        Raises:
            FeedTimeoutError: Request exceeded the time bound
            UpstreamError: Non-2xx, non-304 status
            FeedNetworkError: Connection-level failure
        """
        timeout = timeout or self.timeout
        headers = build_conditional_headers(validators)

        self.logger.debug(
            f"Fetching {url} (conditional: {', '.join(headers) or 'no'})"
        )

        try:
            async with session.get(
                url, headers=headers, timeout=aiohttp.ClientTimeout(total=timeout)
            ) as response:
                if response.status == 304:
                    self.logger.info(f"Not modified: {url}")
                    return FetchResponse(
                        url=url,
                        status=FetchStatus.NOT_MODIFIED,
                        status_code=304,
                        validators=validators or CacheValidator(),
                    )

                if not 200 <= response.status < 300:
                    raise UpstreamError(
                        f"HTTP {response.status} from {url}",
                        status_code=response.status,
                        feed_url=url,
                    )

                body = await response.read()
                response_validators = CacheValidator(
                    etag=response.headers.get("ETag"),
                    last_modified=response.headers.get("Last-Modified"),
                )

                self.logger.debug(f"Fetched {len(body)} bytes from {url}")

                return FetchResponse(
                    url=url,
                    status=FetchStatus.OK,
                    status_code=response.status,
                    body=body,
                    validators=response_validators,
                    content_type=response.headers.get("Content-Type"),
                )

        except asyncio.TimeoutError as e:
            self.logger.warning(f"Fetch timeout for {url} after {timeout}s")
            raise FeedTimeoutError(
                f"Request timeout after {timeout}s",
                feed_url=url,
                timeout=timeout,
            ) from e

        except aiohttp.ClientError as e:
            self.logger.warning(f"Network error fetching {url}: {e}")
            raise FeedNetworkError(f"Network error: {e}", feed_url=url) from e

    async def fetch_document(
        self,
        url: str,
        session: aiohttp.ClientSession,
        accept: str = HTML_ACCEPT,
        timeout: Optional[float] = None,
    ) -> str:
        """GET a web page and return its decoded text.

        Raises:
            FeedTimeoutError, UpstreamError, FeedNetworkError: As for fetch()
        """
        timeout = timeout or self.timeout

        try:
            async with session.get(
                url,
                headers={"Accept": accept},
                timeout=aiohttp.ClientTimeout(total=timeout),
            ) as response:
                if not 200 <= response.status < 300:
                    raise UpstreamError(
                        f"HTTP {response.status} from {url}",
                        status_code=response.status,
                        feed_url=url,
                    )
                return await response.text()

        except asyncio.TimeoutError as e:
            self.logger.warning(f"Page fetch timeout for {url} after {timeout}s")
            raise FeedTimeoutError(
                f"Request timeout after {timeout}s", feed_url=url, timeout=timeout
            ) from e

        except aiohttp.ClientError as e:
            self.logger.warning(f"Network error fetching page {url}: {e}")
            raise FeedNetworkError(f"Network error: {e}", feed_url=url) from e
