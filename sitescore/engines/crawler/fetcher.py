"""
Fetch service - the HTTP transport behind the dispatcher.

Contract: fetch(url) resolves to a FetchResult carrying either a transport
error, or a status code plus a parsed document when the response is HTML.
Politeness (minimum delay between requests) is enforced here, not by the
callers.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Protocol

import httpx
import structlog
from bs4 import BeautifulSoup

from sitescore.core.config import Settings, get_settings

logger = structlog.get_logger(__name__)

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


@dataclass
class FetchResult:
    """Outcome of one fetch."""
    url: str
    status_code: int | None = None
    document: BeautifulSoup | None = None
    content_type: str = ""
    error: str | None = None
    elapsed_ms: float = 0.0
    final_url: str | None = None    # where redirects ended, if anywhere else

    @property
    def is_transport_error(self) -> bool:
        return self.error is not None and self.status_code is None


class FetchService(Protocol):
    async def fetch(self, url: str) -> FetchResult:
        ...


@dataclass
class RateLimiter:
    """
    Token bucket rate limiter.
    Allows burst up to max_tokens then enforces steady rate.
    """
    rate: float  # Tokens per second
    max_tokens: float
    tokens: float = field(init=False)
    last_refill: float = field(default_factory=time.monotonic, init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False)

    def __post_init__(self):
        self.tokens = self.max_tokens

    async def acquire(self) -> None:
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self.last_refill
            self.tokens = min(self.max_tokens, self.tokens + elapsed * self.rate)
            self.last_refill = now

            if self.tokens < 1:
                wait_time = (1 - self.tokens) / self.rate
                await asyncio.sleep(wait_time)
                self.last_refill = time.monotonic()
                self.tokens = 0
            else:
                self.tokens -= 1


def is_html(content_type: str) -> bool:
    content_type = content_type.lower()
    return any(t in content_type for t in HTML_CONTENT_TYPES)


class HttpFetchService:
    """
    httpx-backed fetch service.

    Use as an async context manager, or pass in a client you manage yourself
    (tests hand in a client built on httpx.MockTransport).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        rate_limiter: RateLimiter | None = None,
    ):
        self.settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None
        self.rate_limiter = rate_limiter or RateLimiter(
            rate=self.settings.CRAWLER_RATE_LIMIT_RPS,
            max_tokens=1,
        )

    async def __aenter__(self) -> HttpFetchService:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={
                    "User-Agent": self.settings.CRAWLER_USER_AGENT,
                    "Accept": "text/html,application/xhtml+xml,*/*;q=0.8",
                },
                follow_redirects=True,
                timeout=self.settings.CRAWLER_REQUEST_TIMEOUT,
                limits=httpx.Limits(max_connections=self.settings.CRAWLER_MAX_CONNECTIONS),
            )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str) -> FetchResult:
        if self._client is None:
            raise RuntimeError("HttpFetchService used outside its context manager")

        await self.rate_limiter.acquire()
        start = time.perf_counter()
        try:
            response = await self._client.get(url)
        except httpx.TimeoutException as exc:
            return self._transport_error(url, f"timeout: {exc}", start)
        except httpx.HTTPError as exc:
            return self._transport_error(url, f"{type(exc).__name__}: {exc}", start)

        elapsed = (time.perf_counter() - start) * 1000
        final_url = str(response.url)
        redirected_to = final_url if final_url != url else None
        content_type = response.headers.get("content-type", "")
        document = None
        if is_html(content_type):
            document = BeautifulSoup(response.text, "lxml")

        logger.debug(
            "Fetched",
            url=url,
            status_code=response.status_code,
            content_type=content_type,
            elapsed_ms=round(elapsed, 2),
            redirected_to=redirected_to,
        )
        return FetchResult(
            url=url,
            status_code=response.status_code,
            document=document,
            content_type=content_type,
            elapsed_ms=elapsed,
            final_url=redirected_to,
        )

    @staticmethod
    def _transport_error(url: str, error: str, start: float) -> FetchResult:
        logger.warning("HTTP fetch failed", url=url, error=error)
        return FetchResult(
            url=url,
            error=error,
            elapsed_ms=(time.perf_counter() - start) * 1000,
        )
