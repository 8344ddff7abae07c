"""
Shared fixtures.
FakeFetchService serves canned pages so no test touches the network.
"""

import asyncio

import pytest
from bs4 import BeautifulSoup

from sitescore.core.config import CrawlConfiguration, Settings
from sitescore.engines.crawler.fetcher import FetchResult
from sitescore.engines.crawler.frontier import CrawlFrontier


class FakeFetchService:
    """
    Canned responses keyed by URL: (status_code, html).
    status_code None simulates a transport error; html None a non-HTML body.
    Unknown URLs answer 404.
    """

    def __init__(self, pages: dict[str, tuple[int | None, str | None]]):
        self.pages = pages
        self.requested: list[str] = []

    async def fetch(self, url: str) -> FetchResult:
        self.requested.append(url)
        await asyncio.sleep(0)
        status_code, html = self.pages.get(url, (404, None))
        if status_code is None:
            return FetchResult(url=url, error="ConnectError: connection refused")
        if html is None:
            return FetchResult(url=url, status_code=status_code, content_type="application/pdf")
        return FetchResult(
            url=url,
            status_code=status_code,
            document=BeautifulSoup(html, "lxml"),
            content_type="text/html; charset=utf-8",
        )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        CRAWLER_RATE_LIMIT_RPS=1000.0,
        CRAWLER_MAX_CONNECTIONS=1,
    )


@pytest.fixture
def crawl_config() -> CrawlConfiguration:
    return CrawlConfiguration(
        protocol="https",
        host="example.com",
        start_page="/docs/index.html",
        sub_path_only=True,
        show_report=False,
    )


@pytest.fixture
def frontier() -> CrawlFrontier:
    return CrawlFrontier(protocol="https")


@pytest.fixture
def fake_fetch_service():
    """Factory: fake_fetch_service({url: (status, html)})."""
    return FakeFetchService
