"""
URL canonicalization and scope classification.

A link found on a page is either:
- ignored (empty, fragment/query only, non-HTTP scheme, unparseable),
- in scope: same host and under the base path -> analyzed,
- out of scope: another host, or same host outside the base path -> 404 check only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

import structlog

from sitescore.core.config import CrawlConfiguration
from sitescore.engines.base import CrawlMode
from sitescore.engines.crawler.frontier import CrawlFrontier

logger = structlog.get_logger(__name__)

INDEX_PAGE_PATTERN = re.compile(r"^/?index\.(html|php|jsp)$")
CRAWLABLE_SCHEMES = ("http", "https")


def is_index_path(path: str) -> bool:
    """True if path points at a host's root index page."""
    return path in ("", "/") or bool(INDEX_PAGE_PATTERN.match(path))


def is_index_page(url: str) -> bool:
    return is_index_path(urlsplit(url).path)


def canonicalize(scheme: str, host: str, path: str) -> str:
    """
    Canonical absolute URL: no query, no fragment, and host.com,
    host.com/ and host.com/index.html all collapse to scheme://host/.
    """
    if is_index_path(path):
        return f"{scheme}://{host}/"
    return f"{scheme}://{host}{path}"


@dataclass(frozen=True)
class ResolvedLink:
    url: str
    mode: CrawlMode


class URLResolver:
    """Turns hrefs into canonical URLs and decides how each is crawled."""

    def __init__(self, config: CrawlConfiguration, frontier: CrawlFrontier):
        self.config = config
        self.frontier = frontier

    def classify(self, href: str | None, current_path: str) -> ResolvedLink | None:
        """
        Canonical URL and crawl mode for href found on the page at current_path.
        Returns None if the link is to be ignored. No side effects.
        """
        if href is None:
            return None
        href = href.strip()
        if not href or href[0] in ("#", "?"):
            return None

        if href.startswith("//"):
            # Protocol-relative links get the configured protocol
            href = f"{self.config.protocol}:{href}"

        try:
            parts = urlsplit(href)
        except ValueError:
            logger.debug("Unparseable link ignored", href=href)
            return None

        scheme = parts.scheme.lower()
        if scheme and scheme not in CRAWLABLE_SCHEMES:
            return None
        host = parts.netloc.lower()

        if not host or host == self.config.host:
            path = urljoin(current_path or "/", parts.path) if parts.path else ""
            url = canonicalize(self.config.protocol, self.config.host, path)
            if self._is_under_base_path(urlsplit(url).path):
                logger.debug("In scope", url=url, base_path=self.config.base_path)
                return ResolvedLink(url=url, mode=CrawlMode.ANALYZE)
            logger.debug("Not under base path - 404 check only", url=url, base_path=self.config.base_path)
            return ResolvedLink(url=url, mode=CrawlMode.PROBE_ONLY)

        url = canonicalize(scheme or self.config.protocol, host, parts.path)
        logger.debug("Different host - 404 check only", url=url)
        return ResolvedLink(url=url, mode=CrawlMode.PROBE_ONLY)

    def resolve(self, href: str | None, current_path: str, referrer: str) -> str | None:
        """
        Canonical URL to analyze, or None.

        Probe-only targets are enqueued on the frontier here and None is
        returned; so is None for links the frontier already knows.
        """
        link = self.classify(href, current_path)
        if link is None:
            return None

        if link.mode == CrawlMode.PROBE_ONLY:
            if not self.frontier.enqueue(link.url, referrer, CrawlMode.PROBE_ONLY):
                logger.debug("Ignoring already crawled", url=link.url)
            return None

        if link.url in self.frontier:
            logger.debug("Already crawled - ignoring", url=link.url)
            return None
        return link.url

    def _is_under_base_path(self, path: str) -> bool:
        if not self.config.sub_path_only:
            return True
        return path.startswith(self.config.base_path)
