"""
Page Processor - handles each completed fetch.

For an analyzable page (Analyze mode, status < 300, HTML document, and any
redirect landed back inside the crawl scope):
1. extract title, meta description/keywords/last-modified/product/version, H1
2. resolve every body anchor against the landing path and enqueue in-scope
   links for analysis
3. build the term corpus and score the page
4. store metadata, score, analysis and sorted terms on the frontier record

Anything else is finalized without analysis: ProbedOnly when the URL
answered with a status below 400, Failed otherwise.
"""

from __future__ import annotations

from urllib.parse import urlsplit

import structlog
from bs4 import BeautifulSoup

from sitescore.engines.base import CrawlMode, CrawlRecord, PageMetadata
from sitescore.engines.crawler.fetcher import FetchResult
from sitescore.engines.crawler.frontier import CrawlFrontier
from sitescore.engines.crawler.urls import URLResolver
from sitescore.engines.scoring.engine import ScoringEngine
from sitescore.engines.scoring.terms import TermExtractor

logger = structlog.get_logger(__name__)

ERROR_STATUS = 400


def meta_content(document: BeautifulSoup, name: str) -> str:
    tag = document.find("meta", attrs={"name": name})
    if tag is None:
        return ""
    return (tag.get("content") or "").strip()


def extract_metadata(document: BeautifulSoup) -> PageMetadata:
    """SEO metadata of a parsed page; missing fields are empty strings."""
    return PageMetadata(
        title="".join(t.get_text() for t in document.find_all("title")).strip(),
        description=meta_content(document, "description"),
        keywords=meta_content(document, "keywords"),
        header_one="".join(h.get_text() for h in document.find_all("h1")).strip().lower(),
        last_modified=meta_content(document, "last-modified"),
        product=meta_content(document, "product"),
        version=meta_content(document, "version"),
    )


class PageProcessor:

    def __init__(
        self,
        frontier: CrawlFrontier,
        resolver: URLResolver,
        extractor: TermExtractor | None = None,
        scoring_engine: ScoringEngine | None = None,
    ):
        self.frontier = frontier
        self.resolver = resolver
        self.extractor = extractor or TermExtractor()
        self.scoring_engine = scoring_engine or ScoringEngine()

    def process(self, result: FetchResult) -> CrawlRecord:
        """Finalize the frontier record for one completed fetch."""
        if result.status_code is None:
            logger.warning("Transport error", url=result.url, error=result.error)
            return self.frontier.mark_failed(result.url, result.error)

        record = self.frontier.mark_fetched(result.url, result.status_code)

        if record.mode != CrawlMode.ANALYZE or result.status_code >= 300:
            logger.debug("Status check only", url=result.url, status_code=result.status_code, mode=record.mode.value)
            return self._finish_without_analysis(record)

        if result.document is None:
            logger.debug("Response is not HTML", url=result.url, content_type=result.content_type)
            return self._finish_without_analysis(record)

        current_path = urlsplit(record.url).path or "/"
        if result.final_url is not None:
            landing = self.resolver.classify(result.final_url, current_path)
            if landing is None or landing.mode != CrawlMode.ANALYZE:
                logger.info("Redirected out of scope", url=result.url, final_url=result.final_url)
                return self._finish_without_analysis(record)
            # Relative links on the landing page are relative to where we landed.
            current_path = urlsplit(landing.url).path or "/"

        return self._analyze(record, result.document, current_path)

    def _analyze(self, record: CrawlRecord, document: BeautifulSoup, current_path: str) -> CrawlRecord:
        url = record.url
        logger.debug("Analyzing", url=url, current_path=current_path)
        metadata = extract_metadata(document)

        body = document.body or document
        queued = 0
        for anchor in body.find_all("a"):
            href = self.resolver.resolve(anchor.get("href"), current_path, url)
            if href is not None and self.frontier.enqueue(href, url, CrawlMode.ANALYZE):
                queued += 1

        terms = self.extractor.page_terms(metadata.title, metadata.description, metadata.keywords, document)
        result = self.scoring_engine.score(metadata, terms)

        record = self.frontier.mark_analyzed(
            url,
            metadata=metadata,
            terms=result.terms,
            score=result.score,
            analysis=result.analysis,
        )
        logger.info(
            "Page analyzed",
            url=url,
            score=result.score,
            links_queued=queued,
            pages_known=len(self.frontier),
        )
        return record

    def _finish_without_analysis(self, record: CrawlRecord) -> CrawlRecord:
        if record.status_code is not None and record.status_code >= ERROR_STATUS:
            logger.info("Error status", url=record.url, status_code=record.status_code)
            return self.frontier.mark_failed(record.url, f"HTTP {record.status_code}")
        return self.frontier.mark_probed(record.url)
