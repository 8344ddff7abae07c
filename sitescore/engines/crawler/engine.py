"""
Site Crawler - wires the crawl components together for one run.

Flow:
1. Queue the start page (Analyze mode)
2. Dispatcher: fetch -> page processor -> discovered links back into the frontier
3. Frontier drained: finalize (CSV export, stdout report, caller hook)
4. Return the reportable records as a CrawlReport
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Awaitable, Callable
from contextlib import AsyncExitStack
from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from sitescore.core.config import CrawlConfiguration, Settings, get_settings
from sitescore.engines.base import CrawlMode, CrawlRecord, utc_now
from sitescore.engines.crawler.dispatcher import FetchDispatcher
from sitescore.engines.crawler.fetcher import FetchService, HttpFetchService
from sitescore.engines.crawler.frontier import CrawlFrontier
from sitescore.engines.crawler.processor import PageProcessor
from sitescore.engines.crawler.urls import URLResolver, canonicalize
from sitescore.engines.scoring.engine import ScoringEngine
from sitescore.engines.scoring.terms import TermExtractor
from sitescore.reports.console import print_report
from sitescore.reports.csv_export import write_csv

logger = structlog.get_logger(__name__)

FinalizeHook = Callable[[list[CrawlRecord]], Awaitable[None] | None]


class CrawlReport(BaseModel):
    """Everything a caller needs once a crawl run is over."""
    start_url: str
    started_at: datetime
    finished_at: datetime
    elapsed_seconds: float
    records: list[CrawlRecord] = Field(default_factory=list)
    stats: dict[str, int] = Field(default_factory=dict)

    @property
    def analyzed(self) -> list[CrawlRecord]:
        return [r for r in self.records if r.is_analyzed]


class SiteCrawler:
    """
    One crawl run over one site.

    The frontier is owned by the instance, so any number of crawlers can run
    side by side in one process.
    """

    def __init__(
        self,
        config: CrawlConfiguration,
        settings: Settings | None = None,
        fetch_service: FetchService | None = None,
        on_finalize: FinalizeHook | None = None,
    ):
        self.config = config
        self.settings = settings or get_settings()
        self.fetch_service = fetch_service
        self.on_finalize = on_finalize

        self.frontier = CrawlFrontier(protocol=config.protocol)
        self.resolver = URLResolver(config, self.frontier)
        self.processor = PageProcessor(
            self.frontier,
            self.resolver,
            extractor=TermExtractor(noise_words=self.settings.CRAWLER_NOISE_WORDS),
            scoring_engine=ScoringEngine(),
        )
        self.start_url = canonicalize(config.protocol, config.host, config.start_page)
        self.completed = False

    async def run(self) -> CrawlReport:
        started_at = utc_now()
        start = time.perf_counter()
        logger.info(
            "Site-crawler starting",
            start_url=self.start_url,
            base_path=self.config.base_path,
            sub_path_only=self.config.sub_path_only,
        )

        async with AsyncExitStack() as stack:
            fetch_service = self.fetch_service
            if fetch_service is None:
                fetch_service = await stack.enter_async_context(HttpFetchService(self.settings))

            dispatcher = FetchDispatcher(
                self.frontier,
                fetch_service,
                on_fetched=self.processor.process,
                on_complete=self._finalize,
                max_connections=self.settings.CRAWLER_MAX_CONNECTIONS,
            )
            self.frontier.enqueue(self.start_url, self.start_url, CrawlMode.ANALYZE)
            await dispatcher.run()

        elapsed = time.perf_counter() - start
        report = CrawlReport(
            start_url=self.start_url,
            started_at=started_at,
            finished_at=utc_now(),
            elapsed_seconds=round(elapsed, 2),
            records=self.frontier.reportable_records(),
            stats=self.frontier.stats(),
        )
        logger.info("Site-crawler finished", elapsed_seconds=report.elapsed_seconds, **report.stats)
        return report

    async def _finalize(self, frontier: CrawlFrontier) -> None:
        """Completion hook: runs once, after the last fetch is processed."""
        self.completed = True
        records = frontier.reportable_records()
        dropped = len(frontier) - len(records)
        if dropped:
            logger.debug("Dropping records without a response", count=dropped)

        if self.config.save_to_csv:
            write_csv(self.config.save_to_csv, records)
            logger.info("CSV file saved", path=self.config.save_to_csv, rows=len(records))
        if self.config.show_report:
            print_report(records)
        if self.on_finalize is not None:
            outcome = self.on_finalize(records)
            if inspect.isawaitable(outcome):
                await outcome
