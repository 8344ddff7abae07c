"""
Fetch Dispatcher - drains the frontier's pending jobs through the fetch service.

- max_connections workers (1 by default: strictly one request in flight)
- each completion is handed to the page processor as one atomic event
- a failure on one page is logged and recorded, never fatal to the run
- after every completion, pending_count() == 0 ends the crawl and fires
  the completion hook exactly once
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable

import structlog

from sitescore.engines.crawler.fetcher import FetchResult, FetchService
from sitescore.engines.crawler.frontier import CrawlFrontier, CrawlJob

logger = structlog.get_logger(__name__)

CompletionHandler = Callable[[FetchResult], object]
CompletionHook = Callable[[CrawlFrontier], Awaitable[None] | None]


class FetchDispatcher:

    def __init__(
        self,
        frontier: CrawlFrontier,
        fetch_service: FetchService,
        on_fetched: CompletionHandler,
        on_complete: CompletionHook | None = None,
        max_connections: int = 1,
    ):
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        self.frontier = frontier
        self.fetch_service = fetch_service
        self.on_fetched = on_fetched
        self.on_complete = on_complete
        self.max_connections = max_connections
        self.completions = 0
        self._done = asyncio.Event()
        self._completion_fired = False
        self._completion_error: BaseException | None = None

    @property
    def is_complete(self) -> bool:
        return self._done.is_set()

    async def run(self) -> None:
        """Crawl until the frontier has no pending work."""
        if self.frontier.pending_count() == 0:
            await self._fire_completion()
        else:
            workers = [
                asyncio.create_task(self._worker(f"worker-{i}"))
                for i in range(self.max_connections)
            ]
            try:
                await self._done.wait()
            finally:
                for worker in workers:
                    worker.cancel()
                await asyncio.gather(*workers, return_exceptions=True)

        # The finalize callback (report export) failing is the caller's problem.
        if self._completion_error is not None:
            raise self._completion_error

    async def _worker(self, worker_id: str) -> None:
        while not self._done.is_set():
            job = await self.frontier.next_job()
            await self._handle(job, worker_id)
            if self.frontier.pending_count() == 0:
                await self._fire_completion()
            else:
                logger.debug("Scanning continues", pending=self.frontier.pending_count())

    async def _handle(self, job: CrawlJob, worker_id: str) -> None:
        try:
            result = await self.fetch_service.fetch(job.url)
        except Exception as exc:
            # Fetch services should report errors in the result; treat a raise the same way.
            logger.warning("Fetch raised", url=job.url, worker=worker_id, error=str(exc))
            result = FetchResult(url=job.url, error=f"{type(exc).__name__}: {exc}")

        self.completions += 1
        try:
            outcome = self.on_fetched(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.error("Page processing failed", url=job.url, error=str(exc), exc_info=True)
            record = self.frontier.get(job.url)
            if record is not None and not record.is_complete:
                self.frontier.mark_failed(job.url, f"processing error: {exc}")

    async def _fire_completion(self) -> None:
        if self._completion_fired:
            return
        self._completion_fired = True
        logger.info("Scanning complete", completions=self.completions, **self.frontier.stats())
        try:
            if self.on_complete is not None:
                outcome = self.on_complete(self.frontier)
                if inspect.isawaitable(outcome):
                    await outcome
        except Exception as exc:
            logger.error("Completion hook failed", error=str(exc), exc_info=True)
            self._completion_error = exc
        finally:
            self._done.set()
