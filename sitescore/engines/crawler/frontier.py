"""
Crawl Frontier - the single record of every URL a crawl run has seen.

Every discovery path (start page, in-scope links, out-of-scope probes) goes
through enqueue(), which is the only place a CrawlRecord is created. That is
what guarantees each canonical URL is fetched at most once per run.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Iterator
from dataclasses import dataclass

import structlog

from sitescore.engines.base import (
    ALLOWED_TRANSITIONS,
    CrawlMode,
    CrawlRecord,
    CrawlState,
    PageMetadata,
    StateTransitionError,
    TermFrequency,
    UnknownRecordError,
    utc_now,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CrawlJob:
    """A scheduled fetch handed to the dispatcher."""
    url: str
    mode: CrawlMode


class CrawlFrontier:
    """
    Mapping of canonical URL -> CrawlRecord plus the queue of pending jobs.

    Not thread-safe. The dispatcher serializes all mutations by running one
    completion handler at a time.
    """

    def __init__(self, protocol: str = "https"):
        self.protocol = protocol
        self._records: dict[str, CrawlRecord] = {}
        self._jobs: asyncio.Queue[CrawlJob] = asyncio.Queue()

    # ── Enqueue ──────────────────────────────────────

    def enqueue(self, url: str, referrer: str, mode: CrawlMode) -> bool:
        """
        Create a Pending record for url and schedule it.
        Returns False without effect if url was already seen.
        """
        if url.startswith("//"):
            url = f"{self.protocol}:{url}"

        if url in self._records:
            return False

        self._records[url] = CrawlRecord(url=url, mode=mode, referrer=referrer)
        self._jobs.put_nowait(CrawlJob(url=url, mode=mode))
        logger.info("URL queued", url=url, mode=mode.value, referrer=referrer)
        return True

    async def next_job(self) -> CrawlJob:
        """Wait for the next scheduled job."""
        return await self._jobs.get()

    # ── State transitions ────────────────────────────

    def mark_fetched(self, url: str, status_code: int) -> CrawlRecord:
        record = self._advance(url, CrawlState.FETCHED)
        record.status_code = status_code
        return record

    def mark_analyzed(
        self,
        url: str,
        metadata: PageMetadata,
        terms: list[TermFrequency],
        score: int,
        analysis: str,
    ) -> CrawlRecord:
        record = self._require(url)
        if record.mode != CrawlMode.ANALYZE:
            raise StateTransitionError(url, record.state, CrawlState.ANALYZED)

        record = self._advance(url, CrawlState.ANALYZED)
        record.metadata = metadata
        record.terms = terms
        record.score = score
        record.analysis = analysis
        record.completed_at = utc_now()
        return record

    def mark_probed(self, url: str) -> CrawlRecord:
        record = self._advance(url, CrawlState.PROBED_ONLY)
        record.completed_at = utc_now()
        return record

    def mark_failed(self, url: str, error: str | None = None) -> CrawlRecord:
        record = self._advance(url, CrawlState.FAILED)
        record.error = error
        record.completed_at = utc_now()
        return record

    def _require(self, url: str) -> CrawlRecord:
        try:
            return self._records[url]
        except KeyError:
            raise UnknownRecordError(url) from None

    def _advance(self, url: str, new_state: CrawlState) -> CrawlRecord:
        record = self._require(url)
        if new_state not in ALLOWED_TRANSITIONS[record.state]:
            raise StateTransitionError(url, record.state, new_state)
        record.state = new_state
        return record

    # ── Queries ──────────────────────────────────────

    def pending_count(self) -> int:
        """Records enqueued whose fetch and processing have not completed yet."""
        return sum(1 for r in self._records.values() if not r.is_complete)

    def get(self, url: str) -> CrawlRecord | None:
        return self._records.get(url)

    def __contains__(self, url: object) -> bool:
        return url in self._records

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[CrawlRecord]:
        return iter(self._records.values())

    def records(self) -> list[CrawlRecord]:
        """All records in discovery order."""
        return list(self._records.values())

    def reportable_records(self) -> list[CrawlRecord]:
        """Records that received a response; the rest never make it to a report."""
        return [r for r in self._records.values() if r.status_code is not None]

    def stats(self) -> dict[str, int]:
        by_state = Counter(r.state.value for r in self._records.values())
        return {
            "total": len(self._records),
            "pending": by_state.get(CrawlState.PENDING.value, 0) + by_state.get(CrawlState.FETCHED.value, 0),
            "analyzed": by_state.get(CrawlState.ANALYZED.value, 0),
            "probed_only": by_state.get(CrawlState.PROBED_ONLY.value, 0),
            "failed": by_state.get(CrawlState.FAILED.value, 0),
        }
