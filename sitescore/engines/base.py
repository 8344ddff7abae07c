"""
Shared types for the crawl and scoring engines.

Design principles:
- One CrawlRecord per canonical URL, owned by the CrawlFrontier
- Records only move forward through CrawlState
- CrawlMode is fixed when a URL is first enqueued
- Scoring is a pure function of page metadata and term frequencies
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────
# Enums
# ─────────────────────────────────────────────

class CrawlState(str, Enum):
    PENDING = "pending"         # Queued, no response yet
    FETCHED = "fetched"         # Response received, processing underway
    ANALYZED = "analyzed"       # Metadata, score and terms recorded
    PROBED_ONLY = "probed_only" # Existence check done, no analysis
    FAILED = "failed"           # Transport error or error status


class CrawlMode(str, Enum):
    ANALYZE = "analyze"         # Full SEO analysis
    PROBE_ONLY = "probe_only"   # 404 check only


TERMINAL_STATES = frozenset({CrawlState.ANALYZED, CrawlState.PROBED_ONLY, CrawlState.FAILED})

ALLOWED_TRANSITIONS: dict[CrawlState, frozenset[CrawlState]] = {
    CrawlState.PENDING: frozenset({CrawlState.FETCHED, CrawlState.FAILED}),
    CrawlState.FETCHED: TERMINAL_STATES,
    CrawlState.ANALYZED: frozenset(),
    CrawlState.PROBED_ONLY: frozenset(),
    CrawlState.FAILED: frozenset(),
}


# ─────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────

class CrawlError(Exception):
    """Base class for crawl bookkeeping errors."""


class UnknownRecordError(CrawlError, KeyError):
    """A state change was requested for a URL the frontier never enqueued."""


class StateTransitionError(CrawlError):
    """A record was asked to move backwards or sideways through CrawlState."""

    def __init__(self, url: str, current: CrawlState, requested: CrawlState):
        super().__init__(f"{url}: cannot move from {current.value} to {requested.value}")
        self.url = url
        self.current = current
        self.requested = requested


# ─────────────────────────────────────────────
# Core data types
# ─────────────────────────────────────────────

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class PageMetadata(BaseModel):
    """SEO-relevant fields pulled from an analyzed page."""
    title: str = ""
    description: str = ""
    keywords: str = ""
    header_one: str = ""        # text of the H1 elements, lower-cased
    last_modified: str = ""
    product: str = ""
    version: str = ""


class TermFrequency(BaseModel):
    """A stemmed term and how often it counts on the page."""
    term: str
    frequency: int


class ScoreResult(BaseModel):
    """Output of the scoring engine."""
    score: int
    analysis: str
    terms: list[TermFrequency] = Field(default_factory=list)


class CrawlRecord(BaseModel):
    """Crawl state for one canonical URL."""
    url: str
    mode: CrawlMode
    state: CrawlState = CrawlState.PENDING
    referrer: str = ""
    status_code: int | None = None
    queued_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    metadata: PageMetadata = Field(default_factory=PageMetadata)
    terms: list[TermFrequency] = Field(default_factory=list)
    score: int = 0
    analysis: str = ""
    error: str | None = None

    @property
    def is_analyzed(self) -> bool:
        return self.state == CrawlState.ANALYZED

    @property
    def is_complete(self) -> bool:
        return self.state in TERMINAL_STATES


def frequency_to_string(terms: list[TermFrequency]) -> str:
    """Condensed "term: frequency" listing used by the reports."""
    return ", ".join(f"{t.term}: {t.frequency}" for t in terms)
