"""
Crawl API Routes

Routes validate input, hand the crawl to the registry, return responses.
Runs live in process memory only; a restart forgets them.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Annotated, Any
from uuid import UUID

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field, ValidationError

from sitescore.core.config import CrawlConfiguration, get_settings
from sitescore.engines.base import CrawlRecord, utc_now
from sitescore.engines.crawler.engine import CrawlReport, SiteCrawler
from sitescore.engines.crawler.fetcher import FetchService
from sitescore.engines.crawler.urls import canonicalize
from sitescore.reports.csv_export import build_rows, render_csv

logger = structlog.get_logger(__name__)
router = APIRouter()


# ─────────────────────────────────────────────
# Run registry
# ─────────────────────────────────────────────

class CrawlRun(BaseModel):
    id: UUID = Field(default_factory=uuid.uuid4)
    config: CrawlConfiguration
    start_url: str
    status: str = "running"
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    report: CrawlReport | None = None
    error: str | None = None

    @property
    def records(self) -> list[CrawlRecord]:
        return self.report.records if self.report else []


class CrawlRegistry:
    """
    In-process store of crawl runs, keyed by id.

    Only the newest max_finished_runs finished runs are kept; running crawls
    are never evicted.
    """

    def __init__(
        self,
        fetch_service_factory: Callable[[], FetchService] | None = None,
        max_finished_runs: int | None = None,
    ):
        self.fetch_service_factory = fetch_service_factory
        self.max_finished_runs = max_finished_runs or get_settings().API_MAX_FINISHED_CRAWLS
        self._runs: dict[UUID, CrawlRun] = {}

    def create(self, config: CrawlConfiguration) -> CrawlRun:
        run = CrawlRun(
            config=config,
            start_url=canonicalize(config.protocol, config.host, config.start_page),
        )
        self._runs[run.id] = run
        return run

    def __len__(self) -> int:
        return len(self._runs)

    def get(self, run_id: UUID) -> CrawlRun | None:
        return self._runs.get(run_id)

    def running_count(self) -> int:
        return sum(1 for r in self._runs.values() if r.status == "running")

    async def execute(self, run: CrawlRun) -> None:
        try:
            fetch_service = self.fetch_service_factory() if self.fetch_service_factory else None
            run.report = await SiteCrawler(run.config, fetch_service=fetch_service).run()
            run.status = "completed"
        except Exception as exc:
            logger.error("Crawl run failed", crawl_id=str(run.id), error=str(exc), exc_info=True)
            run.status = "failed"
            run.error = str(exc)
        finally:
            run.completed_at = utc_now()
            self._evict_finished()

    def _evict_finished(self) -> None:
        finished = [run_id for run_id, r in self._runs.items() if r.status != "running"]
        # dicts keep insertion order, so the oldest runs come first
        for run_id in finished[: max(0, len(finished) - self.max_finished_runs)]:
            del self._runs[run_id]
            logger.debug("Crawl run evicted", crawl_id=str(run_id))


registry = CrawlRegistry()


def get_registry() -> CrawlRegistry:
    return registry


Registry = Annotated[CrawlRegistry, Depends(get_registry)]


# ─────────────────────────────────────────────
# Request / Response Schemas
# ─────────────────────────────────────────────

class CreateCrawlRequest(BaseModel):
    host: str = Field(..., min_length=1)
    start_page: str = Field(..., min_length=1)
    protocol: str = "https"
    sub_path_only: bool = True


class CrawlResponse(BaseModel):
    id: UUID
    status: str
    start_url: str
    created_at: datetime
    message: str = ""


class CrawlDetailResponse(BaseModel):
    id: UUID
    status: str
    start_url: str
    created_at: datetime
    completed_at: datetime | None
    stats: dict[str, int]
    rows: list[dict[str, Any]]
    error: str | None


def _require_run(crawls: CrawlRegistry, crawl_id: UUID) -> CrawlRun:
    run = crawls.get(crawl_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Crawl not found")
    return run


# ─────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────

@router.post(
    "",
    response_model=CrawlResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a crawl",
)
async def create_crawl(
    request: CreateCrawlRequest,
    background_tasks: BackgroundTasks,
    crawls: Registry,
) -> CrawlResponse:
    try:
        config = CrawlConfiguration(
            host=request.host,
            start_page=request.start_page,
            protocol=request.protocol,
            sub_path_only=request.sub_path_only,
            show_report=False,
        )
    except ValidationError as exc:
        detail = [{"loc": list(err["loc"]), "msg": err["msg"]} for err in exc.errors()]
        raise HTTPException(status_code=422, detail=detail) from exc

    run = crawls.create(config)
    background_tasks.add_task(crawls.execute, run)
    logger.info("Crawl created", crawl_id=str(run.id), start_url=run.start_url)

    return CrawlResponse(
        id=run.id,
        status=run.status,
        start_url=run.start_url,
        created_at=run.created_at,
        message="Crawl started. Poll /api/v1/crawls/{id} for status.",
    )


@router.get(
    "/{crawl_id}",
    response_model=CrawlDetailResponse,
    summary="Get crawl status and report rows",
)
async def get_crawl(crawl_id: UUID, crawls: Registry) -> CrawlDetailResponse:
    run = _require_run(crawls, crawl_id)
    return CrawlDetailResponse(
        id=run.id,
        status=run.status,
        start_url=run.start_url,
        created_at=run.created_at,
        completed_at=run.completed_at,
        stats=run.report.stats if run.report else {},
        rows=build_rows(run.records),
        error=run.error,
    )


@router.get(
    "/{crawl_id}/csv",
    summary="Download the crawl report as CSV",
)
async def get_crawl_csv(crawl_id: UUID, crawls: Registry) -> Response:
    run = _require_run(crawls, crawl_id)
    if run.status != "completed":
        raise HTTPException(status_code=409, detail=f"Crawl is not complete yet (status: {run.status})")

    return Response(
        content=render_csv(run.records),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="crawl-{run.id}.csv"'},
    )
