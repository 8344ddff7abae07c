"""CSV export of a finished crawl: one row per URL that answered."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from pathlib import Path

from sitescore.engines.base import CrawlRecord, frequency_to_string

# (row key, column title)
CSV_COLUMNS: list[tuple[str, str]] = [
    ("url", "URL"),
    ("status", "Status Code"),
    ("score", "Page Score"),
    ("title", "Title"),
    ("description", "Description"),
    ("keywords", "Keywords"),
    ("product", "Product"),
    ("last_modified", "Last Modified"),
    ("analysis", "Page Analysis"),
    ("terms", "Terms"),
]


def build_row(record: CrawlRecord) -> dict[str, object]:
    row: dict[str, object] = {
        "url": record.url,
        "status": record.status_code,
        "score": 0,
        "title": "",
        "description": "",
        "keywords": "",
        "product": "",
        "last_modified": "",
        "analysis": "",
        "terms": "",
    }
    if record.is_analyzed:
        meta = record.metadata
        row.update(
            score=record.score,
            title=meta.title,
            description=meta.description,
            keywords=meta.keywords,
            product=f"{meta.product} / {meta.version}",
            last_modified=meta.last_modified,
            analysis=record.analysis,
            terms=frequency_to_string(record.terms),
        )
    return row


def build_rows(records: Iterable[CrawlRecord]) -> list[dict[str, object]]:
    """Report rows; records that never got a response are skipped."""
    return [build_row(r) for r in records if r.status_code is not None]


def _write(handle, records: Iterable[CrawlRecord]) -> None:
    writer = csv.DictWriter(handle, fieldnames=[key for key, _ in CSV_COLUMNS])
    writer.writerow({key: title for key, title in CSV_COLUMNS})
    writer.writerows(build_rows(records))


def write_csv(path: str | Path, records: Iterable[CrawlRecord]) -> Path:
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", newline="", encoding="utf-8") as handle:
        _write(handle, records)
    return output_path


def render_csv(records: Iterable[CrawlRecord]) -> str:
    buffer = io.StringIO()
    _write(buffer, records)
    return buffer.getvalue()
