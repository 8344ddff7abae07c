"""Stdout summary of a finished crawl."""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import TextIO

from sitescore.engines.base import CrawlRecord, frequency_to_string

RULE = "-" * 47


def render_report(records: Iterable[CrawlRecord]) -> str:
    records = list(records)
    lines = [RULE, f"scanning complete, {len(records)} pages analyzed."]
    for record in records:
        if not record.is_analyzed:
            continue
        meta = record.metadata
        lines.extend([
            RULE,
            record.url,
            f"   title: {meta.title}",
            f"   description: {meta.description}",
            f"   keywords: {meta.keywords}",
            f"   score: {record.score} {record.analysis}",
            f"   terms: {frequency_to_string(record.terms)}",
        ])
    return "\n".join(lines) + "\n"


def print_report(records: Iterable[CrawlRecord], stream: TextIO | None = None) -> None:
    (stream or sys.stdout).write(render_report(records))
