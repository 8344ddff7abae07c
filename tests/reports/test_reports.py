"""Tests for the CSV export and the console report."""

import csv
import io

import pytest

from sitescore.engines.base import CrawlMode, CrawlRecord, CrawlState, PageMetadata, TermFrequency
from sitescore.reports.console import render_report
from sitescore.reports.csv_export import build_rows, render_csv, write_csv


@pytest.fixture
def records():
    analyzed = CrawlRecord(
        url="https://example.com/docs/",
        mode=CrawlMode.ANALYZE,
        state=CrawlState.ANALYZED,
        status_code=200,
        metadata=PageMetadata(
            title="Docs, Home",
            description="All the docs",
            keywords="docs",
            last_modified="2026-09-01",
            product="Suite",
            version="",
        ),
        terms=[TermFrequency(term="home", frequency=5), TermFrequency(term="doc", frequency=2)],
        score=5,
        analysis="good: page is recent.; bad: page has product but missing version.",
    )
    probed = CrawlRecord(
        url="https://other.com/x",
        mode=CrawlMode.PROBE_ONLY,
        state=CrawlState.FAILED,
        status_code=404,
        error="HTTP 404",
    )
    unreachable = CrawlRecord(
        url="https://down.example/",
        mode=CrawlMode.PROBE_ONLY,
        state=CrawlState.FAILED,
        error="ConnectError",
    )
    return [analyzed, probed, unreachable]


class TestCsvExport:

    def test_rows(self, records):
        rows = build_rows(records)
        assert len(rows) == 2

        analyzed, probed = rows
        assert analyzed["score"] == 5
        assert analyzed["product"] == "Suite / "
        assert analyzed["terms"] == "home: 5, doc: 2"
        assert probed == {
            "url": "https://other.com/x",
            "status": 404,
            "score": 0,
            "title": "",
            "description": "",
            "keywords": "",
            "product": "",
            "last_modified": "",
            "analysis": "",
            "terms": "",
        }

    def test_write_csv(self, records, tmp_path):
        path = write_csv(tmp_path / "nested" / "out.csv", records)

        with path.open(newline="", encoding="utf-8") as handle:
            parsed = list(csv.reader(handle))

        assert parsed[0] == [
            "URL", "Status Code", "Page Score", "Title", "Description", "Keywords",
            "Product", "Last Modified", "Page Analysis", "Terms",
        ]
        assert parsed[1][0] == "https://example.com/docs/"
        assert parsed[1][3] == "Docs, Home"  # comma survives quoting
        assert parsed[2][:3] == ["https://other.com/x", "404", "0"]
        assert len(parsed) == 3

    def test_render_csv_matches_file(self, records, tmp_path):
        path = write_csv(tmp_path / "out.csv", records)
        assert list(csv.reader(io.StringIO(render_csv(records)))) == list(
            csv.reader(io.StringIO(path.read_text(encoding="utf-8")))
        )


class TestConsoleReport:

    def test_render(self, records):
        output = render_report(records)
        assert "scanning complete, 3 pages analyzed." in output
        assert "https://example.com/docs/\n   title: Docs, Home\n" in output
        assert "   score: 5 good: page is recent.; bad: page has product but missing version.\n" in output
        assert "   terms: home: 5, doc: 2\n" in output
        assert "https://other.com/x" not in output

    def test_no_records(self):
        assert "scanning complete, 0 pages analyzed." in render_report([])
