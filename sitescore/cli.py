"""
sitescore command line.

    sitescore -H example.com -p /docs/index.html -o results.csv

Options given here override the YAML config file, which overrides defaults.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from sitescore.core.config import DEFAULT_CONFIG_FILE, ConfigurationError, load_configuration
from sitescore.core.logging import configure_logging
from sitescore.engines.crawler.engine import SiteCrawler

logger = structlog.get_logger(__name__)

EXIT_CONFIG_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitescore",
        description="Crawl a website section and score each page's SEO metadata.",
    )
    parser.add_argument("-c", "--conf", default=DEFAULT_CONFIG_FILE, help="YAML config file (default: %(default)s)")
    parser.add_argument("-H", "--host", help="host name to crawl, e.g. example.com")
    parser.add_argument("-p", "--startpage", help="path of the first page, e.g. /docs/index.html")
    parser.add_argument("-o", "--savetocsv", help="write the results to this CSV file")
    parser.add_argument("-l", "--protocol", help="http or https")
    parser.add_argument("-d", "--debug", action="store_true", default=None, help="verbose logging")
    parser.add_argument(
        "-a", "--subpathonly",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="only analyze pages under the start page's folder",
    )
    parser.add_argument(
        "-r", "--showreport",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="print the report when the crawl completes",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    # Before anything logs: stdout is reserved for the report.
    configure_logging(debug=bool(args.debug))

    try:
        config = load_configuration(
            args.conf,
            overrides={
                "host": args.host,
                "start_page": args.startpage,
                "save_to_csv": args.savetocsv,
                "protocol": args.protocol,
                "debug": args.debug,
                "sub_path_only": args.subpathonly,
                "show_report": args.showreport,
            },
        )
    except ConfigurationError as exc:
        logger.error("Invalid configuration", error=str(exc))
        return EXIT_CONFIG_ERROR

    if config.debug and not args.debug:
        configure_logging(debug=True)
    logger.debug("Configuration loaded", **config.model_dump())

    report = asyncio.run(SiteCrawler(config).run())
    logger.info("Done", pages=len(report.records), analyzed=len(report.analyzed))
    return 0


if __name__ == "__main__":
    sys.exit(main())
