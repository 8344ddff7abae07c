"""Tests for the command line entry point."""

from unittest.mock import AsyncMock, MagicMock, patch

from sitescore.cli import EXIT_CONFIG_ERROR, build_parser, main
from sitescore.core.config import CrawlConfiguration


class TestParser:

    def test_flags(self):
        args = build_parser().parse_args(
            ["-H", "example.com", "-p", "/docs/", "-o", "out.csv", "-l", "http", "--no-subpathonly", "-r", "-d"]
        )
        assert args.host == "example.com"
        assert args.startpage == "/docs/"
        assert args.savetocsv == "out.csv"
        assert args.protocol == "http"
        assert args.subpathonly is False
        assert args.showreport is True
        assert args.debug is True

    def test_unset_flags_are_none(self):
        args = build_parser().parse_args([])
        assert args.host is None
        assert args.subpathonly is None
        assert args.debug is None
        assert args.conf == "config.yaml"


class TestMain:

    def test_missing_host_exits_with_config_error(self, tmp_path):
        assert main(["-c", str(tmp_path / "absent.yaml"), "-p", "/"]) == EXIT_CONFIG_ERROR

    def test_runs_crawl_with_merged_configuration(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("host: example.com\nstartPage: /docs/index.html\nshowReport: false\n", encoding="utf-8")

        crawler = MagicMock()
        crawler.run = AsyncMock(return_value=MagicMock(records=[], analyzed=[]))
        with patch("sitescore.cli.SiteCrawler", return_value=crawler) as crawler_cls:
            assert main(["-c", str(config_file), "-H", "other.org"]) == 0

        config = crawler_cls.call_args.args[0]
        assert config.host == "other.org"
        assert config.start_page == "/docs/index.html"
        assert config.show_report is False
        crawler.run.assert_awaited_once()

    def test_logging_configured_before_config_file_is_read(self, tmp_path):
        calls = MagicMock()
        with patch("sitescore.cli.configure_logging", calls.configure_logging), \
                patch("sitescore.cli.load_configuration", calls.load_configuration):
            calls.load_configuration.return_value = CrawlConfiguration(host="example.com", start_page="/")
            with patch("sitescore.cli.SiteCrawler") as crawler_cls:
                crawler_cls.return_value.run = AsyncMock(return_value=MagicMock(records=[], analyzed=[]))
                main(["-c", str(tmp_path / "absent.yaml")])

        assert [c[0] for c in calls.mock_calls[:2]] == ["configure_logging", "load_configuration"]
        calls.configure_logging.assert_called_once_with(debug=False)

    def test_debug_from_config_file_reapplies_logging(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("host: example.com\nstartPage: /\ndebug: true\nshowReport: false\n", encoding="utf-8")

        with patch("sitescore.cli.configure_logging") as configure, patch("sitescore.cli.SiteCrawler") as crawler_cls:
            crawler_cls.return_value.run = AsyncMock(return_value=MagicMock(records=[], analyzed=[]))
            assert main(["-c", str(config_file)]) == 0

        assert [c.kwargs["debug"] for c in configure.call_args_list] == [False, True]
