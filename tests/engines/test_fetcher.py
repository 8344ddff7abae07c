"""
Tests for the HTTP fetch service.
Uses httpx MockTransport to avoid real network calls.
"""

import httpx
import pytest

from sitescore.engines.crawler.fetcher import HttpFetchService, RateLimiter, is_html


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)


class TestRateLimiter:

    @pytest.mark.asyncio
    async def test_acquire_does_not_raise(self):
        limiter = RateLimiter(rate=100.0, max_tokens=10)
        await limiter.acquire()

    @pytest.mark.asyncio
    async def test_tokens_decrease_on_acquire(self):
        limiter = RateLimiter(rate=100.0, max_tokens=5)
        initial_tokens = limiter.tokens
        await limiter.acquire()
        assert limiter.tokens < initial_tokens

    @pytest.mark.asyncio
    async def test_empty_bucket_waits(self):
        limiter = RateLimiter(rate=50.0, max_tokens=1)
        await limiter.acquire()
        await limiter.acquire()
        assert limiter.tokens == 0


class TestIsHtml:

    @pytest.mark.parametrize("content_type", ["text/html", "text/html; charset=UTF-8", "application/xhtml+xml"])
    def test_html(self, content_type):
        assert is_html(content_type)

    @pytest.mark.parametrize("content_type", ["", "application/pdf", "image/png", "application/json"])
    def test_not_html(self, content_type):
        assert not is_html(content_type)


class TestHttpFetchService:

    @pytest.fixture
    def fast_limiter(self):
        return RateLimiter(rate=1000.0, max_tokens=10)

    @pytest.mark.asyncio
    async def test_html_response_is_parsed(self, settings, fast_limiter):
        def handler(request):
            return httpx.Response(200, html="<html><head><title>Hi</title></head><body></body></html>")

        async with mock_client(handler) as client:
            service = HttpFetchService(settings, client=client, rate_limiter=fast_limiter)
            result = await service.fetch("https://example.com/")

        assert result.status_code == 200
        assert result.error is None
        assert result.document.title.string == "Hi"
        assert result.final_url is None
        assert "text/html" in result.content_type

    @pytest.mark.asyncio
    async def test_non_html_has_no_document(self, settings, fast_limiter):
        def handler(request):
            return httpx.Response(200, content=b"%PDF-1.4", headers={"content-type": "application/pdf"})

        async with mock_client(handler) as client:
            result = await HttpFetchService(settings, client=client, rate_limiter=fast_limiter).fetch(
                "https://example.com/manual.pdf"
            )

        assert result.status_code == 200
        assert result.document is None

    @pytest.mark.asyncio
    async def test_error_status_is_not_a_transport_error(self, settings, fast_limiter):
        async with mock_client(lambda request: httpx.Response(404, html="<p>gone</p>")) as client:
            result = await HttpFetchService(settings, client=client, rate_limiter=fast_limiter).fetch(
                "https://example.com/missing"
            )

        assert result.status_code == 404
        assert not result.is_transport_error

    @pytest.mark.asyncio
    async def test_redirects_followed(self, settings, fast_limiter):
        def handler(request):
            if request.url.path == "/old":
                return httpx.Response(301, headers={"location": "https://example.com/new"})
            return httpx.Response(200, html="<p>new</p>")

        async with mock_client(handler) as client:
            result = await HttpFetchService(settings, client=client, rate_limiter=fast_limiter).fetch(
                "https://example.com/old"
            )

        assert result.status_code == 200
        assert result.final_url == "https://example.com/new"

    @pytest.mark.asyncio
    async def test_off_site_redirect_reports_landing_url(self, settings, fast_limiter):
        def handler(request):
            if request.url.host == "example.com":
                return httpx.Response(301, headers={"location": "https://other.com/landing"})
            return httpx.Response(200, html="<a href=\"deep\">deep</a>")

        async with mock_client(handler) as client:
            result = await HttpFetchService(settings, client=client, rate_limiter=fast_limiter).fetch(
                "https://example.com/docs/guide"
            )

        assert result.url == "https://example.com/docs/guide"
        assert result.final_url == "https://other.com/landing"
        assert result.status_code == 200

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "exc",
        [httpx.ConnectError("refused"), httpx.ReadTimeout("slow")],
    )
    async def test_transport_errors_reported(self, settings, fast_limiter, exc):
        def handler(request):
            raise exc

        async with mock_client(handler) as client:
            result = await HttpFetchService(settings, client=client, rate_limiter=fast_limiter).fetch(
                "https://example.com/"
            )

        assert result.is_transport_error
        assert result.status_code is None
        assert result.document is None

    @pytest.mark.asyncio
    async def test_fetch_outside_context_manager_raises(self, settings):
        with pytest.raises(RuntimeError):
            await HttpFetchService(settings).fetch("https://example.com/")

    @pytest.mark.asyncio
    async def test_owned_client_closed_on_exit(self, settings):
        service = HttpFetchService(settings)
        async with service:
            assert service._client is not None
        assert service._client is None

    @pytest.mark.asyncio
    async def test_injected_client_left_open(self, settings):
        async with mock_client(lambda request: httpx.Response(200)) as client:
            async with HttpFetchService(settings, client=client):
                pass
            assert not client.is_closed
