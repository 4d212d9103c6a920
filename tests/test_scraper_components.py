"""Tests for the browser runtime, extractor and page fetcher."""

from contextlib import asynccontextmanager
from datetime import datetime
from unittest.mock import AsyncMock, Mock, patch

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from locwatch.config.settings import ScrapingSettings
from locwatch.scraper.browser import BrowserRuntime
from locwatch.scraper.extractor import ContentExtractor
from locwatch.scraper.fetcher import HEALTH_CHECK_URL, PageFetcher, decode_body
from locwatch.scraper.types import FetchResult
from locwatch.utils.types import AsyncTimeoutError


def make_runtime(page):
    """A runtime whose contexts hand out ``page``."""
    runtime = Mock()
    runtime.reset = AsyncMock()
    context = Mock()
    context.new_page = AsyncMock(return_value=page)

    @asynccontextmanager
    async def create_context(user_agent=None):
        yield context

    runtime.create_context = create_context
    return runtime


def make_page(
    html="<html><body><p>Hello</p></body></html>", status=200, headers=None, body=None
):
    response = Mock()
    response.status = status
    response.status_text = "Not Found" if status == 404 else "OK"
    response.ok = 200 <= status < 300
    response.headers = headers or {"content-type": "text/html; charset=utf-8"}
    response.body = AsyncMock(return_value=html.encode("utf-8") if body is None else body)

    page = Mock()
    page.goto = AsyncMock(return_value=response)
    page.wait_for_load_state = AsyncMock()
    page.content = AsyncMock(return_value=html)
    page.evaluate = AsyncMock(return_value="01/02/2024 10:00:00")
    return page


class TestBrowserRuntime:
    """Test lazy start, isolated contexts and reset."""

    @pytest.mark.asyncio
    async def test_setup_launches_once(self):
        runtime = BrowserRuntime(ScrapingSettings())
        with patch("locwatch.scraper.browser.async_playwright") as mock_playwright:
            playwright = AsyncMock()
            browser = AsyncMock()
            browser.is_connected = Mock(return_value=True)
            playwright.chromium.launch = AsyncMock(return_value=browser)
            mock_playwright.return_value.start = AsyncMock(return_value=playwright)

            await runtime.setup()
            await runtime.setup()

            playwright.chromium.launch.assert_called_once()
            assert runtime.is_running

    @pytest.mark.asyncio
    async def test_context_closed_even_on_error(self):
        runtime = BrowserRuntime(ScrapingSettings())
        runtime.browser = AsyncMock()
        runtime.browser.is_connected = Mock(return_value=True)
        context = AsyncMock()
        runtime.browser.new_context = AsyncMock(return_value=context)

        with pytest.raises(RuntimeError):
            async with runtime.create_context():
                raise RuntimeError("boom")

        context.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_reset_drops_browser(self):
        runtime = BrowserRuntime(ScrapingSettings())
        browser = AsyncMock()
        playwright = AsyncMock()
        runtime.browser = browser
        runtime.playwright = playwright

        await runtime.reset()

        browser.close.assert_awaited_once()
        playwright.stop.assert_awaited_once()
        assert runtime.browser is None
        assert not runtime.is_running


class TestContentExtractor:
    """Test visible-text and metadata extraction."""

    @pytest.fixture
    def extractor(self):
        return ContentExtractor()

    def test_html_visible_text_and_metadata(self, extractor):
        html = """
        <html>
          <head>
            <title> Our Stores </title>
            <meta name="description" content="Find a store near you">
            <link rel="canonical" href="https://example.com/stores">
            <style>body { color: red; }</style>
          </head>
          <body>
            <h1>Stores</h1>
            <p>Leeds    High   Street</p>
            <script>var tracking = 1;</script>
            <noscript>Enable JavaScript</noscript>
            <!-- hidden comment -->
          </body>
        </html>
        """
        extracted = extractor.extract_from_html(html)

        assert extracted.text == "Stores\nLeeds High Street"
        assert extracted.title == "Our Stores"
        assert extracted.description == "Find a store near you"
        assert extracted.canonical_url == "https://example.com/stores"

    def test_og_description_fallback(self, extractor):
        html = '<html><head><meta property="og:description" content="OG"></head><body>x</body></html>'
        assert extractor.extract_from_html(html).description == "OG"

    def test_empty_body(self, extractor):
        extracted = extractor.extract_from_html("<html><body>  </body></html>")
        assert extracted.text == ""

    def test_sitemap_locations(self, extractor):
        xml = """<?xml version="1.0" encoding="UTF-8"?>
        <urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
          <url><loc>https://example.com/</loc></url>
          <url><loc>https://example.com/stores</loc></url>
        </urlset>"""
        extracted = extractor.extract(xml, "application/xml")

        assert extracted.sitemap_urls == ["https://example.com/", "https://example.com/stores"]
        assert extracted.text == "https://example.com/\nhttps://example.com/stores"
        assert extracted.to_metadata()["url_count"] == 2

    def test_plain_text(self, extractor):
        extracted = extractor.extract("User-agent: *\n\nSitemap:   https://e.com/s.xml", "text/plain")
        assert extracted.text == "User-agent: *\nSitemap: https://e.com/s.xml"


class TestPageFetcher:
    """Test single fetches, retries and the health check."""

    @pytest.fixture
    def settings(self):
        return ScrapingSettings(max_attempts=3, fetch_timeout=5)

    @pytest.mark.asyncio
    async def test_fetch_success_collects_metadata(self, settings):
        page = make_page(
            '<html><head><title>Stores</title></head><body><p>Leeds</p></body></html>'
        )
        fetcher = PageFetcher(runtime=make_runtime(page), settings=settings)

        result = await fetcher.fetch("https://example.com/stores")

        assert result.success is True
        assert result.content == "Leeds"
        assert result.status_code == 200
        assert result.metadata["title"] == "Stores"
        assert result.metadata["last_modified"] == "01/02/2024 10:00:00"
        assert result.metadata["content_length"] == 5
        assert "fetch_duration_ms" in result.metadata
        page.goto.assert_awaited_once_with(
            "https://example.com/stores",
            wait_until="networkidle",
            timeout=settings.navigation_timeout,
        )
        page.wait_for_load_state.assert_awaited_once_with("domcontentloaded")

    @pytest.mark.asyncio
    async def test_fetch_xml_uses_raw_body(self, settings):
        xml = "<urlset><url><loc>https://example.com/a</loc></url></urlset>"
        page = make_page(xml, headers={"content-type": "application/xml"})
        fetcher = PageFetcher(runtime=make_runtime(page), settings=settings)

        result = await fetcher.fetch("https://example.com/sitemap.xml")

        assert result.content == "https://example.com/a"
        page.content.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_xml_decodes_declared_charset(self, settings):
        xml = "<urlset><url><loc>https://example.com/café</loc></url></urlset>"
        page = make_page(
            body=xml.encode("latin-1"),
            headers={"content-type": "application/xml; charset=iso-8859-1"},
        )
        fetcher = PageFetcher(runtime=make_runtime(page), settings=settings)

        result = await fetcher.fetch("https://example.com/sitemap.xml")

        assert result.success is True
        assert result.content == "https://example.com/café"

    @pytest.mark.asyncio
    async def test_fetch_plain_text_with_bad_bytes_does_not_raise(self, settings):
        page = make_page(
            body=b"Sitemap: https://example.com/s\xe9.xml",
            headers={"content-type": "text/plain"},
        )
        fetcher = PageFetcher(runtime=make_runtime(page), settings=settings)

        result = await fetcher.fetch("https://example.com/robots.txt")

        assert result.success is True
        assert result.content == "Sitemap: https://example.com/s\ufffd.xml"

    def test_results_carry_their_own_fetch_time(self):
        first = FetchResult.ok("https://example.com", "a")
        second = FetchResult.failed("https://example.com", "timeout")

        assert isinstance(first.fetched_at, datetime)
        assert second.fetched_at >= first.fetched_at

    def test_decode_body_charset_handling(self):
        assert decode_body("café".encode("cp1252"), "text/plain; charset=windows-1252") == "café"
        assert decode_body("café".encode("utf-8"), 'text/xml; charset="UTF-8"') == "café"
        assert decode_body(b"abc", "text/plain; charset=bogus-9") == "abc"
        assert decode_body(b"abc", None) == "abc"

    @pytest.mark.asyncio
    async def test_non_2xx_is_failure(self, settings):
        fetcher = PageFetcher(runtime=make_runtime(make_page(status=404)), settings=settings)

        result = await fetcher.fetch("https://example.com/missing")

        assert result.success is False
        assert result.status_code == 404
        assert "404" in result.error

    @pytest.mark.asyncio
    async def test_navigation_timeout_is_failure(self, settings):
        page = make_page()
        page.goto = AsyncMock(side_effect=PlaywrightTimeoutError("Timeout 30000ms exceeded"))
        fetcher = PageFetcher(runtime=make_runtime(page), settings=settings)

        result = await fetcher.fetch("https://slow.example")

        assert result.success is False
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_network_error_is_failure(self, settings):
        page = make_page()
        page.goto = AsyncMock(side_effect=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
        fetcher = PageFetcher(runtime=make_runtime(page), settings=settings)

        result = await fetcher.fetch("https://nowhere.invalid")

        assert result.success is False
        assert "ERR_NAME_NOT_RESOLVED" in result.error

    @pytest.mark.asyncio
    async def test_hard_timeout_is_failure(self, settings):
        fetcher = PageFetcher(runtime=make_runtime(make_page()), settings=settings)

        async def expire(coro, **kwargs):
            coro.close()
            raise AsyncTimeoutError("Fetch timed out after 5.0s")

        with patch("locwatch.scraper.fetcher.run_with_timeout", side_effect=expire):
            result = await fetcher.fetch("https://hang.example")

        assert result.success is False
        assert result.error == "Fetch timed out after 5.0s"

    @pytest.mark.asyncio
    async def test_retry_backoff_on_persistent_failure(self, settings):
        """Three attempts, delays of 2s then 4s, and the last error returned."""
        fetcher = PageFetcher(runtime=Mock(), settings=settings)
        failures = [
            FetchResult.failed("https://down.example", f"error {n}") for n in (1, 2, 3)
        ]

        with patch.object(fetcher, "fetch", AsyncMock(side_effect=failures)) as mock_fetch, patch(
            "locwatch.scraper.fetcher.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            result = await fetcher.fetch_with_retry("https://down.example", 3)

        assert mock_fetch.await_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [2.0, 4.0]
        assert result.success is False
        assert result.attempts == 3
        assert result.error == "Failed after 3 attempts. Last error: error 3"

    @pytest.mark.asyncio
    async def test_retry_stops_on_success(self, settings):
        fetcher = PageFetcher(runtime=Mock(), settings=settings)
        answers = [
            FetchResult.failed("https://flaky.example", "timeout"),
            FetchResult.ok("https://flaky.example", "Stores"),
        ]

        with patch.object(fetcher, "fetch", AsyncMock(side_effect=answers)), patch(
            "locwatch.scraper.fetcher.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            result = await fetcher.fetch_with_retry("https://flaky.example")

        assert result.success is True
        assert result.attempts == 2
        assert mock_sleep.await_count == 1

    @pytest.mark.asyncio
    async def test_empty_content_is_not_retried(self, settings):
        fetcher = PageFetcher(runtime=Mock(), settings=settings)

        with patch.object(
            fetcher, "fetch", AsyncMock(return_value=FetchResult.ok("https://e.com", ""))
        ) as mock_fetch, patch(
            "locwatch.scraper.fetcher.asyncio.sleep", new_callable=AsyncMock
        ) as mock_sleep:
            result = await fetcher.fetch_with_retry("https://e.com", 3)

        assert result.success is True
        assert result.content == ""
        assert mock_fetch.await_count == 1
        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_health_check_uses_data_url(self, settings):
        page = make_page("<html><body>Health Check</body></html>")
        page.goto = AsyncMock(return_value=None)
        runtime = make_runtime(page)
        fetcher = PageFetcher(runtime=runtime, settings=settings)

        assert await fetcher.health_check() is True
        assert page.goto.await_args.args[0] == HEALTH_CHECK_URL
        runtime.reset.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_health_check_resets_runtime(self, settings):
        page = make_page()
        page.goto = AsyncMock(side_effect=PlaywrightError("Target closed"))
        runtime = make_runtime(page)
        fetcher = PageFetcher(runtime=runtime, settings=settings)

        assert await fetcher.health_check() is False
        runtime.reset.assert_awaited_once()
