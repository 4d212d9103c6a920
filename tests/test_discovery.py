"""Tests for endpoint discovery."""

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from fakes import FakeFetcher, ok, unreachable

from locwatch.config.settings import DiscoverySettings
from locwatch.scraper.discovery import (
    DiscoveryEngine,
    combine_url,
    count_keywords,
    parse_robots_sitemaps,
)
from locwatch.storage.types import EndpointStatus, PageType, StorageError

BASE = "https://shop.example"


def narrow_settings(**overrides) -> DiscoverySettings:
    """One path per category keeps probe counts predictable."""
    values = {
        "sitemap_paths": ["/sitemap.xml"],
        "location_paths": ["/locations"],
        "locator_paths": ["/store-locator"],
    }
    values.update(overrides)
    return DiscoverySettings(**values)


@pytest_asyncio.fixture
async def site(storage):
    return await storage.create_site(BASE, "shop.example")


class TestHelpers:
    """Test the pure discovery helpers."""

    def test_combine_url(self):
        assert combine_url("https://a.example/", "/stores") == "https://a.example/stores"
        assert combine_url("https://a.example", "/stores") == "https://a.example/stores"

    def test_count_keywords_distinct_and_case_insensitive(self):
        text = "STORE hours. Store address. Another store."
        assert count_keywords(text, ["store", "address", "hours", "gym"]) == 3

    def test_count_keywords_none(self):
        assert count_keywords("Welcome", ["store"]) == 0

    def test_parse_robots_sitemaps(self):
        robots = (
            "User-agent: *\n"
            "Disallow: /admin\n"
            "Sitemap: https://shop.example/a.xml\n"
            "sitemap:https://shop.example/b.xml\n"
            "Sitemap:\n"
        )
        assert parse_robots_sitemaps(robots) == [
            "https://shop.example/a.xml",
            "https://shop.example/b.xml",
        ]


class TestDiscoveryEngine:
    """Test probing, keyword thresholds and persistence."""

    @pytest.mark.asyncio
    async def test_sitemap_only_site(self, storage, site):
        """Only the sitemap answers; every other default path is a 404."""
        fetcher = FakeFetcher({f"{BASE}/sitemap.xml": ok(f"{BASE}/sitemap.xml", f"{BASE}/")})
        engine = DiscoveryEngine(storage, fetcher, DiscoverySettings())

        report = await engine.discover_with_report(site)

        assert len(report.endpoints) == 1
        assert report.endpoints[0].url == f"{BASE}/sitemap.xml"
        assert report.endpoints[0].page_type == PageType.SITEMAP.value
        assert report.endpoints[0].status == EndpointStatus.ACTIVE.value
        assert report.reachable is True

    @pytest.mark.asyncio
    async def test_shared_path_probed_once(self, storage, site):
        """/store-finder appears in both path lists but is fetched once."""
        fetcher = FakeFetcher()
        engine = DiscoveryEngine(storage, fetcher, DiscoverySettings())

        await engine.discover(site)

        assert fetcher.calls.count(f"{BASE}/store-finder") == 1

    @pytest.mark.asyncio
    async def test_location_page_needs_three_keywords(self, storage, site):
        fetcher = FakeFetcher(
            {f"{BASE}/locations": ok(f"{BASE}/locations", "Our store address and opening hours")}
        )
        engine = DiscoveryEngine(storage, fetcher, narrow_settings())

        endpoints = await engine.discover(site)

        assert [(e.url, e.page_type) for e in endpoints] == [
            (f"{BASE}/locations", PageType.LOCATIONS.value)
        ]

    @pytest.mark.asyncio
    async def test_location_page_with_two_keywords_rejected(self, storage, site):
        fetcher = FakeFetcher(
            {f"{BASE}/locations": ok(f"{BASE}/locations", "Visit our store at this address")}
        )
        engine = DiscoveryEngine(storage, fetcher, narrow_settings())

        assert await engine.discover(site) == []

    @pytest.mark.asyncio
    async def test_store_locator_needs_one_keyword(self, storage, site):
        fetcher = FakeFetcher(
            {f"{BASE}/store-locator": ok(f"{BASE}/store-locator", "Use the map below")}
        )
        engine = DiscoveryEngine(storage, fetcher, narrow_settings())

        endpoints = await engine.discover(site)

        assert len(endpoints) == 1
        assert endpoints[0].page_type == PageType.STORE_LOCATOR.value

    @pytest.mark.asyncio
    async def test_robots_sitemap_directives(self, storage, site):
        robots = "User-agent: *\nSitemap: https://shop.example/custom-sitemap.xml\n"
        fetcher = FakeFetcher({f"{BASE}/robots.txt": ok(f"{BASE}/robots.txt", robots)})
        engine = DiscoveryEngine(
            storage, fetcher, narrow_settings(sitemap_paths=["/robots.txt"])
        )

        endpoints = await engine.discover(site)

        assert [e.url for e in endpoints] == [
            f"{BASE}/robots.txt",
            "https://shop.example/custom-sitemap.xml",
        ]
        assert all(e.page_type == PageType.SITEMAP.value for e in endpoints)

    @pytest.mark.asyncio
    async def test_known_endpoints_are_skipped(self, storage, site):
        await storage.create_endpoint(site.id, f"{BASE}/sitemap.xml", PageType.SITEMAP)
        fetcher = FakeFetcher({f"{BASE}/sitemap.xml": ok(f"{BASE}/sitemap.xml", "x")})
        engine = DiscoveryEngine(storage, fetcher, narrow_settings())

        endpoints = await engine.discover(site)

        assert endpoints == []
        assert f"{BASE}/sitemap.xml" not in fetcher.calls
        assert len(await storage.get_endpoints_for_site(site.id)) == 1

    @pytest.mark.asyncio
    async def test_refresh_deactivates_then_rediscovers(self, storage, site):
        old = await storage.create_endpoint(site.id, f"{BASE}/sitemap.xml", PageType.SITEMAP)
        fetcher = FakeFetcher({f"{BASE}/sitemap.xml": ok(f"{BASE}/sitemap.xml", "x")})
        engine = DiscoveryEngine(storage, fetcher, narrow_settings())

        endpoints = await engine.refresh(site)

        assert len(endpoints) == 1
        assert endpoints[0].id != old.id
        refreshed_old = await storage.get_endpoint(old.id)
        assert refreshed_old.status == EndpointStatus.INACTIVE.value
        active = await storage.get_endpoints_for_site(site.id, status=EndpointStatus.ACTIVE)
        assert [e.id for e in active] == [endpoints[0].id]

    @pytest.mark.asyncio
    async def test_persist_error_skips_endpoint(self, storage, site):
        fetcher = FakeFetcher({f"{BASE}/sitemap.xml": ok(f"{BASE}/sitemap.xml", "x")})
        engine = DiscoveryEngine(storage, fetcher, narrow_settings())

        with patch.object(
            storage, "create_endpoint", AsyncMock(side_effect=StorageError("disk full"))
        ):
            report = await engine.discover_with_report(site)

        assert report.endpoints == []
        assert report.persist_errors == 1

    @pytest.mark.asyncio
    async def test_unreachable_host(self, storage, site):
        urls = [f"{BASE}/sitemap.xml", f"{BASE}/locations", f"{BASE}/store-locator"]
        fetcher = FakeFetcher({url: unreachable(url) for url in urls})
        engine = DiscoveryEngine(storage, fetcher, narrow_settings())

        report = await engine.discover_with_report(site)

        assert report.probes == 3
        assert report.responses == 0
        assert report.reachable is False

    @pytest.mark.asyncio
    async def test_probe_exception_counts_as_absent(self, storage, site):
        fetcher = FakeFetcher()
        fetcher.fetch_with_retry = AsyncMock(side_effect=RuntimeError("browser gone"))
        engine = DiscoveryEngine(storage, fetcher, narrow_settings())

        report = await engine.discover_with_report(site)

        assert report.endpoints == []
        assert report.reachable is False
