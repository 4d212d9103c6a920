"""Discovery of sitemap, locations and store-locator pages on a site."""

from dataclasses import dataclass, field
from typing import Optional

from ..config import get_settings
from ..config.settings import DiscoverySettings
from ..storage.interface import StorageManager
from ..storage.sqlite.models import Endpoint, MonitoredSite
from ..storage.types import EndpointStatus, PageType, StorageError
from ..utils.logging import get_structured_logger
from .fetcher import PageFetcher
from .types import FetchResult

logger = get_structured_logger(__name__)


def combine_url(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + path


def count_keywords(text: str, keywords: list[str]) -> int:
    """Number of distinct keywords present in ``text`` (case-insensitive)."""
    lowered = text.lower()
    return sum(1 for keyword in set(keywords) if keyword.lower() in lowered)


def parse_robots_sitemaps(robots_txt: str) -> list[str]:
    """Sitemap URLs declared through ``Sitemap:`` lines in robots.txt."""
    urls = []
    for line in robots_txt.splitlines():
        stripped = line.strip()
        if stripped.lower().startswith("sitemap:"):
            url = stripped[len("sitemap:") :].strip()
            if url:
                urls.append(url)
    return urls


@dataclass
class DiscoveryReport:
    """What one discovery run on a site found."""

    site_id: str
    endpoints: list[Endpoint] = field(default_factory=list)
    probes: int = 0
    responses: int = 0
    persist_errors: int = 0

    @property
    def reachable(self) -> bool:
        """True when at least one probe got an HTTP answer from the host."""
        return self.responses > 0


class DiscoveryEngine:
    """Probes well-known paths and persists the pages worth monitoring."""

    def __init__(
        self,
        storage: StorageManager,
        fetcher: PageFetcher,
        settings: Optional[DiscoverySettings] = None,
    ):
        self.storage = storage
        self.fetcher = fetcher
        self.settings = settings or get_settings().discovery

    async def discover(self, site: MonitoredSite) -> list[Endpoint]:
        report = await self.discover_with_report(site)
        return report.endpoints

    async def discover_with_report(self, site: MonitoredSite) -> DiscoveryReport:
        log = logger.bind(site_id=site.id, url=site.url)
        log.info("Starting endpoint discovery")

        report = DiscoveryReport(site_id=site.id)
        existing = await self.storage.get_endpoints_for_site(
            site.id, status=EndpointStatus.ACTIVE
        )
        known = {endpoint.url for endpoint in existing}
        probed: dict[str, Optional[FetchResult]] = {}

        async def probe(url: str) -> Optional[FetchResult]:
            if url not in probed:
                probed[url] = await self._probe(url, report)
            return probed[url]

        async def accept(url: str, page_type: PageType) -> None:
            known.add(url)
            try:
                endpoint = await self.storage.create_endpoint(site.id, url, page_type)
            except StorageError as e:
                report.persist_errors += 1
                log.error("Failed to persist endpoint", endpoint_url=url, error=str(e))
                return
            report.endpoints.append(endpoint)

        for path in self.settings.sitemap_paths:
            url = combine_url(site.url, path)
            if url in known:
                continue
            result = await probe(url)
            if result is None:
                continue
            await accept(url, PageType.SITEMAP)

            if path.endswith("robots.txt"):
                for sitemap_url in parse_robots_sitemaps(result.content):
                    if sitemap_url not in known:
                        await accept(sitemap_url, PageType.SITEMAP)

        for path in self.settings.location_paths:
            url = combine_url(site.url, path)
            if url in known:
                continue
            result = await probe(url)
            if result is None:
                continue
            matches = count_keywords(result.content, self.settings.location_keywords)
            if matches >= self.settings.location_keyword_threshold:
                await accept(url, PageType.LOCATIONS)

        for path in self.settings.locator_paths:
            url = combine_url(site.url, path)
            if url in known:
                continue
            result = await probe(url)
            if result is None:
                continue
            matches = count_keywords(result.content, self.settings.locator_keywords)
            if matches >= self.settings.locator_keyword_threshold:
                await accept(url, PageType.STORE_LOCATOR)

        log.info(
            "Endpoint discovery finished",
            found=len(report.endpoints),
            probes=report.probes,
            reachable=report.reachable,
        )
        return report

    async def _probe(self, url: str, report: DiscoveryReport) -> Optional[FetchResult]:
        """Fetch a candidate URL. Any failure means the page is not there."""
        report.probes += 1
        try:
            result = await self.fetcher.fetch_with_retry(
                url, max_attempts=self.settings.probe_attempts
            )
        except Exception as e:
            logger.debug("Probe raised", url=url, error=str(e))
            return None

        if result.success or result.status_code is not None:
            report.responses += 1
        if not result.success:
            logger.debug("Probe found nothing", url=url, error=result.error)
            return None
        return result

    async def refresh(self, site: MonitoredSite) -> list[Endpoint]:
        """Deactivate every endpoint of the site, then discover from scratch."""
        return (await self.refresh_with_report(site)).endpoints

    async def refresh_with_report(self, site: MonitoredSite) -> DiscoveryReport:
        endpoints = await self.storage.get_endpoints_for_site(site.id)
        deactivated = 0
        for endpoint in endpoints:
            if endpoint.status == EndpointStatus.ACTIVE.value:
                await self.storage.update_endpoint(
                    endpoint.id, {"status": EndpointStatus.INACTIVE}
                )
                deactivated += 1

        logger.info("Endpoints deactivated for refresh", site_id=site.id, count=deactivated)
        return await self.discover_with_report(site)
