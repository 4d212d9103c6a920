"""Single-flight crawl orchestration: discovery sweeps and content sweeps."""

import asyncio
import uuid
from datetime import datetime
from typing import Any, Optional

from ..analysis.client import AnalysisClient
from ..config import get_settings
from ..config.settings import AppSettings
from ..config.types import SiteConfiguration
from ..scraper.discovery import DiscoveryEngine
from ..scraper.fetcher import PageFetcher
from ..scraper.hashing import ChangeDetectionResult, ChangeDetector, ContentHasher
from ..storage.interface import StorageManager, get_storage_manager
from ..storage.sqlite.models import Endpoint, MonitoredSite
from ..storage.types import EndpointStatus, FetchJobStatus, SiteStatus, StorageError
from ..utils.async_utils import AsyncContextManager
from ..utils.logging import crawl_context, get_structured_logger
from .types import DiscoverySweepResult, EndpointOutcome, SweepKind, SweepResult

logger = get_structured_logger(__name__)


def _sweep_id() -> str:
    return uuid.uuid4().hex[:8]


class CrawlOrchestrator(AsyncContextManager):
    """Runs discovery and content sweeps.

    Content work (full sweeps and single-endpoint fetches) is serialised by one
    guard; discovery by another. A trigger arriving while its guard is held is
    skipped, never queued. Endpoints are processed one at a time with a
    courtesy delay between them. Only ``StorageError`` escapes a sweep.
    """

    def __init__(
        self,
        storage: StorageManager,
        fetcher: PageFetcher,
        detector: ChangeDetector,
        discovery: DiscoveryEngine,
        analysis: Optional[AnalysisClient] = None,
        settings: Optional[AppSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.storage = storage
        self.fetcher = fetcher
        self.detector = detector
        self.discovery = discovery
        self.analysis = analysis

        self._content_guard = asyncio.Lock()
        self._discovery_guard = asyncio.Lock()
        self._unreachable_runs: dict[str, int] = {}

        self.last_content_sweep: Optional[SweepResult] = None
        self.last_discovery_sweep: Optional[DiscoverySweepResult] = None
        self.last_health_check_at: Optional[datetime] = None
        self.browser_healthy: Optional[bool] = None

    @property
    def content_sweep_running(self) -> bool:
        return self._content_guard.locked()

    @property
    def discovery_sweep_running(self) -> bool:
        return self._discovery_guard.locked()

    # Site registration

    async def register_configured_sites(
        self, sites: list[SiteConfiguration]
    ) -> list[MonitoredSite]:
        """Create storage records for configured sites that are not yet known."""
        created = []
        for site_config in sites:
            if await self.storage.get_site_by_url(site_config.url):
                continue
            created.append(
                await self.storage.create_site(site_config.url, site_config.domain)
            )
        if created:
            logger.info("Registered configured sites", count=len(created))
        return created

    # Discovery

    async def run_discovery_sweep(self) -> DiscoverySweepResult:
        """Discover endpoints for every active site that has none yet."""
        if self._discovery_guard.locked():
            logger.info("Discovery sweep already in progress, skipping trigger")
            return DiscoverySweepResult(skipped=True)

        async with self._discovery_guard:
            result = DiscoverySweepResult()
            with crawl_context(sweep_id=_sweep_id(), sweep="discovery"):
                try:
                    for site in await self.storage.get_active_sites():
                        active = await self.storage.get_endpoints_for_site(
                            site.id, status=EndpointStatus.ACTIVE
                        )
                        if active:
                            continue
                        await self._discover_site(site, result, refresh=False)
                finally:
                    result.completed_at = datetime.utcnow()
                    self.last_discovery_sweep = result

                logger.info(
                    "Discovery sweep finished",
                    sites_checked=result.sites_checked,
                    endpoints_created=result.endpoints_created,
                    failed_sites=len(result.failed_sites),
                )
            return result

    async def refresh_site(self, site_id: str) -> DiscoverySweepResult:
        """Deactivate a site's endpoints and rediscover them."""
        if self._discovery_guard.locked():
            logger.info("Discovery already in progress, skipping refresh", site_id=site_id)
            return DiscoverySweepResult(kind=SweepKind.REFRESH, skipped=True)

        async with self._discovery_guard:
            result = DiscoverySweepResult(kind=SweepKind.REFRESH)
            try:
                site = await self.storage.get_site(site_id)
                if site is None:
                    result.errors.append(f"Site not found: {site_id}")
                else:
                    await self._discover_site(site, result, refresh=True)
            finally:
                result.completed_at = datetime.utcnow()
                self.last_discovery_sweep = result
            return result

    async def _discover_site(
        self, site: MonitoredSite, result: DiscoverySweepResult, refresh: bool
    ) -> None:
        result.sites_checked += 1
        try:
            if refresh:
                report = await self.discovery.refresh_with_report(site)
            else:
                report = await self.discovery.discover_with_report(site)
        except StorageError:
            raise
        except Exception as e:
            logger.exception("Discovery failed for site", site_id=site.id, error=str(e))
            result.errors.append(f"{site.url}: {str(e)}")
            return

        result.endpoints_created += len(report.endpoints)
        result.endpoint_ids.extend(endpoint.id for endpoint in report.endpoints)

        update: dict[str, Any] = {"last_checked_at": datetime.utcnow()}
        if report.reachable:
            self._unreachable_runs.pop(site.id, None)
        else:
            misses = self._unreachable_runs.get(site.id, 0) + 1
            self._unreachable_runs[site.id] = misses
            logger.warning("Site unreachable during discovery", site_id=site.id, misses=misses)
            if misses >= self.settings.scheduler.site_failure_threshold:
                update["status"] = SiteStatus.FAILED
                result.failed_sites.append(site.id)
                self._unreachable_runs.pop(site.id, None)
                logger.error("Site marked failed", site_id=site.id, url=site.url)

        await self.storage.update_site(site.id, update)

    # Content

    async def run_content_sweep(self) -> SweepResult:
        """Fetch every active endpoint once and record what changed."""
        if self._content_guard.locked():
            logger.info("Content sweep already in progress, skipping trigger")
            return SweepResult(kind=SweepKind.CONTENT, skipped=True)

        async with self._content_guard:
            result = SweepResult(kind=SweepKind.CONTENT)
            with crawl_context(sweep_id=_sweep_id(), sweep="content"):
                try:
                    endpoints = await self.storage.get_active_endpoints()
                    logger.info("Content sweep started", endpoints=len(endpoints))

                    for index, endpoint in enumerate(endpoints):
                        if index > 0 and self.settings.scheduler.courtesy_delay > 0:
                            await asyncio.sleep(self.settings.scheduler.courtesy_delay)
                        result.outcomes.append(
                            await self._process_endpoint_isolated(endpoint)
                        )
                finally:
                    result.completed_at = datetime.utcnow()
                    self.last_content_sweep = result

                logger.info(
                    "Content sweep finished",
                    processed=result.endpoints_processed,
                    succeeded=result.succeeded,
                    failed=result.failed,
                    changes=result.changes_detected,
                )
            return result

    async def fetch_endpoint(self, endpoint_id: str) -> SweepResult:
        """Out-of-band fetch of one endpoint, under the content guard."""
        if self._content_guard.locked():
            logger.info("Content work in progress, skipping endpoint fetch", endpoint_id=endpoint_id)
            return SweepResult(kind=SweepKind.ENDPOINT, skipped=True)

        async with self._content_guard:
            result = SweepResult(kind=SweepKind.ENDPOINT)
            try:
                endpoint = await self.storage.get_endpoint(endpoint_id)
                if endpoint is None:
                    result.errors.append(f"Endpoint not found: {endpoint_id}")
                else:
                    result.outcomes.append(await self._process_endpoint_isolated(endpoint))
            finally:
                result.completed_at = datetime.utcnow()
            return result

    async def _process_endpoint_isolated(self, endpoint: Endpoint) -> EndpointOutcome:
        try:
            return await self._process_endpoint(endpoint)
        except StorageError:
            raise
        except Exception as e:
            logger.exception(
                "Unexpected error processing endpoint",
                endpoint_id=endpoint.id,
                url=endpoint.url,
                error=str(e),
            )
            return EndpointOutcome(
                endpoint_id=endpoint.id, url=endpoint.url, success=False, error=str(e)
            )

    async def _process_endpoint(self, endpoint: Endpoint) -> EndpointOutcome:
        log = logger.bind(endpoint_id=endpoint.id, url=endpoint.url)

        job = await self.storage.create_fetch_job(endpoint.id)
        await self.storage.update_fetch_job(
            job.id,
            {"status": FetchJobStatus.RUNNING, "started_at": datetime.utcnow()},
        )
        outcome = EndpointOutcome(
            endpoint_id=endpoint.id, url=endpoint.url, success=False, job_id=job.id
        )

        try:
            fetch = await self.fetcher.fetch_with_retry(
                endpoint.url, self.settings.scraping.max_attempts
            )
            outcome.attempts = fetch.attempts

            if not fetch.success:
                await self._finish_job(job.id, FetchJobStatus.FAILED, fetch.attempts, fetch.error)
                log.warning("Endpoint fetch failed", error=fetch.error, attempts=fetch.attempts)
                outcome.error = fetch.error
                return outcome

            detection = await self.detector.detect_and_record(
                endpoint.id, fetch.content, fetch.metadata
            )
        except StorageError:
            raise
        except Exception as e:
            await self._finish_job(job.id, FetchJobStatus.FAILED, outcome.attempts, str(e))
            raise

        await self._finish_job(job.id, FetchJobStatus.COMPLETED, fetch.attempts)
        await self.storage.update_endpoint(endpoint.id, {"last_scraped_at": datetime.utcnow()})

        outcome.success = True
        if detection.has_changes:
            outcome.change_detected = True
            outcome.change_type = detection.change_type.value
            outcome.change_id = detection.change_id
            outcome.analysis_succeeded = await self._forward_change(endpoint, detection)
        return outcome

    async def _finish_job(
        self,
        job_id: str,
        status: FetchJobStatus,
        attempts: int,
        error: Optional[str] = None,
    ) -> None:
        update: dict[str, Any] = {
            "status": status,
            "completed_at": datetime.utcnow(),
            "retry_count": max(attempts - 1, 0),
        }
        if error is not None:
            update["error"] = error
        await self.storage.update_fetch_job(job_id, update)

    async def _forward_change(
        self, endpoint: Endpoint, detection: ChangeDetectionResult
    ) -> Optional[bool]:
        """Send a detected change to the analysis service.

        Returns None when no analysis client is configured. A failed analysis
        leaves the change unprocessed for a later retry.
        """
        if self.analysis is None or not self.analysis.enabled:
            return None

        analysis = await self.analysis.analyze(
            content=detection.new_content,
            previous_content=detection.previous_content,
            url=endpoint.url,
            endpoint_id=endpoint.id,
        )
        if not analysis.success:
            logger.warning(
                "Analysis unavailable, change kept unprocessed",
                endpoint_id=endpoint.id,
                change_id=detection.change_id,
                error=analysis.error,
            )
            return False

        await self.storage.mark_change_processed(detection.change_id)
        return True

    # Health and status

    async def run_health_check(self) -> bool:
        healthy = await self.fetcher.health_check()
        self.browser_healthy = healthy
        self.last_health_check_at = datetime.utcnow()
        if not healthy:
            logger.warning("Browser runtime unhealthy, it will restart on next use")
        return healthy

    def get_status(self) -> dict[str, Any]:
        return {
            "content_sweep_running": self.content_sweep_running,
            "discovery_sweep_running": self.discovery_sweep_running,
            "browser_healthy": self.browser_healthy,
            "last_health_check_at": (
                self.last_health_check_at.isoformat() if self.last_health_check_at else None
            ),
            "last_content_sweep": (
                self.last_content_sweep.to_dict() if self.last_content_sweep else None
            ),
            "last_discovery_sweep": (
                self.last_discovery_sweep.to_dict() if self.last_discovery_sweep else None
            ),
        }


_crawl_orchestrator: Optional[CrawlOrchestrator] = None


async def get_crawl_orchestrator() -> CrawlOrchestrator:
    """Get or create the global crawl orchestrator."""
    global _crawl_orchestrator

    if _crawl_orchestrator is None:
        settings = get_settings()
        storage = await get_storage_manager()
        fetcher = PageFetcher()
        _crawl_orchestrator = CrawlOrchestrator(
            storage=storage,
            fetcher=fetcher,
            detector=ChangeDetector(storage, ContentHasher(settings.scraping.hash_type)),
            discovery=DiscoveryEngine(storage, fetcher),
            analysis=AnalysisClient(),
            settings=settings,
        )

    return _crawl_orchestrator


async def cleanup_crawl_orchestrator() -> None:
    """Clean up the global crawl orchestrator."""
    global _crawl_orchestrator

    if _crawl_orchestrator:
        await _crawl_orchestrator.cleanup()
        _crawl_orchestrator = None
