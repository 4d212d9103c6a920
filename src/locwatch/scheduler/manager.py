"""APScheduler wiring for the periodic discovery, content and health jobs."""

from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import get_settings
from ..config.settings import SchedulerSettings
from ..utils.async_utils import AsyncContextManager
from ..utils.logging import get_structured_logger
from .orchestrator import CrawlOrchestrator
from .types import SchedulerError

logger = get_structured_logger(__name__)

DISCOVERY_JOB_ID = "discovery-sweep"
CONTENT_JOB_ID = "content-sweep"
HEALTH_JOB_ID = "browser-health-check"


class SchedulerManager(AsyncContextManager):
    """Owns the AsyncIOScheduler and the three interval jobs."""

    def __init__(
        self,
        orchestrator: CrawlOrchestrator,
        settings: Optional[SchedulerSettings] = None,
    ):
        self.orchestrator = orchestrator
        self.settings = settings or get_settings().scheduler
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.is_running = False
        self.start_time: Optional[datetime] = None

    async def setup(self) -> None:
        """Create the scheduler, register jobs and start it."""
        if self.is_running:
            return

        logger.info("Starting scheduler")
        try:
            self.scheduler = AsyncIOScheduler(
                executors={"default": AsyncIOExecutor()},
                job_defaults={
                    "coalesce": True,
                    "max_instances": 1,
                    "misfire_grace_time": 60,
                },
                timezone=self.settings.timezone,
            )
            self.scheduler.add_listener(
                self._on_job_event, EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES
            )
            self._register_jobs()
            self.scheduler.start()
        except Exception as e:
            logger.error("Failed to start scheduler", error=str(e))
            raise SchedulerError(f"Scheduler startup failed: {str(e)}") from e

        self.is_running = True
        self.start_time = datetime.utcnow()
        logger.info("Scheduler started", jobs=[job["id"] for job in self.get_jobs()])

    async def cleanup(self) -> None:
        if not self.is_running:
            return

        logger.info("Stopping scheduler")
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
        self.is_running = False

    def _register_jobs(self) -> None:
        jobs: list[tuple[str, Callable[[], Awaitable[Any]], int]] = [
            (
                DISCOVERY_JOB_ID,
                self.orchestrator.run_discovery_sweep,
                self.settings.discovery_interval,
            ),
            (
                CONTENT_JOB_ID,
                self.orchestrator.run_content_sweep,
                self.settings.content_interval,
            ),
            (
                HEALTH_JOB_ID,
                self.orchestrator.run_health_check,
                self.settings.health_check_interval,
            ),
        ]
        for job_id, func, seconds in jobs:
            self.scheduler.add_job(
                self._run_job,
                "interval",
                seconds=seconds,
                id=job_id,
                name=job_id,
                args=[job_id, func],
                replace_existing=True,
            )

    async def _run_job(
        self, job_id: str, func: Callable[[], Awaitable[Any]]
    ) -> None:
        """Run one scheduled job; failures are logged so the schedule survives."""
        logger.info("Scheduled job started", job_id=job_id)
        try:
            await func()
        except Exception as e:
            logger.exception("Scheduled job failed", job_id=job_id, error=str(e))
            return
        logger.info("Scheduled job finished", job_id=job_id)

    def _on_job_event(self, event) -> None:
        if event.code == EVENT_JOB_MAX_INSTANCES:
            logger.info("Scheduled job still running, run skipped", job_id=event.job_id)
        else:
            logger.error("Scheduler reported job error", job_id=event.job_id)

    def get_jobs(self) -> list[dict[str, Any]]:
        if not self.scheduler:
            return []
        return [
            {
                "id": job.id,
                "next_run_time": (
                    job.next_run_time.isoformat() if job.next_run_time else None
                ),
                "interval_seconds": int(job.trigger.interval.total_seconds()),
            }
            for job in self.scheduler.get_jobs()
        ]
