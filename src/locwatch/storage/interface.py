"""Storage interface used by discovery, change detection and the orchestrator."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..utils.async_utils import AsyncContextManager
from ..utils.logging import get_structured_logger
from .sqlite import (
    ContentChange,
    ContentSnapshot,
    DatabaseManager,
    Endpoint,
    FetchJob,
    MonitoredSite,
    get_database_manager,
)
from .types import (
    ChangeType,
    EndpointStatus,
    FetchJobStatus,
    PageType,
    SiteStatus,
    StorageError,
)

logger = get_structured_logger(__name__)

_PROTECTED_FIELDS = {"id", "created_at"}


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class StorageManager(AsyncContextManager):
    """CRUD surface over sites, endpoints, snapshots, changes and fetch jobs."""

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db_manager = db_manager
        self._initialized = False

    async def setup(self) -> None:
        if self._initialized:
            return

        if self.db_manager is None:
            self.db_manager = await get_database_manager()
        else:
            await self.db_manager.setup()

        self._initialized = True
        logger.info("Storage manager initialization complete")

    async def cleanup(self) -> None:
        logger.info("Cleaning up storage manager")
        self._initialized = False

    @asynccontextmanager
    async def _session(self) -> AsyncGenerator[AsyncSession, None]:
        if not self.db_manager:
            raise StorageError("Storage manager not initialized")
        async with self.db_manager.get_session() as session:
            yield session

    # Sites

    async def create_site(self, url: str, domain: str) -> MonitoredSite:
        """Register a new site for monitoring."""
        async with self._session() as session:
            site = MonitoredSite(url=url, domain=domain)
            session.add(site)
            await session.flush()
            await session.refresh(site)
            logger.info("Site created", site_id=site.id, url=url)
            return site

    async def get_site(self, site_id: str) -> Optional[MonitoredSite]:
        async with self._session() as session:
            result = await session.execute(
                select(MonitoredSite).where(MonitoredSite.id == site_id)
            )
            return result.scalar_one_or_none()

    async def get_site_by_url(self, url: str) -> Optional[MonitoredSite]:
        async with self._session() as session:
            result = await session.execute(
                select(MonitoredSite).where(MonitoredSite.url == url)
            )
            return result.scalar_one_or_none()

    async def list_sites(self, status: Optional[SiteStatus] = None) -> list[MonitoredSite]:
        async with self._session() as session:
            query = select(MonitoredSite)
            if status is not None:
                query = query.where(MonitoredSite.status == _plain(status))
            result = await session.execute(query.order_by(MonitoredSite.created_at))
            return list(result.scalars().all())

    async def get_active_sites(self) -> list[MonitoredSite]:
        return await self.list_sites(status=SiteStatus.ACTIVE)

    async def update_site(
        self, site_id: str, update_data: dict[str, Any]
    ) -> MonitoredSite:
        """Update a site. Sites are never deleted, only deactivated."""
        async with self._session() as session:
            result = await session.execute(
                select(MonitoredSite).where(MonitoredSite.id == site_id)
            )
            site = result.scalar_one_or_none()
            if not site:
                raise ValueError(f"Site not found: {site_id}")

            for key, value in update_data.items():
                if key not in _PROTECTED_FIELDS and hasattr(site, key):
                    setattr(site, key, _plain(value))

            site.updated_at = datetime.utcnow()
            await session.flush()
            await session.refresh(site)
            logger.debug("Site updated", site_id=site_id, fields=list(update_data))
            return site

    # Endpoints

    async def create_endpoint(
        self, site_id: str, url: str, page_type: PageType
    ) -> Endpoint:
        async with self._session() as session:
            endpoint = Endpoint(
                site_id=site_id,
                url=url,
                page_type=_plain(page_type),
                status=EndpointStatus.ACTIVE.value,
            )
            session.add(endpoint)
            await session.flush()
            await session.refresh(endpoint)
            logger.info(
                "Endpoint created",
                endpoint_id=endpoint.id,
                site_id=site_id,
                url=url,
                page_type=endpoint.page_type,
            )
            return endpoint

    async def get_endpoint(self, endpoint_id: str) -> Optional[Endpoint]:
        async with self._session() as session:
            result = await session.execute(
                select(Endpoint).where(Endpoint.id == endpoint_id)
            )
            return result.scalar_one_or_none()

    async def update_endpoint(
        self, endpoint_id: str, update_data: dict[str, Any]
    ) -> Endpoint:
        async with self._session() as session:
            result = await session.execute(
                select(Endpoint).where(Endpoint.id == endpoint_id)
            )
            endpoint = result.scalar_one_or_none()
            if not endpoint:
                raise ValueError(f"Endpoint not found: {endpoint_id}")

            for key, value in update_data.items():
                if key not in _PROTECTED_FIELDS and hasattr(endpoint, key):
                    setattr(endpoint, key, _plain(value))

            endpoint.updated_at = datetime.utcnow()
            await session.flush()
            await session.refresh(endpoint)
            return endpoint

    async def get_endpoints_for_site(
        self, site_id: str, status: Optional[EndpointStatus] = None
    ) -> list[Endpoint]:
        async with self._session() as session:
            query = select(Endpoint).where(Endpoint.site_id == site_id)
            if status is not None:
                query = query.where(Endpoint.status == _plain(status))
            result = await session.execute(query.order_by(Endpoint.created_at))
            return list(result.scalars().all())

    async def get_active_endpoints(self) -> list[Endpoint]:
        """Active endpoints belonging to active sites."""
        async with self._session() as session:
            query = (
                select(Endpoint)
                .join(MonitoredSite, Endpoint.site_id == MonitoredSite.id)
                .where(Endpoint.status == EndpointStatus.ACTIVE.value)
                .where(MonitoredSite.status == SiteStatus.ACTIVE.value)
                .order_by(Endpoint.created_at)
            )
            result = await session.execute(query)
            return list(result.scalars().all())

    # Snapshots (append-only)

    async def create_snapshot(
        self,
        endpoint_id: str,
        content: str,
        content_hash: str,
        fetch_metadata: Optional[dict[str, Any]] = None,
    ) -> ContentSnapshot:
        if not content_hash:
            raise ValueError("Snapshot content hash cannot be empty")

        async with self._session() as session:
            snapshot = ContentSnapshot(
                endpoint_id=endpoint_id,
                content=content,
                content_hash=content_hash,
                fetch_metadata=dict(fetch_metadata or {}),
            )
            session.add(snapshot)
            await session.flush()
            await session.refresh(snapshot)
            logger.debug(
                "Snapshot created",
                snapshot_id=snapshot.id,
                endpoint_id=endpoint_id,
                content_hash=content_hash,
            )
            return snapshot

    async def get_latest_snapshot(self, endpoint_id: str) -> Optional[ContentSnapshot]:
        async with self._session() as session:
            result = await session.execute(
                select(ContentSnapshot)
                .where(ContentSnapshot.endpoint_id == endpoint_id)
                .order_by(desc(ContentSnapshot.captured_at))
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def get_snapshots_for_endpoint(
        self, endpoint_id: str, limit: Optional[int] = None
    ) -> list[ContentSnapshot]:
        """Snapshots for an endpoint, newest first."""
        async with self._session() as session:
            query = (
                select(ContentSnapshot)
                .where(ContentSnapshot.endpoint_id == endpoint_id)
                .order_by(desc(ContentSnapshot.captured_at))
            )
            if limit:
                query = query.limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

    # Changes

    async def create_change(
        self,
        endpoint_id: str,
        previous_hash: str,
        new_hash: str,
        change_type: ChangeType,
    ) -> ContentChange:
        if previous_hash == new_hash:
            raise ValueError("A change requires two different content hashes")

        async with self._session() as session:
            change = ContentChange(
                endpoint_id=endpoint_id,
                previous_hash=previous_hash,
                new_hash=new_hash,
                change_type=_plain(change_type),
                processed=False,
            )
            session.add(change)
            await session.flush()
            await session.refresh(change)
            logger.info(
                "Content change recorded",
                change_id=change.id,
                endpoint_id=endpoint_id,
                change_type=change.change_type,
            )
            return change

    async def get_change(self, change_id: str) -> Optional[ContentChange]:
        async with self._session() as session:
            result = await session.execute(
                select(ContentChange).where(ContentChange.id == change_id)
            )
            return result.scalar_one_or_none()

    async def get_unprocessed_changes(
        self, endpoint_id: Optional[str] = None
    ) -> list[ContentChange]:
        async with self._session() as session:
            query = select(ContentChange).where(ContentChange.processed.is_(False))
            if endpoint_id:
                query = query.where(ContentChange.endpoint_id == endpoint_id)
            result = await session.execute(query.order_by(ContentChange.detected_at))
            return list(result.scalars().all())

    async def get_changes_since(self, cutoff: datetime) -> list[ContentChange]:
        async with self._session() as session:
            result = await session.execute(
                select(ContentChange)
                .where(ContentChange.detected_at >= cutoff)
                .order_by(desc(ContentChange.detected_at))
            )
            return list(result.scalars().all())

    async def get_changes_for_endpoint(
        self, endpoint_id: str, since: Optional[datetime] = None
    ) -> list[ContentChange]:
        async with self._session() as session:
            query = select(ContentChange).where(
                ContentChange.endpoint_id == endpoint_id
            )
            if since is not None:
                query = query.where(ContentChange.detected_at >= since)
            result = await session.execute(
                query.order_by(desc(ContentChange.detected_at))
            )
            return list(result.scalars().all())

    async def mark_change_processed(self, change_id: str) -> bool:
        """Flag a change as handled. Returns False for unknown ids."""
        async with self._session() as session:
            result = await session.execute(
                select(ContentChange).where(ContentChange.id == change_id)
            )
            change = result.scalar_one_or_none()
            if not change:
                return False
            change.processed = True
            logger.debug("Change marked processed", change_id=change_id)
            return True

    # Fetch jobs

    async def create_fetch_job(self, endpoint_id: str) -> FetchJob:
        async with self._session() as session:
            job = FetchJob(
                endpoint_id=endpoint_id,
                status=FetchJobStatus.PENDING.value,
                retry_count=0,
            )
            session.add(job)
            await session.flush()
            await session.refresh(job)
            return job

    async def get_fetch_job(self, job_id: str) -> Optional[FetchJob]:
        async with self._session() as session:
            result = await session.execute(select(FetchJob).where(FetchJob.id == job_id))
            return result.scalar_one_or_none()

    async def update_fetch_job(self, job_id: str, update_data: dict[str, Any]) -> FetchJob:
        """Update a fetch job, refusing any backwards status transition."""
        async with self._session() as session:
            result = await session.execute(select(FetchJob).where(FetchJob.id == job_id))
            job = result.scalar_one_or_none()
            if not job:
                raise ValueError(f"Fetch job not found: {job_id}")

            if "status" in update_data:
                current = FetchJobStatus(job.status)
                target = FetchJobStatus(_plain(update_data["status"]))
                if not current.can_transition_to(target):
                    raise ValueError(
                        f"Invalid fetch job transition: {current.value} -> {target.value}"
                    )

            for key, value in update_data.items():
                if key not in _PROTECTED_FIELDS and hasattr(job, key):
                    setattr(job, key, _plain(value))

            await session.flush()
            await session.refresh(job)
            return job

    async def list_fetch_jobs(
        self,
        status: Optional[FetchJobStatus] = None,
        endpoint_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[FetchJob]:
        async with self._session() as session:
            query = select(FetchJob)
            if status is not None:
                query = query.where(FetchJob.status == _plain(status))
            if endpoint_id:
                query = query.where(FetchJob.endpoint_id == endpoint_id)
            query = query.order_by(desc(FetchJob.created_at))
            if limit:
                query = query.limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

    # Health

    async def health_check(self) -> bool:
        if not self.db_manager:
            return False
        return await self.db_manager.health_check()


_storage_manager: Optional[StorageManager] = None


async def get_storage_manager() -> StorageManager:
    """Get or create the global storage manager."""
    global _storage_manager

    if _storage_manager is None:
        _storage_manager = StorageManager()
        await _storage_manager.setup()

    return _storage_manager


async def cleanup_storage_manager() -> None:
    """Clean up the global storage manager."""
    global _storage_manager

    if _storage_manager:
        await _storage_manager.cleanup()
        _storage_manager = None
