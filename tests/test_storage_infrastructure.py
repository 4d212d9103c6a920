"""Tests for the SQLite-backed storage layer."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from locwatch.config.settings import DatabaseSettings
from locwatch.storage.sqlite.database import DatabaseManager, to_async_url
from locwatch.storage.types import (
    ChangeType,
    EndpointStatus,
    FetchJobStatus,
    PageType,
    SiteStatus,
    StorageError,
)


class TestDatabaseManager:
    """Test URL handling and health checks."""

    def test_sqlite_url_mapped_to_aiosqlite(self):
        assert to_async_url("sqlite:///./data/x.db") == "sqlite+aiosqlite:///./data/x.db"
        assert to_async_url("sqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"
        assert to_async_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"

    @pytest.mark.asyncio
    async def test_health_check(self, storage):
        assert await storage.health_check() is True

    def test_memory_database_is_not_file_backed(self):
        assert not DatabaseManager(DatabaseSettings(url="sqlite:///:memory:")).is_file_backed
        assert DatabaseManager(DatabaseSettings(url="sqlite:///./data/x.db")).is_file_backed

    @pytest.mark.asyncio
    async def test_file_database_runs_in_wal_mode(self, tmp_path):
        manager = DatabaseManager(DatabaseSettings(url=f"sqlite:///{tmp_path / 'crawl.db'}"))
        async with manager:
            async with manager.get_session() as session:
                mode = (await session.execute(text("PRAGMA journal_mode"))).scalar()

        assert mode == "wal"
        assert manager.engine is None


class TestSitesAndEndpoints:
    """Test site and endpoint CRUD."""

    @pytest.mark.asyncio
    async def test_create_and_fetch_site(self, storage):
        site = await storage.create_site("https://example.com", "example.com")

        assert site.status == SiteStatus.ACTIVE.value
        assert (await storage.get_site(site.id)).url == "https://example.com"
        assert (await storage.get_site_by_url("https://example.com")).id == site.id

    @pytest.mark.asyncio
    async def test_duplicate_site_url_raises_storage_error(self, storage):
        """Driver integrity errors surface as StorageError."""
        await storage.create_site("https://example.com", "example.com")

        with pytest.raises(StorageError):
            await storage.create_site("https://example.com", "example.com")

    @pytest.mark.asyncio
    async def test_active_sites_exclude_failed(self, storage):
        active = await storage.create_site("https://a.example", "a.example")
        failed = await storage.create_site("https://b.example", "b.example")
        await storage.update_site(failed.id, {"status": SiteStatus.FAILED})

        assert [s.id for s in await storage.get_active_sites()] == [active.id]

    @pytest.mark.asyncio
    async def test_active_endpoints_belong_to_active_sites(self, storage):
        """Endpoints of a failed site, and inactive endpoints, are not swept."""
        site = await storage.create_site("https://a.example", "a.example")
        other = await storage.create_site("https://b.example", "b.example")
        live = await storage.create_endpoint(site.id, "https://a.example/stores", PageType.LOCATIONS)
        retired = await storage.create_endpoint(site.id, "https://a.example/old", PageType.OTHER)
        await storage.create_endpoint(other.id, "https://b.example/stores", PageType.LOCATIONS)

        await storage.update_endpoint(retired.id, {"status": EndpointStatus.INACTIVE})
        await storage.update_site(other.id, {"status": SiteStatus.FAILED})

        assert [e.id for e in await storage.get_active_endpoints()] == [live.id]

    @pytest.mark.asyncio
    async def test_endpoints_for_site_with_status_filter(self, storage):
        site = await storage.create_site("https://a.example", "a.example")
        first = await storage.create_endpoint(site.id, "https://a.example/1", PageType.SITEMAP)
        second = await storage.create_endpoint(site.id, "https://a.example/2", PageType.SITEMAP)
        await storage.update_endpoint(first.id, {"status": EndpointStatus.INACTIVE})

        all_endpoints = await storage.get_endpoints_for_site(site.id)
        active = await storage.get_endpoints_for_site(site.id, status=EndpointStatus.ACTIVE)

        assert len(all_endpoints) == 2
        assert [e.id for e in active] == [second.id]

    @pytest.mark.asyncio
    async def test_update_unknown_endpoint(self, storage):
        with pytest.raises(ValueError):
            await storage.update_endpoint("missing", {"status": EndpointStatus.INACTIVE})


class TestSnapshotsAndChanges:
    """Test snapshot and change invariants."""

    @pytest.mark.asyncio
    async def test_latest_snapshot_is_newest(self, storage):
        site = await storage.create_site("https://a.example", "a.example")
        endpoint = await storage.create_endpoint(site.id, "https://a.example/x", PageType.OTHER)

        await storage.create_snapshot(endpoint.id, "one", "h1")
        await storage.create_snapshot(endpoint.id, "two", "h2")

        latest = await storage.get_latest_snapshot(endpoint.id)
        assert latest.content == "two"
        assert latest.content_hash == "h2"

    @pytest.mark.asyncio
    async def test_snapshot_requires_hash(self, storage):
        with pytest.raises(ValueError):
            await storage.create_snapshot("any", "content", "")

    @pytest.mark.asyncio
    async def test_change_requires_different_hashes(self, storage):
        with pytest.raises(ValueError):
            await storage.create_change("any", "same", "same", ChangeType.MODIFIED_CONTENT)

    @pytest.mark.asyncio
    async def test_mark_change_processed(self, storage):
        site = await storage.create_site("https://a.example", "a.example")
        endpoint = await storage.create_endpoint(site.id, "https://a.example/x", PageType.OTHER)
        change = await storage.create_change(
            endpoint.id, "h1", "h2", ChangeType.MODIFIED_CONTENT
        )

        assert await storage.mark_change_processed(change.id) is True
        assert await storage.mark_change_processed("missing") is False
        assert (await storage.get_change(change.id)).processed is True
        assert await storage.get_unprocessed_changes() == []

    @pytest.mark.asyncio
    async def test_changes_since_cutoff(self, storage):
        site = await storage.create_site("https://a.example", "a.example")
        endpoint = await storage.create_endpoint(site.id, "https://a.example/x", PageType.OTHER)
        await storage.create_change(endpoint.id, "h1", "h2", ChangeType.MODIFIED_CONTENT)

        past = datetime.utcnow() - timedelta(days=1)
        future = datetime.utcnow() + timedelta(days=1)

        assert len(await storage.get_changes_since(past)) == 1
        assert await storage.get_changes_since(future) == []


class TestFetchJobs:
    """Test the fetch job lifecycle."""

    @pytest.mark.asyncio
    async def test_forward_transitions(self, storage):
        job = await storage.create_fetch_job("endpoint-id")
        assert job.status == FetchJobStatus.PENDING.value

        job = await storage.update_fetch_job(job.id, {"status": FetchJobStatus.RUNNING})
        job = await storage.update_fetch_job(
            job.id, {"status": FetchJobStatus.COMPLETED, "retry_count": 1}
        )

        assert job.status == FetchJobStatus.COMPLETED.value
        assert job.retry_count == 1

    @pytest.mark.asyncio
    async def test_backward_transition_refused(self, storage):
        job = await storage.create_fetch_job("endpoint-id")
        await storage.update_fetch_job(job.id, {"status": FetchJobStatus.RUNNING})
        await storage.update_fetch_job(job.id, {"status": FetchJobStatus.FAILED})

        with pytest.raises(ValueError):
            await storage.update_fetch_job(job.id, {"status": FetchJobStatus.RUNNING})

        assert (await storage.get_fetch_job(job.id)).status == FetchJobStatus.FAILED.value

    def test_transition_table(self):
        assert FetchJobStatus.PENDING.can_transition_to(FetchJobStatus.FAILED)
        assert not FetchJobStatus.COMPLETED.can_transition_to(FetchJobStatus.PENDING)
        assert not FetchJobStatus.RUNNING.can_transition_to(FetchJobStatus.PENDING)
        assert FetchJobStatus.COMPLETED.is_terminal
