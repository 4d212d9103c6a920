"""Shared fixtures for the locwatch test suite."""

import pytest
import pytest_asyncio
from fakes import FakeFetcher

from locwatch.config.settings import (
    AnalysisSettings,
    AppSettings,
    DatabaseSettings,
    SchedulerSettings,
    ScrapingSettings,
)
from locwatch.scraper.hashing import ChangeDetector, ContentHasher
from locwatch.storage.interface import StorageManager
from locwatch.storage.sqlite.database import DatabaseManager


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: mark test as integration test")


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(
        database=DatabaseSettings(url="sqlite:///:memory:"),
        scraping=ScrapingSettings(max_attempts=3),
        scheduler=SchedulerSettings(courtesy_delay=0, site_failure_threshold=3),
        analysis=AnalysisSettings(enabled=True),
    )


@pytest_asyncio.fixture
async def storage():
    db_manager = DatabaseManager(DatabaseSettings(url="sqlite:///:memory:"))
    manager = StorageManager(db_manager)
    await manager.setup()
    yield manager
    await manager.cleanup()
    await db_manager.cleanup()


@pytest.fixture
def detector(storage) -> ChangeDetector:
    return ChangeDetector(storage, ContentHasher("blake3"))


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()
