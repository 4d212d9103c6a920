"""SQLite database storage module."""

from .database import (
    DatabaseManager,
    cleanup_database_manager,
    get_database_manager,
    to_async_url,
)
from .models import (
    Base,
    ContentChange,
    ContentSnapshot,
    Endpoint,
    FetchJob,
    MonitoredSite,
)

__all__ = [
    "DatabaseManager",
    "get_database_manager",
    "cleanup_database_manager",
    "to_async_url",
    "Base",
    "MonitoredSite",
    "Endpoint",
    "ContentSnapshot",
    "ContentChange",
    "FetchJob",
]
