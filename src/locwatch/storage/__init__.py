"""Storage module for sites, endpoints, snapshots, changes and fetch jobs."""

from .interface import StorageManager, cleanup_storage_manager, get_storage_manager
from .sqlite import (
    ContentChange,
    ContentSnapshot,
    DatabaseManager,
    Endpoint,
    FetchJob,
    MonitoredSite,
    cleanup_database_manager,
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

__all__ = [
    "StorageManager",
    "get_storage_manager",
    "cleanup_storage_manager",
    "StorageError",
    "SiteStatus",
    "EndpointStatus",
    "PageType",
    "ChangeType",
    "FetchJobStatus",
    "DatabaseManager",
    "get_database_manager",
    "cleanup_database_manager",
    "MonitoredSite",
    "Endpoint",
    "ContentSnapshot",
    "ContentChange",
    "FetchJob",
]
