"""Type definitions for storage components."""

from enum import Enum


class StorageError(Exception):
    """Base exception for storage-related errors."""

    pass


class SiteStatus(str, Enum):
    """Status of a monitored site."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    FAILED = "failed"


class EndpointStatus(str, Enum):
    """Status of a discovered endpoint."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    FAILED = "failed"


class PageType(str, Enum):
    """Kind of page an endpoint points at."""

    SITEMAP = "sitemap"
    LOCATIONS = "locations"
    STORE_LOCATOR = "store-locator"
    OTHER = "other"


class ChangeType(str, Enum):
    """Classification of a content change."""

    NEW_CONTENT = "new_content"
    MODIFIED_CONTENT = "modified_content"
    REMOVED_CONTENT = "removed_content"


class FetchJobStatus(str, Enum):
    """Lifecycle of a single fetch job."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FetchJobStatus.COMPLETED, FetchJobStatus.FAILED)

    def can_transition_to(self, target: "FetchJobStatus") -> bool:
        """Jobs only move forward: pending, running, then completed or failed."""
        if self is target:
            return True
        allowed = {
            FetchJobStatus.PENDING: {
                FetchJobStatus.RUNNING,
                FetchJobStatus.FAILED,
            },
            FetchJobStatus.RUNNING: {
                FetchJobStatus.COMPLETED,
                FetchJobStatus.FAILED,
            },
        }
        return target in allowed.get(self, set())
