"""Type definitions for sweep orchestration and scheduling."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class SchedulerError(Exception):
    """Base exception for scheduler-related errors."""

    pass


class SweepKind(str, Enum):
    """What a sweep run covered."""

    DISCOVERY = "discovery"
    CONTENT = "content"
    ENDPOINT = "endpoint"
    REFRESH = "refresh"


@dataclass
class EndpointOutcome:
    """Result of processing a single endpoint during a content sweep."""

    endpoint_id: str
    url: str
    success: bool
    job_id: Optional[str] = None
    attempts: int = 0
    change_detected: bool = False
    change_type: Optional[str] = None
    change_id: Optional[str] = None
    analysis_succeeded: Optional[bool] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint_id": self.endpoint_id,
            "url": self.url,
            "success": self.success,
            "job_id": self.job_id,
            "attempts": self.attempts,
            "change_detected": self.change_detected,
            "change_type": self.change_type,
            "change_id": self.change_id,
            "analysis_succeeded": self.analysis_succeeded,
            "error": self.error,
        }


@dataclass
class SweepResult:
    """Summary of a content sweep or a single-endpoint fetch."""

    kind: SweepKind
    skipped: bool = False
    outcomes: list[EndpointOutcome] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    started_at: datetime = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.started_at is None:
            self.started_at = datetime.utcnow()

    @property
    def endpoints_processed(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.success)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.success)

    @property
    def changes_detected(self) -> int:
        return sum(1 for o in self.outcomes if o.change_detected)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "skipped": self.skipped,
            "endpoints_processed": self.endpoints_processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "changes_detected": self.changes_detected,
            "errors": self.errors,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class DiscoverySweepResult:
    """Summary of a discovery sweep or a single-site refresh."""

    kind: SweepKind = SweepKind.DISCOVERY
    skipped: bool = False
    sites_checked: int = 0
    endpoints_created: int = 0
    endpoint_ids: list[str] = field(default_factory=list)
    failed_sites: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    started_at: datetime = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.started_at is None:
            self.started_at = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "skipped": self.skipped,
            "sites_checked": self.sites_checked,
            "endpoints_created": self.endpoints_created,
            "endpoint_ids": self.endpoint_ids,
            "failed_sites": self.failed_sites,
            "errors": self.errors,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
