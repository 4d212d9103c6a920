"""Sweep orchestration and periodic scheduling."""

from .manager import SchedulerManager
from .orchestrator import (
    CrawlOrchestrator,
    cleanup_crawl_orchestrator,
    get_crawl_orchestrator,
)
from .types import (
    DiscoverySweepResult,
    EndpointOutcome,
    SchedulerError,
    SweepKind,
    SweepResult,
)

__all__ = [
    "CrawlOrchestrator",
    "get_crawl_orchestrator",
    "cleanup_crawl_orchestrator",
    "SchedulerManager",
    "SchedulerError",
    "SweepKind",
    "SweepResult",
    "DiscoverySweepResult",
    "EndpointOutcome",
]
