"""Shared utilities for the location monitor."""

from .async_utils import AsyncContextManager, backoff_delay, run_with_timeout
from .logging import crawl_context, get_logger, get_structured_logger, setup_logging
from .types import AsyncTimeoutError, UtilityError

__all__ = [
    "setup_logging",
    "get_logger",
    "get_structured_logger",
    "crawl_context",
    "run_with_timeout",
    "backoff_delay",
    "AsyncContextManager",
    "UtilityError",
    "AsyncTimeoutError",
]
