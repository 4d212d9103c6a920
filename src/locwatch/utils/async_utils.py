"""Async utility functions and helpers."""

import asyncio
from collections.abc import Awaitable
from typing import Optional, TypeVar

from .logging import get_structured_logger
from .types import AsyncTimeoutError

logger = get_structured_logger(__name__)

T = TypeVar("T")


async def run_with_timeout(
    coro: Awaitable[T], timeout: float, timeout_message: Optional[str] = None
) -> T:
    """Run a coroutine with a timeout."""
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except asyncio.TimeoutError as e:
        msg = timeout_message or f"Operation timed out after {timeout}s"
        logger.warning("Operation timed out", timeout=timeout, message=msg)
        raise AsyncTimeoutError(msg) from e


def backoff_delay(attempt: int, base: float = 2.0) -> float:
    """Delay before the retry that follows a failed attempt (1-based)."""
    return float(base**attempt)


class AsyncContextManager:
    """Base class for async context managers."""

    async def __aenter__(self):
        await self.setup()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.cleanup()

    async def setup(self) -> None:
        """Setup the context manager."""
        pass

    async def cleanup(self) -> None:
        """Cleanup the context manager."""
        pass
