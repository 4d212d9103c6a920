"""Test doubles shared across the test modules."""

from typing import Optional, Union
from unittest.mock import AsyncMock, Mock

from locwatch.scraper.types import FetchResult


class FakeFetcher:
    """Stands in for PageFetcher; answers from a URL -> result table.

    A list value is consumed one result per call, the last entry repeating.
    Unknown URLs answer with a 404 failure.
    """

    def __init__(
        self, responses: Optional[dict[str, Union[FetchResult, list[FetchResult]]]] = None
    ):
        self.responses = responses or {}
        self.calls: list[str] = []
        self.runtime = Mock()
        self.runtime.reset = AsyncMock()
        self.runtime.cleanup = AsyncMock()
        self.healthy = True

    def set_content(self, url: str, content: str) -> None:
        self.responses[url] = ok(url, content)

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        answer = self.responses.get(url)
        if answer is None:
            return FetchResult.failed(url, "HTTP 404 Not Found", status_code=404)
        if isinstance(answer, list):
            return answer.pop(0) if len(answer) > 1 else answer[0]
        return answer

    async def fetch_with_retry(self, url: str, max_attempts: Optional[int] = None) -> FetchResult:
        return await self.fetch(url)

    async def health_check(self) -> bool:
        return self.healthy


def ok(url: str, content: str, status_code: int = 200) -> FetchResult:
    return FetchResult.ok(
        url, content, metadata={"content_length": len(content)}, status_code=status_code
    )


def unreachable(url: str) -> FetchResult:
    return FetchResult.failed(url, "Navigation failed: net::ERR_NAME_NOT_RESOLVED")
