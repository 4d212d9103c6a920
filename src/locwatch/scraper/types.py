"""Type definitions for the scraper module."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional


class ScrapingError(Exception):
    """Base exception for scraping-related errors."""

    pass


class BrowserError(ScrapingError):
    """Raised when the shared browser runtime cannot be used."""

    pass


@dataclass
class ExtractedContent:
    """Visible text of a page plus the metadata pulled from its markup."""

    text: str
    title: Optional[str] = None
    description: Optional[str] = None
    canonical_url: Optional[str] = None
    sitemap_urls: list[str] = field(default_factory=list)

    def to_metadata(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {
            "title": self.title,
            "description": self.description,
            "canonical_url": self.canonical_url,
        }
        if self.sitemap_urls:
            metadata["url_count"] = len(self.sitemap_urls)
        return metadata


@dataclass
class FetchResult:
    """Outcome of fetching one URL. Failures are values, never exceptions."""

    url: str
    success: bool
    content: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    status_code: Optional[int] = None
    attempts: int = 1
    fetched_at: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def ok(
        cls,
        url: str,
        content: str,
        metadata: Optional[dict[str, Any]] = None,
        status_code: Optional[int] = None,
    ) -> "FetchResult":
        return cls(
            url=url,
            success=True,
            content=content,
            metadata=metadata or {},
            status_code=status_code,
        )

    @classmethod
    def failed(
        cls,
        url: str,
        error: str,
        status_code: Optional[int] = None,
        attempts: int = 1,
    ) -> "FetchResult":
        return cls(
            url=url,
            success=False,
            error=error,
            status_code=status_code,
            attempts=attempts,
        )
