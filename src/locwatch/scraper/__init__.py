"""Page fetching, endpoint discovery and change detection.

- Shared headless browser runtime (Playwright)
- Visible-text extraction (BeautifulSoup)
- Fetching with bounded retries
- Snapshot hashing and change detection
- Discovery of sitemap, locations and store-locator pages
"""

from .browser import BrowserRuntime, cleanup_browser_runtime, get_browser_runtime
from .discovery import DiscoveryEngine, DiscoveryReport
from .extractor import ContentExtractor
from .fetcher import PageFetcher
from .hashing import (
    ChangeDetectionResult,
    ChangeDetector,
    ChangeStatistics,
    ContentChangeAnalysis,
    ContentHash,
    ContentHasher,
    classify_change,
)
from .types import BrowserError, ExtractedContent, FetchResult, ScrapingError

__all__ = [
    "ScrapingError",
    "BrowserError",
    "ExtractedContent",
    "FetchResult",
    "BrowserRuntime",
    "get_browser_runtime",
    "cleanup_browser_runtime",
    "ContentExtractor",
    "PageFetcher",
    "ContentHash",
    "ContentHasher",
    "ChangeDetector",
    "ChangeDetectionResult",
    "ChangeStatistics",
    "ContentChangeAnalysis",
    "classify_change",
    "DiscoveryEngine",
    "DiscoveryReport",
]
