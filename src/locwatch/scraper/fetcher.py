"""Rendered page fetching with bounded retries."""

import asyncio
import codecs
import re
import time
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import get_settings
from ..config.settings import ScrapingSettings
from ..utils.async_utils import backoff_delay, run_with_timeout
from ..utils.logging import get_structured_logger
from ..utils.types import AsyncTimeoutError
from .browser import BrowserRuntime, get_browser_runtime
from .extractor import ContentExtractor
from .types import FetchResult, ScrapingError

logger = get_structured_logger(__name__)

HEALTH_CHECK_URL = "data:text/html,<html><body>Health Check</body></html>"
RAW_CONTENT_TYPES = ("xml", "text/plain")
_CHARSET = re.compile(r"charset=['\"]?([\w.:-]+)", re.IGNORECASE)


def decode_body(raw: bytes, content_type: Optional[str]) -> str:
    """Decode a raw response body using the charset named in its content type.

    Unknown charsets fall back to UTF-8; undecodable bytes become U+FFFD.
    """
    match = _CHARSET.search(content_type or "")
    encoding = match.group(1) if match else "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError:
        encoding = "utf-8"
    return raw.decode(encoding, errors="replace")


class PageFetcher:
    """Loads a URL in the shared browser and returns its visible text.

    ``fetch`` and ``fetch_with_retry`` never raise for per-URL problems;
    timeouts, network errors and non-2xx responses come back as failed
    ``FetchResult`` values.
    """

    def __init__(
        self,
        runtime: Optional[BrowserRuntime] = None,
        settings: Optional[ScrapingSettings] = None,
        extractor: Optional[ContentExtractor] = None,
    ):
        self.settings = settings or get_settings().scraping
        self.runtime = runtime or get_browser_runtime()
        self.extractor = extractor or ContentExtractor()

    async def fetch(self, url: str) -> FetchResult:
        """Single attempt at loading ``url``."""
        started = time.monotonic()
        try:
            result = await run_with_timeout(
                self._load(url),
                timeout=self.settings.fetch_timeout,
                timeout_message=f"Fetch timed out after {self.settings.fetch_timeout}s",
            )
        except AsyncTimeoutError as e:
            result = FetchResult.failed(url, str(e))
        except PlaywrightTimeoutError:
            result = FetchResult.failed(
                url,
                f"Navigation timed out after {self.settings.navigation_timeout}ms",
            )
        except PlaywrightError as e:
            result = FetchResult.failed(url, f"Navigation failed: {e.message}")
        except ScrapingError as e:
            result = FetchResult.failed(url, str(e))

        duration_ms = int((time.monotonic() - started) * 1000)
        result.metadata["fetch_duration_ms"] = duration_ms

        if result.success:
            logger.debug(
                "Fetched page",
                url=url,
                status_code=result.status_code,
                content_length=result.metadata.get("content_length"),
                duration_ms=duration_ms,
            )
        else:
            logger.debug("Fetch failed", url=url, error=result.error)
        return result

    async def _load(self, url: str) -> FetchResult:
        async with self.runtime.create_context(user_agent=self.settings.user_agent) as context:
            page = await context.new_page()
            page.set_default_timeout(self.settings.navigation_timeout)
            page.set_default_navigation_timeout(self.settings.navigation_timeout)

            response = await page.goto(
                url,
                wait_until="networkidle",
                timeout=self.settings.navigation_timeout,
            )

            # data: and about: URLs have no response object
            status_code = response.status if response is not None else None
            if response is not None and not response.ok:
                return FetchResult.failed(
                    url,
                    f"HTTP {response.status} {response.status_text}".strip(),
                    status_code=status_code,
                )

            await page.wait_for_load_state("domcontentloaded")

            content_type = None
            if response is not None:
                content_type = response.headers.get("content-type")

            if content_type and any(t in content_type for t in RAW_CONTENT_TYPES):
                body = decode_body(await response.body(), content_type)
            else:
                body = await page.content()

            last_modified = await page.evaluate("() => document.lastModified")

        extracted = self.extractor.extract(body, content_type)
        metadata = extracted.to_metadata()
        metadata.update(
            {
                "last_modified": last_modified,
                "status_code": status_code,
                "content_type": content_type,
                "content_length": len(extracted.text.encode("utf-8")),
                "user_agent": self.settings.user_agent,
            }
        )
        return FetchResult.ok(
            url, extracted.text, metadata=metadata, status_code=status_code
        )

    async def fetch_with_retry(
        self, url: str, max_attempts: Optional[int] = None
    ) -> FetchResult:
        """Fetch with up to ``max_attempts`` tries and exponential backoff.

        Only failures are retried; a successful fetch with empty text is
        returned as is.
        """
        attempts = max_attempts or self.settings.max_attempts
        last_result: Optional[FetchResult] = None

        for attempt in range(1, attempts + 1):
            result = await self.fetch(url)
            result.attempts = attempt
            if result.success:
                return result

            last_result = result
            logger.warning(
                "Fetch attempt failed",
                url=url,
                attempt=attempt,
                max_attempts=attempts,
                error=result.error,
            )
            if attempt < attempts:
                await asyncio.sleep(backoff_delay(attempt, self.settings.backoff_base))

        return FetchResult.failed(
            url,
            f"Failed after {attempts} attempts. Last error: {last_result.error}",
            status_code=last_result.status_code,
            attempts=attempts,
        )

    async def health_check(self) -> bool:
        """Load a trivial page; on failure reset the browser runtime."""
        result = await self.fetch(HEALTH_CHECK_URL)
        healthy = result.success and "Health Check" in result.content

        if not healthy:
            logger.warning("Browser health check failed", error=result.error)
            await self.runtime.reset()
        return healthy
