"""Shared headless Chromium runtime for page fetching."""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Playwright,
    async_playwright,
)

from ..config import get_settings
from ..config.settings import ScrapingSettings
from ..utils.logging import get_structured_logger
from .types import BrowserError

logger = get_structured_logger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]


class BrowserRuntime:
    """One browser per process; every fetch gets its own isolated context.

    The runtime starts lazily on first use. ``reset`` tears it down so that
    the next caller re-initialises a fresh browser.
    """

    def __init__(self, settings: Optional[ScrapingSettings] = None):
        self.settings = settings or get_settings().scraping
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._browser_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self.browser is not None and self.browser.is_connected()

    async def setup(self) -> None:
        """Start Playwright and launch headless Chromium."""
        if self.is_running:
            return

        async with self._browser_lock:
            if self.is_running:
                return

            logger.info("Launching headless browser")
            try:
                self.playwright = await async_playwright().start()
                self.browser = await self.playwright.chromium.launch(
                    headless=True, args=LAUNCH_ARGS
                )
            except PlaywrightError as e:
                await self._teardown()
                raise BrowserError(f"Failed to launch browser: {str(e)}") from e

            logger.info("Headless browser ready")

    async def cleanup(self) -> None:
        """Close the browser and stop Playwright."""
        async with self._browser_lock:
            await self._teardown()
            logger.info("Headless browser closed")

    async def reset(self) -> None:
        """Drop the current browser so the next use starts a new one."""
        logger.warning("Resetting browser runtime")
        await self.cleanup()

    async def _teardown(self) -> None:
        if self.browser:
            try:
                await self.browser.close()
            except PlaywrightError as e:
                logger.warning("Error closing browser", error=str(e))
            self.browser = None

        if self.playwright:
            try:
                await self.playwright.stop()
            except PlaywrightError as e:
                logger.warning("Error stopping Playwright", error=str(e))
            self.playwright = None

    @asynccontextmanager
    async def create_context(self, user_agent: Optional[str] = None):
        """Yield a fresh browser context, closed on exit whatever happens."""
        await self.setup()

        context: BrowserContext = await self.browser.new_context(
            viewport={
                "width": self.settings.viewport_width,
                "height": self.settings.viewport_height,
            },
            user_agent=user_agent or self.settings.user_agent,
            extra_http_headers={
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.5",
            },
            java_script_enabled=True,
        )
        try:
            yield context
        finally:
            try:
                await context.close()
            except PlaywrightError as e:
                logger.debug("Context already closed", error=str(e))


_browser_runtime: Optional[BrowserRuntime] = None


def get_browser_runtime() -> BrowserRuntime:
    """Get the process-wide browser runtime (started lazily)."""
    global _browser_runtime

    if _browser_runtime is None:
        _browser_runtime = BrowserRuntime()

    return _browser_runtime


async def cleanup_browser_runtime() -> None:
    """Shut down the process-wide browser runtime."""
    global _browser_runtime

    if _browser_runtime:
        await _browser_runtime.cleanup()
        _browser_runtime = None
