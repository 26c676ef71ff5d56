"""
Playwright browser session owned by a single crawl job.

This module provides a BrowserSession class that launches one browser and
one isolated context per job, hands out pages configured for crawling, and
tears everything down when the job ends or is cancelled.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from .browser_config import BrowserConfig
from .cancellation import CancellationToken

logger = logging.getLogger(__name__)


class BrowserSession:
    """
    Browser lifecycle for one crawl job.

    This class is designed to be used as an async context manager:

        async with BrowserSession(config) as session:
            page = await session.new_page()

    Binding a cancellation token makes the session close itself as soon as
    the token fires, so in-flight page operations fail fast.
    """

    def __init__(self, config: Optional[BrowserConfig] = None):
        """
        Initialize the session.

        Args:
            config: BrowserConfig instance; defaults to BrowserConfig()
        """
        self._config = config or BrowserConfig()
        self._playwright = None
        self._browser = None
        self._context = None
        self._closed = False
        self._close_task: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None
        self.network_requests: List[Dict[str, Any]] = []

        logger.debug(f"BrowserSession initialized with config: {self._config}")

    @property
    def config(self) -> BrowserConfig:
        return self._config

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "BrowserSession":
        """Enter async context manager, launching browser."""
        try:
            from playwright.async_api import async_playwright
        except ImportError:
            raise ImportError(
                "Playwright is required for browser-based crawling. "
                "Install with: pip install playwright && playwright install chromium"
            )

        logger.info(f"Launching {self._config.browser_type} browser (headless={self._config.headless})")

        self._playwright = await async_playwright().start()
        try:
            browser_launcher = getattr(self._playwright, self._config.browser_type)
            self._browser = await browser_launcher.launch(**self._config.launch_options())

            self._context = await self._browser.new_context(
                viewport={"width": self._config.viewport_width, "height": self._config.viewport_height},
                user_agent=self._config.user_agent,
                locale=self._config.locale,
                java_script_enabled=True,
                extra_http_headers=self._config.extra_http_headers,
            )
            self._context.set_default_timeout(self._config.default_timeout)
        except Exception as e:
            logger.error(f"Browser launch failed: {e}")
            await self.close()
            raise

        logger.info("Browser launched successfully")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager, closing browser."""
        if self._close_task is not None:
            await self._close_task
        await self.close()

    def bind(self, token: CancellationToken) -> None:
        """Close this session as soon as ``token`` fires."""
        self._token = token
        token.add_callback(self._close_on_cancel)

    def _close_on_cancel(self) -> None:
        if self._closed or self._close_task is not None:
            return
        logger.info("Closing browser after cancellation")
        self._close_task = asyncio.ensure_future(self.close())

    async def new_page(self, include_images: bool = False, capture_network: bool = False):
        """
        Open a page in the session's context.

        Args:
            include_images: Let image requests through instead of blocking them
            capture_network: Record every request the page makes in
                ``network_requests``

        Returns:
            Playwright Page

        Raises:
            RuntimeError: If the session is not running
        """
        if self._context is None or self._closed:
            raise RuntimeError(
                "Browser session is not running. Use BrowserSession as an async context manager: "
                "async with BrowserSession(config) as session:"
            )

        page = await self._context.new_page()

        blocked = [
            resource for resource in self._config.block_resources
            if not (include_images and resource == "image")
        ]
        if blocked:
            await page.route(
                "**/*",
                lambda route: (
                    route.abort()
                    if route.request.resource_type in blocked
                    else route.continue_()
                )
            )

        if capture_network:
            page.on("request", lambda req: self.network_requests.append({
                "url": req.url,
                "method": req.method,
                "resource_type": req.resource_type,
            }))

        return page

    async def close(self) -> None:
        """Close context, browser and Playwright. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True

        if self._token is not None:
            self._token.remove_callback(self._close_on_cancel)
            self._token = None

        if self._context:
            try:
                await self._context.close()
            except Exception as e:
                logger.debug(f"Error closing browser context: {e}")
            self._context = None

        if self._browser:
            logger.info("Closing browser")
            try:
                await self._browser.close()
            except Exception as e:
                logger.debug(f"Error closing browser: {e}")
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

        logger.info("Browser closed successfully")
