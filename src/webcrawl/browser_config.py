"""
Browser configuration for Playwright-driven crawling.

This module provides a validated Pydantic configuration model for the
browser session every crawl job launches, and pre-configured instances for
common use cases.
"""
from typing import Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,image/apng,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "DNT": "1",
    "Upgrade-Insecure-Requests": "1",
    "Cache-Control": "max-age=0",
}

DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]


class BrowserConfig(BaseModel):
    """
    Configuration for the browser session owned by one crawl job.

    All fields are validated by Pydantic to ensure type safety and valid values.
    """

    model_config = ConfigDict(validate_assignment=True)

    headless: bool = Field(
        default=True,
        description="Run browser in headless mode (no visible UI)"
    )

    browser_type: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser engine to use for crawling"
    )

    launch_args: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LAUNCH_ARGS),
        description="Additional browser launch arguments (chromium only)"
    )

    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User agent sent with every request"
    )

    viewport_width: int = Field(default=1280, ge=320, le=3840)
    viewport_height: int = Field(default=720, ge=240, le=2160)

    locale: str = Field(default="en-US")

    extra_http_headers: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_HEADERS),
        description="Headers added to every request"
    )

    block_resources: List[str] = Field(
        default_factory=lambda: ["image", "stylesheet", "font", "media"],
        description="Resource types aborted unless a job asks for images"
    )

    default_timeout: int = Field(
        default=60000,
        description="Default timeout for page operations in milliseconds",
        ge=1000,
        le=600000
    )

    screenshot_dir: str = Field(
        default=".tmp/crawl-artifacts",
        description="Where full-page screenshots are written"
    )

    def launch_options(self) -> Dict[str, object]:
        options: Dict[str, object] = {"headless": self.headless}
        if self.launch_args and self.browser_type == "chromium":
            options["args"] = list(self.launch_args)
        return options


# --- Pre-configured Instances for Common Use Cases ---

DEFAULT_CONFIG = BrowserConfig()
"""
Balanced configuration: headless Chromium, heavy resources blocked.
"""

FAST_CONFIG = BrowserConfig(
    headless=True,
    block_resources=["image", "stylesheet", "font", "media", "websocket"],
    default_timeout=20000,
)
"""
Fast configuration optimized for throughput.

Blocks every heavy resource type and uses shorter operation timeouts.
"""

DEBUG_CONFIG = BrowserConfig(
    headless=False,
    block_resources=[],
    default_timeout=120000,
)
"""
Debug configuration: visible browser, nothing blocked.

Best for watching a crawl step through a problematic site.
"""
