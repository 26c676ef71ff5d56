"""In-memory stand-ins for a Playwright page and browser session."""

import asyncio
import re
from typing import Dict, List, Optional

from webcrawl.models import CrawlJob, DynamicContentConfig, RetryPolicy, SitemapJob

NO_WAITS = DynamicContentConfig(
    max_wait_time_ms=0,
    detect_dom_mutations=False,
    detect_js_frameworks=False,
    wait_for_network_idle=False,
    enable_simple_fallback=False,
)

SINGLE_ATTEMPT = RetryPolicy(max_attempts=1, light_wait_attempts=1, backoff_ms=0)


def quick_job(**overrides) -> CrawlJob:
    """CrawlJob with every delay and wait switched off."""
    params = dict(
        root_url="https://example.com",
        wait_time_ms=0,
        enable_smart_waiting=False,
        dynamic_content=NO_WAITS,
        retry=SINGLE_ATTEMPT,
    )
    params.update(overrides)
    return CrawlJob(**params)


def quick_sitemap_job(**overrides) -> SitemapJob:
    params = dict(root_url="https://example.com", retry=SINGLE_ATTEMPT)
    params.update(overrides)
    return SitemapJob(**params)


def html_page(title: str, body: str = "", links: Optional[List[str]] = None) -> str:
    anchors = "".join(f'<a href="{href}">Read about {href}</a>' for href in (links or []))
    return (
        f"<html><head><title>{title}</title>"
        f'<meta name="description" content="{title} description"></head>'
        f"<body><h1>{title}</h1><p>{body or title + ' content.'}</p>{anchors}</body></html>"
    )


class FakeResponse:
    def __init__(self, status: int = 200, status_text: str = "OK", headers: Optional[Dict[str, str]] = None):
        self.status = status
        self.status_text = status_text
        self.headers = headers or {"content-type": "text/html; charset=utf-8"}


class FakeSite:
    """
    URL -> HTML map served by FakePage.

    ``failures`` queues exceptions per URL; each goto to that URL pops one
    until the queue is empty. Unknown URLs answer with a 404.
    """

    def __init__(self, pages: Optional[Dict[str, str]] = None):
        self.pages: Dict[str, str] = dict(pages or {})
        self.failures: Dict[str, List[Exception]] = {}
        self.statuses: Dict[str, int] = {}
        self.goto_delay: float = 0.0
        self.evaluate_result = None

    def fail(self, url: str, *errors: Exception) -> None:
        self.failures.setdefault(url, []).extend(errors)


class FakePage:
    def __init__(self, site: FakeSite):
        self.site = site
        self.url = "about:blank"
        self.goto_calls: List[tuple] = []
        self.screenshots: List[str] = []
        self.listeners: Dict[str, list] = {}
        self.closed = False
        self._html = ""

    async def goto(self, url, wait_until=None, timeout=None):
        self.goto_calls.append((url, wait_until, timeout))
        if self.site.goto_delay:
            await asyncio.sleep(self.site.goto_delay)

        queued = self.site.failures.get(url)
        if queued:
            raise queued.pop(0)

        if url not in self.site.pages:
            return FakeResponse(404, "Not Found")

        self.url = url
        self._html = self.site.pages[url]
        return FakeResponse(self.site.statuses.get(url, 200))

    async def content(self):
        return self._html

    async def title(self):
        match = re.search(r"<title>(.*?)</title>", self._html)
        return match.group(1) if match else ""

    async def evaluate(self, script, arg=None):
        return self.site.evaluate_result

    async def wait_for_selector(self, selector, timeout=None):
        return None

    async def screenshot(self, path=None, full_page=False):
        self.screenshots.append(path)
        return b""

    def on(self, event, handler):
        self.listeners.setdefault(event, []).append(handler)

    def remove_listener(self, event, handler):
        self.listeners.get(event, []).remove(handler)

    async def close(self):
        self.closed = True


class FakeSession:
    """Drop-in for BrowserSession serving pages from a FakeSite."""

    def __init__(self, site: FakeSite, launch_error: Optional[Exception] = None):
        self.site = site
        self.launch_error = launch_error
        self.pages: List[FakePage] = []
        self.network_requests: List[Dict[str, str]] = []
        self.token = None
        self.entered = False
        self.closed = False

    def factory(self, config=None):
        return self

    async def __aenter__(self):
        if self.launch_error:
            raise self.launch_error
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.closed = True

    def bind(self, token):
        self.token = token

    async def new_page(self, include_images=False, capture_network=False):
        page = FakePage(self.site)
        self.pages.append(page)
        return page
