"""Search the rendered text of a single live page."""
import logging
import time
from typing import Callable, Optional

from .browser import BrowserSession
from .browser_config import BrowserConfig
from .cancellation import CancellationToken
from .errors import CrawlAborted
from .extraction import extract_page
from .models import PageSearchResult
from .navigation import NavigationController
from .relevance import MAX_MATCHES, search_in_content

logger = logging.getLogger(__name__)


class PageSearcher:
    """Load one page and find the passages most relevant to a query."""

    def __init__(
        self,
        browser_config: Optional[BrowserConfig] = None,
        session_factory: Optional[Callable[[BrowserConfig], BrowserSession]] = None,
        controller: Optional[NavigationController] = None,
    ):
        self.browser_config = browser_config or BrowserConfig()
        self._session_factory = session_factory or BrowserSession
        self._controller = controller or NavigationController()

    async def search_in_page(
        self,
        url: str,
        query: str,
        max_results: int = MAX_MATCHES,
        wait_time_ms: int = 1000,
        token: Optional[CancellationToken] = None,
    ) -> PageSearchResult:
        """
        Navigate to ``url`` and search its visible text.

        Args:
            url: Page to load
            query: Free-text query
            max_results: Most matches returned
            wait_time_ms: Delay after navigation before the text is read
            token: Cancellation token; a private one is used when omitted

        Returns:
            PageSearchResult; ``success`` is False when the page could not
            be loaded
        """
        token = token or CancellationToken()
        result = PageSearchResult(success=False, url=url, query=query)
        start_time = time.time()
        logger.info(f"Searching {url} for {query!r}")

        try:
            async with self._session_factory(self.browser_config) as session:
                session.bind(token)
                page = await session.new_page()
                try:
                    await self._controller.navigate_with_retry(page, url, token)
                    if wait_time_ms:
                        await token.sleep(wait_time_ms / 1000)
                    html = await token.race(page.content())
                finally:
                    try:
                        await page.close()
                    except Exception as e:
                        logger.debug(f"Error closing page: {e}")

            extract = extract_page(html, url)
            search = search_in_content(extract.text, query)
        except CrawlAborted as e:
            result.aborted = True
            result.error = str(e)
        except Exception as e:
            logger.error(f"Error searching {url}: {e}")
            result.error = str(e)
        else:
            result.matches = search.matches[:max_results]
            result.total_matches = len(search.matches)
            result.summary = search.summary
            result.page_title = extract.title or None
            result.success = True
            logger.info(f"Found {result.total_matches} matches for {query!r} on {url}")

        result.processing_time_ms = int((time.time() - start_time) * 1000)
        return result
