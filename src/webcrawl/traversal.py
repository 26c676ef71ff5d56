"""
Content crawl: strategy-driven traversal of a site under a page/depth budget.

One ContentCrawler.crawl call owns one browser session and one page. URLs
are pulled from an explicit frontier whose discipline follows the job's
strategy; each page is navigated, settled, extracted and its links scored
before they are queued.
"""
import hashlib
import logging
import time
from pathlib import Path
from typing import Callable, List, Optional

from .browser import BrowserSession
from .browser_config import BrowserConfig
from .cancellation import CancellationToken
from .errors import CrawlAborted, NavigationError, classify_error
from .extraction import extract_page
from .frontier import Frontier, FrontierEntry, TraversalContext, normalize_url, same_origin
from .models import (
    ContentSearchResult,
    CrawlJob,
    CrawlResult,
    PageError,
    PageExtract,
    PageLink,
    PageSummary,
)
from .navigation import NavigationController
from .page_signals import plan_dynamic_wait
from .relevance import calculate_link_relevance, order_links, query_boost, score_page, search_in_content

logger = logging.getLogger(__name__)

# Most links queued from a single page
MAX_LINKS_PER_PAGE = 10
PAGE_SUMMARY_CHARS = 300
KEY_FINDINGS = 3

SessionFactory = Callable[[BrowserConfig], BrowserSession]


def summarize_page(
    entry: FrontierEntry,
    extract: PageExtract,
    query: Optional[str] = None,
    search: Optional[ContentSearchResult] = None,
) -> PageSummary:
    """Short record of a visited page: preview, query score and key lines.

    Key findings are the best query matches when there are any, otherwise
    the first substantial lines of the page.
    """
    text = extract.text
    summary = text[:PAGE_SUMMARY_CHARS]
    if len(text) > PAGE_SUMMARY_CHARS:
        summary += "..."

    if search and search.matches:
        findings = [match.snippet for match in search.matches[:KEY_FINDINGS]]
    else:
        lines = (line.strip() for line in text.splitlines())
        findings = [line for line in lines if len(line) > 50][:KEY_FINDINGS]

    return PageSummary(
        url=entry.url,
        depth=entry.depth,
        title=extract.title,
        summary=summary,
        relevance_score=score_page(text, query) if query else None,
        key_findings=findings,
    )


class ContentCrawler:
    """
    Crawl a site and merge the content of every visited page.

    Usage:
        crawler = ContentCrawler()
        result = await crawler.crawl(CrawlJob(root_url="https://example.com"), token)
    """

    def __init__(
        self,
        browser_config: Optional[BrowserConfig] = None,
        session_factory: Optional[SessionFactory] = None,
        controller: Optional[NavigationController] = None,
    ):
        """
        Args:
            browser_config: Browser settings; defaults to BrowserConfig()
            session_factory: Builds the per-job browser session (tests swap
                in a fake)
            controller: Navigation controller; one is built from each job's
                retry policy when omitted
        """
        self.browser_config = browser_config or BrowserConfig()
        self._session_factory = session_factory or BrowserSession
        self._controller = controller

    async def crawl(self, job: CrawlJob, token: Optional[CancellationToken] = None) -> CrawlResult:
        """
        Run a content crawl.

        Args:
            job: What to crawl and under which budget
            token: Cancellation token; a private one is used when omitted

        Returns:
            CrawlResult. ``success`` reflects the root page only; failures on
            other pages are listed in ``page_errors``. A cancelled job comes
            back with ``aborted=True``.
        """
        token = token or CancellationToken()
        controller = self._controller or NavigationController(job.retry)
        context = TraversalContext(max_pages=job.max_pages)
        result = CrawlResult(success=False, url=job.root_url)
        start_time = time.time()

        logger.info(
            f"Starting {job.strategy.value} crawl of {job.root_url} "
            f"(max_pages={job.max_pages}, max_depth={job.max_depth})"
        )

        try:
            token.raise_if_cancelled()
            async with self._session_factory(self.browser_config) as session:
                session.bind(token)
                page = await session.new_page(
                    include_images=job.include_images,
                    capture_network=job.capture_network_traffic,
                )
                try:
                    await self._traverse(page, job, controller, context, token, result)
                finally:
                    try:
                        await page.close()
                    except Exception as e:
                        logger.debug(f"Error closing page: {e}")

                if job.capture_network_traffic:
                    result.network_requests = [
                        f"{request['resource_type']}: {request['url']}"
                        for request in session.network_requests
                    ]
        except CrawlAborted as e:
            logger.warning(f"Crawl of {job.root_url} aborted: {e}")
            result.success = False
            result.aborted = True
            result.error = str(e)
        except Exception as e:
            logger.error(f"Crawl of {job.root_url} failed: {e}")
            result.success = False
            result.error = str(e)

        result.visited_urls = list(context.order)
        logger.info(
            f"Crawl of {job.root_url} finished: {len(context.visited)} pages, "
            f"{len(result.page_errors)} errors, {time.time() - start_time:.2f}s"
        )
        return result

    async def _traverse(
        self,
        page,
        job: CrawlJob,
        controller: NavigationController,
        context: TraversalContext,
        token: CancellationToken,
        result: CrawlResult,
    ) -> None:
        frontier = Frontier(job.strategy)
        frontier.push(FrontierEntry(url=normalize_url(job.root_url), depth=0))
        texts: List[str] = []
        markdowns: List[str] = []

        while frontier and not context.exhausted:
            token.raise_if_cancelled()
            entry = frontier.pop()
            if not context.mark_visited(entry.url):
                continue
            is_root = entry.parent_url is None

            try:
                extract = await self._visit(page, entry, job, controller, token, result)
            except CrawlAborted:
                raise
            except Exception as e:
                if isinstance(e, NavigationError):
                    message, category = str(e), e.category.value
                else:
                    message, category = str(e), classify_error(str(e)).value

                if is_root:
                    logger.error(f"Root page {entry.url} failed: {message}")
                    result.error = message
                    result.text = f"Failed to crawl {entry.url}: {message}"
                    result.markdown = f"# Error\n\n{message}"
                    return

                logger.warning(f"Skipping {entry.url} (depth {entry.depth}): {message}")
                result.page_errors.append(PageError(
                    url=entry.url, depth=entry.depth, message=message, category=category,
                ))
                continue

            if is_root:
                result.success = True

            text = extract.text
            search = None
            if job.query:
                search = search_in_content(text, job.query)
                if search.matches:
                    text = search.summary

            result.pages.append(summarize_page(entry, extract, job.query, search))
            texts.append(text)
            markdowns.append(extract.markdown)
            result.tables.extend(extract.tables)
            result.images.extend(extract.images)
            logger.info(f"Crawled {entry.url} (depth {entry.depth}, {len(context.visited)}/{job.max_pages})")

            if entry.depth < job.max_depth:
                candidates = self.select_links(extract, entry.url, job, context, frontier)
                frontier.extend(
                    FrontierEntry(
                        url=link.url,
                        depth=entry.depth + 1,
                        parent_url=entry.url,
                        score=link.relevance,
                    )
                    for link in candidates
                )

        result.text = "\n\n".join(texts)
        result.markdown = "\n\n".join(markdowns)

    async def _visit(
        self,
        page,
        entry: FrontierEntry,
        job: CrawlJob,
        controller: NavigationController,
        token: CancellationToken,
        result: CrawlResult,
    ) -> PageExtract:
        await controller.navigate_with_retry(
            page,
            entry.url,
            token,
            policy=job.retry,
            simple_fallback=job.dynamic_content.enable_simple_fallback,
            fallback_timeout_ms=job.dynamic_content.simple_fallback_timeout_ms,
        )
        await self._settle(page, job, controller, token)

        if job.wait_time_ms:
            await token.sleep(job.wait_time_ms / 1000)

        html = await token.race(page.content())
        base_url = page.url if isinstance(getattr(page, "url", None), str) and page.url else entry.url
        extract = extract_page(html, base_url, include_images=job.include_images)

        if job.capture_screenshots:
            path = await self._screenshot(page, entry.url, token)
            if path:
                result.screenshots.append(path)

        return extract

    async def _settle(
        self,
        page,
        job: CrawlJob,
        controller: NavigationController,
        token: CancellationToken,
    ) -> None:
        config = job.dynamic_content

        if job.enable_smart_waiting:
            try:
                traits = await controller.collect_traits(page, token)
            except CrawlAborted:
                raise
            except Exception as e:
                logger.debug(f"Could not read page signals: {e}")
                traits = None

            if traits is not None:
                if traits.has_infinite_scroll:
                    await controller.expand_infinite_scroll(page, token)
                if traits.has_lazy_images:
                    await controller.trigger_lazy_images(page, token)
                config = plan_dynamic_wait(traits, config)

        await controller.wait_for_dynamic_content(page, config, token)

    def select_links(
        self,
        extract: PageExtract,
        page_url: str,
        job: CrawlJob,
        context: TraversalContext,
        frontier: Frontier,
    ) -> List[PageLink]:
        """
        Score, order and cap the links of one page.

        Links already visited or queued are dropped, as are links to other
        origins unless the job follows external links.

        Returns:
            At most ``min(10, remaining budget)`` links in strategy order
        """
        seen = set()
        candidates: List[PageLink] = []

        for link in extract.links:
            url = normalize_url(link.url)
            if url in seen or url == page_url:
                continue
            seen.add(url)
            if context.is_visited(url) or url in frontier:
                continue
            if not job.follow_external_links and not same_origin(url, job.root_url):
                continue

            score = calculate_link_relevance(link.text, extract.text) + query_boost(link.text, job.query)
            if score < job.relevance_threshold:
                continue
            candidates.append(PageLink(url=url, text=link.text, relevance=score))

        limit = min(MAX_LINKS_PER_PAGE, context.remaining_budget)
        return order_links(candidates, job.strategy)[:limit]

    async def _screenshot(self, page, url: str, token: CancellationToken) -> Optional[str]:
        directory = Path(self.browser_config.screenshot_dir)
        name = hashlib.md5(url.encode()).hexdigest()[:12]
        path = directory / f"screenshot-{name}-{int(time.time() * 1000)}.png"
        try:
            directory.mkdir(parents=True, exist_ok=True)
            await token.race(page.screenshot(path=str(path), full_page=True))
        except CrawlAborted:
            raise
        except Exception as e:
            logger.warning(f"Screenshot failed for {url}: {e}")
            return None
        return str(path)
