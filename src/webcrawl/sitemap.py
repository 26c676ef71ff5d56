"""
Sitemap generation: breadth-first discovery of a site's page hierarchy.

Unlike the content crawl, nothing is merged; every URL seen becomes a
SitemapEntry with a status, and parent->child edges form the hierarchy.
"""
import logging
import time
from typing import Callable, Optional

from .browser import BrowserSession
from .browser_config import BrowserConfig
from .cancellation import CancellationToken
from .errors import CrawlAborted
from .extraction import extract_page
from .frontier import Frontier, FrontierEntry, TraversalContext, normalize_url, origin, same_origin
from .models import (
    CrawlStrategy,
    SitemapEntry,
    SitemapJob,
    SitemapResult,
    SitemapStatistics,
    SitemapStatus,
)
from .navigation import NavigationController

logger = logging.getLogger(__name__)

SITEMAP_HEADING_LEVELS = ("h1", "h2", "h3")


class SitemapBuilder:
    """
    Build a sitemap for a site.

    Each queued URL gets a fresh page in the job's browser session, so a
    page that crashes or hangs cannot poison the rest of the run.
    """

    def __init__(
        self,
        browser_config: Optional[BrowserConfig] = None,
        session_factory: Optional[Callable[[BrowserConfig], BrowserSession]] = None,
        controller: Optional[NavigationController] = None,
    ):
        self.browser_config = browser_config or BrowserConfig()
        self._session_factory = session_factory or BrowserSession
        self._controller = controller

    async def generate_sitemap(
        self, job: SitemapJob, token: Optional[CancellationToken] = None
    ) -> SitemapResult:
        """
        Discover pages from ``job.root_url`` in FIFO order.

        Args:
            job: Root URL, budgets and filters
            token: Cancellation token; a private one is used when omitted

        Returns:
            SitemapResult with entries, hierarchy and statistics. Entries
            gathered before a cancellation or setup failure are kept.
        """
        token = token or CancellationToken()
        controller = self._controller or NavigationController(job.retry)
        result = SitemapResult(success=False, url=job.root_url, base_url=origin(job.root_url))
        stats = SitemapStatistics()
        start_time = time.time()

        logger.info(f"Generating sitemap for {job.root_url} (max_pages={job.max_pages}, max_depth={job.max_depth})")

        try:
            token.raise_if_cancelled()
            async with self._session_factory(self.browser_config) as session:
                session.bind(token)
                await self._run(session, job, controller, token, result, stats)
            result.success = True
        except CrawlAborted as e:
            logger.warning(f"Sitemap generation for {job.root_url} aborted: {e}")
            result.aborted = True
            result.error = str(e)
        except Exception as e:
            logger.error(f"Sitemap generation for {job.root_url} failed: {e}")
            result.error = str(e)

        stats.total_pages = len(result.entries)
        stats.successful_pages = sum(1 for e in result.entries if e.status == SitemapStatus.CRAWLED)
        stats.error_pages = sum(1 for e in result.entries if e.status == SitemapStatus.ERROR)
        stats.duration_ms = int((time.time() - start_time) * 1000)
        result.statistics = stats

        logger.info(
            f"Sitemap for {job.root_url}: {stats.total_pages} entries, "
            f"{stats.successful_pages} crawled, {stats.error_pages} errors, "
            f"{stats.external_links} external"
        )
        return result

    async def _run(
        self,
        session: BrowserSession,
        job: SitemapJob,
        controller: NavigationController,
        token: CancellationToken,
        result: SitemapResult,
        stats: SitemapStatistics,
    ) -> None:
        context = TraversalContext(max_pages=job.max_pages)
        queue = Frontier(CrawlStrategy.BFS)
        queue.push(FrontierEntry(url=normalize_url(job.root_url), depth=0))

        while queue and not context.exhausted:
            token.raise_if_cancelled()
            item = queue.pop()
            if not context.mark_visited(item.url):
                continue
            stats.max_depth_reached = max(stats.max_depth_reached, item.depth)

            if item.parent_url is not None:
                children = result.hierarchy.setdefault(item.parent_url, [])
                if item.url not in children:
                    children.append(item.url)

            if any(pattern in item.url for pattern in job.exclude_patterns):
                logger.debug(f"Excluded: {item.url}")
                result.entries.append(SitemapEntry(
                    url=item.url, depth=item.depth, parent_url=item.parent_url, status=SitemapStatus.EXCLUDED,
                ))
                continue

            internal = same_origin(item.url, job.root_url)
            if not internal:
                stats.external_links += 1
                if not job.include_external_links:
                    result.entries.append(SitemapEntry(
                        url=item.url, depth=item.depth, parent_url=item.parent_url, status=SitemapStatus.EXTERNAL,
                    ))
                    continue

            entry, links = await self._visit(session, item, job, controller, token)
            result.entries.append(entry)

            # External pages are recorded but never expanded
            if entry.status != SitemapStatus.CRAWLED or not internal or item.depth >= job.max_depth:
                continue

            for url in links:
                if context.is_visited(url) or url in queue:
                    continue
                if len(queue) + len(context.visited) >= job.max_pages:
                    break
                queue.push(FrontierEntry(url=url, depth=item.depth + 1, parent_url=item.url))

    async def _visit(self, session, item: FrontierEntry, job: SitemapJob, controller, token):
        page = await session.new_page()
        try:
            outcome = await controller.navigate_with_retry(page, item.url, token, policy=job.retry)
            html = await token.race(page.content())
            extract = extract_page(html, item.url)
        except CrawlAborted:
            raise
        except Exception as e:
            logger.warning(f"Sitemap page {item.url} failed: {e}")
            entry = SitemapEntry(
                url=item.url, depth=item.depth, parent_url=item.parent_url,
                status=SitemapStatus.ERROR, error=str(e),
            )
            return entry, []
        finally:
            try:
                await page.close()
            except Exception as e:
                logger.debug(f"Error closing page: {e}")

        headers = {key.lower(): value for key, value in outcome.headers.items()}
        headings = None
        if job.include_metadata:
            headings = {level: extract.heading_levels.get(level, []) for level in SITEMAP_HEADING_LEVELS}
        entry = SitemapEntry(
            url=item.url,
            depth=item.depth,
            parent_url=item.parent_url,
            status=SitemapStatus.CRAWLED,
            title=extract.title or None,
            description=extract.description,
            word_count=len(extract.text.split()),
            headings=headings,
            content_type=headers.get("content-type"),
            last_modified=headers.get("last-modified"),
        )
        logger.info(f"Sitemap crawled {item.url} (depth {item.depth})")

        links = []
        for link in extract.links:
            url = normalize_url(link.url)
            if url != item.url and url not in links:
                links.append(url)
        return entry, links
