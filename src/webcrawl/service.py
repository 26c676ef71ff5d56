"""
Service facade over the crawl engines.

CrawlService is what a request layer talks to: it gives every job its own
cancellation token, keeps the token registered under the job id while the
job runs, and lets any caller abort a job by id.
"""
import logging
import uuid
from typing import Dict, List, Optional, Tuple

from .browser_config import BrowserConfig
from .cancellation import CancellationToken
from .links import LinkExtractor
from .models import (
    ContentSearchResult,
    CrawlJob,
    CrawlResult,
    LinkExtractionResult,
    LinkSortOrder,
    PageSearchResult,
    SitemapJob,
    SitemapResult,
    SmartCrawlJob,
    SmartCrawlResult,
)
from .page_search import PageSearcher
from .relevance import MAX_MATCHES, search_in_content
from .sitemap import SitemapBuilder
from .smart_crawl import SmartCrawler
from .traversal import ContentCrawler

logger = logging.getLogger(__name__)


class CrawlService:
    """
    Run crawl jobs and track them for cancellation.

    Usage:
        service = CrawlService()
        result = await service.execute_crawl(job, job_id="job-1")
        # elsewhere, while it runs:
        service.abort("job-1")
    """

    def __init__(
        self,
        browser_config: Optional[BrowserConfig] = None,
        crawler: Optional[ContentCrawler] = None,
        sitemap_builder: Optional[SitemapBuilder] = None,
        link_extractor: Optional[LinkExtractor] = None,
        page_searcher: Optional[PageSearcher] = None,
        smart_crawler: Optional[SmartCrawler] = None,
    ):
        config = browser_config or BrowserConfig()
        self.crawler = crawler or ContentCrawler(config)
        self.sitemap_builder = sitemap_builder or SitemapBuilder(config)
        self.link_extractor = link_extractor or LinkExtractor(config)
        self.page_searcher = page_searcher or PageSearcher(config)
        self.smart_crawler = smart_crawler or SmartCrawler(self.crawler)
        self._tokens: Dict[str, CancellationToken] = {}

    def _register(self, job_id: Optional[str]) -> Tuple[str, CancellationToken]:
        job_id = job_id or uuid.uuid4().hex
        if job_id in self._tokens:
            raise ValueError(f"Job {job_id} is already running")
        token = CancellationToken()
        self._tokens[job_id] = token
        return job_id, token

    def _release(self, job_id: str) -> None:
        self._tokens.pop(job_id, None)

    def active_jobs(self) -> List[str]:
        return list(self._tokens)

    def abort(self, job_id: str, reason: str = "Operation aborted") -> bool:
        """
        Cancel a running job.

        Returns:
            True if the job was running and had not been cancelled yet
        """
        token = self._tokens.get(job_id)
        if token is None:
            logger.warning(f"Abort requested for unknown job {job_id}")
            return False
        logger.info(f"Aborting job {job_id}")
        return token.cancel(reason)

    async def execute_crawl(self, job: CrawlJob, job_id: Optional[str] = None) -> CrawlResult:
        job_id, token = self._register(job_id)
        try:
            return await self.crawler.crawl(job, token)
        finally:
            self._release(job_id)

    async def generate_sitemap(self, job: SitemapJob, job_id: Optional[str] = None) -> SitemapResult:
        job_id, token = self._register(job_id)
        try:
            return await self.sitemap_builder.generate_sitemap(job, token)
        finally:
            self._release(job_id)

    async def extract_internal_links(
        self,
        url: str,
        include_fragments: bool = True,
        include_query_params: bool = True,
        categorize: bool = True,
        max_links: int = 100,
        include_external: bool = False,
        sort_by: LinkSortOrder = "document",
        job_id: Optional[str] = None,
    ) -> LinkExtractionResult:
        job_id, token = self._register(job_id)
        try:
            return await self.link_extractor.extract_internal_links(
                url,
                include_fragments=include_fragments,
                include_query_params=include_query_params,
                categorize=categorize,
                max_links=max_links,
                include_external=include_external,
                sort_by=sort_by,
                token=token,
            )
        finally:
            self._release(job_id)

    def search_in_content(self, text: str, query: str) -> ContentSearchResult:
        return search_in_content(text, query)

    async def search_in_page(
        self,
        url: str,
        query: str,
        max_results: int = MAX_MATCHES,
        wait_time_ms: int = 1000,
        job_id: Optional[str] = None,
    ) -> PageSearchResult:
        job_id, token = self._register(job_id)
        try:
            return await self.page_searcher.search_in_page(
                url, query, max_results=max_results, wait_time_ms=wait_time_ms, token=token,
            )
        finally:
            self._release(job_id)

    async def smart_crawl(self, job: SmartCrawlJob, job_id: Optional[str] = None) -> SmartCrawlResult:
        job_id, token = self._register(job_id)
        try:
            return await self.smart_crawler.smart_crawl(job, token)
        finally:
            self._release(job_id)
