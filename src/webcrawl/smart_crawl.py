"""
Query-driven crawl that reports the most relevant pages.

A smart crawl is a best-first content crawl steered by the query. Every
visited page is scored by query density; pages at or above the job's
threshold come back best first with a preview and key findings.
"""
import logging
import time
from typing import List, Optional

from .cancellation import CancellationToken
from .models import PageSummary, SmartCrawlJob, SmartCrawlResult
from .traversal import ContentCrawler

logger = logging.getLogger(__name__)


def overall_summary(relevant: List[PageSummary], visited: int) -> str:
    if not relevant:
        return f"No relevant pages found out of {visited} visited pages."
    average = sum(page.relevance_score or 0.0 for page in relevant) / len(relevant)
    return (
        f"Found {len(relevant)} relevant pages out of {visited} visited. "
        f"Average relevance score: {average:.2f}"
    )


class SmartCrawler:
    """
    Rank the pages of a site against a query.

    Usage:
        crawler = SmartCrawler()
        result = await crawler.smart_crawl(SmartCrawlJob(root_url=url, query="pricing"))
    """

    def __init__(self, crawler: Optional[ContentCrawler] = None):
        self.crawler = crawler or ContentCrawler()

    async def smart_crawl(
        self, job: SmartCrawlJob, token: Optional[CancellationToken] = None
    ) -> SmartCrawlResult:
        """
        Crawl best-first and keep the pages that clear the threshold.

        Args:
            job: Root URL, query, budgets and relevance threshold
            token: Cancellation token; a private one is used when omitted

        Returns:
            SmartCrawlResult. Pages ranked before a cancellation are kept.
        """
        start_time = time.time()
        logger.info(f"Starting smart crawl of {job.root_url} for {job.query!r}")

        crawl = await self.crawler.crawl(job.to_crawl_job(), token)

        relevant = [
            page for page in crawl.pages
            if page.relevance_score is not None and page.relevance_score >= job.relevance_threshold
        ]
        relevant.sort(key=lambda page: page.relevance_score, reverse=True)

        result = SmartCrawlResult(
            success=crawl.success,
            url=job.root_url,
            query=job.query,
            relevant_pages=relevant,
            pages_visited=len(crawl.visited_urls),
            error=crawl.error,
            aborted=crawl.aborted,
        )
        if crawl.aborted:
            result.overall_summary = "Operation aborted"
        elif not crawl.success:
            result.overall_summary = "Smart crawl failed"
        else:
            result.overall_summary = overall_summary(relevant, result.pages_visited)

        result.processing_time_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Smart crawl of {job.root_url} finished: {len(relevant)} relevant of "
            f"{result.pages_visited} visited"
        )
        return result
