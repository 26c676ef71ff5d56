"""Browser-driven web crawler: content crawls, sitemaps and relevance search."""

__version__ = "0.1.0"

from webcrawl.browser import BrowserSession
from webcrawl.browser_config import BrowserConfig, DEFAULT_CONFIG, FAST_CONFIG, DEBUG_CONFIG
from webcrawl.cancellation import CancellationToken
from webcrawl.errors import CrawlAborted, ErrorCategory, NavigationError, classify_error, describe_error
from webcrawl.links import LinkExtractor
from webcrawl.models import (
    ContentSearchResult,
    CrawlJob,
    CrawlResult,
    CrawlStrategy,
    DynamicContentConfig,
    LinkExtractionResult,
    NavigationOutcome,
    PageExtract,
    PageSearchResult,
    PageSummary,
    RetryPolicy,
    SitemapEntry,
    SitemapJob,
    SitemapResult,
    SitemapStatus,
    SmartCrawlJob,
    SmartCrawlResult,
)
from webcrawl.navigation import NavigationController
from webcrawl.page_search import PageSearcher
from webcrawl.relevance import calculate_link_relevance, score_page, search_in_content
from webcrawl.service import CrawlService
from webcrawl.sitemap import SitemapBuilder
from webcrawl.smart_crawl import SmartCrawler
from webcrawl.traversal import ContentCrawler

__all__ = [
    "BrowserConfig",
    "BrowserSession",
    "CancellationToken",
    "ContentCrawler",
    "ContentSearchResult",
    "CrawlAborted",
    "CrawlJob",
    "CrawlResult",
    "CrawlService",
    "CrawlStrategy",
    "DEBUG_CONFIG",
    "DEFAULT_CONFIG",
    "DynamicContentConfig",
    "ErrorCategory",
    "FAST_CONFIG",
    "LinkExtractionResult",
    "LinkExtractor",
    "NavigationController",
    "NavigationError",
    "NavigationOutcome",
    "PageExtract",
    "PageSearchResult",
    "PageSearcher",
    "PageSummary",
    "RetryPolicy",
    "SitemapBuilder",
    "SitemapEntry",
    "SitemapJob",
    "SitemapResult",
    "SitemapStatus",
    "SmartCrawlJob",
    "SmartCrawlResult",
    "SmartCrawler",
    "calculate_link_relevance",
    "classify_error",
    "describe_error",
    "score_page",
    "search_in_content",
]
