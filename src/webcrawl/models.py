"""Data models for crawl jobs and their results.

Job descriptions are validated Pydantic models and stay frozen for the
lifetime of a job. Results are plain dataclasses built up while a crawl
runs and handed back to the caller.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CrawlStrategy(str, Enum):
    """How the frontier is ordered during a content crawl."""

    BFS = "bfs"
    DFS = "dfs"
    BEST_FIRST = "bestFirst"


class SitemapStatus(str, Enum):
    """Classification of a single sitemap entry."""

    CRAWLED = "crawled"
    ERROR = "error"
    EXCLUDED = "excluded"
    EXTERNAL = "external"


def _require_absolute_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError(f"root_url must be an absolute http(s) URL, got {value!r}")
    return value


# =============================================================================
# Job configuration
# =============================================================================

class DynamicContentConfig(BaseModel):
    """Settings for waiting on client-rendered content after navigation."""

    model_config = ConfigDict(frozen=True)

    max_wait_time_ms: int = Field(
        default=15000,
        ge=0,
        description="Overall budget shared by every enabled wait strategy",
    )
    detect_dom_mutations: bool = Field(
        default=True,
        description="Wait until the DOM stops changing",
    )
    wait_for_selectors: List[str] = Field(
        default_factory=list,
        description="CSS selectors expected to appear once content is rendered",
    )
    detect_js_frameworks: bool = Field(
        default=True,
        description="Poll framework readiness and loading indicators",
    )
    wait_for_network_idle: bool = Field(
        default=True,
        description="Wait for request/response activity to go quiet",
    )
    custom_content_check: Optional[str] = Field(
        default=None,
        description="JavaScript function source evaluated until it returns truthy",
    )
    enable_simple_fallback: bool = Field(
        default=True,
        description="Try one relaxed navigation after the retry pipeline is exhausted",
    )
    simple_fallback_timeout_ms: int = Field(
        default=30000,
        ge=1000,
        description="Timeout of the relaxed fallback navigation",
    )


class RetryPolicy(BaseModel):
    """Attempt, timeout and backoff schedule for navigation."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=4, ge=1)
    light_wait_attempts: int = Field(
        default=2,
        ge=0,
        description="Attempts that wait for DOM ready before switching to network idle",
    )
    base_timeout_ms: int = Field(default=30000, ge=1)
    timeout_step_ms: int = Field(default=15000, ge=0)
    max_timeout_ms: int = Field(default=60000, ge=1)
    backoff_ms: int = Field(default=2000, ge=0)
    max_backoff_ms: int = Field(default=8000, ge=0)

    def wait_until(self, attempt: int) -> str:
        """Load state to wait for on the given (1-based) attempt."""
        return "domcontentloaded" if attempt <= self.light_wait_attempts else "networkidle"

    def timeout_ms(self, attempt: int) -> int:
        """Navigation timeout for the given attempt, escalating then capped."""
        return min(self.base_timeout_ms + (attempt - 1) * self.timeout_step_ms, self.max_timeout_ms)

    def backoff_delay_ms(self, attempt: int) -> int:
        """Delay after a failed attempt before the next one."""
        return min(self.backoff_ms * attempt, self.max_backoff_ms)


class CrawlJob(BaseModel):
    """A content crawl request. Immutable once constructed."""

    model_config = ConfigDict(frozen=True)

    root_url: str
    max_pages: int = Field(default=10, ge=1)
    max_depth: int = Field(default=3, ge=0)
    strategy: CrawlStrategy = CrawlStrategy.BFS
    query: Optional[str] = None
    wait_time_ms: int = Field(default=1000, ge=0)
    include_images: bool = False
    follow_external_links: bool = False
    capture_screenshots: bool = False
    capture_network_traffic: bool = False
    enable_smart_waiting: bool = True
    relevance_threshold: float = Field(
        default=0.0,
        description="Candidate links scoring below this are not queued",
    )
    dynamic_content: DynamicContentConfig = Field(default_factory=DynamicContentConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("root_url")
    @classmethod
    def _check_root_url(cls, value: str) -> str:
        return _require_absolute_url(value)


class SitemapJob(BaseModel):
    """A sitemap generation request."""

    model_config = ConfigDict(frozen=True)

    root_url: str
    max_pages: int = Field(default=50, ge=1)
    max_depth: int = Field(default=2, ge=0)
    include_external_links: bool = False
    exclude_patterns: List[str] = Field(default_factory=list)
    include_metadata: bool = True
    retry: RetryPolicy = Field(
        default_factory=lambda: RetryPolicy(max_attempts=1, light_wait_attempts=1)
    )

    @field_validator("root_url")
    @classmethod
    def _check_root_url(cls, value: str) -> str:
        return _require_absolute_url(value)


class SmartCrawlJob(BaseModel):
    """A query-driven crawl that reports the pages most relevant to the query."""

    model_config = ConfigDict(frozen=True)

    root_url: str
    query: str = Field(min_length=1)
    max_pages: int = Field(default=5, ge=1)
    max_depth: int = Field(default=2, ge=0)
    relevance_threshold: float = Field(
        default=2.0,
        ge=0,
        description="Pages whose query density score is below this are left out",
    )
    wait_time_ms: int = Field(default=1000, ge=0)
    enable_smart_waiting: bool = True
    dynamic_content: DynamicContentConfig = Field(default_factory=DynamicContentConfig)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @field_validator("root_url")
    @classmethod
    def _check_root_url(cls, value: str) -> str:
        return _require_absolute_url(value)

    def to_crawl_job(self) -> CrawlJob:
        """Best-first content crawl steered by the query."""
        return CrawlJob(
            root_url=self.root_url,
            max_pages=self.max_pages,
            max_depth=self.max_depth,
            strategy=CrawlStrategy.BEST_FIRST,
            query=self.query,
            wait_time_ms=self.wait_time_ms,
            enable_smart_waiting=self.enable_smart_waiting,
            dynamic_content=self.dynamic_content,
            retry=self.retry,
        )


# =============================================================================
# Navigation and extraction
# =============================================================================

@dataclass
class NavigationOutcome:
    """Result of driving a page to a URL."""

    succeeded: bool
    url: str
    http_status: Optional[int] = None
    error_category: Optional[str] = None
    attempts: int = 0
    used_fallback: bool = False
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class PageLink:
    """An anchor discovered on a page, with its relevance score."""

    url: str
    text: str
    relevance: float = 1.0


@dataclass
class PageExtract:
    """Structured content extracted from one rendered page."""

    url: str
    text: str = ""
    headings: List[str] = field(default_factory=list)
    heading_levels: Dict[str, List[str]] = field(default_factory=dict)
    links: List[PageLink] = field(default_factory=list)
    title: str = ""
    description: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    tables: List[Dict[str, Any]] = field(default_factory=list)
    images: List[Dict[str, str]] = field(default_factory=list)
    markdown: str = ""

    @property
    def metadata(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "keywords": self.keywords,
        }


@dataclass
class PageError:
    """A page that failed during traversal and was skipped."""

    url: str
    depth: int
    message: str
    category: Optional[str] = None


@dataclass
class PageSummary:
    """What one visited page contributed to a content crawl."""

    url: str
    depth: int
    title: str = ""
    summary: str = ""
    relevance_score: Optional[float] = None
    key_findings: List[str] = field(default_factory=list)


@dataclass
class CrawlResult:
    """Aggregate outcome of a content crawl."""

    success: bool
    url: str
    text: str = ""
    markdown: str = ""
    tables: List[Dict[str, Any]] = field(default_factory=list)
    images: List[Dict[str, str]] = field(default_factory=list)
    error: Optional[str] = None
    aborted: bool = False
    visited_urls: List[str] = field(default_factory=list)
    page_errors: List[PageError] = field(default_factory=list)
    screenshots: List[str] = field(default_factory=list)
    network_requests: List[str] = field(default_factory=list)
    pages: List[PageSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# Sitemap
# =============================================================================

@dataclass
class SitemapEntry:
    """One URL seen while building a sitemap."""

    url: str
    depth: int
    status: SitemapStatus
    parent_url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    word_count: Optional[int] = None
    headings: Optional[Dict[str, List[str]]] = None
    content_type: Optional[str] = None
    last_modified: Optional[str] = None
    error: Optional[str] = None


@dataclass
class SitemapStatistics:
    total_pages: int = 0
    successful_pages: int = 0
    error_pages: int = 0
    external_links: int = 0
    max_depth_reached: int = 0
    duration_ms: int = 0


@dataclass
class SitemapResult:
    """Entries, parent->children hierarchy and statistics of a sitemap run."""

    success: bool
    url: str
    base_url: str
    entries: List[SitemapEntry] = field(default_factory=list)
    hierarchy: Dict[str, List[str]] = field(default_factory=dict)
    statistics: SitemapStatistics = field(default_factory=SitemapStatistics)
    crawl_timestamp: str = field(default_factory=lambda: datetime.now().isoformat())
    error: Optional[str] = None
    aborted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for entry in data["entries"]:
            entry["status"] = SitemapStatus(entry["status"]).value
        return data


# =============================================================================
# Relevance search and link extraction
# =============================================================================

@dataclass
class SearchMatch:
    snippet: str
    position: int
    relevance: float


@dataclass
class ContentSearchResult:
    """Matches of a query inside a text, best first."""

    matches: List[SearchMatch] = field(default_factory=list)
    summary: str = ""


LinkType = Literal["navigation", "content", "media", "form", "other"]
LinkSortOrder = Literal["document", "url", "text", "relevance"]


@dataclass
class InternalLink:
    url: str
    text: str
    type: LinkType
    depth: int
    title: Optional[str] = None
    section: Optional[str] = None
    is_external: bool = False
    relevance: Optional[float] = None


@dataclass
class LinkExtractionResult:
    """Links found on a single page."""

    success: bool
    url: str
    base_url: str
    links: List[InternalLink] = field(default_factory=list)
    links_by_type: Optional[Dict[str, int]] = None
    internal_links: int = 0
    external_links: int = 0
    page_title: Optional[str] = None
    error: Optional[str] = None
    aborted: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PageSearchResult:
    """Matches of a query inside one live page."""

    success: bool
    url: str
    query: str
    matches: List[SearchMatch] = field(default_factory=list)
    summary: str = ""
    total_matches: int = 0
    page_title: Optional[str] = None
    error: Optional[str] = None
    aborted: bool = False
    processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SmartCrawlResult:
    """Pages of a query-driven crawl that cleared the relevance threshold."""

    success: bool
    url: str
    query: str
    relevant_pages: List[PageSummary] = field(default_factory=list)
    overall_summary: str = ""
    pages_visited: int = 0
    error: Optional[str] = None
    aborted: bool = False
    processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
