"""Tests for the CrawlService facade."""

import asyncio

import pytest

pytest_plugins = ('pytest_asyncio',)

from fakes import NO_WAITS, SINGLE_ATTEMPT, FakeSession, FakeSite, html_page, quick_job, quick_sitemap_job
from webcrawl.links import LinkExtractor
from webcrawl.models import SmartCrawlJob
from webcrawl.navigation import NavigationController
from webcrawl.page_search import PageSearcher
from webcrawl.service import CrawlService
from webcrawl.sitemap import SitemapBuilder
from webcrawl.traversal import ContentCrawler

ROOT = "https://example.com"


def service_for(site: FakeSite) -> CrawlService:
    session = FakeSession(site)
    return CrawlService(
        crawler=ContentCrawler(session_factory=session.factory),
        sitemap_builder=SitemapBuilder(session_factory=session.factory),
        link_extractor=LinkExtractor(session_factory=session.factory),
        page_searcher=PageSearcher(
            session_factory=session.factory, controller=NavigationController(SINGLE_ATTEMPT)
        ),
    )


class TestCrawlService:
    """Job registry and cancellation by id."""

    @pytest.mark.asyncio
    async def test_execute_crawl(self):
        service = service_for(FakeSite({ROOT: html_page("Home")}))
        result = await service.execute_crawl(quick_job(), job_id="job-1")

        assert result.success is True
        assert service.active_jobs() == []

    @pytest.mark.asyncio
    async def test_generate_sitemap(self):
        service = service_for(FakeSite({ROOT: html_page("Home")}))
        result = await service.generate_sitemap(quick_sitemap_job())

        assert result.success is True
        assert len(result.entries) == 1

    @pytest.mark.asyncio
    async def test_extract_internal_links(self):
        service = service_for(FakeSite({ROOT: html_page("Home", links=["/a"])}))
        result = await service.extract_internal_links(ROOT)

        assert result.success is True
        assert [link.url for link in result.links] == [f"{ROOT}/a"]

    @pytest.mark.asyncio
    async def test_extract_internal_links_sorted(self):
        site = FakeSite({ROOT: html_page("Home", links=["/b", "/a", "https://other.org/x"])})
        service = service_for(site)

        result = await service.extract_internal_links(ROOT, include_external=True, sort_by="url")

        assert [link.url for link in result.links] == [f"{ROOT}/a", f"{ROOT}/b", "https://other.org/x"]
        assert result.external_links == 1
        assert result.internal_links == 2

    @pytest.mark.asyncio
    async def test_search_in_page(self):
        body = "Requests are throttled by a rate limit."
        service = service_for(FakeSite({ROOT: html_page("Limits", body)}))

        result = await service.search_in_page(ROOT, "rate limit", wait_time_ms=0, job_id="search-1")

        assert result.success is True
        assert result.total_matches == 1
        assert service.active_jobs() == []

    @pytest.mark.asyncio
    async def test_smart_crawl(self):
        site = FakeSite({
            ROOT: html_page("Home", links=["/pricing"]),
            f"{ROOT}/pricing": html_page("Pricing", "Pricing for teams and pricing for schools."),
        })
        service = service_for(site)
        job = SmartCrawlJob(
            root_url=ROOT,
            query="pricing",
            max_depth=1,
            wait_time_ms=0,
            enable_smart_waiting=False,
            dynamic_content=NO_WAITS,
            retry=SINGLE_ATTEMPT,
        )

        result = await service.smart_crawl(job, job_id="smart-1")

        assert result.success is True
        assert result.pages_visited == 2
        assert result.relevant_pages[0].url == f"{ROOT}/pricing"
        assert service.active_jobs() == []

    @pytest.mark.asyncio
    async def test_abort_running_job(self):
        site = FakeSite({ROOT: html_page("Home")})
        site.goto_delay = 10
        service = service_for(site)

        task = asyncio.ensure_future(service.execute_crawl(quick_job(), job_id="job-1"))
        await asyncio.sleep(0.05)
        assert service.active_jobs() == ["job-1"]

        assert service.abort("job-1") is True
        result = await asyncio.wait_for(task, timeout=2)

        assert result.aborted is True
        assert result.success is False
        assert service.active_jobs() == []

    @pytest.mark.asyncio
    async def test_duplicate_job_id_rejected(self):
        site = FakeSite({ROOT: html_page("Home")})
        site.goto_delay = 10
        service = service_for(site)

        task = asyncio.ensure_future(service.execute_crawl(quick_job(), job_id="job-1"))
        await asyncio.sleep(0.01)
        with pytest.raises(ValueError):
            await service.execute_crawl(quick_job(), job_id="job-1")

        service.abort("job-1")
        await task

    def test_abort_unknown_job(self):
        assert CrawlService().abort("missing") is False

    def test_search_in_content(self):
        result = CrawlService().search_in_content("Crawlers fetch many pages quickly.", "pages")
        assert len(result.matches) == 1
