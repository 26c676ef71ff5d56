"""Tests for retrying navigation and dynamic-content waiting."""

import asyncio
import time
from unittest.mock import AsyncMock, MagicMock

import pytest

pytest_plugins = ('pytest_asyncio',)

from fakes import FakePage, FakeResponse, FakeSite
from webcrawl import navigation
from webcrawl.cancellation import CancellationToken
from webcrawl.errors import CrawlAborted, ErrorCategory, NavigationError
from webcrawl.models import DynamicContentConfig, RetryPolicy
from webcrawl.navigation import NavigationController

URL = "https://example.com"

NO_BACKOFF = RetryPolicy(backoff_ms=0)


def mock_page(*goto_results):
    page = MagicMock()
    page.goto = AsyncMock(side_effect=list(goto_results))
    return page


def only(**flags) -> DynamicContentConfig:
    """Config with every strategy off except the ones given."""
    params = dict(
        max_wait_time_ms=2000,
        detect_dom_mutations=False,
        detect_js_frameworks=False,
        wait_for_network_idle=False,
    )
    params.update(flags)
    return DynamicContentConfig(**params)


# =============================================================================
# Retry policy
# =============================================================================

class TestRetryPolicy:
    """Escalation schedule of the default policy."""

    def test_wait_condition_escalates(self):
        policy = RetryPolicy()
        assert [policy.wait_until(a) for a in (1, 2, 3, 4)] == [
            "domcontentloaded", "domcontentloaded", "networkidle", "networkidle",
        ]

    def test_timeout_escalates_then_caps(self):
        policy = RetryPolicy()
        assert [policy.timeout_ms(a) for a in (1, 2, 3, 4)] == [30000, 45000, 60000, 60000]

    def test_backoff_is_capped(self):
        policy = RetryPolicy()
        assert [policy.backoff_delay_ms(a) for a in (1, 2, 3, 4, 5)] == [2000, 4000, 6000, 8000, 8000]


# =============================================================================
# navigate_with_retry
# =============================================================================

class TestNavigateWithRetry:
    """Retrying navigation."""

    @pytest.mark.asyncio
    async def test_fails_twice_then_succeeds(self):
        """Two failures then a success take exactly three attempts."""
        page = mock_page(
            Exception("Timeout 30000ms exceeded."),
            Exception("net::ERR_CONNECTION_RESET"),
            FakeResponse(200),
        )
        controller = NavigationController(NO_BACKOFF)

        outcome = await controller.navigate_with_retry(page, URL, CancellationToken())

        assert outcome.succeeded is True
        assert outcome.attempts == 3
        assert outcome.http_status == 200
        assert page.goto.call_count == 3

        calls = page.goto.call_args_list
        assert [c.kwargs["wait_until"] for c in calls] == ["domcontentloaded", "domcontentloaded", "networkidle"]
        assert [c.kwargs["timeout"] for c in calls] == [30000, 45000, 60000]

    @pytest.mark.asyncio
    async def test_not_modified_is_success(self):
        page = mock_page(FakeResponse(304, "Not Modified"))
        outcome = await NavigationController(NO_BACKOFF).navigate_with_retry(page, URL, CancellationToken())

        assert outcome.succeeded is True
        assert outcome.http_status == 304

    @pytest.mark.asyncio
    async def test_response_headers_kept(self):
        page = mock_page(FakeResponse(200, headers={"Last-Modified": "Wed, 01 Jan 2025 00:00:00 GMT"}))
        outcome = await NavigationController(NO_BACKOFF).navigate_with_retry(page, URL, CancellationToken())

        assert outcome.headers["Last-Modified"] == "Wed, 01 Jan 2025 00:00:00 GMT"

    @pytest.mark.asyncio
    async def test_exhausted_raises_categorized_error(self):
        page = mock_page(*[Exception("net::ERR_NAME_NOT_RESOLVED")] * 4)
        controller = NavigationController(NO_BACKOFF)

        with pytest.raises(NavigationError) as exc_info:
            await controller.navigate_with_retry(page, URL, CancellationToken())

        error = exc_info.value
        assert error.category == ErrorCategory.DNS
        assert error.attempts == 4
        assert "Navigation failed after 4 attempts" in error.raw_message
        assert "Domain name could not be resolved" in str(error)
        assert page.goto.call_count == 4

    @pytest.mark.asyncio
    async def test_server_error_status(self):
        page = mock_page(FakeResponse(503, "Service Unavailable"))
        policy = RetryPolicy(max_attempts=1)

        with pytest.raises(NavigationError) as exc_info:
            await NavigationController().navigate_with_retry(page, URL, CancellationToken(), policy=policy)

        assert exc_info.value.category == ErrorCategory.HTTP_SERVER
        assert exc_info.value.http_status == 503
        assert "HTTP 503: Service Unavailable" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_missing_response(self):
        page = mock_page(None)
        policy = RetryPolicy(max_attempts=1)

        with pytest.raises(NavigationError) as exc_info:
            await NavigationController().navigate_with_retry(page, URL, CancellationToken(), policy=policy)

        assert "No response received" in exc_info.value.raw_message

    @pytest.mark.asyncio
    async def test_simple_fallback_after_exhaustion(self):
        page = mock_page(
            Exception("Timeout 30000ms exceeded."),
            Exception("Timeout 45000ms exceeded."),
            FakeResponse(200),
        )
        policy = RetryPolicy(max_attempts=2, backoff_ms=0)

        outcome = await NavigationController().navigate_with_retry(
            page, URL, CancellationToken(), policy=policy, simple_fallback=True, fallback_timeout_ms=20000,
        )

        assert outcome.used_fallback is True
        assert outcome.attempts == 3
        last_call = page.goto.call_args_list[-1]
        assert last_call.kwargs == {"wait_until": "domcontentloaded", "timeout": 20000}

    @pytest.mark.asyncio
    async def test_fallback_failure_raises_original_error(self):
        page = mock_page(
            Exception("net::ERR_CONNECTION_REFUSED"),
            Exception("net::ERR_CONNECTION_REFUSED"),
        )
        policy = RetryPolicy(max_attempts=1)

        with pytest.raises(NavigationError) as exc_info:
            await NavigationController().navigate_with_retry(
                page, URL, CancellationToken(), policy=policy, simple_fallback=True,
            )

        assert exc_info.value.category == ErrorCategory.REFUSED
        assert page.goto.call_count == 2

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_stops_retries(self):
        page = mock_page(*[Exception("Timeout 30000ms exceeded.")] * 4)
        controller = NavigationController(RetryPolicy(backoff_ms=10000, max_backoff_ms=10000))
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        started = time.monotonic()
        with pytest.raises(CrawlAborted):
            await controller.navigate_with_retry(page, URL, token)

        assert time.monotonic() - started < 2
        assert page.goto.call_count == 1

    @pytest.mark.asyncio
    async def test_cancel_during_navigation(self):
        site = FakeSite({URL: "<html></html>"})
        site.goto_delay = 10
        page = FakePage(site)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        started = time.monotonic()
        with pytest.raises(CrawlAborted):
            await NavigationController().navigate_with_retry(page, URL, token)

        assert time.monotonic() - started < 2
        assert len(page.goto_calls) == 1


# =============================================================================
# wait_for_dynamic_content
# =============================================================================

class TestDynamicContentWait:
    """Best-effort settling strategies."""

    @pytest.mark.asyncio
    async def test_no_strategies_enabled(self):
        page = MagicMock()
        results = await NavigationController().wait_for_dynamic_content(page, only(), CancellationToken())
        assert results == {}

    @pytest.mark.asyncio
    async def test_dom_stability(self):
        page = MagicMock()
        page.evaluate = AsyncMock(return_value=True)

        results = await NavigationController().wait_for_dynamic_content(
            page, only(detect_dom_mutations=True), CancellationToken()
        )

        assert results == {"dom": True}
        quiet_ms, max_ms = page.evaluate.call_args.args[1]
        assert quiet_ms == 2000
        assert 0 < max_ms <= 2000

    @pytest.mark.asyncio
    async def test_frameworks_ready(self):
        page = MagicMock()
        page.evaluate = AsyncMock(return_value={"reactGlobal": True, "reactRoots": 1})

        results = await NavigationController().wait_for_dynamic_content(
            page, only(detect_js_frameworks=True), CancellationToken()
        )

        assert results == {"frameworks": True}

    @pytest.mark.asyncio
    async def test_frameworks_never_ready_times_out(self):
        page = MagicMock()
        page.evaluate = AsyncMock(return_value={"visibleLoadingIndicators": 2})

        results = await NavigationController().wait_for_dynamic_content(
            page, only(detect_js_frameworks=True, max_wait_time_ms=300), CancellationToken()
        )

        assert results == {"frameworks": False}

    @pytest.mark.asyncio
    async def test_selectors_missing_are_skipped(self):
        page = MagicMock()
        page.wait_for_selector = AsyncMock(side_effect=[None, Exception("Timeout 1000ms exceeded.")])

        results = await NavigationController().wait_for_dynamic_content(
            page, only(wait_for_selectors=["#app", ".missing"]), CancellationToken()
        )

        assert results == {"selectors": False}
        assert page.wait_for_selector.call_count == 2

    @pytest.mark.asyncio
    async def test_custom_check(self):
        page = MagicMock()
        page.evaluate = AsyncMock(return_value=True)

        results = await NavigationController().wait_for_dynamic_content(
            page, only(custom_content_check="() => document.querySelectorAll('.item').length > 3"),
            CancellationToken(),
        )

        assert results == {"custom": True}
        assert "document.querySelectorAll('.item')" in page.evaluate.call_args.args[0]

    @pytest.mark.asyncio
    async def test_network_quiet(self, monkeypatch):
        monkeypatch.setattr(navigation, "NETWORK_QUIET_PERIOD", 0.05)
        monkeypatch.setattr(navigation, "NETWORK_POLL_INTERVAL", 0.01)
        page = FakePage(FakeSite())

        results = await NavigationController().wait_for_dynamic_content(
            page, only(wait_for_network_idle=True), CancellationToken()
        )

        assert results == {"network": True}
        assert page.listeners == {"request": [], "response": []}

    @pytest.mark.asyncio
    async def test_strategy_failure_is_swallowed(self):
        page = MagicMock()
        page.evaluate = AsyncMock(side_effect=Exception("Execution context was destroyed"))

        results = await NavigationController().wait_for_dynamic_content(
            page, only(detect_dom_mutations=True, detect_js_frameworks=True), CancellationToken()
        )

        assert results == {"frameworks": False, "dom": False}

    @pytest.mark.asyncio
    async def test_cancel_mid_wait_aborts_promptly(self):
        page = MagicMock()
        page.evaluate = AsyncMock(return_value=False)
        token = CancellationToken()
        asyncio.get_running_loop().call_later(0.05, token.cancel)

        started = time.monotonic()
        with pytest.raises(CrawlAborted):
            await NavigationController().wait_for_dynamic_content(
                page, only(custom_content_check="() => false", max_wait_time_ms=15000), token
            )

        assert time.monotonic() - started < 1


class TestLazyContent:
    """Infinite scroll and lazy images."""

    @pytest.mark.asyncio
    async def test_infinite_scroll_stops_when_height_stable(self, monkeypatch):
        page = MagicMock()
        # scroll -> 1000, no load-more, scroll -> 1000 again (stable), scroll to top
        page.evaluate = AsyncMock(side_effect=[1000, False, 1000, None])
        token = CancellationToken()
        monkeypatch.setattr(token, "sleep", AsyncMock())

        scrolls = await NavigationController().expand_infinite_scroll(page, token)

        assert scrolls == 1

    @pytest.mark.asyncio
    async def test_lazy_images_failure_swallowed(self):
        page = MagicMock()
        page.evaluate = AsyncMock(side_effect=Exception("boom"))

        await NavigationController().trigger_lazy_images(page, CancellationToken())
