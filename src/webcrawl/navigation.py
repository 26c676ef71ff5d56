"""
Navigation controller for Playwright pages.

This module drives a single page to a URL with retries, escalating wait
conditions and capped backoff, and then waits for client-rendered content
to settle using several independent, best-effort strategies:

- selector wait: configured CSS selectors appear
- framework readiness: framework roots mounted, no visible spinners
- DOM stability: no significant mutations for a quiet period
- network stability: no request/response activity for a quiet period
- custom check: a caller-supplied predicate returns truthy

Every suspend point races the job's CancellationToken, so a cancelled job
stops within one scheduling tick instead of waiting out a timeout.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .cancellation import CancellationToken
from .errors import CrawlAborted, NavigationError
from .models import DynamicContentConfig, NavigationOutcome, RetryPolicy
from .page_signals import COLLECT_SIGNALS_SCRIPT, PageTraits, classify_page_signals, frameworks_ready

logger = logging.getLogger(__name__)

SELECTOR_SLICE_CAP_MS = 10000
FRAMEWORK_POLL_INTERVAL = 0.5
DOM_QUIET_PERIOD_MS = 2000
NETWORK_QUIET_PERIOD = 1.5
NETWORK_POLL_INTERVAL = 0.25
CUSTOM_CHECK_INTERVAL = 1.0
MAX_INFINITE_SCROLLS = 3

_DOM_STABILITY_SCRIPT = """
([quietMs, maxMs]) => new Promise((resolve) => {
    const target = document.body || document.documentElement;
    let quietTimer = null;
    let capTimer = null;
    let observer = null;
    const finish = (settled) => {
        if (observer) observer.disconnect();
        clearTimeout(quietTimer);
        clearTimeout(capTimer);
        resolve(settled);
    };
    const insignificant = (mutation) => {
        const name = mutation.target.nodeName;
        if (name === 'SCRIPT' || name === 'STYLE' || name === 'META') return true;
        return mutation.type === 'attributes'
            && !!mutation.attributeName
            && mutation.attributeName.startsWith('data-');
    };
    observer = new MutationObserver((mutations) => {
        if (mutations.some((m) => !insignificant(m))) {
            clearTimeout(quietTimer);
            quietTimer = setTimeout(() => finish(true), quietMs);
        }
    });
    observer.observe(target, {
        childList: true,
        subtree: true,
        attributes: true,
        characterData: true,
    });
    quietTimer = setTimeout(() => finish(true), quietMs);
    capTimer = setTimeout(() => finish(false), maxMs);
})
"""

_SCROLL_TO_BOTTOM_SCRIPT = "() => { window.scrollTo(0, document.body.scrollHeight); return document.body.scrollHeight; }"
_SCROLL_TO_TOP_SCRIPT = "() => window.scrollTo(0, 0)"

_CLICK_LOAD_MORE_SCRIPT = """
() => {
    const buttons = Array.from(document.querySelectorAll('button, a')).filter((el) => {
        const text = (el.textContent || '').toLowerCase();
        return text.includes('load more') || text.includes('show more') || text.includes('see more');
    });
    if (buttons.length > 0) {
        buttons[0].click();
        return true;
    }
    return false;
}
"""

_LAZY_IMAGE_SCROLL_SCRIPT = """
() => new Promise((resolve) => {
    let y = 0;
    const height = document.body.scrollHeight;
    const step = Math.max(window.innerHeight / 2, 100);
    const next = () => {
        y += step;
        window.scrollTo(0, y);
        if (y >= height) {
            window.scrollTo(0, 0);
            setTimeout(resolve, 500);
        } else {
            setTimeout(next, 300);
        }
    };
    next();
})
"""


def _response_status(response: Any) -> Tuple[int, str]:
    if response is None:
        raise NavigationError("Navigation failed: No response received")
    status = int(response.status)
    if 200 <= status < 300 or status == 304:
        return status, ""
    status_text = getattr(response, "status_text", "") or ""
    raise NavigationError(f"HTTP {status}: {status_text}".strip(), http_status=status)


def _response_headers(response: Any) -> Dict[str, str]:
    try:
        return dict(response.headers or {})
    except Exception:
        return {}


class NavigationController:
    """
    Retrying navigation and dynamic-content settling for one page at a time.

    The controller is stateless between calls; a job creates one and reuses
    it for every page it visits.
    """

    def __init__(self, retry: Optional[RetryPolicy] = None):
        self.retry = retry or RetryPolicy()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def navigate_with_retry(
        self,
        page,
        url: str,
        token: CancellationToken,
        policy: Optional[RetryPolicy] = None,
        simple_fallback: bool = False,
        fallback_timeout_ms: int = 30000,
    ) -> NavigationOutcome:
        """
        Navigate ``page`` to ``url``, retrying on failure.

        Attempts up to ``light_wait_attempts`` wait for DOM ready, later ones
        for network idle; timeouts escalate up to a cap. A 2xx or 304
        response is a success.

        Args:
            page: Playwright page (or compatible object)
            url: Absolute URL to load
            token: Job cancellation token
            policy: Retry schedule; defaults to the controller's
            simple_fallback: Try one relaxed navigation after all attempts fail
            fallback_timeout_ms: Timeout of that relaxed navigation

        Returns:
            NavigationOutcome with ``succeeded=True``

        Raises:
            NavigationError: Every attempt (and the fallback, if enabled) failed
            CrawlAborted: The token fired; no further attempts are made
        """
        policy = policy or self.retry
        last_error: Optional[NavigationError] = None

        for attempt in range(1, policy.max_attempts + 1):
            wait_until = policy.wait_until(attempt)
            timeout = policy.timeout_ms(attempt)
            logger.info(f"Navigating to {url} (attempt {attempt}/{policy.max_attempts}, wait_until={wait_until})")

            try:
                response = await token.race(page.goto(url, wait_until=wait_until, timeout=timeout))
                status, _ = _response_status(response)
                logger.info(f"Navigated to {url} on attempt {attempt} (status={status})")
                return NavigationOutcome(
                    succeeded=True,
                    url=url,
                    http_status=status,
                    attempts=attempt,
                    headers=_response_headers(response),
                )
            except CrawlAborted:
                raise
            except NavigationError as e:
                last_error = e
            except Exception as e:
                last_error = NavigationError(str(e))

            logger.warning(f"Navigation attempt {attempt} failed for {url}: {last_error.raw_message}")

            if attempt < policy.max_attempts:
                delay_ms = policy.backoff_delay_ms(attempt)
                logger.info(f"Waiting {delay_ms}ms before retry...")
                await token.sleep(delay_ms / 1000)

        final_error = NavigationError(
            f"Navigation failed after {policy.max_attempts} attempts: {last_error.raw_message}",
            category=last_error.category,
            http_status=last_error.http_status,
            attempts=policy.max_attempts,
        )

        if simple_fallback:
            logger.warning(f"All navigation attempts failed for {url}, trying simple fallback")
            outcome = await self.navigate_simple(page, url, token, fallback_timeout_ms)
            if outcome is not None:
                outcome.attempts = policy.max_attempts + 1
                return outcome
            logger.error(f"Both retry pipeline and simple fallback failed for {url}")

        raise final_error

    async def navigate_simple(
        self,
        page,
        url: str,
        token: CancellationToken,
        timeout_ms: int = 30000,
    ) -> Optional[NavigationOutcome]:
        """Single-shot navigation waiting only for DOM ready.

        Returns:
            NavigationOutcome on success, None on failure
        """
        logger.info(f"Simple navigation to {url} with {timeout_ms}ms timeout")
        try:
            response = await token.race(page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms))
            status, _ = _response_status(response)
        except CrawlAborted:
            raise
        except Exception as e:
            logger.warning(f"Simple navigation failed for {url}: {e}")
            return None

        return NavigationOutcome(
            succeeded=True,
            url=url,
            http_status=status,
            attempts=1,
            used_fallback=True,
            headers=_response_headers(response),
        )

    # ------------------------------------------------------------------
    # Dynamic content
    # ------------------------------------------------------------------

    async def wait_for_dynamic_content(
        self,
        page,
        config: DynamicContentConfig,
        token: CancellationToken,
    ) -> Dict[str, bool]:
        """
        Run every enabled settling strategy against one shared deadline.

        Strategies run in sequence, each time-boxed to the budget that is
        left. Failures are logged and recorded as not settled; only
        cancellation propagates.

        Returns:
            Mapping of strategy name to whether it observed a settled page
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + config.max_wait_time_ms / 1000
        started = loop.time()

        strategies: List[Tuple[str, Callable[[float], Awaitable[bool]]]] = []
        if config.wait_for_selectors:
            strategies.append(("selectors", lambda budget: self._wait_for_selectors(
                page, config.wait_for_selectors, budget, token)))
        if config.detect_js_frameworks:
            strategies.append(("frameworks", lambda budget: self._wait_for_frameworks(page, budget, token)))
        if config.detect_dom_mutations:
            strategies.append(("dom", lambda budget: self._wait_for_dom_stability(page, budget, token)))
        if config.wait_for_network_idle:
            strategies.append(("network", lambda budget: self._wait_for_network_stability(page, budget, token)))
        if config.custom_content_check:
            strategies.append(("custom", lambda budget: self._wait_for_custom_check(
                page, config.custom_content_check, budget, token)))

        results: Dict[str, bool] = {}
        for name, run in strategies:
            budget = deadline - loop.time()
            if budget <= 0:
                logger.debug(f"No wait budget left for {name} strategy")
                results[name] = False
                continue

            try:
                results[name] = await asyncio.wait_for(run(budget), timeout=budget)
            except CrawlAborted:
                raise
            except asyncio.TimeoutError:
                logger.debug(f"{name} strategy did not settle within {budget:.1f}s")
                results[name] = False
            except Exception as e:
                logger.debug(f"{name} strategy failed: {e}")
                results[name] = False

        elapsed_ms = int((loop.time() - started) * 1000)
        logger.info(f"Dynamic content detection finished in {elapsed_ms}ms: {results}")
        return results

    async def _wait_for_selectors(
        self, page, selectors: List[str], budget: float, token: CancellationToken
    ) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget
        found_all = True

        for index, selector in enumerate(selectors):
            remaining_ms = (deadline - loop.time()) * 1000
            slice_ms = int(min(remaining_ms / (len(selectors) - index), SELECTOR_SLICE_CAP_MS))
            if slice_ms < 1:
                return False
            try:
                await token.race(page.wait_for_selector(selector, timeout=slice_ms))
                logger.debug(f"Selector found: {selector}")
            except CrawlAborted:
                raise
            except Exception:
                logger.debug(f"Selector not found within {slice_ms}ms: {selector}")
                found_all = False

        return found_all

    async def collect_traits(self, page, token: CancellationToken) -> PageTraits:
        signals = await token.race(page.evaluate(COLLECT_SIGNALS_SCRIPT))
        return classify_page_signals(signals or {})

    async def _wait_for_frameworks(self, page, budget: float, token: CancellationToken) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget

        while True:
            traits = await self.collect_traits(page, token)
            if frameworks_ready(traits):
                logger.debug("JavaScript frameworks appear to be ready")
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await token.sleep(min(FRAMEWORK_POLL_INTERVAL, remaining))

    async def _wait_for_dom_stability(self, page, budget: float, token: CancellationToken) -> bool:
        settled = await token.race(
            page.evaluate(_DOM_STABILITY_SCRIPT, [DOM_QUIET_PERIOD_MS, int(budget * 1000)])
        )
        logger.debug(f"DOM stability: {'settled' if settled else 'still changing'}")
        return bool(settled)

    async def _wait_for_network_stability(self, page, budget: float, token: CancellationToken) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget
        last_activity = loop.time()

        def on_activity(_event) -> None:
            nonlocal last_activity
            last_activity = loop.time()

        page.on("request", on_activity)
        page.on("response", on_activity)
        try:
            while True:
                quiet_for = loop.time() - last_activity
                if quiet_for >= NETWORK_QUIET_PERIOD:
                    logger.debug(f"Network quiet for {quiet_for:.2f}s")
                    return True
                remaining = deadline - loop.time()
                if remaining <= 0:
                    return False
                await token.sleep(min(NETWORK_POLL_INTERVAL, remaining))
        finally:
            page.remove_listener("request", on_activity)
            page.remove_listener("response", on_activity)

    async def _wait_for_custom_check(
        self, page, check: str, budget: float, token: CancellationToken
    ) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + budget
        expression = f"() => {{ try {{ return Boolean(({check})()); }} catch (e) {{ return false; }} }}"

        while True:
            if await token.race(page.evaluate(expression)):
                logger.debug("Custom content check passed")
                return True
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False
            await token.sleep(min(CUSTOM_CHECK_INTERVAL, remaining))

    # ------------------------------------------------------------------
    # Lazy content
    # ------------------------------------------------------------------

    async def expand_infinite_scroll(
        self, page, token: CancellationToken, max_scrolls: int = MAX_INFINITE_SCROLLS
    ) -> int:
        """Scroll to the bottom until the page stops growing.

        Returns:
            Number of scrolls performed
        """
        previous_height = -1
        scrolls = 0
        try:
            while scrolls < max_scrolls:
                height = await token.race(page.evaluate(_SCROLL_TO_BOTTOM_SCRIPT))
                if height == previous_height:
                    break
                previous_height = height
                await token.sleep(2.0)

                if await token.race(page.evaluate(_CLICK_LOAD_MORE_SCRIPT)):
                    await token.sleep(3.0)
                scrolls += 1

            await token.race(page.evaluate(_SCROLL_TO_TOP_SCRIPT))
        except CrawlAborted:
            raise
        except Exception as e:
            logger.debug(f"Infinite scroll handling failed: {e}")
        return scrolls

    async def trigger_lazy_images(self, page, token: CancellationToken) -> None:
        try:
            await token.race(page.evaluate(_LAZY_IMAGE_SCROLL_SCRIPT))
        except CrawlAborted:
            raise
        except Exception as e:
            logger.debug(f"Lazy image loading failed: {e}")
