"""Heuristics over observable page signals.

The browser only collects raw observations (``COLLECT_SIGNALS_SCRIPT``);
everything that interprets them lives in pure functions here so new
heuristics can be added without touching navigation or waiting code.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from .models import DynamicContentConfig

# Evaluated in the page; returns plain observations only.
COLLECT_SIGNALS_SCRIPT = """
() => {
    const count = (selector) => document.querySelectorAll(selector).length;
    const visibleLoaders = Array.from(document.querySelectorAll(
        '.loading, .spinner, .loader, [class*="loading"], [class*="spinner"]'
    )).filter((el) => {
        const style = window.getComputedStyle(el);
        return style.display !== 'none' && style.visibility !== 'hidden' && style.opacity !== '0';
    }).length;
    const bodyText = (document.body && document.body.textContent || '').toLowerCase();
    return {
        reactGlobal: !!window.React,
        vueGlobal: !!window.Vue,
        angularGlobal: !!window.ng,
        jqueryGlobal: !!window.jQuery,
        jqueryReady: !!(window.jQuery && window.jQuery.isReady),
        reactRoots: count('[data-reactroot], #root, .react-root'),
        vueRoots: count('[data-server-rendered], .vue-app, #app'),
        angularRoots: count('[ng-app], [data-ng-app], .ng-scope'),
        visibleLoadingIndicators: visibleLoaders,
        lazyImages: count('img[loading="lazy"], img[data-src]'),
        infiniteScrollMarkers: count('[data-infinite-scroll]'),
        loadMoreText: bodyText.includes('load more') || bodyText.includes('show more'),
        scriptCount: count('script'),
        contentHeight: document.body ? document.body.scrollHeight : 0,
        viewportHeight: window.innerHeight,
    };
}
"""

SCRIPT_HEAVY_THRESHOLD = 10

REACT_SELECTORS = ["[data-reactroot]", "#root", ".react-root"]
VUE_SELECTORS = ["[data-server-rendered]", "#app", ".vue-app"]
ANGULAR_SELECTORS = ["[ng-app]", "[data-ng-app]", ".ng-scope"]


@dataclass(frozen=True)
class PageTraits:
    """Flags derived from one snapshot of page signals."""

    has_react: bool = False
    has_vue: bool = False
    has_angular: bool = False
    has_jquery: bool = False
    jquery_ready: bool = True
    react_mounted: bool = True
    vue_mounted: bool = True
    angular_mounted: bool = True
    loading_visible: bool = False
    has_lazy_images: bool = False
    has_infinite_scroll: bool = False
    script_count: int = 0

    @property
    def has_framework(self) -> bool:
        return self.has_react or self.has_vue or self.has_angular

    @property
    def script_heavy(self) -> bool:
        return self.script_count > SCRIPT_HEAVY_THRESHOLD


def _count(signals: Mapping[str, Any], key: str) -> int:
    try:
        return int(signals.get(key) or 0)
    except (TypeError, ValueError):
        return 0


def classify_page_signals(signals: Mapping[str, Any]) -> PageTraits:
    """Turn raw observations into PageTraits.

    A framework counts as present when its global is defined or its root
    marker is in the DOM; it counts as mounted when its root marker exists.
    """
    signals = signals or {}
    react_roots = _count(signals, "reactRoots")
    vue_roots = _count(signals, "vueRoots")
    angular_roots = _count(signals, "angularRoots")

    return PageTraits(
        has_react=bool(signals.get("reactGlobal")) or react_roots > 0,
        has_vue=bool(signals.get("vueGlobal")) or vue_roots > 0,
        has_angular=bool(signals.get("angularGlobal")) or angular_roots > 0,
        has_jquery=bool(signals.get("jqueryGlobal")),
        jquery_ready=bool(signals.get("jqueryReady")) or not signals.get("jqueryGlobal"),
        react_mounted=react_roots > 0 or not signals.get("reactGlobal"),
        vue_mounted=vue_roots > 0 or not signals.get("vueGlobal"),
        angular_mounted=angular_roots > 0 or not signals.get("angularGlobal"),
        loading_visible=_count(signals, "visibleLoadingIndicators") > 0,
        has_lazy_images=_count(signals, "lazyImages") > 0,
        has_infinite_scroll=_count(signals, "infiniteScrollMarkers") > 0 or bool(signals.get("loadMoreText")),
        script_count=_count(signals, "scriptCount"),
    )


def frameworks_ready(traits: PageTraits) -> bool:
    """True once every observed readiness signal is satisfied."""
    return (
        traits.react_mounted
        and traits.vue_mounted
        and traits.angular_mounted
        and traits.jquery_ready
        and not traits.loading_visible
    )


def framework_selectors(traits: PageTraits) -> List[str]:
    selectors: List[str] = []
    if traits.has_react:
        selectors.extend(REACT_SELECTORS)
    if traits.has_vue:
        selectors.extend(VUE_SELECTORS)
    if traits.has_angular:
        selectors.extend(ANGULAR_SELECTORS)
    return selectors


def plan_dynamic_wait(traits: PageTraits, base: DynamicContentConfig) -> DynamicContentConfig:
    """Narrow a job's wait configuration to what this page needs.

    Framework polling only runs when a framework is present, network
    settling only on script-heavy pages, and framework root selectors are
    added to the selector wait.
    """
    selectors = list(base.wait_for_selectors)
    for selector in framework_selectors(traits):
        if selector not in selectors:
            selectors.append(selector)

    update: Dict[str, Any] = {
        "detect_js_frameworks": base.detect_js_frameworks and traits.has_framework,
        "wait_for_network_idle": base.wait_for_network_idle and traits.script_heavy,
        "wait_for_selectors": selectors,
    }
    return base.model_copy(update=update)
