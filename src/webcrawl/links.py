"""
Single-page link extraction with context categories.

Links are read from the rendered HTML, restricted to the page's origin
unless external links are requested, and tagged with a coarse type
(navigation, content, media, form, other) and the page section they sit in.
"""
import logging
import re
from typing import Callable, List, Optional
from urllib.parse import urljoin, urlparse, urlunparse

from bs4 import BeautifulSoup, Tag

from .browser import BrowserSession
from .browser_config import BrowserConfig
from .cancellation import CancellationToken
from .errors import CrawlAborted
from .extraction import visible_text
from .frontier import origin
from .models import InternalLink, LinkExtractionResult, LinkSortOrder, LinkType, RetryPolicy
from .navigation import NavigationController
from .relevance import calculate_link_relevance, path_segment_count

logger = logging.getLogger(__name__)

NAVIGATION_KEYWORDS = ("nav", "menu", "header", "footer", "sidebar", "breadcrumb")
CONTENT_KEYWORDS = ("article", "post", "blog", "news", "content")
FORM_HREF_KEYWORDS = ("login", "register", "contact", "subscribe")
SECTION_TAGS = ("section", "article", "header", "footer", "nav", "main", "aside")

_MEDIA_RE = re.compile(r"\.(pdf|doc|docx|xls|xlsx|zip|rar|mp4|mp3|avi|mov|jpg|jpeg|png|gif)(\?|$)")


def _classes(tag: Optional[Tag]) -> str:
    if tag is None:
        return ""
    return " ".join(tag.get("class") or []).lower()


def _closest(anchor: Tag, predicate: Callable[[Tag], bool]) -> Optional[Tag]:
    for parent in anchor.parents:
        if isinstance(parent, Tag) and parent.name != "[document]" and predicate(parent):
            return parent
    return None


def _is_nav_container(tag: Tag) -> bool:
    classes = _classes(tag)
    return tag.name in ("nav", "header", "footer") or "nav" in classes or "menu" in classes


def _is_content_container(tag: Tag) -> bool:
    classes = _classes(tag)
    return tag.name in ("article", "main") or any(k in classes for k in ("content", "post", "article"))


def categorize_link(anchor: Tag, href: str, text: str) -> LinkType:
    """Guess what a link is for from its markup context.

    Navigation containers win over everything, then media file
    extensions, form-ish targets and finally content containers.
    """
    parent_classes = _classes(_closest(anchor, _is_nav_container))
    element_classes = _classes(anchor)

    if any(k in parent_classes or k in element_classes for k in NAVIGATION_KEYWORDS):
        return "navigation"

    href_lower = href.lower()
    if "download" in href_lower or _MEDIA_RE.search(href_lower):
        return "media"

    if _closest(anchor, lambda tag: tag.name == "form") or any(k in href_lower for k in FORM_HREF_KEYWORDS):
        return "form"

    text_lower = text.lower()
    if _closest(anchor, _is_content_container) or any(
        k in parent_classes or k in element_classes or k in text_lower for k in CONTENT_KEYWORDS
    ):
        return "content"

    return "other"


def link_section(anchor: Tag) -> Optional[str]:
    """``tag#id.firstclass`` of the nearest sectioning ancestor."""
    section = _closest(anchor, lambda tag: tag.name in SECTION_TAGS)
    if section is None:
        return None
    name = section.name
    if section.get("id"):
        name += f"#{section['id']}"
    classes = section.get("class") or []
    if classes:
        name += f".{classes[0]}"
    return name


TYPE_PRIORITY = {"navigation": 1, "content": 2, "media": 3, "form": 4, "other": 5}


def sort_links(links: List[InternalLink], sort_by: LinkSortOrder = "document") -> List[InternalLink]:
    """Order extracted links.

    ``relevance`` puts same-origin links first, then higher link scores,
    then navigation before content, media, form and other links, then
    longer anchor text. ``document`` keeps page order.
    """
    if sort_by == "url":
        return sorted(links, key=lambda link: link.url)
    if sort_by == "text":
        return sorted(links, key=lambda link: link.text.lower())
    if sort_by == "relevance":
        return sorted(links, key=lambda link: (
            link.is_external,
            -(link.relevance or 0.0),
            TYPE_PRIORITY[link.type],
            -len(link.text),
        ))
    return list(links)


def collect_internal_links(
    html: str,
    page_url: str,
    include_fragments: bool = True,
    include_query_params: bool = True,
    categorize: bool = True,
    max_links: int = 100,
    include_external: bool = False,
    sort_by: LinkSortOrder = "document",
) -> List[InternalLink]:
    """
    Links of a page, de-duplicated by URL.

    Args:
        html: Rendered page HTML
        page_url: URL of the page (origin and base for relative links)
        include_fragments: Keep ``#fragment`` parts
        include_query_params: Keep ``?query`` parts
        categorize: Tag links with a type; every link is "content" otherwise
        max_links: Upper bound on returned links, applied after sorting
        include_external: Also return links to other origins
        sort_by: ``document``, ``url``, ``text`` or ``relevance``

    Returns:
        Links in ``sort_by`` order, first occurrence of each URL kept
    """
    soup = BeautifulSoup(html, "html.parser")
    page_origin = origin(page_url)
    links: List[InternalLink] = []
    seen = set()

    for anchor in soup.find_all("a", href=True):
        href = urljoin(page_url, anchor["href"].strip())
        parsed = urlparse(href)
        if parsed.scheme not in ("http", "https"):
            continue
        is_external = origin(href) != page_origin
        if is_external and not include_external:
            continue

        if not include_fragments:
            parsed = parsed._replace(fragment="")
        if not include_query_params:
            parsed = parsed._replace(query="")
        final_url = urlunparse(parsed)

        text = anchor.get_text(" ", strip=True) or anchor.get("aria-label", "").strip() or href
        if not text or text == href:
            continue
        if final_url in seen:
            continue
        seen.add(final_url)

        links.append(InternalLink(
            url=final_url,
            text=text,
            title=anchor.get("title") or None,
            type=categorize_link(anchor, href, text) if categorize else "content",
            depth=path_segment_count(final_url),
            section=link_section(anchor),
            is_external=is_external,
        ))

    if sort_by == "relevance":
        page_text = visible_text(soup)
        for link in links:
            link.relevance = calculate_link_relevance(link.text, page_text)

    return sort_links(links, sort_by)[:max_links]


class LinkExtractor:
    """Load one page and list its links."""

    def __init__(
        self,
        browser_config: Optional[BrowserConfig] = None,
        session_factory: Optional[Callable[[BrowserConfig], BrowserSession]] = None,
        controller: Optional[NavigationController] = None,
    ):
        self.browser_config = browser_config or BrowserConfig()
        self._session_factory = session_factory or BrowserSession
        self._controller = controller or NavigationController(RetryPolicy(max_attempts=3))

    async def extract_internal_links(
        self,
        url: str,
        include_fragments: bool = True,
        include_query_params: bool = True,
        categorize: bool = True,
        max_links: int = 100,
        include_external: bool = False,
        sort_by: LinkSortOrder = "document",
        token: Optional[CancellationToken] = None,
    ) -> LinkExtractionResult:
        token = token or CancellationToken()
        result = LinkExtractionResult(success=False, url=url, base_url=origin(url))
        logger.info(f"Extracting links from {url}")

        try:
            async with self._session_factory(self.browser_config) as session:
                session.bind(token)
                page = await session.new_page()
                try:
                    await self._controller.navigate_with_retry(page, url, token)
                    html = await token.race(page.content())
                    title = await token.race(page.title())
                finally:
                    try:
                        await page.close()
                    except Exception as e:
                        logger.debug(f"Error closing page: {e}")
        except CrawlAborted as e:
            result.aborted = True
            result.error = str(e)
            return result
        except Exception as e:
            logger.error(f"Error extracting links from {url}: {e}")
            result.error = str(e)
            return result

        result.links = collect_internal_links(
            html,
            url,
            include_fragments=include_fragments,
            include_query_params=include_query_params,
            categorize=categorize,
            max_links=max_links,
            include_external=include_external,
            sort_by=sort_by,
        )
        result.external_links = sum(1 for link in result.links if link.is_external)
        result.internal_links = len(result.links) - result.external_links
        if categorize:
            result.links_by_type = {link_type: 0 for link_type in TYPE_PRIORITY}
            for link in result.links:
                result.links_by_type[link.type] += 1
        result.page_title = title or None
        result.success = True
        logger.info(
            f"Extracted {len(result.links)} links from {url} "
            f"({result.internal_links} internal, {result.external_links} external)"
        )
        return result
