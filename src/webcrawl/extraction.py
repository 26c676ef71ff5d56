"""Extract structured content from rendered HTML."""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import trafilatura
from bs4 import BeautifulSoup

from .models import PageExtract, PageLink

logger = logging.getLogger(__name__)

_INVISIBLE_TAGS = ("script", "style", "noscript", "template", "svg")
_SKIPPED_SCHEMES = ("mailto:", "javascript:", "tel:", "data:")
HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6")


def _meta_content(soup: BeautifulSoup, name: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"name": name}) or soup.find("meta", attrs={"property": name})
    if tag and tag.get("content"):
        return tag["content"].strip()
    return None


def visible_text(soup: BeautifulSoup) -> str:
    """Text a reader would see, one block per line."""
    root = soup.body or soup
    for tag in root.find_all(_INVISIBLE_TAGS):
        tag.decompose()
    lines = [line.strip() for line in root.get_text(separator="\n").splitlines()]
    return "\n".join(line for line in lines if line)


def extract_links(soup: BeautifulSoup, base_url: str) -> List[PageLink]:
    """Anchors with non-empty text, resolved to absolute http(s) URLs."""
    links = []
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.lower().startswith(_SKIPPED_SCHEMES):
            continue
        text = anchor.get_text(" ", strip=True)
        if not text:
            continue
        absolute = urljoin(base_url, href)
        if urlparse(absolute).scheme not in ("http", "https"):
            continue
        links.append(PageLink(url=absolute, text=text))
    return links


def _span(value) -> int:
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return 1


def extract_tables(soup: BeautifulSoup) -> List[Dict[str, Any]]:
    tables = []
    for index, table in enumerate(soup.find_all("table")):
        data: Dict[str, Any] = {"id": f"table-{index}", "rows": []}

        caption = table.find("caption")
        if caption:
            data["caption"] = caption.get_text(strip=True)

        for row in table.find_all("tr"):
            is_header = (row.parent is not None and row.parent.name == "thead") or bool(row.find("th"))
            cells = [
                {
                    "text": cell.get_text(strip=True),
                    "colspan": _span(cell.get("colspan")),
                    "rowspan": _span(cell.get("rowspan")),
                }
                for cell in row.find_all(["th", "td"])
            ]
            data["rows"].append({"is_header": is_header, "cells": cells})

        tables.append(data)
    return tables


def extract_images(soup: BeautifulSoup, base_url: str) -> List[Dict[str, str]]:
    images = []
    for img in soup.find_all("img", src=True):
        image = {"src": urljoin(base_url, img["src"])}
        if img.get("alt"):
            image["alt"] = img["alt"]
        if img.get("title"):
            image["title"] = img["title"]

        figure = img.find_parent("figure")
        if figure:
            caption = figure.find("figcaption")
            if caption and caption.get_text(strip=True):
                image["caption"] = caption.get_text(strip=True)

        images.append(image)
    return images


def to_markdown(html: str, url: str, text: str) -> str:
    """Convert a page to markdown, falling back to a heading plus plain text."""
    try:
        markdown = trafilatura.extract(
            html,
            url=url,
            output_format="markdown",
            include_tables=True,
            include_links=True,
            include_comments=False,
        )
    except Exception as e:
        logger.warning(f"Markdown conversion failed for {url}: {e}")
        markdown = None

    if not markdown:
        return f"# {url}\n\n{text}"
    return markdown


def extract_page(html: str, url: str, include_images: bool = False) -> PageExtract:
    """Build a PageExtract from a rendered page's HTML.

    Args:
        html: Rendered document HTML
        url: URL the page was loaded from (base for relative links)
        include_images: Whether to collect image metadata

    Returns:
        PageExtract with text, headings, links, metadata, tables, images
        and markdown
    """
    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""
    description = _meta_content(soup, "description")
    keywords_raw = _meta_content(soup, "keywords")
    keywords = [k.strip() for k in keywords_raw.split(",") if k.strip()] if keywords_raw else []

    headings = [
        h.get_text(" ", strip=True)
        for h in soup.find_all(list(HEADING_TAGS))
        if h.get_text(strip=True)
    ]
    by_level = heading_levels(soup)
    links = extract_links(soup, url)
    tables = extract_tables(soup)
    images = extract_images(soup, url) if include_images else []
    text = visible_text(soup)

    return PageExtract(
        url=url,
        text=text,
        headings=headings,
        heading_levels=by_level,
        links=links,
        title=title,
        description=description,
        keywords=keywords,
        tables=tables,
        images=images,
        markdown=to_markdown(html, url, text),
    )


def heading_levels(soup: BeautifulSoup, levels=HEADING_TAGS) -> Dict[str, List[str]]:
    """Heading texts grouped by tag name."""
    return {
        level: [h.get_text(" ", strip=True) for h in soup.find_all(level) if h.get_text(strip=True)]
        for level in levels
    }
