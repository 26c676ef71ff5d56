"""Unit tests for HTML extraction."""

import pytest

from webcrawl import extraction
from webcrawl.extraction import extract_page, extract_tables, heading_levels, to_markdown
from bs4 import BeautifulSoup

URL = "https://example.com/docs/intro"

PAGE = """
<html>
  <head>
    <title>Intro to Crawling</title>
    <meta name="description" content="How the crawler works">
    <meta name="keywords" content="crawler, browser,  , playwright">
    <script>var hidden = "do not index";</script>
  </head>
  <body>
    <h1>Intro</h1>
    <h2>Getting started</h2>
    <p>The crawler visits pages.</p>
    <a href="/docs/next">Next chapter</a>
    <a href="https://other.example.org/x">Elsewhere</a>
    <a href="mailto:team@example.com">Mail us</a>
    <a href="/docs/empty"></a>
    <figure><img src="diagram.png" alt="Diagram" title="Flow"><figcaption>Crawl flow</figcaption></figure>
    <style>.x { color: red; }</style>
  </body>
</html>
"""


class TestExtractPage:
    """Full page extraction."""

    def test_metadata(self):
        extract = extract_page(PAGE, URL)
        assert extract.title == "Intro to Crawling"
        assert extract.description == "How the crawler works"
        assert extract.keywords == ["crawler", "browser", "playwright"]
        assert extract.metadata["title"] == "Intro to Crawling"

    def test_headings(self):
        assert extract_page(PAGE, URL).headings == ["Intro", "Getting started"]

    def test_visible_text_only(self):
        text = extract_page(PAGE, URL).text
        assert "The crawler visits pages." in text
        assert "do not index" not in text
        assert "color: red" not in text

    def test_links_resolved_and_filtered(self):
        links = extract_page(PAGE, URL).links
        assert [(l.url, l.text) for l in links] == [
            ("https://example.com/docs/next", "Next chapter"),
            ("https://other.example.org/x", "Elsewhere"),
        ]

    def test_images_only_when_requested(self):
        assert extract_page(PAGE, URL).images == []
        images = extract_page(PAGE, URL, include_images=True).images
        assert images == [{
            "src": "https://example.com/docs/diagram.png",
            "alt": "Diagram",
            "title": "Flow",
            "caption": "Crawl flow",
        }]

    def test_markdown_present(self):
        assert extract_page(PAGE, URL).markdown != ""


class TestTables:
    """Table extraction."""

    def test_rows_and_spans(self):
        html = """
        <table>
          <caption>Plans</caption>
          <thead><tr><td>Name</td><td>Price</td></tr></thead>
          <tbody>
            <tr><td colspan="2">Free tier</td></tr>
            <tr><th>Pro</th><td rowspan="abc">10</td></tr>
          </tbody>
        </table>
        """
        tables = extract_tables(BeautifulSoup(html, "html.parser"))
        assert len(tables) == 1
        table = tables[0]
        assert table["id"] == "table-0"
        assert table["caption"] == "Plans"
        assert [row["is_header"] for row in table["rows"]] == [True, False, True]
        assert table["rows"][1]["cells"] == [{"text": "Free tier", "colspan": 2, "rowspan": 1}]
        assert table["rows"][2]["cells"][1]["rowspan"] == 1


class TestMarkdown:
    """Markdown conversion and its fallback."""

    def test_fallback_when_conversion_empty(self, monkeypatch):
        monkeypatch.setattr(extraction.trafilatura, "extract", lambda *args, **kwargs: None)
        assert to_markdown("<html></html>", URL, "plain text") == f"# {URL}\n\nplain text"

    def test_fallback_when_conversion_raises(self, monkeypatch):
        def broken(*args, **kwargs):
            raise ValueError("parser exploded")

        monkeypatch.setattr(extraction.trafilatura, "extract", broken)
        assert to_markdown("<html></html>", URL, "text").startswith(f"# {URL}")

    def test_converted_markdown_used(self, monkeypatch):
        monkeypatch.setattr(extraction.trafilatura, "extract", lambda *args, **kwargs: "# Converted")
        assert to_markdown("<html></html>", URL, "text") == "# Converted"


def test_heading_levels():
    levels = heading_levels(BeautifulSoup(PAGE, "html.parser"), ("h1", "h2", "h3"))
    assert levels == {"h1": ["Intro"], "h2": ["Getting started"], "h3": []}


def test_heading_levels_on_extract():
    extract = extract_page(PAGE, URL)
    assert extract.heading_levels["h1"] == ["Intro"]
    assert extract.heading_levels["h2"] == ["Getting started"]
    assert extract.heading_levels["h6"] == []
