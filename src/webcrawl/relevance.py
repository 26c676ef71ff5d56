"""Relevance scoring for page content and discovered links.

Everything here is pure: the same inputs always produce the same scores.
"""

import re
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from .models import ContentSearchResult, CrawlStrategy, PageLink, SearchMatch

MAX_MATCHES = 10
SUMMARY_MATCHES = 3
SNIPPET_CONTEXT = 50
MIN_SENTENCE_LENGTH = 10
NO_MATCHES_SUMMARY = "No matches found for the query."

MAX_LINK_SCORE = 5.0
MAX_PAGE_SCORE = 10.0

# Link text suggesting substantive content
VALUABLE_KEYWORDS = (
    "guide",
    "tutorial",
    "how to",
    "documentation",
    "reference",
    "example",
    "article",
    "overview",
    "introduction",
)

# Link text that is usually site chrome rather than content
NAVIGATION_KEYWORDS = (
    "home",
    "contact",
    "about",
    "login",
    "register",
    "sign up",
    "sign in",
    "privacy",
    "terms",
    "help",
    "faq",
    "support",
    "next page",
    "previous page",
    "previous",
)

_SENTENCE_SPLIT = re.compile(r"[.!?]+")


def significant_words(query: str) -> List[str]:
    """Lower-cased query words longer than two characters."""
    return [word for word in query.lower().split() if len(word) > 2]


def score_sentence(sentence: str, query: str) -> float:
    """Score one sentence against a query.

    +3 when the whole query phrase occurs, +1 per significant query word
    contained, +0.5 more for each of those words found on a word boundary.
    """
    phrase = query.strip().lower()
    if not phrase:
        return 0.0

    sentence_lower = sentence.lower()
    score = 0.0

    if phrase in sentence_lower:
        score += 3

    for word in significant_words(phrase):
        if word in sentence_lower:
            score += 1
            if re.search(rf"\b{re.escape(word)}\b", sentence_lower):
                score += 0.5

    return score


def search_in_content(content: str, query: str) -> ContentSearchResult:
    """Find the sentences of ``content`` most relevant to ``query``.

    Args:
        content: Text to search, typically a page's visible text
        query: Free-text query

    Returns:
        ContentSearchResult with at most 10 matches (best first) and a
        summary made of the top 3 snippets joined by " ... "
    """
    if not query or not query.strip() or not content:
        return ContentSearchResult(matches=[], summary=NO_MATCHES_SUMMARY)

    content_lower = content.lower()
    matches: List[SearchMatch] = []

    for sentence in _SENTENCE_SPLIT.split(content):
        if len(sentence.strip()) <= MIN_SENTENCE_LENGTH:
            continue

        relevance = score_sentence(sentence, query)
        if relevance <= 0:
            continue

        position = content_lower.find(sentence.lower())
        start = max(0, position - SNIPPET_CONTEXT)
        end = min(len(content), position + len(sentence) + SNIPPET_CONTEXT)
        matches.append(SearchMatch(
            snippet=content[start:end].strip(),
            position=position,
            relevance=relevance,
        ))

    # Stable sort keeps document order among equal scores
    matches.sort(key=lambda m: m.relevance, reverse=True)
    top = matches[:MAX_MATCHES]

    if not top:
        return ContentSearchResult(matches=[], summary=NO_MATCHES_SUMMARY)

    summary = " ... ".join(m.snippet for m in top[:SUMMARY_MATCHES])
    return ContentSearchResult(matches=top, summary=summary)


def score_page(content: str, query: str) -> float:
    """Query density of a whole page, in the range [0, 10].

    Occurrences of the significant query words per thousand characters of
    content; shorter pages count as one thousand characters.
    """
    if not content or not query or not query.strip():
        return 0.0

    words = significant_words(query) or query.lower().split()
    content_lower = content.lower()
    hits = sum(content_lower.count(word) for word in words)
    return min(hits / max(len(content) / 1000, 1), MAX_PAGE_SCORE)


def calculate_link_relevance(link_text: str, page_content: str) -> float:
    """Heuristic value of following a link, in the range [0, 5].

    Args:
        link_text: Visible anchor text
        page_content: Text of the page the link was found on

    Returns:
        Score starting at 1, raised for long or frequently mentioned text
        and content keywords, lowered for plain navigation labels
    """
    if not link_text or not link_text.strip():
        return 0.0

    score = 1.0
    text_lower = link_text.lower()

    if len(link_text) > 20:
        score += 1

    if page_content.lower().count(text_lower) > 3:
        score += 1

    if any(keyword in text_lower for keyword in VALUABLE_KEYWORDS):
        score += 0.5

    label = text_lower.strip()
    if any(label == keyword or label == f"{keyword} us" for keyword in NAVIGATION_KEYWORDS):
        score -= 0.5

    return min(max(score, 0.0), MAX_LINK_SCORE)


def query_boost(link_text: str, query: Optional[str]) -> float:
    """Extra link score for text that mentions the query.

    +2 for the full phrase, +0.5 per significant query word contained.
    """
    if not query or not query.strip():
        return 0.0

    text_lower = link_text.lower()
    boost = 0.0
    if query.strip().lower() in text_lower:
        boost += 2
    for word in significant_words(query):
        if word in text_lower:
            boost += 0.5
    return boost


def path_segment_count(url: str) -> int:
    return len([segment for segment in urlparse(url).path.split("/") if segment])


def order_links(links: Iterable[PageLink], strategy: CrawlStrategy) -> List[PageLink]:
    """Order scored candidate links for the given strategy.

    bestFirst sorts by descending relevance, bfs by ascending path depth
    and dfs by descending path depth. Relevance breaks depth ties.
    """
    by_score = sorted(links, key=lambda link: link.relevance, reverse=True)

    if strategy == CrawlStrategy.BFS:
        return sorted(by_score, key=lambda link: path_segment_count(link.url))
    if strategy == CrawlStrategy.DFS:
        return sorted(by_score, key=lambda link: path_segment_count(link.url), reverse=True)
    return by_score
