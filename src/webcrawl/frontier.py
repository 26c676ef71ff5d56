"""Explicit, strategy-ordered traversal frontier and per-job traversal state."""

import heapq
import itertools
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set
from urllib.parse import urlparse

from .models import CrawlStrategy


def normalize_url(url: str) -> str:
    """Normalize URL by removing fragments and trailing slashes.

    Args:
        url: URL to normalize

    Returns:
        Normalized URL
    """
    parsed = urlparse(url)
    # Remove trailing slash (the bare root included)
    path = parsed.path[:-1] if parsed.path.endswith("/") else parsed.path
    # Remove fragment
    normalized = f"{parsed.scheme}://{parsed.netloc}{path}"
    if parsed.query:
        normalized += f"?{parsed.query}"
    return normalized


def origin(url: str) -> str:
    """scheme://host[:port], lower-cased."""
    parsed = urlparse(url)
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


def same_origin(url: str, other: str) -> bool:
    return origin(url) == origin(other)


@dataclass
class FrontierEntry:
    url: str
    depth: int
    parent_url: Optional[str] = None
    score: float = 0.0


class Frontier:
    """
    Work list of URLs awaiting a visit.

    The strategy picks the discipline: ``bfs`` is FIFO, ``dfs`` is LIFO and
    ``bestFirst`` always yields the highest-scoring entry (FIFO among equal
    scores). ``extend`` takes children in preferred order and keeps that
    order for every discipline.
    """

    def __init__(self, strategy: CrawlStrategy = CrawlStrategy.BFS):
        self.strategy = CrawlStrategy(strategy)
        self._fifo: deque = deque()
        self._stack: List[FrontierEntry] = []
        self._heap: List = []
        self._counter = itertools.count()
        self._queued: Set[str] = set()

    def __len__(self) -> int:
        return len(self._queued_entries())

    def __bool__(self) -> bool:
        return len(self) > 0

    def __contains__(self, url: str) -> bool:
        return url in self._queued

    def _queued_entries(self):
        if self.strategy == CrawlStrategy.BFS:
            return self._fifo
        if self.strategy == CrawlStrategy.DFS:
            return self._stack
        return self._heap

    def push(self, entry: FrontierEntry) -> None:
        self._queued.add(entry.url)
        if self.strategy == CrawlStrategy.BFS:
            self._fifo.append(entry)
        elif self.strategy == CrawlStrategy.DFS:
            self._stack.append(entry)
        else:
            heapq.heappush(self._heap, (-entry.score, next(self._counter), entry))

    def extend(self, entries: Iterable[FrontierEntry]) -> None:
        entries = list(entries)
        # Reversed so the first preferred child is popped first
        if self.strategy == CrawlStrategy.DFS:
            entries.reverse()
        for entry in entries:
            self.push(entry)

    def pop(self) -> FrontierEntry:
        """Remove and return the next entry.

        Raises:
            IndexError: If the frontier is empty
        """
        if self.strategy == CrawlStrategy.BFS:
            entry = self._fifo.popleft()
        elif self.strategy == CrawlStrategy.DFS:
            entry = self._stack.pop()
        else:
            entry = heapq.heappop(self._heap)[2]
        self._queued.discard(entry.url)
        return entry


@dataclass
class TraversalContext:
    """Visited set and page budget shared by every step of one job."""

    max_pages: int
    visited: Set[str] = field(default_factory=set)
    order: List[str] = field(default_factory=list)

    @property
    def remaining_budget(self) -> int:
        return max(0, self.max_pages - len(self.visited))

    @property
    def exhausted(self) -> bool:
        return len(self.visited) >= self.max_pages

    def is_visited(self, url: str) -> bool:
        return url in self.visited

    def mark_visited(self, url: str) -> bool:
        """Record a visit.

        Returns:
            False if the URL was already visited or the budget is spent
        """
        if url in self.visited or self.exhausted:
            return False
        self.visited.add(url)
        self.order.append(url)
        return True
