"""Error taxonomy for navigation and crawl failures.

Raw browser error text is matched against known signatures and mapped onto
a small, stable set of categories. Each category carries a user-readable
explanation; the raw text is kept alongside for diagnostics.
"""

import re
from enum import Enum
from typing import Optional


class ErrorCategory(str, Enum):
    """Stable classification of a navigation failure."""

    DNS = "dns"
    TIMEOUT = "timeout"
    REFUSED = "refused"
    TARGET_CLOSED = "targetClosed"
    HTTP_CLIENT = "httpClient"
    HTTP_SERVER = "httpServer"
    UNKNOWN = "unknown"


_EXPLANATIONS = {
    ErrorCategory.DNS: "Domain name could not be resolved. Check if the URL is correct.",
    ErrorCategory.TIMEOUT: "Connection timed out. The website may be slow or unreachable.",
    ErrorCategory.REFUSED: "Connection was refused. The server may be down or not accepting connections.",
    ErrorCategory.TARGET_CLOSED: (
        "The page was closed unexpectedly during crawling. "
        "This may be due to page instability or anti-bot measures."
    ),
}

_CONNECTION_CLOSED_EXPLANATION = (
    "Connection was closed by the server. "
    "The website may be down or blocking automated requests."
)
_EXHAUSTED_EXPLANATION = (
    "Failed to navigate to the page after multiple attempts. "
    "The website may be experiencing issues."
)

# Order matters: the first matching signature wins.
_SIGNATURES = [
    (ErrorCategory.DNS, ("ERR_NAME_NOT_RESOLVED", "NS_ERROR_UNKNOWN_HOST", "getaddrinfo", "Could not resolve host")),
    (ErrorCategory.REFUSED, ("ERR_CONNECTION_REFUSED", "NS_ERROR_CONNECTION_REFUSED", "Connection refused")),
    (ErrorCategory.REFUSED, ("ERR_CONNECTION_CLOSED", "ERR_CONNECTION_RESET", "ERR_EMPTY_RESPONSE")),
    (ErrorCategory.TIMEOUT, ("ERR_CONNECTION_TIMED_OUT", "ERR_TIMED_OUT", "NS_ERROR_NET_TIMEOUT")),
    (ErrorCategory.TARGET_CLOSED, ("Target closed", "has been closed", "Page was closed", "Target crashed")),
]

_TIMEOUT_RE = re.compile(r"Timeout \d+ms exceeded|timed out", re.IGNORECASE)
_HTTP_RE = re.compile(r"HTTP ([45])\d\d")


def classify_error(message: str) -> ErrorCategory:
    """Map raw error text to an ErrorCategory.

    Args:
        message: Exception text as reported by the browser or transport

    Returns:
        The matching category, or UNKNOWN when no signature matches
    """
    if not message:
        return ErrorCategory.UNKNOWN

    for category, needles in _SIGNATURES:
        if any(needle in message for needle in needles):
            return category

    if _TIMEOUT_RE.search(message):
        return ErrorCategory.TIMEOUT

    match = _HTTP_RE.search(message)
    if match:
        return ErrorCategory.HTTP_CLIENT if match.group(1) == "4" else ErrorCategory.HTTP_SERVER

    return ErrorCategory.UNKNOWN


def describe_error(category: ErrorCategory, raw_message: str = "") -> str:
    """Return the user-facing explanation for a categorized failure."""
    if category in (ErrorCategory.HTTP_CLIENT, ErrorCategory.HTTP_SERVER):
        return f"Server returned an error: {raw_message}"
    if category == ErrorCategory.REFUSED and any(
        needle in raw_message for needle in ("ERR_CONNECTION_CLOSED", "ERR_CONNECTION_RESET", "ERR_EMPTY_RESPONSE")
    ):
        return _CONNECTION_CLOSED_EXPLANATION
    if category == ErrorCategory.UNKNOWN:
        if "Navigation failed after" in raw_message:
            return _EXHAUSTED_EXPLANATION
        return raw_message or "An unknown error occurred."
    return _EXPLANATIONS[category]


class NavigationError(Exception):
    """Navigation to a URL failed after every permitted attempt."""

    def __init__(
        self,
        raw_message: str,
        category: Optional[ErrorCategory] = None,
        http_status: Optional[int] = None,
        attempts: int = 0,
    ):
        self.raw_message = raw_message
        self.category = category or classify_error(raw_message)
        self.http_status = http_status
        self.attempts = attempts
        super().__init__(describe_error(self.category, raw_message))

    @property
    def explanation(self) -> str:
        return str(self)


class CrawlAborted(Exception):
    """The job's cancellation token fired. Distinct from a failure."""

    def __init__(self, reason: str = "Operation aborted"):
        self.reason = reason
        super().__init__(reason)
