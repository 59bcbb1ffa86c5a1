"""Soft-404 and paywall detection over fetched HTML.

Plenty of dead or gated pages answer ``200 OK``. The detector looks at the
markup instead of the status code, in three passes:

1. Publisher-specific phrases (``DOMAIN_ERROR_PHRASES``) when the URL belongs
   to a known publisher. A hit here returns immediately.
2. Error keywords inside the ``<title>`` tag.
3. A generic list of soft-404 phrases.

This is a heuristic. Real pages that happen to say "oops" will be flagged and
some dead pages will slip through.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)


# ── Phrase lists ───────────────────────────────────────────────────────────────

GENERIC_ERROR_PHRASES: tuple[str, ...] = (
    "page not found",
    "cannot be found",
    "could not be found",
    "doesn't exist",
    "does not exist",
    "no longer available",
    "no longer exists",
    "been removed",
    "error 404",
    "404 error",
    "not found error",
    "page doesn't exist",
    "page does not exist",
    "content not found",
    "not available",
    "page unavailable",
    "sorry, we couldn't find",
    "page has moved",
    "page may have been moved",
    "moved permanently",
    "page has been deleted",
    "content has moved",
    "page missing",
    "invalid url",
    "broken link",
    "page has expired",
    "requested url was not found",
    "wrong address",
    "went wrong",
    "oops",
    "something went wrong",
    "cannot access",
    "unable to access",
    "url changed",
    "has been deleted",
    "has been removed",
    "nothing found",
    "search did not return",
    "empty search results",
    "no results found",
    "no items found",
)

#: Publisher domain → phrases that mark a paywalled, moved or missing article.
DOMAIN_ERROR_PHRASES: dict[str, tuple[str, ...]] = {
    "hbr.org": (
        "sign in to continue reading",
        "you've reached your monthly limit",
        "subscribe to continue reading",
        "register to continue reading",
        "this article is about",
        "access to this page has been denied",
        "access denied",
        "article not found",
    ),
    "mckinsey.com": (
        "page you are looking for is unavailable",
        "page you requested cannot be found",
        "we can't find the page",
        "moved to a new location",
        "this content has moved",
        "has been transferred",
        "this article is no longer available",
    ),
    "nature.com": (
        "page not found",
        "cited incorrect doi",
        "might have been removed",
        "content unavailable",
        "article has been withdrawn",
    ),
    "forbes.com": (
        "page no longer exists",
        "page has been removed",
        "page has moved",
        "incorrect url",
        "article not found",
        "oops, the page you were looking for",
    ),
}

#: Publishers whose real articles always carry one of these body markers.
ARTICLE_MARKER_DOMAINS: dict[str, tuple[str, ...]] = {
    "forbes.com": ("article-body", "article-content", "article__body"),
    "hbr.org": ("article-body", "article-content", "article__body"),
}

ERROR_TITLE_RE = re.compile(
    r"<title[^>]*>.*?(?:404|not found|error|unavailable|missing|oops).*?</title>",
    re.IGNORECASE | re.DOTALL,
)


# ── Detection ──────────────────────────────────────────────────────────────────


def _domain_phrases(url: str) -> list[tuple[str, tuple[str, ...]]]:
    lowered = url.lower()
    return [(d, p) for d, p in DOMAIN_ERROR_PHRASES.items() if d in lowered]


def find_error_signal(html: str, url: str) -> Optional[str]:
    """Return a short description of the first error signal found, or None.

    Args:
        html: Raw page markup.
        url: The URL the markup was fetched from; selects publisher overrides.
    """
    lowered = html.lower()

    for domain, phrases in _domain_phrases(url):
        for phrase in phrases:
            if phrase in lowered:
                logger.info("%s-specific error pattern for %s: %r", domain, url, phrase)
                return f"{domain} pattern: {phrase}"

    if ERROR_TITLE_RE.search(html):
        logger.info("Error indication in title tag for %s", url)
        return "error keyword in title tag"

    for phrase in GENERIC_ERROR_PHRASES:
        if phrase in lowered:
            logger.info("Generic error pattern for %s: %r", url, phrase)
            return f"generic pattern: {phrase}"

    return None


def is_error_page(html: str, url: str) -> bool:
    """Return True if *html* looks like an error, soft-404 or paywall page.

    Examples:
        >>> is_error_page("<h1>Page Not Found</h1>", "https://site.com/x")
        True
        >>> is_error_page("<title>Welcome</title><p>Hello</p>", "https://site.com/")
        False
    """
    return find_error_signal(html, url) is not None


def missing_article_body(html: str, url: str) -> bool:
    """True when *url* is on a marker publisher and *html* has no article body."""
    lowered_url = url.lower()
    for domain, markers in ARTICLE_MARKER_DOMAINS.items():
        if domain in lowered_url:
            lowered = html.lower()
            return not any(marker in lowered for marker in markers)
    return False
