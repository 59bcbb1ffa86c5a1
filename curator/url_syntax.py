"""Offline URL syntax checks.

Generative providers invent URLs. This module is the cheap first filter that
runs before any network round-trip: it only looks at the string.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)


# ── Allow-lists ────────────────────────────────────────────────────────────────

#: Root domains accepted regardless of the generic TLD shape check.
TRUSTED_DOMAINS: frozenset[str] = frozenset([
    "github.com", "wikipedia.org", "nature.com", "nih.gov",
    "pubmed.gov", "ncbi.nlm.nih.gov", "sciencedirect.com",
    "springer.com", "ieee.org", "acm.org", "arxiv.org",
    "harvard.edu", "mit.edu", "stanford.edu", "edx.org",
    "coursera.org", "udacity.com", "mckinsey.com", "hbr.org",
])

#: Top-level domains accepted by the generic shape check.
VALID_TLDS: frozenset[str] = frozenset([
    "com", "org", "net", "edu", "gov", "io", "co",
    "us", "uk", "ca", "au", "de", "fr", "jp",
    "cn", "ru", "br", "in", "it", "nl", "es", "app",
])

#: Markers of fabricated or local URLs. Dotted markers match the host or any
#: subdomain of it; the rest match anywhere in the host.
PLACEHOLDER_MARKERS: tuple[str, ...] = (
    "example.com", "test.com", "domain.com", "mysite.com", "website.com",
    "localhost", "placeholder", "127.0.0.1",
)

_HOST_RE = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z]{2,}$"
)
_FORBIDDEN_CHARS = (" ", "<", ">")


def _matches_domain(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def _hostname(url: str) -> str:
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_trusted_domain(url: str) -> bool:
    """Return True when *url* points at one of ``TRUSTED_DOMAINS``."""
    host = _hostname(url)
    return bool(host) and any(_matches_domain(host, d) for d in TRUSTED_DOMAINS)


def _is_placeholder(host: str) -> bool:
    for marker in PLACEHOLDER_MARKERS:
        if "." in marker and not marker[0].isdigit():
            if _matches_domain(host, marker):
                return True
        elif marker in host:
            return True
    return False


def is_valid_url(url: str) -> bool:
    """Return True if *url* looks like a real, absolute http(s) URL.

    Never raises and never touches the network.

    Examples:
        >>> is_valid_url("https://en.wikipedia.org/wiki/Podcast")
        True
        >>> is_valid_url("https://example.com/page")
        False
        >>> is_valid_url("ftp://files.mit.edu/readme")
        False
    """
    if not isinstance(url, str) or not url:
        return False

    try:
        parts = urlsplit(url)
        host = (parts.hostname or "").lower()
    except ValueError:
        logger.debug("Unparseable URL: %r", url)
        return False

    if not parts.scheme or not parts.netloc:
        return False
    if parts.scheme.lower() not in ("http", "https"):
        return False
    if len(host) < 3:
        return False

    trusted = any(_matches_domain(host, d) for d in TRUSTED_DOMAINS)
    if not trusted:
        if not _HOST_RE.match(host):
            return False
        if host.rsplit(".", 1)[-1] not in VALID_TLDS:
            return False

    if _is_placeholder(host):
        return False

    if any(ch in url for ch in _FORBIDDEN_CHARS):
        return False

    return True
