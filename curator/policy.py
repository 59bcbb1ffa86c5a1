"""Domain and topic exclusion lists.

Users may list up to ``MAX_LIST_ENTRIES`` domains (and topics) to keep out of
the results. Domains are reduced to their registrable form (``www.bbc.co.uk/news``
→ ``bbc.co.uk``) using the public suffix list bundled with ``tldextract``, so
an entry excludes the site and every subdomain of it.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from urllib.parse import urlsplit

import tldextract

from curator.models import ProcessedTopic, RawLink
from curator.url_syntax import is_valid_url

logger = logging.getLogger(__name__)

MAX_LIST_ENTRIES = 10

# Offline extractor: uses the snapshot shipped with tldextract, never fetches.
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def normalize_domain(value: str) -> str:
    """Reduce a user-entered domain or URL to its registrable domain.

    Examples:
        >>> normalize_domain("https://www.News.Example.org/path?q=1")
        'example.org'
        >>> normalize_domain("sub.example.co.uk")
        'example.co.uk'
    """
    host = _SCHEME_RE.sub("", value.strip().lower())
    host = re.split(r"[/?#]", host, maxsplit=1)[0]
    host = host.rsplit("@", 1)[-1].split(":", 1)[0].strip(".")
    if host.startswith("www."):
        host = host[4:]
    if not host:
        return ""

    ext = _EXTRACT(host)
    if ext.domain and ext.suffix:
        return f"{ext.domain}.{ext.suffix}"
    return host


def normalize_domain_list(values: Iterable[str], limit: int = MAX_LIST_ENTRIES) -> list[str]:
    """Normalise, de-duplicate and cap a list of domains (comma lists allowed)."""
    result: list[str] = []
    for value in values:
        for part in str(value).split(","):
            domain = normalize_domain(part)
            if domain and domain not in result:
                result.append(domain)
    if len(result) > limit:
        logger.warning("Domain list truncated to %d entries", limit)
    return result[:limit]


def normalize_topic_list(values: Iterable[str], limit: int = MAX_LIST_ENTRIES) -> list[str]:
    """Trim, drop blanks and case-insensitive duplicates, cap at *limit*."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        topic = " ".join(str(value).split())
        if topic and topic.lower() not in seen:
            seen.add(topic.lower())
            result.append(topic)
    return result[:limit]


def drop_avoided_topics(topics: list, avoid_topics: Iterable[str]) -> list:
    """Remove topics whose text equals an avoided topic (case-insensitive).

    Overlap that isn't an exact match is left to the extraction prompt.
    """
    avoided = {t.lower() for t in normalize_topic_list(avoid_topics)}
    if not avoided:
        return list(topics)
    kept = [t for t in topics if t.topic.lower() not in avoided]
    if len(kept) < len(topics):
        logger.info("Dropped %d avoided topics", len(topics) - len(kept))
    return kept


def _host(url: str) -> str:
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def is_excluded(url: str, excluded_domains: Iterable[str]) -> bool:
    """True when the host of *url* is, or is under, one of *excluded_domains*."""
    host = _host(url)
    if not host:
        return False
    return any(host == d or host.endswith("." + d) for d in excluded_domains if d)


def filter_links(links: Iterable[RawLink], excluded_domains: Iterable[str] = ()) -> list[RawLink]:
    """Keep links with a syntactically valid URL outside the excluded domains."""
    excluded = list(excluded_domains)
    kept: list[RawLink] = []
    for link in links:
        if not is_valid_url(link.url):
            logger.debug("Dropping link with invalid URL: %r", link.url)
            continue
        if is_excluded(link.url, excluded):
            logger.info("Dropping link from excluded domain: %s", link.url)
            continue
        kept.append(link)
    return kept


def filter_processed_topics(
    processed_topics: Iterable[ProcessedTopic],
    excluded_domains: Iterable[str] = (),
) -> list[ProcessedTopic]:
    """Apply ``filter_links`` to every topic and drop topics left empty."""
    excluded = list(excluded_domains)
    result: list[ProcessedTopic] = []
    for pt in processed_topics:
        links = filter_links(pt.links, excluded)
        if links:
            result.append(pt.model_copy(update={"links": links}))
        else:
            logger.info("No usable links left for topic %r", pt.topic)
    return result
