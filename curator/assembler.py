"""Link item assembly.

Responsibilities:
- Group processed topics by topic name and drop repeated ``(topic, url)`` pairs
- Strip a redundant leading topic name from link titles
- Produce UI-ready ``LinkItem`` records with fresh ids and checked state

Grouping happens before assembly: two providers (or two calls) may report
the same link for the same topic, and only the first one survives.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from urllib.parse import urlsplit

from curator.models import LinkItem, ProcessedTopic, Topic

logger = logging.getLogger(__name__)

UNTITLED = "Untitled Link"
NO_DESCRIPTION = "No description available"
UNKNOWN_TOPIC = "Unknown Topic"

_TITLE_SEPARATORS = (" - ", ": ")


# ── Deduplication ──────────────────────────────────────────────────────────────


def normalize_url(url: str) -> str:
    """Comparison key for URLs: trailing slashes stripped, scheme and host lowercased.

    ``https://Example.com/`` and ``https://example.com`` are the same resource;
    paths keep their case, so ``/Paper`` and ``/paper`` stay distinct.
    """
    url = url.strip().rstrip("/")
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    return parts._replace(scheme=parts.scheme.lower(), netloc=parts.netloc.lower()).geturl()


def dedupe_processed_topics(processed_topics: Iterable[ProcessedTopic]) -> list[ProcessedTopic]:
    """Merge entries for the same topic and keep the first of each URL.

    Topics are matched case-insensitively; the first spelling, context and
    position win. Topics left with no links are dropped.
    """
    merged: dict[str, ProcessedTopic] = {}
    seen: dict[str, set[str]] = {}

    for pt in processed_topics:
        if not pt or not pt.topic:
            continue
        key = pt.topic.strip().lower()
        if key not in merged:
            merged[key] = ProcessedTopic(topic=pt.topic, context=pt.context, links=[])
            seen[key] = set()
        elif not merged[key].context and pt.context:
            merged[key].context = pt.context

        for link in pt.links:
            normalised = normalize_url(link.url or "")
            if not normalised or normalised in seen[key]:
                continue
            seen[key].add(normalised)
            merged[key].links.append(link)

    return [pt for pt in merged.values() if pt.links]


# ── Title cleanup ──────────────────────────────────────────────────────────────


def clean_title(title: str, topic: str) -> str:
    """Remove a leading repetition of *topic* from *title*.

    If nothing would be left, the original title is kept.

    Examples:
        >>> clean_title("AI Ethics - Deep Dive", "AI Ethics")
        'Deep Dive'
        >>> clean_title("AI Ethics", "AI Ethics")
        'AI Ethics'
    """
    original = title or UNTITLED
    lowered, prefix = original.lower(), topic.lower()

    cleaned = original
    if prefix and (
        lowered == prefix
        or any(lowered.startswith(prefix + sep) for sep in _TITLE_SEPARATORS)
    ):
        cleaned = original[len(topic):].lstrip(" -:").strip()

    return cleaned if cleaned.strip() else original


# ── Assembly ───────────────────────────────────────────────────────────────────


def assemble(
    processed_topics: Iterable[ProcessedTopic],
    topic_items: Iterable[Topic],
) -> list[LinkItem]:
    """Turn processed topics into ``LinkItem`` records.

    Args:
        processed_topics: Topics with their (already filtered) links.
        topic_items: Current topics; each link inherits its topic's
            ``checked`` state, defaulting to True when the topic is unknown.

    Returns:
        One ``LinkItem`` per link, each with a fresh id.
    """
    checked_by_topic = {t.topic: t.checked for t in topic_items}
    items: list[LinkItem] = []

    for pt in processed_topics:
        if pt is None or not isinstance(pt.links, list):
            logger.warning("Skipping invalid processed topic: %r", pt)
            continue
        topic_name = pt.topic or UNKNOWN_TOPIC

        for link in pt.links:
            if link is None:
                continue
            items.append(LinkItem(
                topic=topic_name,
                url=link.url or "#",
                title=clean_title(link.title, topic_name),
                description=link.description or NO_DESCRIPTION,
                context=pt.context,
                checked=checked_by_topic.get(topic_name, True),
            ))

    logger.info("Created %d link items total", len(items))
    return items
