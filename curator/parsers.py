"""Turning provider output into ``ProcessedTopic`` lists.

Providers are asked for ``{"topics": [{"topic", "context", "links": [...]}]}``
but return whatever they like: a bare array, a ``results`` key, links under
``sources``, JSON wrapped in a Markdown fence, or plain prose with URLs in it.

``parse_link_response`` runs ``PARSER_CHAIN``, a list of ``(predicate, parser)``
pairs tried in order, and returns the first non-empty result:

1. ``parse_strict``            the documented JSON shape
2. ``parse_loose``             arrays, alternate keys, string-only link lists
3. ``extract_links_from_text`` regex scan of free text
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Sequence
from typing import Any, Optional
from urllib.parse import urlsplit

from curator.models import ProcessedTopic, RawLink

logger = logging.getLogger(__name__)

Parser = Callable[[str, Sequence[str]], list[ProcessedTopic]]
Predicate = Callable[[str], bool]

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
URL_RE = re.compile(r"https?://[^\s<>\"'`\]\)]+")
_TRAILING_PUNCT = ".,;:!?*"

_MARKDOWN_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^\s)]+)\)")
_QUOTED_RE = re.compile(r"[\"“]([^\"”\n]{3,120})[\"”]")
_CAPITALIZED_PAIR_RE = re.compile(r"\b([A-Z][a-z]+ [A-Z][a-z]+)\b")
_PARAGRAPH_SPLIT_RE = re.compile(r"\r?\n\s*\r?\n")

DESCRIPTION_CHARS = 150


# ── JSON helpers ───────────────────────────────────────────────────────────────


def load_json(content: str) -> Optional[Any]:
    """Parse JSON from *content*, unwrapping code fences and surrounding prose.

    Returns None when nothing JSON-like can be decoded.
    """
    if not content or not content.strip():
        return None

    text = content.strip()
    fenced = _FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            try:
                return json.loads(text[start:end + 1])
            except json.JSONDecodeError:
                continue
    return None


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def _first(mapping: dict, keys: Sequence[str]) -> Any:
    for key in keys:
        if mapping.get(key) not in (None, "", []):
            return mapping[key]
    return None


# ── Strategy 1: strict ─────────────────────────────────────────────────────────


def _strict_link(raw: Any) -> Optional[RawLink]:
    if not isinstance(raw, dict) or not _text(raw.get("url")):
        return None
    return RawLink(
        url=_text(raw.get("url")),
        title=_text(raw.get("title")),
        description=_text(raw.get("description")),
    )


def parse_strict(content: str, topics: Sequence[str] = ()) -> list[ProcessedTopic]:
    """Parse ``{"topics": [{"topic": ..., "links": [{url, title, description}]}]}``."""
    data = load_json(content)
    if not isinstance(data, dict) or not isinstance(data.get("topics"), list):
        return []

    result: list[ProcessedTopic] = []
    for item in data["topics"]:
        if not isinstance(item, dict) or not _text(item.get("topic")):
            continue
        if not isinstance(item.get("links"), list):
            continue
        links = [link for link in map(_strict_link, item["links"]) if link]
        if links:
            result.append(ProcessedTopic(
                topic=_text(item["topic"]),
                context=_text(item.get("context")) or None,
                links=links,
            ))
    return result


# ── Strategy 2: loose ──────────────────────────────────────────────────────────

_TOPIC_KEYS = ("topic", "name", "subject")
_LINK_LIST_KEYS = ("links", "sources", "urls", "resources", "results")
_URL_KEYS = ("url", "link", "href", "uri")
_TITLE_KEYS = ("title", "name", "label")
_DESCRIPTION_KEYS = ("description", "snippet", "summary", "relevance")


def _loose_link(raw: Any) -> Optional[RawLink]:
    if isinstance(raw, str):
        match = URL_RE.search(raw)
        return RawLink(url=match.group(0).rstrip(_TRAILING_PUNCT)) if match else None
    if not isinstance(raw, dict):
        return None
    url = _text(_first(raw, _URL_KEYS))
    if not url:
        return None
    return RawLink(
        url=url,
        title=_text(_first(raw, _TITLE_KEYS)),
        description=_text(_first(raw, _DESCRIPTION_KEYS)),
    )


def _looks_like_link(item: Any) -> bool:
    return isinstance(item, dict) and _first(item, _URL_KEYS) is not None and not any(
        isinstance(item.get(k), list) for k in _LINK_LIST_KEYS
    )


def _loose_items(data: Any) -> list[Any]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        for key in ("topics", "results", "data", "items"):
            if isinstance(data.get(key), list):
                return data[key]
        if any(isinstance(data.get(k), list) for k in _LINK_LIST_KEYS):
            return [data]
    return []


def parse_loose(content: str, topics: Sequence[str] = ()) -> list[ProcessedTopic]:
    """Parse top-level arrays, ``results`` keys and alternate field names.

    A flat list of links is attributed to the requested topic when exactly
    one topic was asked for.
    """
    data = load_json(content)
    items = _loose_items(data)
    if not items:
        return []

    if all(_looks_like_link(i) or isinstance(i, str) for i in items):
        if len(topics) != 1:
            return []
        links = [link for link in map(_loose_link, items) if link]
        return [ProcessedTopic(topic=topics[0], links=links)] if links else []

    fallback_topic = topics[0] if len(topics) == 1 else ""
    result: list[ProcessedTopic] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = _text(_first(item, _TOPIC_KEYS)) or fallback_topic
        raw_links = _first(item, _LINK_LIST_KEYS)
        if not name or not isinstance(raw_links, list):
            continue
        links = [link for link in map(_loose_link, raw_links) if link]
        if links:
            result.append(ProcessedTopic(
                topic=name,
                context=_text(_first(item, ("context", "reason", "why"))) or None,
                links=links,
            ))
    return result


# ── Strategy 3: free text ──────────────────────────────────────────────────────


def _clean_url(url: str) -> str:
    return url.rstrip(_TRAILING_PUNCT)


def _guess_title(paragraph: str, url: str, position: int, fallback: str) -> str:
    for label, href in _MARKDOWN_LINK_RE.findall(paragraph):
        if _clean_url(href) == url and not URL_RE.fullmatch(label.strip()):
            return label.strip()

    window = paragraph[max(0, position - 50):position + len(url) + 50]
    window = window.replace(url, " ")
    for pattern in (_QUOTED_RE, _CAPITALIZED_PAIR_RE):
        match = pattern.search(window)
        if match:
            return match.group(1).strip()
    return fallback


def _guess_description(paragraph: str, url: str, position: int) -> str:
    tail = paragraph[position + len(url):]
    tail = URL_RE.sub(" ", tail)
    tail = re.sub(r"^[\s\)\]\*:;,.\-–—]+", "", tail)
    tail = " ".join(tail.split())[:DESCRIPTION_CHARS].strip()
    if tail:
        return tail

    lines = paragraph[:position].split("\n")
    if len(lines) >= 2:
        previous = " ".join(lines[-2].split()).strip("-*#: ")
        if previous:
            return previous[:DESCRIPTION_CHARS]
    return ""


def extract_links_from_text(text: str, topics: Sequence[str]) -> list[ProcessedTopic]:
    """Find URLs in free text and attach them to topics named nearby.

    Each paragraph is attributed to the first topic whose name it mentions;
    paragraphs that mention none are skipped, unless only one topic was
    requested, in which case every URL belongs to it.
    """
    if not text or not URL_RE.search(text):
        return []

    grouped: dict[str, ProcessedTopic] = {}
    single = topics[0] if len(topics) == 1 else None

    for paragraph in _PARAGRAPH_SPLIT_RE.split(text):
        lowered = paragraph.lower()
        topic = next((t for t in topics if t and t.lower() in lowered), single)
        if not topic:
            continue

        for match in URL_RE.finditer(paragraph):
            url = _clean_url(match.group(0))
            entry = grouped.setdefault(topic, ProcessedTopic(
                topic=topic,
                context=paragraph.strip()[:DESCRIPTION_CHARS] + "...",
                links=[],
            ))
            if any(link.url == url for link in entry.links):
                continue
            entry.links.append(RawLink(
                url=url,
                title=_guess_title(paragraph, url, match.start(), topic),
                description=_guess_description(paragraph, url, match.start())
                or f"Link related to {topic}",
            ))

    return [pt for pt in grouped.values() if pt.links]


# ── Chain ──────────────────────────────────────────────────────────────────────


def _looks_like_json(content: str) -> bool:
    return load_json(content) is not None


def _has_url(content: str) -> bool:
    return bool(URL_RE.search(content or ""))


PARSER_CHAIN: list[tuple[Predicate, Parser]] = [
    (_looks_like_json, parse_strict),
    (_looks_like_json, parse_loose),
    (_has_url, extract_links_from_text),
]


def parse_link_response(content: str, topics: Sequence[str]) -> list[ProcessedTopic]:
    """Run ``PARSER_CHAIN`` over *content* and return the first non-empty result."""
    for predicate, parser in PARSER_CHAIN:
        if not predicate(content):
            continue
        result = parser(content, topics)
        if result:
            logger.debug("Parsed %d topics with %s", len(result), parser.__name__)
            return result
    logger.warning("No links could be parsed from provider response")
    return []


# ── User-supplied links ────────────────────────────────────────────────────────

_USER_LINK_RE = re.compile(r"^(.*?):\s*(https?://\S+)$")


def parse_user_provided_links(text: str) -> list[ProcessedTopic]:
    """Parse ``topic: url`` lines into processed topics.

    Titles are built from the URL path, descriptions from the domain. Lines
    whose URL has no parseable host are skipped.
    """
    grouped: dict[str, list[RawLink]] = {}
    for line in text.splitlines():
        match = _USER_LINK_RE.match(line.strip())
        if not match or not match.group(1).strip():
            continue
        topic, url = match.group(1).strip(), match.group(2)
        try:
            parts = urlsplit(url)
            host = parts.hostname
        except ValueError as exc:
            logger.warning("Skipping user link %r: %s", url, exc)
            continue
        if not host:
            logger.warning("Skipping user link %r: no host", url)
            continue

        links = grouped.setdefault(topic, [])
        if any(link.url == url for link in links):
            continue
        path = " ".join(p for p in parts.path.split("/") if p)
        title = f"{topic} - {path[:1].upper()}{path[1:]}" if path else f"{topic} - Official Resource"
        links.append(RawLink(
            url=url,
            title=title,
            description=f"Resource about {topic} from {host.removeprefix('www.')}",
        ))

    return [ProcessedTopic(topic=topic, links=links) for topic, links in grouped.items()]
