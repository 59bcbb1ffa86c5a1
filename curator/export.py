"""Shareable renderings of the curated links.

Only checked ``LinkItem``s are exported, grouped under their topic in the
order topics first appear.
"""

from __future__ import annotations

import html
from collections.abc import Iterable
from enum import Enum

from curator.models import LinkItem


class ExportFormat(str, Enum):
    MARKDOWN = "markdown"
    TEXT = "text"
    HTML = "html"


MIMETYPES: dict[ExportFormat, str] = {
    ExportFormat.MARKDOWN: "text/markdown",
    ExportFormat.TEXT: "text/plain",
    ExportFormat.HTML: "text/html",
}


def group_checked_by_topic(links: Iterable[LinkItem]) -> dict[str, list[LinkItem]]:
    """Checked links keyed by topic, preserving first-appearance order."""
    groups: dict[str, list[LinkItem]] = {}
    for link in links:
        if link.checked:
            groups.setdefault(link.topic, []).append(link)
    return groups


def to_text(links: Iterable[LinkItem]) -> str:
    blocks = []
    for topic, items in group_checked_by_topic(links).items():
        lines = [topic] + [f"{item.title}: {item.url}" for item in items]
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def to_markdown(links: Iterable[LinkItem]) -> str:
    blocks = []
    for topic, items in group_checked_by_topic(links).items():
        lines = [f"## {topic}", ""] + [f"- [{item.title}]({item.url})" for item in items]
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks)


def to_html(links: Iterable[LinkItem]) -> str:
    sections = []
    for topic, items in group_checked_by_topic(links).items():
        entries = "\n".join(
            f'  <li><a href="{html.escape(item.url, quote=True)}">{html.escape(item.title)}</a></li>'
            for item in items
        )
        sections.append(f"<h2>{html.escape(topic)}</h2>\n<ul>\n{entries}\n</ul>")
    return "\n".join(sections)


_RENDERERS = {
    ExportFormat.MARKDOWN: to_markdown,
    ExportFormat.TEXT: to_text,
    ExportFormat.HTML: to_html,
}


def render(links: Iterable[LinkItem], fmt: ExportFormat | str) -> str:
    """Render *links* in *fmt*. Raises ``ValueError`` for unknown formats."""
    return _RENDERERS[ExportFormat(fmt)](links)
