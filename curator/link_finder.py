"""Link discovery for extracted topics.

Two interchangeable providers sit behind ``find_links``:

* ``ClaudeLinkProvider``   Claude with the ``web_search`` tool; its answer is
  fed through ``parsers.parse_link_response``.
* ``BraveLinkProvider``    the Brave Search web API, one query per topic.

``find_links`` fails closed: without a usable credential for the chosen
provider it returns an empty result and makes no upstream call. Per-topic
calls run concurrently and a failing call only costs that topic its links.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Optional

import requests
from bs4 import BeautifulSoup

from curator.models import Credential, LinkSearchResult, ProcessedTopic, Provider, RawLink, Topic
from curator.parsers import parse_link_response
from curator.policy import filter_processed_topics, normalize_domain_list

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

#: Beta header name for the Claude web_search tool.
WEB_SEARCH_BETA = "web-search-2025-03-05"
WEB_SEARCH_TOOL = {"type": "web_search_20250305", "name": "web_search"}

BRAVE_SEARCH_URL = "https://api.search.brave.com/res/v1/web/search"
BRAVE_TIMEOUT = 15

_LINK_SYSTEM = (
    "You find high-quality, specific links for topics mentioned in podcasts. "
    "Search the web, then answer with JSON only, in exactly this shape:\n"
    '{"topics": [{"topic": "...", "context": "...", "links": '
    '[{"url": "...", "title": "...", "description": "..."}]}]}\n'
    "Rules:\n"
    "- 2-3 links per topic from established publications and authoritative "
    "organisations; specific pages, not homepages.\n"
    "- Only URLs you saw in search results. Never invent a URL.\n"
    "- For books, prefer the publisher or author page.\n"
    "- Each description is one plain-text sentence (no markdown) saying what "
    "the page contains."
)


class LinkProvider:
    """Common wrapper: one search per topic, errors contained per topic."""

    name = "provider"

    def __init__(self, settings: Settings, credential: Credential) -> None:
        self.settings = settings
        self.credential = credential

    def search(self, topic: Topic, excluded_domains: Sequence[str]) -> list[ProcessedTopic]:
        raise NotImplementedError

    def safe_search(self, topic: Topic, excluded_domains: Sequence[str]) -> list[ProcessedTopic]:
        """``search`` that logs and swallows provider errors."""
        try:
            found = self.search(topic, excluded_domains)
        except Exception:
            logger.exception("%s search failed for topic=%r", self.name, topic.topic)
            return []
        # Pin results to the requested topic so later stages can match it.
        return [
            pt.model_copy(update={
                "topic": topic.topic,
                "context": pt.context or topic.context or None,
            })
            for pt in found
        ]


class ClaudeLinkProvider(LinkProvider):
    """Finds links with Claude's built-in ``web_search`` tool.

    The Anthropic client is lazy-initialised to allow instantiation without
    a live API key (useful in tests when the client is mocked).
    """

    name = "claude"

    def __init__(self, settings: Settings, credential: Credential) -> None:
        super().__init__(settings, credential)
        self._client: object = None

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(
                api_key=self.credential.api_key,
                max_retries=5,
            )
        return self._client

    def search(self, topic: Topic, excluded_domains: Sequence[str]) -> list[ProcessedTopic]:
        avoid = (
            f"\nDo not link to these domains: {', '.join(excluded_domains)}."
            if excluded_domains else ""
        )
        user_message = (
            f"Find links for this podcast topic: {topic.topic}\n"
            f"Context: {topic.context or 'n/a'}{avoid}"
        )
        tool = {**WEB_SEARCH_TOOL, "max_uses": self.settings.max_web_searches}

        response = self.client.beta.messages.create(
            model=self.settings.link_model,
            max_tokens=2000,
            betas=[WEB_SEARCH_BETA],
            tools=[tool],
            system=_LINK_SYSTEM,
            messages=[{"role": "user", "content": user_message}],
        )

        text_parts: list[str] = []
        search_hits: list[RawLink] = []
        for block in getattr(response, "content", []) or []:
            block_type = getattr(block, "type", None)
            if block_type == "text":
                text_parts.append(getattr(block, "text", "") or "")
            elif block_type == "web_search_tool_result":
                for item in getattr(block, "content", []) or []:
                    if getattr(item, "type", None) == "web_search_result":
                        search_hits.append(RawLink(
                            url=getattr(item, "url", "") or "",
                            title=getattr(item, "title", "") or "",
                        ))

        parsed = parse_link_response("".join(text_parts), [topic.topic])
        if parsed:
            return parsed

        if search_hits:
            logger.info(
                "Falling back to %d raw search hits for topic=%r",
                len(search_hits), topic.topic,
            )
            return [ProcessedTopic(topic=topic.topic, context=topic.context, links=search_hits)]
        return []


def _strip_tags(value: str) -> str:
    if "<" not in value:
        return value.strip()
    return BeautifulSoup(value, "html.parser").get_text(" ", strip=True)


class BraveLinkProvider(LinkProvider):
    """Finds links with the Brave Search web API."""

    name = "brave"

    def search(self, topic: Topic, excluded_domains: Sequence[str]) -> list[ProcessedTopic]:
        response = requests.get(
            BRAVE_SEARCH_URL,
            params={"q": topic.topic, "count": self.settings.brave_result_count},
            headers={
                "Accept": "application/json",
                "Accept-Encoding": "gzip",
                "X-Subscription-Token": self.credential.api_key,
            },
            timeout=BRAVE_TIMEOUT,
        )
        response.raise_for_status()
        links = extract_brave_links(response.json())
        if not links:
            logger.info("No Brave results for topic=%r", topic.topic)
            return []
        return [ProcessedTopic(topic=topic.topic, context=topic.context, links=links)]


def extract_brave_links(payload: object) -> list[RawLink]:
    """Read ``web.results`` out of a Brave response, tolerating missing keys."""
    if not isinstance(payload, dict):
        return []
    web = payload.get("web")
    results = web.get("results") if isinstance(web, dict) else None
    if not isinstance(results, list):
        return []

    links: list[RawLink] = []
    for result in results:
        if not isinstance(result, dict) or not result.get("url"):
            continue
        links.append(RawLink(
            url=str(result["url"]),
            title=_strip_tags(str(result.get("title") or "")),
            description=_strip_tags(str(result.get("description") or "")),
        ))
    return links


_PROVIDERS: dict[Provider, type[LinkProvider]] = {
    Provider.PRIMARY: ClaudeLinkProvider,
    Provider.SECONDARY: BraveLinkProvider,
}


def find_links(
    topics: Sequence[Topic],
    provider: Provider,
    credential: Optional[Credential],
    excluded_domains: Sequence[str] = (),
    settings: Optional[Settings] = None,
) -> LinkSearchResult:
    """Find, parse and policy-filter links for every topic.

    Args:
        topics: Topics to search for.
        provider: Which backend to use.
        credential: Credential for *provider*; anything else fails closed.
        excluded_domains: Domains whose links (and subdomains') are dropped.
        settings: Application configuration; defaults to ``Settings()``.

    Returns:
        A ``LinkSearchResult`` holding only topics with at least one link.
    """
    if credential is None or not credential.usable or credential.provider != provider:
        logger.error("No valid %s credential provided; cannot find links", provider.value)
        return LinkSearchResult(error=f"No valid {provider.value} credential provided")

    if not topics:
        return LinkSearchResult()

    if settings is None:
        from config.settings import Settings
        settings = Settings()

    excluded = normalize_domain_list(excluded_domains)
    backend = _PROVIDERS[provider](settings, credential)
    workers = max(1, min(settings.max_search_workers, len(topics)))

    logger.info(
        "Finding links for %d topics via %s (excluding %s)",
        len(topics), backend.name, excluded or "nothing",
    )
    with ThreadPoolExecutor(max_workers=workers) as ex:
        batches = list(ex.map(lambda t: backend.safe_search(t, excluded), topics))

    found = [pt for batch in batches for pt in batch]
    processed = filter_processed_topics(found, excluded)
    logger.info("Found links for %d of %d topics", len(processed), len(topics))
    return LinkSearchResult(processed_topics=processed)
