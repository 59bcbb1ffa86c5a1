"""End-to-end curation run.

Flow
────
1. extract topics from the transcript (Claude)
     → no topics: stop here, the session ends empty with ``error`` set
2. drop avoided topics, append manually added ones
3. find links per provider (Claude web search and/or Brave), plus any
   ``topic: url`` lines the user supplied
4. merge provider results, one entry per (topic, url)
5. deep-validate every link (cached, bounded concurrency), optional
6. assemble ``LinkItem`` records

``run_pipeline`` never raises for provider or network trouble; it always
hands back a completed ``CurationSession`` whose ``status`` is ``"ready"`` or
``"empty"``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from curator import cache as url_cache
from curator.assembler import assemble, dedupe_processed_topics
from curator.link_finder import find_links
from curator.models import Credential, ProcessedTopic, ProcessingStage, Provider
from curator.parsers import parse_user_provided_links
from curator.policy import (
    drop_avoided_topics,
    filter_processed_topics,
    normalize_domain_list,
    normalize_topic_list,
)
from curator.session import CurationSession
from curator.topics import DEFAULT_TOPICS, TopicExtractor, merge_manual_topics
from curator.validator import validate_processed_topics

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class ProcessingRequest:
    """User choices for one run."""

    topic_count: int = DEFAULT_TOPICS
    providers: tuple[Provider, ...] = (Provider.PRIMARY,)
    credentials: dict[Provider, Credential] = field(default_factory=dict)
    avoid_topics: list[str] = field(default_factory=list)
    add_topics: list[str] = field(default_factory=list)
    excluded_domains: list[str] = field(default_factory=list)
    #: Free text of `topic: url` lines the user already has links for.
    user_links: str = ""
    deep_validation: bool = True
    use_cache: bool = True

    def __post_init__(self) -> None:
        self.avoid_topics = normalize_topic_list(self.avoid_topics)
        self.add_topics = normalize_topic_list(self.add_topics)
        self.excluded_domains = normalize_domain_list(self.excluded_domains)

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> ProcessingRequest:
        """Build a request whose credentials come from *settings*."""
        credentials = {}
        for provider in Provider:
            credential = settings.credential_for(provider)
            if credential is not None:
                credentials[provider] = credential
        return cls(credentials=credentials, **kwargs)


def run_pipeline(
    transcript: str,
    request: ProcessingRequest,
    settings: Optional[Settings] = None,
    session: Optional[CurationSession] = None,
) -> CurationSession:
    """Process *transcript* into curated links.

    Args:
        transcript: Podcast transcript text.
        request: Topic count, providers, credentials and exclusion lists.
        settings: Application configuration; defaults to ``Settings()``.
        session: Session to reuse (its previous results are replaced).

    Returns:
        The completed session.
    """
    if settings is None:
        from config.settings import Settings
        settings = Settings()
    session = session or CurationSession()
    session.reset(transcript)

    try:
        _run(transcript, request, settings, session)
    except Exception as exc:
        logger.exception("Curation run failed")
        session.error = f"Processing failed: {exc}"
        session.links = []
    session.stage = ProcessingStage.COMPLETE

    if session.links:
        logger.info(
            "Found %d links across %d topics",
            len(session.links), len({link.topic for link in session.links}),
        )
    else:
        logger.warning("No links found for the extracted topics")
    return session


def _run(
    transcript: str,
    request: ProcessingRequest,
    settings: Settings,
    session: CurationSession,
) -> None:
    extractor = TopicExtractor(settings, request.credentials.get(Provider.PRIMARY))
    extraction = extractor.extract_topics(transcript, request.topic_count, request.avoid_topics)
    session.used_mock_data = extraction.used_mock_data

    if not extraction.topics:
        session.error = extraction.error or "No topics found"
        logger.warning("Stopping after topic extraction: %s", session.error)
        return

    topics = drop_avoided_topics(extraction.topics, request.avoid_topics)
    session.topics = merge_manual_topics(topics, request.add_topics)

    session.stage = ProcessingStage.FINDING_LINKS
    found: list[ProcessedTopic] = []
    errors: list[str] = []
    for provider in request.providers:
        result = find_links(
            session.topics,
            provider,
            request.credentials.get(provider),
            request.excluded_domains,
            settings=settings,
        )
        found.extend(result.processed_topics)
        if result.error:
            errors.append(result.error)

    if request.user_links.strip():
        found.extend(filter_processed_topics(
            parse_user_provided_links(request.user_links), request.excluded_domains
        ))

    processed = dedupe_processed_topics(found)

    if request.deep_validation and processed:
        session.stage = ProcessingStage.VALIDATING_LINKS
        if request.use_cache:
            url_cache.init_db()
        processed = validate_processed_topics(processed, settings, use_cache=request.use_cache)

    session.links = assemble(processed, session.topics)
    if not session.links and errors:
        session.error = "; ".join(errors)
