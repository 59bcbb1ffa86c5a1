"""Topic extraction from podcast transcripts.

A single Claude call with a JSON-schema output format turns a transcript into
a bounded list of ``{topic, context}`` pairs. The extractor never raises and
never invents topics: any failure yields an empty ``TopicExtractionResult``
with ``error`` set, and the caller decides what to do next.

The Anthropic client is lazy-initialised so that the class can be
instantiated in tests without a live API key.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError

from curator.models import Credential, Provider, Topic, TopicExtractionResult
from curator.parsers import load_json
from curator.policy import normalize_topic_list

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

MIN_TOPICS = 1
MAX_TOPICS = 10
DEFAULT_TOPICS = 5

#: Context attached to topics the user typed in by hand.
MANUAL_CONTEXT = "Manually added"

_TOPIC_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "topics": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "topic": {
                        "type": "string",
                        "description": "Specific topic phrase, 1-10 words.",
                    },
                    "context": {
                        "type": "string",
                        "description": "One sentence on why the topic matters in this episode.",
                    },
                },
                "required": ["topic", "context"],
                "additionalProperties": False,
            },
        },
    },
    "required": ["topics"],
    "additionalProperties": False,
}


def clamp_topic_count(count: Any) -> int:
    """Clamp *count* into ``[MIN_TOPICS, MAX_TOPICS]``; junk becomes the default."""
    try:
        value = int(count)
    except (TypeError, ValueError):
        return DEFAULT_TOPICS
    return max(MIN_TOPICS, min(MAX_TOPICS, value))


def build_system_prompt(count: int, avoid_topics: Sequence[str] = ()) -> str:
    """Instructions for the extraction call."""
    avoid = (
        f"Do not return any topic that overlaps with these: {', '.join(avoid_topics)}.\n"
        if avoid_topics else ""
    )
    return (
        "You extract the most important, specific topics from podcast transcripts.\n"
        f"Return exactly {count} topics.\n"
        "Guidelines:\n"
        "- Each topic is 1-10 words, concise yet specific "
        "(\"Quantum computing's threat to RSA\", not \"Quantum computing\").\n"
        "- Focus on concepts, techniques, books, products, organisations or people "
        "discussed in depth; skip generic topics any episode could have.\n"
        "- Books must be written as \"Title by Author\".\n"
        "- Pair every topic with one short sentence of context explaining why it "
        "is interesting in this episode.\n"
        f"{avoid}"
        "Return only JSON of the form {\"topics\": [{\"topic\": ..., \"context\": ...}]}."
    )


def parse_topics_payload(payload: Any, limit: int = MAX_TOPICS) -> list[Topic]:
    """Turn decoded model output into at most *limit* unique topics.

    Accepts ``{"topics": [...]}``, ``{"results": [...]}`` or a bare array.
    Items that are not valid topics are skipped.
    """
    if isinstance(payload, dict):
        items = payload.get("topics")
        if not isinstance(items, list):
            items = payload.get("results")
    else:
        items = payload
    if not isinstance(items, list):
        return []

    topics: list[Topic] = []
    seen: set[str] = set()
    for item in items:
        if isinstance(item, str):
            item = {"topic": item}
        if not isinstance(item, dict):
            continue
        try:
            topic = Topic(
                topic=str(item.get("topic") or item.get("name") or ""),
                context=str(item.get("context") or ""),
            )
        except ValidationError as exc:
            logger.debug("Skipping invalid topic %r: %s", item, exc)
            continue
        if topic.topic.lower() in seen:
            continue
        seen.add(topic.topic.lower())
        topics.append(topic)
    return topics[:limit]


def merge_manual_topics(extracted: Iterable[Topic], manual: Iterable[str]) -> list[Topic]:
    """Append user-entered topics that aren't already present (case-insensitive)."""
    merged = list(extracted)
    existing = {t.topic.lower() for t in merged}
    for name in normalize_topic_list(manual):
        if name.lower() in existing:
            continue
        try:
            merged.append(Topic(topic=name, context=MANUAL_CONTEXT))
        except ValidationError:
            logger.warning("Ignoring manual topic %r: not a valid topic phrase", name)
            continue
        existing.add(name.lower())
    return merged


class TopicExtractor:
    """Extracts topics from a transcript with Claude.

    The credential is passed in explicitly; without a usable one the
    extractor returns an empty result and never calls the API.
    """

    def __init__(self, settings: Settings, credential: Optional[Credential] = None) -> None:
        self.settings = settings
        self.credential = credential
        self._client: object = None  # Lazy-initialised anthropic.Anthropic

    @property
    def client(self) -> object:
        """Lazy-initialise and return the Anthropic SDK client."""
        if self._client is None:
            import anthropic
            self._client = anthropic.Anthropic(
                api_key=self.credential.api_key,
                max_retries=3,
            )
        return self._client

    def _has_credential(self) -> bool:
        return (
            self.credential is not None
            and self.credential.provider == Provider.PRIMARY
            and self.credential.usable
        )

    def extract_topics(
        self,
        transcript: str,
        desired_count: int = DEFAULT_TOPICS,
        avoid_topics: Sequence[str] = (),
    ) -> TopicExtractionResult:
        """Extract up to ``desired_count`` topics from *transcript*.

        Args:
            transcript: Raw transcript text.
            desired_count: Requested number of topics; clamped into 1..10.
            avoid_topics: Topics the model must leave out.

        Returns:
            A ``TopicExtractionResult``. ``topics`` is empty on any failure,
            with ``error`` describing why.
        """
        if not self._has_credential():
            logger.error("No valid Anthropic credential; cannot process transcript")
            return TopicExtractionResult(error="No valid API credential provided")

        if not transcript or not transcript.strip():
            return TopicExtractionResult(error="Transcript is empty")

        count = clamp_topic_count(desired_count)
        avoid = normalize_topic_list(avoid_topics)
        logger.info(
            "Extracting %d topics from transcript of %d chars (avoiding %d)",
            count, len(transcript), len(avoid),
        )

        try:
            response = self.client.messages.create(
                model=self.settings.topic_model,
                max_tokens=1500,
                temperature=0.1,
                system=build_system_prompt(count, avoid),
                messages=[{
                    "role": "user",
                    "content": (
                        f"Extract the {count} most important and specific topics "
                        f"from this podcast transcript.\n\nTranscript:\n{transcript}"
                    ),
                }],
                output_config={
                    "format": {"type": "json_schema", "schema": _TOPIC_SCHEMA}
                },
            )
            text = "".join(
                getattr(block, "text", "") or ""
                for block in response.content
                if getattr(block, "type", "text") == "text"
            )
        except Exception as exc:
            logger.exception("Topic extraction request failed")
            return TopicExtractionResult(error=f"Topic extraction failed: {exc}")

        payload = load_json(text)
        if payload is None:
            logger.error("Topic extraction returned non-JSON output: %.200r", text)
            return TopicExtractionResult(error="Could not parse topics from response")

        topics = parse_topics_payload(payload, limit=count)
        if not topics:
            logger.warning("No topics were extracted from the transcript")
            return TopicExtractionResult(error="No topics found in response")

        if len(topics) < count:
            logger.info("Model returned %d of %d requested topics", len(topics), count)
        return TopicExtractionResult(topics=topics)
