"""
Data models shared across the link curator core.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

#: Upper bound on words in a single topic phrase.
MAX_TOPIC_WORDS = 10


class Provider(str, Enum):
    """Link discovery backends."""

    PRIMARY = "claude"     # Claude with the web_search tool
    SECONDARY = "brave"    # Brave Search API


class ProcessingStage(str, Enum):
    """Where a curation run currently is."""

    INITIAL = "initial"
    PROCESSING_TRANSCRIPT = "processing-transcript"
    FINDING_LINKS = "finding-links"
    VALIDATING_LINKS = "validating-links"
    COMPLETE = "complete"


class Credential(BaseModel):
    """An API key bound to the provider it belongs to."""

    provider: Provider
    api_key: str

    @property
    def usable(self) -> bool:
        return bool(self.api_key and self.api_key.strip())


class Topic(BaseModel):
    """A subject pulled from (or added to) a transcript."""

    topic: str
    context: str = ""
    checked: bool = True

    @field_validator("topic")
    @classmethod
    def _short_phrase(cls, value: str) -> str:
        value = " ".join(value.split())
        if not value:
            raise ValueError("topic must not be empty")
        if len(value.split()) > MAX_TOPIC_WORDS:
            raise ValueError(f"topic must be at most {MAX_TOPIC_WORDS} words")
        return value


class RawLink(BaseModel):
    """A link as reported by a provider. Untrusted: any field may be junk."""

    url: str = ""
    title: str = ""
    description: str = ""


class ProcessedTopic(BaseModel):
    """A topic bundled with its discovered links."""

    topic: str
    context: Optional[str] = None
    links: list[RawLink] = Field(default_factory=list)


class LinkItem(BaseModel):
    """Final, user-facing record combining a topic and one link."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    topic: str
    url: str
    title: str
    description: str
    context: Optional[str] = None
    checked: bool = True


class CacheEntry(BaseModel):
    """A stored deep-validation verdict.

    One timestamp backs two horizons: ``is_fresh`` decides whether the verdict
    can be trusted without re-checking, ``is_retained`` whether the row should
    be kept at all.
    """

    url: str
    is_valid: bool
    metadata: dict[str, Any] = Field(default_factory=dict)
    cached_at: datetime

    def age(self, now: datetime) -> timedelta:
        return now - self.cached_at

    def is_fresh(self, now: datetime, window: timedelta) -> bool:
        return self.age(now) < window

    def is_retained(self, now: datetime, ceiling: timedelta) -> bool:
        return self.age(now) < ceiling


# ── Stage results ──────────────────────────────────────────────────────────────


@dataclass
class TopicExtractionResult:
    """Outcome of a topic extraction call."""

    topics: list[Topic] = field(default_factory=list)
    used_mock_data: bool = False
    error: Optional[str] = None


@dataclass
class LinkSearchResult:
    """Outcome of a link search across all topics for one provider."""

    processed_topics: list[ProcessedTopic] = field(default_factory=list)
    used_mock_data: bool = False
    error: Optional[str] = None


@dataclass
class ValidationResult:
    """Verdict from deep URL validation."""

    is_valid: bool
    metadata: dict[str, Any] = field(default_factory=dict)
    from_cache: bool = False

    def to_response(self) -> dict[str, Any]:
        """Shape used on the HTTP service boundary."""
        return {
            "isValid": self.is_valid,
            "metadata": self.metadata,
            "fromCache": self.from_cache,
        }
