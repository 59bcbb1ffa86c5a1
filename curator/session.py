"""Per-run curation state: processing stage, topics, links and toggles."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional

from curator.models import LinkItem, ProcessingStage, Topic

logger = logging.getLogger(__name__)


def transcript_hash(transcript: str) -> str:
    return hashlib.sha256(transcript.encode("utf-8")).hexdigest()


@dataclass
class CurationSession:
    """Everything a user curates for one transcript.

    A new transcript replaces the whole collection via ``reset``; links are
    never deleted one by one.
    """

    stage: ProcessingStage = ProcessingStage.INITIAL
    topics: list[Topic] = field(default_factory=list)
    links: list[LinkItem] = field(default_factory=list)
    transcript_hash: str = ""
    error: Optional[str] = None
    used_mock_data: bool = False

    @property
    def status(self) -> str:
        """``"processing"`` until complete, then ``"empty"`` or ``"ready"``."""
        if self.stage != ProcessingStage.COMPLETE:
            return "processing"
        return "ready" if self.links else "empty"

    def reset(self, transcript: str) -> bool:
        """Clear results for a new run. Returns True if the transcript is unchanged."""
        new_hash = transcript_hash(transcript)
        same = bool(self.transcript_hash) and new_hash == self.transcript_hash
        if same and self.links:
            logger.info("Processing the same transcript again; results may be similar")
        self.transcript_hash = new_hash
        self.stage = ProcessingStage.PROCESSING_TRANSCRIPT
        self.topics = []
        self.links = []
        self.error = None
        self.used_mock_data = False
        return same

    def toggle_link(self, link_id: str, checked: bool) -> bool:
        """Set ``checked`` on one link. Returns False if the id is unknown."""
        for link in self.links:
            if link.id == link_id:
                link.checked = checked
                return True
        return False

    def toggle_topic(self, topic: str, checked: bool) -> None:
        """Set ``checked`` on a topic and every link under it."""
        for item in self.topics:
            if item.topic == topic:
                item.checked = checked
        for link in self.links:
            if link.topic == topic:
                link.checked = checked

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "stage": self.stage.value,
            "error": self.error,
            "usedMockData": self.used_mock_data,
            "topics": [t.model_dump() for t in self.topics],
            "links": [link.model_dump() for link in self.links],
        }
