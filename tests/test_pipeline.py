"""
Tests for curator/pipeline.py

Topic extraction, link finding and deep validation are mocked at the
pipeline's import sites.

Run with: pytest tests/test_pipeline.py
"""

from unittest.mock import patch

import pytest

import curator.cache as url_cache
from config.settings import Settings
from curator.models import (
    Credential,
    LinkSearchResult,
    ProcessedTopic,
    ProcessingStage,
    Provider,
    RawLink,
    Topic,
    TopicExtractionResult,
)
from curator.pipeline import ProcessingRequest, run_pipeline
from curator.session import CurationSession

TRANSCRIPT = "We discussed AI ethics, bitcoin and qubits at length."
CREDENTIALS = {
    Provider.PRIMARY: Credential(provider=Provider.PRIMARY, api_key="sk-test"),
    Provider.SECONDARY: Credential(provider=Provider.SECONDARY, api_key="brave-test"),
}


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point DB_PATH to a fresh temp file for each test."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test_cache.db"))
    url_cache.init_db()
    yield


@pytest.fixture
def settings(monkeypatch) -> Settings:
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.delenv("BRAVE_API_KEY", raising=False)
    return Settings()


def found(topic: str, *urls: str) -> LinkSearchResult:
    return LinkSearchResult(processed_topics=[
        ProcessedTopic(topic=topic, links=[RawLink(url=u, title="Page") for u in urls])
    ])


class TestHaltsWithoutTopics:
    @patch("curator.pipeline.find_links")
    def test_no_credential(self, mock_find, settings):
        session = run_pipeline(TRANSCRIPT, ProcessingRequest(), settings)

        assert session.topics == []
        assert session.links == []
        assert session.used_mock_data is False
        assert session.status == "empty"
        assert session.stage == ProcessingStage.COMPLETE
        assert session.error
        mock_find.assert_not_called()

    @patch("curator.pipeline.find_links")
    @patch("curator.pipeline.TopicExtractor")
    def test_extraction_error_surfaces(self, mock_extractor, mock_find, settings):
        mock_extractor.return_value.extract_topics.return_value = TopicExtractionResult(
            error="Topic extraction failed: overloaded"
        )

        session = run_pipeline(TRANSCRIPT, ProcessingRequest(credentials=dict(CREDENTIALS)), settings)

        assert session.error == "Topic extraction failed: overloaded"
        mock_find.assert_not_called()


class TestFullRun:
    @patch("curator.pipeline.find_links")
    @patch("curator.pipeline.TopicExtractor")
    def test_topics_merged_and_links_assembled(self, mock_extractor, mock_find, settings):
        mock_extractor.return_value.extract_topics.return_value = TopicExtractionResult(
            topics=[Topic(topic="AI Ethics"), Topic(topic="Bitcoin")]
        )
        mock_find.return_value = found("AI Ethics", "https://ethics.org/ai")
        request = ProcessingRequest(
            credentials=dict(CREDENTIALS),
            avoid_topics=["bitcoin"],
            add_topics=["Qubits"],
            deep_validation=False,
        )

        session = run_pipeline(TRANSCRIPT, request, settings)

        searched = [t.topic for t in mock_find.call_args[0][0]]
        assert searched == ["AI Ethics", "Qubits"]
        assert [t.topic for t in session.topics] == ["AI Ethics", "Qubits"]
        assert len(session.links) == 1
        assert session.links[0].url == "https://ethics.org/ai"
        assert session.status == "ready"
        assert session.error is None

    @patch("curator.pipeline.find_links")
    @patch("curator.pipeline.TopicExtractor")
    def test_duplicate_across_providers_collapses(self, mock_extractor, mock_find, settings):
        mock_extractor.return_value.extract_topics.return_value = TopicExtractionResult(
            topics=[Topic(topic="AI Ethics")]
        )
        mock_find.side_effect = [
            found("AI Ethics", "https://ethics.org/ai"),
            found("AI Ethics", "https://ethics.org/ai/", "https://other.org/x"),
        ]
        request = ProcessingRequest(
            providers=(Provider.PRIMARY, Provider.SECONDARY),
            credentials=dict(CREDENTIALS),
            deep_validation=False,
        )

        session = run_pipeline(TRANSCRIPT, request, settings)

        assert [link.url for link in session.links] == ["https://ethics.org/ai", "https://other.org/x"]
        providers = [call.args[1] for call in mock_find.call_args_list]
        assert providers == [Provider.PRIMARY, Provider.SECONDARY]

    @patch("curator.pipeline.validate_processed_topics")
    @patch("curator.pipeline.find_links")
    @patch("curator.pipeline.TopicExtractor")
    def test_deep_validation_can_empty_the_session(
        self, mock_extractor, mock_find, mock_validate, settings
    ):
        mock_extractor.return_value.extract_topics.return_value = TopicExtractionResult(
            topics=[Topic(topic="AI Ethics")]
        )
        mock_find.return_value = found("AI Ethics", "https://dead.org/page")
        mock_validate.return_value = []

        session = run_pipeline(TRANSCRIPT, ProcessingRequest(credentials=dict(CREDENTIALS)), settings)

        mock_validate.assert_called_once()
        assert session.links == []
        assert session.status == "empty"

    @patch("curator.pipeline.find_links")
    @patch("curator.pipeline.TopicExtractor")
    def test_user_links_added(self, mock_extractor, mock_find, settings):
        mock_extractor.return_value.extract_topics.return_value = TopicExtractionResult(
            topics=[Topic(topic="AI Ethics")]
        )
        mock_find.return_value = LinkSearchResult()
        request = ProcessingRequest(
            credentials=dict(CREDENTIALS),
            user_links="AI Ethics: https://ethics.org/guide\nAI Ethics: https://excluded.com/x",
            excluded_domains=["excluded.com"],
            deep_validation=False,
        )

        session = run_pipeline(TRANSCRIPT, request, settings)

        assert [link.url for link in session.links] == ["https://ethics.org/guide"]
        assert session.links[0].title == "Guide"

    @patch("curator.pipeline.find_links")
    @patch("curator.pipeline.TopicExtractor")
    def test_malformed_user_link_keeps_provider_links(self, mock_extractor, mock_find, settings):
        mock_extractor.return_value.extract_topics.return_value = TopicExtractionResult(
            topics=[Topic(topic="AI Ethics")]
        )
        mock_find.return_value = found("AI Ethics", "https://ethics.org/ai")
        request = ProcessingRequest(
            credentials=dict(CREDENTIALS),
            user_links="AI Ethics: http://[oops",
            deep_validation=False,
        )

        session = run_pipeline(TRANSCRIPT, request, settings)

        assert session.status == "ready"
        assert session.error is None
        assert [link.url for link in session.links] == ["https://ethics.org/ai"]

    @patch("curator.pipeline.find_links")
    @patch("curator.pipeline.TopicExtractor")
    def test_unexpected_error_does_not_raise(self, mock_extractor, mock_find, settings):
        mock_extractor.return_value.extract_topics.return_value = TopicExtractionResult(
            topics=[Topic(topic="AI Ethics")]
        )
        mock_find.side_effect = RuntimeError("boom")

        session = run_pipeline(TRANSCRIPT, ProcessingRequest(credentials=dict(CREDENTIALS)), settings)

        assert session.status == "empty"
        assert "boom" in session.error

    @patch("curator.pipeline.find_links")
    @patch("curator.pipeline.TopicExtractor")
    def test_reuses_session(self, mock_extractor, mock_find, settings):
        mock_extractor.return_value.extract_topics.return_value = TopicExtractionResult(
            topics=[Topic(topic="AI Ethics")]
        )
        mock_find.return_value = found("AI Ethics", "https://ethics.org/ai")
        session = CurationSession()
        request = ProcessingRequest(credentials=dict(CREDENTIALS), deep_validation=False)

        run_pipeline(TRANSCRIPT, request, settings, session)
        first_id = session.links[0].id
        run_pipeline(TRANSCRIPT, request, settings, session)

        assert len(session.links) == 1
        assert session.links[0].id != first_id


class TestProcessingRequest:
    def test_lists_normalised(self):
        request = ProcessingRequest(
            avoid_topics=[" Bitcoin ", "bitcoin"],
            excluded_domains=["https://www.medium.com/@x"],
        )
        assert request.avoid_topics == ["Bitcoin"]
        assert request.excluded_domains == ["medium.com"]

    def test_credentials_from_settings(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
        monkeypatch.delenv("BRAVE_API_KEY", raising=False)

        request = ProcessingRequest.from_settings(Settings(), topic_count=3)

        assert request.topic_count == 3
        assert request.credentials[Provider.PRIMARY].api_key == "sk-env"
        assert Provider.SECONDARY not in request.credentials
