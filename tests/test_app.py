"""
Tests for web/app.py

Uses Flask's test client; the pipeline and deep validation are mocked.

Run with: pytest tests/test_app.py
"""

from unittest.mock import patch

import pytest

import curator.cache as url_cache
from curator.models import LinkItem, ProcessingStage, Provider, ValidationResult
from curator.session import CurationSession


@pytest.fixture(autouse=True)
def temp_db(tmp_path, monkeypatch):
    """Point DB_PATH to a fresh temp file for each test."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "test_cache.db"))
    url_cache.init_db()
    yield


@pytest.fixture
def app():
    from web.app import app as flask_app
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


class TestValidateUrlEndpoint:
    def test_preflight(self, client):
        resp = client.open("/api/validate-url", method="OPTIONS")

        assert resp.status_code == 204
        assert resp.data == b""
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert "content-type" in resp.headers["Access-Control-Allow-Headers"]

    def test_missing_url(self, client):
        resp = client.post("/api/validate-url", json={})

        assert resp.status_code == 400
        assert "error" in resp.get_json()
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_non_string_url(self, client):
        assert client.post("/api/validate-url", json={"url": 42}).status_code == 400

    def test_not_json(self, client):
        resp = client.post("/api/validate-url", data="url=x", content_type="text/plain")
        assert resp.status_code == 400

    @patch("web.app.validate_url")
    def test_non_http_url_is_invalid(self, mock_validate, client):
        for url in ("ftp://files.podcast.com/ep1.mp3", "http://[oops", "not a url"):
            resp = client.post("/api/validate-url", json={"url": url})

            assert resp.status_code == 200
            assert resp.get_json() == {
                "isValid": False,
                "metadata": {"reason": "Invalid URL", "source": "syntax"},
                "fromCache": False,
            }
        mock_validate.assert_not_called()

    @patch("web.app.validate_url")
    def test_uncommon_tld_is_fetched(self, mock_validate, client):
        mock_validate.return_value = ValidationResult(is_valid=True, metadata={"status": 200})

        resp = client.post("/api/validate-url", json={"url": "https://huggingface.ai/blog/podcast"})

        assert resp.get_json()["isValid"] is True
        assert mock_validate.call_args[0][0] == "https://huggingface.ai/blog/podcast"

    @patch("web.app.validate_url")
    def test_syntax_only_rejects_placeholder_host(self, mock_validate, client):
        resp = client.post(
            "/api/validate-url", json={"url": "https://example.com/x", "deepValidation": False}
        )

        assert resp.get_json()["isValid"] is False
        assert resp.get_json()["metadata"]["source"] == "syntax"
        mock_validate.assert_not_called()

    @patch("web.app.validate_url")
    def test_syntax_only(self, mock_validate, client):
        resp = client.post(
            "/api/validate-url", json={"url": "https://qiskit.org/learn", "deepValidation": False}
        )

        assert resp.get_json() == {"isValid": True, "metadata": {"source": "syntax"}, "fromCache": False}
        mock_validate.assert_not_called()

    @patch("web.app.validate_url")
    def test_deep_validation(self, mock_validate, client):
        mock_validate.return_value = ValidationResult(
            is_valid=True, metadata={"status": 200}, from_cache=True
        )

        resp = client.post(
            "/api/validate-url", json={"url": "https://qiskit.org/learn", "forceCheck": True}
        )

        assert resp.get_json() == {"isValid": True, "metadata": {"status": 200}, "fromCache": True}
        _, kwargs = mock_validate.call_args
        assert kwargs["force_fresh"] is True

    @patch("web.app.validate_url")
    def test_unexpected_failure(self, mock_validate, client):
        mock_validate.side_effect = RuntimeError("disk full")

        resp = client.post("/api/validate-url", json={"url": "https://qiskit.org/learn"})

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "disk full"}


class TestProcessEndpoint:
    @patch("web.app.run_pipeline")
    def test_runs_pipeline(self, mock_run, client):
        session = CurationSession(stage=ProcessingStage.COMPLETE, links=[
            LinkItem(topic="Qubits", url="https://qiskit.org", title="Qiskit", description="d"),
        ])
        mock_run.return_value = session

        resp = client.post("/api/process", json={
            "transcript": "We talked about qubits.",
            "topicCount": 3,
            "providers": ["claude", "brave"],
            "excludedDomains": "medium.com, bbc.co.uk",
            "apiKeys": {"claude": "sk-body"},
        })

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "ready"
        assert body["links"][0]["url"] == "https://qiskit.org"

        transcript, request = mock_run.call_args[0][:2]
        assert transcript == "We talked about qubits."
        assert request.topic_count == 3
        assert request.providers == (Provider.PRIMARY, Provider.SECONDARY)
        assert request.excluded_domains == ["medium.com", "bbc.co.uk"]
        assert request.credentials[Provider.PRIMARY].api_key == "sk-body"

    def test_missing_transcript(self, client):
        assert client.post("/api/process", json={"transcript": "  "}).status_code == 400

    def test_unknown_provider(self, client):
        resp = client.post("/api/process", json={"transcript": "x", "providers": ["bing"]})
        assert resp.status_code == 400


class TestExportEndpoint:
    LINKS = [
        {"topic": "Qubits", "url": "https://qiskit.org", "title": "Qiskit", "description": "d"},
        {"topic": "Qubits", "url": "https://skip.com", "title": "Skip", "description": "d", "checked": False},
    ]

    def test_markdown(self, client):
        resp = client.post("/api/export", json={"links": self.LINKS, "format": "markdown"})

        assert resp.status_code == 200
        assert resp.mimetype == "text/markdown"
        assert resp.get_data(as_text=True) == "## Qubits\n\n- [Qiskit](https://qiskit.org)"

    def test_unknown_format(self, client):
        assert client.post("/api/export", json={"links": [], "format": "pdf"}).status_code == 400

    def test_invalid_link(self, client):
        resp = client.post("/api/export", json={"links": [{"topic": "x"}], "format": "text"})
        assert resp.status_code == 400


class TestPurgeCacheCommand:
    def test_reports_removed_rows(self, app):
        url_cache.store("https://qiskit.org", True, {})

        result = app.test_cli_runner().invoke(args=["purge-cache"])

        assert result.exit_code == 0
        assert "Removed 0 expired cache entries" in result.output
