"""
Flask web server for the show notes link curator.

Routes
──────
OPTIONS /api/validate-url   CORS preflight (204, empty body)
POST /api/validate-url      Validate one URL: {url, deepValidation?, forceCheck?}
POST /api/process           Run the curation pipeline on a transcript
POST /api/export            Render checked links as markdown, text or html

CLI
───
flask --app web.app purge-cache   Delete cache rows past the retention ceiling
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import timedelta
from urllib.parse import urlsplit

import click
from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request
from pydantic import ValidationError

# Allow running as `python web/app.py` from the project root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

load_dotenv()

from config.settings import Settings
from curator import cache as url_cache
from curator.export import MIMETYPES, ExportFormat, render
from curator.models import Credential, LinkItem, Provider, ValidationResult
from curator.pipeline import ProcessingRequest, run_pipeline
from curator.url_syntax import is_valid_url
from curator.validator import validate_url

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}

# Initialise the SQLite cache on startup
url_cache.init_db()

try:
    Settings().validate()
except ValueError as exc:
    logger.warning("%s", exc)


@app.after_request
def add_cors_headers(response: Response) -> Response:
    for name, value in CORS_HEADERS.items():
        response.headers[name] = value
    return response


def _bad_request(message: str):
    return jsonify({"error": message}), 400


def _is_http_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
        return parts.scheme in ("http", "https") and bool(parts.hostname)
    except ValueError:
        return False


# ── URL validation ─────────────────────────────────────────────────────────

@app.route("/api/validate-url", methods=["POST", "OPTIONS"])
def validate_url_endpoint():
    """Validate a single URL.

    Body: ``{"url": str, "deepValidation": bool = true, "forceCheck": bool = false}``

    Returns ``{"isValid", "metadata", "fromCache"}``. Any parseable http(s)
    URL is fetched. With ``deepValidation`` off only the syntax check runs
    and nothing is cached.
    """
    if request.method == "OPTIONS":
        return "", 204

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _bad_request("Request body must be a JSON object")
    url = body.get("url")
    if not isinstance(url, str) or not url.strip():
        return _bad_request("url is required and must be a string")
    url = url.strip()

    try:
        if not _is_http_url(url):
            result = ValidationResult(
                is_valid=False, metadata={"reason": "Invalid URL", "source": "syntax"}
            )
        elif not body.get("deepValidation", True):
            if is_valid_url(url):
                result = ValidationResult(is_valid=True, metadata={"source": "syntax"})
            else:
                result = ValidationResult(
                    is_valid=False, metadata={"reason": "Invalid URL syntax", "source": "syntax"}
                )
        else:
            settings = Settings()
            result = validate_url(
                url,
                force_fresh=bool(body.get("forceCheck", False)),
                timeout=settings.validation_timeout,
                reject_client_errors=settings.reject_client_errors,
                freshness=timedelta(hours=settings.cache_freshness_hours),
            )
    except Exception as exc:
        logger.exception("URL validation failed for %r", url)
        return jsonify({"error": str(exc)}), 500

    return jsonify(result.to_response())


# ── Processing ─────────────────────────────────────────────────────────────

def _parse_providers(value) -> list[Provider]:
    if value is None:
        return [Provider.PRIMARY]
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list) or not value:
        raise ValueError("providers must be a non-empty list")
    return [Provider(str(name).lower()) for name in value]


def _string_list(value) -> list[str]:
    """Accept a JSON list or a comma separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return value.split(",")
    if not isinstance(value, list):
        raise ValueError("expected a list of strings")
    return [str(item) for item in value]


def _build_request(body: dict, settings: Settings) -> ProcessingRequest:
    """Turn a JSON body into a ``ProcessingRequest``.

    Keys sent in ``apiKeys`` override the configured ones for this run.
    Raises ``ValueError`` for malformed fields.
    """
    processing = ProcessingRequest.from_settings(
        settings,
        topic_count=body.get("topicCount", 5),
        providers=tuple(_parse_providers(body.get("providers"))),
        avoid_topics=_string_list(body.get("avoidTopics")),
        add_topics=_string_list(body.get("addTopics")),
        excluded_domains=_string_list(body.get("excludedDomains")),
        user_links=str(body.get("userLinks") or ""),
        deep_validation=bool(body.get("deepValidation", True)),
    )

    api_keys = body.get("apiKeys") or {}
    if not isinstance(api_keys, dict):
        raise ValueError("apiKeys must be an object")
    for name, key in api_keys.items():
        provider = Provider(str(name).lower())
        processing.credentials[provider] = Credential(provider=provider, api_key=str(key))
    return processing


@app.route("/api/process", methods=["POST"])
def process_transcript():
    """Extract topics from a transcript and find links for them.

    Body keys: ``transcript`` (required), ``topicCount``, ``providers``,
    ``avoidTopics``, ``addTopics``, ``excludedDomains``, ``userLinks``, ``deepValidation``,
    ``apiKeys``.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _bad_request("Request body must be a JSON object")
    transcript = body.get("transcript")
    if not isinstance(transcript, str) or not transcript.strip():
        return _bad_request("transcript is required")

    settings = Settings()
    try:
        processing = _build_request(body, settings)
    except (TypeError, ValueError, ValidationError) as exc:
        return _bad_request(str(exc))

    try:
        session = run_pipeline(transcript, processing, settings)
    except Exception as exc:
        logger.exception("Processing failed")
        return jsonify({"error": str(exc)}), 500

    return jsonify(session.to_dict())


# ── Export ─────────────────────────────────────────────────────────────────

@app.route("/api/export", methods=["POST"])
def export_links():
    """Render the checked links in ``format`` (markdown, text or html)."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _bad_request("Request body must be a JSON object")

    try:
        fmt = ExportFormat(body.get("format", ExportFormat.MARKDOWN.value))
    except ValueError:
        return _bad_request(f"Unknown export format: {body.get('format')!r}")

    raw_links = body.get("links")
    if not isinstance(raw_links, list):
        return _bad_request("links must be a list")
    try:
        links = [LinkItem.model_validate(item) for item in raw_links]
    except ValidationError as exc:
        return _bad_request(f"Invalid link item: {exc.errors()[0]['msg']}")

    return Response(render(links, fmt), mimetype=MIMETYPES[fmt])


# ── CLI ────────────────────────────────────────────────────────────────────

@app.cli.command("purge-cache")
def purge_cache_command():
    """Delete cached verdicts older than CACHE_RETENTION_DAYS."""
    settings = Settings()
    removed = url_cache.purge_expired(timedelta(days=settings.cache_retention_days))
    click.echo(f"Removed {removed} expired cache entries")


# ── Entry point ────────────────────────────────────────────────────────────

if __name__ == "__main__":
    settings = Settings()
    app.run(debug=settings.debug, host="0.0.0.0", port=settings.port)
