"""Application settings, read from environment variables at instantiation.

Usage:
    from config.settings import Settings
    settings = Settings()
    settings.validate()   # raises ValueError if no provider key is configured
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from curator.models import Credential, Provider


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "0").strip().lower() in ("1", "true", "yes")


@dataclass
class Settings:
    """Centralised application configuration.

    All values are read from environment variables at instantiation time
    so that tests can override them by patching ``os.environ``.
    """

    # ── API Keys ────────────────────────────────────────────────────────────
    anthropic_api_key: str = field(
        default_factory=lambda: os.environ.get("ANTHROPIC_API_KEY", "")
    )
    brave_api_key: str = field(
        default_factory=lambda: os.environ.get("BRAVE_API_KEY", "")
    )

    # ── Flask ───────────────────────────────────────────────────────────────
    debug: bool = field(default_factory=lambda: _env_flag("FLASK_DEBUG"))
    port: int = field(
        default_factory=lambda: int(os.environ.get("PORT", "5001"))
    )

    # ── Link search ─────────────────────────────────────────────────────────
    brave_result_count: int = field(
        default_factory=lambda: int(os.environ.get("BRAVE_RESULT_COUNT", "5"))
    )
    max_search_workers: int = field(
        default_factory=lambda: int(os.environ.get("MAX_SEARCH_WORKERS", "4"))
    )
    max_web_searches: int = field(
        default_factory=lambda: int(os.environ.get("MAX_WEB_SEARCHES", "3"))
    )

    # ── URL validation ──────────────────────────────────────────────────────
    validation_timeout: float = field(
        default_factory=lambda: float(os.environ.get("VALIDATION_TIMEOUT", "10"))
    )
    max_validation_workers: int = field(
        default_factory=lambda: int(os.environ.get("MAX_VALIDATION_WORKERS", "8"))
    )
    #: When set, 4xx responses are rejected outright instead of being judged
    #: on page content.
    reject_client_errors: bool = field(
        default_factory=lambda: _env_flag("STRICT_HTTP_STATUS")
    )
    cache_freshness_hours: float = field(
        default_factory=lambda: float(os.environ.get("CACHE_FRESHNESS_HOURS", "24"))
    )
    cache_retention_days: float = field(
        default_factory=lambda: float(os.environ.get("CACHE_RETENTION_DAYS", "30"))
    )

    # ── AI Models ───────────────────────────────────────────────────────────
    #: Model used to pull topics out of a transcript.
    topic_model: str = "claude-haiku-4-5"
    #: Model used for the web-search link discovery pass.
    link_model: str = "claude-haiku-4-5"

    def credential_for(self, provider: Provider) -> Optional[Credential]:
        """Return the configured credential for *provider*, or ``None``."""
        from curator.models import Credential, Provider

        key = {
            Provider.PRIMARY: self.anthropic_api_key,
            Provider.SECONDARY: self.brave_api_key,
        }.get(provider, "")
        if not key.strip():
            return None
        return Credential(provider=provider, api_key=key)

    def validate(self) -> None:
        """Raise ``ValueError`` if no provider credential is configured."""
        if not self.anthropic_api_key and not self.brave_api_key:
            raise ValueError(
                "Neither ANTHROPIC_API_KEY nor BRAVE_API_KEY is set. "
                "Copy .env.example to .env and add at least one key."
            )
