"""
SQLite-backed cache of deep URL validation verdicts.

Schema
──────
table: url_cache
  url        TEXT PRIMARY KEY
  is_valid   INTEGER NOT NULL  (0 / 1)
  metadata   TEXT NOT NULL     (JSON object)
  cached_at  TEXT NOT NULL     (ISO-8601 UTC)

A verdict is trusted for ``FRESHNESS_WINDOW`` after it was written. Older rows
stay in the table (and get overwritten by the next ``store``) until
``purge_expired`` drops everything past ``RETENTION_CEILING``.
"""

from __future__ import annotations

import json
import logging
import os
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from curator.models import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path(__file__).parent.parent / "data" / "url_cache.db"

FRESHNESS_WINDOW = timedelta(days=1)
RETENTION_CEILING = timedelta(days=30)


def _db_path() -> Path:
    """Return the database file path, honouring a DB_PATH env var if set."""
    env = os.getenv("DB_PATH")
    return Path(env) if env else DEFAULT_DB_PATH


def _now() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def _connect():
    """Yield a connected sqlite3.Connection, creating the file/dir if needed."""
    path = _db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def init_db() -> None:
    """Create the url_cache table if it doesn't exist yet."""
    with _connect() as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS url_cache (
                url        TEXT PRIMARY KEY,
                is_valid   INTEGER NOT NULL,
                metadata   TEXT NOT NULL,
                cached_at  TEXT NOT NULL
            )
            """
        )
    logger.info("URL cache DB initialised at %s", _db_path())


def lookup(
    url: str,
    force_fresh: bool = False,
    freshness: timedelta = FRESHNESS_WINDOW,
) -> Optional[CacheEntry]:
    """Return a still-fresh cached verdict for *url*, or None.

    Args:
        url: The exact URL string used as key.
        force_fresh: Skip the cache entirely.
        freshness: How long a verdict is trusted without re-checking.

    Returns:
        The cached entry, or None on miss, stale row, or storage error.
    """
    if force_fresh:
        return None

    try:
        with _connect() as conn:
            row = conn.execute(
                "SELECT url, is_valid, metadata, cached_at FROM url_cache WHERE url = ?",
                (url,),
            ).fetchone()
    except sqlite3.Error:
        logger.exception("Error reading URL cache for %s", url)
        return None

    if row is None:
        return None

    try:
        entry = CacheEntry(
            url=row["url"],
            is_valid=bool(row["is_valid"]),
            metadata=json.loads(row["metadata"]),
            cached_at=datetime.fromisoformat(row["cached_at"]),
        )
    except (ValueError, TypeError) as exc:
        logger.warning("Ignoring corrupt cache row for %s: %s", url, exc)
        return None

    if not entry.is_fresh(_now(), freshness):
        logger.debug("Stale cache entry for %s (cached %s)", url, entry.cached_at)
        return None

    return entry


def store(url: str, is_valid: bool, metadata: dict[str, Any]) -> None:
    """Insert or overwrite the verdict for *url*, stamped with the current time.

    A failed write is logged and otherwise ignored.
    """
    try:
        payload = json.dumps(metadata, default=str)
        with _connect() as conn:
            conn.execute(
                "INSERT INTO url_cache (url, is_valid, metadata, cached_at) "
                "VALUES (?, ?, ?, ?) "
                "ON CONFLICT(url) DO UPDATE SET is_valid = excluded.is_valid, "
                "metadata = excluded.metadata, cached_at = excluded.cached_at",
                (url, int(is_valid), payload, _now().isoformat()),
            )
    except (sqlite3.Error, TypeError, ValueError):
        logger.exception("Error storing URL cache entry for %s", url)


def purge_expired(retention: timedelta = RETENTION_CEILING) -> int:
    """Delete rows older than *retention*. Returns the number removed."""
    now = _now()
    removed = 0
    with _connect() as conn:
        rows = conn.execute("SELECT url, is_valid, cached_at FROM url_cache").fetchall()
        for row in rows:
            try:
                entry = CacheEntry(
                    url=row["url"],
                    is_valid=bool(row["is_valid"]),
                    cached_at=datetime.fromisoformat(row["cached_at"]),
                )
                keep = entry.is_retained(now, retention)
            except (ValueError, TypeError):
                keep = False
            if not keep:
                conn.execute("DELETE FROM url_cache WHERE url = ?", (row["url"],))
                removed += 1
    if removed:
        logger.info("Purged %d expired URL cache rows", removed)
    return removed
