"""Deep URL validation.

``deep_validate`` fetches a page and decides whether it is a live, readable
resource. States::

    Init ──parse──▶ Fetching ──status/type──▶ ContentCheck ──▶ Resolved
                        │                          │
                        └──────── Rejected ◀───────┘

Every path ends in a ``ValidationResult``; nothing here raises to the caller.
Network and timeout failures are reported as ``is_valid=False`` with the
underlying message kept in ``metadata["error"]``.

``validate_url`` wraps the deep check with the SQLite verdict cache, and
``validate_links`` / ``validate_processed_topics`` run many checks on a
bounded thread pool so one slow host cannot stall a batch.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeoutError
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import urlsplit

import requests
from bs4 import BeautifulSoup, UnicodeDammit

from curator import cache as url_cache
from curator.error_pages import find_error_signal, missing_article_body
from curator.models import ProcessedTopic, RawLink, ValidationResult
from curator.url_syntax import is_valid_url

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
#: Extra seconds granted past ``timeout`` before a fetch is abandoned.
DEADLINE_GRACE = 0.5
#: Bytes of HTML read before content inspection stops.
MAX_BODY_BYTES = 2 * 1024 * 1024

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

#: Content types accepted without inspection.
DOCUMENT_CONTENT_TYPES: tuple[str, ...] = (
    "application/pdf",
    "application/doc",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml",
)

ERROR_TITLE_WORDS: tuple[str, ...] = (
    "404", "error", "not found", "unavailable", "missing", "oops", "sorry",
)


def _invalid(metadata: dict[str, Any]) -> ValidationResult:
    return ValidationResult(is_valid=False, metadata=metadata)


# ── Body handling ──────────────────────────────────────────────────────────────


def _decode_body(response: requests.Response, raw: bytes) -> str:
    """Decode *raw* with the header charset, else detect it from the markup.

    requests reports ISO-8859-1 for any ``text/*`` response without a charset,
    so that value is only trusted when the server actually sent one.
    """
    content_type = (response.headers.get("content-type") or "").lower()
    if "charset=" in content_type and response.encoding:
        try:
            return raw.decode(response.encoding, errors="replace")
        except LookupError:
            pass
    dammit = UnicodeDammit(raw, is_html=True)
    if dammit.unicode_markup is not None:
        return dammit.unicode_markup
    return raw.decode("utf-8", errors="replace")


def _read_body(response: requests.Response, deadline: float) -> str:
    """Read at most MAX_BODY_BYTES of *response*, giving up at *deadline*."""
    chunks: list[bytes] = []
    size = 0
    for chunk in response.iter_content(chunk_size=16384):
        if not chunk:
            continue
        chunks.append(chunk)
        size += len(chunk)
        if size >= MAX_BODY_BYTES:
            break
        if time.monotonic() > deadline:
            raise requests.exceptions.Timeout("Timed out reading response body")
    return _decode_body(response, b"".join(chunks))


def extract_page_metadata(html: str) -> dict[str, str]:
    """Pull ``title`` and meta ``description`` out of *html* when present."""
    soup = BeautifulSoup(html, "html.parser")
    found: dict[str, str] = {}

    if soup.title and soup.title.string and soup.title.string.strip():
        found["title"] = " ".join(soup.title.string.split())

    meta = soup.find("meta", attrs={"name": lambda v: v and v.lower() == "description"})
    if meta and meta.get("content", "").strip():
        found["description"] = meta["content"].strip()

    return found


def _check_html(html: str, url: str, metadata: dict[str, Any]) -> ValidationResult:
    reason = find_error_signal(html, url)
    if reason:
        logger.warning("Error page detected for %s: %s", url, reason)
        return _invalid({**metadata, "reason": "Error page detected in content", "signal": reason})

    metadata.update(extract_page_metadata(html))

    title = metadata.get("title", "")
    if title and any(word in title.lower() for word in ERROR_TITLE_WORDS):
        logger.warning("Error indicator in title for %s: %r", url, title)
        return _invalid({**metadata, "reason": f'Error indicator in title: "{title}"'})

    if missing_article_body(html, url):
        logger.warning("No article content found for %s", url)
        return _invalid({**metadata, "reason": "No article content found"})

    return ValidationResult(is_valid=True, metadata=metadata)


# ── Deep validation ────────────────────────────────────────────────────────────


def _fetch_and_judge(
    url: str,
    timeout: float,
    reject_client_errors: bool,
    deadline: float,
) -> ValidationResult:
    try:
        response = requests.get(
            url,
            headers=BROWSER_HEADERS,
            timeout=(timeout, timeout),
            allow_redirects=True,
            stream=True,
        )
    except requests.RequestException as exc:
        logger.warning("Fetch error for %s: %s", url, exc)
        return _invalid({"error": str(exc), "source": "deep_validation"})

    try:
        status = response.status_code
        if status >= 500 or (reject_client_errors and status >= 400):
            logger.warning("GET %s failed with status %s", url, status)
            return _invalid({
                "status": status,
                "status_text": response.reason or "",
                "source": "get_request",
            })

        content_type = response.headers.get("content-type", "") or ""
        metadata: dict[str, Any] = {
            "status": status,
            "content_type": content_type,
            "server": response.headers.get("server"),
            "last_modified": response.headers.get("last-modified"),
            "source": "deep_validation",
        }
        lowered_type = content_type.lower()

        if "text/html" in lowered_type:
            try:
                html = _read_body(response, deadline)
            except (requests.RequestException, UnicodeError) as exc:
                logger.warning("Error reading response body for %s: %s", url, exc)
                return _invalid({"error": str(exc), "source": "text_parsing"})
            if not html.strip():
                logger.warning("Empty HTML body from %s", url)
                return _invalid({**metadata, "reason": "Empty response body"})
            return _check_html(html, url, metadata)

        if any(doc in lowered_type for doc in DOCUMENT_CONTENT_TYPES):
            return ValidationResult(is_valid=True, metadata=metadata)

        return _invalid({**metadata, "reason": f"Unsupported content type: {content_type}"})
    except Exception as exc:  # noqa: BLE001
        logger.exception("Unexpected error validating %s", url)
        return _invalid({"error": str(exc), "source": "deep_validation"})
    finally:
        response.close()


def deep_validate(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    reject_client_errors: bool = False,
) -> ValidationResult:
    """Fetch *url* and judge whether it is a live, readable page.

    The fetch runs on a worker thread and the caller waits at most
    ``timeout + DEADLINE_GRACE`` seconds for it, however slowly the server
    sends its status line, headers or body. An abandoned fetch finishes in
    the background once its socket errors out or closes.

    Args:
        url: Absolute http(s) URL.
        timeout: Hard limit in seconds for the whole check.
        reject_client_errors: Treat any 4xx status as invalid. Off by default
            because bot-blocking sites answer 403 for real pages.

    Returns:
        A ``ValidationResult``; never raises.
    """
    try:
        parts = urlsplit(url)
        if parts.scheme not in ("http", "https") or not parts.netloc:
            raise ValueError(f"Invalid URL: {url!r}")
    except (ValueError, TypeError, AttributeError) as exc:
        logger.warning("URL parsing error for %s: %s", url, exc)
        return _invalid({"error": str(exc), "source": "deep_validation"})

    deadline = time.monotonic() + timeout
    ex = ThreadPoolExecutor(max_workers=1)
    try:
        fut = ex.submit(_fetch_and_judge, url, timeout, reject_client_errors, deadline)
        return fut.result(timeout=timeout + DEADLINE_GRACE)
    except FuturesTimeoutError:
        logger.warning("Validation of %s exceeded %ss", url, timeout)
        return _invalid({"error": f"Timed out after {timeout:g}s", "source": "deep_validation"})
    finally:
        ex.shutdown(wait=False)


def validate_url(
    url: str,
    force_fresh: bool = False,
    use_cache: bool = True,
    timeout: float = DEFAULT_TIMEOUT,
    reject_client_errors: bool = False,
    freshness: timedelta = url_cache.FRESHNESS_WINDOW,
) -> ValidationResult:
    """Deep-validate *url*, consulting and updating the verdict cache.

    A forced check bypasses the cache on both read and write.
    """
    if use_cache and not force_fresh:
        entry = url_cache.lookup(url, freshness=freshness)
        if entry is not None:
            logger.debug("Cache hit for %s", url)
            return ValidationResult(
                is_valid=entry.is_valid, metadata=entry.metadata, from_cache=True
            )

    result = deep_validate(url, timeout=timeout, reject_client_errors=reject_client_errors)

    if use_cache and not force_fresh:
        url_cache.store(url, result.is_valid, result.metadata)
    return result


# ── Batch validation ───────────────────────────────────────────────────────────


def validate_links(
    links: list[RawLink],
    settings: Optional[Settings] = None,
    use_cache: bool = True,
    max_workers: Optional[int] = None,
) -> list[RawLink]:
    """Return the links from *links* that pass syntax and deep validation.

    Checks run concurrently, at most ``max_workers`` at a time. Input order is
    preserved in the output.
    """
    timeout = settings.validation_timeout if settings else DEFAULT_TIMEOUT
    strict = settings.reject_client_errors if settings else False
    workers = max_workers or (settings.max_validation_workers if settings else 8)
    freshness = (
        timedelta(hours=settings.cache_freshness_hours) if settings else url_cache.FRESHNESS_WINDOW
    )

    candidates = [link for link in links if is_valid_url(link.url)]
    if not candidates:
        return []

    def check(link: RawLink) -> bool:
        return validate_url(
            link.url,
            use_cache=use_cache,
            timeout=timeout,
            reject_client_errors=strict,
            freshness=freshness,
        ).is_valid

    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(candidates)))) as ex:
        verdicts = list(ex.map(check, candidates))

    kept = [link for link, ok in zip(candidates, verdicts) if ok]
    logger.info("Validated %d links: %d kept", len(candidates), len(kept))
    return kept


def validate_processed_topics(
    processed_topics: list[ProcessedTopic],
    settings: Optional[Settings] = None,
    use_cache: bool = True,
) -> list[ProcessedTopic]:
    """Deep-validate every link across *processed_topics* in one batch.

    Topics left without links are dropped.
    """
    all_links = [link for pt in processed_topics for link in pt.links]
    valid_urls = {link.url for link in validate_links(all_links, settings, use_cache)}

    result: list[ProcessedTopic] = []
    for pt in processed_topics:
        kept = [link for link in pt.links if link.url in valid_urls]
        if kept:
            result.append(pt.model_copy(update={"links": kept}))
        else:
            logger.info("Dropping topic %r: no links survived validation", pt.topic)
    return result
