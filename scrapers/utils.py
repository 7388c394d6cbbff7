"""Shared HTTP and text helpers for the web search, extraction, and sports clients."""

import hashlib
import logging
import re
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

import requests
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

API_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; RAG-Chat/1.0)",
    "Accept": "application/json",
}

MAX_CONTENT_CHARS = 3000


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    reraise=True,
)
def http_get(
    session: requests.Session,
    url: str,
    params: Optional[dict] = None,
    headers: Optional[dict] = None,
    timeout: float = 10,
) -> requests.Response:
    """GET with retry on connection errors/timeouts. HTTP errors raise immediately."""
    response = session.get(url, params=params, headers=headers, timeout=timeout)
    response.raise_for_status()
    return response


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    retry=retry_if_exception_type((requests.ConnectionError, requests.Timeout)),
    reraise=True,
)
def http_post_json(
    session: requests.Session,
    url: str,
    payload: dict,
    headers: Optional[dict] = None,
    timeout: float = 10,
) -> requests.Response:
    """POST a JSON body with the same retry policy as ``http_get``."""
    response = session.post(url, json=payload, headers=headers, timeout=timeout)
    response.raise_for_status()
    return response


def fetch_html(session: requests.Session, url: str, timeout: float = 15) -> str:
    """Fetch a page for content extraction. Raises on any failure."""
    response = http_get(session, url, headers=DEFAULT_HEADERS, timeout=timeout)
    content_type = response.headers.get("Content-Type", "")
    if content_type and "html" not in content_type and "xml" not in content_type:
        raise ValueError(f"Unsupported content type for {url}: {content_type}")
    return response.text


def normalize_query(query: str) -> str:
    return query.lower().strip()


def hash_query(query: str, search_engine: str, max_results: int) -> str:
    """Deterministic cache key for (normalized query, engine, result count)."""
    hash_input = f"{normalize_query(query)}|{search_engine}|{max_results}"
    return hashlib.sha256(hash_input.encode()).hexdigest()


def hash_content(content: Optional[str]) -> str:
    return hashlib.sha256((content or "").encode()).hexdigest()


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form the SQLite cache stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def domain_of(url: str) -> str:
    try:
        return urlparse(url).netloc or "unknown"
    except ValueError:
        return "unknown"


_ASCII_REPLACEMENTS = [
    (re.compile("[\u2013\u2014]"), "-"),
    (re.compile("[\u2018\u2019]"), "'"),
    (re.compile("[\u201c\u201d]"), '"'),
    (re.compile("\u2026"), "..."),
    (re.compile("\u00a0"), " "),
    (re.compile(r"[^\x00-\x7f]"), "?"),
]


def sanitize_text(text: Optional[str]) -> str:
    """Map typographic punctuation to ASCII, replace other non-ASCII, collapse whitespace."""
    if not text or not isinstance(text, str):
        return ""
    for pattern, replacement in _ASCII_REPLACEMENTS:
        text = pattern.sub(replacement, text)
    return normalize_whitespace(text)
