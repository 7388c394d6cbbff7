"""Shared fakes for every external collaborator. No test touches the network."""

from datetime import datetime, timedelta

import pytest
import requests

import vectorstore.chunker as chunker_module
from config import Settings
from errors import NotConfiguredError
from schemas.retrieval import ContentType, StoreMatch
from schemas.web_search import WebSearchResult


@pytest.fixture
def settings(tmp_path):
    return Settings(
        openai_api_key="sk-test",
        odds_api_key="odds-test",
        chroma_path=str(tmp_path / "chroma"),
        web_cache_db=str(tmp_path / "web_cache.db"),
        sessions_db=str(tmp_path / "sessions.db"),
    )


# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 3, 10, 15, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class FakeResponse:
    def __init__(self, json_data=None, status_code=200, text="", headers=None, json_error=None):
        self._json = json_data
        self._json_error = json_error
        self.status_code = status_code
        self.text = text
        self.headers = headers or {}

    def json(self):
        if self._json_error:
            raise self._json_error
        return self._json

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Routes requests to ``handler(method, url, **kwargs)`` and records them."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append(("GET", url, {"params": params, "headers": headers}))
        return self.handler("GET", url, params=params, headers=headers)

    def post(self, url, json=None, headers=None, timeout=None):
        self.calls.append(("POST", url, {"json": json, "headers": headers}))
        return self.handler("POST", url, json=json, headers=headers)

    def count(self, fragment: str) -> int:
        return sum(1 for _, url, _ in self.calls if fragment in url)


# ---------------------------------------------------------------------------
# Vector store + embeddings
# ---------------------------------------------------------------------------

def make_match(match_id, similarity, title="Doc", content=None, structured=False, chunk_index=0):
    return StoreMatch(
        id=match_id,
        content=content or f"content of {match_id}",
        similarity=similarity,
        document_id=f"doc-{match_id}",
        document_title=title,
        content_type=ContentType.STRUCTURED if structured else ContentType.CHUNK,
        chunk_index=chunk_index,
    )


class FakeEmbedder:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def embed_query(self, text):
        self.calls.append(text)
        if self.error:
            raise self.error
        return [0.1, 0.2, 0.3]

    def embed(self, texts):
        return [[0.1, 0.2, 0.3] for _ in texts]


class CharEncoder:
    """One token per character, so tests never download a BPE table."""

    def encode(self, text):
        return [ord(c) for c in text]

    def decode(self, tokens):
        return "".join(chr(t) for t in tokens)


@pytest.fixture
def char_tokens(monkeypatch):
    monkeypatch.setattr(chunker_module, "_ENCODER", CharEncoder())


class FakeStore:
    """Applies threshold and count like the real store, unless ``raw`` is set."""

    def __init__(self, unified=None, expanded=None, chunks=None, unified_error=None,
                 chunks_error=None, raw=False):
        self.unified = unified or []
        self.expanded = expanded or []
        self.chunks = chunks or []
        self.unified_error = unified_error
        self.chunks_error = chunks_error
        self.raw = raw
        self.calls = []

    def _rank(self, matches, threshold, count):
        if self.raw:
            return list(matches)
        kept = sorted((m for m in matches if m.similarity >= threshold),
                      key=lambda m: m.similarity, reverse=True)
        return kept[:count]

    def unified_search(self, vector, match_threshold, match_count,
                       include_chunks=True, include_structured=True):
        self.calls.append(("unified", match_threshold, match_count))
        if self.unified_error:
            raise self.unified_error
        return self._rank(self.unified, match_threshold, match_count)

    def expanded_search(self, vector, match_threshold, match_count, exclude_ids=()):
        self.calls.append(("expanded", match_threshold, match_count, list(exclude_ids)))
        excluded = set(exclude_ids)
        return self._rank([m for m in self.expanded if m.id not in excluded],
                          match_threshold, match_count)

    def search_chunks(self, vector, match_threshold, match_count):
        self.calls.append(("chunks", match_threshold, match_count))
        if self.chunks_error:
            raise self.chunks_error
        return self._rank(self.chunks, match_threshold, match_count)

    def get_stats(self):
        return {"db_path": "memory", "collections": {}, "total": 0}


# ---------------------------------------------------------------------------
# Web search
# ---------------------------------------------------------------------------

def make_result(n, cached=False, content=None):
    return WebSearchResult(
        title=f"Result {n}",
        url=f"https://news.example.com/{n}",
        snippet=f"snippet {n}",
        content=content,
        source="Test",
        cached=cached,
    )


class FakeWebSearch:
    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.calls = []

    def search(self, query, **kwargs):
        self.calls.append((query, kwargs))
        if self.error:
            raise self.error
        return list(self.results)

    def cleanup_expired_cache(self):
        return 0


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------

class FakeLLM:
    def __init__(self, reply="", chunks=None, error=None, stream_error=None, model="fake-model"):
        self.reply = reply
        self.chunks = chunks or []
        self.error = error
        self.stream_error = stream_error
        self.model = model
        self.calls = []

    def chat(self, system, user, temperature=0.2, max_tokens=1000, json_mode=False):
        self.calls.append({"system": system, "user": user, "temperature": temperature,
                           "max_tokens": max_tokens, "json_mode": json_mode})
        if self.error:
            raise self.error
        return self.reply

    def chat_stream(self, system, user, temperature=0.2, max_tokens=1000):
        self.calls.append({"system": system, "user": user, "temperature": temperature,
                           "max_tokens": max_tokens, "stream": True})
        if self.error:
            raise self.error
        for chunk in self.chunks:
            yield chunk
        if self.stream_error:
            raise self.stream_error


GENERAL_INTENT = '{"intent": "general_query"}'
LAKERS_INTENT = (
    '{"intent": "prediction", "sport": "basketball_nba", '
    '"teams": ["Lakers", "Celtics"], "date": "tonight", "factors": ["injuries"]}'
)


def not_configured():
    return NotConfiguredError("OPENAI_API_KEY is not configured")
