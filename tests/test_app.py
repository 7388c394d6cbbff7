import threading
import time

import pytest
from fastapi.testclient import TestClient

import webapp.app as app_module
from conftest import GENERAL_INTENT, FakeEmbedder, FakeLLM, FakeResponse, FakeSession, FakeStore, make_match, not_configured
from scrapers.web_search import WebSearchClient
from storage.web_cache import WebSearchCache
from vectorstore.store import CHUNKS_COLLECTION, STRUCTURED_COLLECTION, VectorStore
from webapp.app import Services, create_app, decode_sources
from webapp.rag.intent import QueryIntentClassifier
from webapp.rag.query_engine import ChatEngine
from webapp.rag.retriever import ContextRetriever
from webapp.rag.sports import SportsOrchestrator
from webapp.sessions import SessionManager


class IdleSports:
    def get_game_schedule(self, sport, date_hint=None):
        return []

    def get_available_sports(self):
        return [{"key": "basketball_nba", "title": "NBA", "active": True}]


def _services(settings, classifier_llm=None, llm=None, upload_store=None):
    cache = WebSearchCache(settings.web_cache_db)
    session = FakeSession(lambda method, url, **kw: FakeResponse({"RelatedTopics": [], "Abstract": ""}))
    web_search = WebSearchClient(settings, cache, session=session)
    store = FakeStore(unified=[
        make_match("c1", 0.9, title="Q3 report", content="quarterly revenue was $4.2M"),
        make_match("c2", 0.8, title="Q3 report", content="costs were flat"),
        make_match("c3", 0.7, title="Q3 report", content="headcount grew"),
    ])
    embedder = FakeEmbedder()
    retriever = ContextRetriever(embedder, store, web_search)
    sessions = SessionManager(settings.sessions_db)
    engine = ChatEngine(
        settings=settings,
        classifier=QueryIntentClassifier(classifier_llm or FakeLLM(reply=GENERAL_INTENT)),
        retriever=retriever,
        sports=SportsOrchestrator(IdleSports()),
        llm=llm or FakeLLM(reply="Revenue was $4.2M.", chunks=["Revenue ", "was $4.2M."]),
        sessions=sessions,
    )
    return Services(
        settings=settings,
        cache=cache,
        web_search=web_search,
        sports_data=IdleSports(),
        store=upload_store or store,
        embedder=embedder,
        retriever=retriever,
        sessions=sessions,
        engine=engine,
    )


@pytest.fixture
def client(settings):
    return TestClient(create_app(services=_services(settings)))


def test_chat_streams_text_with_sources_header(client):
    response = client.post("/api/chat", json={"message": "What was the revenue?", "sessionId": "s1"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "Revenue was $4.2M."
    assert response.headers["x-session-id"] == "s1"

    sources = decode_sources(response.headers["x-sources"])
    assert [s["id"] for s in sources] == ["c1", "c2", "c3"]
    assert sources[0]["source_type"] == "document"
    assert set(sources[0]) == {"id", "origin_title", "source", "similarity", "source_type"}


def test_chat_history_is_saved(client):
    client.post("/api/chat", json={"message": "What was the revenue?", "sessionId": "s1"})

    response = client.get("/api/sessions/s1/messages")

    assert response.status_code == 200
    assert [m["role"] for m in response.json()["messages"]] == ["user", "assistant"]


def test_chat_generates_session_id(client):
    response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Revenue?"}]})
    assert len(response.headers["x-session-id"]) == 32


def test_chat_complete_returns_json(client):
    response = client.post("/api/chat/complete", json={"message": "What was the revenue?", "sessionId": "s9"})

    body = response.json()
    assert response.status_code == 200
    assert body["message"] == "Revenue was $4.2M."
    assert body["session_id"] == "s9"
    assert len(body["sources"]) == 3


def test_empty_message_is_bad_request(client):
    assert client.post("/api/chat", json={"message": ""}).status_code == 400


def test_missing_configuration_is_service_unavailable(settings):
    client = TestClient(create_app(services=_services(settings, classifier_llm=FakeLLM(error=not_configured()))))

    response = client.post("/api/chat", json={"message": "What was the revenue?"})

    assert response.status_code == 503
    assert response.json()["detail"].startswith("I apologize")


def test_unexpected_failure_is_apologetic_500(settings):
    services = _services(settings)

    def broken(request):
        raise KeyError("boom")

    services.engine.prepare = broken
    client = TestClient(create_app(services=services))

    response = client.post("/api/chat", json={"message": "hello"})

    assert response.status_code == 500
    assert "boom" not in response.json()["detail"]


def test_health_reports_providers(client):
    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["providers"]["openai"] is True
    assert body["providers"]["brave"] is False


def test_cache_endpoints(client):
    client.post("/api/chat/complete", json={"message": "hello"})

    stats = client.get("/api/cache/stats").json()
    cleanup = client.post("/api/cache/cleanup").json()

    assert set(stats) == {"total_queries", "total_searches", "total_cached_pages", "top_domains"}
    assert cleanup == {"deleted_count": 0}


def test_sports_lists_provider_coverage(client):
    assert client.get("/api/sports").json()["sports"][0]["key"] == "basketball_nba"


def test_session_lookup_and_delete(client):
    client.post("/api/chat/complete", json={"message": "What was the revenue?", "sessionId": "s5"})

    session = client.get("/api/sessions/s5").json()
    assert session["session"]["title"] == "What was the revenue?"
    assert len(session["messages"]) == 2

    assert client.delete("/api/sessions/s5").json() == {"status": "ok"}
    assert client.get("/api/sessions/s5").status_code == 404
    assert client.delete("/api/sessions/s5").status_code == 404


@pytest.fixture
def upload_client(settings, char_tokens):
    store = VectorStore(settings.chroma_path)
    return TestClient(create_app(services=_services(settings, upload_store=store))), store


def test_upload_text_document(upload_client):
    client, store = upload_client

    response = client.post(
        "/api/upload",
        files={"file": ("q3.txt", b"Quarterly revenue was $4.2M.", "text/plain")},
        data={"title": "Q3 report"},
    )

    body = response.json()
    assert response.status_code == 200
    assert body["filename"] == "q3.txt"
    assert body["chunks_stored"] == 1
    assert store.get_stats()["collections"][CHUNKS_COLLECTION] == 1


def test_upload_rows(upload_client):
    client, store = upload_client

    response = client.post(
        "/api/upload",
        files={"file": ("standings.json", b'[{"team": "Lakers", "wins": 40}, {"team": "Heat"}]', "application/json")},
    )

    assert response.json()["rows_stored"] == 2
    assert store.get_stats()["collections"][STRUCTURED_COLLECTION] == 2


def test_upload_rejects_unsupported_type(upload_client):
    client, _ = upload_client

    response = client.post("/api/upload", files={"file": ("deck.pdf", b"%PDF-1.7", "application/pdf")})

    assert response.status_code == 400
    assert ".pdf" in response.json()["detail"]


def test_services_are_built_once_under_concurrency(settings, monkeypatch):
    built = []
    services = _services(settings)

    def slow_build(s):
        built.append(s)
        time.sleep(0.05)
        return services

    monkeypatch.setattr(app_module, "build_services", slow_build)
    app = create_app(settings=settings)
    statuses = []

    def hit():
        statuses.append(TestClient(app).get("/api/cache/stats").status_code)

    threads = [threading.Thread(target=hit) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert statuses == [200] * 4
    assert len(built) == 1
