"""FastAPI application exposing the chat wire contract.

Launch:
    python -m uvicorn webapp.app:app --port 8000

Or via pipeline:
    python pipeline.py serve --port 8000

POST /api/chat streams the answer as plain UTF-8 text. Retrieved sources
travel out of band in the ``X-Sources`` header (base64-encoded JSON) and the
session id in ``X-Session-Id``. Only a summary of each source (id, title,
provenance, similarity, type) goes in the header.

POST /api/upload ingests one .txt/.md document or .csv/.json row file
(multipart form, optional ``title`` field) into the vector store.
"""

import base64
import json
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from config import Settings, configure_logging
from errors import NotConfiguredError
from schemas.retrieval import ChatRequest, ChatResponse, RetrievedItem
from scrapers.content_extractor import ContentExtractor
from scrapers.sports_data import SportsDataClient
from scrapers.web_search import WebSearchClient
from storage.web_cache import WebSearchCache
from vectorstore.embedder import Embedder
from vectorstore.ingest import ingest_upload
from vectorstore.store import VectorStore
from webapp.rag.intent import QueryIntentClassifier
from webapp.rag.query_engine import ChatEngine, LLMClient
from webapp.rag.retriever import ContextRetriever
from webapp.rag.sports import SportsOrchestrator
from webapp.sessions import SessionManager

logger = logging.getLogger(__name__)

NOT_CONFIGURED_MESSAGE = "I apologize, but the assistant is not fully configured: {detail}"
FAILURE_MESSAGE = "I apologize, but something went wrong while preparing a response. Please try again."


# ---------------------------------------------------------------------------
# Composition root
# ---------------------------------------------------------------------------

@dataclass
class Services:
    settings: Settings
    cache: WebSearchCache
    web_search: WebSearchClient
    sports_data: SportsDataClient
    store: VectorStore
    embedder: Embedder
    retriever: ContextRetriever
    sessions: SessionManager
    engine: ChatEngine


def build_services(settings: Settings) -> Services:
    """Construct every service once, wired from explicit settings."""
    cache = WebSearchCache(
        settings.web_cache_db,
        query_ttl_minutes=settings.query_cache_ttl_minutes,
        content_ttl_minutes=settings.content_cache_ttl_minutes,
    )
    web_search = WebSearchClient(settings, cache, ContentExtractor())
    sports_data = SportsDataClient(settings, web_search=web_search)
    store = VectorStore(settings.chroma_path)
    embedder = Embedder(settings)
    retriever = ContextRetriever(embedder, store, web_search, settings.web_results_ratio)
    sessions = SessionManager(settings.sessions_db)

    engine = ChatEngine(
        settings=settings,
        classifier=QueryIntentClassifier(LLMClient(settings, model=settings.classifier_model)),
        retriever=retriever,
        sports=SportsOrchestrator(sports_data, web_search),
        llm=LLMClient(settings, model=settings.generation_model),
        sessions=sessions,
    )
    return Services(
        settings=settings,
        cache=cache,
        web_search=web_search,
        sports_data=sports_data,
        store=store,
        embedder=embedder,
        retriever=retriever,
        sessions=sessions,
        engine=engine,
    )


SOURCE_HEADER_FIELDS = {"id", "origin_title", "source", "similarity", "source_type"}


def encode_sources(sources: list[RetrievedItem]) -> str:
    """Header-sized summary of each source; full content stays in the prompt."""
    payload = json.dumps([s.model_dump(mode="json", include=SOURCE_HEADER_FIELDS) for s in sources])
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_sources(header: str) -> list[dict]:
    return json.loads(base64.b64decode(header).decode("utf-8"))


# ---------------------------------------------------------------------------
# App setup
# ---------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    app = FastAPI(
        title="RAG Chat",
        description="Document-priority retrieval chat with web search and sports data",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Sources", "X-Session-Id"],
    )
    app.state.settings = services.settings if services else (settings or Settings.from_env())
    app.state.services = services
    configure_logging(app.state.settings.log_level)

    services_lock = threading.Lock()

    def get_services(request: Request) -> Services:
        # Built lazily so importing the app never touches disk or network
        if request.app.state.services is None:
            with services_lock:
                if request.app.state.services is None:
                    request.app.state.services = build_services(request.app.state.settings)
        return request.app.state.services

    def prepare_or_raise(services: Services, req: ChatRequest):
        try:
            return services.engine.prepare(req)
        except NotConfiguredError as e:
            logger.error("Chat request rejected, missing configuration: %s", e)
            raise HTTPException(status_code=503, detail=NOT_CONFIGURED_MESSAGE.format(detail=e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.exception("Chat preparation failed: %s", e)
            raise HTTPException(status_code=500, detail=FAILURE_MESSAGE)

    @app.post("/api/chat")
    def api_chat(req: ChatRequest, request: Request):
        """Stream the answer as plain text; sources ride in the X-Sources header."""
        services = get_services(request)
        prepared = prepare_or_raise(services, req)
        return StreamingResponse(
            services.engine.stream(prepared),
            media_type="text/plain; charset=utf-8",
            headers={
                "X-Sources": encode_sources(prepared.sources),
                "X-Session-Id": prepared.session_id,
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    @app.post("/api/chat/complete", response_model=ChatResponse)
    def api_chat_complete(req: ChatRequest, request: Request):
        """Non-streaming variant returning the full answer and its sources."""
        services = get_services(request)
        prepared = prepare_or_raise(services, req)
        try:
            return services.engine.complete(prepared)
        except NotConfiguredError as e:
            raise HTTPException(status_code=503, detail=NOT_CONFIGURED_MESSAGE.format(detail=e))
        except Exception as e:
            logger.exception("Chat generation failed: %s", e)
            raise HTTPException(status_code=500, detail=FAILURE_MESSAGE)

    @app.get("/api/health")
    def api_health(request: Request):
        settings: Settings = request.app.state.settings
        return {
            "status": "ok",
            "llm_provider": settings.llm_provider,
            "search_engine": settings.search_engine,
            "providers": settings.provider_status(),
        }

    @app.post("/api/cache/cleanup")
    def api_cache_cleanup(request: Request):
        """Delete expired web search cache rows."""
        deleted = get_services(request).web_search.cleanup_expired_cache()
        return {"deleted_count": deleted}

    @app.get("/api/cache/stats")
    def api_cache_stats(request: Request):
        return get_services(request).cache.stats()

    @app.get("/api/sports")
    def api_sports(request: Request):
        """Sports keys the odds provider currently covers."""
        try:
            return {"sports": get_services(request).sports_data.get_available_sports()}
        except NotConfiguredError as e:
            raise HTTPException(status_code=503, detail=NOT_CONFIGURED_MESSAGE.format(detail=e))

    # -- Sessions ------------------------------------------------------------

    @app.get("/api/sessions/{session_id}")
    def api_get_session(session_id: str, request: Request):
        sessions = get_services(request).sessions
        session = sessions.get_session(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return {"session": session, "messages": sessions.get_messages(session_id)}

    @app.delete("/api/sessions/{session_id}")
    def api_delete_session(session_id: str, request: Request):
        """Delete a session and its messages."""
        if not get_services(request).sessions.delete_session(session_id):
            raise HTTPException(status_code=404, detail="Session not found")
        return {"status": "ok"}

    @app.get("/api/sessions/{session_id}/messages")
    def api_session_messages(session_id: str, request: Request):
        """Get all messages for a session."""
        return {"messages": get_services(request).sessions.get_messages(session_id)}

    # -- Document upload -----------------------------------------------------

    @app.post("/api/upload")
    def api_upload(
        request: Request,
        file: UploadFile = File(...),
        title: Optional[str] = Form(None),
    ):
        """Ingest a .txt/.md document or .csv/.json rows into the vector store."""
        if not file.filename:
            raise HTTPException(status_code=400, detail="No filename provided")

        services = get_services(request)
        data = file.file.read()
        try:
            stats = ingest_upload(file.filename, data, services.embedder, services.store, title=title)
        except NotConfiguredError as e:
            raise HTTPException(status_code=503, detail=NOT_CONFIGURED_MESSAGE.format(detail=e))
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            logger.exception("Upload of %s failed: %s", file.filename, e)
            raise HTTPException(status_code=500, detail="Upload failed. Please try again.")

        logger.info("Uploaded %s (%d bytes)", file.filename, len(data))
        return {"status": "ok", "filename": file.filename, **stats}

    return app


app = create_app()
