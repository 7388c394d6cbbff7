"""Runtime configuration for the RAG chat service.

All settings come from the environment (optionally a ``.env`` file at the
project root). Services never read the environment themselves; they receive
a ``Settings`` instance from the composition root.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel

PROJECT_ROOT = Path(__file__).parent
DATA_DIR = PROJECT_ROOT / "data"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class Settings(BaseModel):
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    llm_provider: str = "openai"
    generation_model: str = "gpt-4o-mini"
    classifier_model: str = "gpt-4o-mini"
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    # Retrieval defaults
    similarity_threshold: float = 0.3
    result_limit: int = 5
    web_results_ratio: float = 0.4

    # Web search + cache
    search_engine: str = "duckduckgo"
    brave_api_key: Optional[str] = None
    serper_api_key: Optional[str] = None
    query_cache_ttl_minutes: int = 30
    content_cache_ttl_minutes: int = 60

    # Sports
    odds_api_key: Optional[str] = None

    # Storage
    chroma_path: str = str(DATA_DIR / "chroma")
    web_cache_db: str = str(DATA_DIR / "web_cache.db")
    sessions_db: str = str(DATA_DIR / "sessions.db")

    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Build settings from environment variables (and ``.env`` if present)."""
        load_dotenv(env_file or PROJECT_ROOT / ".env")

        def _get(name: str, default=None):
            value = os.getenv(name)
            return value if value not in (None, "") else default

        defaults = cls()
        return cls(
            openai_api_key=_get("OPENAI_API_KEY"),
            anthropic_api_key=_get("ANTHROPIC_API_KEY"),
            llm_provider=_get("LLM_PROVIDER", defaults.llm_provider),
            generation_model=_get("GENERATION_MODEL", defaults.generation_model),
            classifier_model=_get("CLASSIFIER_MODEL", defaults.classifier_model),
            embedding_model=_get("EMBEDDING_MODEL", defaults.embedding_model),
            embedding_dimensions=int(_get("EMBEDDING_DIMENSIONS", defaults.embedding_dimensions)),
            similarity_threshold=float(_get("SIMILARITY_THRESHOLD", defaults.similarity_threshold)),
            result_limit=int(_get("RESULT_LIMIT", defaults.result_limit)),
            web_results_ratio=float(_get("WEB_RESULTS_RATIO", defaults.web_results_ratio)),
            search_engine=_get("SEARCH_ENGINE", defaults.search_engine),
            brave_api_key=_get("BRAVE_SEARCH_API_KEY"),
            serper_api_key=_get("SERPER_API_KEY"),
            query_cache_ttl_minutes=int(_get("QUERY_CACHE_TTL_MINUTES", defaults.query_cache_ttl_minutes)),
            content_cache_ttl_minutes=int(_get("CONTENT_CACHE_TTL_MINUTES", defaults.content_cache_ttl_minutes)),
            odds_api_key=_get("THE_ODDS_API_KEY"),
            chroma_path=_get("CHROMA_PATH", defaults.chroma_path),
            web_cache_db=_get("WEB_CACHE_DB", defaults.web_cache_db),
            sessions_db=_get("SESSIONS_DB", defaults.sessions_db),
            log_level=_get("LOG_LEVEL", defaults.log_level),
        )

    def provider_status(self) -> dict:
        """Which upstream providers have credentials (keys are never exposed)."""
        return {
            "openai": bool(self.openai_api_key),
            "anthropic": bool(self.anthropic_api_key),
            "brave": bool(self.brave_api_key),
            "serper": bool(self.serper_api_key),
            "the_odds_api": bool(self.odds_api_key),
        }


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None):
    """Install the root logging configuration used by the CLI and web app."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
    )
