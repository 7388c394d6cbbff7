"""Chat engine: intent -> retrieval -> context -> generation.

Implements:
  - Message sanitisation and intent classification
  - Sports prediction path (odds, stats, news) for actionable predictions
  - Document-priority retrieval with web supplementation otherwise
  - Prompt selection (general / prediction guidelines / sports analyst)
  - Streaming and non-streaming generation via OpenAI or Anthropic
  - Session history persisted after each answer
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Optional

from config import Settings
from errors import NotConfiguredError, best_effort
from schemas.intent import ExtractedQueryIntent
from schemas.retrieval import ChatRequest, ChatResponse, PredictionType, RetrievedItem
from scrapers.utils import sanitize_text
from webapp.rag.formatter import ContextFormatter
from webapp.rag.intent import KeywordPredictionDetector, QueryIntentClassifier, infer_prediction_type
from webapp.rag.prompts import (
    APOLOGY,
    CONFIDENCE_SCALE,
    GENERAL_SYSTEM,
    GENERAL_USER,
    NO_SPORTS_DATA,
    PREDICTION_GUIDELINES,
    SPORTS_PREDICTION_SYSTEM,
    SPORTS_PREDICTION_USER,
)
from webapp.rag.retriever import ContextRetriever
from webapp.rag.sports import SportsOrchestrator
from webapp.sessions import SessionManager

logger = logging.getLogger(__name__)

PREDICTION_MAX_TOKENS = 1200
PREDICTION_TEMPERATURE = 0.7
GENERAL_MAX_TOKENS = 1000
GENERAL_TEMPERATURE = 0.4

STREAM_APOLOGY = "\n\nI apologize, but an error interrupted this response. Please try again."

DEFAULT_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-sonnet-4-6",
}


class LLMClient:
    """Unified chat client for OpenAI and Anthropic.

    The SDK client is created on first use, so a missing key surfaces as
    NotConfiguredError at the first request rather than at startup.
    """

    def __init__(self, settings: Settings, model: Optional[str] = None):
        self.provider = settings.llm_provider
        if self.provider not in DEFAULT_MODELS:
            raise ValueError(f"Unsupported provider: {self.provider}")

        configured = model or settings.generation_model
        # OpenAI model names are meaningless to Anthropic and vice versa
        if self.provider == "anthropic" and configured.startswith("gpt-"):
            configured = DEFAULT_MODELS["anthropic"]
        self.model = configured
        self._api_key = settings.anthropic_api_key if self.provider == "anthropic" else settings.openai_api_key
        self._client = None

    @property
    def client(self):
        if self._client is None:
            if not self._api_key:
                raise NotConfiguredError(f"No API key configured for LLM provider '{self.provider}'")
            if self.provider == "anthropic":
                import anthropic
                self._client = anthropic.Anthropic(api_key=self._api_key)
            else:
                from openai import OpenAI
                self._client = OpenAI(api_key=self._api_key)
        return self._client

    def chat(
        self,
        system: str,
        user: str,
        temperature: float = 0.2,
        max_tokens: int = 1000,
        json_mode: bool = False,
    ) -> str:
        """Send a single-turn chat completion request."""
        if self.provider == "anthropic":
            response = self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": user}],
            )
            return "".join(block.text for block in response.content if getattr(block, "type", "") == "text")

        params = dict(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        )
        if json_mode:
            params["response_format"] = {"type": "json_object"}
        response = self.client.chat.completions.create(**params)
        return response.choices[0].message.content or ""

    def chat_stream(
        self,
        system: str,
        user: str,
        temperature: float = 0.2,
        max_tokens: int = 1000,
    ) -> Iterator[str]:
        """Yield text chunks from a streaming chat completion."""
        if self.provider == "anthropic":
            with self.client.messages.stream(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system,
                messages=[{"role": "user", "content": user}],
            ) as stream:
                for text in stream.text_stream:
                    yield text
        else:
            response = self.client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                stream=True,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
            )
            for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content


@dataclass
class PreparedChat:
    """Everything needed to generate one answer."""
    session_id: str
    message: str
    intent: ExtractedQueryIntent
    system_prompt: str
    user_prompt: str
    sources: list[RetrievedItem] = field(default_factory=list)
    max_tokens: int = GENERAL_MAX_TOKENS
    temperature: float = GENERAL_TEMPERATURE


class ChatEngine:
    """Runs the full chat pipeline for one request."""

    def __init__(
        self,
        settings: Settings,
        classifier: QueryIntentClassifier,
        retriever: ContextRetriever,
        sports: SportsOrchestrator,
        llm: LLMClient,
        formatter: Optional[ContextFormatter] = None,
        sessions: Optional[SessionManager] = None,
        detector: Optional[KeywordPredictionDetector] = None,
    ):
        self.settings = settings
        self.classifier = classifier
        self.retriever = retriever
        self.sports = sports
        self.llm = llm
        self.formatter = formatter or ContextFormatter()
        self.sessions = sessions
        self.detector = detector or KeywordPredictionDetector()

    def prepare(self, request: ChatRequest) -> PreparedChat:
        message = sanitize_text(request.user_message())
        if not message:
            raise ValueError("Request must carry a non-empty user message")
        session_id = request.session_id or uuid.uuid4().hex

        intent = self.classifier.classify(message)

        if intent.is_actionable_prediction:
            logger.info("Taking sports prediction path for %s", intent.teams)
            sports_ctx = self.sports.orchestrate(intent)
            prepared = PreparedChat(
                session_id=session_id,
                message=message,
                intent=intent,
                system_prompt=SPORTS_PREDICTION_SYSTEM,
                user_prompt=SPORTS_PREDICTION_USER.format(
                    question=message,
                    context=sports_ctx.context_text.strip() or NO_SPORTS_DATA,
                ),
                sources=sports_ctx.to_items(),
                max_tokens=PREDICTION_MAX_TOKENS,
                temperature=PREDICTION_TEMPERATURE,
            )
        else:
            items = self.retriever.retrieve(
                message,
                limit=self.settings.result_limit,
                threshold=self.settings.similarity_threshold,
                allow_web_search=request.use_web_search,
            )
            prepared = PreparedChat(
                session_id=session_id,
                message=message,
                intent=intent,
                system_prompt=self._general_system_prompt(message, request),
                user_prompt=GENERAL_USER.format(question=message, context=self.formatter.format(items)),
                sources=items,
            )

        if request.max_tokens:
            prepared.max_tokens = request.max_tokens
        if request.temperature is not None:
            prepared.temperature = request.temperature
        return prepared

    def _general_system_prompt(self, message: str, request: ChatRequest) -> str:
        if request.prediction_type is None and not self.detector.is_prediction(message):
            return GENERAL_SYSTEM

        prediction_type = request.prediction_type or infer_prediction_type(message)
        prompt = GENERAL_SYSTEM + PREDICTION_GUIDELINES.format(
            prediction_type=PredictionType(prediction_type).value
        )
        if request.confidence_level:
            prompt += CONFIDENCE_SCALE
        return prompt

    def stream(self, prepared: PreparedChat) -> Iterator[str]:
        """Yield the answer incrementally; a mid-stream failure ends with an apology."""
        parts: list[str] = []
        try:
            for text in self.llm.chat_stream(
                system=prepared.system_prompt,
                user=prepared.user_prompt,
                temperature=prepared.temperature,
                max_tokens=prepared.max_tokens,
            ):
                parts.append(text)
                yield text
        except Exception:
            logger.exception("Generation failed mid-stream for session %s", prepared.session_id)
            parts.append(STREAM_APOLOGY)
            yield STREAM_APOLOGY

        self._remember(prepared, "".join(parts))

    def chat(self, request: ChatRequest) -> ChatResponse:
        return self.complete(self.prepare(request))

    def complete(self, prepared: PreparedChat) -> ChatResponse:
        """Generate the whole answer in one call."""
        answer = self.llm.chat(
            system=prepared.system_prompt,
            user=prepared.user_prompt,
            temperature=prepared.temperature,
            max_tokens=prepared.max_tokens,
        ) or APOLOGY
        self._remember(prepared, answer)
        return ChatResponse(
            id=uuid.uuid4().hex,
            message=answer,
            sources=prepared.sources,
            session_id=prepared.session_id,
            timestamp=datetime.now(timezone.utc),
        )

    def _remember(self, prepared: PreparedChat, answer: str):
        if self.sessions is None:
            return
        best_effort(
            self._store_turn, prepared, answer,
            label=f"Saving history for session {prepared.session_id}", log=logger,
        )

    def _store_turn(self, prepared: PreparedChat, answer: str):
        self.sessions.add_message(prepared.session_id, "user", prepared.message)
        self.sessions.add_message(
            prepared.session_id,
            "assistant",
            answer,
            model=self.llm.model,
            sources=[s.model_dump(mode="json") for s in prepared.sources],
        )
