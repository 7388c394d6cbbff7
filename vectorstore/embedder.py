"""OpenAI embedding generator with batching, token truncation and retry.

Queries and document chunks go through the same model so their vectors are
comparable. The client is created lazily: a missing key only fails when an
embedding is actually requested.
"""

import logging
import time
from typing import Optional

import tiktoken
from openai import BadRequestError, OpenAI
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from config import Settings
from errors import NotConfiguredError

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 256
MAX_TOKENS_PER_TEXT = 8000  # model limit is 8192


class Embedder:
    """Turns text into fixed-length vectors with an OpenAI embedding model."""

    def __init__(self, settings: Settings):
        self.model = settings.embedding_model
        self.dimensions = settings.embedding_dimensions
        self._api_key = settings.openai_api_key
        self._client: Optional[OpenAI] = None
        self._encoder: Optional[tiktoken.Encoding] = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise NotConfiguredError("OPENAI_API_KEY is not configured; embeddings are unavailable")
            self._client = OpenAI(api_key=self._api_key)
        return self._client

    @property
    def encoder(self) -> tiktoken.Encoding:
        if self._encoder is None:
            try:
                self._encoder = tiktoken.encoding_for_model(self.model)
            except KeyError:
                self._encoder = tiktoken.get_encoding("cl100k_base")
        return self._encoder

    def _truncate_text(self, text: str) -> str:
        tokens = self.encoder.encode(text)
        if len(tokens) <= MAX_TOKENS_PER_TEXT:
            return text
        logger.warning(
            "Truncating text from %d to %d tokens (first 60 chars: '%.60s')",
            len(tokens), MAX_TOKENS_PER_TEXT, text,
        )
        return self.encoder.decode(tokens[:MAX_TOKENS_PER_TEXT])

    @retry(
        stop=stop_after_attempt(4),
        wait=wait_exponential(multiplier=2, min=2, max=30),
        retry=retry_if_not_exception_type((BadRequestError, NotConfiguredError)),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            "Embedding API retry %d after error: %s",
            retry_state.attempt_number,
            retry_state.outcome.exception() if retry_state.outcome else "unknown",
        ),
    )
    def _embed_batch(self, texts: list[str]) -> list[list[float]]:
        response = self.client.embeddings.create(
            model=self.model,
            input=texts,
            dimensions=self.dimensions,
        )
        return [item.embedding for item in sorted(response.data, key=lambda x: x.index)]

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed texts in batches, preserving input order."""
        if not texts:
            return []
        if any(not t or not t.strip() for t in texts):
            raise ValueError("Cannot embed empty text")

        texts = [self._truncate_text(t) for t in texts]
        embeddings: list[list[float]] = []
        started = time.time()

        for start in range(0, len(texts), MAX_BATCH_SIZE):
            embeddings.extend(self._embed_batch(texts[start:start + MAX_BATCH_SIZE]))

        logger.info(
            "Embedded %d texts (%d dimensions) in %.1fs",
            len(embeddings), self.dimensions, time.time() - started,
        )
        return embeddings

    def embed_query(self, text: str) -> list[float]:
        """Embed a single search query."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        return self._embed_batch([self._truncate_text(text)])[0]
