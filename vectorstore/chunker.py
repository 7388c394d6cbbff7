"""Token-aware recursive text splitter for uploaded documents.

Text is split on the most structural separator that yields more than one
piece (markdown headers, blank lines, lines, sentences, words), pieces are
merged back up to ``chunk_tokens`` with a trailing overlap, and anything that
still cannot be split is hard-cut by token count.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional

import tiktoken

logger = logging.getLogger(__name__)

_ENCODER: Optional[tiktoken.Encoding] = None


def _get_encoder() -> tiktoken.Encoding:
    global _ENCODER
    if _ENCODER is None:
        _ENCODER = tiktoken.get_encoding("cl100k_base")
    return _ENCODER


def count_tokens(text: str) -> int:
    return len(_get_encoder().encode(text))


DEFAULT_CHUNK_TOKENS = 400
DEFAULT_OVERLAP_TOKENS = 60
MIN_CHUNK_TOKENS = 50

# Highest priority first
SEPARATORS = ["\n## ", "\n### ", "\n#### ", "\n\n", "\n", ". ", " "]


@dataclass
class TextChunk:
    """A chunk of an uploaded document, ready to embed."""
    document_id: str
    document_title: str
    chunk_index: int
    text: str
    token_count: int = 0
    metadata: dict = field(default_factory=dict)

    @property
    def id(self) -> str:
        digest = hashlib.sha256(f"{self.document_id}:{self.chunk_index}:{self.text[:100]}".encode()).hexdigest()
        return f"{self.document_id}-chunk-{digest[:12]}"


class Chunker:
    """Recursive token-bounded splitter with overlap."""

    def __init__(
        self,
        chunk_tokens: int = DEFAULT_CHUNK_TOKENS,
        overlap_tokens: int = DEFAULT_OVERLAP_TOKENS,
    ):
        if overlap_tokens >= chunk_tokens:
            raise ValueError("overlap_tokens must be smaller than chunk_tokens")
        self.chunk_tokens = chunk_tokens
        self.overlap_tokens = overlap_tokens

    def chunk_text(self, document_id: str, title: str, text: str) -> list[TextChunk]:
        if not text or not text.strip():
            return []

        pieces = [p.strip() for p in self._recursive_split(text.strip()) if p.strip()]
        chunks = [
            TextChunk(
                document_id=document_id,
                document_title=title,
                chunk_index=i,
                text=piece,
                token_count=count_tokens(piece),
            )
            for i, piece in enumerate(pieces)
        ]
        logger.debug("Split '%s' into %d chunks", title, len(chunks))
        return chunks

    def _recursive_split(self, text: str) -> list[str]:
        if count_tokens(text) <= self.chunk_tokens:
            return [text]

        for sep in SEPARATORS:
            parts = text.split(sep)
            if len(parts) <= 1:
                continue
            chunks = self._merge_splits(parts, sep)
            if len(chunks) > 1:
                # A single oversized part can still exceed the budget
                result = []
                for chunk in chunks:
                    if count_tokens(chunk) > self.chunk_tokens:
                        result.extend(self._hard_split(chunk))
                    else:
                        result.append(chunk)
                return result

        return self._hard_split(text)

    def _merge_splits(self, parts: list[str], separator: str) -> list[str]:
        chunks: list[str] = []
        current: list[str] = []
        current_tokens = 0
        carried = 0  # leading parts of ``current`` repeated from the previous chunk
        sep_tokens = count_tokens(separator)

        for part in parts:
            part_tokens = count_tokens(part)
            joined_tokens = current_tokens + part_tokens + (sep_tokens if current else 0)

            if joined_tokens > self.chunk_tokens and current:
                chunks.append(separator.join(current))

                overlap: list[str] = []
                overlap_tokens = 0
                for p in reversed(current):
                    pt = count_tokens(p) + (sep_tokens if overlap else 0)
                    if overlap_tokens + pt > self.overlap_tokens:
                        break
                    overlap.insert(0, p)
                    overlap_tokens += pt

                current = overlap + [part]
                carried = len(overlap)
                current_tokens = overlap_tokens + part_tokens + (sep_tokens if overlap else 0)
            else:
                current.append(part)
                current_tokens = joined_tokens

        if current:
            tail = separator.join(current)
            if count_tokens(tail) >= MIN_CHUNK_TOKENS or not chunks:
                chunks.append(tail)
            else:
                merged = chunks[-1] + separator + separator.join(current[carried:])
                if count_tokens(merged) <= self.chunk_tokens:
                    chunks[-1] = merged
                else:
                    chunks.append(tail)

        return chunks

    def _hard_split(self, text: str) -> list[str]:
        encoder = _get_encoder()
        tokens = encoder.encode(text)
        chunks = []
        start = 0

        while start < len(tokens):
            end = min(start + self.chunk_tokens, len(tokens))
            chunks.append(encoder.decode(tokens[start:end]))
            if end >= len(tokens):
                break
            start = end - self.overlap_tokens

        return chunks
