"""Ingestion: plain text and tabular rows -> chunk -> embed -> store.

File-format parsing (PDF, DOCX, spreadsheets) is not handled here; callers
pass already-extracted text, or JSON/CSV row files.

Usage (via the main pipeline):
  python pipeline.py ingest --file notes.txt --title "Q3 report"
  python pipeline.py ingest --rows results.csv --title "Standings"

Or over HTTP, one file per request:
  curl -F file=@notes.txt -F title="Q3 report" localhost:8000/api/upload
"""

import csv
import hashlib
import io
import logging
import time
from pathlib import Path
from typing import Optional

import orjson

from vectorstore.chunker import Chunker
from vectorstore.embedder import Embedder
from vectorstore.store import CHUNKS_COLLECTION, STRUCTURED_COLLECTION, VectorStore

logger = logging.getLogger(__name__)

TEXT_EXTENSIONS = {".txt", ".md"}
ROW_EXTENSIONS = {".csv", ".json"}


def make_document_id(title: str, text: str) -> str:
    """Deterministic id, so re-ingesting the same document replaces it."""
    return "doc-" + hashlib.sha256(f"{title}\n{text}".encode()).hexdigest()[:16]


def ingest_text(
    title: str,
    text: str,
    embedder: Embedder,
    store: VectorStore,
    chunker: Optional[Chunker] = None,
    document_id: Optional[str] = None,
) -> dict:
    """Chunk, embed and store one document. Returns a stats dict."""
    chunker = chunker or Chunker()
    document_id = document_id or make_document_id(title, text)
    started = time.perf_counter()

    chunks = chunker.chunk_text(document_id, title, text)
    if not chunks:
        logger.warning("No content to ingest for '%s'", title)
        return {"document_id": document_id, "chunks_created": 0, "chunks_stored": 0}

    embeddings = embedder.embed([c.text for c in chunks])
    stored = store.upsert_chunks(
        ids=[c.id for c in chunks],
        texts=[c.text for c in chunks],
        embeddings=embeddings,
        metadatas=[
            {
                "document_id": c.document_id,
                "document_title": c.document_title,
                "chunk_index": c.chunk_index,
                "token_count": c.token_count,
            }
            for c in chunks
        ],
        collection=CHUNKS_COLLECTION,
    )

    elapsed = time.perf_counter() - started
    logger.info("Ingested '%s': %d chunks in %.1fs", title, stored, elapsed)
    return {
        "document_id": document_id,
        "chunks_created": len(chunks),
        "chunks_stored": stored,
        "elapsed_s": round(elapsed, 1),
    }


def row_to_text(row: dict) -> str:
    return "\n".join(f"{k}: {v}" for k, v in row.items() if v not in (None, ""))


def ingest_rows(
    title: str,
    rows: list[dict],
    embedder: Embedder,
    store: VectorStore,
    document_id: Optional[str] = None,
) -> dict:
    """Store each row as its own ``key: value`` entry in the structured collection."""
    texts = [row_to_text(r) for r in rows]
    kept = [(i, t) for i, t in enumerate(texts) if t.strip()]
    document_id = document_id or make_document_id(title, "\n\n".join(texts))

    if not kept:
        logger.warning("No rows to ingest for '%s'", title)
        return {"document_id": document_id, "rows_stored": 0}

    embeddings = embedder.embed([t for _, t in kept])
    stored = store.upsert_chunks(
        ids=[f"{document_id}-row-{i}" for i, _ in kept],
        texts=[t for _, t in kept],
        embeddings=embeddings,
        metadatas=[
            {"document_id": document_id, "document_title": title, "chunk_index": i}
            for i, _ in kept
        ],
        collection=STRUCTURED_COLLECTION,
    )
    logger.info("Ingested %d rows from '%s'", stored, title)
    return {"document_id": document_id, "rows_stored": stored}


def parse_rows(data: bytes, suffix: str) -> list[dict]:
    """Rows from CSV (with a header row) or a JSON array of objects."""
    if suffix.lower() == ".csv":
        return list(csv.DictReader(io.StringIO(data.decode("utf-8-sig"))))

    parsed = orjson.loads(data)
    items = parsed if isinstance(parsed, list) else [parsed]
    rows = [item for item in items if isinstance(item, dict)]
    if len(rows) != len(items):
        logger.warning("Skipped %d non-object entries", len(items) - len(rows))
    return rows


def load_rows(path: Path) -> list[dict]:
    """Read a JSON array of objects or a CSV file with a header row."""
    return parse_rows(path.read_bytes(), path.suffix)


def ingest_upload(
    filename: str,
    data: bytes,
    embedder: Embedder,
    store: VectorStore,
    title: Optional[str] = None,
) -> dict:
    """Route an uploaded file to text or row ingestion by its extension.

    Raises ValueError for unsupported extensions, undecodable text, or
    malformed row files.
    """
    suffix = Path(filename).suffix.lower()
    title = title or Path(filename).stem

    if suffix in TEXT_EXTENSIONS:
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ValueError(f"{filename} is not UTF-8 text") from e
        return ingest_text(title, text, embedder, store)

    if suffix in ROW_EXTENSIONS:
        try:
            rows = parse_rows(data, suffix)
        except (UnicodeDecodeError, csv.Error, orjson.JSONDecodeError) as e:
            raise ValueError(f"Could not parse rows from {filename}: {e}") from e
        return ingest_rows(title, rows, embedder, store)

    allowed = ", ".join(sorted(TEXT_EXTENSIONS | ROW_EXTENSIONS))
    raise ValueError(f"File type '{suffix}' not supported. Allowed: {allowed}")
