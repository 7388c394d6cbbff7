"""ChromaDB-backed vector similarity store.

Two collections, both in cosine space:
  document_chunks   text chunks of uploaded documents
  structured_rows   tabular rows rendered as "key: value" text

Similarity is reported as ``1 - cosine distance``, clipped to [0, 1].
Searches drop hits below the requested threshold and return the rest
sorted by similarity, highest first.
"""

import logging
from pathlib import Path
from typing import Iterable

import chromadb

from schemas.retrieval import ContentType, StoreMatch

logger = logging.getLogger(__name__)

CHUNKS_COLLECTION = "document_chunks"
STRUCTURED_COLLECTION = "structured_rows"

_CONTENT_TYPES = {
    CHUNKS_COLLECTION: ContentType.CHUNK,
    STRUCTURED_COLLECTION: ContentType.STRUCTURED,
}


class VectorStore:
    """Persistent nearest-neighbour search over document chunks and structured rows."""

    def __init__(self, db_path: str, client=None):
        self.db_path = Path(db_path)
        if client is None:
            self.db_path.mkdir(parents=True, exist_ok=True)
            client = chromadb.PersistentClient(path=str(self.db_path))
        self.client = client

    def _collection(self, name: str):
        return self.client.get_or_create_collection(
            name=name,
            metadata={"hnsw:space": "cosine"},
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_chunks(
        self,
        ids: list[str],
        texts: list[str],
        embeddings: list[list[float]],
        metadatas: list[dict],
        collection: str = CHUNKS_COLLECTION,
    ) -> int:
        """Insert or replace entries keyed by id. Returns the number written."""
        if not (len(ids) == len(texts) == len(embeddings) == len(metadatas)):
            raise ValueError("ids, texts, embeddings and metadatas must be the same length")
        if not ids:
            return 0
        if collection not in _CONTENT_TYPES:
            raise ValueError(f"Unknown collection: {collection}")

        self._collection(collection).upsert(
            ids=ids,
            documents=texts,
            embeddings=embeddings,
            metadatas=[_clean_metadata(m) for m in metadatas],
        )
        logger.info("Upserted %d entries into %s", len(ids), collection)
        return len(ids)

    def reset(self):
        """Drop both collections."""
        for name in _CONTENT_TYPES:
            try:
                self.client.delete_collection(name)
            except Exception as e:
                logger.debug("Collection %s not deleted: %s", name, e)
        logger.info("Vector store reset")

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def unified_search(
        self,
        vector: list[float],
        match_threshold: float,
        match_count: int,
        include_chunks: bool = True,
        include_structured: bool = True,
    ) -> list[StoreMatch]:
        """Search chunks and structured rows together, best matches first."""
        names = []
        if include_chunks:
            names.append(CHUNKS_COLLECTION)
        if include_structured:
            names.append(STRUCTURED_COLLECTION)

        matches: list[StoreMatch] = []
        for name in names:
            matches.extend(self._query(name, vector, match_count))

        return _rank(matches, match_threshold, match_count)

    def expanded_search(
        self,
        vector: list[float],
        match_threshold: float,
        match_count: int,
        exclude_ids: Iterable[str] = (),
    ) -> list[StoreMatch]:
        """Unified search over both collections, skipping ids already selected."""
        excluded = set(exclude_ids)
        matches: list[StoreMatch] = []
        for name in _CONTENT_TYPES:
            matches.extend(
                m for m in self._query(name, vector, match_count + len(excluded))
                if m.id not in excluded
            )
        return _rank(matches, match_threshold, match_count)

    def search_chunks(
        self,
        vector: list[float],
        match_threshold: float,
        match_count: int,
    ) -> list[StoreMatch]:
        """Plain single-collection similarity search over document chunks."""
        return _rank(self._query(CHUNKS_COLLECTION, vector, match_count), match_threshold, match_count)

    def _query(self, name: str, vector: list[float], n_results: int) -> list[StoreMatch]:
        collection = self._collection(name)
        total = collection.count()
        if total == 0 or n_results <= 0:
            return []

        results = collection.query(
            query_embeddings=[vector],
            n_results=min(n_results, total),
            include=["documents", "metadatas", "distances"],
        )

        matches = []
        if results and results.get("ids") and results["ids"][0]:
            for i, match_id in enumerate(results["ids"][0]):
                meta = results["metadatas"][0][i] or {}
                matches.append(StoreMatch(
                    id=match_id,
                    content=results["documents"][0][i] or "",
                    similarity=max(0.0, min(1.0, 1.0 - results["distances"][0][i])),
                    document_id=meta.get("document_id", ""),
                    document_title=meta.get("document_title") or None,
                    content_type=_CONTENT_TYPES[name],
                    chunk_index=int(meta.get("chunk_index", 0)),
                    metadata={k: v for k, v in meta.items() if k not in {
                        "document_id", "document_title", "chunk_index",
                    }},
                ))
        return matches

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        stats = {"db_path": str(self.db_path), "collections": {}}
        for name in _CONTENT_TYPES:
            stats["collections"][name] = self._collection(name).count()
        stats["total"] = sum(stats["collections"].values())
        return stats


def _rank(matches: list[StoreMatch], threshold: float, count: int) -> list[StoreMatch]:
    kept = [m for m in matches if m.similarity >= threshold]
    kept.sort(key=lambda m: m.similarity, reverse=True)
    return kept[:count]


def _clean_metadata(meta: dict) -> dict:
    """ChromaDB accepts only str/int/float/bool metadata values."""
    cleaned = {}
    for key, value in meta.items():
        if value is None:
            continue
        if isinstance(value, (str, int, float, bool)):
            cleaned[key] = value
        elif isinstance(value, (list, tuple)):
            cleaned[key] = ",".join(str(v) for v in value)
        else:
            cleaned[key] = str(value)
    return cleaned
