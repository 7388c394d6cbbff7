"""Document-priority context retrieval.

Uploaded documents are the user's ground truth and always win ties against
web content: document items carry real cosine similarities while web items
get a fixed proxy (0.7 cached, 0.6 fresh). Web search only supplements a
thin document result, and a relaxed second document pass trades precision
for recall when the corpus still under-delivers.

Every upstream call is isolated; a failure in one source never aborts the
others, and an empty result is a valid answer.
"""

import logging
import math
from typing import Optional

from errors import NotConfiguredError, best_effort
from schemas.retrieval import RetrievedItem, SourceType, StoreMatch
from schemas.web_search import WebSearchResult
from scrapers.web_search import WebSearchClient
from vectorstore.embedder import Embedder
from vectorstore.store import VectorStore

logger = logging.getLogger(__name__)

MIN_MATCH_THRESHOLD = 0.2
HIGH_QUALITY_SIMILARITY = 0.25
BACKFILL_SIMILARITY = 0.15
HIGH_QUALITY_SHARE = 0.6
SUPPLEMENT_SHARE = 0.5
MIN_ITEMS_WITHOUT_WEB = 2
RELAXED_THRESHOLD_FLOOR = 0.1

CACHED_WEB_SIMILARITY = 0.7
FRESH_WEB_SIMILARITY = 0.6


def web_result_to_item(result: WebSearchResult, index: int) -> RetrievedItem:
    return RetrievedItem(
        id=f"web_{index}",
        content=result.best_text,
        similarity=CACHED_WEB_SIMILARITY if result.cached else FRESH_WEB_SIMILARITY,
        source_type=SourceType.WEB_CONTENT,
        origin_id=f"web_{index}",
        origin_title=result.title,
        source=result.url,
    )


class ContextRetriever:
    """Blends document matches and web results into one ranked, bounded list."""

    def __init__(
        self,
        embedder: Embedder,
        store: VectorStore,
        web_search: Optional[WebSearchClient] = None,
        web_results_ratio: float = 0.4,
    ):
        self.embedder = embedder
        self.store = store
        self.web_search = web_search
        self.web_results_ratio = web_results_ratio

    def retrieve(
        self,
        query: str,
        limit: int = 5,
        threshold: float = 0.3,
        allow_web_search: bool = False,
    ) -> list[RetrievedItem]:
        if limit <= 0:
            return []

        vector: Optional[list[float]] = None
        try:
            vector = self.embedder.embed_query(query)
            items = self._prioritized(query, vector, limit, threshold, allow_web_search)
        except NotConfiguredError:
            raise
        except Exception as e:
            logger.error("Document-priority retrieval failed, using plain search: %s", e)
            items = self._degraded(query, vector, limit, threshold)

        items.sort(key=lambda item: item.similarity, reverse=True)
        final = items[:limit]

        docs = sum(1 for i in final if i.source_type == SourceType.DOCUMENT)
        web = sum(1 for i in final if i.source_type == SourceType.WEB_CONTENT)
        logger.info("Retrieved %d items (%d documents, %d web)", len(final), docs, web)
        return final

    # ------------------------------------------------------------------
    # Priority policy
    # ------------------------------------------------------------------

    def _prioritized(
        self,
        query: str,
        vector: list[float],
        limit: int,
        threshold: float,
        allow_web_search: bool,
    ) -> list[RetrievedItem]:
        matches = self.store.unified_search(
            vector,
            match_threshold=max(threshold, MIN_MATCH_THRESHOLD),
            match_count=limit,
            include_chunks=True,
            include_structured=True,
        )
        candidates = [m.to_item() for m in matches]

        high_quality = [c for c in candidates if c.similarity >= HIGH_QUALITY_SIMILARITY]
        if len(high_quality) >= math.ceil(limit * HIGH_QUALITY_SHARE):
            items = high_quality[:limit]
            taken = {i.id for i in items}
            backfill = sorted(
                (c for c in candidates if c.similarity >= BACKFILL_SIMILARITY and c.id not in taken),
                key=lambda c: c.similarity,
                reverse=True,
            )
            items.extend(backfill[: limit - len(items)])
        else:
            items = [c for c in candidates if c.similarity >= threshold]

        needed = math.ceil(limit * SUPPLEMENT_SHARE)
        if len(items) < needed:
            logger.info("Only %d/%d document items, supplementing", len(items), limit)

            if allow_web_search or len(items) < MIN_ITEMS_WITHOUT_WEB:
                web_items = self._web_items(query, limit)
                items.extend(web_items[: max(0, limit - len(items))])

            if len(items) < needed:
                items.extend(self._relaxed_items(vector, limit, threshold, items))

        return items

    def _web_items(self, query: str, limit: int) -> list[RetrievedItem]:
        if self.web_search is None:
            return []
        results = best_effort(
            self.web_search.search,
            query,
            max_results=max(1, math.ceil(limit * self.web_results_ratio)),
            include_content=True,
            time_range="week",
            cache_max_age=60,
            bypass_cache=False,
            default=[],
            label="Supplementary web search",
            reraise=(NotConfiguredError,),
            log=logger,
        )
        return [web_result_to_item(r, i) for i, r in enumerate(results)]

    def _relaxed_items(
        self,
        vector: list[float],
        limit: int,
        threshold: float,
        selected: list[RetrievedItem],
    ) -> list[RetrievedItem]:
        matches: list[StoreMatch] = best_effort(
            self.store.expanded_search,
            vector,
            match_threshold=max(threshold * 0.5, RELAXED_THRESHOLD_FLOOR),
            match_count=limit * 2,
            exclude_ids=[i.id for i in selected],
            default=[],
            label="Expanded document search",
            log=logger,
        )
        taken = {i.id for i in selected}
        extra = sorted(
            (m.to_item() for m in matches if m.id not in taken),
            key=lambda item: item.similarity,
            reverse=True,
        )
        return extra[: max(0, limit - len(selected))]

    # ------------------------------------------------------------------
    # Degraded mode
    # ------------------------------------------------------------------

    def _degraded(
        self,
        query: str,
        vector: Optional[list[float]],
        limit: int,
        threshold: float,
    ) -> list[RetrievedItem]:
        def plain_search() -> list[RetrievedItem]:
            v = vector if vector is not None else self.embedder.embed_query(query)
            return [m.to_item() for m in self.store.search_chunks(v, threshold, limit)]

        return best_effort(
            plain_search,
            default=[],
            label="Fallback document search",
            reraise=(NotConfiguredError,),
            log=logger,
        )
