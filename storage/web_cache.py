"""SQLite-backed cache for web search queries and extracted page content.

Tables:
  web_search_queries  one row per (query_hash, search_engine), with expiry
  web_content_cache   one row per URL, with expiry, content hash, fetch count
  web_query_results   ranked join between the two (one page can serve many queries)

Writers upsert on natural keys, so concurrent requests converge on the same
rows (last writer wins). Uses WAL mode for concurrent reads.
"""

import logging
import sqlite3
from collections import Counter
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from schemas.web_search import CachedSearchQuery, CachedWebContent, WebSearchResult
from scrapers.utils import domain_of, hash_content, utc_now

logger = logging.getLogger(__name__)

DEFAULT_QUERY_TTL_MINUTES = 30
DEFAULT_CONTENT_TTL_MINUTES = 60


def _ts(value: datetime) -> str:
    return value.isoformat(timespec="microseconds")


class WebSearchCache:
    """Memoizes search engine results and extracted pages with TTL expiry."""

    def __init__(
        self,
        db_path: str,
        query_ttl_minutes: int = DEFAULT_QUERY_TTL_MINUTES,
        content_ttl_minutes: int = DEFAULT_CONTENT_TTL_MINUTES,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.query_ttl = timedelta(minutes=query_ttl_minutes)
        self.content_ttl = timedelta(minutes=content_ttl_minutes)
        self._clock = clock
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=10)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_db(self):
        conn = self._get_conn()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS web_search_queries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    query_text TEXT NOT NULL,
                    query_hash TEXT NOT NULL,
                    search_engine TEXT NOT NULL,
                    max_results INTEGER NOT NULL,
                    time_range TEXT,
                    results_count INTEGER DEFAULT 0,
                    search_count INTEGER DEFAULT 1,
                    last_searched_at TEXT NOT NULL,
                    cache_expires_at TEXT NOT NULL,
                    UNIQUE (query_hash, search_engine)
                );

                CREATE TABLE IF NOT EXISTS web_content_cache (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    url TEXT NOT NULL UNIQUE,
                    title TEXT,
                    extracted_content TEXT,
                    snippet TEXT,
                    source TEXT,
                    published_date TEXT,
                    search_query TEXT,
                    last_fetched_at TEXT NOT NULL,
                    cache_expires_at TEXT NOT NULL,
                    content_hash TEXT NOT NULL,
                    fetch_count INTEGER DEFAULT 1
                );

                CREATE TABLE IF NOT EXISTS web_query_results (
                    query_id INTEGER NOT NULL
                        REFERENCES web_search_queries(id) ON DELETE CASCADE,
                    content_id INTEGER NOT NULL
                        REFERENCES web_content_cache(id) ON DELETE CASCADE,
                    result_rank INTEGER NOT NULL,
                    PRIMARY KEY (query_id, content_id)
                );

                CREATE INDEX IF NOT EXISTS idx_queries_expiry
                    ON web_search_queries(cache_expires_at);
                CREATE INDEX IF NOT EXISTS idx_content_expiry
                    ON web_content_cache(cache_expires_at);
            """)
            conn.commit()
            logger.info("Web search cache initialized at %s", self.db_path)
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_query(
        self,
        query_hash: str,
        search_engine: str,
        max_age_minutes: Optional[int] = None,
    ) -> Optional[CachedSearchQuery]:
        """Return the non-expired query row for this hash, if any."""
        now = self._clock()
        sql = """SELECT * FROM web_search_queries
                 WHERE query_hash = ? AND search_engine = ? AND cache_expires_at > ?"""
        params: list = [query_hash, search_engine, _ts(now)]
        if max_age_minutes is not None:
            sql += " AND last_searched_at >= ?"
            params.append(_ts(now - timedelta(minutes=max_age_minutes)))

        conn = self._get_conn()
        try:
            row = conn.execute(sql, params).fetchone()
            return CachedSearchQuery(**dict(row)) if row else None
        finally:
            conn.close()

    def get_cached_results(
        self,
        query_hash: str,
        search_engine: str,
        max_age_minutes: Optional[int] = None,
    ) -> list[WebSearchResult]:
        """Linked content rows for a live cached query, in original rank order."""
        query = self.get_query(query_hash, search_engine, max_age_minutes)
        if query is None:
            return []

        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT c.* FROM web_query_results r
                   JOIN web_content_cache c ON c.id = r.content_id
                   WHERE r.query_id = ?
                   ORDER BY r.result_rank""",
                (query.id,),
            ).fetchall()
        finally:
            conn.close()

        return [self._row_to_content(row).to_result() for row in rows]

    def get_content(self, url: str, max_age_minutes: Optional[int] = None) -> Optional[CachedWebContent]:
        """A non-expired cached page, optionally no older than ``max_age_minutes``."""
        now = self._clock()
        sql = "SELECT * FROM web_content_cache WHERE url = ? AND cache_expires_at > ?"
        params: list = [url, _ts(now)]
        if max_age_minutes is not None:
            sql += " AND last_fetched_at >= ?"
            params.append(_ts(now - timedelta(minutes=max_age_minutes)))

        conn = self._get_conn()
        try:
            row = conn.execute(sql, params).fetchone()
            return self._row_to_content(row) if row else None
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def store_results(
        self,
        query: str,
        query_hash: str,
        search_engine: str,
        max_results: int,
        results: list[WebSearchResult],
        time_range: Optional[str] = None,
    ) -> int:
        """Upsert the query row and every result, relinking them in rank order.

        Returns the query row id.
        """
        now = self._clock()
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO web_search_queries
                   (query_text, query_hash, search_engine, max_results, time_range,
                    results_count, search_count, last_searched_at, cache_expires_at)
                   VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?)
                   ON CONFLICT (query_hash, search_engine) DO UPDATE SET
                       query_text = excluded.query_text,
                       max_results = excluded.max_results,
                       time_range = excluded.time_range,
                       results_count = excluded.results_count,
                       search_count = web_search_queries.search_count + 1,
                       last_searched_at = excluded.last_searched_at,
                       cache_expires_at = excluded.cache_expires_at""",
                (query, query_hash, search_engine, max_results, time_range,
                 len(results), _ts(now), _ts(now + self.query_ttl)),
            )
            query_id = conn.execute(
                "SELECT id FROM web_search_queries WHERE query_hash = ? AND search_engine = ?",
                (query_hash, search_engine),
            ).fetchone()["id"]

            conn.execute("DELETE FROM web_query_results WHERE query_id = ?", (query_id,))

            for rank, result in enumerate(results, start=1):
                content_id = self._upsert_content(conn, result, query, now)
                conn.execute(
                    """INSERT OR IGNORE INTO web_query_results (query_id, content_id, result_rank)
                       VALUES (?, ?, ?)""",
                    (query_id, content_id, rank),
                )

            conn.commit()
            logger.debug("Cached %d results for query hash %s", len(results), query_hash[:12])
            return query_id
        finally:
            conn.close()

    def _upsert_content(
        self,
        conn: sqlite3.Connection,
        result: WebSearchResult,
        query: str,
        now: datetime,
    ) -> int:
        conn.execute(
            """INSERT INTO web_content_cache
               (url, title, extracted_content, snippet, source, published_date,
                search_query, last_fetched_at, cache_expires_at, content_hash, fetch_count)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 1)
               ON CONFLICT (url) DO UPDATE SET
                   title = excluded.title,
                   extracted_content = excluded.extracted_content,
                   snippet = excluded.snippet,
                   source = excluded.source,
                   published_date = excluded.published_date,
                   search_query = excluded.search_query,
                   last_fetched_at = excluded.last_fetched_at,
                   cache_expires_at = excluded.cache_expires_at,
                   content_hash = excluded.content_hash,
                   fetch_count = web_content_cache.fetch_count + 1""",
            (result.url, result.title, result.content, result.snippet, result.source,
             result.published_date, query, _ts(now), _ts(now + self.content_ttl),
             hash_content(result.content or result.snippet)),
        )
        return conn.execute(
            "SELECT id FROM web_content_cache WHERE url = ?", (result.url,)
        ).fetchone()["id"]

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_expired(self) -> int:
        """Delete expired query and content rows. Returns the number deleted."""
        now = _ts(self._clock())
        conn = self._get_conn()
        try:
            content = conn.execute(
                "DELETE FROM web_content_cache WHERE cache_expires_at <= ?", (now,)
            ).rowcount
            queries = conn.execute(
                "DELETE FROM web_search_queries WHERE cache_expires_at <= ?", (now,)
            ).rowcount
            conn.commit()
        finally:
            conn.close()

        deleted = content + queries
        if deleted:
            logger.info("Removed %d expired cache rows (%d pages, %d queries)", deleted, content, queries)
        return deleted

    def clear(self) -> int:
        """Remove every cached query and page. Returns the number deleted."""
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM web_query_results")
            content = conn.execute("DELETE FROM web_content_cache").rowcount
            queries = conn.execute("DELETE FROM web_search_queries").rowcount
            conn.commit()
            return content + queries
        finally:
            conn.close()

    def stats(self) -> dict:
        conn = self._get_conn()
        try:
            query_row = conn.execute(
                """SELECT COUNT(*) AS total_queries,
                          COALESCE(SUM(search_count), 0) AS total_searches
                   FROM web_search_queries"""
            ).fetchone()
            urls = [r["url"] for r in conn.execute("SELECT url FROM web_content_cache").fetchall()]
        finally:
            conn.close()

        domains = Counter(domain_of(u) for u in urls)
        return {
            "total_queries": query_row["total_queries"],
            "total_searches": query_row["total_searches"],
            "total_cached_pages": len(urls),
            "top_domains": [
                {"domain": d, "count": c} for d, c in domains.most_common(5)
            ],
        }

    @staticmethod
    def _row_to_content(row: sqlite3.Row) -> CachedWebContent:
        data = dict(row)
        data.pop("search_query", None)
        return CachedWebContent(**data)
