"""SQLite-backed chat history.

A session is created on its first message; messages are appended after each
completed answer. Uses WAL mode so history reads don't block while a stream
is being written.
"""

import json
import logging
import sqlite3
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

TITLE_CHARS = 80


class SessionManager:
    """Stores sessions and their user/assistant messages."""

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
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
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    title TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    last_active_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS messages (
                    message_id INTEGER PRIMARY KEY AUTOINCREMENT,
                    session_id TEXT NOT NULL
                        REFERENCES sessions(session_id) ON DELETE CASCADE,
                    role TEXT NOT NULL CHECK (role IN ('user', 'assistant')),
                    content TEXT NOT NULL,
                    model TEXT,
                    sources TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );

                CREATE INDEX IF NOT EXISTS idx_messages_session
                    ON messages(session_id, message_id);
            """)
            conn.commit()
            logger.info("Session database initialized at %s", self.db_path)
        finally:
            conn.close()

    def get_session(self, session_id: str) -> Optional[dict]:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM sessions WHERE session_id = ?", (session_id,)
            ).fetchone()
            return dict(row) if row else None
        finally:
            conn.close()

    def add_message(
        self,
        session_id: str,
        role: str,
        content: str,
        model: Optional[str] = None,
        sources: Optional[list[dict]] = None,
    ) -> int:
        """Append a message, creating the session (titled by its first message) if needed."""
        conn = self._get_conn()
        try:
            conn.execute(
                "INSERT OR IGNORE INTO sessions (session_id, title) VALUES (?, ?)",
                (session_id, content[:TITLE_CHARS] if role == "user" else None),
            )
            cursor = conn.execute(
                """INSERT INTO messages (session_id, role, content, model, sources)
                   VALUES (?, ?, ?, ?, ?)""",
                (session_id, role, content, model, json.dumps(sources) if sources else None),
            )
            conn.execute(
                "UPDATE sessions SET last_active_at = CURRENT_TIMESTAMP WHERE session_id = ?",
                (session_id,),
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def get_messages(self, session_id: str, limit: Optional[int] = None) -> list[dict]:
        """Messages in conversation order; with ``limit``, only the most recent ones."""
        conn = self._get_conn()
        try:
            sql = """SELECT message_id, role, content, model, sources, created_at
                     FROM messages WHERE session_id = ?
                     ORDER BY message_id DESC"""
            params: tuple = (session_id,)
            if limit is not None:
                sql += " LIMIT ?"
                params = (session_id, limit)
            rows = conn.execute(sql, params).fetchall()
        finally:
            conn.close()

        messages = []
        for row in reversed(rows):
            message = dict(row)
            message["sources"] = json.loads(message["sources"]) if message["sources"] else []
            messages.append(message)
        return messages

    def delete_session(self, session_id: str) -> bool:
        conn = self._get_conn()
        try:
            deleted = conn.execute(
                "DELETE FROM sessions WHERE session_id = ?", (session_id,)
            ).rowcount
            conn.commit()
            return deleted > 0
        finally:
            conn.close()
