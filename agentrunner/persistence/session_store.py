"""Conversation history storage keyed by session id."""

from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from typing import Awaitable, Dict, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

from langchain_core.messages import BaseMessage, messages_from_dict, messages_to_dict

from agentrunner.config import get_settings


@runtime_checkable
class SessionStore(Protocol):
    """Loads history at run start and saves it at final output.

    Methods may be sync or async; the Runner awaits either.
    """

    def load(self, session_id: str) -> Union[List[BaseMessage], Awaitable[List[BaseMessage]]]:
        ...

    def save(self, session_id: str, messages: Sequence[BaseMessage]) -> Union[None, Awaitable[None]]:
        ...


class InMemorySessionStore:
    """Process-local store. ``max_messages`` keeps only the most recent entries."""

    def __init__(self, max_messages: Optional[int] = None):
        if max_messages is not None and max_messages < 1:
            raise ValueError(f"max_messages must be positive, got {max_messages}")
        self.max_messages = max_messages
        self._sessions: Dict[str, List[BaseMessage]] = {}

    def load(self, session_id: str) -> List[BaseMessage]:
        return list(self._sessions.get(session_id, []))

    def save(self, session_id: str, messages: Sequence[BaseMessage]) -> None:
        messages = list(messages)
        if self.max_messages is not None:
            messages = messages[-self.max_messages:]
        self._sessions[session_id] = messages

    def delete(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def list_sessions(self) -> List[str]:
        return list(self._sessions)


class SQLiteSessionStore:
    """Simple SQLite store for conversation histories."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize the session store.

        Args:
            db_path: Path to SQLite database file; defaults to
                ObservabilitySettings.session_db_path (SESSION_DB_PATH)
        """
        if db_path is None:
            db_path = get_settings().observability.session_db_path
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)

        self.db_path = db_path
        self._init_db()

    def _init_db(self) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id TEXT PRIMARY KEY,
                    messages_json TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    message_count INTEGER DEFAULT 0
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def save(self, session_id: str, messages: Sequence[BaseMessage]) -> None:
        """Insert or replace a session's history.

        Args:
            session_id: Unique session identifier
            messages: Full history to store
        """
        messages_json = json.dumps(messages_to_dict(list(messages)), ensure_ascii=False)
        now = datetime.now(timezone.utc).isoformat()

        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute(
                """INSERT INTO sessions (session_id, messages_json, created_at, updated_at, message_count)
                   VALUES (?, ?, ?, ?, ?)
                   ON CONFLICT(session_id) DO UPDATE SET
                       messages_json = excluded.messages_json,
                       updated_at = excluded.updated_at,
                       message_count = excluded.message_count""",
                (session_id, messages_json, now, now, len(messages)),
            )
            conn.commit()
        finally:
            conn.close()

    def load(self, session_id: str) -> List[BaseMessage]:
        """Load a session's history; empty when the session is unknown."""
        conn = sqlite3.connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT messages_json FROM sessions WHERE session_id = ?",
                (session_id,),
            ).fetchone()
        finally:
            conn.close()

        if not row:
            return []
        return messages_from_dict(json.loads(row[0]))

    def list_sessions(self) -> List[Tuple[str, str, str, int]]:
        """List all saved sessions.

        Returns:
            List of (session_id, created_at, updated_at, message_count) tuples
        """
        conn = sqlite3.connect(self.db_path)
        try:
            cursor = conn.execute(
                """SELECT session_id, created_at, updated_at, message_count
                   FROM sessions
                   ORDER BY updated_at DESC"""
            )
            return cursor.fetchall()
        finally:
            conn.close()

    def delete(self, session_id: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("DELETE FROM sessions WHERE session_id = ?", (session_id,))
            conn.commit()
        finally:
            conn.close()
