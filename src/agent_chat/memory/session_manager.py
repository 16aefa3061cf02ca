from __future__ import annotations

import sqlite3
from uuid import uuid4

from agent_chat.errors import AccessDenied, NotFound
from agent_chat.memory.models import SessionRecord
from agent_chat.memory.store import MemoryStore, dump_json_object, parse_json_object, utc_now

DEFAULT_EMOJI = "💬"


class SessionManager:
    def __init__(self, store: MemoryStore):
        self._store = store

    def get_session(self, session_id: str) -> SessionRecord | None:
        row = self._store.execute(
            "SELECT * FROM sessions WHERE id = ? LIMIT 1",
            (session_id,),
        ).fetchone()
        return self._row_to_session(row) if row is not None else None

    def list_sessions_for_agent(self, agent_id: str, user_id: str, *, limit: int = 50) -> list[SessionRecord]:
        rows = self._store.execute(
            """
            SELECT * FROM sessions
            WHERE agent_id = ? AND user_id = ?
            ORDER BY last_message_at DESC, created_at DESC
            LIMIT ?
            """,
            (agent_id, user_id, max(1, limit)),
        ).fetchall()
        return [self._row_to_session(row) for row in rows]

    def list_sessions_for_user(self, user_id: str, *, limit: int = 50) -> list[SessionRecord]:
        rows = self._store.execute(
            """
            SELECT * FROM sessions
            WHERE user_id = ?
            ORDER BY last_message_at DESC, created_at DESC
            LIMIT ?
            """,
            (user_id, max(1, limit)),
        ).fetchall()
        return [self._row_to_session(row) for row in rows]

    def create_session(
        self,
        agent_id: str,
        user_id: str,
        *,
        title: str | None = None,
        metadata: dict | None = None,
        session_id: str | None = None,
    ) -> SessionRecord:
        """Create a session, enforcing that ``user_id`` owns ``agent_id``."""
        owner = self._store.execute(
            "SELECT user_id FROM agents WHERE id = ? LIMIT 1",
            (agent_id,),
        ).fetchone()
        if owner is None:
            raise NotFound("Agent not found")
        if owner["user_id"] != user_id:
            raise AccessDenied("Access denied. This agent belongs to another user.")

        sid = session_id or str(uuid4())
        now = utc_now()
        session_title = (title or "").strip() or self._default_title(now)
        self._store.execute(
            """
            INSERT INTO sessions (
                id, agent_id, user_id, title, description, emoji, metadata_json,
                is_active, title_generated, last_message_at, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, NULL, ?, ?, 1, 0, NULL, ?, ?)
            """,
            (sid, agent_id, user_id, session_title, DEFAULT_EMOJI, dump_json_object(metadata), now, now),
        )
        self._store.commit()
        return self.get_session(sid)

    def update_session(
        self,
        session_id: str,
        *,
        title: str | None = None,
        description: str | None = None,
        emoji: str | None = None,
        metadata: dict | None = None,
        is_active: bool | None = None,
        title_generated: bool | None = None,
    ) -> SessionRecord:
        session = self.get_session(session_id)
        if session is None:
            raise NotFound("Session not found")

        self._store.execute(
            """
            UPDATE sessions
            SET title = ?, description = ?, emoji = ?, metadata_json = ?,
                is_active = ?, title_generated = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                title.strip() if title is not None else session.title,
                description.strip() if description is not None else session.description,
                emoji.strip() if emoji is not None else session.emoji,
                dump_json_object(metadata if metadata is not None else session.metadata),
                int(is_active if is_active is not None else session.is_active),
                int(title_generated if title_generated is not None else session.title_generated),
                utc_now(),
                session_id,
            ),
        )
        self._store.commit()
        return self.get_session(session_id)

    def touch_last_message(self, session_id: str) -> str:
        now = utc_now()
        self._store.execute(
            "UPDATE sessions SET last_message_at = ?, updated_at = ? WHERE id = ?",
            (now, now, session_id),
        )
        self._store.commit()
        return now

    def delete_session(self, session_id: str) -> bool:
        cursor = self._store.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        self._store.commit()
        return cursor.rowcount > 0

    def _default_title(self, iso_timestamp: str) -> str:
        return f"New conversation - {iso_timestamp[:16].replace('T', ' ')}"

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            id=row["id"],
            agent_id=row["agent_id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            emoji=row["emoji"],
            metadata=parse_json_object(row["metadata_json"]),
            is_active=bool(row["is_active"]),
            title_generated=bool(row["title_generated"]),
            last_message_at=row["last_message_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
