from __future__ import annotations

import sqlite3
from uuid import uuid4

from agent_chat.memory.models import MessageRecord
from agent_chat.memory.store import MemoryStore, dump_json_object, parse_json_object, utc_now

_VALID_ROLES = ("user", "assistant", "system")


class MessageRepository:
    def __init__(self, store: MemoryStore):
        self._store = store

    def append_message(
        self,
        session_id: str,
        role: str,
        content: str,
        *,
        metadata: dict | None = None,
        tokens_used: int | None = None,
        processing_time_ms: int | None = None,
        error: str | None = None,
        parent_message_id: str | None = None,
    ) -> MessageRecord:
        if role not in _VALID_ROLES:
            raise ValueError(f"Unsupported message role: {role!r}")

        message_id = str(uuid4())
        with self._store.transaction():
            row = self._store.execute(
                "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            next_seq = int(row["max_seq"]) + 1
            now = utc_now()
            self._store.execute(
                """
                INSERT INTO messages (
                    id, session_id, seq, role, content, metadata_json, tokens_used,
                    processing_time_ms, error, parent_message_id, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    message_id,
                    session_id,
                    next_seq,
                    role,
                    content,
                    dump_json_object(metadata),
                    tokens_used,
                    processing_time_ms,
                    error,
                    parent_message_id,
                    now,
                    now,
                ),
            )
        return MessageRecord(
            id=message_id,
            session_id=session_id,
            seq=next_seq,
            role=role,
            content=content,
            metadata=dict(metadata or {}),
            tokens_used=tokens_used,
            processing_time_ms=processing_time_ms,
            error=error,
            parent_message_id=parent_message_id,
            created_at=now,
            updated_at=now,
        )

    def get_message(self, message_id: str) -> MessageRecord | None:
        row = self._store.execute(
            "SELECT * FROM messages WHERE id = ? LIMIT 1",
            (message_id,),
        ).fetchone()
        return self._row_to_message(row) if row is not None else None

    def list_messages(self, session_id: str, *, limit: int = 1000) -> list[MessageRecord]:
        """Oldest-first transcript, capped at ``limit`` rows."""
        rows = self._store.execute(
            """
            SELECT * FROM messages
            WHERE session_id = ?
            ORDER BY seq ASC
            LIMIT ?
            """,
            (session_id, max(1, limit)),
        ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def recent_messages(self, session_id: str, *, limit: int) -> list[MessageRecord]:
        """The newest ``limit`` messages, returned oldest-first."""
        rows = self._store.execute(
            """
            SELECT * FROM (
                SELECT * FROM messages
                WHERE session_id = ?
                ORDER BY seq DESC
                LIMIT ?
            )
            ORDER BY seq ASC
            """,
            (session_id, max(1, limit)),
        ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def list_replies(self, parent_message_id: str) -> list[MessageRecord]:
        rows = self._store.execute(
            "SELECT * FROM messages WHERE parent_message_id = ? ORDER BY seq ASC",
            (parent_message_id,),
        ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def count_messages(self, session_id: str) -> int:
        row = self._store.execute(
            "SELECT COUNT(*) AS c FROM messages WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        return int(row["c"]) if row is not None else 0

    def set_error(self, message_id: str, error: str) -> bool:
        cursor = self._store.execute(
            "UPDATE messages SET error = ?, updated_at = ? WHERE id = ?",
            (error, utc_now(), message_id),
        )
        self._store.commit()
        return cursor.rowcount > 0

    def delete_message(self, message_id: str) -> bool:
        cursor = self._store.execute("DELETE FROM messages WHERE id = ?", (message_id,))
        self._store.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> MessageRecord:
        return MessageRecord(
            id=row["id"],
            session_id=row["session_id"],
            seq=int(row["seq"]),
            role=row["role"],
            content=row["content"],
            metadata=parse_json_object(row["metadata_json"]),
            tokens_used=row["tokens_used"],
            processing_time_ms=row["processing_time_ms"],
            error=row["error"],
            parent_message_id=row["parent_message_id"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
