from __future__ import annotations

import sqlite3
from uuid import uuid4

from agent_chat.errors import NotFound
from agent_chat.memory.models import ApiKeyRecord
from agent_chat.memory.store import MemoryStore, utc_now


class ApiKeyRepository:
    def __init__(self, store: MemoryStore):
        self._store = store

    def find_by_user(self, user_id: str) -> ApiKeyRecord | None:
        row = self._store.execute(
            "SELECT * FROM api_keys WHERE user_id = ? LIMIT 1",
            (user_id,),
        ).fetchone()
        return self._row_to_record(row) if row is not None else None

    def create(self, user_id: str, encrypted_key: str) -> ApiKeyRecord:
        key_id = str(uuid4())
        now = utc_now()
        self._store.execute(
            """
            INSERT INTO api_keys (id, user_id, encrypted_key, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (key_id, user_id, encrypted_key, now, now),
        )
        self._store.commit()
        return ApiKeyRecord(id=key_id, user_id=user_id, encrypted_key=encrypted_key, created_at=now, updated_at=now)

    def update(self, user_id: str, encrypted_key: str) -> ApiKeyRecord:
        cursor = self._store.execute(
            "UPDATE api_keys SET encrypted_key = ?, updated_at = ? WHERE user_id = ?",
            (encrypted_key, utc_now(), user_id),
        )
        self._store.commit()
        if cursor.rowcount == 0:
            raise NotFound("API key not found")
        return self.find_by_user(user_id)

    def delete(self, user_id: str) -> bool:
        cursor = self._store.execute("DELETE FROM api_keys WHERE user_id = ?", (user_id,))
        self._store.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ApiKeyRecord:
        return ApiKeyRecord(
            id=row["id"],
            user_id=row["user_id"],
            encrypted_key=row["encrypted_key"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
