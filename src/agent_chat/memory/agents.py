from __future__ import annotations

import sqlite3
from uuid import uuid4

from agent_chat.errors import NotFound
from agent_chat.memory.models import AgentRecord
from agent_chat.memory.store import MemoryStore, dump_json_object, parse_json_object, utc_now


class AgentRepository:
    def __init__(self, store: MemoryStore):
        self._store = store

    def create_agent(
        self,
        user_id: str,
        name: str,
        model: str,
        *,
        configuration: dict | None = None,
        agent_id: str | None = None,
    ) -> AgentRecord:
        if not name.strip():
            raise ValueError("Agent name cannot be empty")
        if not model.strip():
            raise ValueError("Agent model cannot be empty")
        aid = agent_id or str(uuid4())
        now = utc_now()
        self._store.execute(
            """
            INSERT INTO agents (id, user_id, name, model, configuration_json, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (aid, user_id, name.strip(), model.strip(), dump_json_object(configuration), now, now),
        )
        self._store.commit()
        return AgentRecord(
            id=aid,
            user_id=user_id,
            name=name.strip(),
            model=model.strip(),
            configuration=dict(configuration or {}),
            created_at=now,
            updated_at=now,
        )

    def get_agent(self, agent_id: str) -> AgentRecord | None:
        row = self._store.execute(
            "SELECT * FROM agents WHERE id = ? LIMIT 1",
            (agent_id,),
        ).fetchone()
        return self._row_to_agent(row) if row is not None else None

    def list_agents(self, user_id: str) -> list[AgentRecord]:
        rows = self._store.execute(
            "SELECT * FROM agents WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        ).fetchall()
        return [self._row_to_agent(row) for row in rows]

    def update_agent(
        self,
        agent_id: str,
        *,
        name: str | None = None,
        model: str | None = None,
        configuration: dict | None = None,
    ) -> AgentRecord:
        agent = self.get_agent(agent_id)
        if agent is None:
            raise NotFound("Agent not found")
        self._store.execute(
            """
            UPDATE agents SET name = ?, model = ?, configuration_json = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                name.strip() if name else agent.name,
                model.strip() if model else agent.model,
                dump_json_object(configuration if configuration is not None else agent.configuration),
                utc_now(),
                agent_id,
            ),
        )
        self._store.commit()
        return self.get_agent(agent_id)

    def delete_agent(self, agent_id: str) -> bool:
        cursor = self._store.execute("DELETE FROM agents WHERE id = ?", (agent_id,))
        self._store.commit()
        return cursor.rowcount > 0

    @staticmethod
    def _row_to_agent(row: sqlite3.Row) -> AgentRecord:
        return AgentRecord(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            model=row["model"],
            configuration=parse_json_object(row["configuration_json"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
