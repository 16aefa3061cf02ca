from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class AgentRecord:
    id: str
    user_id: str
    name: str
    model: str
    configuration: dict = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""


@dataclass(frozen=True)
class SessionRecord:
    id: str
    agent_id: str
    user_id: str
    title: str | None
    description: str | None
    emoji: str | None
    metadata: dict
    is_active: bool
    title_generated: bool
    last_message_at: str | None
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class MessageRecord:
    id: str
    session_id: str
    seq: int
    role: str
    content: str
    metadata: dict
    tokens_used: int | None
    processing_time_ms: int | None
    error: str | None
    parent_message_id: str | None
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class ApiKeyRecord:
    id: str
    user_id: str
    encrypted_key: str
    created_at: str
    updated_at: str
