from __future__ import annotations

import json
import re
from collections.abc import Iterable
from dataclasses import dataclass

from loguru import logger

from agent_chat.memory.messages import MessageRepository
from agent_chat.memory.models import MessageRecord, SessionRecord
from agent_chat.memory.session_manager import SessionManager
from agent_chat.provider import CompletionProvider

MAX_TITLE_LENGTH = 60
MAX_DESCRIPTION_LENGTH = 200
MAX_EMOJI_LENGTH = 10
_EXCHANGE_MESSAGES = 4
_FALLBACK_TITLE = "New conversation"

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


@dataclass(frozen=True)
class SessionMetadata:
    title: str
    description: str | None = None
    emoji: str | None = None


async def generate_session_metadata(
    *,
    provider: CompletionProvider,
    credential: str,
    model: str,
    sessions: SessionManager,
    messages: MessageRepository,
    session_id: str,
) -> SessionRecord | None:
    """Ask the model for a title, description and emoji and store them.

    Returns the updated session, or None when the session already has generated
    metadata or has nothing to summarise. Provider errors propagate; callers
    treat this as best-effort.
    """
    session = sessions.get_session(session_id)
    if session is None or session.title_generated:
        return None

    exchange = [m for m in messages.list_messages(session_id, limit=_EXCHANGE_MESSAGES) if m.error is None]
    if not exchange:
        logger.debug(f"Session {session_id} has no messages yet; skipping metadata generation")
        return None

    result = await provider.send(credential, model, [{"role": "user", "content": build_prompt(exchange)}])
    metadata = parse_metadata_reply(result.content, fallback_title=derive_fallback_title(exchange))
    logger.info(f"Generated metadata for session {session_id}: {metadata.title!r}")
    return sessions.update_session(
        session_id,
        title=metadata.title,
        description=metadata.description,
        emoji=metadata.emoji,
        title_generated=True,
    )


def build_prompt(messages: Iterable[MessageRecord]) -> str:
    lines: list[str] = []
    for message in messages:
        if message.role == "user":
            lines.append(f"User: {message.content}")
        elif message.role == "assistant":
            lines.append(f"Assistant: {message.content}")
    joined = "\n".join(lines)
    return (
        "Read the conversation below and describe it for a conversation list.\n"
        "Reply with a single JSON object with exactly these keys:\n"
        f'- "title": a short topic title, at most {MAX_TITLE_LENGTH} characters, no quotes;\n'
        f'- "description": one sentence summary, at most {MAX_DESCRIPTION_LENGTH} characters;\n'
        '- "emoji": one emoji that fits the topic.\n\n'
        f"Conversation:\n{joined}\n\n"
        "JSON:"
    )


def parse_metadata_reply(reply: str, *, fallback_title: str) -> SessionMetadata:
    match = _JSON_OBJECT.search(reply or "")
    parsed: object = None
    if match:
        try:
            parsed = json.loads(match.group(0))
        except ValueError:
            parsed = None

    if not isinstance(parsed, dict):
        logger.debug("Metadata reply was not a JSON object; using fallback title")
        return SessionMetadata(title=_truncate(fallback_title, MAX_TITLE_LENGTH))

    title = str(parsed.get("title") or "").strip().strip('"').strip() or fallback_title
    description = str(parsed.get("description") or "").strip() or None
    emoji = str(parsed.get("emoji") or "").strip() or None
    return SessionMetadata(
        title=_truncate(title, MAX_TITLE_LENGTH),
        description=_truncate(description, MAX_DESCRIPTION_LENGTH) if description else None,
        emoji=emoji[:MAX_EMOJI_LENGTH] if emoji else None,
    )


def derive_fallback_title(messages: Iterable[MessageRecord]) -> str:
    for message in messages:
        if message.role == "user" and message.content.strip():
            return _truncate(" ".join(message.content.split()), MAX_TITLE_LENGTH)
    return _FALLBACK_TITLE


def _truncate(text: str, limit: int) -> str:
    cleaned = text.strip()
    if len(cleaned) <= limit:
        return cleaned or _FALLBACK_TITLE
    return f"{cleaned[: limit - 1].rstrip()}…"
