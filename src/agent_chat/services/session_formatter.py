from __future__ import annotations

from agent_chat.memory.models import MessageRecord, SessionRecord


class SessionFormatter:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8, preview_chars: int = 140):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len
        self._preview_chars = preview_chars

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def format_session_line(self, session: SessionRecord, *, active_session_id: str | None) -> str:
        marker = "*" if session.id == active_session_id else " "
        emoji = f"{session.emoji} " if session.emoji else ""
        title = session.title or session.id
        last = session.last_message_at[:16].replace("T", " ") if session.last_message_at else "never"
        return f"{self._line_prefix}{marker} {emoji}{title} [{self.short_id(session.id)}] (last message: {last})"

    def format_session_detail_lines(self, session: SessionRecord, message_count: int) -> list[str]:
        lines = [
            f"{self._line_prefix}Session: {session.emoji or ''} {session.title or session.id}".rstrip(),
            f"{self._line_prefix}- Id: {session.id}",
            f"{self._line_prefix}- Messages: {message_count}",
        ]
        if session.description:
            lines.append(f"{self._line_prefix}- About: {session.description}")
        return lines

    def format_message_line(self, message: MessageRecord) -> str:
        status = " [failed]" if message.error else ""
        return f"{self._line_prefix}#{message.seq} {message.role}{status}: {self.preview(message.content)}"

    def preview(self, text: str) -> str:
        flattened = " ".join(text.split())
        if len(flattened) <= self._preview_chars:
            return flattened
        return flattened[: self._preview_chars - 3] + "..."
