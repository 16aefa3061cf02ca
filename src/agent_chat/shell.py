from __future__ import annotations

from uuid import uuid4

from loguru import logger

from agent_chat.bootstrap import AppRuntime
from agent_chat.commands.router import CommandRouter
from agent_chat.errors import ChatError
from agent_chat.services.session_formatter import SessionFormatter


class ChatShell:
    """Terminal front-end over the conversation orchestrator."""

    _LINE_PREFIX = "assistant> "

    def __init__(self, runtime: AppRuntime, *, session_id: str | None = None):
        self._runtime = runtime
        self._active_session_id = session_id
        self._token = uuid4().hex
        self._closed = False
        self._formatter = SessionFormatter(line_prefix=self._LINE_PREFIX)
        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_session=self._handle_session_command,
            on_history=self._handle_history_command,
            on_models=self._handle_models_command,
            on_logout=self._handle_logout,
            on_unknown=self._on_unknown_command,
        )

    @property
    def active_session_id(self) -> str | None:
        return self._active_session_id

    @property
    def closed(self) -> bool:
        return self._closed or self._token in self._runtime.token_blacklist

    async def run(self, user_message: str) -> None:
        if self.closed:
            print(f"{self._LINE_PREFIX}Session token revoked. Restart to continue.")
            return
        if await self._command_router.try_handle(user_message):
            return
        await self._send(user_message)

    async def _send(self, text: str) -> None:
        runtime = self._runtime
        try:
            result = await runtime.orchestrator.handle_message(
                runtime.agent.id,
                runtime.user_id,
                text,
                session_id=self._active_session_id,
            )
        except ChatError as ex:
            logger.debug(f"Exchange failed with {ex.kind}")
            print(f"{self._LINE_PREFIX}Error ({ex.kind}): {ex}")
            return

        self._active_session_id = result.session_id
        print(f"{self._LINE_PREFIX}{result.response}")
        if result.tokens_used is not None:
            print(f"{self._LINE_PREFIX}[{result.model}, {result.tokens_used} tokens]")

    async def _on_help(self) -> None:
        print(f"{self._LINE_PREFIX}Commands:")
        print(f"{self._LINE_PREFIX}- /help")
        print(f"{self._LINE_PREFIX}- /session")
        print(f"{self._LINE_PREFIX}- /session list [limit]")
        print(f"{self._LINE_PREFIX}- /session new")
        print(f"{self._LINE_PREFIX}- /session resume <id>")
        print(f"{self._LINE_PREFIX}- /session name <title>")
        print(f"{self._LINE_PREFIX}- /session delete <id>")
        print(f"{self._LINE_PREFIX}- /history [limit]")
        print(f"{self._LINE_PREFIX}- /models [filter]")
        print(f"{self._LINE_PREFIX}- /logout")

    def _on_unknown_command(self, trimmed: str) -> None:
        print(f"{self._LINE_PREFIX}Unknown command: {trimmed} (try /help)")

    async def _handle_session_command(self, command: str) -> None:
        parts = command.split(maxsplit=2)
        sessions = self._runtime.sessions
        runtime = self._runtime

        if len(parts) == 1:
            if self._active_session_id is None:
                print(f"{self._LINE_PREFIX}Current session: none (a new one starts with your next message)")
                return
            session = sessions.get_session(self._active_session_id)
            if session is None:
                print(f"{self._LINE_PREFIX}Current session no longer exists")
                self._active_session_id = None
                return
            count = runtime.messages.count_messages(session.id)
            for line in self._formatter.format_session_detail_lines(session, count):
                print(line)
            return

        action = parts[1]
        if action == "list":
            limit = 20
            if len(parts) == 3:
                try:
                    limit = max(1, int(parts[2]))
                except ValueError:
                    print(f"{self._LINE_PREFIX}Usage: /session list [limit]")
                    return
            rows = sessions.list_sessions_for_agent(runtime.agent.id, runtime.user_id, limit=limit)
            if not rows:
                print(f"{self._LINE_PREFIX}No sessions found.")
                return
            print(f"{self._LINE_PREFIX}Recent sessions:")
            for session in rows:
                print(self._formatter.format_session_line(session, active_session_id=self._active_session_id))
            return

        if action == "new":
            self._active_session_id = None
            print(f"{self._LINE_PREFIX}A new session starts with your next message.")
            return

        if action in ("resume", "delete"):
            if len(parts) < 3:
                print(f"{self._LINE_PREFIX}Usage: /session {action} <id>")
                return
            session = self._find_owned_session(parts[2].strip())
            if session is None:
                print(f"{self._LINE_PREFIX}Session not found: {parts[2].strip()}")
                return
            if action == "resume":
                self._active_session_id = session.id
                print(f"{self._LINE_PREFIX}Resumed session {session.title} [{self._formatter.short_id(session.id)}]")
            else:
                sessions.delete_session(session.id)
                if self._active_session_id == session.id:
                    self._active_session_id = None
                print(f"{self._LINE_PREFIX}Deleted session {session.title} [{self._formatter.short_id(session.id)}]")
            return

        if action == "name":
            if self._active_session_id is None:
                print(f"{self._LINE_PREFIX}No active session to name")
                return
            if len(parts) < 3 or not parts[2].strip():
                print(f"{self._LINE_PREFIX}Usage: /session name <title>")
                return
            # A manual title counts as generated so it is never overwritten.
            session = sessions.update_session(self._active_session_id, title=parts[2], title_generated=True)
            print(f"{self._LINE_PREFIX}Session renamed to {session.title}")
            return

        print(f"{self._LINE_PREFIX}Unknown session command: {command}")

    async def _handle_history_command(self, command: str) -> None:
        if self._active_session_id is None:
            print(f"{self._LINE_PREFIX}No active session")
            return
        parts = command.split()
        limit = 20
        if len(parts) > 1:
            try:
                limit = max(1, int(parts[1]))
            except ValueError:
                print(f"{self._LINE_PREFIX}Usage: /history [limit]")
                return
        for message in self._runtime.messages.recent_messages(self._active_session_id, limit=limit):
            print(self._formatter.format_message_line(message))

    async def _handle_models_command(self, command: str) -> None:
        parts = command.split(maxsplit=1)
        needle = parts[1].strip().lower() if len(parts) > 1 else ""
        try:
            models = await self._runtime.orchestrator.list_models(self._runtime.user_id)
        except ChatError as ex:
            print(f"{self._LINE_PREFIX}Error ({ex.kind}): {ex}")
            return
        if needle:
            models = [m for m in models if needle in m.id.lower() or needle in m.name.lower()]
        print(f"{self._LINE_PREFIX}{len(models)} model(s)")
        for model in models[:50]:
            context = f", context {model.context_length:,}" if model.context_length else ""
            print(f"{self._LINE_PREFIX}- {model.id} ({model.name}{context})")

    async def _handle_logout(self) -> None:
        self._runtime.token_blacklist.add(self._token)
        self._closed = True
        print(f"{self._LINE_PREFIX}Logged out.")

    def _find_owned_session(self, identifier: str):
        runtime = self._runtime
        session = runtime.sessions.get_session(identifier)
        if session is not None:
            return session if session.user_id == runtime.user_id else None
        matches = [
            s
            for s in runtime.sessions.list_sessions_for_user(runtime.user_id, limit=200)
            if s.id.startswith(identifier)
        ]
        return matches[0] if len(matches) == 1 else None
