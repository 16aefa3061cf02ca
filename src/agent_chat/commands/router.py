from __future__ import annotations

from collections.abc import Awaitable, Callable


class CommandRouter:
    def __init__(
        self,
        *,
        on_help: Callable[[], Awaitable[None]],
        on_session: Callable[[str], Awaitable[None]],
        on_history: Callable[[str], Awaitable[None]],
        on_models: Callable[[str], Awaitable[None]],
        on_logout: Callable[[], Awaitable[None]],
        on_unknown: Callable[[str], None],
    ) -> None:
        self._on_help = on_help
        self._on_session = on_session
        self._on_history = on_history
        self._on_models = on_models
        self._on_logout = on_logout
        self._on_unknown = on_unknown

    async def try_handle(self, user_message: str) -> bool:
        trimmed = user_message.strip()
        if not trimmed.startswith("/"):
            return False

        command = trimmed.split(maxsplit=1)[0]
        if command == "/help":
            await self._on_help()
        elif command == "/session":
            await self._on_session(trimmed)
        elif command == "/history":
            await self._on_history(trimmed)
        elif command == "/models":
            await self._on_models(trimmed)
        elif command == "/logout":
            await self._on_logout()
        else:
            self._on_unknown(trimmed)
        return True
