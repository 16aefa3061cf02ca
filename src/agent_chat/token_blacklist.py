from __future__ import annotations

import threading


class TokenBlacklist:
    """Revoked session tokens, shared process-wide.

    Created once by the runtime bootstrap and handed to whatever needs it; all
    operations are safe to call from multiple threads.
    """

    def __init__(self) -> None:
        self._tokens: set[str] = set()
        self._lock = threading.Lock()

    def add(self, token: str) -> None:
        with self._lock:
            self._tokens.add(token)

    def contains(self, token: str) -> bool:
        with self._lock:
            return token in self._tokens

    def remove(self, token: str) -> None:
        with self._lock:
            self._tokens.discard(token)

    def clear(self) -> None:
        with self._lock:
            self._tokens.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._tokens)

    def __contains__(self, token: object) -> bool:
        return isinstance(token, str) and self.contains(token)
