from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, TypedDict, runtime_checkable


class ChatMessage(TypedDict):
    role: str
    content: str


@dataclass(frozen=True)
class CompletionResult:
    content: str
    model: str
    finish_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)
    response_id: str | None = None

    @property
    def total_tokens(self) -> int | None:
        return self.usage.get("total_tokens")


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    name: str
    description: str | None = None
    context_length: int | None = None
    pricing: dict[str, Any] | None = None


@runtime_checkable
class CompletionProvider(Protocol):
    async def send(
        self,
        credential: str,
        model: str,
        messages: list[ChatMessage],
    ) -> CompletionResult:
        """Perform one chat completion, retrying transient failures internally."""
        ...

    async def list_models(self, credential: str) -> list[ModelDescriptor]:
        """Fetch the models available to ``credential`` (single attempt)."""
        ...
