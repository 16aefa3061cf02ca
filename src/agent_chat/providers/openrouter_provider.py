import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
from loguru import logger
from tenacity import AsyncRetrying

from agent_chat.errors import (
    ChatError,
    InvalidCredential,
    MalformedRequest,
    NetworkUnreachable,
    ProviderError,
    ProviderUnavailable,
    RateLimited,
)
from agent_chat.provider import ChatMessage, CompletionResult, ModelDescriptor
from agent_chat.providers.common import default_retry_kwargs

DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_TIMEOUT_SECONDS = 60.0

_VALID_ROLES = {"user", "assistant", "system"}


def _error_detail(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
    return None


def classify_status(response: httpx.Response) -> ChatError:
    """Map a non-2xx provider response onto the error taxonomy."""
    status = response.status_code
    detail = _error_detail(response)
    if status == 401:
        return InvalidCredential("Invalid API key")
    if status == 429:
        return RateLimited("Rate limit exceeded. Please try again later.")
    if status == 400:
        return MalformedRequest(f"Invalid request: {detail or 'Bad request'}")
    if status >= 500:
        return ProviderUnavailable(
            "The completion provider is temporarily unavailable. Please try again later."
        )
    return ProviderError(f"Provider error (HTTP {status}): {detail or 'Unknown error'}")


def _validate_request(credential: str, model: str, messages: list[ChatMessage]) -> None:
    if not credential or not credential.strip():
        raise MalformedRequest("A provider credential is required")
    if not model or not model.strip():
        raise MalformedRequest("A model identifier is required")
    if not messages:
        raise MalformedRequest("At least one message is required")
    for msg in messages:
        if msg.get("role") not in _VALID_ROLES:
            raise MalformedRequest(f"Unsupported message role: {msg.get('role')!r}")
        if not isinstance(msg.get("content"), str):
            raise MalformedRequest("Message content must be a string")


def _to_result(data: Any, requested_model: str) -> CompletionResult:
    if not isinstance(data, dict):
        raise ProviderError("Provider returned an unexpected response body")

    choices = data.get("choices") or []
    first = choices[0] if isinstance(choices, list) and choices else {}
    message = (first.get("message") or {}) if isinstance(first, dict) else None
    raw_usage = data.get("usage") or {}
    content = (message.get("content") or "") if isinstance(message, dict) else None
    if not isinstance(choices, list) or not isinstance(raw_usage, dict) or not isinstance(content, str):
        raise ProviderError("Provider returned an unexpected response body")

    usage = {key: value for key, value in raw_usage.items() if isinstance(value, int)}
    return CompletionResult(
        content=content,
        model=data.get("model") or requested_model,
        finish_reason=first.get("finish_reason"),
        usage=usage,
        response_id=data.get("id"),
    )


def _to_model_descriptor(entry: dict) -> ModelDescriptor:
    context_length = entry.get("context_length")
    return ModelDescriptor(
        id=str(entry["id"]),
        name=str(entry.get("name") or entry["id"]),
        description=entry.get("description"),
        context_length=int(context_length) if isinstance(context_length, (int, float)) else None,
        pricing=entry.get("pricing") if isinstance(entry.get("pricing"), dict) else None,
    )


class OpenRouterProvider:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        referer: str | None = None,
        title: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        headers = {"Content-Type": "application/json"}
        if referer:
            headers["HTTP-Referer"] = referer
        if title:
            headers["X-Title"] = title
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )
        self._sleep = sleep

    async def close(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        credential: str,
        model: str,
        messages: list[ChatMessage],
    ) -> CompletionResult:
        """Send a chat completion, retrying connection failures and 5xx responses.

        Raises one of the classified ``ChatError`` subclasses once retries are
        exhausted or on the first non-transient failure.
        """
        _validate_request(credential, model, messages)
        payload = {
            "model": model,
            "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        }
        logger.debug(f"API request: model={model}, messages={len(messages)}")

        retrying = AsyncRetrying(sleep=self._sleep, **default_retry_kwargs())
        try:
            data = await retrying(self._post_completion, credential, payload)
        except httpx.HTTPStatusError as ex:
            error = classify_status(ex.response)
            logger.error(f"Completion request failed with HTTP {ex.response.status_code}: {error}")
            raise error from ex
        except httpx.TransportError as ex:
            logger.error(f"Completion provider unreachable: {type(ex).__name__}: {ex}")
            raise NetworkUnreachable(
                "Unable to reach the completion provider. Please check your internet connection."
            ) from ex
        except ValueError as ex:
            raise ProviderError(f"Provider returned malformed JSON: {ex}") from ex

        result = _to_result(data, model)
        logger.debug(
            f"API response: model={result.model}, finish_reason={result.finish_reason}, "
            f"text_len={len(result.content)}, total_tokens={result.total_tokens}"
        )
        return result

    async def list_models(self, credential: str) -> list[ModelDescriptor]:
        try:
            response = await self._client.get("/models", headers=self._auth_headers(credential))
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as ex:
            if ex.response.status_code == 401:
                raise InvalidCredential("Invalid API key") from ex
            raise ProviderError("Failed to fetch available models") from ex
        except (httpx.HTTPError, ValueError) as ex:
            logger.warning(f"Model list fetch failed: {ex}")
            raise ProviderError("Failed to fetch available models") from ex

        entries = data.get("data") if isinstance(data, dict) else None
        return [
            _to_model_descriptor(entry)
            for entry in entries or []
            if isinstance(entry, dict) and entry.get("id")
        ]

    async def _post_completion(self, credential: str, payload: dict) -> Any:
        response = await self._client.post(
            "/chat/completions",
            json=payload,
            headers=self._auth_headers(credential),
        )
        response.raise_for_status()
        return response.json()

    @staticmethod
    def _auth_headers(credential: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {credential}"}
