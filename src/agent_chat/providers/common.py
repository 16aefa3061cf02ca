from __future__ import annotations

from collections.abc import Callable

import httpx
from loguru import logger
from tenacity import retry_if_exception, stop_after_attempt, wait_exponential

MAX_RETRIES = 3
RETRY_BASE_DELAY_SECONDS = 1.0


def is_transient_failure(exc: BaseException) -> bool:
    """No response at all, or a 5xx from the provider."""
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return 500 <= exc.response.status_code < 600
    return False


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    if isinstance(exc, httpx.HTTPStatusError):
        reason = f"HTTP {exc.response.status_code}"
    logger.warning(f"{reason}. Retry attempt {attempt}/{MAX_RETRIES} in {wait:.0f}s...")


def default_retry_kwargs(
    predicate: Callable[[BaseException], bool] = is_transient_failure,
    *,
    max_retries: int = MAX_RETRIES,
    base_delay: float = RETRY_BASE_DELAY_SECONDS,
) -> dict:
    # Delays double from base_delay: 1s, 2s, 4s for the defaults.
    return {
        "retry": retry_if_exception(predicate),
        "wait": wait_exponential(
            multiplier=base_delay,
            min=base_delay,
            max=base_delay * 2 ** max(0, max_retries - 1),
        ),
        "stop": stop_after_attempt(max_retries + 1),
        "before_sleep": _on_retry,
        "reraise": True,
    }
