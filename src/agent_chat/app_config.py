from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

from agent_chat.orchestrator import HISTORY_WINDOW
from agent_chat.providers.openrouter_provider import DEFAULT_BASE_URL, DEFAULT_TIMEOUT_SECONDS

DEV_ENCRYPTION_KEY = "agent-chat-dev-encryption-key-32"


@dataclass
class RuntimeEnv:
    provider_api_key: str | None
    provider_base_url: str
    encryption_key: str
    encryption_key_is_default: bool
    app_referer: str | None
    app_title: str | None


@dataclass
class AppConfig:
    user_id: str
    agent_name: str
    model: str
    system_prompt: str | None
    db_path: str
    request_timeout_seconds: float
    history_window: int
    generate_session_metadata: bool
    log_level: str
    log_consumers: list | None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _to_bool(value: object, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return bool(value)


def parse_app_config(config: dict) -> AppConfig:
    return AppConfig(
        user_id=str(config.get("UserId", "local-user")).strip() or "local-user",
        agent_name=str(config.get("AgentName", "Default agent")).strip() or "Default agent",
        model=str(config.get("Model", "openai/gpt-4o-mini")).strip(),
        system_prompt=str(config.get("SystemPrompt", "")).strip() or None,
        db_path=str(config.get("DbPath", ".agent_chat/chat.db")),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", DEFAULT_TIMEOUT_SECONDS)),
        history_window=int(config.get("HistoryWindow", HISTORY_WINDOW)),
        generate_session_metadata=_to_bool(config.get("GenerateSessionMetadata", True), default=True),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_runtime_env() -> RuntimeEnv:
    encryption_key = os.environ.get("ENCRYPTION_KEY", "")
    return RuntimeEnv(
        provider_api_key=os.environ.get("OPENROUTER_API_KEY") or None,
        provider_base_url=os.environ.get("OPENROUTER_API_URL", DEFAULT_BASE_URL),
        encryption_key=encryption_key or DEV_ENCRYPTION_KEY,
        encryption_key_is_default=not encryption_key,
        app_referer=os.environ.get("APP_REFERER", "http://localhost"),
        app_title=os.environ.get("APP_TITLE", "agent-chat"),
    )
