from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from agent_chat.app_config import AppConfig, RuntimeEnv
from agent_chat.credentials import CredentialCipher, CredentialResolver
from agent_chat.errors import CredentialDecryptionError
from agent_chat.logging_config import setup_logging
from agent_chat.memory import AgentRepository, ApiKeyRepository, MemoryStore, MessageRepository, SessionManager
from agent_chat.memory.models import AgentRecord
from agent_chat.orchestrator import ConversationOrchestrator
from agent_chat.providers.openrouter_provider import OpenRouterProvider
from agent_chat.token_blacklist import TokenBlacklist


@dataclass
class AppRuntime:
    user_id: str
    agent: AgentRecord
    orchestrator: ConversationOrchestrator
    provider: OpenRouterProvider
    memory_store: MemoryStore
    agents: AgentRepository
    sessions: SessionManager
    messages: MessageRepository
    credentials: CredentialResolver
    token_blacklist: TokenBlacklist
    log_descriptions: list[str]

    async def close(self) -> None:
        await self.orchestrator.drain_background_tasks()
        await self.provider.close()
        self.token_blacklist.clear()
        self.memory_store.close()


def _sync_credential(credentials: CredentialResolver, user_id: str, api_key: str) -> None:
    try:
        current = credentials.get_decrypted(user_id)
    except CredentialDecryptionError as ex:
        logger.warning(f"Replacing unreadable stored API key for {user_id}: {ex}")
        credentials.update(user_id, api_key)
        return

    if current is None:
        credentials.store(user_id, api_key)
    elif current != api_key:
        credentials.update(user_id, api_key)


def _ensure_agent(agents: AgentRepository, app: AppConfig) -> AgentRecord:
    configuration = {"system_prompt": app.system_prompt} if app.system_prompt else {}
    for agent in agents.list_agents(app.user_id):
        if agent.name == app.agent_name:
            if agent.model != app.model or agent.configuration != configuration:
                logger.info(f"Updating agent {agent.id} to model {app.model}")
                return agents.update_agent(agent.id, model=app.model, configuration=configuration)
            return agent
    agent = agents.create_agent(app.user_id, app.agent_name, app.model, configuration=configuration)
    logger.info(f"Created agent {agent.id} ({agent.name}, {agent.model})")
    return agent


def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    db_path = Path(app.db_path)
    if not db_path.is_absolute():
        db_path = Path.cwd() / db_path
    memory_store = MemoryStore(str(db_path))
    agents = AgentRepository(memory_store)
    sessions = SessionManager(memory_store)
    messages = MessageRepository(memory_store)

    if env.encryption_key_is_default:
        logger.warning("ENCRYPTION_KEY is not set; stored API keys use the development key")
    credentials = CredentialResolver(ApiKeyRepository(memory_store), CredentialCipher(env.encryption_key))
    if env.provider_api_key:
        _sync_credential(credentials, app.user_id, env.provider_api_key)

    agent = _ensure_agent(agents, app)

    provider = OpenRouterProvider(
        env.provider_base_url,
        timeout_seconds=app.request_timeout_seconds,
        referer=env.app_referer,
        title=env.app_title,
    )
    orchestrator = ConversationOrchestrator(
        provider=provider,
        agents=agents,
        sessions=sessions,
        messages=messages,
        credentials=credentials,
        history_window=app.history_window,
        generate_metadata=app.generate_session_metadata,
    )

    return AppRuntime(
        user_id=app.user_id,
        agent=agent,
        orchestrator=orchestrator,
        provider=provider,
        memory_store=memory_store,
        agents=agents,
        sessions=sessions,
        messages=messages,
        credentials=credentials,
        token_blacklist=TokenBlacklist(),
        log_descriptions=log_descriptions,
    )
