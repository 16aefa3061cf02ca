from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from loguru import logger

from agent_chat.credentials import CredentialResolver
from agent_chat.errors import (
    AccessDenied,
    ChatError,
    ConfigurationError,
    MalformedRequest,
    NotFound,
    ProcessingFailed,
    RecursionLimitExceeded,
)
from agent_chat.memory.agents import AgentRepository
from agent_chat.memory.messages import MessageRepository
from agent_chat.memory.models import AgentRecord, MessageRecord, SessionRecord
from agent_chat.memory.session_manager import SessionManager
from agent_chat.provider import ChatMessage, CompletionProvider, ModelDescriptor
from agent_chat.session_metadata import generate_session_metadata

MAX_RECURSION_DEPTH = 5
HISTORY_WINDOW = 50
METADATA_MIN_MESSAGES = 4


@dataclass(frozen=True)
class ExchangeResult:
    response: str
    model: str
    tokens_used: int | None
    session_id: str
    message_id: str
    user_message_id: str

    def to_dict(self) -> dict:
        payload: dict = {
            "response": self.response,
            "model": self.model,
            "sessionId": self.session_id,
            "messageId": self.message_id,
        }
        if self.tokens_used is not None:
            payload["tokensUsed"] = self.tokens_used
        return payload


class ConversationOrchestrator:
    """Turns one inbound user message into a persisted exchange.

    The user turn is stored before the provider is called, so a failed call
    leaves the message in place annotated with the failure and without an
    assistant reply. Session metadata is generated in a background task once a
    session has enough messages; its failures are logged and never surfaced.
    """

    def __init__(
        self,
        *,
        provider: CompletionProvider,
        agents: AgentRepository,
        sessions: SessionManager,
        messages: MessageRepository,
        credentials: CredentialResolver,
        history_window: int = HISTORY_WINDOW,
        generate_metadata: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._provider = provider
        self._agents = agents
        self._sessions = sessions
        self._messages = messages
        self._credentials = credentials
        self._history_window = max(0, history_window)
        self._generate_metadata = generate_metadata
        self._clock = clock
        self._background_tasks: set[asyncio.Task] = set()
        self._metadata_pending: set[str] = set()

    async def handle_message(
        self,
        agent_id: str,
        user_id: str,
        message: str,
        session_id: str | None = None,
        recursion_depth: int = 0,
    ) -> ExchangeResult:
        if recursion_depth >= MAX_RECURSION_DEPTH:
            raise RecursionLimitExceeded(MAX_RECURSION_DEPTH)
        started = self._clock()

        if not isinstance(message, str) or not message.strip():
            raise MalformedRequest("Message must be a non-empty string")

        agent = self._resolve_agent(agent_id, user_id)
        session = self._resolve_session(agent, user_id, session_id)
        user_message = self._messages.append_message(session.id, "user", message)
        logger.debug(
            f"Stored user message {user_message.id} (seq={user_message.seq}) "
            f"in session {session.id} at depth {recursion_depth}"
        )

        try:
            credential = self._resolve_credential(user_id)
            prompt = self._build_prompt(agent, session.id, user_message)
            result = await self._provider.send(credential, agent.model, prompt)

            elapsed_ms = int((self._clock() - started) * 1000)
            assistant_message = self._messages.append_message(
                session.id,
                "assistant",
                result.content,
                metadata={"model": result.model, "finish_reason": result.finish_reason},
                tokens_used=result.total_tokens,
                processing_time_ms=elapsed_ms,
                parent_message_id=user_message.id,
            )
        except ChatError as ex:
            self._annotate_failure(user_message, ex)
            raise
        except Exception as ex:
            self._annotate_failure(user_message, ex)
            raise ProcessingFailed(f"Failed to process message: {ex}") from ex

        # The reply is stored; bookkeeping failures from here on are logged only.
        try:
            self._sessions.touch_last_message(session.id)
        except Exception as ex:
            logger.warning(f"Could not update last message time for session {session.id}: {ex}")

        logger.info(
            f"Exchange complete: session={session.id}, model={result.model}, "
            f"tokens={result.total_tokens}, elapsed={elapsed_ms}ms"
        )
        try:
            self._maybe_schedule_metadata(session.id, user_id, agent.model)
        except Exception as ex:
            logger.warning(f"Could not schedule metadata generation for session {session.id}: {ex}")

        return ExchangeResult(
            response=result.content,
            model=result.model,
            tokens_used=result.total_tokens,
            session_id=session.id,
            message_id=assistant_message.id,
            user_message_id=user_message.id,
        )

    async def list_models(self, user_id: str) -> list[ModelDescriptor]:
        return await self._provider.list_models(self._resolve_credential(user_id))

    async def drain_background_tasks(self) -> None:
        """Wait for any in-flight metadata generation to finish."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    def _resolve_agent(self, agent_id: str, user_id: str) -> AgentRecord:
        agent = self._agents.get_agent(agent_id)
        if agent is None:
            raise NotFound("Agent not found")
        if agent.user_id != user_id:
            raise AccessDenied("Access denied. This agent belongs to another user.")
        return agent

    def _resolve_session(self, agent: AgentRecord, user_id: str, session_id: str | None) -> SessionRecord:
        if session_id is None:
            session = self._sessions.create_session(agent.id, user_id)
            logger.info(f"Created session {session.id} for agent {agent.id}")
            return session

        session = self._sessions.get_session(session_id)
        if session is None:
            raise NotFound("Session not found")
        if session.user_id != user_id:
            raise AccessDenied("Access denied. This session belongs to another user.")
        if session.agent_id != agent.id:
            raise NotFound("Session not found for this agent")
        return session

    def _resolve_credential(self, user_id: str) -> str:
        credential = self._credentials.get_decrypted(user_id)
        if not credential:
            raise ConfigurationError(
                "API key not configured. Please configure your provider API key first."
            )
        return credential

    def _build_prompt(self, agent: AgentRecord, session_id: str, user_message: MessageRecord) -> list[ChatMessage]:
        prompt: list[ChatMessage] = []
        system_prompt = agent.configuration.get("system_prompt")
        if isinstance(system_prompt, str) and system_prompt.strip():
            prompt.append({"role": "system", "content": system_prompt})

        if self._history_window > 0:
            recent = self._messages.recent_messages(session_id, limit=self._history_window + 1)
            prior = [m for m in recent if m.id != user_message.id and m.error is None]
            prompt.extend({"role": m.role, "content": m.content} for m in prior[-self._history_window:])

        prompt.append({"role": "user", "content": user_message.content})
        return prompt

    def _annotate_failure(self, user_message: MessageRecord, error: Exception) -> None:
        description = str(error) or type(error).__name__
        logger.warning(f"Exchange failed for message {user_message.id}: {description}")
        try:
            self._messages.set_error(user_message.id, description)
        except Exception as ex:
            logger.error(f"Could not record failure on message {user_message.id}: {ex}")

    def _maybe_schedule_metadata(self, session_id: str, user_id: str, model: str) -> None:
        if not self._generate_metadata or session_id in self._metadata_pending:
            return
        session = self._sessions.get_session(session_id)
        if session is None or session.title_generated:
            return
        if self._messages.count_messages(session_id) < METADATA_MIN_MESSAGES:
            return

        self._metadata_pending.add(session_id)
        task = asyncio.create_task(self._generate_metadata_quietly(session_id, user_id, model))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _generate_metadata_quietly(self, session_id: str, user_id: str, model: str) -> None:
        try:
            credential = self._resolve_credential(user_id)
            await generate_session_metadata(
                provider=self._provider,
                credential=credential,
                model=model,
                sessions=self._sessions,
                messages=self._messages,
                session_id=session_id,
            )
        except Exception as ex:
            logger.warning(f"Session metadata generation failed for {session_id}: {ex}")
        finally:
            self._metadata_pending.discard(session_id)
