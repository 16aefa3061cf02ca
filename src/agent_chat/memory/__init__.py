from agent_chat.memory.agents import AgentRepository
from agent_chat.memory.api_keys import ApiKeyRepository
from agent_chat.memory.messages import MessageRepository
from agent_chat.memory.session_manager import SessionManager
from agent_chat.memory.store import MemoryStore

__all__ = [
    "AgentRepository",
    "ApiKeyRepository",
    "MemoryStore",
    "MessageRepository",
    "SessionManager",
]
