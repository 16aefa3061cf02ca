import shutil
import unittest
from pathlib import Path
from uuid import uuid4

from agent_chat.credentials import CredentialCipher, CredentialResolver
from agent_chat.memory import AgentRepository, ApiKeyRepository, MemoryStore, MessageRepository, SessionManager


PROJECT_ROOT = Path(__file__).resolve().parents[2]


class MemoryStoreTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp_dir = PROJECT_ROOT / ".test-artifacts" / f"{self.__class__.__name__.lower()}-{uuid4().hex}"
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        self._store = MemoryStore(str(self._tmp_dir / "chat.db"))
        self._agents = AgentRepository(self._store)
        self._sessions = SessionManager(self._store)
        self._messages = MessageRepository(self._store)
        self._api_keys = ApiKeyRepository(self._store)
        self._credentials = CredentialResolver(self._api_keys, CredentialCipher("test-secret"))

    def tearDown(self) -> None:
        self._store.close()
        shutil.rmtree(self._tmp_dir, ignore_errors=True)
