from agent_chat.errors import NotFound
from tests.memory.base import MemoryStoreTestCase


class AgentRepositoryTests(MemoryStoreTestCase):
    def test_create_and_get_agent(self) -> None:
        agent = self._agents.create_agent("u1", " Helper ", "openai/gpt-4o", configuration={"system_prompt": "Be brief"})
        loaded = self._agents.get_agent(agent.id)
        self.assertIsNotNone(loaded)
        self.assertEqual("Helper", loaded.name)
        self.assertEqual("u1", loaded.user_id)
        self.assertEqual({"system_prompt": "Be brief"}, loaded.configuration)

    def test_create_rejects_blank_name_or_model(self) -> None:
        with self.assertRaises(ValueError):
            self._agents.create_agent("u1", "  ", "m")
        with self.assertRaises(ValueError):
            self._agents.create_agent("u1", "name", "")

    def test_list_agents_is_scoped_to_owner(self) -> None:
        self._agents.create_agent("u1", "One", "m")
        self._agents.create_agent("u2", "Two", "m")
        self.assertEqual(["One"], [a.name for a in self._agents.list_agents("u1")])

    def test_update_agent_keeps_unspecified_fields(self) -> None:
        agent = self._agents.create_agent("u1", "One", "m1", configuration={"system_prompt": "x"})
        updated = self._agents.update_agent(agent.id, model="m2")
        self.assertEqual("m2", updated.model)
        self.assertEqual("One", updated.name)
        self.assertEqual({"system_prompt": "x"}, updated.configuration)

    def test_update_and_delete_missing_agent(self) -> None:
        with self.assertRaises(NotFound):
            self._agents.update_agent("missing", name="x")
        self.assertFalse(self._agents.delete_agent("missing"))

    def test_api_key_row_is_unique_per_user(self) -> None:
        self._api_keys.create("u1", "aa:bb")
        self.assertEqual("aa:bb", self._api_keys.find_by_user("u1").encrypted_key)
        updated = self._api_keys.update("u1", "cc:dd")
        self.assertEqual("cc:dd", updated.encrypted_key)
        self.assertTrue(self._api_keys.delete("u1"))
        self.assertIsNone(self._api_keys.find_by_user("u1"))
        with self.assertRaises(NotFound):
            self._api_keys.update("u1", "ee:ff")
