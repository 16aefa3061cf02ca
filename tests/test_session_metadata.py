import asyncio
import unittest

from agent_chat.errors import RateLimited
from agent_chat.session_metadata import (
    MAX_TITLE_LENGTH,
    build_prompt,
    derive_fallback_title,
    generate_session_metadata,
    parse_metadata_reply,
)
from tests.fakes import FakeProvider
from tests.memory.base import MemoryStoreTestCase


class ParseMetadataReplyTests(unittest.TestCase):
    def test_reads_json_wrapped_in_prose(self) -> None:
        reply = 'Sure! ```json\n{"title": "Sourdough basics", "description": "Starter care.", "emoji": "🍞"}\n```'
        metadata = parse_metadata_reply(reply, fallback_title="fallback")
        self.assertEqual("Sourdough basics", metadata.title)
        self.assertEqual("Starter care.", metadata.description)
        self.assertEqual("🍞", metadata.emoji)

    def test_invalid_json_falls_back_to_title_only(self) -> None:
        metadata = parse_metadata_reply("I think this is about bread", fallback_title="How do I bake bread?")
        self.assertEqual("How do I bake bread?", metadata.title)
        self.assertIsNone(metadata.description)
        self.assertIsNone(metadata.emoji)

    def test_blank_title_uses_fallback_and_long_title_is_truncated(self) -> None:
        self.assertEqual("fallback", parse_metadata_reply('{"title": "  "}', fallback_title="fallback").title)

        long_title = "x" * 100
        metadata = parse_metadata_reply(f'{{"title": "{long_title}"}}', fallback_title="f")
        self.assertEqual(MAX_TITLE_LENGTH, len(metadata.title))
        self.assertTrue(metadata.title.endswith("…"))


class SessionMetadataGenerationTests(MemoryStoreTestCase):
    def setUp(self) -> None:
        super().setUp()
        self._agents.create_agent("u1", "Helper", "m", agent_id="a1")
        self._sessions.create_session("a1", "u1", session_id="s1")

    def _generate(self, provider: FakeProvider):
        return asyncio.run(
            generate_session_metadata(
                provider=provider,
                credential="k",
                model="m",
                sessions=self._sessions,
                messages=self._messages,
                session_id="s1",
            )
        )

    def test_uses_first_exchange_and_marks_title_generated(self) -> None:
        self._messages.append_message("s1", "user", "How   do I bake\nbread?")
        self._messages.append_message("s1", "assistant", "Start with flour.")
        self._messages.append_message("s1", "user", "Which flour?")
        self._messages.append_message("s1", "assistant", "Bread flour.")
        self._messages.append_message("s1", "user", "late message")
        provider = FakeProvider(['{"title": "Baking bread", "description": "Flour choices.", "emoji": "🍞"}'])

        session = self._generate(provider)

        self.assertEqual("Baking bread", session.title)
        self.assertTrue(session.title_generated)
        prompt = provider.calls[0][2][0]["content"]
        self.assertIn("User: How   do I bake\nbread?", prompt)
        self.assertIn("Assistant: Bread flour.", prompt)
        self.assertNotIn("late message", prompt)

    def test_skips_sessions_already_titled(self) -> None:
        self._messages.append_message("s1", "user", "hi")
        self._sessions.update_session("s1", title="Mine", title_generated=True)
        provider = FakeProvider()

        self.assertIsNone(self._generate(provider))
        self.assertEqual([], provider.calls)
        self.assertEqual("Mine", self._sessions.get_session("s1").title)

    def test_skips_sessions_without_messages(self) -> None:
        provider = FakeProvider()
        self.assertIsNone(self._generate(provider))
        self.assertEqual([], provider.calls)

    def test_unparseable_reply_uses_first_user_message(self) -> None:
        self._messages.append_message("s1", "user", "How   do I bake\nbread?")
        self._messages.append_message("s1", "assistant", "Start with flour.")

        session = self._generate(FakeProvider(["no json here"]))

        self.assertEqual("How do I bake bread?", session.title)
        self.assertTrue(session.title_generated)

    def test_provider_errors_propagate_without_changing_session(self) -> None:
        self._messages.append_message("s1", "user", "hi")
        with self.assertRaises(RateLimited):
            self._generate(FakeProvider([RateLimited("slow down")]))
        self.assertFalse(self._sessions.get_session("s1").title_generated)

    def test_prompt_and_fallback_helpers(self) -> None:
        user = self._messages.append_message("s1", "user", "Question")
        assistant = self._messages.append_message("s1", "assistant", "Answer")
        prompt = build_prompt([user, assistant])
        self.assertIn("User: Question\nAssistant: Answer", prompt)
        self.assertIn('"emoji"', prompt)
        self.assertEqual("New conversation", derive_fallback_title([assistant]))


if __name__ == "__main__":
    unittest.main()
