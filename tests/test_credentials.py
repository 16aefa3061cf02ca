import unittest

from agent_chat.credentials import CredentialCipher, mask
from agent_chat.errors import ConflictError, CredentialDecryptionError, NotFound
from tests.memory.base import MemoryStoreTestCase


class MaskTests(unittest.TestCase):
    def test_short_keys_are_fully_hidden(self) -> None:
        self.assertEqual("***", mask("abc"))
        self.assertEqual("***", mask("12345678"))

    def test_long_keys_show_ends(self) -> None:
        self.assertEqual("sk-o...wxyz", mask("sk-or-v1-abcdefwxyz"))


class CredentialCipherTests(unittest.TestCase):
    def test_encrypt_uses_fresh_iv(self) -> None:
        cipher = CredentialCipher("secret")
        first = cipher.encrypt("sk-or-v1-abc")
        second = cipher.encrypt("sk-or-v1-abc")
        self.assertNotEqual(first, second)
        iv_hex, _, _ = first.partition(":")
        self.assertEqual(32, len(iv_hex))
        self.assertEqual("sk-or-v1-abc", cipher.decrypt(first))

    def test_wrong_secret_or_corrupt_value_raises(self) -> None:
        stored = CredentialCipher("secret").encrypt("sk-or-v1-abcdefgh")
        with self.assertRaises(CredentialDecryptionError):
            CredentialCipher("other").decrypt(stored)
        with self.assertRaises(CredentialDecryptionError):
            CredentialCipher("secret").decrypt("not-a-valid-value")
        with self.assertRaises(CredentialDecryptionError):
            CredentialCipher("secret").decrypt("abcd:zz")


class CredentialResolverTests(MemoryStoreTestCase):
    def test_missing_key_resolves_to_none(self) -> None:
        self.assertIsNone(self._credentials.get_decrypted("u1"))
        self.assertIsNone(self._credentials.describe("u1"))

    def test_store_update_and_delete(self) -> None:
        view = self._credentials.store("u1", "sk-or-v1-first-key")
        self.assertEqual("sk-o...-key", view.masked_key)
        self.assertEqual("sk-or-v1-first-key", self._credentials.get_decrypted("u1"))
        raw = self._api_keys.find_by_user("u1").encrypted_key
        self.assertNotIn("first-key", raw)

        with self.assertRaises(ConflictError):
            self._credentials.store("u1", "another")

        self._credentials.update("u1", "sk-or-v1-second")
        self.assertEqual("sk-or-v1-second", self._credentials.get_decrypted("u1"))

        self._credentials.delete("u1")
        self.assertIsNone(self._credentials.get_decrypted("u1"))
        with self.assertRaises(NotFound):
            self._credentials.delete("u1")

    def test_corrupt_stored_key_is_not_treated_as_missing(self) -> None:
        self._api_keys.create("u1", "00:11")
        with self.assertRaises(CredentialDecryptionError):
            self._credentials.get_decrypted("u1")


if __name__ == "__main__":
    unittest.main()
