from __future__ import annotations

import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from loguru import logger

from agent_chat.errors import ConflictError, CredentialDecryptionError, NotFound
from agent_chat.memory.api_keys import ApiKeyRepository

_KEY_BYTES = 32
_IV_BYTES = 16


def mask(key: str) -> str:
    if len(key) <= 8:
        return "***"
    return f"{key[:4]}...{key[-4:]}"


class CredentialCipher:
    """AES-256-CBC with a random IV, stored as ``<iv-hex>:<ciphertext-hex>``."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Encryption secret cannot be empty")
        # Short secrets are right-padded with '0', long ones truncated.
        self._key = secret.encode("utf-8").ljust(_KEY_BYTES, b"0")[:_KEY_BYTES]

    def encrypt(self, plaintext: str) -> str:
        iv = os.urandom(_IV_BYTES)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        data = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(data) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, stored: str) -> str:
        parts = stored.split(":")
        if len(parts) != 2:
            raise CredentialDecryptionError("Invalid encrypted key format")
        try:
            iv = bytes.fromhex(parts[0])
            ciphertext = bytes.fromhex(parts[1])
            if len(iv) != _IV_BYTES:
                raise ValueError(f"expected a {_IV_BYTES}-byte IV, got {len(iv)}")
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            data = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(data) + unpadder.finalize()
            return plaintext.decode("utf-8")
        except ValueError as ex:
            raise CredentialDecryptionError(f"Stored API key could not be decrypted: {ex}") from ex


@dataclass(frozen=True)
class ApiKeyView:
    id: str
    masked_key: str
    created_at: str
    updated_at: str


class CredentialResolver:
    def __init__(self, api_keys: ApiKeyRepository, cipher: CredentialCipher):
        self._api_keys = api_keys
        self._cipher = cipher

    def store(self, user_id: str, key: str) -> ApiKeyView:
        if self._api_keys.find_by_user(user_id) is not None:
            raise ConflictError("User already has an API key. Use update instead.")
        record = self._api_keys.create(user_id, self._cipher.encrypt(key))
        logger.info(f"Stored API key for user {user_id}")
        return ApiKeyView(record.id, mask(key), record.created_at, record.updated_at)

    def update(self, user_id: str, key: str) -> ApiKeyView:
        record = self._api_keys.update(user_id, self._cipher.encrypt(key))
        logger.info(f"Updated API key for user {user_id}")
        return ApiKeyView(record.id, mask(key), record.created_at, record.updated_at)

    def delete(self, user_id: str) -> None:
        if not self._api_keys.delete(user_id):
            raise NotFound("API key not found")

    def describe(self, user_id: str) -> ApiKeyView | None:
        record = self._api_keys.find_by_user(user_id)
        if record is None:
            return None
        return ApiKeyView(
            record.id,
            mask(self._cipher.decrypt(record.encrypted_key)),
            record.created_at,
            record.updated_at,
        )

    def get_decrypted(self, user_id: str) -> str | None:
        """Plaintext credential for one outbound call, or None when unset.

        Corrupt ciphertext raises ``CredentialDecryptionError`` rather than
        looking like a missing key.
        """
        record = self._api_keys.find_by_user(user_id)
        if record is None:
            return None
        return self._cipher.decrypt(record.encrypted_key)
