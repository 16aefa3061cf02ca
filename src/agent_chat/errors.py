from __future__ import annotations


class ChatError(Exception):
    """Base class for every failure surfaced to callers of the chat core.

    ``kind`` is a stable identifier front-ends can switch on; ``message`` is the
    human-readable description that also gets written onto failed messages.
    """

    kind = "chat_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class RecursionLimitExceeded(ChatError):
    kind = "recursion_limit"

    def __init__(self, max_depth: int):
        super().__init__(f"Maximum recursion depth of {max_depth} exceeded")
        self.max_depth = max_depth


class NotFound(ChatError):
    kind = "not_found"


class AccessDenied(ChatError):
    kind = "access_denied"


class ConflictError(ChatError):
    kind = "conflict"


class ConfigurationError(ChatError):
    kind = "configuration"


class CredentialDecryptionError(ChatError):
    kind = "credential_decryption"


class InvalidCredential(ChatError):
    kind = "invalid_credential"


class RateLimited(ChatError):
    kind = "rate_limited"


class MalformedRequest(ChatError):
    kind = "malformed_request"


class ProviderUnavailable(ChatError):
    kind = "provider_unavailable"


class NetworkUnreachable(ChatError):
    kind = "network_unreachable"


class ProviderError(ChatError):
    kind = "provider_error"


class ProcessingFailed(ChatError):
    kind = "processing_failed"
