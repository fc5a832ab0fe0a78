"""Exception hierarchy for token cache persistence."""

from __future__ import annotations

from tokenvault.constants import JSON_PARSE_ERROR

_DESERIALIZATION_HINT = (
    "Exception occurred while deserializing the token cache. The persisted "
    "entry is not a valid cache snapshot: it may be corrupt, or it may have "
    "been protected with a key this instance does not hold. Clear the entry "
    "to recover; the user will be asked to sign in again."
)


class TokenVaultError(Exception):
    """Base exception for tokenvault operations."""


class TokenCacheError(TokenVaultError):
    """Raised by a token cache when it cannot load or produce a snapshot."""

    def __init__(self, error_code: str, message: str) -> None:
        super().__init__(message)
        self.error_code = error_code


class CacheDeserializationError(TokenCacheError):
    """Persisted bytes for a key do not parse as a cache snapshot.

    Always raised ``from`` the token cache's original format error.
    """

    def __init__(self, key: str, message: str = _DESERIALIZATION_HINT) -> None:
        super().__init__(JSON_PARSE_ERROR, message)
        self.key = key


class ProtectionFormatError(TokenVaultError):
    """Protected payload is malformed or fails authentication.

    Protectors raise this (or ``cryptography.fernet.InvalidToken``) when
    the input was not produced by them; the protection layer treats it as
    legacy unprotected data.
    """


class StorageBackendError(TokenVaultError):
    """Base exception for storage backend I/O."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
