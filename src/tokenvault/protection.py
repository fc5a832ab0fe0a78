"""Protection layer — optional at-rest encryption of cache snapshots.

``ProtectionLayer`` wraps an injected ``DataProtector``. With no protector
both directions are the identity. On unprotect, a payload that fails to
decrypt with a format/authentication error is returned as-is: entries
written before protection was enabled keep loading without a migration
step. The trade-off is that such bytes are accepted unauthenticated.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Protocol, Sequence, runtime_checkable

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from tokenvault.errors import ProtectionFormatError

if TYPE_CHECKING:
    from tokenvault.config import TokenVaultConfig

logger = logging.getLogger(__name__)

# Failures that mean "this payload was not protected by us".
# Anything else (misconfiguration, remote KMS outage) propagates.
LEGACY_FALLBACK_ERRORS: tuple[type[Exception], ...] = (InvalidToken, ProtectionFormatError)


@runtime_checkable
class DataProtector(Protocol):
    """Reversible byte transformation. Methods may return an awaitable."""

    def protect(self, data: bytes) -> bytes | Awaitable[bytes]: ...

    def unprotect(self, data: bytes) -> bytes | Awaitable[bytes]: ...


class UnprotectOutcome(str, Enum):
    UNPROTECTED = "unprotected"
    LEGACY_FALLBACK = "legacy_fallback"
    DISABLED = "disabled"
    EMPTY = "empty"


@dataclass(frozen=True)
class UnprotectResult:
    data: bytes | None
    outcome: UnprotectOutcome

    @property
    def fell_back(self) -> bool:
        return self.outcome is UnprotectOutcome.LEGACY_FALLBACK


async def _resolve(value: bytes | Awaitable[bytes]) -> bytes:
    if inspect.isawaitable(value):
        return await value
    return value


class ProtectionLayer:
    """Protect/unprotect cache bytes through an optional protector."""

    def __init__(self, protector: DataProtector | None = None) -> None:
        self._protector = protector

    @property
    def enabled(self) -> bool:
        return self._protector is not None

    async def protect(self, data: bytes | None) -> bytes | None:
        if data is None or self._protector is None:
            return data
        return await _resolve(self._protector.protect(data))

    async def unprotect(self, data: bytes | None) -> UnprotectResult:
        if not data:
            return UnprotectResult(data, UnprotectOutcome.EMPTY)
        if self._protector is None:
            return UnprotectResult(data, UnprotectOutcome.DISABLED)
        try:
            plain = await _resolve(self._protector.unprotect(data))
        except LEGACY_FALLBACK_ERRORS:
            logger.warning(
                "Cache payload did not unprotect; treating it as unprotected legacy data."
            )
            return UnprotectResult(data, UnprotectOutcome.LEGACY_FALLBACK)
        return UnprotectResult(plain, UnprotectOutcome.UNPROTECTED)


# ---------------------------------------------------------------------------
# Fernet protector
# ---------------------------------------------------------------------------


class FernetProtector:
    """``DataProtector`` backed by Fernet (AES-128-CBC + HMAC-SHA256).

    The first key encrypts; every key is tried on decrypt, so keys can be
    rotated by prepending a new one and re-protecting stored entries.
    """

    def __init__(self, keys: Sequence[str | bytes]) -> None:
        if not keys:
            raise ValueError("FernetProtector requires at least one key")
        try:
            self._fernet = MultiFernet([Fernet(k) for k in keys])
        except (ValueError, TypeError) as e:
            raise ValueError(f"Invalid protection key: {e}") from e

    def protect(self, data: bytes) -> bytes:
        return self._fernet.encrypt(data)

    def unprotect(self, data: bytes) -> bytes:
        return self._fernet.decrypt(data)

    def rotate(self, data: bytes) -> bytes:
        """Re-encrypt a protected payload under the primary key."""
        return self._fernet.rotate(data)


def generate_key() -> str:
    """Return a fresh URL-safe base64 Fernet key."""
    return Fernet.generate_key().decode()


def create_protector(config: TokenVaultConfig) -> FernetProtector | None:
    """Build the protector described by *config*, or None when unconfigured."""
    if not config.protection_keys:
        return None
    return FernetProtector(config.protection_keys)
