"""InMemoryStorageBackend — process-local StorageBackend with expiry.

Suitable for tests and single-process apps. Entry lifetime comes from
``hints.suggested_expiry`` when given, else from ``default_expiry_secs``;
expired entries read as missing.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tokenvault.config import TokenVaultConfig
    from tokenvault.hints import CacheSerializerHints


@dataclass
class _StoredEntry:
    data: bytes
    expires_at: float | None = None  # time.monotonic() deadline


class InMemoryStorageBackend:
    """Dict-backed storage keyed by cache key.

    Implements the tokenvault ``StorageBackend`` protocol:

    - ``read(key, hints) -> bytes | None``
    - ``write(key, data, hints) -> None``
    - ``remove(key, hints) -> None``
    """

    def __init__(self, default_expiry_secs: int | None = None) -> None:
        self._default_expiry = default_expiry_secs
        self._entries: dict[str, _StoredEntry] = {}
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: TokenVaultConfig) -> InMemoryStorageBackend:
        return cls(default_expiry_secs=config.default_expiry_secs)

    def _deadline(self, hints: CacheSerializerHints) -> float | None:
        ttl = hints.ttl_seconds()
        if ttl is None:
            ttl = self._default_expiry
        if ttl is None:
            return None
        return time.monotonic() + ttl

    async def read(self, key: str, hints: CacheSerializerHints) -> bytes | None:
        hints.raise_if_cancelled()
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at is not None and entry.expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return entry.data

    async def write(self, key: str, data: bytes, hints: CacheSerializerHints) -> None:
        hints.raise_if_cancelled()
        async with self._lock:
            self._entries[key] = _StoredEntry(data=data, expires_at=self._deadline(hints))

    async def remove(self, key: str, hints: CacheSerializerHints) -> None:
        hints.raise_if_cancelled()
        async with self._lock:
            self._entries.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
