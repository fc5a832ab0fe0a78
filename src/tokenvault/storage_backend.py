"""Abstract persistence interface for serialized token caches.

Defines the StorageBackend Protocol that TokenCacheProvider depends on.
Concrete implementations live in ``tokenvault.backends`` or in the host
application.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from tokenvault.hints import CacheSerializerHints


@runtime_checkable
class StorageBackend(Protocol):
    """Async key/blob store for token cache snapshots.

    Any object implementing these three methods can serve as the durable
    backing store for TokenCacheProvider. ``read`` returns None (or empty
    bytes) for a missing key; backend unavailability raises. Calls for
    different keys may run concurrently.
    """

    async def read(self, key: str, hints: CacheSerializerHints) -> bytes | None: ...

    async def write(self, key: str, data: bytes, hints: CacheSerializerHints) -> None: ...

    async def remove(self, key: str, hints: CacheSerializerHints) -> None: ...
