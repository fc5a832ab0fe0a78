"""Token cache provider — keeps an in-memory token cache in step with storage.

The provider registers itself on a token cache's notification slots and
reacts to each access cycle:

- before access: load the persisted snapshot for the key and replace the
  in-memory content with it;
- after access: if the cache changed, write the protected snapshot, or
  remove the entry when no token is left;
- before write: extension point, no-op by default.

Storage is delegated to a ``StorageBackend``; encryption to an optional
``DataProtector`` via ``ProtectionLayer``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from tokenvault.constants import JSON_PARSE_ERROR
from tokenvault.errors import CacheDeserializationError, TokenCacheError
from tokenvault.hints import EMPTY_HINTS, CacheSerializerHints
from tokenvault.protection import ProtectionLayer

if TYPE_CHECKING:
    from tokenvault.notification import TokenCache, TokenCacheNotification
    from tokenvault.protection import DataProtector
    from tokenvault.storage_backend import StorageBackend

logger = logging.getLogger(__name__)


class TokenCacheProvider:
    """Persists a token cache through a storage backend.

    One provider serves one token cache instance for its lifetime. The
    backend, protector and logger are fixed at construction and shared
    read-only between concurrent access cycles.

    No locking across writers is done here: two processes updating the
    same key race and the last write wins. Override ``on_before_write``
    to take a lock (see ``KeyLockedTokenCacheProvider``).
    """

    def __init__(
        self,
        backend: StorageBackend,
        protector: DataProtector | None = None,
        *,
        log: logging.Logger | None = None,
    ) -> None:
        self._backend = backend
        self._protection = ProtectionLayer(protector)
        self._log = log or logger
        self._reads = 0
        self._writes = 0
        self._removes = 0
        self._legacy_fallbacks = 0
        self._deserialization_errors = 0

    @property
    def protection_enabled(self) -> bool:
        return self._protection.enabled

    def initialize(self, token_cache: TokenCache) -> None:
        """Bind the access hooks on *token_cache*. Rebinding replaces them."""
        if token_cache is None:
            raise ValueError("token_cache must not be None")
        token_cache.set_before_access(self._on_before_access)
        token_cache.set_after_access(self._on_after_access)
        token_cache.set_before_write(self.on_before_write)

    async def clear(self, key: str, hints: CacheSerializerHints = EMPTY_HINTS) -> None:
        """Remove the persisted entry for *key* outside of any access cycle.

        Used for sign-out and explicit eviction, e.g. with a user's
        home account id.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        await self._backend.remove(key, hints)
        self._removes += 1
        self._log.info("Cleared persisted token cache for %s.", key)

    # -- access hooks ---------------------------------------------------------

    async def _on_before_access(self, args: TokenCacheNotification) -> None:
        key = args.suggested_cache_key
        if not key:
            return

        raw = await self._backend.read(key, args.hints())
        self._reads += 1
        result = await self._protection.unprotect(raw)
        if result.fell_back:
            self._legacy_fallbacks += 1

        try:
            args.token_cache.deserialize(result.data, clear_existing=True)
        except TokenCacheError as e:
            self._deserialization_errors += 1
            self._log.warning(
                "Failed to deserialize token cache for %s (protection enabled: %s): %s",
                key, self.protection_enabled, e,
            )
            if e.error_code == JSON_PARSE_ERROR:
                raise CacheDeserializationError(key) from e
            raise

        self._log.debug(
            "Loaded token cache for %s (protection enabled: %s, outcome: %s).",
            key, self.protection_enabled, result.outcome.value,
        )

    async def _on_after_access(self, args: TokenCacheNotification) -> None:
        key = args.suggested_cache_key
        if not args.has_state_changed or not key:
            return

        hints = args.hints()
        if args.has_tokens:
            data = await self._protection.protect(args.token_cache.serialize())
            await self._backend.write(key, data, hints)
            self._writes += 1
            self._log.debug("Persisted token cache for %s.", key)
        else:
            await self._backend.remove(key, hints)
            self._removes += 1
            self._log.debug("Removed token cache for %s (no tokens left).", key)

    async def on_before_write(self, args: TokenCacheNotification) -> None:
        """Called before the token cache is mutated. Override to add locking."""

    # -- diagnostics ----------------------------------------------------------

    def health(self) -> dict[str, object]:
        """Return provider counters for monitoring."""
        return {
            "protection_enabled": self.protection_enabled,
            "backend": type(self._backend).__name__,
            "reads": self._reads,
            "writes": self._writes,
            "removes": self._removes,
            "legacy_fallbacks": self._legacy_fallbacks,
            "deserialization_errors": self._deserialization_errors,
        }


class KeyLockedTokenCacheProvider(TokenCacheProvider):
    """Provider that serialises writers to the same key within one process.

    The lock for a key is taken in ``on_before_write`` and released once
    the after-access write or remove has completed, successfully or not.
    Processes sharing a backend still race; use a distributed lock there.
    """

    def __init__(
        self,
        backend: StorageBackend,
        protector: DataProtector | None = None,
        *,
        log: logging.Logger | None = None,
    ) -> None:
        super().__init__(backend, protector, log=log)
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, asyncio.Task[object] | None] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        """Get or create a per-key lock."""
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def on_before_write(self, args: TokenCacheNotification) -> None:
        key = args.suggested_cache_key
        if not key:
            return
        await self._get_lock(key).acquire()
        self._holders[key] = asyncio.current_task()

    async def _on_after_access(self, args: TokenCacheNotification) -> None:
        try:
            await super()._on_after_access(args)
        finally:
            self._release(args.suggested_cache_key)

    def _release(self, key: str | None) -> None:
        # Only the access cycle that took the lock may release it.
        if not key or key not in self._holders:
            return
        if self._holders[key] is not asyncio.current_task():
            return
        del self._holders[key]
        self._locks[key].release()

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()
