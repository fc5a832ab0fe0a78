"""Cache-access notifications and the token cache interface they come from."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Protocol, runtime_checkable

from tokenvault.hints import CacheSerializerHints


@dataclass(frozen=True)
class TokenCacheNotification:
    """One cache-access event raised by a token cache.

    ``has_state_changed`` is True when the access mutated the in-memory
    cache; ``has_tokens`` is True when at least one token remains after it.
    """

    token_cache: TokenCache
    suggested_cache_key: str | None
    has_state_changed: bool = False
    has_tokens: bool = False
    cancel_event: asyncio.Event | None = None
    suggested_cache_expiry: datetime | None = None

    def hints(self) -> CacheSerializerHints:
        return CacheSerializerHints(
            cancel_event=self.cancel_event,
            suggested_expiry=self.suggested_cache_expiry,
        )


NotificationCallback = Callable[[TokenCacheNotification], Awaitable[None]]


@runtime_checkable
class TokenCache(Protocol):
    """In-memory token cache with before/after access notification slots.

    ``deserialize`` raises ``TokenCacheError`` on data it cannot load.
    """

    def set_before_access(self, callback: NotificationCallback) -> None: ...

    def set_after_access(self, callback: NotificationCallback) -> None: ...

    def set_before_write(self, callback: NotificationCallback) -> None: ...

    def serialize(self) -> bytes: ...

    def deserialize(self, data: bytes | None, *, clear_existing: bool = True) -> None: ...
