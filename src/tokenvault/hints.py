"""Advisory metadata passed with every storage backend call."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class CacheSerializerHints:
    """Cancellation signal and suggested expiry for one storage call.

    Purely advisory: backends may use ``suggested_expiry`` to set a TTL and
    should stop work once ``cancel_event`` is set. Neither changes what
    gets persisted.
    """

    cancel_event: asyncio.Event | None = None
    suggested_expiry: datetime | None = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise ``asyncio.CancelledError`` if cancellation was requested."""
        if self.cancelled:
            raise asyncio.CancelledError("storage operation cancelled")

    def ttl_seconds(self, now: datetime | None = None) -> float | None:
        """Seconds until the suggested expiry, floored at zero.

        Returns None when no expiry was suggested. Naive datetimes are
        taken as UTC.
        """
        if self.suggested_expiry is None:
            return None
        expiry = _as_utc(self.suggested_expiry)
        now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
        return max(0.0, (expiry - now).total_seconds())


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


EMPTY_HINTS = CacheSerializerHints()
