"""In-memory token cache implementing the ``TokenCache`` notification protocol.

Credentials are plain dicts grouped by ``CredentialKind`` and keyed by an
entry id. Every public operation runs one access cycle:

    before_access -> [before_write -> mutation] -> after_access

so a registered provider hydrates the cache before it is read and
persists it once the operation has finished.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Callable

from tokenvault.constants import (
    CACHE_SCHEMA_VERSION,
    CACHE_VERSION_MISMATCH,
    JSON_PARSE_ERROR,
    TOKEN_KINDS,
    CredentialKind,
)
from tokenvault.errors import TokenCacheError
from tokenvault.notification import NotificationCallback, TokenCacheNotification


def _empty_sections() -> dict[str, dict[str, dict[str, Any]]]:
    return {kind.value: {} for kind in CredentialKind}


class InMemoryTokenCache:
    """Token cache held in process memory, serialized as versioned JSON."""

    def __init__(self) -> None:
        self._sections = _empty_sections()
        self._before_access: NotificationCallback | None = None
        self._after_access: NotificationCallback | None = None
        self._before_write: NotificationCallback | None = None

    # -- notification slots ---------------------------------------------------

    def set_before_access(self, callback: NotificationCallback) -> None:
        self._before_access = callback

    def set_after_access(self, callback: NotificationCallback) -> None:
        self._after_access = callback

    def set_before_write(self, callback: NotificationCallback) -> None:
        self._before_write = callback

    # -- serialization --------------------------------------------------------

    def serialize(self) -> bytes:
        """Serialize to UTF-8 JSON bytes with schema version."""
        return json.dumps(
            {"v": CACHE_SCHEMA_VERSION, **self._sections}, sort_keys=True
        ).encode("utf-8")

    def deserialize(self, data: bytes | None, *, clear_existing: bool = True) -> None:
        """Load a snapshot produced by ``serialize()``.

        ``None`` or empty data leaves an empty cache when ``clear_existing``
        is set. Raises ``TokenCacheError`` on unparseable payloads
        (``JSON_PARSE_ERROR``) or snapshots from a newer schema
        (``CACHE_VERSION_MISMATCH``); the cache is left untouched then.
        """
        if not data:
            if clear_existing:
                self._sections = _empty_sections()
            return

        try:
            obj = json.loads(data)
        except ValueError as e:
            raise TokenCacheError(
                JSON_PARSE_ERROR, f"Token cache payload is not valid JSON: {e}"
            ) from e

        if not isinstance(obj, dict):
            raise TokenCacheError(JSON_PARSE_ERROR, "Token cache payload is not a JSON object.")

        version = obj.get("v", CACHE_SCHEMA_VERSION)
        if not isinstance(version, int) or version > CACHE_SCHEMA_VERSION:
            raise TokenCacheError(
                CACHE_VERSION_MISMATCH,
                f"Token cache schema version {version!r} is not supported "
                f"(max {CACHE_SCHEMA_VERSION}).",
            )

        sections = _empty_sections() if clear_existing else self._sections
        for kind in CredentialKind:
            raw = obj.get(kind.value, {})
            if not isinstance(raw, dict):
                continue
            sections[kind.value].update(
                {eid: entry for eid, entry in raw.items() if isinstance(entry, dict)}
            )
        self._sections = sections

    # -- state ----------------------------------------------------------------

    @property
    def has_tokens(self) -> bool:
        return any(self._sections[kind.value] for kind in TOKEN_KINDS)

    def entries(self, kind: CredentialKind | str) -> dict[str, dict[str, Any]]:
        """Return a copy of the entries of *kind* without an access cycle."""
        return dict(self._sections[CredentialKind(kind).value])

    def suggested_expiry(self) -> datetime | None:
        """Latest ``expires_on`` among access tokens, as an aware UTC datetime."""
        stamps: list[int] = []
        for entry in self._sections[CredentialKind.ACCESS_TOKEN.value].values():
            try:
                stamps.append(int(entry["expires_on"]))
            except (KeyError, TypeError, ValueError):
                continue
        if not stamps:
            return None
        try:
            return datetime.fromtimestamp(max(stamps), tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            # Beyond the platform's datetime range; no usable expiry.
            return None

    # -- access cycles --------------------------------------------------------

    async def find(
        self,
        key: str,
        kind: CredentialKind | str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[dict[str, Any]]:
        """Read entries of *kind* for *key* (read-only access cycle)."""
        await self._access(key, None, cancel_event)
        return list(self._sections[CredentialKind(kind).value].values())

    async def add(
        self,
        key: str,
        kind: CredentialKind | str,
        entry_id: str,
        entry: dict[str, Any],
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Insert or replace one entry."""
        section = CredentialKind(kind).value

        def _mutate() -> bool:
            if self._sections[section].get(entry_id) == entry:
                return False
            self._sections[section][entry_id] = dict(entry)
            return True

        await self._access(key, _mutate, cancel_event)

    async def remove(
        self,
        key: str,
        kind: CredentialKind | str,
        entry_id: str,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> bool:
        """Remove one entry. Returns True if it existed."""
        section = CredentialKind(kind).value
        removed = False

        def _mutate() -> bool:
            nonlocal removed
            removed = self._sections[section].pop(entry_id, None) is not None
            return removed

        await self._access(key, _mutate, cancel_event)
        return removed

    async def clear_tokens(
        self, key: str, *, cancel_event: asyncio.Event | None = None
    ) -> None:
        """Drop every entry held for *key* (sign-out)."""

        def _mutate() -> bool:
            if not any(self._sections.values()):
                return False
            self._sections = _empty_sections()
            return True

        await self._access(key, _mutate, cancel_event)

    async def _access(
        self,
        key: str,
        mutate: Callable[[], bool] | None,
        cancel_event: asyncio.Event | None,
    ) -> None:
        await self._notify(self._before_access, key, False, cancel_event)
        if mutate is None:
            await self._notify(self._after_access, key, False, cancel_event)
            return

        await self._notify(self._before_write, key, False, cancel_event)
        changed = False
        try:
            changed = mutate()
        finally:
            await self._notify(self._after_access, key, changed, cancel_event)

    async def _notify(
        self,
        callback: NotificationCallback | None,
        key: str,
        changed: bool,
        cancel_event: asyncio.Event | None,
    ) -> None:
        if callback is None:
            return
        await callback(
            TokenCacheNotification(
                token_cache=self,
                suggested_cache_key=key,
                has_state_changed=changed,
                has_tokens=self.has_tokens,
                cancel_event=cancel_event,
                suggested_cache_expiry=self.suggested_expiry(),
            )
        )
