"""Tests for InMemoryTokenCache: serialization and access-cycle notifications."""

import asyncio
import json
from datetime import datetime, timezone

import pytest

from tokenvault.constants import CACHE_VERSION_MISMATCH, JSON_PARSE_ERROR, CredentialKind
from tokenvault.errors import TokenCacheError
from tokenvault.notification import TokenCache, TokenCacheNotification
from tokenvault.token_cache import InMemoryTokenCache


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

KEY = "user123"
AT = {"secret": "at-1", "expires_on": "1700000000"}


class _Recorder:
    """Registers on a cache and records every notification in order."""

    def __init__(self, cache: InMemoryTokenCache) -> None:
        self.calls: list[tuple[str, TokenCacheNotification]] = []
        cache.set_before_access(self._hook("before_access"))
        cache.set_before_write(self._hook("before_write"))
        cache.set_after_access(self._hook("after_access"))

    def _hook(self, name: str):
        async def _record(args: TokenCacheNotification) -> None:
            self.calls.append((name, args))
        return _record

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def last(self, name: str) -> TokenCacheNotification:
        return [args for n, args in self.calls if n == name][-1]


# ---------------------------------------------------------------------------
# serialize / deserialize
# ---------------------------------------------------------------------------


class TestSerialization:
    def test_serialize_includes_version(self) -> None:
        obj = json.loads(InMemoryTokenCache().serialize())
        assert obj["v"] == 1
        assert obj["AccessToken"] == {}

    def test_round_trip(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(json.dumps({"v": 1, "AccessToken": {"at1": AT}}).encode())
        restored = InMemoryTokenCache()
        restored.deserialize(cache.serialize())
        assert restored.entries(CredentialKind.ACCESS_TOKEN) == {"at1": AT}

    def test_none_clears_existing(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(json.dumps({"AccessToken": {"at1": AT}}).encode())
        cache.deserialize(None)
        assert cache.has_tokens is False

    def test_none_without_clear_keeps_existing(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(json.dumps({"AccessToken": {"at1": AT}}).encode())
        cache.deserialize(b"", clear_existing=False)
        assert cache.has_tokens

    def test_merge_when_not_clearing(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(json.dumps({"AccessToken": {"at1": AT}}).encode())
        cache.deserialize(
            json.dumps({"AccessToken": {"at2": AT}}).encode(), clear_existing=False
        )
        assert set(cache.entries("AccessToken")) == {"at1", "at2"}

    def test_replace_when_clearing(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(json.dumps({"AccessToken": {"at1": AT}}).encode())
        cache.deserialize(json.dumps({"AccessToken": {"at2": AT}}).encode())
        assert set(cache.entries("AccessToken")) == {"at2"}

    def test_invalid_json_raises_parse_error(self) -> None:
        with pytest.raises(TokenCacheError) as exc_info:
            InMemoryTokenCache().deserialize(b"{broken")
        assert exc_info.value.error_code == JSON_PARSE_ERROR

    def test_invalid_utf8_raises_parse_error(self) -> None:
        with pytest.raises(TokenCacheError) as exc_info:
            InMemoryTokenCache().deserialize(b"\x80\x81\x82")
        assert exc_info.value.error_code == JSON_PARSE_ERROR

    def test_non_object_raises_parse_error(self) -> None:
        with pytest.raises(TokenCacheError) as exc_info:
            InMemoryTokenCache().deserialize(b"[1, 2]")
        assert exc_info.value.error_code == JSON_PARSE_ERROR

    def test_newer_version_raises_mismatch(self) -> None:
        with pytest.raises(TokenCacheError) as exc_info:
            InMemoryTokenCache().deserialize(b'{"v": 2}')
        assert exc_info.value.error_code == CACHE_VERSION_MISMATCH

    def test_failed_load_leaves_cache_untouched(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(json.dumps({"AccessToken": {"at1": AT}}).encode())
        with pytest.raises(TokenCacheError):
            cache.deserialize(b"{broken")
        assert cache.has_tokens

    def test_malformed_sections_skipped(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(b'{"AccessToken": [1], "RefreshToken": {"rt": "x", "rt2": {}}}')
        assert cache.entries("AccessToken") == {}
        assert cache.entries("RefreshToken") == {"rt2": {}}


class TestState:
    def test_accounts_alone_are_not_tokens(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(b'{"Account": {"a": {"username": "u"}}}')
        assert cache.has_tokens is False

    def test_suggested_expiry_is_latest_access_token(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(json.dumps({"AccessToken": {
            "a": {"expires_on": "1700000000"},
            "b": {"expires_on": 1800000000},
            "c": {"expires_on": "soon"},
        }}).encode())
        assert cache.suggested_expiry() == datetime.fromtimestamp(1800000000, tz=timezone.utc)

    def test_suggested_expiry_none_without_tokens(self) -> None:
        assert InMemoryTokenCache().suggested_expiry() is None

    def test_out_of_range_expiry_ignored(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(b'{"v": 1, "AccessToken": {"at1": {"expires_on": "99999999999999"}}}')
        assert cache.suggested_expiry() is None

    @pytest.mark.asyncio
    async def test_out_of_range_expiry_does_not_break_access(self) -> None:
        cache = InMemoryTokenCache()
        cache.deserialize(b'{"v": 1, "AccessToken": {"at1": {"expires_on": "99999999999999"}}}')
        rec = _Recorder(cache)
        found = await cache.find(KEY, CredentialKind.ACCESS_TOKEN)
        assert found == [{"expires_on": "99999999999999"}]
        assert rec.names == ["before_access", "after_access"]
        assert rec.last("after_access").suggested_cache_expiry is None

    def test_satisfies_protocol(self) -> None:
        assert isinstance(InMemoryTokenCache(), TokenCache)


# ---------------------------------------------------------------------------
# Access cycles
# ---------------------------------------------------------------------------


class TestAccessCycles:
    @pytest.mark.asyncio
    async def test_find_runs_read_only_cycle(self) -> None:
        cache = InMemoryTokenCache()
        rec = _Recorder(cache)
        assert await cache.find(KEY, CredentialKind.ACCESS_TOKEN) == []
        assert rec.names == ["before_access", "after_access"]
        assert rec.last("after_access").has_state_changed is False

    @pytest.mark.asyncio
    async def test_add_runs_write_cycle(self) -> None:
        cache = InMemoryTokenCache()
        rec = _Recorder(cache)
        await cache.add(KEY, CredentialKind.ACCESS_TOKEN, "at1", AT)
        assert rec.names == ["before_access", "before_write", "after_access"]
        after = rec.last("after_access")
        assert after.has_state_changed is True
        assert after.has_tokens is True
        assert after.suggested_cache_key == KEY
        assert after.token_cache is cache
        assert after.suggested_cache_expiry == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_add_same_entry_is_no_change(self) -> None:
        cache = InMemoryTokenCache()
        rec = _Recorder(cache)
        await cache.add(KEY, CredentialKind.ACCESS_TOKEN, "at1", AT)
        await cache.add(KEY, CredentialKind.ACCESS_TOKEN, "at1", AT)
        assert rec.last("after_access").has_state_changed is False

    @pytest.mark.asyncio
    async def test_remove_last_token_reports_no_tokens(self) -> None:
        cache = InMemoryTokenCache()
        rec = _Recorder(cache)
        await cache.add(KEY, CredentialKind.ACCESS_TOKEN, "at1", AT)
        assert await cache.remove(KEY, CredentialKind.ACCESS_TOKEN, "at1") is True
        after = rec.last("after_access")
        assert after.has_state_changed is True
        assert after.has_tokens is False

    @pytest.mark.asyncio
    async def test_remove_missing_entry(self) -> None:
        cache = InMemoryTokenCache()
        rec = _Recorder(cache)
        assert await cache.remove(KEY, CredentialKind.ACCESS_TOKEN, "nope") is False
        assert rec.last("after_access").has_state_changed is False

    @pytest.mark.asyncio
    async def test_clear_tokens(self) -> None:
        cache = InMemoryTokenCache()
        rec = _Recorder(cache)
        await cache.add(KEY, CredentialKind.REFRESH_TOKEN, "rt1", {"secret": "rt"})
        await cache.clear_tokens(KEY)
        after = rec.last("after_access")
        assert after.has_state_changed is True
        assert after.has_tokens is False

    @pytest.mark.asyncio
    async def test_cancel_event_forwarded(self) -> None:
        cache = InMemoryTokenCache()
        rec = _Recorder(cache)
        cancel = asyncio.Event()
        await cache.find(KEY, CredentialKind.ACCESS_TOKEN, cancel_event=cancel)
        assert all(args.cancel_event is cancel for _, args in rec.calls)

    @pytest.mark.asyncio
    async def test_failed_before_access_aborts_cycle(self) -> None:
        cache = InMemoryTokenCache()
        rec = _Recorder(cache)

        async def failing_before_access(args: TokenCacheNotification) -> None:
            raise RuntimeError("load failed")

        cache.set_before_access(failing_before_access)
        with pytest.raises(RuntimeError):
            await cache.add(KEY, CredentialKind.ACCESS_TOKEN, "at1", AT)
        assert rec.names == []
        assert cache.has_tokens is False

    @pytest.mark.asyncio
    async def test_no_callbacks_registered(self) -> None:
        cache = InMemoryTokenCache()
        await cache.add(KEY, CredentialKind.ID_TOKEN, "id1", {"secret": "id"})
        assert cache.has_tokens
