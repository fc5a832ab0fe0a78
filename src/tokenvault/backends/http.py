"""HttpStorageBackend — StorageBackend over a REST key/value service.

Self-contained: uses raw httpx. Entries are opaque octet streams.

Endpoints (relative to ``storage_url``):
- Read: GET /entries/{key} -> 200 with body, or 404 for a missing key
- Write: PUT /entries/{key} -> body ``application/octet-stream``,
  optional ``X-Cache-Expiry`` header (ISO-8601 UTC)
- Remove: DELETE /entries/{key} -> 2xx, 404 tolerated
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

import httpx

from tokenvault.constants import EXPIRY_HEADER
from tokenvault.errors import StorageBackendError

if TYPE_CHECKING:
    from tokenvault.config import TokenVaultConfig
    from tokenvault.hints import CacheSerializerHints

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exception hierarchy
# ---------------------------------------------------------------------------


class StorageAuthError(StorageBackendError):
    """401/403 — authentication or authorization failure."""


class StorageServerError(StorageBackendError):
    """5xx — server-side error (retryable)."""


class StorageConnectionError(StorageBackendError):
    """Network/DNS failure (retryable)."""


class StorageTimeoutError(StorageBackendError):
    """Request timeout (retryable)."""


_STATUS_MAP: dict[int, type[StorageBackendError]] = {
    401: StorageAuthError,
    403: StorageAuthError,
}


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


class HttpStorageBackend:
    """Async client for a key/value blob service.

    Implements the tokenvault ``StorageBackend`` protocol. Keys are
    prefixed with ``key_prefix`` and percent-encoded into the path.
    Failures are raised, never retried here.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        key_prefix: str = "",
        timeout: float = 10.0,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._key_prefix = key_prefix
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
        )

    @classmethod
    def from_config(cls, config: TokenVaultConfig) -> HttpStorageBackend:
        if not config.storage_url:
            raise ValueError("storage_url is required for HttpStorageBackend")
        return cls(
            config.storage_url,
            config.storage_api_key,
            key_prefix=config.key_prefix,
            timeout=config.storage_timeout_secs,
        )

    def _path(self, key: str) -> str:
        return "/entries/" + quote(self._key_prefix + key, safe="")

    # -- internal request dispatcher -----------------------------------------

    async def _request(
        self,
        method: str,
        key: str,
        *,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request and map errors to the storage exception hierarchy.

        404 is returned to the caller, not raised. Redirects are not
        followed and count as errors.
        """
        try:
            response = await self._client.request(
                method, self._path(key), content=content, headers=headers
            )
        except httpx.ConnectError as exc:
            raise StorageConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise StorageTimeoutError(str(exc)) from exc

        if response.status_code == 404 or response.is_success:
            return response
        if response.is_redirect:
            raise StorageBackendError(
                f"Unexpected redirect to {response.headers.get('location', '?')}",
                status_code=response.status_code,
            )

        body = response.text
        exc_cls = _STATUS_MAP.get(response.status_code)
        if exc_cls is not None:
            raise exc_cls(body, status_code=response.status_code)
        if response.status_code >= 500:
            raise StorageServerError(body, status_code=response.status_code)
        raise StorageBackendError(body, status_code=response.status_code)

    # -- StorageBackend protocol -----------------------------------------------

    async def read(self, key: str, hints: CacheSerializerHints) -> bytes | None:
        hints.raise_if_cancelled()
        response = await self._request("GET", key)
        if response.status_code == 404:
            return None
        return response.content

    async def write(self, key: str, data: bytes, hints: CacheSerializerHints) -> None:
        hints.raise_if_cancelled()
        headers = {"Content-Type": "application/octet-stream"}
        if hints.suggested_expiry is not None:
            headers[EXPIRY_HEADER] = hints.suggested_expiry.isoformat()
        response = await self._request("PUT", key, content=data, headers=headers)
        if response.status_code == 404:
            raise StorageBackendError(
                f"Entry endpoint not found for {key}", status_code=404
            )

    async def remove(self, key: str, hints: CacheSerializerHints) -> None:
        hints.raise_if_cancelled()
        response = await self._request("DELETE", key)
        if response.status_code == 404:
            logger.debug("Remove of missing entry %s ignored.", key)

    # -- lifecycle ------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HttpStorageBackend:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
