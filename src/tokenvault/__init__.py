"""TokenVault — durable persistence for in-process auth token caches.

Hooks a token cache's access notifications, optionally encrypts its
snapshot, and stores it through a pluggable async backend.
"""

__version__ = "0.1.0"

from tokenvault.config import TokenVaultConfig
from tokenvault.constants import CACHE_VERSION_MISMATCH, JSON_PARSE_ERROR, CredentialKind
from tokenvault.errors import (
    CacheDeserializationError,
    ProtectionFormatError,
    StorageBackendError,
    TokenCacheError,
    TokenVaultError,
)
from tokenvault.hints import EMPTY_HINTS, CacheSerializerHints
from tokenvault.notification import TokenCache, TokenCacheNotification
from tokenvault.protection import (
    DataProtector,
    FernetProtector,
    ProtectionLayer,
    UnprotectOutcome,
    UnprotectResult,
    create_protector,
    generate_key,
)
from tokenvault.provider import KeyLockedTokenCacheProvider, TokenCacheProvider
from tokenvault.storage_backend import StorageBackend
from tokenvault.token_cache import InMemoryTokenCache
from tokenvault.backends import HttpStorageBackend, InMemoryStorageBackend

__all__ = [
    "TokenVaultConfig",
    "CredentialKind",
    "JSON_PARSE_ERROR",
    "CACHE_VERSION_MISMATCH",
    "TokenVaultError",
    "TokenCacheError",
    "CacheDeserializationError",
    "ProtectionFormatError",
    "StorageBackendError",
    "CacheSerializerHints",
    "EMPTY_HINTS",
    "TokenCache",
    "TokenCacheNotification",
    "DataProtector",
    "FernetProtector",
    "ProtectionLayer",
    "UnprotectOutcome",
    "UnprotectResult",
    "create_protector",
    "generate_key",
    "TokenCacheProvider",
    "KeyLockedTokenCacheProvider",
    "StorageBackend",
    "InMemoryTokenCache",
    "HttpStorageBackend",
    "InMemoryStorageBackend",
]
