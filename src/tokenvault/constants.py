"""Constants for token cache persistence."""

from enum import Enum


# Error codes carried by TokenCacheError.
JSON_PARSE_ERROR = "json_parse_failed"
CACHE_VERSION_MISMATCH = "cache_version_mismatch"

# Schema version written by InMemoryTokenCache.serialize().
CACHE_SCHEMA_VERSION = 1

EXPIRY_HEADER = "X-Cache-Expiry"


class CredentialKind(str, Enum):
    """Credential groups held by a token cache snapshot."""

    ACCESS_TOKEN = "AccessToken"
    REFRESH_TOKEN = "RefreshToken"
    ID_TOKEN = "IdToken"
    ACCOUNT = "Account"
    APP_METADATA = "AppMetadata"


# Kinds that count as "tokens" for the has_tokens flag.
TOKEN_KINDS = frozenset({
    CredentialKind.ACCESS_TOKEN,
    CredentialKind.REFRESH_TOKEN,
    CredentialKind.ID_TOKEN,
})
