"""TokenVault configuration — plain frozen dataclass, no pydantic.

The host application constructs this from its own settings (env vars,
pydantic-settings, etc.) and passes it to the protector and backend
factories.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class TokenVaultConfig:
    protection_keys: tuple[str, ...] = ()
    storage_url: str | None = None
    storage_api_key: str | None = None
    storage_timeout_secs: float = 10.0
    key_prefix: str = ""
    default_expiry_secs: int | None = None
