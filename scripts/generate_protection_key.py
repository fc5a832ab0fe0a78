#!/usr/bin/env python3
"""Generate a Fernet key for token cache protection.

The key encrypts token cache snapshots at rest. Every instance sharing a
storage backend must hold the same key list:

  - Put the new key first to start encrypting with it
  - Keep older keys after it until every entry has been rewritten

Requires: pip install cryptography
"""

from __future__ import annotations

import sys

try:
    from cryptography.fernet import Fernet
except ImportError:
    print("Error: cryptography not installed. Run: pip install cryptography", file=sys.stderr)
    sys.exit(1)


def main() -> None:
    key = Fernet.generate_key().decode()

    print("=== Token Cache Protection Key ===")
    print()
    print("Fernet key (SECRET — store in your secret manager, never commit to git):")
    print(f"  {key}")
    print()
    print("--- Settings usage ---")
    print()
    print("Single key:")
    print(f"  TOKENVAULT_PROTECTION_KEYS={key}")
    print()
    print("Rotation (new key first, comma-separated):")
    print(f"  TOKENVAULT_PROTECTION_KEYS={key},<previous-key>")


if __name__ == "__main__":
    main()
