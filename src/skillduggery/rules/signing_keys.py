"""Trusted Ed25519 public keys for external rule packs.

Keys are raw 32-byte public keys, base64 encoded. A pack whose manifest
signature verifies against ANY listed key is accepted. When rotating, add
the new key and keep the old one until packs signed with it are retired.
"""

import base64

TRUSTED_PUBLIC_KEYS_B64: list[str] = [
    # Key 1 - initial rule pack signing key
    "XvzVn84LJbVpTMEvUK/MPNJXL0Y74B+bXZnnhWbRf60=",
]


def decode_public_keys(encoded: list[str]) -> list[bytes]:
    """Decode base64 keys, skipping entries that are not 32 raw bytes."""
    keys: list[bytes] = []
    for item in encoded:
        try:
            raw = base64.b64decode(item.strip(), validate=True)
        except ValueError:
            continue
        if len(raw) == 32:
            keys.append(raw)
    return keys


DEFAULT_TRUSTED_KEYS: list[bytes] = decode_public_keys(TRUSTED_PUBLIC_KEYS_B64)
