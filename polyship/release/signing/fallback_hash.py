# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Deterministic fallback signatures.

Used when the configured signing tool is unavailable. The "signature" is

    HMAC-SHA256(key = b"polyship/fallback-signature/v1", msg = file bytes)

written as a single line `polyship-fallback-hash-v1 <hex>`.

The key is a public, fixed label. This is an integrity record, not an
authenticity proof: anyone can produce it, but nobody can change the file
without the signature no longer matching, and the same file always gets the
same signature. The manifest marks these with method `fallback-hash` so a
consumer can tell them apart from cosign or gpg signatures.
"""

import hmac
from pathlib import Path

from polyship.utils.hashing import compute_hmac_sha256

FALLBACK_KEY = b"polyship/fallback-signature/v1"
FALLBACK_SCHEME = "polyship-fallback-hash-v1"


def fallback_signature(path: Path) -> bytes:
    """Signature file content for `path`."""
    return f"{FALLBACK_SCHEME} {compute_hmac_sha256(path, FALLBACK_KEY)}\n".encode("ascii")


def check_fallback_signature(path: Path, signature: bytes) -> bool:
    """True when `signature` is the fallback signature of `path`."""
    text = signature.decode("ascii", errors="replace").strip()
    scheme, _, value = text.partition(" ")
    if scheme != FALLBACK_SCHEME or not value:
        return False
    expected = compute_hmac_sha256(path, FALLBACK_KEY)
    return hmac.compare_digest(value.encode("utf-8"), expected.encode("ascii"))
