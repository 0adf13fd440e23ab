# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Hashing utilities for polyship.

Every artifact in a release is addressed by its SHA256 digest: checksums, SBOM
references, fallback signatures, and the manifest all build on these helpers.
They hold no state and are safe to call from concurrent unit pipelines.
"""

import hashlib
import hmac
from pathlib import Path

HASH_ALGORITHM = "sha256"
HASH_BUFFER_SIZE = 65536  # 64 KiB


def compute_sha256(file_path: Path) -> str:
    """
    Compute the SHA256 hex digest of a file.

    Reads the file in chunks to handle large release archives without loading
    everything into memory.

    Args:
        file_path: Path to the file to hash.

    Returns:
        Lowercase hex string of the SHA256 digest.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        OSError: If the file can't be read.
    """
    hasher = hashlib.sha256()
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(HASH_BUFFER_SIZE)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()


def compute_sha256_bytes(data: bytes) -> str:
    """Compute the SHA256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def compute_hmac_sha256(file_path: Path, key: bytes) -> str:
    """
    Compute an HMAC-SHA256 hex digest of a file's content, streamed in chunks.

    Args:
        file_path: Path to the file to authenticate.
        key: HMAC key bytes.

    Returns:
        Lowercase hex string of the HMAC digest.
    """
    mac = hmac.new(key, digestmod=hashlib.sha256)
    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(HASH_BUFFER_SIZE)
            if not chunk:
                break
            mac.update(chunk)
    return mac.hexdigest()


def verify_checksum(file_path: Path, expected_hash: str) -> bool:
    """
    Check whether a file's SHA256 matches the expected hash.

    Args:
        file_path: Path to the file to verify.
        expected_hash: Expected lowercase hex SHA256 digest.

    Returns:
        True if the hash matches, False otherwise.
    """
    actual_hash = compute_sha256(file_path)
    return actual_hash == expected_hash.lower()
