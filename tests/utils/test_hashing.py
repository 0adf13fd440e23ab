# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for hashing utilities.

Determinism tests run twice and compare results. SHA256 must produce identical
output for identical input, every single time; every digest in a manifest
depends on it.
"""

import hashlib
import hmac
from pathlib import Path

from polyship.utils.hashing import (
    compute_hmac_sha256,
    compute_sha256,
    compute_sha256_bytes,
    verify_checksum,
)


class TestSha256Determinism:
    def test_same_bytes_produce_same_hash(self) -> None:
        data = b"deterministic input"
        assert compute_sha256_bytes(data) == compute_sha256_bytes(data)

    def test_different_bytes_produce_different_hash(self) -> None:
        assert compute_sha256_bytes(b"input_a") != compute_sha256_bytes(b"input_b")

    def test_empty_bytes_has_known_hash(self) -> None:
        expected = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        assert compute_sha256_bytes(b"") == expected


class TestFileHashing:
    def test_file_hash_matches_bytes_hash(self, tmp_path: Path) -> None:
        content = b"some file content for hashing"
        test_file = tmp_path / "test.bin"
        test_file.write_bytes(content)

        assert compute_sha256(test_file) == compute_sha256_bytes(content)

    def test_large_file_is_streamed_correctly(self, tmp_path: Path) -> None:
        content = b"x" * (65536 * 3 + 17)
        test_file = tmp_path / "large.bin"
        test_file.write_bytes(content)

        assert compute_sha256(test_file) == hashlib.sha256(content).hexdigest()


class TestHmac:
    def test_matches_stdlib_hmac(self, tmp_path: Path) -> None:
        test_file = tmp_path / "signed.bin"
        test_file.write_bytes(b"payload")
        key = b"k"

        expected = hmac.new(key, b"payload", hashlib.sha256).hexdigest()
        assert compute_hmac_sha256(test_file, key) == expected

    def test_key_changes_digest(self, tmp_path: Path) -> None:
        test_file = tmp_path / "signed.bin"
        test_file.write_bytes(b"payload")

        assert compute_hmac_sha256(test_file, b"a") != compute_hmac_sha256(test_file, b"b")


class TestVerifyChecksum:
    def test_correct_checksum_passes(self, tmp_path: Path) -> None:
        test_file = tmp_path / "verified.txt"
        test_file.write_bytes(b"verify me")

        assert verify_checksum(test_file, compute_sha256(test_file)) is True

    def test_wrong_checksum_fails(self, tmp_path: Path) -> None:
        test_file = tmp_path / "tampered.txt"
        test_file.write_bytes(b"original content")

        assert verify_checksum(test_file, "0" * 64) is False

    def test_checksum_comparison_is_case_insensitive(self, tmp_path: Path) -> None:
        test_file = tmp_path / "case.txt"
        test_file.write_bytes(b"case test")

        assert verify_checksum(test_file, compute_sha256(test_file).upper()) is True
