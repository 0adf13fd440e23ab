# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
SHA256SUMS generation and parsing.

Checksum file format (SHA256SUMS):
    <sha256hex>  <filename>
    <sha256hex>  <filename>

One line per archive and SBOM, two spaces between hash and name (the GNU
coreutils `sha256sum` format, so `sha256sum -c SHA256SUMS` works), sorted by
file name, every line terminated by `\\n`, no trailing blank line.

Digests come from what the packager and SBOM generator recorded at write
time; this module never walks the output directory to discover files.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from polyship.logging.logger import get_logger
from polyship.release.packaging.naming import CHECKSUM_FILE
from polyship.utils.filesystem import atomic_write
from polyship.utils.hashing import compute_sha256, verify_checksum

_logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True)
class ChecksumFile:
    path: Path
    name: str
    digest: str
    size: int
    entries: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of re-checking SHA256SUMS against the files it lists."""

    is_valid: bool
    checked_count: int
    mismatches: list[str] = field(default_factory=list)
    missing_files: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def render_checksums(checksums: Mapping[str, str]) -> str:
    """Checksum file text for {filename: sha256_hex}."""
    return "".join(f"{checksums[name]}  {name}\n" for name in sorted(checksums))


def write_checksum_file(output_dir: Path, checksums: Mapping[str, str]) -> ChecksumFile:
    """
    Write SHA256SUMS into the output directory.

    Args:
        output_dir: Release output directory.
        checksums: {filename: sha256_hex} for every archive and SBOM.

    Returns:
        The written file with its own digest.
    """
    checksum_path = output_dir / CHECKSUM_FILE
    content = render_checksums(checksums)
    atomic_write(checksum_path, content)

    _logger.info(
        "Checksum file written",
        extra={"path": str(checksum_path), "entries": len(checksums)},
    )
    return ChecksumFile(
        path=checksum_path,
        name=CHECKSUM_FILE,
        digest=compute_sha256(checksum_path),
        size=len(content.encode("utf-8")),
        entries=dict(sorted(checksums.items())),
    )


def parse_checksum_file(checksum_path: Path) -> dict[str, str]:
    """
    Parse a SHA256SUMS file into {filename: sha256_hex}.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If a line is malformed.
    """
    if not checksum_path.is_file():
        raise FileNotFoundError(f"Checksum file not found: {checksum_path}")

    checksums: dict[str, str] = {}
    content = checksum_path.read_text(encoding="utf-8")

    for line_num, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        parts = line.split("  ", maxsplit=1)
        if len(parts) != 2:
            raise ValueError(
                f"Invalid checksum format at line {line_num}: expected "
                f"'<sha256>  <filename>', got: {line!r}"
            )
        sha256_hex, filename = parts
        if len(sha256_hex) != 64:
            raise ValueError(
                f"Invalid SHA256 hash length at line {line_num}: "
                f"expected 64 chars, got {len(sha256_hex)}"
            )
        checksums[filename] = sha256_hex

    return checksums


def verify_checksums(output_dir: Path) -> VerificationResult:
    """
    Re-hash every file SHA256SUMS lists. Reports all problems, not just the first.
    """
    checksum_path = output_dir / CHECKSUM_FILE
    if not checksum_path.is_file():
        return VerificationResult(
            is_valid=False,
            checked_count=0,
            errors=[f"{CHECKSUM_FILE} not found in {output_dir}"],
        )

    try:
        expected = parse_checksum_file(checksum_path)
    except ValueError as err:
        return VerificationResult(
            is_valid=False,
            checked_count=0,
            errors=[f"Failed to parse {CHECKSUM_FILE}: {err}"],
        )

    mismatches: list[str] = []
    missing_files: list[str] = []
    checked = 0

    for filename, expected_hash in sorted(expected.items()):
        file_path = output_dir / filename
        if not file_path.is_file():
            missing_files.append(filename)
            continue
        checked += 1
        if not verify_checksum(file_path, expected_hash):
            mismatches.append(filename)
            _logger.error("Checksum mismatch", extra={"file": filename})

    return VerificationResult(
        is_valid=not mismatches and not missing_files,
        checked_count=checked,
        mismatches=mismatches,
        missing_files=missing_files,
    )
