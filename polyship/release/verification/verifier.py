# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release verification: checks an output directory against its manifest.

Needs nothing but manifest.json and the files next to it. Three phases, run
in order, and the first phase that fails ends the run (fail closed):

  1. existence   every entry and every signature file is present
                 -> MissingArtifactError naming all missing paths
  2. integrity   every entry and signature file re-hashes to its recorded
                 digest, and SHA256SUMS agrees with the manifest
                 -> DigestMismatchError naming all mismatched paths
  3. signatures  when signing was required, every entry that should be signed
                 has a signature record -> UnsignedArtifactError; fallback-hash
                 signatures are recomputed and compared -> SignatureMismatchError.
                 cosign and gpg signatures are checked for presence and
                 integrity only; validating them needs the signer's trust root.

`verify_release` returns a report; `verify_or_raise` raises the failing
phase's error.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from polyship.logging.logger import get_logger
from polyship.release.checksums.integrity import parse_checksum_file
from polyship.release.errors import (
    DigestMismatchError,
    ManifestFormatError,
    MissingArtifactError,
    SignatureMismatchError,
    UnsignedArtifactError,
    VerificationError,
)
from polyship.release.manifests.manifest import KIND_CHECKSUM, Manifest, load_manifest
from polyship.release.packaging.naming import MANIFEST_FILE
from polyship.release.signing.fallback_hash import check_fallback_signature
from polyship.release.signing.signer import FALLBACK_METHOD
from polyship.utils.hashing import compute_sha256

_logger: logging.Logger = get_logger(__name__)

PHASE_MANIFEST = "manifest"
PHASE_EXISTENCE = "existence"
PHASE_INTEGRITY = "integrity"
PHASE_SIGNATURES = "signatures"


@dataclass(frozen=True)
class VerificationReport:
    """Complete outcome of a release verification."""

    is_valid: bool
    output_dir: str
    checks_passed: list[str] = field(default_factory=list)
    checks_failed: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    failed_paths: list[str] = field(default_factory=list)
    entries_checked: int = 0
    signatures_checked: int = 0


def _check_existence(manifest: Manifest, output_dir: Path) -> Optional[VerificationError]:
    referenced = [e.path for e in manifest.entries] + [s.path for s in manifest.signatures]
    missing = sorted({p for p in referenced if not (output_dir / p).is_file()})
    if missing:
        return MissingArtifactError(
            f"{len(missing)} file(s) listed in the manifest are missing: {', '.join(missing)}",
            missing,
        )
    return None


def _check_integrity(manifest: Manifest, output_dir: Path) -> Optional[VerificationError]:
    mismatched: set[str] = set()

    for entry in manifest.entries:
        path = output_dir / entry.path
        if compute_sha256(path) != entry.digest or path.stat().st_size != entry.size:
            mismatched.add(entry.path)
    for record in manifest.signatures:
        if compute_sha256(output_dir / record.path) != record.digest:
            mismatched.add(record.path)

    # SHA256SUMS must agree with the manifest line for line.
    for entry in manifest.entries:
        if entry.kind != KIND_CHECKSUM or entry.path in mismatched:
            continue
        try:
            sums = parse_checksum_file(output_dir / entry.path)
        except ValueError:
            mismatched.add(entry.path)
            continue
        expected = {e.path: e.digest for e in manifest.entries if e.kind != KIND_CHECKSUM}
        for name in set(sums) | set(expected):
            if sums.get(name) != expected.get(name):
                mismatched.add(entry.path)
                if name in expected:
                    mismatched.add(name)

    if mismatched:
        paths = sorted(mismatched)
        return DigestMismatchError(
            f"{len(paths)} file(s) do not match their recorded digests: {', '.join(paths)}",
            paths,
        )
    return None


def _check_signatures(
    manifest: Manifest, output_dir: Path, require_signatures: Optional[bool]
) -> Optional[VerificationError]:
    required = manifest.signing_required if require_signatures is None else require_signatures
    by_target = {s.target: s for s in manifest.signatures}

    if required:
        signed_packages = set(manifest.signed_packages)
        unsigned: list[str] = []
        for entry in manifest.entries:
            must_sign = (
                require_signatures is True
                or entry.package is None
                or entry.package in signed_packages
                or not signed_packages
            )
            if must_sign and entry.path not in by_target:
                unsigned.append(entry.path)
        if unsigned:
            return UnsignedArtifactError(
                f"signing was required but {len(unsigned)} file(s) have no signature: "
                f"{', '.join(sorted(unsigned))}",
                unsigned,
            )

    entry_digests = {e.path: e.digest for e in manifest.entries}
    bad: list[str] = []
    for record in manifest.signatures:
        if record.target not in entry_digests:
            bad.append(record.path)
            continue
        if record.target_digest is not None and record.target_digest != entry_digests[record.target]:
            bad.append(record.path)
            continue
        if record.method == FALLBACK_METHOD:
            sig_bytes = (output_dir / record.path).read_bytes()
            if not check_fallback_signature(output_dir / record.target, sig_bytes):
                bad.append(record.path)
    if bad:
        return SignatureMismatchError(
            f"{len(bad)} signature(s) do not match the files they cover: {', '.join(sorted(bad))}",
            bad,
        )
    return None


def _run(
    output_dir: Path,
    manifest_path: Optional[Path],
    require_signatures: Optional[bool],
) -> tuple[VerificationReport, Optional[VerificationError]]:
    manifest_file = manifest_path if manifest_path is not None else output_dir / MANIFEST_FILE
    passed: list[str] = []

    try:
        manifest = load_manifest(manifest_file)
    except ManifestFormatError as err:
        return (
            VerificationReport(
                is_valid=False,
                output_dir=str(output_dir),
                checks_failed=[PHASE_MANIFEST],
                errors=[str(err)],
                failed_paths=err.paths,
            ),
            err,
        )
    passed.append(PHASE_MANIFEST)

    phases = (
        (PHASE_EXISTENCE, lambda: _check_existence(manifest, output_dir)),
        (PHASE_INTEGRITY, lambda: _check_integrity(manifest, output_dir)),
        (PHASE_SIGNATURES, lambda: _check_signatures(manifest, output_dir, require_signatures)),
    )
    for phase, check in phases:
        error = check()
        if error is not None:
            _logger.error(
                "Release verification FAILED",
                extra={"output_dir": str(output_dir), "phase": phase, "paths": error.paths},
            )
            return (
                VerificationReport(
                    is_valid=False,
                    output_dir=str(output_dir),
                    checks_passed=passed,
                    checks_failed=[phase],
                    errors=[str(error)],
                    failed_paths=error.paths,
                    entries_checked=len(manifest.entries),
                    signatures_checked=len(manifest.signatures),
                ),
                error,
            )
        passed.append(phase)

    _logger.info(
        "Release verification passed",
        extra={
            "output_dir": str(output_dir),
            "entries": len(manifest.entries),
            "signatures": len(manifest.signatures),
        },
    )
    return (
        VerificationReport(
            is_valid=True,
            output_dir=str(output_dir),
            checks_passed=passed,
            entries_checked=len(manifest.entries),
            signatures_checked=len(manifest.signatures),
        ),
        None,
    )


def verify_release(
    output_dir: Path,
    manifest_path: Optional[Path] = None,
    require_signatures: Optional[bool] = None,
) -> VerificationReport:
    """
    Verify an output directory and report the outcome without raising.

    Args:
        output_dir: Directory holding the release files.
        manifest_path: Manifest to check against; defaults to output_dir/manifest.json.
        require_signatures: Override the manifest's own `signing_required`.
            True demands a signature on every entry.
    """
    report, _ = _run(output_dir, manifest_path, require_signatures)
    return report


def verify_or_raise(
    output_dir: Path,
    manifest_path: Optional[Path] = None,
    require_signatures: Optional[bool] = None,
) -> VerificationReport:
    """
    Same as verify_release, but raise the first failing phase's error.

    Raises:
        ManifestFormatError, MissingArtifactError, DigestMismatchError,
        UnsignedArtifactError, SignatureMismatchError
    """
    report, error = _run(output_dir, manifest_path, require_signatures)
    if error is not None:
        raise error
    return report
