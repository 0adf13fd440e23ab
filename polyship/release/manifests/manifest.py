# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release manifest: the single record `polyship verify` trusts.

manifest.json lists every file the run published with its SHA256 digest and
size, every detached signature and the file it covers, and run metadata.
It is built purely from completed unit results; a unit that failed never
reaches this module, so it cannot be listed.

Entry order is fixed: by package, then target, then kind (archive before
SBOM), then path. Run-level files (the checksum file) come last. Keys are
sorted in the JSON, so two runs over the same results write the same bytes
apart from `generated_at`.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from polyship import __version__
from polyship.logging.logger import get_logger
from polyship.release.checksums.integrity import ChecksumFile
from polyship.release.errors import ManifestFormatError, UnitFailure
from polyship.release.packaging.packager import Archive
from polyship.release.plan.models import BuildTarget, ReleaseVersion
from polyship.release.sbom.generator import SbomDocument
from polyship.release.signing.signer import Signature
from polyship.utils.filesystem import atomic_write

_logger: logging.Logger = get_logger(__name__)

TOOL_NAME = "polyship"

KIND_ARCHIVE = "archive"
KIND_SBOM = "sbom"
KIND_CHECKSUM = "checksum-file"

_KIND_RANK: dict[str, int] = {KIND_ARCHIVE: 0, KIND_SBOM: 1, KIND_CHECKSUM: 2}

_REQUIRED_MANIFEST_FIELDS: frozenset[str] = frozenset(
    {"version", "generated_at", "tool", "tool_version", "signing_required", "entries", "signatures"}
)
_REQUIRED_ENTRY_FIELDS: frozenset[str] = frozenset({"path", "digest", "size", "kind"})
_REQUIRED_SIGNATURE_FIELDS: frozenset[str] = frozenset({"path", "target", "digest", "method"})


@dataclass(frozen=True)
class UnitResult:
    """Everything one (package, target) unit produced, in pipeline order."""

    target: BuildTarget
    archives: tuple[Archive, ...]
    sbom: Optional[SbomDocument] = None
    signatures: tuple[Signature, ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return self.target.key

    def checksummed_files(self) -> dict[str, str]:
        files = {a.name: a.digest for a in self.archives}
        if self.sbom is not None:
            files[self.sbom.name] = self.sbom.digest
        return files


@dataclass(frozen=True)
class ManifestEntry:
    path: str
    digest: str
    size: int
    kind: str
    package: Optional[str] = None
    target: Optional[str] = None
    format: Optional[str] = None
    sbom_mode: Optional[str] = None
    signature_ref: Optional[str] = None

    def sort_key(self) -> tuple[int, str, str, int, str]:
        run_level = 1 if self.package is None else 0
        return (run_level, self.package or "", self.target or "", _KIND_RANK.get(self.kind, 9), self.path)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": self.path,
            "digest": self.digest,
            "size": self.size,
            "kind": self.kind,
        }
        for key in ("package", "target", "format", "sbom_mode", "signature_ref"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class SignatureRecord:
    path: str
    target: str
    digest: str
    method: str
    target_digest: Optional[str] = None
    requested_method: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "path": self.path,
            "target": self.target,
            "digest": self.digest,
            "method": self.method,
        }
        if self.target_digest is not None:
            data["target_digest"] = self.target_digest
        if self.requested_method is not None:
            data["requested_method"] = self.requested_method
        return data


@dataclass(frozen=True)
class Manifest:
    version: str
    generated_at: str
    signing_required: bool
    entries: tuple[ManifestEntry, ...]
    signatures: tuple[SignatureRecord, ...]
    tool: str = TOOL_NAME
    tool_version: str = __version__
    tag: Optional[str] = None
    commit: Optional[str] = None
    signed_packages: tuple[str, ...] = ()
    skipped: tuple[dict[str, str], ...] = field(default_factory=tuple)

    def signature_for(self, file_name: str) -> Optional[SignatureRecord]:
        for record in self.signatures:
            if record.target == file_name:
                return record
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "tool_version": self.tool_version,
            "version": self.version,
            "tag": self.tag,
            "commit": self.commit,
            "generated_at": self.generated_at,
            "signing_required": self.signing_required,
            "signed_packages": list(self.signed_packages),
            "entries": [e.to_dict() for e in self.entries],
            "signatures": [s.to_dict() for s in self.signatures],
            "skipped": list(self.skipped),
        }


def _record(signature: Signature) -> SignatureRecord:
    return SignatureRecord(
        path=signature.name,
        target=signature.target,
        digest=signature.digest,
        method=signature.method,
        target_digest=signature.target_digest,
        requested_method=signature.requested_method,
    )


def build_manifest(
    results: Sequence[UnitResult],
    version: ReleaseVersion,
    checksum: ChecksumFile,
    generated_at: str,
    checksum_signature: Optional[Signature] = None,
    commit: Optional[str] = None,
    skipped: Sequence[UnitFailure] = (),
) -> Manifest:
    """
    Aggregate completed unit results into a manifest. Pure: no file access.

    Args:
        results: One result per completed unit, in any order.
        version: The run's resolved version.
        checksum: The written SHA256SUMS.
        generated_at: ISO-8601 UTC timestamp for the run.
        checksum_signature: Signature of SHA256SUMS when signing is on.
        commit: Source revision, when known.
        skipped: Units left out of a partial release, with reasons.
    """
    entries: list[ManifestEntry] = []
    signatures: list[Signature] = []
    signed_packages: set[str] = set()

    for result in results:
        sig_by_file = {s.target: s for s in result.signatures}
        signatures.extend(result.signatures)
        if result.target.package.sign.enabled:
            signed_packages.add(result.target.package.name)

        for archive in result.archives:
            sig = sig_by_file.get(archive.name)
            entries.append(
                ManifestEntry(
                    path=archive.name,
                    digest=archive.digest,
                    size=archive.size,
                    kind=KIND_ARCHIVE,
                    package=archive.package,
                    target=archive.target,
                    format=archive.format,
                    signature_ref=sig.name if sig is not None else None,
                )
            )
        if result.sbom is not None:
            sig = sig_by_file.get(result.sbom.name)
            entries.append(
                ManifestEntry(
                    path=result.sbom.name,
                    digest=result.sbom.digest,
                    size=result.sbom.size,
                    kind=KIND_SBOM,
                    package=result.sbom.package,
                    target=result.sbom.target,
                    sbom_mode=result.sbom.mode_used,
                    signature_ref=sig.name if sig is not None else None,
                )
            )

    if checksum_signature is not None:
        signatures.append(checksum_signature)
    entries.append(
        ManifestEntry(
            path=checksum.name,
            digest=checksum.digest,
            size=checksum.size,
            kind=KIND_CHECKSUM,
            signature_ref=checksum_signature.name if checksum_signature is not None else None,
        )
    )

    entries.sort(key=ManifestEntry.sort_key)
    records = sorted((_record(s) for s in signatures), key=lambda r: r.path)
    skipped_records = tuple(
        f.to_dict() for f in sorted(skipped, key=lambda f: (f.package, f.target))
    )

    return Manifest(
        version=version.value,
        tag=version.tag,
        commit=commit,
        generated_at=generated_at,
        signing_required=bool(signed_packages),
        signed_packages=tuple(sorted(signed_packages)),
        entries=tuple(entries),
        signatures=tuple(records),
        skipped=skipped_records,
    )


def render_manifest(manifest: Manifest) -> str:
    return json.dumps(manifest.to_dict(), indent=2, sort_keys=True) + "\n"


def write_manifest(manifest: Manifest, path: Path) -> None:
    """Serialize a manifest to sorted-key JSON and write it atomically."""
    atomic_write(path, render_manifest(manifest))
    _logger.info(
        "Manifest written",
        extra={
            "path": str(path),
            "version": manifest.version,
            "entries": len(manifest.entries),
            "signatures": len(manifest.signatures),
        },
    )


def _require(data: dict[str, Any], required: frozenset[str], where: str, path: Path) -> None:
    missing = required - set(data.keys())
    if missing:
        raise ManifestFormatError(
            f"{path}: {where} is missing required fields: {', '.join(sorted(missing))}",
            [str(path)],
        )


def _plain_name(value: Any, where: str, path: Path) -> str:
    """Manifest paths are bare file names inside the output directory."""
    name = str(value)
    if not name or name in (".", "..") or Path(name).name != name or "\\" in name:
        raise ManifestFormatError(f"{path}: {where} path {name!r} is not a plain file name", [str(path)])
    return name


def load_manifest(path: Path) -> Manifest:
    """
    Load and validate manifest.json.

    Raises:
        ManifestFormatError: Missing file, invalid JSON, or missing required fields.
    """
    if not path.is_file():
        raise ManifestFormatError(f"Manifest file not found: {path}", [str(path)])

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as err:
        raise ManifestFormatError(f"Manifest {path} is not valid JSON: {err}", [str(path)]) from err

    if not isinstance(data, dict):
        raise ManifestFormatError(f"Manifest {path} must be a JSON object", [str(path)])
    _require(data, _REQUIRED_MANIFEST_FIELDS, "manifest", path)

    if not isinstance(data["entries"], list) or not isinstance(data["signatures"], list):
        raise ManifestFormatError(f"{path}: entries and signatures must be lists", [str(path)])

    entries: list[ManifestEntry] = []
    for index, raw in enumerate(data["entries"]):
        if not isinstance(raw, dict):
            raise ManifestFormatError(f"{path}: entry {index} is not an object", [str(path)])
        _require(raw, _REQUIRED_ENTRY_FIELDS, f"entry {index}", path)
        try:
            size = int(raw["size"])
        except (TypeError, ValueError) as err:
            raise ManifestFormatError(f"{path}: entry {index} has a non-integer size", [str(path)]) from err
        entries.append(
            ManifestEntry(
                path=_plain_name(raw["path"], f"entry {index}", path),
                digest=str(raw["digest"]),
                size=size,
                kind=str(raw["kind"]),
                package=raw.get("package"),
                target=raw.get("target"),
                format=raw.get("format"),
                sbom_mode=raw.get("sbom_mode"),
                signature_ref=raw.get("signature_ref"),
            )
        )

    signatures: list[SignatureRecord] = []
    for index, raw in enumerate(data["signatures"]):
        if not isinstance(raw, dict):
            raise ManifestFormatError(f"{path}: signature {index} is not an object", [str(path)])
        _require(raw, _REQUIRED_SIGNATURE_FIELDS, f"signature {index}", path)
        signatures.append(
            SignatureRecord(
                path=_plain_name(raw["path"], f"signature {index}", path),
                target=_plain_name(raw["target"], f"signature {index} target", path),
                digest=str(raw["digest"]),
                method=str(raw["method"]),
                target_digest=raw.get("target_digest"),
                requested_method=raw.get("requested_method"),
            )
        )

    manifest = Manifest(
        version=str(data["version"]),
        generated_at=str(data["generated_at"]),
        signing_required=bool(data["signing_required"]),
        entries=tuple(entries),
        signatures=tuple(signatures),
        tool=str(data["tool"]),
        tool_version=str(data["tool_version"]),
        tag=data.get("tag"),
        commit=data.get("commit"),
        signed_packages=tuple(data.get("signed_packages") or ()),
        skipped=tuple(data.get("skipped") or ()),
    )
    _logger.debug("Manifest loaded", extra={"path": str(path), "entries": len(entries)})
    return manifest
