# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Packager: one build output in, one archive per configured format out.

Each archive is written atomically into the output directory under the name
assigned before the build started, then hashed straight away. The digest and
size recorded here are what ends up in SHA256SUMS and the manifest; nothing
re-reads the archive later to "discover" them.

Re-packaging a unit replaces its archives wholesale.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from polyship.logging.logger import get_logger
from polyship.release.builders.base import BuildOutput
from polyship.release.errors import EmptyArchiveError
from polyship.release.packaging.archive import select_members, write_archive
from polyship.release.packaging.naming import UnitNames
from polyship.release.plan.models import BuildTarget
from polyship.utils.hashing import compute_sha256

_logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True)
class Archive:
    """A finished archive and the facts recorded about it at write time."""

    path: Path
    name: str
    format: str
    digest: str
    size: int
    package: str
    target: str
    member_count: int


def package_unit(
    output: BuildOutput,
    target: BuildTarget,
    names: UnitNames,
    output_dir: Path,
    mtime: int,
) -> list[Archive]:
    """
    Archive one unit's build output in every configured format.

    Args:
        output: What the builder produced.
        target: The unit, for its packaging section.
        names: Names assigned to this unit by assign_artifact_names.
        output_dir: Release output directory.
        mtime: Timestamp stamped on every member.

    Returns:
        One Archive per format, in configured order.

    Raises:
        EmptyArchiveError: Include/exclude filters left nothing to archive.
    """
    packaging = target.package.packaging
    members = select_members(output, packaging.include, packaging.exclude)
    if not members:
        raise EmptyArchiveError(
            f"{target.label}: no files left to archive after include/exclude filtering "
            f"(include={list(packaging.include)}, exclude={list(packaging.exclude)})"
        )

    archives: list[Archive] = []
    for fmt in packaging.formats:
        name = names.archive(fmt)
        path = output_dir / name
        write_archive(path, fmt, members, mtime)
        digest = compute_sha256(path)
        size = path.stat().st_size
        archives.append(
            Archive(
                path=path,
                name=name,
                format=fmt,
                digest=digest,
                size=size,
                package=target.package.name,
                target=target.target,
                member_count=len(members),
            )
        )
        _logger.info(
            "Archive written",
            extra={
                "unit": target.label,
                "archive": name,
                "members": len(members),
                "sha256": digest[:16] + "...",
            },
        )
    return archives
