# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Deterministic tar.gz and zip writers.

Two runs over the same inputs must produce byte-identical archives, whatever
the file system order, the clock, or the user running the build. So:

  - members are sorted by their archive path (POSIX separators)
  - every member carries the same mtime (SOURCE_DATE_EPOCH, or 1980-01-01)
  - uid/gid are 0 and owner names are empty
  - modes are normalised to 0755 (executable) or 0644
  - the gzip header has a fixed mtime and no file name
  - zip entries are stamped as created on Unix with the same fixed date

Only regular files are stored; directories are implied by member paths.
Archives are written through atomic_output, so a failed write never leaves a
truncated archive behind.
"""

import gzip
import shutil
import stat
import tarfile
import time
import zipfile
from dataclasses import dataclass
from fnmatch import fnmatch
from pathlib import Path
from typing import Sequence

from polyship.release.builders.base import BuildOutput
from polyship.release.errors import NamingCollisionError
from polyship.release.plan.models import DEFAULT_SOURCE_DATE_EPOCH
from polyship.utils.filesystem import atomic_output

EXEC_MODE = 0o755
FILE_MODE = 0o644
GZIP_LEVEL = 9

# zip cannot represent dates before 1980.
_ZIP_MIN_EPOCH = DEFAULT_SOURCE_DATE_EPOCH

_COPY_BUFFER = 1024 * 1024


@dataclass(frozen=True)
class ArchiveMember:
    arcname: str
    source: Path

    @property
    def mode(self) -> int:
        executable = self.source.stat().st_mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return EXEC_MODE if executable else FILE_MODE


def _matches(rel_path: str, patterns: Sequence[str]) -> bool:
    base = rel_path.rsplit("/", 1)[-1]
    return any(fnmatch(rel_path, p) or fnmatch(base, p) for p in patterns)


def select_members(
    output: BuildOutput,
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
) -> list[ArchiveMember]:
    """
    Turn a build output into the sorted member list of its archive.

    Single files are stored under their basename; directories contribute every
    regular file beneath them, relative to the directory. `include` globs
    select (empty selects everything), `exclude` globs reject and win over
    `include`. Both are matched against the relative path and the basename.

    Raises:
        NamingCollisionError: Two produced files map to the same archive path.
    """
    candidates: dict[str, list[Path]] = {}
    for produced in output.paths:
        if produced.is_dir():
            for child in produced.rglob("*"):
                if child.is_file():
                    rel = child.relative_to(produced).as_posix()
                    candidates.setdefault(rel, []).append(child)
        elif produced.is_file():
            candidates.setdefault(produced.name, []).append(produced)

    members: list[ArchiveMember] = []
    for rel in sorted(candidates):
        if include and not _matches(rel, include):
            continue
        if exclude and _matches(rel, exclude):
            continue
        sources = candidates[rel]
        if len(sources) > 1:
            raise NamingCollisionError(rel, [str(s) for s in sources])
        members.append(ArchiveMember(arcname=rel, source=sources[0]))
    return members


def write_tar_gz(destination: Path, members: Sequence[ArchiveMember], mtime: int) -> None:
    with atomic_output(destination) as raw:
        with gzip.GzipFile(filename="", mode="wb", fileobj=raw, compresslevel=GZIP_LEVEL, mtime=mtime) as gz:
            with tarfile.open(fileobj=gz, mode="w", format=tarfile.GNU_FORMAT) as tar:
                for member in sorted(members, key=lambda m: m.arcname):
                    info = tarfile.TarInfo(name=member.arcname)
                    info.size = member.source.stat().st_size
                    info.mtime = mtime
                    info.mode = member.mode
                    info.uid = 0
                    info.gid = 0
                    info.uname = ""
                    info.gname = ""
                    info.type = tarfile.REGTYPE
                    with member.source.open("rb") as fh:
                        tar.addfile(info, fh)


def write_zip(destination: Path, members: Sequence[ArchiveMember], mtime: int) -> None:
    date_time = time.gmtime(max(mtime, _ZIP_MIN_EPOCH))[:6]
    with atomic_output(destination) as raw:
        with zipfile.ZipFile(raw, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
            for member in sorted(members, key=lambda m: m.arcname):
                info = zipfile.ZipInfo(filename=member.arcname, date_time=date_time)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.create_system = 3
                info.external_attr = (stat.S_IFREG | member.mode) << 16
                info.file_size = member.source.stat().st_size
                with member.source.open("rb") as src, zf.open(info, mode="w") as dst:
                    shutil.copyfileobj(src, dst, _COPY_BUFFER)


_WRITERS = {
    "tar.gz": write_tar_gz,
    "zip": write_zip,
}


def write_archive(destination: Path, fmt: str, members: Sequence[ArchiveMember], mtime: int) -> None:
    """
    Write `members` to `destination` in format `fmt`.

    Raises:
        ValueError: Unknown format (the config schema only admits tar.gz and zip).
    """
    try:
        writer = _WRITERS[fmt]
    except KeyError:
        raise ValueError(f"unsupported archive format '{fmt}'") from None
    writer(destination, members, mtime)


def list_archive(path: Path) -> list[str]:
    """Member names of an archive, in stored order."""
    if path.name.endswith(".zip"):
        with zipfile.ZipFile(path) as zf:
            return zf.namelist()
    with tarfile.open(path, mode="r:gz") as tar:
        return tar.getnames()


def read_member(path: Path, arcname: str) -> bytes:
    """Contents of one archive member."""
    if path.name.endswith(".zip"):
        with zipfile.ZipFile(path) as zf:
            return zf.read(arcname)
    with tarfile.open(path, mode="r:gz") as tar:
        extracted = tar.extractfile(arcname)
        if extracted is None:
            raise KeyError(arcname)
        return extracted.read()
