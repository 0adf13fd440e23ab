# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Safe filesystem operations for polyship.

Release artifacts must never be observed half-written:
  - writes are atomic (no partial files on failure)
  - failures must not corrupt an artifact that was already in place
  - a later verify pass only ever sees complete files

Atomic writes work by writing to a temporary file in the same directory as
the target, then renaming. Rename on the same filesystem is atomic on POSIX.
If the process crashes mid-write, you get a leftover temp file instead of a
corrupted target file, and the temp file never appears in a manifest.
"""

import os
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

_TEMP_PREFIX = ".polyship_tmp_"


@contextmanager
def atomic_output(target_path: Path) -> Iterator[BinaryIO]:
    """
    Open a binary temp file next to `target_path` and move it into place on success.

    Usage:
        with atomic_output(dist / "app.tar.gz") as fh:
            fh.write(...)

    If the block raises, the temp file is removed and the target is left
    untouched. The final rename uses os.replace, so an existing artifact from a
    previous run is replaced wholesale.

    Args:
        target_path: Where the final file should end up.

    Raises:
        OSError: If the write or rename fails.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)

    # delete=False because we need the file to survive closing so we can rename it.
    # dir= same directory as target so rename is atomic (same filesystem).
    temp_fd = tempfile.NamedTemporaryFile(
        mode="wb",
        dir=str(target_path.parent),
        prefix=_TEMP_PREFIX,
        suffix=".tmp",
        delete=False,
    )
    temp_path = Path(temp_fd.name)

    try:
        yield temp_fd
        temp_fd.flush()
        temp_fd.close()
        os.replace(temp_path, target_path)
    except BaseException:
        temp_fd.close()
        if temp_path.exists():
            temp_path.unlink()
        raise


def atomic_write(target_path: Path, content: str, encoding: str = "utf-8") -> None:
    """
    Write text to a file atomically.

    Args:
        target_path: Where the final file should end up.
        content: The string content to write.
        encoding: Text encoding to use.
    """
    atomic_write_bytes(target_path, content.encode(encoding))


def atomic_write_bytes(target_path: Path, data: bytes) -> None:
    """Write binary data to a file atomically. Same approach as atomic_output."""
    with atomic_output(target_path) as fh:
        fh.write(data)


def safe_delete(file_path: Path) -> bool:
    """
    Delete a file if it exists. Returns whether anything was actually deleted.

    This never throws on a missing file.

    Raises:
        OSError: If the file exists but can't be deleted (permissions, etc).
    """
    if file_path.exists():
        file_path.unlink()
        return True
    return False
