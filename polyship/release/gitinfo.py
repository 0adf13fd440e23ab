# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Read-only git queries used for version resolution, provenance, and changelogs.

All of these are best-effort: outside a repository, or without git installed,
they return None instead of raising. Callers decide whether a missing answer
is an error (a `tag` version source with no tag is; a missing commit hash in
provenance is not).
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional

from polyship.logging.logger import get_logger

_logger: logging.Logger = get_logger(__name__)


def _git(args: list[str], cwd: Optional[Path] = None) -> Optional[str]:
    """Run one git command and return stripped stdout, or None on any failure."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd is not None else None,
            capture_output=True,
            text=True,
            errors="replace",
            check=False,
        )
    except FileNotFoundError:
        _logger.debug("git not available", extra={"git_args": args})
        return None

    if result.returncode != 0:
        _logger.debug(
            "git command failed",
            extra={"git_args": args, "returncode": result.returncode, "stderr": result.stderr.strip()},
        )
        return None

    out = result.stdout.strip()
    return out or None


def current_commit(cwd: Optional[Path] = None) -> Optional[str]:
    """HEAD commit hash."""
    return _git(["rev-parse", "HEAD"], cwd)


def repo_url(cwd: Optional[Path] = None) -> Optional[str]:
    """URL of the `origin` remote."""
    return _git(["config", "--get", "remote.origin.url"], cwd)


def latest_tag(cwd: Optional[Path] = None) -> Optional[str]:
    """Most recent tag reachable from HEAD."""
    return _git(["describe", "--tags", "--abbrev=0"], cwd)


def previous_tag(tag: str, cwd: Optional[Path] = None) -> Optional[str]:
    """The tag before `tag`, for changelog ranges."""
    return _git(["describe", "--tags", "--abbrev=0", f"{tag}^"], cwd)


def commit_timestamp(cwd: Optional[Path] = None) -> Optional[int]:
    """Committer timestamp of HEAD in seconds since the epoch."""
    out = _git(["log", "-1", "--format=%ct"], cwd)
    if out is None:
        return None
    try:
        return int(out)
    except ValueError:
        return None


def changelog_between(prev: str, curr: str, mode: str, cwd: Optional[Path] = None) -> Optional[str]:
    """
    One line per commit in `prev..curr`.

    `conventional` mode lists subjects as bullets; anything else prefixes the
    short hash.
    """
    fmt = "* %s" if mode == "conventional" else "%h %s"
    return _git(["log", f"{prev}..{curr}", f"--pretty=format:{fmt}"], cwd)
