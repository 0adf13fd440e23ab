# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release notes for the published release body.

Resolution order: the configured changelog file, then the git log between the
previous tag and this one, then the plain "Release <tag>" line.
"""

import logging
from pathlib import Path
from typing import Optional

from polyship.config.exceptions import ConfigLoadError
from polyship.config.schema import ChangelogConfig
from polyship.logging.logger import get_logger
from polyship.release import gitinfo

_logger: logging.Logger = get_logger(__name__)


def default_notes(tag: str) -> str:
    return f"Release {tag}"


def render_changelog(
    tag: str,
    workspace_root: Path,
    changelog_cfg: Optional[ChangelogConfig] = None,
) -> str:
    """
    Build the release body for `tag`.

    Raises:
        ConfigLoadError: `changelog.file` is set but cannot be read.
    """
    cfg = changelog_cfg or ChangelogConfig()

    if cfg.file:
        path = workspace_root / cfg.file
        try:
            return path.read_text(encoding="utf-8")
        except OSError as err:
            raise ConfigLoadError(f"Cannot read changelog file {path}: {err}") from err

    previous = gitinfo.previous_tag(tag, workspace_root)
    if previous is None:
        _logger.info("No previous tag; using default release notes", extra={"tag": tag})
        return default_notes(tag)

    log = gitinfo.changelog_between(previous, tag, cfg.mode, workspace_root)
    if not log:
        return default_notes(tag)
    _logger.debug("Changelog generated from git", extra={"from": previous, "to": tag})
    return log
