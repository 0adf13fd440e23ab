# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release version resolution.

Resolved once per run from one of three sources:

    manual  the explicit value in config; missing or blank is a ConfigError
    tag     the latest tag reachable from HEAD; no tag is a VersionResolutionError
    git     the latest tag, falling back to a fixed baseline (never fails)

A CLI `--tag` override wins over all of them. Tags like `v1.2.3` resolve to
`1.2.3`; the original tag is kept alongside for publishing.
"""

import logging
import re
from typing import Optional

from polyship.config.exceptions import ConfigError
from polyship.config.schema import VersionConfig
from polyship.logging.logger import get_logger
from polyship.release.errors import VersionResolutionError
from polyship.release.fallback import attempt_with_fallback
from polyship.release.plan.models import HostFacts, ReleaseVersion

_logger: logging.Logger = get_logger(__name__)

DEFAULT_BASELINE = "0.1.0"

# Versions end up inside file names, so nothing that could form a path.
_UNSAFE_VERSION = re.compile(r"[\s/\\]")


def normalize_version(tag: str) -> str:
    """Strip a leading `v` from tags like `v1.2.3`."""
    tag = tag.strip()
    if len(tag) > 1 and tag[0] in "vV" and tag[1].isdigit():
        return tag[1:]
    return tag


def _checked(version: ReleaseVersion) -> ReleaseVersion:
    if not version.value or _UNSAFE_VERSION.search(version.value):
        raise VersionResolutionError(
            f"resolved version {version.value!r} (from {version.source}) cannot be used in file names"
        )
    return version


def _from_tag(host: HostFacts) -> ReleaseVersion:
    if not host.latest_tag:
        raise VersionResolutionError(
            "version.source=tag but no tag is reachable from the current revision"
        )
    return ReleaseVersion(
        value=normalize_version(host.latest_tag), source="tag", tag=host.latest_tag
    )


def resolve_version(
    version_cfg: Optional[VersionConfig],
    host: HostFacts,
    tag_override: Optional[str] = None,
) -> ReleaseVersion:
    """
    Resolve the release version for this run.

    Args:
        version_cfg: The `version` config section; None means source `git`.
        host: Host facts carrying the latest tag, if any.
        tag_override: Explicit tag from the command line.

    Raises:
        ConfigError: source=manual without a value.
        VersionResolutionError: source=tag without a tag, or an unusable version string.
    """
    if tag_override:
        return _checked(
            ReleaseVersion(
                value=normalize_version(tag_override), source="override", tag=tag_override
            )
        )

    cfg = version_cfg or VersionConfig()

    if cfg.source == "manual":
        if cfg.manual is None or not cfg.manual.strip():
            raise ConfigError("version.source=manual requires a non-empty version.manual")
        value = cfg.manual.strip()
        return _checked(ReleaseVersion(value=normalize_version(value), source="manual", tag=value))

    if cfg.source == "tag":
        return _checked(_from_tag(host))

    baseline = cfg.baseline

    def _baseline() -> ReleaseVersion:
        return ReleaseVersion(value=normalize_version(baseline), source="git", tag=None)

    def _latest_tag() -> ReleaseVersion:
        found = _from_tag(host)
        return _checked(ReleaseVersion(value=found.value, source="git", tag=found.tag))

    # a missing or file-name-unsafe tag both fall back to the baseline
    attempt = attempt_with_fallback(
        _latest_tag,
        _baseline,
        label="version",
        substitute_on=(VersionResolutionError,),
    )
    version = attempt.value

    _logger.debug(
        "Version resolved",
        extra={"version": version.value, "source": version.source, "fell_back": attempt.fell_back},
    )
    return _checked(version)
