# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Plan engine: configuration plus host facts in, closed ReleasePlan out.

Section precedence for every package is: the package entry's own section, then
the root section, then schema defaults. Nothing is inferred from the network
and nothing is read from git here; `collect_host_facts` is the one place that
touches the repository, so `build_plan` stays pure and `polyship plan` shows
exactly what `polyship release` will build.
"""

import logging
import os
import platform
from pathlib import Path
from typing import Optional, Sequence

from polyship.config.exceptions import ConfigError
from polyship.config.schema import (
    BuildConfig,
    PackageEntry,
    PackagingConfig,
    PolyshipConfig,
    SbomConfig,
    SignConfig,
)
from polyship.logging.logger import get_logger
from polyship.release import gitinfo
from polyship.release.plan.models import (
    BuildKind,
    BuildTarget,
    HostFacts,
    PackageSpec,
    ReleasePlan,
)
from polyship.release.plan.version import resolve_version

_logger: logging.Logger = get_logger(__name__)

NATIVE_TARGET = "native"


def collect_host_facts(workspace: Optional[Path] = None) -> HostFacts:
    """
    Gather everything planning needs to know about this machine and repo.

    SOURCE_DATE_EPOCH, when set to an integer, pins every timestamp the run
    writes. A non-integer value is ignored with a warning.
    """
    epoch: Optional[int] = None
    raw_epoch = os.environ.get("SOURCE_DATE_EPOCH")
    if raw_epoch:
        try:
            epoch = int(raw_epoch)
        except ValueError:
            _logger.warning(
                "Ignoring non-integer SOURCE_DATE_EPOCH", extra={"value": raw_epoch}
            )

    return HostFacts(
        os=platform.system(),
        arch=platform.machine(),
        latest_tag=gitinfo.latest_tag(workspace),
        commit=gitinfo.current_commit(workspace),
        source_date_epoch=epoch,
    )


def _entries(config: PolyshipConfig) -> list[PackageEntry]:
    """Normalize the single-project layout into a one-entry package list."""
    if config.project is not None:
        return [
            PackageEntry(
                name=config.project.name,
                project_type=config.project.project_type,
                path=config.project.path,
            )
        ]
    return list(config.packages)


def _kind_for(entry: PackageEntry, config: PolyshipConfig) -> BuildKind:
    if entry.project_type in ("rust", "go"):
        return BuildKind.COMPILED_BINARY
    if entry.project_type == "node":
        node = entry.node or config.node
        if node is not None and node.mode == "frontend":
            return BuildKind.WEB_BUNDLE
        return BuildKind.NATIVE_EXECUTABLE
    return BuildKind.INTERPRETER_PACKAGED


def _expand_targets(name: str, raw_targets: Sequence[str], host: HostFacts) -> list[tuple[str, bool]]:
    """Replace `native` with the host triple and reject duplicates."""
    if not raw_targets:
        raise ConfigError(f"package '{name}' has an empty target list")

    expanded: list[tuple[str, bool]] = []
    seen: set[str] = set()
    for raw in raw_targets:
        target = raw.strip()
        if not target:
            raise ConfigError(f"package '{name}' has a blank target entry")
        is_native = target == NATIVE_TARGET
        if is_native:
            target = host.triple
        if target in seen:
            raise ConfigError(
                f"package '{name}' lists target '{target}' more than once "
                f"(note that '{NATIVE_TARGET}' expands to '{host.triple}')"
            )
        seen.add(target)
        expanded.append((target, is_native or target == host.triple))
    return expanded


def _resolve_package(
    entry: PackageEntry, config: PolyshipConfig, host: HostFacts
) -> tuple[PackageSpec, list[tuple[str, bool]]]:
    build = entry.build or config.build or BuildConfig()
    packaging = entry.package or config.package or PackagingConfig()
    sbom = entry.sbom or config.sbom or SbomConfig()
    sign = entry.sign or config.sign or SignConfig()
    node = entry.node or config.node
    python = entry.python or config.python

    if sign.enabled and sign.method == "cosign" and sign.cosign_mode == "key" and not sign.key:
        raise ConfigError(f"package '{entry.name}': sign.cosign_mode=key requires sign.key")

    kind = _kind_for(entry, config)
    if kind is BuildKind.NATIVE_EXECUTABLE and (node is None or node.binary is None):
        raise ConfigError(
            f"package '{entry.name}': node.mode=cli-binary requires a node.binary section"
        )

    targets = _expand_targets(entry.name, build.targets, host)

    spec = PackageSpec(
        name=entry.name,
        project_type=entry.project_type,
        kind=kind,
        root_path=Path(entry.path),
        targets=tuple(t for t, _ in targets),
        packaging=packaging,
        sbom=sbom,
        sign=sign,
        env=tuple(sorted(build.env.items())),
        node=node,
        python=python,
    )
    return spec, targets


def build_plan(
    config: PolyshipConfig,
    host: HostFacts,
    only: Optional[Sequence[str]] = None,
    tag_override: Optional[str] = None,
) -> ReleasePlan:
    """
    Compute the release plan.

    Args:
        config: Validated configuration.
        host: Facts from collect_host_facts (or a fixture in tests).
        only: Restrict the plan to these package names.
        tag_override: Version override from `--tag`.

    Returns:
        A plan whose targets are all concrete; `native` never survives planning.

    Raises:
        ConfigError: Duplicate package names or targets, empty target lists,
            unknown names in `only`, incomplete sections.
        VersionResolutionError: The version source cannot produce a version.
    """
    entries = _entries(config)

    names = [e.name for e in entries]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"duplicate package names: {', '.join(duplicates)}")

    if only:
        unknown = sorted(set(only) - set(names))
        if unknown:
            raise ConfigError(f"--only names unknown packages: {', '.join(unknown)}")
        entries = [e for e in entries if e.name in set(only)]

    version = resolve_version(config.version, host, tag_override)

    packages: list[PackageSpec] = []
    targets: list[BuildTarget] = []
    for entry in entries:
        spec, expanded = _resolve_package(entry, config, host)
        packages.append(spec)
        for target, is_native in expanded:
            targets.append(BuildTarget(package=spec, target=target, is_native=is_native))

    plan = ReleasePlan(
        version=version,
        packages=tuple(packages),
        targets=tuple(targets),
        host=host,
        source_date_epoch=host.source_date_epoch,
    )

    _logger.info(
        "Release plan computed",
        extra={
            "version": version.value,
            "version_source": version.source,
            "packages": len(packages),
            "units": len(targets),
        },
    )
    return plan
