# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Plan data model: what gets built, for which targets, at which version.

Everything here is frozen. A plan is computed once per run and every later
stage only reads it.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional

from polyship.config.schema import (
    NodeConfig,
    PackagingConfig,
    PythonConfig,
    SbomConfig,
    SignConfig,
)
from polyship.runtime.environment import target_triple

# 1980-01-01T00:00:00Z, the earliest timestamp a zip entry can carry.
DEFAULT_SOURCE_DATE_EPOCH = 315532800


class BuildKind(str, Enum):
    """The closed set of build strategies."""

    COMPILED_BINARY = "compiled-binary"
    WEB_BUNDLE = "web-bundle"
    NATIVE_EXECUTABLE = "native-executable"
    INTERPRETER_PACKAGED = "interpreter-packaged"


@dataclass(frozen=True)
class HostFacts:
    """
    Facts about the machine and repository, gathered once before planning.

    Planning is a pure function of configuration plus these facts, which is
    what lets `polyship plan` preview exactly what `polyship release` will do.
    """

    os: str
    arch: str
    latest_tag: Optional[str] = None
    commit: Optional[str] = None
    source_date_epoch: Optional[int] = None

    @property
    def triple(self) -> str:
        return target_triple(self.os, self.arch)


@dataclass(frozen=True)
class ReleaseVersion:
    """The resolved version shared by every package in the run."""

    value: str
    source: str
    tag: Optional[str] = None


@dataclass(frozen=True)
class PackageSpec:
    """A buildable unit with every config section already merged."""

    name: str
    project_type: str
    kind: BuildKind
    root_path: Path
    targets: tuple[str, ...]
    packaging: PackagingConfig
    sbom: SbomConfig
    sign: SignConfig
    env: tuple[tuple[str, str], ...] = ()
    node: Optional[NodeConfig] = None
    python: Optional[PythonConfig] = None

    @property
    def env_overrides(self) -> dict[str, str]:
        return dict(self.env)


@dataclass(frozen=True)
class BuildTarget:
    """One (package, target) unit of work."""

    package: PackageSpec
    target: str
    is_native: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.package.name, self.target)

    @property
    def label(self) -> str:
        return f"{self.package.name}/{self.target}"


@dataclass(frozen=True)
class ReleasePlan:
    version: ReleaseVersion
    packages: tuple[PackageSpec, ...]
    targets: tuple[BuildTarget, ...]
    host: HostFacts
    source_date_epoch: Optional[int] = None
    notes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def archive_epoch(self) -> int:
        """Timestamp stamped on every archive member and fallback SBOM."""
        if self.source_date_epoch is not None:
            return self.source_date_epoch
        return DEFAULT_SOURCE_DATE_EPOCH

    def targets_for(self, package_name: str) -> list[BuildTarget]:
        return [t for t in self.targets if t.package.name == package_name]

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly view used by `polyship plan --json`."""
        return {
            "version": self.version.value,
            "version_source": self.version.source,
            "tag": self.version.tag,
            "host": self.host.triple,
            "packages": [
                {
                    "name": pkg.name,
                    "type": pkg.project_type,
                    "kind": pkg.kind.value,
                    "path": pkg.root_path.as_posix(),
                    "targets": [t.target for t in self.targets_for(pkg.name)],
                    "formats": list(pkg.packaging.formats),
                    "sbom": pkg.sbom.mode if pkg.sbom.enabled else "disabled",
                    "sign": pkg.sign.method if pkg.sign.enabled else "disabled",
                }
                for pkg in self.packages
            ],
        }
