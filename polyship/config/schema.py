# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Type-safe configuration schemas for polyship.

Every config section gets its own frozen pydantic model. Frozen means once you
create it, you cannot mutate it. A release run must see the same configuration
from the first build to the last signature.

The models use pydantic v2's ConfigDict with:
  - frozen=True: immutability after construction
  - extra="forbid": unknown fields cause immediate failure
  - validate_default=True: even defaults get type-checked

Sections can appear at the root (shared by every package) and inside a
`packages` entry (overriding the root for that package). The plan engine does
the merging; this module only describes shapes.
"""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ProjectType = Literal["rust", "go", "node", "python"]
ArchiveFormat = Literal["tar.gz", "zip"]

_FROZEN = ConfigDict(frozen=True, extra="forbid", validate_default=True)
_FROZEN_ALIASED = ConfigDict(
    frozen=True, extra="forbid", validate_default=True, populate_by_name=True
)


class GlobalConfig(BaseModel):
    """Cross-cutting settings: logging, output location, parallelism."""

    model_config = _FROZEN

    log_level: str = Field(
        default="INFO",
        description="One of DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional path for file-based log output",
    )
    output_dir: str = Field(
        default="dist",
        description="Directory that receives archives, SBOMs, signatures and the manifest",
    )
    max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="How many (package, target) pipelines run in parallel",
    )


class ProjectConfig(BaseModel):
    """Single-project layout: the whole repository is one package."""

    model_config = _FROZEN_ALIASED

    name: str = Field(min_length=1)
    project_type: ProjectType = Field(alias="type")
    path: str = Field(default=".")


class VersionConfig(BaseModel):
    """
    Where the release version comes from.

    tag     the latest tag reachable from HEAD; no tag is an error
    manual  the explicit `manual` value
    git     the latest tag, or `baseline` when the repo has none
    """

    model_config = _FROZEN

    source: Literal["tag", "manual", "git"] = Field(default="git")
    manual: Optional[str] = Field(default=None)
    baseline: str = Field(default="0.1.0", min_length=1)


class BuildConfig(BaseModel):
    """Target list and environment overrides passed to the build tools."""

    model_config = _FROZEN

    targets: list[str] = Field(
        default_factory=lambda: ["native"],
        description="Target triples; 'native' expands to the host at plan time",
    )
    env: dict[str, str] = Field(default_factory=dict)


class PackagingConfig(BaseModel):
    """Archive formats, naming template and file filters (the `package` section)."""

    model_config = _FROZEN

    formats: list[ArchiveFormat] = Field(default_factory=lambda: ["tar.gz"])
    name_template: str = Field(default="{name}-{version}-{target}", min_length=1)
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)

    @field_validator("formats")
    @classmethod
    def _formats_unique(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("package.formats must list at least one format")
        if len(set(value)) != len(value):
            raise ValueError(f"package.formats contains duplicates: {value}")
        return value


class SbomConfig(BaseModel):
    """CycloneDX SBOM generation mode."""

    model_config = _FROZEN

    enabled: bool = Field(default=True)
    format: Literal["cyclonedx"] = Field(default="cyclonedx")
    mode: Literal["auto", "native", "fallback"] = Field(default="auto")


class SignConfig(BaseModel):
    """Detached signature settings."""

    model_config = _FROZEN

    enabled: bool = Field(default=False)
    method: Literal["cosign", "gpg", "fallback-hash"] = Field(default="cosign")
    cosign_mode: Literal["keyless", "key"] = Field(default="keyless")
    key: Optional[str] = Field(
        default=None, description="cosign private key path, required when cosign_mode is 'key'"
    )
    gpg_key: Optional[str] = Field(
        default=None, description="gpg --local-user value; the default key when unset"
    )


class GitHubReleaseConfig(BaseModel):
    model_config = _FROZEN

    owner: str = Field(min_length=1)
    repo: str = Field(min_length=1)
    api_url: str = Field(default="https://api.github.com")


class ReleaseConfig(BaseModel):
    """Publishing target and the partial-release policy."""

    model_config = _FROZEN

    provider: Literal["github"] = Field(default="github")
    draft: bool = Field(default=True)
    prerelease: bool = Field(default=False)
    allow_partial: bool = Field(
        default=False,
        description="Write a manifest for the units that succeeded when some failed",
    )
    github: Optional[GitHubReleaseConfig] = Field(default=None)


class ChangelogConfig(BaseModel):
    model_config = _FROZEN

    mode: Literal["auto", "conventional"] = Field(default="auto")
    file: Optional[str] = Field(default=None)


class NodeBinaryConfig(BaseModel):
    """Options for packaging a Node CLI into a native executable."""

    model_config = _FROZEN

    tool: str = Field(default="pkg")
    entry: Optional[str] = Field(default=None)
    targets: list[str] = Field(default_factory=list)


class NodeFrontendConfig(BaseModel):
    """Options for a bundled web frontend."""

    model_config = _FROZEN

    build_dir: str = Field(default="dist")
    build_cmd: Optional[str] = Field(default=None)


class NodeConfig(BaseModel):
    model_config = _FROZEN

    mode: Literal["cli-binary", "frontend"] = Field(default="cli-binary")
    binary: Optional[NodeBinaryConfig] = Field(default=None)
    frontend: Optional[NodeFrontendConfig] = Field(default=None)


class PyInstallerConfig(BaseModel):
    model_config = _FROZEN

    mode: Literal["onefile", "onedir"] = Field(default="onefile")
    entry: Optional[str] = Field(default=None)
    hidden_imports: list[str] = Field(default_factory=list)
    data: list[str] = Field(default_factory=list)


class PythonConfig(BaseModel):
    model_config = _FROZEN

    mode: Literal["wheel", "pyinstaller"] = Field(default="wheel")
    pyinstaller: Optional[PyInstallerConfig] = Field(default=None)


class PackageEntry(BaseModel):
    """One package in a monorepo layout; any section here overrides the root."""

    model_config = _FROZEN_ALIASED

    name: str = Field(min_length=1)
    project_type: ProjectType = Field(alias="type")
    path: str = Field(default=".")
    build: Optional[BuildConfig] = Field(default=None)
    package: Optional[PackagingConfig] = Field(default=None)
    sbom: Optional[SbomConfig] = Field(default=None)
    sign: Optional[SignConfig] = Field(default=None)
    node: Optional[NodeConfig] = Field(default=None)
    python: Optional[PythonConfig] = Field(default=None)


class PolyshipConfig(BaseModel):
    """
    Top-level config container.

    Exactly one of `project` (single package) or `packages` (monorepo) must be
    present. Everything else is optional and falls back to defaults.
    """

    model_config = _FROZEN_ALIASED

    global_config: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    project: Optional[ProjectConfig] = Field(default=None)
    packages: list[PackageEntry] = Field(default_factory=list)
    version: Optional[VersionConfig] = Field(default=None)
    build: Optional[BuildConfig] = Field(default=None)
    package: Optional[PackagingConfig] = Field(default=None)
    sbom: Optional[SbomConfig] = Field(default=None)
    sign: Optional[SignConfig] = Field(default=None)
    release: Optional[ReleaseConfig] = Field(default=None)
    changelog: Optional[ChangelogConfig] = Field(default=None)
    node: Optional[NodeConfig] = Field(default=None)
    python: Optional[PythonConfig] = Field(default=None)

    @model_validator(mode="after")
    def _check_layout(self) -> "PolyshipConfig":
        if self.project is None and not self.packages:
            raise ValueError("config must define `project` or `packages`")
        if self.project is not None and self.packages:
            raise ValueError("use either a single `project` or a `packages` list, not both")

        for entry in self.packages:
            node = entry.node or self.node
            if (
                entry.project_type == "node"
                and node is not None
                and node.mode == "cli-binary"
                and node.binary is None
            ):
                raise ValueError(
                    f"package '{entry.name}': node.mode=cli-binary requires a node.binary section"
                )
        return self
