# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Error taxonomy for the release pipeline.

Configuration problems use ConfigError from polyship.config.exceptions. Everything
the pipeline itself can raise lives here, grouped by how the orchestrator treats it:

  fatal for the run      VersionResolutionError, NamingCollisionError, EmptyArchiveError
  fatal for one unit     ToolchainMissingError, BuildFailedError, SbomToolMissingError,
                         SbomGenerationError, SigningFailedError (collected into
                         StageFailedError)
  substituted            SigningToolMissingError, SbomToolMissingError in auto mode
  verify only            MissingArtifactError, DigestMismatchError, UnsignedArtifactError,
                         SignatureMismatchError, ManifestFormatError
"""

from dataclasses import dataclass
from typing import Optional


class ReleaseError(Exception):
    """Base for every error raised by the release pipeline."""


class VersionResolutionError(ReleaseError):
    """The configured version source could not produce a version."""


class ToolMissingError(ReleaseError):
    """An external tool is not available. Base for the three tool-missing kinds."""

    def __init__(self, tool: str, message: Optional[str] = None) -> None:
        self.tool = tool
        super().__init__(message or f"required tool '{tool}' not found on PATH")


class ToolchainMissingError(ToolMissingError):
    """A build tool (cargo, go, npm, pyinstaller, ...) is absent."""


class SbomToolMissingError(ToolMissingError):
    """The language-specific SBOM generator is absent."""


class SigningToolMissingError(ToolMissingError):
    """cosign or gpg is absent, or keyless cosign has no ambient identity."""


class BuildFailedError(ReleaseError):
    """An external build tool exited non-zero, or produced nothing."""

    def __init__(
        self,
        message: str,
        command: Optional[list[str]] = None,
        returncode: Optional[int] = None,
        output: str = "",
    ) -> None:
        self.command = command or []
        self.returncode = returncode
        self.output = output
        super().__init__(message)


class SbomGenerationError(ReleaseError):
    """The native SBOM tool ran but failed, or wrote something that is not CycloneDX JSON."""


class SigningFailedError(ReleaseError):
    """A signing tool was present but exited non-zero."""


class NamingCollisionError(ReleaseError):
    """Two artifacts of the same run render to the same file name."""

    def __init__(self, name: str, owners: list[str]) -> None:
        self.name = name
        self.owners = owners
        super().__init__(
            f"artifact name '{name}' is produced by more than one unit: {', '.join(owners)}"
        )


class EmptyArchiveError(ReleaseError):
    """No files were left to archive after include/exclude filtering."""


@dataclass(frozen=True)
class UnitFailure:
    """One failed (package, target) unit and the stage where it stopped."""

    package: str
    target: str
    stage: str
    error: Exception

    @property
    def reason(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"

    def to_dict(self) -> dict[str, str]:
        return {
            "package": self.package,
            "target": self.target,
            "stage": self.stage,
            "reason": self.reason,
        }


class StageFailedError(ReleaseError):
    """Aggregate of every unit that failed in a stage, reported in one pass."""

    def __init__(self, stage: str, failures: list[UnitFailure]) -> None:
        self.stage = stage
        self.failures = failures
        lines = [f"  {f.package}/{f.target}: {f.reason}" for f in failures]
        super().__init__(f"{len(failures)} unit(s) failed in {stage} stage:\n" + "\n".join(lines))


class VerificationError(ReleaseError):
    """Base for verify failures. `paths` names every offending file."""

    def __init__(self, message: str, paths: Optional[list[str]] = None) -> None:
        self.paths = sorted(paths or [])
        super().__init__(message)


class ManifestFormatError(VerificationError):
    """manifest.json is missing, unparseable, or lacks required fields."""


class MissingArtifactError(VerificationError):
    """A path referenced by the manifest does not exist in the output directory."""


class DigestMismatchError(VerificationError):
    """A file's SHA256 differs from the digest recorded in the manifest."""


class UnsignedArtifactError(VerificationError):
    """Signing was required but an entry has no signature record."""


class SignatureMismatchError(VerificationError):
    """A fallback-hash signature does not match its file."""


class PublishError(ReleaseError):
    """The release host rejected a request."""
