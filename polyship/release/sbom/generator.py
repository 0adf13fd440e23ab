# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
SBOM generation for one (package, target) unit.

Three modes, set per package in the `sbom` section:

    native    run the ecosystem's CycloneDX tool; a missing tool is
              SbomToolMissingError and fails this unit only
    fallback  build the document from the project's lockfile
    auto      native when the tool is installed, otherwise fallback

The mode that actually ran is written into the document
(metadata.properties, `polyship:sbom:mode`) and returned for the manifest.
Native tool output is re-encoded with sorted keys so the file polyship
writes is stable for a given tool output.
"""

import json
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from polyship.logging.logger import get_logger
from polyship.release.builders.base import build_environment, project_dir
from polyship.release.errors import SbomGenerationError, SbomToolMissingError
from polyship.release.fallback import attempt_with_fallback
from polyship.release.plan.models import BuildTarget
from polyship.release.process import output_tail, run_tool
from polyship.release.sbom.cyclonedx import (
    MODE_PROPERTY,
    SPEC_VERSION,
    TARGET_PROPERTY,
    build_document,
    serialize,
    set_properties,
)
from polyship.release.sbom.lockfiles import read_components
from polyship.utils.filesystem import atomic_write_bytes, safe_delete
from polyship.utils.hashing import compute_sha256

_logger: logging.Logger = get_logger(__name__)

MODE_NATIVE = "native"
MODE_FALLBACK = "fallback"


@dataclass(frozen=True)
class SbomDocument:
    path: Path
    name: str
    digest: str
    size: int
    mode_used: str
    component_count: int
    package: str
    target: str


# Each entry: (executable, argv after the executable given the output file).
_NATIVE_TOOLS: dict[str, tuple[str, Callable[[Path], list[str]]]] = {
    "rust": (
        "cargo-cyclonedx",
        lambda out: [
            "cyclonedx",
            "--format",
            "json",
            "--spec-version",
            SPEC_VERSION,
            "--override-filename",
            out.stem,
        ],
    ),
    "go": (
        "cyclonedx-gomod",
        lambda out: ["mod", "-json", "-output-version", SPEC_VERSION, "-output", str(out)],
    ),
    "node": (
        "cyclonedx-npm",
        lambda out: [
            "--output-format",
            "JSON",
            "--spec-version",
            SPEC_VERSION,
            "--output-file",
            str(out),
        ],
    ),
    "python": (
        "cyclonedx-py",
        lambda out: [
            "environment",
            "--output-format",
            "JSON",
            "--spec-version",
            SPEC_VERSION,
            "--output-file",
            str(out),
        ],
    ),
}


def native_sbom(target: BuildTarget, workspace_root: Path) -> bytes:
    """
    Run the ecosystem's SBOM tool and return its raw JSON output.

    Raises:
        SbomToolMissingError: The tool is not on PATH.
        SbomGenerationError: The tool failed or wrote nothing.
    """
    executable, argv = _NATIVE_TOOLS[target.package.project_type]
    cwd = project_dir(target, workspace_root)
    env = build_environment(target)

    with tempfile.TemporaryDirectory(prefix="polyship-sbom-") as scratch:
        out = Path(scratch) / f"polyship-bom-{target.target.replace('/', '_')}.json"
        result = run_tool([executable, *argv(out)], cwd=cwd, env=env, missing=SbomToolMissingError)
        if result.returncode != 0:
            raise SbomGenerationError(
                f"{target.label}: {executable} exited with status {result.returncode}\n"
                f"{output_tail(result)}"
            )
        # cargo-cyclonedx writes next to Cargo.toml under the overridden name
        for candidate in (out, cwd / f"{out.stem}.json"):
            if candidate.is_file():
                data = candidate.read_bytes()
                if candidate.parent == cwd:
                    safe_delete(candidate)
                return data

    raise SbomGenerationError(f"{target.label}: {executable} produced no SBOM file")


def _from_native(target: BuildTarget, workspace_root: Path) -> dict[str, Any]:
    raw = native_sbom(target, workspace_root)
    try:
        document = json.loads(raw)
    except ValueError as err:
        raise SbomGenerationError(f"{target.label}: native SBOM is not valid JSON: {err}") from err
    if not isinstance(document, dict) or document.get("bomFormat") != "CycloneDX":
        raise SbomGenerationError(f"{target.label}: native SBOM is not a CycloneDX document")
    return set_properties(document, {MODE_PROPERTY: MODE_NATIVE, TARGET_PROPERTY: target.target})


def _from_lockfile(
    target: BuildTarget, workspace_root: Path, version: str, epoch: int
) -> dict[str, Any]:
    components, _ = read_components(
        target.package.project_type, project_dir(target, workspace_root), workspace_root.resolve()
    )
    return build_document(
        target.package.name, version, target.target, components, epoch, MODE_FALLBACK
    )


def generate_sbom(
    target: BuildTarget,
    sbom_name: str,
    output_dir: Path,
    workspace_root: Path,
    version: str,
    epoch: int,
) -> Optional[SbomDocument]:
    """
    Write the unit's SBOM to `output_dir / sbom_name`.

    Returns:
        The written document, or None when SBOMs are disabled for the package.

    Raises:
        SbomToolMissingError: mode=native and the tool is absent.
        SbomGenerationError: the native tool ran and failed.
    """
    settings = target.package.sbom
    if not settings.enabled:
        return None

    if settings.mode == MODE_FALLBACK:
        document = _from_lockfile(target, workspace_root, version, epoch)
        mode_used = MODE_FALLBACK
    elif settings.mode == MODE_NATIVE:
        document = _from_native(target, workspace_root)
        mode_used = MODE_NATIVE
    else:
        attempt = attempt_with_fallback(
            lambda: _from_native(target, workspace_root),
            lambda: _from_lockfile(target, workspace_root, version, epoch),
            label=f"sbom {target.label}",
            substitute_on=(SbomToolMissingError,),
        )
        document = attempt.value
        mode_used = MODE_FALLBACK if attempt.fell_back else MODE_NATIVE

    data = serialize(document)
    path = output_dir / sbom_name
    atomic_write_bytes(path, data)
    digest = compute_sha256(path)
    components = document.get("components") or []

    _logger.info(
        "SBOM written",
        extra={
            "unit": target.label,
            "sbom": sbom_name,
            "mode": mode_used,
            "components": len(components),
        },
    )
    return SbomDocument(
        path=path,
        name=sbom_name,
        digest=digest,
        size=len(data),
        mode_used=mode_used,
        component_count=len(components),
        package=target.package.name,
        target=target.target,
    )
