# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Project detection for `polyship init`.

Looks at the workspace root and its immediate subdirectories for the marker
file of each ecosystem and proposes a starter configuration. Detection is a
convenience only; the generated file is meant to be edited.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from polyship.config.exceptions import ConfigError
from polyship.config.schema import (
    BuildConfig,
    NodeBinaryConfig,
    NodeConfig,
    NodeFrontendConfig,
    PackageEntry,
    PolyshipConfig,
    ProjectConfig,
    VersionConfig,
)
from polyship.logging.logger import get_logger

_logger: logging.Logger = get_logger(__name__)

# Checked in this order; the first marker found decides the type.
_MARKERS: tuple[tuple[str, str], ...] = (
    ("Cargo.toml", "rust"),
    ("go.mod", "go"),
    ("package.json", "node"),
    ("pyproject.toml", "python"),
    ("setup.py", "python"),
)

_SKIP_DIRS: frozenset[str] = frozenset(
    {".git", "node_modules", "target", "dist", "build", ".venv", "venv", "__pycache__"}
)


@dataclass(frozen=True)
class DetectedProject:
    name: str
    project_type: str
    path: str
    node_mode: Optional[str] = None


def _detect_type(directory: Path) -> Optional[str]:
    for marker, project_type in _MARKERS:
        if (directory / marker).is_file():
            return project_type
    return None


def _node_mode(directory: Path) -> str:
    """`frontend` when package.json has a build script and no `bin`, else `cli-binary`."""
    try:
        manifest = json.loads((directory / "package.json").read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return "cli-binary"
    if not isinstance(manifest, dict):
        return "cli-binary"
    scripts = manifest.get("scripts") or {}
    if "bin" not in manifest and isinstance(scripts, dict) and "build" in scripts:
        return "frontend"
    return "cli-binary"


def _make(name: str, project_type: str, rel: str, directory: Path) -> DetectedProject:
    mode = _node_mode(directory) if project_type == "node" else None
    return DetectedProject(name=name, project_type=project_type, path=rel, node_mode=mode)


def detect_projects(root: Path) -> list[DetectedProject]:
    """
    Find buildable projects at `root` and one directory below it.

    A marker at the root means the whole workspace is one project, named after
    the directory. Otherwise each subdirectory with a marker becomes a package,
    in name order.
    """
    root_type = _detect_type(root)
    if root_type is not None:
        name = root.resolve().name or "project"
        return [_make(name, root_type, ".", root)]

    found: list[DetectedProject] = []
    for child in sorted(root.iterdir()):
        if not child.is_dir() or child.name in _SKIP_DIRS or child.name.startswith("."):
            continue
        project_type = _detect_type(child)
        if project_type is not None:
            found.append(_make(child.name, project_type, child.name, child))

    _logger.debug("Project detection finished", extra={"root": str(root), "found": len(found)})
    return found


def _node_section(mode: Optional[str]) -> Optional[NodeConfig]:
    if mode == "frontend":
        return NodeConfig(mode="frontend", frontend=NodeFrontendConfig())
    if mode == "cli-binary":
        return NodeConfig(mode="cli-binary", binary=NodeBinaryConfig())
    return None


def default_config(projects: list[DetectedProject]) -> PolyshipConfig:
    """
    Starter configuration for the detected projects.

    Raises:
        ConfigError: Nothing was detected.
    """
    if not projects:
        raise ConfigError(
            "no Rust, Go, Node or Python project found in the workspace or its subdirectories"
        )

    common = {
        "version": VersionConfig(source="git"),
        "build": BuildConfig(targets=["native"]),
    }

    if len(projects) == 1:
        proj = projects[0]
        return PolyshipConfig(
            project=ProjectConfig(name=proj.name, project_type=proj.project_type, path=proj.path),
            node=_node_section(proj.node_mode),
            **common,
        )

    entries = [
        PackageEntry(
            name=proj.name,
            project_type=proj.project_type,
            path=proj.path,
            node=_node_section(proj.node_mode),
        )
        for proj in projects
    ]
    return PolyshipConfig(packages=entries, **common)
