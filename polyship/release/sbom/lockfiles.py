# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Dependency extraction from lockfiles, for SBOMs built without a native tool.

Versions are copied verbatim. An entry with no concrete version (a range, a
path dependency, a link) is skipped rather than guessed, and the project
being released is never listed as its own dependency.

Supported inputs, by project type, first one found wins:

    rust    Cargo.lock (project dir, then workspace root)
    go      go.mod require directives
    node    package-lock.json (lockfileVersion 1, 2 and 3)
    python  poetry.lock, uv.lock, Pipfile.lock, requirements.txt (== pins only)
"""

import json
import logging
import re
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import quote

from polyship.logging.logger import get_logger
from polyship.release.errors import SbomGenerationError

_logger: logging.Logger = get_logger(__name__)


@dataclass(frozen=True, order=True)
class Component:
    """One third-party dependency as it will appear in the SBOM."""

    name: str
    version: str
    purl: str


def _purl(ecosystem: str, name: str, version: str) -> str:
    if ecosystem == "pypi":
        name = re.sub(r"[-_.]+", "-", name).lower()
    if ecosystem == "npm" and name.startswith("@"):
        scope, _, bare = name.partition("/")
        encoded = f"{quote(scope, safe='')}/{quote(bare, safe='')}"
    elif ecosystem == "golang":
        encoded = quote(name, safe="/")
    else:
        encoded = quote(name, safe="")
    return f"pkg:{ecosystem}/{encoded}@{quote(version, safe='+')}"


def _component(ecosystem: str, name: str, version: Any) -> Optional[Component]:
    if not isinstance(name, str) or not name:
        return None
    if not isinstance(version, str) or not version.strip():
        return None
    version = version.strip()
    return Component(name=name, version=version, purl=_purl(ecosystem, name, version))


def parse_cargo_lock(path: Path) -> list[Component]:
    """[[package]] entries with a `source`; local crates (the project itself) have none."""
    data = tomllib.loads(path.read_text(encoding="utf-8"))
    found: list[Component] = []
    for entry in data.get("package", []):
        if not entry.get("source"):
            continue
        comp = _component("cargo", entry.get("name"), entry.get("version"))
        if comp is not None:
            found.append(comp)
    return found


_GO_REQUIRE_LINE = re.compile(r"^\s*([^\s()]+)\s+(v[^\s]+)")


def parse_go_mod(path: Path) -> list[Component]:
    """`require` directives, single-line and block form. The `module` line is the project."""
    found: list[Component] = []
    in_block = False
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.split("//", 1)[0].strip()
        if not line:
            continue
        if in_block:
            if line.startswith(")"):
                in_block = False
                continue
            match = _GO_REQUIRE_LINE.match(line)
        elif line.startswith("require"):
            rest = line[len("require"):].strip()
            if rest.startswith("("):
                in_block = True
                continue
            match = _GO_REQUIRE_LINE.match(rest)
        else:
            continue
        if match:
            comp = _component("golang", match.group(1), match.group(2))
            if comp is not None:
                found.append(comp)
    return found


def _walk_npm_v1(deps: dict[str, Any], found: list[Component]) -> None:
    for name, entry in deps.items():
        if not isinstance(entry, dict):
            continue
        comp = _component("npm", name, entry.get("version"))
        if comp is not None and not entry.get("version", "").startswith(("file:", "link:")):
            found.append(comp)
        nested = entry.get("dependencies")
        if isinstance(nested, dict):
            _walk_npm_v1(nested, found)


def parse_package_lock(path: Path) -> list[Component]:
    """
    lockfileVersion 2/3 read the `packages` map, keyed by node_modules path;
    version 1 walks the nested `dependencies` tree. The "" key is the project.
    """
    data = json.loads(path.read_text(encoding="utf-8"))
    found: list[Component] = []
    packages = data.get("packages")
    if isinstance(packages, dict) and packages:
        for key, entry in packages.items():
            if not key or not isinstance(entry, dict) or entry.get("link"):
                continue
            marker = "node_modules/"
            if marker not in key:
                # workspace members live outside node_modules
                continue
            name = entry.get("name") or key.rsplit(marker, 1)[-1]
            comp = _component("npm", name, entry.get("version"))
            if comp is not None:
                found.append(comp)
        return found

    deps = data.get("dependencies")
    if isinstance(deps, dict):
        _walk_npm_v1(deps, found)
    return found


def parse_poetry_lock(path: Path) -> list[Component]:
    data = tomllib.loads(path.read_text(encoding="utf-8"))
    found: list[Component] = []
    for entry in data.get("package", []):
        comp = _component("pypi", entry.get("name"), entry.get("version"))
        if comp is not None:
            found.append(comp)
    return found


def parse_uv_lock(path: Path) -> list[Component]:
    """The project shows up with an editable or virtual source; it is skipped."""
    data = tomllib.loads(path.read_text(encoding="utf-8"))
    found: list[Component] = []
    for entry in data.get("package", []):
        source = entry.get("source") or {}
        if isinstance(source, dict) and ("editable" in source or "virtual" in source):
            continue
        comp = _component("pypi", entry.get("name"), entry.get("version"))
        if comp is not None:
            found.append(comp)
    return found


def parse_pipfile_lock(path: Path) -> list[Component]:
    """The `default` section; versions are stored as `==X.Y`."""
    data = json.loads(path.read_text(encoding="utf-8"))
    found: list[Component] = []
    for name, entry in (data.get("default") or {}).items():
        if not isinstance(entry, dict):
            continue
        version = entry.get("version")
        if not isinstance(version, str) or not version.startswith("==") or version.startswith("==="):
            continue
        comp = _component("pypi", name, version[2:])
        if comp is not None:
            found.append(comp)
    return found


_REQUIREMENT_PIN = re.compile(r"^([A-Za-z0-9][A-Za-z0-9._-]*)(?:\[[^\]]*\])?\s*==\s*([^\s;,*]+)\s*(?:;.*)?$")


def parse_requirements(path: Path) -> list[Component]:
    """Only exact `name==version` pins; ranges, URLs and options are skipped."""
    found: list[Component] = []
    for raw in path.read_text(encoding="utf-8").splitlines():
        line = raw.split(" #", 1)[0].strip()
        if not line or line.startswith(("#", "-")):
            continue
        if "===" in line:
            continue
        match = _REQUIREMENT_PIN.match(line)
        if match is None:
            continue
        comp = _component("pypi", match.group(1), match.group(2))
        if comp is not None:
            found.append(comp)
    return found


_LOCKFILES: dict[str, tuple[tuple[str, Callable[[Path], list[Component]]], ...]] = {
    "rust": (("Cargo.lock", parse_cargo_lock),),
    "go": (("go.mod", parse_go_mod),),
    "node": (("package-lock.json", parse_package_lock),),
    "python": (
        ("poetry.lock", parse_poetry_lock),
        ("uv.lock", parse_uv_lock),
        ("Pipfile.lock", parse_pipfile_lock),
        ("requirements.txt", parse_requirements),
    ),
}


def find_lockfile(project_type: str, project_dir: Path, workspace_root: Path) -> Optional[Path]:
    """First supported lockfile for the project, looking in the project dir then the workspace root."""
    for directory in (project_dir, workspace_root):
        for file_name, _ in _LOCKFILES.get(project_type, ()):
            candidate = directory / file_name
            if candidate.is_file():
                return candidate
    return None


def read_components(project_type: str, project_dir: Path, workspace_root: Path) -> tuple[list[Component], Optional[Path]]:
    """
    Components from the project's lockfile, deduplicated and sorted.

    Returns:
        (components, lockfile used). No lockfile gives ([], None) and a warning.

    Raises:
        SbomGenerationError: The lockfile exists but cannot be decoded or parsed.
    """
    lockfile = find_lockfile(project_type, project_dir, workspace_root)
    if lockfile is None:
        _logger.warning(
            "No lockfile found, SBOM will list no components",
            extra={"project_type": project_type, "project_dir": str(project_dir)},
        )
        return [], None

    parser = dict(_LOCKFILES[project_type])[lockfile.name]
    try:
        components = sorted(set(parser(lockfile)))
    except (ValueError, KeyError, TypeError, AttributeError) as err:
        # decode and format errors (UnicodeDecodeError, TOMLDecodeError, JSONDecodeError) are ValueErrors
        raise SbomGenerationError(f"{lockfile}: unreadable lockfile: {err}") from err
    _logger.debug(
        "Lockfile parsed",
        extra={"lockfile": str(lockfile), "components": len(components)},
    )
    return components, lockfile
