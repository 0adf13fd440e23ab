# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Build provenance: where and with what a release was produced.

provenance.json captures the toolchain versions, the source revision, the
host, and whether the run happened in CI. It is informational: verify never
trusts it, and it is not a manifest entry. Its job is to let someone
rebuilding a release check they are in the same conditions, which is what
`compare_provenance` is for.

Toolchain probing is best-effort. A tool that is missing or fails is
recorded as "not_installed" rather than failing the release.
"""

import json
import logging
import platform
import subprocess
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Iterable, Optional

from polyship import __version__
from polyship.logging.logger import get_logger
from polyship.release.plan.models import ReleasePlan
from polyship.runtime.environment import is_ci
from polyship.utils.filesystem import atomic_write

_logger: logging.Logger = get_logger(__name__)

NOT_INSTALLED = "not_installed"

# project type -> command printing the toolchain version
_TOOLCHAIN_PROBES: dict[str, list[str]] = {
    "rust": ["rustc", "--version"],
    "go": ["go", "version"],
    "node": ["node", "--version"],
    "python": ["python3", "--version"],
}


@dataclass(frozen=True)
class ProvenanceRecord:
    """Everything about the run that is not part of the artifacts themselves."""

    version: str
    tag: Optional[str]
    commit: Optional[str]
    repo_url: Optional[str]
    host_os: str
    host_arch: str
    host_triple: str
    ci: bool
    generated_at: str
    source_date_epoch: Optional[int]
    python_version: str
    commit_time: Optional[int] = None
    polyship_version: str = __version__
    toolchains: dict[str, str] = field(default_factory=dict)
    units: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Difference:
    """A single difference between two provenance records."""

    field: str
    value_a: str
    value_b: str


def _probe(command: list[str]) -> str:
    try:
        result = subprocess.run(
            command, capture_output=True, text=True, errors="replace", timeout=30, check=False
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return NOT_INSTALLED
    output = (result.stdout or result.stderr).strip()
    if result.returncode != 0 or not output:
        return NOT_INSTALLED
    return output.splitlines()[0]


def toolchain_versions(project_types: Iterable[str]) -> dict[str, str]:
    """Versions of the toolchains the plan's project types use, sorted by type."""
    versions: dict[str, str] = {}
    for project_type in sorted(set(project_types)):
        probe = _TOOLCHAIN_PROBES.get(project_type)
        if probe is not None:
            versions[project_type] = _probe(probe)
    return versions


def collect_provenance(
    plan: ReleasePlan,
    generated_at: str,
    repo_url: Optional[str] = None,
    units: Optional[list[str]] = None,
    commit_time: Optional[int] = None,
) -> ProvenanceRecord:
    """
    Snapshot the run's environment.

    Args:
        plan: The run's plan, for version, host facts and project types.
        generated_at: The run timestamp shared with the manifest.
        repo_url: origin URL, when known.
        units: Labels of the units that completed.
        commit_time: Committer timestamp of HEAD, when known.
    """
    record = ProvenanceRecord(
        version=plan.version.value,
        tag=plan.version.tag,
        commit=plan.host.commit,
        repo_url=repo_url,
        host_os=plan.host.os,
        host_arch=plan.host.arch,
        host_triple=plan.host.triple,
        ci=is_ci(),
        generated_at=generated_at,
        source_date_epoch=plan.source_date_epoch,
        python_version=platform.python_version(),
        commit_time=commit_time,
        toolchains=toolchain_versions(p.project_type for p in plan.packages),
        units=sorted(units or []),
    )
    _logger.info(
        "Provenance collected",
        extra={"toolchains": record.toolchains, "ci": record.ci, "commit": record.commit},
    )
    return record


def compare_provenance(a: ProvenanceRecord, b: ProvenanceRecord) -> list[Difference]:
    """
    Differences that matter for reproducing a build.

    Timestamps and the CI flag are ignored; they are expected to differ.
    commit_time follows from commit, which is compared.
    """
    diffs: list[Difference] = []
    for field_name in ["version", "commit", "host_triple", "source_date_epoch", "python_version"]:
        val_a = getattr(a, field_name)
        val_b = getattr(b, field_name)
        if val_a != val_b:
            diffs.append(Difference(field=field_name, value_a=str(val_a), value_b=str(val_b)))

    for tool in sorted(set(a.toolchains) | set(b.toolchains)):
        ver_a = a.toolchains.get(tool, NOT_INSTALLED)
        ver_b = b.toolchains.get(tool, NOT_INSTALLED)
        if ver_a != ver_b:
            diffs.append(Difference(field=f"toolchain:{tool}", value_a=ver_a, value_b=ver_b))

    if diffs:
        _logger.warning("Provenance differences detected", extra={"difference_count": len(diffs)})
    return diffs


def write_provenance(record: ProvenanceRecord, path: Path) -> None:
    content = json.dumps(asdict(record), indent=2, sort_keys=True) + "\n"
    atomic_write(path, content)
    _logger.info("Provenance written", extra={"path": str(path)})


def load_provenance(path: Path) -> ProvenanceRecord:
    """
    Raises:
        FileNotFoundError: If file doesn't exist.
    """
    if not path.is_file():
        raise FileNotFoundError(f"Provenance file not found: {path}")

    data = json.loads(path.read_text(encoding="utf-8"))
    epoch = data.get("source_date_epoch")
    commit_time = data.get("commit_time")
    return ProvenanceRecord(
        version=str(data.get("version", "")),
        tag=data.get("tag"),
        commit=data.get("commit"),
        repo_url=data.get("repo_url"),
        host_os=str(data.get("host_os", "")),
        host_arch=str(data.get("host_arch", "")),
        host_triple=str(data.get("host_triple", "")),
        ci=bool(data.get("ci", False)),
        generated_at=str(data.get("generated_at", "")),
        source_date_epoch=int(epoch) if epoch is not None else None,
        python_version=str(data.get("python_version", "")),
        commit_time=int(commit_time) if commit_time is not None else None,
        polyship_version=str(data.get("polyship_version", "")),
        toolchains=dict(data.get("toolchains") or {}),
        units=list(data.get("units") or []),
    )
