# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Builder contract and the helpers every build strategy shares.

A builder turns one BuildTarget into a BuildOutput: the set of files (or one
directory tree) that the packager will archive. It either succeeds with a
non-empty output, or raises one of:

    ToolchainMissingError  the build tool is not on PATH
    BuildFailedError       the tool exited non-zero, or produced nothing

There are no retries and no timeouts. The orchestrator decides what a failed
unit means for the rest of the run.
"""

import logging
import os
import shutil
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from polyship.logging.logger import get_logger
from polyship.release.errors import BuildFailedError, ToolchainMissingError
from polyship.release.plan.models import BuildKind, BuildTarget
from polyship.release.process import output_tail, run_tool

_logger: logging.Logger = get_logger(__name__)

# Scratch directory inside each project for per-target build outputs.
SCRATCH_DIR = ".polyship-build"


@dataclass(frozen=True)
class BuildOutput:
    """
    What one unit produced.

    Files are archived by basename. A directory contributes its contents by
    path relative to that directory; `is_tree` is set when any path is one.
    """

    package: str
    target: str
    paths: tuple[Path, ...]
    entry_name: str
    is_tree: bool = False

    @property
    def key(self) -> tuple[str, str]:
        return (self.package, self.target)


def make_output(target: BuildTarget, paths: Sequence[Path], entry_name: Optional[str] = None) -> BuildOutput:
    """
    Wrap produced paths into a BuildOutput, or fail if there are none.

    Raises:
        BuildFailedError: `paths` is empty.
    """
    ordered = tuple(sorted(paths))
    if not ordered:
        raise BuildFailedError(f"{target.label}: build succeeded but produced no outputs")
    return BuildOutput(
        package=target.package.name,
        target=target.target,
        paths=ordered,
        entry_name=entry_name or ordered[0].name,
        is_tree=any(p.is_dir() for p in ordered),
    )


def build_environment(
    target: BuildTarget,
    source_date_epoch: Optional[int] = None,
    strategy_vars: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """Host environment, then `build.env` overrides, then strategy variables."""
    env = dict(os.environ)
    if source_date_epoch is not None:
        env["SOURCE_DATE_EPOCH"] = str(source_date_epoch)
    env.update(target.package.env_overrides)
    if strategy_vars:
        env.update(strategy_vars)
    return env


def project_dir(target: BuildTarget, workspace_root: Path) -> Path:
    return (workspace_root / target.package.root_path).resolve()


def scratch_dir(target: BuildTarget, workspace_root: Path, *parts: str) -> Path:
    """A fresh per-unit directory for tools that take an output path."""
    path = project_dir(target, workspace_root) / SCRATCH_DIR
    for part in parts:
        path = path / part.replace("/", "_")
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)
    return path


def run_build_step(
    target: BuildTarget,
    command: Sequence[str],
    cwd: Path,
    env: dict[str, str],
    shell: bool = False,
) -> None:
    """
    Run one build command for `target`.

    Raises:
        ToolchainMissingError: The tool is not on PATH.
        BuildFailedError: The tool exited non-zero.
    """
    result = run_tool(command, cwd=cwd, env=env, missing=ToolchainMissingError, shell=shell)
    if result.returncode != 0:
        raise BuildFailedError(
            f"{target.label}: `{' '.join(command)}` exited with status {result.returncode}\n"
            f"{output_tail(result)}",
            command=list(command),
            returncode=result.returncode,
            output=(result.stdout or "") + (result.stderr or ""),
        )


class Builder(ABC):
    """One build strategy."""

    kind: BuildKind
    # Output is the same for every target of a package.
    target_independent: bool = False

    @abstractmethod
    def build(
        self,
        target: BuildTarget,
        workspace_root: Path,
        *,
        version: str = "",
        source_date_epoch: Optional[int] = None,
    ) -> BuildOutput:
        """Build one unit. See the module docstring for the error contract."""
