# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
compiled-binary strategy: Rust (cargo / cross) and Go.

Rust
    cargo build --release [--target T]
    Outputs are the executable files directly inside target/[T/]release.
    For non-native targets `cross` is used instead of cargo when it is on
    PATH or POLYSHIP_USE_CROSS is set.

Go
    go build -trimpath -ldflags "-X main.version=V" -o <scratch>/<name>
    GOOS/GOARCH come from the target, which may be a Rust-style triple
    (x86_64-unknown-linux-gnu) or Go's own os/arch form (linux/amd64).
"""

import logging
import os
import stat
from pathlib import Path
from typing import Optional

from polyship.logging.logger import get_logger
from polyship.release.builders.base import (
    Builder,
    BuildOutput,
    build_environment,
    make_output,
    project_dir,
    run_build_step,
    scratch_dir,
)
from polyship.release.errors import BuildFailedError
from polyship.release.plan.models import BuildKind, BuildTarget
from polyship.release.process import find_tool

_logger: logging.Logger = get_logger(__name__)

_GO_ARCH: dict[str, str] = {
    "x86_64": "amd64",
    "aarch64": "arm64",
    "i686": "386",
    "armv7": "arm",
    "powerpc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64gc": "riscv64",
}

_GO_OS: dict[str, str] = {
    "linux": "linux",
    "darwin": "darwin",
    "windows": "windows",
    "freebsd": "freebsd",
}


def go_platform(target: str) -> tuple[str, str]:
    """
    Map a target identifier to (GOOS, GOARCH).

    Raises:
        BuildFailedError: The target names no known os or architecture.
    """
    if "/" in target:
        goos, _, goarch = target.partition("/")
        if goos and goarch:
            return goos, goarch

    parts = target.split("-")
    goarch = _GO_ARCH.get(parts[0])
    goos = next((_GO_OS[p] for p in parts[1:] if p in _GO_OS), None)
    if goarch is None or goos is None:
        raise BuildFailedError(f"cannot derive GOOS/GOARCH from target '{target}'")
    return goos, goarch


def _is_executable(path: Path) -> bool:
    if path.suffix == ".exe":
        return True
    if os.name == "nt":
        return False
    return bool(path.stat().st_mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))


class CompiledBinaryBuilder(Builder):
    kind = BuildKind.COMPILED_BINARY

    def build(
        self,
        target: BuildTarget,
        workspace_root: Path,
        *,
        version: str = "",
        source_date_epoch: Optional[int] = None,
    ) -> BuildOutput:
        if target.package.project_type == "go":
            return self._build_go(target, workspace_root, version, source_date_epoch)
        return self._build_rust(target, workspace_root, source_date_epoch)

    def _build_rust(
        self, target: BuildTarget, workspace_root: Path, source_date_epoch: Optional[int]
    ) -> BuildOutput:
        cwd = project_dir(target, workspace_root)
        env = build_environment(target, source_date_epoch)

        if target.is_native:
            command = ["cargo", "build", "--release"]
            release_dir = cwd / "target" / "release"
        else:
            use_cross = bool(env.get("POLYSHIP_USE_CROSS")) or find_tool("cross", env) is not None
            tool = "cross" if use_cross else "cargo"
            command = [tool, "build", "--release", "--target", target.target]
            release_dir = cwd / "target" / target.target / "release"

        run_build_step(target, command, cwd, env)

        binaries: list[Path] = []
        if release_dir.is_dir():
            for candidate in release_dir.iterdir():
                if candidate.is_file() and not candidate.name.startswith(".") and _is_executable(candidate):
                    binaries.append(candidate)

        _logger.debug(
            "Rust build finished",
            extra={"unit": target.label, "binaries": [b.name for b in binaries]},
        )
        return make_output(target, binaries, entry_name=target.package.name)

    def _build_go(
        self,
        target: BuildTarget,
        workspace_root: Path,
        version: str,
        source_date_epoch: Optional[int],
    ) -> BuildOutput:
        goos, goarch = go_platform(target.target)
        cwd = project_dir(target, workspace_root)
        env = build_environment(
            target, source_date_epoch, {"GOOS": goos, "GOARCH": goarch}
        )

        binary_name = target.package.name + (".exe" if goos == "windows" else "")
        out_dir = scratch_dir(target, workspace_root, "go", target.target)
        command = [
            "go",
            "build",
            "-trimpath",
            "-ldflags",
            f"-X main.version={version}",
            "-o",
            str(out_dir / binary_name),
        ]
        run_build_step(target, command, cwd, env)

        produced = [p for p in out_dir.iterdir() if p.is_file()]
        return make_output(target, produced, entry_name=binary_name)
