# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
interpreter-packaged strategy: Python, as a PyInstaller bundle or a wheel.

pyinstaller mode
    pyinstaller --noconfirm [--onefile] [--hidden-import X]... [--add-data D]...
                --distpath <scratch> --workpath <scratch>/work <entry>

wheel mode
    <python> -m build --outdir <scratch>

Both modes write into a scratch directory that is cleared first, so stale
files from an earlier run never end up in an archive. Neither mode depends
on the target; the dispatcher builds once per package.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from polyship.config.schema import PyInstallerConfig, PythonConfig
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
from polyship.release.plan.models import BuildKind, BuildTarget

_logger: logging.Logger = get_logger(__name__)

DEFAULT_ENTRY = "main.py"


class InterpreterPackagedBuilder(Builder):
    kind = BuildKind.INTERPRETER_PACKAGED
    target_independent = True

    def build(
        self,
        target: BuildTarget,
        workspace_root: Path,
        *,
        version: str = "",
        source_date_epoch: Optional[int] = None,
    ) -> BuildOutput:
        python = target.package.python or PythonConfig()
        cwd = project_dir(target, workspace_root)
        env = build_environment(target, source_date_epoch)

        if python.mode == "pyinstaller":
            return self._pyinstaller(target, workspace_root, cwd, env, python.pyinstaller or PyInstallerConfig())
        return self._wheel(target, workspace_root, cwd, env)

    def _pyinstaller(
        self,
        target: BuildTarget,
        workspace_root: Path,
        cwd: Path,
        env: dict[str, str],
        options: PyInstallerConfig,
    ) -> BuildOutput:
        out_dir = scratch_dir(target, workspace_root, "pyinstaller")
        dist_dir = out_dir / "dist"
        command = ["pyinstaller", "--noconfirm"]
        if options.mode == "onefile":
            command.append("--onefile")
        for hidden in options.hidden_imports:
            command.extend(["--hidden-import", hidden])
        for data in options.data:
            command.extend(["--add-data", data])
        command.extend(
            [
                "--name",
                target.package.name,
                "--distpath",
                str(dist_dir),
                "--workpath",
                str(out_dir / "work"),
                "--specpath",
                str(out_dir),
                options.entry or DEFAULT_ENTRY,
            ]
        )
        run_build_step(target, command, cwd, env)

        produced = sorted(dist_dir.iterdir()) if dist_dir.is_dir() else []
        return make_output(target, produced, entry_name=target.package.name)

    def _wheel(
        self, target: BuildTarget, workspace_root: Path, cwd: Path, env: dict[str, str]
    ) -> BuildOutput:
        out_dir = scratch_dir(target, workspace_root, "wheel")
        command = [sys.executable, "-m", "build", "--outdir", str(out_dir)]
        run_build_step(target, command, cwd, env)

        produced = [p for p in out_dir.iterdir() if p.is_file()]
        _logger.debug(
            "Python distributions built",
            extra={"unit": target.label, "files": sorted(p.name for p in produced)},
        )
        return make_output(target, produced, entry_name=target.package.name)
