# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
native-executable strategy: a Node CLI packed into a standalone binary.

    npm ci
    <binary.tool> <entry> --targets <T> --output <scratch>/<name>

`binary.tool` defaults to `pkg`. The `--targets` value is `binary.targets`
joined with commas when configured, otherwise the unit's own target. Every
file the tool writes into the scratch directory whose name starts with the
package name is an output.
"""

from pathlib import Path
from typing import Optional

from polyship.config.schema import NodeBinaryConfig
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

DEFAULT_ENTRY = "index.js"


class NativeExecutableBuilder(Builder):
    kind = BuildKind.NATIVE_EXECUTABLE

    def build(
        self,
        target: BuildTarget,
        workspace_root: Path,
        *,
        version: str = "",
        source_date_epoch: Optional[int] = None,
    ) -> BuildOutput:
        node = target.package.node
        binary = (node.binary if node is not None else None) or NodeBinaryConfig()
        cwd = project_dir(target, workspace_root)
        env = build_environment(target, source_date_epoch)
        out_dir = scratch_dir(target, workspace_root, "node", target.target)

        run_build_step(target, ["npm", "ci"], cwd, env)

        pkg_targets = ",".join(binary.targets) if binary.targets else target.target
        command = [
            binary.tool,
            binary.entry or DEFAULT_ENTRY,
            "--targets",
            pkg_targets,
            "--output",
            str(out_dir / target.package.name),
        ]
        run_build_step(target, command, cwd, env)

        produced = [
            p for p in out_dir.iterdir() if p.is_file() and p.name.startswith(target.package.name)
        ]
        return make_output(target, produced, entry_name=target.package.name)
