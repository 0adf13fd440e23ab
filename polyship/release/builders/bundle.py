# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
web-bundle strategy: a Node frontend built into a static directory tree.

    npm ci
    <frontend.build_cmd>   (through the shell)   or   npm run build

The output is the `frontend.build_dir` tree (default `dist`), archived with
paths relative to that directory. The bundle does not depend on the target,
so the dispatcher builds it once per package and shares the result.
"""

import logging
from pathlib import Path
from typing import Optional

from polyship.config.schema import NodeFrontendConfig
from polyship.logging.logger import get_logger
from polyship.release.builders.base import (
    Builder,
    BuildOutput,
    build_environment,
    make_output,
    project_dir,
    run_build_step,
)
from polyship.release.errors import BuildFailedError
from polyship.release.plan.models import BuildKind, BuildTarget

_logger: logging.Logger = get_logger(__name__)


class WebBundleBuilder(Builder):
    kind = BuildKind.WEB_BUNDLE
    target_independent = True

    def build(
        self,
        target: BuildTarget,
        workspace_root: Path,
        *,
        version: str = "",
        source_date_epoch: Optional[int] = None,
    ) -> BuildOutput:
        node = target.package.node
        frontend = (node.frontend if node is not None else None) or NodeFrontendConfig()
        cwd = project_dir(target, workspace_root)
        env = build_environment(target, source_date_epoch)

        run_build_step(target, ["npm", "ci"], cwd, env)
        if frontend.build_cmd:
            run_build_step(target, [frontend.build_cmd], cwd, env, shell=True)
        else:
            run_build_step(target, ["npm", "run", "build"], cwd, env)

        build_dir = cwd / frontend.build_dir
        if not build_dir.is_dir():
            raise BuildFailedError(
                f"{target.label}: frontend build_dir '{frontend.build_dir}' not found after build"
            )
        if not any(p.is_file() for p in build_dir.rglob("*")):
            raise BuildFailedError(f"{target.label}: frontend build_dir '{frontend.build_dir}' is empty")

        _logger.debug("Frontend bundle built", extra={"unit": target.label, "dir": str(build_dir)})
        return make_output(target, [build_dir], entry_name=target.package.name)
