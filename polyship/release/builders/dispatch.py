# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Builder dispatch: BuildKind -> builder, through one closed mapping.

`dispatch_build` is the stateless entry point. `BuildDispatcher` is what the
orchestrator uses: it holds one run's worth of state so that strategies whose
output does not depend on the target (web bundles, Python packages) run once
per package even when several targets of that package build in parallel.
Later units of the same package get the first unit's output, or its error.
"""

import logging
import threading
from pathlib import Path
from typing import Optional

from polyship.logging.logger import get_logger
from polyship.release.builders.base import Builder, BuildOutput
from polyship.release.builders.bundle import WebBundleBuilder
from polyship.release.builders.compiled import CompiledBinaryBuilder
from polyship.release.builders.executable import NativeExecutableBuilder
from polyship.release.builders.interpreter import InterpreterPackagedBuilder
from polyship.release.plan.models import BuildKind, BuildTarget

_logger: logging.Logger = get_logger(__name__)

BUILDERS: dict[BuildKind, Builder] = {
    BuildKind.COMPILED_BINARY: CompiledBinaryBuilder(),
    BuildKind.WEB_BUNDLE: WebBundleBuilder(),
    BuildKind.NATIVE_EXECUTABLE: NativeExecutableBuilder(),
    BuildKind.INTERPRETER_PACKAGED: InterpreterPackagedBuilder(),
}


def builder_for(kind: BuildKind) -> Builder:
    return BUILDERS[kind]


def dispatch_build(
    target: BuildTarget,
    workspace_root: Path,
    *,
    version: str = "",
    source_date_epoch: Optional[int] = None,
) -> BuildOutput:
    """Build one unit with the strategy for its package's kind."""
    builder = builder_for(target.package.kind)
    _logger.info(
        "Building unit",
        extra={"unit": target.label, "kind": target.package.kind.value},
    )
    return builder.build(
        target, workspace_root, version=version, source_date_epoch=source_date_epoch
    )


class BuildDispatcher:
    """Per-run dispatcher that shares target-independent builds."""

    def __init__(
        self,
        workspace_root: Path,
        version: str = "",
        source_date_epoch: Optional[int] = None,
    ) -> None:
        self.workspace_root = workspace_root
        self.version = version
        self.source_date_epoch = source_date_epoch
        self._guard = threading.Lock()
        self._package_locks: dict[str, threading.Lock] = {}
        self._shared: dict[str, BuildOutput | Exception] = {}

    def _lock_for(self, package: str) -> threading.Lock:
        with self._guard:
            return self._package_locks.setdefault(package, threading.Lock())

    def build(self, target: BuildTarget) -> BuildOutput:
        builder = builder_for(target.package.kind)
        if not builder.target_independent:
            return dispatch_build(
                target,
                self.workspace_root,
                version=self.version,
                source_date_epoch=self.source_date_epoch,
            )

        name = target.package.name
        with self._lock_for(name):
            if name not in self._shared:
                try:
                    self._shared[name] = dispatch_build(
                        target,
                        self.workspace_root,
                        version=self.version,
                        source_date_epoch=self.source_date_epoch,
                    )
                except Exception as err:
                    self._shared[name] = err
            shared = self._shared[name]

        if isinstance(shared, Exception):
            raise shared
        return BuildOutput(
            package=shared.package,
            target=target.target,
            paths=shared.paths,
            entry_name=shared.entry_name,
            is_tree=shared.is_tree,
        )
