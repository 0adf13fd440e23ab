# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Fixtures for release tests that need a finished output directory.

`release_dir` runs the real pipeline once against the fake cargo from the
root conftest: one Rust package, fallback SBOM, fallback-hash signatures.
"""

from pathlib import Path

import pytest

from polyship.release.pipeline import ReleasePipeline, RunResult

SIGNED_CONFIG = {
    "project": {"name": "demo", "type": "rust"},
    "version": {"source": "manual", "manual": "1.2.3"},
    "sbom": {"mode": "fallback"},
    "sign": {"enabled": True, "method": "fallback-hash"},
}


@pytest.fixture()
def release_run(rust_workspace: Path, fake_cargo: Path, plan_for, tmp_path: Path) -> RunResult:
    plan = plan_for(SIGNED_CONFIG)
    pipeline = ReleasePipeline(plan, rust_workspace, tmp_path / "dist", max_workers=2)
    return pipeline.run()


@pytest.fixture()
def release_dir(release_run: RunResult) -> Path:
    return release_run.output_dir
