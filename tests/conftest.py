# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Shared pytest fixtures for polyship tests.

Fixtures here are available to every test file automatically. The important
ones:
  - `host`: fixed HostFacts so plans never depend on the machine running tests
  - `fake_tool`: drops a shell script on a temporary PATH, standing in for
    cargo, go, npm, cosign and friends
  - `plan_for`: config mapping -> ReleasePlan against `host`
"""

import os
import stat
import textwrap
from pathlib import Path
from typing import Any, Callable

import pytest

from polyship.config.loader import parse_config
from polyship.release.plan.models import HostFacts, ReleasePlan
from polyship.release.plan.planner import build_plan

# Variables that change signing, version or tool selection behavior.
_ISOLATED_VARIABLES = (
    "SOURCE_DATE_EPOCH",
    "SIGSTORE_ID_TOKEN",
    "ACTIONS_ID_TOKEN_REQUEST_URL",
    "ACTIONS_ID_TOKEN_REQUEST_TOKEN",
    "GITHUB_TOKEN",
    "GH_TOKEN",
    "POLYSHIP_USE_CROSS",
    "CI",
)


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ISOLATED_VARIABLES:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def host() -> HostFacts:
    return HostFacts(
        os="Linux",
        arch="x86_64",
        latest_tag="v1.2.3",
        commit="0123456789abcdef0123456789abcdef01234567",
        source_date_epoch=1700000000,
    )


@pytest.fixture()
def plan_for(host: HostFacts) -> Callable[..., ReleasePlan]:
    def _plan(raw: dict[str, Any], **kwargs: Any) -> ReleasePlan:
        return build_plan(parse_config(raw), host, **kwargs)

    return _plan


@pytest.fixture()
def fake_tool(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[[str, str], Path]:
    """
    Factory for fake executables.

    `fake_tool("cargo", "mkdir -p target/release")` writes a /bin/sh script
    named cargo into a bin directory that is prepended to PATH.
    """
    if os.name == "nt":
        pytest.skip("fake tools are POSIX shell scripts")

    bin_dir = tmp_path / "fake-bin"
    bin_dir.mkdir()
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")

    def _make(name: str, body: str) -> Path:
        script = bin_dir / name
        script.write_text("#!/bin/sh\n" + textwrap.dedent(body), encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script

    return _make


@pytest.fixture()
def rust_workspace(tmp_path: Path) -> Path:
    """A single Rust crate with a lockfile listing two registry dependencies."""
    root = tmp_path / "workspace"
    root.mkdir()
    (root / "Cargo.toml").write_text(
        textwrap.dedent("""\
            [package]
            name = "demo"
            version = "0.1.0"
        """),
        encoding="utf-8",
    )
    (root / "Cargo.lock").write_text(
        textwrap.dedent("""\
            version = 3

            [[package]]
            name = "A"
            version = "1.0"
            source = "registry+https://github.com/rust-lang/crates.io-index"

            [[package]]
            name = "B"
            version = "2.3"
            source = "registry+https://github.com/rust-lang/crates.io-index"

            [[package]]
            name = "demo"
            version = "0.1.0"
        """),
        encoding="utf-8",
    )
    return root


@pytest.fixture()
def fake_cargo(fake_tool: Callable[[str, str], Path]) -> Path:
    """A cargo that "builds" one executable and one non-executable dep-info file."""
    return fake_tool(
        "cargo",
        """\
        mkdir -p target/release
        printf "demo binary" > target/release/demo
        chmod +x target/release/demo
        printf "not a binary" > target/release/demo.d
        """,
    )


@pytest.fixture()
def tmp_config_file(tmp_path: Path) -> Path:
    """The smallest config that passes schema validation."""
    config_content = textwrap.dedent("""\
        project:
          name: demo
          type: rust
        global:
          log_level: DEBUG
    """)
    config_file = tmp_path / "test_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def invalid_config_file(tmp_path: Path) -> Path:
    """Valid YAML that fails schema validation (no project and no packages)."""
    config_content = textwrap.dedent("""\
        global:
          log_level: INFO
    """)
    config_file = tmp_path / "invalid_config.yaml"
    config_file.write_text(config_content, encoding="utf-8")
    return config_file


@pytest.fixture()
def broken_yaml_file(tmp_path: Path) -> Path:
    """A file that isn't valid YAML at all."""
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("{{not: yaml: at: all:::", encoding="utf-8")
    return config_file
