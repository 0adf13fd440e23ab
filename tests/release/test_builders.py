# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the four build strategies and the dispatcher.

No real toolchain is needed: every tool is a small shell script on a
temporary PATH (see the `fake_tool` fixture). The scripts create the files the
real tool would, so we can check command lines, environment and output
collection.
"""

import json
from pathlib import Path
from typing import Callable

import pytest

from polyship.release.builders.base import SCRATCH_DIR
from polyship.release.builders.compiled import go_platform
from polyship.release.builders.dispatch import BuildDispatcher, dispatch_build
from polyship.release.errors import BuildFailedError, ToolchainMissingError
from polyship.release.plan.models import ReleasePlan

FakeTool = Callable[[str, str], Path]
PlanFor = Callable[..., ReleasePlan]

HOST_TRIPLE = "x86_64-unknown-linux-gnu"


def _workspace(tmp_path: Path, *dirs: str) -> Path:
    root = tmp_path / "ws"
    for d in dirs:
        (root / d).mkdir(parents=True, exist_ok=True)
    root.mkdir(exist_ok=True)
    return root


class TestGoPlatform:
    @pytest.mark.parametrize(
        ("target", "expected"),
        [
            ("x86_64-unknown-linux-gnu", ("linux", "amd64")),
            ("aarch64-apple-darwin", ("darwin", "arm64")),
            ("x86_64-pc-windows-msvc", ("windows", "amd64")),
            ("linux/arm64", ("linux", "arm64")),
        ],
    )
    def test_maps_targets(self, target: str, expected: tuple[str, str]) -> None:
        assert go_platform(target) == expected

    def test_unknown_target_fails(self) -> None:
        with pytest.raises(BuildFailedError):
            go_platform("wasm32-unknown-unknown")


class TestCompiledBinaryRust:
    def test_native_build_collects_executables(
        self, rust_workspace: Path, fake_cargo: Path, plan_for: PlanFor
    ) -> None:
        plan = plan_for({"project": {"name": "demo", "type": "rust"}})
        output = dispatch_build(plan.targets[0], rust_workspace)

        assert [p.name for p in output.paths] == ["demo"]
        assert output.entry_name == "demo"
        assert output.target == HOST_TRIPLE

    def test_cross_target_uses_cross_when_available(
        self, rust_workspace: Path, fake_tool: FakeTool, plan_for: PlanFor
    ) -> None:
        fake_tool(
            "cross",
            """\
            echo "$@" > cross-args.txt
            mkdir -p "target/$4/release"
            printf "arm binary" > "target/$4/release/demo"
            chmod +x "target/$4/release/demo"
            """,
        )
        plan = plan_for(
            {
                "project": {"name": "demo", "type": "rust"},
                "build": {"targets": ["aarch64-unknown-linux-gnu"]},
            }
        )
        output = dispatch_build(plan.targets[0], rust_workspace)

        args = (rust_workspace / "cross-args.txt").read_text(encoding="utf-8").split()
        assert args == ["build", "--release", "--target", "aarch64-unknown-linux-gnu"]
        assert output.paths[0].parent.name == "release"
        assert output.paths[0].read_text(encoding="utf-8") == "arm binary"

    def test_missing_cargo_is_toolchain_missing(
        self, rust_workspace: Path, tmp_path: Path, monkeypatch: pytest.MonkeyPatch, plan_for: PlanFor
    ) -> None:
        empty = tmp_path / "empty-bin"
        empty.mkdir()
        monkeypatch.setenv("PATH", str(empty))
        plan = plan_for({"project": {"name": "demo", "type": "rust"}})

        with pytest.raises(ToolchainMissingError) as excinfo:
            dispatch_build(plan.targets[0], rust_workspace)
        assert excinfo.value.tool == "cargo"

    def test_failing_cargo_is_build_failed_with_output(
        self, rust_workspace: Path, fake_tool: FakeTool, plan_for: PlanFor
    ) -> None:
        fake_tool("cargo", 'echo "error[E0425]: boom" >&2\nexit 101\n')
        plan = plan_for({"project": {"name": "demo", "type": "rust"}})

        with pytest.raises(BuildFailedError) as excinfo:
            dispatch_build(plan.targets[0], rust_workspace)
        assert excinfo.value.returncode == 101
        assert "boom" in excinfo.value.output
        assert excinfo.value.command[:2] == ["cargo", "build"]

    def test_successful_build_with_no_outputs_fails(
        self, rust_workspace: Path, fake_tool: FakeTool, plan_for: PlanFor
    ) -> None:
        fake_tool("cargo", "exit 0\n")
        plan = plan_for({"project": {"name": "demo", "type": "rust"}})

        with pytest.raises(BuildFailedError, match="no outputs"):
            dispatch_build(plan.targets[0], rust_workspace)

    def test_environment_carries_epoch_and_overrides(
        self, rust_workspace: Path, fake_tool: FakeTool, plan_for: PlanFor
    ) -> None:
        fake_tool(
            "cargo",
            """\
            mkdir -p target/release
            echo "$SOURCE_DATE_EPOCH $RUSTFLAGS" > target/release/env.txt
            printf bin > target/release/demo
            chmod +x target/release/demo
            """,
        )
        plan = plan_for(
            {
                "project": {"name": "demo", "type": "rust"},
                "build": {"env": {"RUSTFLAGS": "-Cstrip=symbols"}},
            }
        )
        dispatch_build(plan.targets[0], rust_workspace, source_date_epoch=1700000000)

        env_line = (rust_workspace / "target" / "release" / "env.txt").read_text(encoding="utf-8")
        assert env_line.split() == ["1700000000", "-Cstrip=symbols"]


class TestCompiledBinaryGo:
    GO_SCRIPT = """\
        out=""
        while [ $# -gt 0 ]; do
          if [ "$1" = "-o" ]; then out="$2"; fi
          shift
        done
        printf "%s/%s" "$GOOS" "$GOARCH" > "$out"
    """

    def test_go_build_sets_platform_and_names_binary(
        self, tmp_path: Path, fake_tool: FakeTool, plan_for: PlanFor
    ) -> None:
        root = _workspace(tmp_path, "api")
        fake_tool("go", self.GO_SCRIPT)
        plan = plan_for(
            {
                "project": {"name": "api", "type": "go", "path": "api"},
                "build": {"targets": ["x86_64-pc-windows-msvc", "linux/arm64"]},
            }
        )

        windows = dispatch_build(plan.targets[0], root, version="1.0.0")
        linux = dispatch_build(plan.targets[1], root, version="1.0.0")

        assert [p.name for p in windows.paths] == ["api.exe"]
        assert windows.paths[0].read_text(encoding="utf-8") == "windows/amd64"
        assert [p.name for p in linux.paths] == ["api"]
        assert linux.paths[0].read_text(encoding="utf-8") == "linux/arm64"
        assert SCRATCH_DIR in str(linux.paths[0])


class TestWebBundle:
    NPM_SCRIPT = """\
        echo "$*" >> "$NPM_LOG"
        if [ "$1" = "run" ]; then
          mkdir -p dist/assets
          printf "<html></html>" > dist/index.html
          printf "console.log(1)" > dist/assets/app.js
        fi
    """

    def test_bundle_output_is_build_dir(
        self, tmp_path: Path, fake_tool: FakeTool, plan_for: PlanFor, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        root = _workspace(tmp_path, "web")
        monkeypatch.setenv("NPM_LOG", str(tmp_path / "npm.log"))
        fake_tool("npm", self.NPM_SCRIPT)
        plan = plan_for(
            {"project": {"name": "web", "type": "node", "path": "web"}, "node": {"mode": "frontend"}}
        )

        output = dispatch_build(plan.targets[0], root)
        assert output.is_tree is True
        assert output.paths == ((root / "web" / "dist").resolve(),)

    def test_dispatcher_builds_bundle_once_for_all_targets(
        self, tmp_path: Path, fake_tool: FakeTool, plan_for: PlanFor, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        root = _workspace(tmp_path, "web")
        log = tmp_path / "npm.log"
        monkeypatch.setenv("NPM_LOG", str(log))
        fake_tool("npm", self.NPM_SCRIPT)
        plan = plan_for(
            {
                "project": {"name": "web", "type": "node", "path": "web"},
                "node": {"mode": "frontend"},
                "build": {"targets": ["native", "aarch64-apple-darwin"]},
            }
        )
        dispatcher = BuildDispatcher(root)

        outputs = [dispatcher.build(t) for t in plan.targets]
        assert [o.target for o in outputs] == [HOST_TRIPLE, "aarch64-apple-darwin"]
        assert outputs[0].paths == outputs[1].paths
        assert log.read_text(encoding="utf-8").splitlines() == ["ci", "run build"]

    def test_missing_build_dir_fails(
        self, tmp_path: Path, fake_tool: FakeTool, plan_for: PlanFor
    ) -> None:
        root = _workspace(tmp_path, "web")
        fake_tool("npm", "exit 0\n")
        plan = plan_for(
            {"project": {"name": "web", "type": "node", "path": "web"}, "node": {"mode": "frontend"}}
        )

        with pytest.raises(BuildFailedError, match="not found"):
            dispatch_build(plan.targets[0], root)


class TestNativeExecutable:
    def test_pkg_output_is_collected(
        self, tmp_path: Path, fake_tool: FakeTool, plan_for: PlanFor
    ) -> None:
        root = _workspace(tmp_path, "cli")
        (root / "cli" / "package.json").write_text(json.dumps({"bin": "index.js"}), encoding="utf-8")
        fake_tool("npm", "exit 0\n")
        fake_tool(
            "pkg",
            """\
            out=""
            while [ $# -gt 0 ]; do
              if [ "$1" = "--output" ]; then out="$2"; fi
              shift
            done
            printf "node exe" > "$out"
            """,
        )
        plan = plan_for(
            {
                "project": {"name": "cli", "type": "node", "path": "cli"},
                "node": {"mode": "cli-binary", "binary": {"tool": "pkg"}},
            }
        )

        output = dispatch_build(plan.targets[0], root)
        assert [p.name for p in output.paths] == ["cli"]
        assert output.paths[0].read_text(encoding="utf-8") == "node exe"


class TestInterpreterPackaged:
    def test_pyinstaller_onefile(
        self, tmp_path: Path, fake_tool: FakeTool, plan_for: PlanFor
    ) -> None:
        root = _workspace(tmp_path, "tool")
        fake_tool(
            "pyinstaller",
            """\
            dist=""; name=""; onefile="no"
            while [ $# -gt 0 ]; do
              case "$1" in
                --distpath) dist="$2"; shift ;;
                --name) name="$2"; shift ;;
                --onefile) onefile="yes" ;;
              esac
              shift
            done
            mkdir -p "$dist"
            printf "%s" "$onefile" > "$dist/$name"
            """,
        )
        plan = plan_for(
            {
                "project": {"name": "tool", "type": "python", "path": "tool"},
                "python": {"mode": "pyinstaller", "pyinstaller": {"mode": "onefile"}},
            }
        )

        output = dispatch_build(plan.targets[0], root)
        assert [p.name for p in output.paths] == ["tool"]
        assert output.paths[0].read_text(encoding="utf-8") == "yes"
