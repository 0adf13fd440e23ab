# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for SBOM generation in fallback, native and auto modes.
"""

import json
from pathlib import Path

import pytest

from polyship.release.errors import SbomGenerationError, SbomToolMissingError
from polyship.release.sbom.cyclonedx import MODE_PROPERTY, component_pairs
from polyship.release.sbom.generator import generate_sbom

EPOCH = 1700000000
SBOM_NAME = "demo-1.2.3-x86_64-unknown-linux-gnu.cdx.json"


def _unit(plan_for, mode: str, enabled: bool = True):
    plan = plan_for(
        {
            "project": {"name": "demo", "type": "rust"},
            "sbom": {"enabled": enabled, "mode": mode},
        }
    )
    return plan.targets[0]


def _properties(document: dict) -> dict[str, str]:
    return {p["name"]: p["value"] for p in document["metadata"]["properties"]}


@pytest.fixture()
def empty_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A PATH with no SBOM tools on it."""
    empty = tmp_path / "empty-bin"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))


class TestFallbackSbom:
    def test_components_come_from_lockfile(self, rust_workspace: Path, tmp_path: Path, plan_for) -> None:
        unit = _unit(plan_for, "fallback")
        sbom = generate_sbom(unit, SBOM_NAME, tmp_path / "dist", rust_workspace, "1.2.3", EPOCH)

        assert sbom is not None
        assert sbom.mode_used == "fallback"
        assert sbom.component_count == 2
        document = json.loads(sbom.path.read_text(encoding="utf-8"))
        assert document["bomFormat"] == "CycloneDX"
        assert document["specVersion"] == "1.5"
        assert component_pairs(document) == {("A", "1.0"), ("B", "2.3")}
        assert document["metadata"]["timestamp"] == "2023-11-14T22:13:20Z"
        assert _properties(document)[MODE_PROPERTY] == "fallback"
        assert document["serialNumber"].startswith("urn:uuid:")

    def test_same_lockfile_same_bytes(self, rust_workspace: Path, tmp_path: Path, plan_for) -> None:
        unit = _unit(plan_for, "fallback")
        first = generate_sbom(unit, SBOM_NAME, tmp_path / "one", rust_workspace, "1.2.3", EPOCH)
        second = generate_sbom(unit, SBOM_NAME, tmp_path / "two", rust_workspace, "1.2.3", EPOCH)

        assert first.digest == second.digest
        assert first.path.read_bytes() == second.path.read_bytes()

    def test_disabled_returns_none(self, rust_workspace: Path, tmp_path: Path, plan_for) -> None:
        unit = _unit(plan_for, "fallback", enabled=False)
        assert generate_sbom(unit, SBOM_NAME, tmp_path, rust_workspace, "1.2.3", EPOCH) is None


class TestNativeSbom:
    NATIVE_BOM = {
        "bomFormat": "CycloneDX",
        "specVersion": "1.5",
        "components": [{"type": "library", "name": "serde", "version": "1.0.197"}],
        "metadata": {"properties": [{"name": "cdx:tool", "value": "kept"}]},
    }

    def _fake_cargo_cyclonedx(self, fake_tool) -> None:
        fake_tool(
            "cargo-cyclonedx",
            f"""\
            cat > "$7.json" <<'EOF'
            {json.dumps(self.NATIVE_BOM)}
            EOF
            """,
        )

    def test_native_output_is_tagged_and_kept(
        self, rust_workspace: Path, tmp_path: Path, fake_tool, plan_for
    ) -> None:
        self._fake_cargo_cyclonedx(fake_tool)
        unit = _unit(plan_for, "native")
        sbom = generate_sbom(unit, SBOM_NAME, tmp_path / "dist", rust_workspace, "1.2.3", EPOCH)

        document = json.loads(sbom.path.read_text(encoding="utf-8"))
        assert sbom.mode_used == "native"
        assert component_pairs(document) == {("serde", "1.0.197")}
        properties = _properties(document)
        assert properties[MODE_PROPERTY] == "native"
        assert properties["cdx:tool"] == "kept"
        # the tool's file next to Cargo.toml is cleaned up
        assert not list(rust_workspace.glob("polyship-bom-*.json"))

    def test_auto_prefers_native_tool(
        self, rust_workspace: Path, tmp_path: Path, fake_tool, plan_for
    ) -> None:
        self._fake_cargo_cyclonedx(fake_tool)
        sbom = generate_sbom(
            _unit(plan_for, "auto"), SBOM_NAME, tmp_path / "dist", rust_workspace, "1.2.3", EPOCH
        )
        assert sbom.mode_used == "native"

    def test_native_mode_without_tool_fails(
        self, rust_workspace: Path, tmp_path: Path, empty_path: None, plan_for
    ) -> None:
        with pytest.raises(SbomToolMissingError):
            generate_sbom(
                _unit(plan_for, "native"), SBOM_NAME, tmp_path / "dist", rust_workspace, "1.2.3", EPOCH
            )

    def test_auto_mode_without_tool_falls_back(
        self, rust_workspace: Path, tmp_path: Path, empty_path: None, plan_for
    ) -> None:
        sbom = generate_sbom(
            _unit(plan_for, "auto"), SBOM_NAME, tmp_path / "dist", rust_workspace, "1.2.3", EPOCH
        )
        assert sbom.mode_used == "fallback"
        assert sbom.component_count == 2

    def test_failing_tool_is_not_substituted(
        self, rust_workspace: Path, tmp_path: Path, fake_tool, plan_for
    ) -> None:
        fake_tool("cargo-cyclonedx", "echo 'no Cargo.toml' >&2\nexit 1\n")
        with pytest.raises(SbomGenerationError):
            generate_sbom(
                _unit(plan_for, "auto"), SBOM_NAME, tmp_path / "dist", rust_workspace, "1.2.3", EPOCH
            )

    def test_non_cyclonedx_output_is_rejected(
        self, rust_workspace: Path, tmp_path: Path, fake_tool, plan_for
    ) -> None:
        fake_tool("cargo-cyclonedx", 'echo "{}" > "$7.json"\n')
        with pytest.raises(SbomGenerationError, match="not a CycloneDX"):
            generate_sbom(
                _unit(plan_for, "native"), SBOM_NAME, tmp_path / "dist", rust_workspace, "1.2.3", EPOCH
            )
