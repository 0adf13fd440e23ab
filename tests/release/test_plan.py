# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for the plan engine: version resolution, target expansion, section
precedence, and the errors that must stop a run before any tool is spawned.
"""

from typing import Callable

import pytest

from polyship.config.exceptions import ConfigError
from polyship.config.schema import VersionConfig
from polyship.release.errors import VersionResolutionError
from polyship.release.plan.models import BuildKind, HostFacts, ReleasePlan
from polyship.release.plan.version import normalize_version, resolve_version

HOST_TRIPLE = "x86_64-unknown-linux-gnu"

PlanFor = Callable[..., ReleasePlan]


class TestNormalizeVersion:
    @pytest.mark.parametrize(
        ("tag", "expected"),
        [("v1.2.3", "1.2.3"), ("V2.0.0", "2.0.0"), ("1.0.0", "1.0.0"), ("version-1", "version-1")],
    )
    def test_strips_leading_v_only_before_digit(self, tag: str, expected: str) -> None:
        assert normalize_version(tag) == expected


class TestResolveVersion:
    def test_manual_version(self, host: HostFacts) -> None:
        version = resolve_version(VersionConfig(source="manual", manual="1.2.3"), host)
        assert version.value == "1.2.3"
        assert version.source == "manual"

    def test_manual_without_value_is_config_error(self, host: HostFacts) -> None:
        with pytest.raises(ConfigError):
            resolve_version(VersionConfig(source="manual"), host)

    def test_tag_source_uses_latest_tag(self, host: HostFacts) -> None:
        version = resolve_version(VersionConfig(source="tag"), host)
        assert version.value == "1.2.3"
        assert version.tag == "v1.2.3"

    def test_tag_source_without_tag_fails(self) -> None:
        untagged = HostFacts(os="Linux", arch="x86_64")
        with pytest.raises(VersionResolutionError):
            resolve_version(VersionConfig(source="tag"), untagged)

    def test_git_source_falls_back_to_baseline(self) -> None:
        untagged = HostFacts(os="Linux", arch="x86_64")
        version = resolve_version(VersionConfig(source="git", baseline="0.4.0"), untagged)
        assert version.value == "0.4.0"
        assert version.source == "git"
        assert version.tag is None

    def test_git_source_uses_latest_tag(self, host: HostFacts) -> None:
        version = resolve_version(VersionConfig(source="git"), host)
        assert (version.value, version.source, version.tag) == ("1.2.3", "git", "v1.2.3")

    @pytest.mark.parametrize("tag", ["release/2024-01", "nightly build", "win\\1.0"])
    def test_git_source_with_unusable_tag_falls_back(self, tag: str) -> None:
        tagged = HostFacts(os="Linux", arch="x86_64", latest_tag=tag)
        version = resolve_version(VersionConfig(source="git", baseline="0.4.0"), tagged)
        assert version.value == "0.4.0"
        assert version.source == "git"
        assert version.tag is None

    def test_tag_source_with_unusable_tag_fails(self) -> None:
        tagged = HostFacts(os="Linux", arch="x86_64", latest_tag="release/2024-01")
        with pytest.raises(VersionResolutionError):
            resolve_version(VersionConfig(source="tag"), tagged)

    def test_override_wins_over_config(self, host: HostFacts) -> None:
        version = resolve_version(VersionConfig(source="manual", manual="9.9.9"), host, "v3.0.0")
        assert version.value == "3.0.0"
        assert version.source == "override"

    def test_version_with_path_separator_is_rejected(self, host: HostFacts) -> None:
        with pytest.raises(VersionResolutionError):
            resolve_version(VersionConfig(source="manual", manual="1.0/evil"), host)


class TestTargetExpansion:
    def test_native_expands_to_host_triple(self, plan_for: PlanFor) -> None:
        plan = plan_for({"project": {"name": "demo", "type": "rust"}})
        assert [t.target for t in plan.targets] == [HOST_TRIPLE]
        assert plan.targets[0].is_native is True

    def test_targets_keep_configured_order(self, plan_for: PlanFor) -> None:
        plan = plan_for(
            {
                "project": {"name": "demo", "type": "rust"},
                "build": {"targets": ["aarch64-apple-darwin", "native"]},
            }
        )
        assert [t.target for t in plan.targets] == ["aarch64-apple-darwin", HOST_TRIPLE]
        assert [t.is_native for t in plan.targets] == [False, True]

    def test_native_and_literal_host_triple_collide(self, plan_for: PlanFor) -> None:
        with pytest.raises(ConfigError, match="more than once"):
            plan_for(
                {
                    "project": {"name": "demo", "type": "rust"},
                    "build": {"targets": ["native", HOST_TRIPLE]},
                }
            )

    def test_empty_target_list_is_config_error(self, plan_for: PlanFor) -> None:
        with pytest.raises(ConfigError, match="empty target list"):
            plan_for({"project": {"name": "demo", "type": "rust"}, "build": {"targets": []}})


class TestBuildPlan:
    def test_single_project_plan(self, plan_for: PlanFor) -> None:
        plan = plan_for(
            {
                "project": {"name": "demo", "type": "rust"},
                "version": {"source": "manual", "manual": "1.2.3"},
            }
        )
        assert plan.version.value == "1.2.3"
        assert [p.name for p in plan.packages] == ["demo"]
        assert plan.packages[0].kind is BuildKind.COMPILED_BINARY
        assert plan.source_date_epoch == 1700000000

    def test_kinds_follow_project_type_and_mode(self, plan_for: PlanFor) -> None:
        plan = plan_for(
            {
                "packages": [
                    {"name": "api", "type": "go", "path": "api"},
                    {"name": "web", "type": "node", "path": "web", "node": {"mode": "frontend"}},
                    {
                        "name": "cli",
                        "type": "node",
                        "path": "cli",
                        "node": {"mode": "cli-binary", "binary": {"tool": "pkg"}},
                    },
                    {"name": "tool", "type": "python", "path": "tool"},
                ]
            }
        )
        kinds = {p.name: p.kind for p in plan.packages}
        assert kinds == {
            "api": BuildKind.COMPILED_BINARY,
            "web": BuildKind.WEB_BUNDLE,
            "cli": BuildKind.NATIVE_EXECUTABLE,
            "tool": BuildKind.INTERPRETER_PACKAGED,
        }

    def test_package_sections_override_root(self, plan_for: PlanFor) -> None:
        plan = plan_for(
            {
                "packages": [
                    {"name": "a", "type": "rust", "path": "a", "package": {"formats": ["zip"]}},
                    {"name": "b", "type": "rust", "path": "b"},
                ],
                "package": {"formats": ["tar.gz", "zip"]},
                "build": {"env": {"RUSTFLAGS": "-C strip=symbols"}},
            }
        )
        specs = {p.name: p for p in plan.packages}
        assert specs["a"].packaging.formats == ["zip"]
        assert specs["b"].packaging.formats == ["tar.gz", "zip"]
        assert specs["b"].env_overrides == {"RUSTFLAGS": "-C strip=symbols"}

    def test_duplicate_package_names_are_rejected(self, plan_for: PlanFor) -> None:
        with pytest.raises(ConfigError, match="duplicate package names"):
            plan_for(
                {
                    "packages": [
                        {"name": "a", "type": "rust", "path": "a"},
                        {"name": "a", "type": "go", "path": "b"},
                    ]
                }
            )

    def test_only_restricts_packages(self, plan_for: PlanFor) -> None:
        raw = {
            "packages": [
                {"name": "a", "type": "rust", "path": "a"},
                {"name": "b", "type": "go", "path": "b"},
            ]
        }
        plan = plan_for(raw, only=["b"])
        assert [p.name for p in plan.packages] == ["b"]

    def test_only_with_unknown_name_is_rejected(self, plan_for: PlanFor) -> None:
        with pytest.raises(ConfigError, match="unknown packages"):
            plan_for({"project": {"name": "a", "type": "rust"}}, only=["zzz"])

    def test_cosign_key_mode_requires_key(self, plan_for: PlanFor) -> None:
        with pytest.raises(ConfigError, match="sign.key"):
            plan_for(
                {
                    "project": {"name": "a", "type": "rust"},
                    "sign": {"enabled": True, "method": "cosign", "cosign_mode": "key"},
                }
            )

    def test_plan_document_lists_targets_and_formats(self, plan_for: PlanFor) -> None:
        plan = plan_for(
            {
                "project": {"name": "demo", "type": "rust"},
                "version": {"source": "manual", "manual": "1.2.3"},
            }
        )
        data = plan.to_dict()
        assert data["version"] == "1.2.3"
        assert data["packages"][0]["targets"] == [HOST_TRIPLE]
        assert data["packages"][0]["formats"] == ["tar.gz"]
        assert data["packages"][0]["sign"] == "disabled"
