# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for host inspection and the runtime bootstrap.

Target triples are what `native` expands to, so the mapping from
platform.system()/platform.machine() spellings has to be exact.
"""

import logging

import pytest

from polyship.config.schema import GlobalConfig
from polyship.runtime.bootstrap import bootstrap
from polyship.runtime.environment import (
    check_minimum_python,
    get_python_version,
    get_system_info,
    host_triple,
    is_ci,
    normalize_arch,
    target_triple,
)


class TestTargetTriple:
    @pytest.mark.parametrize(
        ("os_name", "arch", "expected"),
        [
            ("Linux", "x86_64", "x86_64-unknown-linux-gnu"),
            ("Linux", "aarch64", "aarch64-unknown-linux-gnu"),
            ("Darwin", "arm64", "aarch64-apple-darwin"),
            ("Windows", "AMD64", "x86_64-pc-windows-msvc"),
            ("FreeBSD", "amd64", "x86_64-unknown-freebsd"),
            ("Haiku", "x86_64", "x86_64-unknown-haiku"),
        ],
    )
    def test_known_platforms(self, os_name: str, arch: str, expected: str) -> None:
        assert target_triple(os_name, arch) == expected

    def test_unknown_arch_passes_through(self) -> None:
        assert normalize_arch("Loongarch64") == "loongarch64"

    def test_host_triple_has_three_or_more_parts(self) -> None:
        assert len(host_triple().split("-")) >= 3


class TestEnvironmentValidation:
    def test_python_version_returns_tuple(self) -> None:
        version = get_python_version()
        assert len(version) == 3
        assert version[0] == 3

    def test_minimum_python_check_passes(self) -> None:
        check_minimum_python()

    def test_system_info_has_all_fields(self) -> None:
        info = get_system_info()
        assert info.python_version
        assert info.platform
        assert info.architecture

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("true", True), ("1", True), ("", False), ("false", False), ("0", False)],
    )
    def test_is_ci(self, monkeypatch: pytest.MonkeyPatch, value: str, expected: bool) -> None:
        monkeypatch.setenv("CI", value)
        assert is_ci() is expected


class TestBootstrap:
    @pytest.fixture(autouse=True)
    def _restore_level(self) -> None:
        yield  # type: ignore[misc]
        bootstrap(None, log_level="INFO")

    def test_config_level_applies_without_override(self) -> None:
        level = bootstrap(GlobalConfig(log_level="WARNING"))
        assert level == "WARNING"
        assert logging.getLogger("polyship.runtime").level == logging.WARNING

    def test_cli_override_wins(self) -> None:
        assert bootstrap(GlobalConfig(log_level="WARNING"), log_level="debug") == "DEBUG"
        assert logging.getLogger("polyship.runtime").level == logging.DEBUG

    def test_runs_without_config(self) -> None:
        assert bootstrap(None) == "INFO"
