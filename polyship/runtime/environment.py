# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Environment inspection for polyship.

Checks that the interpreter meets the minimum version, and turns the host's
platform into the target identifier that the symbolic "native" target expands
to. The expansion happens once, at plan time, so the plan is a closed list of
concrete targets before any build runs.
"""

import os
import platform
import sys
from typing import NamedTuple

MINIMUM_PYTHON_MAJOR = 3
MINIMUM_PYTHON_MINOR = 11

# platform.machine() spellings → Rust-style architecture names
_ARCH_ALIASES: dict[str, str] = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "armv7l": "armv7",
    "armv7": "armv7",
    "i386": "i686",
    "i686": "i686",
    "x86": "i686",
    "ppc64le": "powerpc64le",
    "s390x": "s390x",
    "riscv64": "riscv64gc",
}

# platform.system() lowercased → triple vendor/os/abi suffix
_OS_SUFFIXES: dict[str, str] = {
    "linux": "unknown-linux-gnu",
    "darwin": "apple-darwin",
    "windows": "pc-windows-msvc",
    "freebsd": "unknown-freebsd",
}


class SystemInfo(NamedTuple):
    """Snapshot of the current system environment."""

    python_version: str
    platform: str
    architecture: str
    hostname: str


def get_python_version() -> tuple[int, int, int]:
    """Return the current Python version as a (major, minor, micro) tuple."""
    return sys.version_info[:3]


def check_minimum_python() -> None:
    """
    Verify we're running Python 3.11+.

    tomllib (used to read Cargo.lock and poetry.lock) arrived in 3.11.

    Raises:
        RuntimeError: If Python version is below 3.11.
    """
    major, minor, _ = get_python_version()
    if major < MINIMUM_PYTHON_MAJOR or (
        major == MINIMUM_PYTHON_MAJOR and minor < MINIMUM_PYTHON_MINOR
    ):
        raise RuntimeError(
            f"polyship requires Python >= {MINIMUM_PYTHON_MAJOR}.{MINIMUM_PYTHON_MINOR}, "
            f"but you're running {major}.{minor}. Please upgrade."
        )


def get_system_info() -> SystemInfo:
    """Collect basic system information for logging and diagnostics."""
    return SystemInfo(
        python_version=platform.python_version(),
        platform=platform.system(),
        architecture=platform.machine(),
        hostname=platform.node(),
    )


def normalize_arch(machine: str) -> str:
    """Map a platform.machine() value to its Rust-style architecture name."""
    return _ARCH_ALIASES.get(machine.lower(), machine.lower())


def target_triple(os_name: str, arch: str) -> str:
    """
    Build a target triple like `x86_64-unknown-linux-gnu` from os and arch.

    Unknown operating systems fall back to `<arch>-unknown-<os>`.
    """
    arch_part = normalize_arch(arch)
    os_key = os_name.lower()
    suffix = _OS_SUFFIXES.get(os_key, f"unknown-{os_key}")
    return f"{arch_part}-{suffix}"


def host_triple() -> str:
    """The target triple of the machine we're running on."""
    return target_triple(platform.system(), platform.machine())


def is_ci() -> bool:
    """True when running under a CI system that sets the conventional CI variable."""
    return os.environ.get("CI", "").lower() not in {"", "0", "false"}
