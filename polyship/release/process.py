# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
External tool invocation shared by builders, SBOM generators and signers.

The tool is looked up on the PATH of the environment it will run in before
anything is spawned, so a missing tool is reported as the caller's
ToolMissingError subclass rather than as a generic OSError. Exit status is
left to the caller: a non-zero build and a non-zero signature mean different
things.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Mapping, Optional, Sequence

from polyship.logging.logger import get_logger
from polyship.release.errors import ToolMissingError

_logger: logging.Logger = get_logger(__name__)

# How much captured output is repeated inside an error message.
OUTPUT_TAIL_CHARS = 2000


def find_tool(tool: str, env: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """Resolve `tool` against the PATH of `env` (or the process PATH)."""
    search_path = env.get("PATH") if env is not None else None
    return shutil.which(tool, path=search_path)


def run_tool(
    command: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    missing: type[ToolMissingError] = ToolMissingError,
    shell: bool = False,
) -> subprocess.CompletedProcess:
    """
    Run one external command and capture its output.

    Args:
        command: argv list; with shell=True a single-element list holding the
            command line.
        cwd: Working directory.
        env: Full environment for the child.
        missing: Error type raised when the tool cannot be found.
        shell: Run through the system shell (used for user-supplied build_cmd).

    Raises:
        ToolMissingError (the `missing` subclass): the executable is not on PATH.
    """
    argv = list(command)
    if not shell and find_tool(argv[0], env) is None:
        raise missing(argv[0])

    _logger.debug(
        "Running tool",
        extra={"command": argv, "cwd": str(cwd) if cwd is not None else None},
    )
    try:
        result = subprocess.run(
            argv[0] if shell else argv,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            shell=shell,
            capture_output=True,
            text=True,
            errors="replace",
            check=False,
        )
    except FileNotFoundError as err:
        raise missing(argv[0]) from err

    if result.returncode != 0:
        _logger.error(
            "Tool exited non-zero",
            extra={"command": argv, "returncode": result.returncode},
        )
    return result


def output_tail(result: subprocess.CompletedProcess) -> str:
    """stdout and stderr of a finished command, trimmed for error messages."""
    combined = (result.stdout or "") + (result.stderr or "")
    return combined[-OUTPUT_TAIL_CHARS:].strip()
