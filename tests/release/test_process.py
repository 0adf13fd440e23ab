# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for external tool invocation.
"""

import os

import pytest

from polyship.release.errors import ToolchainMissingError
from polyship.release.process import output_tail, run_tool


def test_non_utf8_output_is_replaced_not_raised(fake_tool, tmp_path):
    fake_tool("noisy", "printf 'built \\377\\376 ok\\n'\nprintf 'warn \\377\\n' >&2\nexit 3\n")

    result = run_tool(["noisy"], cwd=tmp_path, env=dict(os.environ))

    assert result.returncode == 3
    assert result.stdout == "built �� ok\n"
    assert "warn �" in output_tail(result)


def test_missing_tool_raises_the_requested_type(tmp_path):
    with pytest.raises(ToolchainMissingError) as excinfo:
        run_tool(["polyship-no-such-tool"], env={"PATH": str(tmp_path)}, missing=ToolchainMissingError)
    assert excinfo.value.tool == "polyship-no-such-tool"
