# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
cosign and gpg wrappers.

Both produce a detached signature for one file and return its bytes. Either
may report SigningToolMissingError, which the signer answers with a fallback
signature; a tool that runs and fails raises SigningFailedError instead, and
that is never papered over.

Keyless cosign needs an ambient OIDC identity. Without one it would stop to
open a browser, so it counts as unavailable here:

    SIGSTORE_ID_TOKEN                                        explicit token
    ACTIONS_ID_TOKEN_REQUEST_URL + ACTIONS_ID_TOKEN_REQUEST_TOKEN   GitHub Actions
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Mapping, Optional

from polyship.config.schema import SignConfig
from polyship.logging.logger import get_logger
from polyship.release.errors import SigningFailedError, SigningToolMissingError
from polyship.release.process import output_tail, run_tool

_logger: logging.Logger = get_logger(__name__)


def has_oidc_identity(env: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if env is None else env
    if env.get("SIGSTORE_ID_TOKEN"):
        return True
    return bool(env.get("ACTIONS_ID_TOKEN_REQUEST_URL") and env.get("ACTIONS_ID_TOKEN_REQUEST_TOKEN"))


def _run_signer(command: list[str], tool: str, path: Path, out: Path) -> bytes:
    result = run_tool(command, env=dict(os.environ), missing=SigningToolMissingError)
    if result.returncode != 0:
        raise SigningFailedError(
            f"{tool} failed to sign {path.name} (status {result.returncode})\n{output_tail(result)}"
        )
    if not out.is_file():
        raise SigningFailedError(f"{tool} reported success but wrote no signature for {path.name}")
    return out.read_bytes()


class CosignTool:
    name = "cosign"

    def __init__(self, settings: SignConfig) -> None:
        self.settings = settings

    def sign(self, path: Path) -> bytes:
        """
        Raises:
            SigningToolMissingError: cosign absent, or keyless without an OIDC identity.
            SigningFailedError: cosign exited non-zero.
        """
        if self.settings.cosign_mode == "keyless" and not has_oidc_identity():
            raise SigningToolMissingError(
                self.name,
                "keyless cosign needs SIGSTORE_ID_TOKEN or a GitHub Actions OIDC token",
            )
        with tempfile.TemporaryDirectory(prefix="polyship-cosign-") as scratch:
            out = Path(scratch) / (path.name + ".sig")
            command = [self.name, "sign-blob", "--yes", "--output-signature", str(out)]
            if self.settings.cosign_mode == "key" and self.settings.key:
                command.extend(["--key", self.settings.key])
            command.append(str(path))
            return _run_signer(command, self.name, path, out)


class GpgTool:
    name = "gpg"

    def __init__(self, settings: SignConfig) -> None:
        self.settings = settings

    def sign(self, path: Path) -> bytes:
        """
        Raises:
            SigningToolMissingError: gpg absent.
            SigningFailedError: gpg exited non-zero.
        """
        with tempfile.TemporaryDirectory(prefix="polyship-gpg-") as scratch:
            out = Path(scratch) / (path.name + ".sig")
            command = [self.name, "--batch", "--yes", "--detach-sign"]
            if self.settings.gpg_key:
                command.extend(["--local-user", self.settings.gpg_key])
            command.extend(["-o", str(out), str(path)])
            return _run_signer(command, self.name, path, out)


def tool_for(settings: SignConfig) -> Optional[CosignTool | GpgTool]:
    """The external tool for the configured method; None for fallback-hash."""
    if settings.method == "cosign":
        return CosignTool(settings)
    if settings.method == "gpg":
        return GpgTool(settings)
    return None
