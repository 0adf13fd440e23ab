# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Detached signatures for archives, SBOMs and the checksum file.

The configured method is tried first. When its tool is unavailable the file
gets a fallback-hash signature instead, and the record keeps both the method
that ran and the one that was asked for, so an audit can see that cosign was
configured but never ran. A tool that runs and fails is a SigningFailedError
for the unit; there is no silent downgrade for that case.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from polyship.config.schema import SignConfig
from polyship.logging.logger import get_logger
from polyship.release.errors import SigningToolMissingError
from polyship.release.fallback import attempt_with_fallback
from polyship.release.packaging.naming import signature_name
from polyship.release.signing.fallback_hash import fallback_signature
from polyship.release.signing.tools import tool_for
from polyship.utils.filesystem import atomic_write_bytes
from polyship.utils.hashing import compute_sha256_bytes

_logger: logging.Logger = get_logger(__name__)

FALLBACK_METHOD = "fallback-hash"


@dataclass(frozen=True)
class Signature:
    """One detached signature file and what it covers."""

    path: Path
    name: str
    target: str
    target_digest: str
    digest: str
    method: str
    requested_method: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.name,
            "target": self.target,
            "target_digest": self.target_digest,
            "digest": self.digest,
            "method": self.method,
            "requested_method": self.requested_method,
        }


class Signer:
    def __init__(self, settings: SignConfig) -> None:
        self.settings = settings
        self._tool = tool_for(settings)

    def sign_file(self, path: Path, target_digest: str) -> Signature:
        """
        Sign `path` and write `<path>.sig` next to it.

        Args:
            path: File to sign.
            target_digest: SHA256 of `path` as recorded when it was written.

        Raises:
            SigningFailedError: The configured tool ran and failed.
        """
        requested = self.settings.method
        tool = self._tool
        if tool is None:
            data = fallback_signature(path)
            method = FALLBACK_METHOD
        else:
            attempt = attempt_with_fallback(
                lambda: tool.sign(path),
                lambda: fallback_signature(path),
                label=f"sign {path.name}",
                substitute_on=(SigningToolMissingError,),
            )
            data = attempt.value
            method = FALLBACK_METHOD if attempt.fell_back else requested

        sig_name = signature_name(path.name)
        sig_path = path.with_name(sig_name)
        atomic_write_bytes(sig_path, data)

        _logger.info(
            "Signature written",
            extra={"file": path.name, "method": method, "requested_method": requested},
        )
        return Signature(
            path=sig_path,
            name=sig_name,
            target=path.name,
            target_digest=target_digest,
            digest=compute_sha256_bytes(data),
            method=method,
            requested_method=requested,
        )

    def sign_files(self, files: list[tuple[Path, str]]) -> list[Signature]:
        """Sign each (path, digest) pair in order."""
        return [self.sign_file(path, digest) for path, digest in files]
