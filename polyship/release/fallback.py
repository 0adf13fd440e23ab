# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Try the preferred path, fall back when its tool is missing, record which ran.

SBOM auto mode, signing, and git-based version resolution all follow the same
shape. Only ToolMissingError (or whatever exception types the caller names)
triggers the substitution; any other failure propagates unchanged.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from polyship.logging.logger import get_logger
from polyship.release.errors import ToolMissingError

_logger: logging.Logger = get_logger(__name__)

T = TypeVar("T")

PREFERRED = "preferred"
FALLBACK = "fallback"


@dataclass(frozen=True)
class Attempt(Generic[T]):
    """The value produced plus which path produced it."""

    value: T
    used: str
    reason: Optional[str] = None

    @property
    def fell_back(self) -> bool:
        return self.used == FALLBACK


def attempt_with_fallback(
    preferred: Callable[[], T],
    fallback: Callable[[], T],
    *,
    label: str,
    substitute_on: tuple[type[BaseException], ...] = (ToolMissingError,),
) -> Attempt[T]:
    """
    Run `preferred`; if it raises one of `substitute_on`, run `fallback` instead.

    The substitution is logged at WARNING with the reason so it shows up in
    the run log, and the returned Attempt carries it for the manifest.
    """
    try:
        return Attempt(value=preferred(), used=PREFERRED)
    except substitute_on as err:
        _logger.warning(
            "Preferred path unavailable, using fallback",
            extra={"operation": label, "reason": str(err)},
        )
        return Attempt(value=fallback(), used=FALLBACK, reason=str(err))
