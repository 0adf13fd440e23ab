# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Runtime bootstrap for polyship.

Runs once per CLI command before any real work:
  1. Validate the interpreter version
  2. Apply the effective log level (and optional log file) to every polyship logger
  3. Log the host the run is happening on

The log level comes from `--log-level` when given, otherwise from
`global.log_level` in the config.
"""

from pathlib import Path
from typing import Optional

from polyship.config.schema import GlobalConfig
from polyship.logging.logger import get_logger, set_log_level
from polyship.runtime.environment import check_minimum_python, get_system_info, host_triple, is_ci


def bootstrap(config: Optional[GlobalConfig], log_level: Optional[str] = None) -> str:
    """
    Put the process into a known state for a command.

    Args:
        config: The validated global section, or None when running without a config.
        log_level: CLI override for the log level.

    Returns:
        The effective log level name.
    """
    check_minimum_python()

    global_cfg = config or GlobalConfig()
    level = (log_level or global_cfg.log_level).upper()
    log_file = Path(global_cfg.log_file) if global_cfg.log_file is not None else None

    logger = get_logger("polyship.runtime", log_level=level, log_file=log_file)
    set_log_level(level, log_file)

    system_info = get_system_info()
    logger.debug(
        "polyship bootstrap complete",
        extra={
            "python_version": system_info.python_version,
            "platform": system_info.platform,
            "architecture": system_info.architecture,
            "host_triple": host_triple(),
            "ci": is_ci(),
        },
    )
    return level
