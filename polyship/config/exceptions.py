# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Custom exceptions for the configuration system.

We keep these separate so that CLI and other layers can catch config-specific
failures without importing the entire config machinery. The plan engine also
raises ConfigError for contradictions it can only see once the configuration
is expanded (duplicate targets, a manual version with no value).
"""


class ConfigError(Exception):
    """Base for all configuration errors. Fatal: raised before any build starts."""


class ConfigLoadError(ConfigError):
    """Raised when a config file cannot be read from disk or parsed as YAML."""


class ConfigValidationError(ConfigError):
    """
    Raised when a config file parses fine but fails schema validation.
    This covers missing required fields, type mismatches, unknown keys,
    and contradictory sections (both `project` and `packages`, for example).
    """
