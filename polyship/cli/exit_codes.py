# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI exit codes.

These are the only exit codes polyship uses:
  0  success
  1  user error (bad arguments, nothing to do, refusing to overwrite)
  2  configuration error (missing/invalid config, plan or naming problems)
  3  runtime error (a build, SBOM, signing or publish step failed)
  4  validation error (`verify` found a problem)
"""

SUCCESS: int = 0
USER_ERROR: int = 1
CONFIG_ERROR: int = 2
RUNTIME_ERROR: int = 3
VALIDATION_ERROR: int = 4
