# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
polyship: polyglot release orchestrator.

Builds Rust, Go, Node, and Python projects from one repository, packages them
into reproducible archives, attaches CycloneDX SBOMs and signatures, and writes
a manifest that `polyship verify` can check against the output directory.
"""

__version__ = "0.1.0"
