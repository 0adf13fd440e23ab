# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release subsystem for polyship.

Provides planning, building, packaging, SBOM generation, signing, checksum
and manifest generation, publishing, and post-hoc verification. Every
artifact a run produces is listed in the manifest with its digest, and
`polyship verify` can re-check all of them against the output directory.
"""
