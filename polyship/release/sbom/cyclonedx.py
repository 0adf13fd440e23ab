# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CycloneDX 1.5 JSON documents.

Documents built here are byte-reproducible: components are sorted, the
timestamp comes from the run's source date, JSON keys are sorted, and the
serialNumber is a UUIDv5 derived from the rest of the document instead of a
random UUIDv4. The same lockfile always yields the same bytes.
"""

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Sequence

from polyship import __version__
from polyship.release.sbom.lockfiles import Component

SPEC_VERSION = "1.5"
MODE_PROPERTY = "polyship:sbom:mode"
TARGET_PROPERTY = "polyship:target"

# Namespace for serialNumber derivation; any fixed UUID works.
_SERIAL_NAMESPACE = uuid.UUID("6f1c1f2e-4d38-5b0a-9c8e-2a4f7d1b9e31")


def _timestamp(epoch: int) -> str:
    return datetime.fromtimestamp(epoch, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def serialize(document: dict[str, Any]) -> bytes:
    """Canonical encoding used for every SBOM polyship writes."""
    return (json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")


def with_serial_number(document: dict[str, Any]) -> dict[str, Any]:
    """Set serialNumber to a UUIDv5 of the document's other content."""
    body = {k: v for k, v in document.items() if k != "serialNumber"}
    digest_input = json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    serial = uuid.uuid5(_SERIAL_NAMESPACE, digest_input)
    return {**body, "serialNumber": f"urn:uuid:{serial}"}


def set_properties(document: dict[str, Any], properties: dict[str, str]) -> dict[str, Any]:
    """
    Record polyship properties in metadata.properties, replacing earlier values
    with the same names and keeping everything else the tool wrote.
    """
    metadata = dict(document.get("metadata") or {})
    existing = [
        p for p in metadata.get("properties") or []
        if isinstance(p, dict) and p.get("name") not in properties
    ]
    existing.extend({"name": k, "value": v} for k, v in sorted(properties.items()))
    metadata["properties"] = existing
    return {**document, "metadata": metadata}


def build_document(
    package: str,
    version: str,
    target: str,
    components: Sequence[Component],
    epoch: int,
    mode: str,
) -> dict[str, Any]:
    """Assemble a CycloneDX 1.5 BOM for one (package, target) unit."""
    ordered = sorted(set(components))
    document: dict[str, Any] = {
        "bomFormat": "CycloneDX",
        "specVersion": SPEC_VERSION,
        "version": 1,
        "metadata": {
            "timestamp": _timestamp(epoch),
            "tools": {
                "components": [
                    {"type": "application", "name": "polyship", "version": __version__}
                ]
            },
            "component": {
                "type": "application",
                "bom-ref": f"{package}@{version}",
                "name": package,
                "version": version,
            },
        },
        "components": [
            {
                "type": "library",
                "bom-ref": comp.purl,
                "name": comp.name,
                "version": comp.version,
                "purl": comp.purl,
            }
            for comp in ordered
        ],
    }
    document = set_properties(document, {MODE_PROPERTY: mode, TARGET_PROPERTY: target})
    return with_serial_number(document)


def component_pairs(document: dict[str, Any]) -> set[tuple[str, str]]:
    """(name, version) of every component, for comparisons in tests and verify tooling."""
    return {
        (c.get("name"), c.get("version"))
        for c in document.get("components") or []
        if isinstance(c, dict)
    }
