# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Artifact naming.

Every file name a run will write is rendered up front from the plan, before
anything is built, so that two units that would overwrite each other fail the
run immediately instead of silently losing an artifact. `polyship plan` calls
the same function to preview the names.

    archive   <rendered template>.<format>        e.g. app-1.2.3-x86_64-unknown-linux-gnu.tar.gz
    SBOM      <rendered template>.cdx.json
    signature <signed file>.sig
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from polyship.config.exceptions import ConfigError
from polyship.logging.logger import get_logger
from polyship.release.errors import NamingCollisionError
from polyship.release.plan.models import ReleasePlan

_logger: logging.Logger = get_logger(__name__)

CHECKSUM_FILE = "SHA256SUMS"
MANIFEST_FILE = "manifest.json"
PROVENANCE_FILE = "provenance.json"
SBOM_SUFFIX = ".cdx.json"
SIGNATURE_SUFFIX = ".sig"

RUN_LEVEL_FILES: frozenset[str] = frozenset({CHECKSUM_FILE, MANIFEST_FILE, PROVENANCE_FILE})


def render_name(template: str, name: str, version: str, target: str) -> str:
    """
    Substitute `{name}`, `{version}` and `{target}` in a naming template.

    Go-style targets such as `linux/amd64` are written with `-` in place of
    `/`, so they stay single file names.

    Raises:
        ConfigError: The result is empty or would name a path instead of a file.
    """
    rendered = (
        template.replace("{name}", name)
        .replace("{version}", version)
        .replace("{target}", target.replace("/", "-"))
    )
    if not rendered.strip() or "/" in rendered or "\\" in rendered or rendered in (".", ".."):
        raise ConfigError(
            f"name template {template!r} renders to {rendered!r} for {name}/{target}, "
            "which is not a usable file name"
        )
    return rendered


def signature_name(file_name: str) -> str:
    return file_name + SIGNATURE_SUFFIX


@dataclass(frozen=True)
class UnitNames:
    """Every file name one (package, target) unit will produce."""

    package: str
    target: str
    base: str
    archives: tuple[tuple[str, str], ...]
    sbom: Optional[str] = None
    signed: bool = False
    signatures: tuple[str, ...] = field(default_factory=tuple)

    def archive(self, fmt: str) -> str:
        return dict(self.archives)[fmt]

    @property
    def all_names(self) -> list[str]:
        names = [n for _, n in self.archives]
        if self.sbom is not None:
            names.append(self.sbom)
        names.extend(self.signatures)
        return names


def assign_artifact_names(plan: ReleasePlan) -> dict[tuple[str, str], UnitNames]:
    """
    Render every artifact name of the run and check that they are all distinct.

    Returns:
        Names keyed by (package, target).

    Raises:
        NamingCollisionError: Two units (or a unit and a run-level file such as
            SHA256SUMS) render to the same name.
        ConfigError: A template renders to something that is not a file name.
    """
    assigned: dict[tuple[str, str], UnitNames] = {}
    owners: dict[str, list[str]] = {name: ["<run>"] for name in RUN_LEVEL_FILES}
    signing_any = False

    for unit in plan.targets:
        pkg = unit.package
        base = render_name(pkg.packaging.name_template, pkg.name, plan.version.value, unit.target)
        archives = tuple((fmt, f"{base}.{fmt}") for fmt in pkg.packaging.formats)
        sbom = f"{base}{SBOM_SUFFIX}" if pkg.sbom.enabled else None
        signed = pkg.sign.enabled
        signing_any = signing_any or signed

        signed_files = [n for _, n in archives] + ([sbom] if sbom is not None else [])
        signatures = tuple(signature_name(n) for n in signed_files) if signed else ()

        names = UnitNames(
            package=pkg.name,
            target=unit.target,
            base=base,
            archives=archives,
            sbom=sbom,
            signed=signed,
            signatures=signatures,
        )
        for file_name in names.all_names:
            owners.setdefault(file_name, []).append(unit.label)
        assigned[unit.key] = names

    if signing_any:
        owners.setdefault(signature_name(CHECKSUM_FILE), []).append("<run>")

    for file_name in sorted(owners):
        if len(owners[file_name]) > 1:
            raise NamingCollisionError(file_name, owners[file_name])

    _logger.debug("Artifact names assigned", extra={"units": len(assigned)})
    return assigned
