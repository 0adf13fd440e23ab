# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Release orchestrator.

Runs a plan through build -> package -> SBOM -> sign -> manifest:

  1. Every artifact name is rendered and checked for collisions before any
     tool runs.
  2. Build stage: every unit builds in a thread pool. Failures are collected,
     siblings are not cancelled. If anything failed and partial releases are
     off, the run stops here with StageFailedError listing every failure.
  3. Finish stage: each built unit is packaged, gets its SBOM, and is signed,
     in that order, again in parallel. EmptyArchiveError and archive member
     collisions stop the run even in partial mode; everything else is a unit
     failure, handled like build failures.
  4. SHA256SUMS, its signature, manifest.json and provenance.json are written
     from the completed unit results only, after all units are done. Their
     content is sorted, so it does not depend on which thread finished first.

Each unit writes only files named for its own (package, target), so units
never contend for an output path.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional, TypeVar

from polyship.config.exceptions import ConfigError
from polyship.logging.logger import get_logger
from polyship.release import gitinfo
from polyship.release.builders.base import BuildOutput
from polyship.release.builders.dispatch import BuildDispatcher
from polyship.release.checksums.integrity import ChecksumFile, write_checksum_file
from polyship.release.errors import (
    EmptyArchiveError,
    NamingCollisionError,
    ReleaseError,
    StageFailedError,
    UnitFailure,
)
from polyship.release.manifests.manifest import Manifest, UnitResult, build_manifest, write_manifest
from polyship.release.packaging.naming import (
    MANIFEST_FILE,
    PROVENANCE_FILE,
    UnitNames,
    assign_artifact_names,
)
from polyship.release.packaging.packager import package_unit
from polyship.release.plan.models import BuildTarget, ReleasePlan
from polyship.release.provenance import collect_provenance, write_provenance
from polyship.release.sbom.generator import generate_sbom
from polyship.release.signing.signer import Signature, Signer

_logger: logging.Logger = get_logger(__name__)

STAGE_BUILD = "build"
STAGE_PACKAGE = "package"
STAGE_SBOM = "sbom"
STAGE_SIGN = "sign"

_STAGE_ORDER = (STAGE_BUILD, STAGE_PACKAGE, STAGE_SBOM, STAGE_SIGN)

# Errors that end the whole run, even when partial releases are allowed.
_RUN_FATAL = (EmptyArchiveError, NamingCollisionError)

T = TypeVar("T")


class _UnitStageError(Exception):
    """Carries the stage a unit stopped in out of a worker thread."""

    def __init__(self, stage: str, error: Exception) -> None:
        self.stage = stage
        self.error = error
        super().__init__(str(error))


@dataclass(frozen=True)
class RunResult:
    plan: ReleasePlan
    output_dir: Path
    results: tuple[UnitResult, ...]
    failures: tuple[UnitFailure, ...] = ()
    checksum: Optional[ChecksumFile] = None
    manifest: Optional[Manifest] = None
    manifest_path: Optional[Path] = None
    provenance_path: Optional[Path] = None
    build_outputs: tuple[BuildOutput, ...] = field(default_factory=tuple)

    @property
    def partial(self) -> bool:
        return bool(self.failures)


def run_timestamp(source_date_epoch: Optional[int]) -> str:
    """ISO-8601 UTC time for the run; pinned when SOURCE_DATE_EPOCH is set."""
    if source_date_epoch is not None:
        moment = datetime.fromtimestamp(source_date_epoch, tz=timezone.utc)
    else:
        moment = datetime.now(tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


class ReleasePipeline:
    """
    One release run over one plan and one output directory.

    Args:
        plan: The computed release plan.
        workspace_root: Repository root; package paths are relative to it.
        output_dir: Where artifacts, signatures and the manifest are written.
        max_workers: Thread pool size for per-unit work.
        allow_partial: Publish the units that succeeded when some failed.
    """

    def __init__(
        self,
        plan: ReleasePlan,
        workspace_root: Path,
        output_dir: Path,
        max_workers: int = 4,
        allow_partial: bool = False,
    ) -> None:
        self.plan = plan
        self.workspace_root = workspace_root
        self.output_dir = output_dir
        self.max_workers = max_workers
        self.allow_partial = allow_partial
        self.dispatcher = BuildDispatcher(
            workspace_root,
            version=plan.version.value,
            source_date_epoch=plan.source_date_epoch,
        )

    def _parallel(
        self, units: list[BuildTarget], work: Callable[[BuildTarget], T]
    ) -> tuple[dict[tuple[str, str], T], list[UnitFailure]]:
        """Run `work` for every unit; return successes by key and all failures."""
        done: dict[tuple[str, str], T] = {}
        failures: list[UnitFailure] = []
        if not units:
            return done, failures

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="polyship") as pool:
            futures = {unit.key: (unit, pool.submit(work, unit)) for unit in units}
            for key in sorted(futures):
                unit, future = futures[key]
                try:
                    done[key] = future.result()
                except _UnitStageError as err:
                    _logger.error(
                        "Unit failed",
                        extra={"unit": unit.label, "stage": err.stage, "error": str(err.error)},
                    )
                    failures.append(
                        UnitFailure(
                            package=unit.package.name, target=unit.target, stage=err.stage, error=err.error
                        )
                    )
        return done, failures

    def _check_failures(self, failures: list[UnitFailure], stage: str) -> None:
        for failure in failures:
            if isinstance(failure.error, _RUN_FATAL):
                raise failure.error
        if failures and not self.allow_partial:
            first_stage = min((f.stage for f in failures), key=_STAGE_ORDER.index)
            raise StageFailedError(first_stage or stage, failures)

    def _build_unit(self, unit: BuildTarget) -> BuildOutput:
        try:
            return self.dispatcher.build(unit)
        except (ReleaseError, ConfigError, OSError) as err:
            raise _UnitStageError(STAGE_BUILD, err) from err

    def build(self) -> tuple[dict[tuple[str, str], BuildOutput], list[UnitFailure]]:
        """
        Build every unit of the plan.

        Raises:
            NamingCollisionError: Two units would write the same artifact name.
            StageFailedError: A unit failed and partial releases are off.
        """
        assign_artifact_names(self.plan)
        outputs, failures = self._parallel(list(self.plan.targets), self._build_unit)
        _logger.info(
            "Build stage finished",
            extra={"built": len(outputs), "failed": len(failures)},
        )
        self._check_failures(failures, STAGE_BUILD)
        return outputs, failures

    def _finish_unit(
        self,
        unit: BuildTarget,
        output: BuildOutput,
        names: UnitNames,
    ) -> UnitResult:
        stage = STAGE_PACKAGE
        try:
            archives = package_unit(output, unit, names, self.output_dir, self.plan.archive_epoch)

            stage = STAGE_SBOM
            sbom = None
            if names.sbom is not None:
                sbom = generate_sbom(
                    unit,
                    names.sbom,
                    self.output_dir,
                    self.workspace_root,
                    self.plan.version.value,
                    self.plan.archive_epoch,
                )

            stage = STAGE_SIGN
            signatures: list[Signature] = []
            if unit.package.sign.enabled:
                files = [(a.path, a.digest) for a in archives]
                if sbom is not None:
                    files.append((sbom.path, sbom.digest))
                signatures = Signer(unit.package.sign).sign_files(files)
        except (ReleaseError, ConfigError, OSError) as err:
            raise _UnitStageError(stage, err) from err

        return UnitResult(
            target=unit,
            archives=tuple(archives),
            sbom=sbom,
            signatures=tuple(signatures),
        )

    def run(self) -> RunResult:
        """
        Build, package, attach SBOMs and signatures, and write the manifest.

        Raises:
            NamingCollisionError, EmptyArchiveError: fatal for the run.
            StageFailedError: Units failed and partial releases are off, or
                every unit failed.
        """
        names = assign_artifact_names(self.plan)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        outputs, build_failures = self.build()
        built_units = [u for u in self.plan.targets if u.key in outputs]

        results_by_key, finish_failures = self._parallel(
            built_units, lambda u: self._finish_unit(u, outputs[u.key], names[u.key])
        )
        failures = sorted(build_failures + finish_failures, key=lambda f: (f.package, f.target))
        self._check_failures(finish_failures, STAGE_PACKAGE)

        results = [results_by_key[k] for k in sorted(results_by_key)]
        if not results:
            raise StageFailedError(failures[0].stage if failures else STAGE_BUILD, failures)
        if failures:
            _logger.warning(
                "Partial release: some units were skipped",
                extra={"skipped": [f"{f.package}/{f.target}" for f in failures]},
            )

        return self._write_run_files(results, failures, outputs)

    def _write_run_files(
        self,
        results: list[UnitResult],
        failures: list[UnitFailure],
        outputs: dict[tuple[str, str], BuildOutput],
    ) -> RunResult:
        checksummed: dict[str, str] = {}
        for result in results:
            checksummed.update(result.checksummed_files())
        checksum = write_checksum_file(self.output_dir, checksummed)

        checksum_signature: Optional[Signature] = None
        signing = sorted(
            (r for r in results if r.target.package.sign.enabled),
            key=lambda r: r.key,
        )
        if signing:
            # the run-level file is signed with the first signing package's settings
            signer = Signer(signing[0].target.package.sign)
            checksum_signature = signer.sign_file(checksum.path, checksum.digest)

        generated_at = run_timestamp(self.plan.source_date_epoch)
        manifest = build_manifest(
            results,
            self.plan.version,
            checksum,
            generated_at,
            checksum_signature=checksum_signature,
            commit=self.plan.host.commit,
            skipped=failures,
        )
        manifest_path = self.output_dir / MANIFEST_FILE
        write_manifest(manifest, manifest_path)

        provenance = collect_provenance(
            self.plan,
            generated_at,
            repo_url=gitinfo.repo_url(self.workspace_root),
            units=[r.target.label for r in results],
            commit_time=gitinfo.commit_timestamp(self.workspace_root),
        )
        provenance_path = self.output_dir / PROVENANCE_FILE
        write_provenance(provenance, provenance_path)

        _logger.info(
            "Release run complete",
            extra={
                "version": self.plan.version.value,
                "units": len(results),
                "skipped": len(failures),
                "entries": len(manifest.entries),
            },
        )
        return RunResult(
            plan=self.plan,
            output_dir=self.output_dir,
            results=tuple(results),
            failures=tuple(failures),
            checksum=checksum,
            manifest=manifest,
            manifest_path=manifest_path,
            provenance_path=provenance_path,
            build_outputs=tuple(outputs[k] for k in sorted(outputs)),
        )
