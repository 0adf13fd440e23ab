# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
End-to-end tests for the release pipeline with fake toolchains.
"""

import os
import shutil
from pathlib import Path

import pytest

from polyship.release.errors import NamingCollisionError, SbomGenerationError, StageFailedError
from polyship.release.pipeline import ReleasePipeline, run_timestamp
from polyship.release.verification.verifier import verify_release
from polyship.utils.hashing import compute_sha256

ARCHIVE = "demo-1.2.3-x86_64-unknown-linux-gnu.tar.gz"
SBOM = "demo-1.2.3-x86_64-unknown-linux-gnu.cdx.json"

DEMO = {"project": {"name": "demo", "type": "rust"}, "version": {"source": "manual", "manual": "1.2.3"}}


def _two_packages(**release) -> dict:
    return {
        "version": {"source": "manual", "manual": "1.2.3"},
        "sbom": {"mode": "fallback"},
        "release": release,
        "packages": [
            {"name": "demo", "type": "rust"},
            {"name": "api", "type": "go", "path": "api"},
        ],
    }


def test_run_timestamp_is_pinned_by_epoch():
    assert run_timestamp(0) == "1970-01-01T00:00:00Z"
    assert run_timestamp(None).endswith("Z")


def test_single_package_release(rust_workspace: Path, fake_cargo: Path, plan_for, tmp_path: Path):
    plan = plan_for({**DEMO, "sbom": {"mode": "fallback"}})
    result = ReleasePipeline(plan, rust_workspace, tmp_path / "dist").run()

    dist = tmp_path / "dist"
    assert sorted(p.name for p in dist.iterdir()) == sorted(
        [ARCHIVE, SBOM, "SHA256SUMS", "manifest.json", "provenance.json"]
    )
    lines = (dist / "SHA256SUMS").read_text(encoding="utf-8").splitlines()
    assert lines == [
        f"{compute_sha256(dist / SBOM)}  {SBOM}",
        f"{compute_sha256(dist / ARCHIVE)}  {ARCHIVE}",
    ]
    assert not result.partial
    assert [o.paths[0].name for o in result.build_outputs] == ["demo"]
    assert verify_release(dist).is_valid


def test_two_runs_produce_identical_bytes(rust_workspace: Path, fake_cargo: Path, plan_for, tmp_path: Path):
    plan = plan_for({**DEMO, "sbom": {"mode": "fallback"}, "package": {"formats": ["tar.gz", "zip"]}})
    first = ReleasePipeline(plan, rust_workspace, tmp_path / "one").run()
    second = ReleasePipeline(plan, rust_workspace, tmp_path / "two").run()

    assert first.checksum.digest == second.checksum.digest
    assert (tmp_path / "one" / "manifest.json").read_bytes() == (tmp_path / "two" / "manifest.json").read_bytes()


def test_collision_fails_before_any_build(rust_workspace: Path, fake_tool, plan_for, tmp_path: Path):
    marker = tmp_path / "cargo-ran"
    fake_tool("cargo", f"touch {marker}\n")
    plan = plan_for(
        {
            **DEMO,
            "build": {"targets": ["x86_64-unknown-linux-gnu", "aarch64-apple-darwin"]},
            "package": {"name_template": "{name}-{version}"},
        }
    )

    with pytest.raises(NamingCollisionError):
        ReleasePipeline(plan, rust_workspace, tmp_path / "dist").run()
    assert not marker.exists()
    assert not (tmp_path / "dist").exists()


def test_failed_unit_stops_the_run(rust_workspace: Path, fake_cargo: Path, fake_tool, plan_for, tmp_path: Path):
    (rust_workspace / "api").mkdir()
    fake_tool("go", "echo 'undefined: main' >&2\nexit 1\n")
    plan = plan_for(_two_packages())

    with pytest.raises(StageFailedError) as excinfo:
        ReleasePipeline(plan, rust_workspace, tmp_path / "dist").run()

    assert excinfo.value.stage == "build"
    assert [(f.package, f.stage) for f in excinfo.value.failures] == [("api", "build")]
    assert not (tmp_path / "dist" / "manifest.json").exists()


def test_partial_release_lists_only_completed_units(
    rust_workspace: Path, fake_cargo: Path, fake_tool, plan_for, tmp_path: Path
):
    (rust_workspace / "api").mkdir()
    fake_tool("go", "exit 1\n")
    plan = plan_for(_two_packages(allow_partial=True))

    result = ReleasePipeline(plan, rust_workspace, tmp_path / "dist", allow_partial=True).run()

    assert result.partial
    assert {e.package for e in result.manifest.entries if e.package} == {"demo"}
    assert [s["package"] for s in result.manifest.skipped] == ["api"]
    assert result.manifest.skipped[0]["stage"] == "build"
    assert verify_release(tmp_path / "dist").is_valid


def test_every_unit_failing_is_never_a_release(rust_workspace: Path, fake_tool, plan_for, tmp_path: Path):
    fake_tool("cargo", "exit 101\n")
    plan = plan_for(DEMO)

    with pytest.raises(StageFailedError):
        ReleasePipeline(plan, rust_workspace, tmp_path / "dist", allow_partial=True).run()
    assert not (tmp_path / "dist" / "manifest.json").exists()


GO_BUILD = """\
out=""
while [ $# -gt 0 ]; do
  if [ "$1" = "-o" ]; then out="$2"; fi
  shift
done
printf "%s/%s" "$GOOS" "$GOARCH" > "$out"
"""


def test_unreadable_lockfile_fails_only_its_unit(
    rust_workspace: Path, fake_cargo: Path, fake_tool, plan_for, tmp_path: Path
):
    api = rust_workspace / "api"
    api.mkdir()
    (api / "go.mod").write_bytes(b"module example.com/api\n\xff\xfe\n")
    fake_tool("go", GO_BUILD)
    plan = plan_for(_two_packages(allow_partial=True))

    result = ReleasePipeline(plan, rust_workspace, tmp_path / "dist", allow_partial=True).run()

    assert result.partial
    assert [(s["package"], s["stage"]) for s in result.manifest.skipped] == [("api", "sbom")]
    assert {e.package for e in result.manifest.entries if e.package} == {"demo"}
    assert (tmp_path / "dist" / "manifest.json").is_file()
    assert verify_release(tmp_path / "dist").is_valid


def test_unreadable_lockfile_without_partial_is_a_stage_failure(
    rust_workspace: Path, fake_cargo: Path, fake_tool, plan_for, tmp_path: Path
):
    api = rust_workspace / "api"
    api.mkdir()
    (api / "go.mod").write_bytes(b"module example.com/api\n\xff\xfe\n")
    fake_tool("go", GO_BUILD)
    plan = plan_for(_two_packages())

    with pytest.raises(StageFailedError) as excinfo:
        ReleasePipeline(plan, rust_workspace, tmp_path / "dist").run()

    [failure] = excinfo.value.failures
    assert (failure.package, failure.stage) == ("api", "sbom")
    assert isinstance(failure.error, SbomGenerationError)
    assert not (tmp_path / "dist" / "manifest.json").exists()


@pytest.mark.parametrize("with_identity", [False, True], ids=["no-oidc-identity", "cosign-not-installed"])
def test_cosign_unavailable_falls_back_and_still_verifies(
    rust_workspace: Path, fake_cargo: Path, plan_for, tmp_path: Path, monkeypatch, with_identity: bool
):
    if with_identity:
        # keyless identity present, so only the missing binary forces the fallback
        restricted = os.pathsep.join([str(fake_cargo.parent), "/bin", "/usr/bin"])
        if shutil.which("cosign", path=restricted) is not None:
            pytest.skip("cosign is installed on this host")
        monkeypatch.setenv("PATH", restricted)
        monkeypatch.setenv("SIGSTORE_ID_TOKEN", "token")
    plan = plan_for({**DEMO, "sbom": {"mode": "fallback"}, "sign": {"enabled": True, "method": "cosign"}})

    result = ReleasePipeline(plan, rust_workspace, tmp_path / "dist").run()

    records = result.manifest.signatures
    assert sorted(r.target for r in records) == sorted([ARCHIVE, SBOM, "SHA256SUMS"])
    assert {r.method for r in records} == {"fallback-hash"}
    assert {r.requested_method for r in records} == {"cosign"}
    assert result.manifest.signing_required
    assert verify_release(tmp_path / "dist").is_valid
