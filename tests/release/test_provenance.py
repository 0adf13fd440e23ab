# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Tests for build provenance records.
"""

from dataclasses import replace
from pathlib import Path

from polyship.release import provenance
from polyship.release.pipeline import RunResult
from polyship.release.provenance import (
    NOT_INSTALLED,
    collect_provenance,
    compare_provenance,
    load_provenance,
    toolchain_versions,
    write_provenance,
)


def test_pipeline_writes_provenance(release_run: RunResult):
    record = load_provenance(release_run.provenance_path)
    assert record.version == "1.2.3"
    assert record.commit == "0123456789abcdef0123456789abcdef01234567"
    assert record.host_triple == "x86_64-unknown-linux-gnu"
    assert record.source_date_epoch == 1700000000
    assert record.generated_at == release_run.manifest.generated_at
    assert record.units == ["demo/x86_64-unknown-linux-gnu"]
    assert "rust" in record.toolchains


def test_missing_toolchain_is_recorded_not_raised(monkeypatch):
    monkeypatch.setattr(provenance, "_TOOLCHAIN_PROBES", {"rust": ["polyship-no-such-rustc", "--version"]})
    assert toolchain_versions(["rust", "rust", "cobol"]) == {"rust": NOT_INSTALLED}


def test_round_trip(plan_for, tmp_path: Path, monkeypatch):
    monkeypatch.setattr(provenance, "toolchain_versions", lambda types: {"rust": "rustc 1.78.0"})
    plan = plan_for({"project": {"name": "demo", "type": "rust"}})
    record = collect_provenance(
        plan, "2023-11-14T22:13:20Z", repo_url="git@example.com:acme/demo.git", commit_time=1700000000
    )

    path = tmp_path / "provenance.json"
    write_provenance(record, path)
    loaded = load_provenance(path)
    assert loaded == record
    assert loaded.commit_time == 1700000000


def test_compare_ignores_timestamps(plan_for, monkeypatch):
    monkeypatch.setattr(provenance, "toolchain_versions", lambda types: {"rust": "rustc 1.78.0"})
    plan = plan_for({"project": {"name": "demo", "type": "rust"}})
    a = collect_provenance(plan, "2023-11-14T22:13:20Z")
    b = replace(a, generated_at="2024-01-01T00:00:00Z", ci=not a.ci)
    assert compare_provenance(a, b) == []


def test_compare_reports_toolchain_and_commit(plan_for, monkeypatch):
    monkeypatch.setattr(provenance, "toolchain_versions", lambda types: {"rust": "rustc 1.78.0"})
    plan = plan_for({"project": {"name": "demo", "type": "rust"}})
    a = collect_provenance(plan, "2023-11-14T22:13:20Z")
    b = replace(a, commit="f" * 40, toolchains={"rust": "rustc 1.79.0", "go": "go1.22"})

    fields = [d.field for d in compare_provenance(a, b)]
    assert fields == ["commit", "toolchain:go", "toolchain:rust"]
