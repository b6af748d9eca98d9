"""Adversarial tests: tampered snapshots, corrupted cache, broken fixed points.

Every case here must end with exit code 3 (or a clean recovery) and must
never let untrusted bytes reach a toolchain invocation or the cache.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from bootforge.models.plan import BuildRequest
from bootforge.models.results import CompileFailure
from bootforge.models.stages import BuildAction, RunState, StepStatus

pytestmark = pytest.mark.slow

BAD_DIGEST = "0" * 64


def _entry_path(cache_root: Path, fingerprint: str) -> Path:
    return cache_root / "entries" / fingerprint


class TestTamperedSnapshot:
    def test_checksum_mismatch_stops_before_any_toolchain_runs(
        self, make_orchestrator, make_manifest, host, cache_root
    ):
        orchestrator = make_orchestrator(manifest_override=make_manifest(host, checksum=BAD_DIGEST))
        report = orchestrator.run(BuildRequest(hosts=(host,)))

        assert report.exit_code == 3
        assert report.final_state is RunState.FAILED
        assert report.errors[0].error_type == "ChecksumMismatchError"
        assert report.outcome(f"fetch:{host}").status is StepStatus.FAILED
        assert report.outcome(f"build:1:{host}:{host}").status is StepStatus.SKIPPED
        assert not any(e.event == "process_spawned" for e in report.events)
        # Nothing from the rejected archive is installed.
        assert list((cache_root / "snapshots" / host.triple).iterdir()) == []
        assert list((cache_root / "entries").iterdir()) == []

    def test_only_the_tampered_host_loses_its_chain(
        self, make_orchestrator, make_manifest, host, other_host
    ):
        manifest = make_manifest(
            host, other_host, overrides={other_host: {"checksum": f"sha256:{BAD_DIGEST}"}}
        )
        report = make_orchestrator(manifest_override=manifest).run(
            BuildRequest(hosts=(host, other_host))
        )

        assert report.exit_code == 3
        assert report.final_state is RunState.FAILED
        assert report.outcome(f"fetch:{other_host}").status is StepStatus.FAILED
        assert report.outcome(f"build:2:{other_host}:{other_host}").status is StepStatus.SKIPPED
        assert report.outcome(f"build:2:{host}:{host}").status is StepStatus.BUILT
        assert report.outcome(f"fixpoint:2:{host}:{host}").status is StepStatus.VALIDATED

    def test_modified_extracted_snapshot_is_refetched(self, make_orchestrator, host, cache_root):
        make_orchestrator().run(BuildRequest(hosts=(host,), stage=1))
        extracted = next((cache_root / "snapshots" / host.triple).iterdir()) / "toolchain"
        (extracted / "bin" / "injected").write_text("payload")

        report = make_orchestrator().run(BuildRequest(hosts=(host,), stage=1))
        assert report.exit_code == 0
        assert any(e.event == "snapshot_fetched" for e in report.events)
        assert not (extracted / "bin" / "injected").exists()


class TestCorruptedCache:
    def test_corrupted_entry_is_rebuilt(self, make_orchestrator, host, cache_root):
        first = make_orchestrator().run(BuildRequest(hosts=(host,)))
        stage1 = first.outcome(f"build:1:{host}:{host}").fingerprint
        codegen = _entry_path(cache_root, stage1) / "artifact" / "lib" / "codegen.txt"
        codegen.write_text("tampered\n")

        report = make_orchestrator().run(BuildRequest(hosts=(host,)))

        assert report.exit_code == 0, report.errors
        assert any(e.event == "cache_corrupt" and e.fingerprint == stage1 for e in report.events)
        assert report.outcome(f"build:1:{host}:{host}").status is StepStatus.BUILT
        assert report.outcome(f"build:1:{host}:{host}").fingerprint == stage1
        # The stage-1 fingerprint did not change, so stage 2 is still valid.
        assert report.outcome(f"build:2:{host}:{host}").status is StepStatus.CACHED
        assert "tampered" not in codegen.read_text()

    def test_corrupted_entry_that_cannot_be_rebuilt(self, make_orchestrator, host, cache_root):
        first = make_orchestrator().run(BuildRequest(hosts=(host,)))
        stage1 = first.outcome(f"build:1:{host}:{host}").fingerprint
        (_entry_path(cache_root, stage1) / "artifact" / "lib" / "codegen.txt").unlink()

        orchestrator = make_orchestrator()
        orchestrator.invoker.run = lambda request: CompileFailure(diagnostics="disk full", exit_code=1)
        report = orchestrator.run(BuildRequest(hosts=(host,)))

        assert report.exit_code == 3
        kinds = {e.error_type for e in report.errors}
        assert kinds == {"CompileError", "CacheCorruptionError"}
        assert report.outcome(f"build:2:{host}:{host}").status is StepStatus.SKIPPED
        assert not _entry_path(cache_root, stage1).exists()

    def test_unreadable_marker_is_a_miss(self, make_orchestrator, host, cache_root):
        first = make_orchestrator().run(BuildRequest(hosts=(host,), stage=1))
        stage1 = first.outcome(f"build:1:{host}:{host}").fingerprint
        (_entry_path(cache_root, stage1) / "entry.json").write_text("{not json")

        assert make_orchestrator().verify_cache() == {stage1}
        report = make_orchestrator().run(BuildRequest(hosts=(host,), stage=1))
        assert report.exit_code == 0
        assert report.outcome(f"build:1:{host}:{host}").status is StepStatus.BUILT

    def test_clean_corrupted_only(self, make_orchestrator, host, cache_root):
        first = make_orchestrator().run(BuildRequest(hosts=(host,)))
        stage1 = first.outcome(f"build:1:{host}:{host}").fingerprint
        stage2 = first.outcome(f"build:2:{host}:{host}").fingerprint
        (_entry_path(cache_root, stage1) / "artifact" / "lib" / "codegen.txt").write_text("x")

        make_orchestrator().run(BuildRequest(action=BuildAction.CLEAN, corrupted_only=True))
        assert not _entry_path(cache_root, stage1).exists()
        assert _entry_path(cache_root, stage2).exists()


class TestFixedPoint:
    def test_unstable_output_is_a_mismatch(self, make_orchestrator, host, source_tree, cache_root):
        (source_tree / "MISCOMPILE").write_text("")
        report = make_orchestrator().run(BuildRequest(action=BuildAction.VALIDATE, hosts=(host,)))

        assert report.exit_code == 3
        assert report.final_state is RunState.FAILED
        assert report.outcome(f"build:2:{host}:{host}").status is StepStatus.BUILT
        assert report.outcome(f"fixpoint:2:{host}:{host}").status is StepStatus.FAILED
        error = report.errors[0]
        assert error.error_type == "FixedPointMismatchError"
        assert error.stage == 2
        assert "lib/codegen.txt" in error.message
        # The non-equivalent rebuild is discarded, never committed.
        assert len(list((cache_root / "entries").iterdir())) == 2

    def test_validate_install_is_blocked_by_mismatch(
        self, make_orchestrator, host, source_tree, tmp_path
    ):
        (source_tree / "MISCOMPILE").write_text("")
        prefix = tmp_path / "prefix"
        report = make_orchestrator().run(
            BuildRequest(action=BuildAction.INSTALL, hosts=(host,), prefix=prefix)
        )
        assert report.exit_code == 3
        assert report.outcome(f"install:2:{host}:{host}").status is StepStatus.SKIPPED
        assert not prefix.exists()
