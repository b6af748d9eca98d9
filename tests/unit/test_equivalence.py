"""Tests for fixed-point equivalence of two builds."""

from __future__ import annotations

from pathlib import Path

from bootforge.core.equivalence import PATH_PLACEHOLDER, compare_artifacts, normalized_digest
from bootforge.models.artifacts import Artifact
from bootforge.models.platforms import Platform

HOST = Platform.parse("x86_64-unknown-linux-gnu")


def _bundle(root: Path, *, codegen: str = "ops", stamp: str = "t0", embed: Path | None = None) -> Artifact:
    (root / "bin").mkdir(parents=True)
    (root / "bin" / "toolchain").write_text("#!/bin/sh\n")
    (root / "bin" / "toolchain").chmod(0o755)
    (root / "lib").mkdir()
    (root / "lib" / "codegen.txt").write_text(codegen)
    (root / "lib" / "paths.txt").write_text(f"prefix={embed or root}\n")
    (root / "meta").mkdir()
    (root / "meta" / "build-info.json").write_text(stamp)
    return Artifact(stage=2, host=HOST, target=HOST, fingerprint=root.name * 4, path=root)


class TestCompareArtifacts:
    def test_identical_modulo_paths_and_metadata(self, tmp_path: Path):
        ref = _bundle(tmp_path / "ref", stamp="2024-01-01")
        cand = _bundle(tmp_path / "cand", stamp="2024-06-30")
        result = compare_artifacts(ref, cand)
        assert result.equivalent
        assert result.reference_digest == result.candidate_digest

    def test_embedded_build_paths_are_normalized(self, tmp_path: Path):
        ref = _bundle(tmp_path / "ref", embed=tmp_path / "work" / "a" / "out")
        cand = _bundle(tmp_path / "cand", embed=tmp_path / "work" / "b" / "out")
        assert not compare_artifacts(ref, cand).equivalent
        result = compare_artifacts(
            ref, cand, build_paths=(tmp_path / "work" / "a" / "out", tmp_path / "work" / "b" / "out")
        )
        assert result.equivalent

    def test_codegen_difference_is_reported(self, tmp_path: Path):
        ref = _bundle(tmp_path / "ref", codegen="ops v1")
        cand = _bundle(tmp_path / "cand", codegen="ops v2")
        result = compare_artifacts(ref, cand)
        assert not result.equivalent
        assert result.differing_paths == ["lib/codegen.txt"]

    def test_missing_file_is_a_difference(self, tmp_path: Path):
        ref = _bundle(tmp_path / "ref")
        cand = _bundle(tmp_path / "cand")
        (cand.path / "lib" / "extra.so").write_text("x")
        result = compare_artifacts(ref, cand)
        assert result.differing_paths == ["lib/extra.so"]

    def test_executable_bit_is_a_difference(self, tmp_path: Path):
        ref = _bundle(tmp_path / "ref")
        cand = _bundle(tmp_path / "cand")
        (cand.path / "bin" / "toolchain").chmod(0o644)
        assert compare_artifacts(ref, cand).differing_paths == ["bin/toolchain"]

    def test_symlink_target_is_a_difference(self, tmp_path: Path):
        ref = _bundle(tmp_path / "ref")
        cand = _bundle(tmp_path / "cand")
        (ref.path / "bin" / "cc").symlink_to("toolchain")
        (cand.path / "bin" / "cc").symlink_to("../lib/codegen.txt")
        assert compare_artifacts(ref, cand).differing_paths == ["bin/cc"]

    def test_absolute_symlinks_into_own_root_are_normalized(self, tmp_path: Path):
        ref = _bundle(tmp_path / "ref")
        cand = _bundle(tmp_path / "cand")
        for bundle in (ref, cand):
            (bundle.path / "bin" / "cc").symlink_to(bundle.path / "bin" / "toolchain")
        assert compare_artifacts(ref, cand).equivalent


class TestNormalizedDigest:
    def test_placeholder_replaces_root(self, tmp_path: Path):
        a = _bundle(tmp_path / "a")
        b = _bundle(tmp_path / "b")
        assert normalized_digest(a.path) == normalized_digest(b.path)
        assert PATH_PLACEHOLDER.startswith(b"@")
