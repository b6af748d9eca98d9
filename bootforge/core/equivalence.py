"""Fixed-point equivalence between two builds of the same stage.

Bit-identity is too strict for a self-hosting compiler: legitimate
non-determinism (timestamps, embedded build paths) differs between two
otherwise identical builds. Two artifacts are treated as functionally
equivalent when their *normalized* digests match:

- the same relative file paths with the same executable bits;
- identical contents once each artifact's own absolute location is
  replaced with a fixed placeholder;
- everything under ``meta/`` (build logs, timestamps, provenance the tool
  chooses to emit) is left out.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict

from bootforge.core.hasher import canonical_json_bytes, sha256_hex, tree_digest, tree_entries
from bootforge.models.artifacts import Artifact

VOLATILE_PREFIXES: tuple[str, ...] = ("meta/",)
PATH_PLACEHOLDER = b"@BOOTFORGE_ARTIFACT_ROOT@"


class EquivalenceResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    equivalent: bool
    reference_digest: str
    candidate_digest: str
    differing_paths: list[str] = []


def _normalizer(root: Path, build_paths: tuple[Path, ...] = ()):
    needles = sorted(
        {str(p).encode() for p in (root, root.resolve(), *build_paths)},
        key=len,
        reverse=True,
    )

    def transform(_rel: str, data: bytes) -> bytes:
        for needle in needles:
            if needle:
                data = data.replace(needle, PATH_PLACEHOLDER)
        return data

    return transform


def _is_volatile(rel: str) -> bool:
    return rel.startswith(VOLATILE_PREFIXES)


def normalized_digest(root: Path, build_paths: tuple[Path, ...] = ()) -> str:
    digest, _ = tree_digest(
        root, exclude=_is_volatile, transform=_normalizer(Path(root), build_paths)
    )
    return digest


def _file_digests(root: Path, build_paths: tuple[Path, ...]) -> dict[str, str]:
    """Per-file normalized digests, for reporting what differs."""
    entries = tree_entries(root, exclude=_is_volatile, transform=_normalizer(root, build_paths))
    return {entry[0]: sha256_hex(canonical_json_bytes(entry)) for entry in entries}


def compare_artifacts(
    reference: Artifact,
    candidate: Artifact,
    *,
    build_paths: tuple[Path, ...] = (),
) -> EquivalenceResult:
    """Compare "stage F built by F-1" (reference) with "F built by F"."""
    ref_digest = normalized_digest(reference.path, build_paths)
    cand_digest = normalized_digest(candidate.path, build_paths)
    if ref_digest == cand_digest:
        return EquivalenceResult(
            equivalent=True, reference_digest=ref_digest, candidate_digest=cand_digest
        )

    ref_files = _file_digests(reference.path, build_paths)
    cand_files = _file_digests(candidate.path, build_paths)
    differing = sorted(
        rel for rel in set(ref_files) | set(cand_files)
        if ref_files.get(rel) != cand_files.get(rel)
    )
    return EquivalenceResult(
        equivalent=False,
        reference_digest=ref_digest,
        candidate_digest=cand_digest,
        differing_paths=differing,
    )
