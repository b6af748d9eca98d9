"""Canonical hashing helpers for fingerprints, tree digests and downloads.

Fingerprints are SHA-256 over canonical JSON, so the same inputs always
produce the same digest regardless of dict ordering or platform.
"""

from __future__ import annotations

import hashlib
import json
import os
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any, BinaryIO

from bootforge.models.artifacts import SourceSnapshot
from bootforge.models.platforms import Platform

_CHUNK = 1024 * 1024

# Directories that never contribute to a source tree digest.
IGNORED_SOURCE_DIRS: frozenset[str] = frozenset({".git", ".hg", ".svn", "__pycache__"})

FINGERPRINT_SCHEMA = 1


def canonical_json_bytes(obj: Any) -> bytes:
    """Produce canonical JSON bytes (sorted keys, compact separators)."""
    return json.dumps(
        obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True
    ).encode("utf-8")


def sha256_hex(data: bytes) -> str:
    """Return the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(data).hexdigest()


def sha256_stream(stream: BinaryIO) -> str:
    """SHA-256 of a readable binary stream, consumed in chunks."""
    h = hashlib.sha256()
    for chunk in iter(lambda: stream.read(_CHUNK), b""):
        h.update(chunk)
    return h.hexdigest()


def sha256_file(path: Path) -> str:
    with open(path, "rb") as fh:
        return sha256_stream(fh)


def _walk_files(
    root: Path, skip_dirs: frozenset[str], follow_symlinks: bool = False
) -> Iterator[tuple[str, Path]]:
    """Yield (relative posix path, absolute path) for files and symlinks, sorted.

    Without ``follow_symlinks`` every symlink is an entry of its own and is
    never descended into. With it, links are walked through and only
    dangling links remain as entries; each real directory is walked once.
    """
    found: list[tuple[str, Path]] = []
    seen_dirs: set[str] = set()
    for dirpath, dirnames, filenames in os.walk(root, followlinks=follow_symlinks):
        if follow_symlinks:
            real = os.path.realpath(dirpath)
            if real in seen_dirs:
                dirnames[:] = []
                continue
            seen_dirs.add(real)
        kept: list[str] = []
        for name in sorted(dirnames):
            if name in skip_dirs:
                continue
            full = Path(dirpath) / name
            if full.is_symlink() and not follow_symlinks:
                found.append((full.relative_to(root).as_posix(), full))
                continue
            kept.append(name)
        dirnames[:] = kept
        for name in filenames:
            full = Path(dirpath) / name
            if not full.is_symlink() and not full.is_file():
                continue
            found.append((full.relative_to(root).as_posix(), full))
    yield from sorted(found)


def tree_entries(
    root: Path,
    *,
    skip_dirs: frozenset[str] = frozenset(),
    exclude: Callable[[str], bool] | None = None,
    transform: Callable[[str, bytes], bytes] | None = None,
    follow_symlinks: bool = False,
) -> Iterator[list[Any]]:
    """Yield one canonical entry per file in ``root``, sorted by path.

    Regular files are ``[rel, executable, content digest]``; symlinks that
    are not followed are ``[rel, "link", link target]``. ``exclude`` drops
    relative paths; ``transform`` rewrites file bytes and link targets
    before hashing (used by the fixed-point normalizer).
    """
    root = Path(root)
    for rel, full in _walk_files(root, skip_dirs, follow_symlinks):
        if exclude is not None and exclude(rel):
            continue
        if full.is_symlink() and not (follow_symlinks and full.exists()):
            target = os.readlink(full)
            if transform is not None:
                target = transform(rel, os.fsencode(target)).decode("utf-8", "surrogateescape")
            yield [rel, "link", target]
            continue
        executable = os.access(full, os.X_OK)
        if transform is None:
            content_digest = sha256_file(full)
        else:
            content_digest = sha256_hex(transform(rel, full.read_bytes()))
        yield [rel, executable, content_digest]


def tree_digest(
    root: Path,
    *,
    skip_dirs: frozenset[str] = frozenset(),
    exclude: Callable[[str], bool] | None = None,
    transform: Callable[[str, bytes], bytes] | None = None,
    follow_symlinks: bool = False,
) -> tuple[str, int]:
    """Digest a directory tree: relative paths, executable bits, contents and links.

    Returns ``(hex digest, entry count)``.
    """
    h = hashlib.sha256()
    count = 0
    for entry in tree_entries(
        root,
        skip_dirs=skip_dirs,
        exclude=exclude,
        transform=transform,
        follow_symlinks=follow_symlinks,
    ):
        h.update(canonical_json_bytes(entry))
        h.update(b"\n")
        count += 1
    return h.hexdigest(), count


def snapshot_sources(root: Path) -> SourceSnapshot:
    """Digest the source tree a build will read, through any symlinks."""
    root = Path(root).resolve()
    digest, count = tree_digest(root, skip_dirs=IGNORED_SOURCE_DIRS, follow_symlinks=True)
    return SourceSnapshot(root=root, digest=digest, file_count=count)


def compute_fingerprint(
    *,
    role: str,
    stage: int,
    host: Platform,
    target: Platform,
    source_digest: str,
    config_inputs: dict[str, Any],
    upstream: str,
) -> str:
    """SHA-256 of every input that determines a step's output.

    ``upstream`` is the stage-0 checksum for stage 1 and the fingerprint of
    the consumed artifact for every later stage, so a change anywhere up the
    chain propagates down it and nowhere else.
    """
    payload = {
        "schema": FINGERPRINT_SCHEMA,
        "role": role,
        "stage": stage,
        "host": host.triple,
        "target": target.triple,
        "source": source_digest,
        "config": config_inputs,
        "upstream": upstream,
    }
    return sha256_hex(canonical_json_bytes(payload))
