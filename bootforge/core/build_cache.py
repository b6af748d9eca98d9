"""Content-addressed, immutable build cache.

Storage layout::

    {cache}/entries/{fingerprint}/artifact/...   the artifact bundle
    {cache}/entries/{fingerprint}/entry.json     integrity marker (CacheEntry)

A commit stages the bundle and marker in a hidden temporary directory and
renames it into place, so a crashed run can never leave a half-written entry
under a fingerprint name. Entries are never rewritten: the first writer
wins and invalidation happens by fingerprint change. Corruption (a missing
or unreadable marker, or a bundle whose digest no longer matches) is
detected lazily on lookup and the entry is scheduled for eviction.
"""

from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path

from pydantic import ValidationError

from bootforge.core.context import BuildContext
from bootforge.core.hasher import tree_digest
from bootforge.core.locking import FingerprintLock
from bootforge.models.artifacts import Artifact, CacheEntry

logger = logging.getLogger(__name__)

MARKER_NAME = "entry.json"
BUNDLE_NAME = "artifact"
_TMP_PREFIX = ".tmp-"


class BuildCache:
    """Fingerprint-keyed store of built artifacts.

    Parameters
    ----------
    ctx:
        Build context supplying the cache root.
    """

    def __init__(self, ctx: BuildContext) -> None:
        self._ctx = ctx
        self._root = ctx.entries_dir
        self._root.mkdir(parents=True, exist_ok=True)
        self._scheduled: set[str] = set()

    def _entry_dir(self, fingerprint: str) -> Path:
        return self._root / fingerprint

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def lookup(self, fingerprint: str) -> Artifact | None:
        """Return the cached artifact, or None on a miss.

        Never builds and never deletes; a corrupted entry is a miss and is
        scheduled for eviction.
        """
        entry_dir = self._entry_dir(fingerprint)
        if not entry_dir.exists():
            return None
        entry = self._read_marker(fingerprint)
        if entry is None or not self._bundle_intact(fingerprint, entry):
            logger.warning(
                "Cache entry %s is corrupted; scheduling eviction", fingerprint[:16]
            )
            self._scheduled.add(fingerprint)
            self._ctx.record("cache_corrupt", fingerprint=fingerprint)
            return None
        return self._artifact_for(entry)

    def _read_marker(self, fingerprint: str) -> CacheEntry | None:
        marker = self._entry_dir(fingerprint) / MARKER_NAME
        try:
            entry = CacheEntry.model_validate_json(marker.read_text(encoding="utf-8"))
        except (OSError, ValidationError, ValueError):
            return None
        if entry.fingerprint != fingerprint or not entry.valid:
            return None
        return entry

    def _bundle_intact(self, fingerprint: str, entry: CacheEntry) -> bool:
        bundle = self._entry_dir(fingerprint) / BUNDLE_NAME
        if not bundle.is_dir():
            return False
        digest, _ = tree_digest(bundle)
        return digest == entry.tree_digest

    def _artifact_for(self, entry: CacheEntry) -> Artifact:
        return Artifact(
            stage=entry.stage,
            host=entry.host,
            target=entry.target,
            fingerprint=entry.fingerprint,
            path=self._entry_dir(entry.fingerprint) / BUNDLE_NAME,
            tree_digest=entry.tree_digest,
        )

    def entries(self) -> list[CacheEntry]:
        """All readable markers, including ones whose bundles may be damaged."""
        found: list[CacheEntry] = []
        for child in sorted(self._root.iterdir()):
            if child.name.startswith(_TMP_PREFIX) or not child.is_dir():
                continue
            entry = self._read_marker(child.name)
            if entry is not None:
                found.append(entry)
        return found

    @property
    def scheduled(self) -> set[str]:
        """Fingerprints found corrupted and awaiting eviction."""
        return set(self._scheduled)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def commit(self, fingerprint: str, artifact: Artifact) -> CacheEntry:
        """Move a freshly built bundle into the cache under ``fingerprint``.

        If a valid entry already exists this is a no-op and the staged
        bundle is discarded. A corrupted entry scheduled for eviction is
        evicted first.
        """
        if fingerprint in self._scheduled:
            self.evict(fingerprint)

        existing = self._read_marker(fingerprint)
        if existing is not None and self._bundle_intact(fingerprint, existing):
            logger.info("Cache entry %s already committed; keeping first writer", fingerprint[:16])
            if artifact.path.exists() and self._entry_dir(fingerprint) not in artifact.path.parents:
                shutil.rmtree(artifact.path, ignore_errors=True)
            return existing
        if self._entry_dir(fingerprint).exists():
            self.evict(fingerprint)

        staging = self._root / f"{_TMP_PREFIX}{fingerprint[:16]}-{uuid.uuid4().hex[:8]}"
        staging.mkdir(parents=True)
        try:
            shutil.move(str(artifact.path), str(staging / BUNDLE_NAME))
            digest, _ = tree_digest(staging / BUNDLE_NAME)
            entry = CacheEntry(
                fingerprint=fingerprint,
                stage=artifact.stage,
                host=artifact.host,
                target=artifact.target,
                tree_digest=digest,
            )
            (staging / MARKER_NAME).write_text(
                entry.model_dump_json(indent=2) + "\n", encoding="utf-8"
            )
            staging.rename(self._entry_dir(fingerprint))
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        self._ctx.record(
            "cache_commit", stage=entry.stage, fingerprint=fingerprint,
            detail=f"{entry.host}->{entry.target}",
        )
        logger.info(
            "Committed stage %d %s->%s as %s",
            entry.stage, entry.host, entry.target, fingerprint[:16],
        )
        return entry

    def artifact(self, fingerprint: str) -> Artifact:
        """The artifact for a committed fingerprint (no integrity re-check)."""
        entry = self._read_marker(fingerprint)
        if entry is None:
            raise KeyError(fingerprint)
        return self._artifact_for(entry)

    # ------------------------------------------------------------------
    # Eviction and integrity
    # ------------------------------------------------------------------

    def evict(self, fingerprint: str) -> bool:
        """Remove an entry. Returns True if something was removed."""
        self._scheduled.discard(fingerprint)
        entry_dir = self._entry_dir(fingerprint)
        if not entry_dir.exists():
            return False
        # Rename first so a concurrent reader never sees a half-deleted entry.
        doomed = self._root / f"{_TMP_PREFIX}evict-{fingerprint[:16]}-{uuid.uuid4().hex[:8]}"
        entry_dir.rename(doomed)
        shutil.rmtree(doomed, ignore_errors=True)
        logger.info("Evicted cache entry %s", fingerprint[:16])
        return True

    def evict_scheduled(self) -> list[str]:
        evicted = [fp for fp in sorted(self._scheduled) if self.evict(fp)]
        self._scheduled.clear()
        return evicted

    def evict_matching(
        self,
        *,
        stage: int | None = None,
        target: str | None = None,
        host: str | None = None,
    ) -> list[str]:
        """Evict entries for a stage, target triple and/or host triple."""
        evicted: list[str] = []
        for entry in self.entries():
            if stage is not None and entry.stage != stage:
                continue
            if target is not None and entry.target.triple != target:
                continue
            if host is not None and entry.host.triple != host:
                continue
            if self.evict(entry.fingerprint):
                evicted.append(entry.fingerprint)
        return evicted

    def clear(self) -> int:
        """Evict every entry, corrupted or not. Returns the number removed."""
        removed = 0
        for child in sorted(self._root.iterdir()):
            if child.is_dir():
                shutil.rmtree(child, ignore_errors=True)
                removed += 0 if child.name.startswith(_TMP_PREFIX) else 1
        self._scheduled.clear()
        return removed

    def verify_integrity(self) -> set[str]:
        """Scan every entry and return the corrupted fingerprints.

        Staging directories are skipped; another process may own them.
        """
        corrupted: set[str] = set()
        for child in sorted(self._root.iterdir()):
            if child.name.startswith(_TMP_PREFIX) or not child.is_dir():
                continue
            entry = self._read_marker(child.name)
            if entry is None or not self._bundle_intact(child.name, entry):
                corrupted.add(child.name)
        self._scheduled.update(corrupted)
        return corrupted

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def lock(self, fingerprint: str) -> FingerprintLock:
        return FingerprintLock(self._ctx.locks_dir, fingerprint)
