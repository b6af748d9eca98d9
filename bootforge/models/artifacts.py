"""Artifact, cache entry and source snapshot models (immutable once built)."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from bootforge.models.platforms import Platform

# Relative path of the executable every host toolchain bundle must contain.
TOOLCHAIN_ENTRYPOINT = "bin/toolchain"


class SourceSnapshot(BaseModel):
    """The state of the source tree a step builds from."""

    model_config = ConfigDict(frozen=True)

    root: Path
    digest: str
    file_count: int = 0


class Artifact(BaseModel):
    """A built (or fetched) toolchain bundle for one stage and platform pair.

    The bundle itself is a directory at ``path``; ``tree_digest`` is the
    SHA-256 of its contents and doubles as the integrity check.
    """

    model_config = ConfigDict(frozen=True)

    stage: int
    host: Platform
    target: Platform
    fingerprint: str
    path: Path
    tree_digest: str = ""

    @property
    def entrypoint(self) -> Path:
        return self.path / TOOLCHAIN_ENTRYPOINT


class CacheEntry(BaseModel):
    """The integrity marker stored beside every cached artifact.

    Owned by BuildCache; written once at commit and never rewritten.
    """

    model_config = ConfigDict(frozen=True)

    fingerprint: str
    stage: int
    host: Platform
    target: Platform
    tree_digest: str
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    valid: bool = True
