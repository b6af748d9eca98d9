"""Snapshot manifest: which stage-0 archive to trust for each host platform.

Manifest files are TOML::

    [platforms."x86_64-unknown-linux-gnu"]
    url = "https://example.org/stage0-x86_64-unknown-linux-gnu.tar.gz"
    checksum = "sha256:<hex>"
    format-version = 1
"""

from __future__ import annotations

import re
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from bootforge.errors import InvalidConfigurationError, PlatformUnsupportedError
from bootforge.models.platforms import Platform

SUPPORTED_FORMAT_VERSIONS: frozenset[int] = frozenset({1})

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


class SnapshotEntry(BaseModel):
    """Where to fetch one platform's stage-0 archive and what it must hash to."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    url: str
    checksum: str
    format_version: int = Field(alias="format-version")

    @field_validator("checksum")
    @classmethod
    def _normalize_checksum(cls, value: str) -> str:
        digest = value.strip().lower().removeprefix("sha256:")
        if not _HEX_DIGEST.match(digest):
            raise ValueError(f"checksum must be sha256:<64 hex chars>, got {value!r}")
        return f"sha256:{digest}"

    @property
    def digest(self) -> str:
        """The bare hex digest without the ``sha256:`` prefix."""
        return self.checksum.removeprefix("sha256:")

    @property
    def format_supported(self) -> bool:
        return self.format_version in SUPPORTED_FORMAT_VERSIONS


class SnapshotManifest(BaseModel):
    """Read-only mapping from platform to snapshot entry for one run."""

    model_config = ConfigDict(frozen=True)

    entries: dict[str, SnapshotEntry] = {}
    source: Path | None = None

    def lookup(self, platform: Platform) -> SnapshotEntry:
        entry = self.entries.get(platform.triple)
        if entry is None:
            raise PlatformUnsupportedError(
                f"No stage-0 snapshot is published for {platform}",
                stage=0,
                platform=platform,
            )
        return entry

    def supports(self, platform: Platform) -> bool:
        return platform.triple in self.entries

    @property
    def platforms(self) -> list[Platform]:
        return sorted(Platform.parse(t) for t in self.entries)

    @classmethod
    def from_mapping(cls, data: dict[str, Any], source: Path | None = None) -> SnapshotManifest:
        platforms = data.get("platforms")
        unknown = set(data) - {"platforms"}
        if unknown:
            raise InvalidConfigurationError(
                f"Unknown manifest keys: {', '.join(sorted(unknown))}"
            )
        if not isinstance(platforms, dict):
            raise InvalidConfigurationError("Manifest must contain a [platforms] table")
        entries: dict[str, SnapshotEntry] = {}
        for triple, raw in platforms.items():
            platform = Platform.parse(triple)
            try:
                entries[platform.triple] = SnapshotEntry.model_validate(raw)
            except ValidationError as exc:
                raise InvalidConfigurationError(
                    f"Invalid manifest entry for {triple}: {exc}", platform=platform
                ) from exc
        return cls(entries=entries, source=source)

    @classmethod
    def load(cls, path: Path) -> SnapshotManifest:
        """Parse a TOML manifest file."""
        try:
            data = tomllib.loads(Path(path).read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise InvalidConfigurationError(f"Snapshot manifest not found: {path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise InvalidConfigurationError(f"Snapshot manifest {path} is not valid TOML: {exc}") from exc
        return cls.from_mapping(data, source=Path(path))
