"""Build configuration: the closed set of options a bootforge.toml may set."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from bootforge.errors import InvalidConfigurationError
from bootforge.models.stages import MAX_STAGE


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class BuildConfig(BaseModel):
    """Project-level configuration for bootstrap runs.

    Loaded from ``bootforge.toml``; keys are kebab-case. Any key outside
    this model is a configuration error rather than being ignored.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=_kebab,
        populate_by_name=True,
    )

    jobs: int = Field(default=1, ge=1)
    cache_dir: Path = Path(".bootforge/cache")
    snapshot_mirror: str | None = None
    retry_count: int = Field(default=3, ge=1)
    stages: int = Field(default=MAX_STAGE, ge=1, le=MAX_STAGE)
    manifest: Path = Path("stage0.toml")
    source_dir: Path = Path(".")
    build_flags: tuple[str, ...] = ()
    step_timeout: float | None = Field(default=None, gt=0)
    keep_going: bool = False

    def fingerprint_inputs(self) -> dict[str, Any]:
        """The subset of configuration that changes what a build produces.

        Parallelism, cache location, mirror and retry policy only change
        how a build runs, so they stay out of the fingerprint.
        """
        return {"build_flags": list(self.build_flags)}

    def merged(self, **overrides: Any) -> BuildConfig:
        """Return a copy with non-None overrides applied and re-validated.

        Relative path overrides are anchored to the working directory.
        """
        data = self.model_dump()
        for key, value in overrides.items():
            if value is None:
                continue
            data[key] = Path(value).absolute() if key in _PATH_FIELDS else value
        try:
            return BuildConfig.model_validate(data)
        except ValidationError as exc:
            raise InvalidConfigurationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> BuildConfig:
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidConfigurationError(f"Invalid configuration: {exc}") from exc

    @classmethod
    def load(cls, path: Path) -> BuildConfig:
        """Read a TOML config file; relative paths resolve against its directory."""
        path = Path(path)
        try:
            data = tomllib.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise InvalidConfigurationError(f"Config file not found: {path}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise InvalidConfigurationError(f"Config file {path} is not valid TOML: {exc}") from exc
        config = cls.from_mapping(data)
        base = path.absolute().parent
        return config.model_copy(
            update={
                "cache_dir": _resolve(base, config.cache_dir),
                "manifest": _resolve(base, config.manifest),
                "source_dir": _resolve(base, config.source_dir),
            }
        )


_PATH_FIELDS = frozenset({"cache_dir", "manifest", "source_dir"})


def _resolve(base: Path, value: Path) -> Path:
    return value if value.is_absolute() else base / value
