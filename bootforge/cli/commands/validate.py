"""``bootforge validate``: build through stage 2 and check the fixed point."""

from __future__ import annotations

from pathlib import Path

from bootforge.cli import options
from bootforge.models.stages import BuildAction


def validate_cmd(
    stage: int | None = options.STAGE,
    target: list[str] | None = options.TARGETS,
    host: list[str] | None = options.HOSTS,
    jobs: int | None = options.JOBS,
    config: Path | None = options.CONFIG,
    manifest: Path | None = options.MANIFEST,
    source: Path | None = options.SOURCE,
    cache_dir: Path | None = options.CACHE_DIR,
    keep_going: bool | None = options.KEEP_GOING,
    verbose: int = options.VERBOSE,
) -> None:
    """Rebuild the final stage with itself and compare."""
    options.run_action(
        BuildAction.VALIDATE,
        stage=stage,
        targets=target,
        hosts=host,
        jobs=jobs,
        config_path=config,
        manifest=manifest,
        source=source,
        cache_dir=cache_dir,
        keep_going=keep_going,
        verbose=verbose,
    )
