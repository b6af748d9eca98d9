"""``bootforge build``: build the toolchain up to the final stage.

When the final stage is 2 the fixed point is checked as part of the build.
"""

from __future__ import annotations

from pathlib import Path

from bootforge.cli import options
from bootforge.models.stages import BuildAction


def build_cmd(
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
    """Build the toolchain for every requested target."""
    options.run_action(
        BuildAction.BUILD,
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
