"""``bootforge install``: build and copy final-stage artifacts to a prefix.

Each artifact lands in ``<prefix>/<host>/<target>``, replacing whatever was
there; the copy is staged beside the destination and renamed into place.
"""

from __future__ import annotations

from pathlib import Path

import typer

from bootforge.cli import options
from bootforge.models.stages import BuildAction


def install_cmd(
    prefix: Path = typer.Option(..., "--prefix", "-p", help="Installation root."),
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
    """Install the final stage for every requested target."""
    options.run_action(
        BuildAction.INSTALL,
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
        prefix=prefix,
    )
