"""``bootforge clean``: evict build cache entries.

With no filters the whole cache goes, including fetched stage-0 snapshots
unless ``--keep-snapshots`` is given. ``--stage``, ``--target`` and ``--host``
narrow the eviction; ``--corrupted-only`` removes just the entries that fail
an integrity check. ``--jobs`` is accepted as on every verb; eviction is
serial.
"""

from __future__ import annotations

from pathlib import Path

import typer

from bootforge.cli import options
from bootforge.config import BootforgeSettings
from bootforge.core.orchestrator import Orchestrator
from bootforge.errors import BootstrapError
from bootforge.models.plan import BuildRequest
from bootforge.models.stages import BuildAction


def clean_cmd(
    stage: int | None = options.STAGE,
    target: list[str] | None = options.TARGETS,
    host: list[str] | None = options.HOSTS,
    jobs: int | None = options.JOBS,
    config: Path | None = options.CONFIG,
    manifest: Path | None = options.MANIFEST,
    source: Path | None = options.SOURCE,
    cache_dir: Path | None = options.CACHE_DIR,
    keep_snapshots: bool = typer.Option(
        False, "--keep-snapshots", help="Keep verified stage-0 snapshots."
    ),
    corrupted_only: bool = typer.Option(
        False, "--corrupted-only", help="Only evict entries that fail verification."
    ),
    verbose: int = options.VERBOSE,
) -> None:
    """Evict cached artifacts."""
    settings = BootforgeSettings()
    options.configure_logging(verbose, settings)
    try:
        build_config = options.resolve_config(
            settings,
            config,
            jobs=jobs,
            manifest=manifest,
            source_dir=source,
            cache_dir=cache_dir,
        )
        request = BuildRequest(
            action=BuildAction.CLEAN,
            hosts=options.parse_platforms(host),
            targets=options.parse_platforms(target),
            stage=stage,
            keep_snapshots=keep_snapshots,
            corrupted_only=corrupted_only,
        )
    except BootstrapError as exc:
        raise options.fail(exc)

    orchestrator = Orchestrator(build_config, settings=settings)
    before = len(orchestrator.cache.entries())
    orchestrator.run(request)
    after = len(orchestrator.cache.entries())
    options.console.print(
        f"[green]Cleaned[/green] {build_config.cache_dir} "
        f"[dim]({before - after} entries removed, {after} remaining)[/dim]"
    )
