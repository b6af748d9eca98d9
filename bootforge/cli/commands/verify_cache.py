"""``bootforge verify-cache``: re-hash every cache entry and report damage."""

from __future__ import annotations

from pathlib import Path

import typer

from bootforge.cli import options
from bootforge.config import BootforgeSettings
from bootforge.core.orchestrator import Orchestrator
from bootforge.errors import BootstrapError, CacheCorruptionError
from bootforge.monitor.renderer import ReportRenderer


def verify_cache_cmd(
    config: Path | None = options.CONFIG,
    cache_dir: Path | None = options.CACHE_DIR,
    strict: bool = typer.Option(
        False, "--strict", help="Exit with status 3 when anything is corrupted."
    ),
    verbose: int = options.VERBOSE,
) -> None:
    """Check every cache entry against its recorded digest.

    Nothing is evicted; ``bootforge clean --corrupted-only`` does that.
    """
    settings = BootforgeSettings()
    options.configure_logging(verbose, settings)
    try:
        build_config = options.resolve_config(settings, config, cache_dir=cache_dir)
    except BootstrapError as exc:
        raise options.fail(exc)

    corrupted = Orchestrator(build_config, settings=settings).verify_cache()
    ReportRenderer(console=options.console).print_cache_verification(corrupted)
    if corrupted and strict:
        raise options.fail(
            CacheCorruptionError(f"{len(corrupted)} corrupted cache entries in {build_config.cache_dir}")
        )
