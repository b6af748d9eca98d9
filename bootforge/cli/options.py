"""Options shared by every verb, and the glue that turns them into a run."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler

from bootforge.config import BootforgeSettings
from bootforge.core.orchestrator import Orchestrator
from bootforge.errors import BootstrapError
from bootforge.models.config import BuildConfig
from bootforge.models.plan import BuildRequest
from bootforge.models.platforms import Platform
from bootforge.models.reports import RunReport
from bootforge.models.stages import BuildAction
from bootforge.monitor.renderer import ReportRenderer

console = Console()
err_console = Console(stderr=True)

DEFAULT_CONFIG = Path("bootforge.toml")
EXIT_INTERRUPTED = 130

# ---------------------------------------------------------------------------
# Reusable option declarations
# ---------------------------------------------------------------------------

STAGE = typer.Option(None, "--stage", "-s", help="Final stage to build (1-2).")
TARGETS = typer.Option(None, "--target", "-t", help="Target triple; repeatable.")
HOSTS = typer.Option(None, "--host", help="Host triple; repeatable. Defaults to this machine.")
JOBS = typer.Option(None, "--jobs", "-j", help="Maximum concurrent toolchain runs.")
CONFIG = typer.Option(None, "--config", "-c", help="Path to bootforge.toml.")
MANIFEST = typer.Option(None, "--manifest", help="Path to the stage-0 snapshot manifest.")
SOURCE = typer.Option(None, "--source", help="Compiler source directory.")
CACHE_DIR = typer.Option(None, "--cache-dir", help="Cache root directory.")
KEEP_GOING = typer.Option(
    None, "--keep-going/--fail-fast", help="Keep building independent targets after a failure."
)
VERBOSE = typer.Option(0, "--verbose", "-v", count=True, help="More output; repeat for debug.")


def configure_logging(verbose: int, settings: BootforgeSettings) -> None:
    """Configure the root logger once, to stderr through Rich."""
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = settings.log_level_number
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def parse_platforms(values: list[str] | None) -> tuple[Platform, ...]:
    return tuple(Platform.parse(v) for v in values or ())


def resolve_config(
    settings: BootforgeSettings,
    config_path: Path | None,
    **overrides,
) -> BuildConfig:
    """File < environment < CLI flag."""
    if config_path is not None:
        config = BuildConfig.load(config_path)
    elif DEFAULT_CONFIG.is_file():
        config = BuildConfig.load(DEFAULT_CONFIG)
    else:
        config = BuildConfig()
    if settings.cache_dir is not None:
        config = config.merged(cache_dir=settings.cache_dir)
    return config.merged(**overrides)


def fail(exc: BootstrapError) -> typer.Exit:
    err_console.print(f"[bold red]{type(exc).__name__}:[/bold red] {exc}")
    return typer.Exit(code=exc.exit_code)


def run_action(
    action: BuildAction,
    *,
    stage: int | None,
    targets: list[str] | None,
    hosts: list[str] | None,
    jobs: int | None,
    config_path: Path | None,
    manifest: Path | None,
    source: Path | None,
    cache_dir: Path | None,
    keep_going: bool | None,
    verbose: int,
    prefix: Path | None = None,
) -> RunReport:
    """Resolve configuration, run the orchestrator, print the report, exit."""
    settings = BootforgeSettings()
    configure_logging(verbose, settings)
    try:
        config = resolve_config(
            settings,
            config_path,
            jobs=jobs,
            manifest=manifest,
            source_dir=source,
            cache_dir=cache_dir,
            keep_going=keep_going,
        )
        request = BuildRequest(
            action=action,
            hosts=parse_platforms(hosts),
            targets=parse_platforms(targets),
            stage=stage,
            prefix=prefix,
        )
    except BootstrapError as exc:
        raise fail(exc)

    orchestrator = Orchestrator(config, settings=settings)
    try:
        report = orchestrator.run(request)
    except KeyboardInterrupt:
        err_console.print("[bold red]Interrupted.[/bold red] In-flight steps were discarded.")
        raise typer.Exit(code=EXIT_INTERRUPTED)

    ReportRenderer(console=console).print_report(report, verbose=verbose > 0)
    if report.exit_code:
        raise typer.Exit(code=report.exit_code)
    return report
