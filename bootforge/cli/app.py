"""Main Typer application: imports and registers all CLI commands.

Entry point: ``bootforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import typer

from bootforge.cli.commands.build import build_cmd
from bootforge.cli.commands.clean import clean_cmd
from bootforge.cli.commands.install import install_cmd
from bootforge.cli.commands.run_tests import test_cmd
from bootforge.cli.commands.validate import validate_cmd
from bootforge.cli.commands.verify_cache import verify_cache_cmd

app = typer.Typer(
    name="bootforge",
    help="Bootforge: staged bootstrap builds for self-hosting toolchains.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="build", help="Build the toolchain up to the final stage.")(build_cmd)
app.command(name="test", help="Build the toolchain and run its test suite.")(test_cmd)
app.command(name="install", help="Build and install the final stage to a prefix.")(install_cmd)
app.command(name="clean", help="Evict build cache entries.")(clean_cmd)
app.command(name="validate", help="Check that the final stage reproduces itself.")(validate_cmd)
app.command(name="verify-cache", help="Report corrupted cache entries.")(verify_cache_cmd)


@app.command(name="version", help="Print the bootforge version.")
def version_cmd() -> None:
    from bootforge import __version__

    typer.echo(__version__)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
