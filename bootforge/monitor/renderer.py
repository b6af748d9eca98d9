"""Rich terminal renderer for bootforge run reports.

Turns a ``RunReport`` into Rich renderables for terminal display, with
color-coded step statuses and a failure table carrying every error's
(stage, platform, fingerprint) context.

Color scheme
------------
- green     : built, validated, tested, installed
- cyan      : fetched, cached
- red       : failed
- dim       : pending, skipped
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from bootforge.models.reports import RunReport
from bootforge.models.stages import RunState, StepStatus

# ---------------------------------------------------------------------------
# Status -> Rich markup
# ---------------------------------------------------------------------------

_STATUS_MARKUP: dict[StepStatus, str] = {
    StepStatus.PENDING: "[dim]PENDING[/dim]",
    StepStatus.FETCHED: "[cyan]FETCHED[/cyan]",
    StepStatus.CACHED: "[cyan]CACHED[/cyan]",
    StepStatus.BUILT: "[green]BUILT[/green]",
    StepStatus.VALIDATED: "[bold green]VALIDATED[/bold green]",
    StepStatus.TESTED: "[green]TESTED[/green]",
    StepStatus.INSTALLED: "[green]INSTALLED[/green]",
    StepStatus.FAILED: "[bold red]FAILED[/bold red]",
    StepStatus.SKIPPED: "[dim]SKIPPED[/dim]",
}

_MAX_DIAGNOSTIC_LINES = 20


class ReportRenderer:
    """Renders ``RunReport`` as Rich terminal output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Report render
    # ------------------------------------------------------------------

    def render_report(self, report: RunReport) -> Panel:
        """Render a RunReport as a Panel with the step table and a summary."""
        parts: list = []
        if report.outcomes:
            parts.append(self._build_step_table(report))
            parts.append(Text(""))

        state = (
            "[bold green]done[/bold green]"
            if report.final_state is RunState.DONE
            else f"[bold red]{report.final_state.value}[/bold red]"
        )
        built = report.count(StepStatus.BUILT)
        cached = report.count(StepStatus.CACHED)
        summary = "  |  ".join([
            f"[bold]Run:[/bold] {report.run_id}",
            f"[bold]Action:[/bold] {report.action.value}",
            f"[bold]State:[/bold] {state}",
            f"[bold]Built:[/bold] {built}",
            f"[bold]Cached:[/bold] {cached}",
            f"[bold]Exit:[/bold] {report.exit_code}",
        ])
        parts.append(Text.from_markup(summary))

        return Panel(
            Group(*parts),
            title="[bold]Bootforge[/bold]",
            border_style="green" if report.succeeded else "red",
            padding=(1, 2),
        )

    def _build_step_table(self, report: RunReport) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Step", min_width=30)
        table.add_column("Status", min_width=10, justify="center")
        table.add_column("Fingerprint", width=14)
        table.add_column("Details")

        for outcome in report.outcomes:
            fp = outcome.fingerprint[:12] if outcome.fingerprint else "[dim]-[/dim]"
            table.add_row(
                outcome.step_id,
                _STATUS_MARKUP.get(outcome.status, outcome.status.value),
                fp,
                Text(outcome.detail) if outcome.detail else "[dim]-[/dim]",
            )
        return table

    def render_errors(self, report: RunReport) -> Table:
        """One row per surfaced error, most recent last."""
        table = Table(title="Failures", header_style="bold red", expand=True)
        table.add_column("Error", style="red")
        table.add_column("Stage", justify="right", width=6)
        table.add_column("Platform")
        table.add_column("Fingerprint", width=14)
        table.add_column("Message")

        for err in report.errors:
            table.add_row(
                err.error_type,
                "-" if err.stage is None else str(err.stage),
                err.platform or "-",
                err.fingerprint[:12] if err.fingerprint else "-",
                Text(err.message),
            )
        return table

    # ------------------------------------------------------------------
    # Standalone print
    # ------------------------------------------------------------------

    def print_report(self, report: RunReport, *, verbose: bool = False) -> None:
        self.console.print(self.render_report(report))
        if not report.errors:
            return
        self.console.print(self.render_errors(report))
        for err in report.errors:
            if not err.diagnostics:
                continue
            lines = err.diagnostics.rstrip().splitlines()
            if not verbose:
                lines = lines[-_MAX_DIAGNOSTIC_LINES:]
            self.console.print(
                Panel(
                    Text("\n".join(lines)),
                    title=f"[bold]{err.step_id or err.error_type}[/bold] diagnostics",
                    border_style="red",
                )
            )

    def print_cache_verification(self, corrupted: set[str]) -> None:
        """Print the result of an integrity scan."""
        if not corrupted:
            self.console.print("[green]All cache entries are intact.[/green]")
            return
        self.console.print(
            f"[bold red]{len(corrupted)} corrupted cache entr"
            f"{'y' if len(corrupted) == 1 else 'ies'}:[/bold red]"
        )
        for fp in sorted(corrupted):
            self.console.print(f"  {fp}")
