"""nodewarden CLI: provision the host and inspect its provisioning state."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(help="Pi node host provisioning", no_args_is_help=True)
console = Console()

_STATUS_STYLE = {
    "satisfied": "green",
    "needs_action": "yellow",
    "blocked": "red",
    "skipped": "green",
    "succeeded": "cyan",
    "soft_failed": "yellow",
    "hard_failed": "red",
}


def _build(installer_url: str | None = None):
    from nodewarden.config import get_settings
    from nodewarden.logging_config import setup_logging
    from nodewarden.provisioning import RetryableFetcher, WindowsHost, build_steps

    setup_logging()
    settings = get_settings()
    if installer_url:
        settings = settings.model_copy(update={"installer_url": installer_url})
    return build_steps(settings, WindowsHost(), RetryableFetcher())


def _styled(value: str) -> str:
    style = _STATUS_STYLE.get(value, "white")
    return f"[{style}]{value}[/{style}]"


@app.command()
def provision(
    installer_url: str = typer.Option(None, "--installer-url", help="Override the installer download URL"),
) -> None:
    """Run the provisioning sequence once."""
    from nodewarden.provisioning import StepSequencer
    from nodewarden.provisioning.models import RunOutcome

    console.print("\n[bold cyan]Pi Node Provisioning[/bold cyan]\n")
    steps = _build(installer_url)
    run = StepSequencer().run(steps)

    table = Table(title="Steps")
    table.add_column("Step", style="bold")
    table.add_column("Precondition")
    table.add_column("Result")
    table.add_column("Detail")
    for record in run.records:
        table.add_row(record.name, _styled(record.precondition.value), _styled(record.status.value), record.reason)
    for step in run.steps[len(run.records):]:
        table.add_row(step.name, "-", "[dim]not reached[/dim]", "")
    console.print(table)

    if run.outcome is RunOutcome.COMPLETED:
        console.print("\n[bold green]✓ Provisioning complete[/bold green]")
    elif run.outcome is RunOutcome.HALTED_FOR_REBOOT:
        console.print(
            "\n[bold yellow]⚠ Restart required.[/bold yellow] "
            "Reboot the machine, then run [bold]nodewarden provision[/bold] again to continue."
        )
    else:
        console.print(f"\n[bold red]✗ Provisioning failed:[/bold red] {run.failure_reason}")

    raise typer.Exit(run.exit_code)


@app.command()
def check() -> None:
    """Evaluate every precondition without changing the host."""
    from nodewarden.provisioning import StepSequencer

    table = Table(title="Provisioning plan")
    table.add_column("Step", style="bold")
    table.add_column("State")
    table.add_column("Reason")
    table.add_column("Reboot", justify="center")
    table.add_column("Soft", justify="center")

    for step, result in StepSequencer().plan(_build()):
        table.add_row(
            step.name,
            _styled(result.status.value),
            result.reason,
            "✓" if step.effect.value == "requires_reboot" else "",
            "✓" if step.soft else "",
        )
    console.print(table)


@app.command()
def version() -> None:
    """Print the nodewarden version."""
    from nodewarden import __version__

    console.print(f"nodewarden {__version__}")
