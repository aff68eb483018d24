"""CLI entry point for the standalone node health monitor."""

from __future__ import annotations

import asyncio
import signal

import typer
from rich.console import Console

app = typer.Typer(help="Pi node health monitor", no_args_is_help=True)
console = Console()


def _build_loop(interval: float | None, log_path: str | None):
    from nodewarden.config import get_settings
    from nodewarden.logging_config import setup_logging
    from nodewarden.monitor.loop import MonitorLoop

    settings = get_settings()
    setup_logging(settings.monitor_log_file)
    overrides = {}
    if interval is not None:
        overrides["poll_interval"] = interval
    if log_path:
        overrides["log_path"] = log_path
    if overrides:
        settings = settings.model_copy(update=overrides)
    config = settings.monitor_config()
    return MonitorLoop(config), config


@app.command()
def run(
    interval: float = typer.Option(None, "--interval", "-i", min=0.001, help="Seconds between cycles"),
    log_path: str = typer.Option(None, "--log", help="Sample log path"),
) -> None:
    """Sample, log and alert every poll interval until stopped."""
    monitor, config = _build_loop(interval, log_path)

    console.print("\n[bold cyan]Pi Node Monitor[/bold cyan]\n")
    console.print(f"  Interval: {config.poll_interval:g}s")
    console.print(f"  Log:      {config.log_path}")
    console.print(f"  Alerts:   {'[green]ON[/green]' if config.alerting_enabled else '[red]OFF[/red]'}")
    console.print(f"  Dedupe:   {'[green]ON[/green]' if config.alert_dedupe else '[red]OFF[/red]'}")
    console.print()

    async def _run() -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, monitor.shutdown)
            except NotImplementedError:
                # Windows event loops lack add_signal_handler
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(monitor.shutdown))
        await monitor.run()

    asyncio.run(_run())
    console.print("[yellow]Monitor stopped[/yellow]")


@app.command()
def sample(
    log_path: str = typer.Option(None, "--log", help="Sample log path"),
) -> None:
    """Run a single monitor cycle and print the logged line."""
    monitor, _ = _build_loop(None, log_path)
    result = asyncio.run(monitor.cycle())
    console.print(result.to_log_line())
