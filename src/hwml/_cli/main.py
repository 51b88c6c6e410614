import logging
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from hwml._adapter import MemoryAdapter
from hwml._coercion import format_value
from hwml._diagnostics import Diagnostic
from hwml._errors import HwmlError
from hwml._eval_engine import Runtime, TickResult
from hwml._io import load_document, load_frames
from hwml._ir import SystemSpec, build_system

from .config import ConfigError, HwmlConfig, get_config

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()

_verbose = False


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """HWML evaluation engine CLI."""
    global _verbose  # noqa: PLW0603
    _verbose = verbose
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _get_config() -> HwmlConfig:
    try:
        return get_config()
    except ConfigError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _resolve_entry(entry: Path | None, config: HwmlConfig) -> Path:
    if entry is not None:
        return entry
    if config.entry is not None:
        return config.entry
    return Path.cwd()


def _load_system(entry: Path, *, sim: bool | None = None) -> SystemSpec:
    """Load and build a system, reporting load errors and exiting non-zero."""
    err_console.print(f"[cyan]Loading system from:[/cyan] {entry}")
    try:
        document = load_document(entry)
        if sim is not None and sim != document.config.sim_mode:
            config = document.config.model_copy(update={"sim_mode": sim})
            document = document.model_copy(update={"config": config})
        system = build_system(document)
    except HwmlError as e:
        err_console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e

    if not _verbose:
        logging.getLogger("hwml").setLevel(system.config.log_level.to_logging())
    for diagnostic in system.diagnostics:
        err_console.print(f"[yellow]⚠ {escape(str(diagnostic))}[/yellow]")
    return system


def _values_table(system: SystemSpec, result: TickResult) -> Table:
    table = Table(show_header=True, header_style="bold cyan", box=None)
    table.add_column("Output", style="dim")
    table.add_column("Value", justify="right")
    table.add_column("Channel", style="green")
    for component in system.ordered_components():
        for output in component.outputs.values():
            table.add_row(
                escape(str(output.path)),
                format_value(result.values[output.path]),
                escape(output.target or ""),
            )
    return table


@app.command()
def run(
    entry: Annotated[
        Path | None,
        typer.Argument(help="HWML document or directory (defaults to [tool.hwml].entry or the current directory)"),
    ] = None,
    *,
    ticks: Annotated[
        int | None,
        typer.Option("-n", "--ticks", min=0, help="Number of ticks to run"),
    ] = None,
    realtime: Annotated[
        bool | None,
        typer.Option("--realtime/--no-realtime", help="Pace ticks at the configured tick rate"),
    ] = None,
    inputs: Annotated[
        Path | None,
        typer.Option("-i", "--input", help="JSON-lines file of hardware input frames"),
    ] = None,
    sim: Annotated[
        bool | None,
        typer.Option("--sim/--no-sim", help="Override _config.simMode"),
    ] = None,
) -> None:
    """Run a system for a number of ticks and print its outputs."""
    config = _get_config()
    err_console.print()
    system = _load_system(_resolve_entry(entry, config), sim=sim)

    frames_path = inputs if inputs is not None else config.inputs
    frames: list[dict[str, Any]] = []
    if frames_path is not None:
        err_console.print(f"[cyan]Loading input frames from:[/cyan] {frames_path}")
        try:
            frames = load_frames(frames_path)
        except HwmlError as e:
            err_console.print(f"[red]✗ {escape(str(e))}[/red]")
            raise typer.Exit(code=1) from e

    n_ticks = ticks if ticks is not None else config.ticks
    if n_ticks is None:
        n_ticks = max(len(frames), 1)
    paced = realtime if realtime is not None else config.realtime

    runtime = Runtime(system, MemoryAdapter(frames))
    faults: list[Diagnostic] = []
    warnings: list[Diagnostic] = []

    def collect(result: TickResult) -> None:
        faults.extend(result.faults)
        warnings.extend(result.warnings)

    runtime.add_sink(collect)
    err_console.print(f"[cyan]Running {n_ticks} tick(s) at {format_value(system.config.tick_rate)} Hz...[/cyan]")
    try:
        last = runtime.run(n_ticks, realtime=paced)
    except KeyboardInterrupt:
        err_console.print("[yellow]Interrupted[/yellow]")
        last = runtime.last_result
    err_console.print()

    for diagnostic in warnings:
        err_console.print(f"[yellow]⚠ {escape(str(diagnostic))}[/yellow]")
    for diagnostic in faults:
        err_console.print(f"[red]✗ {escape(str(diagnostic))}[/red]")

    if last is None:
        err_console.print("[yellow]No ticks were run[/yellow]")
        raise typer.Exit(code=0)

    out_console.print(
        Panel(
            _values_table(system, last),
            title=f"[bold]Tick {last.tick}[/bold]",
            subtitle=f"[dim]t = {format_value(last.time)} s[/dim]",
            border_style="cyan",
        ),
    )

    if faults:
        err_console.print("[red]✗ Run finished with faults[/red]")
        raise typer.Exit(code=1)
    err_console.print("[green]✓ Run complete[/green]")
    err_console.print()


@app.command()
def check(
    entry: Annotated[
        Path | None,
        typer.Argument(help="HWML document or directory (defaults to [tool.hwml].entry or the current directory)"),
    ] = None,
) -> None:
    """Check that a system loads without running it."""
    config = _get_config()
    err_console.print()
    system = _load_system(_resolve_entry(entry, config))
    err_console.print()

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Component", style="bold")
    table.add_column("Inputs", justify="right", style="yellow")
    table.add_column("Nodes", justify="right", style="yellow")
    table.add_column("Outputs", justify="right", style="green")

    for position, component in enumerate(system.ordered_components(), start=1):
        table.add_row(
            str(position),
            escape(str(component.path)),
            str(len(component.inputs)),
            str(len(component.nodes)),
            str(len(component.outputs)),
        )

    err_console.print(
        Panel(
            table,
            title="[bold]System[/bold]",
            subtitle=f"[dim]{len(system.components)} components[/dim]",
            border_style="cyan",
        ),
    )

    err_console.print()
    err_console.print("[green]✓ System is valid[/green]")
    err_console.print()


@app.command()
def order(
    entry: Annotated[
        Path | None,
        typer.Argument(help="HWML document or directory (defaults to [tool.hwml].entry or the current directory)"),
    ] = None,
    *,
    component: Annotated[
        str | None,
        typer.Option("-c", "--component", help="Show the node order inside one component (instance.component)"),
    ] = None,
) -> None:
    """Print the evaluation order of components, or of nodes inside one component."""
    config = _get_config()
    system = _load_system(_resolve_entry(entry, config))

    if component is None:
        for path in system.order:
            out_console.print(escape(str(path)))
        return

    try:
        spec = system.component(component)
    except KeyError as e:
        err_console.print(f"[red]Error: Unknown component '{escape(component)}'[/red]")
        raise typer.Exit(code=1) from e
    for node in spec.order:
        out_console.print(escape(str(node.path)))


def main() -> None:
    app()
