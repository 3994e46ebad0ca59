import sys
import traceback
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from deferral.config.environment import SETTING_DESCRIPTIONS, Environment, get_settings_path
from deferral.config.logging_config import configure_logging, get_logger

console = Console()
log = get_logger(__name__)


@click.group()
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose logging (DEBUG level) for detailed output.",
)
def cli(verbose: bool = False):
    """deferral CLI - run scripts and documents with scope-exit handlers."""
    if verbose:
        configure_logging(level="DEBUG")
        console.print("[cyan]Verbose logging enabled (DEBUG level)[/]")


@cli.command("run", context_settings={"ignore_unknown_options": True})
@click.argument("script", type=click.Path(exists=True, dir_okay=False))
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@click.option("--traceback", "show_traceback", is_flag=True, help="Print the full traceback on error.")
def run(script: str, args: tuple[str, ...], show_traceback: bool = False):
    """Run a Python SCRIPT as one batch unit.

    Actions deferred at the script's top level run when the script finishes.
    """
    from deferral.engines.script import run_path

    log.debug(f"Running {script} with argv {list(args)}")
    try:
        run_path(script, argv=args)
    except SystemExit as e:
        code = e.code if isinstance(e.code, int) else (0 if e.code is None else 1)
        sys.exit(code)
    except Exception as e:
        if show_traceback:
            console.print(traceback.format_exc(), markup=False, highlight=False)
        console.print(f"[red]Error running {escape(script)}: {escape(repr(e))}[/]")
        sys.exit(1)


@cli.command("render")
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.option("--quiet", "-q", is_flag=True, help="Do not print chunk output.")
def render(document: str, quiet: bool = False):
    """Execute the python chunks of a Markdown DOCUMENT as one render unit."""
    from deferral.engines.document import ChunkExecutionError, render_path

    try:
        results = render_path(document)
    except ChunkExecutionError as e:
        console.print(f"[red]Error rendering {escape(document)}: {escape(str(e))}[/]")
        sys.exit(1)
    except Exception as e:
        # A deferred action failed at render end; a chunk failure may be its context
        console.print(f"[red]Error rendering {escape(document)}: {escape(repr(e))}[/]")
        if isinstance(e.__context__, ChunkExecutionError):
            console.print(f"[red]{escape(str(e.__context__))}[/]")
        sys.exit(1)

    if not quiet:
        for result in results:
            title = f"chunk {result.chunk.index + 1} (line {result.chunk.line})"
            console.print(Panel(escape(result.output.rstrip("\n")) or "[dim]no output[/]", title=title))
    console.print(f"[green]Rendered {len(results)} chunk(s) from {escape(document)}[/]")


@cli.command("settings")
@click.option("--key", default=None, help="Show a single setting.")
def settings(key: Optional[str] = None):
    """Show the effective deferral settings."""
    values = Environment.get_environment()
    if key is not None:
        if key not in values:
            console.print(f"[red]Unknown setting: {key}[/]")
            sys.exit(1)
        values = {key: values[key]}

    table = Table(title=f"Settings ({get_settings_path()})")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Description", style="yellow")
    for name, value in values.items():
        table.add_row(name, "" if value is None else str(value), SETTING_DESCRIPTIONS.get(name, ""))
    console.print(table)


if __name__ == "__main__":
    cli()
