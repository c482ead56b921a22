"""The ``infra-reconcile`` command."""

from __future__ import annotations

import typer
from rich.console import Console

from infra_reconciler import __version__
from infra_reconciler.cli.commands import reconcile, status, teardown, unlock
from infra_reconciler.logging.config import configure_logging

app = typer.Typer(
    name="infra-reconcile",
    help="Reconcile shared cluster infrastructure installed with Helm.",
    add_completion=True,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"infra-reconcile version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Print the version.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log at INFO on the console.",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Log at DEBUG, including helm invocations.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Render logs as JSON lines.",
    ),
) -> None:
    """Infra Reconciler - install, repair and verify shared infrastructure."""
    configure_logging(verbose=verbose, debug=debug, json_output=json_logs)


app.command()(reconcile.reconcile)
app.command()(status.status)
app.command()(unlock.unlock)
app.command()(teardown.teardown)


if __name__ == "__main__":
    app()
