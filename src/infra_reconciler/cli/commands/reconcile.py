"""Reconcile command: drive every component to its desired state."""

from __future__ import annotations

from typing import Annotated

import structlog
import typer
from rich.markup import escape

from infra_reconciler.cli.commands.base import (
    EXIT_FAILED,
    ConfigOption,
    console,
    connect_cluster,
    handle_k8s_error,
    handle_reconcile_error,
)
from infra_reconciler.cli.output import Table
from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.services.reconcile.config import DEFAULT_CONFIG_PATH, load_config
from infra_reconciler.services.reconcile.engine import ReconciliationEngine
from infra_reconciler.services.reconcile.exceptions import ReconcileError
from infra_reconciler.services.reconcile.models import ComponentResult, ReconcileMode, RunReport

logger = structlog.get_logger()

ModeOption = Annotated[
    ReconcileMode | None,
    typer.Option(
        "--mode",
        "-m",
        help="normal or destructive-reprovision (overrides the config file)",
        case_sensitive=False,
    ),
]

OnlyOption = Annotated[
    list[str] | None,
    typer.Option(
        "--only",
        help="Reconcile only this component (can specify multiple)",
    ),
]

ProgressOption = Annotated[
    float | None,
    typer.Option(
        "--progress-interval",
        help="Seconds between rollout progress log lines during Helm calls",
    ),
]

DIAGNOSTIC_LINES = 20

_HEALTH_STYLES = {"healthy": "green", "degraded": "yellow", "absent": "red"}


def _outcome(result: ComponentResult) -> str:
    if result.aborted:
        return "[yellow]aborted[/yellow]"
    if result.succeeded:
        return "[green]ok[/green]"
    return "[red]failed[/red]"


def render_report(report: RunReport) -> None:
    """Print the per-component result table and failure diagnostics."""
    table = Table(title=f"Reconcile Report ({report.mode.value})")
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Action")
    table.add_column("Health")
    table.add_column("Credential")
    table.add_column("Unlock")
    table.add_column("Adoption", style="dim")
    table.add_column("Result", no_wrap=True)
    table.add_column("Reason", style="dim")

    for result in report.results:
        health = result.health.value if result.health else "-"
        style = _HEALTH_STYLES.get(health)
        table.add_row(
            result.component,
            result.action.value if result.action else "-",
            f"[{style}]{health}[/{style}]" if style else health,
            result.sync.value if result.sync else "-",
            result.unlock.value if result.unlock else "-",
            result.adoption.summary() if result.adoption else "-",
            _outcome(result),
            escape(result.error or result.reason),
        )
    console.print(table)

    for result in report.results:
        verification = result.verification
        if verification is None or verification.diagnostics is None:
            continue
        diagnostics = verification.diagnostics
        console.print(
            f"\n[bold red]{escape(result.component)}[/bold red] not ready "
            f"({verification.ready}/{verification.required} after {verification.elapsed:.0f}s)"
        )
        sections = (
            ("Pods", diagnostics.pods),
            ("Pending volume claims", diagnostics.pending_claims),
            ("Recent events", diagnostics.events),
            ("Action log", diagnostics.log_tail[-DIAGNOSTIC_LINES:]),
        )
        for title, lines in sections:
            if not lines:
                continue
            console.print(f"  [bold]{title}:[/bold]")
            for line in lines:
                console.print(f"    {escape(line)}")


def reconcile(
    config_path: ConfigOption = DEFAULT_CONFIG_PATH,
    mode: ModeOption = None,
    only: OnlyOption = None,
    progress_interval: ProgressOption = None,
) -> None:
    """Reconcile shared infrastructure components with the cluster.

    Exits 0 when every component is healthy or skipped, 1 when any
    component failed, and 2 when the cluster cannot be reached.

    Examples:
        infra-reconcile reconcile
        infra-reconcile reconcile --only postgresql --only redis
        infra-reconcile reconcile --mode destructive-reprovision -c prod.yaml
    """
    try:
        config = load_config(config_path)
        if mode is not None:
            config = config.model_copy(update={"mode": mode})
        components = config.select(only)
    except ReconcileError as e:
        handle_reconcile_error(e)
        return

    try:
        with connect_cluster(config) as cluster:
            engine = ReconciliationEngine(cluster, config, progress_interval=progress_interval)
            engine.preflight()
            report = engine.run(components)
    except KubernetesError as e:
        handle_k8s_error(e)
        return

    render_report(report)
    logger.info("reconcile_exit", exit_code=report.exit_code)
    if report.exit_code:
        raise typer.Exit(EXIT_FAILED)
