"""Status command: read-only health of every configured component."""

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
from infra_reconciler.integrations.kubernetes.models.helm import PENDING_STATUSES
from infra_reconciler.services.reconcile.config import DEFAULT_CONFIG_PATH, load_config
from infra_reconciler.services.reconcile.engine import ReconciliationEngine
from infra_reconciler.services.reconcile.exceptions import ReconcileError
from infra_reconciler.services.reconcile.health import HealthProber
from infra_reconciler.services.reconcile.models import (
    HealthStatus,
    ManagedComponent,
    ObservedState,
)

logger = structlog.get_logger()


def _credential(component: ManagedComponent, state: ObservedState) -> str:
    if component.credential is None:
        return "-"
    return "stored" if state.stored_credential_present else "[yellow]missing[/yellow]"


def _unowned(component: ManagedComponent, state: ObservedState) -> int:
    """Objects Helm would refuse to take over on the next install."""
    return sum(
        1 for ref in state.resources if not ref.is_owned_by(component.release, component.namespace)
    )


def status(
    config_path: ConfigOption = DEFAULT_CONFIG_PATH,
    only: Annotated[
        list[str] | None,
        typer.Option("--only", help="Show only this component (can specify multiple)"),
    ] = None,
) -> None:
    """Show health, ready replicas and release status for each component.

    Nothing in the cluster is changed. Exits 1 when any component is not
    healthy.
    """
    try:
        config = load_config(config_path)
        components = config.select(only)
    except ReconcileError as e:
        handle_reconcile_error(e)
        return

    table = Table(title="Component Status")
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Namespace")
    table.add_column("Release")
    table.add_column("Release Status")
    table.add_column("Revision", justify="right")
    table.add_column("Health")
    table.add_column("Ready", justify="right")
    table.add_column("Credential")
    table.add_column("Unowned", justify="right")
    table.add_column("Detail", style="dim")

    healthy = True
    try:
        with connect_cluster(config) as cluster:
            prober = HealthProber(cluster, probe_timeout=config.timeouts.probe)
            engine = ReconciliationEngine(cluster, config, prober=prober, desired_credentials={})
            for component in components:
                probe = prober.probe(component)
                state = engine.observe(component)
                healthy = healthy and probe.status == HealthStatus.HEALTHY
                release_status = state.release_status or "not installed"
                if state.release_status in PENDING_STATUSES:
                    release_status = f"[red]{release_status}[/red]"
                table.add_row(
                    component.name,
                    component.namespace,
                    component.release,
                    release_status,
                    str(state.release_revision) if state.release_revision is not None else "-",
                    probe.status.value,
                    f"{probe.ready}/{probe.required}",
                    _credential(component, state),
                    str(_unowned(component, state)),
                    escape(probe.detail),
                )
    except KubernetesError as e:
        handle_k8s_error(e)
        return

    console.print(table)
    logger.info("status_checked", components=len(components), healthy=healthy)
    if not healthy:
        raise typer.Exit(EXIT_FAILED)
