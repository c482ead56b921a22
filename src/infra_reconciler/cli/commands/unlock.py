"""Unlock command: clear a Helm release stuck in a pending status."""

from __future__ import annotations

from typing import Annotated

import typer

from infra_reconciler.cli.commands.base import (
    EXIT_FAILED,
    ConfigOption,
    LabelSelectorOption,
    NamespaceOption,
    YesOption,
    confirm_action,
    console,
    connect_cluster,
    handle_k8s_error,
    handle_reconcile_error,
    load_run_config,
)
from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.services.reconcile.config import DEFAULT_CONFIG_PATH
from infra_reconciler.services.reconcile.exceptions import ReconcileError
from infra_reconciler.services.reconcile.models import UnlockOutcome
from infra_reconciler.services.reconcile.recovery import StuckOperationRecovery


def unlock(
    release: Annotated[str, typer.Argument(help="Release name")],
    namespace: NamespaceOption,
    selector: LabelSelectorOption = None,
    config_path: ConfigOption = DEFAULT_CONFIG_PATH,
    yes: YesOption = False,
) -> None:
    """Clear a pending-install/upgrade/rollback lock on a release.

    Force-deletes the release's pods, removes Helm's pending release
    records and rolls back to the last deployed revision.

    Examples:
        infra-reconcile unlock prometheus -n monitoring
        infra-reconcile unlock postgresql -n database -l app.kubernetes.io/name=postgresql
    """
    try:
        config = load_run_config(config_path)
    except ReconcileError as e:
        handle_reconcile_error(e)
        return

    try:
        with connect_cluster(config) as cluster:
            recovery = StuckOperationRecovery(cluster, config.timeouts, config.recovery)
            lock = recovery.read_lock(release, namespace)
            if not lock.is_pending:
                state = lock.status or "not installed"
                console.print(f"Release [cyan]{release}[/cyan] is not locked ({state})")
                return

            console.print(
                f"Release [cyan]{release}[/cyan] is [red]{lock.status}[/red] "
                f"at revision {lock.revision}"
            )
            if not yes and not confirm_action(
                f"Force-delete pods and roll back release '{release}'?"
            ):
                console.print("[yellow]Aborted[/yellow]")
                raise typer.Exit(EXIT_FAILED)

            outcome = recovery.unlock(release, namespace, selector=selector)
    except KubernetesError as e:
        handle_k8s_error(e)
        return

    if outcome == UnlockOutcome.ESCALATED:
        console.print(
            f"[red]Release '{release}' is still locked.[/red] Manual intervention required."
        )
        raise typer.Exit(EXIT_FAILED)
    console.print(f"[green]Release '{release}' unlocked[/green]")
