"""Teardown command: remove namespaces stuck in Terminating."""

from __future__ import annotations

from typing import Annotated

import typer
from rich.markup import escape

from infra_reconciler.cli.commands.base import (
    EXIT_FAILED,
    ConfigOption,
    YesOption,
    confirm_action,
    console,
    connect_cluster,
    handle_k8s_error,
    handle_reconcile_error,
    load_run_config,
)
from infra_reconciler.cli.output import Table
from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.services.reconcile.config import DEFAULT_CONFIG_PATH
from infra_reconciler.services.reconcile.exceptions import ProtectedNamespaceError, ReconcileError
from infra_reconciler.services.reconcile.models import UnlockOutcome
from infra_reconciler.services.reconcile.recovery import StuckOperationRecovery


def teardown(
    namespaces: Annotated[list[str], typer.Argument(help="Namespaces to remove")],
    attempts: Annotated[
        int | None,
        typer.Option("--attempts", min=1, help="Attempts per namespace (overrides config)"),
    ] = None,
    delay: Annotated[
        float | None,
        typer.Option("--delay", min=0, help="Seconds between attempts (overrides config)"),
    ] = None,
    config_path: ConfigOption = DEFAULT_CONFIG_PATH,
    yes: YesOption = False,
) -> None:
    """Delete namespaces, stripping finalizers from any stuck in Terminating.

    Each namespace is processed independently; a namespace that cannot be
    removed is reported and the next one is still attempted.

    Examples:
        infra-reconcile teardown monitoring
        infra-reconcile teardown argocd cert-manager-old --attempts 20 --yes
    """
    try:
        config = load_run_config(config_path)
    except ReconcileError as e:
        handle_reconcile_error(e)
        return

    overrides: dict[str, object] = {}
    if attempts is not None:
        overrides["namespace_attempts"] = attempts
    if delay is not None:
        overrides["namespace_delay"] = delay
    recovery_config = config.recovery.model_copy(update=overrides)

    if not yes and not confirm_action(
        f"Delete namespace(s) {', '.join(namespaces)} and everything in them?"
    ):
        console.print("[yellow]Aborted[/yellow]")
        raise typer.Exit(EXIT_FAILED)

    table = Table(title="Namespace Teardown")
    table.add_column("Namespace", style="cyan", no_wrap=True)
    table.add_column("Result")

    failed = False
    try:
        with connect_cluster(config) as cluster:
            recovery = StuckOperationRecovery(cluster, config.timeouts, recovery_config)
            for name in namespaces:
                try:
                    outcome = recovery.teardown_namespace(name)
                except ProtectedNamespaceError as e:
                    failed = True
                    table.add_row(name, f"[red]refused[/red] {escape(e.message)}")
                    continue
                except KubernetesError as e:
                    failed = True
                    table.add_row(name, f"[red]error[/red] {escape(e.message)}")
                    continue
                if outcome == UnlockOutcome.RESOLVED:
                    table.add_row(name, "[green]removed[/green]")
                else:
                    failed = True
                    table.add_row(
                        name,
                        f"[red]still present after {recovery_config.namespace_attempts} "
                        "attempts[/red]",
                    )
    except KubernetesError as e:
        handle_k8s_error(e)
        return

    console.print(table)
    if failed:
        raise typer.Exit(EXIT_FAILED)
