"""Shared options, cluster wiring and error output for CLI commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.markup import escape

from infra_reconciler.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConnectionError,
    KubernetesError,
)
from infra_reconciler.integrations.kubernetes.helm_client import (
    HelmBinaryNotFoundError,
    HelmError,
)
from infra_reconciler.services.kubernetes.cluster_state import ClusterStateClient
from infra_reconciler.services.reconcile.config import ReconcilerConfig, load_config
from infra_reconciler.services.reconcile.exceptions import ConfigurationError, ReconcileError

console = Console()

EXIT_FAILED = 1
EXIT_UNREACHABLE = 2

ConfigOption = Annotated[
    Path,
    typer.Option(
        "--config",
        "-c",
        help="Component configuration file",
        envvar="INFRA_RECONCILE_CONFIG",
    ),
]

NamespaceOption = Annotated[
    str,
    typer.Option("--namespace", "-n", help="Namespace of the release"),
]

LabelSelectorOption = Annotated[
    str | None,
    typer.Option(
        "--selector",
        "-l",
        help="Pod label selector (defaults to app.kubernetes.io/instance=<release>)",
    ),
]

YesOption = Annotated[
    bool,
    typer.Option("--yes", "-y", help="Do not ask before destructive steps"),
]


def connect_cluster(config: ReconcilerConfig) -> ClusterStateClient:
    """Build the cluster state client for a configuration.

    Raises:
        KubernetesConnectionError: If no kubeconfig can be loaded.
        HelmBinaryNotFoundError: If helm is not installed.
    """
    return ClusterStateClient.connect(config.cluster, config.retry)


def _fail(headline: str, *details: object, hint: str | None = None, code: int) -> NoReturn:
    console.print(f"[red]{headline}[/red]")
    for detail in details:
        if detail:
            console.print(f"  {escape(str(detail).strip())}")
    if hint:
        console.print(f"\n[dim]{hint}[/dim]")
    raise typer.Exit(code)


def handle_k8s_error(error: KubernetesError) -> None:
    """Print a Kubernetes or Helm error and exit.

    Unreachable clusters and a missing helm binary exit with 2; everything
    else exits with 1.

    Raises:
        typer.Exit: Always.
    """
    if isinstance(error, KubernetesConnectionError):
        _fail(
            "Cannot connect to the cluster API server",
            error.message,
            error.original_error and f"caused by: {error.original_error}",
            hint="Is the kubeconfig context right and the API server up?",
            code=EXIT_UNREACHABLE,
        )
    if isinstance(error, HelmBinaryNotFoundError):
        _fail("helm is not installed", error.message, code=EXIT_UNREACHABLE)
    if isinstance(error, KubernetesAuthError):
        _fail(
            "The cluster refused our credentials",
            error.message,
            hint="The kubeconfig user needs RBAC rights on the managed namespaces.",
            code=EXIT_FAILED,
        )
    if isinstance(error, HelmError):
        _fail("helm failed", error.message, error.stderr, code=EXIT_FAILED)
    _fail(
        "Kubernetes API error",
        error.message,
        error.status_code and f"status {error.status_code}",
        code=EXIT_FAILED,
    )


def handle_reconcile_error(error: ReconcileError) -> None:
    """Print a reconciler error (typically configuration) and exit with 1.

    Raises:
        typer.Exit: Always.
    """
    _fail(f"Error: {escape(str(error))}", error.details, code=EXIT_FAILED)


def confirm_action(message: str, default: bool = False) -> bool:
    return typer.confirm(message, default=default)


def load_run_config(path: Path) -> ReconcilerConfig:
    """Load the configuration file, or environment-only settings when it is absent.

    Commands that do not need component specs (unlock, teardown) still
    honour the cluster, timeout and recovery settings of a config file.

    Raises:
        ConfigurationError: If the file exists but is invalid.
    """
    if path.exists():
        return load_config(path)
    try:
        return ReconcilerConfig.from_env()
    except ValueError as e:
        raise ConfigurationError("Invalid environment override", details=str(e)) from e
