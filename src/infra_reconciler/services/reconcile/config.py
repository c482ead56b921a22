"""Reconciler configuration loading.

Configuration comes from a YAML file of component specs plus run options,
with environment variables taking precedence for the run-level settings.
Desired credentials are never stored in the file; they are read from the
environment variables each component's credential names.
"""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, SecretStr, ValidationError, field_validator

from infra_reconciler.integrations.kubernetes.config import ClusterConfig, RetryConfig
from infra_reconciler.services.reconcile.exceptions import ConfigurationError
from infra_reconciler.services.reconcile.models import ManagedComponent, ReconcileMode

logger = structlog.get_logger()

DEFAULT_CONFIG_PATH = Path("components.yaml")

DEFAULT_PROTECTED_NAMESPACES: tuple[str, ...] = (
    "default",
    "kube-system",
    "kube-public",
    "kube-node-lease",
    "kubernetes-dashboard",
    "calico-system",
    "calico-apiserver",
    "tigera-operator",
    "cert-manager",
    "ingress-nginx",
    "local-path-storage",
)


class TimeoutsConfig(BaseModel):
    """Bounds, in seconds, for every blocking step of a run."""

    model_config = ConfigDict(extra="forbid")

    helm_action: int = 600
    rollback: int = 300
    verify: int = 600
    verify_interval: float = 5.0
    lock_clear_wait: float = 10.0
    run: int = 3600
    probe: int = 15

    @field_validator("helm_action", "rollback", "verify", "run", "probe")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("verify_interval", "lock_clear_wait")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Validate interval is non-negative."""
        if v < 0:
            raise ValueError("interval must be non-negative")
        return v


class RecoveryConfig(BaseModel):
    """Budget for unsticking namespaces wedged in Terminating."""

    model_config = ConfigDict(extra="forbid")

    namespace_attempts: int = 10
    namespace_delay: float = 1.0
    protected_namespaces: tuple[str, ...] = DEFAULT_PROTECTED_NAMESPACES

    @field_validator("namespace_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        """Validate at least one attempt is made."""
        if v < 1:
            raise ValueError("namespace_attempts must be at least 1")
        return v


class HelmRepoConfig(BaseModel):
    """A chart repository added before a run."""

    model_config = ConfigDict(extra="forbid")

    name: str
    url: str


class ReconcilerConfig(BaseModel):
    """Complete reconciler configuration."""

    model_config = ConfigDict(extra="forbid")

    mode: ReconcileMode = ReconcileMode.NORMAL
    timeouts: TimeoutsConfig = TimeoutsConfig()
    recovery: RecoveryConfig = RecoveryConfig()
    cluster: ClusterConfig = ClusterConfig()
    retry: RetryConfig = RetryConfig()
    repositories: list[HelmRepoConfig] = []
    components: list[ManagedComponent] = []

    @field_validator("components")
    @classmethod
    def validate_unique_names(cls, v: list[ManagedComponent]) -> list[ManagedComponent]:
        """Validate component names are unique."""
        seen: set[str] = set()
        for component in v:
            if component.name in seen:
                raise ValueError(f"duplicate component name: {component.name}")
            seen.add(component.name)
        return v

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> ReconcilerConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            INFRA_RECONCILE_MODE: normal or destructive-reprovision
            INFRA_RECONCILE_KUBECONFIG: Override kubeconfig path
            INFRA_RECONCILE_CONTEXT: Override kubeconfig context
            INFRA_RECONCILE_RUN_TIMEOUT: Whole-run budget in seconds
        """
        config_dict = base_config.copy() if base_config else {}

        if mode := os.environ.get("INFRA_RECONCILE_MODE"):
            config_dict["mode"] = mode

        if run_timeout := os.environ.get("INFRA_RECONCILE_RUN_TIMEOUT"):
            timeouts = dict(config_dict.get("timeouts") or {})
            timeouts["run"] = int(run_timeout)
            config_dict["timeouts"] = timeouts

        instance = cls.model_validate(config_dict)
        # Cluster overrides share ClusterConfig's own env handling
        instance.cluster = ClusterConfig.from_env(instance.cluster.model_dump())
        return instance

    def select(self, only: Iterable[str] | None) -> list[ManagedComponent]:
        """Components to process, in declared order.

        Args:
            only: Component names to keep; all components when empty.

        Raises:
            ConfigurationError: If a requested name is not configured.
        """
        wanted = list(only or [])
        if not wanted:
            return list(self.components)
        known = {c.name for c in self.components}
        unknown = [name for name in wanted if name not in known]
        if unknown:
            raise ConfigurationError(f"Unknown component(s): {', '.join(unknown)}")
        return [c for c in self.components if c.name in wanted]

    def get_component(self, name: str) -> ManagedComponent | None:
        return next((c for c in self.components if c.name == name), None)


def _resolve_values_files(data: dict[str, Any], base_dir: Path) -> None:
    """Make component values file paths relative to the config file."""
    for component in data.get("components") or []:
        files = component.get("values_files")
        if not files:
            continue
        component["values_files"] = [
            str(path if (path := Path(f).expanduser()).is_absolute() else base_dir / path)
            for f in files
        ]


def load_config(path: Path | None = None) -> ReconcilerConfig:
    """Load the reconciler configuration file.

    Args:
        path: YAML file; defaults to ``components.yaml`` in the working directory.

    Returns:
        Validated configuration with environment overrides applied.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    config_path = path or DEFAULT_CONFIG_PATH
    logger.debug("loading_config", path=str(config_path))

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with config_path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError("Invalid configuration file format", details=str(e)) from e

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration file must contain a mapping")

    _resolve_values_files(data, config_path.resolve().parent)

    try:
        config = ReconcilerConfig.from_env(data)
    except ValidationError as e:
        raise ConfigurationError("Invalid configuration", details=str(e)) from e
    except ValueError as e:
        raise ConfigurationError("Invalid environment override", details=str(e)) from e

    logger.debug("config_loaded", components=len(config.components), mode=config.mode.value)
    return config


def resolve_desired_credentials(
    components: Iterable[ManagedComponent],
) -> dict[str, SecretStr | None]:
    """Read each component's desired credential from the environment.

    The credential's ``env`` variable wins; ``fallback_env`` is consulted
    when it is unset or empty. Empty values resolve to None.

    Returns:
        Mapping of component name to desired credential.
    """
    desired: dict[str, SecretStr | None] = {}
    for component in components:
        spec = component.credential
        if spec is None:
            continue
        value = ""
        for var in (spec.env, spec.fallback_env):
            if var and (value := os.environ.get(var, "")):
                break
        desired[component.name] = SecretStr(value) if value else None
    return desired
