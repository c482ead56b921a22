"""Kubernetes integration configuration models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


class ClusterConfig(BaseModel):
    """Connection settings for the target cluster.

    Both fields are optional: with neither set, the default kubeconfig and its
    current context are used, and in-cluster configuration is tried last.
    """

    model_config = ConfigDict(extra="forbid")

    kubeconfig: str | None = None
    context: str | None = None
    namespace: str = "default"

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        if v is None:
            return v
        return str(Path(v).expanduser())

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> ClusterConfig:
        """Create configuration with environment variable overrides.

        Supported environment variables:
            INFRA_RECONCILE_KUBECONFIG: Override kubeconfig path
            INFRA_RECONCILE_CONTEXT: Override kubeconfig context
        """
        config_dict = base_config.copy() if base_config else {}

        if kubeconfig := os.environ.get("INFRA_RECONCILE_KUBECONFIG"):
            config_dict["kubeconfig"] = kubeconfig
        if context := os.environ.get("INFRA_RECONCILE_CONTEXT"):
            config_dict["context"] = context

        return cls.model_validate(config_dict)


class RetryConfig(BaseModel):
    """Retry budget for transient API failures."""

    model_config = ConfigDict(extra="forbid")

    attempts: int = 3
    wait_seconds: float = 1.0

    @field_validator("attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        """Validate at least one attempt is made."""
        if v < 1:
            raise ValueError("attempts must be at least 1")
        return v

    @field_validator("wait_seconds")
    @classmethod
    def validate_wait_seconds(cls, v: float) -> float:
        """Validate wait_seconds is non-negative."""
        if v < 0:
            raise ValueError("wait_seconds must be non-negative")
        return v
