"""Reconciliation data model.

``ManagedComponent`` is the static, validated description of one piece of
shared infrastructure. The dataclasses are per-run observations and
results; none of them are persisted between runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from infra_reconciler.integrations.kubernetes.models.helm import (
    PENDING_STATUSES,
    HelmReleaseHistory,
)
from infra_reconciler.integrations.kubernetes.models.resources import (
    INSTANCE_LABEL,
    ResourceRef,
)


class ReconcileMode(StrEnum):
    """How aggressively a run may act on existing installations."""

    NORMAL = "normal"
    DESTRUCTIVE = "destructive-reprovision"


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    ABSENT = "absent"


class ActionKind(StrEnum):
    SKIP = "skip"
    UPGRADE = "upgrade"
    REINSTALL = "reinstall"
    INSTALL = "install"


class SyncOutcome(StrEnum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    FAILED = "failed"
    DEFERRED = "deferred"


class UnlockOutcome(StrEnum):
    RESOLVED = "resolved"
    ESCALATED = "escalated"


class AdoptOutcome(StrEnum):
    ADOPTED = "adopted"
    ALREADY_OWNED = "already_owned"
    SKIPPED = "skipped"
    REMOVED = "removed"


class NamespaceLifecycleState(StrEnum):
    ACTIVE = "active"
    TERMINATING = "terminating"
    GONE = "gone"


# =============================================================================
# Component specification
# =============================================================================


class WorkloadSpec(BaseModel):
    """The workload whose ready replicas define a component's health."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    kind: Literal["StatefulSet", "Deployment"] = "StatefulSet"
    name: str
    label_selector: str | None = None
    extra_names: tuple[str, ...] = ()


class CredentialSpec(BaseModel):
    """Where a component's rotatable credential lives and how to rotate it.

    ``keys[0]`` is the primary key compared against the desired value; every
    key is overwritten on rotation.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    secret_name: str
    keys: tuple[str, ...] = ("password",)
    env: str | None = None
    fallback_env: str | None = None
    updater: Literal["postgres", "redis", "rabbitmq", "none"] = "none"
    users: tuple[str, ...] = ("postgres",)
    username: str | None = None
    container: str | None = None
    generate_length: int = 25

    @field_validator("keys")
    @classmethod
    def validate_keys(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """Validate at least one key is configured."""
        if not v:
            raise ValueError("keys must name at least one secret key")
        return v

    @field_validator("generate_length")
    @classmethod
    def validate_generate_length(cls, v: int) -> int:
        """Validate generated passwords are not trivially short."""
        if v < 12:
            raise ValueError("generate_length must be at least 12")
        return v

    @model_validator(mode="after")
    def validate_rabbitmq_username(self) -> CredentialSpec:
        """rabbitmqctl needs the user whose password changes."""
        if self.updater == "rabbitmq" and not self.username:
            raise ValueError("rabbitmq credentials require username")
        return self


class ConditionalValues(BaseModel):
    """Helm ``--set`` values applied only when a CRD is installed."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    crd: str
    set_values: tuple[str, ...] = ()


class ManagedComponent(BaseModel):
    """One piece of shared infrastructure under reconciliation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    namespace: str
    release: str
    chart: str
    chart_version: str | None = None
    values_files: tuple[str, ...] = ()
    set_values: tuple[str, ...] = ()
    conditional_values: tuple[ConditionalValues, ...] = ()
    credential: CredentialSpec | None = None
    workload: WorkloadSpec
    health_check: Literal["replicas", "replicas+probe"] = "replicas"
    probe_command: tuple[str, ...] = ()
    probe_container: str | None = None
    min_ready_replicas: int = Field(default=1, ge=1)
    force_upgrade: bool = False

    @model_validator(mode="after")
    def validate_probe(self) -> ManagedComponent:
        """A live probe needs a command to run."""
        if self.health_check == "replicas+probe" and not self.probe_command:
            raise ValueError(f"component '{self.name}': replicas+probe requires probe_command")
        return self

    @property
    def selector(self) -> str:
        """Label selector for the component's pods and owned resources."""
        return self.workload.label_selector or f"{INSTANCE_LABEL}={self.release}"

    @property
    def resource_names(self) -> tuple[str, ...]:
        """Names leftover objects may carry when labels are missing."""
        names = [self.release, self.workload.name, *self.workload.extra_names]
        return tuple(dict.fromkeys(names))


# =============================================================================
# Observations and results
# =============================================================================


@dataclass
class OperationLock:
    """Helm's view of a release: current status plus revision history."""

    status: str | None
    revision: int | None = None
    history: list[HelmReleaseHistory] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.status is not None

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    @property
    def last_deployed_revision(self) -> int | None:
        """Most recent revision whose status is ``deployed``."""
        deployed = [h.revision for h in self.history if h.status == "deployed"]
        return max(deployed) if deployed else None


@dataclass
class ObservedState:
    """Snapshot of one component's cluster state."""

    workload_exists: bool
    ready_replicas: int
    release_status: str | None
    release_revision: int | None
    stored_credential_present: bool
    resources: list[ResourceRef] = field(default_factory=list)


@dataclass
class ProbeResult:
    status: HealthStatus
    ready: int = 0
    required: int = 1
    detail: str = ""


@dataclass
class ReconcileAction:
    kind: ActionKind
    reason: str


@dataclass
class AdoptionReport:
    """Per-outcome counts from adopting a component's leftover objects."""

    counts: dict[AdoptOutcome, int] = field(
        default_factory=lambda: {outcome: 0 for outcome in AdoptOutcome}
    )

    def record(self, outcome: AdoptOutcome) -> None:
        self.counts[outcome] += 1

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def summary(self) -> str:
        parts = [f"{outcome.value}={count}" for outcome, count in self.counts.items() if count]
        return ", ".join(parts) or "nothing found"


@dataclass
class Diagnostics:
    """Evidence collected when a component fails to become ready."""

    log_tail: list[str] = field(default_factory=list)
    pods: list[str] = field(default_factory=list)
    events: list[str] = field(default_factory=list)
    pending_claims: list[str] = field(default_factory=list)


@dataclass
class VerificationResult:
    healthy: bool
    ready: int
    required: int
    elapsed: float
    diagnostics: Diagnostics | None = None


@dataclass
class ComponentResult:
    """Everything a run learned and did for one component."""

    component: str
    action: ActionKind | None = None
    reason: str = ""
    health: HealthStatus | None = None
    sync: SyncOutcome | None = None
    unlock: UnlockOutcome | None = None
    adoption: AdoptionReport | None = None
    verification: VerificationResult | None = None
    error: str | None = None
    aborted: bool = False

    @property
    def succeeded(self) -> bool:
        if self.error or self.aborted:
            return False
        return self.action == ActionKind.SKIP or self.health == HealthStatus.HEALTHY


@dataclass
class RunReport:
    mode: ReconcileMode
    results: list[ComponentResult] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return all(result.succeeded for result in self.results)

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1
