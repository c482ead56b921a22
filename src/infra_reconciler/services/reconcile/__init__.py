"""Reconciliation services.

Health probing, credential drift synchronization, stuck-operation recovery,
orphan adoption and verification, driven by ``ReconciliationEngine``.
"""

from infra_reconciler.services.reconcile.adoption import OrphanAdopter
from infra_reconciler.services.reconcile.config import (
    ReconcilerConfig,
    load_config,
    resolve_desired_credentials,
)
from infra_reconciler.services.reconcile.credentials import CredentialSynchronizer
from infra_reconciler.services.reconcile.engine import ReconciliationEngine
from infra_reconciler.services.reconcile.exceptions import (
    ConfigurationError,
    CredentialUpdateError,
    EscalationRequiredError,
    LockContentionError,
    ProtectedNamespaceError,
    ReconcileError,
    VerificationTimeoutError,
)
from infra_reconciler.services.reconcile.health import HealthProber
from infra_reconciler.services.reconcile.models import (
    ActionKind,
    AdoptOutcome,
    ComponentResult,
    HealthStatus,
    ManagedComponent,
    ReconcileMode,
    RunReport,
    SyncOutcome,
    UnlockOutcome,
)
from infra_reconciler.services.reconcile.recovery import StuckOperationRecovery
from infra_reconciler.services.reconcile.verification import ProgressPoller, Verifier

__all__ = [
    "ActionKind",
    "AdoptOutcome",
    "ComponentResult",
    "ConfigurationError",
    "CredentialSynchronizer",
    "CredentialUpdateError",
    "EscalationRequiredError",
    "HealthProber",
    "HealthStatus",
    "LockContentionError",
    "ManagedComponent",
    "OrphanAdopter",
    "ProgressPoller",
    "ProtectedNamespaceError",
    "ReconcileError",
    "ReconcileMode",
    "ReconcilerConfig",
    "ReconciliationEngine",
    "RunReport",
    "StuckOperationRecovery",
    "SyncOutcome",
    "UnlockOutcome",
    "Verifier",
    "load_config",
    "resolve_desired_credentials",
]
