"""Reconciliation engine exceptions."""

from __future__ import annotations


class ReconcileError(Exception):
    """Base exception for reconciliation failures.

    Attributes:
        message: Human-readable error message.
        component: Name of the component involved (if any).
        details: Extra context, such as command output.
    """

    def __init__(
        self,
        message: str,
        component: str | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.component = component
        self.details = details

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.component:
            return f"{self.message} [{self.component}]"
        return self.message


class ConfigurationError(ReconcileError):
    """Raised when the component configuration cannot be loaded or validated."""


class LockContentionError(ReconcileError):
    """Raised when a pending Helm operation holds a release at action time."""

    def __init__(self, release: str, status: str, component: str | None = None) -> None:
        super().__init__(
            message=f"Release '{release}' is locked by {status}",
            component=component,
        )
        self.release = release
        self.status = status


class CredentialUpdateError(ReconcileError):
    """Raised when a live credential update against a running service fails."""


class VerificationTimeoutError(ReconcileError):
    """Raised when a component does not become ready within its budget."""

    def __init__(self, component: str, timeout_seconds: float) -> None:
        super().__init__(
            message=f"Not ready after {timeout_seconds:g}s",
            component=component,
        )
        self.timeout_seconds = timeout_seconds


class EscalationRequiredError(ReconcileError):
    """Raised when automatic recovery could not clear a stuck operation."""


class ProtectedNamespaceError(ReconcileError):
    """Raised when teardown targets a namespace that must never be deleted."""

    def __init__(self, namespace: str) -> None:
        super().__init__(message=f"Refusing to tear down protected namespace '{namespace}'")
        self.namespace = namespace
