"""Unit tests for Kubernetes integration exceptions."""

from __future__ import annotations

import pytest

from infra_reconciler.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesTransientError,
)


@pytest.mark.unit
@pytest.mark.kubernetes
class TestKubernetesError:
    """Tests for the base exception."""

    def test_str_includes_status_and_location(self) -> None:
        """Should render status code and resource location."""
        error = KubernetesError(
            "boom",
            status_code=500,
            resource_type="Pod",
            resource_name="web-0",
            namespace="infra",
        )

        assert str(error) == "boom (status: 500) [Pod/web-0 in infra]"

    def test_str_message_only(self) -> None:
        """Should render just the message without extra context."""
        assert str(KubernetesError("plain")) == "plain"


@pytest.mark.unit
@pytest.mark.kubernetes
class TestSubclasses:
    """Tests for specialised exceptions."""

    def test_not_found_builds_message(self) -> None:
        """Should describe the missing resource."""
        error = KubernetesNotFoundError(
            resource_type="Secret", resource_name="redis", namespace="infra"
        )

        assert error.message == "Secret 'redis' not found in namespace 'infra'"
        assert error.status_code == 404

    def test_conflict_builds_message(self) -> None:
        """Should describe the conflicting resource."""
        error = KubernetesConflictError(resource_type="Namespace", resource_name="infra")

        assert error.message == "Namespace 'infra' conflict"
        assert error.status_code == 409

    def test_transient_is_connection_error(self) -> None:
        """Transient failures should be catchable as connection errors."""
        cause = OSError("reset")
        error = KubernetesTransientError(original_error=cause, status_code=503)

        assert isinstance(error, KubernetesConnectionError)
        assert error.original_error is cause
        assert error.status_code == 503

    def test_auth_defaults_to_401(self) -> None:
        """Should default to status 401."""
        assert KubernetesAuthError().status_code == 401

    def test_timeout_appends_seconds(self) -> None:
        """Should mention the timeout in the message."""
        error = KubernetesTimeoutError("exec timed out", timeout_seconds=30)

        assert error.message == "exec timed out (after 30s)"
        assert error.timeout_seconds == 30
