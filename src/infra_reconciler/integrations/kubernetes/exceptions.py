"""Errors raised by the Kubernetes and Helm integration layer.

API exceptions from the kubernetes client are translated into these by
``KubernetesClient.translate_api_exception`` so nothing above the
integration layer has to know about ``ApiException`` status codes.
"""

from __future__ import annotations


class KubernetesError(Exception):
    """Root of every integration error.

    Subclasses override ``default_message`` and ``default_status`` rather
    than repeating the constructor.

    Attributes:
        message: What went wrong.
        status_code: HTTP status from the API server, when there was one.
        resource_type: Kind of the object involved, e.g. ``"StatefulSet"``.
        resource_name: Name of the object involved.
        namespace: Namespace of the object involved.
    """

    default_message = "Kubernetes operation failed"
    default_status: int | None = None

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        self.message = message or self.default_message
        self.status_code = self.default_status if status_code is None else status_code
        self.resource_type = resource_type
        self.resource_name = resource_name
        self.namespace = namespace
        super().__init__(self.message)

    def __str__(self) -> str:
        text = self.message
        if self.status_code:
            text += f" (status: {self.status_code})"
        if self.resource_type and self.resource_name:
            where = f" in {self.namespace}" if self.namespace else ""
            text += f" [{self.resource_type}/{self.resource_name}{where}]"
        return text


class KubernetesConnectionError(KubernetesError):
    """The API server could not be reached or no kubeconfig could be loaded."""

    default_message = "Failed to connect to Kubernetes cluster"

    def __init__(
        self,
        message: str | None = None,
        original_error: Exception | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.original_error = original_error


class KubernetesTransientError(KubernetesConnectionError):
    """A 429, a 5xx or a dropped connection; safe to retry."""

    default_message = "Transient Kubernetes API failure"


class KubernetesAuthError(KubernetesError):
    """401 or 403."""

    default_message = "Kubernetes authentication/authorization failed"
    default_status = 401

    def __init__(
        self,
        message: str | None = None,
        status_code: int | None = None,
        reason: str | None = None,
    ) -> None:
        super().__init__(message, status_code)
        self.reason = reason


class _ObjectError(KubernetesError):
    """An error about one named object, worded from its kind and location."""

    problem = ""

    def __init__(
        self,
        message: str | None = None,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> None:
        if resource_type and resource_name:
            message = f"{resource_type} '{resource_name}' {self.problem}"
            if namespace:
                message += f" in namespace '{namespace}'"
        super().__init__(message, None, resource_type, resource_name, namespace)


class KubernetesNotFoundError(_ObjectError):
    """404 for a named object."""

    default_message = "Kubernetes resource not found"
    default_status = 404
    problem = "not found"


class KubernetesConflictError(_ObjectError):
    """409: the object already exists or changed underneath us."""

    default_message = "Resource conflict"
    default_status = 409
    problem = "conflict"


class KubernetesValidationError(KubernetesError):
    """400 or 422: the API refused the request body."""

    default_message = "Invalid resource specification"
    default_status = 422


class KubernetesTimeoutError(KubernetesError):
    """A bounded operation such as a pod exec ran out of time."""

    default_message = "Kubernetes operation timed out"

    def __init__(
        self,
        message: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(message)
        if timeout_seconds:
            self.message += f" (after {timeout_seconds:g}s)"
            self.args = (self.message,)
        self.timeout_seconds = timeout_seconds
