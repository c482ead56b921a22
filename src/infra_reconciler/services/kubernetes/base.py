"""Common plumbing for the per-resource managers.

Every API request a manager makes goes through :meth:`K8sBaseManager._call`,
which translates client exceptions and retries the transient ones with
tenacity. Nothing else in the reconciler retries API calls.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from infra_reconciler.integrations.kubernetes.config import RetryConfig
from infra_reconciler.integrations.kubernetes.exceptions import (
    KubernetesNotFoundError,
    KubernetesTransientError,
)

if TYPE_CHECKING:
    from infra_reconciler.integrations.kubernetes.client import KubernetesClient

logger = structlog.get_logger()

T = TypeVar("T")


def query(**params: Any) -> dict[str, Any]:
    """Keyword arguments for a list call, leaving out unset selectors."""
    return {key: value for key, value in params.items() if value is not None}


class K8sBaseManager:
    """Base for managers that wrap one area of the Kubernetes API.

    Subclasses set ``_entity_name``, which is bound into every log line
    they emit.
    """

    _entity_name: str = ""

    def __init__(self, client: KubernetesClient, retry: RetryConfig | None = None) -> None:
        """Bind the manager to a client.

        Args:
            client: Kubernetes API client.
            retry: Attempt budget and wait for transient failures.
        """
        self._client = client
        self._retry = retry or RetryConfig()
        self._log = logger.bind(entity=self._entity_name)

    def _resolve_namespace(self, namespace: str | None) -> str:
        return namespace or self._client.default_namespace

    def _call(
        self,
        request: Callable[[], T],
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> T:
        """Run one API request.

        Transient failures (429, 5xx, dropped connections) are retried up
        to the configured attempt count; anything else is raised at once.

        Args:
            request: Zero-argument callable making the request.
            resource_type: Kind of the object, for error messages.
            resource_name: Name of the object, for error messages.
            namespace: Namespace of the object, for error messages.

        Raises:
            KubernetesError: The translated error of the last attempt.
        """

        def attempt() -> T:
            try:
                return request()
            except Exception as e:
                error = self._client.translate_api_exception(
                    e, resource_type, resource_name, namespace
                )
                if error is e:
                    raise
                raise error from e

        retrying = Retrying(
            retry=retry_if_exception_type(KubernetesTransientError),
            stop=stop_after_attempt(self._retry.attempts),
            wait=wait_fixed(self._retry.wait_seconds),
            before_sleep=self._log_retry,
            reraise=True,
        )
        return retrying(attempt)

    def _call_if_present(
        self,
        request: Callable[[], Any],
        resource_type: str,
        resource_name: str,
        namespace: str | None = None,
    ) -> bool:
        """Run a request against one named object; False if it does not exist."""
        try:
            self._call(request, resource_type, resource_name, namespace)
        except KubernetesNotFoundError:
            return False
        return True

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self._log.warning(
            "retrying_api_call",
            attempt=retry_state.attempt_number,
            max_attempts=self._retry.attempts,
            error=str(error),
        )
