"""Release operations as the reconciler uses them.

Every mutating call waits for the rollout, so a returned result means helm
itself considered the release ready. Reads turn "no release record" into
``None`` or an empty history instead of an exception.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from infra_reconciler.integrations.kubernetes.helm_client import (
    HelmClient,
    HelmReleaseNotFoundError,
)
from infra_reconciler.services.kubernetes.base import K8sBaseManager

if TYPE_CHECKING:
    from infra_reconciler.integrations.kubernetes.client import KubernetesClient
    from infra_reconciler.integrations.kubernetes.config import RetryConfig
    from infra_reconciler.integrations.kubernetes.models.helm import (
        HelmCommandResult,
        HelmReleaseHistory,
        HelmReleaseStatus,
    )


class HelmManager(K8sBaseManager):
    """Release lifecycle on top of :class:`HelmClient`."""

    _entity_name = "helm"

    def __init__(
        self,
        client: KubernetesClient,
        helm_client: HelmClient | None = None,
        retry: RetryConfig | None = None,
    ) -> None:
        super().__init__(client, retry)
        self._helm = helm_client or HelmClient()

    def release_status(
        self, release_name: str, *, namespace: str | None = None
    ) -> HelmReleaseStatus | None:
        """Stored status of a release, or None when helm has no record of it."""
        ns = self._resolve_namespace(namespace)
        try:
            return self._helm.status(release_name, namespace=ns)
        except HelmReleaseNotFoundError:
            self._log.debug("helm_release_absent", release=release_name, namespace=ns)
            return None

    def history(
        self, release_name: str, *, namespace: str | None = None
    ) -> list[HelmReleaseHistory]:
        """Revisions oldest first; empty when helm has no record of the release."""
        ns = self._resolve_namespace(namespace)
        try:
            return self._helm.history(release_name, namespace=ns)
        except HelmReleaseNotFoundError:
            return []

    def install(
        self,
        release_name: str,
        chart: str,
        *,
        namespace: str | None = None,
        values_files: list[str] | None = None,
        set_values: list[str] | None = None,
        version: str | None = None,
        timeout: int | None = None,
    ) -> HelmCommandResult:
        """First install of a release into a namespace that may not exist yet."""
        ns = self._resolve_namespace(namespace)
        self._log.info("installing_helm_chart", release=release_name, chart=chart, namespace=ns)
        return self._helm.install(
            release_name,
            chart,
            namespace=ns,
            values_files=values_files,
            set_values=set_values,
            version=version,
            create_namespace=True,
            wait=True,
            timeout=timeout,
        )

    def upgrade(
        self,
        release_name: str,
        chart: str,
        *,
        namespace: str | None = None,
        values_files: list[str] | None = None,
        set_values: list[str] | None = None,
        version: str | None = None,
        install: bool = False,
        timeout: int | None = None,
    ) -> HelmCommandResult:
        """Upgrade in place.

        With ``install`` the release is created when its record is missing,
        which also needs the namespace to be creatable.
        """
        ns = self._resolve_namespace(namespace)
        self._log.info(
            "upgrading_helm_release", release=release_name, namespace=ns, install=install
        )
        return self._helm.upgrade(
            release_name,
            chart,
            namespace=ns,
            values_files=values_files,
            set_values=set_values,
            version=version,
            install=install,
            create_namespace=install,
            wait=True,
            timeout=timeout,
        )

    def rollback(
        self,
        release_name: str,
        revision: int,
        *,
        namespace: str | None = None,
        timeout: int | None = None,
    ) -> HelmCommandResult:
        """Forced rollback; ``--force`` recreates objects helm cannot patch."""
        ns = self._resolve_namespace(namespace)
        self._log.info(
            "rolling_back_helm_release", release=release_name, revision=revision, namespace=ns
        )
        return self._helm.rollback(
            release_name, revision, namespace=ns, wait=True, timeout=timeout, force=True
        )

    def uninstall(
        self, release_name: str, *, namespace: str | None = None, timeout: int | None = None
    ) -> bool:
        """Remove a release; False when there was nothing to remove."""
        ns = self._resolve_namespace(namespace)
        self._log.info("uninstalling_helm_release", release=release_name, namespace=ns)
        try:
            self._helm.uninstall(release_name, namespace=ns, wait=True, timeout=timeout)
        except HelmReleaseNotFoundError:
            return False
        return True

    def repo_add(self, name: str, url: str) -> HelmCommandResult:
        """Register a chart repository, replacing a stale entry of the same name."""
        self._log.info("adding_helm_repo", name=name, url=url)
        return self._helm.repo_add(name, url, force_update=True)

    def repo_update(self) -> HelmCommandResult:
        return self._helm.repo_update()
