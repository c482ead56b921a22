"""Orphan adoption.

Objects left behind by a removed or failed release make the next Helm
install fail with "exists and cannot be imported into the current release".
Helm accepts such an object once it carries the release's ownership label
and annotations, so adoption patches those in place instead of deleting.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.integrations.kubernetes.models.resources import (
    MANAGED_BY_LABEL,
    RELEASE_NAME_ANNOTATION,
    RELEASE_NAMESPACE_ANNOTATION,
    ResourceRef,
)
from infra_reconciler.services.reconcile.models import (
    AdoptionReport,
    AdoptOutcome,
    ManagedComponent,
)

if TYPE_CHECKING:
    from infra_reconciler.services.kubernetes.cluster_state import ClusterStateClient

logger = structlog.get_logger()

ADOPTABLE_KINDS: tuple[str, ...] = (
    "Service",
    "ConfigMap",
    "Secret",
    "ServiceAccount",
    "NetworkPolicy",
    "PodDisruptionBudget",
    "ServiceMonitor",
    "StatefulSet",
    "Deployment",
    "PersistentVolumeClaim",
)

# Kinds that hold no state of their own and may be removed when adoption
# is refused in destructive-reprovision mode.
DATA_FREE_KINDS: frozenset[str] = frozenset(
    {
        "Service",
        "ConfigMap",
        "ServiceAccount",
        "NetworkPolicy",
        "PodDisruptionBudget",
        "ServiceMonitor",
    }
)


class OrphanAdopter:
    """Re-labels leftover objects so Helm takes them over."""

    def __init__(self, cluster: ClusterStateClient) -> None:
        self._cluster = cluster

    def adopt(
        self,
        ref: ResourceRef,
        release: str,
        namespace: str,
        *,
        destructive: bool = False,
    ) -> AdoptOutcome:
        """Mark one object as owned by ``release``.

        Args:
            ref: Object to adopt.
            release: Release that should own it.
            namespace: Release namespace.
            destructive: Allow removing a data-free object whose patch is
                rejected.

        Returns:
            The adoption outcome.
        """
        log = logger.bind(kind=ref.kind, resource=ref.name, namespace=ref.namespace)
        if ref.is_owned_by(release, namespace):
            log.debug("resource_already_owned", release=release)
            return AdoptOutcome.ALREADY_OWNED

        resources = self._cluster.resources
        try:
            resources.patch_metadata(
                ref.kind,
                ref.name,
                ref.namespace or namespace,
                labels={MANAGED_BY_LABEL: "Helm"},
                annotations={
                    RELEASE_NAME_ANNOTATION: release,
                    RELEASE_NAMESPACE_ANNOTATION: namespace,
                },
            )
        except KubernetesError as e:
            log.warning("resource_adoption_rejected", error=str(e))
            if destructive and ref.kind in DATA_FREE_KINDS:
                return self._remove(ref, namespace)
            return AdoptOutcome.SKIPPED

        log.info("resource_adopted", release=release, previous_owner=ref.owner_release)
        return AdoptOutcome.ADOPTED

    def _remove(self, ref: ResourceRef, namespace: str) -> AdoptOutcome:
        resources = self._cluster.resources
        ns = ref.namespace or namespace
        try:
            resources.clear_finalizers(ref.kind, ref.name, ns)
            resources.delete_resource(ref.kind, ref.name, ns)
        except KubernetesError as e:
            logger.warning(
                "resource_removal_failed",
                kind=ref.kind,
                resource=ref.name,
                namespace=ns,
                error=str(e),
            )
            return AdoptOutcome.SKIPPED
        logger.info("resource_removed", kind=ref.kind, resource=ref.name, namespace=ns)
        return AdoptOutcome.REMOVED

    def discover(self, component: ManagedComponent) -> list[ResourceRef]:
        """Find a component's objects by instance label and by known names.

        The component's own credential secret is left out; it is written by
        the reconciler, not by the chart.

        Returns:
            Unique references in discovery order.
        """
        resources = self._cluster.resources
        ns = component.namespace
        excluded = {("Secret", component.credential.secret_name)} if component.credential else set()
        found: dict[tuple[str, str], ResourceRef] = {}

        for kind in ADOPTABLE_KINDS:
            try:
                labelled = resources.list_resources(kind, ns, label_selector=component.selector)
            except KubernetesError as e:
                logger.warning("adoption_scan_failed", kind=kind, namespace=ns, error=str(e))
                continue
            for ref in labelled:
                found.setdefault((ref.kind, ref.name), ref)

            for name in component.resource_names:
                if (kind, name) in found:
                    continue
                try:
                    ref = resources.get_resource(kind, name, ns)
                except KubernetesError as e:
                    logger.debug("adoption_lookup_failed", kind=kind, name=name, error=str(e))
                    continue
                if ref is not None:
                    found[(kind, name)] = ref

        return [ref for key, ref in found.items() if key not in excluded]

    def adopt_component(
        self, component: ManagedComponent, *, destructive: bool = False
    ) -> AdoptionReport:
        """Adopt every leftover object of a component into its release.

        Args:
            component: Component whose objects to adopt.
            destructive: Allow removing data-free objects that refuse adoption.

        Returns:
            Counts per adoption outcome.
        """
        report = AdoptionReport()
        for ref in self.discover(component):
            report.record(
                self.adopt(ref, component.release, component.namespace, destructive=destructive)
            )
        logger.info("adoption_complete", component=component.name, summary=report.summary())
        return report
