"""Secrets: component credential records and Helm release storage.

Values are returned decoded and accepted plain; base64 never leaves this
module. Secret values are never logged, only key names.
"""

from __future__ import annotations

import base64

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesNotFoundError
from infra_reconciler.integrations.kubernetes.models.resources import ResourceRef
from infra_reconciler.services.kubernetes.base import K8sBaseManager, query


def _encode(data: dict[str, str]) -> dict[str, str]:
    return {k: base64.b64encode(v.encode()).decode() for k, v in data.items()}


def _decode(data: dict[str, str] | None) -> dict[str, str]:
    # Binary values (keystores, certificates) must not break reading the text ones
    return {
        k: base64.b64decode(v).decode(errors="replace") for k, v in (data or {}).items()
    }


class ConfigurationManager(K8sBaseManager):
    _entity_name = "configuration"

    def list_secrets(
        self,
        namespace: str | None = None,
        *,
        label_selector: str | None = None,
    ) -> list[ResourceRef]:
        """Secret metadata only; data is not read."""
        ns = self._resolve_namespace(namespace)
        params = query(namespace=ns, label_selector=label_selector)
        result = self._call(
            lambda: self._client.core_v1.list_namespaced_secret(**params), "Secret", None, ns
        )
        return [ResourceRef.from_k8s_object(secret, "Secret") for secret in result.items]

    def get_secret_data(self, name: str, namespace: str | None = None) -> dict[str, str] | None:
        """Decoded data of a secret, or None if it does not exist."""
        ns = self._resolve_namespace(namespace)
        try:
            secret = self._call(
                lambda: self._client.core_v1.read_namespaced_secret(name=name, namespace=ns),
                "Secret",
                name,
                ns,
            )
        except KubernetesNotFoundError:
            return None
        return _decode(secret.data)

    def upsert_secret(
        self,
        name: str,
        namespace: str | None = None,
        *,
        data: dict[str, str],
        labels: dict[str, str] | None = None,
    ) -> None:
        """Merge ``data`` into a secret, creating an Opaque one when missing.

        Keys already in the secret but absent from ``data`` are kept.

        Args:
            name: Secret name.
            namespace: Target namespace.
            data: Plain-text values to write.
            labels: Labels for a newly created secret.
        """
        from kubernetes.client import V1ObjectMeta, V1Secret

        ns = self._resolve_namespace(namespace)
        core = self._client.core_v1
        encoded = _encode(data)
        self._log.info("writing_secret", name=name, namespace=ns, keys=sorted(data))

        if self._call_if_present(
            lambda: core.patch_namespaced_secret(name=name, namespace=ns, body={"data": encoded}),
            "Secret",
            name,
            ns,
        ):
            return

        body = V1Secret(
            metadata=V1ObjectMeta(name=name, namespace=ns, labels=labels),
            type="Opaque",
            data=encoded,
        )
        self._call(
            lambda: core.create_namespaced_secret(namespace=ns, body=body), "Secret", name, ns
        )
        self._log.info("created_secret", name=name, namespace=ns)

    def delete_secret(self, name: str, namespace: str | None = None) -> bool:
        """Delete a secret; False if it was already gone."""
        ns = self._resolve_namespace(namespace)
        self._log.info("deleting_secret", name=name, namespace=ns)
        return self._call_if_present(
            lambda: self._client.core_v1.delete_namespaced_secret(name=name, namespace=ns),
            "Secret",
            name,
            ns,
        )

    def delete_secrets(self, namespace: str | None = None, *, label_selector: str) -> int:
        """Delete every secret matching ``label_selector``; returns how many went."""
        ns = self._resolve_namespace(namespace)
        return sum(
            1
            for ref in self.list_secrets(ns, label_selector=label_selector)
            if self.delete_secret(ref.name, ns)
        )
