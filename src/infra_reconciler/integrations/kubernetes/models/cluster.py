"""Snapshots of namespaces, nodes and events."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from infra_reconciler.integrations.kubernetes.models.base import (
    Snapshot,
    dig,
    iso_timestamp,
    metadata_of,
)


class NamespaceSummary(Snapshot):
    """A namespace and both of its finalizer lists.

    ``finalizers`` are the object finalizers in metadata; ``spec_finalizers``
    are the ones only the namespace ``/finalize`` sub-resource can clear.
    """

    status: str = "Active"
    finalizers: list[str] = Field(default_factory=list)
    spec_finalizers: list[str] = Field(default_factory=list)
    deletion_timestamp: str | None = None

    @property
    def is_terminating(self) -> bool:
        return self.status == "Terminating" or self.deletion_timestamp is not None

    @classmethod
    def from_k8s_object(cls, obj: Any) -> NamespaceSummary:
        return cls(
            **metadata_of(obj),
            status=dig(obj, "status", "phase", default="Active"),
            finalizers=list(dig(obj, "metadata", "finalizers", default=[])),
            spec_finalizers=list(dig(obj, "spec", "finalizers", default=[])),
            deletion_timestamp=iso_timestamp(dig(obj, "metadata", "deletion_timestamp")),
        )


class NodeSummary(Snapshot):
    """A node, reduced to its Ready condition and kubelet version."""

    status: str = "Unknown"
    version: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.status == "Ready"

    @classmethod
    def from_k8s_object(cls, obj: Any) -> NodeSummary:
        ready = next(
            (c for c in dig(obj, "status", "conditions", default=[]) if c.type == "Ready"),
            None,
        )
        if ready is None:
            status = "Unknown"
        else:
            status = "Ready" if ready.status == "True" else "NotReady"
        return cls(
            **metadata_of(obj),
            status=status,
            version=dig(obj, "status", "node_info", "kubelet_version"),
        )


class EventSummary(Snapshot):
    """An event, as shown in failure diagnostics."""

    type: str = "Normal"
    reason: str | None = None
    message: str | None = None
    last_timestamp: str | None = None
    count: int = 1
    involved_object_kind: str | None = None
    involved_object_name: str | None = None

    @classmethod
    def from_k8s_object(cls, obj: Any) -> EventSummary:
        # Events from the events.k8s.io path only carry event_time
        seen = getattr(obj, "last_timestamp", None) or getattr(obj, "event_time", None)
        return cls(
            **metadata_of(obj),
            type=getattr(obj, "type", None) or "Normal",
            reason=getattr(obj, "reason", None),
            message=getattr(obj, "message", None),
            last_timestamp=iso_timestamp(seen),
            count=getattr(obj, "count", None) or 1,
            involved_object_kind=dig(obj, "involved_object", "kind"),
            involved_object_name=dig(obj, "involved_object", "name"),
        )
