"""Snapshots of pods and of the StatefulSets/Deployments that own them."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from infra_reconciler.integrations.kubernetes.models.base import Snapshot, dig, metadata_of


class PodSummary(Snapshot):
    """A pod's phase and container readiness.

    ``waiting`` lists the reasons of containers stuck in the waiting state,
    e.g. ``CrashLoopBackOff`` or ``ImagePullBackOff``.
    """

    phase: str = "Unknown"
    restarts: int = 0
    ready_count: int = 0
    total_count: int = 0
    waiting: list[str] = Field(default_factory=list)

    @property
    def is_running(self) -> bool:
        return self.phase == "Running"

    @property
    def ready(self) -> str:
        return f"{self.ready_count}/{self.total_count}"

    @classmethod
    def from_k8s_object(cls, obj: Any) -> PodSummary:
        statuses = dig(obj, "status", "container_statuses", default=[])
        return cls(
            **metadata_of(obj),
            phase=dig(obj, "status", "phase", default="Unknown"),
            restarts=sum(s.restart_count or 0 for s in statuses),
            ready_count=sum(1 for s in statuses if s.ready),
            total_count=len(dig(obj, "spec", "containers", default=[])),
            waiting=[
                str(reason)
                for s in statuses
                if (reason := dig(s, "state", "waiting", "reason")) is not None
            ],
        )


class WorkloadSummary(Snapshot):
    """Desired and ready replica counts of a StatefulSet or Deployment."""

    kind: str = "StatefulSet"
    replicas: int = 0
    ready_replicas: int = 0

    @classmethod
    def from_k8s_object(cls, obj: Any, kind: str) -> WorkloadSummary:
        return cls(
            **metadata_of(obj),
            kind=kind,
            replicas=dig(obj, "spec", "replicas", default=0),
            ready_replicas=dig(obj, "status", "ready_replicas", default=0),
        )
