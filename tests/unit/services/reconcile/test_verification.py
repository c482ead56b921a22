"""Unit tests for post-action verification and progress polling."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.integrations.kubernetes.models.cluster import EventSummary
from infra_reconciler.integrations.kubernetes.models.storage import (
    PersistentVolumeClaimSummary,
)
from infra_reconciler.integrations.kubernetes.models.workloads import (
    PodSummary,
    WorkloadSummary,
)
from infra_reconciler.services.reconcile.health import HealthProber
from infra_reconciler.services.reconcile.models import ManagedComponent
from infra_reconciler.services.reconcile.verification import (
    LOG_TAIL_LINES,
    ProgressPoller,
    Verifier,
)


class FakeClock:
    """Monotonic clock that only moves when something sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _workload(ready: int) -> WorkloadSummary:
    return WorkloadSummary(
        name="postgresql", namespace="infra", kind="StatefulSet", replicas=1, ready_replicas=ready
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verifier(mock_cluster: MagicMock, clock: FakeClock) -> Verifier:
    return Verifier(
        mock_cluster,
        HealthProber(mock_cluster),
        interval=10,
        sleep=clock.sleep,
        clock=clock,
    )


@pytest.mark.unit
@pytest.mark.reconcile
class TestVerify:
    """Tests for Verifier.verify."""

    def test_ready_immediately(self, verifier: Verifier, component: ManagedComponent) -> None:
        """Should succeed without sleeping when already ready."""
        result = verifier.verify(component, timeout=60)

        assert result.healthy is True
        assert result.ready == 1
        assert result.diagnostics is None

    def test_becomes_ready(
        self,
        verifier: Verifier,
        mock_cluster: MagicMock,
        clock: FakeClock,
        component: ManagedComponent,
    ) -> None:
        """Should keep polling until the workload reports ready."""
        mock_cluster.workloads.get_workload.side_effect = [
            None,
            _workload(0),
            _workload(1),
        ]

        result = verifier.verify(component, timeout=60)

        assert result.healthy is True
        assert clock.sleeps == [10, 10]
        assert result.elapsed == 20

    def test_api_errors_count_as_not_ready(
        self,
        verifier: Verifier,
        mock_cluster: MagicMock,
        component: ManagedComponent,
    ) -> None:
        """Should treat a failed poll as zero ready and keep going."""
        mock_cluster.workloads.get_workload.side_effect = [
            KubernetesError("timeout"),
            _workload(1),
        ]

        assert verifier.verify(component, timeout=60).healthy is True

    def test_timeout_attaches_diagnostics(
        self,
        verifier: Verifier,
        mock_cluster: MagicMock,
        clock: FakeClock,
        component: ManagedComponent,
    ) -> None:
        """Should give up at the timeout and collect diagnostics."""
        mock_cluster.workloads.get_workload.return_value = _workload(0)

        result = verifier.verify(component, timeout=25, action_log=["helm upgrade failed"])

        assert result.healthy is False
        assert result.ready == 0
        assert result.required == 1
        assert clock.sleeps == [10, 10, 5]
        assert result.elapsed == 25
        assert result.diagnostics is not None
        assert result.diagnostics.log_tail == ["helm upgrade failed"]


@pytest.mark.unit
@pytest.mark.reconcile
class TestCollectDiagnostics:
    """Tests for Verifier.collect_diagnostics."""

    def test_formats_sources(
        self,
        verifier: Verifier,
        mock_cluster: MagicMock,
        component: ManagedComponent,
    ) -> None:
        """Should describe pods, related events and unbound claims."""
        mock_cluster.workloads.list_pods.return_value = [
            PodSummary(
                name="postgresql-0",
                phase="Pending",
                restarts=3,
                ready_count=0,
                total_count=1,
            )
        ]
        mock_cluster.namespaces.list_events.return_value = [
            EventSummary(
                name="e1",
                type="Warning",
                reason="FailedScheduling",
                message="0/3 nodes are available",
                involved_object_kind="Pod",
                involved_object_name="postgresql-0",
            ),
            EventSummary(
                name="e2",
                reason="Pulled",
                message="pulled",
                involved_object_kind="Pod",
                involved_object_name="redis-master-0",
            ),
        ]
        mock_cluster.storage.list_persistent_volume_claims.return_value = [
            PersistentVolumeClaimSummary(name="data-postgresql-0", status="Pending"),
            PersistentVolumeClaimSummary(name="data-postgresql-1", status="Bound"),
        ]

        diagnostics = verifier.collect_diagnostics(component, [])

        assert diagnostics.pods == ["postgresql-0 Pending ready=0/1 restarts=3"]
        assert diagnostics.events == [
            "Warning FailedScheduling Pod/postgresql-0: 0/3 nodes are available"
        ]
        assert diagnostics.pending_claims == ["data-postgresql-0 Pending"]
        mock_cluster.workloads.list_pods.assert_called_once_with(
            "infra", label_selector="app.kubernetes.io/instance=postgresql"
        )

    def test_pod_waiting_reasons(
        self,
        verifier: Verifier,
        mock_cluster: MagicMock,
        component: ManagedComponent,
    ) -> None:
        """Should name the waiting reasons of stuck containers."""
        mock_cluster.workloads.list_pods.return_value = [
            PodSummary(
                name="postgresql-0",
                phase="Running",
                restarts=9,
                ready_count=0,
                total_count=2,
                waiting=["CrashLoopBackOff", "ImagePullBackOff"],
            )
        ]
        mock_cluster.namespaces.list_events.return_value = []
        mock_cluster.storage.list_persistent_volume_claims.return_value = []

        diagnostics = verifier.collect_diagnostics(component, [])

        assert diagnostics.pods == [
            "postgresql-0 Running ready=0/2 restarts=9 waiting=CrashLoopBackOff,ImagePullBackOff"
        ]

    def test_tails_action_log(self, verifier: Verifier, component: ManagedComponent) -> None:
        """Should keep only the last lines of the action log."""
        log = [f"line {i}" for i in range(LOG_TAIL_LINES + 10)]

        diagnostics = verifier.collect_diagnostics(component, log)

        assert len(diagnostics.log_tail) == LOG_TAIL_LINES
        assert diagnostics.log_tail[-1] == f"line {LOG_TAIL_LINES + 9}"

    def test_failing_sources_left_empty(
        self,
        verifier: Verifier,
        mock_cluster: MagicMock,
        component: ManagedComponent,
    ) -> None:
        """Should tolerate every source failing."""
        mock_cluster.workloads.list_pods.side_effect = KubernetesError("boom")
        mock_cluster.namespaces.list_events.side_effect = KubernetesError("boom")
        mock_cluster.storage.list_persistent_volume_claims.side_effect = KubernetesError("boom")

        diagnostics = verifier.collect_diagnostics(component, ["helm output"])

        assert diagnostics.pods == []
        assert diagnostics.events == []
        assert diagnostics.pending_claims == []
        assert diagnostics.log_tail == ["helm output"]


@pytest.mark.unit
@pytest.mark.reconcile
class TestProgressPoller:
    """Tests for ProgressPoller."""

    def test_samples_while_running(self, component: ManagedComponent) -> None:
        """Should record ready replicas in the background until stopped."""
        sampled = threading.Event()
        prober = MagicMock()

        def ready_replicas(_: ManagedComponent) -> int:
            sampled.set()
            return 2

        prober.ready_replicas.side_effect = ready_replicas

        with ProgressPoller(prober, component, interval=0.01) as poller:
            assert sampled.wait(timeout=5)

        assert poller.samples
        assert set(poller.samples) == {2}
        assert poller._thread is not None
        assert not poller._thread.is_alive()

    def test_poll_errors_ignored(self, component: ManagedComponent) -> None:
        """Should keep polling after a failed read."""
        sampled = threading.Event()
        calls = {"n": 0}
        prober = MagicMock()

        def ready_replicas(_: ManagedComponent) -> int | None:
            calls["n"] += 1
            if calls["n"] == 1:
                raise KubernetesError("timeout")
            sampled.set()
            return None

        prober.ready_replicas.side_effect = ready_replicas

        with ProgressPoller(prober, component, interval=0.01) as poller:
            assert sampled.wait(timeout=5)

        assert poller.samples[0] == 0

    def test_exit_waits_for_poll_in_flight(self, component: ManagedComponent) -> None:
        """A slow read still running at exit should finish before the block returns."""
        entered = threading.Event()
        release = threading.Event()
        prober = MagicMock()

        def ready_replicas(_: ManagedComponent) -> int:
            entered.set()
            release.wait(timeout=5)
            return 3

        prober.ready_replicas.side_effect = ready_replicas

        with ProgressPoller(prober, component, interval=0.01) as poller:
            assert entered.wait(timeout=5)
            threading.Timer(0.2, release.set).start()

        assert poller._thread is not None
        assert not poller._thread.is_alive()
        assert poller.samples == [3]
