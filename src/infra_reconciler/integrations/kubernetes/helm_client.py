"""Thin subprocess wrapper around the ``helm`` binary.

Every release command reports failure as a :class:`HelmError` subclass so
callers can tell a missing release record apart from a failed rollout.
"""

from __future__ import annotations

import json
import shutil
import subprocess
from pathlib import Path

import structlog

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesError
from infra_reconciler.integrations.kubernetes.models.helm import (
    HelmCommandResult,
    HelmReleaseHistory,
    HelmReleaseStatus,
)

logger = structlog.get_logger()

HELM_TIMEOUT_SECONDS = 300
SHORT_TIMEOUT_SECONDS = 30
# helm must hit its own --timeout before the subprocess is killed
PROCESS_GRACE_SECONDS = 60

_MISSING_RELEASE_MARKER = "release: not found"


class HelmError(KubernetesError):
    """A helm invocation failed or could not be made."""

    def __init__(self, message: str, stderr: str | None = None) -> None:
        super().__init__(message=message)
        self.stderr = stderr


class HelmBinaryNotFoundError(HelmError):
    """No usable helm executable."""

    def __init__(self) -> None:
        super().__init__(
            message=(
                "helm binary not found in PATH. "
                "Install from: https://helm.sh/docs/intro/install/"
            )
        )


class HelmCommandError(HelmError):
    """helm exited non-zero."""


class HelmReleaseNotFoundError(HelmCommandError):
    """helm has no stored record for the release."""


def _locate(binary_path: str | None) -> str:
    if binary_path is None:
        found = shutil.which("helm")
        if found is None:
            raise HelmBinaryNotFoundError()
        return found
    candidate = Path(binary_path)
    if not candidate.exists():
        raise HelmBinaryNotFoundError()
    return str(candidate.resolve())


def _rollout_flags(*, wait: bool, timeout: int | None) -> list[str]:
    flags = ["--wait"] if wait else []
    if timeout:
        flags += ["--timeout", f"{timeout}s"]
    return flags


def _chart_flags(
    namespace: str | None,
    version: str | None,
    values_files: list[str] | None,
    set_values: list[str] | None,
) -> list[str]:
    flags: list[str] = []
    if namespace:
        flags += ["--namespace", namespace]
    if version:
        flags += ["--version", version]
    for path in values_files or ():
        flags += ["--values", path]
    for override in set_values or ():
        flags += ["--set", override]
    return flags


class HelmClient:
    """Runs helm commands against one cluster.

    The kubeconfig and context given here are appended to every command so
    helm always targets the same cluster as the Kubernetes API client.
    """

    def __init__(
        self,
        binary_path: str | None = None,
        *,
        kubeconfig: str | None = None,
        kube_context: str | None = None,
    ) -> None:
        """Resolve the helm binary.

        Args:
            binary_path: Explicit helm path; searched on PATH when omitted.
            kubeconfig: Kubeconfig file for every command.
            kube_context: Kubeconfig context for every command.

        Raises:
            HelmBinaryNotFoundError: If helm cannot be found.
        """
        self._binary = _locate(binary_path)
        self._cluster_flags: list[str] = []
        if kubeconfig:
            self._cluster_flags += ["--kubeconfig", kubeconfig]
        if kube_context:
            self._cluster_flags += ["--kube-context", kube_context]
        self._log = logger.bind(binary=self._binary)

    def _call(self, *args: str, limit: int) -> HelmCommandResult:
        """Invoke helm and translate failures.

        Raises:
            HelmReleaseNotFoundError: When helm reports the release is missing.
            HelmCommandError: On any other non-zero exit.
            HelmError: When the process outlives ``limit`` seconds.
        """
        self._log.debug("running_helm_command", args=list(args))
        try:
            proc = subprocess.run(
                [self._binary, *args, *self._cluster_flags],
                capture_output=True,
                text=True,
                check=True,
                timeout=limit,
            )
        except subprocess.TimeoutExpired as e:
            raise HelmError(message=f"Helm command timed out after {limit}s") from e
        except subprocess.CalledProcessError as e:
            reason = (e.stderr or "").strip() or f"exit code {e.returncode}"
            error_cls = (
                HelmReleaseNotFoundError if _MISSING_RELEASE_MARKER in reason else HelmCommandError
            )
            raise error_cls(message=f"Helm command failed: {reason}", stderr=e.stderr) from e
        return HelmCommandResult(success=True, stdout=proc.stdout, stderr=proc.stderr)

    @staticmethod
    def _limit_for(timeout: int | None) -> int:
        return HELM_TIMEOUT_SECONDS if timeout is None else timeout + PROCESS_GRACE_SECONDS

    # -- releases -----------------------------------------------------------

    def install(
        self,
        release_name: str,
        chart: str,
        *,
        namespace: str | None = None,
        values_files: list[str] | None = None,
        set_values: list[str] | None = None,
        version: str | None = None,
        create_namespace: bool = False,
        wait: bool = False,
        timeout: int | None = None,
    ) -> HelmCommandResult:
        """``helm install``; fails if the release already has a record."""
        args = [
            "install",
            release_name,
            chart,
            *_chart_flags(namespace, version, values_files, set_values),
            *_rollout_flags(wait=wait, timeout=timeout),
        ]
        if create_namespace:
            args.append("--create-namespace")
        result = self._call(*args, limit=self._limit_for(timeout))
        self._log.info("helm_install_success", release=release_name, chart=chart)
        return result

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
        create_namespace: bool = False,
        wait: bool = False,
        timeout: int | None = None,
    ) -> HelmCommandResult:
        """``helm upgrade``.

        Args:
            release_name: Release to upgrade.
            chart: Chart reference.
            namespace: Release namespace.
            values_files: Values files, later ones win.
            set_values: ``key=value`` overrides.
            version: Chart version.
            install: Pass ``--install`` so a release without a record is created.
            create_namespace: Pass ``--create-namespace``.
            wait: Block until the rollout is ready.
            timeout: helm ``--timeout`` in seconds.
        """
        args = [
            "upgrade",
            release_name,
            chart,
            *_chart_flags(namespace, version, values_files, set_values),
            *_rollout_flags(wait=wait, timeout=timeout),
        ]
        if install:
            args.append("--install")
        if create_namespace:
            args.append("--create-namespace")
        result = self._call(*args, limit=self._limit_for(timeout))
        self._log.info("helm_upgrade_success", release=release_name, chart=chart)
        return result

    def rollback(
        self,
        release_name: str,
        revision: int | None = None,
        *,
        namespace: str | None = None,
        wait: bool = False,
        timeout: int | None = None,
        force: bool = False,
    ) -> HelmCommandResult:
        """``helm rollback`` to ``revision``, or the previous one when omitted."""
        args = ["rollback", release_name]
        if revision is not None:
            args.append(str(revision))
        if namespace:
            args += ["--namespace", namespace]
        if force:
            args.append("--force")
        args += _rollout_flags(wait=wait, timeout=timeout)
        result = self._call(*args, limit=self._limit_for(timeout))
        self._log.info("helm_rollback_success", release=release_name, revision=revision)
        return result

    def uninstall(
        self,
        release_name: str,
        *,
        namespace: str | None = None,
        wait: bool = False,
        timeout: int | None = None,
    ) -> HelmCommandResult:
        """``helm uninstall``.

        Raises:
            HelmReleaseNotFoundError: If the release has no record.
        """
        args = ["uninstall", release_name]
        if namespace:
            args += ["--namespace", namespace]
        args += _rollout_flags(wait=wait, timeout=timeout)
        result = self._call(*args, limit=self._limit_for(timeout))
        self._log.info("helm_uninstall_success", release=release_name)
        return result

    def history(
        self,
        release_name: str,
        *,
        namespace: str | None = None,
        max_revisions: int | None = None,
    ) -> list[HelmReleaseHistory]:
        """Revision history sorted by revision number, oldest first."""
        args = ["history", release_name, "--output", "json"]
        if namespace:
            args += ["--namespace", namespace]
        if max_revisions is not None:
            args += ["--max", str(max_revisions)]
        output = self._call(*args, limit=SHORT_TIMEOUT_SECONDS).stdout
        if not output.strip():
            return []
        revisions = (HelmReleaseHistory.from_json(entry) for entry in json.loads(output))
        return sorted(revisions, key=lambda entry: entry.revision)

    def status(self, release_name: str, *, namespace: str | None = None) -> HelmReleaseStatus:
        """Parsed ``helm status --output json``.

        Raises:
            HelmReleaseNotFoundError: If the release has no record.
        """
        args = ["status", release_name, "--output", "json"]
        if namespace:
            args += ["--namespace", namespace]
        output = self._call(*args, limit=SHORT_TIMEOUT_SECONDS).stdout
        return HelmReleaseStatus.from_json(
            json.loads(output), fallback_name=release_name, fallback_namespace=namespace, raw=output
        )

    # -- repositories -------------------------------------------------------

    def repo_add(self, name: str, url: str, *, force_update: bool = False) -> HelmCommandResult:
        """Register a chart repository; ``force_update`` replaces an existing entry."""
        args = ["repo", "add", name, url]
        if force_update:
            args.append("--force-update")
        result = self._call(*args, limit=SHORT_TIMEOUT_SECONDS)
        self._log.info("helm_repo_added", name=name, url=url)
        return result

    def repo_update(self, names: list[str] | None = None) -> HelmCommandResult:
        """Refresh the named repository indexes, or all of them."""
        result = self._call("repo", "update", *(names or ()), limit=HELM_TIMEOUT_SECONDS)
        self._log.info("helm_repo_updated", repos=names or "all")
        return result
