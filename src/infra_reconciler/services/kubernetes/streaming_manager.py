"""Non-interactive exec into pod containers.

Used for in-database credential rotation and for connectivity probes, so
command lines are never logged.
"""

from __future__ import annotations

from dataclasses import dataclass

from infra_reconciler.integrations.kubernetes.exceptions import KubernetesTimeoutError
from infra_reconciler.services.kubernetes.base import K8sBaseManager, query

DEFAULT_EXEC_TIMEOUT_SECONDS = 30


@dataclass
class ExecResult:
    """Outcome of a command executed in a container."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class StreamingManager(K8sBaseManager):
    """Manager for exec sessions against pod containers."""

    _entity_name = "streaming"

    def exec_capture(
        self,
        pod_name: str,
        namespace: str | None = None,
        *,
        command: list[str],
        container: str | None = None,
        timeout: int = DEFAULT_EXEC_TIMEOUT_SECONDS,
    ) -> ExecResult:
        """Execute a command in a pod container and wait for it to exit.

        The command line is not logged since it may carry credentials.

        Args:
            pod_name: Pod name.
            namespace: Target namespace.
            command: Command and arguments to execute.
            container: Specific container name.
            timeout: Seconds to wait for the command to finish.

        Returns:
            Exit status with captured stdout and stderr.

        Raises:
            KubernetesTimeoutError: If the command outlives ``timeout``.
        """
        import kubernetes.stream

        ns = self._resolve_namespace(namespace)
        self._log.debug(
            "exec_command",
            pod=pod_name,
            namespace=ns,
            executable=command[0] if command else None,
            container=container,
        )
        params = query(name=pod_name, namespace=ns, command=command, container=container)

        ws_client = self._call(
            lambda: kubernetes.stream.stream(
                self._client.core_v1.connect_get_namespaced_pod_exec,
                stdin=False,
                stdout=True,
                stderr=True,
                tty=False,
                _preload_content=False,
                **params,
            ),
            "Pod",
            pod_name,
            ns,
        )
        try:
            ws_client.run_forever(timeout=timeout)
            if ws_client.is_open():
                raise KubernetesTimeoutError(
                    message=f"Command in pod '{pod_name}' did not finish",
                    timeout_seconds=timeout,
                )
            stdout = ws_client.read_stdout() or ""
            stderr = ws_client.read_stderr() or ""
            returncode = ws_client.returncode
        finally:
            ws_client.close()

        result = ExecResult(
            returncode=returncode if returncode is not None else -1,
            stdout=stdout,
            stderr=stderr,
        )
        self._log.debug("exec_finished", pod=pod_name, returncode=result.returncode)
        return result
