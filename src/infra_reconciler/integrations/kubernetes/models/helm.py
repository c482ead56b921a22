"""Parsed helm output: release status, revision history, command output."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# A release in one of these states is locked against further helm operations
PENDING_STATUSES = frozenset({"pending-install", "pending-upgrade", "pending-rollback"})


@dataclass
class HelmReleaseHistory:
    """One row of ``helm history``."""

    revision: int
    status: str
    chart: str
    app_version: str
    description: str
    updated: str

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> HelmReleaseHistory:
        fields = ("status", "chart", "app_version", "description", "updated")
        return cls(
            revision=int(data.get("revision", 0)),
            **{name: str(data.get(name, "")) for name in fields},
        )


@dataclass
class HelmCommandResult:
    success: bool
    stdout: str
    stderr: str = ""


@dataclass
class HelmReleaseStatus:
    """The stored state of a release as ``helm status`` reports it."""

    name: str
    namespace: str
    revision: int
    status: str
    description: str
    raw: str = ""

    @property
    def is_pending(self) -> bool:
        return self.status in PENDING_STATUSES

    @classmethod
    def from_json(
        cls,
        data: dict[str, Any],
        *,
        fallback_name: str = "",
        fallback_namespace: str | None = None,
        raw: str = "",
    ) -> HelmReleaseStatus:
        """Build from ``helm status --output json``.

        helm reports the revision as ``version`` and nests the state under
        ``info``.
        """
        info = data.get("info") or {}
        return cls(
            name=data.get("name", fallback_name),
            namespace=data.get("namespace", fallback_namespace or ""),
            revision=int(data.get("version", 0)),
            status=info.get("status", ""),
            description=info.get("description", ""),
            raw=raw,
        )
