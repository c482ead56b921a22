"""Shared pieces of the snapshot models.

Snapshots are plain pydantic models built from kubernetes SDK objects,
which are deeply nested and ``None`` wherever the API omitted a field.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def dig(obj: Any, *path: str, default: Any = None) -> Any:
    """Follow ``path`` through nested attributes, stopping at the first ``None``."""
    for attr in path:
        if obj is None:
            break
        obj = getattr(obj, attr, None)
    return default if obj is None else obj


def iso_timestamp(value: Any) -> str | None:
    """SDK timestamps arrive as datetimes; strings pass through."""
    if value is None or isinstance(value, str):
        return value
    return value.isoformat() if isinstance(value, datetime) else str(value)


def metadata_of(obj: Any) -> dict[str, Any]:
    """Snapshot fields taken from ``obj.metadata``."""
    meta = getattr(obj, "metadata", None)
    return {
        "name": dig(meta, "name", default=""),
        "namespace": dig(meta, "namespace"),
        "labels": dict(dig(meta, "labels", default={})),
        "annotations": dict(dig(meta, "annotations", default={})),
    }


class Snapshot(BaseModel):
    """Point-in-time view of one cluster object."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    name: str
    namespace: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
