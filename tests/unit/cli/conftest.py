"""Fixtures for CLI command tests."""

from __future__ import annotations

import pytest

from infra_reconciler.cli.commands.base import console


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep report tables on one line per row so output can be matched."""
    monkeypatch.setattr(console, "width", 200)
