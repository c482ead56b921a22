"""Shared pytest fixtures for infra_reconciler tests."""

from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest
import typer
from typer.testing import CliRunner

from infra_reconciler.cli.main import app


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_app() -> Generator[typer.Typer]:
    """Return the CLI app with logging setup disabled."""
    with patch("infra_reconciler.cli.main.configure_logging"):
        yield app


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset environment variables for each test."""
    # Clear any INFRA_RECONCILE_ prefixed environment variables
    for key in list(os.environ.keys()):
        if key.startswith("INFRA_RECONCILE_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    """Write a two-component configuration file."""
    config_path = tmp_path / "components.yaml"
    config_path.write_text(
        """
mode: normal
timeouts:
  verify: 30
  verify_interval: 0
  lock_clear_wait: 0
components:
  - name: postgresql
    namespace: infra
    release: postgresql
    chart: bitnami/postgresql
    values_files: [values/postgresql.yaml]
    credential:
      secret_name: postgresql
      keys: [postgres-password, password]
      env: POSTGRES_PASSWORD
      updater: postgres
    workload:
      name: postgresql
  - name: redis
    namespace: infra
    release: redis
    chart: bitnami/redis
    workload:
      name: redis-master
"""
    )
    return config_path
