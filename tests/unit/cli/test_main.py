"""Tests for main CLI module."""

from __future__ import annotations

import pytest
import typer
from typer.testing import CliRunner

from infra_reconciler import __version__


@pytest.mark.unit
class TestCLIMain:
    """Test main CLI entry point."""

    def test_help_option(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        """Should list every command."""
        result = cli_runner.invoke(cli_app, ["--help"])

        assert result.exit_code == 0
        for command in ("reconcile", "status", "unlock", "teardown"):
            assert command in result.stdout

    def test_version_option(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        """Should print the version and exit."""
        result = cli_runner.invoke(cli_app, ["--version"])

        assert result.exit_code == 0
        assert f"infra-reconcile version {__version__}" in result.stdout

    def test_verbose_flag(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        """Should accept the logging flags before a command."""
        result = cli_runner.invoke(cli_app, ["--verbose", "--json-logs", "status", "--help"])

        assert result.exit_code == 0

    def test_no_args_shows_help(self, cli_runner: CliRunner, cli_app: typer.Typer) -> None:
        """Should show usage when no command is given."""
        result = cli_runner.invoke(cli_app, [])

        assert "Usage" in result.stdout
