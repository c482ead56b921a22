"""Unit tests for logging configuration."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterator
from logging.handlers import RotatingFileHandler
from pathlib import Path
from unittest.mock import patch

import pytest
import structlog

from infra_reconciler.logging import config as log_config


@pytest.fixture
def isolated_root_logger() -> Iterator[logging.Logger]:
    """Restore root logger handlers and structlog defaults after each test."""
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    saved_level = root.level
    yield root
    for handler in root.handlers:
        if handler not in saved_handlers:
            handler.close()
    root.handlers = saved_handlers
    root.setLevel(saved_level)
    structlog.reset_defaults()


@pytest.fixture
def log_dir(tmp_path: Path) -> Iterator[Path]:
    """Point the log file location at a temporary directory."""
    directory = tmp_path / "logs"
    with (
        patch.object(log_config, "LOG_DIR", directory),
        patch.object(log_config, "LOG_FILE", directory / "reconcile.log"),
    ):
        yield directory


@pytest.mark.unit
class TestConfigureLogging:
    """Tests for configure_logging."""

    def test_default_level_is_warning(self, isolated_root_logger: logging.Logger) -> None:
        """Console output should default to WARNING."""
        log_config.configure_logging(log_to_file=False)

        console = isolated_root_logger.handlers[-1]
        assert console.level == logging.WARNING

    def test_verbose_and_debug_levels(self, isolated_root_logger: logging.Logger) -> None:
        """Verbose should map to INFO and debug to DEBUG."""
        log_config.configure_logging(verbose=True, log_to_file=False)
        assert isolated_root_logger.handlers[-1].level == logging.INFO

        log_config.configure_logging(debug=True, log_to_file=False)
        assert isolated_root_logger.handlers[-1].level == logging.DEBUG

    def test_json_output_uses_json_renderer(self, isolated_root_logger: logging.Logger) -> None:
        """JSON console output should render with JSONRenderer."""
        log_config.configure_logging(json_output=True, log_to_file=False)

        formatter = isolated_root_logger.handlers[-1].formatter
        assert isinstance(formatter, structlog.stdlib.ProcessorFormatter)
        assert isinstance(formatter.processors[-1], structlog.processors.JSONRenderer)

    def test_file_handler_created(
        self, isolated_root_logger: logging.Logger, log_dir: Path
    ) -> None:
        """Should add a rotating file handler under the log directory."""
        log_config.configure_logging()

        file_handlers = [
            h for h in isolated_root_logger.handlers if isinstance(h, RotatingFileHandler)
        ]
        assert len(file_handlers) == 1
        assert log_dir.exists()
        assert file_handlers[0].maxBytes == log_config.MAX_LOG_SIZE


@pytest.mark.unit
class TestCleanupOldLogs:
    """Tests for rotated log retention."""

    def test_removes_only_expired_files(self, log_dir: Path) -> None:
        """Should delete rotated files older than the retention window."""
        log_dir.mkdir(parents=True)
        old = log_dir / "reconcile.log.3"
        fresh = log_dir / "reconcile.log.1"
        old.write_text("old")
        fresh.write_text("fresh")
        expired = time.time() - (log_config.RETENTION_DAYS + 1) * 86400
        os.utime(old, (expired, expired))

        log_config._cleanup_old_logs()

        assert not old.exists()
        assert fresh.exists()

    def test_missing_directory(self, log_dir: Path) -> None:
        """Should do nothing when the directory does not exist."""
        log_config._cleanup_old_logs()
        assert not log_dir.exists()


@pytest.mark.unit
class TestReconfigure:
    """Tests for calling configure_logging more than once."""

    def test_replaces_own_handlers(
        self, isolated_root_logger: logging.Logger, log_dir: Path
    ) -> None:
        """A second call should not stack another console or file handler."""
        before = len(isolated_root_logger.handlers)

        log_config.configure_logging()
        log_config.configure_logging(debug=True)

        assert len(isolated_root_logger.handlers) == before + 2
        assert isolated_root_logger.handlers[-1].level == logging.DEBUG
