"""structlog setup for the CLI.

Console output is human-readable by default or JSON lines with
``--json-logs``; every run is also appended to a rotating JSON log file so
past reconcile runs can be audited.
"""

from __future__ import annotations

import contextlib
import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

LOG_DIR = Path.home() / ".local" / "state" / "infra-reconciler"
LOG_FILE = LOG_DIR / "reconcile.log"
MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5
RETENTION_DAYS = 30

# Marks handlers installed here so a second configure_logging call replaces them
_HANDLER_TAG = "_infra_reconciler"


def _pre_chain() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _formatter(renderer: structlog.types.Processor) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_pre_chain())


def _tagged(
    handler: logging.Handler, level: int, renderer: structlog.types.Processor
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(_formatter(renderer))
    setattr(handler, _HANDLER_TAG, True)
    return handler


def _cleanup_old_logs() -> None:
    """Remove rotated run logs not touched within RETENTION_DAYS."""
    if not LOG_DIR.is_dir():
        return
    cutoff = time.time() - RETENTION_DAYS * 86400
    for path in LOG_DIR.glob(f"{LOG_FILE.name}*"):
        # Another run may be rotating the same files
        with contextlib.suppress(OSError):
            if path.stat().st_mtime < cutoff:
                path.unlink()


def _run_log_handler() -> logging.Handler:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    _cleanup_old_logs()
    handler = RotatingFileHandler(LOG_FILE, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT)
    return _tagged(handler, logging.DEBUG, structlog.processors.JSONRenderer())


def configure_logging(
    verbose: bool = False,
    debug: bool = False,
    json_output: bool = False,
    log_to_file: bool = True,
) -> None:
    """Route structlog through stdlib logging to the console and the run log.

    The console shows WARNING and above unless ``verbose`` (INFO) or
    ``debug`` (DEBUG) is set. The run log at
    ``~/.local/state/infra-reconciler/reconcile.log`` always records DEBUG.

    Args:
        verbose: Show INFO on the console.
        debug: Show DEBUG on the console, with locals in tracebacks.
        json_output: Render console lines as JSON, for CI.
        log_to_file: Also append to the rotating run log.
    """
    level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING

    structlog.configure(
        processors=[*_pre_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    if json_output:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.RichTracebackFormatter(show_locals=debug),
        )

    root = logging.getLogger()
    for old in [h for h in root.handlers if getattr(h, _HANDLER_TAG, False)]:
        root.removeHandler(old)
        old.close()

    # Handlers do the filtering
    root.setLevel(logging.DEBUG)
    if log_to_file:
        root.addHandler(_run_log_handler())
    root.addHandler(_tagged(logging.StreamHandler(sys.stdout), level, renderer))
