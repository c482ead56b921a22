"""Logging configuration for infra_reconciler."""

from infra_reconciler.logging.config import configure_logging

__all__ = ["configure_logging"]
