"""infra_reconciler - idempotent reconciliation of shared cluster infrastructure."""

from infra_reconciler.__version__ import __version__

__all__ = ["__version__"]
