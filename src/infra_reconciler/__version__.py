"""Version information for infra_reconciler."""

__version__ = "0.1.0"
