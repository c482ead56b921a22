"""Command-line interface for infra_reconciler."""
