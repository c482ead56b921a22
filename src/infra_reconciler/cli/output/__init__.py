"""Centralized CLI output utilities.

Usage:
    from infra_reconciler.cli.output import Table

    table = Table(title="Reconcile Report")
    table.add_column("Component", style="cyan")
    table.add_column("Action")
    table.add_row("postgresql", "skip")
    console.print(table)
"""

from infra_reconciler.cli.output.table import Table

__all__ = ["Table"]
