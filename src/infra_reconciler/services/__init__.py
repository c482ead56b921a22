"""Service layer: cluster state managers and the reconciliation engine."""
