"""External system integrations (Kubernetes API, Helm CLI)."""
