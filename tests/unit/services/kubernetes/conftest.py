"""Shared fixtures for Kubernetes service tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from infra_reconciler.integrations.kubernetes.client import KubernetesClient
from infra_reconciler.integrations.kubernetes.config import RetryConfig


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client with real error translation.

    API group attributes (core_v1, apps_v1, custom_objects, ...) are
    auto-created sub-mocks.
    """
    mock_client = MagicMock()
    mock_client.default_namespace = "default"
    mock_client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    return mock_client


@pytest.fixture
def no_wait_retry() -> RetryConfig:
    """Two attempts without sleeping between them."""
    return RetryConfig(attempts=2, wait_seconds=0)
