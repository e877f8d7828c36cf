"""
Pytest configuration and shared fixtures for the clustering engine tests.

This module provides:
- Small hand-made datasets with known structure
- Generated clustered datasets
- Settings and progress monitor fixtures
"""

import os
import numpy as np
import pytest

from cluster_core.config.settings_loader import ConfigManager, Settings
from cluster_core.core.base_clustering import ClusteringConfig
from cluster_core.utils.progress import ProgressMonitor

# Set test environment variables
os.environ["TESTING"] = "true"
os.environ["LOG_LEVEL"] = "DEBUG"


# =============================================================================
# Test Data Generators
# =============================================================================

@pytest.fixture
def four_points():
    """Two vertical pairs far apart: (0,0),(0,1) and (10,0),(10,1)."""
    return np.array([[0.0, 0.0], [0.0, 1.0], [10.0, 0.0], [10.0, 1.0]])


@pytest.fixture
def two_blobs():
    """
    Two tight squares of 4 points (side 0.2) around (0,0) and (6,6).

    Rows 0-3 form the first blob, rows 4-7 the second.
    """
    square = np.array([[0.0, 0.0], [0.2, 0.0], [0.0, 0.2], [0.2, 0.2]])
    return np.vstack([square, square + 6.0])


@pytest.fixture
def clustered_vectors():
    """
    Generate vectors with clear cluster structure.

    Creates 3 distinct clusters of 20 points each:
    - Cluster 0: centered at (0, 0)
    - Cluster 1: centered at (10, 0)
    - Cluster 2: centered at (0, 10)
    """
    rng = np.random.default_rng(42)
    n_per_cluster = 20
    centers = np.array([[0.0, 0.0], [10.0, 0.0], [0.0, 10.0]])

    vectors = np.vstack([
        center + rng.normal(scale=0.5, size=(n_per_cluster, 2)) for center in centers
    ])
    labels = np.repeat(np.arange(len(centers)), n_per_cluster)
    return vectors, labels


@pytest.fixture
def random_vectors():
    """Unstructured points for property checks."""
    rng = np.random.default_rng(7)
    return rng.normal(size=(40, 3))


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def clustering_config():
    """Factory for ClusteringConfig objects."""
    def make(algorithm_name: str, random_seed: int = 0, **params):
        return ClusteringConfig(
            algorithm_name=algorithm_name,
            params=params,
            random_seed=random_seed,
        )
    return make


@pytest.fixture
def default_settings():
    """Built-in default settings (no YAML file involved)."""
    return Settings()


@pytest.fixture
def monitor():
    return ProgressMonitor(log_interval=10)


@pytest.fixture(autouse=True)
def reset_config_manager():
    """Forget cached settings between tests."""
    ConfigManager.reset()
    yield
    ConfigManager.reset()


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests for individual components"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests for component interactions"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests for full workflows"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take >1 second"
    )
