"""
Unit tests for X-Means clustering algorithm.
"""

import pytest
import numpy as np

from cluster_core.core.cluster_model import CentroidClusterModel
from cluster_core.core.xmeans_algorithm import XMeansAlgorithm
from cluster_core.utils.error_handling import ConfigurationError, InsufficientDataError


@pytest.mark.unit
class TestXMeansAlgorithm:
    """Test suite for X-Means clustering algorithm."""

    def test_stays_within_k_range(self, clustered_vectors, clustering_config):
        vectors, _ = clustered_vectors

        result = XMeansAlgorithm(
            clustering_config("xmeans", k_min=2, k_max=6, max_runs=3, use_kpp=True)
        ).cluster(vectors)

        assert 2 <= result.n_clusters <= 6
        assert isinstance(result.model, CentroidClusterModel)
        assert result.centroids.shape == (result.n_clusters, 2)
        assert set(result.labels.tolist()) <= set(range(result.n_clusters))
        assert "bic" in result.quality_metrics

    def test_k_max_equal_k_min(self, clustered_vectors, clustering_config):
        vectors, _ = clustered_vectors

        result = XMeansAlgorithm(
            clustering_config("xmeans", k_min=3, k_max=3, use_kpp=True)
        ).cluster(vectors)

        assert result.n_clusters == 3
        assert result.quality_metrics["rounds"] == 0

    def test_lloyd_inner_algorithm(self, clustered_vectors, clustering_config):
        vectors, _ = clustered_vectors

        result = XMeansAlgorithm(
            clustering_config("xmeans", k_min=1, k_max=4, clustering_algorithm="kmeans", use_kpp=True)
        ).cluster(vectors)
        assert 1 <= result.n_clusters <= 4

    def test_bic_prefers_true_structure(self, clustered_vectors, clustering_config):
        vectors, truth = clustered_vectors
        clusterer = XMeansAlgorithm(clustering_config("xmeans"))
        clusterer.measure.init(None)

        true_centroids = np.array([vectors[truth == c].mean(axis=0) for c in range(3)])
        one_centroid = vectors.mean(axis=0)[None, :]

        bic_true = clusterer._bic(vectors, true_centroids, truth)
        bic_one = clusterer._bic(vectors, one_centroid, np.zeros(len(vectors), dtype=int))
        assert bic_true > bic_one

    def test_invalid_range(self, clustering_config):
        with pytest.raises(ConfigurationError):
            XMeansAlgorithm(clustering_config("xmeans", k_min=5, k_max=3))

    def test_invalid_inner_algorithm(self, clustering_config):
        with pytest.raises(ConfigurationError):
            XMeansAlgorithm(clustering_config("xmeans", clustering_algorithm="dbscan"))

    def test_fewer_examples_than_k_min(self, four_points, clustering_config):
        with pytest.raises(InsufficientDataError):
            XMeansAlgorithm(clustering_config("xmeans", k_min=5, k_max=8)).cluster(four_points)
