"""
Unit tests for K-Medoids and Kernel K-Means clustering algorithms.
"""

import pytest
import numpy as np

from cluster_core.core.cluster_model import CentroidClusterModel, ClusterModel
from cluster_core.core.kernel_kmeans_algorithm import KernelKMeansAlgorithm
from cluster_core.core.kmedoids_algorithm import KMedoidsAlgorithm
from cluster_core.core.measures import ManhattanDistance
from cluster_core.utils.error_handling import ConfigurationError, InsufficientDataError


@pytest.mark.unit
class TestKMedoidsAlgorithm:
    """Test suite for K-Medoids clustering algorithm."""

    def test_medoids_are_examples(self, clustered_vectors, clustering_config):
        vectors, _ = clustered_vectors

        result = KMedoidsAlgorithm(
            clustering_config("kmedoids", k=3, max_runs=5, use_kpp=True)
        ).cluster(vectors)

        assert isinstance(result.model, CentroidClusterModel)
        assert result.n_clusters == 3
        for medoid in result.centroids:
            assert np.any(np.all(vectors == medoid, axis=1))

    def test_medoid_minimizes_member_distance(self, clustered_vectors, clustering_config):
        vectors, _ = clustered_vectors

        result = KMedoidsAlgorithm(
            clustering_config("kmedoids", k=3, max_runs=5, use_kpp=True)
        ).cluster(vectors)

        for c, medoid in enumerate(result.centroids):
            members = vectors[result.labels == c]
            own_cost = np.linalg.norm(members - medoid, axis=1).sum()
            best_cost = min(np.linalg.norm(members - m, axis=1).sum() for m in members)
            assert own_cost == pytest.approx(best_cost)

    def test_custom_measure(self, four_points, clustering_config):
        clusterer = KMedoidsAlgorithm(
            clustering_config("kmedoids", k=2, max_runs=10, use_kpp=True),
            measure=ManhattanDistance(),
        )
        result = clusterer.cluster(four_points)

        assert result.labels[0] == result.labels[1]
        assert result.labels[2] == result.labels[3]
        assert result.labels[0] != result.labels[2]

    def test_k_larger_than_data(self, four_points, clustering_config):
        with pytest.raises(InsufficientDataError):
            KMedoidsAlgorithm(clustering_config("kmedoids", k=10)).cluster(four_points)


@pytest.mark.unit
class TestKernelKMeansAlgorithm:
    """Test suite for Kernel K-Means clustering algorithm."""

    def test_separates_blobs(self, two_blobs, clustering_config):
        result = KernelKMeansAlgorithm(
            clustering_config("kernel_kmeans", k=2, max_runs=10, kernel_type="radial", kernel_gamma=0.5)
        ).cluster(two_blobs)

        assert isinstance(result.model, ClusterModel)
        assert result.centroids is None
        assert len(set(result.labels[:4].tolist())) == 1
        assert len(set(result.labels[4:].tolist())) == 1
        assert result.labels[0] != result.labels[4]

    def test_objective_history_recorded(self, clustered_vectors, clustering_config):
        vectors, _ = clustered_vectors

        result = KernelKMeansAlgorithm(
            clustering_config("kernel_kmeans", k=3, max_runs=1, kernel_type="dot")
        ).cluster(vectors)

        assert len(result.objective_history) == result.quality_metrics["iterations"]
        assert result.quality_metrics["feature_space_inertia"] == result.objective_history[-1]

    def test_every_label_in_range(self, random_vectors, clustering_config):
        result = KernelKMeansAlgorithm(
            clustering_config("kernel_kmeans", k=4, kernel_type="polynomial", kernel_degree=2)
        ).cluster(random_vectors)
        assert set(result.labels.tolist()) <= {0, 1, 2, 3}

    def test_invalid_kernel(self, clustering_config):
        with pytest.raises(ConfigurationError):
            KernelKMeansAlgorithm(clustering_config("kernel_kmeans", kernel_type="sigmoid"))

    def test_k_larger_than_data(self, four_points, clustering_config):
        with pytest.raises(InsufficientDataError):
            KernelKMeansAlgorithm(clustering_config("kernel_kmeans", k=5)).cluster(four_points)
