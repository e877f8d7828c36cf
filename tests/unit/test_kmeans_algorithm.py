"""
Unit tests for K-Means clustering algorithms.

Tests the KMeansAlgorithm (Lloyd) and FastKMeansAlgorithm (Elkan) classes:
- Basic clustering functionality
- Equivalence of the accelerated variant
- k-means++ seeding
- Objective history and quality metrics
- Input validation
"""

import pytest
import numpy as np

from cluster_core.core.base_clustering import ClusteringConfig
from cluster_core.core.cluster_model import CentroidClusterModel
from cluster_core.core.kmeans_algorithm import (
    FastKMeansAlgorithm,
    KMeansAlgorithm,
    kpp_initial_indices,
    update_centroids,
)
from cluster_core.core.measures import EuclideanDistance, SquaredEuclideanDistance
from cluster_core.utils.error_handling import (
    ConfigurationError,
    InsufficientDataError,
    InvalidDataError,
)


class CountingDistance(EuclideanDistance):
    """Euclidean distance that counts how many rows it was evaluated on."""

    def __init__(self):
        self.rows_evaluated = 0

    def distances_to(self, x, points):
        self.rows_evaluated += len(points)
        return super().distances_to(x, points)


def same_partition(a, b):
    """True if two label vectors describe the same grouping."""
    pairs = set(zip(a.tolist(), b.tolist()))
    return len(pairs) == len(set(a.tolist())) == len(set(b.tolist()))


@pytest.mark.unit
class TestKMeansAlgorithm:
    """Test suite for K-Means clustering algorithm."""

    def test_init(self):
        """Test K-Means algorithm initialization."""
        config = ClusteringConfig(algorithm_name="kmeans", params={"k": 4})

        clusterer = KMeansAlgorithm(config)
        assert clusterer is not None
        assert clusterer.config == config
        assert clusterer.k == 4

    def test_invalid_k(self):
        with pytest.raises(ConfigurationError):
            KMeansAlgorithm(ClusteringConfig(algorithm_name="kmeans", params={"k": 0}))

    def test_cluster_basic(self, clustered_vectors, clustering_config):
        """Test basic clustering on vectors with clear structure."""
        vectors, truth = clustered_vectors

        clusterer = KMeansAlgorithm(clustering_config("kmeans", k=3, max_runs=5, use_kpp=True))
        result = clusterer.cluster(vectors)

        assert result.n_clusters == 3
        assert len(result.labels) == len(vectors)
        # K-Means assigns all points to clusters (no outliers)
        assert result.outlier_count == 0
        assert set(result.labels) <= {0, 1, 2}
        assert same_partition(result.labels, truth)

    def test_model_and_centroids(self, clustered_vectors, clustering_config):
        vectors, _ = clustered_vectors

        result = KMeansAlgorithm(clustering_config("kmeans", k=3, max_runs=5, use_kpp=True)).cluster(vectors)

        assert isinstance(result.model, CentroidClusterModel)
        assert result.centroids.shape == (3, 2)
        for c in range(3):
            np.testing.assert_allclose(result.centroids[c], vectors[result.labels == c].mean(axis=0))
        assert list(result.model.get_cluster_assignments(vectors)) == list(result.labels)

    def test_quality_metrics(self, clustered_vectors, clustering_config):
        """Test quality metrics calculation."""
        vectors, _ = clustered_vectors

        result = KMeansAlgorithm(clustering_config("kmeans", k=3, max_runs=5, use_kpp=True)).cluster(vectors)

        assert result.quality_metrics["silhouette_score"] > 0.8
        assert "davies_bouldin_index" in result.quality_metrics
        assert result.quality_metrics["within_cluster_sum_of_squares"] == pytest.approx(
            result.quality_metrics["inertia"]
        )

    def test_objective_is_non_increasing(self, random_vectors, clustering_config):
        result = KMeansAlgorithm(
            clustering_config("kmeans", k=4, max_runs=1, max_optimization_steps=50)
        ).cluster(random_vectors)

        history = np.array(result.objective_history)
        assert len(history) >= 1
        assert np.all(np.diff(history) <= 1e-9)

    def test_deterministic_with_seed(self, random_vectors, clustering_config):
        first = KMeansAlgorithm(clustering_config("kmeans", random_seed=3, k=3)).cluster(random_vectors)
        second = KMeansAlgorithm(clustering_config("kmeans", random_seed=3, k=3)).cluster(random_vectors)
        np.testing.assert_array_equal(first.labels, second.labels)

    def test_k_larger_than_data(self, four_points, clustering_config):
        with pytest.raises(InsufficientDataError):
            KMeansAlgorithm(clustering_config("kmeans", k=5)).cluster(four_points)

    def test_k_equals_n(self, four_points, clustering_config):
        result = KMeansAlgorithm(clustering_config("kmeans", k=4, max_runs=1)).cluster(four_points)
        assert sorted(result.labels.tolist()) == [0, 1, 2, 3]
        assert result.quality_metrics["inertia"] == pytest.approx(0.0)

    def test_missing_values_rejected(self, clustering_config):
        data = np.array([[0.0, 1.0], [np.nan, 2.0], [3.0, 4.0]])
        with pytest.raises(InvalidDataError):
            KMeansAlgorithm(clustering_config("kmeans", k=2)).cluster(data)

    def test_infinite_values_rejected(self, clustering_config):
        data = np.array([[0.0, 1.0], [np.inf, 2.0], [3.0, 4.0]])
        with pytest.raises(InvalidDataError):
            KMeansAlgorithm(clustering_config("kmeans", k=2)).cluster(data)

    def test_empty_input_rejected(self, clustering_config):
        with pytest.raises(InsufficientDataError):
            KMeansAlgorithm(clustering_config("kmeans", k=2)).cluster(np.zeros((0, 3)))

    def test_empty_input_legacy_check(self):
        config = ClusteringConfig(algorithm_name="kmeans", params={"k": 2}, legacy_empty_check=True)
        result = KMeansAlgorithm(config).cluster(np.zeros((0, 3)))

        assert result.n_clusters == 0
        assert len(result.labels) == 0


@pytest.mark.unit
class TestFastKMeansAlgorithm:
    """Test suite for the Elkan-accelerated variant."""

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_same_result_as_lloyd(self, clustered_vectors, clustering_config, seed):
        vectors, _ = clustered_vectors
        params = {"k": 3, "max_runs": 3, "max_optimization_steps": 100, "use_kpp": True}

        lloyd = KMeansAlgorithm(clustering_config("kmeans", random_seed=seed, **params)).cluster(vectors)
        elkan = FastKMeansAlgorithm(clustering_config("fast_kmeans", random_seed=seed, **params)).cluster(vectors)

        np.testing.assert_array_equal(lloyd.labels, elkan.labels)
        np.testing.assert_allclose(lloyd.centroids, elkan.centroids)

    def test_same_result_as_lloyd_on_unstructured_data(self, random_vectors, clustering_config):
        params = {"k": 5, "max_runs": 1, "use_kpp": True}

        lloyd = KMeansAlgorithm(clustering_config("kmeans", random_seed=11, **params)).cluster(random_vectors)
        elkan = FastKMeansAlgorithm(
            clustering_config("fast_kmeans", random_seed=11, **params)
        ).cluster(random_vectors)

        np.testing.assert_array_equal(lloyd.labels, elkan.labels)

    def test_objective_history(self, random_vectors, clustering_config):
        result = FastKMeansAlgorithm(clustering_config("fast_kmeans", k=3, max_runs=1)).cluster(random_vectors)
        assert np.all(np.diff(result.objective_history) <= 1e-9)

    def test_requires_metric_measure(self, clustering_config):
        with pytest.raises(ConfigurationError):
            FastKMeansAlgorithm(clustering_config("fast_kmeans", k=2), measure=SquaredEuclideanDistance())

    def test_ties_match_lloyd_on_integer_grid(self, clustering_config):
        """Equidistant centroids resolve to the lower index in both variants."""
        rng = np.random.default_rng(2024)
        for trial in range(400):
            values = rng.integers(0, 4, size=(10, 2)).astype(float)

            lloyd = KMeansAlgorithm(
                clustering_config("kmeans", random_seed=trial, k=3, max_runs=1)
            ).cluster(values)
            elkan = FastKMeansAlgorithm(
                clustering_config("fast_kmeans", random_seed=trial, k=3, max_runs=1)
            ).cluster(values)

            np.testing.assert_array_equal(lloyd.labels, elkan.labels, err_msg=f"trial {trial}")

    def test_single_centroid_evaluates_every_row_each_step(self, random_vectors, clustering_config):
        measure = CountingDistance()
        result = FastKMeansAlgorithm(
            clustering_config("fast_kmeans", k=1, max_runs=1), measure=measure
        ).cluster(random_vectors)

        n, steps = len(random_vectors), len(result.objective_history)
        assert np.all(result.labels == 0)
        # initial pass and final score, then assignment and objective every step
        assert measure.rows_evaluated >= 2 * n + steps * 2 * n


@pytest.mark.unit
class TestKMeansHelpers:
    """Test suite for seeding and centroid helpers."""

    def test_kpp_seeds_are_distinct(self, random_vectors):
        rng = np.random.default_rng(0)
        seeds = kpp_initial_indices(random_vectors, 10, EuclideanDistance(), rng)

        assert len(seeds) == 10
        assert len(set(seeds.tolist())) == 10

    def test_kpp_with_duplicate_rows(self):
        values = np.array([[0.0, 0.0]] * 3 + [[1.0, 1.0]])
        rng = np.random.default_rng(0)

        seeds = kpp_initial_indices(values, 3, EuclideanDistance(), rng)
        assert len(set(seeds.tolist())) == 3

    def test_update_centroids_keeps_empty_cluster(self):
        values = np.array([[0.0], [2.0]])
        previous = np.array([[5.0], [7.0], [9.0]])

        centroids = update_centroids(values, np.array([0, 0]), previous)
        np.testing.assert_array_equal(centroids, [[1.0], [7.0], [9.0]])
