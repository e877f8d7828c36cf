"""
Unit tests for hierarchical clustering algorithms.

Tests:
- Agglomerative merge order, linkages and tie-breaking
- Top-down splitting with a flat sub-clusterer
"""

import math

import pytest
import numpy as np

from cluster_core.core.agglomerative_algorithm import AgglomerativeAlgorithm
from cluster_core.core.cluster_model import Agglomeration, HierarchicalClusterModel
from cluster_core.core.kmeans_algorithm import KMeansAlgorithm
from cluster_core.core.top_down_algorithm import TopDownAlgorithm
from cluster_core.utils.error_handling import ConfigurationError, InvalidAlgorithmError


@pytest.mark.unit
class TestAgglomerativeAlgorithm:
    """Test suite for Agglomerative clustering algorithm."""

    def test_single_linkage_merges(self, four_points, clustering_config):
        clusterer = AgglomerativeAlgorithm(clustering_config("agglomerative", linkage="single"))
        result = clusterer.cluster(four_points)

        # Equal distances: the last minimal pair in row-major order merges first
        assert clusterer.agglomerations == [
            Agglomeration(2, 3, 1.0),
            Agglomeration(0, 1, 1.0),
            Agglomeration(5, 4, 10.0),
        ]
        assert isinstance(result.model, HierarchicalClusterModel)
        assert result.model.root.cluster_id == 6
        assert list(result.labels) == [0, 0, 1, 1]
        assert result.n_clusters == 2

    @pytest.mark.parametrize(
        "linkage, root_distance",
        [
            ("single", 10.0),
            ("complete", math.sqrt(101.0)),
            ("average", (10.0 + math.sqrt(101.0)) / 2.0),
        ],
    )
    def test_linkage_root_distance(self, four_points, clustering_config, linkage, root_distance):
        result = AgglomerativeAlgorithm(
            clustering_config("agglomerative", linkage=linkage)
        ).cluster(four_points)

        assert result.quality_metrics["root_distance"] == pytest.approx(root_distance)

    def test_n_minus_one_merges(self, random_vectors, clustering_config):
        clusterer = AgglomerativeAlgorithm(clustering_config("agglomerative", linkage="average"))
        result = clusterer.cluster(random_vectors)

        assert len(clusterer.agglomerations) == len(random_vectors) - 1
        assert result.model.number_of_clusters == len(random_vectors)
        assert result.model.root.all_example_ids() == frozenset(range(len(random_vectors)))

    def test_single_linkage_heights_monotone(self, random_vectors, clustering_config):
        clusterer = AgglomerativeAlgorithm(clustering_config("agglomerative", linkage="single"))
        clusterer.cluster(random_vectors)

        heights = np.array([a.distance for a in clusterer.agglomerations])
        assert np.all(np.diff(heights) >= -1e-12)

    def test_cut_into_n_clusters(self, clustered_vectors, clustering_config):
        vectors, truth = clustered_vectors

        result = AgglomerativeAlgorithm(
            clustering_config("agglomerative", linkage="average", n_clusters=3)
        ).cluster(vectors)

        assert result.n_clusters == 3
        assert len(set(zip(result.labels.tolist(), truth.tolist()))) == 3

    def test_single_example(self, clustering_config):
        clusterer = AgglomerativeAlgorithm(clustering_config("agglomerative"))
        result = clusterer.cluster(np.array([[1.0, 2.0]]))

        assert clusterer.agglomerations == []
        assert result.model.root.is_leaf
        assert list(result.labels) == [0]

    def test_unknown_linkage(self, clustering_config):
        with pytest.raises(ConfigurationError):
            AgglomerativeAlgorithm(clustering_config("agglomerative", linkage="ward"))


@pytest.mark.unit
class TestTopDownAlgorithm:
    """Test suite for Top-Down clustering algorithm."""

    def test_splits_down_to_single_examples(self, four_points, clustering_config):
        clusterer = TopDownAlgorithm(
            clustering_config("top_down", sub_algorithm="kmeans", sub_params={"k": 2, "max_runs": 10})
        )
        result = clusterer.cluster(four_points)

        assert result.model.number_of_clusters == 4
        assert result.quality_metrics["leaves"] == 4
        assert list(result.labels) == [0, 0, 1, 1]

    def test_injected_sub_clusterer(self, four_points, clustering_config):
        sub = KMeansAlgorithm(clustering_config("kmeans", k=2, max_runs=10))
        clusterer = TopDownAlgorithm(clustering_config("top_down", max_leaf_size=2), sub_clusterer=sub)

        result = clusterer.cluster(four_points)

        assert clusterer.sub_clusterer is sub
        assert result.model.number_of_clusters == 2
        leaves = sorted(sorted(node.example_ids) for node in result.model.root.children)
        assert leaves == [[0, 1], [2, 3]]

    def test_max_depth_limits_tree(self, random_vectors, clustering_config):
        clusterer = TopDownAlgorithm(
            clustering_config("top_down", max_depth=1, sub_params={"k": 3})
        )
        result = clusterer.cluster(random_vectors)

        assert result.model.root.distance == 1.0
        assert all(child.is_leaf for child in result.model.root.children)
        assert result.model.number_of_clusters <= 3

    def test_every_example_in_exactly_one_leaf(self, random_vectors, clustering_config):
        result = TopDownAlgorithm(
            clustering_config("top_down", max_leaf_size=5, sub_params={"k": 2})
        ).cluster(random_vectors)

        leaves = [node for node in result.model.root.iter_nodes() if node.is_leaf]
        ids = [i for node in leaves for i in node.example_ids]
        assert sorted(ids) == list(range(len(random_vectors)))

    def test_rejects_itself_as_sub_clusterer(self, clustering_config):
        with pytest.raises(ConfigurationError):
            TopDownAlgorithm(clustering_config("top_down", sub_algorithm="top_down"))

    def test_unknown_sub_algorithm(self, clustering_config):
        with pytest.raises(InvalidAlgorithmError):
            TopDownAlgorithm(clustering_config("top_down", sub_algorithm="spectral"))
