"""
Unit tests for cluster models.

Tests:
- Flat models keyed by example id
- Centroid models
- Hierarchical models and tree flattening
"""

import json

import pytest
import numpy as np

from cluster_core.core.cluster_model import (
    UNKNOWN,
    CentroidClusterModel,
    ClusterModel,
    HierarchicalClusterModel,
    HierarchicalClusterNode,
)
from cluster_core.core.example_set import ExampleSet


def leaf(cluster_id, *example_ids):
    return HierarchicalClusterNode(cluster_id=cluster_id, example_ids=frozenset(example_ids))


@pytest.fixture
def small_tree():
    """
    Tree over example ids 0..3:

        6 (10.0)
        +-- 5 (1.0): 0, 1
        +-- 4 (2.0): 2, 3
    """
    left = HierarchicalClusterNode(cluster_id=5, distance=1.0, children=(leaf(0, 0), leaf(1, 1)))
    right = HierarchicalClusterNode(cluster_id=4, distance=2.0, children=(leaf(2, 2), leaf(3, 3)))
    root = HierarchicalClusterNode(cluster_id=6, distance=10.0, children=(left, right))
    return HierarchicalClusterModel(root)


@pytest.mark.unit
class TestClusterModel:
    """Test suite for flat cluster models."""

    def test_assignments_by_id(self):
        model = ClusterModel(2, [0, 1, 1], example_ids=[10, 20, 30])
        other = ExampleSet([[0.0], [0.0], [0.0]], ids=[30, 99, 10])

        assert list(model.get_cluster_assignments(other)) == [1, UNKNOWN, 0]
        assert list(model.get_cluster_assignments()) == [0, 1, 1]

    def test_get_cluster_and_sizes(self):
        model = ClusterModel(2, [1, 2, 1, 0], has_noise=True)

        assert model.get_cluster(1) == [0, 2]
        assert model.cluster_sizes() == {0: 1, 1: 2, 2: 1}
        assert model.number_of_clusters == 2
        assert model.to_dict()["has_noise"] is True

    def test_assignments_are_read_only(self):
        model = ClusterModel(1, [0, 0])
        with pytest.raises(ValueError):
            model.assignments[0] = 3

    def test_centroid_model(self):
        centroids = np.array([[0.0, 0.0], [1.0, 1.0]])
        model = CentroidClusterModel(2, [0, 1], centroids)

        np.testing.assert_array_equal(model.get_centroid(1), [1.0, 1.0])
        assert model.to_dict()["centroids"] == [[0.0, 0.0], [1.0, 1.0]]


@pytest.mark.unit
class TestHierarchicalClusterModel:
    """Test suite for cluster trees."""

    def test_number_of_clusters_counts_leaves(self, small_tree):
        assert small_tree.number_of_clusters == 4
        assert small_tree.root.all_example_ids() == frozenset({0, 1, 2, 3})

    def test_flatten_one(self, small_tree):
        groups = small_tree.flatten(1)
        assert len(groups) == 1
        assert groups[0].cluster_id == 6

    def test_flatten_splits_largest_distance_first(self, small_tree):
        groups = small_tree.flatten(3)

        assert len(groups) == 3
        # node 4 (distance 2.0) is split before node 5 (distance 1.0)
        assert [sorted(g.all_example_ids()) for g in groups] == [[0, 1], [2], [3]]

    def test_flatten_more_than_leaves(self, small_tree):
        assert len(small_tree.flatten(10)) == 4

    def test_flatten_rejects_zero(self, small_tree):
        with pytest.raises(ValueError):
            small_tree.flatten(0)

    def test_flat_assignments(self, small_tree):
        labels = small_tree.get_cluster_assignments(np.zeros((4, 1)), n_clusters=2)
        assert list(labels) == [0, 0, 1, 1]

    def test_flat_model(self, small_tree):
        model = small_tree.to_flat_model(2)
        assert model.number_of_clusters == 2
        assert model.get_cluster(1) == [2, 3]

    def test_multiway_split_does_not_overshoot(self):
        root = HierarchicalClusterNode(
            cluster_id=9,
            distance=3.0,
            children=(
                HierarchicalClusterNode(cluster_id=7, distance=2.0, children=(leaf(0, 0), leaf(1, 1), leaf(2, 2))),
                leaf(3, 3),
            ),
        )
        model = HierarchicalClusterModel(root)

        # Splitting node 7 would give 4 groups
        assert len(model.flatten(3)) == 2
        assert len(model.flatten(4)) == 4

    def test_to_dict(self, small_tree):
        data = small_tree.to_dict()

        assert data["root"]["cluster_id"] == 6
        assert data["root"]["children"] == [5, 4]
        assert [node["cluster_id"] for node in data["nodes"]] == [6, 5, 0, 1, 4, 2, 3]
        assert data["nodes"][2]["example_ids"] == [0]

    def test_to_dict_deep_chain(self):
        """A single-linkage chain is as deep as the data; serialization must not recurse."""
        n = 2000
        node = leaf(0, 0)
        for i in range(1, n):
            node = HierarchicalClusterNode(
                cluster_id=n + i - 1,
                distance=float(i),
                children=(node, leaf(i, i)),
            )
        model = HierarchicalClusterModel(node)

        data = model.to_dict()

        assert len(data["nodes"]) == 2 * n - 1
        assert data["root"]["cluster_id"] == 2 * n - 2
        assert json.loads(json.dumps(data))["root"]["children"] == [2 * n - 3, n - 1]
        assert model.number_of_clusters == n
