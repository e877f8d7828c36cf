"""
Unit tests for ExampleSet and DistanceMatrix.

Tests:
- Example set construction, ids and subsets
- Triangular distance matrix storage, symmetry and tombstones
"""

import pytest
import numpy as np

from cluster_core.core.distance_matrix import DistanceMatrix
from cluster_core.core.example_set import ExampleSet
from cluster_core.core.measures import EuclideanDistance, ManhattanDistance


@pytest.mark.unit
class TestExampleSet:
    """Test suite for ExampleSet."""

    def test_defaults(self):
        example_set = ExampleSet([[1, 2], [3, 4], [5, 6]])

        assert example_set.size == 3
        assert example_set.dimension == 2
        assert list(example_set.ids) == [0, 1, 2]
        assert example_set.attribute_names == ("att1", "att2")
        assert example_set.weights is None
        assert example_set.values.dtype == np.float64

    def test_values_are_read_only(self):
        example_set = ExampleSet([[1.0, 2.0]])

        with pytest.raises(ValueError):
            example_set.values[0, 0] = 5.0

    def test_one_dimensional_input_becomes_column(self):
        example_set = ExampleSet([1.0, 2.0, 3.0])
        assert example_set.values.shape == (3, 1)

    def test_empty_input(self):
        example_set = ExampleSet([])
        assert example_set.size == 0
        assert example_set.dimension == 0

    def test_shape_mismatch_rejected(self):
        with pytest.raises(ValueError):
            ExampleSet([[1, 2], [3, 4]], ids=[1, 2, 3])
        with pytest.raises(ValueError):
            ExampleSet([[1, 2]], attribute_names=["a"])
        with pytest.raises(ValueError):
            ExampleSet([[1, 2]], weights=[1.0, 2.0])

    def test_subset_keeps_ids_and_weights(self):
        example_set = ExampleSet(
            [[0.0], [1.0], [2.0], [3.0]],
            ids=[10, 11, 12, 13],
            weights=[1.0, 2.0, 3.0, 4.0],
        )

        subset = example_set.subset([3, 1])

        assert list(subset.ids) == [13, 11]
        assert list(subset.weights) == [4.0, 2.0]
        assert subset.values[:, 0].tolist() == [3.0, 1.0]
        assert subset.index_of(11) == 1

    def test_index_of_unknown_id(self):
        example_set = ExampleSet([[0.0]], ids=[5])
        with pytest.raises(KeyError):
            example_set.index_of(6)

    def test_coerce_passes_example_sets_through(self):
        example_set = ExampleSet([[1.0]])
        assert ExampleSet.coerce(example_set) is example_set
        assert isinstance(ExampleSet.coerce(np.zeros((2, 2))), ExampleSet)


@pytest.mark.unit
class TestDistanceMatrix:
    """Test suite for the triangular DistanceMatrix."""

    def test_get_set_symmetric(self):
        matrix = DistanceMatrix(4)
        matrix.set(3, 1, 2.5)

        assert matrix.get(1, 3) == 2.5
        assert matrix.get(3, 1) == 2.5

    def test_diagonal_is_zero_and_ignores_writes(self):
        matrix = DistanceMatrix(3)
        matrix.set(1, 1, 7.0)
        assert matrix.get(1, 1) == 0.0

    def test_out_of_range(self):
        matrix = DistanceMatrix(2)
        with pytest.raises(IndexError):
            matrix.get(0, 2)
        with pytest.raises(IndexError):
            matrix.set(-1, 0, 1.0)

    def test_storage_is_triangular(self):
        matrix = DistanceMatrix(5)
        assert sum(len(matrix.row_tail(x)) for x in range(5)) == 5 * 4 // 2

    def test_from_example_set_matches_measure(self, random_vectors):
        measure = EuclideanDistance()
        matrix = DistanceMatrix.from_example_set(ExampleSet(random_vectors), measure)
        dense = matrix.to_dense()

        np.testing.assert_allclose(dense, dense.T)
        np.testing.assert_allclose(np.diag(dense), 0.0)
        np.testing.assert_allclose(dense, measure.pairwise(random_vectors))

    def test_delete_tombstones_slot(self, four_points):
        matrix = DistanceMatrix.from_example_set(four_points, ManhattanDistance())
        matrix.delete(2)

        assert matrix.is_deleted(2)
        assert list(matrix.active_indices()) == [0, 1, 3]
        # cells stay readable
        assert matrix.get(0, 2) == 10.0

    def test_empty_matrix(self):
        matrix = DistanceMatrix(0)
        assert matrix.to_dense().shape == (0, 0)
        with pytest.raises(ValueError):
            DistanceMatrix(-1)
