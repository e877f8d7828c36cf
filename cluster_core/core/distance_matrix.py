"""
Triangular Distance Matrix.

Compact symmetric N x N distance cache storing only the strict upper
triangle (N*(N-1)/2 cells) as jagged rows. Cell (x, y) with x < y lives at
``rows[x][y - x - 1]``; the diagonal is implicitly zero. Rows can be
tombstoned without resizing, which agglomerative clustering uses to retire
merged slots.
"""

import logging
from typing import Any, List

import numpy as np

from cluster_core.utils.advanced_logging import timed

logger = logging.getLogger(__name__)


class DistanceMatrix:
    """Symmetric distance matrix with implicit zero diagonal."""

    def __init__(self, size: int):
        """
        Allocate an all-zero matrix.

        Args:
            size: Number of rows/columns (N >= 0)
        """
        if size < 0:
            raise ValueError(f"Matrix size must be non-negative, got {size}")
        self.size = size
        self._rows: List[np.ndarray] = [
            np.zeros(size - i - 1, dtype=np.float64) for i in range(size)
        ]
        self._deleted = np.zeros(size, dtype=bool)

    def _check(self, x: int, y: int) -> None:
        if not (0 <= x < self.size and 0 <= y < self.size):
            raise IndexError(f"Index ({x}, {y}) out of range for matrix of size {self.size}")

    def get(self, x: int, y: int) -> float:
        """
        Distance between slots x and y.

        Raises:
            IndexError: If either index is outside [0, size)
        """
        self._check(x, y)
        if x == y:
            return 0.0
        if x > y:
            x, y = y, x
        return float(self._rows[x][y - x - 1])

    def set(self, x: int, y: int, distance: float) -> None:
        """
        Store the distance between slots x and y (both orders).

        Writes to the diagonal are ignored.

        Raises:
            IndexError: If either index is outside [0, size)
        """
        self._check(x, y)
        if x == y:
            return
        if x > y:
            x, y = y, x
        self._rows[x][y - x - 1] = distance

    def row_tail(self, x: int) -> np.ndarray:
        """Stored distances from x to every slot y > x (a view)."""
        self._check(x, x)
        return self._rows[x]

    def delete(self, x: int) -> None:
        """Tombstone slot x; its cells stay allocated but are never scanned again."""
        self._check(x, x)
        self._deleted[x] = True

    def is_deleted(self, x: int) -> bool:
        self._check(x, x)
        return bool(self._deleted[x])

    def active_indices(self) -> np.ndarray:
        """Slots that have not been tombstoned, ascending."""
        return np.flatnonzero(~self._deleted)

    def to_dense(self) -> np.ndarray:
        """Full symmetric N x N copy."""
        dense = np.zeros((self.size, self.size), dtype=np.float64)
        for x, row in enumerate(self._rows):
            dense[x, x + 1:] = row
        return dense + dense.T

    @classmethod
    @timed(operation="build_distance_matrix", log_level="debug")
    def from_example_set(cls, example_set: Any, measure: Any) -> "DistanceMatrix":
        """
        Compute every pairwise distance of an example set once.

        Args:
            example_set: ExampleSet (or 2-D array)
            measure: DistanceMeasure used for the pairs

        Returns:
            Filled DistanceMatrix
        """
        values = getattr(example_set, "values", example_set)
        values = np.asarray(values, dtype=np.float64)
        n = len(values)
        matrix = cls(n)
        for x in range(n - 1):
            matrix._rows[x][:] = measure.distances_to(values[x], values[x + 1:])
        logger.debug(f"Built distance matrix for {n} examples")
        return matrix

    def __repr__(self) -> str:
        return f"DistanceMatrix(size={self.size}, active={len(self.active_indices())})"
