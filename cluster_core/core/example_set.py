"""
Example Set.

Immutable tabular dataset consumed by every clusterer: a float64 value
matrix (rows x attributes), stable row identifiers, attribute names and
optional per-row weights.
"""

from typing import Any, Optional, Sequence

import numpy as np


class ExampleSet:
    """
    Ordered, read-only collection of examples.

    Row ids are stable across subsets so that a cluster model built on one
    example set can label any other example set sharing those ids.
    """

    def __init__(
        self,
        values: Any,
        ids: Optional[Sequence[int]] = None,
        attribute_names: Optional[Sequence[str]] = None,
        weights: Optional[Sequence[float]] = None,
    ):
        """
        Create an example set.

        Args:
            values: 2-D array-like of attribute values (N x D)
            ids: Optional stable row identifiers (defaults to 0..N-1)
            attribute_names: Optional attribute names (defaults to att1..attD)
            weights: Optional non-negative per-row weights

        Raises:
            ValueError: If shapes of the arguments disagree
        """
        matrix = np.array(values, dtype=np.float64)
        if matrix.ndim == 1:
            if matrix.size == 0:
                matrix = matrix.reshape(0, 0)
            else:
                matrix = matrix.reshape(-1, 1)
        if matrix.ndim != 2:
            raise ValueError(f"Example values must be 2-dimensional, got shape {matrix.shape}")
        matrix.setflags(write=False)
        self._values = matrix

        n_rows, n_attributes = matrix.shape

        if ids is None:
            row_ids = np.arange(n_rows, dtype=np.int64)
        else:
            row_ids = np.asarray(ids, dtype=np.int64)
            if row_ids.shape != (n_rows,):
                raise ValueError(f"Expected {n_rows} ids, got {row_ids.size}")
        row_ids.setflags(write=False)
        self._ids = row_ids

        if attribute_names is None:
            self._attribute_names = tuple(f"att{i + 1}" for i in range(n_attributes))
        else:
            if len(attribute_names) != n_attributes:
                raise ValueError(f"Expected {n_attributes} attribute names, got {len(attribute_names)}")
            self._attribute_names = tuple(attribute_names)

        if weights is None:
            self._weights = None
        else:
            w = np.array(weights, dtype=np.float64)
            if w.shape != (n_rows,):
                raise ValueError(f"Expected {n_rows} weights, got {w.size}")
            w.setflags(write=False)
            self._weights = w

        self._id_index: Optional[dict] = None

    @classmethod
    def from_array(cls, values: Any, **kwargs: Any) -> "ExampleSet":
        return cls(values, **kwargs)

    @classmethod
    def coerce(cls, data: Any) -> "ExampleSet":
        """Return ``data`` unchanged if it is an ExampleSet, otherwise wrap it."""
        if isinstance(data, ExampleSet):
            return data
        return cls(data)

    @property
    def values(self) -> np.ndarray:
        return self._values

    @property
    def ids(self) -> np.ndarray:
        return self._ids

    @property
    def attribute_names(self) -> tuple:
        return self._attribute_names

    @property
    def weights(self) -> Optional[np.ndarray]:
        return self._weights

    @property
    def size(self) -> int:
        return self._values.shape[0]

    @property
    def dimension(self) -> int:
        return self._values.shape[1]

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, index: int) -> np.ndarray:
        return self._values[index]

    def index_of(self, example_id: int) -> int:
        """Row position of ``example_id`` (KeyError if unknown)."""
        if self._id_index is None:
            self._id_index = {int(example_id): i for i, example_id in enumerate(self._ids)}
        return self._id_index[int(example_id)]

    def subset(self, indices: Sequence[int]) -> "ExampleSet":
        """
        Create an example set holding the given rows, keeping their ids.

        Args:
            indices: Row positions to keep, in the desired order

        Returns:
            New ExampleSet
        """
        idx = np.asarray(indices, dtype=np.int64)
        return ExampleSet(
            self._values[idx].reshape(len(idx), self.dimension),
            ids=self._ids[idx],
            attribute_names=self._attribute_names,
            weights=None if self._weights is None else self._weights[idx],
        )

    def __repr__(self) -> str:
        return f"ExampleSet(size={self.size}, dimension={self.dimension})"
