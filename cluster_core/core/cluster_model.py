"""
Cluster Models.

Output models of the clusterers:
- ClusterModel: flat assignment of example ids to cluster ids
- CentroidClusterModel: flat model plus one centroid (or medoid) per cluster
- SoftClusterModel: centroid model with per-example membership probabilities
- HierarchicalClusterModel: tree of HierarchicalClusterNode, flattenable

Models are keyed by example id, so they can label any example set that
shares ids with the one they were built on. Ids unknown to a model get -1.
"""

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from cluster_core.core.example_set import ExampleSet

NOISE = 0
UNKNOWN = -1


@dataclass(frozen=True)
class Agglomeration:
    """One merge step of agglomerative clustering."""

    id_left: int
    id_right: int
    distance: float


class ClusterModel:
    """Flat partition of examples into clusters."""

    def __init__(
        self,
        n_clusters: int,
        assignments: Sequence[int],
        example_ids: Optional[Sequence[int]] = None,
        has_noise: bool = False,
    ):
        """
        Args:
            n_clusters: Number of real clusters (noise excluded)
            assignments: Cluster id per example
            example_ids: Example id per assignment (defaults to 0..N-1)
            has_noise: True if cluster id 0 denotes noise
        """
        labels = np.array(assignments, dtype=np.int64)
        labels.setflags(write=False)
        self._assignments = labels
        if example_ids is None:
            ids = np.arange(len(labels), dtype=np.int64)
        else:
            ids = np.array(example_ids, dtype=np.int64)
        ids.setflags(write=False)
        self._example_ids = ids
        self._n_clusters = int(n_clusters)
        self.has_noise = has_noise
        self._by_id = {int(i): int(a) for i, a in zip(ids, labels)}

    @property
    def number_of_clusters(self) -> int:
        return self._n_clusters

    @property
    def assignments(self) -> np.ndarray:
        return self._assignments

    @property
    def example_ids(self) -> np.ndarray:
        return self._example_ids

    def get_cluster_assignments(self, example_set: Any = None) -> np.ndarray:
        """
        Cluster id of every example in ``example_set``.

        Args:
            example_set: ExampleSet to label (defaults to the training examples)

        Returns:
            Integer array; -1 for examples unknown to the model
        """
        if example_set is None:
            return self._assignments.copy()
        example_set = ExampleSet.coerce(example_set)
        return np.array(
            [self._by_id.get(int(i), UNKNOWN) for i in example_set.ids],
            dtype=np.int64,
        )

    def get_cluster(self, cluster_id: int) -> List[int]:
        """Example ids assigned to ``cluster_id``."""
        return [int(i) for i in self._example_ids[self._assignments == cluster_id]]

    def cluster_sizes(self) -> Dict[int, int]:
        ids, counts = np.unique(self._assignments, return_counts=True)
        return {int(c): int(n) for c, n in zip(ids, counts)}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.__class__.__name__,
            "n_clusters": self._n_clusters,
            "has_noise": self.has_noise,
            "cluster_sizes": self.cluster_sizes(),
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(n_clusters={self._n_clusters}, size={len(self._assignments)})"


class CentroidClusterModel(ClusterModel):
    """Flat partition with one representative vector per cluster."""

    def __init__(
        self,
        n_clusters: int,
        assignments: Sequence[int],
        centroids: np.ndarray,
        example_ids: Optional[Sequence[int]] = None,
    ):
        super().__init__(n_clusters, assignments, example_ids)
        self.centroids = np.array(centroids, dtype=np.float64)
        self.centroids.setflags(write=False)

    def get_centroid(self, cluster_id: int) -> np.ndarray:
        return self.centroids[cluster_id]

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["centroids"] = self.centroids.tolist()
        return data


class SoftClusterModel(CentroidClusterModel):
    """
    Gaussian mixture: every example belongs to every cluster with a probability.

    The hard assignment of an example is its most probable cluster. Centroids
    are the component means; ``covariances`` follow ``covariance_type``
    ("full": k x d x d matrices, "spherical": one variance per component).
    """

    def __init__(
        self,
        n_clusters: int,
        assignments: Sequence[int],
        centroids: np.ndarray,
        weights: np.ndarray,
        covariances: np.ndarray,
        covariance_type: str,
        probabilities: np.ndarray,
        example_ids: Optional[Sequence[int]] = None,
    ):
        super().__init__(n_clusters, assignments, centroids, example_ids)
        self.weights = np.array(weights, dtype=np.float64)
        self.covariances = np.array(covariances, dtype=np.float64)
        self.covariance_type = covariance_type
        self._probabilities = np.array(probabilities, dtype=np.float64)
        self._probabilities.setflags(write=False)
        self._row_by_id = {int(i): row for row, i in enumerate(self.example_ids)}

    @property
    def probabilities(self) -> np.ndarray:
        """Membership probabilities of the training examples (N x k)."""
        return self._probabilities

    def get_cluster_probabilities(self, example_set: Any = None) -> np.ndarray:
        """
        Membership probabilities of every example in ``example_set``.

        Returns:
            Array (N x k); rows of unknown examples are all zero
        """
        if example_set is None:
            return self._probabilities.copy()
        example_set = ExampleSet.coerce(example_set)
        result = np.zeros((example_set.size, self.number_of_clusters), dtype=np.float64)
        for row, example_id in enumerate(example_set.ids):
            known = self._row_by_id.get(int(example_id))
            if known is not None:
                result[row] = self._probabilities[known]
        return result

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["weights"] = self.weights.tolist()
        data["covariance_type"] = self.covariance_type
        data["covariances"] = self.covariances.tolist()
        return data


# =============================================================================
# Hierarchical Models
# =============================================================================


@dataclass(frozen=True)
class HierarchicalClusterNode:
    """
    Node of a cluster tree.

    Leaves own example ids; internal nodes own children and the distance
    (merge height) at which they were formed.
    """

    cluster_id: int
    distance: float = 0.0
    children: Tuple["HierarchicalClusterNode", ...] = ()
    example_ids: FrozenSet[int] = frozenset()

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def all_example_ids(self) -> FrozenSet[int]:
        """Example ids of every leaf below this node."""
        if self.is_leaf:
            return self.example_ids
        collected = set(self.example_ids)
        stack = list(self.children)
        while stack:
            node = stack.pop()
            collected.update(node.example_ids)
            stack.extend(node.children)
        return frozenset(collected)

    def iter_nodes(self) -> Iterator["HierarchicalClusterNode"]:
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(node.children)

    @property
    def number_of_leaves(self) -> int:
        return sum(1 for node in self.iter_nodes() if node.is_leaf)


class HierarchicalClusterModel:
    """Cluster tree with flattening to a fixed number of clusters."""

    def __init__(self, root: HierarchicalClusterNode):
        self.root = root

    @property
    def number_of_clusters(self) -> int:
        """Number of leaves of the tree."""
        return self.root.number_of_leaves

    def flatten(self, n_clusters: int) -> List[HierarchicalClusterNode]:
        """
        Cut the tree into ``n_clusters`` subtrees.

        The node with the largest distance is split first; ties split the
        node formed last (highest cluster id). Fewer subtrees are returned
        when the tree has fewer leaves, or when splitting a multi-way node
        would overshoot the requested count.

        Args:
            n_clusters: Desired number of clusters (>= 1)

        Returns:
            Subtree roots, ordered by their smallest example id
        """
        if n_clusters < 1:
            raise ValueError(f"n_clusters must be >= 1, got {n_clusters}")

        frontier = [self.root]
        while len(frontier) < n_clusters:
            splittable = [node for node in frontier if not node.is_leaf]
            if not splittable:
                break
            target = max(splittable, key=lambda node: (node.distance, node.cluster_id))
            if len(frontier) - 1 + len(target.children) > n_clusters and len(frontier) > 1:
                break
            frontier.remove(target)
            frontier.extend(target.children)

        return sorted(frontier, key=lambda node: min(node.all_example_ids(), default=0))

    def to_flat_model(self, n_clusters: int = 2, example_ids: Optional[Sequence[int]] = None) -> ClusterModel:
        """Flat model labelling each flattened subtree 0..n-1."""
        groups = self.flatten(n_clusters)
        mapping: Dict[int, int] = {}
        for label, node in enumerate(groups):
            for example_id in node.all_example_ids():
                mapping[int(example_id)] = label
        if example_ids is None:
            example_ids = sorted(mapping)
        assignments = [mapping.get(int(i), UNKNOWN) for i in example_ids]
        return ClusterModel(len(groups), assignments, example_ids)

    def get_cluster_assignments(self, example_set: Any, n_clusters: int = 2) -> np.ndarray:
        """
        Flat labels of ``example_set`` after cutting the tree at ``n_clusters``.

        Returns:
            Integer array; -1 for examples not in the tree
        """
        example_set = ExampleSet.coerce(example_set)
        return self.to_flat_model(n_clusters).get_cluster_assignments(example_set)

    def to_dict(self) -> Dict[str, Any]:
        """
        Flat, pre-order node list; internal nodes reference children by cluster id.

        Chain-shaped single-linkage trees are as deep as the data set is
        large, so nodes are never nested inside each other.
        """
        nodes: List[Dict[str, Any]] = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            data: Dict[str, Any] = {"cluster_id": node.cluster_id, "distance": node.distance}
            if node.is_leaf:
                data["example_ids"] = sorted(node.example_ids)
            else:
                data["children"] = [child.cluster_id for child in node.children]
                stack.extend(reversed(node.children))
            nodes.append(data)

        return {"type": self.__class__.__name__, "root": nodes[0], "nodes": nodes}

    def __repr__(self) -> str:
        return f"HierarchicalClusterModel(leaves={self.number_of_clusters})"
