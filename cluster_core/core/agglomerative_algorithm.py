"""
Agglomerative Hierarchical Clustering Algorithm Implementation.

Bottom-up clustering: every example starts as its own cluster and the two
closest clusters are merged N-1 times, producing a binary cluster tree
(dendrogram) whose internal nodes carry the merge distance.

Agglomerative clustering is ideal for:
- Building hierarchical cluster trees (dendrograms)
- When cluster hierarchy is important
- Small to medium datasets
"""

import logging
from enum import Enum
from typing import Callable, Dict, Any, List, Optional
import numpy as np

from cluster_core.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringResult,
    ClusteringConfig,
)
from cluster_core.core.cluster_model import (
    Agglomeration,
    HierarchicalClusterModel,
    HierarchicalClusterNode,
)
from cluster_core.core.distance_matrix import DistanceMatrix
from cluster_core.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


class Linkage(str, Enum):
    """How the distance of a merged cluster to the others is derived."""

    SINGLE = "single"
    COMPLETE = "complete"
    AVERAGE = "average"


# (d(x, z), d(y, z), |x|, |y|) -> d(x u y, z)
LinkageUpdate = Callable[[float, float, int, int], float]

LINKAGE_UPDATES: Dict[Linkage, LinkageUpdate] = {
    Linkage.SINGLE: lambda dx, dy, nx, ny: min(dx, dy),
    Linkage.COMPLETE: lambda dx, dy, nx, ny: max(dx, dy),
    Linkage.AVERAGE: lambda dx, dy, nx, ny: (nx * dx + ny * dy) / (nx + ny),
}


class AgglomerativeAlgorithm(BaseClusteringAlgorithm):
    """
    Agglomerative hierarchical clustering implementation.

    Best for: hierarchical structure, small datasets
    Strengths: builds the full hierarchy, flexible linkage criteria
    Weaknesses: O(n^3) time, O(n^2) memory
    """

    def __init__(self, config: ClusteringConfig, measure=None, monitor=None):
        """
        Initialize Agglomerative algorithm.

        Args:
            config: Clustering configuration
            measure: Optional distance measure
            monitor: Optional progress monitor
        """
        super().__init__(config, measure, monitor)

        linkage = str(config.params.get("linkage", "single")).lower()
        try:
            self.linkage = Linkage(linkage)
        except ValueError:
            raise ConfigurationError(
                f"Unknown linkage: {linkage}",
                details={"available": [item.value for item in Linkage]},
            )
        self.n_clusters = int(config.params.get("n_clusters", 2))
        self.agglomerations: List[Agglomeration] = []

        logger.info(
            f"Initialized Agglomerative: linkage={self.linkage.value}, n_clusters={self.n_clusters}"
        )

    def cluster(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform Agglomerative clustering.

        Args:
            data: ExampleSet or array (N x D)
            metadata: Unused

        Returns:
            ClusteringResult whose model is the full cluster tree; labels are
            the tree cut into ``n_clusters`` groups
        """
        example_set = self._prepare(data)
        if self._is_empty(example_set):
            return self._empty_result(example_set)

        n = example_set.size
        logger.info(f"Starting Agglomerative clustering on {n} examples")

        if n > 10000:
            logger.warning(
                f"Agglomerative clustering on {n} examples may be slow and memory-intensive"
            )

        matrix = DistanceMatrix.from_example_set(example_set, self.measure)
        root = self._build_tree(matrix, example_set.ids)
        model = HierarchicalClusterModel(root)

        labels = model.get_cluster_assignments(example_set, self.n_clusters)
        n_clusters = len(np.unique(labels))

        quality_metrics = self._calculate_quality_metrics(example_set.values, labels)
        quality_metrics["merges"] = len(self.agglomerations)
        quality_metrics["root_distance"] = float(root.distance)

        logger.info(
            f"Agglomerative performed {len(self.agglomerations)} merges, "
            f"cut into {n_clusters} clusters"
        )

        return ClusteringResult(
            cluster_labels=labels,
            n_clusters=n_clusters,
            outlier_count=0,
            quality_metrics=quality_metrics,
            model=model,
        )

    def _build_tree(self, matrix: DistanceMatrix, example_ids: np.ndarray) -> HierarchicalClusterNode:
        """
        Merge the closest pair of clusters until one remains.

        Slot x of the matrix always holds the distances of the cluster
        currently labelled ``slot_cluster[x]``; the absorbed slot is
        tombstoned. Ties go to the last minimal pair in row-major order.
        """
        n = matrix.size
        update = LINKAGE_UPDATES[self.linkage]

        nodes: Dict[int, HierarchicalClusterNode] = {
            i: HierarchicalClusterNode(cluster_id=i, example_ids=frozenset({int(example_ids[i])}))
            for i in range(n)
        }
        slot_cluster = list(range(n))
        slot_size = [1] * n
        next_id = n
        self.agglomerations = []

        self.monitor.set_total(max(n - 1, 0), operation="agglomerative_merges")
        for _ in range(n - 1):
            self._check_for_stop()

            active = matrix.active_indices()
            best = np.inf
            best_x = best_y = -1
            for x in active:
                cols = active[active > x]
                if len(cols) == 0:
                    continue
                row = matrix.row_tail(x)[cols - x - 1]
                # last occurrence of the row minimum
                pos = len(row) - 1 - int(np.argmin(row[::-1]))
                if row[pos] <= best:
                    best = float(row[pos])
                    best_x, best_y = int(x), int(cols[pos])

            agglomeration = Agglomeration(slot_cluster[best_x], slot_cluster[best_y], best)
            self.agglomerations.append(agglomeration)
            nodes[next_id] = HierarchicalClusterNode(
                cluster_id=next_id,
                distance=agglomeration.distance,
                children=(nodes.pop(agglomeration.id_left), nodes.pop(agglomeration.id_right)),
            )

            for z in active:
                if z == best_x or z == best_y:
                    continue
                matrix.set(
                    best_x,
                    int(z),
                    update(
                        matrix.get(best_x, int(z)),
                        matrix.get(best_y, int(z)),
                        slot_size[best_x],
                        slot_size[best_y],
                    ),
                )

            matrix.delete(best_y)
            slot_cluster[best_x] = next_id
            slot_size[best_x] += slot_size[best_y]
            next_id += 1
            self.monitor.step()
        self.monitor.complete()

        (root,) = nodes.values()
        return root
