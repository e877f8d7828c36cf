"""
Top-Down Hierarchical Clustering Algorithm Implementation.

Divisive clustering: a flat clusterer splits the whole dataset, then each
resulting group is split again, recursively, until groups are small enough
or the depth budget is used up. Every split produces one child node per
discovered group, so nodes are not necessarily binary.
"""

import logging
from typing import Dict, Any, List, Optional
import numpy as np

from cluster_core.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringResult,
    ClusteringConfig,
)
from cluster_core.core.cluster_model import HierarchicalClusterModel, HierarchicalClusterNode
from cluster_core.core.example_set import ExampleSet
from cluster_core.utils.error_handling import ConfigurationError, InsufficientDataError

logger = logging.getLogger(__name__)


class TopDownAlgorithm(BaseClusteringAlgorithm):
    """
    Top-down (divisive) hierarchical clustering.

    The flat clusterer used for splitting is injected as ``sub_clusterer`` or
    built from the ``sub_algorithm``/``sub_params`` parameters. The distance
    of an internal node is the number of levels left below it in the depth
    budget, so cutting the tree splits the shallowest nodes first.
    """

    def __init__(
        self,
        config: ClusteringConfig,
        measure=None,
        monitor=None,
        sub_clusterer: Optional[BaseClusteringAlgorithm] = None,
    ):
        super().__init__(config, measure, monitor)

        self.max_leaf_size = int(config.params.get("max_leaf_size", 1))
        self.max_depth = int(config.params.get("max_depth", 5))
        self.n_clusters = int(config.params.get("n_clusters", 2))

        if self.max_leaf_size < 1 or self.max_depth < 1:
            raise ConfigurationError("max_leaf_size and max_depth must be positive")

        if sub_clusterer is None:
            sub_clusterer = self._create_sub_clusterer(
                config.params.get("sub_algorithm", "kmeans"),
                dict(config.params.get("sub_params", {"k": 2})),
            )
        self.sub_clusterer = sub_clusterer
        self._next_id = 0

        logger.info(
            f"Initialized Top-Down: sub_clusterer={self.sub_clusterer.name}, "
            f"max_leaf_size={self.max_leaf_size}, max_depth={self.max_depth}"
        )

    def _create_sub_clusterer(self, algorithm: str, params: Dict[str, Any]) -> BaseClusteringAlgorithm:
        from cluster_core.core.clustering_engine import ClusteringEngine

        algorithm = str(algorithm).lower()
        if algorithm == self.name or algorithm == "top_down":
            raise ConfigurationError("Top-down clustering cannot use itself as sub-clusterer")
        algorithm_class = ClusteringEngine.get_algorithm_class(algorithm)
        params.setdefault("measure", self.config.params.get("measure", "euclidean"))
        sub_config = ClusteringConfig(
            algorithm_name=algorithm,
            params=params,
            random_seed=self.config.random_seed,
        )
        return algorithm_class(sub_config, self.measure, self.monitor)

    def cluster(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform top-down clustering.

        Args:
            data: ExampleSet or array (N x D)
            metadata: Unused

        Returns:
            ClusteringResult whose model is the cluster tree; labels are the
            tree cut into ``n_clusters`` groups
        """
        example_set = self._prepare(data)
        if self._is_empty(example_set):
            return self._empty_result(example_set)

        logger.info(f"Starting Top-Down clustering on {example_set.size} examples")

        self._next_id = 0
        root = self._split(example_set, np.arange(example_set.size), depth=0)
        model = HierarchicalClusterModel(root)

        labels = model.get_cluster_assignments(example_set, self.n_clusters)
        n_clusters = len(np.unique(labels))

        quality_metrics = self._calculate_quality_metrics(example_set.values, labels)
        quality_metrics["leaves"] = model.number_of_clusters

        logger.info(f"Top-Down built a tree with {model.number_of_clusters} leaves")

        return ClusteringResult(
            cluster_labels=labels,
            n_clusters=n_clusters,
            outlier_count=0,
            quality_metrics=quality_metrics,
            model=model,
        )

    def _leaf(self, example_set: ExampleSet, indices: np.ndarray) -> HierarchicalClusterNode:
        node = HierarchicalClusterNode(
            cluster_id=self._next_id,
            example_ids=frozenset(int(i) for i in example_set.ids[indices]),
        )
        self._next_id += 1
        return node

    def _split(self, example_set: ExampleSet, indices: np.ndarray, depth: int) -> HierarchicalClusterNode:
        self._check_for_stop()

        if len(indices) <= self.max_leaf_size or depth >= self.max_depth:
            return self._leaf(example_set, indices)

        try:
            result = self.sub_clusterer.cluster(example_set.subset(indices))
        except InsufficientDataError as e:
            logger.debug(f"Top-Down: subset of {len(indices)} examples not split further ({e.message})")
            return self._leaf(example_set, indices)

        labels = np.asarray(result.cluster_labels)
        groups: List[np.ndarray] = [indices[labels == label] for label in np.unique(labels)]
        groups = [group for group in groups if len(group) > 0]
        if len(groups) <= 1:
            return self._leaf(example_set, indices)

        children = tuple(self._split(example_set, group, depth + 1) for group in groups)
        node = HierarchicalClusterNode(
            cluster_id=self._next_id,
            distance=float(self.max_depth - depth),
            children=children,
        )
        self._next_id += 1
        return node
