"""
DBSCAN Clustering Algorithm Implementation.

Density-based clustering: clusters are maximal sets of rows reachable
through chains of core rows (rows with at least ``min_points`` rows within
``epsilon``, counting themselves). Rows reachable from no core row are noise.

DBSCAN is ideal for:
- Clusters of arbitrary shape
- Data with noise
- Unknown number of clusters
"""

import logging
from typing import Dict, Any, Optional
import numpy as np

from cluster_core.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringResult,
    ClusteringConfig,
)
from cluster_core.core.cluster_model import ClusterModel
from cluster_core.core.neighborhood import NOISE, expand_clusters
from cluster_core.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


class DBSCANAlgorithm(BaseClusteringAlgorithm):
    """
    DBSCAN clustering implementation.

    Best for: arbitrary shapes, noisy data
    Strengths: no k required, explicit noise
    Weaknesses: single density threshold, O(n^2) with linear neighborhood scans
    """

    def __init__(self, config: ClusteringConfig, measure=None, monitor=None):
        """
        Initialize DBSCAN algorithm.

        Args:
            config: Clustering configuration
            measure: Optional distance measure
            monitor: Optional progress monitor
        """
        super().__init__(config, measure, monitor)

        self.epsilon = float(config.params.get("epsilon", 1.0))
        self.min_points = int(config.params.get("min_points", 5))

        if self.epsilon < 0:
            raise ConfigurationError(f"epsilon must be non-negative, got {self.epsilon}")
        if self.min_points < 1:
            raise ConfigurationError(f"min_points must be at least 1, got {self.min_points}")

        logger.info(f"Initialized DBSCAN: epsilon={self.epsilon}, min_points={self.min_points}")

    def cluster(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform DBSCAN clustering.

        Args:
            data: ExampleSet or array (N x D)
            metadata: Unused

        Returns:
            ClusteringResult; label 0 is noise, clusters are numbered from 1
        """
        example_set = self._prepare(data)
        if self._is_empty(example_set):
            return self._empty_result(example_set)

        values = example_set.values
        logger.info(f"Starting DBSCAN clustering on {len(values)} examples")

        def region_query(row: int, assignments: np.ndarray) -> np.ndarray:
            # Full linear scan; the row itself is always part of its neighborhood
            return np.flatnonzero(self.measure.distances_to(values[row], values) <= self.epsilon)

        labels, n_clusters = expand_clusters(len(values), region_query, self.min_points, self.monitor)
        outlier_count = int(np.sum(labels == NOISE))

        logger.info(f"DBSCAN found {n_clusters} clusters and {outlier_count} noise examples")

        model = ClusterModel(n_clusters, labels, example_set.ids, has_noise=True)
        quality_metrics = self._calculate_quality_metrics(values, labels, noise_label=NOISE)
        quality_metrics["noise_ratio"] = outlier_count / len(values)

        return ClusteringResult(
            cluster_labels=labels,
            n_clusters=n_clusters,
            outlier_count=outlier_count,
            quality_metrics=quality_metrics,
            model=model,
        )
