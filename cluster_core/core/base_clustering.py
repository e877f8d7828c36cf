"""
Base Clustering Algorithm Interface.

Defines the contract for all clustering algorithms of the engine.
Supports pluggable algorithms with consistent API.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional
import numpy as np
from dataclasses import dataclass

from cluster_core.core.example_set import ExampleSet
from cluster_core.core.measures import DistanceMeasure, create_measure
from cluster_core.utils.error_handling import ValidationReport
from cluster_core.utils.progress import ProgressMonitor

logger = logging.getLogger(__name__)


@dataclass
class ClusteringConfig:
    """Configuration for clustering algorithms."""

    algorithm_name: str
    params: Dict[str, Any]
    random_seed: Optional[int] = None
    legacy_empty_check: bool = False  # empty input only warns instead of failing


class ClusteringResult:
    """Results from clustering operation."""

    def __init__(
        self,
        cluster_labels: np.ndarray,
        n_clusters: int,
        outlier_count: int,
        quality_metrics: Dict[str, float],
        centroids: Optional[np.ndarray] = None,
        cluster_probabilities: Optional[np.ndarray] = None,
        model: Any = None,
        objective_history: Optional[List[float]] = None,
    ):
        self.cluster_labels = cluster_labels
        self.n_clusters = n_clusters
        self.outlier_count = outlier_count
        self.quality_metrics = quality_metrics
        self.centroids = centroids
        self.cluster_probabilities = cluster_probabilities
        self.model = model
        self.objective_history = objective_history or []

    @property
    def labels(self) -> np.ndarray:
        """Alias for cluster_labels."""
        return self.cluster_labels

    @property
    def probabilities(self) -> Optional[np.ndarray]:
        """Alias for cluster_probabilities."""
        return self.cluster_probabilities

    @property
    def cluster_centroids(self) -> Optional[Dict[int, np.ndarray]]:
        """Return centroids as dict mapping cluster_id -> centroid_vector."""
        if self.centroids is None:
            return None
        return {i: self.centroids[i] for i in range(len(self.centroids))}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = {
            "n_clusters": self.n_clusters,
            "outlier_count": self.outlier_count,
            "quality_metrics": self.quality_metrics,
            "total_items": len(self.cluster_labels),
            "labels": [int(label) for label in self.cluster_labels],
        }
        if self.objective_history:
            data["objective_history"] = [float(v) for v in self.objective_history]
        if self.cluster_probabilities is not None:
            data["probabilities"] = np.asarray(self.cluster_probabilities, dtype=float).tolist()
        if self.model is not None:
            data["model"] = self.model.to_dict()
        return data


class BaseClusteringAlgorithm(ABC):
    """
    Abstract base class for clustering algorithms.

    All clustering algorithms (k-means family, DBSCAN, hierarchical, support
    vector) inherit from this class and implement the cluster() method.
    """

    # Algorithms that can work with +/-inf attribute values override this.
    handles_infinite_values = False

    def __init__(
        self,
        config: ClusteringConfig,
        measure: Optional[DistanceMeasure] = None,
        monitor: Optional[ProgressMonitor] = None,
    ):
        """
        Initialize clustering algorithm.

        Args:
            config: Clustering configuration
            measure: Distance measure (defaults to the ``measure`` param, euclidean)
            monitor: Progress monitor used for cancellation checks
        """
        self.config = config
        self.name = config.algorithm_name
        self.measure = measure or create_measure(
            config.params.get("measure", "euclidean"), **config.params
        )
        self.monitor = monitor or ProgressMonitor()

    @abstractmethod
    def cluster(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform clustering on a dataset.

        Args:
            data: ExampleSet or 2-D array (N x D)
            metadata: Optional extra information (unused by most algorithms)

        Returns:
            ClusteringResult with labels, metrics and the cluster model
        """
        pass

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def _rng(self) -> np.random.Generator:
        return np.random.default_rng(self.config.random_seed)

    def _check_for_stop(self) -> None:
        self.monitor.check_for_stop()

    def _validate(self, example_set: ExampleSet) -> ValidationReport:
        """
        Check the dataset before any computation.

        Returns:
            Report with fatal and advisory issues (not yet raised)
        """
        report = ValidationReport(algorithm=self.name)

        if example_set.size == 0 or example_set.dimension == 0:
            code = "empty_example_set" if example_set.size == 0 else "no_attributes"
            message = (
                "Example set contains no examples"
                if example_set.size == 0
                else "Example set contains no attributes"
            )
            if self.config.legacy_empty_check:
                report.advisory(code, message)
            else:
                report.fatal(code, message, error_type="InsufficientDataError")
            return report

        values = example_set.values
        if np.isnan(values).any():
            report.fatal(
                "missing_values",
                f"Example set contains {int(np.isnan(values).sum())} missing values",
                error_type="InvalidDataError",
            )
        if np.isinf(values).any():
            if self.handles_infinite_values:
                report.advisory("infinite_values", "Example set contains infinite values")
            else:
                report.fatal(
                    "infinite_values",
                    f"{self.name} cannot handle infinite values",
                    error_type="InvalidDataError",
                )
        return report

    def _prepare(self, data: Any) -> ExampleSet:
        """
        Coerce, validate and initialize the measure for a dataset.

        Raises:
            InsufficientDataError: Empty input (unless legacy_empty_check)
            InvalidDataError: Missing or unsupported infinite values
        """
        example_set = ExampleSet.coerce(data)
        self._validate(example_set).raise_for_fatal()
        if example_set.size > 0:
            self.measure.init(example_set)
        return example_set

    def _empty_result(self, example_set: ExampleSet) -> ClusteringResult:
        """Result for an input without examples or attributes."""
        logger.warning(f"{self.name}: nothing to cluster, returning empty result")
        return ClusteringResult(
            cluster_labels=np.zeros(example_set.size, dtype=np.int64),
            n_clusters=0,
            outlier_count=0,
            quality_metrics={},
        )

    @staticmethod
    def _is_empty(example_set: ExampleSet) -> bool:
        return example_set.size == 0 or example_set.dimension == 0

    def _calculate_quality_metrics(
        self,
        vectors: np.ndarray,
        labels: np.ndarray,
        centroids: Optional[np.ndarray] = None,
        noise_label: Optional[int] = None,
    ) -> Dict[str, float]:
        """
        Calculate clustering quality metrics.

        Args:
            vectors: Input vectors
            labels: Cluster labels
            centroids: Optional cluster centroids (indexed by label)
            noise_label: Label excluded from the metrics (e.g. 0 for DBSCAN)

        Returns:
            Dictionary of quality metrics
        """
        from sklearn.metrics import silhouette_score, davies_bouldin_score

        metrics = {}

        mask = labels != -1
        if noise_label is not None:
            mask &= labels != noise_label

        n_labels = len(np.unique(labels[mask]))
        if np.sum(mask) > n_labels and n_labels > 1:
            try:
                # Silhouette score (higher is better, range: -1 to 1)
                metrics["silhouette_score"] = float(
                    silhouette_score(vectors[mask], labels[mask])
                )
            except ValueError as e:
                logger.debug(f"Silhouette score unavailable: {e}")

            try:
                # Davies-Bouldin Index (lower is better)
                metrics["davies_bouldin_index"] = float(
                    davies_bouldin_score(vectors[mask], labels[mask])
                )
            except ValueError as e:
                logger.debug(f"Davies-Bouldin index unavailable: {e}")

        if centroids is not None and len(centroids) > 0:
            # Within-cluster sum of squared distances to the centroid
            wcss = 0.0
            for cluster_id in np.unique(labels[mask]):
                members = vectors[labels == cluster_id]
                wcss += float(np.sum((members - centroids[cluster_id]) ** 2))
            metrics["within_cluster_sum_of_squares"] = wcss

        return metrics
