"""
Kernel K-Means Clustering Algorithm Implementation.

K-means in the feature space of a kernel. Centroids are never
materialized; the squared feature-space distance of x to cluster c is

    K(x,x) - 2 * sum_y w(y) K(x,y) / W(c) + sum_{y,z} w(y) w(z) K(y,z) / W(c)^2

where the sums run over the members of c and W(c) is their total weight.
The last term depends only on the cluster and is computed once per step.
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
from cluster_core.core.measures import create_kernel
from cluster_core.utils.error_handling import ConfigurationError, InsufficientDataError

logger = logging.getLogger(__name__)


class KernelKMeansAlgorithm(BaseClusteringAlgorithm):
    """
    Kernel K-Means clustering implementation.

    Best for: non-convex clusters separable in a kernel feature space
    Weaknesses: needs the full N x N kernel matrix
    """

    def __init__(self, config: ClusteringConfig, measure=None, monitor=None):
        super().__init__(config, measure, monitor)

        self.k = int(config.params.get("k", 2))
        self.max_runs = int(config.params.get("max_runs", 1))
        self.max_optimization_steps = int(config.params.get("max_optimization_steps", 100))
        self.use_weights = bool(config.params.get("use_weights", False))
        self.kernel = create_kernel(
            config.params.get("kernel_type", "radial"),
            gamma=config.params.get("kernel_gamma", 1.0),
            degree=config.params.get("kernel_degree", 2),
            a=config.params.get("kernel_a", 1.0),
            b=config.params.get("kernel_b", 0.0),
        )

        if self.k < 1:
            raise ConfigurationError(f"k must be at least 1, got {self.k}")

        logger.info(f"Initialized Kernel K-Means: k={self.k}, kernel={self.kernel!r}")

    def cluster(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform Kernel K-Means clustering.

        Args:
            data: ExampleSet or array (N x D)
            metadata: Unused

        Returns:
            ClusteringResult with labels 0..k-1 (no centroids)

        Raises:
            InsufficientDataError: If k exceeds the number of examples
        """
        example_set = self._prepare(data)
        if self._is_empty(example_set):
            return self._empty_result(example_set)
        n = example_set.size
        if self.k > n:
            raise InsufficientDataError(
                f"Cannot build {self.k} clusters from {n} examples",
                details={"k": self.k, "examples": n},
            )

        values = example_set.values
        if self.use_weights and example_set.weights is not None:
            weights = example_set.weights
        else:
            weights = np.ones(n, dtype=np.float64)

        kernel_matrix = self.kernel.matrix(values, values)
        diagonal = np.diag(kernel_matrix).copy()
        rng = self._rng()

        best = None
        for run in range(self.max_runs):
            self._check_for_stop()
            assignments = self._initial_assignments(n, rng)
            history = []
            for step in range(self.max_optimization_steps):
                self._check_for_stop()
                distances = self._feature_distances(kernel_matrix, diagonal, weights, assignments)
                new_assignments = np.argmin(distances, axis=1)
                history.append(float(np.sum(weights * distances[np.arange(n), new_assignments])))
                stable = np.array_equal(new_assignments, assignments)
                assignments = new_assignments
                if stable:
                    break
            else:
                logger.warning(f"Kernel K-Means run {run} hit max_optimization_steps")

            score = history[-1]
            if best is None or score < best[0]:
                best = (score, assignments, history)

        score, assignments, history = best
        model = ClusterModel(self.k, assignments, example_set.ids)

        quality_metrics = self._calculate_quality_metrics(values, assignments)
        quality_metrics["feature_space_inertia"] = score
        quality_metrics["iterations"] = len(history)

        logger.info(f"Kernel K-Means created {self.k} clusters")

        return ClusteringResult(
            cluster_labels=assignments,
            n_clusters=self.k,
            outlier_count=0,
            quality_metrics=quality_metrics,
            model=model,
            objective_history=history,
        )

    def _initial_assignments(self, n: int, rng: np.random.Generator) -> np.ndarray:
        """Random assignment in which every cluster owns at least one example."""
        order = rng.permutation(n)
        assignments = rng.integers(0, self.k, size=n)
        assignments[order[: self.k]] = np.arange(self.k)
        return assignments.astype(np.int64)

    def _feature_distances(
        self,
        kernel_matrix: np.ndarray,
        diagonal: np.ndarray,
        weights: np.ndarray,
        assignments: np.ndarray,
    ) -> np.ndarray:
        n = len(diagonal)
        distances = np.full((n, self.k), np.inf, dtype=np.float64)
        for c in range(self.k):
            members = np.flatnonzero(assignments == c)
            w = weights[members]
            total = w.sum()
            if len(members) == 0 or total <= 0:
                continue
            cross = kernel_matrix[:, members] @ w / total
            pair = float(w @ kernel_matrix[np.ix_(members, members)] @ w) / (total * total)
            distances[:, c] = diagonal - 2.0 * cross + pair
        return distances
