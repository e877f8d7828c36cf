"""
Support Vector Clustering Algorithm Implementation.

Fits the minimum enclosing sphere of the data in kernel feature space, then
links two rows when the straight segment between them stays inside the
sphere. Clusters are grown over that adjacency the same way DBSCAN grows
them over epsilon-neighborhoods.

Support vector clustering is ideal for:
- Clusters with arbitrary (non-convex) boundaries
- Small datasets where an explicit outlier fraction is known
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
from cluster_core.core.neighborhood import NOISE, UNASSIGNED, expand_clusters
from cluster_core.core.sphere_solver import SphereFit, SphereSolver
from cluster_core.utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


class SupportVectorAlgorithm(BaseClusteringAlgorithm):
    """
    Support vector clustering implementation.

    Best for: arbitrary shapes, explicit outlier handling via ``p``
    Weaknesses: O(n^2 * number_sample_points) kernel evaluations for the
    adjacency test
    """

    def __init__(self, config: ClusteringConfig, measure=None, monitor=None):
        """
        Initialize Support Vector clustering.

        Args:
            config: Clustering configuration
            measure: Unused, distances come from the kernel
            monitor: Optional progress monitor
        """
        super().__init__(config, measure, monitor)

        params = config.params
        self.min_points = int(params.get("min_points", 2))
        self.number_sample_points = int(params.get("number_sample_points", 20))
        self.r = float(params.get("r", -1.0))
        self.p = float(params.get("p", 0.0))
        self.kernel = create_kernel(
            params.get("kernel_type", "radial"),
            gamma=params.get("kernel_gamma", 1.0),
            degree=params.get("kernel_degree", 2),
            a=params.get("kernel_a", 1.0),
            b=params.get("kernel_b", 0.0),
        )

        if self.min_points < 1:
            raise ConfigurationError(f"min_points must be at least 1, got {self.min_points}")
        if self.number_sample_points < 1:
            raise ConfigurationError(
                f"number_sample_points must be at least 1, got {self.number_sample_points}"
            )
        if not 0.0 <= self.p <= 1.0:
            raise ConfigurationError(f"p must be in [0, 1], got {self.p}")

        self.solver = SphereSolver(
            self.kernel,
            p=self.p,
            convergence_epsilon=float(params.get("convergence_epsilon", 1e-3)),
            max_iterations=int(params.get("max_iterations", 100000)),
            kernel_cache=float(params.get("kernel_cache", 200)),
            random_seed=config.random_seed,
            monitor=self.monitor,
        )
        self.fit: Optional[SphereFit] = None

        logger.info(
            f"Initialized Support Vector clustering: kernel={self.kernel!r}, p={self.p}, "
            f"min_points={self.min_points}, samples={self.number_sample_points}"
        )

    def cluster(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform support vector clustering.

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
        logger.info(f"Starting Support Vector clustering on {len(values)} examples")

        self.fit = self.solver.train(values)
        radius = self.r if self.r >= 0 else self.fit.radius
        logger.debug(f"Sphere fitted: R={self.fit.radius:.6f}, b={self.fit.b:.6f}, using r={radius:.6f}")

        # Interior sample positions on each segment
        steps = np.arange(1, self.number_sample_points + 1) / (self.number_sample_points + 1)

        def region_query(row: int, assignments: np.ndarray) -> np.ndarray:
            candidates = np.flatnonzero((assignments == UNASSIGNED) | (assignments == NOISE))
            candidates = candidates[candidates != row]
            if len(candidates) == 0:
                return candidates
            return candidates[self._connected(values[row], values[candidates], steps, radius)]

        labels, n_clusters = expand_clusters(len(values), region_query, self.min_points, self.monitor)
        outlier_count = int(np.sum(labels == NOISE))

        logger.info(
            f"Support Vector clustering found {n_clusters} clusters, "
            f"{outlier_count} noise examples, {len(self.fit.support_vectors)} support vectors"
        )

        model = ClusterModel(n_clusters, labels, example_set.ids, has_noise=True)
        quality_metrics = self._calculate_quality_metrics(values, labels, noise_label=NOISE)
        quality_metrics.update({
            "radius": float(radius),
            "support_vectors": int(len(self.fit.support_vectors)),
            "optimizer_iterations": int(self.fit.iterations),
            "optimizer_converged": bool(self.fit.converged),
        })

        return ClusteringResult(
            cluster_labels=labels,
            n_clusters=n_clusters,
            outlier_count=outlier_count,
            quality_metrics=quality_metrics,
            model=model,
        )

    def _connected(
        self,
        origin: np.ndarray,
        targets: np.ndarray,
        steps: np.ndarray,
        radius: float,
    ) -> np.ndarray:
        """
        Mask of targets whose segment from ``origin`` stays inside the sphere.

        Every sample point origin + t * (target - origin) must have a predicted
        feature-space distance of at most ``radius``.
        """
        # (targets, samples, dims)
        samples = origin + steps[None, :, None] * (targets - origin)[:, None, :]
        distances = self.solver.predict(samples.reshape(-1, samples.shape[-1]))
        return np.all(distances.reshape(len(targets), len(steps)) <= radius, axis=1)
