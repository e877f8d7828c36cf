"""
X-Means Clustering Algorithm Implementation.

Searches the number of clusters between ``k_min`` and ``k_max``: starting
from k-means with ``k_min`` clusters, every cluster is tentatively split in
two and the split is kept where it improves the Bayesian Information
Criterion (Pelleg & Moore, 2000). The search stops when no round of splits
improves the BIC of the whole model or ``k_max`` is reached.
"""

import logging
import math
from typing import Dict, Any, List, Optional
import numpy as np

from cluster_core.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringResult,
    ClusteringConfig,
)
from cluster_core.core.cluster_model import CentroidClusterModel
from cluster_core.core.example_set import ExampleSet
from cluster_core.core.kmeans_algorithm import FastKMeansAlgorithm, KMeansAlgorithm
from cluster_core.utils.error_handling import ConfigurationError, InsufficientDataError

logger = logging.getLogger(__name__)

_INNER_ALGORITHMS = {
    "kmeans": KMeansAlgorithm,
    "fast_kmeans": FastKMeansAlgorithm,
}


class XMeansAlgorithm(BaseClusteringAlgorithm):
    """
    X-Means: k-means with automatic choice of k.

    Best for: unknown number of roughly spherical clusters
    Weaknesses: BIC assumes identical spherical Gaussian clusters
    """

    def __init__(self, config: ClusteringConfig, measure=None, monitor=None):
        super().__init__(config, measure, monitor)

        self.k_min = int(config.params.get("k_min", 2))
        self.k_max = int(config.params.get("k_max", 60))
        self.max_runs = int(config.params.get("max_runs", 10))
        self.max_optimization_steps = int(config.params.get("max_optimization_steps", 100))
        self.use_kpp = bool(config.params.get("use_kpp", False))
        self.inner_algorithm = str(config.params.get("clustering_algorithm", "fast_kmeans")).lower()

        if self.k_min < 1 or self.k_max < self.k_min:
            raise ConfigurationError(
                f"Invalid k range [{self.k_min}, {self.k_max}]",
                details={"k_min": self.k_min, "k_max": self.k_max},
            )
        if self.inner_algorithm not in _INNER_ALGORITHMS:
            raise ConfigurationError(
                f"Unknown inner clustering algorithm: {self.inner_algorithm}",
                details={"available": sorted(_INNER_ALGORITHMS)},
            )

        logger.info(
            f"Initialized X-Means: k_min={self.k_min}, k_max={self.k_max}, "
            f"inner={self.inner_algorithm}"
        )

    def cluster(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform X-Means clustering.

        Args:
            data: ExampleSet or array (N x D)
            metadata: Unused

        Returns:
            ClusteringResult with between k_min and k_max clusters

        Raises:
            InsufficientDataError: If there are fewer examples than k_min
        """
        example_set = self._prepare(data)
        if self._is_empty(example_set):
            return self._empty_result(example_set)
        if example_set.size < self.k_min:
            raise InsufficientDataError(
                f"Cannot build {self.k_min} clusters from {example_set.size} examples",
                details={"k_min": self.k_min, "examples": example_set.size},
            )

        values = example_set.values
        rng = self._rng()

        first = self._kmeans(example_set, self.k_min, rng)
        centroids = first.centroids
        assignments = first.cluster_labels
        current_bic = self._bic(values, centroids, assignments)
        logger.info(f"X-Means start: k={len(centroids)}, BIC={current_bic:.4f}")

        rounds = 0
        while len(centroids) < self.k_max:
            self._check_for_stop()
            rounds += 1

            candidates: List[np.ndarray] = []
            gains: List[Optional[float]] = []
            children: List[Optional[np.ndarray]] = []
            for c in range(len(centroids)):
                members = np.flatnonzero(assignments == c)
                if len(members) == 0:
                    candidates.append(centroids[c][None, :])
                    children.append(None)
                    gains.append(None)
                    continue

                subset = example_set.subset(members)
                parent = self._kmeans(subset, 1, rng)
                candidates.append(parent.centroids)
                if len(members) < 2:
                    children.append(None)
                    gains.append(None)
                    continue

                child = self._kmeans(subset, 2, rng)
                bic_child = self._bic(subset.values, child.centroids, child.cluster_labels)
                bic_parent = self._bic(subset.values, parent.centroids, parent.cluster_labels)
                children.append(child.centroids)
                gains.append(bic_child - bic_parent if bic_child > bic_parent else None)

            # Keep the most improving splits that fit below k_max
            budget = self.k_max - len(centroids)
            improving = sorted(
                (i for i, gain in enumerate(gains) if gain is not None),
                key=lambda i: gains[i],
                reverse=True,
            )
            accepted = set(improving[:budget])
            if not accepted:
                break

            new_centroids = np.vstack(
                [children[i] if i in accepted else candidates[i] for i in range(len(candidates))]
            )
            new_assignments = np.argmin(self._distances(values, new_centroids), axis=1)
            new_bic = self._bic(values, new_centroids, new_assignments)
            logger.debug(
                f"X-Means round {rounds}: k={len(new_centroids)}, BIC={new_bic:.4f} "
                f"(current {current_bic:.4f})"
            )

            if new_bic <= current_bic:
                break
            centroids, assignments, current_bic = new_centroids, new_assignments, new_bic

        k = len(centroids)
        model = CentroidClusterModel(k, assignments, centroids, example_set.ids)
        quality_metrics = self._calculate_quality_metrics(values, assignments, centroids)
        quality_metrics["bic"] = float(current_bic)
        quality_metrics["rounds"] = rounds

        logger.info(f"X-Means created {k} clusters after {rounds} rounds")

        return ClusteringResult(
            cluster_labels=assignments,
            n_clusters=k,
            outlier_count=0,
            quality_metrics=quality_metrics,
            centroids=centroids,
            model=model,
        )

    # -------------------------------------------------------------------------

    def _kmeans(self, example_set: ExampleSet, k: int, rng: np.random.Generator) -> ClusteringResult:
        config = ClusteringConfig(
            algorithm_name=self.inner_algorithm,
            params={
                "k": k,
                "max_runs": self.max_runs,
                "max_optimization_steps": self.max_optimization_steps,
                "use_kpp": self.use_kpp,
            },
            random_seed=int(rng.integers(2**31 - 1)),
        )
        algorithm = _INNER_ALGORITHMS[self.inner_algorithm](config, self.measure, self.monitor)
        return algorithm.cluster(example_set)

    def _distances(self, values: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        result = np.empty((len(values), len(centroids)), dtype=np.float64)
        for c, centroid in enumerate(centroids):
            result[:, c] = self.measure.distances_to(centroid, values)
        return result

    def _bic(self, values: np.ndarray, centroids: np.ndarray, assignments: np.ndarray) -> float:
        """
        Bayesian Information Criterion of a centroid model (higher is better).

        Uses the identical spherical Gaussian log-likelihood of Pelleg & Moore;
        clusters with fewer than two members contribute nothing.
        """
        n_total = len(values)
        k = len(centroids)
        dimension = values.shape[1]
        n_parameters = (k - 1) + k * dimension + k

        loglike = 0.0
        for c in range(k):
            members = values[assignments == c]
            rn = len(members)
            if rn <= 1 or rn <= k:
                continue
            sum_sq = float(np.sum(self.measure.distances_to(centroids[c], members) ** 2))
            variance = max(sum_sq / (rn - k), np.finfo(np.float64).eps)
            loglike += (
                -(rn / 2.0) * math.log(2.0 * math.pi)
                - rn * dimension / 2.0 * math.log(variance)
                - (rn - k) / 2.0
                + rn * math.log(rn)
                - rn * math.log(n_total)
            )

        return loglike - n_parameters / 2.0 * math.log(n_total)
