"""
K-Means Clustering Algorithm Implementation.

Two exact variants sharing initialization and centroid updates:
- KMeansAlgorithm: Lloyd iterations (assign to nearest centroid, recompute means)
- FastKMeansAlgorithm: Elkan's triangle-inequality acceleration, which skips
  most distance computations but produces the same assignments as Lloyd

K-Means is ideal for:
- Fast clustering when the number of clusters is known
- Spherical, evenly-sized clusters
"""

import logging
from typing import Dict, Any, List, Optional, Tuple
import numpy as np

from cluster_core.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringResult,
    ClusteringConfig,
)
from cluster_core.core.cluster_model import CentroidClusterModel
from cluster_core.core.distance_matrix import DistanceMatrix
from cluster_core.core.example_set import ExampleSet
from cluster_core.utils.error_handling import ConfigurationError, InsufficientDataError

logger = logging.getLogger(__name__)


# =============================================================================
# Shared helpers
# =============================================================================


# Relative slack on bound tests; a bound only prunes when it clears the
# distance by more than the rounding error accumulated through shifts.
BOUND_RTOL = 1e-9


def _exceeds(bound: float, distance: float) -> bool:
    """True if ``bound`` proves a candidate strictly farther than ``distance``."""
    return bound > distance + BOUND_RTOL * max(distance, 1.0)


def random_initial_indices(n: int, k: int, rng: np.random.Generator) -> np.ndarray:
    """k distinct row indices drawn uniformly."""
    return rng.choice(n, size=k, replace=False)


def kpp_initial_indices(
    values: np.ndarray,
    k: int,
    measure: Any,
    rng: np.random.Generator,
) -> np.ndarray:
    """
    k-means++ seeding.

    The first seed is uniform; every further seed is drawn with probability
    proportional to the squared distance to its nearest chosen seed. Seeds
    are always distinct rows.
    """
    n = len(values)
    chosen = [int(rng.integers(n))]
    nearest = measure.distances_to(values[chosen[0]], values) ** 2

    while len(chosen) < k:
        weights = nearest.copy()
        weights[chosen] = 0.0
        total = weights.sum()
        if total > 0:
            candidate = int(rng.choice(n, p=weights / total))
        else:
            # Remaining rows coincide with seeds
            remaining = np.setdiff1d(np.arange(n), chosen)
            candidate = int(rng.choice(remaining))
        chosen.append(candidate)
        nearest = np.minimum(nearest, measure.distances_to(values[candidate], values) ** 2)

    return np.asarray(chosen, dtype=np.int64)


def update_centroids(
    values: np.ndarray,
    assignments: np.ndarray,
    previous: np.ndarray,
) -> np.ndarray:
    """Mean of every cluster; an empty cluster keeps its previous centroid."""
    centroids = previous.copy()
    for c in range(len(previous)):
        members = values[assignments == c]
        if len(members) > 0:
            centroids[c] = members.mean(axis=0)
    return centroids


# =============================================================================
# Lloyd
# =============================================================================


class KMeansAlgorithm(BaseClusteringAlgorithm):
    """
    K-Means clustering implementation (Lloyd iterations).

    Runs ``max_runs`` independent restarts and keeps the one with the
    smallest total within-cluster squared distance.
    """

    def __init__(self, config: ClusteringConfig, measure=None, monitor=None):
        """
        Initialize K-Means algorithm.

        Args:
            config: Clustering configuration
            measure: Optional distance measure
            monitor: Optional progress monitor
        """
        super().__init__(config, measure, monitor)

        self.k = int(config.params.get("k", 2))
        self.max_runs = int(config.params.get("max_runs", 10))
        self.max_optimization_steps = int(config.params.get("max_optimization_steps", 100))
        self.use_kpp = bool(config.params.get("use_kpp", False))

        if self.k < 1:
            raise ConfigurationError(f"k must be at least 1, got {self.k}")
        if self.max_runs < 1 or self.max_optimization_steps < 1:
            raise ConfigurationError("max_runs and max_optimization_steps must be positive")

        logger.info(
            f"Initialized {self.__class__.__name__}: k={self.k}, "
            f"max_runs={self.max_runs}, use_kpp={self.use_kpp}"
        )

    def cluster(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform K-Means clustering.

        Args:
            data: ExampleSet or array (N x D)
            metadata: Unused

        Returns:
            ClusteringResult with labels 0..k-1 and a CentroidClusterModel

        Raises:
            InsufficientDataError: If k exceeds the number of examples
        """
        example_set = self._prepare(data)
        if self._is_empty(example_set):
            return self._empty_result(example_set)
        self._check_k(example_set)

        logger.info(f"Starting {self.name} clustering on {example_set.size} examples")

        values = example_set.values
        rng = self._rng()
        best: Optional[Tuple[float, np.ndarray, np.ndarray, List[float]]] = None

        self.monitor.set_total(self.max_runs, operation=f"{self.name}_runs")
        for run in range(self.max_runs):
            self._check_for_stop()
            centroids = values[self._initial_indices(values, rng)].copy()
            assignments, centroids, history = self._optimize(values, centroids)
            score = self._objective(values, centroids, assignments)
            logger.debug(f"{self.name} run {run}: objective={score:.6f}, steps={len(history)}")
            if best is None or score < best[0]:
                best = (score, assignments, centroids, history)
            self.monitor.step()
        self.monitor.complete()

        score, assignments, centroids, history = best
        return self._build_result(example_set, assignments, centroids, score, history)

    # -------------------------------------------------------------------------

    def _check_k(self, example_set: ExampleSet) -> None:
        if self.k > example_set.size:
            raise InsufficientDataError(
                f"Cannot build {self.k} clusters from {example_set.size} examples",
                details={"k": self.k, "examples": example_set.size},
            )

    def _initial_indices(self, values: np.ndarray, rng: np.random.Generator) -> np.ndarray:
        if self.use_kpp:
            return kpp_initial_indices(values, self.k, self.measure, rng)
        return random_initial_indices(len(values), self.k, rng)

    def _distances(self, values: np.ndarray, centroids: np.ndarray) -> np.ndarray:
        """Distance matrix (N x k) between examples and centroids."""
        result = np.empty((len(values), len(centroids)), dtype=np.float64)
        for c, centroid in enumerate(centroids):
            result[:, c] = self.measure.distances_to(centroid, values)
        return result

    def _distance(self, row: np.ndarray, centroid: np.ndarray) -> float:
        return float(self.measure.distances_to(centroid, row[None, :])[0])

    def _objective(self, values: np.ndarray, centroids: np.ndarray, assignments: np.ndarray) -> float:
        """Sum of squared distances of every example to its centroid."""
        total = 0.0
        for c, centroid in enumerate(centroids):
            members = values[assignments == c]
            if len(members) > 0:
                total += float(np.sum(self.measure.distances_to(centroid, members) ** 2))
        return total

    def _optimize(
        self,
        values: np.ndarray,
        centroids: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray, List[float]]:
        history: List[float] = []
        assignments = np.zeros(len(values), dtype=np.int64)

        for step in range(self.max_optimization_steps):
            self._check_for_stop()
            # first minimum wins on ties
            new_assignments = np.argmin(self._distances(values, centroids), axis=1)
            stable = step > 0 and np.array_equal(new_assignments, assignments)
            assignments = new_assignments
            centroids = update_centroids(values, assignments, centroids)
            history.append(self._objective(values, centroids, assignments))
            if stable:
                break
        else:
            logger.warning(
                f"{self.name} stopped after max_optimization_steps={self.max_optimization_steps} "
                f"without converging"
            )

        return assignments, centroids, history

    def _build_result(
        self,
        example_set: ExampleSet,
        assignments: np.ndarray,
        centroids: np.ndarray,
        score: float,
        history: List[float],
    ) -> ClusteringResult:
        model = CentroidClusterModel(self.k, assignments, centroids, example_set.ids)

        quality_metrics = self._calculate_quality_metrics(example_set.values, assignments, centroids)
        quality_metrics["inertia"] = float(score)
        quality_metrics["iterations"] = len(history)

        logger.info(f"{self.name} created {self.k} clusters (inertia={score:.4f})")

        return ClusteringResult(
            cluster_labels=assignments,
            n_clusters=self.k,
            outlier_count=0,
            quality_metrics=quality_metrics,
            centroids=centroids,
            model=model,
            objective_history=history,
        )


# =============================================================================
# Elkan
# =============================================================================


class FastKMeansAlgorithm(KMeansAlgorithm):
    """
    K-Means accelerated with Elkan's bounds.

    Keeps an upper bound u[x] on the distance of each example to its centroid
    and lower bounds l[x][c] to every other centroid, so most distances are
    never computed. Requires a measure satisfying the triangle inequality.
    A bound only prunes a centroid it proves strictly farther, so ties go to
    the lower centroid index exactly as in the Lloyd iteration.
    """

    def __init__(self, config: ClusteringConfig, measure=None, monitor=None):
        super().__init__(config, measure, monitor)

        if not getattr(self.measure, "is_metric", True):
            raise ConfigurationError(
                f"{self.measure!r} violates the triangle inequality; use kmeans instead",
                details={"measure": repr(self.measure)},
            )

    def _centroid_distances(
        self,
        centroids: np.ndarray,
        centroid_distances: DistanceMatrix,
        s: np.ndarray,
    ) -> None:
        """Fill pairwise centroid distances and s[c] = half the distance to the nearest other centroid."""
        k = len(centroids)
        s[:] = np.inf
        for i in range(k):
            for j in range(i + 1, k):
                d = self._distance(centroids[i], centroids[j])
                s[i] = min(s[i], d)
                s[j] = min(s[j], d)
                centroid_distances.set(i, j, d)
        s *= 0.5

    def _optimize(
        self,
        values: np.ndarray,
        centroids: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray, List[float]]:
        n, k = len(values), len(centroids)
        lower = np.zeros((n, k), dtype=np.float64)
        upper = np.zeros(n, dtype=np.float64)
        stale = np.zeros(n, dtype=bool)
        assignments = np.zeros(n, dtype=np.int64)
        s = np.zeros(k, dtype=np.float64)
        centroid_distances = DistanceMatrix(k)
        self._centroid_distances(centroids, centroid_distances, s)

        # Initial assignment; skips centroids provably farther than the nearest so far
        for x in range(n):
            nearest_distance = self._distance(values[x], centroids[0])
            lower[x, 0] = nearest_distance
            nearest = 0
            for c in range(1, k):
                if _exceeds(0.5 * centroid_distances.get(nearest, c), nearest_distance):
                    continue
                distance = self._distance(values[x], centroids[c])
                lower[x, c] = distance
                if distance < nearest_distance:
                    nearest_distance = distance
                    nearest = c
            assignments[x] = nearest
            upper[x] = nearest_distance

        history: List[float] = []
        previous: Optional[np.ndarray] = None

        for step in range(self.max_optimization_steps):
            self._check_for_stop()
            self._centroid_distances(centroids, centroid_distances, s)

            if k == 1:
                # Nothing to prune against: one distance per row
                upper[:] = self.measure.distances_to(centroids[0], values)
                lower[:, 0] = upper
                stale[:] = False

            for x in range(n):
                if _exceeds(s[assignments[x]], upper[x]):
                    continue
                for c in range(k):
                    cx = assignments[x]
                    if c == cx:
                        continue
                    half = 0.5 * centroid_distances.get(cx, c)
                    if _exceeds(lower[x, c], upper[x]) or _exceeds(half, upper[x]):
                        continue
                    if stale[x]:
                        d_x_cx = self._distance(values[x], centroids[cx])
                        lower[x, cx] = d_x_cx
                        upper[x] = d_x_cx
                        stale[x] = False
                        if _exceeds(lower[x, c], d_x_cx) or _exceeds(half, d_x_cx):
                            continue
                    else:
                        d_x_cx = upper[x]
                    d_x_c = self._distance(values[x], centroids[c])
                    lower[x, c] = d_x_c
                    # ties go to the lower centroid index, as in Lloyd's argmin
                    if d_x_c < d_x_cx or (d_x_c == d_x_cx and c < cx):
                        assignments[x] = c
                        upper[x] = d_x_c

            stable = previous is not None and np.array_equal(assignments, previous)
            previous = assignments.copy()

            new_centroids = update_centroids(values, assignments, centroids)
            shift = np.array(
                [self._distance(centroids[c], new_centroids[c]) for c in range(k)],
                dtype=np.float64,
            )
            centroids = new_centroids

            np.maximum(lower - shift[None, :], 0.0, out=lower)
            upper += shift[assignments]
            stale[:] = True

            history.append(self._objective(values, centroids, assignments))
            if stable:
                break
        else:
            logger.warning(
                f"{self.name} stopped after max_optimization_steps={self.max_optimization_steps} "
                f"without converging"
            )

        return assignments, centroids, history
