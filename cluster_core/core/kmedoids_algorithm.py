"""
K-Medoids Clustering Algorithm Implementation.

Like k-means, but every cluster is represented by one of its own examples
(the medoid) instead of a mean. Works with any distance measure, including
non-metric ones, at the price of O(n^2) distance computations per step.
"""

import logging
from typing import List, Tuple
import numpy as np

from cluster_core.core.kmeans_algorithm import KMeansAlgorithm

logger = logging.getLogger(__name__)


class KMedoidsAlgorithm(KMeansAlgorithm):
    """
    K-Medoids clustering implementation.

    Best for: arbitrary distance measures, robustness to outliers
    Weaknesses: quadratic cost per optimization step
    """

    def _optimize(
        self,
        values: np.ndarray,
        centroids: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray, List[float]]:
        history: List[float] = []
        medoids = centroids.copy()
        assignments = np.zeros(len(values), dtype=np.int64)

        for step in range(self.max_optimization_steps):
            self._check_for_stop()
            assignments = np.argmin(self._distances(values, medoids), axis=1)

            new_medoids = medoids.copy()
            for c in range(len(medoids)):
                members = values[assignments == c]
                if len(members) == 0:
                    continue
                # Candidate minimizing the summed distance to all members
                costs = np.array(
                    [np.sum(self.measure.distances_to(candidate, members)) for candidate in members]
                )
                new_medoids[c] = members[int(np.argmin(costs))]

            stable = np.array_equal(new_medoids, medoids)
            medoids = new_medoids
            history.append(self._objective(values, medoids, assignments))
            if stable:
                break
        else:
            logger.warning(
                f"{self.name} stopped after max_optimization_steps={self.max_optimization_steps} "
                f"without converging"
            )

        # Final assignment to the settled medoids
        assignments = np.argmin(self._distances(values, medoids), axis=1)
        return assignments, medoids, history
