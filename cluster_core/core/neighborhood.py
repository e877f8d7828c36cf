"""
Neighborhood expansion shared by density-based and support-vector clustering.

Both algorithms grow clusters the same way and differ only in how the
neighbors of a row are found, which is passed in as ``region_query``.
"""

from collections import deque
from typing import Callable, Optional, Tuple

import numpy as np

from cluster_core.utils.progress import ProgressMonitor

UNASSIGNED = -1
NOISE = 0

RegionQuery = Callable[[int, np.ndarray], np.ndarray]


def expand_clusters(
    n: int,
    region_query: RegionQuery,
    min_points: int,
    monitor: Optional[ProgressMonitor] = None,
) -> Tuple[np.ndarray, int]:
    """
    Grow clusters from core rows in row order.

    A row whose neighborhood holds at least ``min_points`` rows is a core
    row and opens a new cluster (ids 1, 2, ... in discovery order). Its
    neighbors join the cluster; unassigned neighbors are queued and, if they
    are core rows themselves, pull in their own neighbors. Rows that are not
    core and not reached from a core row stay noise (0). A noise row can
    still be absorbed by a later cluster.

    Args:
        n: Number of rows
        region_query: Called as ``region_query(row, assignments)``; returns
            the row indices of the neighborhood
        min_points: Minimum neighborhood size of a core row
        monitor: Optional progress monitor checked once per row

    Returns:
        Tuple of (assignments, number of clusters)
    """
    assignments = np.full(n, UNASSIGNED, dtype=np.int64)
    cluster_id = NOISE

    for i in range(n):
        if monitor is not None:
            monitor.check_for_stop()
        if assignments[i] != UNASSIGNED:
            continue

        neighbors = region_query(i, assignments)
        if len(neighbors) < min_points:
            assignments[i] = NOISE
            continue

        cluster_id += 1
        assignments[i] = cluster_id
        queue = deque()
        _absorb(neighbors, assignments, cluster_id, queue)

        while queue:
            j = queue.popleft()
            reachable = region_query(j, assignments)
            if len(reachable) >= min_points:
                _absorb(reachable, assignments, cluster_id, queue)

    return assignments, cluster_id


def _absorb(neighbors: np.ndarray, assignments: np.ndarray, cluster_id: int, queue: deque) -> None:
    for j in neighbors:
        j = int(j)
        if assignments[j] == UNASSIGNED:
            queue.append(j)
        if assignments[j] in (UNASSIGNED, NOISE):
            assignments[j] = cluster_id
