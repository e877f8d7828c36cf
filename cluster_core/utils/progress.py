"""
Progress and cancellation support for long-running clustering runs.

Algorithms call ``check_for_stop()`` from their outer loops; a host thread
may request cancellation at any time with ``cancel()``.
"""

import threading
from typing import Optional

from cluster_core.utils.advanced_logging import BatchLogger, get_logger
from cluster_core.utils.error_handling import ClusteringCancelledError


logger = get_logger(__name__)


class ProgressMonitor:
    """
    Cooperative cancellation flag plus optional progress reporting.

    Example:
        monitor = ProgressMonitor()
        monitor.set_total(100, operation="kmeans_steps")
        for step in range(100):
            monitor.check_for_stop()
            ...
            monitor.step()
    """

    def __init__(self, log_interval: int = 100):
        self._cancelled = threading.Event()
        self._log_interval = log_interval
        self._batch: Optional[BatchLogger] = None
        self.checks = 0

    def cancel(self) -> None:
        """Request the running algorithm to stop at its next check."""
        logger.info("cancellation_requested")
        self._cancelled.set()

    def reset(self) -> None:
        self._cancelled.clear()
        self._batch = None
        self.checks = 0

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def check_for_stop(self) -> None:
        """
        Raise if cancellation was requested.

        Raises:
            ClusteringCancelledError: If cancel() has been called
        """
        self.checks += 1
        if self._cancelled.is_set():
            raise ClusteringCancelledError(
                "Clustering run cancelled",
                details={"checks": self.checks},
            )

    def set_total(self, total: int, operation: str = "clustering") -> None:
        """Start progress tracking for a loop of ``total`` units."""
        self._batch = BatchLogger(
            total_items=total,
            operation=operation,
            log_interval=self._log_interval,
        )

    def step(self, count: int = 1) -> None:
        if self._batch is not None:
            self._batch.update(count)

    def complete(self) -> None:
        if self._batch is not None:
            self._batch.complete()
            self._batch = None
