"""
Structured logging for clustering runs.

structlog is layered over stdlib logging, so module loggers created with
``logging.getLogger(__name__)`` and structlog loggers share one output.
Every event logged inside ``LogContext.run_context`` carries the run id of
the clustering call that produced it.
"""

import contextlib
import functools
import logging
import logging.handlers
import time
from pathlib import Path
from typing import Any, Callable, Optional

import psutil
import structlog
from structlog.types import EventDict


class LogContext:
    """Run id of the clustering call currently executing."""

    _run_id: Optional[str] = None

    @classmethod
    def get_run_id(cls) -> Optional[str]:
        return cls._run_id

    @classmethod
    @contextlib.contextmanager
    def run_context(cls, run_id: str):
        """
        Tag log events with ``run_id`` until the block exits.

        Nested runs (sub-clusterers of top-down clustering) restore the
        outer id on exit.
        """
        outer = cls._run_id
        cls._run_id = run_id
        try:
            yield
        finally:
            cls._run_id = outer


def _tag_event(service_name: str):
    def processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["service"] = service_name
        run_id = LogContext.get_run_id()
        if run_id is not None:
            event_dict.setdefault("run_id", run_id)
        return event_dict

    return processor


def configure_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    service_name: str = "cluster-core",
    max_size_mb: int = 100,
    backup_count: int = 5,
) -> None:
    """
    Route stdlib and structlog output through one set of handlers.

    Args:
        log_level: Level name (DEBUG, INFO, ...)
        log_format: "json" for machine-readable lines, anything else for console
        log_file: Also write to this file, rotated at ``max_size_mb``
        service_name: Value of the ``service`` field on every event
        max_size_mb: Rotation size of the log file
        backup_count: Rotated files kept
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", level=level)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        handler.setLevel(level)
        logging.root.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            _tag_event(service_name),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """structlog logger bound to the current run id, if any."""
    logger = structlog.get_logger(name)
    run_id = LogContext.get_run_id()
    return logger.bind(run_id=run_id) if run_id else logger


class PerformanceLogger:
    """
    Time a block and log its duration, throughput and resident memory.

    Example:
        with PerformanceLogger("clustering_kmeans", item_count=len(values)):
            algorithm.cluster(values)
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[structlog.BoundLogger] = None,
        log_level: str = "info",
        item_count: Optional[int] = None,
        track_memory: bool = True,
        **context: Any,
    ):
        self.operation = operation
        self.logger = logger or get_logger(__name__)
        self.log_level = log_level
        self.item_count = item_count
        self.track_memory = track_memory
        self.context = context
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self._rss_before: Optional[int] = None

    def __enter__(self) -> "PerformanceLogger":
        if self.track_memory:
            self._rss_before = psutil.Process().memory_info().rss
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.end_time = time.perf_counter()
        fields = dict(self.context, operation=self.operation, duration_seconds=round(self.elapsed_time, 3))

        if self.item_count and self.elapsed_time > 0:
            fields["item_count"] = self.item_count
            fields["items_per_second"] = round(self.item_count / self.elapsed_time, 2)

        if self._rss_before is not None:
            rss = psutil.Process().memory_info().rss
            fields["memory_delta_mb"] = round((rss - self._rss_before) / 2**20, 1)

        if exc_type is None:
            getattr(self.logger, self.log_level)("operation_completed", **fields)
        else:
            self.logger.error("operation_failed", error_type=exc_type.__name__, error=str(exc_val), **fields)

    @property
    def elapsed_time(self) -> float:
        """Seconds since entering the block (up to exit, once exited)."""
        if self.start_time is None:
            return 0.0
        end = self.end_time if self.end_time is not None else time.perf_counter()
        return end - self.start_time


def timed(operation: Optional[str] = None, log_level: str = "info") -> Callable:
    """Decorator logging the duration of every call of the wrapped function."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with PerformanceLogger(operation or func.__name__, log_level=log_level, track_memory=False):
                return func(*args, **kwargs)

        return wrapper

    return decorator


class BatchLogger:
    """Progress of a long loop, logged every ``log_interval`` units."""

    def __init__(
        self,
        total_items: int,
        operation: str,
        log_interval: int = 100,
        logger: Optional[structlog.BoundLogger] = None,
    ):
        self.total_items = total_items
        self.operation = operation
        self.log_interval = max(1, log_interval)
        self.logger = logger or get_logger(__name__)
        self.processed_items = 0
        self.last_log_count = 0
        self._started = time.perf_counter()

    def update(self, count: int = 1) -> None:
        self.processed_items += count
        due = self.processed_items - self.last_log_count >= self.log_interval
        if due or self.processed_items >= self.total_items:
            elapsed = time.perf_counter() - self._started
            self.logger.debug(
                "batch_progress",
                operation=self.operation,
                processed=self.processed_items,
                total=self.total_items,
                elapsed_seconds=round(elapsed, 1),
            )
            self.last_log_count = self.processed_items

    def complete(self) -> None:
        elapsed = time.perf_counter() - self._started
        rate = self.processed_items / elapsed if elapsed > 0 else 0.0
        self.logger.info(
            "batch_completed",
            operation=self.operation,
            total_items=self.processed_items,
            duration_seconds=round(elapsed, 3),
            items_per_second=round(rate, 2),
        )
