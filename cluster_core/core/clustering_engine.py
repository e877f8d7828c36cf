"""
Clustering Engine - Orchestrates clustering operations.

Main entry point for clustering functionality.
Manages algorithm selection, parameter defaults from settings, execution,
and result handling.
"""

import logging
import uuid
from typing import Dict, Any, Optional, Type

from cluster_core.config.settings_loader import Settings, get_settings
from cluster_core.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringResult,
    ClusteringConfig,
)
from cluster_core.core.agglomerative_algorithm import AgglomerativeAlgorithm, Linkage
from cluster_core.core.dbscan_algorithm import DBSCANAlgorithm
from cluster_core.core.em_algorithm import EMAlgorithm, InitialDistribution
from cluster_core.core.kernel_kmeans_algorithm import KernelKMeansAlgorithm
from cluster_core.core.kmeans_algorithm import FastKMeansAlgorithm, KMeansAlgorithm
from cluster_core.core.kmedoids_algorithm import KMedoidsAlgorithm
from cluster_core.core.measures import DistanceMeasure, KernelType, MeasureType
from cluster_core.core.support_vector_algorithm import SupportVectorAlgorithm
from cluster_core.core.top_down_algorithm import TopDownAlgorithm
from cluster_core.core.xmeans_algorithm import XMeansAlgorithm
from cluster_core.utils.advanced_logging import LogContext, PerformanceLogger, get_logger
from cluster_core.utils.error_handling import InvalidAlgorithmError
from cluster_core.utils.progress import ProgressMonitor

logger = logging.getLogger(__name__)


class ClusteringEngine:
    """
    Main clustering engine that orchestrates different algorithms.

    Provides a unified interface for all clustering operations regardless
    of the underlying algorithm. Parameters not given by the caller are
    taken from the algorithm's section of the settings.
    """

    # Registry of available algorithms
    ALGORITHMS: Dict[str, Type[BaseClusteringAlgorithm]] = {
        "kmeans": KMeansAlgorithm,
        "fast_kmeans": FastKMeansAlgorithm,
        "kmedoids": KMedoidsAlgorithm,
        "kernel_kmeans": KernelKMeansAlgorithm,
        "xmeans": XMeansAlgorithm,
        "dbscan": DBSCANAlgorithm,
        "agglomerative": AgglomerativeAlgorithm,
        "top_down": TopDownAlgorithm,
        "support_vector": SupportVectorAlgorithm,
        "em": EMAlgorithm,
    }

    def __init__(self, settings: Optional[Settings] = None):
        """
        Initialize clustering engine.

        Args:
            settings: Settings to take defaults from (loaded lazily if None)
        """
        self._settings = settings
        logger.info("Initialized ClusteringEngine")

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @classmethod
    def get_algorithm_class(cls, algorithm: str) -> Type[BaseClusteringAlgorithm]:
        """
        Look up an algorithm by name.

        Raises:
            InvalidAlgorithmError: If the algorithm is not registered
        """
        name = str(algorithm).lower()
        if name not in cls.ALGORITHMS:
            raise InvalidAlgorithmError(
                f"Unsupported algorithm '{algorithm}'. Supported: {list(cls.ALGORITHMS.keys())}",
                details={"algorithm": algorithm, "supported": list(cls.ALGORITHMS.keys())},
            )
        return cls.ALGORITHMS[name]

    @classmethod
    def available_algorithms(cls) -> Dict[str, str]:
        """Algorithm names with the first line of their class docstring."""
        return {
            name: (algorithm_class.__doc__ or "").strip().splitlines()[0]
            for name, algorithm_class in cls.ALGORITHMS.items()
        }

    def build_config(
        self,
        algorithm: str,
        algorithm_params: Optional[Dict[str, Any]] = None,
        random_seed: Optional[int] = None,
    ) -> ClusteringConfig:
        """
        Merge caller parameters over the settings defaults.

        Args:
            algorithm: Algorithm name
            algorithm_params: Overrides for the algorithm section of the settings
            random_seed: Overrides clustering.random_seed

        Returns:
            ClusteringConfig ready for the algorithm class
        """
        name = str(algorithm).lower()
        clustering = self.settings.clustering

        params = self.settings.algorithm_defaults(name)
        params.setdefault("measure", clustering.measure.name)
        params.update(algorithm_params or {})

        return ClusteringConfig(
            algorithm_name=name,
            params=params,
            random_seed=random_seed if random_seed is not None else clustering.random_seed,
            legacy_empty_check=clustering.legacy_empty_check,
        )

    def create_algorithm(
        self,
        algorithm: str,
        algorithm_params: Optional[Dict[str, Any]] = None,
        random_seed: Optional[int] = None,
        measure: Optional[DistanceMeasure] = None,
        monitor: Optional[ProgressMonitor] = None,
    ) -> BaseClusteringAlgorithm:
        """Instantiate a configured algorithm without running it."""
        algorithm_class = self.get_algorithm_class(algorithm)
        config = self.build_config(algorithm, algorithm_params, random_seed)
        if monitor is None:
            monitor = ProgressMonitor(log_interval=self.settings.performance.progress_log_interval)
        return algorithm_class(config, measure, monitor)

    def cluster(
        self,
        data: Any,
        algorithm: Optional[str] = None,
        algorithm_params: Optional[Dict[str, Any]] = None,
        random_seed: Optional[int] = None,
        measure: Optional[DistanceMeasure] = None,
        monitor: Optional[ProgressMonitor] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform clustering using the specified algorithm.

        Args:
            data: ExampleSet or 2-D array (N x D)
            algorithm: Algorithm name (defaults to clustering.default_algorithm)
            algorithm_params: Algorithm-specific parameters
            random_seed: Seed for every random choice of the run
            measure: Distance measure instance (overrides the ``measure`` param)
            monitor: Progress monitor, e.g. to cancel the run from another thread
            metadata: Passed through to the algorithm

        Returns:
            ClusteringResult with labels, metrics and the cluster model

        Raises:
            InvalidAlgorithmError: If algorithm is not supported
            ConfigurationError: If a parameter is invalid
            ClusteringError: If the data cannot be clustered
        """
        algorithm = (algorithm or self.settings.clustering.default_algorithm).lower()
        clusterer = self.create_algorithm(algorithm, algorithm_params, random_seed, measure, monitor)

        run_id = f"{algorithm}-{uuid.uuid4().hex[:8]}"
        with LogContext.run_context(run_id):
            perf_logger = get_logger(__name__)
            size = len(data) if hasattr(data, "__len__") else None
            logger.info(f"Starting {algorithm} clustering (run {run_id})")

            with PerformanceLogger(
                f"clustering_{algorithm}",
                logger=perf_logger,
                item_count=size,
                track_memory=self.settings.performance.track_memory_usage,
                algorithm=algorithm,
            ):
                result = clusterer.cluster(data, metadata)

        logger.info(
            f"{algorithm} clustering complete: {result.n_clusters} clusters, "
            f"{result.outlier_count} outliers"
        )

        return result

    def validate_clustering_config(
        self,
        algorithm: str,
        params: Dict[str, Any],
    ) -> Dict[str, str]:
        """
        Validate clustering configuration.

        Args:
            algorithm: Algorithm name
            params: Algorithm parameters

        Returns:
            Dictionary of validation errors (empty if valid)
        """
        errors = {}
        algorithm = str(algorithm).lower()

        if algorithm not in self.ALGORITHMS:
            errors["algorithm"] = f"Unsupported algorithm '{algorithm}'"
            return errors

        measure = params.get("measure")
        if measure is not None and not isinstance(measure, DistanceMeasure):
            if str(measure).lower() not in {m.value for m in MeasureType}:
                errors["measure"] = f"Unknown distance measure '{measure}'"

        kernel_type = params.get("kernel_type")
        if kernel_type is not None and str(kernel_type).lower() not in {k.value for k in KernelType}:
            errors["kernel_type"] = f"Unknown kernel type '{kernel_type}'"

        # Algorithm-specific validation
        if algorithm in ("kmeans", "fast_kmeans", "kmedoids", "kernel_kmeans"):
            if params.get("k", 2) < 1:
                errors["k"] = "Must be >= 1"
            if params.get("max_runs", 1) < 1:
                errors["max_runs"] = "Must be >= 1"
            if params.get("max_optimization_steps", 1) < 1:
                errors["max_optimization_steps"] = "Must be >= 1"

        elif algorithm == "xmeans":
            k_min = params.get("k_min", 2)
            k_max = params.get("k_max", 60)
            if k_min < 1:
                errors["k_min"] = "Must be >= 1"
            if k_max < k_min:
                errors["k_max"] = "Must be >= k_min"

        elif algorithm == "dbscan":
            if params.get("epsilon", 1.0) < 0:
                errors["epsilon"] = "Must be >= 0"
            if params.get("min_points", 5) < 1:
                errors["min_points"] = "Must be >= 1"

        elif algorithm == "agglomerative":
            linkage = str(params.get("linkage", "single")).lower()
            if linkage not in {item.value for item in Linkage}:
                errors["linkage"] = f"Unknown linkage '{linkage}'"
            if params.get("n_clusters", 2) < 1:
                errors["n_clusters"] = "Must be >= 1"

        elif algorithm == "top_down":
            if params.get("max_leaf_size", 1) < 1:
                errors["max_leaf_size"] = "Must be >= 1"
            if params.get("max_depth", 5) < 1:
                errors["max_depth"] = "Must be >= 1"
            sub_algorithm = str(params.get("sub_algorithm", "kmeans")).lower()
            if sub_algorithm not in self.ALGORITHMS or sub_algorithm == "top_down":
                errors["sub_algorithm"] = f"Invalid sub-clusterer '{sub_algorithm}'"

        elif algorithm == "support_vector":
            if params.get("min_points", 2) < 1:
                errors["min_points"] = "Must be >= 1"
            if not 0.0 <= params.get("p", 0.0) <= 1.0:
                errors["p"] = "Must be in [0, 1]"
            if params.get("number_sample_points", 20) < 1:
                errors["number_sample_points"] = "Must be >= 1"

        elif algorithm == "em":
            if params.get("k", 2) < 1:
                errors["k"] = "Must be >= 1"
            if params.get("max_runs", 1) < 1:
                errors["max_runs"] = "Must be >= 1"
            if params.get("quality", 1e-10) <= 0:
                errors["quality"] = "Must be > 0"
            distribution = str(params.get("initial_distribution", "k_means")).lower()
            if distribution not in {d.value for d in InitialDistribution}:
                errors["initial_distribution"] = f"Unknown initial distribution '{distribution}'"

        return errors
