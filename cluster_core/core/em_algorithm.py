"""
EM (Expectation Maximization) Clustering Algorithm Implementation.

Soft clustering with a Gaussian mixture: every example gets a membership
probability for each of the ``k`` components, and its hard label is the
most probable component. Components either have a full covariance matrix
(correlated attributes) or a single variance (spherical).

EM is ideal for:
- Overlapping clusters
- When per-example membership probabilities are needed
- Elliptical clusters (with correlated attributes)
"""

import logging
import warnings
from enum import Enum
from typing import Dict, Any, Optional, Tuple
import numpy as np
from sklearn.exceptions import ConvergenceWarning
from sklearn.mixture import GaussianMixture

from cluster_core.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringResult,
    ClusteringConfig,
)
from cluster_core.core.cluster_model import SoftClusterModel
from cluster_core.utils.error_handling import (
    ClusteringError,
    ConfigurationError,
    InsufficientDataError,
)

logger = logging.getLogger(__name__)

# Floor for initial variances of constant attributes
MIN_VARIANCE = 1e-10


class InitialDistribution(str, Enum):
    """How the components are initialized before the first E-step."""

    RANDOM = "random"
    K_MEANS = "k_means"
    AVERAGE_PARAMETERS = "average_parameters"


def average_parameters(
    values: np.ndarray,
    k: int,
    rng: np.random.Generator,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Spread ``k`` means evenly between the attribute minima and maxima.

    Minimum, average and maximum are each jittered by up to half a slot
    width so restarts differ. Means below the average step up from the
    minimum, the middle mean (odd ``k``) sits on the average, the rest step
    up from the average to the maximum.

    Returns:
        (means k x d, variances k) with every variance >= MIN_VARIANCE
    """
    low, high = values.min(axis=0), values.max(axis=0)
    average = values.mean(axis=0)

    offset = (high - low) / (2 * k)
    low = low + offset * rng.uniform(-1.0, 1.0)
    average = average + offset * rng.uniform(-1.0, 1.0)
    high = high + offset * rng.uniform(-1.0, 1.0)

    half = k // 2
    lower_step = (average - low) / (half + 1)
    upper_step = (high - average) / (half + 1)

    means = np.empty((k, values.shape[1]), dtype=np.float64)
    variances = np.empty(k, dtype=np.float64)
    upper_index = 0
    for i in range(k):
        if i < half:
            means[i] = low + lower_step * (i + 1)
            variances[i] = lower_step @ lower_step
        elif i == half and k % 2 == 1:
            means[i] = average
            variances[i] = (lower_step @ lower_step + upper_step @ upper_step) / 2
        else:
            upper_index += 1
            means[i] = average + upper_step * upper_index
            variances[i] = upper_step @ upper_step

    return means, np.maximum(variances, MIN_VARIANCE)


class EMAlgorithm(BaseClusteringAlgorithm):
    """
    EM soft clustering implementation (Gaussian mixture).

    Best for: overlapping clusters, probabilistic memberships
    Strengths: soft assignments, elliptical clusters, log-likelihood for model choice
    Weaknesses: requires k, local optima, covariance estimates need enough examples
    """

    def __init__(self, config: ClusteringConfig, measure=None, monitor=None):
        """
        Initialize EM algorithm.

        Args:
            config: Clustering configuration
            measure: Unused by the mixture; accepted for a uniform interface
            monitor: Optional progress monitor
        """
        super().__init__(config, measure, monitor)

        self.k = int(config.params.get("k", 2))
        self.max_runs = int(config.params.get("max_runs", 5))
        self.max_optimization_steps = int(config.params.get("max_optimization_steps", 100))
        self.quality = float(config.params.get("quality", 1e-10))
        self.correlated_attributes = bool(config.params.get("correlated_attributes", True))
        self.reg_covar = float(config.params.get("reg_covar", 1e-6))

        if self.k < 1:
            raise ConfigurationError(f"k must be at least 1, got {self.k}")
        if self.max_runs < 1 or self.max_optimization_steps < 1:
            raise ConfigurationError("max_runs and max_optimization_steps must be positive")
        if self.quality <= 0 or self.reg_covar < 0:
            raise ConfigurationError("quality must be positive and reg_covar non-negative")

        distribution = str(config.params.get("initial_distribution", InitialDistribution.K_MEANS.value))
        try:
            self.initial_distribution = InitialDistribution(distribution.lower())
        except ValueError:
            raise ConfigurationError(
                f"Unknown initial distribution '{distribution}'",
                details={"supported": [d.value for d in InitialDistribution]},
            )

        logger.info(
            f"Initialized EM: k={self.k}, max_runs={self.max_runs}, "
            f"initial_distribution={self.initial_distribution.value}, "
            f"correlated_attributes={self.correlated_attributes}"
        )

    def cluster(
        self,
        data: Any,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ClusteringResult:
        """
        Perform EM clustering.

        Args:
            data: ExampleSet or array (N x D)
            metadata: Unused

        Returns:
            ClusteringResult with hard labels 0..k-1, membership probabilities
            and a SoftClusterModel

        Raises:
            InsufficientDataError: If k exceeds the number of examples
        """
        example_set = self._prepare(data)
        if self._is_empty(example_set):
            return self._empty_result(example_set)
        if self.k > example_set.size:
            raise InsufficientDataError(
                f"Cannot build {self.k} clusters from {example_set.size} examples",
                details={"k": self.k, "examples": example_set.size},
            )

        values = example_set.values
        logger.info(f"Starting EM clustering on {len(values)} examples")

        covariance_type = "full" if self.correlated_attributes else "spherical"
        rng = self._rng()
        best: Optional[Tuple[float, GaussianMixture]] = None

        self.monitor.set_total(self.max_runs, operation="em_runs")
        for run in range(self.max_runs):
            self._check_for_stop()
            mixture = self._fit(values, covariance_type, rng)
            log_likelihood = float(mixture.score(values)) * len(values)
            logger.debug(
                f"EM run {run}: log_likelihood={log_likelihood:.6f}, "
                f"iterations={mixture.n_iter_}, converged={mixture.converged_}"
            )
            if best is None or log_likelihood > best[0]:
                best = (log_likelihood, mixture)
            self.monitor.step()
        self.monitor.complete()

        log_likelihood, mixture = best
        if not mixture.converged_:
            logger.warning(
                f"EM stopped after max_optimization_steps={self.max_optimization_steps} "
                f"without reaching quality={self.quality}"
            )

        probabilities = mixture.predict_proba(values)
        # first maximum wins on ties
        labels = np.argmax(probabilities, axis=1).astype(np.int64)
        centroids = mixture.means_

        model = SoftClusterModel(
            self.k,
            labels,
            centroids,
            weights=mixture.weights_,
            covariances=mixture.covariances_,
            covariance_type=mixture.covariance_type,
            probabilities=probabilities,
            example_ids=example_set.ids,
        )

        quality_metrics = self._calculate_quality_metrics(values, labels, centroids)
        quality_metrics["log_likelihood"] = log_likelihood
        quality_metrics["bic"] = float(mixture.bic(values))
        quality_metrics["iterations"] = int(mixture.n_iter_)
        quality_metrics["converged"] = bool(mixture.converged_)

        logger.info(f"EM created {self.k} clusters (log_likelihood={log_likelihood:.4f})")

        return ClusteringResult(
            cluster_labels=labels,
            n_clusters=self.k,
            outlier_count=0,
            quality_metrics=quality_metrics,
            centroids=centroids,
            cluster_probabilities=probabilities,
            model=model,
        )

    # -------------------------------------------------------------------------

    def _create_mixture(
        self,
        values: np.ndarray,
        covariance_type: str,
        rng: np.random.Generator,
    ) -> GaussianMixture:
        params: Dict[str, Any] = {
            "n_components": self.k,
            "covariance_type": covariance_type,
            "tol": self.quality,
            "max_iter": self.max_optimization_steps,
            "reg_covar": self.reg_covar,
            "random_state": int(rng.integers(2**31 - 1)),
            "init_params": "random" if self.initial_distribution == InitialDistribution.RANDOM else "kmeans",
        }

        if self.initial_distribution == InitialDistribution.AVERAGE_PARAMETERS:
            means, variances = average_parameters(values, self.k, rng)
            params["means_init"] = means
            params["weights_init"] = np.full(self.k, 1.0 / self.k)
            if covariance_type == "full":
                identity = np.eye(values.shape[1])
                params["precisions_init"] = np.stack([identity / v for v in variances])
            else:
                params["precisions_init"] = 1.0 / variances

        return GaussianMixture(**params)

    def _fit(
        self,
        values: np.ndarray,
        covariance_type: str,
        rng: np.random.Generator,
    ) -> GaussianMixture:
        """
        Fit one restart.

        A full covariance matrix that cannot be estimated (singular data)
        falls back to spherical components for this restart.

        Raises:
            ClusteringError: If even the spherical mixture cannot be fitted
        """
        mixture = self._create_mixture(values, covariance_type, rng)
        try:
            with warnings.catch_warnings():
                # non-convergence is reported once for the selected run
                warnings.simplefilter("ignore", ConvergenceWarning)
                mixture.fit(values)
        except ValueError as e:
            if covariance_type == "full":
                logger.warning(f"Covariance estimation failed ({e}); using spherical components")
                return self._fit(values, "spherical", rng)
            raise ClusteringError(f"EM clustering failed: {e}", details={"k": self.k})
        return mixture
