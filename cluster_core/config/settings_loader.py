"""
settings_loader.py

Configuration management for the cluster-core engine.
Loads and validates settings from YAML configuration with environment variable substitution.

Features:
- YAML configuration loading with validation
- Environment variable substitution (${VAR_NAME} syntax)
- Singleton pattern for global settings access
- Type-safe configuration with Pydantic models
- Per-algorithm default parameters
"""

import os
import re
import yaml
import logging
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, field_validator
from pathlib import Path

logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models (Pydantic)
# =============================================================================

class ServiceSettings(BaseModel):
    """General service settings."""
    name: str = Field(default="cluster-core", description="Service name")
    version: str = Field(default="1.0.0", description="Service version")
    environment: str = Field(default="production", description="Environment (development, staging, production)")


class MeasureSettings(BaseModel):
    """Default distance measure."""
    name: str = Field(default="euclidean", description="Distance measure name")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        allowed = {"euclidean", "squared_euclidean", "manhattan", "chebychev", "cosine", "kernel_euclidean"}
        if v.lower() not in allowed:
            raise ValueError(f"measure must be one of {sorted(allowed)}")
        return v.lower()


class KMeansSettings(BaseModel):
    """K-Means clustering algorithm settings."""
    k: int = Field(default=2, ge=1, description="Number of clusters")
    max_runs: int = Field(default=10, ge=1, description="Number of restarts")
    max_optimization_steps: int = Field(default=100, ge=1, description="Maximum steps per run")
    use_kpp: bool = Field(default=False, description="Use k-means++ seeding")


class FastKMeansSettings(KMeansSettings):
    """Elkan-accelerated K-Means settings."""


class KMedoidsSettings(KMeansSettings):
    """K-Medoids settings."""


class KernelKMeansSettings(BaseModel):
    """Kernel K-Means settings."""
    k: int = Field(default=2, ge=1, description="Number of clusters")
    max_runs: int = Field(default=1, ge=1, description="Number of restarts")
    max_optimization_steps: int = Field(default=100, ge=1, description="Maximum steps")
    kernel_type: str = Field(default="radial", description="Kernel (dot, radial, polynomial, neural)")
    kernel_gamma: float = Field(default=1.0, gt=0.0, description="Radial kernel gamma")
    kernel_degree: int = Field(default=2, ge=1, description="Polynomial kernel degree")
    kernel_a: float = Field(default=1.0, description="Neural kernel slope")
    kernel_b: float = Field(default=0.0, description="Neural kernel intercept")
    use_weights: bool = Field(default=False, description="Use example weights")


class XMeansSettings(BaseModel):
    """X-Means settings."""
    k_min: int = Field(default=2, ge=1, description="Lower bound of clusters")
    k_max: int = Field(default=60, ge=1, description="Upper bound of clusters")
    max_runs: int = Field(default=10, ge=1, description="Restarts for each inner k-means")
    max_optimization_steps: int = Field(default=100, ge=1, description="Maximum steps per k-means")
    use_kpp: bool = Field(default=False, description="Use k-means++ seeding")
    clustering_algorithm: str = Field(default="fast_kmeans", description="Inner k-means variant (kmeans or fast_kmeans)")


class DBSCANSettings(BaseModel):
    """DBSCAN settings."""
    epsilon: float = Field(default=1.0, gt=0.0, description="Neighborhood radius")
    min_points: int = Field(default=5, ge=1, description="Minimum neighborhood size of a core point")


class AgglomerativeSettings(BaseModel):
    """Agglomerative clustering algorithm settings."""
    linkage: str = Field(default="single", description="Linkage method (single, complete, average)")
    n_clusters: int = Field(default=2, ge=1, description="Number of clusters of the flat cut")

    @field_validator("linkage")
    @classmethod
    def validate_linkage(cls, v: str) -> str:
        if v.lower() not in {"single", "complete", "average"}:
            raise ValueError("linkage must be single, complete or average")
        return v.lower()


class TopDownSettings(BaseModel):
    """Top-down clustering settings."""
    max_leaf_size: int = Field(default=1, ge=1, description="Stop splitting subsets of this size")
    max_depth: int = Field(default=5, ge=1, description="Maximum tree depth")
    sub_algorithm: str = Field(default="kmeans", description="Flat clusterer used for splitting")
    sub_params: Dict[str, Any] = Field(default_factory=lambda: {"k": 2}, description="Parameters of the flat clusterer")
    n_clusters: int = Field(default=2, ge=1, description="Number of clusters of the flat cut")


class SupportVectorSettings(BaseModel):
    """Support vector clustering settings."""
    min_points: int = Field(default=2, ge=1, description="Minimum neighbors of a core point")
    kernel_type: str = Field(default="radial", description="Kernel (dot, radial, polynomial, neural)")
    kernel_gamma: float = Field(default=1.0, gt=0.0, description="Radial kernel gamma")
    kernel_degree: int = Field(default=2, ge=1, description="Polynomial kernel degree")
    kernel_a: float = Field(default=1.0, description="Neural kernel slope")
    kernel_b: float = Field(default=0.0, description="Neural kernel intercept")
    kernel_cache: int = Field(default=200, ge=1, description="Kernel row cache size in MB")
    convergence_epsilon: float = Field(default=1e-3, gt=0.0, description="KKT tolerance")
    max_iterations: int = Field(default=100000, ge=1, description="Maximum optimizer iterations")
    p: float = Field(default=0.0, ge=0.0, le=1.0, description="Expected outlier fraction")
    r: float = Field(default=-1.0, description="Radius override (negative uses the fitted radius)")
    number_sample_points: int = Field(default=20, ge=1, description="Samples per segment in the adjacency test")


class EMSettings(BaseModel):
    """EM (Gaussian mixture) soft clustering settings."""
    k: int = Field(default=2, ge=1, description="Number of mixture components")
    max_runs: int = Field(default=5, ge=1, description="Number of restarts")
    max_optimization_steps: int = Field(default=100, ge=1, description="Maximum EM iterations per run")
    quality: float = Field(default=1e-10, gt=0.0, description="Log-likelihood change that ends a run")
    initial_distribution: str = Field(default="k_means", description="Initialization (random, k_means, average_parameters)")
    correlated_attributes: bool = Field(default=True, description="Full covariance matrices instead of one variance")
    reg_covar: float = Field(default=1e-6, ge=0.0, description="Added to covariance diagonals")

    @field_validator("initial_distribution")
    @classmethod
    def validate_initial_distribution(cls, v: str) -> str:
        if v.lower() not in {"random", "k_means", "average_parameters"}:
            raise ValueError("initial_distribution must be random, k_means or average_parameters")
        return v.lower()


class ClusteringAlgorithmsSettings(BaseModel):
    """Algorithm-specific settings."""
    kmeans: KMeansSettings = Field(default_factory=KMeansSettings)
    fast_kmeans: FastKMeansSettings = Field(default_factory=FastKMeansSettings)
    kmedoids: KMedoidsSettings = Field(default_factory=KMedoidsSettings)
    kernel_kmeans: KernelKMeansSettings = Field(default_factory=KernelKMeansSettings)
    xmeans: XMeansSettings = Field(default_factory=XMeansSettings)
    dbscan: DBSCANSettings = Field(default_factory=DBSCANSettings)
    agglomerative: AgglomerativeSettings = Field(default_factory=AgglomerativeSettings)
    top_down: TopDownSettings = Field(default_factory=TopDownSettings)
    support_vector: SupportVectorSettings = Field(default_factory=SupportVectorSettings)
    em: EMSettings = Field(default_factory=EMSettings)


class ClusteringSettings(BaseModel):
    """Main clustering configuration."""
    default_algorithm: str = Field(default="kmeans", description="Default clustering algorithm")
    random_seed: Optional[int] = Field(default=None, description="Seed for all random choices")
    legacy_empty_check: bool = Field(default=False, description="Downgrade empty-input errors to warnings")
    measure: MeasureSettings = Field(default_factory=MeasureSettings)
    algorithms: ClusteringAlgorithmsSettings = Field(default_factory=ClusteringAlgorithmsSettings)


class FileLoggingSettings(BaseModel):
    """File logging configuration."""
    enabled: bool = Field(default=False, description="Enable file logging")
    path: str = Field(default="logs/cluster_core.log", description="Log file path")
    max_size_mb: int = Field(default=100, ge=1, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, description="Number of backup files")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format (json or console)")
    file: FileLoggingSettings = Field(default_factory=FileLoggingSettings)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class PerformanceSettings(BaseModel):
    """Performance tracking configuration."""
    track_clustering_time: bool = Field(default=True, description="Track clustering time")
    track_memory_usage: bool = Field(default=True, description="Track memory usage")
    progress_log_interval: int = Field(default=100, ge=1, description="Log progress every N loop iterations")


class Settings(BaseModel):
    """Root configuration model."""
    service: ServiceSettings = Field(default_factory=ServiceSettings)
    clustering: ClusteringSettings = Field(default_factory=ClusteringSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    performance: PerformanceSettings = Field(default_factory=PerformanceSettings)

    def algorithm_defaults(self, algorithm_name: str) -> Dict[str, Any]:
        """Return the default parameters of one algorithm as a plain dict."""
        section = getattr(self.clustering.algorithms, algorithm_name.lower(), None)
        if section is None:
            return {}
        return section.model_dump()


# =============================================================================
# Configuration Manager (Singleton)
# =============================================================================

class ConfigManager:
    """
    Singleton configuration manager that loads and caches settings.

    Features:
    - Loads YAML configuration from file
    - Substitutes environment variables using ${VAR_NAME} syntax
    - Validates configuration using Pydantic models
    - Falls back to built-in defaults when no settings file is present
    """

    _instance: Optional['ConfigManager'] = None
    _settings: Optional[Settings] = None

    def __new__(cls):
        """Ensure singleton pattern."""
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    @classmethod
    def load_config(cls, config_path: Optional[str] = None) -> Settings:
        """
        Load configuration from YAML file with environment variable substitution.

        Args:
            config_path: Path to configuration file. If None, searches the default
                locations and uses built-in defaults when none exists.

        Returns:
            Settings object with validated configuration

        Raises:
            FileNotFoundError: If an explicit configuration file is not found
            ValueError: If configuration is invalid
        """
        if cls._settings is not None and config_path is None:
            return cls._settings

        # Determine config path
        if config_path is None:
            possible_paths = [
                Path(os.getenv("CONFIG_PATH", "config/settings.yaml")),
                Path("config/settings.yaml"),
                Path("../config/settings.yaml"),
            ]

            config_path_obj = None
            for path in possible_paths:
                if path.exists():
                    config_path_obj = path
                    break

            if config_path_obj is None:
                logger.info("No configuration file found, using built-in defaults")
                cls._settings = Settings()
                return cls._settings
        else:
            config_path_obj = Path(config_path)
            if not config_path_obj.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")

        logger.info(f"Loading configuration from: {config_path_obj}")

        # Load YAML file
        try:
            with open(config_path_obj, 'r') as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to load YAML configuration: {e}")
            raise ValueError(f"Invalid YAML configuration: {e}")

        # Substitute environment variables
        config_dict = cls._substitute_env_vars(raw_config)

        # Validate and create Settings object
        try:
            cls._settings = Settings(**config_dict)
            logger.info("Configuration loaded and validated successfully")
            return cls._settings
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            raise ValueError(f"Invalid configuration: {e}")

    @classmethod
    def get_settings(cls) -> Settings:
        """
        Get cached settings. Loads from default path if not already loaded.

        Returns:
            Settings object
        """
        if cls._settings is None:
            cls.load_config()
        return cls._settings

    @classmethod
    def _substitute_env_vars(cls, config: Any) -> Any:
        """
        Recursively substitute environment variables in configuration.

        Supports ${VAR_NAME} and ${VAR_NAME:default_value} syntax.

        Args:
            config: Configuration dictionary or value

        Returns:
            Configuration with substituted values
        """
        if isinstance(config, dict):
            return {k: cls._substitute_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [cls._substitute_env_vars(item) for item in config]
        elif isinstance(config, str):
            # Match ${VAR_NAME} or ${VAR_NAME:default}
            pattern = r'\$\{([^}:]+)(?::([^}]*))?\}'

            def replace_var(match):
                var_name = match.group(1)
                default_value = match.group(2) if match.group(2) is not None else ""
                return os.getenv(var_name, default_value)

            return re.sub(pattern, replace_var, config)
        else:
            return config

    @classmethod
    def reload_config(cls, config_path: Optional[str] = None) -> Settings:
        """
        Reload configuration from file.

        Args:
            config_path: Path to configuration file

        Returns:
            Reloaded Settings object
        """
        cls._settings = None
        return cls.load_config(config_path)

    @classmethod
    def reset(cls) -> None:
        """Forget cached settings."""
        cls._settings = None


# =============================================================================
# Convenience Functions
# =============================================================================

def get_settings() -> Settings:
    """
    Get application settings (convenience function).

    Returns:
        Settings object
    """
    return ConfigManager.get_settings()
