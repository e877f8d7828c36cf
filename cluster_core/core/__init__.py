"""
Core clustering module.

Exports:
- ClusteringEngine: Main orchestration class
- BaseClusteringAlgorithm: Base class for algorithms
- ClusteringResult: Result container
- ClusteringConfig: Configuration container
- ExampleSet, DistanceMatrix and the cluster models
- Individual algorithm implementations
"""

from cluster_core.core.base_clustering import (
    BaseClusteringAlgorithm,
    ClusteringResult,
    ClusteringConfig,
)
from cluster_core.core.example_set import ExampleSet
from cluster_core.core.distance_matrix import DistanceMatrix
from cluster_core.core.cluster_model import (
    CentroidClusterModel,
    ClusterModel,
    HierarchicalClusterModel,
    HierarchicalClusterNode,
)
from cluster_core.core.clustering_engine import ClusteringEngine
from cluster_core.core.kmeans_algorithm import KMeansAlgorithm, FastKMeansAlgorithm
from cluster_core.core.kmedoids_algorithm import KMedoidsAlgorithm
from cluster_core.core.kernel_kmeans_algorithm import KernelKMeansAlgorithm
from cluster_core.core.xmeans_algorithm import XMeansAlgorithm
from cluster_core.core.dbscan_algorithm import DBSCANAlgorithm
from cluster_core.core.agglomerative_algorithm import AgglomerativeAlgorithm
from cluster_core.core.top_down_algorithm import TopDownAlgorithm
from cluster_core.core.support_vector_algorithm import SupportVectorAlgorithm

__all__ = [
    "ClusteringEngine",
    "BaseClusteringAlgorithm",
    "ClusteringResult",
    "ClusteringConfig",
    "ExampleSet",
    "DistanceMatrix",
    "ClusterModel",
    "CentroidClusterModel",
    "HierarchicalClusterModel",
    "HierarchicalClusterNode",
    "KMeansAlgorithm",
    "FastKMeansAlgorithm",
    "KMedoidsAlgorithm",
    "KernelKMeansAlgorithm",
    "XMeansAlgorithm",
    "DBSCANAlgorithm",
    "AgglomerativeAlgorithm",
    "TopDownAlgorithm",
    "SupportVectorAlgorithm",
]
