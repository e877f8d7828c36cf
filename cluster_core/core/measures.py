"""
Distance Measures and Kernels.

Closed family of distance measures and kernel functions used by the
clusterers. Measures are selected by name through ``create_measure`` and
kernels by type through ``create_kernel``; both are chosen once per run.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional

import numpy as np

from cluster_core.utils.error_handling import ConfigurationError


class MeasureType(str, Enum):
    """Supported distance measures."""

    EUCLIDEAN = "euclidean"
    SQUARED_EUCLIDEAN = "squared_euclidean"
    MANHATTAN = "manhattan"
    CHEBYCHEV = "chebychev"
    COSINE = "cosine"
    KERNEL_EUCLIDEAN = "kernel_euclidean"


class KernelType(str, Enum):
    """Supported kernel functions."""

    DOT = "dot"
    RADIAL = "radial"
    POLYNOMIAL = "polynomial"
    NEURAL = "neural"


# =============================================================================
# Kernels
# =============================================================================


class Kernel(ABC):
    """Positive semi-definite similarity K(a, b)."""

    kernel_type: KernelType

    @abstractmethod
    def matrix(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        """
        Kernel values between every row of ``a`` and every row of ``b``.

        Args:
            a: Matrix (N x D)
            b: Matrix (M x D)

        Returns:
            Matrix (N x M)
        """

    def calculate(self, x: np.ndarray, y: np.ndarray) -> float:
        return float(self.matrix(np.atleast_2d(x), np.atleast_2d(y))[0, 0])

    def row(self, x: np.ndarray, points: np.ndarray) -> np.ndarray:
        """Kernel values between one vector and every row of ``points``."""
        return self.matrix(np.atleast_2d(x), points)[0]

    def diagonal(self, points: np.ndarray) -> np.ndarray:
        """K(x, x) for every row of ``points``."""
        return np.array([self.calculate(p, p) for p in points], dtype=np.float64)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class DotKernel(Kernel):
    kernel_type = KernelType.DOT

    def matrix(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return a @ b.T

    def diagonal(self, points: np.ndarray) -> np.ndarray:
        return np.einsum("ij,ij->i", points, points)


class RadialKernel(Kernel):
    """exp(-gamma * ||a - b||^2)"""

    kernel_type = KernelType.RADIAL

    def __init__(self, gamma: float = 1.0):
        self.gamma = gamma

    def matrix(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        sq = (
            np.einsum("ij,ij->i", a, a)[:, None]
            + np.einsum("ij,ij->i", b, b)[None, :]
            - 2.0 * (a @ b.T)
        )
        np.maximum(sq, 0.0, out=sq)
        return np.exp(-self.gamma * sq)

    def diagonal(self, points: np.ndarray) -> np.ndarray:
        return np.ones(len(points), dtype=np.float64)

    def __repr__(self) -> str:
        return f"RadialKernel(gamma={self.gamma})"


class PolynomialKernel(Kernel):
    """(a . b + 1)^degree"""

    kernel_type = KernelType.POLYNOMIAL

    def __init__(self, degree: int = 2):
        self.degree = degree

    def matrix(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.power(a @ b.T + 1.0, self.degree)

    def diagonal(self, points: np.ndarray) -> np.ndarray:
        return np.power(np.einsum("ij,ij->i", points, points) + 1.0, self.degree)

    def __repr__(self) -> str:
        return f"PolynomialKernel(degree={self.degree})"


class NeuralKernel(Kernel):
    """tanh(a * x . y + b)"""

    kernel_type = KernelType.NEURAL

    def __init__(self, a: float = 1.0, b: float = 0.0):
        self.a = a
        self.b = b

    def matrix(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return np.tanh(self.a * (a @ b.T) + self.b)

    def __repr__(self) -> str:
        return f"NeuralKernel(a={self.a}, b={self.b})"


def create_kernel(
    kernel_type: Any = KernelType.RADIAL,
    gamma: float = 1.0,
    degree: int = 2,
    a: float = 1.0,
    b: float = 0.0,
) -> Kernel:
    """
    Create a kernel by type.

    Args:
        kernel_type: KernelType or its name
        gamma: Radial kernel width
        degree: Polynomial degree
        a: Neural kernel slope
        b: Neural kernel intercept

    Returns:
        Kernel instance

    Raises:
        ConfigurationError: If the kernel type is unknown
    """
    try:
        kt = KernelType(str(getattr(kernel_type, "value", kernel_type)).lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown kernel type: {kernel_type}",
            details={"available": [k.value for k in KernelType]},
        )

    if kt is KernelType.DOT:
        return DotKernel()
    if kt is KernelType.RADIAL:
        return RadialKernel(gamma=gamma)
    if kt is KernelType.POLYNOMIAL:
        return PolynomialKernel(degree=degree)
    return NeuralKernel(a=a, b=b)


# =============================================================================
# Distance Measures
# =============================================================================


class DistanceMeasure(ABC):
    """
    Symmetric, non-negative distance d(a, b) with d(a, a) = 0.

    ``init`` is called once with the example set before the first distance
    is requested; measures that need dataset statistics compute them there.
    """

    measure_type: MeasureType
    # False for measures violating the triangle inequality
    is_metric = True

    def init(self, example_set: Any) -> None:
        pass

    @abstractmethod
    def distances_to(self, x: np.ndarray, points: np.ndarray) -> np.ndarray:
        """Distances between one vector and every row of ``points``."""

    def calculate_distance(self, a: np.ndarray, b: np.ndarray) -> float:
        return float(self.distances_to(np.asarray(a, dtype=np.float64), np.atleast_2d(b))[0])

    def pairwise(self, points: np.ndarray) -> np.ndarray:
        """Full symmetric distance matrix of ``points``."""
        n = len(points)
        result = np.zeros((n, n), dtype=np.float64)
        for i in range(n):
            result[i] = self.distances_to(points[i], points)
        np.fill_diagonal(result, 0.0)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class EuclideanDistance(DistanceMeasure):
    measure_type = MeasureType.EUCLIDEAN

    def distances_to(self, x: np.ndarray, points: np.ndarray) -> np.ndarray:
        diff = points - x
        return np.sqrt(np.einsum("ij,ij->i", diff, diff))


class SquaredEuclideanDistance(DistanceMeasure):
    measure_type = MeasureType.SQUARED_EUCLIDEAN
    is_metric = False

    def distances_to(self, x: np.ndarray, points: np.ndarray) -> np.ndarray:
        diff = points - x
        return np.einsum("ij,ij->i", diff, diff)


class ManhattanDistance(DistanceMeasure):
    measure_type = MeasureType.MANHATTAN

    def distances_to(self, x: np.ndarray, points: np.ndarray) -> np.ndarray:
        return np.abs(points - x).sum(axis=1)


class ChebychevDistance(DistanceMeasure):
    measure_type = MeasureType.CHEBYCHEV

    def distances_to(self, x: np.ndarray, points: np.ndarray) -> np.ndarray:
        if points.shape[1] == 0:
            return np.zeros(len(points), dtype=np.float64)
        return np.abs(points - x).max(axis=1)


class CosineDistance(DistanceMeasure):
    """1 - cos(a, b); zero vectors are at distance 1 from everything else."""

    measure_type = MeasureType.COSINE
    is_metric = False

    def distances_to(self, x: np.ndarray, points: np.ndarray) -> np.ndarray:
        norms = np.linalg.norm(points, axis=1) * np.linalg.norm(x)
        dots = points @ x
        similarity = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
        result = 1.0 - np.clip(similarity, -1.0, 1.0)
        result[np.all(points == x, axis=1)] = 0.0
        return result


class KernelEuclideanDistance(DistanceMeasure):
    """Distance in kernel feature space: sqrt(K(a,a) - 2K(a,b) + K(b,b))."""

    measure_type = MeasureType.KERNEL_EUCLIDEAN

    def __init__(self, kernel: Optional[Kernel] = None):
        self.kernel = kernel or RadialKernel()

    def distances_to(self, x: np.ndarray, points: np.ndarray) -> np.ndarray:
        kxx = self.kernel.calculate(x, x)
        kpp = self.kernel.diagonal(points)
        kxp = self.kernel.row(x, points)
        return np.sqrt(np.maximum(0.0, kxx - 2.0 * kxp + kpp))

    def __repr__(self) -> str:
        return f"KernelEuclideanDistance(kernel={self.kernel!r})"


MEASURES = {
    MeasureType.EUCLIDEAN: EuclideanDistance,
    MeasureType.SQUARED_EUCLIDEAN: SquaredEuclideanDistance,
    MeasureType.MANHATTAN: ManhattanDistance,
    MeasureType.CHEBYCHEV: ChebychevDistance,
    MeasureType.COSINE: CosineDistance,
    MeasureType.KERNEL_EUCLIDEAN: KernelEuclideanDistance,
}


def create_measure(name: Any = MeasureType.EUCLIDEAN, **params: Any) -> DistanceMeasure:
    """
    Create a distance measure by name.

    Args:
        name: MeasureType or its name (case-insensitive)
        **params: Kernel parameters for kernel_euclidean
            (kernel_type, kernel_gamma, kernel_degree, kernel_a, kernel_b)

    Returns:
        DistanceMeasure instance

    Raises:
        ConfigurationError: If the measure name is unknown
    """
    if isinstance(name, DistanceMeasure):
        return name

    try:
        measure_type = MeasureType(str(getattr(name, "value", name)).lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown distance measure: {name}",
            details={"available": [m.value for m in MeasureType]},
        )

    if measure_type is MeasureType.KERNEL_EUCLIDEAN:
        kernel = create_kernel(
            params.get("kernel_type", KernelType.RADIAL),
            gamma=params.get("kernel_gamma", 1.0),
            degree=params.get("kernel_degree", 2),
            a=params.get("kernel_a", 1.0),
            b=params.get("kernel_b", 0.0),
        )
        return KernelEuclideanDistance(kernel)

    return MEASURES[measure_type]()
