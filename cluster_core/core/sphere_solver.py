"""
Minimum Enclosing Sphere Solver.

Fits the smallest sphere in kernel feature space that encloses the data
(support vector domain description). The dual problem

    maximize    sum_i a_i K(i,i) - sum_ij a_i a_j K(i,j)
    subject to  sum_i a_i = 1,  0 <= a_i <= C

is solved by working-set decomposition: a small set of variables is chosen
from the gradient, the reduced problem is handed to ``QuadraticProblemSMO``,
and rows that have sat at a bound for long enough are shrunk out of the
active set until the final KKT check.

Rows are never moved in memory; ``order`` maps active positions to rows.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from cluster_core.core.measures import Kernel
from cluster_core.core.quadratic_problem import QuadraticProblemSMO
from cluster_core.utils.progress import ProgressMonitor

logger = logging.getLogger(__name__)

# Smallest positive double, used as "no value observed yet" for maxima
MIN_VALUE = 5e-324
MAX_VALUE = np.finfo(np.float64).max


@dataclass(frozen=True)
class SphereFit:
    """Trained sphere: offset b, radius R and the dual weights per row."""

    b: float
    radius: float
    alphas: np.ndarray
    iterations: int
    converged: bool
    convergence_epsilon: float

    @property
    def support_vectors(self) -> np.ndarray:
        """Row indices with a non-zero weight."""
        return np.flatnonzero(self.alphas != 0.0)


class KernelCache:
    """
    LRU cache of full kernel rows.

    Capacity is derived from a memory budget in MB: each row holds one
    float64 per example.
    """

    def __init__(self, kernel: Kernel, points: np.ndarray, cache_mb: float = 200):
        self.kernel = kernel
        self.points = points
        row_bytes = max(1, 8 * len(points))
        self.capacity = max(1, int(cache_mb * 1024 * 1024) // row_bytes)
        self._rows: "OrderedDict[int, np.ndarray]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def row(self, i: int) -> np.ndarray:
        cached = self._rows.get(i)
        if cached is not None:
            self._rows.move_to_end(i)
            self.hits += 1
            return cached

        self.misses += 1
        values = self.kernel.row(self.points[i], self.points)
        self._rows[i] = values
        if len(self._rows) > self.capacity:
            self._rows.popitem(last=False)
        return values

    def __len__(self) -> int:
        return len(self._rows)


def _smallest(candidates: np.ndarray, values: np.ndarray, count: int) -> List[int]:
    """Up to ``count`` candidates with the smallest values (earlier position wins ties)."""
    if count <= 0 or len(candidates) == 0:
        return []
    order = np.lexsort((candidates, values[candidates]))
    return [int(p) for p in candidates[order[:count]]]


def _largest(candidates: np.ndarray, values: np.ndarray, count: int) -> List[int]:
    """Up to ``count`` candidates with the largest values (earlier position wins ties)."""
    if count <= 0 or len(candidates) == 0:
        return []
    order = np.lexsort((candidates, -values[candidates]))
    return [int(p) for p in candidates[order[:count]]]


class SphereSolver:
    """
    Working-set solver for the minimum enclosing sphere dual.

    Example:
        solver = SphereSolver(RadialKernel(gamma=0.5), p=0.0)
        fit = solver.train(points)
        distances = solver.predict(other_points)
    """

    IS_ZERO = 1e-10
    DESCEND = 1e-15
    SHRINK_CONST = 55
    WORKING_SET_SIZE = 10
    MAX_TARGET_FAILURES = 50

    def __init__(
        self,
        kernel: Kernel,
        p: float = 0.0,
        convergence_epsilon: float = 1e-3,
        max_iterations: int = 100000,
        kernel_cache: float = 200,
        working_set_size: int = WORKING_SET_SIZE,
        random_seed: Optional[int] = None,
        monitor: Optional[ProgressMonitor] = None,
    ):
        """
        Args:
            kernel: Kernel defining the feature space
            p: Expected outlier fraction; C = 1 / (n * p), infinite for p = 0
            convergence_epsilon: KKT tolerance
            max_iterations: Maximum number of working-set iterations
            kernel_cache: Kernel row cache size in MB
            working_set_size: Variables per reduced problem
            random_seed: Seed for the working-set fill position
            monitor: Optional progress monitor checked every iteration
        """
        if p < 0 or p > 1:
            raise ValueError(f"p must be in [0, 1], got {p}")
        self.kernel = kernel
        self.p = p
        self.convergence_epsilon = convergence_epsilon
        self.max_iterations = max_iterations
        self.kernel_cache = kernel_cache
        self.working_set_size_param = working_set_size
        self.random_seed = random_seed
        self.monitor = monitor or ProgressMonitor()

        self.fit: Optional[SphereFit] = None
        self._sv_points: Optional[np.ndarray] = None
        self._sv_alphas: Optional[np.ndarray] = None

    # =========================================================================
    # Public API
    # =========================================================================

    def train(self, points: np.ndarray) -> SphereFit:
        """
        Fit the sphere to ``points``.

        Iteration budgets are not an error: the current solution is kept and a
        warning logged.

        Returns:
            SphereFit with alphas in row order
        """
        points = np.asarray(points, dtype=np.float64)
        n = len(points)
        self._points = points

        if n == 0:
            fit = SphereFit(float("nan"), 0.0, np.zeros(0), 0, True, self.convergence_epsilon)
        elif n == 1:
            b = self.kernel.calculate(points[0], points[0])
            fit = SphereFit(float(b), 0.0, np.ones(1), 0, True, self.convergence_epsilon)
        else:
            fit = self._train(points)

        self.fit = fit
        support = fit.support_vectors
        self._sv_points = points[support]
        self._sv_alphas = fit.alphas[support]
        return fit

    def predict(self, points: np.ndarray) -> np.ndarray:
        """
        Feature-space distance of each row of ``points`` to the sphere center:
        sqrt(b + K(v,v) - 2 * sum_s a_s K(sv_s, v)).
        """
        if self.fit is None:
            raise RuntimeError("SphereSolver.predict called before train")
        points = np.atleast_2d(np.asarray(points, dtype=np.float64))
        if len(self._sv_alphas) == 0:
            return np.zeros(len(points), dtype=np.float64)

        cross = self._sv_alphas @ self.kernel.matrix(self._sv_points, points)
        squared = self.fit.b + self.kernel.diagonal(points) - 2.0 * cross
        return np.sqrt(np.maximum(0.0, squared))

    # =========================================================================
    # Training
    # =========================================================================

    def _train(self, points: np.ndarray) -> SphereFit:
        n = len(points)
        self._init_optimizer(n)
        self._init_working_set()

        logger.debug(f"SphereSolver: n={n}, C={self.C}, working_set={self.ws_size}")

        iteration = 0
        converged = False
        while iteration < self.max_iterations:
            iteration += 1
            self.monitor.check_for_stop()

            self._optimize()
            self._put_optimizer_values()
            converged = self._convergence()

            if converged:
                self._project_to_constraint()
                if self.shrinked:
                    self._reset_shrinked()
                    converged = self._convergence()
                if converged:
                    break
                self.shrink_const += 10
                self.target_count = 0
                self.at_bound[:] = 0

            self._shrink()
            self._calculate_working_set()
            self._update_working_set()

        if not converged:
            logger.warning(
                f"SphereSolver did not converge within {self.max_iterations} iterations, "
                f"keeping current solution"
            )
            if self.shrinked:
                self._reset_shrinked()

        b, radius = self._radius()
        alphas = np.zeros(n, dtype=np.float64)
        alphas[self.order] = self.alphas

        logger.info(
            f"SphereSolver finished after {iteration} iterations: "
            f"R={radius:.6f}, support_vectors={int(np.sum(alphas != 0))}, "
            f"cache_hits={self.cache.hits}, cache_misses={self.cache.misses}"
        )
        return SphereFit(b, radius, alphas, iteration, converged, self.convergence_eps)

    def _init_optimizer(self, n: int) -> None:
        self.n = n
        self.total = n
        self.C = 1.0 / (n * self.p) if self.p > 0 else np.inf
        self.cache = KernelCache(self.kernel, self._points, self.kernel_cache)
        self.rng = np.random.default_rng(self.random_seed)

        self.order = np.arange(n)
        self.alphas = np.zeros(n, dtype=np.float64)
        self.sums = np.zeros(n, dtype=np.float64)
        self.K = np.zeros(n, dtype=np.float64)
        self.at_bound = np.zeros(n, dtype=np.int64)

        # Fill the weights greedily so that they sum to one
        remaining = 1.0
        for i in range(n):
            if remaining <= 0:
                break
            if remaining < self.C:
                self.alphas[i] = remaining
                break
            self.alphas[i] = self.C
            remaining -= self.C

        self.sum_alpha = 0.0  # weight held by shrunk rows
        self.lambda_eq = 0.0
        self.lambda_ws = 0.0
        self.target_count = 0
        self.to_shrink = 0
        self.shrink_const = self.SHRINK_CONST
        self.shrinked = False
        self.convergence_eps = self.convergence_epsilon

        self.ws_param = min(self.working_set_size_param, n)
        self.ws_size = self.ws_param
        self.qp = QuadraticProblemSMO(
            is_zero=self.IS_ZERO / 100,
            epsilon=self.convergence_epsilon / 100,
            max_iterations=max(1000, 100 * self.ws_param),
        )

    def _kernel_row(self, position: int) -> np.ndarray:
        """Kernel values of the row at ``position`` against every position."""
        return self.cache.row(int(self.order[position]))[self.order]

    def _init_working_set(self) -> None:
        self._project_to_constraint()

        diagonal = self.kernel.diagonal(self._points)
        self.K[:] = diagonal[self.order]
        self.sums[:] = 0.0
        self.at_bound[:] = 0
        for i in np.flatnonzero(self.alphas != 0):
            self.sums += self.alphas[i] * self._kernel_row(i)

        self.working_set = list(range(self.ws_size))
        self.working_set[-1] = self.n - 1
        self._update_working_set()

    # -------------------------------------------------------------------------
    # KKT quantities
    # -------------------------------------------------------------------------

    def _nabla(self, positions=None) -> np.ndarray:
        if positions is None:
            positions = slice(0, self.total)
        return -self.K[positions] + 2.0 * self.sums[positions]

    def _lambda(self) -> np.ndarray:
        """KKT slack of every active position; negative values violate."""
        alphas = self.alphas[: self.total]
        nabla = self._nabla()
        at_upper = (alphas > self.IS_ZERO) & (alphas - self.C >= -self.IS_ZERO)
        at_lower = alphas <= self.IS_ZERO

        result = -np.abs(nabla + self.lambda_eq)
        result = np.where(at_upper, -self.lambda_eq - nabla, result)
        result = np.where(at_lower, nabla + self.lambda_eq, result)
        return result

    def _feasible(self, slack: np.ndarray) -> np.ndarray:
        """
        Update the at-bound counters and return the positions still eligible
        for the working set.
        """
        alphas = self.alphas[: self.total]
        at_upper = alphas - self.C >= -self.IS_ZERO
        at_lower = alphas <= self.IS_ZERO
        settled = (at_upper | at_lower) & (slack >= 0)

        counters = self.at_bound[: self.total]
        counters[settled] += 1
        counters[~settled] = 0
        self.to_shrink += int(np.sum(settled & (counters == self.shrink_const)))
        return counters < self.shrink_const

    # -------------------------------------------------------------------------
    # Working set
    # -------------------------------------------------------------------------

    def _calculate_working_set(self) -> None:
        self.ws_size = min(self.ws_param, self.total)
        half = self.ws_size // 2
        min_count, max_count = half, half + self.ws_size % 2

        slack = self._lambda()
        feasible = self._feasible(slack)
        values = self._nabla() if self.target_count < 3 else slack
        candidates = np.flatnonzero(feasible)

        low = _smallest(candidates, values, min_count)
        high = _largest(candidates, values, max_count)
        working_set = low + [p for p in high if p not in low]

        alphas = self.alphas
        if self.target_count > 1 and working_set:
            ws_alphas = alphas[working_set]
            fallback = None
            if np.all(ws_alphas - self.C >= -self.IS_ZERO):
                mask = alphas[: self.total] - self.C < -self.IS_ZERO
                fallback = self._lowest_slack(slack, mask)
            elif np.all(ws_alphas <= self.IS_ZERO):
                mask = alphas[: self.total] > self.IS_ZERO
                fallback = self._lowest_slack(slack, mask)
            if fallback is not None and fallback not in working_set:
                if len(working_set) < self.ws_param:
                    working_set.append(fallback)
                else:
                    working_set[-1] = fallback

        target = min(self.ws_param, self.total)
        if len(working_set) < target:
            members = set(working_set)
            position = int(self.rng.random() * self.total)
            while len(working_set) < target:
                if position not in members:
                    working_set.append(position)
                    members.add(position)
                position = (position + 1) % self.total

        self.working_set = working_set
        self.ws_size = len(working_set)

    @staticmethod
    def _lowest_slack(slack: np.ndarray, mask: np.ndarray) -> Optional[int]:
        candidates = np.flatnonzero(mask)
        if len(candidates) == 0:
            return None
        return int(candidates[np.argmin(slack[candidates])])

    def _update_working_set(self) -> None:
        """Build the reduced problem for the current working set."""
        ws = np.asarray(self.working_set, dtype=np.int64)
        self.ws_size = len(ws)
        kernel = np.empty((len(ws), len(ws)), dtype=np.float64)
        for row, position in enumerate(ws):
            kernel[row] = self._kernel_row(position)[ws]

        ws_alphas = self.alphas[ws]
        self.H = 2.0 * kernel
        self.c = 2.0 * (self.sums[ws] - kernel @ ws_alphas) - self.K[ws]
        self.A = np.ones(len(ws), dtype=np.float64)
        self.lower = np.zeros(len(ws), dtype=np.float64)
        self.upper = np.full(len(ws), self.C, dtype=np.float64)
        self.primal = ws_alphas.copy()

    # -------------------------------------------------------------------------
    # Reduced problem
    # -------------------------------------------------------------------------

    def _optimize(self) -> None:
        ws = np.asarray(self.working_set, dtype=np.int64)
        b0 = float(np.sum(self.alphas[ws]))
        old_target = self.qp.objective(self.H, self.c, self.primal)

        self.qp.lambda_eq = self.lambda_eq
        x = self.qp.solve(self.H, self.c, self.A, b0, self.lower, self.upper, x0=self.primal)
        self.lambda_ws = self.qp.lambda_eq

        is_zero = self.IS_ZERO
        new_target = old_target
        conv_error = False
        while True:
            clipped_low = x <= is_zero
            clipped_high = (~clipped_low) & (self.upper - x <= is_zero)
            x[clipped_low] = self.lower[clipped_low]
            x[clipped_high] = self.upper[clipped_high]
            free = ~(clipped_low | clipped_high)
            residual = b0 - float(self.A @ x)
            sv_count = int(np.sum(free))

            if sv_count > 0:
                x[free] += residual / sv_count
            elif abs(residual) > self.ws_size * self.IS_ZERO:
                old_target, new_target = MIN_VALUE, MAX_VALUE
                conv_error = True
                break

            new_target = self.qp.objective(self.H, self.c, x)
            if new_target < old_target:
                if old_target - new_target <= self.DESCEND:
                    conv_error = True
                else:
                    self.target_count = 0
                break
            if sv_count > 0:
                # Relax: pin the free variable closest to a bound next round
                gaps = np.minimum(x[free] - self.lower[free], self.upper[free] - x[free])
                gap = float(np.min(gaps))
                if self.target_count == 0:
                    gap *= 2
                is_zero = max(is_zero, gap)
            else:
                conv_error = True
                break

        if conv_error:
            self.target_count += 1
            if old_target < new_target:
                x = self.alphas[ws].copy()
            if self.target_count > self.MAX_TARGET_FAILURES:
                self.convergence_eps *= 2
                self.target_count = 0
                logger.warning(
                    f"SphereSolver: no descent for {self.MAX_TARGET_FAILURES} iterations, "
                    f"relaxing convergence epsilon to {self.convergence_eps}"
                )

        # equality drift from clipping is repaired by _project_to_constraint
        self.primal = np.clip(x, self.lower, self.upper)

    def _put_optimizer_values(self) -> None:
        for k in reversed(range(self.ws_size)):
            position = self.working_set[k]
            diff = self.primal[k] - self.alphas[position]
            if diff != 0.0:
                self.alphas[position] = self.primal[k]
                self.sums[: self.total] += diff * self._kernel_row(position)[: self.total]

        # clipping in _optimize can leave the total weight off one
        if abs(self.sum_alpha - 1.0 + float(np.sum(self.alphas[: self.total]))) > self.IS_ZERO:
            self._project_to_constraint()

    # -------------------------------------------------------------------------
    # Convergence and constraints
    # -------------------------------------------------------------------------

    def _convergence(self) -> bool:
        alphas = self.alphas[: self.total]
        minus_nabla = -self._nabla()
        free = (alphas > self.IS_ZERO) & (alphas - self.C < -self.IS_ZERO)

        if free.any():
            self.lambda_eq = float(np.mean(minus_nabla[free]))
        else:
            at_zero = alphas < self.IS_ZERO
            l_max = max(MIN_VALUE, float(np.max(minus_nabla[at_zero]))) if at_zero.any() else MIN_VALUE
            l_min = min(MAX_VALUE, float(np.min(minus_nabla[~at_zero]))) if (~at_zero).any() else MAX_VALUE
            self.lambda_eq = (l_min + l_max) / 2.0

        tc = self.target_count
        if tc > 2:
            if tc > 20:
                self.lambda_eq = ((40 - tc) * self.lambda_eq + (tc - 20) * self.lambda_ws) / 20.0
                if tc > 40:
                    position = self.working_set[tc % self.ws_size]
                    self.lambda_eq = float(-self._nabla([position])[0])
            else:
                self.lambda_eq = self.lambda_ws

        if abs(float(np.sum(alphas)) + self.sum_alpha - 1.0) > self.convergence_eps:
            self._project_to_constraint()
            return False

        return bool(np.all(self._lambda() >= -self.convergence_eps))

    def _update_alpha(self, position: int, value: float) -> None:
        diff = value - self.alphas[position]
        if diff != 0.0:
            self.alphas[position] = value
            self.sums[: self.total] += diff * self._kernel_row(position)[: self.total]

    def _project_to_constraint(self) -> None:
        """Restore sum(alphas) = 1 after numerical drift."""
        alphas = self.alphas[: self.total]
        residual = self.sum_alpha - 1.0 + float(np.sum(alphas))
        if residual == 0.0:
            return

        free = np.flatnonzero((alphas > 0) & (alphas < self.C))
        if len(free) > 0:
            delta = residual / len(free)
            for position in free:
                value = min(max(alphas[position] - delta, 0.0), self.C)
                self._update_alpha(int(position), value)
            residual = self.sum_alpha - 1.0 + float(np.sum(self.alphas[: self.total]))

        if abs(residual) <= self.IS_ZERO:
            return

        position = 0
        while position < self.total and residual != 0.0:
            value = self.alphas[position]
            if residual > 0 and value > 0:
                if value < residual:
                    residual -= value
                    value = 0.0
                else:
                    value -= residual
                    residual = 0.0
            elif residual < 0 and value < self.C:
                if self.C - value < -residual:
                    residual += self.C - value
                    value = self.C
                else:
                    value -= residual
                    residual = 0.0
            self._update_alpha(position, value)
            position += 1

    # -------------------------------------------------------------------------
    # Shrinking
    # -------------------------------------------------------------------------

    def _swap(self, a: int, b: int) -> None:
        for array in (self.order, self.alphas, self.sums, self.K, self.at_bound):
            array[a], array[b] = array[b], array[a]

    def _shrink(self) -> None:
        """Move rows pinned at a bound for shrink_const iterations out of the active set."""
        if self.to_shrink <= self.total // 10:
            return

        last = self.total
        if last <= self.ws_size:
            return

        position = 0
        while position < last:
            if self.at_bound[position] >= self.shrink_const:
                self.sum_alpha += self.alphas[position]
                last -= 1
                self._swap(position, last)
                if last <= self.ws_size:
                    break
                continue
            position += 1

        logger.debug(f"SphereSolver: shrunk active set from {self.total} to {last}")
        self.to_shrink = 0
        self.shrinked = True
        self.total = last

    def _reset_shrinked(self) -> None:
        """Bring every shrunk row back and rebuild its kernel sum."""
        old_total = self.total
        self.total = self.n
        self.target_count = 0

        restored = slice(old_total, self.n)
        self.sums[restored] = 0.0
        self.K[restored] = self.kernel.diagonal(self._points[self.order[restored]])
        self.at_bound[restored] = 0
        for position in np.flatnonzero(self.alphas != 0):
            self.sums[restored] += self.alphas[position] * self._kernel_row(int(position))[restored]

        self.sum_alpha = 0.0
        self.shrinked = False

    # -------------------------------------------------------------------------
    # Radius
    # -------------------------------------------------------------------------

    def _radius(self):
        """Offset b and radius R from the final weights."""
        alphas = self.alphas
        b = float(alphas @ self.sums)
        free = (alphas - self.C < -self.IS_ZERO) & (alphas > self.IS_ZERO)
        distances = self.K - 2.0 * self.sums

        if free.any():
            squared = max(0.0, b + float(np.mean(distances[free])))
        else:
            # Tightest bounds seen from rows at either bound
            new_r = distances + b
            min_r = MIN_VALUE
            max_r = MAX_VALUE
            at_zero = alphas <= self.IS_ZERO
            at_c = alphas - self.C >= -self.IS_ZERO
            if at_zero.any():
                min_r = max(min_r, float(np.max(new_r[at_zero])))
            if at_c.any():
                max_r = min(max_r, float(np.min(new_r[at_c])))
            if min_r > MIN_VALUE:
                squared = (min_r + max_r) / 2.0 if max_r < MAX_VALUE else min_r
            else:
                squared = max_r
            squared = max(0.0, squared)

        return b, float(np.sqrt(squared))
