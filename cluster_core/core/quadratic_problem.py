"""
Quadratic Problem Solver (SMO).

Solves small dense quadratic programs of the form

    minimize    0.5 * x' H x + c' x
    subject to  A' x = b
                l <= x <= u

with every A_i in {-1, +1}, by sequential minimal optimization: each step
moves the maximal violating pair of variables (Keerthi et al.) along the
equality constraint, clipped to the box. Used for the working-set
subproblems of the sphere solver.
"""

import logging
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)


class QuadraticProblemSMO:
    """
    SMO solver for box- and equality-constrained quadratic programs.

    Attributes set by ``solve``:
        x: Solution
        lambda_eq: Multiplier estimate of the equality constraint
        iterations: Number of pair updates performed
        converged: True if the maximal violation fell below ``epsilon``
    """

    def __init__(
        self,
        is_zero: float = 1e-12,
        epsilon: float = 1e-5,
        max_iterations: int = 1000,
    ):
        """
        Args:
            is_zero: Curvature below which a pair is treated as linear
            epsilon: Stop once the maximal KKT violation is below this value
            max_iterations: Maximum number of pair updates
        """
        self.is_zero = is_zero
        self.epsilon = epsilon
        self.max_iterations = max_iterations

        self.x: Optional[np.ndarray] = None
        self.lambda_eq = 0.0
        self.iterations = 0
        self.converged = False

    def objective(self, H: np.ndarray, c: np.ndarray, x: np.ndarray) -> float:
        return float(0.5 * x @ H @ x + c @ x)

    def solve(
        self,
        H: np.ndarray,
        c: np.ndarray,
        A: np.ndarray,
        b: float,
        lower: np.ndarray,
        upper: np.ndarray,
        x0: Optional[np.ndarray] = None,
    ) -> np.ndarray:
        """
        Solve the problem starting from ``x0`` (warm start).

        The start point is clipped into the box; it is expected to satisfy the
        equality constraint, which every SMO step preserves. ``b`` is only
        used to report the final constraint residual.

        Args:
            H: Symmetric positive semi-definite matrix (n x n)
            c: Linear term (n)
            A: Equality constraint coefficients, each +1 or -1 (n)
            b: Equality constraint right-hand side
            lower: Lower bounds (n), may be -inf
            upper: Upper bounds (n), may be +inf
            x0: Start point (defaults to the clipped zero vector)

        Returns:
            Solution vector
        """
        n = len(c)
        H = np.asarray(H, dtype=np.float64)
        c = np.asarray(c, dtype=np.float64)
        y = np.where(np.asarray(A, dtype=np.float64) < 0, -1.0, 1.0)
        lower = np.asarray(lower, dtype=np.float64)
        upper = np.asarray(upper, dtype=np.float64)

        x = np.zeros(n, dtype=np.float64) if x0 is None else np.array(x0, dtype=np.float64)
        np.clip(x, lower, upper, out=x)

        gradient = H @ x + c
        self.iterations = 0
        self.converged = False
        m = big_m = 0.0

        while True:
            # -y_t * g_t over the variables that may move "up" / "down"
            score = -y * gradient
            can_increase = x < upper
            can_decrease = x > lower
            i_up = np.where(y > 0, can_increase, can_decrease)
            i_low = np.where(y > 0, can_decrease, can_increase)

            if not i_up.any() or not i_low.any():
                self.converged = True
                break

            up_scores = np.where(i_up, score, -np.inf)
            low_scores = np.where(i_low, score, np.inf)
            i = int(np.argmax(up_scores))
            j = int(np.argmin(low_scores))
            m = float(up_scores[i])
            big_m = float(low_scores[j])

            if m - big_m < self.epsilon or i == j:
                self.converged = True
                break
            if self.iterations >= self.max_iterations:
                logger.debug(f"SMO stopped after {self.iterations} iterations (violation {m - big_m:.3e})")
                break

            # x_i += y_i * t, x_j -= y_j * t keeps A'x constant
            curvature = H[i, i] + H[j, j] - 2.0 * y[i] * y[j] * H[i, j]
            room_i = upper[i] - x[i] if y[i] > 0 else x[i] - lower[i]
            room_j = x[j] - lower[j] if y[j] > 0 else upper[j] - x[j]
            max_step = min(room_i, room_j)

            if curvature > self.is_zero:
                step = min((m - big_m) / curvature, max_step)
            elif np.isfinite(max_step):
                step = max_step
            else:
                logger.warning("SMO: unbounded direction in quadratic problem, stopping")
                break

            x[i] += y[i] * step
            x[j] -= y[j] * step
            gradient += H[:, i] * (y[i] * step) - H[:, j] * (y[j] * step)
            self.iterations += 1

        free = (x > lower) & (x < upper)
        if free.any():
            self.lambda_eq = float(np.mean(-y[free] * gradient[free]))
        else:
            self.lambda_eq = (m + big_m) / 2.0

        residual = float(y @ x - b)
        if abs(residual) > 1e-8 * max(1.0, abs(b)):
            logger.debug(f"SMO equality residual {residual:.3e}")

        self.x = x
        return x
