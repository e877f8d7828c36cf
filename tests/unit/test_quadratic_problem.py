"""
Unit tests for the SMO quadratic problem solver.
"""

import pytest
import numpy as np

from cluster_core.core.quadratic_problem import QuadraticProblemSMO


@pytest.mark.unit
class TestQuadraticProblemSMO:
    """Test suite for QuadraticProblemSMO."""

    def test_equality_constrained_minimum(self):
        solver = QuadraticProblemSMO()

        x = solver.solve(
            H=2.0 * np.eye(2),
            c=np.array([0.0, 1.0]),
            A=np.ones(2),
            b=1.0,
            lower=np.zeros(2),
            upper=np.ones(2),
            x0=np.array([1.0, 0.0]),
        )

        np.testing.assert_allclose(x, [0.75, 0.25])
        assert solver.converged
        assert solver.iterations == 1
        assert solver.lambda_eq == pytest.approx(-1.5)
        assert solver.x is x

    def test_upper_bound_is_respected(self):
        solver = QuadraticProblemSMO()

        x = solver.solve(
            H=2.0 * np.eye(2),
            c=np.array([0.0, 1.0]),
            A=np.ones(2),
            b=1.0,
            lower=np.zeros(2),
            upper=np.full(2, 0.6),
            x0=np.array([0.5, 0.5]),
        )

        np.testing.assert_allclose(x, [0.6, 0.4])
        assert solver.converged

    def test_linear_objective_moves_to_bound(self):
        solver = QuadraticProblemSMO()

        x = solver.solve(
            H=np.zeros((2, 2)),
            c=np.array([1.0, 2.0]),
            A=np.ones(2),
            b=1.0,
            lower=np.zeros(2),
            upper=np.ones(2),
            x0=np.array([0.5, 0.5]),
        )

        np.testing.assert_allclose(x, [1.0, 0.0])
        assert solver.converged

    def test_unbounded_direction_stops(self):
        solver = QuadraticProblemSMO()

        x = solver.solve(
            H=np.zeros((2, 2)),
            c=np.array([1.0, 2.0]),
            A=np.ones(2),
            b=0.0,
            lower=np.full(2, -np.inf),
            upper=np.full(2, np.inf),
        )

        assert not solver.converged
        np.testing.assert_array_equal(x, [0.0, 0.0])

    def test_iteration_budget(self):
        solver = QuadraticProblemSMO(max_iterations=0)

        x = solver.solve(
            H=2.0 * np.eye(2),
            c=np.array([0.0, 1.0]),
            A=np.ones(2),
            b=1.0,
            lower=np.zeros(2),
            upper=np.ones(2),
            x0=np.array([1.0, 0.0]),
        )

        assert not solver.converged
        assert solver.iterations == 0
        np.testing.assert_array_equal(x, [1.0, 0.0])

    def test_equality_preserved_on_random_problem(self):
        rng = np.random.default_rng(3)
        m = rng.normal(size=(6, 6))
        H = m @ m.T
        c = rng.normal(size=6)
        A = np.array([1.0, -1.0, 1.0, 1.0, -1.0, 1.0])
        x0 = np.array([0.5, 0.5, 0.0, 0.0, 0.0, 0.0])
        b = float(A @ x0)

        solver = QuadraticProblemSMO(epsilon=1e-8, max_iterations=10000)
        x = solver.solve(H, c, A, b, np.zeros(6), np.ones(6), x0=x0)

        assert A @ x == pytest.approx(b, abs=1e-9)
        assert np.all(x >= 0.0) and np.all(x <= 1.0)
        assert solver.objective(H, c, x) <= solver.objective(H, c, x0) + 1e-12
