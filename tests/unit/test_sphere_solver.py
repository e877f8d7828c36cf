"""
Unit tests for the minimum enclosing sphere solver and its kernel cache.
"""

import pytest
import numpy as np

from cluster_core.core.measures import DotKernel, RadialKernel
from cluster_core.core.sphere_solver import KernelCache, SphereSolver


@pytest.mark.unit
class TestSphereSolver:
    """Test suite for SphereSolver."""

    def test_two_points_dot_kernel(self):
        solver = SphereSolver(DotKernel())

        fit = solver.train(np.array([[0.0, 0.0], [2.0, 0.0]]))

        assert fit.converged
        np.testing.assert_allclose(fit.alphas, [0.5, 0.5])
        assert fit.radius == pytest.approx(1.0)
        assert list(fit.support_vectors) == [0, 1]
        # center of the sphere is the midpoint
        assert solver.predict([[1.0, 0.0]])[0] == pytest.approx(0.0, abs=1e-7)
        assert solver.predict([[0.0, 0.0]])[0] == pytest.approx(1.0)

    def test_weights_sum_to_one_within_bounds(self):
        points = np.random.default_rng(5).normal(size=(30, 2))
        solver = SphereSolver(RadialKernel(gamma=0.5), p=0.1, random_seed=0)

        fit = solver.train(points)
        upper = 1.0 / (30 * 0.1)

        assert abs(fit.alphas.sum() - 1.0) < 1e-6
        assert np.all(fit.alphas >= -1e-9)
        assert np.all(fit.alphas <= upper + 1e-9)
        # at least 1 / C rows are needed to carry the total weight
        assert len(fit.support_vectors) >= 3

    def test_weights_stay_feasible_after_every_step(self, monkeypatch):
        points = np.random.default_rng(11).normal(size=(40, 2))
        solver = SphereSolver(
            RadialKernel(gamma=0.5), p=0.1, working_set_size=4, convergence_epsilon=1e-6, random_seed=0
        )
        upper = 1.0 / (40 * 0.1)
        observed = []

        apply_step = solver._put_optimizer_values

        def checked_step():
            apply_step()
            observed.append(solver.alphas.copy())

        monkeypatch.setattr(solver, "_put_optimizer_values", checked_step)
        fit = solver.train(points)

        assert len(observed) == fit.iterations
        assert len(observed) > 1
        for alphas in observed:
            assert abs(alphas.sum() - 1.0) < 1e-6
            assert np.all(alphas >= 0.0)
            assert np.all(alphas <= upper + 1e-9)

    def test_training_points_inside_sphere(self):
        points = np.random.default_rng(9).normal(size=(25, 2))
        solver = SphereSolver(RadialKernel(gamma=0.5), p=0.0, convergence_epsilon=1e-5, random_seed=0)

        fit = solver.train(points)

        assert fit.radius > 0
        assert np.all(solver.predict(points) <= fit.radius + 1e-2)

    def test_deterministic_with_seed(self):
        points = np.random.default_rng(2).normal(size=(20, 3))

        first = SphereSolver(RadialKernel(gamma=1.0), p=0.2, random_seed=4).train(points)
        second = SphereSolver(RadialKernel(gamma=1.0), p=0.2, random_seed=4).train(points)

        np.testing.assert_array_equal(first.alphas, second.alphas)
        assert first.radius == second.radius

    def test_single_point(self):
        fit = SphereSolver(RadialKernel(gamma=1.0)).train(np.array([[3.0, 4.0]]))

        assert fit.radius == 0.0
        assert fit.b == pytest.approx(1.0)
        assert fit.iterations == 0
        assert list(fit.alphas) == [1.0]

    def test_no_points(self):
        fit = SphereSolver(RadialKernel()).train(np.zeros((0, 2)))

        assert np.isnan(fit.b)
        assert fit.radius == 0.0
        assert len(fit.support_vectors) == 0

    def test_predict_before_train(self):
        with pytest.raises(RuntimeError):
            SphereSolver(RadialKernel()).predict(np.zeros((1, 2)))

    @pytest.mark.parametrize("p", [-0.1, 1.5])
    def test_invalid_outlier_fraction(self, p):
        with pytest.raises(ValueError):
            SphereSolver(RadialKernel(), p=p)


@pytest.mark.unit
class TestKernelCache:
    """Test suite for the LRU kernel row cache."""

    def test_rows_match_kernel(self):
        points = np.random.default_rng(0).normal(size=(5, 2))
        kernel = RadialKernel(gamma=0.3)
        cache = KernelCache(kernel, points)

        np.testing.assert_allclose(cache.row(2), kernel.matrix(points, points)[2])

    def test_hits_misses_and_eviction(self):
        points = np.eye(3)
        cache = KernelCache(DotKernel(), points, cache_mb=0)

        assert cache.capacity == 1
        cache.row(0)
        cache.row(0)
        cache.row(1)
        cache.row(0)

        assert cache.hits == 1
        assert cache.misses == 3
        assert len(cache) == 1
