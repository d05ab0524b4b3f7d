"""Tests for operator utilities and the exception taxonomy."""

import chex
import jax.numpy as jnp
import pytest

from raphson.utils import (
    ConfigurationError,
    DifferentiationFailure,
    LinearSolveFailure,
    LineSearchFailure,
    RaphsonError,
    estimate_diagonal,
    estimate_max_eigenvalue,
    make_normal_matvec,
)


class TestMakeNormalMatvec(chex.TestCase):
    """Tests for make_normal_matvec."""

    @chex.variants(with_jit=True, without_jit=True)
    def test_matches_explicit_normal_matrix(self) -> None:
        """Operator form equals J^T J v + damping v."""
        jac = jnp.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
        matvec = make_normal_matvec(
            lambda v: jac @ v, lambda u: jac.T @ u, damping=0.5
        )
        v = jnp.array([1.0, -1.0])
        expected = jac.T @ (jac @ v) + 0.5 * v
        chex.assert_trees_all_close(self.variant(matvec)(v), expected)


class TestEstimateDiagonal(chex.TestCase):
    """Tests for estimate_diagonal."""

    def test_exact_for_diagonal_operator(self) -> None:
        """A diagonal operator is recovered exactly."""
        diag = jnp.array([1.0, 4.0, 9.0, 0.5])
        estimate = estimate_diagonal(lambda v: diag * v, 4, num_samples=3)
        chex.assert_trees_all_close(estimate, diag)

    def test_close_for_diagonally_dominant_matrix(self) -> None:
        """Off-diagonal noise averages out."""
        a = jnp.diag(jnp.array([10.0, 20.0, 30.0])) + 0.1
        estimate = estimate_diagonal(lambda v: a @ v, 3, num_samples=200)
        chex.assert_trees_all_close(estimate, jnp.diag(a), rtol=0.05)

    def test_reproducible(self) -> None:
        """Fixed seeds give identical estimates."""
        a = jnp.arange(9.0).reshape(3, 3)
        first = estimate_diagonal(lambda v: a @ v, 3, seed=7)
        second = estimate_diagonal(lambda v: a @ v, 3, seed=7)
        chex.assert_trees_all_equal(first, second)

    @chex.variants(with_jit=True, without_jit=True)
    def test_traceable(self) -> None:
        """Probes are batched inside a traced computation."""
        diag = jnp.array([1.0, 4.0, 9.0, 0.5])

        def estimate(scale):
            return estimate_diagonal(lambda v: scale * diag * v, 4, 3)

        chex.assert_trees_all_close(
            self.variant(estimate)(jnp.asarray(2.0)), 2.0 * diag
        )


class TestEstimateMaxEigenvalue(chex.TestCase):
    """Tests for estimate_max_eigenvalue."""

    def test_diagonal_normal_matrix(self) -> None:
        """Largest eigenvalue of J^T J for diagonal J."""
        jac = jnp.diag(jnp.array([1.0, 2.0, 3.0]))
        matvec = make_normal_matvec(lambda v: jac @ v, lambda u: jac.T @ u)
        estimate = estimate_max_eigenvalue(matvec, 3, num_iterations=100)
        chex.assert_trees_all_close(estimate, jnp.asarray(9.0), rtol=1e-4)

    def test_zero_operator(self) -> None:
        """The zero operator has largest eigenvalue zero."""
        estimate = estimate_max_eigenvalue(lambda v: 0.0 * v, 4)
        chex.assert_trees_all_close(estimate, jnp.asarray(0.0))

    @chex.variants(with_jit=True, without_jit=True)
    def test_traceable(self) -> None:
        """Power iteration runs inside a traced computation."""
        a = jnp.diag(jnp.array([1.0, 2.0, 3.0]))

        def estimate(scale):
            return estimate_max_eigenvalue(
                lambda v: scale * (a @ v), 3, num_iterations=60
            )

        chex.assert_trees_all_close(
            self.variant(estimate)(jnp.asarray(2.0)),
            jnp.asarray(6.0),
            rtol=1e-6,
        )


class TestErrors(chex.TestCase):
    """Tests for the exception hierarchy."""

    def test_hierarchy(self) -> None:
        """All failures derive from RaphsonError."""
        for cls in (
            ConfigurationError,
            DifferentiationFailure,
            LinearSolveFailure,
            LineSearchFailure,
        ):
            assert issubclass(cls, RaphsonError)
        assert issubclass(ConfigurationError, ValueError)

    def test_linear_solve_failure_reason(self) -> None:
        """The reason is kept and appears in the message."""
        failure = LinearSolveFailure("singular", "zero pivot")
        assert failure.reason == "singular"
        assert failure.detail == "zero pivot"
        assert str(failure) == "singular: zero pivot"

    def test_linear_solve_failure_unknown_reason(self) -> None:
        """Only the three documented reasons are accepted."""
        with pytest.raises(ValueError):
            LinearSolveFailure("diverged")
