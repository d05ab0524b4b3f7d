"""Tests for problem, configuration and state types."""

import chex
import jax.numpy as jnp
import numpy as np
import pytest

from raphson.types import (
    CONVERGED,
    MAX_ITERS_REACHED,
    RUNNING,
    AutoFiniteDiff,
    AutoForward,
    AutoReverse,
    AutoSparse,
    KrylovBiCGStab,
    KrylovCG,
    MaterializedJacobian,
    NoLineSearch,
    SolveStats,
    failed,
    make_nonlinear_problem,
)
from raphson.utils import ConfigurationError


class TestMakeNonlinearProblem(chex.TestCase):
    """Tests for make_nonlinear_problem."""

    def test_defaults(self) -> None:
        """Only the residual is required."""
        problem = make_nonlinear_problem(lambda x: x - 1.0)
        assert problem.jacobian_fn is None
        assert problem.jvp_fn is None
        assert problem.vjp_fn is None
        assert problem.sparsity is None
        assert problem.traceable

    def test_sparsity_converted_to_bool(self) -> None:
        """Sparsity patterns become boolean NumPy arrays."""
        problem = make_nonlinear_problem(
            lambda x: x, sparsity=[[1, 0], [0, 2]]
        )
        assert problem.sparsity.dtype == np.bool_
        np.testing.assert_array_equal(
            problem.sparsity, np.array([[True, False], [False, True]])
        )

    def test_one_dimensional_sparsity_rejected(self) -> None:
        """A pattern that is not a matrix is a configuration error."""
        with pytest.raises(ConfigurationError):
            make_nonlinear_problem(lambda x: x, sparsity=[1, 0, 1])


class TestTags(chex.TestCase):
    """Tests for strategy tags."""

    def test_backend_modes(self) -> None:
        """Every backend reports its differentiation mode."""
        assert AutoForward().mode == "forward"
        assert AutoReverse().mode == "reverse"
        assert AutoFiniteDiff().mode == "finite"
        assert AutoSparse().mode == "forward"
        assert AutoSparse(AutoReverse()).mode == "reverse"

    def test_parameterless_tags_differ(self) -> None:
        """Tags without parameters do not compare equal as tuples."""
        assert AutoForward() != AutoReverse()
        assert NoLineSearch() != AutoForward()

    def test_krylov_handles_same_fields(self) -> None:
        """CG and BiCGStab share fields and compare equal as tuples."""
        assert KrylovCG() == KrylovBiCGStab()
        assert type(KrylovCG()) is not type(KrylovBiCGStab())


class TestStateTypes(chex.TestCase):
    """Tests for statuses and Jacobian information."""

    def test_status_flags(self) -> None:
        """Only non-running statuses are terminal."""
        assert not RUNNING.is_terminal
        assert CONVERGED.is_terminal and CONVERGED.converged
        assert MAX_ITERS_REACHED.is_terminal
        assert not MAX_ITERS_REACHED.converged
        status = failed("linear solve failure: singular")
        assert status.is_terminal
        assert status.code == "failed"
        assert status.reason == "linear solve failure: singular"

    def test_materialized_shape(self) -> None:
        """MaterializedJacobian reports the matrix shape."""
        info = MaterializedJacobian(matrix=jnp.zeros((3, 2)))
        assert info.shape == (3, 2)

    def test_stats_default_zero(self) -> None:
        """Counters start at zero."""
        assert SolveStats() == SolveStats(0, 0, 0, 0)
