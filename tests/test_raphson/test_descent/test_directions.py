"""Tests for Newton and Gauss-Newton descent directions."""

import chex
import jax.numpy as jnp
from absl.testing import parameterized

from raphson.algorithms import make_algorithm_config
from raphson.descent import compute_descent
from raphson.linsolve import LinearSolveCache
from raphson.types import (
    DenseCholesky,
    DenseLU,
    DenseQR,
    DenseSVD,
    JacobianOperator,
    JacobiPreconditioner,
    KrylovCG,
    KrylovGMRES,
    MaterializedJacobian,
)


def _operator(matrix: jnp.ndarray, traceable: bool = True) -> JacobianOperator:
    return JacobianOperator(
        apply=lambda v: matrix @ v,
        apply_transpose=lambda u: matrix.T @ u,
        shape=matrix.shape,
        traceable=traceable,
    )


class TestNewtonDirection(chex.TestCase, parameterized.TestCase):
    """Tests for Newton directions."""

    def setUp(self) -> None:
        super().setUp()
        self.jac = jnp.array(
            [[4.0, 1.0, 0.0], [1.0, 3.0, 1.0], [0.0, 1.0, 2.0]]
        )
        self.residual = jnp.array([1.0, -2.0, 0.5])
        self.expected = -jnp.linalg.solve(self.jac, self.residual)

    @parameterized.named_parameters(
        ("lu", DenseLU()),
        ("cholesky", DenseCholesky()),
        ("qr", DenseQR()),
        ("gmres", KrylovGMRES()),
    )
    def test_materialized(self, solver) -> None:
        """Square Newton step solves J d = -F."""
        config = make_algorithm_config("newton", linear_solver=solver).config
        result = compute_descent(
            config, MaterializedJacobian(self.jac), self.residual, solver
        )
        assert result.linear_solve_succeeded
        chex.assert_trees_all_close(result.direction, self.expected, atol=1e-9)

    @parameterized.named_parameters(
        ("traceable", True),
        ("untraceable", False),
    )
    def test_operator(self, traceable) -> None:
        """Matrix-free Newton step with GMRES and Jacobi preconditioning."""
        solver = KrylovGMRES()
        config = make_algorithm_config(
            "newton",
            linear_solver=solver,
            preconditioner_spec=JacobiPreconditioner(),
        ).config
        result = compute_descent(
            config, _operator(self.jac, traceable), self.residual, solver
        )
        chex.assert_trees_all_close(result.direction, self.expected, atol=1e-9)

    def test_untraceable_materialization_logged(self) -> None:
        """Materializing a non-traceable operator is reported at INFO."""
        solver = KrylovGMRES()
        config = make_algorithm_config("newton", linear_solver=solver).config
        logger_name = "raphson.descent.directions"
        with self.assertLogs(logger_name, level="INFO") as logs:
            compute_descent(
                config, _operator(self.jac, False), self.residual, solver
            )
        assert any("Materializing" in line for line in logs.output)

    def test_rectangular_newton_least_squares(self) -> None:
        """A rectangular materialized Jacobian gives the LS direction."""
        jac = jnp.array([[1.0, 0.0], [0.0, 1.0], [1.0, 1.0]])
        residual = jnp.array([1.0, 2.0, 0.0])
        config = make_algorithm_config("newton").config
        result = compute_descent(
            config, MaterializedJacobian(jac), residual, DenseQR()
        )
        expected = -jnp.linalg.lstsq(jac, residual)[0]
        chex.assert_trees_all_close(result.direction, expected, atol=1e-10)

    def test_singular_reported(self) -> None:
        """A singular Jacobian gives a failed descent, not an exception."""
        jac = jnp.array([[1.0, 1.0], [1.0, 1.0]])
        config = make_algorithm_config("newton").config
        cache = LinearSolveCache()
        result = compute_descent(
            config, MaterializedJacobian(jac), jnp.ones(2), DenseLU(), cache
        )
        assert not result.linear_solve_succeeded
        assert "singular" in result.failure_reason
        chex.assert_trees_all_close(result.direction, jnp.zeros(2))
        assert cache.num_solves == 1


class TestGaussNewtonDirection(chex.TestCase, parameterized.TestCase):
    """Tests for Gauss-Newton directions."""

    def setUp(self) -> None:
        super().setUp()
        self.jac = jnp.array(
            [[1.0, 0.5], [0.0, 2.0], [1.0, -1.0], [3.0, 0.0]]
        )
        self.residual = jnp.array([0.3, -1.0, 2.0, 0.5])
        self.expected = -jnp.linalg.lstsq(self.jac, self.residual)[0]

    @parameterized.named_parameters(
        ("qr", DenseQR()),
        ("svd", DenseSVD()),
        ("lu_normal", DenseLU()),
        ("cholesky_normal", DenseCholesky()),
        ("cg_normal", KrylovCG()),
    )
    def test_materialized(self, solver) -> None:
        """All solvers agree on the least-squares direction."""
        config = make_algorithm_config(
            "gauss_newton", linear_solver=solver
        ).config
        result = compute_descent(
            config, MaterializedJacobian(self.jac), self.residual, solver
        )
        chex.assert_trees_all_close(result.direction, self.expected, atol=1e-8)

    @parameterized.named_parameters(
        ("plain", None),
        ("jacobi", JacobiPreconditioner()),
    )
    def test_operator_normal_equations(self, spec) -> None:
        """Matrix-free Gauss-Newton uses CG on J^T J."""
        solver = KrylovCG()
        config = make_algorithm_config(
            "gauss_newton", linear_solver=solver, preconditioner_spec=spec
        ).config
        result = compute_descent(
            config, _operator(self.jac), self.residual, solver
        )
        chex.assert_trees_all_close(result.direction, self.expected, atol=1e-8)
