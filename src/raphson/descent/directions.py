"""Newton and Gauss-Newton descent directions.

Extended Summary
----------------
Turns the Jacobian information of an iterate and its residual into a
step direction d by one linear solve:

- Newton: J d = -F for square J. A rectangular J falls back to the
  least-squares solution.
- Gauss-Newton: min ||J d + F||, through QR/SVD on a materialized J or
  through the normal equations (J^T J) d = -J^T F otherwise.

Routine Listings
----------------
compute_descent : function
    Descent direction of one iteration.

Notes
-----
Linear-solve failures do not propagate: they come back as a
:class:`~raphson.types.DescentResult` with ``linear_solve_succeeded``
set to False and a zero direction, so the engine can end the solve with
a Failed status carrying the reason.
"""

import logging

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Callable, Optional, Union
from jaxtyping import Array, Float, jaxtyped

from raphson.linsolve import (
    LinearSolveCache,
    build_preconditioners,
    solve_least_squares,
    solve_linear,
)
from raphson.types import (
    AlgorithmConfig,
    DenseQR,
    DenseSVD,
    DescentResult,
    JacobianInfo,
    JacobianOperator,
    LinearSolverHandle,
    MaterializedJacobian,
)
from raphson.utils import LinearSolveFailure, make_normal_matvec

logger: logging.Logger = logging.getLogger(__name__)


def _operator_matrix(operator: JacobianOperator) -> Float[Array, " m n"]:
    n: int = operator.shape[1]
    identity: Float[Array, " n n"] = jnp.eye(n, dtype=jnp.float64)
    columns: list = [operator.apply(identity[:, j]) for j in range(n)]
    return jnp.stack(columns, axis=1)


def _least_squares(
    config: AlgorithmConfig,
    matrix: Float[Array, " m n"],
    rhs: Float[Array, " m"],
    linear_solver: LinearSolverHandle,
    cache: LinearSolveCache,
) -> Float[Array, " n"]:
    if isinstance(linear_solver, (DenseQR, DenseSVD)):
        return solve_least_squares(linear_solver, matrix, rhs, cache)
    normal: Float[Array, " n n"] = matrix.T @ matrix
    projected: Float[Array, " n"] = matrix.T @ rhs
    preconditioners = build_preconditioners(
        config.preconditioner_spec, normal, normal.shape[0]
    )
    return solve_linear(
        linear_solver, normal, projected, preconditioners, cache
    )


def _normal_equations(
    config: AlgorithmConfig,
    operator: JacobianOperator,
    rhs: Float[Array, " m"],
    linear_solver: LinearSolverHandle,
    cache: LinearSolveCache,
) -> Float[Array, " n"]:
    n: int = operator.shape[1]
    matvec: Callable = make_normal_matvec(
        operator.apply, operator.apply_transpose
    )
    projected: Float[Array, " n"] = operator.apply_transpose(rhs)
    preconditioners = build_preconditioners(
        config.preconditioner_spec, matvec, n
    )
    return solve_linear(
        linear_solver, matvec, projected, preconditioners, cache
    )


def _direction(
    config: AlgorithmConfig,
    jacobian_info: JacobianInfo,
    rhs: Float[Array, " m"],
    linear_solver: LinearSolverHandle,
    cache: LinearSolveCache,
) -> Float[Array, " n"]:
    m, n = jacobian_info.shape
    newton_square: bool = config.descent_kind == "newton" and m == n
    if isinstance(jacobian_info, MaterializedJacobian):
        matrix: Float[Array, " m n"] = jacobian_info.matrix
        if newton_square:
            preconditioners = build_preconditioners(
                config.preconditioner_spec, matrix, n
            )
            return solve_linear(
                linear_solver, matrix, rhs, preconditioners, cache
            )
        return _least_squares(config, matrix, rhs, linear_solver, cache)
    if newton_square:
        preconditioners = build_preconditioners(
            config.preconditioner_spec, jacobian_info.apply, n
        )
        return solve_linear(
            linear_solver, jacobian_info.apply, rhs, preconditioners, cache
        )
    return _normal_equations(config, jacobian_info, rhs, linear_solver, cache)


@jaxtyped(typechecker=beartype)
def compute_descent(
    config: AlgorithmConfig,
    jacobian_info: JacobianInfo,
    residual: Float[Array, " m"],
    linear_solver: LinearSolverHandle,
    cache: Optional[LinearSolveCache] = None,
) -> DescentResult:
    """Descent direction at the current iterate.

    Parameters
    ----------
    config : AlgorithmConfig
        Algorithm configuration; selects Newton or Gauss-Newton and the
        preconditioner.
    jacobian_info : MaterializedJacobian | JacobianOperator
        Jacobian at the current iterate.
    residual : Float[Array, " m"]
        Residual F at the current iterate.
    linear_solver : LinearSolverHandle
        Resolved linear solver of the solve.
    cache : LinearSolveCache, optional
        Factorization cache and counters of the solve.

    Returns
    -------
    result : DescentResult
        Direction and linear-solve outcome.

    Notes
    -----
    Operators over residuals that JAX cannot trace are materialized
    column by column first, because the Krylov solvers trace their
    matvec.
    """
    if cache is None:
        cache = LinearSolveCache()
    info: Union[MaterializedJacobian, JacobianOperator] = jacobian_info
    if isinstance(info, JacobianOperator) and not info.traceable:
        logger.info(
            "Materializing non-traceable Jacobian operator with %d products",
            info.shape[1],
        )
        info = MaterializedJacobian(matrix=_operator_matrix(info))
    try:
        direction: Float[Array, " n"] = _direction(
            config, info, -residual, linear_solver, cache
        )
    except LinearSolveFailure as failure:
        logger.warning(
            "%s linear solve failed: %s", type(linear_solver).__name__, failure
        )
        return DescentResult(
            direction=jnp.zeros(info.shape[1], dtype=jnp.float64),
            linear_solve_succeeded=False,
            failure_reason=str(failure),
        )
    return DescentResult(direction=direction)
