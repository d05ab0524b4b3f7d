"""Dense factorization and Krylov linear solves.

Extended Summary
----------------
Solves ``A x = b`` and ``min ||A x - b||`` for a linear solver handle
from the algorithm configuration. Factorization handles need a
materialized matrix; Krylov handles accept a matrix or a matvec
callable. Every failure is raised as
:class:`~raphson.utils.LinearSolveFailure` with one of the reasons
``"singular"``, ``"iteration-limit"`` or ``"numerical-overflow"``.

Routine Listings
----------------
LinearSolveCache : class
    Per-solve factorization reuse and solve counters.
is_linear_solver : function
    Whether an object is a valid linear solver handle.
requires_matrix : function
    Whether a handle needs a materialized matrix.
validate_linear_solver : function
    Reject handles with invalid parameters.
default_linear_solver : function
    Solver selected when the configuration names none.
solve_linear : function
    Solve a square system.
solve_least_squares : function
    Least-squares (tall) or minimum-norm (wide) solve.

Notes
-----
JAX's Krylov solvers do not report convergence. Success is decided after
the fact from the true residual ``||A x - b||`` against the requested
tolerance, with a slack factor for the rounding of the final update.
"""

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Callable, Optional, Tuple, Union
from jax.scipy.linalg import (
    cho_factor,
    cho_solve,
    lu_factor,
    lu_solve,
    solve_triangular,
)
from jax.scipy.sparse.linalg import bicgstab, cg, gmres
from jaxtyping import Array, Float, jaxtyped

from raphson.types import (
    FACTORIZATION_SOLVERS,
    KRYLOV_SOLVERS,
    DenseCholesky,
    DenseLU,
    DenseQR,
    DenseSVD,
    DescentKind,
    KrylovBiCGStab,
    KrylovCG,
    KrylovGMRES,
    LinearSolverHandle,
)
from raphson.utils import ConfigurationError, LinearSolveFailure

from .preconditioners import Preconditioners

_EPS: float = float(jnp.finfo(jnp.float64).eps)
KRYLOV_SLACK: float = 100.0

LinearSystem = Union[Float[Array, " n n"], Callable]


class LinearSolveCache:
    """Factorization reuse across the linear solves of one nonlinear solve.

    A factorization is reused when the solver handle and the way it is
    used are the same and the matrix is element-wise identical to the
    one factorized last. Only the most recent factorization is kept.

    Attributes
    ----------
    num_solves : int
        Number of linear solves performed.
    num_factorizations : int
        Number of fresh factorizations computed.
    """

    def __init__(self) -> None:
        self._key: Optional[Tuple[type, Any, str]] = None
        self._matrix: Optional[Array] = None
        self._factors: Any = None
        self.num_solves: int = 0
        self.num_factorizations: int = 0

    def factors(
        self,
        solver: LinearSolverHandle,
        usage: str,
        matrix: Float[Array, " m n"],
        factorize: Callable[[Float[Array, " m n"]], Any],
    ) -> Any:
        """Cached factors of ``matrix``, factorizing on a miss."""
        key: Tuple[type, Any, str] = (type(solver), solver, usage)
        if self._key == key and self._same_matrix(matrix):
            return self._factors
        factors: Any = factorize(matrix)
        self._key = key
        self._matrix = matrix
        self._factors = factors
        self.num_factorizations += 1
        return factors

    def _same_matrix(self, matrix: Float[Array, " m n"]) -> bool:
        if self._matrix is matrix:
            return True
        if self._matrix is None or self._matrix.shape != matrix.shape:
            return False
        return bool(jnp.array_equal(self._matrix, matrix))


def is_linear_solver(solver: Any) -> bool:
    """Whether ``solver`` is a recognized linear solver handle."""
    return isinstance(solver, FACTORIZATION_SOLVERS + KRYLOV_SOLVERS)


def requires_matrix(solver: Optional[LinearSolverHandle]) -> bool:
    """Whether ``solver`` can only work on a materialized matrix."""
    return isinstance(solver, FACTORIZATION_SOLVERS)


def validate_linear_solver(solver: Any) -> None:
    """Raise ConfigurationError unless ``solver`` is a valid handle.

    Raises
    ------
    ConfigurationError
        Unknown handle, negative tolerances, non-positive iteration
        limits or restart length.
    """
    if not is_linear_solver(solver):
        raise ConfigurationError(f"Unknown linear solver: {solver!r}")
    if isinstance(solver, KRYLOV_SOLVERS):
        if solver.tol < 0 or solver.atol < 0:
            raise ConfigurationError(
                f"Krylov tolerances must be non-negative: {solver!r}"
            )
        if solver.maxiter is not None and solver.maxiter < 1:
            raise ConfigurationError(
                f"Krylov maxiter must be positive: {solver!r}"
            )
    if isinstance(solver, KrylovGMRES) and solver.restart < 1:
        raise ConfigurationError(f"GMRES restart must be positive: {solver!r}")


def default_linear_solver(
    descent_kind: DescentKind,
    concrete: bool,
    shape: Tuple[int, int],
) -> LinearSolverHandle:
    """Linear solver used when the configuration names none.

    Newton on a square system uses LU (materialized) or GMRES
    (operator). Everything that reduces to least squares uses QR
    (materialized) or CG on the normal equations (operator).
    """
    square: bool = shape[0] == shape[1]
    if concrete:
        if descent_kind == "newton" and square:
            return DenseLU()
        return DenseQR()
    if descent_kind == "newton" and square:
        return KrylovGMRES()
    return KrylovCG()


def _singular_diagonal(diagonal: Float[Array, " k"], size: int) -> bool:
    magnitude: Float[Array, " k"] = jnp.abs(diagonal)
    scale: float = float(jnp.max(magnitude)) if magnitude.size else 0.0
    if not jnp.isfinite(scale):
        return False
    if scale == 0.0:
        return True
    return bool(jnp.min(magnitude) <= size * _EPS * scale)


def _lu(matrix: Float[Array, " n n"]) -> Tuple[Array, Array]:
    lu, piv = lu_factor(matrix)
    if _singular_diagonal(jnp.diag(lu), matrix.shape[0]):
        raise LinearSolveFailure("singular", "zero pivot in LU factorization")
    return lu, piv


def _cholesky(matrix: Float[Array, " n n"]) -> Tuple[Array, bool]:
    factor, lower = cho_factor(matrix)
    if not bool(jnp.all(jnp.isfinite(factor))):
        raise LinearSolveFailure(
            "singular", "matrix is not symmetric positive definite"
        )
    if _singular_diagonal(jnp.diag(factor), matrix.shape[0]):
        raise LinearSolveFailure("singular", "zero pivot in Cholesky factor")
    return factor, lower


def _qr(matrix: Float[Array, " m n"]) -> Tuple[Array, Array]:
    q, r = jnp.linalg.qr(matrix)
    if _singular_diagonal(jnp.diag(r), max(matrix.shape)):
        raise LinearSolveFailure("singular", "rank deficient QR factor")
    return q, r


def _pinv(matrix: Float[Array, " m n"]) -> Float[Array, " n m"]:
    return jnp.linalg.pinv(matrix)


def _check_finite(x: Float[Array, " n"]) -> Float[Array, " n"]:
    if not bool(jnp.all(jnp.isfinite(x))):
        raise LinearSolveFailure(
            "numerical-overflow", "solution has non-finite entries"
        )
    return x


def _as_matvec(system: LinearSystem) -> Callable:
    if callable(system):
        return system

    def _matvec(v: Float[Array, " n"]) -> Float[Array, " n"]:
        return system @ v

    return _matvec


def _krylov(
    solver: LinearSolverHandle,
    system: LinearSystem,
    rhs: Float[Array, " n"],
    preconditioners: Preconditioners,
) -> Float[Array, " n"]:
    matvec: Callable = _as_matvec(system)
    right: Optional[Callable] = preconditioners.right
    if right is None:
        operator: Callable = matvec
    else:

        def operator(y: Float[Array, " n"]) -> Float[Array, " n"]:
            return matvec(right(y))

    options: dict = {
        "tol": solver.tol,
        "atol": solver.atol,
        "maxiter": solver.maxiter,
        "M": preconditioners.left,
    }
    x0: Float[Array, " n"] = jnp.zeros_like(rhs)
    if isinstance(solver, KrylovCG):
        y, _ = cg(operator, rhs, x0=x0, **options)
    elif isinstance(solver, KrylovGMRES):
        y, _ = gmres(operator, rhs, x0=x0, restart=solver.restart, **options)
    else:
        y, _ = bicgstab(operator, rhs, x0=x0, **options)
    x: Float[Array, " n"] = y if right is None else right(y)
    _check_finite(x)
    residual: float = float(jnp.linalg.norm(matvec(x) - rhs))
    target: float = max(solver.tol * float(jnp.linalg.norm(rhs)), solver.atol)
    if residual > KRYLOV_SLACK * target:
        raise LinearSolveFailure(
            "iteration-limit",
            f"{type(solver).__name__} residual {residual:.3e} "
            f"above tolerance {target:.3e}",
        )
    return x


@jaxtyped(typechecker=beartype)
def solve_linear(
    solver: LinearSolverHandle,
    system: LinearSystem,
    rhs: Float[Array, " n"],
    preconditioners: Optional[Preconditioners] = None,
    cache: Optional[LinearSolveCache] = None,
) -> Float[Array, " n"]:
    """Solve the square system ``A x = b``.

    Parameters
    ----------
    solver : LinearSolverHandle
        Linear solver handle.
    system : Float[Array, " n n"] | Callable
        Matrix A, or its matvec for Krylov solvers.
    rhs : Float[Array, " n"]
        Right-hand side b.
    preconditioners : Preconditioners, optional
        Left and right preconditioners. Ignored by factorizations.
    cache : LinearSolveCache, optional
        Factorization cache and counters of the current solve.

    Returns
    -------
    x : Float[Array, " n"]
        Solution.

    Raises
    ------
    LinearSolveFailure
        Singular matrix, Krylov tolerance not reached, or non-finite
        solution.
    ConfigurationError
        A factorization solver was given an operator.
    """
    if cache is None:
        cache = LinearSolveCache()
    if preconditioners is None:
        preconditioners = Preconditioners()
    cache.num_solves += 1
    if isinstance(solver, KRYLOV_SOLVERS):
        return _krylov(solver, system, rhs, preconditioners)
    if callable(system):
        raise ConfigurationError(
            f"{type(solver).__name__} needs a materialized matrix"
        )
    if isinstance(solver, DenseLU):
        factors = cache.factors(solver, "solve", system, _lu)
        x: Float[Array, " n"] = lu_solve(factors, rhs)
    elif isinstance(solver, DenseCholesky):
        factors = cache.factors(solver, "solve", system, _cholesky)
        x = cho_solve(factors, rhs)
    elif isinstance(solver, DenseQR):
        q, r = cache.factors(solver, "solve", system, _qr)
        x = solve_triangular(r, q.T @ rhs, lower=False)
    elif isinstance(solver, DenseSVD):
        x = cache.factors(solver, "solve", system, _pinv) @ rhs
    else:
        raise ConfigurationError(f"Unknown linear solver: {solver!r}")
    return _check_finite(x)


@jaxtyped(typechecker=beartype)
def solve_least_squares(
    solver: LinearSolverHandle,
    matrix: Float[Array, " m n"],
    rhs: Float[Array, " m"],
    cache: Optional[LinearSolveCache] = None,
) -> Float[Array, " n"]:
    """Least-squares solution of ``A x ≈ b``.

    Implementation Logic
    --------------------
    - QR, tall or square A (m ≥ n): A = QR, solve R x = Q^T b.
    - QR, wide A (m < n): A^T = QR, the minimum-norm solution is
      x = Q R^{-T} b.
    - SVD: x = pinv(A) b, the minimum-norm least-squares solution for
      any shape and rank.

    Raises
    ------
    LinearSolveFailure
        Rank deficient QR factor or non-finite solution.
    ConfigurationError
        ``solver`` is not DenseQR or DenseSVD.
    """
    if cache is None:
        cache = LinearSolveCache()
    cache.num_solves += 1
    m, n = matrix.shape
    if isinstance(solver, DenseSVD):
        x: Float[Array, " n"] = (
            cache.factors(solver, "lstsq", matrix, _pinv) @ rhs
        )
    elif isinstance(solver, DenseQR) and m >= n:
        q, r = cache.factors(solver, "lstsq", matrix, _qr)
        x = solve_triangular(r, q.T @ rhs, lower=False)
    elif isinstance(solver, DenseQR):
        q, r = cache.factors(
            solver, "lstsq-transposed", matrix, lambda a: _qr(a.T)
        )
        x = q @ solve_triangular(r, rhs, trans="T", lower=False)
    else:
        raise ConfigurationError(
            f"{type(solver).__name__} does not solve least-squares problems"
        )
    return _check_finite(x)
