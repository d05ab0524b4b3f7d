"""Jacobian acquisition: materialized matrices and matrix-free operators.

Extended Summary
----------------
Resolves, once per solve, how the Jacobian of a problem will be obtained
and then produces the Jacobian information of every iterate. Two shapes
of result exist: a :class:`~raphson.types.MaterializedJacobian` for
factorization solvers and a :class:`~raphson.types.JacobianOperator` for
Krylov solvers.

Routine Listings
----------------
JacobianPath : NamedTuple
    Resolved Jacobian strategy of one solve.
resolve_jacobian_path : function
    Decide materialized versus operator and the concrete technique.
acquire_jacobian : function
    Jacobian information at an iterate.

Notes
-----
Materialized Jacobians are obtained, in order of preference, from the
analytical ``jacobian_fn``, from colored products when the backend is
:class:`~raphson.types.AutoSparse`, and from dense ``jax.jacfwd``,
``jax.jacrev`` or finite differences. Without a configured backend
forward mode is used when n ≤ m and reverse mode otherwise.

Operator products prefer the user's ``jvp_fn``/``vjp_fn``, then the
analytical Jacobian, then automatic differentiation, then finite
differences. A backend of the wrong direction is tolerated:
``jax.linear_transpose`` turns a forward product into a transposed one
and vice versa.

A residual marked ``traceable=False`` is never handed to a JAX
transformation. Requesting automatic differentiation for it raises
:class:`~raphson.utils.DifferentiationFailure`, and so does a
materialized Jacobian without ``jacobian_fn`` or an explicit
:class:`~raphson.types.AutoFiniteDiff` backend.
"""

import logging

import jax
import jax.numpy as jnp
import numpy as np
from beartype.typing import Callable, Dict, NamedTuple, Optional, Tuple
from jaxtyping import Array, Float

from raphson.linsolve import default_linear_solver, requires_matrix
from raphson.types import (
    AlgorithmConfig,
    AutoFiniteDiff,
    AutoForward,
    AutoReverse,
    AutoSparse,
    DiffBackend,
    JacobianInfo,
    JacobianOperator,
    LinearSolverHandle,
    MaterializedJacobian,
    NonlinearProblem,
)
from raphson.utils import DifferentiationFailure

from .backends import (
    dense_backend,
    is_finite_diff,
    is_forward_mode,
    is_reverse_mode,
)
from .coloring import compressed_jacobian, detect_sparsity, greedy_color
from .finite_diff import fd_jacobian, fd_jvp

logger: logging.Logger = logging.getLogger(__name__)


class JacobianPath(NamedTuple):
    """Jacobian strategy resolved at the first acquisition of a solve.

    Attributes
    ----------
    concrete : bool
        Whether Jacobians are materialized.
    linear_solver : LinearSolverHandle
        Linear solver, the configured one or the default for the path.
    shape : Tuple[int, int]
        Jacobian shape (m, n).
    source : str
        Short description of the technique, used in log messages.
    materialize : Callable, optional
        ``x -> J(x)`` for materialized paths.
    needs_transpose : bool
        Whether the descent will apply ``J^T``.
    """

    concrete: bool
    linear_solver: LinearSolverHandle
    shape: Tuple[int, int]
    source: str
    materialize: Optional[Callable] = None
    needs_transpose: bool = False


def _as_float(value: Array) -> Array:
    return jnp.asarray(value, dtype=jnp.float64)


def _require_traceable(problem: NonlinearProblem, what: str) -> None:
    if not problem.traceable:
        raise DifferentiationFailure(
            f"{what} requested for a residual that JAX cannot trace; "
            "provide derivative functions on the problem or use AutoFiniteDiff"
        )


def _analytical_jacobian(
    problem: NonlinearProblem, shape: Tuple[int, int]
) -> Callable[[Float[Array, " n"]], Float[Array, " m n"]]:
    def _materialize(x: Float[Array, " n"]) -> Float[Array, " m n"]:
        matrix: Float[Array, " m n"] = _as_float(problem.jacobian_fn(x))
        if matrix.shape != shape:
            raise DifferentiationFailure(
                f"jacobian_fn returned shape {matrix.shape}, expected {shape}"
            )
        return matrix

    return _materialize


def _dense_jacobian(
    problem: NonlinearProblem,
    backend: Optional[DiffBackend],
    shape: Tuple[int, int],
) -> Tuple[Callable, str]:
    residual_fn: Callable = problem.residual_fn
    if isinstance(backend, AutoFiniteDiff):

        def _finite(x: Float[Array, " n"]) -> Float[Array, " m n"]:
            return fd_jacobian(residual_fn, x, backend)

        return _finite, f"finite-difference ({backend.scheme})"
    _require_traceable(problem, "automatic differentiation")
    if backend is None:
        m, n = shape
        backend = AutoForward() if n <= m else AutoReverse()
    transform: Callable = (
        jax.jacfwd if isinstance(backend, AutoForward) else jax.jacrev
    )
    jac_fn: Callable = transform(residual_fn)

    def _autodiff(x: Float[Array, " n"]) -> Float[Array, " m n"]:
        return _as_float(jac_fn(x))

    return _autodiff, f"{backend.mode}-mode AD"


def _sparse_jacobian(
    problem: NonlinearProblem,
    backend: AutoSparse,
    x: Float[Array, " n"],
    shape: Tuple[int, int],
) -> Tuple[Callable, str]:
    dense_ad = backend.dense_ad
    if not isinstance(dense_ad, AutoFiniteDiff):
        _require_traceable(problem, "automatic differentiation")
    if problem.sparsity is not None:
        pattern: np.ndarray = problem.sparsity
    else:
        dense_fn, _ = _dense_jacobian(problem, dense_ad, shape)
        pattern = detect_sparsity(dense_fn, x)
    if pattern.shape != shape:
        raise DifferentiationFailure(
            f"sparsity pattern has shape {pattern.shape}, expected {shape}"
        )
    if isinstance(dense_ad, AutoReverse):
        colors, num_colors = greedy_color(pattern.T)
    else:
        colors, num_colors = greedy_color(pattern)
    logger.debug(
        "Colored %d x %d sparsity pattern with %d colors",
        shape[0],
        shape[1],
        num_colors,
    )

    def _colored(z: Float[Array, " n"]) -> Float[Array, " m n"]:
        return compressed_jacobian(
            problem.residual_fn, z, pattern, colors, num_colors, backend
        )

    return _colored, f"sparse {dense_ad.mode} ({num_colors} colors)"


def _materializer(
    problem: NonlinearProblem,
    config: AlgorithmConfig,
    x: Float[Array, " n"],
    shape: Tuple[int, int],
) -> Tuple[Callable, str]:
    if problem.jacobian_fn is not None:
        return _analytical_jacobian(problem, shape), "analytical"
    backend: Optional[DiffBackend] = config.jacobian_backend
    if isinstance(backend, AutoSparse):
        return _sparse_jacobian(problem, backend, x, shape)
    if backend is None and not problem.traceable:
        raise DifferentiationFailure(
            "a materialized Jacobian of a non-traceable residual needs "
            "jacobian_fn or an explicit AutoFiniteDiff backend"
        )
    return _dense_jacobian(problem, backend, shape)


def _resolve_concrete(config: AlgorithmConfig) -> bool:
    if config.needs_concrete_jacobian is not None:
        return bool(config.needs_concrete_jacobian)
    solver = config.linear_solver
    return solver is None or requires_matrix(solver)


def resolve_jacobian_path(
    problem: NonlinearProblem,
    config: AlgorithmConfig,
    x: Float[Array, " n"],
    fx: Optional[Float[Array, " m"]] = None,
) -> JacobianPath:
    """Resolve how Jacobians will be obtained during one solve.

    Implementation Logic
    --------------------
    1. Evaluate the residual (unless ``fx`` is given) to learn m.
    2. Decide materialized versus operator: an explicit
       ``needs_concrete_jacobian`` wins, otherwise a factorization
       solver or no solver at all means materialized.
    3. Pick the default linear solver for the path when none is
       configured.
    4. For materialized paths, pick the technique. Sparsity detection
       and coloring happen here, once.

    Parameters
    ----------
    problem : NonlinearProblem
        Problem being solved.
    config : AlgorithmConfig
        Algorithm configuration.
    x : Float[Array, " n"]
        Initial iterate.
    fx : Float[Array, " m"], optional
        Residual at ``x``.

    Returns
    -------
    path : JacobianPath
        Resolved strategy.

    Raises
    ------
    DifferentiationFailure
        No viable technique for a materialized Jacobian.
    """
    if fx is None:
        fx = _as_float(problem.residual_fn(x))
    shape: Tuple[int, int] = (int(fx.shape[0]), int(x.shape[0]))
    concrete: bool = _resolve_concrete(config)
    solver: LinearSolverHandle = config.linear_solver
    if solver is None:
        solver = default_linear_solver(config.descent_kind, concrete, shape)
    needs_transpose: bool = (
        config.descent_kind == "gauss_newton" or shape[0] != shape[1]
    )
    if concrete:
        materialize, source = _materializer(problem, config, x, shape)
    else:
        materialize, source = None, "operator"
    logger.info(
        "Jacobian path: %s, %s Jacobian of shape %s, linear solver %s",
        source,
        "materialized" if concrete else "matrix-free",
        shape,
        type(solver).__name__,
    )
    return JacobianPath(
        concrete=concrete,
        linear_solver=solver,
        shape=shape,
        source=source,
        materialize=materialize,
        needs_transpose=needs_transpose,
    )


class _Linearization:
    """Linearizations of the residual at one iterate, computed on demand.

    Every linearization is computed on concrete arrays when the operator
    is built, never inside the trace of a Krylov solver.
    """

    def __init__(
        self,
        problem: NonlinearProblem,
        x: Float[Array, " n"],
        fx: Float[Array, " m"],
        shape: Tuple[int, int],
    ) -> None:
        self.problem: NonlinearProblem = problem
        self.x: Float[Array, " n"] = x
        self.fx: Float[Array, " m"] = fx
        self.shape: Tuple[int, int] = shape
        self._memo: Dict[str, object] = {}

    def jvp(self) -> Callable:
        if "jvp" not in self._memo:
            _, self._memo["jvp"] = jax.linearize(
                self.problem.residual_fn, self.x
            )
        return self._memo["jvp"]

    def vjp(self) -> Callable:
        if "vjp" not in self._memo:
            _, self._memo["vjp"] = jax.vjp(self.problem.residual_fn, self.x)
        return self._memo["vjp"]

    def matrix(self, backend: Optional[AutoFiniteDiff] = None) -> Array:
        if "matrix" not in self._memo:
            if self.problem.jacobian_fn is not None:
                self._memo["matrix"] = _analytical_jacobian(
                    self.problem, self.shape
                )(self.x)
            else:
                self._memo["matrix"] = fd_jacobian(
                    self.problem.residual_fn,
                    self.x,
                    backend or AutoFiniteDiff(),
                    self.fx,
                )
        return self._memo["matrix"]


def _forward_action(
    problem: NonlinearProblem,
    config: AlgorithmConfig,
    lin: _Linearization,
) -> Callable[[Float[Array, " n"]], Float[Array, " m"]]:
    x: Float[Array, " n"] = lin.x
    if problem.jvp_fn is not None:
        return lambda v: _as_float(problem.jvp_fn(x, v))
    if problem.jacobian_fn is not None:
        matrix: Float[Array, " m n"] = lin.matrix()
        return lambda v: matrix @ v
    backend: Optional[DiffBackend] = config.jacobian_backend
    if is_forward_mode(config.forward_diff_backend) or (
        backend is None and problem.traceable
    ):
        _require_traceable(problem, "forward-mode Jacobian-vector products")
        jvp_fn: Callable = lin.jvp()
        return lambda v: _as_float(jvp_fn(v))
    if is_reverse_mode(backend):
        _require_traceable(problem, "reverse-mode Jacobian-vector products")
        vjp_fn: Callable = lin.vjp()
        transpose: Callable = jax.linear_transpose(
            lambda u: vjp_fn(u)[0], lin.fx
        )
        return lambda v: _as_float(transpose(v)[0])
    fd_backend: AutoFiniteDiff = (
        dense_backend(backend) if is_finite_diff(backend) else AutoFiniteDiff()
    )
    return lambda v: fd_jvp(problem.residual_fn, x, v, fd_backend, lin.fx)


def _transpose_action(
    problem: NonlinearProblem,
    config: AlgorithmConfig,
    lin: _Linearization,
) -> Optional[Callable[[Float[Array, " m"]], Float[Array, " n"]]]:
    x: Float[Array, " n"] = lin.x
    if problem.vjp_fn is not None:
        return lambda u: _as_float(problem.vjp_fn(x, u))
    if problem.jacobian_fn is not None:
        matrix: Float[Array, " m n"] = lin.matrix()
        return lambda u: matrix.T @ u
    backend: Optional[DiffBackend] = config.reverse_diff_backend
    if is_reverse_mode(backend) or (backend is None and problem.traceable):
        _require_traceable(problem, "vector-Jacobian products")
        vjp_fn: Callable = lin.vjp()
        return lambda u: _as_float(vjp_fn(u)[0])
    if is_forward_mode(backend):
        _require_traceable(problem, "vector-Jacobian products")
        transpose: Callable = jax.linear_transpose(lin.jvp(), x)
        return lambda u: _as_float(transpose(u)[0])
    if backend is None:
        backend = config.jacobian_backend
    if backend is None or is_finite_diff(backend):
        # non-traceable residual: transpose the finite-difference matrix
        fd_backend: Optional[AutoFiniteDiff] = (
            None if backend is None else dense_backend(backend)
        )
        fd_matrix: Float[Array, " m n"] = lin.matrix(fd_backend)
        return lambda u: fd_matrix.T @ u
    return None


def _missing_transpose(u: Float[Array, " m"]) -> Float[Array, " n"]:
    raise DifferentiationFailure(
        "no vector-Jacobian product is available for this problem"
    )


def acquire_jacobian(
    problem: NonlinearProblem,
    x: Float[Array, " n"],
    config: AlgorithmConfig,
    path: Optional[JacobianPath] = None,
    fx: Optional[Float[Array, " m"]] = None,
) -> JacobianInfo:
    """Jacobian information of ``problem`` at ``x``.

    Parameters
    ----------
    problem : NonlinearProblem
        Problem being solved.
    x : Float[Array, " n"]
        Current iterate.
    config : AlgorithmConfig
        Algorithm configuration.
    path : JacobianPath, optional
        Path resolved earlier in the same solve. Resolved here when
        omitted.
    fx : Float[Array, " m"], optional
        Residual at ``x``, reused by finite differences.

    Returns
    -------
    info : MaterializedJacobian | JacobianOperator
        Dense matrix for materialized paths, products otherwise.

    Raises
    ------
    DifferentiationFailure
        The path cannot produce the requested information, or a
        materialized Jacobian has non-finite entries.
    """
    if path is None:
        path = resolve_jacobian_path(problem, config, x, fx)
    if path.concrete:
        matrix: Float[Array, " m n"] = path.materialize(x)
        if not bool(jnp.all(jnp.isfinite(matrix))):
            raise DifferentiationFailure("Jacobian has non-finite entries")
        return MaterializedJacobian(matrix=matrix)
    if fx is None:
        fx = _as_float(problem.residual_fn(x))
    lin: _Linearization = _Linearization(problem, x, fx, path.shape)
    apply: Callable = _forward_action(problem, config, lin)
    apply_transpose: Optional[Callable] = _transpose_action(
        problem, config, lin
    )
    if apply_transpose is None:
        if path.needs_transpose:
            raise DifferentiationFailure(
                "least-squares steps need vector-Jacobian products; provide "
                "vjp_fn or a reverse-capable backend"
            )
        apply_transpose = _missing_transpose
    return JacobianOperator(
        apply=apply,
        apply_transpose=apply_transpose,
        shape=path.shape,
        traceable=problem.traceable,
    )
