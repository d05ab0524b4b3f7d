"""Iteration engine of the generalized first-order algorithm.

Extended Summary
----------------
Runs Newton-Raphson or Gauss-Newton iterations for one problem and one
configuration. Each iteration evaluates the residual, checks the
termination criteria, acquires Jacobian information, computes a descent
direction, selects a step length and updates the iterate.

Routine Listings
----------------
iterate : function
    Generator of iteration states, ending with a terminal state.
solve : function
    Run to termination and return the final result.
solve_history : function
    Run to termination and collect per-iteration diagnostics.

Notes
-----
The engine is the only place where failures of the lower layers become
a solve status: :class:`~raphson.utils.DifferentiationFailure`, a failed
linear solve and an unrecovered
:class:`~raphson.utils.LineSearchFailure` end the solve with a Failed
status whose reason names the failure. Per-solve state (the resolved
Jacobian path and the factorization cache) lives inside one call.

Examples
--------
>>> problem = make_nonlinear_problem(lambda x: x**2 - 2.0)
>>> result = solve(problem, jnp.array([1.0]), newton_raphson())
>>> result.status.converged
True
"""

import logging

import jax.numpy as jnp
from beartype.typing import Any, Iterator, List, Optional
from jaxtyping import Array, Float

from raphson.descent import compute_descent
from raphson.diff import JacobianPath, acquire_jacobian, resolve_jacobian_path
from raphson.linesearch import select_step
from raphson.linsolve import LinearSolveCache
from raphson.types import (
    CONVERGED,
    MAX_ITERS_REACHED,
    AlgorithmConfig,
    DescentResult,
    IterationState,
    JacobianInfo,
    MaterializedJacobian,
    NoLineSearch,
    NonlinearProblem,
    SolveHistory,
    SolveResult,
    SolveStats,
    failed,
)
from raphson.utils import (
    ConfigurationError,
    DifferentiationFailure,
    LineSearchFailure,
)

logger: logging.Logger = logging.getLogger(__name__)


class _Counters:
    """Evaluation counters of one solve."""

    def __init__(self, cache: LinearSolveCache) -> None:
        self.cache: LinearSolveCache = cache
        self.nf: int = 0
        self.njacs: int = 0

    def stats(self) -> SolveStats:
        return SolveStats(
            nf=self.nf,
            njacs=self.njacs,
            nsolve=self.cache.num_solves,
            nfactors=self.cache.num_factorizations,
        )


def _validate(
    max_iters: int, tolerance: float, step_tolerance: Optional[float]
) -> None:
    if isinstance(max_iters, bool) or not isinstance(max_iters, int):
        raise ConfigurationError(
            f"max_iters must be an int, got {max_iters!r}"
        )
    if max_iters < 0:
        raise ConfigurationError(f"max_iters must be >= 0, got {max_iters}")
    if not tolerance > 0.0:
        raise ConfigurationError(f"tolerance must be > 0, got {tolerance}")
    if step_tolerance is not None and step_tolerance < 0.0:
        raise ConfigurationError(
            f"step_tolerance must be >= 0, got {step_tolerance}"
        )


def _initial_point(initial_x: Any) -> Float[Array, " n"]:
    x: Float[Array, " n"] = jnp.atleast_1d(
        jnp.asarray(initial_x, dtype=jnp.float64)
    )
    if x.ndim != 1:
        raise ConfigurationError(
            f"initial_x must be a vector, got shape {x.shape}"
        )
    return x


def _slope(
    jacobian_info: JacobianInfo,
    residual: Float[Array, " m"],
    direction: Float[Array, " n"],
) -> float:
    if isinstance(jacobian_info, MaterializedJacobian):
        jd: Float[Array, " m"] = jacobian_info.matrix @ direction
    else:
        jd = jacobian_info.apply(direction)
    return float(jnp.dot(residual, jd))


def iterate(
    problem: NonlinearProblem,
    initial_x: Any,
    config: AlgorithmConfig,
    max_iters: int = 100,
    tolerance: float = 1e-8,
    step_tolerance: Optional[float] = None,
) -> Iterator[IterationState]:
    """Iterate a nonlinear solve, one state per residual evaluation.

    Implementation Logic
    --------------------
    1. Evaluate F(x). A non-finite residual fails the solve.
    2. Converged when max|F(x)| <= tolerance.
    3. Yield a Running state while the iteration budget lasts; the
       consumer may stop here.
    4. Acquire the Jacobian; the path is resolved at the first
       acquisition and kept for the rest of the solve.
    5. Compute the descent direction d. Converged when
       ||d|| <= step_tolerance, otherwise MaxItersReached once
       ``max_iters`` updates have been made.
    7. Select the step length alpha, applying the configured failure
       policy.
    8. x <- x + alpha d.

    Parameters
    ----------
    problem : NonlinearProblem
        Problem to solve.
    initial_x : array_like
        Initial iterate, converted to a float64 vector.
    config : AlgorithmConfig
        Algorithm configuration.
    max_iters : int, optional
        Maximum number of iterate updates. Default is 100.
    tolerance : float, optional
        Residual tolerance in the max norm. Default is 1e-8.
    step_tolerance : float, optional
        Euclidean step-size tolerance. Defaults to ``tolerance``.

    Yields
    ------
    state : IterationState
        Running states, then exactly one terminal state.

    Raises
    ------
    ConfigurationError
        Negative ``max_iters``, non-positive ``tolerance`` or an
        ``initial_x`` that is not a vector.
    """
    _validate(max_iters, tolerance, step_tolerance)
    x: Float[Array, " n"] = _initial_point(initial_x)
    step_tol: float = tolerance if step_tolerance is None else step_tolerance
    cache: LinearSolveCache = LinearSolveCache()
    counters: _Counters = _Counters(cache)
    state: IterationState = IterationState(x=x)
    if max_iters == 0:
        logger.info("max_iters is 0, returning the initial point")
        yield state._replace(status=MAX_ITERS_REACHED)
        return

    def residual_fn(z: Float[Array, " n"]) -> Float[Array, " m"]:
        counters.nf += 1
        return jnp.asarray(problem.residual_fn(z), dtype=jnp.float64)

    path: Optional[JacobianPath] = None
    while True:
        residual: Float[Array, " m"] = jnp.atleast_1d(residual_fn(state.x))
        state = state._replace(residual=residual, stats=counters.stats())
        if not bool(jnp.all(jnp.isfinite(residual))):
            logger.warning(
                "Non-finite residual at iteration %d", state.iteration
            )
            yield state._replace(status=failed("non-finite residual"))
            return
        residual_max: float = float(jnp.max(jnp.abs(residual)))
        logger.debug(
            "iteration %d: max|F| = %.6e", state.iteration, residual_max
        )
        if residual_max <= tolerance:
            logger.info(
                "Converged after %d iterations (max|F| = %.3e)",
                state.iteration,
                residual_max,
            )
            yield state._replace(status=CONVERGED)
            return
        exhausted: bool = state.iteration >= max_iters
        if not exhausted:
            yield state

        try:
            if path is None:
                path = resolve_jacobian_path(
                    problem, config, state.x, residual
                )
            jacobian_info: JacobianInfo = acquire_jacobian(
                problem, state.x, config, path, residual
            )
        except DifferentiationFailure as failure:
            logger.warning("Differentiation failed: %s", failure)
            yield state._replace(
                status=failed(f"differentiation failure: {failure}")
            )
            return
        counters.njacs += 1
        state = state._replace(jacobian_info=jacobian_info)

        try:
            descent: DescentResult = compute_descent(
                config, jacobian_info, residual, path.linear_solver, cache
            )
        except DifferentiationFailure as failure:
            logger.warning("Differentiation failed: %s", failure)
            yield state._replace(
                status=failed(f"differentiation failure: {failure}"),
                stats=counters.stats(),
            )
            return
        if not descent.linear_solve_succeeded:
            yield state._replace(
                status=failed(
                    f"linear solve failure: {descent.failure_reason}"
                ),
                stats=counters.stats(),
            )
            return
        direction: Float[Array, " n"] = descent.direction
        step_norm: float = float(jnp.linalg.norm(direction))
        if step_norm <= step_tol:
            logger.info(
                "Converged after %d iterations (step norm %.3e)",
                state.iteration,
                step_norm,
            )
            yield state._replace(status=CONVERGED, stats=counters.stats())
            return
        if exhausted:
            logger.info(
                "Reached max_iters=%d (max|F| = %.3e)", max_iters, residual_max
            )
            yield state._replace(
                status=MAX_ITERS_REACHED, stats=counters.stats()
            )
            return

        slope: float = 0.0
        if not isinstance(config.line_search, NoLineSearch):
            slope = _slope(jacobian_info, residual, direction)
        try:
            alpha: float = select_step(
                config.line_search,
                residual_fn,
                state.x,
                direction,
                residual,
                slope,
                differentiable=problem.traceable,
            )
        except LineSearchFailure as failure:
            if config.line_search_failure != "halve":
                logger.warning("Line search failed: %s", failure)
                yield state._replace(
                    status=failed(f"line search failure: {failure}"),
                    stats=counters.stats(),
                )
                return
            alpha = 0.5 * state.step_length
            logger.warning(
                "Line search failed (%s), halving previous step to %.3e",
                failure,
                alpha,
            )
        logger.debug(
            "iteration %d: alpha = %.3e, ||d|| = %.3e",
            state.iteration,
            alpha,
            step_norm,
        )
        state = state._replace(
            x=state.x + alpha * direction,
            iteration=state.iteration + 1,
            step_length=alpha,
        )


def solve(
    problem: NonlinearProblem,
    initial_x: Any,
    config: AlgorithmConfig,
    max_iters: int = 100,
    tolerance: float = 1e-8,
    step_tolerance: Optional[float] = None,
) -> SolveResult:
    """Solve ``F(x) = 0`` (or ``min ||F(x)||``) to termination.

    Parameters are those of :func:`iterate`.

    Returns
    -------
    result : SolveResult
        Final iterate, terminal status and number of iterate updates.
    """
    final: IterationState = IterationState(x=jnp.zeros(0))
    for final in iterate(
        problem, initial_x, config, max_iters, tolerance, step_tolerance
    ):
        pass
    return SolveResult(
        x=final.x, status=final.status, iterations=final.iteration
    )


def solve_history(
    problem: NonlinearProblem,
    initial_x: Any,
    config: AlgorithmConfig,
    max_iters: int = 100,
    tolerance: float = 1e-8,
    step_tolerance: Optional[float] = None,
) -> SolveHistory:
    """Solve to termination and record per-iteration diagnostics.

    Returns
    -------
    history : SolveHistory
        Result, Euclidean residual norm of every evaluated iterate,
        accepted step lengths and evaluation counters.
    """
    residual_norms: List[float] = []
    step_lengths: List[float] = []
    recorded: int = -1
    last_iteration: int = 0
    final: IterationState = IterationState(x=jnp.zeros(0))
    for final in iterate(
        problem, initial_x, config, max_iters, tolerance, step_tolerance
    ):
        if final.iteration > last_iteration:
            step_lengths.append(final.step_length)
            last_iteration = final.iteration
        if final.residual is not None and final.iteration != recorded:
            residual_norms.append(float(jnp.linalg.norm(final.residual)))
            recorded = final.iteration
    result: SolveResult = SolveResult(
        x=final.x, status=final.status, iterations=final.iteration
    )
    return SolveHistory(
        result=result,
        residual_norms=jnp.asarray(residual_norms, dtype=jnp.float64),
        step_lengths=jnp.asarray(step_lengths, dtype=jnp.float64),
        stats=final.stats,
    )
