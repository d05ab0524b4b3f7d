"""Step length selection along a descent direction.

Extended Summary
----------------
All strategies work on the merit function

    phi(a) = 0.5 * ||F(x + a d)||^2

whose slope at zero is ``phi'(0) = F^T J d``. For Newton and
Gauss-Newton directions the slope equals ``-||F||^2`` and
``-||J d||^2`` respectively, so both are descent directions of phi.

Routine Listings
----------------
is_line_search : function
    Whether an object is a line-search strategy tag.
validate_line_search : function
    Reject strategies with invalid parameters.
select_step : function
    Step length for one iteration.

Notes
-----
Failures are raised as :class:`~raphson.utils.LineSearchFailure`. The
engine decides, from the configured failure policy, whether that ends
the solve or falls back to a reduced step.

References
----------
.. [1] Nocedal & Wright, "Numerical Optimization", 2nd ed., Section 3.5
.. [2] Dennis & Schnabel, "Numerical Methods for Unconstrained
       Optimization and Nonlinear Equations", Section 6.3
"""

import math

import jax
import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Any, Callable, Tuple
from jaxtyping import Array, Float, jaxtyped

from raphson.types import (
    BacktrackingLineSearch,
    LineSearchAdapter,
    LineSearchStrategy,
    NoLineSearch,
)
from raphson.utils import ConfigurationError, LineSearchFailure

_CBRT_EPS: float = float(jnp.finfo(jnp.float64).eps) ** (1.0 / 3.0)
_MIN_SHRINK: float = 0.1


def is_line_search(strategy: Any) -> bool:
    """Whether ``strategy`` is a line-search strategy tag."""
    return isinstance(
        strategy, (NoLineSearch, BacktrackingLineSearch, LineSearchAdapter)
    )


def validate_line_search(strategy: Any) -> None:
    """Raise ConfigurationError unless ``strategy`` is a valid tag."""
    if not is_line_search(strategy):
        raise ConfigurationError(f"Unknown line search: {strategy!r}")
    if isinstance(strategy, BacktrackingLineSearch):
        if not 0.0 < strategy.c1 < 1.0:
            raise ConfigurationError(f"c1 must lie in (0, 1): {strategy!r}")
        if not 0.0 < strategy.rho < 1.0:
            raise ConfigurationError(f"rho must lie in (0, 1): {strategy!r}")
        if strategy.max_steps < 1:
            raise ConfigurationError(
                f"max_steps must be positive: {strategy!r}"
            )
        if strategy.order not in (1, 2):
            raise ConfigurationError(f"order must be 1 or 2: {strategy!r}")
    if isinstance(strategy, LineSearchAdapter) and not callable(
        strategy.method
    ):
        raise ConfigurationError(
            f"LineSearchAdapter needs a callable method: {strategy!r}"
        )


def _merit(
    residual_fn: Callable,
    x: Float[Array, " n"],
    direction: Float[Array, " n"],
) -> Callable[[Any], Array]:
    def _phi(alpha: Any) -> Array:
        value: Float[Array, " m"] = residual_fn(x + alpha * direction)
        return 0.5 * jnp.sum(value**2)

    return _phi


def _backtrack(
    strategy: BacktrackingLineSearch,
    phi: Callable[[Any], Array],
    phi0: float,
    slope: float,
) -> float:
    if not math.isfinite(slope) or slope >= 0.0:
        raise LineSearchFailure(
            f"direction is not a descent direction (slope {slope:.3e})"
        )
    alpha: float = 1.0
    for _ in range(strategy.max_steps):
        phi_alpha: float = float(phi(alpha))
        if math.isfinite(phi_alpha) and (
            phi_alpha <= phi0 + strategy.c1 * alpha * slope
        ):
            return alpha
        if strategy.order == 2 and math.isfinite(phi_alpha):
            # minimizer of the quadratic through phi0, slope and phi_alpha
            curvature: float = phi_alpha - phi0 - slope * alpha
            trial: float = -slope * alpha**2 / (2.0 * curvature)
            alpha = min(max(trial, _MIN_SHRINK * alpha), strategy.rho * alpha)
        else:
            alpha = strategy.rho * alpha
    raise LineSearchFailure(
        f"no sufficient decrease within {strategy.max_steps} trial steps"
    )


def _adapt(
    strategy: LineSearchAdapter,
    phi: Callable[[Any], Array],
    phi0: float,
    slope: float,
    differentiable: bool,
) -> float:
    def _value(alpha: float) -> float:
        return float(phi(alpha))

    def _derivative(alpha: float) -> float:
        if alpha == 0.0:
            return slope
        if differentiable:
            _, tangent = jax.jvp(
                phi,
                (jnp.asarray(alpha, dtype=jnp.float64),),
                (jnp.asarray(1.0, dtype=jnp.float64),),
            )
            return float(tangent)
        h: float = _CBRT_EPS * max(1.0, abs(alpha))
        return (_value(alpha + h) - _value(alpha - h)) / (2.0 * h)

    def _value_and_derivative(alpha: float) -> Tuple[float, float]:
        return _value(alpha), _derivative(alpha)

    out: Any = strategy.method(
        _value, _derivative, _value_and_derivative, 1.0, phi0, slope
    )
    alpha: Any = out[0] if isinstance(out, tuple) else out
    if alpha is None:
        raise LineSearchFailure("external line search returned no step")
    alpha = float(alpha)
    if not math.isfinite(alpha) or alpha <= 0.0:
        raise LineSearchFailure(
            f"external line search returned step {alpha!r}"
        )
    return alpha


@jaxtyped(typechecker=beartype)
def select_step(
    strategy: LineSearchStrategy,
    residual_fn: Callable,
    x: Float[Array, " n"],
    direction: Float[Array, " n"],
    residual: Float[Array, " m"],
    slope: float,
    differentiable: bool = True,
) -> float:
    """Step length along ``direction``.

    Parameters
    ----------
    strategy : NoLineSearch | BacktrackingLineSearch | LineSearchAdapter
        Line-search strategy.
    residual_fn : Callable
        Residual function ``x -> F(x)`` returning float64 arrays.
    x : Float[Array, " n"]
        Current iterate.
    direction : Float[Array, " n"]
        Descent direction d.
    residual : Float[Array, " m"]
        Residual at ``x``.
    slope : float
        Directional derivative of the merit function at zero,
        ``F^T J d``.
    differentiable : bool, optional
        Whether ``residual_fn`` may be differentiated by JAX. When False,
        derivatives requested by an external line search use central
        differences. Default is True.

    Returns
    -------
    alpha : float
        Accepted step length, positive and finite.

    Raises
    ------
    LineSearchFailure
        Not a descent direction, no sufficient decrease within the step
        budget, or an unusable step from an external method.
    ConfigurationError
        Unknown strategy.
    """
    if isinstance(strategy, NoLineSearch):
        return 1.0
    phi: Callable[[Any], Array] = _merit(residual_fn, x, direction)
    phi0: float = 0.5 * float(jnp.sum(residual**2))
    if isinstance(strategy, BacktrackingLineSearch):
        return _backtrack(strategy, phi, phi0, slope)
    if isinstance(strategy, LineSearchAdapter):
        return _adapt(strategy, phi, phi0, slope, differentiable)
    raise ConfigurationError(f"Unknown line search: {strategy!r}")
