"""Finite-difference Jacobians and Jacobian products.

Extended Summary
----------------
Fallback derivatives for residual functions that JAX cannot
differentiate, or when finite differences are requested explicitly. All
routines evaluate the residual in plain Python so that non-traceable
residuals (NumPy, SciPy, external codes) are supported.

Routine Listings
----------------
relative_step : function
    Default relative step of a finite-difference scheme.
fd_jvp : function
    Directional derivative J(x) v.
fd_jacobian : function
    Dense Jacobian, one column at a time.
fd_vjp : function
    Transposed product J(x)^T u through the dense Jacobian.

Notes
-----
Forward differences use a relative step of sqrt(eps) and are first order
accurate; central differences use cbrt(eps) and are second order
accurate at twice the cost.
"""

import jax.numpy as jnp
from beartype import beartype
from beartype.typing import Callable, Optional
from jaxtyping import Array, Float, jaxtyped

from raphson.types import AutoFiniteDiff

_EPS: float = float(jnp.finfo(jnp.float64).eps)


def relative_step(backend: AutoFiniteDiff) -> float:
    """Relative step of ``backend``: its own, or the scheme default."""
    if backend.step is not None:
        return float(backend.step)
    if backend.scheme == "central":
        return _EPS ** (1.0 / 3.0)
    return _EPS**0.5


def _evaluate(
    residual_fn: Callable, x: Float[Array, " n"]
) -> Float[Array, " m"]:
    return jnp.asarray(residual_fn(x), dtype=jnp.float64)


@jaxtyped(typechecker=beartype)
def fd_jvp(
    residual_fn: Callable,
    x: Float[Array, " n"],
    v: Float[Array, " n"],
    backend: AutoFiniteDiff = AutoFiniteDiff(),
    fx: Optional[Float[Array, " m"]] = None,
) -> Float[Array, " m"]:
    """Directional derivative of ``residual_fn`` at ``x`` along ``v``.

    The step is scaled by ``(1 + ||x||) / ||v||`` so that the perturbation
    is relative to the iterate and independent of the length of ``v``.
    The computation is traceable whenever ``residual_fn`` is, so it can
    serve as the matvec of a JAX Krylov solver.
    """
    if fx is None:
        fx = _evaluate(residual_fn, x)
    v_norm: Float[Array, " "] = jnp.linalg.norm(v)
    safe_norm: Float[Array, " "] = jnp.where(v_norm > 0.0, v_norm, 1.0)
    h: Float[Array, " "] = (
        relative_step(backend) * (1.0 + jnp.linalg.norm(x)) / safe_norm
    )
    if backend.scheme == "central":
        forward: Float[Array, " m"] = _evaluate(residual_fn, x + h * v)
        backward: Float[Array, " m"] = _evaluate(residual_fn, x - h * v)
        return (forward - backward) / (2.0 * h)
    return (_evaluate(residual_fn, x + h * v) - fx) / h


@jaxtyped(typechecker=beartype)
def fd_jacobian(
    residual_fn: Callable,
    x: Float[Array, " n"],
    backend: AutoFiniteDiff = AutoFiniteDiff(),
    fx: Optional[Float[Array, " m"]] = None,
) -> Float[Array, " m n"]:
    """Dense finite-difference Jacobian.

    Column j uses the step ``rel * max(1, |x_j|)``, costing n (forward)
    or 2n (central) residual evaluations.
    """
    if fx is None:
        fx = _evaluate(residual_fn, x)
    rel: float = relative_step(backend)
    columns: list = []
    for j in range(x.shape[0]):
        h: float = rel * max(1.0, abs(float(x[j])))
        e_j: Float[Array, " n"] = jnp.zeros_like(x).at[j].set(h)
        if backend.scheme == "central":
            column = (
                _evaluate(residual_fn, x + e_j)
                - _evaluate(residual_fn, x - e_j)
            ) / (2.0 * h)
        else:
            column = (_evaluate(residual_fn, x + e_j) - fx) / h
        columns.append(column)
    jacobian: Float[Array, " m n"] = jnp.stack(columns, axis=1)
    return jacobian


@jaxtyped(typechecker=beartype)
def fd_vjp(
    residual_fn: Callable,
    x: Float[Array, " n"],
    u: Float[Array, " m"],
    backend: AutoFiniteDiff = AutoFiniteDiff(),
    fx: Optional[Float[Array, " m"]] = None,
) -> Float[Array, " n"]:
    """Transposed product J(x)^T u via the finite-difference Jacobian."""
    jacobian: Float[Array, " m n"] = fd_jacobian(residual_fn, x, backend, fx)
    return jacobian.T @ u
