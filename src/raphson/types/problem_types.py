"""Nonlinear problem definition consumed by the solver core.

Extended Summary
----------------
A :class:`NonlinearProblem` bundles the residual function ``F`` with
whatever derivative information the caller can offer: an analytical
Jacobian, Jacobian-vector and vector-Jacobian products, and a sparsity
pattern. The problem is immutable for the duration of a solve.

Routine Listings
----------------
NonlinearProblem : NamedTuple
    Residual function and optional derivative capabilities.
make_nonlinear_problem : function
    Factory function with validation.

Notes
-----
``traceable=False`` marks residual functions that cannot be transformed
by JAX (for example functions that call into NumPy or SciPy). Such
problems are only ever evaluated, never traced, so automatic
differentiation is unavailable for them.
"""

import numpy as np
from beartype import beartype
from beartype.typing import Any, Callable, NamedTuple, Optional
from jaxtyping import jaxtyped

from raphson.utils.errors import ConfigurationError


class NonlinearProblem(NamedTuple):
    """Residual function and optional derivative capabilities.

    Attributes
    ----------
    residual_fn : Callable
        ``x -> F(x)`` mapping a vector of length n to one of length m.
    jacobian_fn : Callable, optional
        Analytical Jacobian ``x -> J(x)`` of shape (m, n).
    jvp_fn : Callable, optional
        ``(x, v) -> J(x) @ v``.
    vjp_fn : Callable, optional
        ``(x, u) -> J(x).T @ u``.
    sparsity : numpy.ndarray, optional
        Boolean (m, n) structural nonzero pattern of the Jacobian.
    traceable : bool
        Whether ``residual_fn`` can be traced by JAX transformations.
    """

    residual_fn: Callable
    jacobian_fn: Optional[Callable] = None
    jvp_fn: Optional[Callable] = None
    vjp_fn: Optional[Callable] = None
    sparsity: Optional[np.ndarray] = None
    traceable: bool = True


@jaxtyped(typechecker=beartype)
def make_nonlinear_problem(
    residual_fn: Callable,
    jacobian_fn: Optional[Callable] = None,
    jvp_fn: Optional[Callable] = None,
    vjp_fn: Optional[Callable] = None,
    sparsity: Optional[Any] = None,
    traceable: bool = True,
) -> NonlinearProblem:
    """Create a validated NonlinearProblem.

    Parameters
    ----------
    residual_fn : Callable
        Residual function ``x -> F(x)``.
    jacobian_fn : Callable, optional
        Analytical Jacobian. Always preferred over automatic
        differentiation when present.
    jvp_fn : Callable, optional
        Jacobian-vector product ``(x, v) -> J v``.
    vjp_fn : Callable, optional
        Vector-Jacobian product ``(x, u) -> J^T u``.
    sparsity : array_like, optional
        Structural nonzero pattern of the Jacobian. Converted to a 2D
        boolean NumPy array.
    traceable : bool, optional
        Whether JAX may trace ``residual_fn``. Default is True.

    Returns
    -------
    problem : NonlinearProblem
        Validated problem.

    Raises
    ------
    ConfigurationError
        If the sparsity pattern is not two dimensional.
    """
    pattern: Optional[np.ndarray] = None
    if sparsity is not None:
        pattern = np.asarray(sparsity) != 0
        if pattern.ndim != 2:
            raise ConfigurationError(
                f"sparsity pattern must be 2D, got shape {pattern.shape}"
            )
    return NonlinearProblem(
        residual_fn=residual_fn,
        jacobian_fn=jacobian_fn,
        jvp_fn=jvp_fn,
        vjp_fn=vjp_fn,
        sparsity=pattern,
        traceable=traceable,
    )
