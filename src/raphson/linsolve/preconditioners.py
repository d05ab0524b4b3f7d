"""Preconditioners for Krylov linear solves.

Extended Summary
----------------
A preconditioner spec from the algorithm configuration is turned into a
pair of callables (left, right) for one linear system. Factorization
solvers ignore preconditioners; for Krylov solvers they change the
convergence speed but never the solution.

Routine Listings
----------------
Preconditioners : NamedTuple
    Left and right preconditioner callables.
is_preconditioner_spec : function
    Whether an object is a valid preconditioner spec.
build_preconditioners : function
    Instantiate a spec for a matrix or operator system.

Notes
-----
A callable spec is called as ``spec(system, size)`` where ``system`` is
either a dense matrix or a matvec callable. It must return a
``(left, right)`` pair whose entries are callables or None.
"""

import jax.numpy as jnp
from beartype.typing import Any, Callable, NamedTuple, Optional, Union
from jaxtyping import Array, Float

from raphson.types import JacobiPreconditioner
from raphson.utils import ConfigurationError, estimate_diagonal

_TINY: float = 1e-300


class Preconditioners(NamedTuple):
    """Left (``M``) and right preconditioner callables."""

    left: Optional[Callable] = None
    right: Optional[Callable] = None


def is_preconditioner_spec(spec: Any) -> bool:
    """Whether ``spec`` is None, a JacobiPreconditioner or a callable."""
    if spec is None:
        return True
    if isinstance(spec, JacobiPreconditioner):
        return spec.num_samples >= 1
    return callable(spec)


def _inverse_diagonal(
    diagonal: Float[Array, " n"],
) -> Callable[[Float[Array, " n"]], Float[Array, " n"]]:
    safe: Float[Array, " n"] = jnp.where(
        jnp.abs(diagonal) > _TINY, diagonal, 1.0
    )

    def _apply(v: Float[Array, " n"]) -> Float[Array, " n"]:
        return v / safe

    return _apply


def build_preconditioners(
    spec: Any,
    system: Union[Float[Array, " n n"], Callable],
    size: int,
) -> Preconditioners:
    """Instantiate a preconditioner spec for one linear system.

    Parameters
    ----------
    spec : JacobiPreconditioner | Callable | None
        Preconditioner spec from the configuration.
    system : Float[Array, " n n"] | Callable
        Dense matrix or matvec callable of the system.
    size : int
        Dimension of the system.

    Returns
    -------
    preconditioners : Preconditioners
        Callables to hand to the Krylov solver. Both None when ``spec``
        is None.

    Raises
    ------
    ConfigurationError
        If ``spec`` is not a recognized spec, or a callable spec returns
        something other than a (left, right) pair.

    Notes
    -----
    The Jacobi preconditioner uses the exact diagonal of a matrix and a
    Hutchinson estimate for an operator. Vanishing diagonal entries are
    replaced by one.
    """
    if spec is None:
        return Preconditioners()
    if isinstance(spec, JacobiPreconditioner):
        if callable(system):
            diagonal: Float[Array, " n"] = estimate_diagonal(
                system, size, num_samples=spec.num_samples, seed=spec.seed
            )
        else:
            diagonal = jnp.diag(system)
        return Preconditioners(left=_inverse_diagonal(diagonal))
    if callable(spec):
        built = spec(system, size)
        if not isinstance(built, tuple) or len(built) != 2:
            raise ConfigurationError(
                "preconditioner callable must return a (left, right) pair"
            )
        left, right = built
        for side in (left, right):
            if side is not None and not callable(side):
                raise ConfigurationError(
                    f"preconditioner must be callable or None, got {side!r}"
                )
        return Preconditioners(left=left, right=right)
    raise ConfigurationError(f"Unknown preconditioner spec: {spec!r}")
