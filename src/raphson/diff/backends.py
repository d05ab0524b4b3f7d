"""Classification of differentiation backend tags.

Extended Summary
----------------
Small predicates over the closed set of backend tags defined in
:mod:`raphson.types.config_types`. The configuration builder uses them to
validate user options and to decide whether the ``autodiff`` choice can
serve Jacobian-vector products; the Jacobian provider uses them to pick a
JAX transformation.

Routine Listings
----------------
is_diff_backend : function
    Whether an object is a recognized backend tag.
is_forward_mode : function
    Whether a backend is forward-mode capable.
is_reverse_mode : function
    Whether a backend is reverse-mode capable.
is_finite_diff : function
    Whether a backend uses finite differences.
dense_backend : function
    Strip the coloring wrapper of a sparse backend.
"""

from beartype.typing import Any, Optional, Union

from raphson.types import (
    AutoFiniteDiff,
    AutoForward,
    AutoReverse,
    AutoSparse,
    DiffBackend,
)

DENSE_BACKENDS: tuple = (AutoForward, AutoReverse, AutoFiniteDiff)


def is_diff_backend(backend: Any) -> bool:
    """Whether ``backend`` is one of the recognized backend tags."""
    if isinstance(backend, AutoSparse):
        return isinstance(backend.dense_ad, DENSE_BACKENDS)
    if isinstance(backend, AutoFiniteDiff):
        return backend.scheme in ("forward", "central")
    return isinstance(backend, DENSE_BACKENDS)


def is_forward_mode(backend: Optional[DiffBackend]) -> bool:
    """Whether ``backend`` computes forward-mode products.

    Coloring-accelerated forward mode counts as forward mode. Finite
    differences do not: they are a fallback, not a mode.
    """
    return backend is not None and backend.mode == "forward"


def is_reverse_mode(backend: Optional[DiffBackend]) -> bool:
    """Whether ``backend`` computes reverse-mode products."""
    return backend is not None and backend.mode == "reverse"


def is_finite_diff(backend: Optional[DiffBackend]) -> bool:
    """Whether ``backend`` uses finite differences."""
    return backend is not None and backend.mode == "finite"


def dense_backend(
    backend: DiffBackend,
) -> Union[AutoForward, AutoReverse, AutoFiniteDiff]:
    """Dense backend behind ``backend`` (itself unless it is sparse)."""
    if isinstance(backend, AutoSparse):
        return backend.dense_ad
    return backend
