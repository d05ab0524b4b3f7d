"""Scalar type aliases shared across raphson.

Routine Listings
----------------
ScalarFloat : TypeAlias
    Python float or zero-dimensional float array, so that scalars may
    arrive from Python code or from traced JAX code alike.
"""

from beartype.typing import TypeAlias, Union
from jaxtyping import Array, Float

ScalarFloat: TypeAlias = Union[float, Float[Array, " "]]
