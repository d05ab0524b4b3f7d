"""Jacobians of residual functions.

Extended Summary
----------------
Differentiation backends, finite differences, coloring-accelerated
sparse Jacobians and the Jacobian provider that chooses between a
materialized matrix and a matrix-free operator for every solve.

Submodules
----------
backends
    Classification of backend tags
finite_diff
    Finite-difference Jacobians and products
coloring
    Greedy coloring and compressed Jacobians
jacobian
    Jacobian path resolution and acquisition

Routine Listings
----------------
JacobianPath : NamedTuple
    Resolved Jacobian strategy of one solve
resolve_jacobian_path : function
    Decide how Jacobians are obtained
acquire_jacobian : function
    Jacobian information at an iterate
greedy_color : function
    Column coloring of a sparsity pattern
detect_sparsity : function
    Sample a sparsity pattern
compressed_jacobian : function
    Jacobian from colored products
fd_jvp : function
    Finite-difference Jacobian-vector product
fd_vjp : function
    Finite-difference vector-Jacobian product
fd_jacobian : function
    Finite-difference Jacobian
relative_step : function
    Default finite-difference step
is_diff_backend : function
    Whether an object is a backend tag
is_forward_mode : function
    Whether a backend is forward-mode capable
is_reverse_mode : function
    Whether a backend is reverse-mode capable
is_finite_diff : function
    Whether a backend uses finite differences
dense_backend : function
    Dense backend behind a sparse one
"""

from .backends import (
    dense_backend,
    is_diff_backend,
    is_finite_diff,
    is_forward_mode,
    is_reverse_mode,
)
from .coloring import compressed_jacobian, detect_sparsity, greedy_color
from .finite_diff import fd_jacobian, fd_jvp, fd_vjp, relative_step
from .jacobian import JacobianPath, acquire_jacobian, resolve_jacobian_path

__all__: list[str] = [
    "JacobianPath",
    "acquire_jacobian",
    "compressed_jacobian",
    "dense_backend",
    "detect_sparsity",
    "fd_jacobian",
    "fd_jvp",
    "fd_vjp",
    "greedy_color",
    "is_diff_backend",
    "is_finite_diff",
    "is_forward_mode",
    "is_reverse_mode",
    "relative_step",
    "resolve_jacobian_path",
]
