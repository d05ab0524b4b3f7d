"""Coloring-accelerated sparse Jacobians.

Extended Summary
----------------
Two columns of a Jacobian that never share a nonzero row are
structurally orthogonal: a single forward product with the sum of their
unit vectors recovers both columns. Greedy coloring groups columns (or,
for reverse mode, rows) into such classes, so a banded Jacobian with n
columns costs a handful of products instead of n.

Routine Listings
----------------
greedy_color : function
    Greedy coloring of the columns of a sparsity pattern.
detect_sparsity : function
    Sample a structural pattern from dense Jacobians.
compressed_jacobian : function
    Build a Jacobian from colored forward, reverse or finite-difference
    products.

Notes
-----
Coloring works on the host with NumPy; it is computed once per solve and
reused by every Jacobian evaluation of that solve.

References
----------
.. [1] Curtis, Powell & Reid, "On the estimation of sparse Jacobian
       matrices", IMA J. Appl. Math. (1974)
.. [2] Gebremedhin, Manne & Pothen, "What color is your Jacobian? Graph
       coloring for computing derivatives", SIAM Review (2005)
"""

import jax
import jax.numpy as jnp
import numpy as np
from beartype import beartype
from beartype.typing import Callable, Tuple
from jaxtyping import Array, Float, jaxtyped

from raphson.types import (
    AutoFiniteDiff,
    AutoForward,
    AutoReverse,
    AutoSparse,
)

from .finite_diff import fd_jvp


def greedy_color(pattern: np.ndarray) -> Tuple[np.ndarray, int]:
    """Greedy coloring of the columns of ``pattern``.

    Columns i and j conflict when some row has a nonzero in both. Each
    column in natural order takes the smallest color not used by any
    conflicting column already colored.

    Parameters
    ----------
    pattern : numpy.ndarray
        Boolean (m, n) structural nonzero pattern.

    Returns
    -------
    colors : numpy.ndarray
        Integer color of every column, shape (n,).
    num_colors : int
        Number of distinct colors.

    Examples
    --------
    >>> pattern = np.eye(4, dtype=bool)
    >>> greedy_color(pattern)  # diagonal: a single color
    (array([0, 0, 0, 0]), 1)
    """
    pattern = np.asarray(pattern, dtype=bool)
    n: int = pattern.shape[1]
    overlap: np.ndarray = pattern.T.astype(np.int64) @ pattern.astype(np.int64)
    conflicts: np.ndarray = overlap > 0
    colors: np.ndarray = np.full(n, -1, dtype=np.int64)
    for j in range(n):
        used: set = set(colors[conflicts[j] & (colors >= 0)].tolist())
        color: int = 0
        while color in used:
            color += 1
        colors[j] = color
    num_colors: int = int(colors.max()) + 1 if n > 0 else 0
    return colors, num_colors


def detect_sparsity(
    jacobian_fn: Callable[[Float[Array, " n"]], Float[Array, " m n"]],
    x: Float[Array, " n"],
    num_points: int = 2,
    seed: int = 0,
) -> np.ndarray:
    """Sample the structural nonzero pattern of a Jacobian.

    Dense Jacobians are evaluated at ``x`` and at randomly perturbed
    points; the union of their nonzeros is the pattern. Entries that
    vanish at every sampled point are treated as structural zeros.

    Parameters
    ----------
    jacobian_fn : Callable
        Dense Jacobian ``x -> J(x)``.
    x : Float[Array, " n"]
        Base point.
    num_points : int, optional
        Number of perturbed points in addition to ``x``. Default is 2.
    seed : int, optional
        PRNG seed of the perturbations. Default is 0.

    Returns
    -------
    pattern : numpy.ndarray
        Boolean (m, n) pattern.
    """
    pattern: np.ndarray = np.asarray(jacobian_fn(x)) != 0
    keys: Array = jax.random.split(jax.random.PRNGKey(seed), num_points)
    for key in keys:
        noise: Float[Array, " n"] = jax.random.uniform(
            key, x.shape, dtype=jnp.float64, minval=-0.5, maxval=0.5
        )
        point: Float[Array, " n"] = x + noise * (1.0 + jnp.abs(x))
        pattern = pattern | (np.asarray(jacobian_fn(point)) != 0)
    return pattern


@jaxtyped(typechecker=beartype)
def compressed_jacobian(
    residual_fn: Callable,
    x: Float[Array, " n"],
    pattern: np.ndarray,
    colors: np.ndarray,
    num_colors: int,
    backend: AutoSparse,
) -> Float[Array, " m n"]:
    """Jacobian from colored products.

    Implementation Logic
    --------------------
    Forward mode and finite differences color columns: the seed matrix S
    has S[j, colors[j]] = 1 and the compressed product B = J S (m, c)
    is decompressed with J[i, j] = B[i, colors[j]] where the pattern is
    nonzero. Reverse mode colors rows: B = W^T J (c, n) with
    W[i, colors[i]] = 1 and J[i, j] = B[colors[i], j].

    Parameters
    ----------
    residual_fn : Callable
        Residual function.
    x : Float[Array, " n"]
        Evaluation point.
    pattern : numpy.ndarray
        Boolean (m, n) pattern.
    colors : numpy.ndarray
        Column colors (forward/finite) or row colors (reverse).
    num_colors : int
        Number of colors.
    backend : AutoSparse
        Sparse backend selecting the product type.

    Returns
    -------
    jacobian : Float[Array, " m n"]
        Dense Jacobian with structural zeros filled in.
    """
    mask: Float[Array, " m n"] = jnp.asarray(pattern, dtype=jnp.float64)
    dense_ad = backend.dense_ad
    if isinstance(dense_ad, AutoReverse):
        seeds: Float[Array, " m c"] = jax.nn.one_hot(
            jnp.asarray(colors), num_colors, dtype=jnp.float64
        )
        _, vjp_fn = jax.vjp(residual_fn, x)
        rows: Float[Array, " c n"] = jax.vmap(lambda w: vjp_fn(w)[0])(
            seeds.T
        )
        return rows[jnp.asarray(colors), :] * mask
    seeds = jax.nn.one_hot(jnp.asarray(colors), num_colors, dtype=jnp.float64)
    if isinstance(dense_ad, AutoForward):
        compressed: Float[Array, " m c"] = jax.vmap(
            lambda s: jax.jvp(residual_fn, (x,), (s,))[1],
            in_axes=1,
            out_axes=1,
        )(seeds)
    elif isinstance(dense_ad, AutoFiniteDiff):
        fx: Float[Array, " m"] = jnp.asarray(residual_fn(x), dtype=jnp.float64)
        compressed = jnp.stack(
            [
                fd_jvp(residual_fn, x, seeds[:, c], dense_ad, fx)
                for c in range(num_colors)
            ],
            axis=1,
        )
    else:
        raise TypeError(f"Unknown sparse backend: {dense_ad!r}")
    return compressed[:, jnp.asarray(colors)] * mask
