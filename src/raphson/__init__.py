"""Newton-Raphson and Gauss-Newton nonlinear solvers in JAX.

Extended Summary
----------------
A single generalized first-order algorithm for nonlinear systems
F(x) = 0 and nonlinear least squares min ||F(x)||. Descent kind,
Jacobian path (materialized or matrix-free), linear solver,
preconditioner and line search are independent, validated options of
one immutable configuration.

Routine Listings
----------------
:mod:`algorithms`
    Configuration builders and the iteration engine.
:mod:`descent`
    Newton and Gauss-Newton descent directions.
:mod:`diff`
    Jacobians from analytical functions, JAX autodiff, coloring and
    finite differences.
:mod:`linesearch`
    Step length selection.
:mod:`linsolve`
    Factorization and Krylov linear solves.
:mod:`types`
    Problem, configuration and state types.
:mod:`utils`
    Exceptions and matrix-free operator utilities.

Examples
--------
>>> import jax.numpy as jnp
>>> import raphson as rp
>>> problem = rp.types.make_nonlinear_problem(lambda x: x**3 - 8.0)
>>> config = rp.algorithms.newton_raphson()
>>> rp.algorithms.solve(problem, jnp.array([1.0]), config).x
Array([2.], dtype=float64)

Notes
-----
64-bit floating point is enabled at import; the tolerance checks of the
engine and the failure detection of the linear solves assume it.
"""

import os
from importlib.metadata import version

# Enable multi-threaded CPU execution for JAX (before importing JAX)
os.environ.setdefault(
    "XLA_FLAGS",
    "--xla_cpu_multi_thread_eigen=true intra_op_parallelism_threads=0",
)

# Enable 64-bit precision in JAX (must be set before importing submodules)
import jax  # noqa: E402

jax.config.update("jax_enable_x64", True)

from . import (  # noqa: E402, I001
    utils,
    types,
    linsolve,
    diff,
    descent,
    linesearch,
    algorithms,
)

__version__: str = version("raphson")

__all__: list[str] = [
    "__version__",
    "algorithms",
    "descent",
    "diff",
    "linesearch",
    "linsolve",
    "types",
    "utils",
]
