"""Linear solves for Newton and Gauss-Newton steps.

Extended Summary
----------------
Factorization and Krylov solvers behind the linear solver handles of the
algorithm configuration, plus the preconditioners used by the Krylov
solvers.

Submodules
----------
solvers
    Dense factorizations, Krylov solves and factorization reuse
preconditioners
    Jacobi and user supplied preconditioners

Routine Listings
----------------
LinearSolveCache : class
    Per-solve factorization reuse and counters
solve_linear : function
    Solve a square linear system
solve_least_squares : function
    Least-squares or minimum-norm solve
default_linear_solver : function
    Solver used when the configuration names none
requires_matrix : function
    Whether a solver needs a materialized matrix
is_linear_solver : function
    Whether an object is a solver handle
validate_linear_solver : function
    Reject invalid solver parameters
Preconditioners : NamedTuple
    Left and right preconditioner callables
build_preconditioners : function
    Instantiate a preconditioner spec
is_preconditioner_spec : function
    Whether an object is a preconditioner spec
"""

from .preconditioners import (
    Preconditioners,
    build_preconditioners,
    is_preconditioner_spec,
)
from .solvers import (
    LinearSolveCache,
    default_linear_solver,
    is_linear_solver,
    requires_matrix,
    solve_least_squares,
    solve_linear,
    validate_linear_solver,
)

__all__: list[str] = [
    "LinearSolveCache",
    "Preconditioners",
    "build_preconditioners",
    "default_linear_solver",
    "is_linear_solver",
    "is_preconditioner_spec",
    "requires_matrix",
    "solve_least_squares",
    "solve_linear",
    "validate_linear_solver",
]
