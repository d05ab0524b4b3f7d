"""Common utilities used throughout the solver core.

Extended Summary
----------------
Exception taxonomy shared by every layer and matrix-free operator
primitives built from Jacobian products.

Submodules
----------
errors
    Configuration and solve failure exceptions
operators
    Normal-equation operators and stochastic estimators

Routine Listings
----------------
make_normal_matvec : function
    Create (J^T J + λI) matrix-vector product operator
estimate_diagonal : function
    Hutchinson estimate of an operator diagonal
estimate_max_eigenvalue : function
    Power-iteration estimate of the largest eigenvalue
RaphsonError : Exception
    Base class of raphson exceptions
ConfigurationError : Exception
    Invalid option values
DifferentiationFailure : Exception
    No viable Jacobian path
LinearSolveFailure : Exception
    Failed linear solve, with a reason
LineSearchFailure : Exception
    No acceptable step length
"""

from .errors import (
    ConfigurationError,
    DifferentiationFailure,
    LinearSolveFailure,
    LineSearchFailure,
    RaphsonError,
)
from .operators import (
    estimate_diagonal,
    estimate_max_eigenvalue,
    make_normal_matvec,
)

__all__: list[str] = [
    "ConfigurationError",
    "DifferentiationFailure",
    "LineSearchFailure",
    "LinearSolveFailure",
    "RaphsonError",
    "estimate_diagonal",
    "estimate_max_eigenvalue",
    "make_normal_matvec",
]
