"""Newton-Raphson and Gauss-Newton as one configurable algorithm.

Extended Summary
----------------
Configuration builders and the iteration engine. A configuration picks
the descent kind, the Jacobian path, the linear solver, the
preconditioner and the line search; the engine runs it on a problem.

Submodules
----------
config
    Validated construction of algorithm configurations
engine
    Iteration engine and solve entry points

Routine Listings
----------------
make_algorithm_config : function
    Build a configuration and its deprecation notices
newton_raphson : function
    Newton-Raphson configuration
gauss_newton : function
    Gauss-Newton configuration
iterate : function
    Generator of iteration states
solve : function
    Solve to termination
solve_history : function
    Solve and record per-iteration diagnostics
"""

from .config import gauss_newton, make_algorithm_config, newton_raphson
from .engine import iterate, solve, solve_history

__all__: list[str] = [
    "gauss_newton",
    "iterate",
    "make_algorithm_config",
    "newton_raphson",
    "solve",
    "solve_history",
]
