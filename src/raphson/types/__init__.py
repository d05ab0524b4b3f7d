"""Type definitions and factory functions for raphson.

Extended Summary
----------------
Immutable NamedTuples describing problems, strategy tags, the algorithm
configuration and per-solve state. The set of strategy tags is closed:
configuration builders reject anything outside it.

Routine Listings
----------------
:func:`make_nonlinear_problem`
    Factory function for NonlinearProblem creation.
:func:`failed`
    Build a failed SolveStatus with a reason.
:class:`NonlinearProblem`
    Residual function with optional derivative capabilities.
:class:`AlgorithmConfig`
    Resolved combination of strategies.
:class:`ConfigBuild`
    Configuration together with deprecation notices.
:class:`DeprecationNotice`
    Advisory produced by a configuration build.
:class:`AutoForward`, :class:`AutoReverse`, :class:`AutoFiniteDiff`,
:class:`AutoSparse`
    Differentiation backend tags.
:class:`DenseLU`, :class:`DenseCholesky`, :class:`DenseQR`,
:class:`DenseSVD`
    Factorization linear solvers.
:class:`KrylovCG`, :class:`KrylovGMRES`, :class:`KrylovBiCGStab`
    Krylov-subspace linear solvers.
:class:`JacobiPreconditioner`
    Diagonal preconditioner.
:class:`NoLineSearch`, :class:`BacktrackingLineSearch`,
:class:`LineSearchAdapter`
    Line-search strategies.
:class:`MaterializedJacobian`, :class:`JacobianOperator`
    Jacobian information variants.
:class:`DescentResult`
    Descent direction and linear-solve outcome.
:class:`IterationState`
    Per-solve state of the iteration engine.
:class:`SolveStatus`, :class:`SolveStats`, :class:`SolveResult`,
:class:`SolveHistory`
    Solve outcomes.

Notes
-----
Always use the factory functions for problems so that sparsity patterns
are validated and normalized.
"""

from .common_types import ScalarFloat
from .config_types import (
    FACTORIZATION_SOLVERS,
    KRYLOV_SOLVERS,
    AlgorithmConfig,
    AutoFiniteDiff,
    AutoForward,
    AutoReverse,
    AutoSparse,
    BacktrackingLineSearch,
    ConfigBuild,
    DenseCholesky,
    DenseLU,
    DenseQR,
    DenseSVD,
    DeprecationNotice,
    DescentKind,
    DiffBackend,
    JacobiPreconditioner,
    KrylovBiCGStab,
    KrylovCG,
    KrylovGMRES,
    LinearSolverHandle,
    LineSearchAdapter,
    LineSearchStrategy,
    NoLineSearch,
    PreconditionerSpec,
)
from .problem_types import NonlinearProblem, make_nonlinear_problem
from .state_types import (
    CONVERGED,
    MAX_ITERS_REACHED,
    RUNNING,
    DescentResult,
    IterationState,
    JacobianInfo,
    JacobianOperator,
    MaterializedJacobian,
    SolveHistory,
    SolveResult,
    SolveStats,
    SolveStatus,
    failed,
)

__all__: list[str] = [
    "CONVERGED",
    "FACTORIZATION_SOLVERS",
    "KRYLOV_SOLVERS",
    "MAX_ITERS_REACHED",
    "RUNNING",
    "AlgorithmConfig",
    "AutoFiniteDiff",
    "AutoForward",
    "AutoReverse",
    "AutoSparse",
    "BacktrackingLineSearch",
    "ConfigBuild",
    "DenseCholesky",
    "DenseLU",
    "DenseQR",
    "DenseSVD",
    "DeprecationNotice",
    "DescentKind",
    "DescentResult",
    "DiffBackend",
    "IterationState",
    "JacobiPreconditioner",
    "JacobianInfo",
    "JacobianOperator",
    "KrylovBiCGStab",
    "KrylovCG",
    "KrylovGMRES",
    "LineSearchAdapter",
    "LineSearchStrategy",
    "LinearSolverHandle",
    "MaterializedJacobian",
    "NoLineSearch",
    "NonlinearProblem",
    "PreconditionerSpec",
    "ScalarFloat",
    "SolveHistory",
    "SolveResult",
    "SolveStats",
    "SolveStatus",
    "failed",
    "make_nonlinear_problem",
]
