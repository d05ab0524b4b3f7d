"""Strategy tags and the immutable algorithm configuration.

Extended Summary
----------------
Every pluggable choice of the generalized first-order algorithm is a
small immutable NamedTuple tag. The set of tags is closed: the builder in
:mod:`raphson.algorithms.config` rejects anything it does not recognize,
and the engine dispatches on the tag type.

Routine Listings
----------------
AutoForward : NamedTuple
    Forward-mode automatic differentiation (``jax.jvp``/``jax.jacfwd``).
AutoReverse : NamedTuple
    Reverse-mode automatic differentiation (``jax.vjp``/``jax.jacrev``).
AutoFiniteDiff : NamedTuple
    Finite-difference Jacobians and directional derivatives.
AutoSparse : NamedTuple
    Coloring-accelerated wrapper around one of the dense backends.
DenseLU, DenseCholesky, DenseQR, DenseSVD : NamedTuple
    Factorization-based linear solvers (need a materialized matrix).
KrylovCG, KrylovGMRES, KrylovBiCGStab : NamedTuple
    Krylov-subspace linear solvers (operator or matrix).
JacobiPreconditioner : NamedTuple
    Diagonal preconditioner for Krylov solves.
NoLineSearch : NamedTuple
    Always take the full step.
BacktrackingLineSearch : NamedTuple
    Armijo backtracking on the squared residual norm.
LineSearchAdapter : NamedTuple
    Wrapper around an external line-search callable.
AlgorithmConfig : NamedTuple
    Fully resolved combination of strategies.
DeprecationNotice : NamedTuple
    Advisory attached to a configuration build.
ConfigBuild : NamedTuple
    Result of building a configuration: config plus notices.

Notes
-----
Tags without parameters carry a ``name`` field so that two different
tags never compare equal as plain tuples.
"""

from beartype.typing import (
    Callable,
    Literal,
    NamedTuple,
    Optional,
    Tuple,
    Type,
    TypeAlias,
    Union,
)

DescentKind: TypeAlias = Literal["newton", "gauss_newton"]
LineSearchFailurePolicy: TypeAlias = Literal["fail", "halve"]
DiffMode: TypeAlias = Literal["forward", "reverse", "finite"]


class AutoForward(NamedTuple):
    """Forward-mode automatic differentiation."""

    name: str = "forward"

    @property
    def mode(self) -> DiffMode:
        """Differentiation mode of the backend."""
        return "forward"


class AutoReverse(NamedTuple):
    """Reverse-mode automatic differentiation."""

    name: str = "reverse"

    @property
    def mode(self) -> DiffMode:
        """Differentiation mode of the backend."""
        return "reverse"


class AutoFiniteDiff(NamedTuple):
    """Finite differences.

    Attributes
    ----------
    scheme : str
        ``"forward"`` (one extra evaluation per product) or
        ``"central"`` (two extra evaluations, second order accurate).
    step : float, optional
        Relative step size. Defaults to ``sqrt(eps)`` for the forward
        scheme and ``cbrt(eps)`` for the central scheme.
    """

    scheme: str = "forward"
    step: Optional[float] = None

    @property
    def mode(self) -> DiffMode:
        """Differentiation mode of the backend."""
        return "finite"


class AutoSparse(NamedTuple):
    """Coloring-accelerated Jacobian built on a dense backend.

    Structurally orthogonal columns (forward mode, finite differences) or
    rows (reverse mode) share one product evaluation.

    Attributes
    ----------
    dense_ad : AutoForward | AutoReverse | AutoFiniteDiff
        Backend used for the compressed products.
    """

    dense_ad: Union[AutoForward, AutoReverse, AutoFiniteDiff] = AutoForward()

    @property
    def mode(self) -> DiffMode:
        """Differentiation mode of the wrapped backend."""
        return self.dense_ad.mode


DiffBackend: TypeAlias = Union[
    AutoForward, AutoReverse, AutoFiniteDiff, AutoSparse
]


class DenseLU(NamedTuple):
    """LU factorization with partial pivoting (square systems)."""

    name: str = "dense_lu"


class DenseCholesky(NamedTuple):
    """Cholesky factorization (symmetric positive definite systems)."""

    name: str = "dense_cholesky"


class DenseQR(NamedTuple):
    """Reduced QR factorization, least squares for tall systems."""

    name: str = "dense_qr"


class DenseSVD(NamedTuple):
    """SVD based minimum-norm least squares."""

    name: str = "dense_svd"


class KrylovCG(NamedTuple):
    """Conjugate gradients for symmetric positive (semi-)definite systems.

    Attributes
    ----------
    tol : float
        Relative residual tolerance.
    atol : float
        Absolute residual tolerance.
    maxiter : int, optional
        Iteration limit. None uses the JAX default.
    """

    tol: float = 1e-10
    atol: float = 0.0
    maxiter: Optional[int] = None


class KrylovGMRES(NamedTuple):
    """Restarted GMRES for general square systems.

    Attributes
    ----------
    tol : float
        Relative residual tolerance.
    atol : float
        Absolute residual tolerance.
    restart : int
        Krylov subspace size between restarts.
    maxiter : int, optional
        Maximum number of restarts. None uses the JAX default.
    """

    tol: float = 1e-10
    atol: float = 0.0
    restart: int = 20
    maxiter: Optional[int] = None


class KrylovBiCGStab(NamedTuple):
    """Stabilized bi-conjugate gradients for general square systems."""

    tol: float = 1e-10
    atol: float = 0.0
    maxiter: Optional[int] = None


LinearSolverHandle: TypeAlias = Union[
    DenseLU,
    DenseCholesky,
    DenseQR,
    DenseSVD,
    KrylovCG,
    KrylovGMRES,
    KrylovBiCGStab,
]
FACTORIZATION_SOLVERS: Tuple[type, ...] = (
    DenseLU,
    DenseCholesky,
    DenseQR,
    DenseSVD,
)
KRYLOV_SOLVERS: Tuple[type, ...] = (KrylovCG, KrylovGMRES, KrylovBiCGStab)


class JacobiPreconditioner(NamedTuple):
    """Inverse-diagonal preconditioner.

    Attributes
    ----------
    num_samples : int
        Hutchinson probes used when the system is only available as an
        operator. Ignored for materialized matrices.
    seed : int
        PRNG seed of the probes, fixed so that solves are reproducible.
    """

    num_samples: int = 20
    seed: int = 0


PreconditionerSpec: TypeAlias = Union[JacobiPreconditioner, Callable]


class NoLineSearch(NamedTuple):
    """Always accept the full step ``alpha = 1``."""

    name: str = "no_line_search"


class BacktrackingLineSearch(NamedTuple):
    """Armijo backtracking on ``phi(a) = 0.5 * ||F(x + a d)||^2``.

    Attributes
    ----------
    c1 : float
        Sufficient decrease constant in (0, 1).
    rho : float
        Contraction factor in (0, 1) used when ``order == 1`` and as the
        upper safeguard of the interpolated step.
    max_steps : int
        Number of trial steps before giving up.
    order : int
        1 for plain geometric backtracking, 2 for safeguarded quadratic
        interpolation of the merit function.
    """

    c1: float = 1e-4
    rho: float = 0.5
    max_steps: int = 20
    order: int = 2


class LineSearchAdapter(NamedTuple):
    """Adapter for an external line-search callable.

    The callable follows the classic line-search library convention
    ``method(phi, dphi, phi_dphi, alpha0, phi0, dphi0)`` and returns
    either ``alpha`` or ``(alpha, phi(alpha))``.
    """

    method: Callable


LineSearchStrategy: TypeAlias = Union[
    NoLineSearch, BacktrackingLineSearch, LineSearchAdapter
]


class AlgorithmConfig(NamedTuple):
    """Immutable description of one generalized first-order algorithm.

    Attributes
    ----------
    needs_concrete_jacobian : bool, optional
        Whether a materialized Jacobian is required. ``None`` defers the
        decision to the first solve, based on the linear solver.
    descent_kind : str
        ``"newton"`` or ``"gauss_newton"``.
    linear_solver : LinearSolverHandle, optional
        Linear solver. ``None`` selects a default when the solve starts.
    preconditioner_spec : JacobiPreconditioner | Callable, optional
        Preconditioner used by Krylov solvers.
    line_search : LineSearchStrategy
        Step length strategy.
    jacobian_backend : DiffBackend, optional
        Backend used to materialize Jacobians (the user's ``autodiff``).
    forward_diff_backend : DiffBackend, optional
        Backend for Jacobian-vector products, set only for forward-mode
        capable backends.
    reverse_diff_backend : DiffBackend, optional
        Backend for vector-Jacobian products.
    line_search_failure : str
        ``"fail"`` terminates on a line-search failure, ``"halve"``
        retries with half of the previous accepted step.
    """

    needs_concrete_jacobian: Optional[bool]
    descent_kind: DescentKind
    linear_solver: Optional[LinearSolverHandle]
    preconditioner_spec: Optional[PreconditionerSpec]
    line_search: LineSearchStrategy
    jacobian_backend: Optional[DiffBackend]
    forward_diff_backend: Optional[DiffBackend]
    reverse_diff_backend: Optional[DiffBackend]
    line_search_failure: LineSearchFailurePolicy = "fail"


class DeprecationNotice(NamedTuple):
    """Non-fatal advisory produced while building a configuration."""

    message: str
    category: Type[Warning] = DeprecationWarning


class ConfigBuild(NamedTuple):
    """A built configuration together with its advisories."""

    config: AlgorithmConfig
    notices: Tuple[DeprecationNotice, ...] = ()
