"""Per-solve state, Jacobian information and solve results.

Extended Summary
----------------
These NamedTuples describe everything that exists only for the duration
of a single call to the iteration engine: the Jacobian information of the
current iterate, the descent direction, the iteration state and the
final result.

Routine Listings
----------------
MaterializedJacobian : NamedTuple
    Jacobian as a dense (m, n) matrix.
JacobianOperator : NamedTuple
    Jacobian available only through its action on vectors.
DescentResult : NamedTuple
    Candidate step direction and linear-solve outcome.
SolveStatus : NamedTuple
    Status code of a solve, with a reason for failures.
SolveStats : NamedTuple
    Evaluation counters of a solve.
IterationState : NamedTuple
    State threaded through the iteration engine.
SolveResult : NamedTuple
    ``(x, status, iterations)`` returned by ``solve``.
SolveHistory : NamedTuple
    Result together with per-iteration diagnostics.
RUNNING, CONVERGED, MAX_ITERS_REACHED : SolveStatus
    Non-failure statuses.
failed : function
    Build a failed status with a reason.
"""

from beartype.typing import (
    Callable,
    Literal,
    NamedTuple,
    Optional,
    Tuple,
    TypeAlias,
    Union,
)
from jaxtyping import Array, Float

StatusCode: TypeAlias = Literal[
    "running", "converged", "max_iters_reached", "failed"
]


class MaterializedJacobian(NamedTuple):
    """Dense Jacobian matrix of shape (m, n)."""

    matrix: Float[Array, " m n"]

    @property
    def shape(self) -> Tuple[int, int]:
        """Shape (m, n) of the Jacobian."""
        return self.matrix.shape


class JacobianOperator(NamedTuple):
    """Matrix-free Jacobian.

    Attributes
    ----------
    apply : Callable
        ``v -> J v`` for v of length n.
    apply_transpose : Callable
        ``u -> J^T u`` for u of length m.
    shape : Tuple[int, int]
        Shape (m, n) of the Jacobian.
    traceable : bool
        Whether the products may be traced by JAX. Products wrapping a
        non-traceable residual are only ever called on concrete arrays.
    """

    apply: Callable
    apply_transpose: Callable
    shape: Tuple[int, int]
    traceable: bool = True


JacobianInfo: TypeAlias = Union[MaterializedJacobian, JacobianOperator]


class DescentResult(NamedTuple):
    """Outcome of a descent computation.

    Attributes
    ----------
    direction : Float[Array, " n"]
        Candidate step direction. Zero when the linear solve failed.
    linear_solve_succeeded : bool
        Whether the underlying linear solve produced a usable solution.
    failure_reason : str, optional
        Reason of the linear-solve failure.
    """

    direction: Float[Array, " n"]
    linear_solve_succeeded: bool = True
    failure_reason: Optional[str] = None


class SolveStatus(NamedTuple):
    """Status of a solve: a code and, for failures, a reason."""

    code: StatusCode
    reason: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        """Whether no further iterations will run."""
        return self.code != "running"

    @property
    def converged(self) -> bool:
        """Whether the solve converged."""
        return self.code == "converged"


RUNNING: SolveStatus = SolveStatus("running")
CONVERGED: SolveStatus = SolveStatus("converged")
MAX_ITERS_REACHED: SolveStatus = SolveStatus("max_iters_reached")


def failed(reason: str) -> SolveStatus:
    """Failed status carrying ``reason``."""
    return SolveStatus("failed", reason)


class SolveStats(NamedTuple):
    """Evaluation counters.

    Attributes
    ----------
    nf : int
        Residual evaluations made by the engine and the line search.
    njacs : int
        Jacobian acquisitions.
    nsolve : int
        Linear solves.
    nfactors : int
        Fresh matrix factorizations.
    """

    nf: int = 0
    njacs: int = 0
    nsolve: int = 0
    nfactors: int = 0


class IterationState(NamedTuple):
    """State of one solve.

    Attributes
    ----------
    x : Float[Array, " n"]
        Current iterate.
    residual : Float[Array, " m"], optional
        Residual at ``x``. None before the first evaluation.
    jacobian_info : JacobianInfo, optional
        Most recently acquired Jacobian information.
    iteration : int
        Number of completed iterate updates.
    status : SolveStatus
        Current status.
    step_length : float
        Last accepted step length, 1.0 before the first step.
    stats : SolveStats
        Evaluation counters so far.
    """

    x: Float[Array, " n"]
    residual: Optional[Float[Array, " m"]] = None
    jacobian_info: Optional[JacobianInfo] = None
    iteration: int = 0
    status: SolveStatus = RUNNING
    step_length: float = 1.0
    stats: SolveStats = SolveStats()


class SolveResult(NamedTuple):
    """Final iterate, terminal status and iteration count."""

    x: Float[Array, " n"]
    status: SolveStatus
    iterations: int


class SolveHistory(NamedTuple):
    """Solve result with per-iteration diagnostics.

    Attributes
    ----------
    result : SolveResult
        Final result.
    residual_norms : Float[Array, " N"]
        Euclidean residual norm of every evaluated iterate.
    step_lengths : Float[Array, " K"]
        Accepted step length of every completed iteration.
    stats : SolveStats
        Evaluation counters.
    """

    result: SolveResult
    residual_norms: Float[Array, " N"]
    step_lengths: Float[Array, " K"]
    stats: SolveStats
