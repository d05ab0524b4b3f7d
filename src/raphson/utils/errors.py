"""Exception taxonomy for configuration and solve failures.

Extended Summary
----------------
Lower layers (differentiation, linear solves, line searches) raise the
exceptions defined here. The iteration engine is the only layer that
turns them into a terminal solve status, so every failure ends up in the
``reason`` of the returned :class:`~raphson.types.SolveStatus`.

Routine Listings
----------------
RaphsonError : Exception
    Base class of every raphson exception.
ConfigurationError : RaphsonError, ValueError
    Structurally invalid option values.
DifferentiationFailure : RaphsonError
    No viable path to the requested Jacobian or Jacobian product.
LinearSolveFailure : RaphsonError
    Singular system, Krylov iteration limit or non-finite solution.
LineSearchFailure : RaphsonError
    No acceptable step length within the step budget.
"""

from beartype.typing import Literal, Tuple

LinearSolveReason = Literal[
    "singular", "iteration-limit", "numerical-overflow"
]
LINEAR_SOLVE_REASONS: Tuple[str, ...] = (
    "singular",
    "iteration-limit",
    "numerical-overflow",
)


class RaphsonError(Exception):
    """Base class for raphson errors."""


class ConfigurationError(RaphsonError, ValueError):
    """Raised when an option value cannot be turned into a configuration.

    Configuration is never partially built: the builder either returns a
    complete :class:`~raphson.types.AlgorithmConfig` or raises this.
    """


class DifferentiationFailure(RaphsonError):
    """Raised when no Jacobian path is viable for the requested product."""


class LinearSolveFailure(RaphsonError):
    """Raised when a linear solve cannot produce a usable solution.

    Parameters
    ----------
    reason : str
        One of ``"singular"``, ``"iteration-limit"`` or
        ``"numerical-overflow"``.
    detail : str, optional
        Human readable context appended to the message.
    """

    def __init__(self, reason: LinearSolveReason, detail: str = "") -> None:
        if reason not in LINEAR_SOLVE_REASONS:
            raise ValueError(f"Unknown linear solve failure: {reason}")
        self.reason: str = reason
        self.detail: str = detail
        message: str = reason if not detail else f"{reason}: {detail}"
        super().__init__(message)


class LineSearchFailure(RaphsonError):
    """Raised when a line search finds no acceptable step length."""
