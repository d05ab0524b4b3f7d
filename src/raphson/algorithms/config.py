"""Construction of algorithm configurations.

Extended Summary
----------------
Every option of the generalized first-order algorithm is validated here,
once, before any solve starts. The builder is pure: it returns the
configuration together with its deprecation notices instead of emitting
warnings, and the convenience constructors re-emit those notices.

Routine Listings
----------------
make_algorithm_config : function
    Validate options and build a :class:`~raphson.types.ConfigBuild`.
newton_raphson : function
    Newton-Raphson configuration, warning about deprecated options.
gauss_newton : function
    Gauss-Newton configuration, warning about deprecated options.

Notes
-----
Passing a bare callable as ``line_search`` is deprecated. Such callables
are wrapped into :class:`~raphson.types.LineSearchAdapter` and keep
working; a :class:`~raphson.types.DeprecationNotice` records the
migration hint.
"""

import warnings

from beartype.typing import Any, List, Optional, Tuple

from raphson.diff import is_diff_backend, is_forward_mode
from raphson.linesearch import is_line_search, validate_line_search
from raphson.linsolve import (
    is_preconditioner_spec,
    requires_matrix,
    validate_linear_solver,
)
from raphson.types import (
    AlgorithmConfig,
    ConfigBuild,
    DeprecationNotice,
    LineSearchAdapter,
    LineSearchStrategy,
    NoLineSearch,
)
from raphson.utils import ConfigurationError

DESCENT_KINDS: Tuple[str, ...] = ("newton", "gauss_newton")
LINE_SEARCH_FAILURE_POLICIES: Tuple[str, ...] = ("fail", "halve")
LEGACY_LINE_SEARCH_MESSAGE: str = (
    "Passing a line-search callable directly is deprecated; wrap it as "
    "LineSearchAdapter(method=...) instead."
)


def _line_search(
    line_search: Any, notices: List[DeprecationNotice]
) -> LineSearchStrategy:
    if line_search is None:
        return NoLineSearch()
    if is_line_search(line_search):
        validate_line_search(line_search)
        return line_search
    if callable(line_search):
        notices.append(DeprecationNotice(LEGACY_LINE_SEARCH_MESSAGE))
        return LineSearchAdapter(method=line_search)
    raise ConfigurationError(f"Unknown line search: {line_search!r}")


def _backend(name: str, backend: Any) -> None:
    if backend is not None and not is_diff_backend(backend):
        raise ConfigurationError(f"Unknown {name} backend: {backend!r}")


def make_algorithm_config(
    descent_kind: str,
    *,
    concrete_jac: Optional[bool] = None,
    linear_solver: Any = None,
    preconditioner_spec: Any = None,
    line_search: Any = None,
    autodiff: Any = None,
    vjp_autodiff: Any = None,
    line_search_failure: str = "fail",
) -> ConfigBuild:
    """Validate options and build an algorithm configuration.

    Parameters
    ----------
    descent_kind : str
        ``"newton"`` or ``"gauss_newton"``.
    concrete_jac : bool, optional
        Force (True) or forbid (False) materialized Jacobians. None
        decides from the linear solver at the first solve.
    linear_solver : LinearSolverHandle, optional
        Linear solver handle. None selects a default per solve.
    preconditioner_spec : JacobiPreconditioner | Callable, optional
        Preconditioner for Krylov solvers.
    line_search : LineSearchStrategy | Callable, optional
        Line-search strategy. None means full steps. A bare callable is
        accepted with a deprecation notice.
    autodiff : DiffBackend, optional
        Backend for Jacobians and Jacobian-vector products.
    vjp_autodiff : DiffBackend, optional
        Backend for vector-Jacobian products.
    line_search_failure : str, optional
        ``"fail"`` (default) or ``"halve"``.

    Returns
    -------
    build : ConfigBuild
        Configuration and deprecation notices.

    Raises
    ------
    ConfigurationError
        Any invalid option, or ``concrete_jac=False`` combined with a
        solver that needs a materialized matrix.

    Examples
    --------
    >>> build = make_algorithm_config(
    ...     "newton", linear_solver=KrylovGMRES(), autodiff=AutoForward()
    ... )
    >>> build.config.needs_concrete_jacobian is None
    True
    """
    if descent_kind not in DESCENT_KINDS:
        raise ConfigurationError(f"Unknown descent kind: {descent_kind!r}")
    if concrete_jac is not None and not isinstance(concrete_jac, bool):
        raise ConfigurationError(
            f"concrete_jac must be True, False or None, got {concrete_jac!r}"
        )
    if linear_solver is not None:
        validate_linear_solver(linear_solver)
        if concrete_jac is False and requires_matrix(linear_solver):
            raise ConfigurationError(
                f"{type(linear_solver).__name__} needs a materialized "
                "Jacobian but concrete_jac=False"
            )
    if not is_preconditioner_spec(preconditioner_spec):
        raise ConfigurationError(
            f"Unknown preconditioner spec: {preconditioner_spec!r}"
        )
    _backend("autodiff", autodiff)
    _backend("vjp_autodiff", vjp_autodiff)
    if line_search_failure not in LINE_SEARCH_FAILURE_POLICIES:
        raise ConfigurationError(
            f"Unknown line_search_failure policy: {line_search_failure!r}"
        )
    notices: List[DeprecationNotice] = []
    strategy: LineSearchStrategy = _line_search(line_search, notices)
    config: AlgorithmConfig = AlgorithmConfig(
        needs_concrete_jacobian=concrete_jac,
        descent_kind=descent_kind,
        linear_solver=linear_solver,
        preconditioner_spec=preconditioner_spec,
        line_search=strategy,
        jacobian_backend=autodiff,
        forward_diff_backend=autodiff if is_forward_mode(autodiff) else None,
        reverse_diff_backend=vjp_autodiff,
        line_search_failure=line_search_failure,
    )
    return ConfigBuild(config=config, notices=tuple(notices))


def _emit(build: ConfigBuild) -> AlgorithmConfig:
    for notice in build.notices:
        warnings.warn(notice.message, notice.category, stacklevel=3)
    return build.config


def newton_raphson(**options: Any) -> AlgorithmConfig:
    """Newton-Raphson configuration.

    Accepts the keyword options of :func:`make_algorithm_config` and
    emits each deprecation notice once as a ``DeprecationWarning``.
    """
    return _emit(make_algorithm_config("newton", **options))


def gauss_newton(**options: Any) -> AlgorithmConfig:
    """Gauss-Newton configuration; see :func:`newton_raphson`."""
    return _emit(make_algorithm_config("gauss_newton", **options))
