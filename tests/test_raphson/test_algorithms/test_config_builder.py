"""Tests for algorithm configuration construction."""

import warnings

import chex
import pytest
from absl.testing import parameterized

from raphson.algorithms import (
    gauss_newton,
    make_algorithm_config,
    newton_raphson,
)
from raphson.algorithms.config import LEGACY_LINE_SEARCH_MESSAGE
from raphson.types import (
    AutoFiniteDiff,
    AutoForward,
    AutoReverse,
    AutoSparse,
    BacktrackingLineSearch,
    DenseLU,
    DenseQR,
    JacobiPreconditioner,
    KrylovCG,
    KrylovGMRES,
    LineSearchAdapter,
    NoLineSearch,
)
from raphson.utils import ConfigurationError


def _legacy_line_search(phi, dphi, phi_dphi, alpha0, phi0, dphi0):
    return alpha0


class TestMakeAlgorithmConfig(chex.TestCase, parameterized.TestCase):
    """Tests for make_algorithm_config."""

    def test_defaults(self) -> None:
        """Unset options stay unset for lazy resolution."""
        build = make_algorithm_config("newton")
        config = build.config
        assert build.notices == ()
        assert config.needs_concrete_jacobian is None
        assert config.descent_kind == "newton"
        assert config.linear_solver is None
        assert config.preconditioner_spec is None
        assert config.line_search == NoLineSearch()
        assert config.jacobian_backend is None
        assert config.forward_diff_backend is None
        assert config.reverse_diff_backend is None
        assert config.line_search_failure == "fail"

    @parameterized.named_parameters(
        ("forward", AutoForward(), True),
        ("sparse_forward", AutoSparse(AutoForward()), True),
        ("reverse", AutoReverse(), False),
        ("sparse_reverse", AutoSparse(AutoReverse()), False),
        ("finite", AutoFiniteDiff(), False),
    )
    def test_forward_backend_only_for_forward_mode(
        self, autodiff, is_forward
    ) -> None:
        """forward_diff_backend is set only for forward-mode tags."""
        config = make_algorithm_config("newton", autodiff=autodiff).config
        assert config.jacobian_backend == autodiff
        if is_forward:
            assert config.forward_diff_backend == autodiff
        else:
            assert config.forward_diff_backend is None

    def test_vjp_backend_verbatim(self) -> None:
        """vjp_autodiff is stored as given."""
        config = make_algorithm_config(
            "gauss_newton", autodiff=AutoForward(), vjp_autodiff=AutoForward()
        ).config
        assert config.reverse_diff_backend == AutoForward()

    def test_recognized_line_search_kept(self) -> None:
        """Recognized strategies pass through without notices."""
        strategy = BacktrackingLineSearch(c1=1e-3)
        build = make_algorithm_config("newton", line_search=strategy)
        assert build.config.line_search is strategy
        assert build.notices == ()

    def test_legacy_callable_wrapped(self) -> None:
        """A bare callable is wrapped and produces one notice."""
        build = make_algorithm_config(
            "newton", line_search=_legacy_line_search
        )
        assert build.config.line_search == LineSearchAdapter(
            method=_legacy_line_search
        )
        assert len(build.notices) == 1
        assert build.notices[0].message == LEGACY_LINE_SEARCH_MESSAGE
        assert build.notices[0].category is DeprecationWarning

    def test_builder_does_not_warn(self) -> None:
        """The builder itself emits nothing."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            make_algorithm_config("newton", line_search=_legacy_line_search)

    @parameterized.named_parameters(
        ("descent_kind", ("levenberg",), {}),
        ("concrete_jac", ("newton",), {"concrete_jac": "yes"}),
        ("solver", ("newton",), {"linear_solver": "lu"}),
        ("solver_params", ("newton",), {"linear_solver": KrylovCG(tol=-1.0)}),
        ("preconditioner", ("newton",), {"preconditioner_spec": "jacobi"}),
        ("line_search", ("newton",), {"line_search": 3}),
        (
            "line_search_params",
            ("newton",),
            {"line_search": BacktrackingLineSearch(rho=2.0)},
        ),
        ("autodiff", ("newton",), {"autodiff": "forward"}),
        ("vjp_autodiff", ("newton",), {"vjp_autodiff": KrylovCG()}),
        ("policy", ("newton",), {"line_search_failure": "retry"}),
        (
            "contradiction",
            ("newton",),
            {"concrete_jac": False, "linear_solver": DenseLU()},
        ),
    )
    def test_invalid(self, args, kwargs) -> None:
        """Invalid options raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            make_algorithm_config(*args, **kwargs)

    def test_configuration_error_is_value_error(self) -> None:
        """Callers catching ValueError see configuration errors."""
        with pytest.raises(ValueError):
            make_algorithm_config("levenberg")

    def test_operator_with_krylov_allowed(self) -> None:
        """concrete_jac=False is fine with Krylov solvers."""
        config = make_algorithm_config(
            "newton",
            concrete_jac=False,
            linear_solver=KrylovGMRES(),
            preconditioner_spec=JacobiPreconditioner(),
        ).config
        assert config.needs_concrete_jacobian is False


class TestConvenienceConstructors(chex.TestCase):
    """Tests for newton_raphson and gauss_newton."""

    def test_kinds(self) -> None:
        """Each constructor fixes the descent kind."""
        assert newton_raphson().descent_kind == "newton"
        assert gauss_newton(linear_solver=DenseQR()).descent_kind == (
            "gauss_newton"
        )

    def test_deprecation_warned_once(self) -> None:
        """A legacy line search warns exactly once per construction."""
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            config = newton_raphson(line_search=_legacy_line_search)
        deprecations = [
            w for w in caught if issubclass(w.category, DeprecationWarning)
        ]
        assert len(deprecations) == 1
        assert "LineSearchAdapter" in str(deprecations[0].message)
        assert isinstance(config.line_search, LineSearchAdapter)

    def test_no_warning_for_current_options(self) -> None:
        """Current options construct silently."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            gauss_newton(line_search=BacktrackingLineSearch())
