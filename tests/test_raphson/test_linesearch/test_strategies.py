"""Tests for step length selection."""

import math

import chex
import jax.numpy as jnp
import numpy as np
import pytest
from absl.testing import parameterized

from raphson.linesearch import select_step, validate_line_search
from raphson.types import (
    BacktrackingLineSearch,
    LineSearchAdapter,
    NoLineSearch,
)
from raphson.utils import ConfigurationError, LineSearchFailure


def _atan(x: jnp.ndarray) -> jnp.ndarray:
    return jnp.arctan(x)


class TestSelectStep(chex.TestCase, parameterized.TestCase):
    """Tests for select_step."""

    def setUp(self) -> None:
        super().setUp()
        # Newton on atan from x = 2 overshoots badly.
        self.x = jnp.array([2.0])
        self.residual = _atan(self.x)
        jac = 1.0 / (1.0 + self.x**2)
        self.direction = -self.residual / jac
        self.slope = float(jnp.dot(self.residual, jac * self.direction))

    def _merit(self, alpha: float) -> float:
        value = _atan(self.x + alpha * self.direction)
        return 0.5 * float(jnp.sum(value**2))

    def test_no_line_search(self) -> None:
        """The full step is always taken."""
        alpha = select_step(
            NoLineSearch(),
            _atan,
            self.x,
            self.direction,
            self.residual,
            self.slope,
        )
        assert alpha == 1.0

    @parameterized.named_parameters(("geometric", 1), ("quadratic", 2))
    def test_backtracking_sufficient_decrease(self, order) -> None:
        """The accepted step satisfies the Armijo condition."""
        strategy = BacktrackingLineSearch(order=order)
        alpha = select_step(
            strategy,
            _atan,
            self.x,
            self.direction,
            self.residual,
            self.slope,
        )
        assert 0.0 < alpha < 1.0
        phi0 = self._merit(0.0)
        assert self._merit(alpha) <= phi0 + strategy.c1 * alpha * self.slope

    def test_backtracking_full_step_when_good(self) -> None:
        """A Newton step on a linear residual is accepted at alpha 1."""
        x = jnp.array([1.0, -1.0])
        residual = 2.0 * x
        direction = -x
        slope = float(jnp.dot(residual, 2.0 * direction))
        alpha = select_step(
            BacktrackingLineSearch(),
            lambda z: 2.0 * z,
            x,
            direction,
            residual,
            slope,
        )
        assert alpha == 1.0

    def test_backtracking_rejects_ascent(self) -> None:
        """A non-negative slope is not a descent direction."""
        with pytest.raises(LineSearchFailure):
            select_step(
                BacktrackingLineSearch(),
                _atan,
                self.x,
                -self.direction,
                self.residual,
                -self.slope,
            )

    def test_backtracking_budget_exhausted(self) -> None:
        """Too few trial steps raise LineSearchFailure."""
        with pytest.raises(LineSearchFailure):
            select_step(
                BacktrackingLineSearch(max_steps=1),
                _atan,
                self.x,
                self.direction,
                self.residual,
                self.slope,
            )

    @parameterized.named_parameters(
        ("differentiable", True),
        ("finite_difference", False),
    )
    def test_adapter_derivatives(self, differentiable) -> None:
        """The adapter hands consistent phi and dphi to the method."""
        seen = {}

        def method(phi, dphi, phi_dphi, alpha0, phi0, dphi0):
            seen["phi0"] = phi0
            seen["dphi0"] = dphi0
            seen["dphi_half"] = dphi(0.5)
            seen["pair"] = phi_dphi(0.5)
            return 0.25, phi(0.25)

        alpha = select_step(
            LineSearchAdapter(method),
            _atan,
            self.x,
            self.direction,
            self.residual,
            self.slope,
            differentiable=differentiable,
        )
        assert alpha == 0.25
        assert math.isclose(seen["phi0"], self._merit(0.0))
        assert seen["dphi0"] == self.slope
        h = 1e-6
        expected = (self._merit(0.5 + h) - self._merit(0.5 - h)) / (2 * h)
        np.testing.assert_allclose(seen["dphi_half"], expected, rtol=1e-5)
        np.testing.assert_allclose(seen["pair"][0], self._merit(0.5))

    @parameterized.named_parameters(
        ("negative", -1.0),
        ("zero", 0.0),
        ("nan", float("nan")),
        ("none", None),
    )
    def test_adapter_rejects_bad_step(self, value) -> None:
        """Unusable steps from the external method are failures."""
        with pytest.raises(LineSearchFailure):
            select_step(
                LineSearchAdapter(lambda *args: value),
                _atan,
                self.x,
                self.direction,
                self.residual,
                self.slope,
            )


class TestValidateLineSearch(chex.TestCase, parameterized.TestCase):
    """Tests for validate_line_search."""

    @parameterized.named_parameters(
        ("c1", BacktrackingLineSearch(c1=1.5)),
        ("rho", BacktrackingLineSearch(rho=0.0)),
        ("max_steps", BacktrackingLineSearch(max_steps=0)),
        ("order", BacktrackingLineSearch(order=3)),
        ("adapter", LineSearchAdapter(method=3)),
        ("unknown", "armijo"),
    )
    def test_invalid(self, strategy) -> None:
        """Invalid strategies are configuration errors."""
        with pytest.raises(ConfigurationError):
            validate_line_search(strategy)

    def test_valid(self) -> None:
        """Defaults are valid."""
        validate_line_search(NoLineSearch())
        validate_line_search(BacktrackingLineSearch())
        validate_line_search(LineSearchAdapter(method=lambda *a: 1.0))
