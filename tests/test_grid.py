"""
Tests for grid construction, initial conditions and centre derivatives.
"""

import math

import numpy as np
import pytest

from american_fd import (
    Grid,
    InvalidArgument,
    PdeSettings,
    PlainVanillaPayoff,
    build_grid,
    first_derivative_at_center,
    grid_limits,
    initial_condition,
    second_derivative_at_center,
    value_at_center,
)


class TestGridLimits:
    """Test the price range covered by the grid."""

    def test_limits_are_geometrically_centred_on_spot(self):
        """s_min * s_max equals spot squared."""
        s_min, s_max = grid_limits(100.0, 0.3, 1.0)
        assert s_min < 100.0 < s_max
        assert s_min * s_max == pytest.approx(100.0**2, rel=1e-12)

    def test_limits_use_volatility_scaled_width(self):
        """Half-width in log space is width * (1 + a / (sigma sqrt T)) * sigma sqrt T."""
        s_min, s_max = grid_limits(100.0, 0.3, 1.0)
        expected = 4.0 * (1.0 + 0.02 / 0.3) * 0.3
        assert math.log(s_max / 100.0) == pytest.approx(expected, rel=1e-12)

    def test_far_strike_is_included(self):
        """A strike outside the natural range widens the grid around the spot."""
        s_min, s_max = grid_limits(100.0, 0.1, 0.25, strike=200.0)
        assert s_max >= 200.0 * 1.1 - 1e-9
        assert s_min * s_max == pytest.approx(100.0**2, rel=1e-12)

        s_min, s_max = grid_limits(100.0, 0.1, 0.25, strike=40.0)
        assert s_min <= 40.0 / 1.1 + 1e-9
        assert s_min * s_max == pytest.approx(100.0**2, rel=1e-12)

    def test_settings_change_width(self):
        """A larger multiplier produces a wider grid."""
        narrow = grid_limits(100.0, 0.3, 1.0, settings=PdeSettings(width_multiplier=3.0))
        wide = grid_limits(100.0, 0.3, 1.0, settings=PdeSettings(width_multiplier=6.0))
        assert wide[0] < narrow[0]
        assert wide[1] > narrow[1]

    @pytest.mark.parametrize("volatility,maturity", [(0.0, 1.0), (-0.2, 1.0), (0.2, 0.0)])
    def test_non_positive_inputs_raise(self, volatility, maturity):
        with pytest.raises(InvalidArgument):
            grid_limits(100.0, volatility, maturity)


class TestBuildGrid:
    """Test grid construction."""

    @pytest.mark.parametrize(
        "spot,volatility,maturity,points,strike",
        [
            (100.0, 0.2, 1.0, 101, 100.0),
            (37.5, 0.45, 0.1, 51, 40.0),
            (1234.5, 0.05, 3.0, 3, 900.0),
        ],
    )
    def test_center_node_holds_spot(self, spot, volatility, maturity, points, strike):
        """The central grid coordinate equals the spot."""
        grid = build_grid(spot, volatility, maturity, points, strike=strike)
        assert grid.size == points
        assert grid.center == points // 2
        assert grid[grid.center] == pytest.approx(spot, rel=1e-14)

    def test_grid_is_strictly_increasing_and_log_uniform(self):
        grid = build_grid(100.0, 0.2, 1.0, 41)
        assert np.all(np.diff(grid.prices) > 0)
        np.testing.assert_allclose(np.diff(grid.log_prices), grid.log_spacing, rtol=1e-10)

    def test_grid_is_read_only(self):
        grid = build_grid(100.0, 0.2, 1.0, 11)
        with pytest.raises(ValueError):
            grid.prices[0] = 1.0

    @pytest.mark.parametrize("points", [1, 2, 4, 100, 51.0])
    def test_even_small_or_fractional_grid_raises(self, points):
        with pytest.raises(InvalidArgument):
            build_grid(100.0, 0.2, 1.0, points)

    def test_grid_rejects_non_increasing_prices(self):
        with pytest.raises(InvalidArgument):
            Grid(prices=np.array([1.0, 3.0, 2.0]), log_spacing=0.1)


class TestInitialCondition:
    """Test payoff evaluation on the grid."""

    def test_put_payoff(self):
        grid = build_grid(100.0, 0.2, 1.0, 21, strike=100.0)
        values = initial_condition(grid, PlainVanillaPayoff("put", 100.0))
        np.testing.assert_allclose(values, np.maximum(100.0 - grid.prices, 0.0))
        assert values[grid.center] == 0.0

    def test_straddle_payoff(self):
        grid = build_grid(100.0, 0.2, 1.0, 21, strike=90.0)
        values = initial_condition(grid, PlainVanillaPayoff("straddle", 90.0))
        np.testing.assert_allclose(values, np.abs(grid.prices - 90.0))

    def test_initial_condition_is_a_fresh_writable_array(self):
        grid = build_grid(100.0, 0.2, 1.0, 21)
        values = initial_condition(grid, PlainVanillaPayoff("call", 100.0))
        values[0] = 5.0
        assert grid.prices[0] != 5.0


class TestCenterDerivatives:
    """Test value, delta and gamma extraction at the centre node."""

    def test_quadratic_is_differentiated_exactly(self):
        """Centred differences are exact for a quadratic on a non-uniform price grid."""
        grid = build_grid(100.0, 0.25, 1.0, 51)
        values = 3.0 + 2.0 * grid.prices + 0.5 * grid.prices**2

        assert value_at_center(values) == pytest.approx(3.0 + 200.0 + 5000.0, rel=1e-12)
        # Centred slope of a quadratic is exact at the chord midpoint
        g = grid.prices
        c = grid.center
        midpoint = 0.5 * (g[c + 1] + g[c - 1])
        assert first_derivative_at_center(values, grid) == pytest.approx(
            2.0 + midpoint, rel=1e-10
        )
        assert second_derivative_at_center(values, grid) == pytest.approx(1.0, rel=1e-8)

    def test_even_sized_arrays(self):
        prices = np.array([1.0, 2.0, 3.0, 4.0])
        grid = Grid(prices=prices, log_spacing=0.0)
        values = prices**2
        assert value_at_center(values) == pytest.approx(6.5)
        assert first_derivative_at_center(values, grid) == pytest.approx(5.0)
        assert second_derivative_at_center(values, grid) == pytest.approx(2.0)

    def test_size_mismatch_raises(self):
        grid = build_grid(100.0, 0.2, 1.0, 11)
        with pytest.raises(InvalidArgument):
            first_derivative_at_center(np.zeros(9), grid)
        with pytest.raises(InvalidArgument):
            value_at_center(np.zeros(2))
