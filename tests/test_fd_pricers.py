"""
Tests for the European and American finite difference pricers.
"""

from dataclasses import replace

import pytest

from american_fd import (
    ControlVariateBreakdown,
    FdAmericanOption,
    FdEuropeanOption,
    FdResult,
    InvalidArgument,
    NumericalFailure,
    OptionSpec,
    PdeSettings,
    black_scholes_price,
    european_reference,
    price_american,
    price_european_fd,
)
from american_fd.fd_pricers import _FdOption


@pytest.fixture
def atm_put():
    return OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.2, grid_points=201, time_steps=400)


class TestOptionSpec:
    """Test validation of pricing requests."""

    def test_defaults(self):
        spec = OptionSpec("call", 100.0, 100.0, 1.0, 0.05, 0.2)
        assert spec.dividend_yield == 0.0
        assert spec.time_steps == 100
        assert spec.grid_points == 101

    @pytest.mark.parametrize(
        "changes",
        [
            {"option_type": "digital"},
            {"spot": -100.0},
            {"strike": 0.0},
            {"maturity": 0.0},
            {"volatility": -0.2},
            {"rate": float("nan")},
            {"dividend_yield": float("inf")},
            {"time_steps": 0},
            {"grid_points": 100},
            {"grid_points": 1},
            {"time_steps": 10.5},
            {"time_steps": True},
            {"grid_points": 51.0},
        ],
    )
    def test_invalid_spec_raises(self, changes):
        kwargs = dict(option_type="call", spot=100.0, strike=100.0, maturity=1.0, rate=0.05,
                      volatility=0.2)
        kwargs.update(changes)
        with pytest.raises(InvalidArgument):
            OptionSpec(**kwargs)

    @pytest.mark.parametrize(
        "changes",
        [
            {"scheme": "adi"},
            {"width_multiplier": 0.0},
            {"low_vol_adjustment": -0.1},
            {"strike_safety_factor": 0.9},
            {"theta_step_fraction": 0.0},
            {"theta_step_fraction": 1.5},
            {"vega_bump": -1e-4},
        ],
    )
    def test_invalid_settings_raise(self, changes):
        with pytest.raises(InvalidArgument):
            PdeSettings(**changes)

    def test_pricer_rejects_wrong_types(self):
        spec = OptionSpec("call", 100.0, 100.0, 1.0, 0.05, 0.2)
        with pytest.raises(InvalidArgument):
            FdAmericanOption({"spot": 100.0})
        with pytest.raises(InvalidArgument):
            FdAmericanOption(spec, settings="crank-nicolson")


class TestFdEuropeanOption:
    """Test the pure finite difference European pricer."""

    def test_call_value_and_greeks_match_closed_form(self):
        spec = OptionSpec("call", 100.0, 100.0, 1.0, 0.05, 0.2, grid_points=201, time_steps=400)
        result = FdEuropeanOption(spec).price()
        reference = european_reference(spec)
        assert result.value == pytest.approx(reference.value, abs=0.02)
        assert result.delta == pytest.approx(reference.delta, abs=5e-3)
        assert result.gamma == pytest.approx(reference.gamma, abs=5e-4)
        assert result.theta == pytest.approx(reference.theta, abs=0.05)

    def test_error_shrinks_with_refinement(self):
        """Error falls at least tenfold from 51 to 401 grid points."""
        spec = OptionSpec("call", 100.0, 100.0, 1.0, 0.05, 0.3)
        analytic = float(black_scholes_price(100.0, 100.0, 1.0, 0.05, 0.3))
        coarse = FdEuropeanOption(replace(spec, grid_points=51, time_steps=510)).price().value
        fine = FdEuropeanOption(replace(spec, grid_points=401, time_steps=4010)).price().value
        assert abs(fine - analytic) * 10.0 <= abs(coarse - analytic)

    @pytest.mark.parametrize("scheme", ["crank-nicolson", "implicit"])
    def test_put_with_dividends(self, scheme):
        result = price_european_fd(
            "put", 90.0, 100.0, 0.5, 0.03, 0.25, dividend_yield=0.02,
            grid_points=201, time_steps=200, scheme=scheme,
        )
        analytic = float(
            black_scholes_price(
                90.0, 100.0, 0.5, 0.03, 0.25, option_type="put", dividend_yield=0.02
            )
        )
        assert isinstance(result, FdResult)
        assert result.value == pytest.approx(analytic, abs=0.05)

    def test_straddle_is_sum_of_call_and_put(self):
        kwargs = dict(spot=100.0, strike=105.0, maturity=1.0, rate=0.04, volatility=0.25,
                      grid_points=101, time_steps=100)
        straddle = price_european_fd("straddle", **kwargs).value
        call = price_european_fd("call", **kwargs).value
        put = price_european_fd("put", **kwargs).value
        assert straddle == pytest.approx(call + put, rel=1e-8)


class TestFdAmericanOption:
    """Test the control-variate American pricer."""

    def test_atm_put_matches_benchmark(self, atm_put):
        result = FdAmericanOption(atm_put).price()
        assert result.value == pytest.approx(6.0904, abs=0.02)
        assert -1.0 < result.delta < 0.0
        assert result.gamma > 0.0
        assert result.theta < 0.0

    def test_breakdown_combines_components(self, atm_put):
        breakdown = FdAmericanOption(atm_put).breakdown()
        assert isinstance(breakdown, ControlVariateBreakdown)
        expected = (
            breakdown.numerical_american.value
            - breakdown.numerical_european.value
            + breakdown.analytic_european.value
        )
        assert breakdown.result.value == pytest.approx(expected, rel=1e-14)
        assert breakdown.early_exercise_premium > 0.0
        assert breakdown.analytic_european.value == pytest.approx(5.573526022256971, rel=1e-12)

    @pytest.mark.parametrize(
        "spec",
        [
            OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.2),
            OptionSpec("put", 80.0, 100.0, 2.0, 0.08, 0.3),
            OptionSpec("call", 100.0, 95.0, 1.0, 0.03, 0.25, dividend_yield=0.08),
            OptionSpec("straddle", 100.0, 100.0, 0.5, 0.05, 0.2, dividend_yield=0.04),
        ],
    )
    def test_american_dominates_numerical_european(self, spec):
        breakdown = FdAmericanOption(spec).breakdown()
        assert breakdown.numerical_american.value >= breakdown.numerical_european.value - 1e-12
        assert breakdown.result.value >= breakdown.analytic_european.value - 1e-12

    @pytest.mark.parametrize(
        "spec",
        [
            # No dividends: early exercise of a call is never optimal
            OptionSpec("call", 100.0, 100.0, 1.0, 0.05, 0.3, grid_points=101, time_steps=200),
            OptionSpec("call", 120.0, 100.0, 1.0, 0.05, 0.3, grid_points=101, time_steps=200),
            # Zero rate: early exercise of a put is never optimal
            OptionSpec("put", 100.0, 100.0, 1.0, 0.0, 0.3, grid_points=101, time_steps=200),
        ],
    )
    def test_inactive_exercise_reproduces_analytic_european(self, spec):
        breakdown = FdAmericanOption(spec).breakdown()
        analytic = european_reference(spec)
        assert breakdown.early_exercise_premium == pytest.approx(0.0, abs=1e-8)
        assert breakdown.result.value == pytest.approx(analytic.value, abs=1e-8)
        assert breakdown.result.delta == pytest.approx(analytic.delta, abs=1e-8)

    def test_theta_uses_small_extra_step(self, atm_put):
        """Theta barely moves when the extra step shrinks further."""
        coarse = FdAmericanOption(atm_put, PdeSettings(theta_step_fraction=0.5)).price().theta
        fine = FdAmericanOption(atm_put, PdeSettings(theta_step_fraction=0.01)).price().theta
        assert fine == pytest.approx(coarse, rel=0.1)

    @pytest.mark.parametrize("scheme", ["crank-nicolson", "implicit"])
    def test_schemes_agree(self, atm_put, scheme):
        result = price_american(
            "put", 100.0, 100.0, 1.0, 0.05, 0.2, grid_points=201, time_steps=400, scheme=scheme
        )
        assert result.value == pytest.approx(6.0904, abs=0.03)

    def test_dividend_call_carries_premium(self):
        spec = OptionSpec("call", 100.0, 100.0, 1.0, 0.03, 0.2, dividend_yield=0.1)
        breakdown = FdAmericanOption(spec).breakdown()
        assert breakdown.result.value > breakdown.analytic_european.value + 0.05

    def test_deep_itm_call_with_dividend_equal_to_rate(self):
        """
        With q = r the carry no longer favours holding a deep in-the-money
        call, so American and European values stay close but are not equal:
        about 30.4 against 29.50 here. The premium must stay positive and
        below 5% of the European value, and the American value cannot fall
        below immediate exercise.
        """
        spec = OptionSpec("call", 130.0, 100.0, 1.0, 0.05, 0.2, dividend_yield=0.05)
        breakdown = FdAmericanOption(spec).breakdown()
        european = breakdown.analytic_european.value
        american = breakdown.result.value

        assert european == pytest.approx(29.50, abs=0.01)
        assert american >= 30.0
        assert 0.0 < american - european < 0.05 * european

    def test_unstable_explicit_scheme_raises(self):
        with pytest.raises(NumericalFailure):
            price_american(
                "put", 100.0, 100.0, 1.0, 0.05, 0.2,
                grid_points=401, time_steps=10, scheme="explicit",
            )

    def test_stable_explicit_scheme_prices(self):
        result = price_american(
            "put", 100.0, 100.0, 1.0, 0.05, 0.2, grid_points=51, time_steps=200, scheme="explicit"
        )
        assert result.value == pytest.approx(6.0904, abs=0.1)

    def test_fractional_steps_raise_before_pricing(self):
        with pytest.raises(InvalidArgument):
            FdAmericanOption(
                OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.2, time_steps=10.5, grid_points=51)
            )

    def test_base_pricer_is_abstract(self):
        spec = OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.2)
        with pytest.raises(TypeError):
            _FdOption(spec)


class TestMemoization:
    """Test that results are cached per spec and settings."""

    def _counting_reference(self, calls):
        def reference(spec):
            calls.append(spec)
            return european_reference(spec)

        return reference

    def test_repeated_price_reuses_result(self):
        calls = []
        spec = OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.2, grid_points=51, time_steps=50)
        pricer = FdAmericanOption(spec, reference=self._counting_reference(calls))
        first = pricer.price()
        assert pricer.price() is first
        assert pricer.breakdown().result is first
        assert len(calls) == 1

    def test_changing_spec_recomputes(self):
        calls = []
        spec = OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.2, grid_points=51, time_steps=50)
        pricer = FdAmericanOption(spec, reference=self._counting_reference(calls))
        atm = pricer.price().value

        pricer.spec = replace(spec, strike=110.0)
        itm = pricer.price().value
        assert len(calls) == 2
        assert itm > atm

        # An equal spec does not invalidate the cache
        pricer.spec = replace(spec, strike=110.0)
        pricer.price()
        assert len(calls) == 2

    def test_changing_settings_recomputes(self):
        calls = []
        spec = OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.2, grid_points=51, time_steps=50)
        pricer = FdAmericanOption(spec, reference=self._counting_reference(calls))
        pricer.price()
        pricer.settings = PdeSettings(scheme="implicit")
        pricer.price()
        assert len(calls) == 2

    def test_european_pricer_caches(self):
        spec = OptionSpec("call", 100.0, 100.0, 1.0, 0.05, 0.2, grid_points=51, time_steps=50)
        pricer = FdEuropeanOption(spec)
        assert pricer.price() is pricer.price()


class TestSensitivities:
    """Test re-pricing sensitivities and implied volatility."""

    def test_vega_close_to_european(self):
        spec = OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.2)
        vega = FdAmericanOption(spec).vega()
        assert vega == pytest.approx(37.524, rel=0.1)

    def test_put_rho_is_negative(self):
        spec = OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.2)
        assert FdAmericanOption(spec).rho() < 0.0

    def test_european_call_rho_matches_closed_form(self):
        spec = OptionSpec("call", 100.0, 100.0, 1.0, 0.05, 0.2, grid_points=201, time_steps=200)
        assert FdEuropeanOption(spec).rho() == pytest.approx(53.2325, rel=0.05)

    def test_implied_volatility_round_trip(self):
        spec = OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.25)
        target = FdAmericanOption(spec).price().value
        start = FdAmericanOption(replace(spec, volatility=0.4))
        implied = start.implied_volatility(target, low=0.05, high=1.0, tol=1e-6)
        assert implied == pytest.approx(0.25, abs=1e-4)

    def test_implied_volatility_rejects_unbracketed_target(self):
        spec = OptionSpec("put", 100.0, 100.0, 1.0, 0.05, 0.25)
        pricer = FdAmericanOption(spec)
        with pytest.raises(InvalidArgument):
            pricer.implied_volatility(150.0, low=0.05, high=1.0)
        with pytest.raises(InvalidArgument):
            pricer.implied_volatility(-1.0)
