"""
Closed-form Black-Scholes-Merton valuation of European options.

These formulas are the exact reference used by the control-variate
combiner: the finite difference error of a European rollback is measured
against them and removed from the American rollback on the same grid.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.special import ndtr

from .exceptions import InvalidArgument
from .option import FdResult, OptionType

if TYPE_CHECKING:
    from .option import OptionSpec


def standard_normal_cdf(x: ArrayLike) -> NDArray[np.float64]:
    """
    Evaluate the cumulative distribution function of a standard normal variable.

    Parameters
    ----------
    x : ArrayLike
        Scalar or array of evaluation points.

    Returns
    -------
    numpy.ndarray
        Array of CDF values with ``float64`` dtype.
    """

    values = np.asarray(x, dtype=np.float64)
    return ndtr(values)


def standard_normal_pdf(x: ArrayLike) -> NDArray[np.float64]:
    """
    Evaluate the probability density function of a standard normal variable.

    Parameters
    ----------
    x : ArrayLike
        Scalar or array of evaluation points.

    Returns
    -------
    numpy.ndarray
        Array of PDF values with ``float64`` dtype.
    """

    values = np.asarray(x, dtype=np.float64)
    normalization = 1.0 / np.sqrt(2.0 * np.pi)
    return normalization * np.exp(-0.5 * values**2)


def _as_positive_array(value: ArrayLike, name: str) -> NDArray[np.float64]:
    array = np.asarray(value, dtype=np.float64)
    if array.size == 0:
        raise InvalidArgument(f"{name} cannot be empty.")
    if np.any(~np.isfinite(array)) or np.any(array <= 0):
        raise InvalidArgument(f"{name} must be strictly positive.")
    return array


def _prepare_bsm_inputs(
    spot: ArrayLike,
    strike: ArrayLike,
    maturity: ArrayLike,
    rate: float,
    volatility: float,
    dividend_yield: float,
) -> tuple[
    NDArray[np.float64],
    NDArray[np.float64],
    NDArray[np.float64],
    float,
    NDArray[np.float64],
    NDArray[np.float64],
    NDArray[np.float64],
    NDArray[np.float64],
    NDArray[np.float64],
]:
    sigma = float(volatility)
    if not np.isfinite(sigma) or sigma <= 0:
        raise InvalidArgument("volatility must be positive.")
    if not (np.isfinite(rate) and np.isfinite(dividend_yield)):
        raise InvalidArgument("rate and dividend_yield must be finite.")

    spot_arr = _as_positive_array(spot, "spot")
    strike_arr = _as_positive_array(strike, "strike")
    maturity_arr = _as_positive_array(maturity, "maturity")

    sqrt_t = np.sqrt(maturity_arr)
    numerator = (
        np.log(spot_arr / strike_arr) + (rate - dividend_yield + 0.5 * sigma**2) * maturity_arr
    )
    d1 = numerator / (sigma * sqrt_t)
    d2 = d1 - sigma * sqrt_t

    discount_factor = np.exp(-rate * maturity_arr)
    dividend_discount = np.exp(-dividend_yield * maturity_arr)

    return (
        spot_arr,
        strike_arr,
        maturity_arr,
        sigma,
        sqrt_t,
        d1,
        d2,
        discount_factor,
        dividend_discount,
    )


def _check_option_type(option_type: str) -> None:
    if option_type not in ("call", "put", "straddle"):
        raise InvalidArgument("option_type must be 'call', 'put' or 'straddle'.")


def black_scholes_greeks(
    spot: ArrayLike,
    strike: ArrayLike,
    maturity: ArrayLike,
    rate: float,
    volatility: float,
    option_type: OptionType = "call",
    dividend_yield: float = 0.0,
) -> NDArray[np.float64]:
    """
    Compute the primary Black-Scholes-Merton Greeks in a single pass.

    Parameters
    ----------
    spot : ArrayLike
        Spot price(s). Must be strictly positive.
    strike : ArrayLike
        Strike price(s). Must be strictly positive.
    maturity : ArrayLike
        Time to maturity in years. Must be strictly positive.
    rate : float
        Continuously compounded risk-free rate.
    volatility : float
        Annualized volatility. Must be strictly positive.
    option_type : {"call", "put", "straddle"}, default="call"
        Determines whether the Greeks correspond to a call, a put or their sum.
    dividend_yield : float, default=0.0
        Continuous dividend yield.

    Returns
    -------
    numpy.ndarray
        Array where the final axis stores ``[delta, gamma, vega, theta, rho]``.
        Theta is the calendar derivative ``dV/dt`` per year.

    Raises
    ------
    InvalidArgument
        If numeric inputs violate their constraints or the option type is invalid.

    Examples
    --------
    >>> greeks = black_scholes_greeks(spot=100, strike=100, maturity=1, rate=0.05, volatility=0.2)
    >>> greeks[..., 0]  # delta
    array(0.63683065)
    """

    _check_option_type(option_type)
    if option_type == "straddle":
        call = black_scholes_greeks(spot, strike, maturity, rate, volatility, "call", dividend_yield)
        put = black_scholes_greeks(spot, strike, maturity, rate, volatility, "put", dividend_yield)
        return call + put

    (
        spot_arr,
        strike_arr,
        maturity_arr,
        sigma,
        sqrt_t,
        d1,
        d2,
        discount_factor,
        dividend_discount,
    ) = _prepare_bsm_inputs(spot, strike, maturity, rate, volatility, dividend_yield)

    pdf = standard_normal_pdf(d1)
    if option_type == "call":
        delta = dividend_discount * standard_normal_cdf(d1)
    else:
        delta = dividend_discount * (standard_normal_cdf(d1) - 1.0)

    gamma = dividend_discount * pdf / (spot_arr * sigma * sqrt_t)
    vega = spot_arr * dividend_discount * pdf * sqrt_t

    pdf_term = -(spot_arr * dividend_discount * pdf * sigma) / (2.0 * sqrt_t)
    if option_type == "call":
        theta = (
            pdf_term
            - rate * strike_arr * discount_factor * standard_normal_cdf(d2)
            + dividend_yield * spot_arr * dividend_discount * standard_normal_cdf(d1)
        )
        rho = maturity_arr * strike_arr * discount_factor * standard_normal_cdf(d2)
    else:
        theta = (
            pdf_term
            + rate * strike_arr * discount_factor * standard_normal_cdf(-d2)
            - dividend_yield * spot_arr * dividend_discount * standard_normal_cdf(-d1)
        )
        rho = -maturity_arr * strike_arr * discount_factor * standard_normal_cdf(-d2)

    greeks = np.stack((delta, gamma, vega, theta, rho), axis=-1)
    return np.asarray(greeks, dtype=np.float64)


def black_scholes_price(
    spot: ArrayLike,
    strike: ArrayLike,
    maturity: ArrayLike,
    rate: float,
    volatility: float,
    option_type: OptionType = "call",
    dividend_yield: float = 0.0,
) -> NDArray[np.float64]:
    """
    Price a European call, put or straddle using the Black-Scholes-Merton model.

    Parameters
    ----------
    spot : ArrayLike
        Spot price(s) of the underlying asset. Must be strictly positive.
    strike : ArrayLike
        Strike price(s). Must be strictly positive.
    maturity : ArrayLike
        Time to maturity in years. Must be strictly positive.
    rate : float
        Continuously compounded risk-free rate.
    volatility : float
        Annualized volatility. Must be strictly positive.
    option_type : {"call", "put", "straddle"}, default="call"
        Selects the payoff to price.
    dividend_yield : float, default=0.0
        Continuous dividend yield.

    Returns
    -------
    numpy.ndarray
        Array of option values broadcast from the provided inputs.

    Raises
    ------
    InvalidArgument
        If an input violates the constraints or the option type is invalid.

    Examples
    --------
    >>> black_scholes_price(spot=100.0, strike=100.0, maturity=1.0, rate=0.05, volatility=0.2)
    array(10.45058357)
    """

    _check_option_type(option_type)

    (
        spot_arr,
        strike_arr,
        maturity_arr,
        sigma,
        sqrt_t,
        d1,
        d2,
        discount_factor,
        dividend_discount,
    ) = _prepare_bsm_inputs(spot, strike, maturity, rate, volatility, dividend_yield)

    call = (
        dividend_discount * standard_normal_cdf(d1) * spot_arr
        - discount_factor * standard_normal_cdf(d2) * strike_arr
    )
    put = (
        discount_factor * standard_normal_cdf(-d2) * strike_arr
        - dividend_discount * standard_normal_cdf(-d1) * spot_arr
    )

    if option_type == "call":
        price = call
    elif option_type == "put":
        price = put
    else:
        price = call + put

    return np.asarray(price, dtype=np.float64)


def european_reference(spec: OptionSpec) -> FdResult:
    """
    Evaluate the exact European value, delta, gamma and theta for ``spec``.

    This is the reference collaborator of the control-variate pricer. Grid
    and time step settings of ``spec`` are ignored.
    """

    value = black_scholes_price(
        spot=spec.spot,
        strike=spec.strike,
        maturity=spec.maturity,
        rate=spec.rate,
        volatility=spec.volatility,
        option_type=spec.option_type,
        dividend_yield=spec.dividend_yield,
    )
    delta, gamma, _, theta, _ = black_scholes_greeks(
        spot=spec.spot,
        strike=spec.strike,
        maturity=spec.maturity,
        rate=spec.rate,
        volatility=spec.volatility,
        option_type=spec.option_type,
        dividend_yield=spec.dividend_yield,
    )
    return FdResult(float(value), float(delta), float(gamma), float(theta))
