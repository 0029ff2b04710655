#!/usr/bin/env python3
"""
American Option Example
=======================

This script prices an American option with the control-variate finite
difference method and shows how the result converges as the grid is refined.

To run this example:
    python examples/american_put_example.py

With custom parameters:
    python examples/american_put_example.py --option_type put --spot 100 --strike 100 \
        --expiry 1.0 --rate 0.05 --volatility 0.2 --dividend 0.0 --grid_points 201

The script will:
1. Price the European option in closed form
2. Price the American option and display the control-variate breakdown
3. Compute the Greeks, including vega and rho by re-pricing
4. Run a convergence study and plot price and error against grid size
"""

import argparse
import logging

import matplotlib.pyplot as plt

from american_fd import (
    FdAmericanOption,
    OptionSpec,
    convergence_study,
    extrapolate_richardson,
    fd_pricing_function,
    plot_convergence,
)


def parse_args():
    parser = argparse.ArgumentParser(
        description="American option pricing example for american_fd package.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--option_type", choices=["call", "put", "straddle"], default="put")
    parser.add_argument("--spot", type=float, default=100.0, help="Current stock price")
    parser.add_argument("--strike", type=float, default=100.0, help="Strike price")
    parser.add_argument("--expiry", type=float, default=1.0, help="Time to expiry in years")
    parser.add_argument("--rate", type=float, default=0.05, help="Risk-free interest rate")
    parser.add_argument("--volatility", type=float, default=0.2, help="Annualized volatility")
    parser.add_argument("--dividend", type=float, default=0.0, help="Continuous dividend yield")
    parser.add_argument("--grid_points", type=int, default=201, help="Number of price grid points")
    parser.add_argument("--time_steps", type=int, default=400, help="Number of time steps")
    parser.add_argument("--output", type=str, default="examples/american_convergence.png", help="Output file for plot")
    parser.add_argument("--no-plot", action="store_true", help="Skip displaying the plot (still saves to file)")
    parser.add_argument("--verbose", action="store_true", help="Log control-variate details")
    return parser.parse_args()


def main():
    args = parse_args()
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(name)s %(levelname)s: %(message)s")

    spec = OptionSpec(
        option_type=args.option_type,
        spot=args.spot,
        strike=args.strike,
        maturity=args.expiry,
        rate=args.rate,
        volatility=args.volatility,
        dividend_yield=args.dividend,
        time_steps=args.time_steps,
        grid_points=args.grid_points,
    )
    pricer = FdAmericanOption(spec)

    # ==========================================================================
    # Part 1: Control-variate valuation
    # ==========================================================================
    print("=" * 60)
    print(f"American {spec.option_type} by finite differences")
    print("=" * 60)
    print(f"Spot:       {spec.spot:.2f}")
    print(f"Strike:     {spec.strike:.2f}")
    print(f"Expiry:     {spec.maturity:.2f} years")
    print(f"Rate:       {spec.rate:.2%}")
    print(f"Dividend:   {spec.dividend_yield:.2%}")
    print(f"Volatility: {spec.volatility:.2%}")
    print()

    breakdown = pricer.breakdown()
    print(f"Analytic European:   {breakdown.analytic_european.value:.6f}")
    print(f"Numerical European:  {breakdown.numerical_european.value:.6f}")
    print(f"Numerical American:  {breakdown.numerical_american.value:.6f}")
    print(f"Early exercise:      {breakdown.early_exercise_premium:+.6f}")
    print(f"American value:      {breakdown.result.value:.6f}")

    # ==========================================================================
    # Part 2: Greeks
    # ==========================================================================
    print()
    print("=" * 60)
    print("Greeks")
    print("=" * 60)
    result = breakdown.result
    print(f"Delta: {result.delta:+.4f}  (sensitivity to spot)")
    print(f"Gamma: {result.gamma:+.4f}  (sensitivity of delta to spot)")
    print(f"Theta: {result.theta:+.4f}  (time decay per year)")
    print(f"Vega:  {pricer.vega():+.4f}  (sensitivity to volatility)")
    print(f"Rho:   {pricer.rho():+.4f}  (sensitivity to interest rate)")

    # ==========================================================================
    # Part 3: Convergence
    # ==========================================================================
    print()
    print("=" * 60)
    print("Convergence")
    print("=" * 60)
    grid_sizes = [51, 101, 201, 401]
    df = convergence_study(fd_pricing_function(spec), grid_sizes, time_steps_multiplier=2.0)
    print(df.to_string(index=False))

    extrapolated = extrapolate_richardson(df["price"].iloc[-2], df["price"].iloc[-1])
    print()
    print(f"Richardson extrapolation: {extrapolated:.6f}")

    fig, _ = plot_convergence(df, title=f"American {spec.option_type}")
    fig.savefig(args.output, dpi=150)
    print(f"Plot saved to: {args.output}")

    if not args.no_plot:
        plt.show()


if __name__ == "__main__":
    main()
