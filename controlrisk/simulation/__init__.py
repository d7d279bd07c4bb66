"""Monte Carlo simulation of loss exposure."""
