"""Control Risk Analytics: Bayesian, cascade and statistical risk engines."""

__version__ = "0.1.0"
