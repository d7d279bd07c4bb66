"""Core risk engines for Control Risk Analytics."""

__all__ = [
    "special_functions",
    "random_source",
    "evidence",
    "beta_bernoulli",
    "fair",
    "dependency_graph",
]
