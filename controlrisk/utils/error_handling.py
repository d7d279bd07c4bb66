"""Standardized error handling for Control Risk Analytics."""

import functools
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class ControlRiskError(Exception):
    """Base exception for all Control Risk Analytics errors."""

    pass


class DataValidationError(ControlRiskError):
    """Raised when input data validation fails."""

    pass


class ConfigurationError(ControlRiskError):
    """Raised when configuration is invalid."""

    pass


class InvalidPrior(DataValidationError):
    """Raised when a Beta prior or shape parameter is not strictly positive."""

    def __init__(self, alpha: float, beta: float):
        self.alpha = alpha
        self.beta = beta
        super().__init__(
            f"Beta shape parameters must be strictly positive "
            f"(alpha={alpha}, beta={beta})"
        )


class DimensionMismatch(DataValidationError):
    """Raised when paired arrays have unequal lengths."""

    def __init__(self, left: int, right: int, what: str = "arrays"):
        self.left = left
        self.right = right
        super().__init__(f"Paired {what} have unequal lengths: {left} != {right}")


class CycleDetected(ControlRiskError):
    """Raised when a control dependency graph cannot be topologically ordered."""

    def __init__(self, node_ids: list[str]):
        self.node_ids = node_ids
        super().__init__(
            f"Dependency graph contains a cycle involving: {', '.join(node_ids)}"
        )


class UnknownNodeReference(ControlRiskError):
    """Raised when a control id is referenced but not present in the node list."""

    def __init__(self, node_id: str, context: str = "edge"):
        self.node_id = node_id
        super().__init__(f"Unknown control id referenced by {context}: {node_id!r}")


def error_handler(default_return: Any = None, raise_on_error: bool = False):
    """
    Decorator for standardized error handling.

    Args:
        default_return: Value to return if an error occurs
        raise_on_error: Whether to re-raise the exception
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except ControlRiskError as e:
                # Re-raise our custom exceptions
                if raise_on_error:
                    logger.error(f"{func.__name__} failed: {e}")
                    raise
                logger.error(f"Known error in {func.__name__}", exc_info=True)
                return default_return
            except Exception as e:
                # Handle unexpected exceptions
                logger.error(f"Unexpected error in {func.__name__}: {e}", exc_info=True)
                if raise_on_error:
                    raise
                return default_return

        return wrapper

    return decorator
