"""
Exception hierarchy for DiffLinalg.

All exceptions inherit from DiffLinalgError so callers can catch any
library-specific error. Validation errors are also ValueErrors and autograd
errors are also RuntimeErrors, so code written against the builtin types keeps
working.
"""


class DiffLinalgError(Exception):
    """Base exception for all DiffLinalg errors."""
    pass


class ValidationError(DiffLinalgError, ValueError):
    """
    Input validation failed.

    Raised before any kernel runs, so a failed call leaves no partial result.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when the contracted axes of a product disagree, or when a square
    matrix is required and the input is not one.

    Attributes:
        expected: Expected size or shape, if known
        actual: Offending size or shape, if known
    """

    def __init__(self, message, expected=None, actual=None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual


class GradientError(DiffLinalgError, RuntimeError):
    """
    Autograd was used incorrectly.

    Examples: backpropagating twice through a released graph, calling
    backward() on a non-scalar without a seed gradient, or a gradient rule
    producing a gradient whose shape does not match its input.
    """
    pass
