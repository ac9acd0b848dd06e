"""Exception types raised by pyFOCUS.

Linear-algebra failures derive from :class:`RuntimeError` and are fatal to
the evaluation that raised them. Out-of-range densities derive from
:class:`ValueError`.
"""
import numpy as np


class LinearSystemSingular(RuntimeError):
    """Filter or forward operator could not be factorized (singular matrix)."""
    pass


class LinearSystemFailure(RuntimeError):
    """A linear solve did not produce a usable solution.

    Raised when the solution is not finite, when the relative residual
    exceeds the solver tolerance, or when an adjoint solve is requested
    before any forward factorization exists.
    """
    def __init__(self, message, residual=None):
        super().__init__(message)
        self.residual = residual


class InvalidDesignValue(ValueError):
    """A density value outside [0, 1] reached the filter or the projection."""
    pass


class OptimizationAborted(RuntimeError):
    """Continuation run stopped by a linear-solve failure.

    Attributes
    ----------
    result : OptimizationResult
        Partial result holding the design of the last successful evaluation.
    """
    def __init__(self, message, result=None):
        super().__init__(message)
        self.result = result


def check_unit_interval(values, name="density", atol=1e-10):
    """Raise :class:`InvalidDesignValue` if any entry leaves [0, 1] by more than ``atol``."""
    values = np.asarray(values)
    if values.size == 0:
        return
    lo = values.min()
    hi = values.max()
    if not (lo >= -atol and hi <= 1.0 + atol):
        raise InvalidDesignValue(
            f"{name} must lie in [0, 1], got values in [{lo:.6g}, {hi:.6g}]."
        )
