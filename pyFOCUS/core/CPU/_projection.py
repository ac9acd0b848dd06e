import numpy as np
from ...errors import check_unit_interval


def check_projection_parameters(beta, eta):
    """Raise ValueError unless beta >= 0 and eta lies in [0, 1]."""
    if beta < 0:
        raise ValueError(f"beta must be non-negative, got {beta}.")
    if not 0.0 <= eta <= 1.0:
        raise ValueError(f"eta must be in [0, 1], got {eta}.")


def threshold(rho, beta, eta=0.5):
    """
    Smoothed Heaviside projection of a filtered density.

    Parameters
    ----------
    rho : ndarray
        Filtered density, values in [0, 1]
    beta : float
        Sharpness (>= 0). beta -> inf approaches a step at eta, beta = 0 is the identity
    eta : float, optional
        Threshold center in [0, 1] (default: 0.5)

    Returns
    -------
    ndarray
        (tanh(beta*eta) + tanh(beta*(rho-eta))) / (tanh(beta*eta) + tanh(beta*(1-eta)))

    Raises
    ------
    InvalidDesignValue
        If rho leaves [0, 1] beyond roundoff
    """
    check_projection_parameters(beta, eta)
    check_unit_interval(rho, name="filtered density")
    rho = np.asarray(rho, dtype=np.float64)

    if beta == 0:
        return rho.copy()

    denom = np.tanh(beta * eta) + np.tanh(beta * (1 - eta))
    return (np.tanh(beta * eta) + np.tanh(beta * (rho - eta))) / denom


def threshold_grad(rho, beta, eta=0.5):
    """
    Derivative of :func:`threshold` with respect to rho.

    beta * (1 - tanh^2(beta*(rho-eta))) / (tanh(beta*eta) + tanh(beta*(1-eta)))
    """
    check_projection_parameters(beta, eta)
    check_unit_interval(rho, name="filtered density")
    rho = np.asarray(rho, dtype=np.float64)

    if beta == 0:
        return np.ones_like(rho)

    denom = np.tanh(beta * eta) + np.tanh(beta * (1 - eta))
    return beta * (1 - np.tanh(beta * (rho - eta)) ** 2) / denom


def binarize(rho, eta=0.5):
    """
    Hard 0/1 design. Ties rho == eta go to the void branch (strict rho > eta).
    """
    return (np.asarray(rho) > eta).astype(np.float64)
