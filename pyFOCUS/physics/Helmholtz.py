from ._physx import Physx
from dataclasses import dataclass
from typing import Optional, Tuple
import numpy as np


@dataclass(frozen=True)
class PhysicalParameters:
    """
    Physical constants of a 2D time-harmonic (TM) scattering problem.

    Attributes
    ----------
    wavelength : float
        Free-space wavelength (default: 532.0, nm)
    n_air : complex
        Refractive index of the background material (default: 1.0)
    n_metal : complex
        Refractive index of the design material (default: silver at 532 nm, 0.054 + 3.429j)
    mu : float
        Relative magnetic permeability (default: 1.0)

    Notes
    -----
    Instances are immutable and meant to be created once per optimization run
    and passed to the physics model.
    """
    wavelength: float = 532.0
    n_air: complex = 1.0
    n_metal: complex = 0.054 + 3.429j
    mu: float = 1.0

    def __post_init__(self):
        if not self.wavelength > 0:
            raise ValueError(f"wavelength must be positive, got {self.wavelength}.")

    @property
    def k(self):
        """Free-space wavenumber 2*pi/wavelength."""
        return 2 * np.pi / self.wavelength

    @property
    def background_coefficient(self):
        """PDE coefficient 1/n_air^2 used outside the design region."""
        return 1.0 / self.n_air**2


@dataclass(frozen=True)
class PMLParameters:
    """
    Perfectly matched layer lining the four sides of a rectangular domain.

    Attributes
    ----------
    lower : tuple of float
        Lower-left corner of the full (outer) domain
    upper : tuple of float
        Upper-right corner of the full (outer) domain
    thickness : float
        Layer thickness. Zero disables the layer
    sigma : float
        Absorption strength
    k : float
        Wavenumber the stretching is scaled by

    Examples
    --------
    >>> physics = PhysicalParameters(wavelength=1.0)
    >>> pml = PMLParameters.from_reflection((0, 0), (2, 2), thickness=0.25, physics=physics)
    >>> s = pml_stretch(pml, np.array([[0.1, 1.0]]))
    """
    lower: Tuple[float, float]
    upper: Tuple[float, float]
    thickness: float
    sigma: float
    k: float

    def __post_init__(self):
        if self.thickness < 0:
            raise ValueError(f"PML thickness must be non-negative, got {self.thickness}.")
        if 2 * self.thickness >= min(self.upper[0] - self.lower[0], self.upper[1] - self.lower[1]):
            raise ValueError("PML layers on opposite sides overlap; reduce the thickness.")

    @classmethod
    def from_reflection(cls, lower, upper, thickness, physics: PhysicalParameters, reflection=1e-10):
        """Build a layer whose strength targets a normal-incidence reflection ``reflection``."""
        if not 0 < reflection < 1:
            raise ValueError(f"reflection must be in (0, 1), got {reflection}.")
        if thickness > 0:
            sigma = -3 / 4 * np.log(reflection) / thickness / np.real(physics.n_air)
        else:
            sigma = 0.0
        return cls(
            lower=(float(lower[0]), float(lower[1])),
            upper=(float(upper[0]), float(upper[1])),
            thickness=float(thickness),
            sigma=float(sigma),
            k=float(physics.k),
        )


def pml_stretch(pml: Optional[PMLParameters], points):
    """
    Complex coordinate stretching factors (s_x, s_y) at the given points.

    Parameters
    ----------
    pml : PMLParameters or None
        Layer description. None means no layer
    points : ndarray
        Coordinates, shape (..., 2)

    Returns
    -------
    ndarray
        Complex stretching, shape (..., 2). Equal to 1 outside the layer,
        1 + (i*sigma/k) * (depth/thickness)^2 inside it.
    """
    points = np.asarray(points, dtype=np.float64)
    s = np.ones(points.shape, dtype=np.complex128)
    if pml is None or pml.thickness == 0:
        return s

    lower = np.asarray(pml.lower, dtype=np.float64)
    upper = np.asarray(pml.upper, dtype=np.float64)
    depth = np.maximum(lower + pml.thickness - points, points - (upper - pml.thickness))
    depth = np.maximum(depth, 0.0)

    s += (1j * pml.sigma / pml.k) * (depth / pml.thickness) ** 2
    return s


def material_index(parameters: PhysicalParameters, rho):
    """Refractive index linearly interpolated between air (rho=0) and metal (rho=1)."""
    return parameters.n_air + rho * (parameters.n_metal - parameters.n_air)


def material_coefficient(parameters: PhysicalParameters, rho):
    """PDE coefficient 1/epsilon = 1/n(rho)^2."""
    return 1.0 / material_index(parameters, rho) ** 2


def material_coefficient_grad(parameters: PhysicalParameters, rho):
    """Derivative of :func:`material_coefficient` with respect to rho."""
    n = material_index(parameters, rho)
    return -2.0 * (parameters.n_metal - parameters.n_air) / n**3


class Helmholtz(Physx):
    """
    Scalar Helmholtz (TM polarization) physics with PML and index interpolation.

    Governs -div(c(x) S(x) grad u) - k^2 mu s_x s_y u = f where c = 1/epsilon,
    S = diag(s_y/s_x, s_x/s_y) is the PML stretching tensor and epsilon follows
    the squared linear interpolation of the refractive index.

    Parameters
    ----------
    parameters : PhysicalParameters, optional
        Wavelength, refractive indices and permeability (default: PhysicalParameters())
    pml : PMLParameters, optional
        Absorbing layer. If None, no layer is used

    Attributes
    ----------
    parameters : PhysicalParameters
        Physical constants
    pml : PMLParameters or None
        Absorbing layer description
    k : float
        Free-space wavenumber

    Methods
    -------
    K(x0s)
        Unit Laplacian element matrix
    locals(x0s)
        Quadrature tables [N, Kxx, Kyy, M, wdetJ]
    volume(x0s)
        Element area
    coefficient(rho), coefficient_grad(rho)
        Material law 1/n(rho)^2 and its derivative
    stretch(points)
        PML stretching factors at points

    Notes
    -----
    - Elements are bilinear quadrilaterals with counter-clockwise nodes
    - 2x2 Gauss quadrature; point q = 2*i + j for (r_i, s_j)
    - Interpolating the index rather than the permittivity keeps 1/epsilon finite

    Examples
    --------
    >>> from pyFOCUS.Physics import Helmholtz, PhysicalParameters
    >>> physics = Helmholtz(PhysicalParameters(wavelength=1.0))
    >>> N, Kxx, Kyy, M, wdetJ = physics.locals(np.array([[0, 0], [1, 0], [1, 1], [0, 1.]]))
    """
    def __init__(self, parameters: PhysicalParameters = PhysicalParameters(), pml: Optional[PMLParameters] = None):
        super().__init__()
        self.parameters = parameters
        self.pml = pml
        self.k = parameters.k

    def K(self, x0s):
        _, Kxx, Kyy, _, _ = _quadrilateral_element_tables(x0s)
        return (Kxx + Kyy).sum(axis=-3)

    def locals(self, x0s):
        return list(_quadrilateral_element_tables(x0s))

    def volume(self, x0s):
        return _quadrilateral_element_area(x0s)

    def coefficient(self, rho):
        return material_coefficient(self.parameters, rho)

    def coefficient_grad(self, rho):
        return material_coefficient_grad(self.parameters, rho)

    def stretch(self, points):
        return pml_stretch(self.pml, points)


def _quadrilateral_element_tables(x0s):
    """
    Per-quadrature-point element tables for bilinear quadrilaterals.

    Parameters:
        x0s (np.array): Nodal positions, shape (4,2) or (n_elements,4,2)

    Returns:
        N (np.array): Shape functions at the points, shape (4,4) [point, node]
        Kxx (np.array): dN/dx dN/dx^T * w*detJ, shape (4,4,4) or (n_elements,4,4,4)
        Kyy (np.array): dN/dy dN/dy^T * w*detJ, same shape as Kxx
        M (np.array): N N^T * w*detJ, same shape as Kxx
        wdetJ (np.array): Quadrature weight times Jacobian, shape (4,) or (n_elements,4)
    """
    if x0s.ndim == 2:
        x0s = x0s[np.newaxis, ...]
        single_element = True
    else:
        single_element = False

    n_elements = x0s.shape[0]
    gauss_points = np.array([-1 / np.sqrt(3), 1 / np.sqrt(3)])

    N = np.zeros((4, 4))
    Kxx = np.zeros((n_elements, 4, 4, 4))
    Kyy = np.zeros((n_elements, 4, 4, 4))
    M = np.zeros((n_elements, 4, 4, 4))
    wdetJ = np.zeros((n_elements, 4))

    for i in range(2):
        r = gauss_points[i]
        for j in range(2):
            s = gauss_points[j]
            q = 2 * i + j

            N[q] = np.array([(1 - r) * (1 - s), (1 + r) * (1 - s), (1 + r) * (1 + s), (1 - r) * (1 + s)]) * 0.25
            dN = np.array([
                [-(1 - s), (1 - s), (1 + s), -(1 + s)],
                [-(1 - r), -(1 + r), (1 + r), (1 - r)],
            ]) * 0.25

            # J[e, a, b] = d x_b / d r_a
            J = np.einsum('an,enb->eab', dN, x0s)
            detJ = J[:, 0, 0] * J[:, 1, 1] - J[:, 0, 1] * J[:, 1, 0]
            if np.any(detJ <= 0):
                raise ValueError(f"Node Order Is Not Correct for elements: {np.where(detJ <= 0)[0]}")

            B = np.einsum('eab,bn->ean', np.linalg.inv(J), dN)

            Kxx[:, q] = B[:, 0, :, None] * B[:, 0, None, :] * detJ[:, None, None]
            Kyy[:, q] = B[:, 1, :, None] * B[:, 1, None, :] * detJ[:, None, None]
            M[:, q] = np.outer(N[q], N[q])[None] * detJ[:, None, None]
            wdetJ[:, q] = detJ

    if single_element:
        return N, Kxx[0], Kyy[0], M[0], wdetJ[0]
    return N, Kxx, Kyy, M, wdetJ


def _quadrilateral_element_area(x0s):
    if x0s.ndim == 2:
        x = x0s[:, 0]
        y = x0s[:, 1]
        return 0.5 * np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y)

    x = x0s[:, :, 0]
    y = x0s[:, :, 1]
    return 0.5 * np.sum(x * np.roll(y, -1, axis=1) - np.roll(x, -1, axis=1) * y, axis=1)
