"""Physics models exported by pyFOCUS.

Each physics model implements the :class:`pyFOCUS.physics._physx.Physx`
interface and provides the element-level quadrature tables used by the
assembly kernels, plus the material law mapping projected density to the
PDE coefficient.

Available models
- Helmholtz: scalar time-harmonic wave equation with PML stretching

Configuration objects
- PhysicalParameters: wavelength, refractive indices, permeability
- PMLParameters: absorbing layer geometry and strength (see pml_stretch)
"""

from .physics._physx import Physx
from .physics.Helmholtz import (Helmholtz,
                                PhysicalParameters,
                                PMLParameters,
                                pml_stretch,
                                material_index,
                                material_coefficient,
                                material_coefficient_grad)
