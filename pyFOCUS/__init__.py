"""pyFOCUS public package.

Adjoint topology optimization of light-focusing metal/air designs governed by
the 2D Helmholtz equation with a perfectly matched layer. Typical usage imports
the CPU backend and the physics models from :mod:`pyFOCUS.Physics`.

Examples
--------
>>> from pyFOCUS.CPU import StructuredMesh2D, FiniteElement, FieldFocusing, MMA, optimize
>>> from pyFOCUS import Physics
"""
