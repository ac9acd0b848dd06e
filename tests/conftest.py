import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from pyFOCUS.CPU import (StructuredMesh2D, HelmholtzFilter, HelmholtzKernel, SPLU,
                         FiniteElement, FieldFocusing, threshold, threshold_grad)
from pyFOCUS.Physics import Helmholtz, PhysicalParameters, PMLParameters
from pyFOCUS.Problem._problem import Problem
from pyFOCUS.errors import LinearSystemFailure

LOWER = (-1.0, -1.0)
UPPER = (1.0, 1.0)
PML_THICKNESS = 0.25
SOURCE_Y = -0.5
TARGET = (0.0, 0.4)
WIDTH = 0.1

# 8 design cells on a 16 x 16 mesh
DESIGN_BOX = ((-0.25, -0.25), (0.25, 0.0))
# 2 design cells on a 16 x 16 mesh
SMALL_DESIGN_BOX = ((-0.125, -0.125), (0.125, 0.0))


def build_mesh(n=16):
    params = PhysicalParameters(wavelength=1.0)
    pml = PMLParameters.from_reflection(LOWER, UPPER, PML_THICKNESS, params)
    return StructuredMesh2D(nx=n, ny=n, lx=UPPER[0] - LOWER[0], ly=UPPER[1] - LOWER[1],
                            origin=LOWER, physics=Helmholtz(params, pml))


def build_fe(mesh, design):
    kernel = HelmholtzKernel(mesh=mesh, design=design)
    FE = FiniteElement(mesh=mesh, kernel=kernel, solver=SPLU(kernel=kernel))
    FE.add_dirichlet_boundary_condition(node_ids=mesh.boundary_nodes())
    FE.add_line_source(y=SOURCE_Y, x_range=(-0.5, 0.5))
    return FE


def build_problem(n=16, design_box=DESIGN_BOX, r_min=0.1, intensity='field', beta=8.0, volume_fraction=None):
    mesh = build_mesh(n)
    design = mesh.elements_in_box(*design_box)
    FE = build_fe(mesh, design)
    filter = HelmholtzFilter(mesh=mesh, design=design, r_min=r_min)
    return FieldFocusing(FE=FE, filter=filter, target=TARGET, width=WIDTH,
                         intensity=intensity, beta=beta, volume_fraction=volume_fraction)


class BinaryTarget(Problem):
    """
    Cheap stand-in problem: maximize g = -mean((threshold(p; beta) - target)^2).

    g increases monotonically as each p_i moves toward its binary target, and
    sharper projections bring g closer to 0 for designs on the right side of eta.
    """
    def __init__(self, target, beta=1.0, eta=0.5, fail_after=None):
        super().__init__()
        self.target = np.asarray(target, dtype=np.float64)
        self.beta = beta
        self.eta = eta
        self.desvars = None
        self.fail_after = fail_after
        self.evaluations = 0
        self._g = None
        self._grad = None

    def _evaluate(self, p, beta):
        self.evaluations += 1
        if self.fail_after is not None and self.evaluations > self.fail_after:
            raise LinearSystemFailure("forced failure")
        pt = threshold(p, beta, self.eta)
        r = pt - self.target
        g = -np.mean(r**2)
        dpt = threshold_grad(p, beta, self.eta)
        return g, -2 * r * dpt / p.shape[0]

    def init_desvars(self, desvars=None):
        if desvars is None:
            desvars = np.full(self.target.shape[0], 0.5)
        self._g, self._grad = self._evaluate(np.asarray(desvars, dtype=np.float64), self.beta)
        self.desvars = np.array(desvars, dtype=np.float64)

    def set_desvars(self, desvars):
        self._g, self._grad = self._evaluate(np.asarray(desvars, dtype=np.float64), self.beta)
        self.desvars = np.array(desvars, dtype=np.float64)

    def get_desvars(self):
        return self.desvars

    def set_beta(self, beta):
        if self.desvars is not None:
            self._g, self._grad = self._evaluate(self.desvars, beta)
        self.beta = beta

    def objective(self):
        return self._g

    def f(self, rho=None):
        return -self._g

    def nabla_f(self, rho=None):
        return -self._grad

    def g(self, rho=None):
        return np.array([-1.0])

    def nabla_g(self):
        return np.zeros(self.target.shape[0])

    def N(self):
        return self.target.shape[0]

    def m(self):
        return 1

    def bounds(self):
        return (0.0, 1.0)

    def is_independent(self):
        return True


@pytest.fixture(scope="module")
def mesh():
    return build_mesh()


@pytest.fixture
def problem():
    return build_problem()
