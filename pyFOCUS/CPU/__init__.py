"""CPU backend public API.

Importing from this module gives access to the CPU implementations of the
pyFOCUS components (meshes, filters, kernels, solvers, finite-element
helpers, problems, optimizers and the continuation driver):

>>> from pyFOCUS.CPU import StructuredMesh2D, FiniteElement, FieldFocusing, optimize
"""

from ..geom.CPU._mesh import StructuredMesh2D
from ..geom.CPU._filters import HelmholtzFilter
from ..stiffness.CPU._FEA import HelmholtzKernel
from ..solvers.CPU._solvers import SPLU
from ..FiniteElement.CPU.FiniteElement import FiniteElement
from ..Problem.CPU.FieldFocusing import FieldFocusing, operator_sensitivity, threshold_pullback, filter_pullback
from ..core.CPU._projection import threshold, threshold_grad, binarize, check_projection_parameters
from ..Optimizers.CPU.MMA import MMA
from ..Optimizers.CPU.PGA import PGA
from ..Optimizers._continuation import Continuation, IterationLog, OptimizationResult, StageResult, Status, optimize
