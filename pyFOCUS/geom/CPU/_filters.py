from ...core.CPU._ops import interpolate_to_points, scatter_points_to_nodes
from ...errors import LinearSystemSingular, check_unit_interval
import numpy as np
from scipy.sparse import coo_matrix, diags
from scipy.sparse.linalg import splu
from ..commons._filters import FilterKernel
from ._mesh import StructuredMesh2D
import logging
logger = logging.getLogger(__name__)

class HelmholtzFilter(FilterKernel):
    """
    PDE (Helmholtz) density filter on the design sub-mesh.

    Solves -r^2 lap(rho_f) + rho_f = rho with zero-Neumann boundary on the
    union of the design cells. The raw design rho is piecewise constant per cell,
    the filtered field rho_f is nodal bilinear.

    Parameters
    ----------
    mesh : StructuredMesh2D
        Mesh the design cells belong to
    design : ndarray, optional
        Indices of design cells (default: every element)
    r_min : float
        Filter length scale r, in physical units (>= 0)

    Raises
    ------
    ValueError
        If r_min < 0, the design indices are invalid, or r_min > 0 on a mesh whose
        cells have an aspect ratio outside [1/sqrt(2), sqrt(2)]
    LinearSystemSingular
        If the filter operator cannot be factorized

    Attributes
    ----------
    shape : tuple
        (n_design_nodes, n_design_cells)
    design : ndarray
        Design cell indices into mesh.elements
    nodes : ndarray
        Mesh node indices carrying the filtered field
    elements : ndarray
        Design-cell connectivity in filter-node numbering, shape (n_design_cells, 4)
    matrix : scipy.sparse.csc_matrix
        Filter operator A = r^2 K + M_L (symmetric)
    B : scipy.sparse.csr_matrix
        Cell-to-node load operator, B[j, e] = |e|/4

    Methods
    -------
    dot(rho)
        rho_f = A^-1 B rho
    _rmatvec(sens)
        B^T A^-1 sens (A is symmetric, the same factorization serves both ways)
    to_quadrature(rho_f)
        Evaluate rho_f at the quadrature points of the design cells
    from_quadrature(values)
        Transpose of to_quadrature()

    Notes
    -----
    - The mass term is row-lumped, so A @ 1 = B @ 1 and constants are reproduced exactly
    - A is an M-matrix for element aspect ratios in [1/sqrt(2), sqrt(2)], so rho in [0, 1]
      gives rho_f in [0, 1]. Meshes outside that range are rejected when r_min > 0
    - A is factorized once (SuperLU) at construction

    Examples
    --------
    >>> filter = HelmholtzFilter(mesh=mesh, design=design, r_min=5/np.sqrt(3))
    >>> rho_f = filter.dot(rho)
    >>> sens = filter.T @ sens_f
    """
    def __init__(self, mesh: StructuredMesh2D, design=None, r_min=0.0):
        super().__init__()
        if r_min < 0:
            raise ValueError(f"r_min must be non-negative, got {r_min}.")

        aspect = mesh.dx / mesh.dy
        if r_min > 0 and not 1 / np.sqrt(2) - 1e-12 <= aspect <= np.sqrt(2) + 1e-12:
            raise ValueError(f"Element aspect ratio {aspect:.3f} is outside [0.707, 1.414]; "
                             "the filter would not keep densities in [0, 1] (use r_min=0 or near-square cells).")

        if design is None:
            design = np.arange(len(mesh.elements))
        design = np.asarray(design, dtype=np.int64)
        if design.ndim != 1 or design.shape[0] == 0:
            raise ValueError("design must be a non-empty 1D array of element indices.")
        if np.unique(design).shape[0] != design.shape[0]:
            raise ValueError("design contains repeated element indices.")

        self.dtype = np.float64
        self.r_min = r_min
        self.design = design
        self.nodes = np.unique(mesh.elements[design])
        self.elements = np.searchsorted(self.nodes, mesh.elements[design]).astype(np.int32)
        self.N = np.ascontiguousarray(mesh.N, dtype=np.float64)

        n_nodes = self.nodes.shape[0]
        n_cells = design.shape[0]
        self.shape = (n_nodes, n_cells)

        area = float(mesh.As[0])
        rows = np.repeat(self.elements, 4, axis=1).reshape(-1)
        cols = np.tile(self.elements, (1, 4)).reshape(-1)
        K = coo_matrix((np.tile(mesh.K_single.reshape(-1), n_cells), (rows, cols)), shape=(n_nodes, n_nodes)).tocsr()
        lumped = np.bincount(self.elements.reshape(-1), minlength=n_nodes) * (area / 4)

        self.matrix = (r_min**2 * K + diags(lumped)).tocsc()
        self.B = coo_matrix(
            (np.full(4 * n_cells, area / 4), (self.elements.reshape(-1), np.repeat(np.arange(n_cells), 4))),
            shape=(n_nodes, n_cells)
        ).tocsr()

        try:
            self.factor = splu(self.matrix)
        except RuntimeError as e:
            raise LinearSystemSingular(f"Filter operator could not be factorized: {e}") from e

        logger.debug(f"HelmholtzFilter: {n_cells} design cells, {n_nodes} filter nodes, r_min={r_min}")

    def _matvec(self, rho):
        check_unit_interval(rho, name="design variables")
        return self.factor.solve(self.B @ rho.astype(self.dtype))

    def _rmatvec(self, rho):
        return self.B.T @ self.factor.solve(np.asarray(rho, dtype=self.dtype))

    def to_quadrature(self, rho_f):
        return interpolate_to_points(np.ascontiguousarray(rho_f, dtype=self.dtype), self.N, self.elements)

    def from_quadrature(self, values):
        return scatter_points_to_nodes(np.ascontiguousarray(values, dtype=self.dtype), self.N, self.elements, self.shape[0])

    def cell_average(self, rho_f):
        """Mean of the four nodal values of each design cell."""
        return np.asarray(rho_f)[self.elements].mean(axis=1)
