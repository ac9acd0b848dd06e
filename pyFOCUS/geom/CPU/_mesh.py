from ...core.CPU._geom import generate_structured_mesh
import numpy as np
from ...physics._physx import Physx
from ...physics.Helmholtz import Helmholtz
from ..commons._mesh import StructuredMesh
import logging
logger = logging.getLogger(__name__)

class StructuredMesh2D(StructuredMesh):
    """
    2D structured mesh with uniform rectangular bilinear elements.

    Parameters
    ----------
    nx : int
        Number of elements in x-direction
    ny : int
        Number of elements in y-direction
    lx : float
        Physical length of domain in x-direction
    ly : float
        Physical length of domain in y-direction
    origin : tuple of float, optional
        Lower-left corner of the domain (default: (0, 0))
    dtype : np.dtype, optional
        Data type for coordinates (default: np.float64)
    physics : Physx, optional
        Physics model providing element tables (default: Helmholtz())

    Attributes
    ----------
    nelx, nely : int
        Number of elements in x and y directions
    dx, dy : float
        Element dimensions
    elements : ndarray
        Element connectivity, shape (nx*ny, 4). Element index = i*ny + j
    nodes : ndarray
        Node coordinates, shape ((nx+1)*(ny+1), 2). Node index = j*(nx+1) + i
    N : ndarray
        Shape functions at the quadrature points, shape (4, 4) [point, node]
    locals : list
        Single-element tables [N, Kxx, Kyy, M, wdetJ] from physics.locals()
    K_single : ndarray
        Unit Laplacian element matrix
    quadrature_points : ndarray
        Physical quadrature point coordinates, shape (nx*ny, 4, 2)
    As : ndarray
        Element area (single value, all elements identical)
    volume : float
        Total domain area
    dof : int
        Degrees of freedom per node (1)
    centroids : ndarray
        Element centroid coordinates, shape (nx*ny, 2)

    Notes
    -----
    - Element node ordering is counter-clockwise starting from bottom-left
    - Keep dx/dy within [1/sqrt(2), sqrt(2)] so the filter operator stays an M-matrix

    Examples
    --------
    >>> from pyFOCUS.CPU import StructuredMesh2D
    >>> mesh = StructuredMesh2D(nx=40, ny=40, lx=2.0, ly=2.0, origin=(-1.0, -1.0))
    >>> design = mesh.elements_in_box((-0.3, -0.2), (0.3, 0.0))
    """
    def __init__(self, nx, ny, lx, ly, origin=(0.0, 0.0), dtype=np.float64, physics: Physx = Helmholtz()):
        super().__init__()
        self.nelx = nx
        self.nely = ny
        self.lx = lx
        self.ly = ly
        self.origin = np.array(origin, dtype=dtype)
        self.nel = np.array([nx, ny], dtype=np.int32)
        self.dim = np.array([lx, ly], dtype=dtype)
        self.elements, self.nodes = generate_structured_mesh(self.dim, self.nel, origin=self.origin, dtype=dtype)
        self.elements_size = self.elements.shape[1]

        self.dx = lx / nx
        self.dy = ly / ny

        aspect = self.dx / self.dy
        if aspect > np.sqrt(2) or aspect < 1 / np.sqrt(2):
            logger.warning(f"Element aspect ratio {aspect:.3f} is outside [0.707, 1.414]; HelmholtzFilter requires r_min=0 on this mesh.")

        x0s = self.nodes[self.elements[0]]
        self.locals = physics.locals(x0s)
        self.N = self.locals[0]
        self.K_single = physics.K(x0s).astype(dtype)

        self.A_single = np.array([physics.volume(x0s)], dtype=dtype)
        self.As = self.A_single
        self.volume = self.A_single[0] * self.nelx * self.nely

        self.dof = 1
        self.dtype = dtype
        self.physics = physics

        self.centroids = np.meshgrid(
            np.linspace(self.origin[0] + self.dx/2, self.origin[0] + self.lx - self.dx/2, self.nelx, dtype=dtype),
            np.linspace(self.origin[1] + self.dy/2, self.origin[1] + self.ly - self.dy/2, self.nely, dtype=dtype),
            indexing='ij'
        )
        self.centroids = np.stack(self.centroids, axis=-1).reshape(-1, 2)

        self.quadrature_points = np.einsum('qa,ead->eqd', self.N, self.nodes[self.elements])

        logger.debug(f"StructuredMesh2D: {len(self.elements)} elements, {len(self.nodes)} nodes")

    def elements_in_box(self, lower, upper):
        """
        Indices of elements whose centroid lies in the closed box [lower, upper].

        Parameters
        ----------
        lower, upper : array-like
            Box corners, shape (2,)

        Returns
        -------
        ndarray
            Sorted element indices
        """
        lower = np.asarray(lower, dtype=self.dtype)
        upper = np.asarray(upper, dtype=self.dtype)
        inside = np.all((self.centroids >= lower) & (self.centroids <= upper), axis=1)
        return np.where(inside)[0]

    def boundary_nodes(self):
        """Indices of nodes on the outer boundary of the domain."""
        nx = self.nelx + 1
        ny = self.nely + 1
        i = np.arange(len(self.nodes)) % nx
        j = np.arange(len(self.nodes)) // nx
        on_boundary = (i == 0) | (i == nx - 1) | (j == 0) | (j == ny - 1)
        return np.where(on_boundary)[0]

    def nodes_near_line(self, y, x_range=None):
        """
        Nodes of the grid row closest to the horizontal line at height y.

        Parameters
        ----------
        y : float
            Line height
        x_range : tuple of float, optional
            Restrict to nodes with x in [x_range[0], x_range[1]]

        Returns
        -------
        ndarray
            Node indices ordered by increasing x
        """
        nx = self.nelx + 1
        j = int(np.rint((y - self.origin[1]) / self.dy))
        if j < 0 or j > self.nely:
            raise ValueError(f"Line y={y} lies outside the mesh.")

        row = j * nx + np.arange(nx)
        if x_range is not None:
            x = self.nodes[row, 0]
            tol = 1e-9 * self.dx
            row = row[(x >= x_range[0] - tol) & (x <= x_range[1] + tol)]
        return row
