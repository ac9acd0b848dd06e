from ..FiniteElement import FiniteElement as FE
from ...geom.CPU._mesh import StructuredMesh2D
from ...stiffness.CPU._FEA import HelmholtzKernel
from ...solvers.CPU._solvers import SPLU
from ...visualizers._2d import plot_field_2D, plot_density_2D
from typing import Optional, Union
from scipy.spatial import KDTree
import numpy as np


class FiniteElement(FE):
    """
    Finite element engine for the Helmholtz problem: sources, boundary conditions, solves.

    Coordinates mesh, assembly kernel and linear solver. Provides the forward solve
    A(rho) u = b, the adjoint solve A^H w = r reusing the forward factorization, and
    the quadrature-based assembly/integration helpers used by problems.

    Parameters
    ----------
    mesh : StructuredMesh2D
        Finite element mesh with a Helmholtz physics model
    kernel : HelmholtzKernel
        Operator assembly kernel
    solver : SPLU
        Linear solver with factorization reuse

    Attributes
    ----------
    mesh : StructuredMesh2D
        Associated mesh
    kernel : HelmholtzKernel
        Assembly kernel
    solver : SPLU
        Linear solver
    rhs : ndarray
        Complex right-hand side vector, shape (n_nodes,)
    n_design : int
        Number of design cells of the kernel

    Methods
    -------
    add_dirichlet_boundary_condition(node_ids=None, positions=None)
        Impose u = 0 at nodes
    add_line_source(y, x_range=None, amplitude=1.0)
        Add int_Gamma amplitude * v ds along a horizontal grid line
    add_point_sources(sources, node_ids=None, positions=None)
        Add nodal sources
    add_volume_source(source, elements=None)
        Add int f v dx
    reset_sources()
        Clear the right-hand side
    reset_dirichlet_boundary_conditions()
        Remove all boundary conditions
    solve(rho=None)
        Forward solve, returns (u, residual)
    solve_adjoint(rhs)
        Adjoint solve with the cached factorization, returns (w, residual)
    integrate(field, elements=None)
        Quadrature of a scalar field
    assemble_vector(source, elements=None)
        Load vector of a source density
    assemble_matrix(weight=1.0, kind='mass', elements=None)
        Weighted mass or gradient matrix

    Notes
    -----
    - Nodes can be given by index (node_ids) or coordinates (positions, KDTree search)
    - Fields passed to integrate/assemble may be callables of points (shape (n, 4, 2)),
      nodal arrays (n_nodes,), per-point arrays (n, 4) or per-element arrays (n,)

    Examples
    --------
    >>> from pyFOCUS.CPU import *
    >>> from pyFOCUS.Physics import Helmholtz, PhysicalParameters, PMLParameters
    >>> params = PhysicalParameters(wavelength=1.0)
    >>> pml = PMLParameters.from_reflection((-1, -1), (1, 1), 0.25, params)
    >>> mesh = StructuredMesh2D(nx=40, ny=40, lx=2.0, ly=2.0, origin=(-1, -1), physics=Helmholtz(params, pml))
    >>> design = mesh.elements_in_box((-0.3, -0.2), (0.3, 0.0))
    >>> kernel = HelmholtzKernel(mesh=mesh, design=design)
    >>> FE = FiniteElement(mesh=mesh, kernel=kernel, solver=SPLU(kernel=kernel))
    >>> FE.add_dirichlet_boundary_condition(node_ids=mesh.boundary_nodes())
    >>> FE.add_line_source(y=-0.6, x_range=(-0.75, 0.75))
    >>> u, residual = FE.solve(np.zeros((len(design), 4)))
    """
    def __init__(self,
                 mesh: StructuredMesh2D,
                 kernel: HelmholtzKernel,
                 solver: SPLU):
        super().__init__()

        self.mesh = mesh
        self.kernel = kernel
        self.solver = solver
        self.dtype = np.complex128

        self.rhs = np.zeros([self.kernel.shape[0]], dtype=self.dtype)
        self.KDTree = None
        self.nel = len(self.mesh.elements)
        self.n_nodes = len(self.mesh.nodes)
        self.n_design = self.kernel.design.shape[0]
        self.dof = self.mesh.dof

    def _find_nodes(self, node_ids, positions):
        if node_ids is None and positions is None:
            raise ValueError("Either node_ids or positions must be provided.")
        if node_ids is not None and positions is not None:
            raise ValueError("Only one of node_ids or positions should be provided.")

        if node_ids is not None:
            return np.asarray(node_ids, dtype=np.int64).reshape(-1)

        if self.KDTree is None:
            self.KDTree = KDTree(self.mesh.nodes)
        _, node_ids = self.KDTree.query(np.atleast_2d(positions))
        return np.asarray(node_ids, dtype=np.int64).reshape(-1)

    def add_dirichlet_boundary_condition(self,
                                         node_ids: Optional[np.ndarray] = None,
                                         positions: Optional[np.ndarray] = None):
        """
        Impose homogeneous Dirichlet conditions u = 0.

        Parameters
        ----------
        node_ids : ndarray, optional
            Node indices to constrain
        positions : ndarray, optional
            Physical coordinates to constrain (nearest nodes), shape (n, 2)

        Notes
        -----
        - Provide either node_ids OR positions, not both
        - Multiple calls accumulate constraints
        - Behind a PML the outer boundary is usually constrained:
          FE.add_dirichlet_boundary_condition(node_ids=mesh.boundary_nodes())
        """
        node_ids = self._find_nodes(node_ids, positions)
        self.kernel.add_constraints(node_ids)

    def add_line_source(self, y, x_range=None, amplitude=1.0):
        """
        Add a line source int_Gamma amplitude * v ds on the grid row nearest to y.

        Parameters
        ----------
        y : float
            Height of the source line
        x_range : tuple of float, optional
            Extent of the line (default: full width)
        amplitude : complex, optional
            Source strength per unit length (default: 1.0)

        Raises
        ------
        ValueError
            If fewer than two nodes fall on the line
        """
        row = self.mesh.nodes_near_line(y, x_range)
        if row.shape[0] < 2:
            raise ValueError("A line source needs at least two nodes on the line.")

        h = np.diff(self.mesh.nodes[row, 0])
        weights = np.zeros(row.shape[0])
        weights[:-1] += h / 2
        weights[1:] += h / 2

        self.rhs[row] += amplitude * weights

    def add_point_sources(self,
                          sources: Union[complex, np.ndarray],
                          node_ids: Optional[np.ndarray] = None,
                          positions: Optional[np.ndarray] = None):
        """
        Add nodal point sources.

        Parameters
        ----------
        sources : complex or ndarray
            Source value(s), scalar or shape (n,)
        node_ids : ndarray, optional
            Node indices
        positions : ndarray, optional
            Physical coordinates (nearest nodes), shape (n, 2)
        """
        node_ids = self._find_nodes(node_ids, positions)
        sources = np.broadcast_to(np.asarray(sources, dtype=self.dtype), node_ids.shape)
        np.add.at(self.rhs, node_ids, sources)

    def add_volume_source(self, source, elements=None):
        """Add int source * v dx over the mesh or the given elements."""
        self.rhs += self.assemble_vector(source, elements=elements)

    def reset_sources(self):
        """
        Clear all sources.

        Sets the right-hand side vector to zero.
        """
        self.rhs[:] = 0

    def reset_dirichlet_boundary_conditions(self):
        """
        Remove all Dirichlet boundary conditions.
        """
        self.kernel.set_constraints([])
        self.kernel.has_cons = False

    def _point_values(self, field, elements=None):
        idx = np.arange(self.nel) if elements is None else np.asarray(elements, dtype=np.int64)

        if callable(field):
            values = np.asarray(field(self.mesh.quadrature_points[idx]))
        else:
            field = np.asarray(field)
            if field.ndim == 0:
                values = np.full((idx.shape[0], 4), field)
            elif field.shape == (self.n_nodes,):
                values = field[self.mesh.elements[idx]] @ self.mesh.N.T
            elif field.shape == (idx.shape[0], 4):
                values = field
            elif field.shape == (idx.shape[0],):
                values = np.repeat(field[:, None], 4, axis=1)
            else:
                raise ValueError(f"Cannot interpret a field of shape {field.shape} on {idx.shape[0]} elements.")

        if values.shape != (idx.shape[0], 4):
            raise ValueError(f"Field values must have shape ({idx.shape[0]}, 4), got {values.shape}.")
        return values

    def integrate(self, field, elements=None):
        """
        Integrate a scalar field with 2x2 Gauss quadrature.

        Parameters
        ----------
        field : callable or ndarray
            Callable of points (n, 4, 2) -> (n, 4), nodal array, per-point or per-element array
        elements : ndarray, optional
            Integrate over these elements only (default: whole mesh)

        Returns
        -------
        float or complex
            Integral value

        Examples
        --------
        >>> area = FE.integrate(1.0)
        >>> energy = FE.integrate(np.abs(u)**2, elements=design)
        """
        values = self._point_values(field, elements)
        return (values * self.kernel.wdetJ[None, :]).sum()

    def assemble_vector(self, source, elements=None):
        """
        Assemble b_a = int source * N_a dx.

        Returns
        -------
        ndarray
            Load vector, shape (n_nodes,)
        """
        return self.kernel.assemble_vector(self._point_values(source, elements), elements=elements)

    def assemble_matrix(self, weight=1.0, kind='mass', elements=None):
        """
        Assemble a design-independent weighted bilinear form.

        Parameters
        ----------
        weight : callable, float or ndarray, optional
            Weight w (default: 1.0)
        kind : str, optional
            'mass' for int w u v, 'gradient' for int w grad(u).grad(v) (default: 'mass')
        elements : ndarray, optional
            Restrict to these elements (default: whole mesh)

        Returns
        -------
        csr_matrix
            Sparse matrix, shape (n_nodes, n_nodes)
        """
        return self.kernel.assemble_matrix(self._point_values(weight, elements), kind=kind, elements=elements)

    def solve(self, rho=None):
        """
        Solve A(rho) u = b.

        Parameters
        ----------
        rho : ndarray, optional
            Projected density at the design quadrature points, shape (n_design, 4).
            If None, the design region is filled with background material (rho = 0)

        Returns
        -------
        u : ndarray
            Complex nodal solution, shape (n_nodes,)
        residual : float
            Relative residual of the solve

        Raises
        ------
        LinearSystemSingular, LinearSystemFailure
            Propagated from the solver
        """
        if rho is None:
            rho = np.zeros((self.n_design, 4))

        if rho.shape != (self.n_design, 4):
            raise ValueError(f"rho must have shape ({self.n_design}, 4), got {rho.shape}.")

        rhs = self.rhs.copy()
        rhs[self.kernel.constraints] = 0

        self.kernel.set_rho(rho)
        U, residual = self.solver.solve(rhs)

        return U, residual

    def solve_adjoint(self, rhs):
        """
        Solve A^H w = rhs with the factorization of the last forward solve.

        Returns
        -------
        w : ndarray
            Complex nodal adjoint solution, shape (n_nodes,)
        residual : float
            Relative residual of the solve
        """
        rhs = np.array(rhs, dtype=self.dtype)
        rhs[self.kernel.constraints] = 0
        return self.solver.solve_adjoint(rhs)

    def visualize_field(self, field, ax=None, rho=None, part='abs', **kwargs):
        """
        Plot a nodal or element field.

        Parameters
        ----------
        field : ndarray
            Nodal (n_nodes,) or element (n_elements,) values, real or complex
        ax : matplotlib.axes.Axes, optional
            Existing axes (default: current axes)
        rho : ndarray, optional
            Element mask, elements with rho <= 0.5 are hidden
        part : str, optional
            'real', 'imag', 'abs' or 'intensity' (|field|^2) for complex fields (default: 'abs')

        Returns
        -------
        matplotlib.axes.Axes
        """
        field = np.asarray(field)
        if field.shape[0] == self.n_nodes:
            field = field[self.mesh.elements].mean(axis=1)

        if np.iscomplexobj(field):
            if part == 'real':
                field = field.real
            elif part == 'imag':
                field = field.imag
            elif part == 'abs':
                field = np.abs(field)
            elif part == 'intensity':
                field = np.abs(field)**2
            else:
                raise ValueError(f"Unknown part {part!r}.")

        return plot_field_2D(self.mesh.nodes, self.mesh.elements, field, rho=rho, ax=ax, **kwargs)

    def visualize_density(self, rho, ax=None, **kwargs):
        """
        Plot per-design-cell densities over the mesh outline.

        Parameters
        ----------
        rho : ndarray
            Density per design cell, shape (n_design,)
        ax : matplotlib.axes.Axes, optional
            Existing axes (default: current axes)

        Returns
        -------
        matplotlib.axes.Axes
        """
        return plot_density_2D(self.mesh.nodes, self.mesh.elements, self.kernel.design, rho, ax=ax, **kwargs)
