from ...core.CPU._ops import process_dk_helmholtz
from ...geom.CPU._mesh import StructuredMesh2D
import numpy as np
from scipy.sparse import coo_matrix
import logging
logger = logging.getLogger(__name__)

class StiffnessKernel:
    """
    Base class for system matrix assembly kernels.

    Attributes
    ----------
    shape : tuple
        Global matrix dimensions (n_dof, n_dof)
    has_rho : bool
        True if design variables have been set
    rho : ndarray
        Current design variables
    constraints : ndarray (bool)
        Boolean array marking constrained DOFs
    has_cons : bool
        True if boundary conditions have been applied

    Methods
    -------
    set_rho(rho)
        Set design variables used by dot() and solvers
    dot(rhs)
        Matrix-vector product A(rho) @ rhs
    construct(rho)
        Build explicit CSR matrix representation
    add_constraints(dof_indices)
        Apply Dirichlet boundary conditions
    process_grad(U, W)
        Operator sensitivities W^H (dA/dc) U
    """
    def __init__(self):
        self.has_rho = False
        self.rho = None
        self.shape = None
        self.matvec = self.dot

    def construct(self, rho):
        """
        Build explicit CSR sparse matrix representation.

        Parameters
        ----------
        rho : ndarray
            Design variables

        Returns
        -------
        csr_matrix
            Sparse system matrix in CSR format
        """
        raise NotImplementedError("construct method must be implemented in subclasses.")

    def process_grad(self, U, W):
        raise NotImplementedError("process_grad method must be implemented in subclasses.")

    def set_rho(self, rho):
        """
        Set design variables for subsequent operations.

        Parameters
        ----------
        rho : ndarray
            Design variables
        """
        self.rho = rho
        self.has_rho = True
        self.CSR = None

    def dot(self, rhs):
        raise NotImplementedError("dot method must be implemented in subclasses.")

    def __matmul__(self, rhs):
        """Convenience: kernel @ rhs calls dot(rhs)."""
        return self.dot(rhs)


class HelmholtzKernel(StiffnessKernel):
    """
    Assembly of the PML-stretched Helmholtz operator on a structured mesh.

    A = sum_e sum_q c_eq S_eq - k^2 mu s_x s_y M_q, with S_eq = (s_y/s_x) Kxx_q + (s_x/s_y) Kyy_q
    evaluated at the quadrature points q of every element e. The coefficient c is
    fixed (background) outside the design cells and follows the material law of the
    physics model inside them.

    Parameters
    ----------
    mesh : StructuredMesh2D
        Mesh with a Helmholtz physics model
    design : ndarray, optional
        Indices of design cells (default: every element)

    Attributes
    ----------
    shape : tuple
        (n_nodes, n_nodes)
    design : ndarray
        Design cell indices
    design_elements : ndarray
        Connectivity of the design cells, shape (n_design, 4)
    S_design : ndarray
        dA_e/dc_eq for the design cells, shape (n_design, 4, 4, 4), complex
    base : ndarray
        Element matrices with background coefficient, shape (n_elements, 4, 4), complex
    CSR : csr_matrix
        Last constructed matrix (None before the first construct())
    constraints : ndarray (bool)
        Dirichlet-constrained nodes
    non_con_map : ndarray
        Indices of unconstrained nodes

    Methods
    -------
    construct(rho)
        Assemble A for projected densities rho, shape (n_design, 4)
    process_grad(U, W)
        z[e, q] = W_e^H S_eq U_e for every design cell and quadrature point
    assemble_matrix(weights, kind, elements)
        Weighted mass or gradient bilinear form (design independent)
    assemble_vector(weights, elements)
        Weighted load vector int(f v)

    Notes
    -----
    - rho is the projected density at the 4 quadrature points of each design cell
    - PML stretching and background terms are precomputed once
    - The matrix is complex symmetric (not Hermitian)

    Examples
    --------
    >>> kernel = HelmholtzKernel(mesh=mesh, design=design)
    >>> A = kernel.construct(np.full((len(design), 4), 0.5))
    """
    def __init__(self, mesh: StructuredMesh2D, design=None):
        super().__init__()
        self.mesh = mesh
        self.physics = mesh.physics
        self.elements = mesh.elements
        self.n_nodes = mesh.nodes.shape[0]
        self.shape = (self.n_nodes, self.n_nodes)
        self.dtype = np.complex128

        if design is None:
            design = np.arange(len(mesh.elements))
        self.design = np.asarray(design, dtype=np.int64)
        self.design_elements = np.ascontiguousarray(mesh.elements[self.design])

        self.N, Kxx, Kyy, M, self.wdetJ = mesh.locals
        self.Kxx = Kxx
        self.Kyy = Kyy
        self.M = M

        s = self.physics.stretch(mesh.quadrature_points)
        sx = s[..., 0]
        sy = s[..., 1]
        S = (sy / sx)[:, :, None, None] * Kxx[None] + (sx / sy)[:, :, None, None] * Kyy[None]
        mass = (sx * sy)[:, :, None, None] * M[None]

        parameters = self.physics.parameters
        self.c_background = parameters.background_coefficient
        k2mu = parameters.k**2 * parameters.mu

        self.base = (self.c_background * S - k2mu * mass).sum(axis=1)
        self.S_design = np.ascontiguousarray(S[self.design])

        self.rows = np.repeat(self.elements, 4, axis=1).reshape(-1)
        self.cols = np.tile(self.elements, (1, 4)).reshape(-1)

        self.constraints = np.zeros(self.n_nodes, dtype=bool)
        self.idx_map = np.arange(self.n_nodes)
        self.non_con_map = self.idx_map
        self.has_cons = False
        self.CSR = None

    def _coo(self, values, elements):
        rows = np.repeat(elements, 4, axis=1).reshape(-1)
        cols = np.tile(elements, (1, 4)).reshape(-1)
        return coo_matrix((values.reshape(-1), (rows, cols)), shape=self.shape).tocsr()

    def coefficient(self, rho):
        """PDE coefficient at the design quadrature points."""
        return self.physics.coefficient(rho)

    def construct(self, rho):
        rho = np.asarray(rho)
        if rho.shape != (self.design.shape[0], 4):
            raise ValueError(f"rho must have shape ({self.design.shape[0]}, 4), got {rho.shape}.")

        values = self.base.copy()
        dc = self.coefficient(rho) - self.c_background
        values[self.design] += np.einsum('eq,eqab->eab', dc, self.S_design)

        self.CSR = coo_matrix((values.reshape(-1), (self.rows, self.cols)), shape=self.shape).tocsr()
        return self.CSR

    def dot(self, rhs):
        """
        A(rho) @ rhs with identity rows on constrained nodes.

        Raises
        ------
        ValueError
            If rho has not been set or rhs has the wrong size
        """
        if not self.has_rho:
            raise ValueError("Rho has not been set. dot works only after setting rho.")
        if rhs.shape[0] != self.n_nodes:
            raise ValueError("Shape of the input vector does not match the number of nodes.")
        if self.CSR is None:
            self.construct(self.rho)

        out = self.CSR @ rhs
        if self.has_cons:
            out[self.constraints] = rhs[self.constraints]
        return out

    def set_constraints(self, constraints):
        """
        Set Dirichlet boundary conditions (replaces existing constraints).

        Parameters
        ----------
        constraints : ndarray
            Node indices to constrain
        """
        self.constraints[:] = False
        self.constraints[constraints] = True

        self.has_cons = bool(self.constraints.any())
        self.non_con_map = self.idx_map[~self.constraints]

    def add_constraints(self, constraints):
        """
        Add Dirichlet boundary conditions (accumulates with existing constraints).

        Parameters
        ----------
        constraints : ndarray
            Node indices to constrain
        """
        self.constraints[constraints] = True

        self.has_cons = True
        self.non_con_map = self.idx_map[~self.constraints]

    def process_grad(self, U, W):
        """
        Operator sensitivity at the design quadrature points.

        Parameters
        ----------
        U : ndarray
            Forward solution, shape (n_nodes,)
        W : ndarray
            Adjoint solution, shape (n_nodes,)

        Returns
        -------
        ndarray
            z[e, q] = W_e^H (dA_e/dc_eq) U_e, complex, shape (n_design, 4)

        Notes
        -----
        For a real objective g with A^H W = dg/dU^*, dg/dc_eq = -2 Re(z[e, q]) and
        dg/drho_eq = -2 Re(dc/drho_eq * z[e, q]).
        """
        return process_dk_helmholtz(self.S_design,
                                    self.design_elements,
                                    np.ascontiguousarray(U, dtype=np.complex128),
                                    np.ascontiguousarray(W, dtype=np.complex128))

    def assemble_matrix(self, weights, kind='mass', elements=None):
        """
        Assemble a design-independent weighted bilinear form.

        Parameters
        ----------
        weights : ndarray
            Weight at each quadrature point, shape (n_selected, 4)
        kind : str, optional
            'mass' for int(w u v), 'gradient' for int(w grad u . grad v) (default: 'mass')
        elements : ndarray, optional
            Element indices the weights belong to (default: every element)

        Returns
        -------
        csr_matrix
            Assembled matrix, shape (n_nodes, n_nodes)
        """
        if kind == 'mass':
            table = self.M
        elif kind == 'gradient':
            table = self.Kxx + self.Kyy
        else:
            raise ValueError(f"kind must be 'mass' or 'gradient', got {kind!r}.")

        elements = self.elements if elements is None else self.elements[elements]
        weights = np.asarray(weights)
        if weights.shape != (elements.shape[0], 4):
            raise ValueError(f"weights must have shape ({elements.shape[0]}, 4), got {weights.shape}.")

        return self._coo(np.einsum('eq,qab->eab', weights, table), elements)

    def assemble_vector(self, weights, elements=None):
        """
        Assemble the load vector b_a = sum_e sum_q w_eq N_q[a] wdetJ_q.

        Parameters
        ----------
        weights : ndarray
            Source density at each quadrature point, shape (n_selected, 4)
        elements : ndarray, optional
            Element indices the weights belong to (default: every element)

        Returns
        -------
        ndarray
            Load vector, shape (n_nodes,)
        """
        elements = self.elements if elements is None else self.elements[elements]
        weights = np.asarray(weights)
        if weights.shape != (elements.shape[0], 4):
            raise ValueError(f"weights must have shape ({elements.shape[0]}, 4), got {weights.shape}.")

        values = np.einsum('eq,q,qa->ea', weights, self.wdetJ, self.N)
        out = np.zeros(self.n_nodes, dtype=np.result_type(values.dtype, np.float64))
        np.add.at(out, elements.reshape(-1), values.reshape(-1))
        return out
