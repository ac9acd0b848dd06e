from .._problem import Problem
from ...FiniteElement.CPU.FiniteElement import FiniteElement
from ...geom.CPU._filters import HelmholtzFilter
from ...core.CPU._projection import threshold, threshold_grad, binarize, check_projection_parameters
from ...physics.Helmholtz import Helmholtz
import numpy as np
import logging
logger = logging.getLogger(__name__)


def focusing_weight(target, width):
    """
    Normalized Gaussian centred on the focal point.

    Returns a callable of points (..., 2) giving exp(-|x - target|^2 / (2 width^2)) / (2 pi width^2).
    """
    target = np.asarray(target, dtype=np.float64)

    def weight(points):
        r2 = ((np.asarray(points) - target)**2).sum(axis=-1)
        return np.exp(-r2 / (2 * width**2)) / (2 * np.pi * width**2)

    return weight


def operator_sensitivity(physics: Helmholtz, rho_t, z):
    """
    dg/drho_t at the design quadrature points.

    Parameters
    ----------
    physics : Helmholtz
        Physics model providing the material law
    rho_t : ndarray
        Projected density, shape (n_design, 4)
    z : ndarray
        W_e^H (dA_e/dc_eq) U_e from HelmholtzKernel.process_grad(), shape (n_design, 4)

    Returns
    -------
    ndarray
        -2 Re(dc/drho_t * z), shape (n_design, 4)
    """
    return -2.0 * np.real(physics.coefficient_grad(rho_t) * z)


def threshold_pullback(sens_t, rho_f_q, beta, eta=0.5):
    """Chain rule through the projection: dg/drho_f = dg/drho_t * drho_t/drho_f, pointwise."""
    return sens_t * threshold_grad(rho_f_q, beta, eta)


def filter_pullback(filter: HelmholtzFilter, sens_f_q):
    """
    Chain rule through interpolation and filter.

    Scatters point sensitivities onto the filter nodes (transpose of
    to_quadrature) and applies B^T A_f^-1.
    """
    return filter._rmatvec(filter.from_quadrature(sens_f_q))


class FieldFocusing(Problem):
    """
    Maximize the field intensity at a focal point by distributing metal in a design region.

    Each evaluation runs filter, threshold projection, forward Helmholtz solve,
    objective, adjoint solve and the chain rule back to the raw design:

        rho_f = A_f^-1 B rho,  rho_t = threshold(rho_f),  A(rho_t) u = b,  g = Re(u^H O u)
        A^H w = O u,  dg/drho = B^T A_f^-1 N^T [threshold'(rho_f) * -2 Re(dc/drho_t * w^H S u)]

    Optimizers minimize, so f() = -g/g_ref where g_ref is |g| at the initial design.

    Parameters
    ----------
    FE : FiniteElement
        Finite element engine with sources and boundary conditions applied
    filter : HelmholtzFilter
        Density filter over the same design cells as FE.kernel
    target : array-like
        Focal point x_c, shape (2,)
    width : float
        Standard deviation delta of the Gaussian weight around the focal point (> 0)
    intensity : str, optional
        'field' for g ~ |u(x_c)|^2 or 'gradient' for g ~ |grad u(x_c)|^2 (default: 'field')
    beta : float, optional
        Projection sharpness (default: 8)
    eta : float, optional
        Projection threshold (default: 0.5)
    volume_fraction : float, optional
        Upper bound on the area fraction of metal in the design region.
        If None, the problem is bound constrained only

    Attributes
    ----------
    O : csr_matrix
        Real symmetric objective operator
    g_ref : float
        Objective normalization fixed by init_desvars()
    iteration : int
        Number of committed set_desvars() calls since init_desvars()

    Methods
    -------
    evaluate(desvars)
        (g, grad g) for any design, without changing the problem state
    objective()
        g at the current design
    set_beta(beta)
        Change the sharpness and re-evaluate the current design
    field()
        Forward solution at the current design
    analyze(binary=True)
        Forward solve on the hard 0/1 design

    Notes
    -----
    - set_desvars() only commits the new design after its evaluation succeeded,
      so a failed solve leaves the last good design in place
    - The adjoint solve reuses the LU factorization of the forward solve

    Examples
    --------
    >>> filter = HelmholtzFilter(mesh=mesh, design=design, r_min=0.05)
    >>> problem = FieldFocusing(FE=FE, filter=filter, target=(0.0, 0.5), width=0.1)
    >>> problem.init_desvars()
    >>> g, grad = problem.evaluate(np.full(problem.N(), 0.5))
    """
    def __init__(self,
                 FE: FiniteElement,
                 filter: HelmholtzFilter,
                 target,
                 width: float,
                 intensity: str = 'field',
                 beta: float = 8,
                 eta: float = 0.5,
                 volume_fraction: float = None):

        super().__init__()

        if not np.array_equal(filter.design, FE.kernel.design):
            raise ValueError("filter and FE.kernel must be built over the same design cells.")
        if width <= 0:
            raise ValueError(f"width must be positive, got {width}.")
        if intensity not in ('field', 'gradient'):
            raise ValueError(f"intensity must be 'field' or 'gradient', got {intensity!r}.")
        if volume_fraction is not None and not 0 < volume_fraction <= 1:
            raise ValueError(f"volume_fraction must be in (0, 1], got {volume_fraction}.")

        check_projection_parameters(beta, eta)

        self.FE = FE
        self.filter = filter
        self.physics = FE.mesh.physics
        self.target = np.asarray(target, dtype=np.float64)
        self.width = width
        self.intensity = intensity
        self.beta = beta
        self.eta = eta
        self.volume_fraction = volume_fraction
        self.dtype = np.float64

        self.O = FE.assemble_matrix(focusing_weight(self.target, width),
                                    kind='mass' if intensity == 'field' else 'gradient')

        self.num_vars = filter.design.shape[0]
        self.iteration = 0
        self.desvars = None
        self.g_ref = None

        self._g = None
        self._nabla = None
        self._U = None
        self._residual = None
        self._adjoint_residual = None

        areas = np.broadcast_to(FE.mesh.As, (FE.nel,))[filter.design]
        self._nabla_g = areas / areas.sum()

    def N(self):
        """Number of design cells."""
        return self.num_vars

    def m(self):
        """One constraint: the volume bound, or an inactive placeholder."""
        return 1

    def is_independent(self):
        return True

    def bounds(self):
        """
        Bounds for design variables.

        Returns
        -------
        tuple
            (0.0, 1.0)
        """
        return (0.0, 1.0)

    def _evaluate(self, desvars, beta):
        desvars = np.asarray(desvars, dtype=self.dtype)
        if desvars.shape != (self.num_vars,):
            raise ValueError(f"Expected {self.num_vars} design variables, got shape {desvars.shape}.")

        rho_f = self.filter.dot(desvars)
        rho_f_q = self.filter.to_quadrature(rho_f)
        rho_t = threshold(rho_f_q, beta, self.eta)

        U, residual = self.FE.solve(rho_t)
        OU = self.O @ U
        g = float(np.real(np.vdot(U, OU)))

        W, adjoint_residual = self.FE.solve_adjoint(OU)
        z = self.FE.kernel.process_grad(U, W)

        sens = operator_sensitivity(self.physics, rho_t, z)
        sens = threshold_pullback(sens, rho_f_q, beta, self.eta)
        grad = filter_pullback(self.filter, sens)

        return {
            'g': g,
            'grad': grad,
            'U': U,
            'residual': residual,
            'adjoint residual': adjoint_residual,
        }

    def _commit(self, desvars, state):
        self.desvars = np.array(desvars, dtype=self.dtype)
        self._g = state['g']
        self._nabla = state['grad']
        self._U = state['U']
        self._residual = state['residual']
        self._adjoint_residual = state['adjoint residual']

    def evaluate(self, desvars, beta=None):
        """
        Objective and gradient at an arbitrary design.

        Parameters
        ----------
        desvars : ndarray
            Raw design, shape (n_design,), values in [0, 1]
        beta : float, optional
            Sharpness to evaluate with (default: the current beta)

        Returns
        -------
        g : float
            Re(u^H O u)
        grad : ndarray
            dg/drho, shape (n_design,)

        Raises
        ------
        InvalidDesignValue
            If desvars leaves [0, 1]
        LinearSystemSingular, LinearSystemFailure
            If a linear solve fails

        Notes
        -----
        Does not change the committed design. The solver factorization is replaced.
        """
        state = self._evaluate(desvars, self.beta if beta is None else beta)
        return state['g'], state['grad']

    def init_desvars(self, desvars=None):
        """
        Initialize and evaluate the design.

        Parameters
        ----------
        desvars : ndarray, optional
            Initial design. Defaults to volume_fraction everywhere, or 0.4
            without a volume constraint

        Notes
        -----
        Resets the iteration counter and fixes g_ref = |g| (1 if g == 0).
        """
        if desvars is None:
            fill = self.volume_fraction if self.volume_fraction is not None else 0.4
            desvars = np.full(self.num_vars, fill, dtype=self.dtype)

        state = self._evaluate(desvars, self.beta)
        self._commit(desvars, state)
        self.iteration = 0
        self.g_ref = abs(self._g) if self._g != 0 else 1.0
        logger.debug(f"FieldFocusing: initial g={self._g:.6e}")

    def set_desvars(self, desvars: np.ndarray):
        """
        Set design variables and evaluate them.

        Parameters
        ----------
        desvars : ndarray
            Design variables, shape (n_design,), values in [0, 1]

        Notes
        -----
        The design is committed only after the forward and adjoint solves succeed.
        """
        state = self._evaluate(desvars, self.beta)
        self._commit(desvars, state)
        self.iteration += 1

    def get_desvars(self):
        """
        Current raw design variables (None before init_desvars()).
        """
        return self.desvars

    def set_beta(self, beta):
        """
        Set the projection sharpness.

        The committed design is re-evaluated so f(), nabla_f() and objective()
        refer to the new beta. g_ref is kept.
        """
        check_projection_parameters(beta, self.eta)
        if self.desvars is not None:
            state = self._evaluate(self.desvars, beta)
            self._commit(self.desvars, state)
        self.beta = beta
        logger.debug(f"FieldFocusing: beta={beta}")

    def objective(self):
        """Field intensity g at the current design."""
        return self._g

    def gradient(self):
        """dg/drho at the current design."""
        return self._nabla

    def f(self, rho: np.ndarray = None):
        """
        Minimized objective -g/g_ref.

        Parameters
        ----------
        rho : ndarray, optional
            If given, returns the linearization f + nabla_f . rho
        """
        f = -self._g / self.g_ref
        if rho is None:
            return f
        else:
            return f + rho.T @ self.nabla_f()

    def nabla_f(self, rho: np.ndarray = None):
        return -self._nabla / self.g_ref

    def g(self, rho=None):
        """
        Constraint values, shape (1,). Negative means satisfied.

        mean area-weighted density minus volume_fraction, or -1 without a volume bound.
        """
        if self.volume_fraction is None:
            return np.array([-1.0])

        if rho is None:
            rho = self.desvars
        return np.array([self._nabla_g @ rho - self.volume_fraction])

    def nabla_g(self):
        if self.volume_fraction is None:
            return np.zeros(self.num_vars, dtype=self.dtype)
        return self._nabla_g

    def ill_conditioned(self):
        """
        True if the forward residual is large (>= 1e-2).
        """
        return self._residual is not None and self._residual >= 1e-2

    def is_terminal(self):
        return True

    def logs(self):
        """
        Diagnostics of the current design.

        Returns
        -------
        dict
            'iteration', 'intensity' (g), 'beta', 'residual', 'adjoint residual'
        """
        return {
            'iteration': int(self.iteration),
            'intensity': float(self._g),
            'beta': float(self.beta),
            'residual': float(self._residual),
            'adjoint residual': float(self._adjoint_residual)
        }

    def field(self):
        """Complex nodal field of the current design."""
        return self._U

    def analyze(self, binary: bool = True):
        """
        Forward solve on the current design without the smoothing chain.

        Parameters
        ----------
        binary : bool, optional
            If True, each design cell is fully metal when its raw density
            exceeds eta and air otherwise (ties go to air). If False, the
            filtered and projected density is used (default: True)

        Returns
        -------
        dict
            'field' (complex nodal solution), 'intensity' (g) and 'residual'
        """
        if self.desvars is None:
            raise ValueError("Design variables are not initialized. Call init_desvars() or set_desvars() first.")

        if binary:
            rho_t = np.repeat(binarize(self.desvars, self.eta)[:, None], 4, axis=1)
        else:
            rho_t = threshold(self.filter.to_quadrature(self.filter.dot(self.desvars)), self.beta, self.eta)

        U, residual = self.FE.solve(rho_t)
        g = float(np.real(np.vdot(U, self.O @ U)))

        return {
            'field': U,
            'intensity': g,
            'residual': residual
        }

    def visualize_solution(self, binary=False, **kwargs):
        """
        Plot the design (raw densities, or the hard design if binary=True).
        """
        rho = self.get_desvars()
        if binary:
            rho = binarize(rho, self.eta)
        return self.FE.visualize_density(rho, **kwargs)

    def visualize_field(self, ax=None, part='intensity', **kwargs):
        """
        Plot the forward field of the current design.
        """
        return self.FE.visualize_field(self._U, ax=ax, part=part, **kwargs)
