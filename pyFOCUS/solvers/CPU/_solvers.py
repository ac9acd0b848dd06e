import numpy as np
from ..commons import Solver
from ...stiffness.CPU._FEA import StiffnessKernel
from ...errors import LinearSystemSingular, LinearSystemFailure
from scipy.sparse.linalg import splu
import logging
logger = logging.getLogger(__name__)

class SPLU(Solver):
    """
    Direct sparse LU solver using SuperLU, with factorization reuse for adjoints.

    Factorizes the operator over the unconstrained DOFs on every forward solve and
    keeps the factorization until the next forward solve, so the adjoint system
    A^H @ w = r of the same iteration costs one triangular solve pair.

    Parameters
    ----------
    kernel : StiffnessKernel
        Assembly kernel (must have shape[0] <= 3M DOF)
    tol : float, optional
        Largest accepted relative residual (default: 1e-8)

    Attributes
    ----------
    factor : scipy.sparse.linalg.SuperLU
        Factorization of the last assembled operator (None before the first solve)
    K : csc_matrix
        Last assembled operator restricted to unconstrained DOFs

    Methods
    -------
    solve(rhs, rho=None)
        Assemble, factorize and solve A(rho) @ u = rhs
    solve_adjoint(rhs)
        Solve A^H @ w = rhs with the cached factorization
    solve_factorized(rhs, trans='N')
        Solve with the cached factorization ('N', 'T' or 'H')
    factorize(rho=None)
        Assemble and factorize without solving
    reset()
        Discard the cached factorization

    Raises
    ------
    LinearSystemSingular
        If SuperLU reports an exactly singular factor
    LinearSystemFailure
        If the solution is not finite or the residual exceeds tol

    Notes
    -----
    - Constrained DOFs are eliminated, their solution entries are zero
    - Works for the complex symmetric, non-Hermitian Helmholtz operator

    Examples
    --------
    >>> solver = SPLU(kernel=kernel)
    >>> u, residual = solver.solve(rhs=b, rho=rho_t)
    >>> w, residual = solver.solve_adjoint(O @ u)
    """
    def __init__(self, kernel: StiffnessKernel, tol=1e-8):
        super().__init__()

        if kernel.shape[0] > 3e6:
            raise ValueError("Currently we do not allow SuperLU for problem size bigger than 3M degrees of freedom. You can override this by passing a dummy kernel and overriding the kernel attribute.")

        self.kernel = kernel
        self.tol = tol
        self.factor = None
        self.K = None
        self.non_con_map = None

    def reset(self):
        self.factor = None
        self.K = None
        self.non_con_map = None

    def factorize(self, rho=None):
        if rho is not None:
            K = self.kernel.construct(rho)
        else:
            if not self.kernel.has_rho:
                raise ValueError("Solver requires a density vector to be passed or set on the kernel.")
            K = self.kernel.construct(self.kernel.rho)

        non_con_map = self.kernel.non_con_map
        if self.kernel.has_cons:
            K = K[:, non_con_map][non_con_map, :]
        K = K.tocsc()

        # stale factorizations must never serve a later adjoint solve
        self.reset()
        try:
            self.factor = splu(K)
        except RuntimeError as e:
            raise LinearSystemSingular(f"Operator could not be factorized: {e}") from e

        self.K = K
        self.non_con_map = non_con_map.copy()
        logger.debug(f"SPLU: factorized {K.shape[0]} DOFs, nnz(L+U)={self.factor.L.nnz + self.factor.U.nnz}")
        return self.factor

    def solve_factorized(self, rhs, trans='N'):
        if self.factor is None:
            raise LinearSystemFailure("No factorization available; run a forward solve first.")

        rhs = np.asarray(rhs, dtype=np.complex128)
        rhs_ = rhs[self.non_con_map]
        x = self.factor.solve(rhs_, trans=trans)

        if trans == 'N':
            op = self.K
        elif trans == 'T':
            op = self.K.T
        else:
            op = self.K.conj().T

        norm_rhs = np.linalg.norm(rhs_)
        if norm_rhs > 0:
            residual = np.linalg.norm(rhs_ - op @ x) / norm_rhs
        else:
            residual = np.linalg.norm(op @ x)

        if not np.all(np.isfinite(x)) or not np.isfinite(residual):
            raise LinearSystemFailure("Linear solve produced non-finite values.", residual=residual)
        if residual > self.tol:
            raise LinearSystemFailure(f"Relative residual {residual:.3e} exceeds tolerance {self.tol:.1e}.", residual=residual)

        out = np.zeros(self.kernel.shape[0], dtype=np.complex128)
        out[self.non_con_map] = x

        return out, residual

    def solve(self, rhs, rho=None):
        self.factorize(rho)
        return self.solve_factorized(rhs)

    def solve_adjoint(self, rhs):
        return self.solve_factorized(rhs, trans='H')
