class Solver:
    """
    Base class for linear system solvers.

    Abstract interface for solving the linear systems A(rho) @ u = b arising from
    the finite element discretization, and the adjoint systems A^H @ w = r that
    reuse the forward factorization.

    Methods
    -------
    solve(rhs, rho=None)
        Solve the forward system, returns (u, residual)
    solve_adjoint(rhs)
        Solve the conjugate-transposed system with the last operator, returns (w, residual)
    reset()
        Reset solver state (clear factorizations)
    __call__(rhs, rho=None, **kwargs)
        Convenience: solver(rhs, rho) calls solve()

    Notes
    -----
    Residuals are relative: ||A@u - b|| / ||b|| over the unconstrained DOFs.
    """
    def __init__(self):
        pass

    def __call__(self, *args, **kwargs):
        """Convenience method: solver(rhs, rho) calls solve(rhs, rho)."""
        return self.solve(*args, **kwargs)

    def solve(self, *args, **kwargs):
        """
        Solve linear system A(rho) @ u = rhs.

        Parameters
        ----------
        rhs : ndarray
            Right-hand side vector, shape (n_dof,)
        rho : ndarray, optional
            Design variables the operator is built from

        Returns
        -------
        u : ndarray
            Solution vector, shape (n_dof,)
        residual : float
            Relative residual ||A@u - rhs|| / ||rhs||
        """
        raise NotImplementedError("solve method must be implemented in subclasses.")

    def solve_adjoint(self, *args, **kwargs):
        """
        Solve A^H @ w = rhs with the operator of the last forward solve.
        """
        raise NotImplementedError("solve_adjoint method must be implemented in subclasses.")

    def reset(self):
        """
        Reset solver state.

        Clears internal state such as factorizations.
        """
        pass
