import numpy as np
from .._optimizer import Optimizer
from ...Problem._problem import Problem
from ...mma.CPU import mmasub
import time
import logging
logger = logging.getLogger(__name__)


class MMA(Optimizer):
    """
    Method of Moving Asymptotes (MMA) nonlinear optimizer.

    Gradient-based optimizer built on separable convex approximations of the
    objective and constraints. Minimizes problem.f() subject to problem.g() <= 0
    and the variable bounds.

    Parameters
    ----------
    problem : Problem
        Optimization problem (e.g., FieldFocusing)
    sub_tol : float, optional
        Sub-problem convergence tolerance (default: 1e-7)
    sub_maxiter : int, optional
        Sub-problem max Newton iterations per barrier level (default: 100)
    change_tol : float, optional
        Design variable change convergence tolerance (default: 1e-4)
    fun_tol : float, optional
        Objective function change tolerance (default: 1e-6)
    move : float, optional
        Move limit for design variables, range [0,1] (default: 0.5)
    timer : bool, optional
        Return iteration time if True (default: False)

    Attributes
    ----------
    iteration : int
        Current iteration number
    change : float
        L2 norm of design variable change
    change_f : float
        Relative objective function change

    Methods
    -------
    iter()
        Perform one MMA iteration
    converged()
        Check convergence based on change_tol and fun_tol
    logs()
        Return dict of optimization metrics

    Notes
    -----
    - Asymptotes adapt to oscillation of the last three iterates
    - A smaller move limit is more stable; field problems often need move <= 0.2
    - If the problem raises during set_desvars() the previous design stays on the problem

    Examples
    --------
    >>> from pyFOCUS.CPU import MMA, FieldFocusing
    >>> optimizer = MMA(problem=problem, move=0.2)
    >>> for i in range(100):
    >>>     optimizer.iter()
    >>>     logs = optimizer.logs()
    >>>     print(f"Iter {i}: g={logs['intensity']:.3e}")
    >>>     if optimizer.converged():
    >>>         break
    """
    def __init__(self,
                 problem: Problem,
                 sub_tol=1e-7,
                 sub_maxiter=100,
                 change_tol=1e-4,
                 fun_tol=1e-6,
                 move=0.5,
                 timer=False):
        super().__init__(problem)

        self.last_desvars = np.copy(problem.get_desvars())
        self.last_f = problem.f()

        self.m = problem.m()
        self.bounds = problem.bounds()
        self.change = np.inf
        self.change_f = np.inf
        self.change_tol = change_tol
        self.fun_tol = fun_tol
        self.iteration = 0
        self.move = move
        self.sub_tol = sub_tol
        self.sub_maxiter = sub_maxiter

        self.N = self.problem.N()
        self.x_1 = np.copy(problem.get_desvars())
        self.x_2 = np.copy(problem.get_desvars())
        self.low = np.ones([self.N, 1]) * self.bounds[0]
        self.upp = np.ones([self.N, 1]) * self.bounds[1]

        self.timer = timer

    def iter(self):
        """
        Perform one MMA optimization iteration.

        Returns
        -------
        float, optional
            If timer=True, returns iteration time in seconds

        Notes
        -----
        - Solves the convex sub-problem with mmasub()
        - Updates moving asymptotes (low, upp) for next iteration
        - NaN sub-problem solutions fall back to a tiny step clipped to the bounds
        """
        if self.timer:
            start_time = time.time()

        desvars = self.problem.get_desvars()
        dg = np.asarray(self.problem.nabla_g()).reshape(self.m, self.N)
        df = self.problem.nabla_f()
        f_val = np.asarray(self.problem.g()).reshape(-1, 1)

        a = np.zeros([self.m, 1])
        c = np.ones([self.m, 1]) * 100000
        d = np.zeros([self.m, 1])

        desvars_new, _, _, _, _, _, _, _, _, low, upp = mmasub(
            self.m,
            self.N,
            self.iteration+1,
            desvars.reshape(-1, 1),
            np.ones_like(desvars).reshape(-1, 1) * self.bounds[0],
            np.ones_like(desvars).reshape(-1, 1) * self.bounds[1],
            self.x_1.reshape(-1, 1),
            self.x_2.reshape(-1, 1),
            self.problem.f(),
            df.reshape(-1, 1),
            f_val,
            dg,
            self.low,
            self.upp,
            1.0,
            a,
            c,
            d,
            move=self.move,
            sub_maxiter=self.sub_maxiter,
            sub_tol=self.sub_tol
        )

        if self.timer:
            end_time = time.time()

        # make small adjustments to avoid nan values
        if np.isnan(desvars_new).any():
            logger.warning("MMA: sub-problem returned NaN, taking a minimal step instead.")
            desvars_new = np.clip(desvars + self.sub_tol, self.bounds[0], self.bounds[1])

        desvars_new = np.clip(desvars_new.reshape(-1), self.bounds[0], self.bounds[1])
        self.problem.set_desvars(desvars_new)

        self.low = low
        self.upp = upp
        self.x_2 = np.copy(self.x_1)
        self.x_1 = np.copy(desvars)
        self.iteration += 1

        self.change = np.linalg.norm(self.last_desvars - desvars_new)
        f = self.problem.f()
        if f != 0:
            self.change_f = np.abs((f - self.last_f) / f)
        else:
            self.change_f = np.abs(f - self.last_f)

        self.last_f = self.problem.f()
        self.last_desvars = self.problem.get_desvars().copy()

        logger.debug(f"MMA: iteration {self.iteration}, f={self.last_f:.6e}, change={self.change:.3e}")

        if self.timer:
            return end_time - start_time

    def converged(self, *args, **kwargs):
        """
        Check if optimizer has converged.

        Returns
        -------
        bool
            True if the problem has no pending continuation, the design change
            is <= change_tol and the objective change is <= fun_tol
        """
        if not self.problem.is_terminal():
            return False
        elif self.change <= self.change_tol and self.change_f <= self.fun_tol:
            return True
        else:
            return False

    def logs(self):
        """
        Return diagnostic information for current iteration.

        Returns
        -------
        dict
            Dictionary with keys:
            - 'objective': Current (minimized) objective function value
            - 'variable change': L2 norm of design variable change
            - 'function change': Relative objective function change
            - Additional keys from problem.logs() (e.g., 'intensity', 'residual')
        """
        problem_logs = self.problem.logs()
        return {
            'objective': float(self.last_f),
            'variable change': float(self.change),
            'function change': float(self.change_f),
            **problem_logs
        }
