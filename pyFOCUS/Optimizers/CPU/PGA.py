import numpy as np
from .._optimizer import Optimizer
from ...Problem._problem import Problem
import time
import logging
logger = logging.getLogger(__name__)


class PGA(Optimizer):
    """
    Projected gradient ascent on the physical objective with a fixed move.

    Each iteration steps against nabla_f (i.e. up the gradient of the maximized
    objective) with step alpha = move / ||nabla_f||_inf, so no variable changes
    by more than move, then projects onto the bounds. A single independent
    constraint (volume) is restored by bisection on its multiplier.

    Parameters
    ----------
    problem : Problem
        Optimization problem
    move : float, optional
        Largest change of any design variable per iteration (default: 0.05)
    change_tol : float, optional
        Design variable change tolerance (default: 1e-4)
    fun_tol : float, optional
        Objective function change tolerance (default: 1e-6)
    tol_B : float, optional
        Bisection tolerance of the constraint projection (default: 1e-8)
    timer : bool, optional
        Return iteration time (default: False)

    Notes
    -----
    - Simple and predictable: useful for tests and as a fallback when MMA oscillates
    - Only independent constraints are supported

    Examples
    --------
    >>> from pyFOCUS.CPU import PGA
    >>> optimizer = PGA(problem=problem, move=0.02)
    >>> optimizer.iter()
    """
    def __init__(self,
                 problem: Problem,
                 move=0.05,
                 change_tol=1e-4,
                 fun_tol=1e-6,
                 tol_B=1e-8,
                 timer=False):
        super().__init__(problem)

        if move <= 0:
            raise ValueError(f"move must be positive, got {move}.")

        self.last_desvars = np.copy(problem.get_desvars())
        self.last_f = problem.f()

        self.m = problem.m()
        self.bounds = problem.bounds()
        self.move = move
        self.change = np.inf
        self.change_f = np.inf
        self.change_tol = change_tol
        self.fun_tol = fun_tol
        self.tol_B = tol_B
        self.timer = timer
        self.iteration = 0

        if self.m > 1 and not problem.is_independent():
            raise ValueError("PGA supports a single or independent constraints only.")

    def alpha(self, df):
        ndf = np.linalg.norm(df, ord=np.inf)
        if ndf == 0:
            return 0.0
        return self.move / ndf

    def project_to_feasible(self, desvars_new, dg):
        dg = np.asarray(dg)
        d_new = np.clip(desvars_new, self.bounds[0], self.bounds[1])
        if np.all(self.problem.g(d_new) <= 0.):
            return d_new

        l1 = np.zeros(self.m)
        l2 = -1e12 * np.ones(self.m)

        while np.any((l2 - l1) / (l2 + l1) > self.tol_B):
            l_mid = (l1 + l2) / 2

            if self.m > 1:
                d_new = np.clip(desvars_new + (l_mid.reshape(1, -1) @ dg).reshape(-1), self.bounds[0], self.bounds[1])
            else:
                d_new = np.clip(desvars_new + l_mid * dg.reshape(-1), self.bounds[0], self.bounds[1])

            valids = self.problem.g(d_new) <= 0.
            l2[valids] = l_mid[valids]
            l1[~valids] = l_mid[~valids]

        if self.m > 1:
            return np.clip(desvars_new + (l2.reshape(1, -1) @ dg).reshape(-1), self.bounds[0], self.bounds[1])
        return np.clip(desvars_new + l2 * dg.reshape(-1), self.bounds[0], self.bounds[1])

    def iter(self):
        """
        Perform one projected gradient step.

        Returns
        -------
        float, optional
            If timer=True, returns iteration time in seconds
        """
        if self.timer:
            start_time = time.time()

        desvars = self.problem.get_desvars()
        df = self.problem.nabla_f()
        dg = self.problem.nabla_g()

        desvars_new = desvars - self.alpha(df) * df
        desvars_new = self.project_to_feasible(desvars_new, dg)

        if self.timer:
            end_time = time.time()

        self.problem.set_desvars(desvars_new)
        self.iteration += 1

        self.change = np.linalg.norm(self.last_desvars - desvars_new)
        f = self.problem.f()
        if f != 0:
            self.change_f = np.abs((f - self.last_f) / f)
        else:
            self.change_f = np.abs(f - self.last_f)
        self.last_f = self.problem.f()
        self.last_desvars = self.problem.get_desvars().copy()

        logger.debug(f"PGA: iteration {self.iteration}, f={self.last_f:.6e}, change={self.change:.3e}")

        if self.timer:
            return end_time - start_time

    def converged(self, *args, **kwargs):
        """
        True once the problem is terminal and both changes are below tolerance.
        """
        if not self.problem.is_terminal():
            return False
        elif self.change <= self.change_tol and self.change_f <= self.fun_tol:
            return True
        else:
            return False

    def logs(self):
        problem_logs = self.problem.logs()
        return {
            'objective': float(self.last_f),
            'variable change': float(self.change),
            'function change': float(self.change_f),
            **problem_logs
        }
