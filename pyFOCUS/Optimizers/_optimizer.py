from ..Problem._problem import Problem


class Optimizer:
    """Base optimizer interface.

    Optimizers operate on a :class:`pyFOCUS.Problem._problem.Problem` instance
    and update design variables until convergence. A problem that already holds
    design variables is taken as is, so optimizers can be chained (warm start).
    """
    def __init__(self, problem: Problem, *args, **kwargs):
        """Create an optimizer bound to a problem.

        Parameters
        - problem: instance of :class:`Problem` providing objective and gradients.
        """
        self.problem = problem
        if problem.get_desvars() is None:
            problem.init_desvars()
        self.desvars = problem.get_desvars()

    def iter(self, *args, **kwargs):
        """Perform a single optimization iteration.

        Subclasses should update the problem's design variables and track any
        internal state.
        """
        raise NotImplementedError("iter method must be implemented in subclasses.")

    def converged(self, *args, **kwargs):
        """Return True when the optimizer has converged to a solution."""
        raise NotImplementedError("converged method must be implemented in subclasses.")

    def logs(self, *args, **kwargs):
        """Return diagnostic logs (history, objective values, or custom stats)."""
        raise NotImplementedError("logs method must be implemented in subclasses.")
