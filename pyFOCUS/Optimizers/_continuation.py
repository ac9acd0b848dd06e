from ..Problem._problem import Problem
from ..errors import LinearSystemFailure, LinearSystemSingular, OptimizationAborted
from .CPU.MMA import MMA
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Sequence
import numpy as np
import logging
logger = logging.getLogger(__name__)


class Status(Enum):
    """State of a continuation run."""
    RUNNING = "running"
    CONVERGED = "converged"
    ITERATION_LIMIT_REACHED = "iteration limit reached"


@dataclass
class StageResult:
    """Summary of one projection-sharpness stage."""
    beta: float
    iterations: int
    initial_objective: float
    objective: float
    converged: bool
    history: List[float] = field(default_factory=list)


@dataclass
class OptimizationResult:
    """
    Outcome of a continuation run.

    Attributes
    ----------
    desvars : ndarray
        Raw design of the last successful evaluation
    objective : float
        Physical objective g at desvars (with the beta of the last stage run)
    status : Status
        CONVERGED if the last stage met the tolerance, ITERATION_LIMIT_REACHED if it
        ran out of iterations, RUNNING for the partial result of an aborted run
    stages : list of StageResult
        Completed stages, in schedule order
    """
    desvars: np.ndarray
    objective: float
    status: Status
    stages: List[StageResult] = field(default_factory=list)


class IterationLog:
    """
    Append-only text log of the objective, one value per line.

    Parameters
    ----------
    path : str or os.PathLike
        File to append to (created if missing)

    Examples
    --------
    >>> result = optimize(problem, callback=IterationLog("objective.txt"))
    """
    def __init__(self, path):
        self.path = path

    def __call__(self, beta, iteration, objective):
        with open(self.path, 'a') as f:
            f.write(f"{objective:.16e}\n")


class Continuation:
    """
    Run an optimizer over an increasing schedule of projection sharpness.

    Every stage sets beta on the problem, warm-starts a fresh optimizer from the
    current design and iterates until the relative change of the physical
    objective |g_k - g_(k-1)| / |g_k| drops below tol or max_iter iterations
    were taken. The run ends after the last stage.

    Parameters
    ----------
    problem : Problem
        Problem exposing objective() and set_beta() besides the optimizer interface
    beta_schedule : sequence of float, optional
        Sharpness per stage (default: (8, 16, 32))
    tol : float, optional
        Relative objective change that ends a stage (default: 1e-4)
    max_iter : int, optional
        Iteration budget per stage (default: 50)
    optimizer : type, optional
        Optimizer class, instantiated once per stage (default: MMA)
    callback : callable, optional
        Called as callback(beta, iteration, objective) after every iteration
    **optimizer_kwargs
        Passed to the optimizer constructor

    Attributes
    ----------
    status : Status
        RUNNING until run() finishes
    stage : int
        Index of the current stage
    stages : list of StageResult
        Completed stages

    Raises
    ------
    OptimizationAborted
        From run() when a linear solve fails. Its result attribute holds the
        design and objective of the last successful evaluation

    Examples
    --------
    >>> runner = Continuation(problem, beta_schedule=[8, 16, 32], tol=1e-4, max_iter=40, move=0.2)
    >>> result = runner.run(np.full(problem.N(), 0.4))
    >>> result.status
    <Status.CONVERGED: 'converged'>
    """
    def __init__(self,
                 problem: Problem,
                 beta_schedule: Sequence[float] = (8, 16, 32),
                 tol: float = 1e-4,
                 max_iter: int = 50,
                 optimizer: type = MMA,
                 callback: Optional[Callable] = None,
                 **optimizer_kwargs):

        beta_schedule = [float(b) for b in beta_schedule]
        if len(beta_schedule) == 0:
            raise ValueError("beta_schedule must contain at least one value.")
        if any(b < 0 for b in beta_schedule):
            raise ValueError("beta values must be non-negative.")
        if tol <= 0:
            raise ValueError(f"tol must be positive, got {tol}.")
        if max_iter < 1:
            raise ValueError(f"max_iter must be at least 1, got {max_iter}.")

        self.problem = problem
        self.beta_schedule = beta_schedule
        self.tol = tol
        self.max_iter = max_iter
        self.optimizer = optimizer
        self.optimizer_kwargs = optimizer_kwargs
        self.callback = callback

        self.status = Status.RUNNING
        self.stage = 0
        self.stages = []

    @property
    def beta(self):
        """Sharpness of the current stage."""
        return self.beta_schedule[self.stage]

    def _converged(self, g, g_prev):
        if g == g_prev:
            return True
        if g == 0:
            return False
        return abs(g - g_prev) / abs(g) < self.tol

    def _partial_result(self):
        desvars = self.problem.get_desvars()
        return OptimizationResult(
            desvars=None if desvars is None else np.copy(desvars),
            objective=self.problem.objective() if desvars is not None else None,
            status=Status.RUNNING,
            stages=list(self.stages)
        )

    def _run_stage(self):
        beta = self.beta
        self.problem.set_beta(beta)
        optimizer = self.optimizer(self.problem, **self.optimizer_kwargs)

        g_prev = self.problem.objective()
        initial = g_prev
        history = []
        converged = False
        iterations = 0

        logger.info(f"Continuation: stage {self.stage + 1}/{len(self.beta_schedule)}, beta={beta}, g={g_prev:.6e}")

        for iterations in range(1, self.max_iter + 1):
            optimizer.iter()
            g = self.problem.objective()
            history.append(g)

            logger.debug(f"Continuation: beta={beta}, iteration {iterations}, g={g:.6e}")
            if self.callback is not None:
                self.callback(beta, iterations, g)

            if self._converged(g, g_prev):
                converged = True
                break
            g_prev = g

        result = StageResult(beta=beta,
                             iterations=iterations,
                             initial_objective=initial,
                             objective=self.problem.objective(),
                             converged=converged,
                             history=history)
        logger.info(f"Continuation: stage {self.stage + 1} finished after {iterations} iterations, "
                    f"g={result.objective:.6e}, converged={converged}")
        return result

    def run(self, desvars=None):
        """
        Run every stage of the schedule.

        Parameters
        ----------
        desvars : ndarray, optional
            Initial design. If None, the problem's current design is used, or
            its default initialization if it has none

        Returns
        -------
        OptimizationResult
        """
        self.status = Status.RUNNING
        self.stage = 0
        self.stages = []

        try:
            self.problem.set_beta(self.beta_schedule[0])
            if desvars is not None or self.problem.get_desvars() is None:
                self.problem.init_desvars(desvars)

            for stage in range(len(self.beta_schedule)):
                self.stage = stage
                self.stages.append(self._run_stage())

        except (LinearSystemSingular, LinearSystemFailure) as e:
            logger.error(f"Continuation: aborted at stage {self.stage + 1} (beta={self.beta}): {e}")
            raise OptimizationAborted(f"Optimization aborted at beta={self.beta}: {e}",
                                      result=self._partial_result()) from e

        last = self.stages[-1]
        self.status = Status.CONVERGED if last.converged else Status.ITERATION_LIMIT_REACHED

        return OptimizationResult(desvars=np.copy(self.problem.get_desvars()),
                                  objective=self.problem.objective(),
                                  status=self.status,
                                  stages=list(self.stages))


def optimize(problem: Problem,
             desvars=None,
             beta_schedule: Sequence[float] = (8, 16, 32),
             tol: float = 1e-4,
             max_iter: int = 50,
             optimizer: type = MMA,
             callback: Optional[Callable] = None,
             **optimizer_kwargs):
    """
    Optimize a problem with projection-sharpness continuation.

    Shorthand for Continuation(problem, ...).run(desvars).

    Returns
    -------
    OptimizationResult
        Final design, objective, status and per-stage records

    Raises
    ------
    OptimizationAborted
        If a linear solve fails; carries the partial result

    Examples
    --------
    >>> result = optimize(problem, np.full(problem.N(), 0.4), beta_schedule=[8, 16, 32], move=0.2)
    >>> problem.visualize_solution(binary=True)
    """
    return Continuation(problem,
                        beta_schedule=beta_schedule,
                        tol=tol,
                        max_iter=max_iter,
                        optimizer=optimizer,
                        callback=callback,
                        **optimizer_kwargs).run(desvars)
