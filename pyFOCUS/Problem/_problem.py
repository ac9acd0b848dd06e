class Problem:
    """Abstract optimization problem.

    Subclasses represent specific optimization formulations (e.g., field
    focusing). The Problem interface exposes methods for initializing and
    querying design variables, computing objective and constraint values and
    their gradients. Optimizers minimize f() subject to g() <= 0.
    """
    def __init__(self, *args, **kwargs):
        """Initialize problem state.

        Subclasses may accept finite-element handlers, filters, and other
        configuration parameters.
        """
        pass

    def init_desvars(self, *args, **kwargs):
        """Initialize the design variables and evaluate the problem at them."""
        raise NotImplementedError("init_desvars method must be implemented in subclasses.")

    def set_desvars(self, *args, **kwargs):
        """Set the current design variables on the problem."""
        raise NotImplementedError("set_desvars method must be implemented in subclasses.")

    def get_desvars(self, *args, **kwargs):
        """Return the current design variables (None before initialization)."""
        raise NotImplementedError("get_desvars method must be implemented in subclasses.")

    def objective(self, *args, **kwargs):
        """Return the physical objective being maximized at the current design."""
        raise NotImplementedError("objective method must be implemented in subclasses.")

    def set_beta(self, beta):
        """Set the projection sharpness and re-evaluate the current design."""
        raise NotImplementedError("set_beta method must be implemented in subclasses.")

    def f(self, *args, **kwargs):
        """Compute and return the objective function value."""
        raise NotImplementedError("Objective method must be implemented in subclasses.")

    def nabla_f(self, *args, **kwargs):
        """Return the gradient of the objective with respect to design variables."""
        raise NotImplementedError("Gradient method must be implemented in subclasses.")

    def g(self, *args, **kwargs):
        """Compute constraint values (may return a vector)."""
        raise NotImplementedError("Constraints method must be implemented in subclasses.")

    def nabla_g(self, *args, **kwargs):
        """Return gradients of the constraints with respect to design variables."""
        raise NotImplementedError("Gradient of constraints method must be implemented in subclasses.")

    def ill_conditioned(self, *args, **kwargs):
        """Return True if the current problem state is ill-conditioned.

        Default implementation returns False. Subclasses may override.
        """
        return False

    def is_terminal(self):
        """Return True if the problem has no pending continuation of its own."""
        return True

    def N(self, *args, **kwargs):
        """Return problem size (number of design variables)."""
        raise NotImplementedError("N method must be implemented in subclasses.")

    def m(self, *args, **kwargs):
        """Return number of constraints."""
        raise NotImplementedError("m method must be implemented in subclasses.")

    def bounds(self, *args, **kwargs):
        """Return bounds for design variables as (lower, upper)."""
        raise NotImplementedError("Bounds method must be implemented in subclasses.")

    def is_independent(self, *args, **kwargs):
        """Return True if design variables are independent (no coupling)."""
        raise NotImplementedError("is_independent method must be implemented in subclasses.")

    def logs(self, *args, **kwargs):
        """Return a dict of diagnostics for the current design."""
        return {}
