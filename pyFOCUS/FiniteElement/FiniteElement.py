class FiniteElement:
    """Abstract base for finite-element wrappers.

    The base class defines the interface problems use to impose boundary
    conditions and sources, solve forward and adjoint systems and evaluate
    integrals over the mesh.
    """
    def __init__(self):
        pass

    def add_dirichlet_boundary_condition(self, condition):
        """Add a homogeneous Dirichlet (essential) boundary condition."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def add_line_source(self, *args, **kwargs):
        """Add a line source int_Gamma v ds to the right-hand side."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def add_point_sources(self, sources):
        """Add nodal point sources to the right-hand side."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def reset_sources(self):
        """Clear the right-hand side."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def reset_dirichlet_boundary_conditions(self):
        """Remove all Dirichlet boundary conditions previously added."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def integrate(self, field, **kwargs):
        """Integrate a scalar field over the mesh or a subset of elements."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def assemble_vector(self, source, **kwargs):
        """Assemble a load vector from a linear functional."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def assemble_matrix(self, weight, **kwargs):
        """Assemble a design-independent bilinear form."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def visualize_density(self, **kwargs):
        """Visualize a density field (design variable) on the mesh."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def visualize_field(self, **kwargs):
        """Visualize a scalar field defined on nodes or elements."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def solve(self, **kwargs):
        """Run the forward solve, returns solution and residual."""
        raise NotImplementedError("This method should be implemented by subclasses.")

    def solve_adjoint(self, rhs, **kwargs):
        """Run the adjoint solve with the last forward operator."""
        raise NotImplementedError("This method should be implemented by subclasses.")
