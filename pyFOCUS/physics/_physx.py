class Physx:
    """
    Base class for physics models in pyFOCUS.

    Physics models turn nodal element coordinates into the element-level
    quadrature tables that kernels assemble, and map projected densities to
    the PDE coefficient field.

    Methods
    -------
    K(x0s)
        Unit-coefficient element stiffness (Laplacian) matrix
    locals(x0s)
        Per-quadrature-point tables [N, Kxx, Kyy, M, wdetJ]
    volume(x0s)
        Element area
    coefficient(rho)
        PDE coefficient as a function of projected density
    coefficient_grad(rho)
        Derivative of coefficient() with respect to projected density

    Notes
    -----
    Geometry methods accept a single element, x0s shape (n_nodes_per_element, 2),
    or a batch, x0s shape (n_elements, n_nodes_per_element, 2).
    """
    def __init__(self):
        pass

    def K(self, x0s):
        raise NotImplementedError("K method must be implemented in subclasses.")

    def locals(self, x0s):
        raise NotImplementedError("locals method must be implemented in subclasses.")

    def volume(self, x0s):
        raise NotImplementedError("volume method must be implemented in subclasses.")

    def coefficient(self, rho):
        raise NotImplementedError("coefficient method must be implemented in subclasses.")

    def coefficient_grad(self, rho):
        raise NotImplementedError("coefficient_grad method must be implemented in subclasses.")
