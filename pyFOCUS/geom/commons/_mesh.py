class Mesh:
    """
    Base class for finite element meshes.

    Notes
    -----
    Subclasses must provide:
    - nodes: Node coordinates, shape (n_nodes, 2)
    - elements: Element connectivity, shape (n_elements, 4)
    - dof: Degrees of freedom per node (1 for the scalar Helmholtz field)
    - volume: Total domain area
    """
    pass

class StructuredMesh(Mesh):
    """
    Base class for structured (uniform grid) meshes.

    All elements share one geometry, so a single set of per-quadrature-point
    element tables (see Physx.locals) serves every element.

    Attributes
    ----------
    elements : ndarray
        Element connectivity array
    nodes : ndarray
        Node coordinates
    dof : int
        Degrees of freedom per node
    volume : float
        Total domain area
    """
    def __init__(self):
        pass
