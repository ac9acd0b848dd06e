import numpy as np
from numba import int32, float64, njit, prange

@njit(int32[:,:](int32, int32), cache=True, parallel=True)
def generate_elements_2d(nelx, nely):
    """
    Q1 connectivity of an nelx x nely grid, counter-clockwise from bottom-left.
    Element counter varies fastest along y.
    """
    nx = nelx + 1
    elements = np.zeros((nelx * nely, 4), dtype=np.int32)

    for counter in prange(nelx * nely):
        i = counter // nely
        j = counter % nely
        n0 = j * nx + i

        elements[counter, 0] = n0
        elements[counter, 1] = n0 + 1
        elements[counter, 2] = n0 + nx + 1
        elements[counter, 3] = n0 + nx

    return elements

@njit(float64[:,:](float64, float64, float64, float64, int32, int32), cache=True, parallel=True)
def generate_nodes_2d(x0, y0, lx, ly, nelx, nely):
    """
    Node coordinates of an nelx x nely grid, x varies fastest.
    """
    nx = nelx + 1
    ny = nely + 1
    nodes = np.zeros((nx * ny, 2), dtype=np.float64)

    for n in prange(nx * ny):
        i = n % nx
        j = n // nx
        nodes[n, 0] = x0 + lx * i / nelx
        nodes[n, 1] = y0 + ly * j / nely

    return nodes

def generate_structured_mesh(dim, nel, origin=(0.0, 0.0), dtype=np.float64):
    """
    Wrapper function for 2D structured mesh generation.
    """
    if len(dim) != 2 or len(nel) != 2:
        raise ValueError("Only 2D structured meshes are supported")
    if nel[0] < 1 or nel[1] < 1:
        raise ValueError("At least one element per direction is required")

    elements = generate_elements_2d(np.int32(nel[0]), np.int32(nel[1]))
    nodes = generate_nodes_2d(float(origin[0]), float(origin[1]),
                              float(dim[0]), float(dim[1]),
                              np.int32(nel[0]), np.int32(nel[1]))

    return elements, nodes.astype(dtype)
