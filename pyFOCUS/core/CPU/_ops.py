import numpy as np
from numba import njit, prange


@njit(cache=True, parallel=True)
def process_dk_helmholtz(S, elements, U, W):
    """
    Quadrature-resolved operator sensitivity.

    out[e, q] = conj(W_e) . S[e, q] . U_e, where S[e, q] is the derivative of the
    element matrix of element e with respect to the coefficient at point q.
    """
    n_el = elements.shape[0]
    n_q = S.shape[1]
    n_n = elements.shape[1]
    out = np.zeros((n_el, n_q), dtype=np.complex128)

    for e in prange(n_el):
        for q in range(n_q):
            acc = 0j
            for a in range(n_n):
                wa = W[elements[e, a]].conjugate()
                for b in range(n_n):
                    acc += wa * S[e, q, a, b] * U[elements[e, b]]
            out[e, q] = acc

    return out


@njit(cache=True, parallel=True)
def interpolate_to_points(nodal, N, elements):
    """
    Evaluate a real nodal field at the quadrature points of each element.

    out[e, q] = sum_a N[q, a] * nodal[elements[e, a]]
    """
    n_el = elements.shape[0]
    n_q = N.shape[0]
    out = np.zeros((n_el, n_q), dtype=np.float64)

    for e in prange(n_el):
        for q in range(n_q):
            for a in range(N.shape[1]):
                out[e, q] += N[q, a] * nodal[elements[e, a]]

    return out


@njit(cache=True)
def scatter_points_to_nodes(values, N, elements, n_nodes):
    """
    Transpose of interpolate_to_points.

    out[j] = sum over (e, q, a) with elements[e, a] == j of N[q, a] * values[e, q]
    """
    out = np.zeros(n_nodes, dtype=np.float64)

    for e in range(elements.shape[0]):
        for q in range(N.shape[0]):
            for a in range(N.shape[1]):
                out[elements[e, a]] += N[q, a] * values[e, q]

    return out
