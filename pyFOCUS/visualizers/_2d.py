import matplotlib
import matplotlib.pyplot as plt
import numpy as np


def _quatplot(nodes, quadrangles, ax, field_values=None, **kwargs):
    verts = nodes[:, :2][quadrangles]
    pc = matplotlib.collections.PolyCollection(verts, **kwargs)
    if field_values is not None:
        pc.set_array(np.asarray(field_values))
    ax.add_collection(pc)
    ax.autoscale()
    return pc


def plot_field_2D(
    nodes: np.ndarray,
    elements: np.ndarray,
    field: np.ndarray,
    rho=None,
    ax=None,
    edge_color="none",
    colormap='inferno',
    show_colorbar=True,
    colorbar_label=None,
    **kwargs,
):
    """
    Plot a real per-element field as colored quadrilaterals.

    Parameters
    ----------
    nodes : ndarray
        Node coordinates, shape (n_nodes, 2)
    elements : ndarray
        Connectivity, shape (n_elements, 4)
    field : ndarray
        Real value per element, shape (n_elements,)
    rho : ndarray, optional
        Element mask, only elements with rho > 0.5 are drawn
    ax : matplotlib.axes.Axes, optional
        Target axes (default: current axes)
    """
    if nodes.shape[1] != 2:
        raise ValueError("This function only supports 2D meshes")

    field = np.asarray(field)
    if field.shape[0] != elements.shape[0]:
        raise ValueError(f"Expected one value per element ({elements.shape[0]}), got {field.shape[0]}.")

    if rho is not None:
        elements = elements[rho > 0.5]
        field = field[rho > 0.5]

    if ax is None:
        ax = plt.gca()

    ax.set_aspect("equal")
    pc = _quatplot(nodes, elements, ax, field_values=field,
                   edgecolor=edge_color, cmap=colormap, **kwargs)

    if show_colorbar:
        cbar = plt.colorbar(pc, ax=ax)
        if colorbar_label:
            cbar.set_label(colorbar_label)

    ax.set_xlabel("X Axis")
    ax.set_ylabel("Y Axis")

    return ax


def plot_density_2D(
    nodes: np.ndarray,
    elements: np.ndarray,
    design: np.ndarray,
    rho: np.ndarray,
    ax=None,
    background_color="white",
    edge_color="lightgrey",
    colormap='Greys',
    outline=True,
    **kwargs,
):
    """
    Plot design-cell densities in [0, 1] on top of the mesh outline.

    Parameters
    ----------
    nodes : ndarray
        Node coordinates, shape (n_nodes, 2)
    elements : ndarray
        Connectivity of the whole mesh, shape (n_elements, 4)
    design : ndarray
        Indices of the design cells
    rho : ndarray
        Density per design cell, shape (n_design,)
    outline : bool, optional
        Draw the non-design elements as empty cells (default: True)
    """
    if nodes.shape[1] != 2:
        raise ValueError("This function only supports 2D meshes")

    rho = np.asarray(rho)
    if rho.shape != (design.shape[0],):
        raise ValueError(f"Expected one density per design cell ({design.shape[0]}), got shape {rho.shape}.")

    if ax is None:
        ax = plt.gca()

    ax.set_aspect("equal")

    if outline:
        others = np.setdiff1d(np.arange(elements.shape[0]), design)
        _quatplot(nodes, elements[others], ax, edgecolor=edge_color, facecolor=background_color, linewidth=0.2)

    pc = _quatplot(nodes, elements[design], ax, field_values=rho,
                   edgecolor="none", cmap=colormap, **kwargs)
    pc.set_clim(0.0, 1.0)

    ax.set_xlabel("X Axis")
    ax.set_ylabel("Y Axis")

    return ax
