import numpy as np


class _TransposeView:
    def __init__(self, original):
        self._original = original

    def __matmul__(self, rhs):
        return self._original._rmatvec(rhs)

    def dot(self, rhs):
        return self._original._rmatvec(rhs)

    @property
    def T(self):
        return self._original

    def __getattr__(self, name):
        return getattr(self._original, name)


class FilterKernel:
    """
    Base class for density filters.

    Filters map raw per-cell design variables to a regularized field and
    expose the adjoint map used to pull sensitivities back onto the raw cells.

    Attributes
    ----------
    shape : tuple
        Filter operator dimensions (n_filtered, n_raw)

    Methods
    -------
    dot(rho)
        Apply forward filter: filtered = F @ rho
    _rmatvec(sens)
        Apply adjoint filter: F^T @ sens (for sensitivity backpropagation)
    __matmul__(rhs)
        Convenience: filter @ rho calls dot(rho)
    T
        Property returning transpose view for adjoint operations

    Notes
    -----
    Subclasses implement _matvec() and _rmatvec().

    Examples
    --------
    >>> filter = HelmholtzFilter(mesh=mesh, design=design, r_min=0.05)
    >>> rho_f = filter @ rho
    >>> sens = filter.T @ sens_f
    """
    def __init__(self):
        self.shape = None
        self.matvec = self.dot

    def _matvec(self, rho):
        """
        Forward filter application (internal).

        Parameters
        ----------
        rho : ndarray
            Raw design variables, shape (shape[1],)

        Returns
        -------
        ndarray
            Filtered field, shape (shape[0],)
        """
        raise NotImplementedError("_matvec method must be implemented in subclasses.")

    def _rmatvec(self, rho):
        """
        Adjoint filter application (internal).

        Parameters
        ----------
        rho : ndarray
            Sensitivities with respect to the filtered field, shape (shape[0],)

        Returns
        -------
        ndarray
            Sensitivities with respect to the raw variables, shape (shape[1],)
        """
        raise NotImplementedError("_rmatvec method must be implemented in subclasses.")

    def dot(self, rho):
        """
        Apply forward density filter.

        Parameters
        ----------
        rho : ndarray
            Raw design variables, shape (shape[1],)

        Returns
        -------
        ndarray
            Filtered field, shape (shape[0],)

        Raises
        ------
        ValueError
            If input size doesn't match filter dimensions
        NotImplementedError
            If input is not a 1D vector
        """
        if isinstance(rho, np.ndarray):
            if rho.ndim == 1:
                if rho.shape[0] == self.shape[1]:
                    return self._matvec(rho)
                else:
                    raise ValueError("Input vector size does not match the filter kernel size.")
            else:
                raise NotImplementedError("Only vector inputs are supported.")
        else:
            raise ValueError("Input must be a numpy array vector.")

    def __matmul__(self, rhs):
        """Convenience: filter @ rho calls dot(rho)."""
        return self.dot(rhs)

    @property
    def T(self):
        """
        Transpose view for adjoint operations.

        Examples
        --------
        >>> sens_raw = filter.T @ sens_filtered  # Equivalent to filter._rmatvec(sens_filtered)
        """
        return _TransposeView(self)
