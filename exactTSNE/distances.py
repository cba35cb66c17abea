import logging

import numpy as np
from sklearn.utils import check_array

log = logging.getLogger(__name__)


def squared_euclidean_distances(X, check_input=True):
    """Compute the squared Euclidean distances between all rows of ``X``.

    The distances are obtained through the expansion
    :math:`\\|x - y\\|^2 = x \\cdot x + y \\cdot y - 2 x \\cdot y`, which needs a
    single matrix product :math:`X X^T` instead of explicitly forming every
    pairwise difference.

    Parameters
    ----------
    X: np.ndarray
        An :math:`N \\times D` data matrix.

    check_input: bool
        Whether to validate ``X``. The optimizer skips validation for the
        embeddings it owns.

    Returns
    -------
    np.ndarray
        A symmetric :math:`N \\times N` matrix with a zero diagonal, where the
        :math:`(i, j)`-th entry is the squared distance between rows :math:`i`
        and :math:`j`.

    Raises
    ------
    ValueError
        If ``X`` is not a proper two dimensional numeric matrix.

    """
    if check_input:
        X = check_array(X, dtype=np.float64, ensure_2d=True)

    xy = X @ X.T
    sum_X = np.diag(xy).copy()
    D = sum_X[:, np.newaxis] + sum_X[np.newaxis, :] - 2 * xy

    # Matrix products need not be exactly symmetric, and cancellation can make
    # distances between near duplicates slightly negative
    D = (D + D.T) / 2
    np.maximum(D, 0, out=D)
    np.fill_diagonal(D, 0)

    return D


def check_distance_matrix(distances):
    """Validate a precomputed squared distance matrix.

    Parameters
    ----------
    distances: array_like
        An :math:`N \\times N` matrix of squared distances.

    Returns
    -------
    np.ndarray
        The distance matrix as a float64 array.

    Raises
    ------
    ValueError
        If the distance matrix is not square.

    """
    distances = check_array(distances, dtype=np.float64, ensure_2d=True)

    n_samples, n_cols = distances.shape
    if n_samples != n_cols:
        raise ValueError(
            "The squared distance matrix must be square. Got a matrix of shape "
            "(%d, %d) instead." % (n_samples, n_cols)
        )

    if not np.allclose(distances, distances.T):
        log.warning(
            "The squared distance matrix is not symmetric. The affinities will "
            "be symmetrized, but the results may be unexpected."
        )
    if np.any(distances < 0):
        log.warning("The squared distance matrix contains negative entries.")

    return distances
