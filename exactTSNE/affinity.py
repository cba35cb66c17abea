import logging

import numpy as np

from exactTSNE import utils
from exactTSNE.distances import check_distance_matrix, squared_euclidean_distances

log = logging.getLogger(__name__)

# Probabilities at or below this value do not contribute to the entropy
EPSILON = 1e-7
# All the affinities are floored at this value so their logarithms are finite
MIN_PROBABILITY = 1e-12
ENTROPY_TOLERANCE = 1e-5
MAX_BINARY_SEARCH_STEPS = 50


class Affinities:
    """Compute the affinities between samples.

    t-SNE takes as input an affinity matrix :math:`P`, and does not really care
    about anything else from the data. This means we can use t-SNE for any data
    where we are able to express interactions between samples with an affinity
    matrix.

    Attributes
    ----------
    P: np.ndarray
        The :math:`N \\times N` affinity matrix expressing interactions between
        :math:`N` initial data samples.

    verbose: bool

    """

    def __init__(self, verbose=False):
        self.P = None
        self.verbose = verbose

    @property
    def n_samples(self):
        if self.P is None:
            raise RuntimeError("The affinity matrix `P` is not set!")
        return self.P.shape[0]


class PerplexityBased(Affinities):
    """Compute affinities using Gaussian kernels calibrated to a perplexity.

    The bandwidth of every point's Gaussian kernel is found with a binary
    search, so that the entropy of each point's neighbor distribution matches
    :math:`\\log(\\text{perplexity})`. All pairwise interactions are
    considered, so the affinity matrix is dense.

    Exactly one of ``data`` or ``distances`` must be given.

    Parameters
    ----------
    data: np.ndarray
        The :math:`N \\times D` data matrix.

    perplexity: float
        Perplexity can be thought of as the continuous :math:`k` number of
        nearest neighbors, for which t-SNE will attempt to preserve distances.

    distances: np.ndarray
        A precomputed :math:`N \\times N` matrix of *squared* distances.

    tol: float
        The tolerance on the entropy at which the binary search is stopped.

    max_iter: int
        The maximum number of binary search steps for each point.

    verbose: bool

    Attributes
    ----------
    betas_: np.ndarray
        The Gaussian kernel precision :math:`\\beta_i = 1 / 2\\sigma_i^2` used
        for each point.

    converged_: np.ndarray
        A boolean mask of the points whose binary search reached the requested
        tolerance.

    """

    def __init__(
        self,
        data=None,
        perplexity=30,
        distances=None,
        tol=ENTROPY_TOLERANCE,
        max_iter=MAX_BINARY_SEARCH_STEPS,
        verbose=False,
    ):
        super().__init__(verbose=verbose)

        # This can't work if neither data nor the distances are specified
        if data is None and distances is None:
            raise ValueError(
                "At least one of the parameters `data` or `distances` must be specified!"
            )
        # This can't work if both data and the distances are specified
        if data is not None and distances is not None:
            raise ValueError(
                "Both `data` and `distances` were specified! Please pass only one."
            )

        if distances is None:
            with utils.Timer("Calculating squared distances...", verbose):
                distances = squared_euclidean_distances(data)
        else:
            distances = check_distance_matrix(distances)

        self.__distances = distances
        self.tol = tol
        self.max_iter = max_iter
        self.perplexity = self.check_perplexity(perplexity, distances.shape[0])

        self._compute_affinities("Calculating affinity matrix...")

    def _compute_affinities(self, message):
        with utils.Timer(message, self.verbose):
            self.P, self.betas_, self.converged_ = joint_probabilities(
                self.__distances,
                self.perplexity,
                tol=self.tol,
                max_iter=self.max_iter,
                verbose=self.verbose,
            )

    def set_perplexity(self, new_perplexity):
        """Change the perplexity of the affinity matrix.

        The affinities are recomputed from the stored squared distances, so
        the distances need not be computed again.

        Parameters
        ----------
        new_perplexity: float
            The new perplexity.

        """
        # If the value hasn't changed, there's nothing to do
        if new_perplexity == self.perplexity:
            return
        self.perplexity = self.check_perplexity(new_perplexity, self.n_samples)
        self._compute_affinities("Perplexity changed. Recomputing affinity matrix...")

    @staticmethod
    def check_perplexity(perplexity, n_samples):
        if perplexity <= 0:
            raise ValueError("Perplexity must be >0. %.2f given" % perplexity)

        if perplexity > n_samples - 1:
            log.warning(
                "Perplexity value %.2f is larger than the number of neighbors "
                "available to each point (%d). The target entropy cannot be "
                "reached." % (perplexity, n_samples - 1)
            )

        return perplexity


def _entropy(probabilities):
    mask = probabilities > EPSILON
    p = probabilities[mask]
    return -np.sum(p * np.log(p))


def conditional_probabilities(
    distances,
    perplexity,
    tol=ENTROPY_TOLERANCE,
    max_iter=MAX_BINARY_SEARCH_STEPS,
    verbose=False,
):
    """Compute the conditional probability matrix :math:`P_{j|i}`.

    For each point, a binary search is performed over the precision
    :math:`\\beta_i` of its Gaussian kernel until the entropy of the induced
    neighbor distribution is within ``tol`` of :math:`\\log(\\text{perplexity})`
    or ``max_iter`` steps have been made.

    Parameters
    ----------
    distances: np.ndarray
        An :math:`N \\times N` matrix of squared distances.
    perplexity: float
        The desired perplexity of the probability distributions.
    tol: float
        The tolerance on the difference between the entropy and the target
        entropy.
    max_iter: int
        The maximum number of binary search steps per point.
    verbose: bool

    Returns
    -------
    P: np.ndarray
        The row-stochastic :math:`N \\times N` matrix of conditional
        probabilities. A point whose kernel assigns no mass to any neighbor
        gets a row of zeros.
    betas: np.ndarray
        The kernel precision that produced each row.
    converged: np.ndarray
        Whether the binary search of each point reached the tolerance.

    """
    n_samples = distances.shape[0]
    target_entropy = np.log(perplexity)

    P = np.zeros((n_samples, n_samples), dtype=np.float64)
    betas = np.ones(n_samples, dtype=np.float64)
    converged = np.zeros(n_samples, dtype=bool)

    for i in range(n_samples):
        if verbose and i % 500 == 0:
            print("Computing P-values for point %d of %d..." % (i, n_samples))

        beta, beta_min, beta_max = 1.0, -np.inf, np.inf
        for _ in range(max_iter):
            p = np.exp(-distances[i] * beta)
            p[i] = 0
            # Every neighbor can be too far away for the kernel, in which case
            # the row is left as zeros
            sum_p = np.sum(p)
            if sum_p > 0:
                p /= sum_p

            P[i] = p
            betas[i] = beta

            entropy_diff = _entropy(p) - target_entropy
            if entropy_diff > 0:
                # The distribution is too spread out, increase the precision
                beta_min = beta
                if beta_max == np.inf:
                    beta *= 2
                else:
                    beta = (beta + beta_max) / 2
            else:
                beta_max = beta
                if beta_min == -np.inf:
                    beta /= 2
                else:
                    beta = (beta + beta_min) / 2

            if abs(entropy_diff) < tol:
                converged[i] = True
                break

    return P, betas, converged


def joint_probabilities(
    distances,
    perplexity,
    tol=ENTROPY_TOLERANCE,
    max_iter=MAX_BINARY_SEARCH_STEPS,
    verbose=False,
):
    """Compute the symmetric joint probability matrix :math:`P`.

    Parameters
    ----------
    distances: np.ndarray
        An :math:`N \\times N` matrix of squared distances.
    perplexity: float
        The desired perplexity of the conditional probability distributions.
    tol: float
        The tolerance of the binary search on the entropy.
    max_iter: int
        The maximum number of binary search steps per point.
    verbose: bool

    Returns
    -------
    P: np.ndarray
        The symmetric :math:`N \\times N` affinity matrix. It sums to one and
        none of its entries are smaller than ``MIN_PROBABILITY``.
    betas: np.ndarray
        The Gaussian kernel precisions for each point.
    converged: np.ndarray
        Whether the binary search of each point reached the tolerance.

    """
    n_samples = distances.shape[0]

    conditional_P, betas, converged = conditional_probabilities(
        distances, perplexity, tol=tol, max_iter=max_iter, verbose=verbose
    )

    n_failed = np.sum(~converged)
    if n_failed > 0:
        log.warning(
            "The binary search did not reach the target perplexity within %d "
            "steps for %d out of %d points." % (max_iter, n_failed, n_samples)
        )

    P = (conditional_P + conditional_P.T) / (2 * n_samples)
    P = np.maximum(P, MIN_PROBABILITY)

    return P, betas, converged
