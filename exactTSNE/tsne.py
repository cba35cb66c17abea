import logging
from collections.abc import Iterable
from types import SimpleNamespace
from time import time

import numpy as np
from scipy.special import xlogy
from sklearn.base import BaseEstimator

from exactTSNE import initialization as initialization_scheme
from exactTSNE import utils
from exactTSNE.affinity import Affinities, PerplexityBased, MIN_PROBABILITY
from exactTSNE.distances import squared_euclidean_distances

log = logging.getLogger(__name__)


def _check_callbacks(callbacks):
    if callbacks is not None:
        # If list was passed, make sure all of them are actually callable
        if isinstance(callbacks, Iterable):
            if any(not callable(c) for c in callbacks):
                raise ValueError("`callbacks` must contain callable objects!")
            callbacks = tuple(callbacks)
        # The gradient descent method deals with lists
        elif callable(callbacks):
            callbacks = (callbacks,)
        else:
            raise ValueError("`callbacks` must be a callable object!")

    return callbacks


def _handle_nice_params(optim_params: dict) -> None:
    """Convert the user friendly params into something the optimizer can
    understand."""
    optim_params["callbacks"] = _check_callbacks(optim_params.get("callbacks"))

    learning_rate = optim_params.get("learning_rate", 100)
    if isinstance(learning_rate, str) or not learning_rate > 0:
        raise ValueError(
            "`learning_rate` must be a positive number. Got `%s` instead."
            % (learning_rate,)
        )

    callbacks_every_iters = optim_params.get("callbacks_every_iters", 1)
    if callbacks_every_iters < 1:
        raise ValueError(
            "`callbacks_every_iters` must be at least 1. Got %d instead."
            % callbacks_every_iters
        )


def __check_init_num_samples(num_samples, required_num_samples):
    if num_samples != required_num_samples:
        raise ValueError(
            "The provided initialization contains a different number "
            "of points (%d) than the data provided (%d)."
            % (num_samples, required_num_samples)
        )


def __check_init_num_dimensions(num_dimensions, required_num_dimensions):
    if num_dimensions != required_num_dimensions:
        raise ValueError(
            "The provided initialization contains a different number "
            "of components (%d) than the embedding (%d)."
            % (num_dimensions, required_num_dimensions)
        )


init_checks = SimpleNamespace(
    num_samples=__check_init_num_samples, num_dimensions=__check_init_num_dimensions,
)


class OptimizationInterrupt(InterruptedError):
    """Optimization was interrupted by a callback.

    Parameters
    ----------
    error: float
        The KL divergence reported to the callbacks in the last iteration.

    final_embedding: TSNEEmbedding
        The embedding as it was passed to the callbacks in the last iteration.

    n_iter: int
        The number of iterations completed before the interrupt.

    """

    def __init__(self, error, final_embedding, n_iter):
        super().__init__()
        self.error = error
        self.final_embedding = final_embedding
        self.n_iter = n_iter


def kl_divergence_exact(embedding, P, plogp=None, **_):
    """Evaluate the KL divergence between ``P`` and the Student-t affinities of
    the embedding, along with its gradient.

    Every pairwise interaction is computed exactly, so this requires
    :math:`\\mathcal{O}(N^2)` time and memory.

    Parameters
    ----------
    embedding: np.ndarray
        The :math:`N \\times K` embedding :math:`Y`.

    P: np.ndarray
        The symmetric :math:`N \\times N` joint probability matrix.

    plogp: float
        The constant part of the KL divergence :math:`\\sum P \\log P`. It is
        computed from ``P`` when not given.

    Returns
    -------
    float
        The KL divergence :math:`KL(P || Q)`.
    np.ndarray
        The :math:`N \\times K` gradient of the KL divergence w.r.t. the
        embedding.

    """
    Y = np.asarray(embedding, dtype=np.float64)

    # Student's t-distribution with one degree of freedom
    q_unnormalized = 1 / (1 + squared_euclidean_distances(Y, check_input=False))
    np.fill_diagonal(q_unnormalized, 0)

    sum_Q = np.sum(q_unnormalized)
    if sum_Q > 0:
        Q = q_unnormalized / sum_Q
    else:
        Q = np.zeros_like(q_unnormalized)
    Q = np.maximum(Q, MIN_PROBABILITY)

    if plogp is None:
        plogp = np.sum(xlogy(P, P))
    kl_divergence_ = plogp - np.sum(P * np.log(Q))

    # dC/dy_i = 4 \sum_j (p_ij - q_ij) (1 + |y_i - y_j|^2)^-1 (y_i - y_j)
    mult = 4 * (P - Q) * q_unnormalized
    gradient = np.sum(mult, axis=1)[:, np.newaxis] * Y - mult @ Y

    return kl_divergence_, gradient


def iterate_gradient_descent(
    embedding,
    P,
    n_iter,
    learning_rate=100,
    plogp=None,
    objective_function=kl_divergence_exact,
):
    """Run plain batch gradient descent, yielding after every step.

    The embedding is updated inplace and re-centered after every step so that
    each dimension has zero mean.

    Parameters
    ----------
    embedding: np.ndarray
        The embedding :math:`Y`.

    P: np.ndarray
        Joint probability matrix :math:`P`.

    n_iter: int
        The number of iterations to run for.

    learning_rate: float

    plogp: float
        The constant part of the KL divergence. Computed once from ``P`` when
        not given.

    objective_function: Callable[..., Tuple[float, np.ndarray]]
        A callable that evaluates the error and gradient for the current
        embedding.

    Yields
    ------
    int
        The zero-based iteration index.
    float
        The KL divergence of the embedding before the step.
    np.ndarray
        The updated embedding.

    """
    if plogp is None:
        plogp = np.sum(xlogy(P, P))

    for iteration in range(n_iter):
        error, gradient = objective_function(embedding, P, plogp=plogp)

        embedding -= learning_rate * gradient
        embedding -= np.mean(embedding, axis=0)

        yield iteration, error, embedding


def gradient_descent(
    embedding,
    P,
    n_iter,
    learning_rate=100,
    objective_function=kl_divergence_exact,
    callbacks=None,
    callbacks_every_iters=1,
    verbose=False,
):
    """Perform plain batch gradient descent.

    Parameters
    ----------
    embedding: np.ndarray
        The embedding :math:`Y`. It is updated inplace.

    P: np.ndarray
        Joint probability matrix :math:`P`.

    n_iter: int
        The number of iterations to run for.

    learning_rate: float
        The step size of gradient descent.

    objective_function: Callable[..., Tuple[float, np.ndarray]]
        A callable that evaluates the error and gradient for the current
        embedding.

    callbacks: Iterable[Callable[[int, float, np.ndarray] -> bool]]
        Callbacks, which will be run every ``callbacks_every_iters``
        iterations, starting with the first one.

    callbacks_every_iters: int
        How many iterations should pass between each time the callbacks are
        invoked.

    verbose: bool

    Returns
    -------
    float
        The KL divergence of the optimized embedding.
    np.ndarray
        The optimized embedding Y.

    Raises
    ------
    OptimizationInterrupt
        If the provided callback interrupts the optimization, this is raised.

    """
    assert isinstance(embedding, np.ndarray), (
        "`embedding` must be an instance of `np.ndarray`. Got `%s` instead"
        % type(embedding)
    )

    callbacks = _check_callbacks(callbacks)

    # Notify the callbacks that the optimization is about to start
    if callbacks is not None:
        for callback in callbacks:
            # Only call function if present on object
            getattr(callback, "optimization_about_to_start", lambda: ...)()

    plogp = np.sum(xlogy(P, P))

    timer = utils.Timer(
        "Running optimization with lr=%.2f for %d iterations..." % (
            learning_rate, n_iter
        ),
        verbose=verbose,
    )
    with timer:
        start_time = time()

        steps = iterate_gradient_descent(
            embedding,
            P,
            n_iter,
            learning_rate=learning_rate,
            plogp=plogp,
            objective_function=objective_function,
        )
        for iteration, error, embedding in steps:
            if callbacks is not None and iteration % callbacks_every_iters == 0:
                # Continue only if all the callbacks say so
                should_stop = any(
                    (bool(c(iteration, error, embedding)) for c in callbacks)
                )
                if should_stop:
                    raise OptimizationInterrupt(
                        error=error, final_embedding=embedding, n_iter=iteration + 1
                    )

            if verbose and (iteration + 1) % 50 == 0:
                stop_time = time()
                print("Iteration %4d, KL divergence %6.4f, 50 iterations in %.4f sec" % (
                    iteration + 1, error, stop_time - start_time))
                start_time = time()

    # The error from the loop is the one for the previous, non-updated
    # embedding, so evaluate the final embedding once more
    error, _ = objective_function(embedding, P, plogp=plogp)

    return error, embedding


class TSNEEmbedding(np.ndarray):
    """A t-SNE embedding.

    Parameters
    ----------
    embedding: np.ndarray
        Initial positions for each data point.

    affinities: Affinities
        The affinity object containing the affinity matrix :math:`P` used
        during optimization.

    learning_rate: float
        The step size of gradient descent.

    callbacks: Callable[[int, float, np.ndarray] -> bool]
        Callbacks, which will be run every ``callbacks_every_iters`` iterations.

    callbacks_every_iters: int
        How many iterations should pass between each time the callbacks are
        invoked.

    random_state: Union[int, RandomState]
        The random state the embedding was initialized with.

    verbose: bool

    Attributes
    ----------
    kl_divergence: float
        The KL divergence or error of the embedding.

    n_iter_: int
        The number of gradient descent iterations run on this embedding.

    """

    def __new__(cls, embedding, affinities, random_state=None, **gradient_descent_params):
        init_checks.num_samples(embedding.shape[0], affinities.P.shape[0])

        obj = np.asarray(embedding, dtype=np.float64, order="C").view(TSNEEmbedding)

        obj.affinities = affinities  # type: Affinities
        obj.gradient_descent_params = gradient_descent_params  # type: dict
        obj.random_state = random_state

        obj.kl_divergence = None
        obj.n_iter_ = 0

        return obj

    def optimize(
        self,
        n_iter,
        inplace=False,
        propagate_exception=False,
        **gradient_descent_params,
    ):
        """Run optmization on the embedding for a given number of steps.

        Parameters
        ----------
        n_iter: int
            The number of optimization iterations.

        learning_rate: float
            The step size of gradient descent.

        inplace: bool
            Whether or not to create a copy of the embedding or to perform
            updates inplace.

        propagate_exception: bool
            The optimization process can be interrupted using callbacks. This
            flag indicates whether we should propagate that exception or to
            simply stop optimization and return the resulting embedding.

        callbacks: Callable[[int, float, np.ndarray] -> bool]
            Callbacks, which will be run every ``callbacks_every_iters``
            iterations.

        callbacks_every_iters: int
            How many iterations should pass between each time the callbacks are
            invoked.

        verbose: bool

        Returns
        -------
        TSNEEmbedding
            An optimized t-SNE embedding.

        Raises
        ------
        OptimizationInterrupt
            If a callback stops the optimization and the ``propagate_exception``
            flag is set, then an exception is raised.

        """
        # Typically we want to return a new embedding and keep the old one intact
        if inplace:
            embedding = self
        else:
            embedding = TSNEEmbedding(
                np.copy(self),
                self.affinities,
                random_state=self.random_state,
                **self.gradient_descent_params,
            )
            embedding.n_iter_ = self.n_iter_

        # If optimization parameters were passed to this funciton, prefer those
        # over the defaults specified in the TSNE object
        optim_params = dict(self.gradient_descent_params)
        optim_params.update(gradient_descent_params)
        optim_params["n_iter"] = n_iter
        _handle_nice_params(optim_params)

        try:
            error, embedding = gradient_descent(
                embedding=embedding, P=self.affinities.P, **optim_params
            )
            embedding.n_iter_ += n_iter

        except OptimizationInterrupt as ex:
            log.info("Optimization was interrupted with callback.")
            ex.final_embedding.n_iter_ += ex.n_iter
            ex.final_embedding.kl_divergence = ex.error
            if propagate_exception:
                raise ex
            error, embedding = ex.error, ex.final_embedding

        embedding.kl_divergence = error

        return embedding

    def iterate(self, n_iter, learning_rate=None):
        """Optimize the embedding inplace, yielding after every iteration.

        This is the generator counterpart of :meth:`optimize`. Callbacks are
        not invoked; the caller consumes ``(iteration, error, embedding)``
        tuples instead and stops optimization by no longer advancing the
        generator. The yielded embedding is this object, so it must not be
        modified by the caller.

        While iterating, ``kl_divergence`` holds the divergence before the
        latest step. When the generator runs to completion, it is set to the
        divergence of the final embedding, as after :meth:`optimize`.

        Parameters
        ----------
        n_iter: int
            The maximum number of optimization iterations.

        learning_rate: float
            The step size of gradient descent. Defaults to the one the
            embedding was prepared with.

        Yields
        ------
        int
            The zero-based iteration index.
        float
            The KL divergence before the step.
        TSNEEmbedding
            The embedding after the step.

        """
        optim_params = {"learning_rate": self.gradient_descent_params.get("learning_rate", 100)}
        if learning_rate is not None:
            optim_params["learning_rate"] = learning_rate
        _handle_nice_params(optim_params)

        P = self.affinities.P
        plogp = np.sum(xlogy(P, P))

        steps = iterate_gradient_descent(
            self, P, n_iter, learning_rate=optim_params["learning_rate"], plogp=plogp
        )
        for iteration, error, _ in steps:
            self.n_iter_ += 1
            self.kl_divergence = error
            yield iteration, error, self

        # Once exhausted, report the divergence of the final embedding
        self.kl_divergence, _ = kl_divergence_exact(self, P, plogp=plogp)


class TSNE(BaseEstimator):
    """Exact t-Distributed Stochastic Neighbor Embedding.

    All pairwise interactions are considered both when computing the input
    affinities and during optimization, so memory and time grow quadratically
    with the number of samples. The embedding is optimized with plain gradient
    descent.

    Parameters
    ----------
    n_components: int
        The dimension of the embedding space.

    perplexity: float
        Perplexity can be thought of as the continuous :math:`k` number of
        nearest neighbors, for which t-SNE will attempt to preserve distances.

    learning_rate: float
        The step size of gradient descent.

    n_iter: int
        The maximum number of optimization iterations.

    initialization: Union[np.ndarray, str]
        The initial point positions to be used in the embedding space. Can be a
        precomputed numpy array or ``random``. Please note that when passing in
        a precomputed positions, it is highly recommended that the point
        positions have small variance (std(Y) < 0.0001), otherwise you may get
        poor embeddings. The initial positions are always centered.

    affinities: exactTSNE.affinity.Affinities
        A precomputed affinity object. If specified, ``perplexity`` is ignored.

    callbacks: Union[Callable, List[Callable]]
        Callbacks, which will be run every ``callbacks_every_iters`` iterations.
        Each is called with the iteration index, the KL divergence and the
        current embedding, and may return ``True`` to stop the optimization.

    callbacks_every_iters: int
        How many iterations should pass between each time the callbacks are
        invoked.

    random_state: Union[int, RandomState]
        If the value is an int, random_state is the seed used by the random
        number generator. If the value is a RandomState instance, then it will
        be used as the random number generator. If the value is None, the random
        number generator is the RandomState instance used by `np.random`.

    verbose: bool

    """

    def __init__(
        self,
        n_components=2,
        perplexity=30,
        learning_rate=100,
        n_iter=500,
        initialization="random",
        affinities=None,
        callbacks=None,
        callbacks_every_iters=1,
        random_state=None,
        verbose=False,
    ):
        self.n_components = n_components
        self.perplexity = perplexity
        self.learning_rate = learning_rate
        self.n_iter = n_iter

        # Check if the number of components match the initialization dimension
        if isinstance(initialization, np.ndarray):
            init_checks.num_dimensions(initialization.shape[1], n_components)
        self.initialization = initialization

        if affinities is not None and not isinstance(affinities, Affinities):
            raise ValueError(
                "`affinities` must be an instance of `exactTSNE.affinity.Affinities`"
            )
        self.affinities = affinities

        self.callbacks = callbacks
        self.callbacks_every_iters = callbacks_every_iters

        self.random_state = random_state
        self.verbose = verbose

    def fit(self, X, callbacks=None):
        """Fit a t-SNE embedding for a given data set.

        Parameters
        ----------
        X: np.ndarray
            The :math:`N \\times D` data matrix to be embedded.

        callbacks: Union[Callable, List[Callable]]
            Callbacks for this run only. These take precedence over the ones
            given to the constructor.

        Returns
        -------
        TSNEEmbedding
            A fully optimized t-SNE embedding.

        """
        return self._fit(data=X, callbacks=callbacks)

    def fit_distances(self, distances, callbacks=None):
        """Fit a t-SNE embedding for a precomputed distance matrix.

        Parameters
        ----------
        distances: np.ndarray
            A square :math:`N \\times N` matrix of *squared* distances.

        callbacks: Union[Callable, List[Callable]]
            Callbacks for this run only. These take precedence over the ones
            given to the constructor.

        Returns
        -------
        TSNEEmbedding
            A fully optimized t-SNE embedding.

        Raises
        ------
        ValueError
            If the distance matrix is not square.

        """
        return self._fit(distances=distances, callbacks=callbacks)

    def _fit(self, data=None, distances=None, callbacks=None):
        if self.verbose:
            print("-" * 80, repr(self), "-" * 80, sep="\n")

        embedding = self.prepare_initial(data, distances=distances)

        optim_params = {}
        if callbacks is not None:
            optim_params["callbacks"] = callbacks

        try:
            embedding.optimize(
                n_iter=self.n_iter,
                inplace=True,
                propagate_exception=True,
                **optim_params,
            )

        except OptimizationInterrupt as ex:
            log.info("Optimization was interrupted with callback.")
            embedding = ex.final_embedding

        return embedding

    def prepare_initial(self, X=None, distances=None):
        """Prepare the initial embedding which can be optimized as needed.

        Parameters
        ----------
        X: np.ndarray
            The data matrix to be embedded.

        distances: np.ndarray
            A precomputed matrix of squared distances, used in place of ``X``.

        Returns
        -------
        TSNEEmbedding
            An unoptimized :class:`TSNEEmbedding` object, prepared for
            optimization.

        """
        if self.affinities is None:
            affinities = PerplexityBased(
                X,
                self.perplexity,
                distances=distances,
                verbose=self.verbose,
            )
        else:
            log.info(
                "Precomputed affinities provided. Ignoring perplexity-related "
                "parameters."
            )
            affinities = self.affinities

        n_samples = affinities.n_samples

        # If initial positions are given in an array, use a copy of that
        if isinstance(self.initialization, np.ndarray):
            init_checks.num_samples(self.initialization.shape[0], n_samples)
            init_checks.num_dimensions(self.initialization.shape[1], self.n_components)

            embedding = np.array(self.initialization, dtype=np.float64)

            stddev = np.std(embedding, axis=0)
            if any(stddev > 1e-2):
                log.warning(
                    "Standard deviation of embedding is greater than 0.01. Initial "
                    "embeddings with high variance may display poor convergence."
                )

        elif self.initialization == "random":
            embedding = initialization_scheme.random(
                n_samples,
                self.n_components,
                random_state=self.random_state,
                verbose=self.verbose,
            )
        else:
            raise ValueError(
                f"Unrecognized initialization scheme `{self.initialization}`."
            )

        initialization_scheme.center(embedding, inplace=True)

        gradient_descent_params = {
            "learning_rate": self.learning_rate,
            "verbose": self.verbose,
            # Callback params
            "callbacks": self.callbacks,
            "callbacks_every_iters": self.callbacks_every_iters,
        }

        return TSNEEmbedding(
            embedding,
            affinities=affinities,
            random_state=self.random_state,
            **gradient_descent_params,
        )
