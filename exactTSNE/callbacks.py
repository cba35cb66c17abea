import logging
import time

import numpy as np

log = logging.getLogger(__name__)


class Callback:
    def optimization_about_to_start(self):
        """This is called at the beginning of the optimization procedure."""

    def __call__(self, iteration, error, embedding):
        """This is the main method called from the optimization.

        Parameters
        ----------
        iteration: int
            The current, zero-based iteration number.

        error: float
            The KL divergence of the embedding before the current step.

        embedding: TSNEEmbedding
            The current t-SNE embedding. It must not be modified.

        Returns
        -------
        stop_optimization: bool
            If this value is set to ``True``, the optimization will be
            interrupted.

        """


class ErrorLogger(Callback):
    """Basic error logger.

    This logger prints out basic information about the optimization. These
    include the iteration number, error and how much time has elapsed from the
    previous callback invocation.

    """

    def __init__(self):
        self.iter_count = 0
        self.last_log_time = None

    def optimization_about_to_start(self):
        self.last_log_time = time.time()
        self.iter_count = 0

    def __call__(self, iteration, error, embedding):
        now = time.time()
        duration = now - self.last_log_time
        self.last_log_time = now

        n_iters = iteration + 1 - self.iter_count
        self.iter_count = iteration + 1

        print("Iteration % 4d, KL divergence % 6.4f, %d iterations in %.4f sec" % (
            iteration, error, n_iters, duration))


class ErrorHistory(Callback):
    """Record the KL divergence, and optionally the embedding, of every
    callback invocation.

    Parameters
    ----------
    keep_embeddings: bool
        Store a copy of the embedding at each invocation, e.g. to animate the
        optimization afterwards.

    """

    def __init__(self, keep_embeddings=False):
        self.keep_embeddings = keep_embeddings
        self.iterations = []
        self.errors = []
        self.embeddings = []

    def optimization_about_to_start(self):
        self.iterations = []
        self.errors = []
        self.embeddings = []

    def __call__(self, iteration, error, embedding):
        self.iterations.append(iteration)
        self.errors.append(error)
        if self.keep_embeddings:
            self.embeddings.append(np.array(embedding, copy=True))


class NoProgressStopper(Callback):
    """Stop the optimization once the KL divergence stops improving.

    Parameters
    ----------
    n_iter_without_progress: int
        The number of iterations without a new lowest error after which the
        optimization is stopped.

    min_improvement: float
        Errors have to fall below the best error by more than this amount to
        count as progress.

    """

    def __init__(self, n_iter_without_progress=300, min_improvement=0):
        self.n_iter_without_progress = n_iter_without_progress
        self.min_improvement = min_improvement
        self.best_error = np.inf
        self.best_iter = 0

    def optimization_about_to_start(self):
        self.best_error = np.inf
        self.best_iter = 0

    def __call__(self, iteration, error, embedding):
        if error < self.best_error - self.min_improvement:
            self.best_error = error
            self.best_iter = iteration
        elif iteration - self.best_iter > self.n_iter_without_progress:
            log.info(
                "Iteration %d: did not make any progress during the last %d "
                "iterations. Finished." % (iteration, self.n_iter_without_progress)
            )
            return True
        return False
