import numpy as np

import exactTSNE


class TSNE(exactTSNE.TSNE):
    __doc__ = exactTSNE.TSNE.__doc__

    def fit(self, X, y=None):
        """Fit X into an embedded space.

        Parameters
        ----------
        X: np.ndarray
            The data matrix to be embedded.
        y : ignored

        """
        self.fit_transform(X, y)
        return self

    def fit_transform(self, X, y=None):
        """Fit X into an embedded space and return that transformed output.

        Parameters
        ----------
        X: np.ndarray
            The data matrix to be embedded.
        y : ignored

        Returns
        -------
        np.ndarray
            Embedding of the training data in low-dimensional space.

        """
        embedding = super().fit(X)
        self.embedding_ = embedding
        self.kl_divergence_ = embedding.kl_divergence
        self.n_iter_ = embedding.n_iter_
        return self.embedding_.view(np.ndarray)
