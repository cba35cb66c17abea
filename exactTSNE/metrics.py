import numpy as np

from exactTSNE.tsne import TSNEEmbedding


def pBIC(embedding: TSNEEmbedding) -> float:
    """Score an optimized embedding with the perplexity-based BIC.

    Lower values indicate a better trade-off between the KL divergence and
    the perplexity used to compute the affinities.

    """
    if not hasattr(embedding.affinities, "perplexity"):
        raise TypeError("The embedding affinity matrix has no attribute `perplexity`")
    if embedding.kl_divergence is None:
        raise ValueError("The embedding has not been optimized yet")
    n_samples = embedding.shape[0]

    return 2 * embedding.kl_divergence + np.log(n_samples) * \
        embedding.affinities.perplexity / n_samples
