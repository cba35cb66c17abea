from .version import __version__
from .tsne import TSNE, TSNEEmbedding, OptimizationInterrupt
from .affinity import Affinities, PerplexityBased
