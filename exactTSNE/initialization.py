import numpy as np
from sklearn.utils import check_random_state

INITIAL_STD = 1e-4


def center(x, inplace=False):
    """Shift an embedding so that every dimension has zero mean."""
    if not inplace:
        x = np.array(x, copy=True)

    x -= np.mean(x, axis=0)

    return x


def random(n_samples, n_components=2, random_state=None, verbose=False):
    """Initialize an embedding using samples from an isotropic Gaussian.

    The small standard deviation breaks the symmetry between points without
    biasing any axis.

    Parameters
    ----------
    n_samples: Union[int, np.ndarray]
        The number of samples. Also accepts a data matrix.

    n_components: int
        The dimension of the embedding space.

    random_state: Union[int, RandomState]
        If the value is an int, random_state is the seed used by the random
        number generator. If the value is a RandomState instance, then it will
        be used as the random number generator. If the value is None, the random
        number generator is the RandomState instance used by `np.random`.

    verbose: bool

    Returns
    -------
    initialization: np.ndarray

    """
    random_state = check_random_state(random_state)
    if isinstance(n_samples, np.ndarray):
        n_samples = n_samples.shape[0]
    embedding = random_state.normal(0, INITIAL_STD, (n_samples, n_components))
    return np.ascontiguousarray(embedding)
