import unittest

import numpy as np

from exactTSNE.sklearn import TSNE


class TestTSNECorrectness(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.tsne = TSNE(n_iter=20, learning_rate=10)
        # Set up two modalities, if we want to visually inspect test results
        random_state = np.random.RandomState(0)
        cls.x = np.vstack(
            (random_state.normal(+1, 1, (50, 4)), random_state.normal(-1, 1, (50, 4)))
        )

    def test_fit(self):
        retval = self.tsne.fit(self.x)
        self.assertIs(type(retval), TSNE)

    def test_fit_transform(self):
        retval = self.tsne.fit_transform(self.x)
        self.assertIs(type(retval), np.ndarray)
        self.assertEqual(retval.shape, (100, 2))
        self.assertEqual(self.tsne.n_iter_, 20)
        self.assertIsNotNone(self.tsne.kl_divergence_)
