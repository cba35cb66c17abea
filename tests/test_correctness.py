import unittest
from functools import partial

import numpy as np
from sklearn import datasets
from sklearn.metrics import accuracy_score
from sklearn.neighbors import KNeighborsClassifier

import exactTSNE
from exactTSNE.distances import squared_euclidean_distances

TSNE = partial(exactTSNE.TSNE, learning_rate=10)


class TestTSNECorrectness(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        # Set up two well separated modalities
        random_state = np.random.RandomState(0)
        cls.x = np.vstack(
            (random_state.normal(+5, 1, (50, 4)), random_state.normal(-5, 1, (50, 4)))
        )
        cls.y = np.repeat([0, 1], 50)
        cls.iris = datasets.load_iris()

    def test_basic_flow(self):
        """Verify that the basic flow does not crash."""
        embedding = TSNE(n_iter=50).fit(self.x)
        self.assertFalse(np.any(np.isnan(embedding)))

    def test_advanced_flow(self):
        """Verify that the advanced flow does not crash."""
        embedding = TSNE().prepare_initial(self.x)
        embedding = embedding.optimize(20)
        embedding = embedding.optimize(20, learning_rate=5)
        self.assertFalse(np.any(np.isnan(embedding)))
        self.assertEqual(embedding.n_iter_, 40)

    def test_separates_modalities(self):
        knn = KNeighborsClassifier(n_neighbors=10)
        tsne = TSNE(perplexity=20, n_iter=300, random_state=0)

        # Prepare a random initialization
        embedding = tsne.prepare_initial(self.x)

        # Optimize the embedding for a small number of steps so tests run fast
        embedding.optimize(300, inplace=True)

        # Similar points should be grouped together, therefore KNN should do well
        knn.fit(embedding, self.y)
        predictions = knn.predict(embedding)
        self.assertGreater(accuracy_score(predictions, self.y), 0.95)

    def test_separates_modalities_with_precomputed_distances(self):
        knn = KNeighborsClassifier(n_neighbors=10)
        distances = squared_euclidean_distances(self.x)

        embedding = TSNE(perplexity=20, n_iter=300, random_state=0).fit_distances(
            distances
        )

        knn.fit(embedding, self.y)
        predictions = knn.predict(embedding)
        self.assertGreater(accuracy_score(predictions, self.y), 0.95)

    def test_iris_3d(self):
        x, y = self.iris.data, self.iris.target

        tsne = TSNE(n_components=3, perplexity=30, n_iter=300, random_state=0)
        embedding = tsne.fit(x)

        self.assertEqual(embedding.shape, (150, 3))
        self.assertFalse(np.any(np.isnan(embedding)))

        # Setosa is linearly separable from the other two species
        knn = KNeighborsClassifier(n_neighbors=10)
        setosa = y == 0
        knn.fit(embedding, setosa)
        self.assertGreater(accuracy_score(knn.predict(embedding), setosa), 0.95)
