import unittest
from contextlib import redirect_stdout
from io import StringIO

import numpy as np

import exactTSNE
from exactTSNE.callbacks import ErrorHistory, ErrorLogger, NoProgressStopper


class TestErrorLogger(unittest.TestCase):
    def test_prints_progress(self):
        x = np.random.RandomState(0).normal(0, 1, (30, 4))
        buffer = StringIO()
        with redirect_stdout(buffer):
            exactTSNE.TSNE(perplexity=5, learning_rate=10, n_iter=3).fit(
                x, callbacks=ErrorLogger()
            )
        lines = buffer.getvalue().strip().split("\n")
        self.assertEqual(len(lines), 3)
        self.assertIn("KL divergence", lines[0])


class TestErrorHistory(unittest.TestCase):
    def test_keeps_embedding_copies(self):
        history = ErrorHistory(keep_embeddings=True)
        embedding = np.zeros((5, 2))
        history(0, 1.5, embedding)
        embedding += 1
        history(1, 1.2, embedding)

        self.assertEqual(history.iterations, [0, 1])
        self.assertEqual(history.errors, [1.5, 1.2])
        np.testing.assert_array_equal(history.embeddings[0], np.zeros((5, 2)))
        np.testing.assert_array_equal(history.embeddings[1], np.ones((5, 2)))

    def test_resets_on_start(self):
        history = ErrorHistory()
        history(0, 1.0, np.zeros((2, 2)))
        history.optimization_about_to_start()
        self.assertEqual(history.errors, [])


class TestNoProgressStopper(unittest.TestCase):
    def test_stops_without_progress(self):
        stopper = NoProgressStopper(n_iter_without_progress=3)
        stopper.optimization_about_to_start()
        errors = [5, 4, 3, 3, 3, 3, 3]
        decisions = [stopper(i, e, None) for i, e in enumerate(errors)]
        self.assertEqual(decisions, [False] * 6 + [True])

    def test_keeps_going_while_improving(self):
        stopper = NoProgressStopper(n_iter_without_progress=1)
        decisions = [stopper(i, 10 - i, None) for i in range(10)]
        self.assertFalse(any(decisions))

    def test_min_improvement(self):
        stopper = NoProgressStopper(n_iter_without_progress=1, min_improvement=0.5)
        decisions = [stopper(i, e, None) for i, e in enumerate([5, 4.9, 4.8, 4.7])]
        self.assertEqual(decisions, [False, False, True, True])

    def test_interrupts_optimization(self):
        x = np.random.RandomState(0).normal(0, 1, (30, 4))
        stopper = NoProgressStopper(n_iter_without_progress=0)

        # A flat error can never be improved upon
        def flat_error(iteration, error, embedding):
            return stopper(iteration, 1.0, embedding)

        embedding = exactTSNE.TSNE(perplexity=5, learning_rate=10, n_iter=50).fit(
            x, callbacks=flat_error
        )
        self.assertEqual(embedding.n_iter_, 2)
