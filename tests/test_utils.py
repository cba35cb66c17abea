import unittest
from contextlib import redirect_stdout
from io import StringIO

import numpy as np

import exactTSNE
from exactTSNE.utils import Timer


class TestTimer(unittest.TestCase):
    def test_silent_when_not_verbose(self):
        buffer = StringIO()
        with redirect_stdout(buffer):
            with Timer("Doing work...", verbose=False):
                pass
        self.assertEqual(buffer.getvalue(), "")

    def test_prints_message_and_elapsed_time(self):
        buffer = StringIO()
        with redirect_stdout(buffer):
            with Timer("Doing work...", verbose=True):
                pass
        output = buffer.getvalue()
        self.assertIn("===> Doing work...", output)
        self.assertIn("Time elapsed", output)


class TestVerboseOptimization(unittest.TestCase):
    def test_reports_every_50_iterations(self):
        x = np.random.RandomState(0).normal(0, 1, (30, 4))
        buffer = StringIO()
        with redirect_stdout(buffer):
            exactTSNE.TSNE(
                perplexity=5, learning_rate=10, n_iter=100, verbose=True
            ).fit(x)
        output = buffer.getvalue()
        self.assertIn("Calculating affinity matrix...", output)
        self.assertIn("Iteration   50", output)
        self.assertIn("Iteration  100", output)
