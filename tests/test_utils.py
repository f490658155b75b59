import os
import random
import tempfile
import unittest
from collections import Counter

from beaconsim.utils.utils import chance, choose_weighted, provision_log_file, random_string


class TestWeightedChoice(unittest.TestCase):

    def setUp(self):
        self.rng = random.Random(42)

    def test_zero_weight_never_chosen(self):
        picks = {choose_weighted(self.rng, ["a", "b", "c"], [1.0, 0.0, 1.0]) for _ in range(2000)}
        self.assertEqual(picks, {"a", "c"})

    def test_frequencies_follow_weights(self):
        counts = Counter(choose_weighted(self.rng, ("candidate", "fresh"), (0.6, 0.4)) for _ in range(10000))
        self.assertAlmostEqual(counts["candidate"] / 10000, 0.6, delta=0.03)

    def test_invalid_inputs(self):
        with self.assertRaises(ValueError):
            choose_weighted(self.rng, [], [])
        with self.assertRaises(ValueError):
            choose_weighted(self.rng, ["a"], [1.0, 2.0])
        with self.assertRaises(ValueError):
            choose_weighted(self.rng, ["a", "b"], [-1.0, 2.0])
        with self.assertRaises(ValueError):
            choose_weighted(self.rng, ["a", "b"], [0.0, 0.0])

    def test_chance_bounds(self):
        self.assertFalse(any(chance(self.rng, 0.0) for _ in range(500)))
        self.assertTrue(all(chance(self.rng, 1.0) for _ in range(500)))
        hits = sum(chance(self.rng, 0.15) for _ in range(10000))
        self.assertAlmostEqual(hits / 10000, 0.15, delta=0.02)

    def test_random_string(self):
        value = random_string(self.rng, 12, "01")
        self.assertEqual(len(value), 12)
        self.assertTrue(set(value) <= {"0", "1"})


class TestProvisionLogFile(unittest.TestCase):

    def test_creates_parent_directories(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "nested", "dir", "events.log")
            log_path = provision_log_file(path)
            self.assertTrue(log_path.exists())
            self.assertEqual(str(log_path), path)

    def test_existing_file_kept(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "events.log")
            with open(path, "w") as f:
                f.write("previous line\n")
            provision_log_file(path)
            with open(path) as f:
                self.assertEqual(f.read(), "previous line\n")


if __name__ == "__main__":
    unittest.main()
