import random
import re
import unittest

from beaconsim.base.protocol import DomainStrategy
from beaconsim.core.domains import DomainGenerator, fit_domain
from helpers import fast_settings

SAMPLES = 300


class TestDomainGenerator(unittest.TestCase):
    """Shape contracts of every generation strategy"""

    def setUp(self):
        self.settings = fast_settings()
        self.generator = DomainGenerator(self.settings, random.Random(1234))

    def sample(self, strategy):
        return [self.generator.generate(strategy) for _ in range(SAMPLES)]

    def test_all_strategies_respect_length_and_labels(self):
        for strategy in DomainStrategy:
            for domain in self.sample(strategy):
                self.assertLessEqual(len(domain.name), 253, domain.name)
                self.assertTrue(all(domain.labels), f"empty label in {domain.name}")
                self.assertEqual(domain.strategy, strategy)

    def test_longest_accepted_parent_stays_within_limit(self):
        parent = ".".join(["a" * 62] * 4)
        self.assertEqual(len(parent), 251)
        generator = DomainGenerator(fast_settings(VALID_DOMAINS=(parent,)), random.Random(5))
        for strategy in (DomainStrategy.RANDOM_LABEL, DomainStrategy.BENIGN_NOISE, DomainStrategy.NXDOMAIN):
            for _ in range(50):
                name = generator.generate(strategy).name
                self.assertLessEqual(len(name), 253, name)
                self.assertTrue(name.endswith(parent))

    def test_random_label_under_valid_domain(self):
        for domain in self.sample(DomainStrategy.RANDOM_LABEL):
            label, parent = domain.name.split(".", 1)
            self.assertRegex(label, r"^[a-z0-9]{6,18}$")
            self.assertIn(parent, self.settings.VALID_DOMAINS)

    def test_oversized_label_exceeds_dns_limit(self):
        for domain in self.sample(DomainStrategy.OVERSIZED_LABEL):
            first = domain.labels[0]
            self.assertGreater(len(first), 63)
            self.assertEqual(len(first), 80)
            self.assertTrue(domain.name.endswith(".example.com"))

    def test_many_labels_chain(self):
        for domain in self.sample(DomainStrategy.MANY_LABELS):
            self.assertTrue(domain.name.endswith(".google.com"))
            generated = domain.labels[:-2]
            self.assertGreaterEqual(len(generated), 10)
            self.assertLessEqual(len(generated), 17)
            for label in generated:
                self.assertRegex(label, r"^[a-z0-9]{1,18}$")

    def test_numeric_label(self):
        for domain in self.sample(DomainStrategy.NUMERIC):
            first = domain.labels[0]
            self.assertRegex(first, r"^[0-9]+$")
            self.assertTrue(4 <= len(first) <= 11)
            self.assertEqual(domain.labels[1:], ["microsoft", "com"])

    def test_single_char_chain(self):
        for domain in self.sample(DomainStrategy.SINGLE_CHAR_CHAIN):
            self.assertTrue(domain.name.endswith(".malicious.net"))
            generated = domain.labels[:-2]
            self.assertTrue(6 <= len(generated) <= 13)
            self.assertTrue(all(len(label) == 1 for label in generated))

    def test_benign_noise_and_nxdomain_use_valid_parents(self):
        for strategy, depth in ((DomainStrategy.BENIGN_NOISE, 1), (DomainStrategy.NXDOMAIN, 2)):
            for domain in self.sample(strategy):
                parent = ".".join(domain.labels[depth:])
                self.assertIn(parent, self.settings.VALID_DOMAINS)

    def test_lab_safe_names(self):
        tlds = "|".join(self.settings.LAB_TLDS)
        for domain in self.sample(DomainStrategy.LAB_SAFE):
            self.assertRegex(domain.name, rf"^[a-z0-9]{{6}}\.example-({tlds})$")

    def test_build_candidates_plan(self):
        candidates = self.generator.build_candidates()
        self.assertEqual(
            [c.strategy for c in candidates],
            [
                DomainStrategy.VALID,
                DomainStrategy.VALID,
                DomainStrategy.RANDOM_LABEL,
                DomainStrategy.RANDOM_LABEL,
                DomainStrategy.OVERSIZED_LABEL,
                DomainStrategy.MANY_LABELS,
                DomainStrategy.NUMERIC,
                DomainStrategy.SINGLE_CHAR_CHAIN,
            ],
        )
        self.assertIn(candidates[0].name, self.settings.VALID_DOMAINS)

    def test_unique_domains(self):
        domains = self.generator.unique_domains(DomainStrategy.NXDOMAIN, 5)
        self.assertEqual(len({d.name for d in domains}), 5)

    def test_large_txt_payload_is_a_base64_sample(self):
        payload = self.generator.large_txt_payload(180)
        self.assertEqual(len(payload), 240)
        self.assertRegex(payload, r"^[A-Za-z0-9+/=]+$")
        self.assertEqual(len(self.generator.large_txt_payload(1000)), 250)

    def test_same_seed_same_names(self):
        other = DomainGenerator(self.settings, random.Random(1234))
        self.assertEqual(
            [d.name for d in self.generator.build_candidates()],
            [d.name for d in other.build_candidates()],
        )


class TestFitDomain(unittest.TestCase):

    def test_short_names_untouched(self):
        self.assertEqual(fit_domain(["abc", "def"], "google.com"), "abc.def.google.com")

    def test_long_names_truncated_not_aborted(self):
        labels = ["a" * 18] * 17
        name = fit_domain(labels, "google.com")
        self.assertEqual(len(name), 253)
        self.assertEqual(len(name.split(".")), 19)
        self.assertTrue(all(name.split(".")))

    def test_single_character_overflow_drops_leading_labels(self):
        name = fit_domain(["x"] * 200, "example.com")
        self.assertLessEqual(len(name), 253)
        self.assertTrue(all(name.split(".")))
        self.assertTrue(name.endswith(".example.com"))


if __name__ == "__main__":
    unittest.main()
