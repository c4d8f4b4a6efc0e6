"""
Unit tests for the identity matcher.
"""

import math
import unittest
import numpy as np
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from face_registry.enrollment_store import InMemoryEnrollmentStore
from face_registry.matcher import (
    IdentityMatcher,
    MatchResult,
    UNKNOWN_LABEL,
    euclidean_distances,
    find_best_match,
)
from fakes import make_vector


class TestFindBestMatch(unittest.TestCase):
    """Test cases for find_best_match."""

    def setUp(self):
        """Gallery where the query sits 0.3 from Alice and 0.5 from Bob."""
        self.store = InMemoryEnrollmentStore()
        self.store.enroll("Alice", {'age': '30'}, make_vector(0.3))
        self.store.enroll("Bob", {'age': '41'}, make_vector(0.0, 0.5))
        self.query = make_vector()

    def test_empty_gallery_is_unknown(self):
        """An empty gallery never matches, whatever the threshold."""
        for threshold in (0.0, 0.6, 100.0):
            result = find_best_match(self.query, [], threshold)
            self.assertEqual(result.label, UNKNOWN_LABEL)
            self.assertFalse(result.accepted)
            self.assertTrue(math.isinf(result.distance))

    def test_nearest_record_accepted(self):
        """Alice is nearest and within the default threshold."""
        result = find_best_match(self.query, self.store.all_records(), 0.6)
        self.assertEqual(result.label, "Alice")
        self.assertAlmostEqual(result.distance, 0.3)
        self.assertTrue(result.accepted)

    def test_nearest_record_beyond_threshold_is_unknown(self):
        """A strict threshold turns the nearest record into unknown."""
        result = find_best_match(self.query, self.store.all_records(), 0.2)
        self.assertEqual(result.label, UNKNOWN_LABEL)
        self.assertFalse(result.accepted)
        self.assertAlmostEqual(result.distance, 0.3)

    def test_distance_equal_to_threshold_is_accepted(self):
        """The threshold is inclusive."""
        store = InMemoryEnrollmentStore()
        store.enroll("Carol", {}, make_vector(0.5))
        result = find_best_match(make_vector(), store.all_records(), 0.5)
        self.assertEqual(result.distance, 0.5)
        self.assertTrue(result.accepted)
        self.assertEqual(result.label, "Carol")

    def test_tie_goes_to_first_enrolled(self):
        """Records at the same distance resolve in insertion order."""
        store = InMemoryEnrollmentStore()
        store.enroll("First", {}, make_vector(0.0, 0.4))
        store.enroll("Second", {}, make_vector(0.4))
        store.enroll("Third", {}, make_vector(0.0, 0.0, 0.4))
        result = find_best_match(make_vector(), store.all_records())
        self.assertEqual(result.label, "First")

    def test_duplicate_labels_are_separate_candidates(self):
        """A later record under an existing label can still win."""
        self.store.enroll("Bob", {}, make_vector(0.1))
        result = find_best_match(self.query, self.store.all_records())
        self.assertEqual(result.label, "Bob")
        self.assertAlmostEqual(result.distance, 0.1)

    def test_identical_inputs_give_identical_output(self):
        """Matching has no hidden state."""
        query = np.random.default_rng(7).normal(size=4)
        first = find_best_match(query, self.store.all_records())
        second = find_best_match(query, self.store.all_records())
        self.assertEqual(first, second)

    def test_dimension_mismatch_raises(self):
        """Comparing vectors of different lengths is a contract violation."""
        with self.assertRaises(ValueError):
            find_best_match(np.zeros(8), self.store.all_records())

    def test_invalid_threshold_raises(self):
        for threshold in (-0.1, float('nan'), float('inf')):
            with self.assertRaises(ValueError):
                find_best_match(self.query, self.store.all_records(), threshold)

    def test_euclidean_distances_in_gallery_order(self):
        distances = euclidean_distances(self.query, self.store.all_records())
        np.testing.assert_allclose(distances, [0.3, 0.5])

    def test_match_result_string(self):
        self.assertEqual(str(MatchResult("Alice", 0.3, True)), "Alice (0.30)")
        self.assertEqual(str(MatchResult(UNKNOWN_LABEL, math.inf, False)), "unknown (inf)")


class TestIdentityMatcher(unittest.TestCase):
    """Test cases for the threshold-bound matcher."""

    def test_default_threshold(self):
        self.assertEqual(IdentityMatcher().threshold, 0.6)

    def test_match_all_matches_each_query(self):
        store = InMemoryEnrollmentStore()
        store.enroll("Alice", {}, make_vector(1.0))
        store.enroll("Bob", {}, make_vector(0.0, 1.0))

        matcher = IdentityMatcher(0.5)
        results = matcher.match_all(
            [make_vector(0.9), make_vector(0.0, 1.1), make_vector(5.0)],
            store.all_records()
        )
        self.assertEqual([r.label for r in results], ["Alice", "Bob", UNKNOWN_LABEL])
        self.assertEqual([r.accepted for r in results], [True, True, False])


if __name__ == '__main__':
    unittest.main()
