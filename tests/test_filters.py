import random
import unittest

from lib.meditation.filters import (
    filter_by_duration,
    filter_by_name_prefix,
    pick_episode,
    random_offset,
)
from lib.meditation.models import Episode, SearchQuery, minutes_to_ms


def _ep(ep_id: str, name: str, duration_ms: int) -> Episode:
    return Episode(id=ep_id, name=name, duration_ms=duration_ms)


class DurationFilterTests(unittest.TestCase):
    def test_tolerance_is_inclusive_in_both_directions(self):
        episodes = [
            _ep("a", "Meditation: A", 9 * 60000),
            _ep("b", "Meditation: B", 10 * 60000 + 90000),
            _ep("c", "Meditation: C", 12 * 60000),
            _ep("d", "Meditation: D", 8 * 60000),
            _ep("e", "Meditation: E", 12 * 60000 + 1),
        ]
        kept = filter_by_duration(episodes, minutes_to_ms(10))
        self.assertEqual([ep.id for ep in kept], ["a", "b", "c", "d"])

    def test_every_kept_episode_is_within_two_minutes(self):
        episodes = [_ep(str(i), f"Meditation: {i}", i * 30000) for i in range(0, 80)]
        for minutes in range(5, 31):
            target = minutes * 60000
            for ep in filter_by_duration(episodes, target):
                self.assertLessEqual(abs(ep.duration_ms - target), 120000)


class NamePrefixTests(unittest.TestCase):
    def test_keeps_only_meditation_prefix(self):
        episodes = [
            _ep("a", "Meditation: Letting Go", 600000),
            _ep("b", "Talk: Meditation and Fear", 600000),
            _ep("c", "meditation: lowercase", 600000),
            _ep("d", "Meditation:Tight", 600000),
        ]
        self.assertEqual([ep.id for ep in filter_by_name_prefix(episodes)], ["a", "d"])


class OffsetTests(unittest.TestCase):
    def test_small_total_collapses_to_zero(self):
        self.assertEqual(random_offset(40), 0)
        self.assertEqual(random_offset(50), 0)
        self.assertEqual(random_offset(0), 0)

    def test_offset_stays_inside_window(self):
        rng = random.Random(7)
        for _ in range(200):
            self.assertLess(random_offset(120, rng=rng), 70)

    def test_offset_capped_by_search_ceiling(self):
        rng = random.Random(7)
        for _ in range(200):
            self.assertLess(random_offset(25000, rng=rng), 950)


class PickTests(unittest.TestCase):
    def test_empty_candidates(self):
        self.assertIsNone(pick_episode([]))

    def test_pick_returns_a_candidate(self):
        candidates = [_ep("a", "Meditation: A", 1), _ep("b", "Meditation: B", 2)]
        self.assertIn(pick_episode(candidates, random.Random(1)), candidates)


class SearchQueryTests(unittest.TestCase):
    def test_from_minutes(self):
        query = SearchQuery.from_minutes(10, "Meditation:")
        self.assertEqual(query.target_duration_ms, 600000)

    def test_rejects_out_of_range_minutes(self):
        with self.assertRaises(ValueError):
            SearchQuery.from_minutes(4, "Meditation:")
        with self.assertRaises(ValueError):
            SearchQuery.from_minutes(31, "Meditation:")


class EpisodeFromApiTests(unittest.TestCase):
    def test_skips_null_and_partial_items(self):
        self.assertIsNone(Episode.from_api(None))
        self.assertIsNone(Episode.from_api({"id": "x", "name": "Meditation: X"}))

    def test_embed_url(self):
        ep = Episode.from_api({"id": "4rOoJ6Egrf8K2IrywzwOMk", "name": "Meditation: X", "duration_ms": 600000})
        self.assertEqual(ep.embed_url, "https://open.spotify.com/embed/episode/4rOoJ6Egrf8K2IrywzwOMk")


if __name__ == "__main__":
    unittest.main()
