import unittest
from dataclasses import dataclass

from charitydraw.draw.analyzer import (
    SCORE_RANGE_PRESETS,
    analyze,
    analyze_participants,
    get_preset,
    rank_by_popularity,
)
from charitydraw.errors import NoValidScores


class AnalyzeTests(unittest.TestCase):
    def test_least_and_most_popular_selection(self):
        result = analyze([1, 1, 1, 2, 2, 3, 4, 5, 6, 7], 1, 45)

        self.assertEqual(result.frequency, {1: 3, 2: 2, 3: 1, 4: 1, 5: 1, 6: 1, 7: 1})
        self.assertEqual(result.least_popular, (3, 4, 5))
        self.assertEqual(result.most_popular, (1, 2))
        self.assertEqual(result.winning_numbers, (1, 2, 3, 4, 5))
        self.assertEqual(result.total_entries, 10)
        self.assertTrue(result.is_complete)

    def test_scores_outside_range_are_ignored(self):
        scores = [2, 2, 50, 10, 11, 12, 13, 14, 14, 0]
        result = analyze(scores, 10, 45)

        self.assertEqual(result.total_entries, 6)
        self.assertNotIn(2, result.frequency)
        self.assertTrue(set(result.winning_numbers) <= {10, 11, 12, 13, 14})

    def test_winning_numbers_are_sorted_unique_subset(self):
        scores = [36, 18, 22, 22, 40, 18, 31, 27, 27, 27, 19, 44, 44, 44, 44]
        result = analyze(scores, 15, 45)

        self.assertEqual(list(result.winning_numbers), sorted(set(result.winning_numbers)))
        self.assertEqual(len(result.winning_numbers), 5)
        self.assertTrue(set(result.winning_numbers) <= set(scores))

    def test_same_input_gives_same_output(self):
        scores = [5, 9, 9, 12, 33, 33, 33, 41, 7, 7]
        self.assertEqual(analyze(scores), analyze(list(scores)))

    def test_no_valid_scores_raises(self):
        with self.assertRaises(NoValidScores) as ctx:
            analyze([1, 2, 3], 10, 20)
        self.assertEqual((ctx.exception.range_min, ctx.exception.range_max), (10, 20))

        with self.assertRaises(NoValidScores):
            analyze([], 1, 45)

    def test_inverted_range_is_rejected(self):
        with self.assertRaises(ValueError):
            analyze([5], 30, 10)

    def test_fewer_than_five_distinct_values_degrades(self):
        result = analyze([10, 10, 20], 1, 45)
        self.assertEqual(result.winning_numbers, (10, 20))
        self.assertFalse(result.is_complete)

        result = analyze([1, 2, 2, 3, 3, 3, 4, 4, 4, 4], 1, 45)
        self.assertEqual(result.winning_numbers, (1, 2, 3, 4))
        self.assertEqual(result.least_popular, (1, 2, 3))
        self.assertEqual(result.most_popular, (4,))

    def test_rank_breaks_ties_by_value(self):
        self.assertEqual(rank_by_popularity({9: 1, 3: 1, 5: 2, 1: 2}), [3, 9, 1, 5])


class PresetAndParticipantTests(unittest.TestCase):
    def test_presets(self):
        self.assertEqual(len(SCORE_RANGE_PRESETS), 5)
        preset = get_preset("Typical (10-40)")
        self.assertEqual((preset.range_min, preset.range_max), (10, 40))
        with self.assertRaises(KeyError):
            get_preset("Everything")

    def test_analyze_participants_flattens_scores(self):
        @dataclass
        class Entry:
            scores: tuple

        entries = [Entry((1, 1, 2)), Entry((1, 2, 3)), Entry(()), Entry((4, 5, 6, 7))]
        result = analyze_participants(entries, 1, 45)
        self.assertEqual(result.total_entries, 10)
        self.assertEqual(result.winning_numbers, (1, 2, 3, 4, 5))


if __name__ == "__main__":
    unittest.main()
