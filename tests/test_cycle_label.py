import unittest
from datetime import date

from charitydraw.draw.cycle_label import (
    canonical_month_year,
    format_month_year,
    is_future_cycle,
    next_month_year,
    parse_month_year,
)


class CycleLabelTests(unittest.TestCase):
    def test_parse_to_first_of_month(self):
        self.assertEqual(parse_month_year("January 2025"), date(2025, 1, 1))
        self.assertEqual(parse_month_year("  march   2026 "), date(2026, 3, 1))

    def test_invalid_labels(self):
        for label in ("", "Jan 2025", "2025-01", "Smarch 2025"):
            with self.subTest(label=label):
                with self.assertRaises(ValueError):
                    parse_month_year(label)

    def test_format_and_canonical(self):
        self.assertEqual(format_month_year(date(2025, 7, 19)), "July 2025")
        self.assertEqual(canonical_month_year("july 2025"), "July 2025")

    def test_next_month_wraps_year(self):
        self.assertEqual(next_month_year("December 2025"), "January 2026")
        self.assertEqual(next_month_year("February 2024"), "March 2024")

    def test_future_cycle_is_relative_to_today(self):
        today = date(2025, 5, 31)
        self.assertFalse(is_future_cycle("May 2025", today))
        self.assertFalse(is_future_cycle("April 2025", today))
        self.assertTrue(is_future_cycle("June 2025", today))


if __name__ == "__main__":
    unittest.main()
