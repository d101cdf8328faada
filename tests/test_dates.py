# -*- coding: utf-8 -*-

from __future__ import annotations

import unittest
from datetime import date, datetime

from mealtracker.dates import format_date, is_valid_date, parse_date, week_dates, week_end, week_start


class TestDates(unittest.TestCase):
    def test_week_starts_on_monday(self) -> None:
        self.assertEqual(week_start("2024-03-06"), date(2024, 3, 4))
        self.assertEqual(week_start("2024-03-04"), date(2024, 3, 4))
        # Sunday belongs to the week that started the previous Monday.
        self.assertEqual(week_start("2024-03-10"), date(2024, 3, 4))
        self.assertEqual(week_end("2024-03-10"), date(2024, 3, 10))

    def test_week_dates_cross_month_boundary(self) -> None:
        self.assertEqual(
            week_dates("2024-02-29"),
            ["2024-02-26", "2024-02-27", "2024-02-28", "2024-02-29", "2024-03-01", "2024-03-02", "2024-03-03"],
        )

    def test_format_and_parse(self) -> None:
        self.assertEqual(format_date(datetime(2024, 1, 5, 23, 59)), "2024-01-05")
        self.assertEqual(parse_date(" 2024-01-05 "), date(2024, 1, 5))
        with self.assertRaises(ValueError):
            parse_date("05/01/2024")

    def test_is_valid_date(self) -> None:
        self.assertTrue(is_valid_date("2024-02-29"))
        self.assertFalse(is_valid_date("2023-02-29"))
        self.assertFalse(is_valid_date("2024-3-1"))
        self.assertFalse(is_valid_date(""))


if __name__ == "__main__":
    unittest.main()
