import math
import os
import sys
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from models import Profile
from stats_service import StatisticsService
from tools import MathTools, UnitConverter, page_window


class MathToolsTest(unittest.TestCase):
    def test_bmi(self) -> None:
        self.assertEqual(MathTools.bmi(70, 175), 22.9)
        with self.assertRaises(ValueError):
            MathTools.bmi(70, 0)

    def test_daily_calories(self) -> None:
        # 10*70 + 6.25*175 - 5*28 + 5 = 1658.75, times 1.55
        self.assertEqual(MathTools.daily_calories(70, 175, 28, "Male", "Moderate"), 2571)
        self.assertEqual(MathTools.daily_calories(60, 165, 30, "Female", "Sedentary"), 1584)
        self.assertEqual(
            MathTools.daily_calories(70, 175, 28, "Male", "Unknown"),
            MathTools.daily_calories(70, 175, 28, "Male", "Moderate"),
        )

    def test_percent(self) -> None:
        self.assertEqual(MathTools.percent(1, 8), 13)
        self.assertEqual(MathTools.percent(3, 4), 75)
        self.assertTrue(math.isnan(MathTools.percent(0, 0)))
        self.assertTrue(math.isnan(MathTools.percent(2, 0)))


class UnitConverterTest(unittest.TestCase):
    def test_weight(self) -> None:
        self.assertEqual(UnitConverter.kg_to_lb(100), 220.46)
        self.assertEqual(UnitConverter.lb_to_kg(220.46), 100.0)
        self.assertEqual(UnitConverter.format_weight(70), "70 kg")
        self.assertEqual(UnitConverter.format_weight(70, "imperial"), "154 lbs")

    def test_height(self) -> None:
        self.assertEqual(UnitConverter.format_height(175), "175 cm")
        self.assertEqual(UnitConverter.format_height(175, "imperial"), "5'9\"")


class PageWindowTest(unittest.TestCase):
    def test_small_totals(self) -> None:
        self.assertEqual(page_window(1, 1), [])
        self.assertEqual(page_window(2, 4), [1, 2, 3, 4])

    def test_window_with_gaps(self) -> None:
        self.assertEqual(page_window(1, 10), [1, 2, "...", 10])
        self.assertEqual(page_window(5, 10), [1, "...", 4, 5, 6, "...", 10])
        self.assertEqual(page_window(10, 10), [1, "...", 9, 10])


class StatisticsServiceTest(unittest.TestCase):
    def test_profile_metrics(self) -> None:
        profile = Profile(
            name="Alex", age=28, gender="Male", height=175, weight=70, body_fat=18,
            activity_level="Moderate", units="imperial",
        )
        metrics = StatisticsService.profile_metrics(profile)
        self.assertEqual(metrics["bmi"], 22.9)
        self.assertEqual(metrics["daily_calories"], 2571)
        self.assertEqual(metrics["height"], "5'9\"")
        self.assertEqual(metrics["weight"], "154 lbs")
        self.assertEqual(metrics["body_fat"], "18%")

    def test_missing_height(self) -> None:
        self.assertIsNone(StatisticsService.profile_metrics(Profile())["bmi"])


if __name__ == "__main__":
    unittest.main()
