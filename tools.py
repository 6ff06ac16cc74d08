import math
from typing import List, Union


class MathTools:
    """Provides the body metrics shown on the profile."""

    ACTIVITY_MULTIPLIERS = {
        "Sedentary": 1.2,
        "Light": 1.375,
        "Moderate": 1.55,
        "Active": 1.725,
        "Very active": 1.9,
    }
    DEFAULT_MULTIPLIER = 1.55

    @staticmethod
    def round_half_up(value: float) -> int:
        """Round to the nearest integer with halves going up."""
        return int(math.floor(value + 0.5))

    @staticmethod
    def bmi(weight_kg: float, height_cm: float) -> float:
        """Return body mass index rounded to one decimal."""
        if height_cm <= 0:
            raise ValueError("height must be positive")
        height_m = height_cm / 100
        return round(weight_kg / (height_m * height_m), 1)

    @staticmethod
    def bmr(weight_kg: float, height_cm: float, age: int, gender: str) -> float:
        """Mifflin-St Jeor basal metabolic rate."""
        base = 10 * weight_kg + 6.25 * height_cm - 5 * age
        return base + 5 if gender == "Male" else base - 161

    @classmethod
    def daily_calories(
        cls, weight_kg: float, height_cm: float, age: int, gender: str, activity_level: str
    ) -> int:
        multiplier = cls.ACTIVITY_MULTIPLIERS.get(activity_level, cls.DEFAULT_MULTIPLIER)
        return cls.round_half_up(cls.bmr(weight_kg, height_cm, age, gender) * multiplier)

    @staticmethod
    def percent(part: int, whole: int) -> float:
        """``part / whole`` as a rounded percentage, ``nan`` when ``whole`` is zero."""
        if whole == 0:
            return math.nan
        return MathTools.round_half_up(part / whole * 100)


class UnitConverter:
    """Utility for converting metric body measurements for display."""

    KG_TO_LB = 2.20462
    CM_PER_INCH = 2.54

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * UnitConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / UnitConverter.KG_TO_LB, 2)

    @staticmethod
    def cm_to_feet_inches(cm: float) -> tuple[int, int]:
        total_inches = cm / UnitConverter.CM_PER_INCH
        feet = int(total_inches // 12)
        inches = MathTools.round_half_up(total_inches % 12)
        return feet, inches

    @staticmethod
    def format_height(cm: float, units: str = "metric") -> str:
        if units == "metric":
            return f"{cm:g} cm"
        feet, inches = UnitConverter.cm_to_feet_inches(cm)
        return f"{feet}'{inches}\""

    @staticmethod
    def format_weight(kg: float, units: str = "metric") -> str:
        if units == "metric":
            return f"{kg:g} kg"
        return f"{MathTools.round_half_up(kg * UnitConverter.KG_TO_LB)} lbs"


def page_window(current: int, total: int) -> List[Union[int, str]]:
    """Page numbers to show around ``current``; ``"..."`` marks skipped pages."""
    if total <= 1:
        return []
    if total <= 5:
        return list(range(1, total + 1))
    pages: List[Union[int, str]] = [1]
    start = max(2, current - 1)
    end = min(total - 1, current + 1)
    if start > 2:
        pages.append("...")
    pages.extend(range(start, end + 1))
    if end < total - 1:
        pages.append("...")
    pages.append(total)
    return pages
