from typing import Optional

from db import ProfileRepository
from models import Profile, User
from tools import MathTools, UnitConverter


class StatisticsService:
    """Derives body metrics from the stored profile."""

    def __init__(self, profile_repo: ProfileRepository) -> None:
        self.profiles = profile_repo

    @staticmethod
    def profile_metrics(profile: Profile) -> dict:
        bmi = MathTools.bmi(profile.weight, profile.height) if profile.height > 0 else None
        return {
            "bmi": bmi,
            "daily_calories": MathTools.daily_calories(
                profile.weight,
                profile.height,
                profile.age,
                profile.gender,
                profile.activity_level,
            ),
            "height": UnitConverter.format_height(profile.height, profile.units),
            "weight": UnitConverter.format_weight(profile.weight, profile.units),
            "body_fat": f"{profile.body_fat:g}%",
        }

    async def metrics_for(self, user: Optional[User]) -> Optional[dict]:
        profile = await self.profiles.get(user)
        if profile is None:
            return None
        return self.profile_metrics(profile)
