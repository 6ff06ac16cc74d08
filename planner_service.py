from __future__ import annotations

import datetime
import logging
import math
from dataclasses import dataclass
from typing import Dict, Optional

from db import ActivePlanRepository, PlanRepository, WorkoutRepository, weekday_for_index
from errors import NotFound
from models import SUNDAY_FIRST, WEEKDAYS, DaySlot, Plan, User, Workout
from tools import MathTools

logger = logging.getLogger(__name__)


@dataclass
class WeeklyProgress:
    weeks_workouts: int
    workouts_done: int
    percent: float

    @property
    def display(self) -> str:
        if math.isnan(self.percent):
            return "NaN%"
        return f"{self.percent:.0f}%"


@dataclass
class TodayWorkout:
    plan: Plan
    slot: Optional[DaySlot]
    progress: WeeklyProgress


class PlannerService:
    """Resolves the active plan and today's workout."""

    def __init__(
        self,
        plan_repo: PlanRepository,
        workout_repo: WorkoutRepository,
        active_repo: ActivePlanRepository,
    ) -> None:
        self.plans = plan_repo
        self.workouts = workout_repo
        self.active = active_repo

    async def activate(self, user: Optional[User], plan_id: str) -> None:
        """Make ``plan_id`` the active plan, replacing any previous one."""
        await self.active.set(user, plan_id)

    async def get_active_plan_id(self, user: Optional[User]) -> Optional[str]:
        return await self.active.fetch(user)

    async def get_active_plan(self, user: Optional[User]) -> Optional[Plan]:
        plan_id = await self.get_active_plan_id(user)
        if plan_id is None:
            return None
        plan = await self.plans.get(user, plan_id)
        if plan is None:
            logger.info("Active plan %s no longer exists", plan_id)
        return plan

    @staticmethod
    def resolve_today(plan: Plan, now: datetime.datetime) -> Optional[DaySlot]:
        """Return the slot for ``now``'s weekday, or ``None`` if the plan lacks it."""
        return plan.slot(WEEKDAYS[now.weekday()])

    @staticmethod
    def weekly_progress(plan: Plan, now: datetime.datetime) -> WeeklyProgress:
        """Weekly goal figures as shown on the dashboard.

        ``weeks_workouts`` counts rest-day slots and ``workouts_done`` counts
        slots earlier in a Sunday-first week than today, whatever they hold.
        """
        today_index = SUNDAY_FIRST.index(WEEKDAYS[now.weekday()])
        weeks_workouts = sum(1 for slot in plan.days if slot.rest_day)
        workouts_done = sum(
            1
            for slot in plan.days
            if slot.day in SUNDAY_FIRST and SUNDAY_FIRST.index(slot.day) < today_index
        )
        return WeeklyProgress(
            weeks_workouts,
            workouts_done,
            MathTools.percent(workouts_done, weeks_workouts),
        )

    async def today(
        self, user: Optional[User], now: Optional[datetime.datetime] = None
    ) -> Optional[TodayWorkout]:
        plan = await self.get_active_plan(user)
        if plan is None:
            return None
        now = now or datetime.datetime.now()
        return TodayWorkout(plan, self.resolve_today(plan, now), self.weekly_progress(plan, now))

    @staticmethod
    def build_plan(name: str, assignments: Dict[str, Optional[Workout]]) -> Plan:
        """Create a week from ``{weekday: workout}``; missing days are rest days."""
        unknown = set(assignments) - set(WEEKDAYS)
        if unknown:
            raise ValueError(f"unknown weekdays: {', '.join(sorted(unknown))}")
        days = []
        for day in WEEKDAYS:
            workout = assignments.get(day)
            days.append(DaySlot.rest(day) if workout is None else DaySlot.training(day, workout))
        return Plan(name=name, days=days)

    async def save_workout_to_day(
        self, user: Optional[User], plan_id: str, day_index: int, workout: Workout
    ) -> str:
        """Save a new workout and assign it to one day of a plan."""
        weekday_for_index(day_index)
        if await self.plans.get(user, plan_id) is None:
            raise NotFound(f"plan not found: {plan_id}")
        workout_id = await self.workouts.create(user, workout)
        saved = await self.workouts.get(user, workout_id)
        if saved is None:
            raise NotFound(f"workout not found: {workout_id}")
        await self.workouts.update(user, None, plan_id, day_index, saved)
        return workout_id
