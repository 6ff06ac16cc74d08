import asyncio
import sys

from models import ExerciseRef, Profile, User, Workout
from rest_api import TrackerAPI


async def seed(api: TrackerAPI, user: User) -> None:
    if await api.workouts.list(user):
        print("Store already contains workouts")
        return

    push = Workout(
        name="Push",
        exercises=[
            ExerciseRef(exercise_id="EIeI8Vf", name="barbell bench press", body_parts=["chest"],
                        equipments=["barbell"], sets=4, reps=8, rest_time=90),
            ExerciseRef(exercise_id="ztAa1RK", name="dumbbell shoulder press", body_parts=["shoulders"],
                        equipments=["dumbbell"], sets=3, reps=10, rest_time=60),
        ],
    )
    pull = Workout(
        name="Pull",
        exercises=[
            ExerciseRef(exercise_id="lBDjFxJ", name="pull-up", body_parts=["back"],
                        equipments=["body weight"], sets=4, reps=6, rest_time=90),
        ],
    )
    legs = Workout(
        name="Legs",
        exercises=[
            ExerciseRef(exercise_id="qXTaZnJ", name="barbell full squat", body_parts=["upper legs"],
                        equipments=["barbell"], sets=5, reps=5, rest_time=120),
        ],
    )
    saved = {}
    for workout in (push, pull, legs):
        key = await api.workouts.create(user, workout)
        saved[workout.name] = workout.model_copy(update={"id": key})

    plan = api.planner.build_plan(
        "Push Pull Legs",
        {"Monday": saved["Push"], "Wednesday": saved["Pull"], "Friday": saved["Legs"]},
    )
    plan_id = await api.plans.create(user, plan)
    await api.planner.activate(user, plan_id)
    await api.profiles.update(
        user, Profile(name="Alex Johnson", age=28, height=175, weight=70, body_fat=18, goal="Build muscle")
    )
    print("Seed data inserted")


if __name__ == "__main__":
    uid = sys.argv[1] if len(sys.argv) > 1 else "demo"
    asyncio.run(seed(TrackerAPI(), User(uid=uid)))
