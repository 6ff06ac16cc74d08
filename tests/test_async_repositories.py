import os
import sys
import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import (
    ActivePlanRepository,
    MemoryDocumentStore,
    PlanRepository,
    ProfileRepository,
    SqliteDocumentStore,
    WorkoutRepository,
)
from errors import FetchError, NotFound, Unauthenticated
from models import WEEKDAYS, DaySlot, ExerciseRef, Plan, Profile, User, Workout
from planner_service import PlannerService

USER = User(uid="u1")


class FailingStore(MemoryDocumentStore):
    async def _read(self, parts):
        raise FetchError("store offline")


def bench_workout(name="Push"):
    return Workout(
        name=name,
        exercises=[
            ExerciseRef(
                exercise_id="EIeI8Vf",
                name="barbell bench press",
                body_parts=["chest"],
                equipments=["barbell"],
                sets=4,
                reps=8,
                rest_time=90,
            )
        ],
    )


def week(assign=None):
    assign = assign or {}
    return Plan(
        name="Week",
        days=[
            DaySlot.training(day, assign[day]) if day in assign else DaySlot.rest(day)
            for day in WEEKDAYS
        ],
    )


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return MemoryDocumentStore()
    return SqliteDocumentStore(str(tmp_path / "repo.db"))


@pytest.mark.asyncio
async def test_workout_create_and_list(store):
    repo = WorkoutRepository(store)
    assert await repo.list(USER) == []
    workout = bench_workout()
    wid = await repo.create(USER, workout)
    assert isinstance(wid, str) and wid
    rows = await repo.list(USER)
    assert len(rows) == 1
    assert rows[0].id == wid
    assert rows[0].name == workout.name
    assert rows[0].exercises == workout.exercises
    assert await store.get(f"user/u1/workouts/{wid}/schemaVersion") == 1
    assert await repo.list(User(uid="someone-else")) == []
    assert store.listener_count() == 0


@pytest.mark.asyncio
async def test_workout_requires_user(store):
    repo = WorkoutRepository(store)
    with pytest.raises(Unauthenticated):
        await repo.create(None, bench_workout())
    with pytest.raises(Unauthenticated):
        await repo.list(User(uid=""))


@pytest.mark.asyncio
async def test_workout_update_rewrites_record_and_day(store):
    workouts = WorkoutRepository(store)
    plans = PlanRepository(store)
    wid = await workouts.create(USER, bench_workout())
    pid = await plans.create(USER, week())
    renamed = bench_workout("Heavy Push")
    await workouts.update(USER, wid, pid, 2, renamed)
    assert (await workouts.get(USER, wid)).name == "Heavy Push"
    plan = await plans.get(USER, pid)
    wednesday = plan.days[2]
    assert wednesday.day == "Wednesday"
    assert wednesday.rest_day is False
    assert wednesday.workout.id == wid
    assert wednesday.workout.name == "Heavy Push"
    assert [d.rest_day for d in plan.days].count(True) == 6


@pytest.mark.asyncio
async def test_workout_update_without_id_only_touches_plan(store):
    workouts = WorkoutRepository(store)
    plans = PlanRepository(store)
    pid = await plans.create(USER, week())
    await workouts.update(USER, None, pid, 0, bench_workout("Draft"))
    assert await workouts.list(USER) == []
    monday = (await plans.get(USER, pid)).days[0]
    assert monday.workout.name == "Draft"
    assert monday.workout.id is None
    with pytest.raises(ValueError):
        await workouts.update(USER, None, pid, 7, bench_workout())


@pytest.mark.asyncio
async def test_workout_delete_does_not_cascade(store):
    workouts = WorkoutRepository(store)
    plans = PlanRepository(store)
    wid = await workouts.create(USER, bench_workout())
    saved = await workouts.get(USER, wid)
    pid = await plans.create(USER, week({"Monday": saved}))
    await workouts.delete(USER, wid)
    assert await workouts.get(USER, wid) is None
    monday = (await plans.get(USER, pid)).days[0]
    assert monday.workout.id == wid


@pytest.mark.asyncio
async def test_plan_crud(store):
    plans = PlanRepository(store)
    assert await plans.list(USER) == []
    first = await plans.create(USER, week())
    second = await plans.create(USER, week({"Friday": bench_workout()}))
    rows = await plans.list(USER)
    assert [p.id for p in rows] == [first, second]
    for plan in rows:
        assert [d.day for d in plan.days] == list(WEEKDAYS)
        assert all(d.rest_day == (d.workout is None) for d in plan.days)
    await plans.assign_day(USER, second, 4, None)
    assert (await plans.get(USER, second)).days[4].rest_day is True
    await plans.delete(USER, first)
    assert await plans.get(USER, first) is None
    assert [p.id for p in await plans.list(USER)] == [second]


@pytest.mark.asyncio
async def test_plan_create_rejects_partial_week():
    plans = PlanRepository(MemoryDocumentStore())
    short = Plan(name="Short", days=[DaySlot.rest("Monday")])
    with pytest.raises(ValueError):
        await plans.create(USER, short)
    shuffled = week()
    shuffled.days.reverse()
    with pytest.raises(ValueError):
        await plans.create(USER, shuffled)


@pytest.mark.asyncio
async def test_plan_watch_sees_new_plans():
    store = MemoryDocumentStore()
    plans = PlanRepository(store)
    watch = await plans.watch(USER)
    assert await watch.__anext__() == []
    pid = await plans.create(USER, week())
    latest = await watch.__anext__()
    assert [p.id for p in latest] == [pid]
    watch.cancel()
    assert store.listener_count() == 0


@pytest.mark.asyncio
async def test_profile_get_and_overwrite(store):
    profiles = ProfileRepository(store)
    assert await profiles.get(USER) is None
    await profiles.update(USER, Profile(name="Alex", age=28, height=175, weight=70, body_fat=18))
    await profiles.update(USER, Profile(name="Alex", units="imperial"))
    profile = await profiles.get(USER)
    assert profile.units == "imperial"
    assert profile.age == 0
    assert profile.body_fat == 0


@pytest.mark.asyncio
async def test_store_failure_raises_fetch_error():
    store = FailingStore()
    with pytest.raises(FetchError):
        await WorkoutRepository(store).list(USER)
    with pytest.raises(FetchError):
        await ProfileRepository(store).get(USER)
    assert store.listener_count() == 0


@pytest.mark.asyncio
async def test_slot_writes_to_missing_plan_are_rejected(store):
    workouts = WorkoutRepository(store)
    plans = PlanRepository(store)
    with pytest.raises(NotFound):
        await workouts.update(USER, None, "no-such-plan", 3, bench_workout())
    with pytest.raises(NotFound):
        await plans.assign_day(USER, "no-such-plan", 3, None)
    pid = await plans.create(USER, week())
    await plans.delete(USER, pid)
    wid = await workouts.create(USER, bench_workout())
    with pytest.raises(NotFound):
        await workouts.update(USER, wid, pid, 0, bench_workout("Renamed"))
    # nothing from the rejected patch was written
    assert (await workouts.get(USER, wid)).name == "Push"
    assert await store.get("user/u1/workoutPlans") is None
    assert await plans.list(USER) == []


@pytest.mark.asyncio
async def test_malformed_plan_documents_are_skipped(store):
    plans = PlanRepository(store)
    workouts = WorkoutRepository(store)
    good = await plans.create(USER, week())
    await store.set("user/u1/workoutPlans/broken", {"days": {"3": {"day": "Thursday"}}})
    await store.set("user/u1/workouts/junk", "not a workout")
    assert [p.id for p in await plans.list(USER)] == [good]
    assert await plans.get(USER, "broken") is None
    assert await workouts.list(USER) == []
    active = ActivePlanRepository(store)
    await active.set(USER, "broken")
    planner = PlannerService(plans, workouts, active)
    assert await planner.get_active_plan(USER) is None


@pytest.mark.asyncio
async def test_ids_are_validated_before_writing(store):
    workouts = WorkoutRepository(store)
    plans = PlanRepository(store)
    first = await workouts.create(USER, bench_workout())
    second = await workouts.create(USER, bench_workout("Pull"))
    pid = await plans.create(USER, week())
    for bad in ("", " ", "a/b", "../x", "x.y", "#1"):
        with pytest.raises(ValueError):
            await workouts.delete(USER, bad)
        with pytest.raises(ValueError):
            await plans.delete(USER, bad)
        with pytest.raises(ValueError):
            await workouts.get(USER, bad)
        with pytest.raises(ValueError):
            await ActivePlanRepository(store).set(USER, bad)
    with pytest.raises(ValueError):
        await workouts.list(User(uid="u1/../u2"))
    assert [w.id for w in await workouts.list(USER)] == [first, second]
    assert [p.id for p in await plans.list(USER)] == [pid]
