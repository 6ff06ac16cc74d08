import asyncio
import datetime
import logging
from typing import Dict, List, Optional

from fastapi import FastAPI, Header, HTTPException, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from auth import IdentityClient, SessionProvider
from client import ExerciseCatalogClient
from config import configure_logging, load_settings
from db import (
    ActivePlanRepository,
    DocumentStore,
    PlanRepository,
    ProfileRepository,
    WorkoutRepository,
    create_store,
)
from errors import FetchError, NotFound, Unauthenticated
from models import Profile, User, Workout
from planner_service import PlannerService
from stats_service import StatisticsService

logger = logging.getLogger(__name__)


class PlanRequest(BaseModel):
    name: str
    # weekday -> id of a saved workout; missing days are rest days
    days: Dict[str, Optional[str]] = {}


class TrackerAPI:
    """Provides REST endpoints over the workout plan repositories."""

    def __init__(
        self,
        yaml_path: str = "settings.yaml",
        *,
        store: Optional[DocumentStore] = None,
        sessions: Optional[SessionProvider] = None,
        catalog: Optional[ExerciseCatalogClient] = None,
    ) -> None:
        self.settings = load_settings(yaml_path)
        configure_logging(self.settings.log_level)
        self.store = store or create_store(self.settings)
        if sessions is None:
            identity = None
            if self.settings.identity_api_key:
                identity = IdentityClient(self.settings.identity_api_key)
            sessions = SessionProvider(identity)
        self.sessions = sessions
        self.sessions.listen(self._on_session_changed)
        self.catalog = catalog or ExerciseCatalogClient(
            self.settings.catalog_url, self.settings.catalog_page_size
        )
        self.workouts = WorkoutRepository(self.store)
        self.plans = PlanRepository(self.store)
        self.active_plans = ActivePlanRepository(self.store)
        self.profiles = ProfileRepository(self.store)
        self.planner = PlannerService(self.plans, self.workouts, self.active_plans)
        self.statistics = StatisticsService(self.profiles)
        self.app = FastAPI(
            title="Fittrack API",
            description="REST API for workout plans and profiles",
        )
        self._setup_error_handlers()
        self._setup_routes()

    @staticmethod
    def _on_session_changed(user: Optional[User]) -> None:
        if user is None:
            logger.info("No user signed in")
        else:
            logger.info("Signed in as %s", user.uid)

    def _user(self, user_id: Optional[str]) -> Optional[User]:
        if user_id:
            return User(uid=user_id)
        return self.sessions.current_user

    def _setup_error_handlers(self) -> None:
        @self.app.exception_handler(Unauthenticated)
        async def unauthenticated(request: Request, exc: Unauthenticated):
            return JSONResponse({"detail": str(exc)}, status_code=401)

        @self.app.exception_handler(NotFound)
        async def not_found(request: Request, exc: NotFound):
            return JSONResponse({"detail": str(exc)}, status_code=404)

        @self.app.exception_handler(FetchError)
        async def fetch_failed(request: Request, exc: FetchError):
            return JSONResponse({"detail": str(exc)}, status_code=502)

        @self.app.exception_handler(ValueError)
        async def invalid(request: Request, exc: ValueError):
            return JSONResponse({"detail": str(exc)}, status_code=400)

    def _setup_routes(self) -> None:
        @self.app.get(
            "/health",
            summary="Health check",
            description="Verify API and document store connectivity.",
        )
        async def health():
            await self.store.get("health")
            return {"status": "ok"}

        @self.app.post("/workouts")
        async def create_workout(workout: Workout, x_user_id: Optional[str] = Header(None)):
            key = await self.workouts.create(self._user(x_user_id), workout)
            return {"id": key}

        @self.app.get("/workouts")
        async def list_workouts(x_user_id: Optional[str] = Header(None)):
            items = await self.workouts.list(self._user(x_user_id))
            return [w.model_dump(by_alias=True) for w in items]

        @self.app.get("/workouts/{workout_id}")
        async def get_workout(workout_id: str, x_user_id: Optional[str] = Header(None)):
            workout = await self.workouts.get(self._user(x_user_id), workout_id)
            if workout is None:
                raise HTTPException(status_code=404, detail="workout not found")
            return workout.model_dump(by_alias=True)

        @self.app.delete("/workouts/{workout_id}")
        async def delete_workout(workout_id: str, x_user_id: Optional[str] = Header(None)):
            await self.workouts.delete(self._user(x_user_id), workout_id)
            return {"status": "deleted"}

        @self.app.post("/plans")
        async def create_plan(body: PlanRequest, x_user_id: Optional[str] = Header(None)):
            user = self._user(x_user_id)
            saved = {w.id: w for w in await self.workouts.list(user)}
            assignments: Dict[str, Optional[Workout]] = {}
            for day, workout_id in body.days.items():
                if workout_id is None:
                    assignments[day] = None
                    continue
                if workout_id not in saved:
                    raise HTTPException(status_code=400, detail=f"unknown workout: {workout_id}")
                assignments[day] = saved[workout_id]
            plan = self.planner.build_plan(body.name, assignments)
            return {"id": await self.plans.create(user, plan)}

        @self.app.get("/plans")
        async def list_plans(x_user_id: Optional[str] = Header(None)):
            items = await self.plans.list(self._user(x_user_id))
            return [p.model_dump(by_alias=True) for p in items]

        @self.app.get("/plans/{plan_id}")
        async def get_plan(plan_id: str, x_user_id: Optional[str] = Header(None)):
            plan = await self.plans.get(self._user(x_user_id), plan_id)
            if plan is None:
                raise HTTPException(status_code=404, detail="plan not found")
            return plan.model_dump(by_alias=True)

        @self.app.delete("/plans/{plan_id}")
        async def delete_plan(plan_id: str, x_user_id: Optional[str] = Header(None)):
            await self.plans.delete(self._user(x_user_id), plan_id)
            return {"status": "deleted"}

        @self.app.put("/plans/{plan_id}/days/{day_index}")
        async def update_day(
            plan_id: str,
            day_index: int,
            workout: Workout,
            workout_id: Optional[str] = None,
            x_user_id: Optional[str] = Header(None),
        ):
            await self.workouts.update(
                self._user(x_user_id), workout_id, plan_id, day_index, workout
            )
            return {"status": "updated"}

        @self.app.delete("/plans/{plan_id}/days/{day_index}")
        async def clear_day(
            plan_id: str, day_index: int, x_user_id: Optional[str] = Header(None)
        ):
            await self.plans.assign_day(self._user(x_user_id), plan_id, day_index, None)
            return {"status": "rest day"}

        @self.app.put("/active_plan")
        async def activate_plan(plan_id: str, x_user_id: Optional[str] = Header(None)):
            await self.planner.activate(self._user(x_user_id), plan_id)
            return {"status": "activated"}

        @self.app.get("/active_plan")
        async def get_active_plan(x_user_id: Optional[str] = Header(None)):
            user = self._user(x_user_id)
            plan = await self.planner.get_active_plan(user)
            return {
                "id": plan.id if plan else None,
                "plan": plan.model_dump(by_alias=True) if plan else None,
            }

        @self.app.get("/today")
        async def today(date: Optional[str] = None, x_user_id: Optional[str] = Header(None)):
            now = datetime.datetime.fromisoformat(date) if date else None
            result = await self.planner.today(self._user(x_user_id), now)
            if result is None:
                return {"plan_id": None, "slot": None}
            slot = result.slot
            return {
                "plan_id": result.plan.id,
                "slot": slot.model_dump(by_alias=True) if slot else None,
                "weeks_workouts": result.progress.weeks_workouts,
                "workouts_done": result.progress.workouts_done,
                "weekly_goal": result.progress.display,
            }

        @self.app.get("/profile")
        async def get_profile(x_user_id: Optional[str] = Header(None)):
            profile = await self.profiles.get(self._user(x_user_id))
            return profile.model_dump(by_alias=True) if profile else None

        @self.app.put("/profile")
        async def update_profile(profile: Profile, x_user_id: Optional[str] = Header(None)):
            if "units" not in profile.model_fields_set:
                profile = profile.model_copy(update={"units": self.settings.units})
            await self.profiles.update(self._user(x_user_id), profile)
            return {"status": "updated"}

        @self.app.get("/profile/metrics")
        async def profile_metrics(x_user_id: Optional[str] = Header(None)):
            return await self.statistics.metrics_for(self._user(x_user_id))

        @self.app.get("/catalog/exercises")
        def catalog_exercises(
            page: int = 1, search: Optional[str] = None, body_part: Optional[str] = None
        ):
            if body_part:
                result = self.catalog.list_by_body_part(body_part, page)
            else:
                result = self.catalog.list_exercises(page, search=search)
            return {
                "exercises": result.exercises,
                "total_pages": result.total_pages,
                "page": result.page,
            }

        @self.app.get("/catalog/bodyparts")
        def catalog_body_parts() -> List[str]:
            return self.catalog.list_body_parts()

        @self.app.websocket("/ws/plans")
        async def plans_socket(ws: WebSocket, x_user_id: Optional[str] = Header(None)):
            await ws.accept()
            try:
                watch = await self.plans.watch(self._user(x_user_id))
            except (Unauthenticated, ValueError) as e:
                await ws.close(code=1008, reason=str(e))
                return

            async def pump():
                async for plans in watch:
                    await ws.send_json([p.model_dump(by_alias=True) for p in plans])

            sender = asyncio.create_task(pump())
            try:
                while True:
                    await ws.receive_text()
            except WebSocketDisconnect:
                pass
            finally:
                watch.cancel()
                sender.cancel()
                results = await asyncio.gather(sender, return_exceptions=True)
                for result in results:
                    if isinstance(result, Exception):
                        logger.error("Plan stream for %s failed: %s", x_user_id, result)
