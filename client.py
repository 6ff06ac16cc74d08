import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

import requests

from errors import FetchError
from models import ExerciseRef

logger = logging.getLogger(__name__)


@dataclass
class ExercisePage:
    exercises: List[dict] = field(default_factory=list)
    total_pages: int = 0
    page: int = 1


class ExerciseCatalogClient:
    """Simple REST client for the public exercise catalog."""

    def __init__(
        self,
        base_url: str = "https://exercisedb-api.vercel.app/api/v1",
        page_size: int = 10,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.timeout = timeout

    def _get(self, path: str, **params) -> dict:
        try:
            resp = requests.get(
                f"{self.base_url}{path}",
                params={k: v for k, v in params.items() if v is not None},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error("Catalog request %s failed: %s", path, e)
            raise FetchError(f"catalog request {path} failed: {e}") from e
        return resp.json()

    def _page(self, payload: dict, page: int) -> ExercisePage:
        data = payload.get("data") or {}
        return ExercisePage(
            exercises=list(data.get("exercises") or []),
            total_pages=int(data.get("totalPages") or 0),
            page=page,
        )

    def _window(self, page: int, page_size: Optional[int]) -> dict:
        if page < 1:
            raise ValueError("page must be at least 1")
        size = page_size or self.page_size
        return {"offset": (page - 1) * size, "limit": size}

    def list_exercises(
        self, page: int = 1, page_size: Optional[int] = None, search: Optional[str] = None
    ) -> ExercisePage:
        payload = self._get("/exercises", search=search, **self._window(page, page_size))
        return self._page(payload, page)

    def list_by_body_part(
        self, name: str, page: int = 1, page_size: Optional[int] = None
    ) -> ExercisePage:
        payload = self._get(f"/bodyparts/{name}/exercises", **self._window(page, page_size))
        return self._page(payload, page)

    def autocomplete(self, query: str) -> List[dict]:
        """Return name suggestions; queries shorter than two characters return nothing."""
        if len(query.strip()) < 2:
            return []
        return list(self._get("/exercises/autocomplete", search=query.strip()).get("data") or [])

    def get_by_id(self, exercise_id: str) -> Optional[dict]:
        return self._get(f"/exercises/{exercise_id}").get("data")

    def list_body_parts(self) -> List[str]:
        return [item["name"] for item in self._get("/bodyparts").get("data") or []]


def to_exercise_ref(
    exercise: dict,
    sets: Union[int, str] = "",
    reps: Union[int, str] = "",
    rest_time: Union[int, str] = "",
) -> ExerciseRef:
    """Snapshot a catalog exercise with the user's prescription."""
    return ExerciseRef(
        exercise_id=str(exercise["exerciseId"]),
        name=exercise["name"],
        body_parts=list(exercise.get("bodyParts") or []),
        equipments=list(exercise.get("equipments") or []),
        sets=sets,
        reps=reps,
        rest_time=rest_time,
    )
