from __future__ import annotations

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SCHEMA_VERSION = 1

WEEKDAYS = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

# Sunday-first ordering used for "days already passed this week".
SUNDAY_FIRST = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)


class Document(BaseModel):
    """Base for models stored in the document tree using camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)


class User(BaseModel):
    uid: str
    email: Optional[str] = None


class ExerciseRef(Document):
    """Catalog exercise snapshot plus the user's prescription."""

    exercise_id: str = Field(alias="exerciseId")
    name: str
    body_parts: List[str] = Field(default_factory=list, alias="bodyParts")
    equipments: List[str] = Field(default_factory=list)
    # blank while the workout is still being drafted
    sets: Union[int, str] = ""
    reps: Union[int, str] = ""
    rest_time: Union[int, str] = Field("", alias="restTime")


class Workout(Document):
    id: Optional[str] = None
    name: str
    exercises: List[ExerciseRef] = Field(default_factory=list)
    schema_version: int = Field(SCHEMA_VERSION, alias="schemaVersion")

    def to_reference(self) -> dict:
        """Return the denormalized form embedded in a plan day slot."""
        return self.model_dump(by_alias=True, exclude_none=True)


class DaySlot(Document):
    day: str
    workout: Optional[Workout] = None
    rest_day: bool = Field(alias="restDay")

    @field_validator("day")
    @classmethod
    def _known_day(cls, value: str) -> str:
        if value not in WEEKDAYS:
            raise ValueError(f"unknown weekday: {value}")
        return value

    @model_validator(mode="after")
    def _rest_day_matches_workout(self) -> "DaySlot":
        if self.rest_day != (self.workout is None):
            raise ValueError("restDay must be true exactly when no workout is assigned")
        return self

    @classmethod
    def rest(cls, day: str) -> "DaySlot":
        return cls(day=day, workout=None, rest_day=True)

    @classmethod
    def training(cls, day: str, workout: Workout) -> "DaySlot":
        return cls(day=day, workout=workout, rest_day=False)

    def to_document(self) -> dict:
        data = {"day": self.day, "restDay": self.rest_day}
        if self.workout is not None:
            data["workout"] = self.workout.to_reference()
        return data


class Plan(Document):
    id: Optional[str] = None
    name: str
    days: List[DaySlot] = Field(default_factory=list)
    schema_version: int = Field(SCHEMA_VERSION, alias="schemaVersion")

    def ensure_week(self) -> None:
        """Raise ``ValueError`` unless ``days`` holds Monday..Sunday once each, in order."""
        names = tuple(slot.day for slot in self.days)
        if names != WEEKDAYS:
            raise ValueError("plan must contain exactly one slot per weekday, Monday to Sunday")

    def slot(self, day: str) -> Optional[DaySlot]:
        for entry in self.days:
            if entry.day == day:
                return entry
        return None

    def to_document(self) -> dict:
        return {
            "name": self.name,
            "days": [slot.to_document() for slot in self.days],
            "schemaVersion": self.schema_version,
        }


class Profile(Document):
    name: str = ""
    age: int = 0
    gender: str = "Male"
    height: float = 0.0
    weight: float = 0.0
    body_fat: float = Field(0.0, alias="bodyFat")
    goal: str = "General fitness"
    activity_level: str = Field("Moderate", alias="activityLevel")
    notifications: bool = True
    units: str = "metric"
    schema_version: int = Field(SCHEMA_VERSION, alias="schemaVersion")

    @field_validator("units")
    @classmethod
    def _known_units(cls, value: str) -> str:
        if value not in {"metric", "imperial"}:
            raise ValueError("units must be 'metric' or 'imperial'")
        return value
