from __future__ import annotations

import asyncio
import copy
import json
import logging
import random
import sqlite3
import time
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type

import aiosqlite
from pydantic import BaseModel, ValidationError

from errors import FetchError, NotFound, Unauthenticated
from models import WEEKDAYS, DaySlot, Plan, Profile, User, Workout

logger = logging.getLogger(__name__)

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


def split_path(path: str) -> List[str]:
    return [part for part in str(path).strip("/").split("/") if part]


def join_path(*parts: Any) -> str:
    return "/".join(p for part in parts for p in split_path(str(part)))


def to_tree(value: Any) -> Any:
    """Convert ``value`` to stored form: lists become index-keyed objects, nulls and empty objects vanish."""
    if isinstance(value, (list, tuple)):
        value = {str(i): item for i, item in enumerate(value)}
    if isinstance(value, dict):
        tree = {}
        for key, item in value.items():
            child = to_tree(item)
            if child is not None:
                tree[str(key)] = child
        return tree or None
    return value


def from_tree(value: Any) -> Any:
    """Inverse of :func:`to_tree`; objects keyed ``"0".."n-1"`` read back as lists."""
    if not isinstance(value, dict):
        return value
    items = {key: from_tree(item) for key, item in value.items()}
    if items and set(items) == {str(i) for i in range(len(items))}:
        return [items[str(i)] for i in range(len(items))]
    return items


def weekday_for_index(day_index: int) -> str:
    """Return the weekday name for a Monday-first slot index."""
    if not 0 <= day_index < len(WEEKDAYS):
        raise ValueError(f"day index out of range: {day_index}")
    return WEEKDAYS[day_index]


def _overlaps(a: Tuple[str, ...], b: Tuple[str, ...]) -> bool:
    shortest = min(len(a), len(b))
    return a[:shortest] == b[:shortest]


class PushIdGenerator:
    """Generate 20 character keys that sort in creation order."""

    def __init__(self) -> None:
        self._last_time = 0
        self._last_random = [0] * 12

    def __call__(self) -> str:
        now = int(time.time() * 1000)
        duplicate = now == self._last_time
        self._last_time = now
        time_chars = []
        for _ in range(8):
            time_chars.append(PUSH_CHARS[now % 64])
            now //= 64
        key = "".join(reversed(time_chars))
        if not duplicate:
            self._last_random = [random.randrange(64) for _ in range(12)]
        else:
            # same millisecond: increment the random part so keys stay ordered
            i = 11
            while i >= 0 and self._last_random[i] == 63:
                self._last_random[i] = 0
                i -= 1
            if i >= 0:
                self._last_random[i] += 1
        return key + "".join(PUSH_CHARS[r] for r in self._last_random)


class _Listener:
    def __init__(
        self,
        on_value: Callable[[Any], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> None:
        self.on_value = on_value
        self.on_error = on_error

    def error(self, exc: Exception) -> None:
        if self.on_error is None:
            logger.error("Unhandled store listener error: %s", exc)
            return
        self.on_error(exc)


class Subscription:
    """Handle for a store listener; ``cancel`` detaches it."""

    def __init__(self, store: "DocumentStore", key: str, listener: _Listener) -> None:
        self._store = store
        self._key = key
        self._listener = listener
        self.active = True

    @property
    def path(self) -> str:
        return self._key

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._detach(self._key, self._listener)


class DocumentStore:
    """Path-addressed document tree with change subscriptions.

    Subclasses implement ``_read`` and ``_apply``; everything else,
    including listener bookkeeping, lives here.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[_Listener]] = {}
        self._generate_key = PushIdGenerator()

    async def _read(self, parts: Tuple[str, ...]) -> Any:
        raise NotImplementedError

    async def _apply(self, patch: Dict[Tuple[str, ...], Any]) -> None:
        raise NotImplementedError

    async def get(self, path: str) -> Any:
        return from_tree(await self._read(tuple(split_path(path))))

    async def update(self, patch: Dict[str, Any]) -> None:
        """Apply a multi-path patch; ``None`` values delete their path."""
        normalized: Dict[Tuple[str, ...], Any] = {}
        for path, value in patch.items():
            parts = tuple(split_path(path))
            if not parts:
                raise ValueError("cannot write to the store root")
            for other in normalized:
                if _overlaps(parts, other):
                    raise ValueError(f"overlapping paths in update: {path}")
            normalized[parts] = to_tree(value)
        if not normalized:
            return
        await self._apply(normalized)
        await self._notify(normalized.keys())

    async def set(self, path: str, value: Any) -> None:
        await self.update({path: value})

    async def remove(self, path: str) -> None:
        await self.update({path: None})

    async def push(self, path: str, value: Any) -> str:
        key = self._generate_key()
        await self.set(join_path(path, key), value)
        return key

    async def subscribe(
        self,
        path: str,
        on_value: Callable[[Any], None],
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Subscription:
        """Attach a listener and deliver the current value before returning."""
        key = join_path(path)
        listener = _Listener(on_value, on_error)
        self._listeners.setdefault(key, []).append(listener)
        subscription = Subscription(self, key, listener)
        try:
            await self._emit(key, [listener])
        except BaseException:
            subscription.cancel()
            raise
        return subscription

    def listener_count(self, path: Optional[str] = None) -> int:
        if path is None:
            return sum(len(items) for items in self._listeners.values())
        return len(self._listeners.get(join_path(path), []))

    def _detach(self, key: str, listener: _Listener) -> None:
        listeners = self._listeners.get(key, [])
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            self._listeners.pop(key, None)

    async def _emit(self, key: str, listeners: Iterable[_Listener]) -> None:
        try:
            value = await self.get(key)
        except FetchError as e:
            for listener in listeners:
                listener.error(e)
            return
        for listener in listeners:
            listener.on_value(copy.deepcopy(value))

    async def _notify(self, changed: Iterable[Tuple[str, ...]]) -> None:
        changed = list(changed)
        for key, listeners in list(self._listeners.items()):
            parts = tuple(split_path(key))
            if any(_overlaps(parts, c) for c in changed):
                await self._emit(key, list(listeners))

    async def close(self) -> None:
        self._listeners.clear()


def _write_node(node: dict, parts: Tuple[str, ...], value: Any) -> dict:
    head, rest = parts[0], parts[1:]
    if not rest:
        if value is None:
            node.pop(head, None)
        else:
            node[head] = value
        return node
    child = node.get(head)
    if not isinstance(child, dict):
        child = {}
    child = _write_node(child, rest, value)
    if child:
        node[head] = child
    else:
        node.pop(head, None)
    return node


class MemoryDocumentStore(DocumentStore):
    """In-process store; patches are applied atomically."""

    def __init__(self, data: Optional[dict] = None) -> None:
        super().__init__()
        self._root: dict = to_tree(data) or {}

    async def _read(self, parts: Tuple[str, ...]) -> Any:
        node: Any = self._root
        for part in parts:
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return copy.deepcopy(node)

    async def _apply(self, patch: Dict[Tuple[str, ...], Any]) -> None:
        root = copy.deepcopy(self._root)
        for parts, value in patch.items():
            _write_node(root, parts, value)
        self._root = root

    def snapshot(self) -> Any:
        return from_tree(copy.deepcopy(self._root))


class SqliteDocumentStore(DocumentStore):
    """Document tree persisted as one row per leaf in a SQLite file.

    Each patch runs in a single transaction.
    """

    _TABLE = """CREATE TABLE IF NOT EXISTS nodes (
                    path TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );"""

    def __init__(self, db_path: str = "fittrack.db") -> None:
        super().__init__()
        self._db_path = db_path
        self._ensure_schema()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            conn.execute(self._TABLE)

    @asynccontextmanager
    async def _async_connection(self):
        conn = await aiosqlite.connect(self._db_path)
        try:
            yield conn
            await conn.commit()
        finally:
            await conn.close()

    @staticmethod
    def _subtree_clause(key: str) -> Tuple[str, Tuple[str, ...]]:
        # "/" sorts directly before "0", so [key + "/", key + "0") is the subtree
        return "path = ? OR (path >= ? AND path < ?)", (key, key + "/", key + "0")

    @staticmethod
    def _flatten(prefix: str, value: Any) -> Iterable[Tuple[str, str]]:
        if isinstance(value, dict):
            for key, item in value.items():
                yield from SqliteDocumentStore._flatten(f"{prefix}/{key}", item)
        else:
            yield prefix, json.dumps(value)

    async def _read(self, parts: Tuple[str, ...]) -> Any:
        key = "/".join(parts)
        try:
            async with self._async_connection() as conn:
                if key:
                    clause, params = self._subtree_clause(key)
                    cursor = await conn.execute(
                        f"SELECT path, value FROM nodes WHERE {clause} ORDER BY path;",
                        params,
                    )
                else:
                    cursor = await conn.execute("SELECT path, value FROM nodes ORDER BY path;")
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise FetchError(f"failed to read {key or '/'}: {e}") from e
        if not rows:
            return None
        tree: dict = {}
        for path, raw in rows:
            if path == key:
                return json.loads(raw)
            relative = split_path(path[len(key):])
            node = tree
            for part in relative[:-1]:
                node = node.setdefault(part, {})
            node[relative[-1]] = json.loads(raw)
        return tree

    async def _apply(self, patch: Dict[Tuple[str, ...], Any]) -> None:
        try:
            async with self._async_connection() as conn:
                for parts, value in patch.items():
                    key = "/".join(parts)
                    clause, params = self._subtree_clause(key)
                    await conn.execute(f"DELETE FROM nodes WHERE {clause};", params)
                    ancestors = ["/".join(parts[:i]) for i in range(1, len(parts))]
                    if ancestors:
                        placeholders = ",".join("?" for _ in ancestors)
                        await conn.execute(
                            f"DELETE FROM nodes WHERE path IN ({placeholders});",
                            tuple(ancestors),
                        )
                    if value is not None:
                        await conn.executemany(
                            "INSERT INTO nodes (path, value) VALUES (?, ?);",
                            list(self._flatten(key, value)),
                        )
        except aiosqlite.Error as e:
            raise FetchError(f"failed to write patch: {e}") from e


def create_store(settings) -> DocumentStore:
    """Build the store selected by ``settings.store_backend``."""
    backend = settings.store_backend
    if backend == "memory":
        return MemoryDocumentStore()
    if backend == "sqlite":
        return SqliteDocumentStore(settings.store_path)
    if backend == "rest":
        from remote_store import RestDocumentStore

        return RestDocumentStore(settings.store_url, auth_token=settings.store_auth_token)
    raise ValueError(f"unknown store backend: {backend}")


_CLOSED = object()


class Watch:
    """Live values for one path until the caller cancels.

    Iterate with ``async for``; use as an async context manager to cancel on
    exit.
    """

    def __init__(self, transform: Optional[Callable[[Any], Any]] = None) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._transform = transform
        self._subscription: Optional[Subscription] = None
        self._finished = False

    def _attach(self, subscription: Subscription) -> None:
        self._subscription = subscription

    def _on_value(self, value: Any) -> None:
        self._queue.put_nowait(value)

    def _on_error(self, exc: Exception) -> None:
        self._queue.put_nowait(exc)

    @property
    def active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def cancel(self) -> None:
        if self._subscription is not None and self._subscription.active:
            self._subscription.cancel()
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Watch":
        return self

    async def __anext__(self) -> Any:
        if self._finished:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        if isinstance(item, Exception):
            raise item
        return self._transform(item) if self._transform else item

    async def __aenter__(self) -> "Watch":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.cancel()


class SubscriptionAdapter:
    """Reads built on store subscriptions."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def read_once(self, path: str) -> Any:
        """Resolve with the first snapshot at ``path`` and detach."""
        loop = asyncio.get_running_loop()
        first: asyncio.Future = loop.create_future()

        def on_value(value: Any) -> None:
            if not first.done():
                first.set_result(value)

        def on_error(exc: Exception) -> None:
            if not first.done():
                first.set_exception(exc)

        subscription = await self.store.subscribe(path, on_value, on_error)
        try:
            return await first
        finally:
            subscription.cancel()

    async def watch(
        self, path: str, transform: Optional[Callable[[Any], Any]] = None
    ) -> Watch:
        watch = Watch(transform)
        subscription = await self.store.subscribe(path, watch._on_value, watch._on_error)
        watch._attach(subscription)
        return watch


# characters the Realtime Database forbids in keys
_INVALID_KEY_CHARS = set("/.#$[]")


def check_key(key: Any) -> str:
    """Return ``key`` as a path segment or raise ``ValueError``."""
    key = str(key)
    if not key.strip() or _INVALID_KEY_CHARS & set(key):
        raise ValueError(f"invalid document key: {key!r}")
    return key


class BaseRepository:
    """Base repository providing user-scoped store helpers."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store
        self.snapshots = SubscriptionAdapter(store)

    def _user_path(self, user: Optional[User], *parts: Any) -> str:
        if user is None or not user.uid:
            logger.error("%s called without an authenticated user", type(self).__name__)
            raise Unauthenticated()
        return join_path("user", check_key(user.uid), *(check_key(p) for p in parts))

    async def _read(self, path: str) -> Any:
        try:
            return await self.snapshots.read_once(path)
        except FetchError as e:
            logger.error("Error reading %s: %s", path, e)
            raise

    async def _write(self, patch: Dict[str, Any]) -> None:
        try:
            await self.store.update(patch)
        except FetchError as e:
            logger.error("Error writing %s: %s", ", ".join(patch), e)
            raise

    async def _push(self, path: str, value: Any) -> str:
        try:
            return await self.store.push(path, value)
        except FetchError as e:
            logger.error("Error saving to %s: %s", path, e)
            raise

    async def _require_plan(self, user: Optional[User], plan_id: str) -> None:
        # a slot write to a missing plan would leave a nameless partial document
        if await self._read(self._user_path(user, "workoutPlans", plan_id, "name")) is None:
            logger.warning("Plan %s not found for %s", plan_id, user.uid)
            raise NotFound(f"plan not found: {plan_id}")

    @staticmethod
    def _keyed(data: Any) -> List[Tuple[str, Any]]:
        if not data:
            return []
        if isinstance(data, list):
            data = {str(i): item for i, item in enumerate(data)}
        return sorted(data.items())

    @staticmethod
    def _parse(model: Type[BaseModel], data: Any, key: Optional[str] = None):
        """Validate one stored document; malformed ones are logged and skipped."""
        if not isinstance(data, dict):
            logger.warning("Skipping malformed %s %s: not an object", model.__name__, key)
            return None
        if key is not None:
            data = {**data, "id": key}
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning("Skipping malformed %s %s: %s", model.__name__, key, e)
            return None

    def _parse_all(self, model: Type[BaseModel], data: Any) -> list:
        parsed = (self._parse(model, value, key) for key, value in self._keyed(data))
        return [item for item in parsed if item is not None]


class WorkoutRepository(BaseRepository):
    """Repository for a user's saved workouts."""

    async def create(self, user: Optional[User], workout: Workout) -> str:
        path = self._user_path(user, "workouts")
        key = await self._push(path, workout.to_document())
        logger.info("Workout %s saved for %s", key, user.uid)
        return key

    async def update(
        self,
        user: Optional[User],
        workout_id: Optional[str],
        plan_id: str,
        day_index: int,
        updated_workout: Workout,
    ) -> None:
        """Rewrite a plan day slot and, when ``workout_id`` is given, the workout record.

        Both writes are sent as one multi-path patch. Raises ``NotFound`` when
        the plan does not exist.
        """
        day = weekday_for_index(day_index)
        workout = updated_workout
        patch: Dict[str, Any] = {}
        if workout_id is not None:
            workout = updated_workout.model_copy(update={"id": workout_id})
            patch[self._user_path(user, "workouts", workout_id)] = workout.to_document()
        slot_path = self._user_path(user, "workoutPlans", plan_id, "days", day_index)
        patch[slot_path] = DaySlot.training(day, workout).to_document()
        await self._require_plan(user, plan_id)
        await self._write(patch)

    async def delete(self, user: Optional[User], workout_id: str) -> None:
        # plan day slots keep their copy of the workout
        await self._write({self._user_path(user, "workouts", workout_id): None})

    async def get(self, user: Optional[User], workout_id: str) -> Optional[Workout]:
        data = await self._read(self._user_path(user, "workouts", workout_id))
        if not data:
            return None
        return self._parse(Workout, data, workout_id)

    async def list(self, user: Optional[User]) -> List[Workout]:
        data = await self._read(self._user_path(user, "workouts"))
        return self._parse_all(Workout, data)


class PlanRepository(BaseRepository):
    """Repository for weekly workout plans."""

    async def create(self, user: Optional[User], plan: Plan) -> str:
        path = self._user_path(user, "workoutPlans")
        plan.ensure_week()
        key = await self._push(path, plan.to_document())
        logger.info("Plan %s saved for %s", key, user.uid)
        return key

    async def delete(self, user: Optional[User], plan_id: str) -> None:
        # activePlanId is left alone; readers treat a dangling id as no active plan
        await self._write({self._user_path(user, "workoutPlans", plan_id): None})

    async def get(self, user: Optional[User], plan_id: str) -> Optional[Plan]:
        data = await self._read(self._user_path(user, "workoutPlans", plan_id))
        if not data:
            return None
        return self._parse(Plan, data, plan_id)

    async def list(self, user: Optional[User]) -> List[Plan]:
        data = await self._read(self._user_path(user, "workoutPlans"))
        return self._parse_all(Plan, data)

    async def assign_day(
        self,
        user: Optional[User],
        plan_id: str,
        day_index: int,
        workout: Optional[Workout],
    ) -> None:
        """Replace one day slot; ``None`` makes it a rest day."""
        day = weekday_for_index(day_index)
        slot = DaySlot.rest(day) if workout is None else DaySlot.training(day, workout)
        path = self._user_path(user, "workoutPlans", plan_id, "days", day_index)
        await self._require_plan(user, plan_id)
        await self._write({path: slot.to_document()})

    async def watch(self, user: Optional[User]):
        path = self._user_path(user, "workoutPlans")
        return await self.snapshots.watch(path, lambda data: self._parse_all(Plan, data))


class ActivePlanRepository(BaseRepository):
    """Stores the single active plan id per user."""

    async def set(self, user: Optional[User], plan_id: str) -> None:
        await self._write({self._user_path(user, "activePlanId"): check_key(plan_id)})

    async def fetch(self, user: Optional[User]) -> Optional[str]:
        value = await self._read(self._user_path(user, "activePlanId"))
        return str(value) if value else None


class ProfileRepository(BaseRepository):
    """Repository for the per-user profile document."""

    async def get(self, user: Optional[User]) -> Optional[Profile]:
        data = await self._read(self._user_path(user, "profile"))
        if not data:
            return None
        return self._parse(Profile, data)

    async def update(self, user: Optional[User], profile: Profile) -> None:
        await self._write({self._user_path(user, "profile"): profile.to_document()})
