import asyncio
import sys

from db import DocumentStore, SqliteDocumentStore, join_path
from models import SCHEMA_VERSION, User


def _items(data):
    if not data:
        return []
    if isinstance(data, list):
        return [(str(i), item) for i, item in enumerate(data) if item]
    return list(data.items())


def _upgrade_plan(doc: dict) -> dict:
    days = doc.get("days") or []
    if isinstance(days, dict):
        days = [days[k] for k in sorted(days, key=int)]
    fixed = []
    for slot in days:
        slot = dict(slot)
        if "restDay" not in slot:
            slot["restDay"] = slot.get("workout") is None
        fixed.append(slot)
    return {**doc, "days": fixed, "schemaVersion": SCHEMA_VERSION}


async def migrate_user(store: DocumentStore, user: User) -> int:
    """Backfill schemaVersion (and missing restDay flags) for one user's documents."""
    base = join_path("user", user.uid)
    patch = {}
    for key, doc in _items(await store.get(join_path(base, "workouts"))):
        if "schemaVersion" not in doc:
            patch[join_path(base, "workouts", key)] = {**doc, "schemaVersion": SCHEMA_VERSION}
    for key, doc in _items(await store.get(join_path(base, "workoutPlans"))):
        days = doc.get("days") or []
        slots = days.values() if isinstance(days, dict) else days
        if "schemaVersion" not in doc or any("restDay" not in s for s in slots):
            patch[join_path(base, "workoutPlans", key)] = _upgrade_plan(doc)
    profile = await store.get(join_path(base, "profile"))
    if profile and "schemaVersion" not in profile:
        patch[join_path(base, "profile")] = {**profile, "schemaVersion": SCHEMA_VERSION}
    if patch:
        await store.update(patch)
    return len(patch)


if __name__ == '__main__':
    if len(sys.argv) < 2:
        sys.exit("usage: migrate.py UID [DB_PATH]")
    uid = sys.argv[1]
    path = sys.argv[2] if len(sys.argv) > 2 else 'fittrack.db'
    count = asyncio.run(migrate_user(SqliteDocumentStore(path), User(uid=uid)))
    print(f"{count} documents migrated")
