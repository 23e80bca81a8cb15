"""Exercise lookup-or-create by free-text name."""
import asyncio
import logging
import re
import weakref

from workout_logger_api.models import Exercise
from workout_logger_api.storage.base import WorkoutStore


logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

DEFAULT_SLUG = "exercise"


def slugify(name: str) -> str:
    """
    Lowercase, collapse every run of non-alphanumeric characters into a
    single '-', and trim leading/trailing '-'.

    >>> slugify("  Barbell Back-Squat (High Bar) ")
    'barbell-back-squat-high-bar'
    """
    return _NON_ALNUM.sub("-", name.lower()).strip("-")


class ExerciseResolver:
    """
    Resolves exercise names to stored exercises, creating them on first use.

    Matching is exact and case-sensitive. Creation is serialized per name so
    two concurrent commands mentioning the same new exercise share one row.
    """

    def __init__(self, store: WorkoutStore):
        self.store = store
        # Entries vanish once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        return lock

    async def _unique_slug(self, name: str) -> str:
        base = slugify(name) or DEFAULT_SLUG
        slug = base
        suffix = 2
        # Different names can share a slug ("Bench Press" / "bench press")
        while await self.store.slug_exists(slug):
            slug = f"{base}-{suffix}"
            suffix += 1
        return slug

    async def get_or_create_exercise(self, name: str) -> Exercise:
        existing = await self.store.find_exercise_by_name(name)
        if existing is not None:
            return existing

        async with self._lock_for(name):
            existing = await self.store.find_exercise_by_name(name)
            if existing is not None:
                return existing
            slug = await self._unique_slug(name)
            logger.info(f"Creating exercise {name!r} with slug {slug!r}")
            return await self.store.create_exercise(name, slug)
