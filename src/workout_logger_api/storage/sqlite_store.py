"""SQLite implementation of the workout storage contract (aiosqlite)."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, AsyncIterator, List, Optional, Tuple

import aiosqlite

from workout_logger_api.config import settings
from workout_logger_api.errors import NotFoundError, StorageError
from workout_logger_api.models import (
    Exercise,
    RequestString,
    WorkoutSession,
    WorkoutSet,
    WorkoutSetUpdate,
    WorkoutStatus,
)
from workout_logger_api.storage.base import WorkoutStore


logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS request_strings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    string TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS workout_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT,
    date TEXT NOT NULL,
    duration_seconds INTEGER NOT NULL DEFAULT 0,
    notes TEXT,
    summary TEXT,
    intention TEXT,
    status TEXT NOT NULL DEFAULT 'in_progress' CHECK (status IN ('in_progress', 'completed')),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS exercises (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    slug TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    description TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS workout_sets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id INTEGER NOT NULL REFERENCES workout_sessions(id) ON DELETE CASCADE,
    exercise_id INTEGER NOT NULL REFERENCES exercises(id) ON DELETE CASCADE,
    request_string_id INTEGER NOT NULL REFERENCES request_strings(id) ON DELETE CASCADE,
    weight REAL NOT NULL DEFAULT 0 CHECK (weight >= 0),
    reps INTEGER NOT NULL DEFAULT 0 CHECK (reps >= 0),
    set_index INTEGER NOT NULL CHECK (set_index >= 1),
    rpe REAL,
    notes TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (session_id, exercise_id, set_index)
);

CREATE INDEX IF NOT EXISTS idx_workout_sets_session ON workout_sets(session_id);
CREATE INDEX IF NOT EXISTS idx_workout_sets_exercise ON workout_sets(exercise_id, created_at);
"""

# Columns a partial set update may write; the flag marks NULL as allowed.
_UPDATABLE_SET_COLUMNS = {
    "exercise_id": False,
    "weight": False,
    "reps": False,
    "rpe": True,
    "notes": True,
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


class SqliteWorkoutStore(WorkoutStore):
    """
    Workout store over a single aiosqlite connection.

    All access is serialized by one asyncio.Lock. `transaction()` holds that
    lock for its whole body; calls made from the task that owns the
    transaction join it instead of waiting on the lock.
    """

    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn
        self._lock = asyncio.Lock()
        self._tx_task: Optional[asyncio.Task] = None

    @classmethod
    async def connect(cls, database_path: Optional[str] = None) -> "SqliteWorkoutStore":
        """Open (and initialize) the database at `database_path`."""
        path = database_path or settings.DATABASE_PATH
        logger.info(f"Opening SQLite workout store at {path}")
        try:
            conn = await aiosqlite.connect(path)
            conn.row_factory = aiosqlite.Row
            await conn.execute("PRAGMA foreign_keys = ON;")
            await conn.executescript(SCHEMA)
            await conn.commit()
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to open database {path}: {e}") from e
        return cls(conn)

    async def close(self) -> None:
        await self._conn.close()

    # ------------------------------------------------------------------
    # Connection scoping
    # ------------------------------------------------------------------

    def _owns_transaction(self) -> bool:
        return self._tx_task is not None and self._tx_task is asyncio.current_task()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        if self._owns_transaction():
            yield
            return
        async with self._lock:
            self._tx_task = asyncio.current_task()
            try:
                yield
                await self._conn.commit()
            except BaseException:
                await self._conn.rollback()
                raise
            finally:
                self._tx_task = None

    @asynccontextmanager
    async def _scope(self) -> AsyncIterator[aiosqlite.Connection]:
        if self._owns_transaction():
            try:
                yield self._conn
            except aiosqlite.Error as e:
                raise StorageError(str(e)) from e
            return
        async with self._lock:
            try:
                yield self._conn
                await self._conn.commit()
            except aiosqlite.Error as e:
                await self._conn.rollback()
                logger.error(f"SQLite error: {e}")
                raise StorageError(str(e)) from e
            except BaseException:
                await self._conn.rollback()
                raise

    @staticmethod
    async def _fetch_one(conn: aiosqlite.Connection, query: str, params: Tuple = ()) -> Optional[aiosqlite.Row]:
        async with conn.execute(query, params) as cursor:
            return await cursor.fetchone()

    @staticmethod
    async def _fetch_all(conn: aiosqlite.Connection, query: str, params: Tuple = ()) -> List[aiosqlite.Row]:
        async with conn.execute(query, params) as cursor:
            return list(await cursor.fetchall())

    async def _workout_row(self, conn: aiosqlite.Connection, workout_id: int) -> WorkoutSession:
        row = await self._fetch_one(conn, "SELECT * FROM workout_sessions WHERE id = ?;", (workout_id,))
        if row is None:
            raise NotFoundError("Workout session", workout_id)
        return WorkoutSession(**dict(row))

    async def _set_row(self, conn: aiosqlite.Connection, set_id: int) -> WorkoutSet:
        row = await self._fetch_one(conn, "SELECT * FROM workout_sets WHERE id = ?;", (set_id,))
        if row is None:
            raise NotFoundError("Workout set", set_id)
        return WorkoutSet(**dict(row))

    # ------------------------------------------------------------------
    # Workouts
    # ------------------------------------------------------------------

    async def create_workout_session(self, name: Optional[str] = None) -> WorkoutSession:
        now = _now()
        async with self._scope() as conn:
            cursor = await conn.execute(
                "INSERT INTO workout_sessions (name, date, status, created_at, updated_at) VALUES (?, ?, ?, ?, ?);",
                (name, date.today().isoformat(), WorkoutStatus.IN_PROGRESS.value, now, now),
            )
            workout = await self._workout_row(conn, cursor.lastrowid)
        logger.info(f"Created workout session id={workout.id} name={name!r}")
        return workout

    async def get_workout_session(self, workout_id: int) -> WorkoutSession:
        async with self._scope() as conn:
            return await self._workout_row(conn, workout_id)

    async def get_all_workout_sessions(self, status: Optional[WorkoutStatus] = None) -> List[WorkoutSession]:
        query = "SELECT * FROM workout_sessions"
        params: Tuple[Any, ...] = ()
        if status is not None:
            query += " WHERE status = ?"
            params = (WorkoutStatus(status).value,)
        query += " ORDER BY created_at DESC, id DESC;"
        async with self._scope() as conn:
            rows = await self._fetch_all(conn, query, params)
        return [WorkoutSession(**dict(row)) for row in rows]

    async def get_in_progress_workout(self) -> Optional[WorkoutSession]:
        async with self._scope() as conn:
            row = await self._fetch_one(
                conn,
                "SELECT * FROM workout_sessions WHERE status = ? ORDER BY created_at DESC, id DESC LIMIT 1;",
                (WorkoutStatus.IN_PROGRESS.value,),
            )
        return WorkoutSession(**dict(row)) if row is not None else None

    async def complete_workout_session(self, workout_id: int, duration_seconds: int) -> WorkoutSession:
        async with self._scope() as conn:
            cursor = await conn.execute(
                "UPDATE workout_sessions SET status = ?, duration_seconds = ?, updated_at = ? WHERE id = ?;",
                (WorkoutStatus.COMPLETED.value, duration_seconds, _now(), workout_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Workout session", workout_id)
            return await self._workout_row(conn, workout_id)

    async def update_workout_duration(self, workout_id: int, duration_seconds: int) -> WorkoutSession:
        async with self._scope() as conn:
            cursor = await conn.execute(
                "UPDATE workout_sessions SET duration_seconds = ?, updated_at = ? WHERE id = ?;",
                (duration_seconds, _now(), workout_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Workout session", workout_id)
            return await self._workout_row(conn, workout_id)

    async def delete_workout_session(self, workout_id: int) -> int:
        async with self._scope() as conn:
            cursor = await conn.execute("DELETE FROM workout_sessions WHERE id = ?;", (workout_id,))
            return cursor.rowcount

    async def update_workout_summary(self, workout_id: int, summary_json: str) -> None:
        async with self._scope() as conn:
            cursor = await conn.execute(
                "UPDATE workout_sessions SET summary = ?, updated_at = ? WHERE id = ?;",
                (summary_json, _now(), workout_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Workout session", workout_id)

    async def update_workout_intention(self, workout_id: int, intention: str) -> None:
        async with self._scope() as conn:
            cursor = await conn.execute(
                "UPDATE workout_sessions SET intention = ?, updated_at = ? WHERE id = ?;",
                (intention, _now(), workout_id),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Workout session", workout_id)

    # ------------------------------------------------------------------
    # Exercises
    # ------------------------------------------------------------------

    async def find_exercise_by_name(self, name: str) -> Optional[Exercise]:
        async with self._scope() as conn:
            row = await self._fetch_one(
                conn, "SELECT * FROM exercises WHERE name = ? ORDER BY id LIMIT 1;", (name,)
            )
        return Exercise(**dict(row)) if row is not None else None

    async def create_exercise(self, name: str, slug: str, description: Optional[str] = None) -> Exercise:
        now = _now()
        async with self._scope() as conn:
            cursor = await conn.execute(
                "INSERT INTO exercises (slug, name, description, created_at, updated_at) VALUES (?, ?, ?, ?, ?);",
                (slug, name, description, now, now),
            )
            row = await self._fetch_one(conn, "SELECT * FROM exercises WHERE id = ?;", (cursor.lastrowid,))
        logger.info(f"Created exercise id={row['id']} name={name!r} slug={slug!r}")
        return Exercise(**dict(row))

    async def slug_exists(self, slug: str) -> bool:
        async with self._scope() as conn:
            row = await self._fetch_one(conn, "SELECT 1 FROM exercises WHERE slug = ?;", (slug,))
        return row is not None

    async def get_exercise(self, exercise_id: int) -> Exercise:
        async with self._scope() as conn:
            row = await self._fetch_one(conn, "SELECT * FROM exercises WHERE id = ?;", (exercise_id,))
        if row is None:
            raise NotFoundError("Exercise", exercise_id)
        return Exercise(**dict(row))

    async def get_all_exercises(self) -> List[Exercise]:
        async with self._scope() as conn:
            rows = await self._fetch_all(conn, "SELECT * FROM exercises ORDER BY name, id;")
        return [Exercise(**dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Sets
    # ------------------------------------------------------------------

    async def get_sets_for_session(self, workout_id: int) -> List[WorkoutSet]:
        async with self._scope() as conn:
            rows = await self._fetch_all(
                conn,
                "SELECT * FROM workout_sets WHERE session_id = ? ORDER BY set_index ASC, id ASC;",
                (workout_id,),
            )
        return [WorkoutSet(**dict(row)) for row in rows]

    async def get_workout_set(self, set_id: int) -> WorkoutSet:
        async with self._scope() as conn:
            return await self._set_row(conn, set_id)

    async def _insert_set(
        self,
        conn: aiosqlite.Connection,
        workout_id: int,
        exercise_id: int,
        request_string_id: int,
        weight: float,
        reps: int,
        rpe: Optional[float],
    ) -> WorkoutSet:
        now = _now()
        # Index allocation happens inside the INSERT so it cannot race a second insert.
        cursor = await conn.execute(
            """
            INSERT INTO workout_sets
                (session_id, exercise_id, request_string_id, weight, reps, set_index, rpe, created_at, updated_at)
            SELECT ?, ?, ?, ?, ?, COALESCE(MAX(set_index), 0) + 1, ?, ?, ?
            FROM workout_sets WHERE session_id = ? AND exercise_id = ?;
            """,
            (workout_id, exercise_id, request_string_id, weight, reps, rpe, now, now, workout_id, exercise_id),
        )
        return await self._set_row(conn, cursor.lastrowid)

    async def add_workout_set(
        self,
        workout_id: int,
        exercise_id: int,
        request_string_id: int,
        weight: float,
        reps: int,
        rpe: Optional[float] = None,
    ) -> WorkoutSet:
        async with self._scope() as conn:
            await self._workout_row(conn, workout_id)
            workout_set = await self._insert_set(conn, workout_id, exercise_id, request_string_id, weight, reps, rpe)
        logger.debug(
            f"Added set id={workout_set.id} workout={workout_id} exercise={exercise_id} "
            f"set_index={workout_set.set_index}"
        )
        return workout_set

    async def add_multiple_sets_to_workout(
        self,
        workout_id: int,
        exercise_id: int,
        request_string_id: int,
        weight: float,
        reps: int,
        rpe: Optional[float],
        count: int,
    ) -> List[WorkoutSet]:
        if count < 1:
            raise ValueError("count must be >= 1")
        async with self._scope() as conn:
            await self._workout_row(conn, workout_id)
            created = [
                await self._insert_set(conn, workout_id, exercise_id, request_string_id, weight, reps, rpe)
                for _ in range(count)
            ]
        logger.debug(f"Added {count} sets workout={workout_id} exercise={exercise_id}")
        return created

    async def update_workout_set(self, set_id: int, update: WorkoutSetUpdate) -> WorkoutSet:
        assignments = []
        params: List[Any] = []
        for column, value in update.changes().items():
            nullable = _UPDATABLE_SET_COLUMNS.get(column)
            if nullable is None:
                continue
            if value is None and not nullable:
                logger.debug(f"Ignoring null for non-nullable set column {column}")
                continue
            assignments.append(f"{column} = ?")
            params.append(value)

        async with self._scope() as conn:
            if not assignments:
                return await self._set_row(conn, set_id)
            assignments.append("updated_at = ?")
            params.extend([_now(), set_id])
            cursor = await conn.execute(
                f"UPDATE workout_sets SET {', '.join(assignments)} WHERE id = ?;",
                tuple(params),
            )
            if cursor.rowcount == 0:
                raise NotFoundError("Workout set", set_id)
            return await self._set_row(conn, set_id)

    async def delete_workout_set(self, set_id: int) -> int:
        async with self._scope() as conn:
            cursor = await conn.execute("DELETE FROM workout_sets WHERE id = ?;", (set_id,))
            return cursor.rowcount

    async def get_exercise_entries(self, exercise_id: int, limit: Optional[int] = None) -> List[WorkoutSet]:
        if limit is None:
            query = "SELECT * FROM workout_sets WHERE exercise_id = ? ORDER BY created_at ASC, id ASC;"
            params: Tuple[Any, ...] = (exercise_id,)
        else:
            query = (
                "SELECT * FROM ("
                "SELECT * FROM workout_sets WHERE exercise_id = ? ORDER BY created_at DESC, id DESC LIMIT ?"
                ") ORDER BY created_at ASC, id ASC;"
            )
            params = (exercise_id, limit)
        async with self._scope() as conn:
            rows = await self._fetch_all(conn, query, params)
        return [WorkoutSet(**dict(row)) for row in rows]

    async def count_sets_for_exercise_in_session(self, workout_id: int, exercise_id: int) -> int:
        async with self._scope() as conn:
            row = await self._fetch_one(
                conn,
                "SELECT COUNT(*) AS n FROM workout_sets WHERE session_id = ? AND exercise_id = ?;",
                (workout_id, exercise_id),
            )
        return int(row["n"])

    # ------------------------------------------------------------------
    # Request strings
    # ------------------------------------------------------------------

    async def create_request_string_for_username(self, username: str, text: str) -> RequestString:
        now = _now()
        async with self._scope() as conn:
            await conn.execute(
                "INSERT OR IGNORE INTO users (username, created_at) VALUES (?, ?);",
                (username, now),
            )
            user = await self._fetch_one(conn, "SELECT id FROM users WHERE username = ?;", (username,))
            cursor = await conn.execute(
                "INSERT INTO request_strings (user_id, string, created_at) VALUES (?, ?, ?);",
                (user["id"], text, now),
            )
            row = await self._fetch_one(conn, "SELECT * FROM request_strings WHERE id = ?;", (cursor.lastrowid,))
        return RequestString(**dict(row))
