"""Storage contract consumed by the workout session."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncContextManager, List, Optional

from workout_logger_api.models import (
    Exercise,
    RequestString,
    WorkoutSession,
    WorkoutSet,
    WorkoutSetUpdate,
    WorkoutStatus,
)


class WorkoutStore(ABC):
    """
    Narrow CRUD contract over workouts, exercises, sets and request strings.

    Methods that target a single row raise NotFoundError when it does not
    exist; delete methods return the number of rows removed instead.
    """

    # Workouts

    @abstractmethod
    async def create_workout_session(self, name: Optional[str] = None) -> WorkoutSession:
        ...

    @abstractmethod
    async def get_workout_session(self, workout_id: int) -> WorkoutSession:
        ...

    @abstractmethod
    async def get_all_workout_sessions(self, status: Optional[WorkoutStatus] = None) -> List[WorkoutSession]:
        """Newest first; all statuses when `status` is None."""
        ...

    @abstractmethod
    async def get_in_progress_workout(self) -> Optional[WorkoutSession]:
        ...

    @abstractmethod
    async def complete_workout_session(self, workout_id: int, duration_seconds: int) -> WorkoutSession:
        ...

    @abstractmethod
    async def update_workout_duration(self, workout_id: int, duration_seconds: int) -> WorkoutSession:
        ...

    @abstractmethod
    async def delete_workout_session(self, workout_id: int) -> int:
        ...

    @abstractmethod
    async def update_workout_summary(self, workout_id: int, summary_json: str) -> None:
        ...

    @abstractmethod
    async def update_workout_intention(self, workout_id: int, intention: str) -> None:
        ...

    # Exercises

    @abstractmethod
    async def find_exercise_by_name(self, name: str) -> Optional[Exercise]:
        """Exact, case-sensitive name lookup."""
        ...

    @abstractmethod
    async def create_exercise(self, name: str, slug: str, description: Optional[str] = None) -> Exercise:
        ...

    @abstractmethod
    async def slug_exists(self, slug: str) -> bool:
        ...

    @abstractmethod
    async def get_exercise(self, exercise_id: int) -> Exercise:
        ...

    @abstractmethod
    async def get_all_exercises(self) -> List[Exercise]:
        ...

    # Sets

    @abstractmethod
    async def get_sets_for_session(self, workout_id: int) -> List[WorkoutSet]:
        """Sets of one workout, ordered by set_index ascending."""
        ...

    @abstractmethod
    async def get_workout_set(self, set_id: int) -> WorkoutSet:
        ...

    @abstractmethod
    async def add_workout_set(
        self,
        workout_id: int,
        exercise_id: int,
        request_string_id: int,
        weight: float,
        reps: int,
        rpe: Optional[float] = None,
    ) -> WorkoutSet:
        """Insert one set; set_index is assigned as max(existing) + 1."""
        ...

    @abstractmethod
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
        ...

    @abstractmethod
    async def update_workout_set(self, set_id: int, update: WorkoutSetUpdate) -> WorkoutSet:
        ...

    @abstractmethod
    async def delete_workout_set(self, set_id: int) -> int:
        ...

    @abstractmethod
    async def get_exercise_entries(self, exercise_id: int, limit: Optional[int] = None) -> List[WorkoutSet]:
        """Sets of one exercise across all workouts, oldest first (latest `limit` rows)."""
        ...

    @abstractmethod
    async def count_sets_for_exercise_in_session(self, workout_id: int, exercise_id: int) -> int:
        ...

    # Request strings

    @abstractmethod
    async def create_request_string_for_username(self, username: str, text: str) -> RequestString:
        ...

    # Lifecycle

    @abstractmethod
    def transaction(self) -> AsyncContextManager[None]:
        """Group several calls into one atomic unit."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
