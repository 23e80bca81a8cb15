"""Storage backends for the workout logger."""
from .base import WorkoutStore
from .sqlite_store import SqliteWorkoutStore

__all__ = ["SqliteWorkoutStore", "WorkoutStore"]
