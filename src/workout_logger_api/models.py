"""Data models for workout logging."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkoutStatus(str, Enum):
    """Lifecycle state of a workout session."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class Exercise(BaseModel):
    """Represents a single exercise."""
    id: int
    slug: str
    name: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class WorkoutSession(BaseModel):
    """A bounded, time-scoped collection of sets."""
    id: int
    name: Optional[str] = None
    date: str
    status: WorkoutStatus = WorkoutStatus.IN_PROGRESS
    duration_seconds: int = 0
    notes: Optional[str] = None
    summary: Optional[str] = None  # JSON text: {"message": ..., "emoji": ...}
    intention: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(use_enum_values=True)


class WorkoutSet(BaseModel):
    """One performed set of an exercise within a workout."""
    id: int
    session_id: int
    exercise_id: int
    request_string_id: int
    weight: float = Field(ge=0)
    reps: int = Field(ge=0)
    set_index: int = Field(ge=1)  # 1-based within (session, exercise)
    rpe: Optional[float] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RequestString(BaseModel):
    """Verbatim user input that produced one or more sets."""
    id: int
    user_id: int
    string: str
    created_at: datetime


class WorkoutSetUpdate(BaseModel):
    """
    Partial update of a workout set.

    Only fields that were explicitly provided are written. A field passed as
    None clears the column (where the column allows it); an omitted field is
    left unchanged.
    """
    exercise_id: Optional[int] = None
    weight: Optional[float] = Field(default=None, ge=0)
    reps: Optional[int] = Field(default=None, ge=0)
    rpe: Optional[float] = Field(default=None, ge=0, le=10)
    notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")

    def changes(self) -> Dict[str, Any]:
        """Return only the fields the caller provided."""
        return self.model_dump(exclude_unset=True)


class ModificationType(str, Enum):
    """Kind of effect the command executor produced."""
    SET_ADDED = "set_added"
    SET_MODIFIED = "set_modified"
    SET_REMOVED = "set_removed"
    EXERCISE_ADDED = "exercise_added"


class Modification(BaseModel):
    """Describes one effect of a command, for UI synchronization."""
    modification_type: ModificationType
    set_id: Optional[int] = None
    set_ids: List[int] = Field(default_factory=list)
    exercise_id: Optional[int] = None
    # Denormalized copies so callers don't need a round-trip
    set: Optional[WorkoutSet] = None
    sets: Optional[List[WorkoutSet]] = None
    exercise: Optional[Exercise] = None


class WorkoutSummary(BaseModel):
    """Short motivational summary of the current workout."""
    message: str
    emoji: str


class WorkoutSuggestion(BaseModel):
    """A specific, actionable next step for the current workout."""
    title: str
    subtitle: Optional[str] = None
    suggestion_type: str  # exercise | progression | volume | accessory | completion
    exercise_name: Optional[str] = None
    reasoning: Optional[str] = None


class ActiveWorkoutState(BaseModel):
    """Snapshot of the active workout with every known exercise."""
    workout: WorkoutSession
    exercises: List[Exercise] = Field(default_factory=list)
    sets: List[WorkoutSet] = Field(default_factory=list)
