"""
Workout Logger API Routes

Thin HTTP layer over the workout Session. Domain errors are translated to
HTTP status codes here; a partially applied command batch answers 207 with
both the applied modifications and the per-command errors.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from workout_logger_api.commands import ParsedSet
from workout_logger_api.errors import (
    CommandBatchError,
    LLMContentError,
    LLMTransportError,
    NoActiveWorkoutError,
    NotFoundError,
    UnresolvedReferenceError,
    WorkoutLoggerError,
)
from workout_logger_api.models import (
    ActiveWorkoutState,
    Exercise,
    Modification,
    WorkoutSession,
    WorkoutSet,
    WorkoutSetUpdate,
    WorkoutSuggestion,
    WorkoutSummary,
)
from workout_logger_api.services.llm_tasks import MuscleLink
from workout_logger_api.session import Session


logger = logging.getLogger(__name__)

router = APIRouter()


def get_session(request: Request) -> Session:
    return request.app.state.session


def _http_exception(exc: WorkoutLoggerError) -> HTTPException:
    if isinstance(exc, NoActiveWorkoutError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, (UnresolvedReferenceError, NotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, LLMContentError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, LLMTransportError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


@contextmanager
def translate_errors() -> Iterator[None]:
    try:
        yield
    except WorkoutLoggerError as e:
        logger.warning(f"Request failed: {type(e).__name__}: {e}")
        raise _http_exception(e) from e


# ============================================================================
# Request / response models
# ============================================================================

class NewWorkoutRequest(BaseModel):
    name: Optional[str] = None


class NewWorkoutResponse(BaseModel):
    workout: WorkoutSession
    had_existing: bool


class CompleteWorkoutRequest(BaseModel):
    duration_seconds: int = Field(ge=0)


class ElapsedTimeRequest(BaseModel):
    elapsed_seconds: int = Field(ge=0)


class UserInputRequest(BaseModel):
    input: str = Field(min_length=1)
    selected_set_id: Optional[int] = None
    visible_set_ids: List[int] = Field(default_factory=list)


class ModificationsResponse(BaseModel):
    modifications: List[Modification]


class CommandFailure(BaseModel):
    index: int
    command_type: str
    error: str


class BatchErrorResponse(BaseModel):
    modifications: List[Modification]
    errors: List[CommandFailure]


class DeleteResponse(BaseModel):
    deleted: int


class EquipmentLinksRequest(BaseModel):
    equipment: str = Field(min_length=1)


class EquipmentLinksResponse(BaseModel):
    equipment: str
    exercises: List[str]


class ExerciseLinksRequest(BaseModel):
    exercise: str = Field(min_length=1)


class ExerciseLinksResponse(BaseModel):
    exercise: str
    equipment: List[str]
    muscles: List[MuscleLink]
    related_exercises: List[str]


# ============================================================================
# Health
# ============================================================================

@router.get("/health")
def health():
    return {"status": "ok"}


# ============================================================================
# Workouts
# ============================================================================

@router.post("/workouts", response_model=NewWorkoutResponse)
async def new_workout(body: NewWorkoutRequest, session: Session = Depends(get_session)):
    """Start a workout, completing any in-progress one."""
    with translate_errors():
        had_existing = await session.new_workout(body.name)
        workout = await session.get_workout_session()
    return NewWorkoutResponse(workout=workout, had_existing=had_existing)


@router.get("/workouts", response_model=List[WorkoutSession])
async def list_workouts(
    include_in_progress: bool = Query(False, description="Include in-progress workouts"),
    session: Session = Depends(get_session),
):
    with translate_errors():
        return await session.get_all_workouts(include_in_progress)


@router.get("/workouts/active", response_model=ActiveWorkoutState)
async def active_workout(session: Session = Depends(get_session)):
    with translate_errors():
        return await session.get_active_workout_state()


@router.post("/workouts/active/complete", response_model=WorkoutSession)
async def complete_workout(body: CompleteWorkoutRequest, session: Session = Depends(get_session)):
    with translate_errors():
        return await session.complete_workout(body.duration_seconds)


@router.put("/workouts/active/elapsed", response_model=WorkoutSession)
async def update_elapsed_time(body: ElapsedTimeRequest, session: Session = Depends(get_session)):
    with translate_errors():
        return await session.update_workout_elapsed_time(body.elapsed_seconds)


@router.get("/workouts/active/summary", response_model=WorkoutSummary)
async def workout_summary(session: Session = Depends(get_session)):
    with translate_errors():
        return await session.get_workout_summary()


@router.get("/workouts/active/suggestions", response_model=List[WorkoutSuggestion])
async def workout_suggestions(session: Session = Depends(get_session)):
    with translate_errors():
        return await session.get_workout_suggestions()


@router.post("/workouts/{workout_id}/activate", response_model=WorkoutSession)
async def activate_workout(workout_id: int, session: Session = Depends(get_session)):
    with translate_errors():
        await session.set_workout_id(workout_id)
        return await session.get_workout_session()


@router.delete("/workouts/{workout_id}", response_model=DeleteResponse)
async def delete_workout(workout_id: int, session: Session = Depends(get_session)):
    with translate_errors():
        deleted = await session.delete_workout(workout_id)
    if deleted == 0:
        raise HTTPException(status_code=404, detail=f"Workout session {workout_id} not found")
    return DeleteResponse(deleted=deleted)


# ============================================================================
# Natural-language input and sets
# ============================================================================

@router.post("/input", response_model=ModificationsResponse)
async def process_input(body: UserInputRequest, session: Session = Depends(get_session)):
    """
    Classify free-form input and apply it to the active workout.

    Returns 207 when only some of the classified commands could be applied.
    """
    try:
        modifications = await session.process_user_input(
            body.input,
            selected_set_id=body.selected_set_id,
            visible_set_ids=body.visible_set_ids,
        )
    except CommandBatchError as e:
        logger.warning(f"Input partially applied: {e}")
        payload = BatchErrorResponse(
            modifications=e.modifications,
            errors=[
                CommandFailure(index=index, command_type=command_type, error=str(error))
                for index, command_type, error in e.failures
            ],
        )
        return JSONResponse(status_code=207, content=payload.model_dump(mode="json"))
    except WorkoutLoggerError as e:
        logger.warning(f"Request failed: {type(e).__name__}: {e}")
        raise _http_exception(e) from e
    return ModificationsResponse(modifications=modifications)


@router.post("/sets", response_model=ModificationsResponse)
async def add_sets(body: ParsedSet, session: Session = Depends(get_session)):
    """Add sets from structured input, skipping classification."""
    with translate_errors():
        return ModificationsResponse(modifications=await session.add_set_from_parsed(body))


@router.patch("/sets/{set_id}", response_model=ModificationsResponse)
async def update_set(set_id: int, body: WorkoutSetUpdate, session: Session = Depends(get_session)):
    with translate_errors():
        return ModificationsResponse(modifications=await session.update_workout_set(set_id, body))


@router.delete("/sets/{set_id}", response_model=ModificationsResponse)
async def delete_set(set_id: int, session: Session = Depends(get_session)):
    with translate_errors():
        return ModificationsResponse(modifications=await session.delete_set(set_id))


# ============================================================================
# Exercises
# ============================================================================

@router.get("/exercises", response_model=List[Exercise])
async def list_exercises(session: Session = Depends(get_session)):
    with translate_errors():
        return await session.get_all_exercises()


@router.get("/exercises/{exercise_id}/sets", response_model=List[WorkoutSet])
async def exercise_history(
    exercise_id: int,
    limit: Optional[int] = Query(None, ge=1, description="Return only the latest N sets"),
    session: Session = Depends(get_session),
):
    with translate_errors():
        return await session.get_sets_for_exercise(exercise_id, limit)


# ============================================================================
# Equipment / exercise links
# ============================================================================

@router.post("/links/equipment", response_model=EquipmentLinksResponse)
async def equipment_links(body: EquipmentLinksRequest, session: Session = Depends(get_session)):
    """Exercises that can be done with a piece of equipment. Nothing is stored."""
    with translate_errors():
        exercises = await session.suggest_exercises_for_equipment(body.equipment)
    return EquipmentLinksResponse(equipment=body.equipment, exercises=exercises)


@router.post("/links/exercise", response_model=ExerciseLinksResponse)
async def exercise_links(body: ExerciseLinksRequest, session: Session = Depends(get_session)):
    """Equipment, worked muscles and related exercises for an exercise. Nothing is stored."""
    with translate_errors():
        links = await session.suggest_exercise_links(body.exercise)
    return ExerciseLinksResponse(
        exercise=body.exercise,
        equipment=links.equipment,
        muscles=links.muscle_links(),
        related_exercises=links.related_exercises,
    )
