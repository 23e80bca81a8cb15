"""
Workout session: owns the active workout pointer and exposes the operations
the API layer calls.
"""
import asyncio
import json
import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence, Tuple

from workout_logger_api.ai.llm_gateway import LLMGateway
from workout_logger_api.commands import ParsedSet
from workout_logger_api.errors import NoActiveWorkoutError, NotFoundError
from workout_logger_api.models import (
    ActiveWorkoutState,
    Exercise,
    Modification,
    WorkoutSession,
    WorkoutSet,
    WorkoutSetUpdate,
    WorkoutStatus,
    WorkoutSuggestion,
    WorkoutSummary,
)
from workout_logger_api.services.context_builder import build_workout_context_string
from workout_logger_api.services.exercise_resolver import ExerciseResolver
from workout_logger_api.services.llm_tasks import (
    ExerciseLinks,
    classify_commands,
    generate_equipment_to_exercise_links,
    generate_exercise_to_equipment_and_muscles,
    generate_workout_suggestions,
    generate_workout_summary,
    parse_set_string,
)
from workout_logger_api.services.prompt_builder import PromptBuilder, PromptContext
from workout_logger_api.session.executor import CommandExecutor
from workout_logger_api.storage.base import WorkoutStore


logger = logging.getLogger(__name__)

EMPTY_WORKOUT_SUMMARY = WorkoutSummary(message="No exercises added yet.", emoji="✨")
NO_PAST_PERFORMANCE = "No significant past performance data available."
PAST_PERFORMANCE_LIMIT = 10


def _parse_cached_summary(raw: Optional[str]) -> Optional[WorkoutSummary]:
    if not raw:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, dict):
        return None
    message, emoji = data.get("message"), data.get("emoji")
    if isinstance(message, str) and isinstance(emoji, str):
        return WorkoutSummary(message=message, emoji=emoji)
    return None


class Session:
    """
    Single implicit user session.

    The active workout id lives behind an asyncio.Lock and is only written by
    the lifecycle operations (new, activate, complete, delete).
    """

    def __init__(
        self,
        store: WorkoutStore,
        llm: LLMGateway,
        request_string_owner: Optional[str] = None,
        rpe_scale: Optional[str] = None,
    ):
        self.store = store
        self.llm = llm
        self.rpe_scale = rpe_scale
        self.resolver = ExerciseResolver(store)
        self.executor = CommandExecutor(store, self.resolver, request_string_owner)
        self._workout_id: Optional[int] = None
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Active workout pointer
    # ------------------------------------------------------------------

    async def get_workout_id(self) -> Optional[int]:
        async with self._lock:
            return self._workout_id

    async def _require_workout_id(self) -> int:
        workout_id = await self.get_workout_id()
        if workout_id is None:
            raise NoActiveWorkoutError()
        return workout_id

    async def set_workout_id(self, workout_id: int) -> None:
        """Make an existing workout the active one."""
        await self.store.get_workout_session(workout_id)
        async with self._lock:
            self._workout_id = workout_id
        logger.info(f"Active workout set to {workout_id}")

    async def restore_in_progress_workout(self) -> Optional[int]:
        """Re-attach to the in-progress workout left over from a previous run."""
        workout = await self.store.get_in_progress_workout()
        if workout is None:
            return None
        async with self._lock:
            self._workout_id = workout.id
        logger.info(f"Restored in-progress workout {workout.id}")
        return workout.id

    # ------------------------------------------------------------------
    # Workout lifecycle
    # ------------------------------------------------------------------

    async def new_workout(self, name: Optional[str] = None) -> bool:
        """
        Start a new workout and make it active.

        Any in-progress workout is force-completed first (duration 0).

        Returns:
            True if an in-progress workout had to be completed
        """
        existing = await self.store.get_in_progress_workout()
        if existing is not None:
            logger.info(f"Completing in-progress workout {existing.id} before starting a new one")
            await self.store.complete_workout_session(existing.id, 0)
            async with self._lock:
                if self._workout_id == existing.id:
                    self._workout_id = None

        workout = await self.store.create_workout_session(name)
        await self.set_workout_id(workout.id)
        return existing is not None

    async def complete_workout(self, duration_seconds: int) -> WorkoutSession:
        async with self._lock:
            workout_id = self._workout_id
            if workout_id is None:
                raise NoActiveWorkoutError("No active workout to complete")
            workout = await self.store.complete_workout_session(workout_id, duration_seconds)
            self._workout_id = None
        logger.info(f"Completed workout {workout_id} duration={duration_seconds}s")
        return workout

    async def update_workout_elapsed_time(self, elapsed_seconds: int) -> WorkoutSession:
        workout_id = await self._require_workout_id()
        return await self.store.update_workout_duration(workout_id, elapsed_seconds)

    async def delete_workout(self, workout_id: int) -> int:
        deleted = await self.store.delete_workout_session(workout_id)
        async with self._lock:
            if self._workout_id == workout_id:
                self._workout_id = None
        logger.info(f"Deleted workout {workout_id} (rows={deleted})")
        return deleted

    async def get_workout_session(self) -> WorkoutSession:
        return await self.store.get_workout_session(await self._require_workout_id())

    async def get_all_workouts(self, include_in_progress: bool = False) -> List[WorkoutSession]:
        if include_in_progress:
            return await self.store.get_all_workout_sessions()
        return await self.store.get_all_workout_sessions(WorkoutStatus.COMPLETED)

    async def get_in_progress_workout(self) -> Optional[WorkoutSession]:
        return await self.store.get_in_progress_workout()

    async def get_active_workout_state(self) -> ActiveWorkoutState:
        workout_id = await self._require_workout_id()
        return ActiveWorkoutState(
            workout=await self.store.get_workout_session(workout_id),
            exercises=await self.store.get_all_exercises(),
            sets=await self.store.get_sets_for_session(workout_id),
        )

    # ------------------------------------------------------------------
    # Sets and exercises
    # ------------------------------------------------------------------

    async def get_all_sets(self) -> List[WorkoutSet]:
        return await self.store.get_sets_for_session(await self._require_workout_id())

    async def get_all_exercises(self) -> List[Exercise]:
        return await self.store.get_all_exercises()

    async def get_sets_for_exercise(self, exercise_id: int, limit: Optional[int] = None) -> List[WorkoutSet]:
        await self.store.get_exercise(exercise_id)
        return await self.store.get_exercise_entries(exercise_id, limit)

    async def add_set_from_parsed(self, parsed: ParsedSet) -> List[Modification]:
        """Add sets from already-structured input, bypassing classification."""
        workout_id = await self._require_workout_id()
        return await self.executor.add_set(workout_id, parsed)

    async def _active_workout_sets(self, set_id: int) -> List[WorkoutSet]:
        """Sets of the active workout; raises NotFoundError unless set_id is one of them."""
        workout_id = await self._require_workout_id()
        sets = await self.store.get_sets_for_session(workout_id)
        if not any(s.id == set_id for s in sets):
            raise NotFoundError("Workout set", set_id)
        return sets

    async def update_workout_set(self, set_id: int, update: WorkoutSetUpdate) -> List[Modification]:
        await self._active_workout_sets(set_id)
        return await self.executor.update_set(set_id, update)

    async def delete_set(self, set_id: int) -> List[Modification]:
        sets = await self._active_workout_sets(set_id)
        return await self.executor.delete_set(set_id, sets)

    # ------------------------------------------------------------------
    # Natural-language input
    # ------------------------------------------------------------------

    async def build_workout_context_string(self) -> str:
        return await build_workout_context_string(self.store, await self.get_workout_id())

    async def process_user_input(
        self,
        input: str,
        selected_set_id: Optional[int] = None,
        visible_set_ids: Sequence[int] = (),
    ) -> List[Modification]:
        """
        Classify free-form input and apply the resulting commands.

        Raises:
            NoActiveWorkoutError: No workout is active
            LLMTransportError / LLMContentError: Classification failed; nothing was applied
            CommandBatchError: Some commands failed; the rest were applied
        """
        workout_id = await self._require_workout_id()
        workout = await self.store.get_workout_session(workout_id)
        snapshot = await self.executor.snapshot(workout_id)
        workout_context = await build_workout_context_string(self.store, workout_id)

        builder = PromptBuilder(
            PromptContext(
                known_exercises=list(snapshot.exercise_map.values()),
                selected_set_id=selected_set_id,
                visible_set_ids=list(visible_set_ids),
                current_summary=workout.summary,
                rpe_scale=self.rpe_scale,
            )
        )
        commands = await classify_commands(self.llm, builder, input, workout_context)
        if not commands:
            return []
        return await self.executor.execute_all(workout_id, commands, snapshot)

    async def parse_set(self, input: str) -> ParsedSet:
        """Parse one set description without storing anything."""
        return await parse_set_string(self.llm, await self._catalog_builder(), input)

    # ------------------------------------------------------------------
    # Equipment / exercise links
    # ------------------------------------------------------------------

    async def _catalog_builder(self) -> PromptBuilder:
        exercises = await self.store.get_all_exercises()
        return PromptBuilder(PromptContext(known_exercises=[e.name for e in exercises], rpe_scale=self.rpe_scale))

    async def suggest_exercises_for_equipment(self, equipment: str) -> List[str]:
        """Exercise names the model associates with a piece of equipment. Nothing is stored."""
        return await generate_equipment_to_exercise_links(self.llm, await self._catalog_builder(), equipment)

    async def suggest_exercise_links(self, exercise: str) -> ExerciseLinks:
        """Equipment, worked muscles and related exercises for one exercise. Nothing is stored."""
        return await generate_exercise_to_equipment_and_muscles(self.llm, await self._catalog_builder(), exercise)

    # ------------------------------------------------------------------
    # Summary and suggestions
    # ------------------------------------------------------------------

    async def _exercise_counts(self, workout_id: int) -> Tuple[List[WorkoutSet], Dict[int, str], Counter]:
        sets = await self.store.get_sets_for_session(workout_id)
        names = {e.id: e.name for e in await self.store.get_all_exercises()}
        counts = Counter(s.exercise_id for s in sets if s.exercise_id in names)
        return sets, names, counts

    async def get_workout_summary(self) -> WorkoutSummary:
        """Cached summary when valid, otherwise a freshly generated (and cached) one."""
        workout_id = await self._require_workout_id()
        workout = await self.store.get_workout_session(workout_id)
        cached = _parse_cached_summary(workout.summary)
        if cached is not None:
            return cached

        sets, names, counts = await self._exercise_counts(workout_id)
        if not counts:
            return EMPTY_WORKOUT_SUMMARY

        current_exercises = [(names[exercise_id], count) for exercise_id, count in counts.items()]
        detailed_exercises = []
        for exercise_id, count in counts.items():
            exercise_sets = [s for s in sets if s.exercise_id == exercise_id]
            avg_weight = sum(s.weight for s in exercise_sets) / len(exercise_sets)
            avg_reps = sum(s.reps for s in exercise_sets) / len(exercise_sets)
            rpes = [s.rpe for s in exercise_sets if s.rpe is not None]
            rpe_part = f" @{sum(rpes) / len(rpes):.1f}RPE" if rpes else ""
            detail = f"{names[exercise_id]}: {count} sets, avg {avg_weight:.1f}kg x {avg_reps:.0f} reps{rpe_part}"
            detailed_exercises.append((names[exercise_id], count, detail))

        builder = PromptBuilder(PromptContext(known_exercises=list(names.values()), rpe_scale=self.rpe_scale))
        summary = await generate_workout_summary(self.llm, builder, current_exercises, detailed_exercises)
        summary = WorkoutSummary(message=summary.message.strip(), emoji=summary.emoji.strip())
        await self.store.update_workout_summary(workout_id, json.dumps(summary.model_dump(), ensure_ascii=False))
        return summary

    async def get_workout_suggestions(self) -> List[WorkoutSuggestion]:
        workout_id = await self._require_workout_id()
        workout = await self.store.get_workout_session(workout_id)
        _, names, counts = await self._exercise_counts(workout_id)

        current_exercises = [(names[exercise_id], count) for exercise_id, count in counts.items()]
        performance_lines = []
        for exercise_id in counts:
            past_sets = await self.store.get_exercise_entries(exercise_id, PAST_PERFORMANCE_LIMIT)
            if not past_sets:
                continue
            avg_weight = sum(s.weight for s in past_sets) / len(past_sets)
            avg_reps = sum(s.reps for s in past_sets) // len(past_sets)
            performance_lines.append(
                f"{names[exercise_id]}: avg {avg_weight:.1f}kg x {avg_reps} reps (from {len(past_sets)} recent sets)"
            )
        past_performance = "\n".join(performance_lines) or NO_PAST_PERFORMANCE

        builder = PromptBuilder(PromptContext(known_exercises=list(names.values()), rpe_scale=self.rpe_scale))
        return await generate_workout_suggestions(
            self.llm, builder, current_exercises, workout.intention, past_performance
        )
