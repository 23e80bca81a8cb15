"""Textual snapshot of the active workout for classification prompts."""
import json
import logging
from typing import Dict, List, Optional

from workout_logger_api.models import WorkoutSession, WorkoutSet
from workout_logger_api.services.reference_resolver import exercise_name_map, sort_most_recent_first
from workout_logger_api.storage.base import WorkoutStore


logger = logging.getLogger(__name__)

NO_ACTIVE_WORKOUT_CONTEXT = "No active workout session."
RECENT_SET_LIMIT = 10
HISTORY_SET_LIMIT = 10


def _rpe_suffix(rpe: Optional[float]) -> str:
    return f" @{rpe:.1f}RPE" if rpe is not None else ""


def _summary_line(workout: WorkoutSession) -> str:
    if workout.summary is None:
        return "Cached Summary → (none)"
    try:
        summary = json.loads(workout.summary)
    except json.JSONDecodeError:
        return "Cached Summary → (invalid JSON)"
    if not isinstance(summary, dict):
        return "Cached Summary → (invalid JSON)"
    message = summary.get("message") if isinstance(summary.get("message"), str) else ""
    emoji = summary.get("emoji") if isinstance(summary.get("emoji"), str) else ""
    return f"Cached Summary → message: \"{message}\" | emoji: {emoji}"


async def build_workout_context_string(store: WorkoutStore, workout_id: Optional[int]) -> str:
    """
    Render the active workout: header, cached summary, the newest sets, every
    set of the workout, and the all-time recent history of each exercise the
    workout touches.

    Built fresh on every call. Issues one history query per distinct
    exercise in the workout.
    """
    if workout_id is None:
        return NO_ACTIVE_WORKOUT_CONTEXT

    workout = await store.get_workout_session(workout_id)
    sets = await store.get_sets_for_session(workout_id)
    names = exercise_name_map(await store.get_all_exercises())

    lines: List[str] = [
        f"Current Workout: ID={workout.id}, Name={workout.name!r}",
        _summary_line(workout),
        "",
        "=== RECENT SETS (Most Recent First) ===",
    ]

    for position, workout_set in enumerate(sort_most_recent_first(sets)[:RECENT_SET_LIMIT], start=1):
        lines.append(
            f"  [{position}] Set ID={workout_set.id}, Exercise={names.get(workout_set.exercise_id, 'Unknown')}, "
            f"Weight={workout_set.weight:.1f}kg, Reps={workout_set.reps}, "
            f"Set Index={workout_set.set_index}{_rpe_suffix(workout_set.rpe)}"
        )
    lines.append("")

    lines.append("=== ALL SETS IN CURRENT WORKOUT ===")
    for workout_set in sets:
        lines.append(
            f"  Set ID={workout_set.id}, Exercise={names.get(workout_set.exercise_id, 'Unknown')}, "
            f"Weight={workout_set.weight:.1f}kg, Reps={workout_set.reps}, "
            f"Set Index={workout_set.set_index}{_rpe_suffix(workout_set.rpe)}, "
            f"Created={workout_set.created_at.isoformat()}"
        )
    lines.append("")

    lines.append(f"=== RECENT PERFORMANCE HISTORY (Past {HISTORY_SET_LIMIT} sets per exercise) ===")
    history = await _exercise_history(store, sets)
    for exercise_id, past_sets in history.items():
        name = names.get(exercise_id)
        if name is None or not past_sets:
            continue
        lines.append(f"  {name}:")
        for past_set in past_sets:
            lines.append(f"    {past_set.weight:.1f}kg x {past_set.reps} reps{_rpe_suffix(past_set.rpe)}")

    context = "\n".join(lines) + "\n"
    logger.debug(f"Built workout context workout={workout_id} sets={len(sets)} chars={len(context)}")
    return context


async def _exercise_history(store: WorkoutStore, sets: List[WorkoutSet]) -> Dict[int, List[WorkoutSet]]:
    # Workout order of first appearance keeps the output stable
    exercise_ids = list(dict.fromkeys(s.exercise_id for s in sets))
    return {
        exercise_id: await store.get_exercise_entries(exercise_id, HISTORY_SET_LIMIT)
        for exercise_id in exercise_ids
    }
