"""
Resolve natural-language set references ("last bench press set", "that",
"2") to concrete set ids.

Everything here is pure: same description, sets and exercise map always give
the same answer.
"""
import logging
from typing import Dict, List, Mapping, Optional, Sequence

from workout_logger_api.models import WorkoutSet


logger = logging.getLogger(__name__)

MOST_RECENT_PHRASES = ("most recent", "last")
SECOND_MOST_RECENT_PHRASES = ("second to last", "second last")


def sort_most_recent_first(sets: Sequence[WorkoutSet]) -> List[WorkoutSet]:
    """Newest first by creation time; ties go to the higher id."""
    return sorted(sets, key=lambda s: (s.created_at, s.id), reverse=True)


def _first_ordinal(description: str) -> Optional[int]:
    for token in description.split():
        if token.isdigit():
            return int(token)
    return None


def _pick_ordinal(sets: Sequence[WorkoutSet], ordinal: Optional[int]) -> Optional[int]:
    if ordinal is not None and 0 < ordinal <= len(sets):
        return sets[ordinal - 1].id
    return None


def _says_second_to_last(description: str) -> bool:
    return any(phrase in description for phrase in SECOND_MOST_RECENT_PHRASES)


def _says_most_recent(description: str) -> bool:
    return description == "that" or any(phrase in description for phrase in MOST_RECENT_PHRASES)


def _match_exercise(description: str, exercise_map: Mapping[int, str]) -> Optional[int]:
    """Exercise id whose name appears in the description; the longest name wins."""
    best_id = None
    best_len = 0
    for exercise_id, name in exercise_map.items():
        lowered = name.lower().strip()
        if lowered and lowered in description and len(lowered) > best_len:
            best_id = exercise_id
            best_len = len(lowered)
    return best_id


def resolve_set_id_from_description(
    description: str,
    sets: Sequence[WorkoutSet],
    exercise_map: Mapping[int, str],
) -> Optional[int]:
    """
    Resolve a description to a set id, or None when nothing matches.

    Rules, in order:
      1. A known exercise name inside the description narrows the search to
         that exercise: "second to last" picks its second newest set,
         "last"/"most recent" its newest, and a bare integer N its Nth newest.
         An out-of-range ordinal falls through to rule 4.
      2. "second to last" / "second last" picks the second newest set overall.
      3. "last", "most recent" or exactly "that" picks the newest set overall.
      4. A bare integer N picks the Nth newest set overall.
      5. Anything else is unresolved.

    Args:
        description: Free-text reference, matched case-insensitively
        sets: Sets of the current workout, in any order
        exercise_map: Exercise id -> exercise name
    """
    desc = description.lower().strip()
    ordered = sort_most_recent_first(sets)
    ordinal = _first_ordinal(desc)

    exercise_id = _match_exercise(desc, exercise_map)
    if exercise_id is not None:
        exercise_sets = [s for s in ordered if s.exercise_id == exercise_id]
        if _says_second_to_last(desc):
            return exercise_sets[1].id if len(exercise_sets) > 1 else None
        if _says_most_recent(desc):
            return exercise_sets[0].id if exercise_sets else None
        resolved = _pick_ordinal(exercise_sets, ordinal)
        if resolved is not None:
            return resolved
    elif _says_second_to_last(desc):
        return ordered[1].id if len(ordered) > 1 else None
    elif _says_most_recent(desc):
        return ordered[0].id if ordered else None

    resolved = _pick_ordinal(ordered, ordinal)
    if resolved is None:
        logger.debug(f"No set matched description {description!r}")
    return resolved


def exercise_name_map(exercises) -> Dict[int, str]:
    return {exercise.id: exercise.name for exercise in exercises}
