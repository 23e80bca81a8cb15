"""
Command execution: turn classified commands into storage mutations and the
Modifications describing them.
"""
import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from workout_logger_api.commands import (
    AddSetCommand,
    ChangeIntentionCommand,
    Command,
    EditSetCommand,
    ParsedSet,
    RemoveSetCommand,
    UnknownCommand,
    UpdateSummaryCommand,
)
from workout_logger_api.config import settings
from workout_logger_api.errors import CommandBatchError, NotFoundError, UnresolvedReferenceError
from workout_logger_api.models import Exercise, Modification, ModificationType, WorkoutSet, WorkoutSetUpdate
from workout_logger_api.services.exercise_resolver import ExerciseResolver
from workout_logger_api.services.reference_resolver import resolve_set_id_from_description
from workout_logger_api.storage.base import WorkoutStore


logger = logging.getLogger(__name__)


@dataclass
class BatchSnapshot:
    """Workout state captured once before a batch runs; references resolve against it."""
    sets: List[WorkoutSet] = field(default_factory=list)
    exercise_map: Dict[int, str] = field(default_factory=dict)


class CommandExecutor:
    """Applies commands to one workout through the storage contract."""

    def __init__(
        self,
        store: WorkoutStore,
        resolver: ExerciseResolver,
        request_string_owner: Optional[str] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.request_string_owner = request_string_owner or settings.REQUEST_STRING_OWNER

    async def snapshot(self, workout_id: int) -> BatchSnapshot:
        sets = await self.store.get_sets_for_session(workout_id)
        exercises = await self.store.get_all_exercises()
        return BatchSnapshot(sets=sets, exercise_map={e.id: e.name for e in exercises})

    async def execute_all(
        self,
        workout_id: int,
        commands: Sequence[Command],
        snapshot: Optional[BatchSnapshot] = None,
    ) -> List[Modification]:
        """
        Run every command concurrently and collect the results.

        A failing command does not stop its siblings. When any command fails,
        CommandBatchError is raised carrying the Modifications of the commands
        that succeeded together with each failure.
        """
        if not commands:
            return []
        if snapshot is None:
            snapshot = await self.snapshot(workout_id)

        results = await asyncio.gather(
            *(self.execute(workout_id, command, snapshot) for command in commands),
            return_exceptions=True,
        )

        modifications: List[Modification] = []
        failures = []
        for index, (command, result) in enumerate(zip(commands, results)):
            if isinstance(result, Exception):
                logger.error(f"Command {index} ({command.command_type}) failed: {result}")
                failures.append((index, command.command_type, result))
            elif isinstance(result, BaseException):
                raise result
            else:
                modifications.extend(result)

        if failures:
            raise CommandBatchError(failures, modifications)
        return modifications

    async def execute(self, workout_id: int, command: Command, snapshot: BatchSnapshot) -> List[Modification]:
        if isinstance(command, AddSetCommand):
            return await self.add_set(workout_id, command.to_parsed_set())
        if isinstance(command, RemoveSetCommand):
            return await self.remove_set(command, snapshot)
        if isinstance(command, EditSetCommand):
            return await self.edit_set(command, snapshot)
        if isinstance(command, UpdateSummaryCommand):
            await self.update_summary(workout_id, command)
            return []
        if isinstance(command, ChangeIntentionCommand):
            await self.store.update_workout_intention(workout_id, command.intention.strip())
            return []
        if isinstance(command, UnknownCommand):
            logger.warning(f"Unknown command, adding as set: {command.input!r}")
            return await self.add_set(workout_id, command.to_parsed_set())
        raise TypeError(f"Unsupported command: {command!r}")

    async def add_set(self, workout_id: int, parsed: ParsedSet) -> List[Modification]:
        exercise = await self.resolver.get_or_create_exercise(parsed.exercise)
        weight = parsed.weight if parsed.weight is not None else 0.0
        reps = parsed.reps if parsed.reps is not None else 0
        count = max(1, parsed.set_count or 1)

        async with self.store.transaction():
            is_new = await self.store.count_sets_for_exercise_in_session(workout_id, exercise.id) == 0
            request = await self.store.create_request_string_for_username(
                self.request_string_owner, parsed.request_text()
            )
            if count > 1:
                created = await self.store.add_multiple_sets_to_workout(
                    workout_id, exercise.id, request.id, weight, reps, parsed.rpe, count
                )
            else:
                created = [
                    await self.store.add_workout_set(workout_id, exercise.id, request.id, weight, reps, parsed.rpe)
                ]

        logger.info(
            f"Added {len(created)} set(s) of {exercise.name!r} to workout {workout_id} "
            f"(new_to_workout={is_new})"
        )
        return self._added_modifications(exercise, created, is_new)

    @staticmethod
    def _added_modifications(exercise: Exercise, created: List[WorkoutSet], is_new: bool) -> List[Modification]:
        if is_new:
            return [
                Modification(
                    modification_type=ModificationType.EXERCISE_ADDED,
                    set_id=created[0].id,
                    set_ids=[s.id for s in created],
                    exercise_id=exercise.id,
                    set=created[0],
                    sets=created,
                    exercise=exercise,
                )
            ]
        return [
            Modification(
                modification_type=ModificationType.SET_ADDED,
                set_id=s.id,
                set_ids=[s.id],
                exercise_id=exercise.id,
                set=s,
                sets=[s],
                exercise=exercise,
            )
            for s in created
        ]

    def _resolve_target(self, command_type: str, set_id: Optional[int], description: Optional[str],
                        snapshot: BatchSnapshot) -> int:
        if set_id is not None:
            # Only sets of the active workout can be targeted
            if not any(s.id == set_id for s in snapshot.sets):
                raise UnresolvedReferenceError(command_type, f"set {set_id} is not in the active workout")
            return set_id
        if description:
            resolved = resolve_set_id_from_description(description, snapshot.sets, snapshot.exercise_map)
            if resolved is not None:
                logger.debug(f"Resolved {description!r} to set {resolved}")
                return resolved
        raise UnresolvedReferenceError(command_type, description)

    async def remove_set(self, command: RemoveSetCommand, snapshot: BatchSnapshot) -> List[Modification]:
        set_id = self._resolve_target(command.command_type, command.set_id, command.description, snapshot)
        return await self.delete_set(set_id, snapshot.sets)

    async def delete_set(self, set_id: int, known_sets: Sequence[WorkoutSet] = ()) -> List[Modification]:
        """Delete a set; the exercise id comes from the pre-delete state."""
        exercise_id = next((s.exercise_id for s in known_sets if s.id == set_id), None)
        if exercise_id is None:
            exercise_id = (await self.store.get_workout_set(set_id)).exercise_id
        deleted = await self.store.delete_workout_set(set_id)
        if deleted == 0:
            # Already removed, e.g. by a sibling command resolving to the same set
            raise NotFoundError("Workout set", set_id)
        logger.info(f"Removed set {set_id}")
        return [
            Modification(
                modification_type=ModificationType.SET_REMOVED,
                set_id=set_id,
                set_ids=[set_id],
                exercise_id=exercise_id,
            )
        ]

    async def edit_set(self, command: EditSetCommand, snapshot: BatchSnapshot) -> List[Modification]:
        set_id = self._resolve_target(command.command_type, command.set_id, command.description, snapshot)

        changes = {}
        if command.exercise:
            exercise = await self.resolver.get_or_create_exercise(command.exercise)
            changes["exercise_id"] = exercise.id
        if command.weight is not None:
            changes["weight"] = command.weight
        if command.reps is not None:
            changes["reps"] = command.reps
        if command.rpe is not None:
            changes["rpe"] = command.rpe

        return await self.update_set(set_id, WorkoutSetUpdate(**changes))

    async def update_set(self, set_id: int, update: WorkoutSetUpdate) -> List[Modification]:
        updated = await self.store.update_workout_set(set_id, update)
        exercise = await self.store.get_exercise(updated.exercise_id)
        logger.info(f"Modified set {set_id} fields={sorted(update.changes())}")
        return [
            Modification(
                modification_type=ModificationType.SET_MODIFIED,
                set_id=set_id,
                set_ids=[set_id],
                exercise_id=updated.exercise_id,
                set=updated,
                sets=[updated],
                exercise=exercise,
            )
        ]

    async def update_summary(self, workout_id: int, command: UpdateSummaryCommand) -> None:
        summary_json = json.dumps(
            {"message": command.message.strip(), "emoji": command.emoji.strip()},
            ensure_ascii=False,
        )
        await self.store.update_workout_summary(workout_id, summary_json)
