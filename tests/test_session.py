"""Tests for the workout session: lifecycle, NL input, summaries and suggestions."""
import json

import pytest

from workout_logger_api.ai.llm_gateway import LLMGateway
from workout_logger_api.commands import ParsedSet
from workout_logger_api.errors import (
    CommandBatchError,
    LLMContentError,
    NoActiveWorkoutError,
    NotFoundError,
    UnresolvedReferenceError,
)
from workout_logger_api.models import ModificationType, WorkoutSetUpdate, WorkoutStatus
from workout_logger_api.session import Session


def _session_with(store, responder):
    return Session(store, LLMGateway.mock(responder), request_string_owner="test")


class TestWorkoutLifecycle:
    @pytest.mark.asyncio
    async def test_new_workout_becomes_active(self, session):
        had_existing = await session.new_workout("Leg Day")

        assert had_existing is False
        workout = await session.get_workout_session()
        assert workout.name == "Leg Day"
        assert await session.get_workout_id() == workout.id

    @pytest.mark.asyncio
    async def test_new_workout_completes_previous(self, session, store):
        await session.new_workout("First")
        first_id = await session.get_workout_id()

        had_existing = await session.new_workout("Second")

        assert had_existing is True
        first = await store.get_workout_session(first_id)
        assert first.status == WorkoutStatus.COMPLETED.value
        assert first.duration_seconds == 0
        assert await session.get_workout_id() != first_id

    @pytest.mark.asyncio
    async def test_complete_clears_active_workout(self, active_session):
        workout = await active_session.complete_workout(2700)

        assert workout.status == WorkoutStatus.COMPLETED.value
        assert workout.duration_seconds == 2700
        assert await active_session.get_workout_id() is None
        with pytest.raises(NoActiveWorkoutError):
            await active_session.complete_workout(10)

    @pytest.mark.asyncio
    async def test_operations_need_an_active_workout(self, session):
        with pytest.raises(NoActiveWorkoutError):
            await session.get_all_sets()
        with pytest.raises(NoActiveWorkoutError):
            await session.process_user_input("bench 100x5")
        with pytest.raises(NoActiveWorkoutError):
            await session.update_workout_elapsed_time(60)

    @pytest.mark.asyncio
    async def test_elapsed_time_updates_duration(self, active_session):
        workout = await active_session.update_workout_elapsed_time(125)
        assert workout.duration_seconds == 125
        assert workout.status == WorkoutStatus.IN_PROGRESS.value

    @pytest.mark.asyncio
    async def test_activate_missing_workout(self, session):
        with pytest.raises(NotFoundError):
            await session.set_workout_id(12345)

    @pytest.mark.asyncio
    async def test_delete_active_workout_clears_pointer(self, active_session):
        workout_id = await active_session.get_workout_id()

        assert await active_session.delete_workout(workout_id) == 1
        assert await active_session.get_workout_id() is None

    @pytest.mark.asyncio
    async def test_restore_in_progress_workout(self, store, empty_commands_llm):
        workout = await store.create_workout_session("Left open")
        restarted = Session(store, empty_commands_llm)

        assert await restarted.restore_in_progress_workout() == workout.id
        assert await restarted.get_workout_id() == workout.id

    @pytest.mark.asyncio
    async def test_workout_listing(self, session):
        await session.new_workout("Done")
        await session.complete_workout(100)
        await session.new_workout("Open")

        assert [w.name for w in await session.get_all_workouts()] == ["Done"]
        assert [w.name for w in await session.get_all_workouts(include_in_progress=True)] == ["Open", "Done"]
        assert (await session.get_in_progress_workout()).name == "Open"


class TestProcessUserInput:
    @pytest.mark.asyncio
    async def test_empty_classification_changes_nothing(self, active_session):
        assert await active_session.process_user_input("how am I doing?") == []
        assert await active_session.get_all_sets() == []

    @pytest.mark.asyncio
    async def test_multi_set_add_of_new_exercise(self, store, gateway_for):
        session = Session(
            store,
            gateway_for(
                [
                    {
                        "command_type": "add_set",
                        "exercise": "Bench Press",
                        "weight": 100,
                        "reps": 5,
                        "set_count": 3,
                        "original_string": "3 sets of bench press 100kg x 5",
                    }
                ]
            ),
            request_string_owner="test",
        )
        await session.new_workout()

        modifications = await session.process_user_input("3 sets of bench press 100kg x 5")

        assert len(modifications) == 1
        modification = modifications[0]
        assert modification.modification_type == ModificationType.EXERCISE_ADDED
        assert len(modification.set_ids) == 3
        assert modification.set_id == modification.set_ids[0]
        assert modification.exercise.name == "Bench Press"

        sets = await session.get_all_sets()
        assert [s.set_index for s in sets] == [1, 2, 3]
        assert {s.request_string_id for s in sets} == {sets[0].request_string_id}
        assert all(s.weight == 100.0 and s.reps == 5 for s in sets)

    @pytest.mark.asyncio
    async def test_unresolved_remove_leaves_sets_intact(self, store, gateway_for):
        session = Session(
            store,
            gateway_for([{"command_type": "remove_set", "description": "the snatch I did yesterday"}]),
            request_string_owner="test",
        )
        await session.new_workout()
        await session.add_set_from_parsed(ParsedSet(exercise="Squat", weight=140.0, reps=3))

        with pytest.raises(CommandBatchError) as exc_info:
            await session.process_user_input("remove the snatch I did yesterday")

        (index, command_type, error), = exc_info.value.failures
        assert (index, command_type) == (0, "remove_set")
        assert isinstance(error, UnresolvedReferenceError)
        assert len(await session.get_all_sets()) == 1

    @pytest.mark.asyncio
    async def test_fenced_classifier_output(self, store):
        payload = json.dumps({"commands": [{"command_type": "add_set", "exercise": "Squat", "reps": 5}]})
        session = _session_with(store, lambda s, u: f"```json\n{payload}\n```")
        await session.new_workout()

        modifications = await session.process_user_input("squat 5")

        assert modifications[0].modification_type == ModificationType.EXERCISE_ADDED
        assert modifications[0].set.weight == 0.0

    @pytest.mark.asyncio
    async def test_invalid_classifier_output_applies_nothing(self, store):
        session = _session_with(store, lambda s, u: "I think you did bench press")
        await session.new_workout()

        with pytest.raises(LLMContentError):
            await session.process_user_input("bench")

        assert await session.get_all_sets() == []

    @pytest.mark.asyncio
    async def test_prompt_carries_selection_and_context(self, store):
        seen = {}

        def responder(system, user):
            seen["user"] = user
            return '{"commands": []}'

        session = _session_with(store, responder)
        await session.new_workout("Pull Day")
        added = await session.add_set_from_parsed(ParsedSet(exercise="Deadlift", weight=180.0, reps=3))

        await session.process_user_input("delete this set", selected_set_id=added[0].set_id, visible_set_ids=[9])

        assert f"Currently selected set ID: {added[0].set_id}" in seen["user"]
        assert "Visible set IDs: [9]" in seen["user"]
        assert "Name='Pull Day'" in seen["user"]
        assert "Exercise=Deadlift" in seen["user"]


class TestDirectSetOperations:
    @pytest.mark.asyncio
    async def test_update_and_delete(self, active_session):
        added = await active_session.add_set_from_parsed(ParsedSet(exercise="Row", weight=60.0, reps=10))
        set_id = added[0].set_id

        modified = await active_session.update_workout_set(set_id, WorkoutSetUpdate(reps=12))
        assert modified[0].modification_type == ModificationType.SET_MODIFIED
        assert modified[0].set.reps == 12

        removed = await active_session.delete_set(set_id)
        assert removed[0].modification_type == ModificationType.SET_REMOVED
        assert removed[0].exercise_id == added[0].exercise_id
        assert await active_session.get_all_sets() == []

    @pytest.mark.asyncio
    async def test_delete_set_outside_active_workout(self, active_session):
        with pytest.raises(NotFoundError):
            await active_session.delete_set(999)

    @pytest.mark.asyncio
    async def test_update_set_of_completed_workout(self, active_session, store):
        added = await active_session.add_set_from_parsed(ParsedSet(exercise="Row", weight=60.0, reps=10))
        old_id = added[0].set_id
        await active_session.complete_workout(600)
        await active_session.new_workout("Next")

        with pytest.raises(NotFoundError):
            await active_session.update_workout_set(old_id, WorkoutSetUpdate(reps=1))

        assert (await store.get_workout_set(old_id)).reps == 10

    @pytest.mark.asyncio
    async def test_sets_for_exercise(self, active_session):
        added = await active_session.add_set_from_parsed(ParsedSet(exercise="Row", weight=60.0, reps=10, set_count=4))
        exercise_id = added[0].exercise_id

        assert len(await active_session.get_sets_for_exercise(exercise_id)) == 4
        assert len(await active_session.get_sets_for_exercise(exercise_id, limit=2)) == 2
        with pytest.raises(NotFoundError):
            await active_session.get_sets_for_exercise(exercise_id + 100)

    @pytest.mark.asyncio
    async def test_active_workout_state(self, active_session):
        await active_session.add_set_from_parsed(ParsedSet(exercise="Row", weight=60.0, reps=10))

        state = await active_session.get_active_workout_state()

        assert state.workout.name == "Test Workout"
        assert [e.name for e in state.exercises] == ["Row"]
        assert len(state.sets) == 1

    @pytest.mark.asyncio
    async def test_parse_set_stores_nothing(self, store):
        session = _session_with(store, lambda s, u: '{"exercise": "Squat", "weight": 140, "reps": 3.0}')

        parsed = await session.parse_set("squat 140x3")

        assert parsed.reps == 3
        assert parsed.original_string == "squat 140x3"
        assert await store.get_all_exercises() == []


class TestWorkoutSummary:
    @pytest.mark.asyncio
    async def test_empty_workout_shortcut(self, store):
        calls = []
        session = _session_with(store, lambda s, u: calls.append(u) or "{}")
        await session.new_workout()

        summary = await session.get_workout_summary()

        assert summary.message == "No exercises added yet."
        assert summary.emoji == "✨"
        assert calls == []

    @pytest.mark.asyncio
    async def test_generated_summary_is_cached(self, store):
        calls = []

        def responder(system, user):
            calls.append(user)
            return '{"message": "  Heavy squats done  ", "emoji": " 🏋️ "}'

        session = _session_with(store, responder)
        await session.new_workout()
        await session.add_set_from_parsed(ParsedSet(exercise="Squat", weight=140.0, reps=3, rpe=9.0, set_count=2))

        first = await session.get_workout_summary()
        second = await session.get_workout_summary()

        assert first.message == "Heavy squats done"
        assert first.emoji == "🏋️"
        assert second == first
        assert len(calls) == 1
        assert "Squat: 2 sets, avg 140.0kg x 3 reps @9.0RPE" in calls[0]
        stored = json.loads((await session.get_workout_session()).summary)
        assert stored == {"message": "Heavy squats done", "emoji": "🏋️"}

    @pytest.mark.asyncio
    async def test_invalid_cached_summary_is_regenerated(self, store):
        session = _session_with(store, lambda s, u: '{"message": "Fresh", "emoji": "🆕"}')
        await session.new_workout()
        await session.add_set_from_parsed(ParsedSet(exercise="Squat", weight=100.0, reps=5))
        await store.update_workout_summary(await session.get_workout_id(), '{"message": 1}')

        assert (await session.get_workout_summary()).message == "Fresh"


class TestWorkoutSuggestions:
    @pytest.mark.asyncio
    async def test_suggestions_use_past_performance(self, store):
        seen = {}

        def responder(system, user):
            seen["user"] = user
            return json.dumps(
                {"suggestions": [{"title": "Increase Squat to 142.5kg", "suggestion_type": "progression"}]}
            )

        session = _session_with(store, responder)
        await session.new_workout()
        await session.add_set_from_parsed(ParsedSet(exercise="Squat", weight=140.0, reps=3))
        await session.add_set_from_parsed(ParsedSet(exercise="Squat", weight=140.0, reps=4))
        await store.update_workout_intention(await session.get_workout_id(), "strength")

        suggestions = await session.get_workout_suggestions()

        assert suggestions[0].title == "Increase Squat to 142.5kg"
        assert "- Squat (2 sets)" in seen["user"]
        assert "Squat: avg 140.0kg x 3 reps (from 2 recent sets)" in seen["user"]
        assert "Workout Intention: strength" in seen["user"]

    @pytest.mark.asyncio
    async def test_suggestions_for_empty_workout(self, store):
        seen = {}

        def responder(system, user):
            seen["user"] = user
            return '{"suggestions": []}'

        session = _session_with(store, responder)
        await session.new_workout()

        assert await session.get_workout_suggestions() == []
        assert "No significant past performance data available." in seen["user"]
        assert "Workout just starting" in seen["user"]


class TestExerciseLinks:
    @pytest.mark.asyncio
    async def test_equipment_suggestions_know_the_catalog(self, store):
        seen = {}

        def responder(system, user):
            seen["user"] = user
            return '["Bench Press", "Barbell Row"]'

        session = _session_with(store, responder)
        await session.new_workout()
        await session.add_set_from_parsed(ParsedSet(exercise="Bench Press", weight=80.0, reps=8))

        assert await session.suggest_exercises_for_equipment("Barbell") == ["Bench Press", "Barbell Row"]
        assert "Barbell" in seen["user"]
        assert "Bench Press" in seen["user"]
        assert len(await store.get_all_exercises()) == 1

    @pytest.mark.asyncio
    async def test_exercise_links_without_active_workout(self, store):
        payload = {
            "equipment": ["Pull-up Bar"],
            "muscles": [["Latissimus Dorsi", "primary", 0.9]],
            "related_exercises": ["Chin-up"],
        }
        session = _session_with(store, lambda s, u: json.dumps(payload))

        links = await session.suggest_exercise_links("Pull-up")

        assert links.equipment == ["Pull-up Bar"]
        assert links.muscle_links()[0].muscle == "Latissimus Dorsi"
        assert links.related_exercises == ["Chin-up"]
        assert await store.get_all_exercises() == []

    @pytest.mark.asyncio
    async def test_malformed_link_output(self, store):
        session = _session_with(store, lambda s, u: '{"equipment": "Barbell"}')

        with pytest.raises(LLMContentError):
            await session.suggest_exercise_links("Squat")
