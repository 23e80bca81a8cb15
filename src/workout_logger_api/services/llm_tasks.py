"""
LLM-backed tasks: command classification, single-set parsing, link
suggestions, workout suggestions and summaries.

Each task renders its prompts with a PromptBuilder, calls the gateway's
`call_json` against a response model and returns the typed result.
"""
import logging
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from workout_logger_api.ai.llm_gateway import LLMGateway
from workout_logger_api.commands import Command, CommandList, ParsedSet
from workout_logger_api.models import WorkoutSuggestion, WorkoutSummary
from workout_logger_api.services.prompt_builder import LinkKind, PromptBuilder


logger = logging.getLogger(__name__)


class MuscleLink(BaseModel):
    """One (muscle, relation_type, strength) triple."""
    muscle: str
    relation_type: str
    strength: float


class ExerciseLinks(BaseModel):
    """Equipment, muscles and related exercises suggested for one exercise."""
    equipment: List[str] = Field(default_factory=list)
    muscles: List[Tuple[str, str, float]] = Field(default_factory=list)
    related_exercises: List[str] = Field(default_factory=list)

    def muscle_links(self) -> List[MuscleLink]:
        return [
            MuscleLink(muscle=name, relation_type=relation, strength=strength)
            for name, relation, strength in self.muscles
        ]


class SuggestionList(BaseModel):
    suggestions: List[WorkoutSuggestion] = Field(default_factory=list)


async def classify_commands(
    llm: LLMGateway,
    builder: PromptBuilder,
    input: str,
    workout_context: str,
) -> List[Command]:
    """
    Classify free-form input into a list of commands.

    An empty command list is a valid outcome and is returned as-is.

    Raises:
        LLMTransportError: The backend could not be reached
        LLMContentError: The model output does not match the command schema
    """
    logger.debug(f"classify_commands called input_len={len(input)} context_len={len(workout_context)}")
    system = builder.system_input_classification_prompt()
    user = builder.user_input_classification_prompt(input, workout_context)
    command_list = await llm.call_json(system, user, CommandList)
    if not command_list.commands:
        logger.warning(f"classify_commands returned no commands for input: {input!r}")
    else:
        logger.info(f"classify_commands returned {len(command_list.commands)} commands")
    return command_list.commands


async def parse_set_string(llm: LLMGateway, builder: PromptBuilder, input: str) -> ParsedSet:
    """Parse a single set description; the original input is attached to the result."""
    logger.debug(f"parse_set_string called input_len={len(input)}")
    parsed = await llm.call_json(builder.system_parse_prompt(), builder.user_parse_prompt(input), ParsedSet)
    parsed = parsed.model_copy(update={"original_string": input})
    logger.info(f"parse_set_string parsed exercise={parsed.exercise!r} reps={parsed.reps} rpe={parsed.rpe}")
    return parsed


async def generate_equipment_to_exercise_links(
    llm: LLMGateway,
    builder: PromptBuilder,
    equipment: str,
) -> List[str]:
    logger.debug(f"generate_equipment_to_exercise_links called equipment={equipment!r}")
    system = builder.system_link_prompt(LinkKind.EQUIPMENT_TO_EXERCISES)
    user = builder.user_link_prompt_equipment(equipment)
    exercises = await llm.call_json(system, user, List[str])
    logger.info(f"generate_equipment_to_exercise_links returned {len(exercises)} suggestions")
    return exercises


async def generate_exercise_to_equipment_and_muscles(
    llm: LLMGateway,
    builder: PromptBuilder,
    exercise: str,
) -> ExerciseLinks:
    logger.debug(f"generate_exercise_to_equipment_and_muscles called exercise={exercise!r}")
    system = builder.system_link_prompt(LinkKind.EXERCISE_TO_EQUIPMENT_MUSCLES)
    user = builder.user_link_prompt_exercise(exercise)
    links = await llm.call_json(system, user, ExerciseLinks)
    logger.info(
        f"generate_exercise_to_equipment_and_muscles parsed equipment={len(links.equipment)} "
        f"muscles={len(links.muscles)} related_exercises={len(links.related_exercises)}"
    )
    return links


async def generate_workout_suggestions(
    llm: LLMGateway,
    builder: PromptBuilder,
    current_exercises: Sequence[Tuple[str, int]],
    intention: Optional[str],
    past_performance: str,
) -> List[WorkoutSuggestion]:
    logger.debug(
        f"generate_workout_suggestions called exercises={len(current_exercises)} intention={intention!r}"
    )
    system = builder.system_suggestion_prompt()
    user = builder.user_suggestion_prompt(current_exercises, intention, past_performance)
    result = await llm.call_json(system, user, SuggestionList)
    logger.info(f"generate_workout_suggestions returned {len(result.suggestions)} suggestions")
    return result.suggestions


async def generate_workout_summary(
    llm: LLMGateway,
    builder: PromptBuilder,
    current_exercises: Sequence[Tuple[str, int]],
    detailed_exercises: Sequence[Tuple[str, int, str]],
) -> WorkoutSummary:
    logger.debug(f"generate_workout_summary called exercises={len(current_exercises)}")
    system = builder.system_summary_prompt()
    user = builder.user_summary_prompt(current_exercises, detailed_exercises)
    summary = await llm.call_json(system, user, WorkoutSummary)
    logger.info(f"generate_workout_summary returned emoji={summary.emoji!r}")
    return summary
