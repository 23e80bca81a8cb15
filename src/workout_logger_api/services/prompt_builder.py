"""
Prompt construction for every LLM task.

PromptBuilder is pure: it renders system/user prompt strings from a bounded
PromptContext and never talks to the model or the store.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from workout_logger_api.config import settings


logger = logging.getLogger(__name__)

DEFAULT_MAX_EXAMPLES = 3
DEFAULT_MAX_EXAMPLE_CHARS = 1500

DEFAULT_RPE_SCALE = (
    "RPE is rate of perceived exertion: 0 is No effort, 1 Very light, 2 to 3 Light, "
    "4 to 6 Moderate, 7 to 8 Vigorous, 9 Very Hard, and 10 is Maximum Effort. "
    "The scale can also be read as reps in reserve: one rep in reserve is 9 (10 minus 1), "
    "two reps in reserve is 8, etc. The user may say \"one rep max\" indicating 0 reps in "
    "reserve and an RPE of 10."
)


@dataclass
class ParseExample:
    input: str
    output_json: str


@dataclass
class EquipmentToExercisesExample:
    equipment: str
    result_json: str


@dataclass
class ExerciseToEquipmentExample:
    exercise: str
    result_json: str


class LinkKind(str, Enum):
    EQUIPMENT_TO_EXERCISES = "equipment_to_exercises"
    EXERCISE_TO_EQUIPMENT_MUSCLES = "exercise_to_equipment_muscles"


@dataclass
class PromptContext:
    """Bounded context injected into prompts."""
    known_exercises: List[str] = field(default_factory=list)
    known_equipment: List[str] = field(default_factory=list)
    known_muscles: List[str] = field(default_factory=list)
    parse_examples: List[ParseExample] = field(default_factory=list)
    equipment_examples: List[EquipmentToExercisesExample] = field(default_factory=list)
    exercise_examples: List[ExerciseToEquipmentExample] = field(default_factory=list)
    max_examples: int = DEFAULT_MAX_EXAMPLES
    max_example_chars: int = DEFAULT_MAX_EXAMPLE_CHARS
    # "this set"
    selected_set_id: Optional[int] = None
    # "all the sets I can see"
    visible_set_ids: List[int] = field(default_factory=list)
    current_summary: Optional[str] = None
    rpe_scale: Optional[str] = None


def _examples_block(pairs: Sequence[Tuple[str, str]], template: str, max_examples: int, max_chars: int) -> str:
    """Render at most max_examples examples while staying under max_chars."""
    block = ""
    count = 0
    for first, second in pairs:
        if count >= max_examples:
            break
        if len(block) + len(first) + len(second) > max_chars:
            break
        block += template.format(first, second)
        count += 1
    logger.debug(f"examples block returning {count} examples")
    return block


class PromptBuilder:
    """Renders system and user prompts for each LLM task."""

    CLASSIFICATION_PROMPT = """You are a command classifier for a workout tracking app. Analyze the user input and return the commands to execute.

Return a JSON object with a "commands" array. Each command must be fully parsed with all fields extracted and must carry a "command_type".

Command types:
1. "add_set" - Add one or more workout sets. Fields: exercise (string), weight (number|null), reps (integer|null), rpe (number|null), set_count (integer|null, defaults to 1), tags (array of strings), aoi (string|null), original_string (string)
   - "3 sets of bench press 100kg x 5" is ONE add_set command with set_count=3
   - Parse exercise names, weights, reps and RPE from natural language
   - {rpe_scale}
   - Use known exercises from context when possible

2. "remove_set" - Remove a set. Fields: set_id (integer|null), description (string|null)
   - If set_id is known, use it directly
   - Otherwise give a description (e.g., "last bench press set") and the backend will resolve it
   - "remove the last 2 sets" is two remove_set commands ("last set", "second to last set")
   - If the user says "this set" and a currently selected set ID is provided, use that set_id
   - If the user says "all the sets I can see" and visible set IDs are provided, return one remove_set per visible set_id

3. "edit_set" - Edit an existing set. Fields: set_id (integer|null), description (string|null), exercise (string|null), weight (number|null), reps (integer|null), rpe (number|null)
   - Only include fields that should change; leave the rest null
   - "change last bench press to 105kg" -> description "last bench press set", weight 105.0
   - "no that should be 80kg" -> description "most recent set", weight 80.0
   - If the user says "this set" and a currently selected set ID is provided, use that set_id

4. "update_summary" - Refresh the short workout summary shown to the user. Fields: message (string), emoji (string)
   - Use when the user states a goal or focus for the workout, or asks to update the summary
   - message is one encouraging sentence about the workout so far; emoji is a single emoji

5. "unknown" - Fallback for input that fits no other type. Fields: input (string)

Examples:
- "3 sets of bench press 100kg x 5" -> {"commands": [{"command_type": "add_set", "exercise": "Bench Press", "weight": 100.0, "reps": 5, "rpe": null, "set_count": 3, "tags": [], "aoi": null, "original_string": "3 sets of bench press 100kg x 5"}]}
- "squat 140 for 3, one rep left in the tank" -> {"commands": [{"command_type": "add_set", "exercise": "Squat", "weight": 140.0, "reps": 3, "rpe": 9.0, "set_count": 1, "tags": [], "aoi": null, "original_string": "squat 140 for 3, one rep left in the tank"}]}
- "remove the last 2 sets" -> {"commands": [{"command_type": "remove_set", "set_id": null, "description": "last set"}, {"command_type": "remove_set", "set_id": null, "description": "second to last set"}]}
- "change last bench press to 105kg" -> {"commands": [{"command_type": "edit_set", "set_id": null, "description": "last bench press set", "exercise": null, "weight": 105.0, "reps": null, "rpe": null}]}
- "today is all about legs" -> {"commands": [{"command_type": "update_summary", "message": "Leg day - let's build those wheels!", "emoji": "🦵"}]}

Return only valid JSON: {"commands": [...]}"""

    PARSE_PROMPT = (
        "You are a precise workout set parser. Return only a single JSON object matching the schema: "
        "{\"exercise\": string, \"weight\": float|null, \"reps\": integer|null, \"rpe\": float|null, "
        "\"set_count\": integer|null, \"tags\": [string], \"aoi\": string|null}. "
        "'reps' and 'set_count' must be integers."
    )

    EQUIPMENT_LINK_PROMPT = (
        "Given a piece of equipment, return a JSON array of exercise names that typically use "
        "that equipment. Return only a JSON array of strings."
    )

    EXERCISE_LINK_PROMPT = (
        "Given an exercise name, return a JSON object with keys \"equipment\", \"muscles\", "
        "\"related_exercises\". \"equipment\" is an array of strings. \"muscles\" is an array of "
        "3-element arrays [muscle_name (string), relation_type (string, e.g. \"primary\", "
        "\"secondary\"), strength (number between 0.0 and 1.0)]. \"related_exercises\" is an array "
        "of names of related exercises. Return only valid JSON and nothing else."
    )

    SUGGESTION_PROMPT = """You are an expert fitness coach providing actionable workout suggestions. Your suggestions must be SPECIFIC and ACTIONABLE, not vague general advice.

Return a JSON object with a "suggestions" array. Each suggestion has:
- "title" (string): A specific, actionable suggestion
- "subtitle" (string|null): Additional context or details
- "suggestion_type" (one of: "exercise", "progression", "volume", "accessory", "completion")
- "exercise_name" (string|null): For exercise or progression suggestions, the exercise name
- "reasoning" (string|null): Brief explanation

GOOD EXAMPLES:
{"title": "Add Barbell Rows", "subtitle": "3 sets of 8-10 reps @7-8 RPE", "suggestion_type": "exercise", "exercise_name": "Barbell Row", "reasoning": "Balances the pressing work you've done"}
{"title": "Increase Bench Press to 87.5kg", "subtitle": "You've been doing 85kg x 5, try 87.5kg x 4-5 @8 RPE", "suggestion_type": "progression", "exercise_name": "Bench Press", "reasoning": "2.5kg increase based on your recent performance"}
{"title": "Consider wrapping up", "subtitle": "4 heavy compounds and 3 accessories is good volume for today", "suggestion_type": "completion", "reasoning": "High volume and intensity already achieved"}

BAD EXAMPLES (DO NOT DO THIS):
- {"title": "Do progressive overload"} - Too vague
- {"title": "Focus on form"} - Not actionable
- {"title": "Try a new exercise"} - Doesn't specify which

Base all suggestions on the past performance data provided, consider the workout intention if given, and balance muscle groups.

Return only valid JSON."""

    SUMMARY_PROMPT = """You are an upbeat training partner summarizing a workout in progress.

Return a JSON object: {"message": string, "emoji": string}
- "message": one or two short sentences describing what has been done so far and its focus (e.g., upper body push, heavy lower body). Mention standout lifts when relevant.
- "emoji": exactly one emoji that captures the session.

Return only valid JSON."""

    def __init__(self, ctx: Optional[PromptContext] = None):
        self.ctx = ctx or PromptContext()
        logger.debug(
            f"PromptBuilder created with known_exercises={len(self.ctx.known_exercises)} "
            f"known_equipment={len(self.ctx.known_equipment)} known_muscles={len(self.ctx.known_muscles)}"
        )

    @property
    def rpe_scale(self) -> str:
        return self.ctx.rpe_scale or settings.RPE_SCALE_TEXT or DEFAULT_RPE_SCALE

    # ------------------------------------------------------------------
    # Input classification
    # ------------------------------------------------------------------

    def system_input_classification_prompt(self) -> str:
        return self.CLASSIFICATION_PROMPT.replace("{rpe_scale}", self.rpe_scale)

    def user_input_classification_prompt(self, input: str, workout_context: str) -> str:
        parts = [f"User input: \"{input}\""]

        if self.ctx.selected_set_id is not None:
            parts.append(
                f"Currently selected set ID: {self.ctx.selected_set_id} "
                f"(when user says 'this set', they mean set ID {self.ctx.selected_set_id})"
            )

        if self.ctx.visible_set_ids:
            visible = ", ".join(str(set_id) for set_id in self.ctx.visible_set_ids)
            parts.append(
                f"Visible set IDs: [{visible}] "
                "(when user says 'all the sets I can see' or similar, they mean these set IDs)"
            )

        if self.ctx.current_summary:
            parts.append(f"Current workout summary: {self.ctx.current_summary}")

        parts.append(f"Workout Context:\n{workout_context}")
        parts.append(
            "Analyze the input and return a JSON object {\"commands\": [...]} with the commands "
            "to execute. All fields should be fully parsed."
        )
        return "\n\n".join(parts)

    # ------------------------------------------------------------------
    # Single set parsing
    # ------------------------------------------------------------------

    def system_parse_prompt(self) -> str:
        return f"{self.PARSE_PROMPT} {self.rpe_scale}"

    def user_parse_prompt(self, input: str) -> str:
        known = ""
        if self.ctx.known_exercises:
            known = f"\nKnown exercises: {', '.join(self.ctx.known_exercises)}\n"
        examples = _examples_block(
            [(ex.input, ex.output_json) for ex in self.ctx.parse_examples],
            "Input: \"{}\"\nOutput:\n{}\n\n",
            self.ctx.max_examples,
            self.ctx.max_example_chars,
        )
        return (
            f"Parse the following workout log:\n{input}\n{known}{examples}\n"
            "Return only valid JSON matching the schema."
        )

    # ------------------------------------------------------------------
    # Equipment / exercise links
    # ------------------------------------------------------------------

    def system_link_prompt(self, kind: LinkKind) -> str:
        if kind == LinkKind.EQUIPMENT_TO_EXERCISES:
            return self.EQUIPMENT_LINK_PROMPT
        return self.EXERCISE_LINK_PROMPT

    def user_link_prompt_equipment(self, equipment: str) -> str:
        known = ""
        if self.ctx.known_exercises:
            known = f"Known exercises: {', '.join(self.ctx.known_exercises)}\n"
        examples = _examples_block(
            [(ex.equipment, ex.result_json) for ex in self.ctx.equipment_examples],
            "Equipment: {}\nExercises: {}\n\n",
            self.ctx.max_examples,
            self.ctx.max_example_chars,
        )
        return (
            f"Equipment: {equipment}\n{known}{examples}\n"
            "Return the most likely exercises (names) that use this equipment as a JSON array."
        )

    def user_link_prompt_exercise(self, exercise: str) -> str:
        sections = [f"Exercise: {exercise}\n"]
        if self.ctx.known_equipment:
            sections.append(f"Known equipment: {', '.join(self.ctx.known_equipment)}\n")
        if self.ctx.known_muscles:
            sections.append(f"Known muscles: {', '.join(self.ctx.known_muscles)}\n")
        if self.ctx.known_exercises:
            sections.append(f"Known exercises: {', '.join(self.ctx.known_exercises)}\n")
        sections.append(
            "Return JSON like: {\"equipment\": [\"...\"], \"muscles\": [[\"Muscle Name\", "
            "\"relation_type\", strength], ...], \"related_exercises\": [\"...\"]}\n"
        )
        sections.append(
            _examples_block(
                [(ex.exercise, ex.result_json) for ex in self.ctx.exercise_examples],
                "Exercise: {}\nResult: {}\n\n",
                self.ctx.max_examples,
                self.ctx.max_example_chars,
            )
        )
        return "".join(sections)

    # ------------------------------------------------------------------
    # Suggestions and summaries
    # ------------------------------------------------------------------

    def system_suggestion_prompt(self) -> str:
        return self.SUGGESTION_PROMPT

    def user_suggestion_prompt(
        self,
        current_exercises: Sequence[Tuple[str, int]],
        intention: Optional[str],
        past_performance: str,
    ) -> str:
        """current_exercises holds (exercise_name, set_count) pairs."""
        exercises_list = "\n".join(f"- {name} ({count} sets)" for name, count in current_exercises)
        intention_section = f"\nWorkout Intention: {intention}\n" if intention else ""

        total_sets = sum(count for _, count in current_exercises)
        if total_sets > 15:
            note = (
                "\nNOTE: This workout already has significant volume. Consider whether to suggest "
                "completion or lighter accessory work.\n"
            )
        elif not current_exercises:
            note = "\nNOTE: Workout just starting. Focus on exercise recommendations based on intention.\n"
        else:
            note = (
                "\nNOTE: Room for more work. Consider progression on current exercises or adding "
                "complementary exercises.\n"
            )

        return (
            f"Current workout:\n{exercises_list}\n{intention_section}"
            f"Past Performance Summary:\n{past_performance}\n{note}\n"
            "Provide 3-5 SPECIFIC, ACTIONABLE suggestions with exact exercise names, weights, "
            "rep ranges and RPE targets. "
            f"{self.rpe_scale}\n\n"
            "Return JSON with a \"suggestions\" array."
        )

    def system_summary_prompt(self) -> str:
        return self.SUMMARY_PROMPT

    def user_summary_prompt(
        self,
        current_exercises: Sequence[Tuple[str, int]],
        detailed_exercises: Sequence[Tuple[str, int, str]],
    ) -> str:
        """detailed_exercises holds (exercise_name, set_count, detail_line) triples."""
        total_sets = sum(count for _, count in current_exercises)
        details = "\n".join(f"- {detail}" for _, _, detail in detailed_exercises)
        return (
            f"Exercises so far ({len(current_exercises)} exercises, {total_sets} sets):\n"
            f"{details}\n\n"
            "Summarize this workout. Return {\"message\": ..., \"emoji\": ...}."
        )
