"""
Command Models

Pydantic models for the structured commands the classifier produces from
free-form input, plus the transient ParsedSet consumed by the executor.
"""
import math
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, Field


def coerce_count(value: Any) -> Optional[int]:
    """
    Accept reps/set counts given as integers or floats.

    Models return `5` and `5.0` interchangeably. Floats must be finite and
    non-negative and are rounded to the nearest integer (halves round up).
    Negative, non-finite, boolean or non-numeric values are rejected.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"invalid count value: {value!r}")
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            raise ValueError(f"invalid count value: {value!r}") from None
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"invalid count value: {value}")
        return value
    if isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            raise ValueError(f"invalid count value: {value}")
        return int(math.floor(value + 0.5))
    raise ValueError(f"invalid count value: {value!r}")


Count = Annotated[Optional[int], BeforeValidator(coerce_count)]


class ParsedSet(BaseModel):
    """Structured form of a single logged set, as parsed from free text."""
    exercise: str
    weight: Optional[float] = Field(default=None, ge=0)
    reps: Count = None
    rpe: Optional[float] = Field(default=None, ge=0, le=10)
    set_count: Count = None
    tags: List[str] = Field(default_factory=list)
    aoi: Optional[str] = None  # area of interest
    original_string: str = ""

    def request_text(self) -> str:
        """Text stored as the request string for sets created from this parse."""
        if self.original_string:
            return self.original_string
        return f"{self.exercise} {self.reps or 0} reps rpe:{self.rpe}"


class AddSetCommand(BaseModel):
    command_type: Literal["add_set"] = "add_set"
    exercise: str
    weight: Optional[float] = Field(default=None, ge=0)
    reps: Count = None
    rpe: Optional[float] = Field(default=None, ge=0, le=10)
    set_count: Count = None
    tags: List[str] = Field(default_factory=list)
    aoi: Optional[str] = None
    original_string: str = ""

    def to_parsed_set(self) -> ParsedSet:
        # tags and aoi are informational only and are not carried into storage
        return ParsedSet(
            exercise=self.exercise,
            weight=self.weight,
            reps=self.reps,
            rpe=self.rpe,
            set_count=self.set_count,
            original_string=self.original_string,
        )


class RemoveSetCommand(BaseModel):
    command_type: Literal["remove_set"] = "remove_set"
    set_id: Optional[int] = None
    description: Optional[str] = None


class EditSetCommand(BaseModel):
    command_type: Literal["edit_set"] = "edit_set"
    set_id: Optional[int] = None
    description: Optional[str] = None
    exercise: Optional[str] = None
    weight: Optional[float] = Field(default=None, ge=0)
    reps: Count = None
    rpe: Optional[float] = Field(default=None, ge=0, le=10)


class UpdateSummaryCommand(BaseModel):
    command_type: Literal["update_summary"] = "update_summary"
    message: str
    emoji: str


class ChangeIntentionCommand(BaseModel):
    """Earlier-schema session metadata update; stored as the workout intention."""
    command_type: Literal["change_intention"] = "change_intention"
    intention: str


class UnknownCommand(BaseModel):
    command_type: Literal["unknown"] = "unknown"
    input: str

    def to_parsed_set(self) -> ParsedSet:
        return ParsedSet(
            exercise=self.input,
            set_count=1,
            original_string=self.input,
        )


Command = Annotated[
    Union[
        AddSetCommand,
        RemoveSetCommand,
        EditSetCommand,
        UpdateSummaryCommand,
        ChangeIntentionCommand,
        UnknownCommand,
    ],
    Field(discriminator="command_type"),
]


class CommandList(BaseModel):
    """Envelope the classifier asks the model to return."""
    commands: List[Command] = Field(default_factory=list)
