"""Workout logger exceptions."""
from typing import Any


class WorkoutLoggerError(Exception):
    """Base exception for workout logger errors."""
    pass


class NoActiveWorkoutError(WorkoutLoggerError):
    """Raised when an operation needs an active workout and none is set."""

    def __init__(self, message: str = "No active workout session"):
        super().__init__(message)


class UnresolvedReferenceError(WorkoutLoggerError):
    """Raised when a remove/edit command cannot be matched to a set."""

    def __init__(self, command_type: str, description: str | None = None):
        message = f"Could not resolve set_id for {command_type} command"
        if description:
            message += f" (description: {description!r})"
        super().__init__(message)
        self.command_type = command_type
        self.description = description


class LLMError(WorkoutLoggerError):
    """Base exception for LLM gateway failures."""
    pass


class LLMTransportError(LLMError):
    """Raised when the model backend cannot be reached or errors out."""
    pass


class LLMContentError(LLMError):
    """Raised when the model output is not valid for the expected schema."""

    def __init__(self, raw_text: str, error: Exception | str):
        super().__init__(f"Cannot parse LLM JSON output: {raw_text}\nError: {error}")
        self.raw_text = raw_text
        self.error = error


class StorageError(WorkoutLoggerError):
    """Raised when the storage layer fails."""
    pass


class NotFoundError(StorageError):
    """Raised when a requested row does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class CommandBatchError(WorkoutLoggerError):
    """Raised when one or more commands of a classified batch failed.

    Modifications produced by the commands that succeeded are kept on the
    exception so callers can still synchronize with what was applied.
    """

    def __init__(self, failures: list[tuple[int, str, Exception]], modifications: list):
        details = "; ".join(
            f"command {index} ({command_type}): {error}"
            for index, command_type, error in failures
        )
        super().__init__(f"{len(failures)} command(s) failed: {details}")
        self.failures = failures
        self.modifications = modifications
