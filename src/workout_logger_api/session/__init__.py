"""Workout session and command execution."""
from .executor import BatchSnapshot, CommandExecutor
from .session import Session

__all__ = ["BatchSnapshot", "CommandExecutor", "Session"]
