"""Type definitions for the CLI module."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class CLIError(Exception):
    """A command could not be carried out; the message is shown to the user."""

    pass


class OutputFormat(str, Enum):
    TABLE = "table"
    JSON = "json"

    @classmethod
    def choices(cls) -> list[str]:
        return [member.value for member in cls]


@dataclass
class CommandResult:
    """Outcome of a command, rendered by ``handle_result``."""

    success: bool
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    exit_code: int = 0

    def __bool__(self) -> bool:
        return self.success


@dataclass
class CLIContext:
    """Global flags shared by every command."""

    verbose: bool = False
    debug: bool = False

    @property
    def log_level(self) -> str:
        if self.debug:
            return "DEBUG"
        return "INFO" if self.verbose else "WARNING"
