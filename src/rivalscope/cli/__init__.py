"""Command-line interface components."""

from .main import cli
from .types import CLIContext, CLIError, CommandResult, OutputFormat

__all__ = [
    "cli",
    "CLIError",
    "CommandResult",
    "CLIContext",
    "OutputFormat",
]
