"""Common utility functions for the project."""

from enum import Enum
from typing import Any


class AnsiColors(Enum):
    """
    ANSI color codes for terminal output.
    """

    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[33m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    MAGENTA = "\033[95m"


_RESET = "\033[0m"
_BOLD = "\033[1m"


def colorize(text: str, color: AnsiColors, bold: bool = False) -> str:
    """Wrap *text* in the escape codes for *color* (optionally bold)."""
    prefix = _BOLD if bold else ""
    return f"{prefix}{color.value}{text}{_RESET}"


def colored_print(text: str, color: AnsiColors, *args: Any, **kwargs: Any) -> None:
    """
    Print text in color.

    Args:
        text: The text to print
        color: The color to use (AnsiColors enum)
        args: Additional positional arguments for print
        kwargs: Additional keyword arguments for print
    """
    print(colorize(text, color), *args, **kwargs)


def truncate(text: str, limit: int = 200) -> str:
    """Shorten *text* to *limit* characters for log lines."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
