"""Color support for CLI output using Rich markup."""

import sys

from rich.markup import escape


def should_use_color(color_flag: bool | None) -> bool:
    """Determine if color should be used based on flag and TTY detection.

    Args:
        color_flag: Explicit color preference (True/False) or None for auto-detect

    Returns:
        True if colors should be used, False otherwise
    """
    if color_flag is None:
        return sys.stdout.isatty()
    return color_flag


def escape_text(text: str, enabled: bool) -> str:
    """Escape markup characters when color output is enabled."""
    if not enabled:
        return text
    return escape(text)


def colorize(text: str, style: str, enabled: bool) -> str:
    """Apply Rich markup style to text if enabled.

    Args:
        text: Text to colorize
        style: Rich style string (e.g., "green", "bold white")
        enabled: Whether coloring is enabled

    Returns:
        Styled text if enabled, original text otherwise
    """
    if not enabled:
        return text
    return f"[{style}]{escape(text)}[/]"


def header(text: str, enabled: bool) -> str:
    """Style a column or section header."""
    return colorize(text, "bold white", enabled)


def dim(text: str, enabled: bool) -> str:
    """Style secondary text such as file paths and line numbers."""
    return colorize(text, "dim white", enabled)


def null_value(text: str, enabled: bool) -> str:
    return colorize(text, "magenta", enabled)


def task_state_style(completed: bool, enabled: bool) -> str:
    """Get style for a checklist item state.

    Args:
        completed: Whether the task is checked
        enabled: Whether coloring is enabled

    Returns:
        Rich style string for the state
    """
    if not enabled:
        return ""
    if completed:
        return "bold green"
    return "bold yellow"
