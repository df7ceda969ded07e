"""
Standardized error message helpers for CLI commands.

Provides:
- Error display formatters with a consistent format
- Rich panel wrappers for error/success display
- CLI exit code mappings for synotag exceptions

Error Format:
    Title -> Problem -> Hint

Examples:
    >>> format_error("Not Found", "Tag 'python' not found")
    "Error: Not Found: Tag 'python' not found"
"""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.panel import Panel

from synotag.exceptions import (
    InvalidOptionError,
    TagNotFoundError,
    TagValidationError,
)

# Module-level console for CLI error display
console = Console()


class ErrorCategory:
    """
    Standard error categories for CLI commands.

    - NOT_FOUND: Tag does not exist in database
    - VALIDATION: Tag name or option validation failed
    - DATABASE: Database operation failed
    """

    NOT_FOUND = "Not Found"
    VALIDATION = "Validation"
    DATABASE = "Database"


EXIT_SUCCESS = 0
EXIT_USER_ERROR = 1
EXIT_SYSTEM_ERROR = 2


def get_exit_code_for_category(category: str) -> int:
    """
    Map error category to appropriate exit code.

    Examples
    --------
    >>> get_exit_code_for_category(ErrorCategory.NOT_FOUND)
    1
    >>> get_exit_code_for_category(ErrorCategory.DATABASE)
    2
    """
    category_to_exit_code = {
        ErrorCategory.NOT_FOUND: EXIT_USER_ERROR,
        ErrorCategory.VALIDATION: EXIT_USER_ERROR,
        ErrorCategory.DATABASE: EXIT_SYSTEM_ERROR,
    }
    return category_to_exit_code.get(category, EXIT_USER_ERROR)


def category_for_exception(exc: Exception) -> str:
    """Pick the error category for an exception raised by a command."""
    if isinstance(exc, TagNotFoundError):
        return ErrorCategory.NOT_FOUND
    if isinstance(exc, (TagValidationError, InvalidOptionError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.DATABASE


def format_error(category: str, message: str, hint: Optional[str] = None) -> str:
    """
    Format error message as ``Error: <category>: <message>``.

    Parameters
    ----------
    category : str
        Error category; use ErrorCategory constants for consistency.
    message : str
        Human-readable error description.
    hint : Optional[str]
        Actionable suggestion for resolving the error (optional).

    Returns
    -------
    str
        Formatted error message string.
    """
    lines = [f"Error: {category}: {message}"]
    if hint is not None:
        lines.append(f"   Hint: {hint}")
    return "\n".join(lines)


def display_error_panel(
    category: str,
    message: str,
    hint: Optional[str] = None,
    title: str = "Error",
) -> None:
    """Display formatted error in a Rich panel."""
    formatted = format_error(category, message, hint)
    console.print(
        Panel(
            f"[red]{formatted}[/red]",
            title=title,
            border_style="red",
        )
    )


def display_success_panel(
    message: str,
    title: str = "Success",
    extra_info: Optional[str] = None,
) -> None:
    """Display success message in a Rich panel."""
    content = f"[green]{message}[/green]"
    if extra_info:
        content += f"\n\n{extra_info}"

    console.print(
        Panel(
            content,
            title=title,
            border_style="green",
        )
    )
