"""
Main CLI entry point for synotag.
"""

from __future__ import annotations

import logging
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel

from synotag import __version__
from synotag.cli.tag_commands import tag_app
from synotag.config.settings import settings

console = Console()

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

app = typer.Typer(
    name="synotag",
    help="Synonym-aware tagging toolkit",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Add subcommands
app.add_typer(tag_app, name="tags", help="Tag inspection and curation commands")


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Attach a stream handler to the ``synotag`` logger.

    Parameters
    ----------
    level : str, optional
        Log level name; defaults to ``settings.log_level``.

    Returns
    -------
    logging.Logger
        The configured package logger.
    """
    log_level = (level or settings.log_level).upper()

    root_logger = logging.getLogger("synotag")
    root_logger.setLevel(log_level)
    if not any(getattr(h, "_synotag_cli", False) for h in root_logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        handler._synotag_cli = True  # type: ignore[attr-defined]
        root_logger.addHandler(handler)
    for handler in root_logger.handlers:
        handler.setLevel(log_level)
    return root_logger


@app.command()
def version() -> None:
    """Show version information."""
    console.print(
        Panel(
            f"[bold blue]synotag[/bold blue] v{__version__}",
            title="Version",
            border_style="blue",
        )
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", "-v", help="Show version and exit"
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override SYNOTAG_LOG_LEVEL"
    ),
) -> None:
    """
    synotag - Synonym-aware tagging toolkit.

    Inspect tag frequencies, link synonyms to canonical tags and delete tags
    stored in the configured database.
    """
    if version:
        console.print(f"synotag v{__version__}")
        raise typer.Exit(code=0)

    configure_logging(log_level)

    if ctx.invoked_subcommand is None:
        console.print("[yellow]Use 'synotag --help' for available commands[/yellow]")
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
