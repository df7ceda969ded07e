"""
Tag CLI commands for synotag.

Commands for inspecting tag frequencies and curating synonyms: a synonym is
linked to a canonical tag and is counted and queried as that tag.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from synotag.cli.errors import (
    category_for_exception,
    display_error_panel,
    display_success_panel,
    get_exit_code_for_category,
)
from synotag.config.database import db_manager
from synotag.config.settings import settings
from synotag.container import container
from synotag.db.models import Tag as TagDB
from synotag.exceptions import SynotagError, TagNotFoundError
from synotag.models.tag import TagCount
from synotag.repositories.tag_repository import TagRepository

logger = logging.getLogger(__name__)

console = Console()

tag_app = typer.Typer(
    name="tags",
    help="Tag inspection and synonym curation",
    no_args_is_help=True,
)


async def _require_tag(session: Any, tag_repo: TagRepository, name: str) -> TagDB:
    tag = await tag_repo.get_by_name(session, name)
    if tag is None:
        raise TagNotFoundError(name)
    return tag


def _run(coro_fn: Any) -> None:
    """Run a command coroutine and turn errors into an error panel and exit code."""

    async def runner() -> None:
        try:
            if settings.db_create_all:
                await db_manager.create_tables()
            await coro_fn()
        finally:
            await db_manager.close()

    try:
        asyncio.run(runner())
    except SynotagError as e:
        category = category_for_exception(e)
        display_error_panel(category, e.message)
        raise typer.Exit(code=get_exit_code_for_category(category))
    except Exception as e:
        logger.exception("Tag command failed")
        category = category_for_exception(e)
        display_error_panel(category, str(e))
        raise typer.Exit(code=get_exit_code_for_category(category))


@tag_app.command("list")
def list_tags(
    limit: int = typer.Option(
        50, "--limit", "-l", min=1, help="Maximum number of tags to show"
    ),
    at_least: Optional[int] = typer.Option(
        None, "--at-least", min=0, help="Only tags used at least this often"
    ),
    at_most: Optional[int] = typer.Option(
        None, "--at-most", min=0, help="Only tags used at most this often"
    ),
    canonical: Optional[bool] = typer.Option(
        None,
        "--canonical/--no-canonical",
        help="Count synonyms under their canonical tag (default from settings)",
    ),
) -> None:
    """List tags ordered by usage count."""

    async def run_list() -> None:
        tag_repo = container.create_tag_repository()
        options: dict[str, Any] = {"limit": limit}
        if at_least is not None:
            options["at_least"] = at_least
        if at_most is not None:
            options["at_most"] = at_most
        if canonical is not None:
            options["canonical"] = canonical

        counts: list[TagCount] = []
        async for session in db_manager.get_session():
            counts = await tag_repo.counts(session, options)

        if not counts:
            console.print(
                Panel(
                    "[yellow]No tags found in database[/yellow]",
                    title="No Tags",
                    border_style="yellow",
                )
            )
            return

        tag_table = Table(
            title=f"Tags (showing {len(counts)})",
            show_header=True,
            header_style="bold blue",
        )
        tag_table.add_column("Rank", style="dim", width=6)
        tag_table.add_column("Tag", style="cyan", width=50)
        tag_table.add_column("Uses", style="green", width=12)

        for rank, row in enumerate(counts, 1):
            display_tag = row.name[:47] + "..." if len(row.name) > 50 else row.name
            tag_table.add_row(str(rank), display_tag, f"{row.count:,}")

        console.print(tag_table)

    _run(run_list)


@tag_app.command("show")
def show_tag(
    name: str = typer.Argument(..., help="Tag name (case-insensitive)"),
) -> None:
    """Show a tag's canonical link, synonyms and usage."""

    async def run_show() -> None:
        tag_repo = container.create_tag_repository()
        tagging_repo = container.create_tagging_repository()

        async for session in db_manager.get_session():
            tag = await _require_tag(session, tag_repo, name)
            synonyms = await tag_repo.get_synonyms(session, tag)
            uses = await tagging_repo.count_for_tag(session, tag.id)

            details = f"[bold]Tag:[/bold] {tag.name}\n"
            if tag.canonical_tag_id is None:
                details += "[bold]Canonical:[/bold] yes\n"
            else:
                canonical = await tag_repo.get(session, tag.canonical_tag_id)
                canonical_name = canonical.name if canonical else str(tag.canonical_tag_id)
                details += f"[bold]Synonym of:[/bold] {canonical_name}\n"
            details += f"[bold]Direct uses:[/bold] {uses:,}"
            if synonyms:
                details += "\n[bold]Synonyms:[/bold] " + ", ".join(
                    synonym.name for synonym in synonyms
                )

            console.print(Panel(details, title=f"Tag: {tag.name[:50]}", border_style="blue"))

    _run(run_show)


@tag_app.command("alias")
def alias_tag(
    synonym: str = typer.Argument(..., help="Tag to turn into a synonym"),
    canonical: str = typer.Argument(..., help="Tag it should count as"),
) -> None:
    """Make SYNONYM a synonym of CANONICAL."""

    async def run_alias() -> None:
        tag_repo = container.create_tag_repository()
        root: Optional[TagDB] = None

        async for session in db_manager.get_session():
            tag = await _require_tag(session, tag_repo, synonym)
            target = await _require_tag(session, tag_repo, canonical)
            await tag_repo.set_canonical(session, tag, target)
            root = (
                await tag_repo.get(session, tag.canonical_tag_id)
                if tag.canonical_tag_id is not None
                else None
            )

        if root is None:
            display_success_panel(
                f"'{synonym}' stays canonical",
                title="Alias Skipped",
                extra_info=f"Linking it to '{canonical}' would form a cycle.",
            )
        else:
            display_success_panel(
                f"'{synonym}' is now a synonym of '{root.name}'",
                title="Alias Created",
            )

    _run(run_alias)


@tag_app.command("unalias")
def unalias_tag(
    name: str = typer.Argument(..., help="Synonym to make canonical again"),
) -> None:
    """Make NAME canonical again."""

    async def run_unalias() -> None:
        tag_repo = container.create_tag_repository()

        async for session in db_manager.get_session():
            tag = await _require_tag(session, tag_repo, name)
            await tag_repo.set_canonical(session, tag, None)
            display_success_panel(f"'{tag.name}' is canonical", title="Alias Removed")

    _run(run_unalias)


@tag_app.command("delete")
def delete_tag(
    name: str = typer.Argument(..., help="Tag to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete a tag and its taggings; its synonyms become canonical."""
    if not yes and not typer.confirm(f"Delete tag '{name}' and all of its taggings?"):
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(code=0)

    async def run_delete() -> None:
        tag_repo = container.create_tag_repository()

        async for session in db_manager.get_session():
            tag = await _require_tag(session, tag_repo, name)
            synonyms = await tag_repo.get_synonyms(session, tag)
            await tag_repo.delete(session, id=tag.id)
            extra = None
            if synonyms:
                extra = "Promoted to canonical: " + ", ".join(s.name for s in synonyms)
            display_success_panel(f"Deleted tag '{tag.name}'", title="Tag Deleted", extra_info=extra)

    _run(run_delete)
