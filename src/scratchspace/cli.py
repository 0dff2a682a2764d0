"""scratch CLI: scratch documents backed by JSON files.

Commands:
    scratch init [NAME]           create scratch.toml + .scratch/ dirs
    scratch new [NAME]            create a document, print its id
    scratch list                  table of documents (filter/sort)
    scratch show ID               print a document's content
    scratch write ID [FILE]       replace content from FILE or stdin
    scratch rename / lang / pin / tag / untag / color / dup / rm / clear
    scratch history ID            change history of a document
    scratch search QUERY          ranked search over history
    scratch restore ENTRY_ID      write a history entry back into its document
    scratch backups               latest backup per document
    scratch session               crash-recovery status
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeVar

import click

from scratchspace.config import ScratchConfig, init_config, load_config
from scratchspace.errors import ScratchError
from scratchspace.languages import COLORS, SUPPORTED_LANGUAGES
from scratchspace.models import SORT_KEYS, DocumentFilter, utcnow
from scratchspace.workspace import ScratchSpace

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from datetime import datetime

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg(root: str | None) -> ScratchConfig:
    try:
        return load_config(root)
    except Exception as exc:
        raise click.ClickException(str(exc)) from exc


def _run(fn: Callable[[ScratchSpace], Awaitable[T]]) -> T:
    """Open the workspace, run fn against it, close it.

    Writes are immediate and the backup timer is off: the process exits
    as soon as the command is done.
    """
    root = click.get_current_context().find_root().obj
    cfg = _load_cfg(root)

    async def main() -> T:
        async with ScratchSpace(cfg, auto_save=False, recovery_enabled=False) as space:
            return await fn(space)

    try:
        return asyncio.run(main())
    except ScratchError as exc:
        raise click.ClickException(str(exc)) from exc


def _age(ts: datetime) -> str:
    age_s = int((utcnow() - ts).total_seconds())
    if age_s < 120:
        return f"{age_s}s ago"
    if age_s < 7200:
        return f"{age_s // 60}m ago"
    if age_s < 172800:
        return f"{age_s // 3600}h ago"
    return f"{age_s // 86400}d ago"


def _first_line(text: str, width: int = 60) -> str:
    line = text.strip().split("\n", 1)[0] if text.strip() else ""
    return line if len(line) <= width else line[: width - 1] + "…"


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="scratchspace")
@click.option("--dir", "root", default=None, help="Project root (default: search upward from cwd)")
@click.option("-v", "--verbose", count=True, help="-v for info, -vv for debug logging")
@click.pass_context
def cli(ctx: click.Context, root: str | None, verbose: int) -> None:
    """scratch: local scratch documents with history and recovery."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(name)s %(message)s")
    ctx.obj = root


# ---------------------------------------------------------------------------
# scratch init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.pass_context
def init(ctx: click.Context, name: str | None) -> None:
    """Create scratch.toml and .scratch/ directories in the current project."""
    root_path = Path(ctx.obj or ".").resolve()
    try:
        config_path = init_config(root_path, name=name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("scratch.toml already exists, skipping init")

    cfg = _load_cfg(str(root_path))
    cfg.ensure_dirs()
    click.echo(f"Storage dir : {cfg.storage_dir}")


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--language", "-l", type=click.Choice(SUPPORTED_LANGUAGES), default=None)
def new(name: str | None, language: str | None) -> None:
    """Create a document and print its id."""

    async def go(space: ScratchSpace) -> Any:
        return await space.store.create(name, language)

    doc = _run(go)
    click.echo(doc.id)


@cli.command(name="list")
@click.option("--tag", "tags", multiple=True, help="Only documents with any of these tags")
@click.option("--language", "-l", default=None)
@click.option("--pinned/--unpinned", default=None, help="Only pinned / unpinned documents")
@click.option("--sort", "sort_by", type=click.Choice(SORT_KEYS), default="custom", show_default=True)
@click.option("--desc", is_flag=True, help="Sort descending")
def list_cmd(tags: tuple[str, ...], language: str | None, pinned: bool | None, sort_by: str, desc: bool) -> None:
    """List documents. Pinned documents are always listed first."""
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    flt = DocumentFilter(
        tags=list(tags) or None,
        language=language,
        pinned=pinned,
        sort_by=sort_by,
        direction="desc" if desc else "asc",
    )

    async def go(space: ScratchSpace) -> Any:
        return space.store.get_filtered(flt)

    docs = _run(go)
    if not docs:
        click.echo("No documents.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("", no_wrap=True)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name")
    table.add_column("Language")
    table.add_column("Tags")
    table.add_column("Updated", justify="right")
    for doc in docs:
        marker = "📌" if doc.pinned else ""
        name = f"[{doc.color}]{escape(doc.name)}[/]" if doc.color in COLORS else escape(doc.name)
        table.add_row(marker, doc.id, name, doc.language, ", ".join(doc.tags), _age(doc.updated_at))
    Console().print(table)


@cli.command()
@click.argument("doc_id")
@click.option("--meta", is_flag=True, help="Print metadata instead of content")
def show(doc_id: str, meta: bool) -> None:
    """Print a document's content."""

    async def go(space: ScratchSpace) -> Any:
        return space.store.get(doc_id), space.files.path_for(doc_id)

    doc, path = _run(go)
    if not meta:
        click.echo(doc.content, nl=not doc.content.endswith("\n"))
        return
    click.echo(f"id       : {doc.id}")
    click.echo(f"name     : {doc.name}")
    click.echo(f"language : {doc.language}")
    click.echo(f"pinned   : {'yes' if doc.pinned else 'no'}")
    click.echo(f"tags     : {', '.join(doc.tags) or '-'}")
    click.echo(f"color    : {doc.color or '-'}")
    click.echo(f"created  : {doc.created_at.isoformat()}")
    click.echo(f"updated  : {doc.updated_at.isoformat()}")
    click.echo(f"path     : {path}")


@cli.command()
@click.argument("doc_id")
@click.argument("source", type=click.File("rb"), default="-")
def write(doc_id: str, source: Any) -> None:
    """Replace a document's content with SOURCE (default: stdin)."""
    data = source.read()

    async def go(space: ScratchSpace) -> Any:
        await space.files.write(space.files.path_for(doc_id), data)

    _run(go)


@cli.command()
@click.argument("doc_id")
@click.argument("new_name")
def rename(doc_id: str, new_name: str) -> None:
    """Rename a document."""

    async def go(space: ScratchSpace) -> Any:
        await space.store.rename(doc_id, new_name)

    _run(go)


@cli.command()
@click.argument("doc_id")
@click.argument("language", type=click.Choice(SUPPORTED_LANGUAGES))
def lang(doc_id: str, language: str) -> None:
    """Change a document's language."""

    async def go(space: ScratchSpace) -> Any:
        await space.store.change_language(doc_id, language)

    _run(go)


@cli.command()
@click.argument("doc_id")
def pin(doc_id: str) -> None:
    """Toggle a document's pinned state."""

    async def go(space: ScratchSpace) -> Any:
        return await space.store.toggle_pin(doc_id)

    doc = _run(go)
    click.echo("pinned" if doc.pinned else "unpinned")


@cli.command()
@click.argument("doc_id")
@click.argument("tag_name")
def tag(doc_id: str, tag_name: str) -> None:
    """Add a tag to a document."""

    async def go(space: ScratchSpace) -> Any:
        await space.store.add_tag(doc_id, tag_name)

    _run(go)


@cli.command()
@click.argument("doc_id")
@click.argument("tag_name")
def untag(doc_id: str, tag_name: str) -> None:
    """Remove a tag from a document."""

    async def go(space: ScratchSpace) -> Any:
        await space.store.remove_tag(doc_id, tag_name)

    _run(go)


@cli.command()
def tags() -> None:
    """List every tag in use."""

    async def go(space: ScratchSpace) -> Any:
        return [(t, len(space.store.get_filtered(DocumentFilter(tags=[t])))) for t in space.store.get_all_tags()]

    for name, count in _run(go):
        click.echo(f"{name}  ({count})")


@cli.command()
@click.argument("doc_id")
@click.argument("color_value", required=False)
def color(doc_id: str, color_value: str | None) -> None:
    """Set (or clear, when omitted) a document's colour."""
    if color_value is not None and color_value not in COLORS:
        click.echo(f"Note: {color_value} is not in the palette ({', '.join(COLORS)})", err=True)

    async def go(space: ScratchSpace) -> Any:
        await space.store.set_color(doc_id, color_value)

    _run(go)


@cli.command()
@click.argument("doc_id")
def dup(doc_id: str) -> None:
    """Duplicate a document and print the new id."""

    async def go(space: ScratchSpace) -> Any:
        return await space.store.duplicate(doc_id)

    click.echo(_run(go).id)


@cli.command()
@click.argument("doc_id")
def rm(doc_id: str) -> None:
    """Delete a document. Its history is kept."""

    async def go(space: ScratchSpace) -> Any:
        await space.store.delete(doc_id)

    _run(go)


@cli.command()
@click.confirmation_option(prompt="Delete every document?")
def clear() -> None:
    """Delete every document."""

    async def go(space: ScratchSpace) -> Any:
        count = len(space.store)
        await space.store.clear_all()
        return count

    click.echo(f"Deleted {_run(go)} documents")


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("doc_id", required=False)
@click.option("--limit", "-n", default=20, show_default=True)
def history(doc_id: str | None, limit: int) -> None:
    """Show history for one document (or all documents)."""
    from rich.console import Console
    from rich.markup import escape
    from rich.table import Table

    async def go(space: ScratchSpace) -> Any:
        if doc_id:
            return space.history.get_history(doc_id)
        return space.history.get_all_history()

    entries = _run(go)[:limit]
    if not entries:
        click.echo("No history.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Entry", style="dim", no_wrap=True)
    if not doc_id:
        table.add_column("Document", style="dim", no_wrap=True)
    table.add_column("When", justify="right")
    table.add_column("Change")
    table.add_column("Description")
    table.add_column("Content")
    for e in entries:
        row = [e.id]
        if not doc_id:
            row.append(e.document_id)
        row += [_age(e.timestamp), e.change_type, escape(e.description or ""), escape(_first_line(e.content))]
        table.add_row(*row)
    Console().print(table)


@cli.command()
@click.argument("query")
@click.option("--id", "doc_id", default=None, help="Search only this document's history")
@click.option("--limit", "-n", default=10, show_default=True)
def search(query: str, doc_id: str | None, limit: int) -> None:
    """Ranked search over document history."""

    async def go(space: ScratchSpace) -> Any:
        return space.history.search(query, doc_id)

    results = _run(go)[:limit]
    if not results:
        click.echo("No matches.")
        return
    for r in results:
        click.echo(f"[{r.score:>3}] {r.entry.document_id} {r.entry.change_type} {_age(r.entry.timestamp)}  ({r.entry.id})")
        if r.context:
            for line in r.context.split("\n"):
                click.echo(f"      {line}")


@cli.command()
@click.argument("entry_id")
def restore(entry_id: str) -> None:
    """Write a history entry's content back into its document."""

    async def go(space: ScratchSpace) -> Any:
        return await space.store.restore_from_history(entry_id)

    doc = _run(go)
    click.echo(f"Restored {doc.id} ({doc.name})")


# ---------------------------------------------------------------------------
# Session / backups
# ---------------------------------------------------------------------------


@cli.command()
def backups() -> None:
    """List the latest backup of each document."""

    async def go(space: ScratchSpace) -> Any:
        return space.session.get_backups()

    entries = _run(go)
    if not entries:
        click.echo("No backups.")
        return
    for b in entries:
        kind = "auto" if b.auto_backup else "manual"
        click.echo(f"{b.document_id}  {kind:<6} {_age(b.timestamp):>8}  {_first_line(b.content)}")


@cli.command()
@click.option("--reset", is_flag=True, help="Forget the recorded session")
def session(reset: bool) -> None:
    """Show whether the last session ended abnormally and what it had open."""

    async def go(space: ScratchSpace) -> Any:
        crashed = space.session.check_for_crash_recovery()
        restored = space.session.restore_session()
        if reset:
            await space.session.clear_session()
        return crashed, restored

    crashed, restored = _run(go)
    click.echo(f"recovery needed : {'yes' if crashed else 'no'}")
    click.echo(f"active          : {restored.active_document_id or '-'}")
    click.echo(f"open            : {', '.join(restored.open_document_ids) or '-'}")
    if reset:
        click.echo("Session cleared.")


if __name__ == "__main__":
    cli()
