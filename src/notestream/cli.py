"""Command-line interface for notestream."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import click
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import BarColumn, DownloadColumn, Progress, TextColumn, TransferSpeedColumn
from rich.table import Table

from notestream import __version__
from notestream.config import SettingsStore
from notestream.credentials import CredentialStore
from notestream.errors import NotestreamError
from notestream.events.bus import EventBus
from notestream.llm.models import ModelManager
from notestream.llm.router import ProviderRouter
from notestream.notes.store import NoteStore
from notestream.tools.notes import register_note_tools
from notestream.tools.registry import ToolRegistry
from notestream.types import AppEvent, EventType, Provider

console = Console()


@dataclass
class App:
    """Collaborators wired together for one CLI run."""

    settings: SettingsStore
    credentials: CredentialStore
    bus: EventBus
    notes: NoteStore
    registry: ToolRegistry
    models: ModelManager
    router: ProviderRouter


def build_app(config_path: str | None = None) -> App:
    settings = SettingsStore.load(config_path)
    credentials = CredentialStore(settings)
    bus = EventBus()
    notes = NoteStore(settings.notes_dir)
    registry = ToolRegistry()
    register_note_tools(registry, notes)
    models = ModelManager(settings, bus)
    router = ProviderRouter(settings, credentials, models, registry, bus)
    return App(settings, credentials, bus, notes, registry, models, router)


def _provider_arg(value: str) -> Provider:
    try:
        return Provider.from_str(value)
    except NotestreamError as e:
        raise click.BadParameter(str(e)) from e


def _app(ctx: click.Context) -> App:
    if ctx.obj.get("app") is None:
        try:
            ctx.obj["app"] = build_app(ctx.obj.get("config_path"))
        except FileNotFoundError as e:
            raise click.ClickException(str(e)) from e
    return ctx.obj["app"]


@click.group()
@click.option("--config", "-c", "config_path", default=None,
              help="Path to notestream.yaml (auto-detected from CWD or ~/.notestream/)")
@click.option("--verbose", "-v", is_flag=True, help="Verbose logging")
@click.version_option(__version__, prog_name="notestream")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, verbose: bool):
    """notestream - stream AI edits into sticky notes."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.WARNING)
    # httpx logs full request URLs, and Google URLs carry the API key
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------

@main.command()
@click.argument("prompt")
@click.option("--context", "context_text", default="", help="Current note content to edit")
@click.option("--note", "note_id", default=None, help="Use this note's content as context")
@click.option("--provider", "-p", default=None, help="Provider for this request (persisted)")
@click.pass_context
def ask(ctx: click.Context, prompt: str, context_text: str, note_id: str | None,
        provider: str | None):
    """Stream a response from the active provider."""
    app = _app(ctx)
    if provider:
        app.router.set_active_provider(_provider_arg(provider))
    if note_id:
        try:
            context_text = app.notes.get(note_id).content
        except NotestreamError as e:
            raise click.ClickException(str(e)) from e

    def on_chunk(event: AppEvent) -> None:
        chunk = event.chunk
        if chunk is None:
            return
        if not chunk.done:
            console.print(chunk.chunk, end="", markup=False, highlight=False, soft_wrap=True)
        elif chunk.error is not None:
            console.print(f"\n[red]Error ({chunk.error.code}): {chunk.error.message}[/red]")
        else:
            console.print()

    def on_tool(event: AppEvent) -> None:
        if event.type is EventType.TOOL_EXECUTED:
            console.print(f"[green]✓ {event.data['tool']}[/green] [dim]{event.data['output']}[/dim]")
        else:
            console.print(f"[yellow]✗ {event.data['tool']}: {event.data['error']}[/yellow]")

    app.bus.subscribe(EventType.AI_STREAM_CHUNK, on_chunk)
    app.bus.subscribe(EventType.TOOL_EXECUTED, on_tool)
    app.bus.subscribe(EventType.TOOL_ERROR, on_tool)

    try:
        asyncio.run(app.router.invoke(prompt, context_text))
    except NotestreamError:
        # already reported through the terminal chunk
        ctx.exit(1)


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------

@main.command()
@click.pass_context
def providers(ctx: click.Context):
    """List providers and whether they can be used."""
    app = _app(ctx)
    active = app.router.active_provider
    configured = set(app.router.configured_providers())

    table = Table(title="Providers")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Model")
    table.add_column("Status")
    for p in Provider:
        if p.requires_api_key:
            model = app.settings.provider_model(p)
            status = "[green]key set[/green]" if p in configured else "[red]no key[/red]"
        else:
            path = app.models.weights_path(p)
            model = path.name if path else "-"
            status = ("[green]downloaded[/green]" if app.models.is_downloaded(p)
                      else "[yellow]not downloaded[/yellow]")
        marker = " [bold](active)[/bold]" if p is active else ""
        table.add_row(p.value, p.display_name + marker, model, status)
    console.print(table)


@main.command()
@click.argument("provider", required=False)
@click.option("--clear", is_flag=True, help="Deselect the active provider")
@click.pass_context
def use(ctx: click.Context, provider: str | None, clear: bool):
    """Select the active provider."""
    app = _app(ctx)
    if clear:
        app.router.set_active_provider(None)
        console.print("[dim]No active provider.[/dim]")
        return
    if not provider:
        raise click.UsageError("PROVIDER is required unless --clear is given")
    selected = _provider_arg(provider)
    if not app.credentials.has_key(selected):
        console.print(f"[yellow]Warning: no API key configured for {selected.value}[/yellow]")
    app.router.set_active_provider(selected)
    console.print(f"[green]Active provider: {selected.display_name}[/green]")


# ---------------------------------------------------------------------------
# Notes
# ---------------------------------------------------------------------------

@main.group(invoke_without_command=True)
@click.pass_context
def notes(ctx: click.Context):
    """List and manage notes."""
    if ctx.invoked_subcommand is None:
        ctx.invoke(notes_list)


@notes.command("list")
@click.pass_context
def notes_list(ctx: click.Context):
    """List all notes."""
    app = _app(ctx)
    items = app.notes.list()
    if not items:
        console.print("[dim](No notes found)[/dim]")
        return
    table = Table()
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Preview", style="dim")
    for note in items:
        table.add_row(note.id, note.title, note.preview(60))
    console.print(table)


@notes.command("show")
@click.argument("note_id")
@click.pass_context
def notes_show(ctx: click.Context, note_id: str):
    """Render one note."""
    app = _app(ctx)
    try:
        note = app.notes.get(note_id)
    except NotestreamError as e:
        raise click.ClickException(str(e)) from e
    console.print(Panel(Markdown(note.content), title=note.title, subtitle=note.id))


@notes.command("create")
@click.argument("content")
@click.pass_context
def notes_create(ctx: click.Context, content: str):
    """Create a note from CONTENT."""
    note = _app(ctx).notes.create(content)
    console.print(f"[green]Note created: {note.id}[/green]")


@notes.command("delete")
@click.argument("note_id")
@click.pass_context
def notes_delete(ctx: click.Context, note_id: str):
    """Delete a note."""
    try:
        _app(ctx).notes.delete(note_id)
    except NotestreamError as e:
        raise click.ClickException(str(e)) from e
    console.print(f"[green]Note {note_id} deleted.[/green]")


# ---------------------------------------------------------------------------
# Local models
# ---------------------------------------------------------------------------

@main.group()
def model():
    """Manage local GGUF models."""


@model.command("status")
@click.argument("provider")
@click.pass_context
def model_status(ctx: click.Context, provider: str):
    """Show whether a local model is downloaded."""
    app = _app(ctx)
    selected = _provider_arg(provider)
    try:
        app.models.model_source(selected)
        status = app.models.status(selected)
    except NotestreamError as e:
        raise click.ClickException(str(e)) from e
    if status.is_downloaded:
        size_mb = (status.file_size or 0) / (1024 * 1024)
        console.print(f"[green]{status.provider}: downloaded[/green] ({size_mb:.1f} MB) {status.path}")
    else:
        console.print(f"[yellow]{status.provider}: not downloaded[/yellow]")


@model.command("download")
@click.argument("provider")
@click.pass_context
def model_download(ctx: click.Context, provider: str):
    """Download a local model's weights."""
    app = _app(ctx)
    selected = _provider_arg(provider)

    with Progress(
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        DownloadColumn(),
        TransferSpeedColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(selected.value, total=None)

        def on_progress(event: AppEvent) -> None:
            progress.update(
                task,
                completed=event.data["bytes_downloaded"],
                total=event.data["total_bytes"],
            )

        app.bus.subscribe(EventType.MODEL_DOWNLOAD_PROGRESS, on_progress)
        try:
            path = asyncio.run(app.models.download(selected))
        except NotestreamError as e:
            raise click.ClickException(str(e)) from e
    console.print(f"[green]Model ready: {path}[/green]")


@model.command("delete")
@click.argument("provider")
@click.pass_context
def model_delete(ctx: click.Context, provider: str):
    """Delete a local model's weights."""
    app = _app(ctx)
    try:
        deleted = asyncio.run(app.models.delete(_provider_arg(provider)))
    except NotestreamError as e:
        raise click.ClickException(str(e)) from e
    if deleted:
        console.print(f"[green]Deleted model for {provider}.[/green]")
    else:
        console.print(f"[dim]No model file for {provider}.[/dim]")


if __name__ == "__main__":
    main()
