"""
CLI interface for prompt-vault.

Provides command-line access to saved sessions, autosave preferences and
usage analytics.
"""

import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from prompt_vault.config.loader import AppConfig, load_app_config
from prompt_vault.core.analytics import UsageAggregator
from prompt_vault.core.editor import Editor
from prompt_vault.core.notifications import Notification, Notifier, Severity
from prompt_vault.core.scheduler import AutosaveScheduler
from prompt_vault.core.session_store import SaveMode, SessionStore
from prompt_vault.storage.models import latest_version
from prompt_vault.storage.repository import KeyValueStore, initialize_schema

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

_SEVERITY_STYLE = {
    Severity.SUCCESS: "[green]✓[/]",
    Severity.INFO: "[cyan]i[/]",
    Severity.ERROR: "[red]✗[/]",
}


@dataclass
class CliState:
    config: AppConfig


def _print_notification(notification: Notification) -> None:
    console.print(f"{_SEVERITY_STYLE[notification.severity]} {notification.message}")


def _build_editor(state: CliState) -> Editor:
    """Wire store, collaborators and editor from configuration."""
    notifier = Notifier()
    notifier.subscribe(_print_notification)
    collaborator = None
    if os.environ.get("OPENAI_API_KEY"):
        from prompt_vault.sdk import OpenAICollaborator
        collaborator = OpenAICollaborator(
            model=state.config.default_model,
            db_path=state.config.db_path,
        )
    store = SessionStore(
        KeyValueStore(state.config.db_path),
        notifier=notifier,
        summarizer=collaborator,
        default_model=state.config.default_model,
    )
    return Editor(
        store,
        title_generator=collaborator,
        title_min_length=state.config.autosave.title_min_length,
        title_max_length=state.config.autosave.title_max_length,
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to YAML config file"),
    db: Optional[str] = typer.Option(None, "--db", help="Override the database path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """prompt-vault CLI."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    try:
        app_config = load_app_config(str(config)) if config else AppConfig()
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    if db:
        app_config = AppConfig(
            db_path=db,
            default_model=app_config.default_model,
            autosave=app_config.autosave,
            pricing=app_config.pricing,
        )
    ctx.obj = CliState(config=app_config)
    if ctx.invoked_subcommand is None:
        console.print("prompt-vault - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the prompt-vault database."""
    try:
        initialize_schema(ctx.obj.config.db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def sessions(
    ctx: typer.Context,
    search: str = typer.Option("", "--search", "-s", help="Filter by name, idea or prompt text"),
):
    """List saved sessions, most recently updated first."""
    store = _build_editor(ctx.obj).store
    found = store.search(search)
    if not found:
        console.print("\n[dim]No saved sessions found.[/]")
        return

    table = Table(title="Saved Sessions")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Versions", justify="right")
    table.add_column("Updated")
    for session in found:
        table.add_row(
            session.id,
            session.name or _truncate(session.base_idea),
            str(len(session.versions)),
            latest_version(session).created_at,
        )
    console.print(table)
    console.print(f"Total sessions: {len(store.sessions)}  Filtered: {len(found)}  "
                  f"Versions: {store.version_count()}")


@app.command()
def show(ctx: typer.Context, session_id: str):
    """Show the version history of a session."""
    session = _build_editor(ctx.obj).store.get(session_id)
    if session is None:
        console.print(f"[red]Error:[/] Session not found: {session_id}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]{session.name or 'Untitled session'}[/bold]")
    console.print(f"Idea: {session.base_idea}")
    table = Table()
    table.add_column("#", justify="right")
    table.add_column("Version ID", style="dim")
    table.add_column("Framework")
    table.add_column("Model")
    table.add_column("Created")
    table.add_column("Change")
    count = len(session.versions)
    for index, version in enumerate(session.versions):
        table.add_row(
            str(count - index),
            version.version_id,
            version.framework_acronym,
            version.model,
            version.created_at,
            version.change_summary,
        )
    console.print(table)


@app.command()
def save(
    ctx: typer.Context,
    idea: str = typer.Option("", "--idea", "-i", help="Source idea text"),
    prompt: str = typer.Option("", "--prompt", "-p", help="Optimized prompt text"),
    name: Optional[str] = typer.Option(None, "--name", "-n", help="Session name"),
    session_id: Optional[str] = typer.Option(None, "--session", help="Add a version to this session"),
    use_case: str = typer.Option("General", "--use-case", help="Use case tag"),
    framework: str = typer.Option("", "--framework", "-f", help="Framework acronym"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Generation model"),
):
    """Save a prompt as a new session or a new version of an existing one."""
    editor = _build_editor(ctx.obj)
    if session_id and not editor.load(session_id):
        console.print(f"[red]Error:[/] Session not found: {session_id}")
        sys.exit(EXIT_CODE_FAIL)

    changes = {"idea": idea, "generated_prompt": prompt, "framework_acronym": framework}
    editor.edit(**{k: v for k, v in changes.items() if v})
    editor.edit(use_case=use_case)
    if model:
        editor.edit(model=model)
    result = asyncio.run(editor.global_save(SaveMode.MANUAL, name))
    if result is None:
        console.print("[yellow]Nothing to save:[/] provide --idea or --prompt")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"Session: {result.session_id}")
    sys.exit(EXIT_CODE_PASS if result.persisted else EXIT_CODE_FAIL)


@app.command()
def rename(ctx: typer.Context, session_id: str, new_name: str):
    """Rename a session."""
    if not _build_editor(ctx.obj).store.rename(session_id, new_name):
        console.print(f"[red]Error:[/] Session not found: {session_id}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def delete(ctx: typer.Context, session_id: str):
    """Delete a session and its whole history."""
    if not _build_editor(ctx.obj).delete_session(session_id).removed:
        console.print(f"[yellow]Nothing deleted:[/] no session {session_id}")


@app.command("delete-version")
def delete_version(ctx: typer.Context, session_id: str, version_id: str):
    """Delete one version; the session goes away with its last version."""
    if not _build_editor(ctx.obj).delete_version(session_id, version_id).removed:
        console.print(f"[yellow]Nothing deleted:[/] no version {version_id} in {session_id}")


@app.command()
def autosave(
    ctx: typer.Context,
    action: str = typer.Argument("status", help="on, off or status"),
):
    """Show or change the autosave preference."""
    editor = _build_editor(ctx.obj)
    scheduler = AutosaveScheduler(
        editor,
        editor.store.kv_store,
        idle_seconds=ctx.obj.config.autosave.idle_seconds,
        default_enabled=ctx.obj.config.autosave.enabled,
    )
    action = action.lower()
    if action == "on":
        scheduler.set_enabled(True)
    elif action == "off":
        scheduler.set_enabled(False)
    elif action == "status":
        console.print(f"Autosave is {'ON' if scheduler.enabled else 'OFF'}")
    else:
        console.print(f"[red]Error:[/] unknown action {action!r}; use on, off or status")
        sys.exit(EXIT_CODE_FAIL)
    scheduler.close()


@app.command()
def usage(ctx: typer.Context):
    """Show token usage totals, estimated cost and per-model breakdown."""
    aggregator = _load_usage(ctx.obj.config)
    stats = aggregator.stats()
    if stats.count == 0:
        console.print("\n[bold yellow]No usage recorded yet[/]")
        return

    console.print("\n[bold]Token Usage[/bold]")
    console.print("-" * 40)
    console.print(f"Requests: {stats.count:,}")
    console.print(f"Total tokens: {stats.total_tokens:,}")
    console.print(f"Input: {stats.total_input:,}  Output: {stats.total_output:,}  "
                  f"Thinking: {stats.total_thinking:,}")
    console.print(f"Cache efficiency: {stats.cache_hit_rate:.1f}% ({stats.total_cached:,} tokens)")
    console.print(f"Estimated cost: {_format_currency(stats.cost)}")

    table = Table(title="By Model")
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    for model, totals in aggregator.by_model().items():
        table.add_row(model, f"{totals.input:,}", f"{totals.output:,}")
    console.print(table)


@app.command("export-usage")
def export_usage(
    ctx: typer.Context,
    fmt: str = typer.Option("csv", "--format", help="csv or json"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write to file instead of stdout"),
):
    """Export the usage log as CSV or JSON."""
    aggregator = _load_usage(ctx.obj.config)
    if fmt == "csv":
        content = aggregator.to_csv()
    elif fmt == "json":
        content = aggregator.to_json()
    else:
        console.print(f"[red]Error:[/] unknown format {fmt!r}; use csv or json")
        sys.exit(EXIT_CODE_FAIL)

    if output:
        output.write_text(content, encoding="utf-8")
        console.print(f"[green]✓[/] Exported {len(aggregator.records)} records to {output}")
    else:
        typer.echo(content, nl=False)


def _load_usage(config: AppConfig) -> UsageAggregator:
    initialize_schema(config.db_path)
    return UsageAggregator.from_ledger(config.db_path, pricing=config.pricing)


def _format_currency(amount) -> str:
    """Format an estimated cost; small amounts keep more precision."""
    return f"${amount:,.6f}" if amount < 1 else f"${amount:,.2f}"


def _truncate(text: str, length: int = 40) -> str:
    return text if len(text) <= length else text[:length] + "..."


if __name__ == "__main__":
    app()
