"""
CLI interface for AI Chat Guard.

Provides command-line access to chat, conversation history and token tools.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from ai_chat_guard.config.loader import (
    DEFAULT_CONFIG_PATH,
    ChatGuardConfig,
    load_config,
    load_storage_config,
)
from ai_chat_guard.context.provider import WorkspaceContextProvider
from ai_chat_guard.core.errors import ChatError
from ai_chat_guard.core.models import MODEL_CATALOG, build_token_budget
from ai_chat_guard.core.pipeline import ChatPipeline
from ai_chat_guard.core.token_budget import TokenBudgetOptimizer
from ai_chat_guard.core.types import ChatContext, ChatResponse
from ai_chat_guard.sdk.llm_client import LLMClient
from ai_chat_guard.storage.ledger import ConversationLedger, SQLiteStorageAdapter
from ai_chat_guard.storage.repository import initialize_schema

app = typer.Typer()
console = Console()
err_console = Console(stderr=True)

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION_HELP = "Path to the YAML configuration file"

CONFIG_TEMPLATE = {
    "llm": {
        "base_url": "https://api.openai.com/v1",
        "model": "gpt-3.5-turbo",
        "max_tokens": 4096,
        "temperature": 0.7,
        "timeout": 30,
    },
    "chat": {
        "max_history_length": 50,
        "enable_context_gathering": True,
        "enable_safety_filter": True,
        "retry_attempts": 3,
        "retry_delay": 1.0,
    },
    "storage": {
        "db_path": ".ai-chat-guard.db",
        "auto_save": True,
    },
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _open_ledger(db_path: str, auto_save: bool = True, max_history_length: int = 50) -> ConversationLedger:
    return ConversationLedger(
        storage=SQLiteStorageAdapter(db_path),
        auto_save=auto_save,
        max_history_length=max_history_length,
    )


def build_pipeline(config: ChatGuardConfig, project_root: str = ".") -> ChatPipeline:
    """Assemble a pipeline from configuration with the default collaborators."""
    return ChatPipeline(
        generator=LLMClient.from_config(config.llm),
        settings=config.chat,
        context_provider=WorkspaceContextProvider(project_root),
        ledger=_open_ledger(
            config.storage.db_path,
            auto_save=config.storage.auto_save,
            max_history_length=config.chat.max_history_length,
        ),
    )


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """AI Chat Guard CLI."""
    _configure_logging(verbose)
    if ctx.invoked_subcommand is None:
        console.print("AI Chat Guard - Use --help to see available commands")


@app.command()
def init(
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help=CONFIG_OPTION_HELP),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing configuration file")
):
    """Write a configuration template and initialize the conversation database."""
    try:
        path = Path(config_path)
        if path.exists() and not force:
            console.print(f"[yellow]![/] {config_path} already exists (use --force to overwrite)")
        else:
            path.write_text(yaml.safe_dump(CONFIG_TEMPLATE, sort_keys=False), encoding="utf-8")
            console.print(f"[green]✓[/] Wrote configuration template to {config_path}")

        storage = load_storage_config(config_path)
        initialize_schema(storage.db_path)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error initializing:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def chat(
    message: str = typer.Argument(..., help="Message to send"),
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help=CONFIG_OPTION_HELP),
    conversation: Optional[str] = typer.Option(
        None, "--conversation", help="Continue an existing conversation"
    ),
    active_file: Optional[str] = typer.Option(
        None, "--file", "-f", help="File to attach as the active file"
    ),
    selection: Optional[str] = typer.Option(
        None, "--selection", "-s", help="Selected text to attach"
    ),
    project_root: str = typer.Option(".", "--root", help="Project directory for context gathering")
):
    """Send a message and print the assistant's reply."""
    try:
        config = load_config(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Configuration error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    context = None
    if active_file or selection:
        context = ChatContext(active_file=active_file, selected_text=selection)

    try:
        response = asyncio.run(_run_chat(config, message, context, conversation, project_root))
    except ChatError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)

    _display_response(response)
    sys.exit(EXIT_CODE_FAIL if response.error else EXIT_CODE_PASS)


async def _run_chat(
    config: ChatGuardConfig,
    message: str,
    context: Optional[ChatContext],
    conversation_id: Optional[str],
    project_root: str
) -> ChatResponse:
    pipeline = build_pipeline(config, project_root)
    try:
        if conversation_id:
            loaded = await pipeline.load_conversation(conversation_id)
            if loaded is None:
                raise ChatError(f"Conversation not found: {conversation_id}")
        return await pipeline.send_message(message, context)
    finally:
        await pipeline.generator.aclose()


def _display_response(response: ChatResponse) -> None:
    if response.error:
        console.print(response.message.content, style="red", markup=False)
        console.print(f"[dim]({response.error.type.value}, retryable: {response.error.retryable})[/]")
        return

    console.print(response.message.content, markup=False)
    metadata = response.message.metadata
    if metadata is not None:
        console.print(
            f"\n[dim]{metadata.model} · {metadata.token_count} tokens · "
            f"{metadata.processing_time_ms} ms[/]"
        )
    if response.actions:
        console.print("\n[bold]Actions:[/bold]")
        for action in response.actions:
            console.print(f"  • {action.description}")
    if response.suggestions:
        console.print("\n[bold]Suggestions:[/bold]")
        for suggestion in response.suggestions:
            console.print(f"  • {suggestion}")


@app.command()
def conversations(
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """List stored conversations, most recent first."""
    try:
        storage = load_storage_config(config_path)
        items = asyncio.run(_open_ledger(storage.db_path).list_conversations())
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    if not items:
        console.print("[dim]No conversations found.[/]")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Conversations")
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Messages", justify="right")
    table.add_column("Last Modified")
    for item in items:
        table.add_row(
            item.id,
            item.title,
            str(item.message_count),
            item.last_modified.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def history(
    conversation_id: str = typer.Argument(..., help="Conversation to show"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of most recent messages to show"),
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Show the most recent messages of a conversation."""
    try:
        storage = load_storage_config(config_path)
        loaded = asyncio.run(_open_ledger(storage.db_path).load_conversation(conversation_id))
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except ChatError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)

    if loaded is None:
        console.print(f"[red]Conversation not found:[/] {conversation_id}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]{loaded.title}[/bold]")
    console.print("-" * 40)
    shown = loaded.messages[-limit:] if limit > 0 else []
    for message in shown:
        style = "cyan" if message.role.value == "user" else "green"
        console.print(f"[{style}]{message.role.value}[/] [dim]{message.timestamp:%H:%M:%S}[/]")
        console.print(message.content, markup=False)
        console.print()
    sys.exit(EXIT_CODE_PASS)


@app.command()
def export(
    conversation_id: str = typer.Argument(..., help="Conversation to export"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write to this file instead of stdout"),
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Export a conversation as JSON."""
    try:
        storage = load_storage_config(config_path)
        data = asyncio.run(_open_ledger(storage.db_path).export_conversation(conversation_id))
        if output:
            Path(output).write_text(data, encoding="utf-8")
            console.print(f"[green]✓[/] Exported {conversation_id} to {output}")
        else:
            console.print_json(data)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except ChatError as e:
        console.print(f"[red]Error:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


@app.command("import")
def import_conversation(
    source: str = typer.Argument(..., help="JSON file produced by export"),
    title: Optional[str] = typer.Option(None, "--title", "-t", help="Title for the imported conversation"),
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """Import an exported conversation."""
    try:
        storage = load_storage_config(config_path)
        data = Path(source).read_text(encoding="utf-8")
        imported = asyncio.run(_open_ledger(storage.db_path).import_conversation(data, title))
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)
    except ChatError as e:
        console.print(f"[red]Import failed:[/] {e.message}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(
        f"[green]✓[/] Imported {imported.message_count} messages as {imported.id} ({imported.title})"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def tokens(
    text: str = typer.Argument(..., help="Prompt to measure"),
    model: str = typer.Option("gpt-3.5-turbo", "--model", "-m", help="Model whose limits apply"),
    max_tokens: int = typer.Option(4096, "--max-tokens", help="Completion token cap"),
    context_file: Optional[str] = typer.Option(
        None, "--context-file", help="File whose contents are sent as context"
    )
):
    """Estimate token usage of a prompt and check it against model limits."""
    try:
        context = Path(context_file).read_text(encoding="utf-8") if context_file else ""
        budget = build_token_budget(model, max_tokens)
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    optimizer = TokenBudgetOptimizer(budget)
    report = optimizer.validate_token_limits(text, context, [])

    known = "" if MODEL_CATALOG.is_known(model) else " (unknown model, default window)"
    console.print(f"\n[bold]Token Estimate[/bold] for {model}{known}")
    console.print("-" * 40)
    console.print(f"Prompt tokens: {optimizer.estimate_tokens(text):,}")
    console.print(f"Context tokens: {optimizer.estimate_tokens(context):,}")
    console.print(f"Total tokens: {report.total_tokens:,}")
    console.print(f"Context window: {budget.context_window:,}")

    if report.is_valid:
        console.print("\n[green]✓[/] Within limits")
        sys.exit(EXIT_CODE_PASS)

    for issue, suggestion in zip(report.issues, report.suggestions):
        console.print(f"\n[yellow]![/] {issue}")
        console.print(f"  [dim]{suggestion}[/]")
    sys.exit(EXIT_CODE_FAIL)


@app.command()
def status(
    config_path: str = typer.Option(DEFAULT_CONFIG_PATH, "--config", "-c", help=CONFIG_OPTION_HELP),
    check_connection: bool = typer.Option(
        False, "--check-connection", help="Verify the endpoint is reachable"
    )
):
    """Check configuration and, optionally, connectivity."""
    if not Path(config_path).exists():
        console.print(f"[red]✗[/] No configuration at {config_path} (run `ai-chat-guard init`)")
        sys.exit(EXIT_CODE_FAIL)

    try:
        config = load_config(config_path)
    except (OSError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]✗[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"[green]✓[/] Configuration loaded from {config_path}")
    console.print(f"  Model: {config.llm.model} ({config.llm.base_url})")
    console.print(f"  Database: {config.storage.db_path}")

    if check_connection:
        if asyncio.run(_check_connection(config)):
            console.print("[green]✓[/] LLM endpoint is reachable")
        else:
            console.print("[red]✗[/] LLM endpoint is not reachable")
            sys.exit(EXIT_CODE_FAIL)
    sys.exit(EXIT_CODE_PASS)


async def _check_connection(config: ChatGuardConfig) -> bool:
    async with LLMClient.from_config(config.llm) as client:
        return await client.validate_connection()


if __name__ == "__main__":
    app()
