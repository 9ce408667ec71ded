"""SessionBridge CLI - OpenCode completion notifications over Telegram."""

import asyncio
import time
from datetime import datetime
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from sessionbridge import __version__
from sessionbridge.config import (
    DEFAULT_OPENCODE_URL,
    BridgeConfig,
    config_path,
    load_config,
    save_config,
)
from sessionbridge.logging_config import setup_logger

app = typer.Typer(
    name="sessionbridge",
    help="Tell Telegram when an OpenCode session is really done.",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Manage the bridge configuration.")
mcp_app = typer.Typer(help="MCP server management.")

app.add_typer(config_app, name="config")
app.add_typer(mcp_app, name="mcp")

console = Console()


def version_callback(value: bool) -> None:
    if value:
        console.print(f"sessionbridge {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-v", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", help="Also log to stderr")
    ] = False,
) -> None:
    """SessionBridge - completion notifications and remote commands for OpenCode."""
    setup_logger("sessionbridge", "sessionbridge.log", console_output=verbose)


def _require_config() -> BridgeConfig:
    config = load_config()
    if config is None:
        console.print(f"[red]Error:[/red] no configuration found at {config_path()}")
        console.print("  sessionbridge config init --bot-token <token> --chat-id <id>")
        raise typer.Exit(1)
    return config


# ── Bridge commands ──────────────────────────────────────────────


@app.command("run")
def run() -> None:
    """Run the bridge until interrupted."""
    from sessionbridge.bridge import Bridge

    bridge = Bridge(_require_config())
    console.print(
        f"[green]Bridge running[/green] for [cyan]{bridge.coordinator.project_name}[/cyan] "
        f"(OpenCode at {bridge.config.opencode_url}). Press Ctrl+C to stop."
    )
    try:
        asyncio.run(bridge.run())
    except KeyboardInterrupt:
        console.print("\n[dim]Stopped.[/dim]")


@app.command("inspect")
def inspect(
    session_id: Annotated[str, typer.Argument(help="OpenCode session ID")],
    url: Annotated[
        Optional[str], typer.Option("--url", help="OpenCode server URL")
    ] = None,
) -> None:
    """Show what the completion detector sees for one session right now."""
    from sessionbridge.completion.evidence import collect_evidence
    from sessionbridge.completion.fingerprint import build_fingerprint
    from sessionbridge.completion.models import Snapshot
    from sessionbridge.completion.state import CompletionSettings
    from sessionbridge.completion.status import classify_status
    from sessionbridge.completion.subagent import is_subagent_session
    from sessionbridge.opencode.client import OpenCodeClient, OpenCodeError

    config = load_config()
    base_url = url or (config.opencode_url if config else DEFAULT_OPENCODE_URL)

    async def fetch() -> Snapshot:
        client = OpenCodeClient(base_url)
        try:
            return Snapshot(
                session_id=session_id,
                session=await client.get_session(session_id),
                messages=tuple(await client.list_messages(session_id)),
                todos=tuple(await client.list_todos(session_id)),
            )
        finally:
            await client.close()

    try:
        snapshot = asyncio.run(fetch())
    except OpenCodeError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    evidence = collect_evidence(snapshot.messages)
    report = classify_status(None, snapshot, time.time(), CompletionSettings())

    def stamp(value: float) -> str:
        return datetime.fromtimestamp(value).strftime("%Y-%m-%d %H:%M:%S") if value else "-"

    table = Table(title=f"Session {session_id}", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Title", (snapshot.session.title if snapshot.session else None) or "-")
    table.add_row("Subagent", "yes" if is_subagent_session(snapshot.session) else "no")
    table.add_row("Messages", str(len(snapshot.messages)))
    table.add_row("Todos", f"{report.todo_done}/{report.todo_total}")
    table.add_row("Fingerprint", build_fingerprint(snapshot.messages, snapshot.todos))
    table.add_row("Last user message", stamp(evidence.user_at))
    table.add_row("Last assistant reply", stamp(evidence.assistant_at))
    table.add_row("Status (cold)", f"{report.status} [dim]({report.confidence})[/dim]")
    console.print(table)
    for reason in report.reasons:
        console.print(f"  [dim]•[/dim] {reason}")


# ── Config commands ──────────────────────────────────────────────


@config_app.command("init")
def config_init(
    bot_token: Annotated[str, typer.Option("--bot-token", help="Telegram bot token")],
    chat_id: Annotated[int, typer.Option("--chat-id", help="Telegram chat ID")],
    opencode_url: Annotated[
        str, typer.Option("--opencode-url", help="OpenCode server URL")
    ] = DEFAULT_OPENCODE_URL,
    project_name: Annotated[
        Optional[str], typer.Option("--project", "-p", help="Project label in notifications")
    ] = None,
) -> None:
    """Write the bridge configuration file."""
    config = BridgeConfig(
        bot_token=bot_token,
        chat_id=chat_id,
        opencode_url=opencode_url,
        project_name=project_name,
    )
    path = save_config(config)
    console.print(f"[green]Saved config:[/green] {path}")


@config_app.command("show")
def config_show() -> None:
    """Print the active configuration (token masked)."""
    config = _require_config()

    table = Table(title=str(config_path()))
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    for key, value in config.model_dump().items():
        if key == "bot_token":
            value = config.masked_token()
        table.add_row(key, "-" if value is None else str(value))
    console.print(table)


# ── MCP commands ─────────────────────────────────────────────────


@mcp_app.command("serve")
def mcp_serve() -> None:
    """Start the MCP server (stdio transport) with the bridge running inside it."""
    from sessionbridge.mcp.server import mcp

    mcp.run()
