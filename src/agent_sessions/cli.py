"""CLI entry point for agent-sessions."""

import json
import logging
from datetime import datetime

import click
import uvicorn

from .activity import ActivityGroup
from .context_usage import compute_context_usage
from .display import format_elapsed, format_tool_name, get_input_summary
from .export import session_to_json, session_to_markdown
from .store import SessionStore
from .transcript import activities_from_messages


def _fmt_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def _activity_line(activity, indent: str = "") -> str:
    line = f"{indent}[{activity.status.value}] {format_tool_name(activity.tool_name)}"
    summary = get_input_summary(activity.tool_name, activity.input)
    if summary:
        line += f"  {summary}"
    if activity.elapsed_seconds:
        line += f"  ({format_elapsed(activity.elapsed_seconds)})"
    return line


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx, verbose: bool):
    """Persist agent sessions and inspect their tool activity."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = SessionStore()


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
@click.option("--log-level", default="info", help="uvicorn log level.")
def serve(port: int, host: str, log_level: str):
    """Start the API server."""
    click.echo(f"Starting agent-sessions on http://{host}:{port}")
    uvicorn.run("agent_sessions.server:app", host=host, port=port, reload=False, log_level=log_level)


@main.command("list")
@click.option("--json", "as_json", is_flag=True, help="Print JSON instead of a table.")
@click.pass_obj
def list_sessions(store: SessionStore, as_json: bool):
    """List sessions, most recently updated first."""
    sessions = store.list_sessions()
    if as_json:
        click.echo(json.dumps([s.to_dict() for s in sessions], indent=2, ensure_ascii=False))
        return
    if not sessions:
        click.echo("No sessions.")
        return
    for s in sessions:
        click.echo(f"{s.id}  {_fmt_ms(s.updated_at)}  {s.title}")


@main.command()
@click.argument("session_id")
@click.pass_obj
def show(store: SessionStore, session_id: str):
    """Show a session's tool activity, grouped by sub-agent."""
    session = store.get_session_meta(session_id)
    if session is None:
        raise click.ClickException(f"Session not found: {session_id}")

    messages = store.get_messages(session_id)
    click.echo(f"{session.title}  ({len(messages)} messages)")

    for item in activities_from_messages(messages).grouped():
        if isinstance(item, ActivityGroup):
            click.echo(
                f"[{item.status.value}] {item.subagent_type or 'Task'}: {item.description}"
                f"  {item.done_count}/{len(item.children)}"
            )
            for child in item.children:
                click.echo(_activity_line(child, indent="    "))
        else:
            click.echo(_activity_line(item))


@main.command()
@click.argument("input_tokens", type=int)
@click.argument("context_window", type=int, required=False)
@click.option("--compacting", is_flag=True, help="The session is compacting right now.")
def usage(input_tokens: int, context_window: int | None, compacting: bool):
    """Classify context window usage."""
    result = compute_context_usage(input_tokens, context_window, compacting)
    line = result.level.value
    if result.display_text:
        line += f"  {result.display_text}"
    if result.percent_text:
        line += f"  {result.percent_text}"
    click.echo(line)


@main.command()
@click.argument("session_id")
@click.option("--format", "fmt", type=click.Choice(["md", "json"]), default="md", help="Export format.")
@click.pass_obj
def export(store: SessionStore, session_id: str, fmt: str):
    """Export a session transcript to stdout."""
    session = store.get_session_meta(session_id)
    if session is None:
        raise click.ClickException(f"Session not found: {session_id}")

    messages = store.get_messages(session_id)
    if fmt == "json":
        click.echo(session_to_json(session, messages))
    else:
        click.echo(session_to_markdown(session, messages))
