"""Export agent sessions to Markdown and JSON formats."""

import json
from datetime import datetime, timezone

from .core import Message, Session
from .transcript import tool_result_text, tool_call_summary


def _format_ms(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).isoformat()


def _message_lines(msg: Message) -> list[str]:
    """Body lines for one message: text, then a line per tool call/result."""
    if isinstance(msg.content, str):
        return [msg.content]

    lines = []
    text = msg.text()
    if text.strip():
        lines.append(text)

    for block in msg.content or []:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type", "")
        if block_type == "tool_use":
            tool_input = block.get("input") if isinstance(block.get("input"), dict) else {}
            lines.append(f"- Tool: `{tool_call_summary(str(block.get('name', 'unknown')), tool_input)}`")
        elif block_type == "tool_result":
            result = tool_result_text(block.get("content")) or "(empty result)"
            label = "Error" if block.get("is_error") else "Result"
            first_line = result.splitlines()[0] if result.splitlines() else result
            lines.append(f"- {label}: {first_line[:200]}")
    return lines


def session_to_markdown(session: Session, messages: list[Message]) -> str:
    """Export a session and its transcript as clean Markdown."""
    lines = [f"# {session.title}", ""]

    if session.workspace_id:
        lines.append(f"**Workspace:** {session.workspace_id}")
    if session.channel_id:
        lines.append(f"**Channel:** {session.channel_id}")
    lines.append(f"**Created:** {_format_ms(session.created_at)}")
    lines.append(f"**Updated:** {_format_ms(session.updated_at)}")
    lines.append(f"**Messages:** {len(messages)}")
    lines.extend(["", "---", ""])

    for msg in messages:
        body = _message_lines(msg)
        if not body:
            continue
        role_label = msg.role.capitalize()
        ts = ""
        if msg.created_at:
            ts = f" ({datetime.fromtimestamp(msg.created_at / 1000, tz=timezone.utc).strftime('%Y-%m-%d %H:%M')})"
        lines.append(f"## {role_label}{ts}")
        lines.append("")
        lines.extend(body)
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def session_to_json(session: Session, messages: list[Message]) -> str:
    """Export a session and its transcript as structured JSON."""
    data = {
        "session": {
            **session.to_dict(),
            "messageCount": len(messages),
        },
        "messages": [msg.to_dict() for msg in messages],
    }
    return json.dumps(data, indent=2, ensure_ascii=False)
