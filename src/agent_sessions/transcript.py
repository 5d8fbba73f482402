"""Rebuild tool activity from persisted transcript messages.

Messages carry Anthropic-style content blocks:

- assistant: "text", "thinking" and "tool_use" blocks. A tool_use may carry
  "parent_tool_use_id" (or the message metadata may) when it was issued
  by a sub-agent.
- user / tool: "tool_result" blocks answering a tool_use by id. Their
  content is a string or a list of blocks (text, image, ...).

Replaying these through ActivityTracker gives the same activity view the
live stream produced, so the tracker never needs persisting.
"""

import json
import logging
from typing import Iterable

from .activity import ActivityEvent, ActivityTracker, ToolEnd, ToolStart
from .core import Message

logger = logging.getLogger(__name__)


def tool_result_text(content) -> str:
    """Flatten tool_result content to text.

    Pure-text block lists are joined; anything with images or unknown
    blocks is kept as JSON so media can still be recovered from it.
    """
    if isinstance(content, str):
        return content
    if not isinstance(content, list):
        return "" if content is None else str(content)

    parts = []
    for block in content:
        if isinstance(block, str):
            parts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            parts.append(block.get("text", ""))
        else:
            try:
                return json.dumps(content, ensure_ascii=False)
            except (TypeError, ValueError):
                return str(content)
    return "\n".join(parts)


def _message_parent_id(message: Message) -> str | None:
    meta = message.metadata or {}
    return meta.get("parentToolUseId") or meta.get("parent_tool_use_id") or None


def events_from_messages(messages: Iterable[Message]) -> list[ActivityEvent]:
    """Convert transcript content blocks into activity events, in order."""
    events: list[ActivityEvent] = []

    for message in messages:
        blocks = message.content
        if not isinstance(blocks, list):
            continue
        message_parent = _message_parent_id(message)

        for block in blocks:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type", "")

            if block_type == "tool_use":
                tool_use_id = block.get("id")
                if not isinstance(tool_use_id, str) or not tool_use_id:
                    logger.debug("Skipping tool_use block without id in %s", message.id)
                    continue
                tool_input = block.get("input")
                events.append(ToolStart(
                    tool_use_id=tool_use_id,
                    tool_name=str(block.get("name") or "unknown"),
                    input=tool_input if isinstance(tool_input, dict) else {},
                    parent_tool_use_id=block.get("parent_tool_use_id") or message_parent,
                ))

            elif block_type == "tool_result":
                tool_use_id = block.get("tool_use_id")
                if not isinstance(tool_use_id, str) or not tool_use_id:
                    continue
                events.append(ToolEnd(
                    tool_use_id=tool_use_id,
                    result=tool_result_text(block.get("content")),
                    is_error=bool(block.get("is_error", False)),
                ))

    return events


def activities_from_messages(messages: Iterable[Message]) -> ActivityTracker:
    return ActivityTracker(events_from_messages(messages))


def tool_call_summary(tool_name: str, tool_input: dict) -> str:
    """Readable one-liner such as ``Read: /src/auth.ts``."""
    file_path = tool_input.get("file_path", tool_input.get("path", ""))
    command = tool_input.get("command", "")

    summary_parts = [tool_name]
    if isinstance(file_path, str) and file_path:
        summary_parts.append(file_path)
    elif isinstance(command, str) and command:
        cmd_short = command[:100] + ("..." if len(command) > 100 else "")
        summary_parts.append(cmd_short)

    return ": ".join(summary_parts)
