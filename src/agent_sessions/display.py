"""Display-only data derived from tool activities.

Nothing here is needed for correctness. Every helper tolerates missing
or oddly shaped input and returns None or an empty result instead of
raising.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .activity import (
    ActivityGroup,
    ActivityItem,
    ToolActivity,
    ToolKind,
    tool_kind,
)

MAX_MEDIA_DEPTH = 5
MAX_INLINE_BASE64 = 500_000

_IMAGE_EXT_RE = re.compile(r"\.(jpe?g|png|gif|webp)(\?|$)", re.IGNORECASE)
_VIDEO_EXT_RE = re.compile(r"\.(mp4|webm|ogg|mov)(\?|$)", re.IGNORECASE)
_IMAGE_URL_RE = re.compile(r"""https?://[^\s"'<>\])]+\.(?:jpe?g|png|gif|webp)(?:\?[^\s"'<>\])]*)?""", re.IGNORECASE)
_VIDEO_URL_RE = re.compile(r"""https?://[^\s"'<>\])]+\.(?:mp4|webm|ogg|mov)(?:\?[^\s"'<>\])]*)?""", re.IGNORECASE)
_MARKDOWN_IMAGE_RE = re.compile(r"!\[.*?\]\((https?://[^\s)]+)\)")

_URL_KEYS = ("url", "image_url", "imageUrl", "src", "image", "video_url", "videoUrl", "video")
_LIST_KEYS = ("urls", "images", "content", "data", "results")


@dataclass
class DiffStats:
    additions: int
    deletions: int


@dataclass
class MediaUrls:
    images: list[str] = field(default_factory=list)
    videos: list[str] = field(default_factory=list)


@dataclass
class TodoItem:
    content: str
    status: str  # "pending" | "in_progress" | "completed"
    active_form: Optional[str] = None


# ── Names & input ────────────────────────────────────────────────────


def parse_mcp_tool_name(tool_name: str) -> Optional[tuple[str, str]]:
    """Split ``mcp__server__tool`` into (server, tool)."""
    if not tool_name.startswith("mcp__"):
        return None
    server, sep, tool = tool_name[5:].partition("__")
    if not sep:
        return None
    return server, tool


def format_tool_name(tool_name: str) -> str:
    mcp = parse_mcp_tool_name(tool_name)
    if mcp:
        return f"{mcp[0]} · {mcp[1]}"
    return tool_name


def format_elapsed(seconds: float) -> str:
    if seconds < 60:
        return f"{round(seconds)}s"
    minutes = int(seconds // 60)
    return f"{minutes}m{round(seconds % 60)}s"


def extract_file_path(tool_input: dict) -> Optional[str]:
    for key in ("file_path", "filePath", "path", "notebook_path"):
        if key in tool_input and tool_input[key] is not None:
            value = tool_input[key]
            return value if isinstance(value, str) else None
    return None


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + "…" if len(text) > limit else text


def get_input_summary(tool_name: str, tool_input: dict) -> Optional[str]:
    """One-line summary of a tool's input, or None if nothing useful."""
    kind = tool_kind(tool_name)

    if kind == ToolKind.BASH:
        command = tool_input.get("command")
        if isinstance(command, str):
            return _truncate(command, 80)
    elif kind == ToolKind.GREP:
        pattern = tool_input.get("pattern")
        if isinstance(pattern, str):
            return f"/{pattern}/"
    elif kind == ToolKind.GLOB:
        pattern = tool_input.get("pattern")
        if isinstance(pattern, str):
            return pattern
    elif kind in (ToolKind.WEB_FETCH, ToolKind.WEB_SEARCH):
        target = tool_input.get("url")
        if target is None:
            target = tool_input.get("query")
        if isinstance(target, str):
            return _truncate(target, 60)
    elif kind == ToolKind.SKILL:
        skill = tool_input.get("skill")
        if isinstance(skill, str):
            return skill
    return None


def format_input(tool_input: dict) -> str:
    """Pretty JSON of the input, without underscore-prefixed keys."""
    filtered = {k: v for k, v in tool_input.items() if not str(k).startswith("_")}
    try:
        return json.dumps(filtered, indent=2, ensure_ascii=False)
    except (TypeError, ValueError):
        return "[unserializable]"


def compute_diff_stats(tool_name: str, tool_input: dict) -> Optional[DiffStats]:
    """Rough +/- line counts for an Edit, from the before/after strings."""
    if tool_kind(tool_name) != ToolKind.EDIT:
        return None
    old = tool_input.get("old_string")
    new = tool_input.get("new_string")
    old = old if isinstance(old, str) else ""
    new = new if isinstance(new, str) else ""
    if not old and not new:
        return None

    old_lines = len(old.split("\n"))
    new_lines = len(new.split("\n"))
    return DiffStats(
        additions=max(0, new_lines - old_lines + 1),
        deletions=max(0, old_lines - new_lines + 1),
    )


def parse_todo_items(tool_input: dict) -> Optional[list[TodoItem]]:
    todos = tool_input.get("todos")
    if not isinstance(todos, list):
        return None

    items = []
    for todo in todos:
        if not isinstance(todo, dict):
            continue
        content = todo.get("subject")
        if content is None:
            content = todo.get("content", "")
        active_form = todo.get("activeForm")
        items.append(TodoItem(
            content=str(content),
            status=todo.get("status") or "pending",
            active_form=active_form if isinstance(active_form, str) else None,
        ))
    return items


# ── Media ────────────────────────────────────────────────────────────


def _collect_media(data: Any, media: MediaUrls, depth: int = 0) -> None:
    if depth > MAX_MEDIA_DEPTH or not data:
        return

    if isinstance(data, str):
        if data.startswith("http"):
            if _IMAGE_EXT_RE.search(data):
                media.images.append(data)
            elif _VIDEO_EXT_RE.search(data):
                media.videos.append(data)
        return

    if isinstance(data, list):
        for item in data:
            _collect_media(item, media, depth + 1)
        return

    if not isinstance(data, dict):
        return

    if data.get("type") == "image":
        source = data.get("source")
        if isinstance(source, dict):
            if source.get("type") == "url" and isinstance(source.get("url"), str):
                media.images.append(source["url"])
                return
            payload = source.get("data")
            if source.get("type") == "base64" and isinstance(payload, str) and len(payload) < MAX_INLINE_BASE64:
                media.images.append(f"data:{source.get('media_type') or 'image/png'};base64,{payload}")
                return
        # MCP image content: {"type": "image", "data": ..., "mimeType": ...}
        payload = data.get("data")
        if isinstance(payload, str) and len(payload) < MAX_INLINE_BASE64:
            mime = data.get("mimeType")
            media.images.append(f"data:{mime if isinstance(mime, str) else 'image/png'};base64,{payload}")
            return

    for key in _URL_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.startswith("http"):
            if _VIDEO_EXT_RE.search(value):
                media.videos.append(value)
            else:
                # Extension-less CDN links count as images
                media.images.append(value)

    for key in _LIST_KEYS:
        if isinstance(data.get(key), list):
            _collect_media(data[key], media, depth + 1)


def _dedupe(values: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(values))


def extract_media_urls(text: Optional[str]) -> MediaUrls:
    """Find image/video references in a tool result.

    Structured JSON is walked first (bounded depth); URL-shaped substrings
    and markdown images are then matched over the raw text.
    """
    media = MediaUrls()
    if not isinstance(text, str) or not text:
        return media

    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        parsed = None
    if parsed is not None:
        _collect_media(parsed, media)

    media.images.extend(_IMAGE_URL_RE.findall(text))
    media.videos.extend(_VIDEO_URL_RE.findall(text))
    for url in _MARKDOWN_IMAGE_RE.findall(text):
        if _VIDEO_EXT_RE.search(url):
            media.videos.append(url)
        else:
            media.images.append(url)

    media.images = [u for u in _dedupe(media.images) if u.startswith("http") or u.startswith("data:image")]
    media.videos = [u for u in _dedupe(media.videos) if u.startswith("http")]
    return media


def collect_inline_media(
    activities: Iterable[ToolActivity],
    max_images: int = 8,
    max_videos: int = 4,
) -> MediaUrls:
    """Media across all finished, successful activities of a turn."""
    media = MediaUrls()
    for activity in activities:
        if activity.done and activity.result and not activity.is_error:
            found = extract_media_urls(activity.result)
            media.images.extend(found.images)
            media.videos.extend(found.videos)
    return MediaUrls(
        images=_dedupe(media.images)[:max_images],
        videos=_dedupe(media.videos)[:max_videos],
    )


# ── Views ────────────────────────────────────────────────────────────


def activity_view(activity: ToolActivity) -> dict:
    """Render-ready dict for one activity row."""
    tool_input = activity.input if isinstance(activity.input, dict) else {}
    diff = compute_diff_stats(activity.tool_name, tool_input)
    view = activity.to_dict()
    view.update({
        "label": format_tool_name(activity.tool_name),
        "kind": activity.kind.value,
        "summary": get_input_summary(activity.tool_name, tool_input),
        "filePath": extract_file_path(tool_input),
        "diffStats": {"additions": diff.additions, "deletions": diff.deletions} if diff else None,
        "elapsed": format_elapsed(activity.elapsed_seconds) if activity.elapsed_seconds else None,
    })
    if activity.kind == ToolKind.TODO:
        todos = parse_todo_items(tool_input)
        if todos:
            view["todos"] = [
                {"content": t.content, "status": t.status, "activeForm": t.active_form}
                for t in todos
            ]
    return view


def group_view(group: ActivityGroup) -> dict:
    return {
        "type": "group",
        "status": group.status.value,
        "subagentType": group.subagent_type or "Task",
        "description": group.description,
        "doneCount": group.done_count,
        "parent": activity_view(group.parent),
        "children": [activity_view(c) for c in group.children],
    }


def grouped_view(items: Iterable[ActivityItem]) -> list[dict]:
    views = []
    for item in items:
        if isinstance(item, ActivityGroup):
            views.append(group_view(item))
        else:
            views.append({"type": "activity", **activity_view(item)})
    return views
