"""Tool activity aggregation.

A turn streams lifecycle events per tool invocation (start, progress,
backgrounded, end). ActivityTracker folds them into ToolActivity records
kept in arrival order; group_activities() then resolves the
parent_tool_use_id relation into Task groups for display.

Status per activity:

    pending -> running -> completed | error
                  \\-> backgrounded -> completed | error

``done`` is true exactly when the status is terminal.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Union

logger = logging.getLogger(__name__)


class ActivityStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    BACKGROUNDED = "backgrounded"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({ActivityStatus.COMPLETED, ActivityStatus.ERROR})


class ToolKind(str, Enum):
    EDIT = "Edit"
    WRITE = "Write"
    READ = "Read"
    BASH = "Bash"
    GLOB = "Glob"
    GREP = "Grep"
    TASK = "Task"
    WEB_FETCH = "WebFetch"
    WEB_SEARCH = "WebSearch"
    NOTEBOOK_EDIT = "NotebookEdit"
    SKILL = "Skill"
    TODO = "Todo"
    MCP = "Mcp"
    OTHER = "Other"


_TODO_TOOLS = {"TodoWrite", "TodoRead", "TaskCreate", "TaskUpdate", "TaskGet", "TaskList"}
_NAMED_KINDS = {k.value: k for k in ToolKind if k not in (ToolKind.TODO, ToolKind.MCP, ToolKind.OTHER)}


def tool_kind(tool_name: str) -> ToolKind:
    if tool_name.startswith("mcp__"):
        return ToolKind.MCP
    if tool_name in _TODO_TOOLS:
        return ToolKind.TODO
    return _NAMED_KINDS.get(tool_name, ToolKind.OTHER)


@dataclass
class ToolActivity:
    """One tool invocation within a turn."""

    tool_use_id: str
    tool_name: str
    input: dict = field(default_factory=dict)
    parent_tool_use_id: Optional[str] = None  # set when spawned by a Task
    status: ActivityStatus = ActivityStatus.PENDING
    result: Optional[str] = None
    is_error: bool = False
    elapsed_seconds: Optional[float] = None
    intent: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def done(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def kind(self) -> ToolKind:
        return tool_kind(self.tool_name)

    def to_dict(self) -> dict:
        data = {
            "toolUseId": self.tool_use_id,
            "toolName": self.tool_name,
            "input": self.input,
            "status": self.status.value,
            "done": self.done,
            "isError": self.is_error,
        }
        for key, value in (
            ("parentToolUseId", self.parent_tool_use_id),
            ("result", self.result),
            ("elapsedSeconds", self.elapsed_seconds),
            ("intent", self.intent),
            ("displayName", self.display_name),
        ):
            if value is not None:
                data[key] = value
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "ToolActivity":
        """Build from a camelCase snapshot; status is inferred if absent."""
        is_error = bool(data.get("isError", False))
        raw_status = data.get("status")
        if isinstance(raw_status, str) and raw_status in ActivityStatus._value2member_map_:
            status = ActivityStatus(raw_status)
        elif data.get("done"):
            status = ActivityStatus.ERROR if is_error else ActivityStatus.COMPLETED
        elif data.get("backgrounded"):
            status = ActivityStatus.BACKGROUNDED
        else:
            status = ActivityStatus.RUNNING

        tool_input = data.get("input")
        return cls(
            tool_use_id=str(data["toolUseId"]),
            tool_name=str(data.get("toolName", "")),
            input=tool_input if isinstance(tool_input, dict) else {},
            parent_tool_use_id=data.get("parentToolUseId"),
            status=status,
            result=_as_text(data.get("result")),
            is_error=is_error,
            elapsed_seconds=_as_float(data.get("elapsedSeconds")),
            intent=data.get("intent"),
            display_name=data.get("displayName"),
        )


def get_activity_status(activity: ToolActivity) -> ActivityStatus:
    return activity.status


# ── Events ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ToolStart:
    tool_use_id: str
    tool_name: str
    input: dict = field(default_factory=dict)
    parent_tool_use_id: Optional[str] = None
    intent: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class ToolProgress:
    tool_use_id: str
    elapsed_seconds: Optional[float] = None
    intent: Optional[str] = None
    input: Optional[dict] = None  # merged into the existing input


@dataclass(frozen=True)
class ToolBackgrounded:
    tool_use_id: str


@dataclass(frozen=True)
class ToolEnd:
    tool_use_id: str
    result: Optional[str] = None
    is_error: bool = False
    elapsed_seconds: Optional[float] = None


ActivityEvent = Union[ToolStart, ToolProgress, ToolBackgrounded, ToolEnd]


def _as_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, list):
        # Content blocks: keep the text parts
        parts = [b.get("text", "") for b in value if isinstance(b, dict) and b.get("type") == "text"]
        if parts:
            return "\n".join(parts)
    try:
        return json.dumps(value, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(value)


def _as_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_event(raw: Any) -> Optional[ActivityEvent]:
    """Parse one wire event; returns None when it is unusable.

    Accepted shapes (camelCase, as delivered by the transport)::

        {"type": "tool_start", "toolUseId", "toolName", "input"?, "parentToolUseId"?, "intent"?, "displayName"?}
        {"type": "tool_progress", "toolUseId", "elapsedSeconds"?, "intent"?, "input"?}
        {"type": "tool_backgrounded", "toolUseId"}
        {"type": "tool_end", "toolUseId", "result"?, "isError"?, "elapsedSeconds"?}
    """
    if not isinstance(raw, dict):
        return None
    tool_use_id = raw.get("toolUseId")
    if not isinstance(tool_use_id, str) or not tool_use_id:
        return None

    event_type = raw.get("type")
    if event_type == "tool_start":
        tool_name = raw.get("toolName")
        if not isinstance(tool_name, str) or not tool_name:
            return None
        tool_input = raw.get("input")
        return ToolStart(
            tool_use_id=tool_use_id,
            tool_name=tool_name,
            input=tool_input if isinstance(tool_input, dict) else {},
            parent_tool_use_id=raw.get("parentToolUseId") or None,
            intent=raw.get("intent"),
            display_name=raw.get("displayName"),
        )
    if event_type == "tool_progress":
        tool_input = raw.get("input")
        return ToolProgress(
            tool_use_id=tool_use_id,
            elapsed_seconds=_as_float(raw.get("elapsedSeconds")),
            intent=raw.get("intent"),
            input=tool_input if isinstance(tool_input, dict) else None,
        )
    if event_type == "tool_backgrounded":
        return ToolBackgrounded(tool_use_id=tool_use_id)
    if event_type == "tool_end":
        return ToolEnd(
            tool_use_id=tool_use_id,
            result=_as_text(raw.get("result")),
            is_error=bool(raw.get("isError", False)),
            elapsed_seconds=_as_float(raw.get("elapsedSeconds")),
        )
    return None


# ── Tracker ──────────────────────────────────────────────────────────


class ActivityTracker:
    """Transient per-turn activity state, rebuildable from the transcript.

    Activities are stored in an arena (arrival order) with an id -> index
    map; nothing holds references between activities.
    """

    def __init__(self, events: Iterable[ActivityEvent] = ()):
        self._arena: list[ToolActivity] = []
        self._index: dict[str, int] = {}
        self.apply_all(events)

    @property
    def activities(self) -> list[ToolActivity]:
        return list(self._arena)

    def get(self, tool_use_id: str) -> ToolActivity | None:
        idx = self._index.get(tool_use_id)
        return self._arena[idx] if idx is not None else None

    def apply_all(self, events: Iterable[ActivityEvent]) -> None:
        for event in events:
            self.apply(event)

    def apply_raw(self, raw_events: Iterable[Any]) -> int:
        """Parse and apply wire events, dropping malformed ones. Returns the count applied."""
        applied = 0
        for raw in raw_events:
            event = parse_event(raw)
            if event is None:
                logger.debug("Dropping malformed activity event: %r", raw)
                continue
            self.apply(event)
            applied += 1
        return applied

    def apply(self, event: ActivityEvent) -> None:
        if isinstance(event, ToolStart):
            self._start(event)
            return

        activity = self.get(event.tool_use_id)
        if activity is None:
            logger.debug("Ignoring %s for unknown tool use %s", type(event).__name__, event.tool_use_id)
            return
        if activity.done:
            logger.debug("Ignoring %s after terminal state for %s", type(event).__name__, event.tool_use_id)
            return

        if isinstance(event, ToolProgress):
            if event.elapsed_seconds is not None:
                activity.elapsed_seconds = event.elapsed_seconds
            if event.intent:
                activity.intent = event.intent
            if event.input:
                activity.input = {**activity.input, **event.input}
            if activity.status == ActivityStatus.PENDING:
                activity.status = ActivityStatus.RUNNING
        elif isinstance(event, ToolBackgrounded):
            activity.status = ActivityStatus.BACKGROUNDED
        elif isinstance(event, ToolEnd):
            activity.result = event.result
            activity.is_error = event.is_error
            if event.elapsed_seconds is not None:
                activity.elapsed_seconds = event.elapsed_seconds
            activity.status = ActivityStatus.ERROR if event.is_error else ActivityStatus.COMPLETED

    def _start(self, event: ToolStart) -> None:
        existing = self.get(event.tool_use_id)
        if existing is not None:
            if existing.done:
                return
            # Re-announced with fuller input while streaming
            existing.tool_name = event.tool_name
            if event.input:
                existing.input = event.input
            existing.parent_tool_use_id = event.parent_tool_use_id or existing.parent_tool_use_id
            existing.intent = event.intent or existing.intent
            existing.display_name = event.display_name or existing.display_name
            return

        self._index[event.tool_use_id] = len(self._arena)
        self._arena.append(ToolActivity(
            tool_use_id=event.tool_use_id,
            tool_name=event.tool_name,
            input=dict(event.input),
            parent_tool_use_id=event.parent_tool_use_id,
            status=ActivityStatus.RUNNING,
            intent=event.intent,
            display_name=event.display_name,
        ))

    def grouped(self) -> list["ActivityItem"]:
        return group_activities(self._arena)


# ── Grouping ─────────────────────────────────────────────────────────


@dataclass
class ActivityGroup:
    """A Task delegation and the activities it spawned."""

    parent: ToolActivity
    children: list[ToolActivity] = field(default_factory=list)

    @property
    def status(self) -> ActivityStatus:
        return derive_group_status(self.parent, self.children)

    @property
    def done_count(self) -> int:
        return sum(1 for c in self.children if c.done)

    @property
    def subagent_type(self) -> Optional[str]:
        value = self.parent.input.get("subagent_type")
        return value if isinstance(value, str) else None

    @property
    def description(self) -> str:
        value = self.parent.input.get("description")
        if isinstance(value, str):
            return value
        return self.parent.intent or self.parent.display_name or "Task"


ActivityItem = Union[ToolActivity, ActivityGroup]


def is_activity_group(item: ActivityItem) -> bool:
    return isinstance(item, ActivityGroup)


def derive_group_status(parent: ToolActivity, children: list[ToolActivity]) -> ActivityStatus:
    """Status of a Task group.

    1. A terminal parent status wins.
    2. Otherwise, once every child is done: error if any child errored,
       else completed.
    3. Otherwise the parent's own status.
    """
    own = get_activity_status(parent)
    if own in TERMINAL_STATUSES:
        return own
    if children and all(c.done for c in children):
        if any(c.is_error for c in children):
            return ActivityStatus.ERROR
        return ActivityStatus.COMPLETED
    return own


def group_activities(activities: Iterable[ToolActivity]) -> list[ActivityItem]:
    """Fold Task children under their parent, keeping arrival order.

    Children only attach to a Task seen earlier in the sequence; anything
    else stays top-level where it arrived. Grouping is one level deep: a
    Task started under another Task opens its own top-level group rather
    than becoming a child, so its children stay reachable.
    """
    items: list[ActivityItem] = []
    groups: dict[str, int] = {}

    for activity in activities:
        if activity.tool_name == ToolKind.TASK.value:
            groups[activity.tool_use_id] = len(items)
            items.append(ActivityGroup(parent=activity))
            continue

        pos = groups.get(activity.parent_tool_use_id) if activity.parent_tool_use_id else None
        if pos is not None:
            items[pos].children.append(activity)
        else:
            items.append(activity)

    return items


def count_visible_rows(items: Iterable[ActivityItem]) -> int:
    """Rows a fully expanded list renders: one per item plus one per child."""
    count = 0
    for item in items:
        count += 1
        if isinstance(item, ActivityGroup):
            count += len(item.children)
    return count
