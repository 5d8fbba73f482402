"""Agent session persistence, tool activity aggregation and context tracking."""

from .activity import (
    ActivityGroup,
    ActivityStatus,
    ActivityTracker,
    ToolActivity,
    derive_group_status,
    group_activities,
)
from .context_usage import ContextUsage, UsageLevel, compute_context_usage
from .core import Message, Session, SkillMeta, Workspace
from .errors import (
    AgentSessionsError,
    NotFoundError,
    SessionNotFoundError,
    StorageWriteError,
    WorkspaceNotFoundError,
    WorkspaceProtectedError,
)
from .notifier import ChangeKind, FileChangeNotifier
from .store import SessionStore
from .workspaces import WorkspaceManager

__version__ = "0.1.0"

__all__ = [
    "ActivityGroup",
    "ActivityStatus",
    "ActivityTracker",
    "AgentSessionsError",
    "ChangeKind",
    "ContextUsage",
    "FileChangeNotifier",
    "Message",
    "NotFoundError",
    "Session",
    "SessionNotFoundError",
    "SessionStore",
    "SkillMeta",
    "StorageWriteError",
    "ToolActivity",
    "UsageLevel",
    "Workspace",
    "WorkspaceManager",
    "WorkspaceNotFoundError",
    "WorkspaceProtectedError",
    "__version__",
    "compute_context_usage",
    "derive_group_status",
    "group_activities",
]
