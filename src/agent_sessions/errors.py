"""
Error types for agent session storage.

Read paths degrade to empty defaults; everything here is raised by write
paths or by callers asking for something that does not exist.
"""

from typing import Any, Optional


class AgentSessionsError(Exception):
    """Base class for all classified errors."""

    def __init__(self, message: str, code: str = "agent_sessions_error", details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class NotFoundError(AgentSessionsError):
    def __init__(self, message: str, code: str = "not_found", details: Optional[dict[str, Any]] = None):
        super().__init__(message, code, details)


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", "session_not_found", {"id": session_id})


class WorkspaceNotFoundError(NotFoundError):
    def __init__(self, workspace: str):
        super().__init__(f"Workspace not found: {workspace}", "workspace_not_found", {"id": workspace})


class SkillNotFoundError(NotFoundError):
    def __init__(self, workspace_slug: str, skill_slug: str):
        super().__init__(
            f"Skill not found: {skill_slug}",
            "skill_not_found",
            {"workspace": workspace_slug, "skill": skill_slug},
        )


class WorkspaceProtectedError(AgentSessionsError):
    """Deleting the default workspace, or the only remaining one."""

    def __init__(self, message: str):
        super().__init__(message, "workspace_protected")


class StorageWriteError(AgentSessionsError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message, "storage_write_failed", details)


class OperationTimeoutError(AgentSessionsError):
    def __init__(self, operation: str, timeout: float):
        super().__init__(
            f"Operation timed out after {timeout:g}s: {operation}",
            "operation_timeout",
            {"operation": operation, "timeout": timeout},
        )


class InvalidIdentifierError(AgentSessionsError, ValueError):
    def __init__(self, message: str):
        super().__init__(message, "invalid_identifier")
