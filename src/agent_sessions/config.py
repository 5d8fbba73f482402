"""Path resolution and tunables for agent session storage."""

import os
import re
from dataclasses import dataclass
from pathlib import Path

from .errors import InvalidIdentifierError

SESSIONS_INDEX_FILENAME = "agent-sessions.json"
SESSIONS_DIRNAME = "agent-sessions"
WORKSPACES_INDEX_FILENAME = "agent-workspaces.json"
WORKSPACES_DIRNAME = "agent-workspaces"
MCP_CONFIG_FILENAME = "mcp.json"
SKILLS_DIRNAME = "skills"
SKILL_FILENAME = "SKILL.md"

DEFAULT_DEBOUNCE_MS = 500
DEFAULT_OP_TIMEOUT = 5.0

_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def get_data_dir() -> Path:
    """Return the root directory holding sessions and workspaces."""
    env = os.environ.get("AGENT_SESSIONS_HOME")
    if env:
        return Path(env)

    return Path.home() / ".agent-sessions"


def get_debounce_seconds() -> float:
    """Return the file-change debounce window in seconds."""
    env = os.environ.get("AGENT_SESSIONS_DEBOUNCE_MS")
    if env:
        try:
            return max(0, int(env)) / 1000
        except ValueError:
            pass
    return DEFAULT_DEBOUNCE_MS / 1000


def get_operation_timeout() -> float:
    """Return the timeout (seconds) applied to a single storage operation."""
    env = os.environ.get("AGENT_SESSIONS_OP_TIMEOUT")
    if env:
        try:
            value = float(env)
            if value > 0:
                return value
        except ValueError:
            pass
    return DEFAULT_OP_TIMEOUT


def check_identifier(value: str, kind: str = "identifier") -> str:
    """Reject identifiers that are unsafe as a single path component."""
    if not isinstance(value, str) or not _SAFE_NAME_RE.match(value) or value in (".", ".."):
        raise InvalidIdentifierError(f"Invalid {kind}: {value!r}")
    return value


@dataclass(frozen=True)
class StoragePaths:
    """Canonical on-disk locations, derived purely from ids and slugs.

    Nothing here touches the filesystem; callers create directories
    when they need them.
    """

    root: Path

    @classmethod
    def default(cls) -> "StoragePaths":
        return cls(get_data_dir())

    @property
    def sessions_index_path(self) -> Path:
        return self.root / SESSIONS_INDEX_FILENAME

    @property
    def sessions_dir(self) -> Path:
        return self.root / SESSIONS_DIRNAME

    def session_messages_path(self, session_id: str) -> Path:
        check_identifier(session_id, "session id")
        return self.sessions_dir / f"{session_id}.jsonl"

    @property
    def workspaces_index_path(self) -> Path:
        return self.root / WORKSPACES_INDEX_FILENAME

    @property
    def workspaces_dir(self) -> Path:
        return self.root / WORKSPACES_DIRNAME

    def workspace_path(self, slug: str) -> Path:
        check_identifier(slug, "workspace slug")
        return self.workspaces_dir / slug

    def workspace_session_path(self, slug: str, session_id: str) -> Path:
        check_identifier(session_id, "session id")
        return self.workspace_path(slug) / session_id

    def workspace_mcp_path(self, slug: str) -> Path:
        return self.workspace_path(slug) / MCP_CONFIG_FILENAME

    def workspace_skills_dir(self, slug: str) -> Path:
        return self.workspace_path(slug) / SKILLS_DIRNAME

    def skill_path(self, slug: str, skill_slug: str) -> Path:
        check_identifier(skill_slug, "skill slug")
        return self.workspace_skills_dir(slug) / skill_slug
