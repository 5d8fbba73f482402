"""Workspace registry and per-workspace capabilities (MCP servers, skills).

Workspaces live in agent-workspaces.json; each one owns a directory:

    agent-workspaces/{slug}/
        mcp.json                 {"servers": {name: entry}}
        skills/{skill}/SKILL.md  optional "---" header with name/description
        {session_id}/            one working directory per session

Capability documents are read and written whole; there is no per-field
update.
"""

import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from .config import SKILL_FILENAME, StoragePaths
from .core import SkillMeta, Workspace
from .errors import (
    SkillNotFoundError,
    StorageWriteError,
    WorkspaceNotFoundError,
    WorkspaceProtectedError,
)
from .storage import now_ms, read_json_document, write_json_document

logger = logging.getLogger(__name__)

INDEX_VERSION = 1
DEFAULT_WORKSPACE_SLUG = "default"
DEFAULT_WORKSPACE_NAME = "Default"


class McpServerEntry(BaseModel):
    type: Literal["stdio", "http", "sse"] = "stdio"
    command: Optional[str] = None
    args: Optional[list[str]] = None
    env: Optional[dict[str, str]] = None
    url: Optional[str] = None
    headers: Optional[dict[str, str]] = None
    enabled: bool = True


class WorkspaceMcpConfig(BaseModel):
    servers: dict[str, McpServerEntry] = Field(default_factory=dict)


def slugify(name: str) -> str:
    """Derive a filesystem-safe slug from a display name."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")[:48].strip("-")
    return slug or "workspace"


def parse_skill_header(text: str) -> dict[str, str]:
    """Parse the optional ``---`` delimited key: value header of a SKILL.md."""
    lines = text.splitlines()
    if not lines or lines[0].strip() != "---":
        return {}

    header = {}
    for line in lines[1:]:
        if line.strip() == "---":
            return header
        key, sep, value = line.partition(":")
        if sep and key.strip():
            header[key.strip()] = value.strip().strip("\"'")
    # Unterminated header: treat the file as having none
    return {}


class WorkspaceManager:
    """CRUD over workspaces plus their MCP config and skill directories."""

    def __init__(self, paths: StoragePaths | None = None):
        self._paths = paths

    def get_paths(self) -> StoragePaths:
        return self._paths or StoragePaths.default()

    # ── Index ────────────────────────────────────────────────────────

    def _read_index(self) -> list[Workspace]:
        data = read_json_document(self.get_paths().workspaces_index_path)
        if not isinstance(data, dict) or not isinstance(data.get("workspaces"), list):
            return []

        workspaces = []
        for entry in data["workspaces"]:
            if not isinstance(entry, dict):
                continue
            try:
                workspaces.append(Workspace.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed workspace entry: %s", e)
        return workspaces

    def _write_index(self, workspaces: list[Workspace]) -> None:
        write_json_document(
            self.get_paths().workspaces_index_path,
            {"version": INDEX_VERSION, "workspaces": [w.to_dict() for w in workspaces]},
        )

    def _init_workspace_dir(self, slug: str) -> Path:
        paths = self.get_paths()
        root = paths.workspace_path(slug)
        try:
            paths.workspace_skills_dir(slug).mkdir(parents=True, exist_ok=True)
            mcp_path = paths.workspace_mcp_path(slug)
            if not mcp_path.exists():
                write_json_document(mcp_path, WorkspaceMcpConfig().model_dump(exclude_none=True))
        except OSError as e:
            raise StorageWriteError(f"Failed to create workspace directory {slug}") from e
        return root

    # ── Workspaces ───────────────────────────────────────────────────

    def ensure_default_workspace(self) -> Workspace:
        workspaces = self._read_index()
        for ws in workspaces:
            if ws.slug == DEFAULT_WORKSPACE_SLUG:
                return ws

        now = now_ms()
        ws = Workspace(
            id=str(uuid.uuid4()),
            slug=DEFAULT_WORKSPACE_SLUG,
            name=DEFAULT_WORKSPACE_NAME,
            created_at=now,
            updated_at=now,
        )
        workspaces.insert(0, ws)
        self._write_index(workspaces)
        self._init_workspace_dir(ws.slug)
        logger.info("Created default workspace (%s)", ws.id)
        return ws

    def list_workspaces(self) -> list[Workspace]:
        self.ensure_default_workspace()
        return self._read_index()

    def get_workspace(self, workspace_id: str) -> Workspace | None:
        return next((w for w in self._read_index() if w.id == workspace_id), None)

    def get_workspace_by_slug(self, slug: str) -> Workspace | None:
        return next((w for w in self._read_index() if w.slug == slug), None)

    def create_workspace(self, name: str) -> Workspace:
        workspaces = self._read_index()
        taken = {w.slug for w in workspaces}

        base = slugify(name)
        slug = base
        n = 2
        while slug in taken:
            slug = f"{base}-{n}"
            n += 1

        now = now_ms()
        ws = Workspace(
            id=str(uuid.uuid4()),
            slug=slug,
            name=name.strip() or slug,
            created_at=now,
            updated_at=now,
        )
        workspaces.append(ws)
        self._write_index(workspaces)
        self._init_workspace_dir(slug)

        logger.info("Created workspace: %s (%s)", ws.name, ws.slug)
        return ws

    def update_workspace(self, workspace_id: str, name: str) -> Workspace:
        """Rename a workspace. The slug never changes."""
        workspaces = self._read_index()
        for i, ws in enumerate(workspaces):
            if ws.id == workspace_id:
                break
        else:
            raise WorkspaceNotFoundError(workspace_id)

        ws.name = name.strip() or ws.name
        ws.updated_at = max(now_ms(), ws.updated_at)
        workspaces[i] = ws
        self._write_index(workspaces)

        logger.info("Updated workspace: %s (%s)", ws.name, ws.slug)
        return ws

    def delete_workspace(self, workspace_id: str) -> None:
        workspaces = self._read_index()
        target = next((w for w in workspaces if w.id == workspace_id), None)
        if target is None:
            raise WorkspaceNotFoundError(workspace_id)
        if target.slug == DEFAULT_WORKSPACE_SLUG:
            raise WorkspaceProtectedError("The default workspace cannot be deleted")
        if len(workspaces) <= 1:
            raise WorkspaceProtectedError("Cannot delete the only workspace")

        self._write_index([w for w in workspaces if w.id != workspace_id])

        root = self.get_paths().workspace_path(target.slug)
        if root.exists():
            try:
                shutil.rmtree(root)
            except OSError as e:
                logger.warning("Failed to remove workspace directory %s: %s", root, e)

        logger.info("Deleted workspace: %s (%s)", target.name, target.slug)

    # ── Session sub-directories ──────────────────────────────────────

    def ensure_session_dir(self, workspace_id: str, session_id: str) -> Path | None:
        """Create the session's working directory inside its workspace."""
        ws = self.get_workspace(workspace_id)
        if ws is None:
            logger.warning("Workspace %s not found, skipping session directory", workspace_id)
            return None

        path = self.get_paths().workspace_session_path(ws.slug, session_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageWriteError(f"Failed to create session directory {path}") from e
        return path

    def remove_session_dir(self, workspace_id: str, session_id: str) -> None:
        """Best-effort removal of a session's working directory."""
        ws = self.get_workspace(workspace_id)
        if ws is None:
            return

        path = self.get_paths().workspace_session_path(ws.slug, session_id)
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
            logger.info("Removed session directory: %s", path)
        except OSError as e:
            logger.warning("Failed to remove session directory %s: %s", path, e)

    # ── MCP servers ──────────────────────────────────────────────────

    def get_mcp_config(self, slug: str) -> WorkspaceMcpConfig:
        data = read_json_document(self.get_paths().workspace_mcp_path(slug))
        if not isinstance(data, dict):
            return WorkspaceMcpConfig()
        try:
            return WorkspaceMcpConfig.model_validate(data)
        except ValidationError as e:
            logger.warning("Invalid mcp.json for workspace %s: %s", slug, e)
            return WorkspaceMcpConfig()

    def save_mcp_config(self, slug: str, config: WorkspaceMcpConfig) -> None:
        if self.get_workspace_by_slug(slug) is None:
            raise WorkspaceNotFoundError(slug)
        write_json_document(
            self.get_paths().workspace_mcp_path(slug),
            config.model_dump(exclude_none=True),
        )
        logger.info("Saved MCP config for workspace %s (%d servers)", slug, len(config.servers))

    # ── Skills ───────────────────────────────────────────────────────

    def list_skills(self, slug: str) -> list[SkillMeta]:
        skills_dir = self.get_paths().workspace_skills_dir(slug)
        if not skills_dir.is_dir():
            return []

        skills = []
        for skill_dir in sorted(skills_dir.iterdir()):
            skill_file = skill_dir / SKILL_FILENAME
            if not skill_dir.is_dir() or not skill_file.is_file():
                continue
            try:
                header = parse_skill_header(skill_file.read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Failed to read %s: %s", skill_file, e)
                header = {}

            skills.append(SkillMeta(
                slug=skill_dir.name,
                name=header.get("name") or skill_dir.name,
                description=header.get("description") or None,
            ))
        return skills

    def delete_skill(self, slug: str, skill_slug: str) -> None:
        path = self.get_paths().skill_path(slug, skill_slug)
        if not path.is_dir():
            raise SkillNotFoundError(slug, skill_slug)
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise StorageWriteError(f"Failed to delete skill {skill_slug}") from e
        logger.info("Deleted skill %s from workspace %s", skill_slug, slug)
