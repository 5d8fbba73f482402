"""Session store: metadata index plus one append-only transcript per session.

- Index: agent-sessions.json, {"version": 1, "sessions": [...]}, rewritten whole
- Transcripts: agent-sessions/{id}.jsonl, one message per line, append only

The index decides whether a session exists. Reads degrade to empty
results; writes raise StorageWriteError.
"""

import dataclasses
import json
import logging
import uuid
from typing import Any

from .config import StoragePaths
from .core import Message, Session
from .errors import InvalidIdentifierError, SessionNotFoundError, StorageWriteError
from .storage import now_ms, read_json_document, write_json_document
from .workspaces import WorkspaceManager

logger = logging.getLogger(__name__)

INDEX_VERSION = 1
DEFAULT_TITLE = "New Agent Session"

# Accepted keys for update_session_meta, camelCase aliases included
_UPDATABLE_FIELDS = {
    "title": "title",
    "channel_id": "channel_id",
    "channelId": "channel_id",
    "sdk_session_id": "sdk_session_id",
    "sdkSessionId": "sdk_session_id",
    "workspace_id": "workspace_id",
    "workspaceId": "workspace_id",
}


class SessionStore:
    """Durable CRUD for sessions and their transcripts."""

    def __init__(self, paths: StoragePaths | None = None, workspaces: WorkspaceManager | None = None):
        self._paths = paths
        self._workspaces = workspaces or WorkspaceManager(paths)

    def get_paths(self) -> StoragePaths:
        return self._paths or StoragePaths.default()

    @property
    def workspaces(self) -> WorkspaceManager:
        return self._workspaces

    # ── Index ────────────────────────────────────────────────────────

    def _read_index(self) -> list[Session]:
        data = read_json_document(self.get_paths().sessions_index_path)
        if data is None:
            return []
        if not isinstance(data, dict) or not isinstance(data.get("sessions"), list):
            logger.warning("Session index has unexpected shape, treating as empty")
            return []

        sessions = []
        for entry in data["sessions"]:
            if not isinstance(entry, dict):
                continue
            try:
                sessions.append(Session.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Skipping malformed session entry: %s", e)
        return sessions

    def _write_index(self, sessions: list[Session]) -> None:
        write_json_document(
            self.get_paths().sessions_index_path,
            {"version": INDEX_VERSION, "sessions": [s.to_dict() for s in sessions]},
        )

    # ── Sessions ─────────────────────────────────────────────────────

    def list_sessions(self) -> list[Session]:
        """Return all sessions, most recently updated first."""
        return sorted(self._read_index(), key=lambda s: s.updated_at, reverse=True)

    def get_session_meta(self, session_id: str) -> Session | None:
        return next((s for s in self._read_index() if s.id == session_id), None)

    def create_session(
        self,
        title: str | None = None,
        channel_id: str | None = None,
        workspace_id: str | None = None,
    ) -> Session:
        sessions = self._read_index()
        now = now_ms()

        session = Session(
            id=str(uuid.uuid4()),
            title=title or DEFAULT_TITLE,
            created_at=now,
            updated_at=now,
            channel_id=channel_id,
            workspace_id=workspace_id,
        )
        # Directories first: the index entry is what makes the session exist
        try:
            self.get_paths().sessions_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageWriteError("Failed to create transcript directory") from e

        if workspace_id:
            self._workspaces.ensure_session_dir(workspace_id, session.id)

        sessions.append(session)
        self._write_index(sessions)

        logger.info("Created session: %s (%s)", session.title, session.id)
        return session

    def update_session_meta(self, session_id: str, updates: dict[str, Any]) -> Session:
        """Merge title/channel/sdk-session/workspace fields and bump updated_at."""
        sessions = self._read_index()
        idx = next((i for i, s in enumerate(sessions) if s.id == session_id), None)
        if idx is None:
            raise SessionNotFoundError(session_id)

        changes = {}
        for key, value in updates.items():
            field_name = _UPDATABLE_FIELDS.get(key)
            if field_name is None:
                logger.debug("Ignoring non-updatable session field %r", key)
                continue
            if field_name == "title" and not value:
                # Title is required; a null or empty title keeps the current one
                continue
            changes[field_name] = value

        existing = sessions[idx]
        updated = dataclasses.replace(
            existing,
            **changes,
            updated_at=max(now_ms(), existing.updated_at),
        )
        sessions[idx] = updated
        self._write_index(sessions)

        logger.info("Updated session: %s (%s)", updated.title, updated.id)
        return updated

    def delete_session(self, session_id: str) -> None:
        """Remove a session; transcript and working directory go best-effort."""
        sessions = self._read_index()
        removed = next((s for s in sessions if s.id == session_id), None)
        if removed is None:
            raise SessionNotFoundError(session_id)

        self._write_index([s for s in sessions if s.id != session_id])

        try:
            path = self.get_paths().session_messages_path(session_id)
            path.unlink(missing_ok=True)
        except (OSError, InvalidIdentifierError) as e:
            logger.warning("Failed to delete transcript for %s: %s", session_id, e)

        if removed.workspace_id:
            try:
                self._workspaces.remove_session_dir(removed.workspace_id, session_id)
            except InvalidIdentifierError as e:
                logger.warning("Failed to clean session directory for %s: %s", session_id, e)

        logger.info("Deleted session: %s (%s)", removed.title, removed.id)

    # ── Transcripts ──────────────────────────────────────────────────

    def get_messages(self, session_id: str) -> list[Message]:
        """Read a transcript, skipping lines that do not parse."""
        try:
            path = self.get_paths().session_messages_path(session_id)
        except InvalidIdentifierError as e:
            logger.warning("%s", e)
            return []
        if not path.exists():
            return []

        messages = []
        try:
            # Decode per line; a write cut mid-character loses only that line
            with path.open("rb") as f:
                for line_num, raw in enumerate(f, 1):
                    raw = raw.strip()
                    if not raw:
                        continue
                    try:
                        messages.append(Message.from_dict(json.loads(raw.decode("utf-8"))))
                    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
                        logger.warning("Skipping bad transcript line %s:%d: %s", path, line_num, e)
        except OSError as e:
            logger.warning("Failed to read transcript %s: %s", path, e)
            return []

        return messages

    def append_message(self, session_id: str, message: Message | dict) -> Message:
        """Append one message line. Raises StorageWriteError on failure."""
        if isinstance(message, dict):
            message = Message.from_dict(message)
        if not message.id or not message.created_at:
            message = dataclasses.replace(
                message,
                id=message.id or str(uuid.uuid4()),
                created_at=message.created_at or now_ms(),
            )

        path = self.get_paths().session_messages_path(session_id)
        try:
            line = json.dumps(message.to_dict(), ensure_ascii=False) + "\n"
        except (TypeError, ValueError) as e:
            raise StorageWriteError(f"Message for {session_id} is not serializable") from e

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # A crash can leave a trailing partial line; start on a fresh one
            if path.exists() and path.stat().st_size > 0:
                with path.open("rb") as f:
                    f.seek(-1, 2)
                    if f.read(1) != b"\n":
                        line = "\n" + line
            with path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Failed to append message to %s: %s", session_id, e)
            raise StorageWriteError(f"Failed to append message to {session_id}") from e

        return message
