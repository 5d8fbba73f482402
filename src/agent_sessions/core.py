"""Core data models for agent-sessions."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Session:
    """Metadata for one persisted agent conversation."""

    id: str
    title: str
    created_at: int  # epoch milliseconds
    updated_at: int
    channel_id: Optional[str] = None  # provider credential set
    workspace_id: Optional[str] = None
    sdk_session_id: Optional[str] = None  # external continuation handle

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        if self.channel_id is not None:
            data["channelId"] = self.channel_id
        if self.workspace_id is not None:
            data["workspaceId"] = self.workspace_id
        if self.sdk_session_id is not None:
            data["sdkSessionId"] = self.sdk_session_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Session":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            created_at=int(data.get("createdAt", 0)),
            updated_at=int(data.get("updatedAt", data.get("createdAt", 0))),
            channel_id=data.get("channelId"),
            workspace_id=data.get("workspaceId"),
            sdk_session_id=data.get("sdkSessionId"),
        )


@dataclass
class Message:
    """A single transcript line. Never edited once written."""

    role: str  # "user" | "assistant" | "system" | "tool"
    content: Any  # plain text or a list of content blocks
    created_at: int = 0
    id: str = ""
    attachments: list = field(default_factory=list)
    metadata: dict = field(default_factory=dict)  # model, usage, etc.

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "createdAt": self.created_at,
        }
        if self.attachments:
            data["attachments"] = self.attachments
        if self.metadata:
            data["metadata"] = self.metadata
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        return cls(
            id=str(data.get("id", "")),
            role=str(data["role"]),
            content=data.get("content", ""),
            created_at=int(data.get("createdAt", 0)),
            attachments=list(data.get("attachments") or []),
            metadata=dict(data.get("metadata") or {}),
        )

    def text(self) -> str:
        """Return the plain-text portion of the content."""
        if isinstance(self.content, str):
            return self.content
        parts = []
        for block in self.content or []:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        return "\n".join(parts)


@dataclass
class Workspace:
    """A named working directory scoping sessions, MCP servers and skills."""

    id: str
    slug: str  # filesystem-safe, immutable
    name: str
    created_at: int = 0
    updated_at: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Workspace":
        return cls(
            id=str(data["id"]),
            slug=str(data["slug"]),
            name=str(data.get("name", data["slug"])),
            created_at=int(data.get("createdAt", 0)),
            updated_at=int(data.get("updatedAt", 0)),
        )


@dataclass
class SkillMeta:
    """A skill directory inside a workspace's skills/ folder."""

    slug: str
    name: str
    description: Optional[str] = None

    def to_dict(self) -> dict:
        return {"slug": self.slug, "name": self.name, "description": self.description}
