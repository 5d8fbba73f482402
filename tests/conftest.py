"""Shared test fixtures for agent-sessions."""

import itertools

import pytest

from agent_sessions.config import StoragePaths
from agent_sessions.core import Message
from agent_sessions.store import SessionStore
from agent_sessions.workspaces import WorkspaceManager


@pytest.fixture
def paths(tmp_path):
    """Storage rooted in a throwaway data directory."""
    return StoragePaths(tmp_path / "data")


@pytest.fixture
def workspaces(paths):
    return WorkspaceManager(paths)


@pytest.fixture
def store(paths, workspaces):
    return SessionStore(paths, workspaces)


@pytest.fixture
def tick(monkeypatch):
    """Make store timestamps strictly increasing, one second apart."""
    counter = itertools.count(1_700_000_000_000, 1000)
    monkeypatch.setattr("agent_sessions.store.now_ms", lambda: next(counter))
    return counter


@pytest.fixture
def transcript_messages():
    """A realistic turn: a Task delegation with two sub-tool calls plus a Bash call.

    Includes:
    - User prompt
    - Assistant text + Task tool_use
    - Sub-agent tool_use blocks carrying parent_tool_use_id
    - tool_result blocks, one with an image block, one an error
    """
    return [
        Message(
            id="m1",
            role="user",
            content="Refactor the auth module and run the tests",
            created_at=1_700_000_000_000,
        ),
        Message(
            id="m2",
            role="assistant",
            content=[
                {"type": "text", "text": "I'll delegate the refactor to a sub-agent."},
                {
                    "type": "tool_use",
                    "id": "toolu_task",
                    "name": "Task",
                    "input": {"description": "Refactor auth", "subagent_type": "general-purpose"},
                },
            ],
            created_at=1_700_000_001_000,
        ),
        Message(
            id="m3",
            role="assistant",
            content=[
                {"type": "tool_use", "id": "toolu_read", "name": "Read", "input": {"file_path": "/src/auth.ts"}},
            ],
            created_at=1_700_000_002_000,
            metadata={"parentToolUseId": "toolu_task"},
        ),
        Message(
            id="m4",
            role="user",
            content=[
                {"type": "tool_result", "tool_use_id": "toolu_read", "content": "export function authenticate() {}"},
            ],
            created_at=1_700_000_003_000,
        ),
        Message(
            id="m5",
            role="assistant",
            content=[
                {
                    "type": "tool_use",
                    "id": "toolu_edit",
                    "name": "Edit",
                    "input": {"file_path": "/src/auth.ts", "old_string": "a", "new_string": "a\nb\nc"},
                    "parent_tool_use_id": "toolu_task",
                },
            ],
            created_at=1_700_000_004_000,
        ),
        Message(
            id="m6",
            role="user",
            content=[
                {
                    "type": "tool_result",
                    "tool_use_id": "toolu_edit",
                    "content": [
                        {"type": "text", "text": "Edited"},
                        {"type": "image", "source": {"type": "url", "url": "https://cdn.example.com/diff.png"}},
                    ],
                },
            ],
            created_at=1_700_000_005_000,
        ),
        Message(
            id="m7",
            role="user",
            content=[{"type": "tool_result", "tool_use_id": "toolu_task", "content": "Refactor done"}],
            created_at=1_700_000_006_000,
        ),
        Message(
            id="m8",
            role="assistant",
            content=[
                {"type": "tool_use", "id": "toolu_bash", "name": "Bash", "input": {"command": "npm test"}},
            ],
            created_at=1_700_000_007_000,
        ),
        Message(
            id="m9",
            role="user",
            content=[
                {"type": "tool_result", "tool_use_id": "toolu_bash", "content": "1 failing", "is_error": True},
            ],
            created_at=1_700_000_008_000,
        ),
    ]
