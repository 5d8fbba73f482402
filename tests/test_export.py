"""Tests for export functionality."""

import json

import pytest

from agent_sessions.core import Message, Session
from agent_sessions.export import session_to_json, session_to_markdown


@pytest.fixture
def sample_session():
    return Session(
        id="3f6c1b9e-0000-4000-8000-000000000001",
        title="Fix authentication bug",
        created_at=1_736_935_200_000,  # 2025-01-15 10:00 UTC
        updated_at=1_736_938_800_000,
        channel_id="anthropic-main",
        workspace_id="ws-1",
    )


@pytest.fixture
def sample_messages():
    return [
        Message(
            id="m1",
            role="user",
            content="Fix the login bug in auth.ts",
            created_at=1_736_935_200_000,
        ),
        Message(
            id="m2",
            role="assistant",
            content="I'll fix the authentication bug. Here's the change:\n\n```typescript\nconst token = await validateToken(input);\n```",
            created_at=1_736_935_230_000,
        ),
        Message(
            id="m3",
            role="assistant",
            content=[
                {"type": "text", "text": "Running the tests."},
                {"type": "tool_use", "id": "t1", "name": "Bash", "input": {"command": "npm test"}},
            ],
            created_at=1_736_935_260_000,
        ),
        Message(
            id="m4",
            role="user",
            content=[{"type": "tool_result", "tool_use_id": "t1", "content": "2 failing\nsee log", "is_error": True}],
            created_at=1_736_935_290_000,
        ),
    ]


class TestMarkdownExport:
    def test_has_title_and_metadata(self, sample_session, sample_messages):
        md = session_to_markdown(sample_session, sample_messages)
        assert md.startswith("# Fix authentication bug")
        assert "**Workspace:** ws-1" in md
        assert "**Channel:** anthropic-main" in md
        assert "**Created:** 2025-01-15T10:00:00+00:00" in md
        assert "**Messages:** 4" in md

    def test_has_messages(self, sample_session, sample_messages):
        md = session_to_markdown(sample_session, sample_messages)
        assert "## User (2025-01-15 10:00)" in md
        assert "## Assistant" in md
        assert "Fix the login bug" in md
        assert "```typescript" in md

    def test_tool_blocks(self, sample_session, sample_messages):
        md = session_to_markdown(sample_session, sample_messages)
        assert "Running the tests." in md
        assert "- Tool: `Bash: npm test`" in md
        assert "- Error: 2 failing" in md
        assert "see log" not in md

    def test_optional_metadata_omitted(self, sample_messages):
        session = Session(id="s", title="Bare", created_at=0, updated_at=0)
        md = session_to_markdown(session, [])
        assert "**Workspace:**" not in md
        assert "**Channel:**" not in md
        assert "**Messages:** 0" in md


class TestJsonExport:
    def test_valid_json(self, sample_session, sample_messages):
        data = json.loads(session_to_json(sample_session, sample_messages))
        assert data["session"]["title"] == "Fix authentication bug"
        assert data["session"]["workspaceId"] == "ws-1"
        assert data["session"]["messageCount"] == 4
        assert len(data["messages"]) == 4

    def test_messages_keep_blocks(self, sample_session, sample_messages):
        data = json.loads(session_to_json(sample_session, sample_messages))
        assert data["messages"][0] == {
            "id": "m1",
            "role": "user",
            "content": "Fix the login bug in auth.ts",
            "createdAt": 1_736_935_200_000,
        }
        assert data["messages"][2]["content"][1]["name"] == "Bash"
