"""FastAPI server exposing sessions, activity views and notifications."""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Literal, Optional

from fastapi import FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field

from .activity import ActivityTracker, ToolActivity, count_visible_rows, group_activities
from .config import StoragePaths, get_operation_timeout
from .context_usage import compute_context_usage
from .display import collect_inline_media, grouped_view
from .errors import (
    AgentSessionsError,
    InvalidIdentifierError,
    NotFoundError,
    OperationTimeoutError,
    SessionNotFoundError,
    WorkspaceProtectedError,
)
from .export import session_to_json, session_to_markdown
from .notifier import Broadcaster, ChangeKind, FileChangeNotifier
from .store import SessionStore
from .transcript import activities_from_messages
from .workspaces import WorkspaceManager, WorkspaceMcpConfig

logger = logging.getLogger(__name__)

_ERROR_STATUS = (
    (NotFoundError, 404),
    (WorkspaceProtectedError, 409),
    (InvalidIdentifierError, 400),
    (OperationTimeoutError, 504),
)


# ── Request bodies ───────────────────────────────────────────────


class CreateSessionRequest(BaseModel):
    title: Optional[str] = None
    channelId: Optional[str] = None
    workspaceId: Optional[str] = None


class UpdateSessionRequest(BaseModel):
    title: Optional[str] = None
    channelId: Optional[str] = None
    sdkSessionId: Optional[str] = None
    workspaceId: Optional[str] = None


class AppendMessageRequest(BaseModel):
    role: Literal["user", "assistant", "system", "tool"]
    content: Any = ""
    id: Optional[str] = None
    createdAt: Optional[int] = None
    attachments: list[Any] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class GroupActivitiesRequest(BaseModel):
    events: list[Any] = Field(default_factory=list)
    activities: list[dict[str, Any]] = Field(default_factory=list)


class WorkspaceNameRequest(BaseModel):
    name: str


def _log_late_failure(task: asyncio.Future) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.error("Timed-out operation failed later: %s", task.exception())


async def forward_notifications(queue: asyncio.Queue, websocket: WebSocket) -> None:
    """Send queued change kinds until the socket stops accepting them."""
    while True:
        kind: ChangeKind = await queue.get()
        try:
            await websocket.send_json({"type": kind.value})
        except Exception as e:
            logger.debug("Notification socket closed while sending %s: %s", kind.value, e)
            return


def _activities_payload(activities: list[ToolActivity]) -> dict:
    items = group_activities(activities)
    media = collect_inline_media(activities)
    return {
        "items": grouped_view(items),
        "visibleRows": count_visible_rows(items),
        "media": {"images": media.images, "videos": media.videos},
    }


def create_app(data_dir: Path | None = None, *, watch: bool = True, op_timeout: float | None = None) -> FastAPI:
    """Build the application.

    The store and notifier live on ``app.state``; the notifier is started
    and stopped by the app lifespan.
    """
    paths = StoragePaths(Path(data_dir)) if data_dir else None
    workspaces = WorkspaceManager(paths)
    store = SessionStore(paths, workspaces)
    broadcaster = Broadcaster()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        notifier = None
        if watch:
            try:
                await run_in_threadpool(workspaces.ensure_default_workspace)
            except AgentSessionsError as e:
                logger.error("Failed to initialise workspaces: %s", e)
            notifier = FileChangeNotifier(
                store.get_paths().workspaces_dir,
                broadcaster.publish,
                is_alive=broadcaster.is_open,
            )
            notifier.start()
        app.state.notifier = notifier
        try:
            yield
        finally:
            if notifier is not None:
                notifier.stop()
            broadcaster.close()

    app = FastAPI(title="agent-sessions", version="0.1.0", lifespan=lifespan)
    app.state.store = store
    app.state.workspaces = workspaces
    app.state.broadcaster = broadcaster
    app.state.notifier = None
    timeout = op_timeout or get_operation_timeout()

    async def call(fn, *args):
        """Run a blocking store call off the loop, bounded by the op timeout.

        Worker threads cannot be interrupted, so a call that overruns is
        left to finish in the background while the caller gets the error.
        """
        task = asyncio.ensure_future(run_in_threadpool(fn, *args))
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if not done:
            logger.error("Operation %s timed out after %ss", fn.__name__, timeout)
            task.add_done_callback(_log_late_failure)
            raise OperationTimeoutError(fn.__name__, timeout)
        return task.result()

    async def require_session(session_id: str):
        session = await call(store.get_session_meta, session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @app.exception_handler(AgentSessionsError)
    async def agent_sessions_error_handler(request: Request, exc: AgentSessionsError) -> JSONResponse:
        status = 500
        for error_type, code in _ERROR_STATUS:
            if isinstance(exc, error_type):
                status = code
                break
        if status == 500:
            logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"code": exc.code, "detail": exc.message})

    # ── Sessions ─────────────────────────────────────────────────

    @app.get("/api/sessions")
    async def list_sessions(
        search: str | None = Query(None, description="Search in titles"),
        workspace: str | None = Query(None, description="Filter by workspace id"),
        limit: int = Query(100, ge=1, le=1000),
        offset: int = Query(0, ge=0),
    ):
        """Return sessions, most recently updated first."""
        sessions = await call(store.list_sessions)

        if search:
            search_lower = search.lower()
            sessions = [s for s in sessions if search_lower in s.title.lower()]
        if workspace:
            sessions = [s for s in sessions if s.workspace_id == workspace]

        total = len(sessions)
        sessions = sessions[offset: offset + limit]
        return {"total": total, "sessions": [s.to_dict() for s in sessions]}

    @app.post("/api/sessions", status_code=201)
    async def create_session(body: CreateSessionRequest):
        session = await call(store.create_session, body.title, body.channelId, body.workspaceId)
        return session.to_dict()

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str):
        return (await require_session(session_id)).to_dict()

    @app.patch("/api/sessions/{session_id}")
    async def update_session(session_id: str, body: UpdateSessionRequest):
        updated = await call(store.update_session_meta, session_id, body.model_dump(exclude_unset=True))
        return updated.to_dict()

    @app.delete("/api/sessions/{session_id}", status_code=204)
    async def delete_session(session_id: str):
        await call(store.delete_session, session_id)
        return Response(status_code=204)

    @app.get("/api/sessions/{session_id}/messages")
    async def get_messages(session_id: str):
        messages = await call(store.get_messages, session_id)
        return {"session_id": session_id, "messages": [m.to_dict() for m in messages]}

    @app.post("/api/sessions/{session_id}/messages", status_code=201)
    async def append_message(session_id: str, body: AppendMessageRequest):
        await require_session(session_id)
        data = body.model_dump(exclude_none=True)
        message = await call(store.append_message, session_id, data)
        return message.to_dict()

    @app.get("/api/sessions/{session_id}/activities")
    async def get_session_activities(session_id: str):
        """Activity view rebuilt from the stored transcript."""
        messages = await call(store.get_messages, session_id)
        tracker = activities_from_messages(messages)
        return {"session_id": session_id, **_activities_payload(tracker.activities)}

    # ── Activities & usage ───────────────────────────────────────

    @app.post("/api/activities/group")
    async def group_activity_events(body: GroupActivitiesRequest):
        """Group either raw lifecycle events or activity snapshots."""
        activities = []
        for raw in body.activities:
            try:
                activities.append(ToolActivity.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.debug("Dropping malformed activity snapshot: %s", e)

        tracker = ActivityTracker()
        tracker.apply_raw(body.events)
        return _activities_payload(activities + tracker.activities)

    @app.get("/api/context-usage")
    async def context_usage(
        inputTokens: int | None = Query(None),
        contextWindow: int | None = Query(None),
        isCompacting: bool = Query(False),
        isProcessing: bool = Query(False),
    ):
        usage = compute_context_usage(inputTokens, contextWindow, isCompacting)
        return {**usage.to_dict(), "canCompact": usage.can_compact(isProcessing)}

    # ── Workspaces ───────────────────────────────────────────────

    @app.get("/api/workspaces")
    async def list_workspaces():
        return [w.to_dict() for w in await call(workspaces.list_workspaces)]

    @app.post("/api/workspaces", status_code=201)
    async def create_workspace(body: WorkspaceNameRequest):
        if not body.name.strip():
            raise HTTPException(status_code=422, detail="Workspace name must not be empty")
        return (await call(workspaces.create_workspace, body.name)).to_dict()

    @app.patch("/api/workspaces/{workspace_id}")
    async def update_workspace(workspace_id: str, body: WorkspaceNameRequest):
        return (await call(workspaces.update_workspace, workspace_id, body.name)).to_dict()

    @app.delete("/api/workspaces/{workspace_id}", status_code=204)
    async def delete_workspace(workspace_id: str):
        await call(workspaces.delete_workspace, workspace_id)
        return Response(status_code=204)

    @app.get("/api/workspaces/{slug}/mcp")
    async def get_mcp_config(slug: str):
        config = await call(workspaces.get_mcp_config, slug)
        return config.model_dump(exclude_none=True)

    @app.put("/api/workspaces/{slug}/mcp")
    async def save_mcp_config(slug: str, body: WorkspaceMcpConfig):
        await call(workspaces.save_mcp_config, slug, body)
        return body.model_dump(exclude_none=True)

    @app.get("/api/workspaces/{slug}/skills")
    async def list_skills(slug: str):
        return [s.to_dict() for s in await call(workspaces.list_skills, slug)]

    @app.delete("/api/workspaces/{slug}/skills/{skill_slug}", status_code=204)
    async def delete_skill(slug: str, skill_slug: str):
        await call(workspaces.delete_skill, slug, skill_slug)
        return Response(status_code=204)

    # ── Export ───────────────────────────────────────────────────

    @app.get("/api/export/{session_id}")
    async def export_session(
        session_id: str,
        format: str = Query("md", description="Export format: md or json"),
    ):
        """Export a session as Markdown or JSON."""
        session = await require_session(session_id)
        messages = await call(store.get_messages, session_id)

        safe_title = "".join(c if c.isalnum() or c in "-_ " else "" for c in session.title)[:50] or "session"

        if format == "json":
            return Response(
                content=session_to_json(session, messages),
                media_type="application/json",
                headers={"Content-Disposition": f'attachment; filename="{safe_title}.json"'},
            )
        return Response(
            content=session_to_markdown(session, messages),
            media_type="text/markdown",
            headers={"Content-Disposition": f'attachment; filename="{safe_title}.md"'},
        )

    # ── Notifications ────────────────────────────────────────────

    @app.websocket("/api/notifications")
    async def notifications(websocket: WebSocket):
        """Push capabilities_changed / files_changed events to the client."""
        queue = broadcaster.subscribe()
        await websocket.accept()

        sender = asyncio.create_task(forward_notifications(queue, websocket))
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            sender.cancel()
            broadcaster.unsubscribe(queue)

    return app


app = create_app()
