"""Task views: list, quick add, toggle, change type, delete, and the live event stream."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from src.core.config import Constants
from src.core.logging import log_with_user_context
from src.domain.task import DEFAULT_TASK_TYPE, TaskType
from src.domain.user import Session
from src.interface.auth_router import require_session
from src.services import notification_service
from src.services.notification_service import Notification, NotificationCenter
from src.services.task_store import StoreRegistry, TaskStore, store_registry


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


class TaskCreateRequest(BaseModel):
    """Quick-add form body."""

    title: str = ""
    type: TaskType | None = None


class ToggleRequest(BaseModel):
    """Completion flag as the client currently displays it."""

    current_done: bool | None = None


class TypeChangeRequest(BaseModel):
    """New category for a task."""

    type: TaskType


def get_store_registry() -> StoreRegistry:
    """Registry dependency, overridable in tests."""
    return store_registry


def snapshot(store: TaskStore) -> dict[str, Any]:
    """Serializable view of a store's current list."""
    return {
        "state": store.state.value,
        "loading": store.is_loading,
        "tasks": [task.model_dump(mode="json") for task in store.tasks],
    }


def _with_notifications(body: dict[str, Any], user_id: str) -> dict[str, Any]:
    center = notification_service.get_center(user_id)
    body["notifications"] = [n.model_dump(mode="json") for n in center.recent()]
    return body


def format_sse(event: str, data: dict[str, Any]) -> str:
    """Encode one Server-Sent Event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def stream_task_events(
    store: TaskStore,
    center: NotificationCenter,
    *,
    keepalive_seconds: float = Constants.SSE_KEEPALIVE_SECONDS,
) -> AsyncIterator[str]:
    """Yield a task snapshot now and after every store change, plus every new notification."""
    queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue()

    def on_store_change(changed: TaskStore) -> None:
        queue.put_nowait(("tasks", snapshot(changed)))

    def on_notification(notification: Notification) -> None:
        queue.put_nowait(("notification", notification.model_dump(mode="json")))

    remove_store_listener = store.add_listener(on_store_change)
    remove_notification_listener = center.add_listener(on_notification)
    try:
        yield format_sse("tasks", snapshot(store))
        while True:
            try:
                event, data = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield format_sse(event, data)
    finally:
        remove_store_listener()
        remove_notification_listener()


@router.get("")
async def list_tasks(
    session: Session = Depends(require_session),
    registry: StoreRegistry = Depends(get_store_registry),
) -> dict[str, Any]:
    """Dashboard: the user's tasks, newest first, with recent notifications."""
    async with registry.acquire(session) as store:
        return _with_notifications(snapshot(store), session.user_id)


@router.get("/new")
async def new_task_form(_session: Session = Depends(require_session)) -> dict[str, Any]:
    """Quick-add view: available categories."""
    return {"types": [t.value for t in TaskType], "default_type": DEFAULT_TASK_TYPE.value}


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def create_task(
    body: TaskCreateRequest,
    session: Session = Depends(require_session),
    registry: StoreRegistry = Depends(get_store_registry),
) -> dict[str, Any]:
    """Submit a new task; the list picks it up from the change notification."""
    async with registry.acquire(session) as store:
        task = await store.create(body.title, body.type)
    return _with_notifications(
        {"accepted": task is not None, "task": task.model_dump(mode="json") if task else None},
        session.user_id,
    )


@router.post("/{task_id}/toggle")
async def toggle_task(
    task_id: str,
    body: ToggleRequest | None = None,
    session: Session = Depends(require_session),
    registry: StoreRegistry = Depends(get_store_registry),
) -> dict[str, Any]:
    """Flip a task's completion flag."""
    current_done = body.current_done if body else None
    async with registry.acquire(session) as store:
        ok = await store.toggle_done(task_id, current_done)
        return _with_notifications({"ok": ok, **snapshot(store)}, session.user_id)


@router.patch("/{task_id}/type")
async def change_task_type(
    task_id: str,
    body: TypeChangeRequest,
    session: Session = Depends(require_session),
    registry: StoreRegistry = Depends(get_store_registry),
) -> dict[str, Any]:
    """Change a task's category."""
    async with registry.acquire(session) as store:
        ok = await store.update_type(task_id, body.type)
        return _with_notifications({"ok": ok, **snapshot(store)}, session.user_id)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    session: Session = Depends(require_session),
    registry: StoreRegistry = Depends(get_store_registry),
) -> dict[str, Any]:
    """Delete a task."""
    async with registry.acquire(session) as store:
        ok = await store.delete(task_id)
        return _with_notifications({"ok": ok, **snapshot(store)}, session.user_id)


@router.get("/events")
async def task_events(
    session: Session = Depends(require_session),
    registry: StoreRegistry = Depends(get_store_registry),
) -> StreamingResponse:
    """Live stream of task snapshots and notifications for the signed-in user."""

    async def event_source() -> AsyncIterator[str]:
        try:
            async with registry.acquire(session) as store:
                center = notification_service.get_center(session.user_id)
                async for chunk in stream_task_events(store, center):
                    yield chunk
        finally:
            log_with_user_context(logger, "info", "task_stream_closed", user_id=session.user_id)

    log_with_user_context(logger, "info", "task_stream_opened", user_id=session.user_id)
    return StreamingResponse(
        event_source(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
