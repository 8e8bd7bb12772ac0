"""Task store synchronizer.

A ``TaskStore`` owns the locally rendered, newest-first task list of one signed-in
user and keeps it consistent with the remote store:

- ``load_all`` replaces the whole list with a fresh query result. Every call takes a
  request-sequence token; a response that is not the latest issued is discarded.
- ``toggle_done``, ``update_type`` and ``delete`` write remotely first and patch the
  local list only after the store confirms (no pre-confirmation update).
- ``create`` inserts remotely and never appends locally; the change notification that
  follows brings the new row in.
- ``subscribe`` answers every change event, whatever its kind, with a full
  ``load_all``.

Failures are logged, surfaced once through the notifier, and never raised: the store
stays usable after any failed operation. Stores have an explicit lifecycle
(``init_store`` / ``dispose_store``) and are shared between views through
``StoreRegistry``.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from src.core.change_feed import ChangeEvent, ChangeListener, Subscription
from src.core.config import Constants
from src.core.db_client import RecordNotFoundError
from src.core.errors import classify_store_error
from src.core.logging import span
from src.domain.create_models import TaskCreate
from src.domain.task import Task, TaskType, normalize_title
from src.domain.update_models import TaskDoneUpdate, TaskTypeUpdate
from src.domain.user import Session
from src.services import notification_service, task_service
from src.services.notification_service import NotificationLevel, Notifier


logger = logging.getLogger(__name__)

LOAD_FAILED_MESSAGE = "Failed to load tasks"
UPDATE_FAILED_MESSAGE = "Failed to update task"
CREATE_FAILED_MESSAGE = "Failed to create task"
DELETE_FAILED_MESSAGE = "Failed to delete task"


class StoreState(StrEnum):
    """Lifecycle state of a task store."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    DISPOSED = "disposed"


class TaskRemote(Protocol):
    """Remote task collection scoped to one owner (see ``task_service``)."""

    async def list_tasks(self, *, owner_id: str) -> list[Task]: ...

    async def create_task(self, *, owner_id: str, data: TaskCreate) -> Task: ...

    async def update_task(self, *, owner_id: str, task_id: str, data: TaskDoneUpdate | TaskTypeUpdate) -> Task: ...

    async def delete_task(self, *, owner_id: str, task_id: str) -> None: ...

    def subscribe(self, *, owner_id: str, listener: ChangeListener) -> Subscription: ...


StoreListener = Callable[["TaskStore"], None]


def _unique_by_id(tasks: list[Task]) -> list[Task]:
    seen: set[str] = set()
    unique = []
    for task in tasks:
        if task.id in seen:
            continue
        seen.add(task.id)
        unique.append(task)
    return unique


class TaskStore:
    """Local, ordered mirror of one user's tasks."""

    def __init__(
        self,
        session: Session,
        *,
        remote: TaskRemote | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.session = session
        self._remote: TaskRemote = remote if remote is not None else task_service  # type: ignore[assignment]
        self._notifier: Notifier = (
            notifier if notifier is not None else notification_service.get_center(session.user_id)
        )
        self._tasks: list[Task] = []
        self._state = StoreState.UNINITIALIZED
        self._latest_request = 0
        self._loads_in_flight = 0
        self._subscription: Subscription | None = None
        self._listeners: list[StoreListener] = []

    @property
    def user_id(self) -> str:
        return self.session.user_id

    @property
    def tasks(self) -> list[Task]:
        """Copy of the local list, newest first."""
        return list(self._tasks)

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def is_loading(self) -> bool:
        return self._loads_in_flight > 0

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None

    def get(self, task_id: str) -> Task | None:
        """Return the local copy of a task, if present."""
        return next((task for task in self._tasks if task.id == task_id), None)

    def add_listener(self, listener: StoreListener) -> Callable[[], None]:
        """Call ``listener(store)`` after every local change; returns a remover."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("task_store_listener_failed", extra={"user_id": self.user_id})

    def _ensure_usable(self) -> None:
        if self._state is StoreState.DISPOSED:
            msg = "TaskStore has been disposed"
            raise RuntimeError(msg)

    def _is_stale(self, token: int) -> bool:
        return self._state is StoreState.DISPOSED or token != self._latest_request

    def _report_failure(self, message: str, error: Exception, *, operation: str, **context: object) -> None:
        response = classify_store_error(error)
        logger.error(
            "task_store_operation_failed",
            extra={
                "operation": operation,
                "user_id": self.user_id,
                "code": response.code,
                "error": str(error),
                **context,
            },
        )
        self._notifier.notify(NotificationLevel.ERROR, message, detail=response.message)

    async def start(self) -> None:
        """Subscribe to changes, then perform the initial load."""
        self.subscribe()
        await self.load_all()

    async def load_all(self) -> bool:
        """Replace the local list with the user's tasks from the remote store.

        Returns:
            True if the fetched list was applied; False on failure or when the
            response was superseded by a newer request
        """
        self._ensure_usable()
        self._latest_request += 1
        token = self._latest_request
        self._loads_in_flight += 1
        self._state = StoreState.LOADING
        self._emit()

        try:
            with span("task_store.load_all"):
                try:
                    tasks = await self._remote.list_tasks(owner_id=self.user_id)
                except Exception as e:
                    if self._is_stale(token):
                        logger.info(
                            "Ignored failure of superseded task load",
                            extra={"user_id": self.user_id, "request": token, "error": str(e)},
                        )
                        return False
                    self._report_failure(LOAD_FAILED_MESSAGE, e, operation="load_all", request=token)
                    return False

                if self._is_stale(token):
                    logger.debug(
                        "Discarded superseded task list",
                        extra={"user_id": self.user_id, "request": token, "latest": self._latest_request},
                    )
                    return False

                self._tasks = _unique_by_id(tasks)
                logger.info("Loaded tasks", extra={"user_id": self.user_id, "count": len(self._tasks)})
                return True
        finally:
            self._loads_in_flight -= 1
            if self._state is not StoreState.DISPOSED:
                if self._loads_in_flight == 0:
                    self._state = StoreState.READY
                self._emit()

    def _patch(self, task_id: str, **changes: object) -> None:
        patched = False
        updated = []
        for task in self._tasks:
            if task.id == task_id:
                updated.append(task.model_copy(update=changes))
                patched = True
            else:
                updated.append(task)
        if patched:
            self._tasks = updated
            self._emit()

    async def toggle_done(self, task_id: str, current_done: bool | None = None) -> bool:
        """Flip the completion flag of one task after the remote store confirms.

        Args:
            task_id: Task to toggle
            current_done: Flag value the caller sees; read from the local copy when omitted

        Returns:
            True if the remote update succeeded
        """
        self._ensure_usable()
        if current_done is None:
            task = self.get(task_id)
            if task is None:
                logger.debug("Toggle skipped for unknown task", extra={"user_id": self.user_id, "task_id": task_id})
                return False
            current_done = task.done

        new_done = not current_done
        with span("task_store.toggle_done"):
            try:
                await self._remote.update_task(
                    owner_id=self.user_id,
                    task_id=task_id,
                    data=TaskDoneUpdate(done=new_done),
                )
            except Exception as e:
                self._report_failure(UPDATE_FAILED_MESSAGE, e, operation="toggle_done", task_id=task_id)
                return False

        if self._state is not StoreState.DISPOSED:
            self._patch(task_id, done=new_done)
        return True

    async def update_type(self, task_id: str, new_type: TaskType | str) -> bool:
        """Change the category of one task after the remote store confirms.

        No remote write is issued when the task already has that category.

        Returns:
            True if the remote update succeeded
        """
        self._ensure_usable()
        new_type = TaskType(new_type)
        task = self.get(task_id)
        if task is not None and task.type == new_type:
            logger.debug("Type unchanged, skipping update", extra={"user_id": self.user_id, "task_id": task_id})
            return False

        with span("task_store.update_type"):
            try:
                await self._remote.update_task(
                    owner_id=self.user_id,
                    task_id=task_id,
                    data=TaskTypeUpdate(type=new_type),
                )
            except Exception as e:
                self._report_failure(UPDATE_FAILED_MESSAGE, e, operation="update_type", task_id=task_id)
                return False

        if self._state is not StoreState.DISPOSED:
            self._patch(task_id, type=new_type)
        return True

    async def create(self, title: str | None, task_type: TaskType | str | None = None) -> Task | None:
        """Insert a new task remotely.

        Empty or whitespace-only titles are dropped without a remote call or a
        notification. The local list is left alone; the change notification that
        follows the insert refreshes it.

        Returns:
            The stored task, or None when rejected or failed
        """
        self._ensure_usable()
        normalized = normalize_title(title)
        if normalized is None:
            logger.debug("Rejected empty task title", extra={"user_id": self.user_id})
            return None

        data = TaskCreate(title=normalized, type=TaskType(task_type) if task_type else None)
        with span("task_store.create"):
            try:
                task = await self._remote.create_task(owner_id=self.user_id, data=data)
            except Exception as e:
                self._report_failure(CREATE_FAILED_MESSAGE, e, operation="create")
                return None

        logger.info("Task created", extra={"user_id": self.user_id, "task_id": task.id})
        return task

    async def delete(self, task_id: str, title: str | None = None) -> bool:
        """Delete one task remotely, then drop it from the local list.

        A "not found" answer counts as success: the row is already gone.

        Args:
            task_id: Task to delete
            title: Title for the confirmation message; read from the local copy when omitted

        Returns:
            True if the task is gone from the remote store
        """
        self._ensure_usable()
        if title is None:
            task = self.get(task_id)
            title = task.title if task is not None else None

        with span("task_store.delete"):
            try:
                await self._remote.delete_task(owner_id=self.user_id, task_id=task_id)
            except RecordNotFoundError:
                logger.info("Task already deleted", extra={"user_id": self.user_id, "task_id": task_id})
            except Exception as e:
                self._report_failure(DELETE_FAILED_MESSAGE, e, operation="delete", task_id=task_id)
                return False

        if self._state is not StoreState.DISPOSED:
            remaining = [task for task in self._tasks if task.id != task_id]
            if len(remaining) != len(self._tasks):
                self._tasks = remaining
                self._emit()

        message = f"“{title}” deleted" if title else "Task deleted"
        self._notifier.notify(
            NotificationLevel.SUCCESS,
            message,
            duration_ms=Constants.NOTIFICATION_DELETE_DURATION_MS,
        )
        return True

    def subscribe(self) -> None:
        """Refetch everything whenever any of the user's tasks changes."""
        self._ensure_usable()
        if self._subscription is not None:
            return
        self._subscription = self._remote.subscribe(owner_id=self.user_id, listener=self._on_change)
        logger.info("Subscribed to task changes", extra={"user_id": self.user_id})

    async def _on_change(self, event: ChangeEvent) -> None:
        if self._state is StoreState.DISPOSED:
            return
        logger.debug(
            "Task change received",
            extra={"user_id": self.user_id, "action": event.action, "record_id": event.record_id},
        )
        await self.load_all()

    def dispose(self) -> None:
        """Release the subscription and listeners. Safe to call more than once."""
        if self._state is StoreState.DISPOSED:
            return
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._listeners.clear()
        self._state = StoreState.DISPOSED
        logger.info("Task store disposed", extra={"user_id": self.user_id})


async def init_store(
    session: Session,
    *,
    remote: TaskRemote | None = None,
    notifier: Notifier | None = None,
) -> TaskStore:
    """Create a store for an identity, subscribe it, and load its tasks."""
    store = TaskStore(session, remote=remote, notifier=notifier)
    await store.start()
    return store


def dispose_store(store: TaskStore) -> None:
    """Tear down a store created by ``init_store``."""
    store.dispose()


@dataclass
class _RegistryEntry:
    store: TaskStore
    starting: asyncio.Task[None]
    holders: int = 1


class StoreRegistry:
    """Shares one live store per user among the views currently using it.

    The first ``acquire`` for a user creates and starts the store; holders that join
    while it is starting wait for the initial load (or its failure). The last release
    disposes it.
    """

    def __init__(self, store_factory: Callable[[Session], TaskStore] = TaskStore) -> None:
        self._store_factory = store_factory
        self._entries: dict[str, _RegistryEntry] = {}

    def get(self, user_id: str) -> TaskStore | None:
        entry = self._entries.get(user_id)
        return entry.store if entry is not None else None

    @property
    def active_users(self) -> list[str]:
        return list(self._entries)

    @asynccontextmanager
    async def acquire(self, session: Session) -> AsyncIterator[TaskStore]:
        """Hold the user's store for the duration of the block."""
        entry = await self._retain(session)
        try:
            yield entry.store
        finally:
            self._release(session.user_id, entry)

    async def _retain(self, session: Session) -> _RegistryEntry:
        entry = self._entries.get(session.user_id)
        if entry is None:
            store = self._store_factory(session)
            entry = _RegistryEntry(store=store, starting=asyncio.create_task(store.start()))
            self._entries[session.user_id] = entry
        else:
            entry.holders += 1

        try:
            # Shielded so one holder going away does not cancel the load for the others
            await asyncio.shield(entry.starting)
        except BaseException:
            if entry.starting.done() and self._entries.get(session.user_id) is entry:
                logger.warning("Task store failed to start", extra={"user_id": session.user_id})
                del self._entries[session.user_id]
            self._release(session.user_id, entry)
            raise
        return entry

    def _release(self, user_id: str, entry: _RegistryEntry) -> None:
        entry.holders -= 1
        if entry.holders > 0:
            return
        if self._entries.get(user_id) is entry:
            del self._entries[user_id]
        entry.starting.cancel()
        dispose_store(entry.store)

    def close(self) -> None:
        """Dispose every store (application shutdown)."""
        for entry in list(self._entries.values()):
            entry.starting.cancel()
            dispose_store(entry.store)
        self._entries.clear()


# Global registry used by the HTTP views
store_registry = StoreRegistry()
