"""Task service: the task collection as seen by one signed-in user.

Every read and write is filtered by owner, so a user can neither see nor modify
another user's rows; updates and deletes of foreign rows behave as "not found".
"""

import logging

from src.core import db_client
from src.core.change_feed import ChangeListener, Subscription, change_feed
from src.core.config import Constants
from src.core.db_client import RecordNotFoundError, sanitize_param
from src.core.logging import span
from src.domain.create_models import TaskCreate
from src.domain.task import Task
from src.domain.update_models import TaskDoneUpdate, TaskTypeUpdate


logger = logging.getLogger(__name__)


def _owner_filter(owner_id: str) -> str:
    return f'user_id = "{sanitize_param(owner_id)}"'


async def _require_owned(*, owner_id: str, task_id: str) -> None:
    """Raise RecordNotFoundError unless the task exists and belongs to owner_id."""
    record = await db_client.get_first_record(
        collection=Constants.TASKS_COLLECTION,
        filter_query=f'id = "{sanitize_param(task_id)}" && {_owner_filter(owner_id)}',
    )
    if record is None:
        msg = f"Record not found in {Constants.TASKS_COLLECTION}: {task_id}"
        raise RecordNotFoundError(msg)


async def list_tasks(*, owner_id: str) -> list[Task]:
    """List every task of a user, newest first.

    Args:
        owner_id: ID of the signed-in user

    Returns:
        Tasks ordered by created_at descending

    Raises:
        db_client.DatabaseError: If the query fails
    """
    with span("task_service.list_tasks"):
        records = await db_client.list_records(
            collection=Constants.TASKS_COLLECTION,
            filter_query=_owner_filter(owner_id),
            sort=Constants.TASK_SORT,
            per_page=Constants.MAX_TASKS_PER_LIST,
        )
        return [Task.model_validate(record) for record in records]


async def create_task(*, owner_id: str, data: TaskCreate) -> Task:
    """Insert a task owned by a user.

    Only the user-supplied fields are written; id, done and created_at are
    filled in by the store.

    Raises:
        db_client.DatabaseError: If the insert fails
    """
    with span("task_service.create_task"):
        payload = data.model_dump(exclude_none=True, mode="json")
        payload["user_id"] = owner_id
        record = await db_client.create_record(collection=Constants.TASKS_COLLECTION, data=payload)
        logger.info("Created task", extra={"operation": "create_task", "task_id": record["id"]})
        return Task.model_validate(record)


async def update_task(*, owner_id: str, task_id: str, data: TaskDoneUpdate | TaskTypeUpdate) -> Task:
    """Apply a partial update to one of a user's tasks.

    Raises:
        db_client.RecordNotFoundError: If the task does not exist or is not owned by the user
        db_client.DatabaseError: If the update fails
    """
    with span("task_service.update_task"):
        await _require_owned(owner_id=owner_id, task_id=task_id)
        changes = data.model_dump(mode="json")
        record = await db_client.update_record(
            collection=Constants.TASKS_COLLECTION,
            record_id=task_id,
            data=changes,
        )
        logger.info("Updated task", extra={"operation": "update_task", "task_id": task_id, "fields": list(changes)})
        return Task.model_validate(record)


async def delete_task(*, owner_id: str, task_id: str) -> None:
    """Delete one of a user's tasks.

    Raises:
        db_client.RecordNotFoundError: If the task does not exist or is not owned by the user
        db_client.DatabaseError: If the delete fails
    """
    with span("task_service.delete_task"):
        await _require_owned(owner_id=owner_id, task_id=task_id)
        await db_client.delete_record(collection=Constants.TASKS_COLLECTION, record_id=task_id)
        logger.info("Deleted task", extra={"operation": "delete_task", "task_id": task_id})


def subscribe(*, owner_id: str, listener: ChangeListener) -> Subscription:
    """Watch every insert, update and delete of a user's tasks."""
    return change_feed.subscribe(Constants.TASKS_COLLECTION, listener, owner_id=owner_id)
