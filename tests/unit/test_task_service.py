"""Unit tests for task_service module."""

import pytest

from src.core.change_feed import ChangeAction, ChangeEvent, ChangeFeed
from src.core.db_client import RecordNotFoundError
from src.domain.create_models import TaskCreate
from src.domain.task import TaskType
from src.domain.update_models import TaskDoneUpdate, TaskTypeUpdate
from src.services import task_service


@pytest.fixture
async def owned_tasks(patched_db):
    """Two tasks for user 1 and one for user 2, inserted oldest first."""
    older = await patched_db.create_record(
        "tasks", {"title": "Older", "done": False, "type": "cloud", "user_id": "1", "created_at": "2026-01-01T10:00:00.000Z"}
    )
    newer = await patched_db.create_record(
        "tasks", {"title": "Newer", "done": False, "type": None, "user_id": "1", "created_at": "2026-01-01T11:00:00.000Z"}
    )
    foreign = await patched_db.create_record(
        "tasks", {"title": "Foreign", "done": True, "type": None, "user_id": "2", "created_at": "2026-01-01T12:00:00.000Z"}
    )
    return {"older": older, "newer": newer, "foreign": foreign}


@pytest.mark.unit
class TestListTasks:
    """Tests for list_tasks."""

    async def test_returns_own_tasks_newest_first(self, owned_tasks):
        tasks = await task_service.list_tasks(owner_id="1")

        assert [t.title for t in tasks] == ["Newer", "Older"]

    async def test_missing_type_defaults_to_question(self, owned_tasks):
        tasks = await task_service.list_tasks(owner_id="1")

        assert tasks[0].type is TaskType.QUESTION
        assert tasks[1].type is TaskType.CLOUD

    async def test_unknown_owner_gets_empty_list(self, owned_tasks):
        assert await task_service.list_tasks(owner_id="99") == []


@pytest.mark.unit
class TestCreateTask:
    """Tests for create_task."""

    async def test_writes_only_user_supplied_fields(self, patched_db):
        task = await task_service.create_task(owner_id="1", data=TaskCreate(title="  Buy milk "))

        stored = await patched_db.get_record("tasks", task.id)
        assert stored["title"] == "Buy milk"
        assert stored["user_id"] == "1"
        assert "type" not in stored
        assert "done" not in stored
        assert task.done is False
        assert task.type is TaskType.QUESTION

    async def test_writes_type_when_given(self, patched_db):
        task = await task_service.create_task(owner_id="1", data=TaskCreate(title="Idea", type=TaskType.LIGHTNING))

        stored = await patched_db.get_record("tasks", task.id)
        assert stored["type"] == "lightning"


@pytest.mark.unit
class TestUpdateTask:
    """Tests for update_task."""

    async def test_updates_done_flag(self, patched_db, owned_tasks):
        task_id = owned_tasks["older"]["id"]

        task = await task_service.update_task(owner_id="1", task_id=task_id, data=TaskDoneUpdate(done=True))

        assert task.done is True
        assert (await patched_db.get_record("tasks", task_id))["done"] is True

    async def test_updates_type(self, patched_db, owned_tasks):
        task_id = owned_tasks["newer"]["id"]

        task = await task_service.update_task(owner_id="1", task_id=task_id, data=TaskTypeUpdate(type=TaskType.CLOUD))

        assert task.type is TaskType.CLOUD

    async def test_foreign_task_is_not_found(self, patched_db, owned_tasks):
        task_id = owned_tasks["foreign"]["id"]

        with pytest.raises(RecordNotFoundError):
            await task_service.update_task(owner_id="1", task_id=task_id, data=TaskDoneUpdate(done=False))

        assert (await patched_db.get_record("tasks", task_id))["done"] is True

    async def test_missing_task_is_not_found(self, owned_tasks):
        with pytest.raises(RecordNotFoundError):
            await task_service.update_task(owner_id="1", task_id="424242", data=TaskDoneUpdate(done=True))


@pytest.mark.unit
class TestDeleteTask:
    """Tests for delete_task."""

    async def test_deletes_own_task(self, patched_db, owned_tasks):
        task_id = owned_tasks["older"]["id"]

        await task_service.delete_task(owner_id="1", task_id=task_id)

        assert [t.title for t in await task_service.list_tasks(owner_id="1")] == ["Newer"]

    async def test_second_delete_is_not_found(self, owned_tasks):
        task_id = owned_tasks["older"]["id"]
        await task_service.delete_task(owner_id="1", task_id=task_id)

        with pytest.raises(RecordNotFoundError):
            await task_service.delete_task(owner_id="1", task_id=task_id)

    async def test_foreign_task_is_kept(self, patched_db, owned_tasks):
        task_id = owned_tasks["foreign"]["id"]

        with pytest.raises(RecordNotFoundError):
            await task_service.delete_task(owner_id="1", task_id=task_id)

        assert await patched_db.get_record("tasks", task_id)


@pytest.mark.unit
class TestSubscribe:
    """Tests for subscribe."""

    async def test_registers_owner_scoped_listener(self, monkeypatch):
        feed = ChangeFeed()
        monkeypatch.setattr("src.services.task_service.change_feed", feed)
        received = []

        async def listener(event):
            received.append(event)

        subscription = task_service.subscribe(owner_id="1", listener=listener)

        assert subscription.collection == "tasks"
        assert subscription.owner_id == "1"
        assert feed.subscriber_count == 1

        await feed.publish(ChangeEvent(collection="tasks", action=ChangeAction.INSERT, record_id="5", owner_id="1"))
        await feed.publish(ChangeEvent(collection="tasks", action=ChangeAction.INSERT, record_id="6", owner_id="2"))
        await feed.drain()

        assert [e.record_id for e in received] == ["5"]
