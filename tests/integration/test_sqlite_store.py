"""End-to-end tests: task store over the SQLite-backed task service and change feed."""

import pytest

from src.core import db_client
from src.core.change_feed import change_feed
from src.core.db_client import DatabaseError, RecordNotFoundError
from src.domain.create_models import TaskCreate
from src.domain.update_models import TaskDoneUpdate
from src.services import notification_service, task_service
from src.services.notification_service import NotificationLevel
from src.services.task_store import dispose_store, init_store


@pytest.mark.integration
async def test_quick_add_appears_through_change_notification(alice_session):
    store = await init_store(alice_session)
    try:
        created = await store.create("Write report")
        assert store.tasks == []

        await change_feed.drain()

        assert [t.id for t in store.tasks] == [created.id]
        assert store.tasks[0].done is False
        assert store.tasks[0].type.value == "question"
    finally:
        dispose_store(store)


@pytest.mark.integration
async def test_newest_first_with_id_tie_break(alice_session):
    for title in ("first", "second", "third"):
        await db_client.create_record(
            collection="tasks",
            data={"title": title, "user_id": alice_session.user_id, "created_at": "2026-01-01T10:00:00.000Z"},
        )

    tasks = await task_service.list_tasks(owner_id=alice_session.user_id)

    assert [t.title for t in tasks] == ["third", "second", "first"]


@pytest.mark.integration
async def test_mutations_persist_and_mirror_locally(alice_session):
    store = await init_store(alice_session)
    try:
        first = await store.create("A")
        second = await store.create("B", "cloud")
        await change_feed.drain()
        assert [t.title for t in store.tasks] == ["B", "A"]

        assert await store.toggle_done(first.id) is True
        assert await store.update_type(second.id, "lightning") is True
        assert await store.delete(second.id) is True
        await change_feed.drain()

        stored = await db_client.get_record(collection="tasks", record_id=first.id)
        assert stored["done"] is True
        with pytest.raises(RecordNotFoundError):
            await db_client.get_record(collection="tasks", record_id=second.id)
        assert store.tasks == await task_service.list_tasks(owner_id=alice_session.user_id)

        center = notification_service.get_center(alice_session.user_id)
        assert center.recent()[-1].level is NotificationLevel.SUCCESS
        assert center.recent()[-1].message == "“B” deleted"
    finally:
        dispose_store(store)


@pytest.mark.integration
async def test_second_device_sees_changes(alice_session):
    phone = await init_store(alice_session)
    laptop = await init_store(alice_session)
    try:
        task = await phone.create("Call mom")
        await change_feed.drain()
        assert [t.id for t in laptop.tasks] == [task.id]

        await phone.toggle_done(task.id)
        await change_feed.drain()
        assert laptop.get(task.id).done is True
    finally:
        dispose_store(phone)
        dispose_store(laptop)


@pytest.mark.integration
async def test_users_are_isolated(alice_session, bob_session):
    alice_store = await init_store(alice_session)
    bob_store = await init_store(bob_session)
    try:
        task = await alice_store.create("Private")
        await change_feed.drain()

        assert bob_store.tasks == []
        assert await bob_store.toggle_done(task.id, False) is False
        assert await bob_store.delete(task.id, "Private") is True

        stored = await db_client.get_record(collection="tasks", record_id=task.id)
        assert stored["done"] is False
    finally:
        dispose_store(alice_store)
        dispose_store(bob_store)


@pytest.mark.integration
async def test_foreign_update_is_not_found(alice_session, bob_session):
    task = await task_service.create_task(
        owner_id=alice_session.user_id,
        data=TaskCreate(title="Mine"),
    )

    with pytest.raises(RecordNotFoundError):
        await task_service.update_task(owner_id=bob_session.user_id, task_id=task.id, data=TaskDoneUpdate(done=True))


@pytest.mark.integration
async def test_blank_title_rejected_by_schema(alice_session):
    with pytest.raises(DatabaseError):
        await db_client.create_record(collection="tasks", data={"title": "   ", "user_id": alice_session.user_id})


@pytest.mark.integration
async def test_invalid_type_rejected_by_schema(alice_session):
    with pytest.raises(DatabaseError):
        await db_client.create_record(
            collection="tasks", data={"title": "x", "type": "sunny", "user_id": alice_session.user_id}
        )


@pytest.mark.integration
async def test_disposed_store_stops_refreshing(alice_session):
    store = await init_store(alice_session)
    dispose_store(store)

    await task_service.create_task(owner_id=alice_session.user_id, data=TaskCreate(title="Later"))
    await change_feed.drain()

    assert store.tasks == []
    assert change_feed.subscriber_count == 0
