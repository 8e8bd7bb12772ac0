"""Change notification channel for store collections.

Every committed write in the store publishes a ``ChangeEvent``. Subscribers register
for one collection (optionally scoped to one owner) and are invoked in background
tasks, so a publisher never waits on its subscribers. When Redis is configured and
the feed is started, events travel over Redis pub/sub so that every process serving
the same store sees them.
"""

import asyncio
import contextlib
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, ValidationError
from redis.exceptions import RedisError

from src.core.config import Constants
from src.core.redis_client import RedisClient, redis_client


logger = logging.getLogger(__name__)


class ChangeAction(StrEnum):
    """Kind of write that produced a change event."""

    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """A row in a watched collection changed."""

    collection: str = Field(..., description="Collection the row belongs to")
    action: ChangeAction = Field(..., description="INSERT, UPDATE or DELETE")
    record_id: str = Field(..., description="ID of the changed row")
    owner_id: str | None = Field(default=None, description="Owner of the changed row, if any")
    occurred_at: str = Field(
        default_factory=lambda: datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        description="When the change was committed (ISO format)",
    )


ChangeListener = Callable[[ChangeEvent], Awaitable[None]]


class Subscription:
    """Handle for one registered listener; release it with ``unsubscribe()``."""

    def __init__(
        self,
        feed: "ChangeFeed",
        *,
        collection: str,
        listener: ChangeListener,
        owner_id: str | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.collection = collection
        self.owner_id = owner_id
        self.listener = listener
        self._feed = feed
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def matches(self, event: ChangeEvent) -> bool:
        """Whether the event falls inside this subscription's scope."""
        if event.collection != self.collection:
            return False
        return self.owner_id is None or self.owner_id == event.owner_id

    def unsubscribe(self) -> None:
        """Stop receiving events. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._feed._remove(self)  # noqa: SLF001


class ChangeFeed:
    """Fan-out of change events to subscribers, in-process or over Redis pub/sub."""

    def __init__(self, redis: RedisClient | None = None, *, channel: str = Constants.CHANGE_CHANNEL) -> None:
        self._redis = redis
        self._channel = channel
        self._subscriptions: dict[str, Subscription] = {}
        self._pending: set[asyncio.Task[None]] = set()
        self._listener_task: asyncio.Task[None] | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    @property
    def uses_redis(self) -> bool:
        """True while the Redis listener is running and events go through Redis."""
        return self._redis is not None and self._listener_task is not None and not self._listener_task.done()

    def subscribe(
        self,
        collection: str,
        listener: ChangeListener,
        *,
        owner_id: str | None = None,
    ) -> Subscription:
        """Register a listener for changes to a collection.

        Args:
            collection: Collection to watch
            listener: Async callable invoked with each matching event
            owner_id: Restrict events to rows owned by this user

        Returns:
            Subscription handle
        """
        subscription = Subscription(self, collection=collection, listener=listener, owner_id=owner_id)
        self._subscriptions[subscription.id] = subscription
        logger.info(
            "change_feed_subscribed",
            extra={"collection": collection, "owner_id": owner_id, "subscription_id": subscription.id},
        )
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)
        logger.info(
            "change_feed_unsubscribed",
            extra={"collection": subscription.collection, "subscription_id": subscription.id},
        )

    async def publish(self, event: ChangeEvent) -> None:
        """Publish a change event to every matching subscriber."""
        if self.uses_redis and self._redis is not None:
            if await self._redis.publish(self._channel, event.model_dump_json()):
                return
            logger.warning(
                "change_feed_publish_fallback",
                extra={"collection": event.collection, "record_id": event.record_id},
            )
        self._dispatch(event)

    def _dispatch(self, event: ChangeEvent) -> None:
        targets = [s for s in list(self._subscriptions.values()) if s.matches(event)]
        logger.debug(
            "change_feed_dispatch",
            extra={"collection": event.collection, "action": event.action, "subscribers": len(targets)},
        )
        for subscription in targets:
            task = asyncio.create_task(self._deliver(subscription, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, subscription: Subscription, event: ChangeEvent) -> None:
        if not subscription.active:
            return
        try:
            await subscription.listener(event)
        except Exception:
            logger.exception(
                "change_feed_listener_failed",
                extra={"collection": event.collection, "subscription_id": subscription.id},
            )

    async def drain(self) -> None:
        """Wait until every delivery scheduled so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def start(self) -> None:
        """Start consuming events from Redis when it is configured."""
        if self._redis is None or not self._redis.is_available or self.uses_redis:
            return
        self._listener_task = asyncio.create_task(self._consume())
        logger.info("change_feed_started", extra={"transport": "redis", "channel": self._channel})

    async def _consume(self) -> None:
        if self._redis is None:
            return
        try:
            async for payload in self._redis.listen(self._channel):
                try:
                    event = ChangeEvent.model_validate_json(payload)
                except ValidationError as e:
                    logger.warning("change_feed_invalid_payload", extra={"error": str(e)})
                    continue
                self._dispatch(event)
        except RedisError as e:
            logger.error("change_feed_listener_stopped", extra={"error": str(e)})

    async def stop(self) -> None:
        """Stop the Redis listener and wait for in-flight deliveries."""
        if self._listener_task is not None:
            self._listener_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listener_task
            self._listener_task = None
        await self.drain()
        logger.info("change_feed_stopped")


# Global change feed instance
change_feed = ChangeFeed(redis_client)
