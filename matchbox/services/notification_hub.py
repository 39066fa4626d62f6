"""
Matchbox — Notification Fan-out

Two delivery paths for every match / message event:

* **Durable** – a ``notifications`` row is always written first.  Clients
  that were offline (or whose live buffer overflowed) reconcile through
  ``get_notifications`` / ``get_unread_count``.
* **Live, best-effort** – the serialized event is offered to every stream
  the recipient currently has open.  Each stream owns a bounded queue; when
  it is full the event is dropped for that stream only.

The hub is created by the application lifespan and torn down with
``shutdown()``.  The subscription map is guarded by one ``asyncio.Lock``.
Triggering operations never await delivery: they call ``dispatch()``,
which schedules ``publish()`` as a tracked background task.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Awaitable

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from matchbox.config import get_settings
from matchbox.errors import InvalidArgument, NotFound
from matchbox.models.notification import NOTIFICATION_TYPES, Notification

logger = structlog.get_logger("matchbox.notification_hub")

# Marker placed on a queue to wake a reader blocked on a closed stream.
_CLOSED = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _json_default(value: Any) -> str:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def format_event(event_type: str, recipient: str, payload: dict, now: datetime) -> str:
    """Serialize one event the way live clients expect it.

    Message events carry the message itself; every other type uses the
    generic notification envelope.
    """
    if event_type == "message":
        event = {
            "type": "message",
            "message_id": payload.get("message_id"),
            "match_id": payload.get("match_id"),
            "sender_id": payload.get("sender_id"),
            "message": payload.get("message", ""),
            "created_at": payload.get("created_at", now),
        }
    else:
        event = {
            "type": event_type,
            "user_id": recipient,
            "target_id": payload.get("target_id"),
            "message": payload.get("message", ""),
            "timestamp": now,
        }
        for key in ("match_id", "profile_id"):
            if key in payload:
                event[key] = payload[key]
    return json.dumps(event, default=_json_default)


class Subscription:
    """One live delivery channel for a user (a device, a browser tab).

    Iterate it (``async for event in sub``) or poll with ``next_event`` to
    receive serialized JSON events.  ``close()`` deregisters it from the
    hub; closing twice is a no-op.
    """

    def __init__(
        self,
        hub: "NotificationHub",
        user_id: str,
        buffer_size: int,
        event_types: frozenset[str] | None = None,
    ) -> None:
        self.user_id = user_id
        self.event_types = event_types
        self.dropped = 0
        self._hub = hub
        self._queue: asyncio.Queue[str | None] = asyncio.Queue(maxsize=buffer_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def accepts(self, event_type: str) -> bool:
        return self.event_types is None or event_type in self.event_types

    def offer(self, event_type: str, data: str) -> bool:
        """Non-blocking send.  Returns False when filtered, closed or full."""
        if self._closed or not self.accepts(event_type):
            return False
        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True

    async def next_event(self, timeout: float | None = None) -> str | None:
        """Wait for the next event.

        Returns ``None`` once the subscription is closed and raises
        ``asyncio.TimeoutError`` when nothing arrived within ``timeout``.
        """
        if self._closed and self._queue.empty():
            return None
        if timeout is None:
            return await self._queue.get()
        return await asyncio.wait_for(self._queue.get(), timeout=timeout)

    async def close(self) -> None:
        await self._hub.unsubscribe(self)

    def _shutdown_queue(self) -> None:
        """Discard pending events and wake any waiting reader.  Called by the
        hub with its lock held, exactly once per subscription."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> str:
        item = await self.next_event()
        if item is None:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()


class NotificationHub:
    """Process-local subscription registry plus the durable notification log."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        buffer_size: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.buffer_size = buffer_size or get_settings().NOTIFICATION_BUFFER_SIZE

        self._subscriptions: dict[str, set[Subscription]] = {}
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

        logger.info("notification_hub_initialised", buffer_size=self.buffer_size)

    # ── Subscriptions ─────────────────────────────────────────────────────

    async def subscribe(
        self,
        user_id: str,
        event_types: frozenset[str] | None = None,
    ) -> Subscription:
        """Register a new live stream for ``user_id``.

        Many concurrent subscriptions per user are allowed.  ``event_types``
        restricts the stream to those event types (``None`` = everything).
        """
        if not user_id:
            raise InvalidArgument("user_id is required to subscribe.")

        subscription = Subscription(self, user_id, self.buffer_size, event_types)
        async with self._lock:
            if self._closed:
                subscription._shutdown_queue()
                return subscription
            self._subscriptions.setdefault(user_id, set()).add(subscription)
            total = len(self._subscriptions[user_id])

        logger.info("subscription_opened", user_id=user_id, user_streams=total)
        return subscription

    async def unsubscribe(self, subscription: Subscription) -> None:
        async with self._lock:
            streams = self._subscriptions.get(subscription.user_id)
            if streams is not None:
                streams.discard(subscription)
                if not streams:
                    del self._subscriptions[subscription.user_id]
            already_closed = subscription.closed
            subscription._shutdown_queue()

        if not already_closed:
            logger.info(
                "subscription_closed",
                user_id=subscription.user_id,
                dropped=subscription.dropped,
            )

    def subscriber_count(self, user_id: str) -> int:
        # Single-threaded loop: a plain read never sees a half-applied change.
        return len(self._subscriptions.get(user_id, ()))

    # ── Publishing ────────────────────────────────────────────────────────

    async def publish(
        self,
        recipient: str,
        event_type: str,
        payload: dict,
    ) -> Notification | None:
        """Persist a notification row, then offer the event to live streams.

        A failed insert is logged and live delivery still goes ahead.
        Returns the stored row, or ``None`` when persisting failed.
        """
        if event_type not in NOTIFICATION_TYPES:
            raise InvalidArgument(f"Unknown notification type {event_type!r}.")

        log = logger.bind(recipient=recipient, event_type=event_type)
        now = _utcnow()
        notification: Notification | None = None

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    notification = Notification(
                        user_id=recipient,
                        type=event_type,
                        target_id=payload.get("target_id", payload.get("match_id")),
                        body=payload.get("message", ""),
                        is_read=False,
                        created_at=now,
                    )
                    session.add(notification)
        except SQLAlchemyError:
            notification = None
            log.exception("notification_persist_failed")

        data = format_event(event_type, recipient, payload, now)

        delivered = 0
        dropped = 0
        async with self._lock:
            for subscription in self._subscriptions.get(recipient, ()):
                if not subscription.accepts(event_type):
                    continue
                if subscription.offer(event_type, data):
                    delivered += 1
                else:
                    dropped += 1

        if dropped:
            log.warning("live_delivery_dropped", dropped=dropped, delivered=delivered)
        log.info(
            "notification_published",
            notification_id=notification.id if notification is not None else None,
            delivered=delivered,
        )
        return notification

    def dispatch(self, recipient: str, event_type: str, payload: dict) -> asyncio.Task | None:
        """Fire-and-forget ``publish``.  The caller must not await the task."""
        return self.run_in_background(
            self.publish(recipient, event_type, payload),
            name=f"notify:{event_type}:{recipient}",
        )

    def run_in_background(self, coro: Awaitable[Any], name: str) -> asyncio.Task | None:
        """Schedule ``coro`` without joining it.  Failures are logged only."""
        if self._closed:
            logger.warning("background_task_rejected", task=name, reason="hub_closed")
            coro.close()  # type: ignore[attr-defined]
            return None

        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )

    async def drain(self) -> None:
        """Wait for every scheduled background task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Durable log ───────────────────────────────────────────────────────

    async def get_notifications(
        self,
        user_id: str,
        limit: int = 20,
        offset: int = 0,
    ) -> list[Notification]:
        """Newest-first page of the user's notification log."""
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())

    async def get_unread_count(self, user_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        )
        async with self._session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())

    async def mark_notification_read(self, user_id: str, notification_id: int) -> None:
        stmt = (
            update(Notification)
            .where(Notification.id == notification_id, Notification.user_id == user_id)
            .values(is_read=True)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)

        if result.rowcount == 0:
            raise NotFound(f"Notification {notification_id} not found.")

    async def mark_all_read(self, user_id: str) -> int:
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(stmt)

        logger.info("notifications_marked_read", user_id=user_id, count=result.rowcount)
        return result.rowcount

    # ── Lifecycle ─────────────────────────────────────────────────────────

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop accepting work, finish pending deliveries, close all streams."""
        self._closed = True

        pending = list(self._tasks)
        if pending:
            done, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.gather(*still_running, return_exceptions=True)
                logger.warning("background_tasks_cancelled", count=len(still_running))

        async with self._lock:
            streams = [s for subs in self._subscriptions.values() for s in subs]
            self._subscriptions.clear()
            for subscription in streams:
                subscription._shutdown_queue()

        logger.info("notification_hub_closed", closed_streams=len(streams))
