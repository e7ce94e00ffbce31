"""
EventBus: fan-out of playback events to all subscribers.

The playback session is the only publisher. Every subscriber gets its own
buffer so a slow consumer never blocks the publisher or other consumers.
Delivery per subscriber is in publish order. When a subscriber falls behind,
only position updates are coalesced or dropped; a subscriber that keeps
falling behind on the other events is disconnected.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable, Coroutine
from contextlib import suppress
from types import TracebackType
from typing import Any, Self

from mixdeck.constants import (
    EVENT_QUEUE_HARD_LIMIT,
    EVENT_QUEUE_SIZE,
    MIXDECK_LOGGER_NAME,
    VERBOSE_LOG_LEVEL,
)
from mixdeck.models.enums import EventType
from mixdeck.models.event import PlaybackEvent

LOGGER = logging.getLogger(f"{MIXDECK_LOGGER_NAME}.event_bus")

EventCallBackType = (
    Callable[[PlaybackEvent], None] | Callable[[PlaybackEvent], Coroutine[Any, Any, None]]
)


class EventSubscription:
    """Buffered stream of events for a single subscriber, used as async iterator."""

    def __init__(
        self,
        bus: EventBus,
        event_filter: tuple[EventType, ...] | None,
        max_size: int,
        hard_limit: int,
    ) -> None:
        """Initialize the subscription."""
        self._bus = bus
        self.event_filter = event_filter
        self._max_size = max_size
        self._hard_limit = max(hard_limit, max_size)
        self._buffer: deque[PlaybackEvent] = deque()
        self._wakeup = asyncio.Event()
        self._closed = False
        self.dropped = 0
        self.overflowed = False

    @property
    def closed(self) -> bool:
        """Return if this subscription no longer receives events."""
        return self._closed

    @property
    def pending(self) -> int:
        """Return the number of buffered events."""
        return len(self._buffer)

    def wants(self, event: PlaybackEvent) -> bool:
        """Return if the event passes the filter of this subscription."""
        return self.event_filter is None or event.event in self.event_filter

    def put(self, event: PlaybackEvent) -> None:
        """Buffer an event for this subscriber, never blocks."""
        if self._closed:
            return
        if event.event == EventType.POSITION_UPDATED:
            if self._buffer and self._buffer[-1].event == EventType.POSITION_UPDATED:
                # a newer position replaces the one still pending at the tail
                self._buffer[-1] = event
                return
            if len(self._buffer) >= self._max_size and not self._drop_position_update():
                self.dropped += 1
                return
        elif len(self._buffer) >= self._max_size:
            self._drop_position_update()
            if len(self._buffer) >= self._hard_limit:
                LOGGER.warning(
                    "Subscriber is not consuming events (%s pending), disconnecting it",
                    len(self._buffer),
                )
                self.overflowed = True
                self.close()
                return
        self._buffer.append(event)
        self._wakeup.set()

    def _drop_position_update(self) -> bool:
        """Drop the oldest pending position update, return if one was dropped."""
        for pending in self._buffer:
            if pending.event == EventType.POSITION_UPDATED:
                self._buffer.remove(pending)
                self.dropped += 1
                return True
        return False

    def close(self) -> None:
        """Stop receiving events, already buffered events can still be consumed."""
        if self._closed:
            return
        self._closed = True
        self._wakeup.set()
        self._bus.unsubscribe(self)

    def get_nowait(self) -> PlaybackEvent | None:
        """Return the next buffered event, if any."""
        if self._buffer:
            return self._buffer.popleft()
        return None

    def __aiter__(self) -> Self:
        """Return the async iterator."""
        return self

    async def __anext__(self) -> PlaybackEvent:
        """Wait for and return the next event."""
        while not self._buffer:
            if self._closed:
                raise StopAsyncIteration
            self._wakeup.clear()
            await self._wakeup.wait()
        return self._buffer.popleft()

    def __enter__(self) -> Self:
        """Enter context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit context manager."""
        self.close()


class EventBus:
    """Single writer, multi reader event fan-out."""

    def __init__(
        self, max_queue_size: int = EVENT_QUEUE_SIZE, hard_limit: int = EVENT_QUEUE_HARD_LIMIT
    ) -> None:
        """Initialize the EventBus."""
        self._max_queue_size = max_queue_size
        self._hard_limit = hard_limit
        self._subscriptions: list[EventSubscription] = []
        self._callback_tasks: dict[EventSubscription, asyncio.Task[None]] = {}
        self.closing = False

    @property
    def subscriber_count(self) -> int:
        """Return the number of active subscriptions."""
        return len(self._subscriptions)

    def publish(self, event: PlaybackEvent) -> None:
        """Publish an event to all (interested) subscribers."""
        if self.closing:
            return
        if LOGGER.isEnabledFor(VERBOSE_LOG_LEVEL):
            LOGGER.log(VERBOSE_LOG_LEVEL, "%s %s", event.event.value, event.data)
        for subscription in list(self._subscriptions):
            if subscription.wants(event):
                subscription.put(event)

    def listen(
        self,
        event_filter: EventType | tuple[EventType, ...] | None = None,
        max_size: int | None = None,
    ) -> EventSubscription:
        """
        Create a new subscription to iterate events from.

        :param event_filter: Optionally only receive these events.
        :param max_size: Optionally override the buffer size of this subscriber.
        """
        if isinstance(event_filter, EventType):
            event_filter = (event_filter,)
        subscription = EventSubscription(
            self, event_filter, max_size or self._max_queue_size, self._hard_limit
        )
        self._subscriptions.append(subscription)
        return subscription

    def subscribe(
        self,
        cb_func: EventCallBackType,
        event_filter: EventType | tuple[EventType, ...] | None = None,
    ) -> Callable[[], None]:
        """Add callback to event listeners.

        Returns function to remove the listener.
            :param cb_func: callback function or coroutine
            :param event_filter: Optionally only listen for these events
        """
        subscription = self.listen(event_filter)
        task = asyncio.create_task(self._pump_callback(subscription, cb_func))
        self._callback_tasks[subscription] = task

        def remove_listener() -> None:
            subscription.close()
            if not task.done():
                task.cancel()

        return remove_listener

    def unsubscribe(self, subscription: EventSubscription) -> None:
        """Remove a subscription."""
        with suppress(ValueError):
            self._subscriptions.remove(subscription)
        subscription.close()

    async def close(self) -> None:
        """Close all subscriptions and stop the callback tasks."""
        self.closing = True
        for subscription in list(self._subscriptions):
            subscription.close()
        tasks = list(self._callback_tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._callback_tasks.clear()

    async def _pump_callback(
        self, subscription: EventSubscription, cb_func: EventCallBackType
    ) -> None:
        """Deliver events of a subscription to a callback, one at a time."""
        try:
            async for event in subscription:
                try:
                    result = cb_func(event)
                    if asyncio.iscoroutine(result):
                        await result
                except Exception as err:
                    LOGGER.warning(
                        "Error in event callback %s: %s",
                        cb_func,
                        str(err),
                        exc_info=err if LOGGER.isEnabledFor(logging.DEBUG) else None,
                    )
        finally:
            self._callback_tasks.pop(subscription, None)
