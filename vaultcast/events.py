# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
EventBus — publish/subscribe channel between the engine and its presentation
layer (the HTTP/WebSocket front, or any in-process UI).

    bus = EventBus()
    sub = bus.subscribe(DEVICE_FOUND, on_device)      # returns a Subscription
    bus.emit(DEVICE_FOUND, device)
    sub.close()                                       # or: with bus.subscribe(...):

Delivery is fire-and-forget and in emission order.  Plain callbacks run
synchronously in subscription order; coroutine callbacks are scheduled as
tasks (in subscription order) on the running loop.  A failing subscriber is
logged and never affects the others or the emitter.
"""

import asyncio
import inspect
import logging
from typing import Any, Callable

log = logging.getLogger(__name__)

# Event names
DEVICE_FOUND = "device_found"
DISCOVERY_STARTED = "discovery_started"
DISCOVERY_STOPPED = "discovery_stopped"
DISCOVERY_ERROR = "discovery_error"
ACTIVE_DEVICE_CHANGED = "active_device_changed"
STATUS_UPDATE = "status_update"
QUEUE_UPDATED = "queue_updated"
QUEUE_ENDED = "queue_ended"

ALL_EVENTS = (
    DEVICE_FOUND, DISCOVERY_STARTED, DISCOVERY_STOPPED, DISCOVERY_ERROR,
    ACTIVE_DEVICE_CHANGED, STATUS_UPDATE, QUEUE_UPDATED, QUEUE_ENDED,
)

EventCallback = Callable[..., Any]


class Subscription:
    """Handle returned by EventBus.subscribe; closing it unsubscribes."""

    def __init__(self, bus: "EventBus", event: str, callback: EventCallback):
        self._bus = bus
        self.event = event
        self.callback = callback
        self.active = True

    def close(self):
        if self.active:
            self._bus.unsubscribe(self.event, self.callback)
            self.active = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class EventBus:
    def __init__(self):
        self._subscribers: dict[str, list[EventCallback]] = {}
        self._tasks: set[asyncio.Task] = set()

    def subscribe(self, event: str, callback: EventCallback) -> Subscription:
        """Register *callback* for *event*.  Subscribing twice is a no-op."""
        callbacks = self._subscribers.setdefault(event, [])
        if callback not in callbacks:
            callbacks.append(callback)
        return Subscription(self, event, callback)

    def unsubscribe(self, event: str, callback: EventCallback):
        try:
            self._subscribers.get(event, []).remove(callback)
        except ValueError:
            pass

    def unsubscribe_all(self, callback: EventCallback):
        for callbacks in self._subscribers.values():
            if callback in callbacks:
                callbacks.remove(callback)

    def subscriber_count(self, event: str) -> int:
        return len(self._subscribers.get(event, []))

    def emit(self, event: str, *args):
        """Deliver *event* to every subscriber.  Never raises."""
        for callback in list(self._subscribers.get(event, [])):
            try:
                if inspect.iscoroutinefunction(callback):
                    self._schedule(event, callback(*args))
                else:
                    callback(*args)
            except Exception:
                log.warning("Subscriber %r failed on %s", callback, event, exc_info=True)

    def _schedule(self, event: str, coro):
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            log.warning("No running loop — dropped async %s subscriber", event)
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._task_done(event, t))

    def _task_done(self, event: str, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning("Async subscriber failed on %s: %s", event, exc)

    async def drain(self):
        """Wait for scheduled async deliveries to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def clear(self):
        """Drop every subscription (engine teardown)."""
        self._subscribers.clear()
        for task in list(self._tasks):
            task.cancel()
