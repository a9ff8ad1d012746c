# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
CastEngine — the cast session facade handed to the presentation layer.

    engine = CastEngine(HttpRendererBridge())
    async with engine:
        engine.subscribe(DEVICE_FOUND, on_device)
        await engine.start_discovery()
        await engine.connect(device_id)
        await engine.add_to_queue(items)
        await engine.play()

The capability set is exposed as attributes so a UI can hold only what it
needs: ``discovery``, ``connection``, ``queue`` (read via get_queue, mutate
via the engine so changes are serialized and published), ``transport``.
Capabilities the renderer lacks raise UnsupportedError.

Queue mutations and queue navigation share one FIFO lock: two calls issued
back to back apply in issuance order even when the first one awaits the
device.  A failed transport command never moves the queue cursor.
Removing the playing item leaves its successor under the cursor; the next
advance (automatic or play_next) plays that successor rather than skipping it.
"""

import asyncio
import logging
import time
from dataclasses import replace

from .connection import ConnectionManager
from .discovery import DiscoveryController
from .errors import CastError, EmptyQueueError
from .events import QUEUE_UPDATED, EventBus, Subscription
from .models import (CastStatus, Device, EngineSettings, PlaybackState, QueueItem,
                     QueueState)
from .play_queue import QueueEngine
from .registry import DeviceRegistry
from .renderers.base import RendererService
from .status_sync import StatusSynchronizer
from .transport import TransportController

log = logging.getLogger(__name__)

_LOAD_STATES = (PlaybackState.IDLE, PlaybackState.STOPPED)


def _as_item(raw) -> QueueItem:
    if isinstance(raw, QueueItem):
        return raw
    return QueueItem.from_dict(raw)


class CastEngine:
    def __init__(self, renderer: RendererService, settings: EngineSettings | None = None,
                 bus: EventBus | None = None, rng=None, clock=time.monotonic):
        self.settings = settings or EngineSettings.from_config()
        self.bus = bus or EventBus()
        self.renderer = renderer
        self.registry = DeviceRegistry()
        self.queue = QueueEngine(rng)
        self.synchronizer = StatusSynchronizer(
            renderer, self.bus, self.settings, registry=self.registry, clock=clock)
        self.connection = ConnectionManager(
            self.registry, renderer, self.synchronizer, self.bus, self.settings)
        self.transport = TransportController(
            self.connection, renderer, self.synchronizer, self.settings)
        self.discovery = DiscoveryController(
            self.registry, renderer, self.bus, self.settings)
        self.synchronizer.on_item_ended = self._on_item_ended
        self._queue_lock = asyncio.Lock()
        # Set when the playing item was removed and its successor slid into the
        # cursor slot without being loaded
        self._slot_pending = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    async def close(self):
        """Tear the session down: no scans, no device, no subscribers."""
        await self.discovery.stop()
        await self.connection.disconnect()
        await self.synchronizer.drain()
        self.bus.clear()
        await self.renderer.close()
        log.info("Cast engine closed")

    def subscribe(self, event: str, callback) -> Subscription:
        return self.bus.subscribe(event, callback)

    # ── Discovery ──

    async def start_discovery(self):
        await self.discovery.start()

    async def stop_discovery(self, clear: bool = False):
        """Stop scanning; *clear* also forgets devices (the active one stays)."""
        await self.discovery.stop()
        if clear:
            active = self.connection.active_device
            self.registry.clear(keep=active.id if active else None)

    def get_devices(self) -> list[Device]:
        return [replace(device) for device in self.registry.all()]

    # ── Connection ──

    async def connect(self, device_id: str) -> Device:
        return replace(await self.connection.connect(device_id))

    async def connect_manual(self, host: str) -> Device:
        return replace(await self.connection.connect_manual(host))

    async def disconnect(self):
        await self.connection.disconnect()

    def is_casting(self) -> bool:
        return self.connection.is_casting()

    def get_active_device(self) -> Device | None:
        device = self.connection.active_device
        return replace(device) if device else None

    async def cast(self, device_id: str, item, start_position: float = 0) -> Device:
        """Connect to *device_id* and play one item outside the queue."""
        device = await self.connection.connect(device_id)
        await self.transport.load(_as_item(item), start_position=start_position)
        return replace(device)

    # ── Status / transport ──

    def get_status(self) -> CastStatus:
        return self.synchronizer.status

    async def play(self):
        """Resume, or load the selected queue item if the device has nothing playing."""
        async with self._queue_lock:
            self.connection.require_active()
            item = self.queue.current_item
            status = self.synchronizer.status
            if (item is not None and status.state in _LOAD_STATES
                    and status.media_path != item.path):
                await self._load_index(self.queue.current_index)
            else:
                await self.transport.play()

    async def pause(self):
        await self.transport.pause()

    async def stop(self):
        """Stop playback and end the session (the device slot becomes empty)."""
        await self.connection.disconnect()

    async def seek(self, seconds: float) -> float:
        return await self.transport.seek(seconds)

    async def set_volume(self, level: float) -> float:
        return await self.transport.set_volume(level)

    # ── Queue navigation ──

    async def play_next(self) -> bool:
        """Play the next item.  False when the queue has nothing after this one."""
        async with self._queue_lock:
            return await self._advance(self._following_index())

    async def play_previous(self) -> bool:
        async with self._queue_lock:
            return await self._advance(self.queue.previous_index())

    async def play_at_index(self, index: int):
        async with self._queue_lock:
            self.queue.item_at(index)
            await self._load_index(index)

    async def _advance(self, index: int | None) -> bool:
        if index is None:
            if self.connection.is_casting():
                await self.transport.stop()
            self.synchronizer.end_queue()
            return False
        await self._load_index(index)
        return True

    def _following_index(self) -> int | None:
        if self._slot_pending:
            return self.queue.current_index
        return self.queue.next_index()

    async def _load_index(self, index: int):
        item = self.queue.item_at(index)
        await self.transport.load(item)
        self.queue.select(index)
        self._slot_pending = False
        self._publish_queue()

    async def _on_item_ended(self):
        async with self._queue_lock:
            if not self.connection.is_casting():
                return
            try:
                index = self._following_index()
            except EmptyQueueError:
                index = None
            if index is None:
                self.synchronizer.end_queue()
                return
            try:
                await self._load_index(index)
            except CastError as e:
                log.warning("Could not advance to queue item %d: %s", index, e)

    # ── Queue mutation ──

    def get_queue(self) -> QueueState:
        return self.queue.snapshot()

    async def set_queue(self, items) -> QueueState:
        async with self._queue_lock:
            self.queue.set_items(_as_item(i) for i in items)
            self._slot_pending = False
            return self._publish_queue()

    async def add_to_queue(self, items) -> QueueState:
        async with self._queue_lock:
            self.queue.add_many(_as_item(i) for i in items)
            return self._publish_queue()

    async def remove_from_queue(self, index: int) -> QueueState:
        async with self._queue_lock:
            current = self.queue.current_index
            self.queue.remove_at(index)
            if index == current:
                self._slot_pending = index < len(self.queue)
            return self._publish_queue()

    async def clear_queue(self) -> QueueState:
        async with self._queue_lock:
            self.queue.clear()
            self._slot_pending = False
            return self._publish_queue()

    async def reorder_queue(self, from_index: int, to_index: int) -> QueueState:
        async with self._queue_lock:
            self.queue.reorder(from_index, to_index)
            return self._publish_queue()

    async def set_shuffle(self, enabled: bool) -> QueueState:
        async with self._queue_lock:
            self.queue.set_shuffle(enabled)
            return self._publish_queue()

    async def set_repeat(self, mode) -> QueueState:
        async with self._queue_lock:
            self.queue.set_repeat(mode)
            return self._publish_queue()

    def _publish_queue(self) -> QueueState:
        snapshot = self.queue.snapshot()
        self.bus.emit(QUEUE_UPDATED, snapshot)
        return snapshot
