# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
StatusSynchronizer — merges device status frames into the local CastStatus.

Frames arrive two ways: pushed by a renderer through apply(), or pulled by
the poll loop that runs while a device is attached.  Each frame is a full
snapshot and replaces the previous status wholesale, so duplicated or
reordered frames can never produce a composite state.

Seek guard
----------
When the user seeks, begin_seek() records the target and publishes an
optimistic status at that position.  Until the device confirms (a frame
within ``seek_tolerance`` of the target) frames are suppressed whole.  The
guard is bounded: after ``seek_guard_timeout`` seconds the device is trusted
again even if it silently ignored the seek.  If the seek command itself fails,
cancel_seek() republishes the newest status the device reported.

End of item
-----------
Detection is armed once the loaded item is seen playing.  A later
playing/buffering -> stopped/idle transition fires ``on_item_ended`` once.
begin_load() disarms it so the transient stop between items is not taken
for the end of the new one.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

from .errors import (CastError, CommandCancelledError, CommandRejectedError,
                     CommandTimeoutError, NoActiveDeviceError, RendererError)
from .events import QUEUE_ENDED, STATUS_UPDATE, EventBus
from .models import CastStatus, Device, DeviceStatus, EngineSettings, PlaybackState
from .registry import DeviceRegistry
from .renderers.base import RendererService

log = logging.getLogger(__name__)

_ACTIVE_STATES = (PlaybackState.PLAYING, PlaybackState.BUFFERING)
_ENDED_STATES = (PlaybackState.STOPPED, PlaybackState.IDLE)

_DEVICE_STATUS = {
    PlaybackState.PLAYING: DeviceStatus.PLAYING,
    PlaybackState.PAUSED: DeviceStatus.PAUSED,
    PlaybackState.BUFFERING: DeviceStatus.BUFFERING,
    PlaybackState.STOPPED: DeviceStatus.IDLE,
    PlaybackState.IDLE: DeviceStatus.IDLE,
}


class SeekGuard:
    """An in-flight local seek waiting for the device to confirm it."""

    def __init__(self, target: float, started: float, timeout: float, fallback: CastStatus):
        self.target = target
        self.started = started
        self.timeout = timeout
        # Newest status the device itself reported; republished if the seek fails
        self.fallback = fallback

    def confirms(self, frame: CastStatus, tolerance: float) -> bool:
        return abs(frame.current_time_seconds - self.target) <= tolerance

    def expired(self, now: float) -> bool:
        return now - self.started >= self.timeout


class StatusSynchronizer:
    def __init__(self, renderer: RendererService, bus: EventBus,
                 settings: EngineSettings | None = None,
                 registry: DeviceRegistry | None = None,
                 clock: Callable[[], float] = time.monotonic):
        self._renderer = renderer
        self._bus = bus
        self._settings = settings or EngineSettings()
        self._registry = registry
        self._clock = clock
        self._device: Device | None = None
        self._status = CastStatus.idle()
        self._guard: SeekGuard | None = None
        self._armed = False
        self._poll_task: asyncio.Task | None = None
        self._callbacks: set[asyncio.Task] = set()
        self.on_item_ended: Callable[[], Awaitable[None]] | None = None

    @property
    def status(self) -> CastStatus:
        return self._status

    @property
    def seeking(self) -> bool:
        return self._live_guard() is not None

    @property
    def seek_target(self) -> float | None:
        guard = self._live_guard()
        return guard.target if guard else None

    # ── Session binding ──

    def attach(self, device: Device, poll: bool = True):
        """Start tracking *device*.  Call from inside the event loop."""
        if self._poll_task:
            self._poll_task.cancel()
            self._poll_task = None
        self._device = device
        self._guard = None
        self._armed = False
        self._publish(CastStatus.idle(device.id))
        if poll and self._settings.poll_interval > 0:
            self._poll_task = asyncio.create_task(self._poll_loop(device))
        log.info("Status sync attached to %s", device.name)

    async def detach(self):
        """Stop polling and reset to the idle default."""
        task, self._poll_task = self._poll_task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        for pending in list(self._callbacks):
            pending.cancel()
        was_attached = self._device is not None
        self._device = None
        self._guard = None
        self._armed = False
        self._publish(CastStatus.idle())
        if was_attached:
            log.info("Status sync detached")

    # ── Local intents ──

    def begin_seek(self, target: float):
        previous = self._guard.fallback if self._guard else self._status
        self._guard = SeekGuard(target, self._clock(), self._settings.seek_guard_timeout,
                                previous)
        log.debug("Seek guard armed at %.1fs", target)
        self._publish(self._status.with_time(target))

    def cancel_seek(self):
        """The seek command failed: drop the guard and show the device's position again."""
        guard, self._guard = self._guard, None
        if guard is None:
            return
        log.debug("Seek guard released (target %.1fs)", guard.target)
        if guard.fallback != self._status:
            self._publish(guard.fallback)

    def begin_load(self):
        """A new item is about to be loaded on the device."""
        self._armed = False
        self._guard = None

    def end_queue(self):
        """Nothing left to play: leave the status stopped and tell subscribers."""
        self._armed = False
        self._publish(self._status.with_state(PlaybackState.STOPPED))
        log.info("Queue ended")
        self._bus.emit(QUEUE_ENDED)

    # ── Frames ──

    def apply(self, frame: CastStatus) -> bool:
        """Merge one status frame.  Returns True if it replaced the status."""
        if self._device is None or frame.device_id != self._device.id:
            log.debug("Dropping frame for inactive device %r", frame.device_id)
            return False

        guard = self._guard
        if guard is not None:
            if guard.confirms(frame, self._settings.seek_tolerance):
                log.debug("Seek to %.1fs confirmed by device", guard.target)
                self._guard = None
            elif guard.expired(self._clock()):
                log.info("Seek guard expired after %.1fs — trusting device position %.1fs",
                         guard.timeout, frame.current_time_seconds)
                self._guard = None
            else:
                log.debug("Suppressing stale frame at %.1fs (seeking to %.1fs)",
                          frame.current_time_seconds, guard.target)
                guard.fallback = frame
                return False

        previous = self._status
        if frame == previous:
            return False
        self._publish(frame)
        if self._registry is not None:
            self._registry.update_status(frame.device_id, _DEVICE_STATUS[frame.state])
        self._track_item_end(previous, frame)
        return True

    async def refresh(self) -> CastStatus:
        """Fetch one frame from the device and apply it."""
        device = self._device
        if device is None:
            raise NoActiveDeviceError()
        try:
            raw = await asyncio.wait_for(
                self._renderer.fetch_status(device), self._settings.command_timeout)
        except asyncio.TimeoutError:
            raise CommandTimeoutError(f"Status fetch from {device.name} timed out") from None
        except RendererError as e:
            raise CommandRejectedError(str(e), e.code) from e
        if self._device is not device:
            raise CommandCancelledError("Device detached during status fetch")
        # A pulled frame always belongs to the device it was fetched from
        self.apply(CastStatus.from_dict({**raw, "device_id": device.id}))
        return self._status

    # ── Internals ──

    def _live_guard(self) -> SeekGuard | None:
        guard = self._guard
        if guard is not None and guard.expired(self._clock()):
            log.info("Seek guard expired after %.1fs without confirmation", guard.timeout)
            self._guard = guard = None
        return guard

    def _publish(self, status: CastStatus):
        self._status = status
        self._bus.emit(STATUS_UPDATE, status)

    def _track_item_end(self, previous: CastStatus, frame: CastStatus):
        if frame.state == PlaybackState.PLAYING:
            self._armed = True
            return
        if not (self._armed and previous.state in _ACTIVE_STATES
                and frame.state in _ENDED_STATES):
            return
        self._armed = False
        log.info("Item ended on %s", frame.device_id)
        if self.on_item_ended is None:
            return
        task = asyncio.get_running_loop().create_task(self.on_item_ended())
        self._callbacks.add(task)
        task.add_done_callback(self._callback_done)

    def _callback_done(self, task: asyncio.Task):
        self._callbacks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            log.warning("Queue advance failed: %s", task.exception())

    async def _poll_loop(self, device: Device):
        log.debug("Polling %s every %.1fs", device.name, self._settings.poll_interval)
        while self._device is device:
            try:
                await self.refresh()
            except CommandCancelledError:
                return
            except CastError as e:
                log.debug("Status poll failed: %s", e)
            except Exception as e:
                log.warning("Error in status poll: %s", e)
            await asyncio.sleep(self._settings.poll_interval)

    async def drain(self):
        """Wait for pending end-of-item callbacks (tests, shutdown)."""
        while self._callbacks:
            await asyncio.gather(*list(self._callbacks), return_exceptions=True)
