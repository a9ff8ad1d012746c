# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
TransportController — user transport intents to renderer commands.

Each call sends exactly one command to the active device and returns when
the device acknowledged it.  Failures are raised, never swallowed:

    NoActiveDeviceError     nothing is connected (raised before any I/O)
    CommandTimeoutError     no ack within ``command_timeout``
    CommandRejectedError    the device refused
    CommandCancelledError   the session ended while the command was in flight
    UnsupportedError        the renderer cannot do this at all

No call changes CastStatus optimistically except seek(), which goes
through the synchronizer's seek guard.
"""

import asyncio
import logging

from .connection import ConnectionManager
from .errors import (CastError, CommandCancelledError, CommandRejectedError, CommandTimeoutError,
                     RendererError, UnsupportedError)
from .models import EngineSettings, PlaybackState, QueueItem
from .renderers.base import (COMMAND_CAPABILITY, LOAD, PAUSE, PLAY, SEEK, STOP,
                             UPNP_SEEK_MODE_NOT_SUPPORTED, UPNP_TRANSITION_NOT_AVAILABLE,
                             VOLUME, RendererService)
from .status_sync import StatusSynchronizer

log = logging.getLogger(__name__)


class TransportController:
    def __init__(self, connection: ConnectionManager, renderer: RendererService,
                 synchronizer: StatusSynchronizer, settings: EngineSettings | None = None):
        self._connection = connection
        self._renderer = renderer
        self._sync = synchronizer
        self._settings = settings or EngineSettings()

    async def play(self):
        await self._send(PLAY, already=PlaybackState.PLAYING)

    async def pause(self):
        await self._send(PAUSE, already=PlaybackState.PAUSED)

    async def stop(self):
        await self._send(STOP)

    async def seek(self, seconds: float) -> float:
        """Seek to *seconds*, clamped to the item.  Returns the position sent."""
        self._connection.require_active()
        duration = self._sync.status.duration_seconds
        target = max(0.0, float(seconds))
        if duration > 0:
            target = min(target, duration)
        self._sync.begin_seek(target)
        try:
            await self._send(SEEK, position=target)
        except (CastError, asyncio.CancelledError):
            self._sync.cancel_seek()
            raise
        return target

    async def set_volume(self, level: float) -> float:
        level = max(0.0, min(1.0, float(level)))
        await self._send(VOLUME, level=level)
        return level

    async def load(self, item: QueueItem, start_position: float = 0, autoplay: bool = True):
        """Load *item* on the device and (by default) start it."""
        self._connection.require_active()
        self._sync.begin_load()
        args = {"path": item.path, "title": item.title, "autoplay": autoplay}
        if start_position and start_position > 0:
            args["start_position"] = float(start_position)
        await self._send(LOAD, **args)
        log.info("Loaded %s", item.title)

    async def _send(self, command: str, already: PlaybackState | None = None, **args):
        device, epoch = self._connection.require_active()
        capability = COMMAND_CAPABILITY.get(command)
        if capability and not self._renderer.supports(capability):
            raise UnsupportedError(f"{device.name} does not support {command}")

        future = asyncio.ensure_future(asyncio.wait_for(
            self._renderer.send(device, command, **args), self._settings.command_timeout))
        self._connection.track(future)
        try:
            await future
        except asyncio.CancelledError:
            if future.cancelled() and self._connection.epoch != epoch:
                raise CommandCancelledError(
                    f"{command} to {device.name} cancelled by disconnect") from None
            future.cancel()
            raise
        except asyncio.TimeoutError:
            raise CommandTimeoutError(
                f"{command} to {device.name} timed out after "
                f"{self._settings.command_timeout:.0f}s") from None
        except RendererError as e:
            if e.code == UPNP_SEEK_MODE_NOT_SUPPORTED:
                raise UnsupportedError(f"{device.name} does not support {command}") from e
            if (already is not None and e.code == UPNP_TRANSITION_NOT_AVAILABLE
                    and self._sync.status.state == already):
                log.debug("%s: %s already %s", command, device.name, already.value)
                return
            raise CommandRejectedError(f"{command} rejected by {device.name}: {e}",
                                       e.code) from e

        if self._connection.epoch != epoch:
            # Acked by a device that is no longer the session's device
            raise CommandCancelledError(f"{command} to {device.name} resolved after disconnect")
        log.debug("%s acknowledged by %s", command, device.name)
