# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
RendererService — the boundary between the cast engine and whatever actually
speaks DLNA/UPnP/Chromecast to the devices.

Subclass contract:

    class MyRenderer(RendererService):
        name = "my-bridge"
        capabilities = frozenset({"discovery", "manual", "seek", "volume"})

        async def ready(self) -> None: ...              # network layer reachable?
        async def scan(self, duration): yield {...}     # device descriptions
        async def probe(self, host) -> dict: ...        # describe one host
        async def send(self, device, command, **args) -> None: ...
        async def fetch_status(self, device) -> dict: ...

Every method signals failure by raising RendererError (with the device's
error code when there is one).  Timeouts are applied by the engine, so
implementations may block as long as the underlying call does.

Commands sent through send():
    load   path, title, start_position, autoplay
    play / pause / stop
    seek   position
    volume level
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator

from ..models import Device

# Command names
LOAD = "load"
PLAY = "play"
PAUSE = "pause"
STOP = "stop"
SEEK = "seek"
VOLUME = "volume"

COMMANDS = (LOAD, PLAY, PAUSE, STOP, SEEK, VOLUME)

# Capability names
CAP_DISCOVERY = "discovery"
CAP_MANUAL = "manual"
CAP_SEEK = "seek"
CAP_VOLUME = "volume"

# Which capability a command needs (commands not listed are always available)
COMMAND_CAPABILITY = {
    SEEK: CAP_SEEK,
    VOLUME: CAP_VOLUME,
}

# UPnP AVTransport error codes the engine interprets
UPNP_TRANSITION_NOT_AVAILABLE = 701
UPNP_SEEK_MODE_NOT_SUPPORTED = 710


class RendererService(ABC):
    """Interface every renderer backend must implement."""

    name: str = ""
    capabilities: frozenset = frozenset({CAP_DISCOVERY, CAP_MANUAL, CAP_SEEK, CAP_VOLUME})

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    @abstractmethod
    async def ready(self) -> None:
        """Raise RendererError if the network layer cannot be reached."""

    @abstractmethod
    def scan(self, duration: float) -> AsyncIterator[dict]:
        """Async-iterate device descriptions seen within *duration* seconds.

        A description is a dict with at least ``host`` and ``name``; ``id``,
        ``kind`` and ``status`` are optional.  The same device may be
        yielded more than once.
        """

    @abstractmethod
    async def probe(self, host: str) -> dict:
        """Describe the renderer at *host*, or raise RendererError."""

    @abstractmethod
    async def send(self, device: Device, command: str, **args) -> None:
        """Send one transport command and wait for the device's ack."""

    @abstractmethod
    async def fetch_status(self, device: Device) -> dict:
        """Return one raw status frame for *device*."""

    async def close(self) -> None:
        """Release sessions/sockets.  Optional."""
