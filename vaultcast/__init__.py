"""
VaultCast — cast session and queue engine for network renderers.

    from vaultcast import CastEngine, HttpRendererBridge

    engine = CastEngine(HttpRendererBridge())
"""

from .engine import CastEngine
from .errors import CastError
from .models import CastStatus, Device, QueueItem, QueueState, RepeatMode
from .renderers import HttpRendererBridge, RendererService

__all__ = [
    "CastEngine",
    "CastError",
    "CastStatus",
    "Device",
    "HttpRendererBridge",
    "QueueItem",
    "QueueState",
    "RendererService",
    "RepeatMode",
]
