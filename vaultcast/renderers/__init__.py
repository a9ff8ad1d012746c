"""
Renderers — backends that reach the actual playback devices.

A renderer does NOT hold session state.  It forwards commands to a device
and reports what the device says; the cast engine decides what those
reports mean for the queue and the UI.

Current renderers:
  base.py  — RendererService interface, command and capability names
  http.py  — HttpRendererBridge, JSON/HTTP client for a renderer bridge
"""

from .base import RendererService
from .http import HttpRendererBridge

__all__ = ["HttpRendererBridge", "RendererService"]
