# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Exception hierarchy for the cast engine.

Every failure the engine surfaces derives from CastError, so the HTTP front
(and any other presentation layer) can catch one type and report it.  None
of these are fatal: the engine leaves its state consistent before raising.
"""


class CastError(Exception):
    """Base exception for cast engine errors."""

    # Short machine-readable name used in JSON error responses
    kind = "cast_error"


class DiscoveryError(CastError):
    """The renderer network layer could not be reached for a scan."""

    kind = "discovery_error"


class ConnectionFailedError(CastError):
    """Device unreachable or could not be bound to the session."""

    kind = "connection_failed"


class DeviceNotFoundError(ConnectionFailedError):
    """Device id is not in the registry."""

    kind = "device_not_found"


class InvalidHostError(ConnectionFailedError):
    """Manually entered host is not a valid address."""

    kind = "invalid_host"


class NoActiveDeviceError(CastError):
    """A transport command was issued while no device is active."""

    kind = "no_active_device"

    def __init__(self, message: str = "No active device"):
        super().__init__(message)


class CommandError(CastError):
    """A transport command did not complete."""

    kind = "command_failed"


class CommandRejectedError(CommandError):
    """The renderer refused the command."""

    kind = "command_rejected"

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code


class CommandTimeoutError(CommandError):
    """The renderer did not acknowledge the command in time."""

    kind = "command_timeout"


class CommandCancelledError(CommandError):
    """The session the command targeted ended before it resolved."""

    kind = "command_cancelled"


class QueueError(CastError):
    """Invalid queue operation."""

    kind = "queue_error"


class QueueIndexError(QueueError, IndexError):
    """Queue index out of range."""

    kind = "queue_index"


class EmptyQueueError(QueueError):
    """Navigation requested on an empty queue."""

    kind = "queue_empty"

    def __init__(self, message: str = "Queue is empty"):
        super().__init__(message)


class UnsupportedError(CastError):
    """The renderer service lacks the capability for this operation."""

    kind = "unsupported"


class RendererError(CastError):
    """Raised by renderer backends when the device or bridge fails.

    *code* carries the renderer's own error code when it reports one
    (UPnP AVTransport codes such as 701 or 710).
    """

    kind = "renderer_error"

    def __init__(self, message: str, code: int | None = None):
        super().__init__(message)
        self.code = code
