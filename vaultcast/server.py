# VaultCast
# Copyright (C) 2026 VaultCast contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
HTTP + WebSocket front for a CastEngine.

Every engine command is an HTTP route under /cast/.  Every engine event is
pushed to WebSocket clients on /ws as {"type": <event>, "data": ...}; a new
client immediately receives the current status and queue.

Errors are reported as {"status": "error", "error": <kind>, "message": ...}
with an HTTP status chosen from the error type.
"""

import functools
import json
import logging

from aiohttp import web

from .engine import CastEngine
from .errors import (CastError, CommandCancelledError, CommandTimeoutError, ConnectionFailedError,
                     DeviceNotFoundError, InvalidHostError, NoActiveDeviceError, QueueError,
                     UnsupportedError)
from .events import ALL_EVENTS, QUEUE_UPDATED, STATUS_UPDATE
from .models import QueueItem

log = logging.getLogger(__name__)

ENGINE_KEY = web.AppKey("engine", CastEngine)

# Most specific first
_ERROR_STATUS = (
    (DeviceNotFoundError, 404),
    (InvalidHostError, 400),
    (NoActiveDeviceError, 409),
    (QueueError, 400),
    (UnsupportedError, 501),
    (CommandTimeoutError, 504),
    (CommandCancelledError, 409),
    (ConnectionFailedError, 502),
)


def _http_status(error: CastError) -> int:
    for cls, status in _ERROR_STATUS:
        if isinstance(error, cls):
            return status
    return 502


def _jsonable(value):
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


def ok(**fields) -> web.Response:
    return web.json_response({"status": "ok", **fields})


def _bad_request(message: str) -> web.Response:
    return web.json_response(
        {"status": "error", "error": "bad_request", "message": message}, status=400)


class BadRequest(Exception):
    """Malformed request body or parameter."""


async def _body(request: web.Request) -> dict:
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except (json.JSONDecodeError, ValueError):
        raise BadRequest("invalid json") from None
    if not isinstance(data, dict):
        raise BadRequest("expected a JSON object")
    return data


def _number(data: dict, key: str) -> float:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise BadRequest(f"missing or invalid '{key}'")
    return float(value)


def _index(data: dict, key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise BadRequest(f"missing or invalid '{key}'")
    return value


def _string(data: dict, key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise BadRequest(f"missing or invalid '{key}'")
    return value


def _items(data: dict) -> list:
    items = data.get("items")
    if not isinstance(items, list):
        raise BadRequest("missing or invalid 'items'")
    try:
        return [QueueItem.from_dict(i) for i in items]
    except (TypeError, ValueError, KeyError, AttributeError) as e:
        raise BadRequest(f"invalid queue item: {e}") from None


@web.middleware
async def error_middleware(request, handler):
    try:
        return await handler(request)
    except BadRequest as e:
        return _bad_request(str(e))
    except CastError as e:
        log.info("%s %s failed: %s", request.method, request.path, e)
        return web.json_response(
            {"status": "error", "error": e.kind, "message": str(e)},
            status=_http_status(e))
    except web.HTTPException:
        raise
    except Exception as e:
        log.exception("Unhandled error in %s %s", request.method, request.path)
        return web.json_response(
            {"status": "error", "error": "internal", "message": str(e)}, status=500)


@web.middleware
async def cors_middleware(request, handler):
    if request.method == "OPTIONS":
        resp = web.Response()
    else:
        resp = await handler(request)
    resp.headers["Access-Control-Allow-Origin"] = "*"
    resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return resp


class CastServer:
    """Routes and WebSocket push for one engine."""

    def __init__(self, engine: CastEngine):
        self.engine = engine
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._subscriptions = []

    # ── Event push ──

    def attach(self):
        for event in ALL_EVENTS:
            self._subscriptions.append(
                self.engine.subscribe(event, functools.partial(self._forward, event)))

    def detach(self):
        for sub in self._subscriptions:
            sub.close()
        self._subscriptions.clear()

    async def _forward(self, event: str, *args):
        data = _jsonable(args[0]) if args else None
        await self.broadcast(event, data)

    async def broadcast(self, event: str, data):
        """Push one event to all connected WebSocket clients."""
        if not self._ws_clients:
            return

        message = json.dumps({"type": event, "data": data})
        disconnected = set()
        for ws in self._ws_clients:
            try:
                await ws.send_str(message)
            except (ConnectionResetError, RuntimeError):
                disconnected.add(ws)

        self._ws_clients -= disconnected
        log.debug("Broadcast %s to %d clients", event, len(self._ws_clients))

    async def close_clients(self):
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()

    async def handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))

        try:
            await ws.send_json({"type": STATUS_UPDATE,
                                "data": self.engine.get_status().to_dict()})
            await ws.send_json({"type": QUEUE_UPDATED,
                                "data": self.engine.get_queue().to_dict()})

            # Push-only: incoming messages are ignored
            async for msg in ws:
                pass
        finally:
            self._ws_clients.discard(ws)
            log.info("WebSocket client disconnected (%d remaining)",
                     len(self._ws_clients))

        return ws

    # ── Discovery / connection ──

    async def handle_discovery_start(self, request):
        await self.engine.start_discovery()
        return ok(running=self.engine.discovery.running)

    async def handle_discovery_stop(self, request):
        data = await _body(request)
        await self.engine.stop_discovery(clear=bool(data.get("clear", False)))
        return ok(running=False)

    async def handle_devices(self, request):
        return ok(devices=[d.to_dict() for d in self.engine.get_devices()])

    async def handle_connect(self, request):
        data = await _body(request)
        device = await self.engine.connect(_string(data, "device_id"))
        return ok(connected=True, device=device.to_dict())

    async def handle_connect_manual(self, request):
        data = await _body(request)
        device = await self.engine.connect_manual(_string(data, "host"))
        return ok(connected=True, device=device.to_dict())

    async def handle_disconnect(self, request):
        await self.engine.disconnect()
        return ok()

    async def handle_active(self, request):
        device = self.engine.get_active_device()
        return ok(casting=self.engine.is_casting(),
                  device=device.to_dict() if device else None)

    async def handle_cast(self, request):
        data = await _body(request)
        device_id = _string(data, "device_id")
        item = _items({"items": [data.get("item")]})[0]
        start = _number(data, "start_position") if "start_position" in data else 0
        device = await self.engine.cast(device_id, item, start_position=start)
        return ok(device=device.to_dict())

    # ── Transport ──

    async def handle_status(self, request):
        return ok(**self.engine.get_status().to_dict())

    async def handle_play(self, request):
        await self.engine.play()
        return ok()

    async def handle_pause(self, request):
        await self.engine.pause()
        return ok()

    async def handle_stop(self, request):
        await self.engine.stop()
        return ok()

    async def handle_next(self, request):
        return ok(advanced=await self.engine.play_next())

    async def handle_previous(self, request):
        return ok(advanced=await self.engine.play_previous())

    async def handle_seek(self, request):
        data = await _body(request)
        return ok(position=await self.engine.seek(_number(data, "position")))

    async def handle_volume(self, request):
        data = await _body(request)
        return ok(volume=await self.engine.set_volume(_number(data, "volume")))

    # ── Queue ──

    async def handle_queue(self, request):
        return ok(**self.engine.get_queue().to_dict())

    async def handle_queue_set(self, request):
        data = await _body(request)
        state = await self.engine.set_queue(_items(data))
        return ok(**state.to_dict())

    async def handle_queue_add(self, request):
        data = await _body(request)
        state = await self.engine.add_to_queue(_items(data))
        return ok(**state.to_dict())

    async def handle_queue_clear(self, request):
        return ok(**(await self.engine.clear_queue()).to_dict())

    async def handle_queue_remove(self, request):
        data = await _body(request)
        state = await self.engine.remove_from_queue(_index(data, "index"))
        return ok(**state.to_dict())

    async def handle_queue_reorder(self, request):
        data = await _body(request)
        state = await self.engine.reorder_queue(_index(data, "from"), _index(data, "to"))
        return ok(**state.to_dict())

    async def handle_queue_play(self, request):
        data = await _body(request)
        await self.engine.play_at_index(_index(data, "index"))
        return ok(**self.engine.get_queue().to_dict())

    async def handle_queue_shuffle(self, request):
        data = await _body(request)
        enabled = data.get("enabled")
        if not isinstance(enabled, bool):
            raise BadRequest("missing or invalid 'enabled'")
        return ok(**(await self.engine.set_shuffle(enabled)).to_dict())

    async def handle_queue_repeat(self, request):
        data = await _body(request)
        state = await self.engine.set_repeat(_string(data, "mode"))
        return ok(**state.to_dict())

    def add_routes(self, app: web.Application):
        app.router.add_get("/ws", self.handle_ws)
        app.router.add_post("/cast/discovery/start", self.handle_discovery_start)
        app.router.add_post("/cast/discovery/stop", self.handle_discovery_stop)
        app.router.add_get("/cast/devices", self.handle_devices)
        app.router.add_post("/cast/connect", self.handle_connect)
        app.router.add_post("/cast/connect_manual", self.handle_connect_manual)
        app.router.add_post("/cast/disconnect", self.handle_disconnect)
        app.router.add_get("/cast/active", self.handle_active)
        app.router.add_post("/cast/cast", self.handle_cast)
        app.router.add_get("/cast/status", self.handle_status)
        app.router.add_post("/cast/play", self.handle_play)
        app.router.add_post("/cast/pause", self.handle_pause)
        app.router.add_post("/cast/stop", self.handle_stop)
        app.router.add_post("/cast/next", self.handle_next)
        app.router.add_post("/cast/previous", self.handle_previous)
        app.router.add_post("/cast/seek", self.handle_seek)
        app.router.add_post("/cast/volume", self.handle_volume)
        app.router.add_get("/cast/queue", self.handle_queue)
        app.router.add_post("/cast/queue/set", self.handle_queue_set)
        app.router.add_post("/cast/queue/add", self.handle_queue_add)
        app.router.add_post("/cast/queue/clear", self.handle_queue_clear)
        app.router.add_post("/cast/queue/remove", self.handle_queue_remove)
        app.router.add_post("/cast/queue/reorder", self.handle_queue_reorder)
        app.router.add_post("/cast/queue/play", self.handle_queue_play)
        app.router.add_post("/cast/queue/shuffle", self.handle_queue_shuffle)
        app.router.add_post("/cast/queue/repeat", self.handle_queue_repeat)


SERVER_KEY = web.AppKey("cast_server", CastServer)


# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------
async def on_startup(app: web.Application):
    app[SERVER_KEY].attach()
    log.info("Cast front ready")


async def on_cleanup(app: web.Application):
    server = app[SERVER_KEY]
    server.detach()
    await server.close_clients()
    await app[ENGINE_KEY].close()


def create_app(engine: CastEngine) -> web.Application:
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    server = CastServer(engine)
    app[ENGINE_KEY] = engine
    app[SERVER_KEY] = server
    server.add_routes(app)
    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app
