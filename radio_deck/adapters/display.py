"""WebSocket link to the display surface."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from typing import Any, Dict, List, Optional

from aiohttp import WSMsgType, web

from ..core import DisplayPush, EventHandler

LOGGER = logging.getLogger(__name__)

CLIENT_CONNECTED = "clientConnected"
GET_STATE = "getState"

_CLIENT_QUEUE_SIZE = 256


class DisplayServer:
    """Serves ``/ws`` for the display client.

    Outbound pushes are ``{"type": ..., "payload": ...}`` JSON objects fanned out
    to every connected client through a bounded per-client queue. Inbound
    messages use the same envelope and are routed by ``type`` to the handlers
    registered with :meth:`add_listener`.

    Listeners belong to this object, not to the running server, so they survive
    ``stop()``/``start()`` cycles. Registering the same handler twice means it
    runs twice per event; callers guard against that.
    """

    def __init__(self, host: str, port: int) -> None:
        self._host = host
        self._port = port
        self._listeners: Dict[str, List[EventHandler]] = {}
        self._clients: Dict[web.WebSocketResponse, asyncio.Queue[Dict[str, Any]]] = {}
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    # ------------------------------------------------------------------
    # Listener registry
    # ------------------------------------------------------------------
    def add_listener(self, event_type: str, handler: EventHandler) -> None:
        self._listeners.setdefault(event_type, []).append(handler)

    def listener_count(self, event_type: Optional[str] = None) -> int:
        if event_type is not None:
            return len(self._listeners.get(event_type, []))
        return sum(len(handlers) for handlers in self._listeners.values())

    async def dispatch(self, event_type: str, payload: Any = None) -> int:
        """Run every handler for ``event_type``; returns how many ran."""

        handlers = list(self._listeners.get(event_type, []))
        if not handlers:
            LOGGER.debug("No handler for display event %r", event_type)
            return 0

        for handler in handlers:
            try:
                result = handler(payload)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                LOGGER.exception("Display event handler failed for %r", event_type)
        return len(handlers)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    @property
    def client_count(self) -> int:
        return len(self._clients)

    def publish(self, push: DisplayPush) -> None:
        message = push.as_dict()
        for ws, queue in list(self._clients.items()):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                LOGGER.warning("Display client backlog full; dropping %s push", push.type)

    # ------------------------------------------------------------------
    # Server lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._runner is not None

    @property
    def bound_port(self) -> Optional[int]:
        if self._runner is None:
            return None
        for address in self._runner.addresses:
            if isinstance(address, tuple) and len(address) >= 2:
                return address[1]
        return None

    async def start(self) -> None:
        if self._runner is not None:
            return

        app = web.Application()
        app.router.add_get("/ws", self._handle_ws)

        runner = web.AppRunner(app)
        await runner.setup()
        site = web.TCPSite(runner, self._host, self._port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise

        self._runner = runner
        self._site = site
        LOGGER.info(
            "Display endpoint listening on ws://%s:%s/ws", self._host, self.bound_port
        )

    async def stop(self) -> None:
        for ws in list(self._clients):
            with contextlib.suppress(Exception):
                await ws.close()
        self._clients.clear()

        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse(heartbeat=30.0)
        await ws.prepare(request)

        queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue(maxsize=_CLIENT_QUEUE_SIZE)
        self._clients[ws] = queue
        sender = asyncio.create_task(self._send_loop(ws, queue))
        LOGGER.info("Display client connected from %s", request.remote)

        try:
            await self.dispatch(CLIENT_CONNECTED, None)
            async for message in ws:
                if message.type == WSMsgType.TEXT:
                    await self._handle_text(message.data)
                elif message.type == WSMsgType.ERROR:
                    LOGGER.warning("Display websocket error: %s", ws.exception())
                    break
        finally:
            self._clients.pop(ws, None)
            sender.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sender
            LOGGER.info("Display client disconnected")

        return ws

    async def _send_loop(
        self, ws: web.WebSocketResponse, queue: asyncio.Queue[Dict[str, Any]]
    ) -> None:
        while True:
            message = await queue.get()
            if ws.closed:
                return
            try:
                await ws.send_json(message)
            except (ConnectionError, RuntimeError) as exc:
                LOGGER.debug("Failed to push to display client: %s", exc)
                return

    async def _handle_text(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            LOGGER.debug("Discarding non-JSON display message")
            return

        if not isinstance(message, dict) or not isinstance(message.get("type"), str):
            LOGGER.debug("Discarding display message without a type: %r", message)
            return

        await self.dispatch(message["type"], message.get("payload"))
