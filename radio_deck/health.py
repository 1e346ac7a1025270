"""Health reporting for the bridge components."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Tuple

from aiohttp import web

LOGGER = logging.getLogger(__name__)

HealthProbe = Callable[[], Tuple[bool, Optional[str]]]


@dataclass(slots=True)
class ComponentStatus:
    name: str
    healthy: bool
    detail: Optional[str] = None
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "healthy": self.healthy,
            "detail": self.detail,
            "updatedAt": self.updated_at.isoformat(timespec="seconds"),
        }


class HealthReporter:
    """Tracks component statuses and the bridge lifecycle state.

    Components are either pushed with :meth:`update` or pulled through a probe
    registered with :meth:`add_probe`; a probe is evaluated on every snapshot
    and overrides a pushed status of the same name.
    """

    _BRIDGE_KEY = "__bridge_state__"

    def __init__(self) -> None:
        self._status: Dict[str, ComponentStatus] = {}
        self._probes: Dict[str, HealthProbe] = {}
        self._lock = asyncio.Lock()

    async def update(
        self, name: str, healthy: bool, detail: Optional[str] = None
    ) -> None:
        async with self._lock:
            self._status[name] = ComponentStatus(
                name=name, healthy=healthy, detail=detail
            )

    def add_probe(self, name: str, probe: HealthProbe) -> None:
        self._probes[name] = probe

    def remove_probe(self, name: str) -> None:
        self._probes.pop(name, None)

    async def set_bridge_state(
        self, state: str, *, healthy: bool, detail: Optional[str] = None
    ) -> None:
        await self.update(self._BRIDGE_KEY, healthy, detail if detail is not None else state)

    async def snapshot(self) -> Dict[str, object]:
        async with self._lock:
            statuses = dict(self._status)

        for name, probe in list(self._probes.items()):
            try:
                healthy, detail = probe()
            except Exception as exc:
                LOGGER.debug("Health probe %s failed", name, exc_info=True)
                healthy, detail = False, f"probe failed: {exc}"
            statuses[name] = ComponentStatus(name=name, healthy=healthy, detail=detail)

        bridge = statuses.pop(self._BRIDGE_KEY, None)
        components = [status.as_dict() for status in statuses.values()]

        healthy_overall = all(item["healthy"] for item in components)
        if bridge is not None and not bridge.healthy:
            healthy_overall = False

        payload: Dict[str, object] = {
            "status": "ok" if healthy_overall else "degraded",
            "components": components,
        }
        if bridge is not None:
            payload["bridgeState"] = {
                "state": bridge.detail,
                "healthy": bridge.healthy,
                "updatedAt": bridge.updated_at.isoformat(timespec="seconds"),
            }
        return payload


class HealthServer:
    """Minimal HTTP server exposing `/healthz`."""

    def __init__(self, reporter: HealthReporter, host: str, port: int) -> None:
        self._reporter = reporter
        self._host = host
        self._port = port
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    async def start(self) -> None:
        app = web.Application()
        app.router.add_get("/healthz", self._handle_health)

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
            "Health endpoint listening on http://%s:%s/healthz", self._host, self._port
        )

    async def stop(self) -> None:
        with contextlib.suppress(Exception):
            if self._site is not None:
                await self._site.stop()
        if self._runner is not None:
            await self._runner.cleanup()
        self._site = None
        self._runner = None

    async def _handle_health(self, request: web.Request) -> web.Response:
        snapshot = await self._reporter.snapshot()
        status = 200 if snapshot["status"] == "ok" else 503
        return web.json_response(snapshot, status=status)
