"""Reconnection supervision for the radio command channel.

The command channel never retries on its own. When it drops, or when the
bridge starts without reaching the radio, the lifecycle asks this supervisor
to reconnect; requests are coalesced so only one attempt loop runs at a time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable, List, Optional, Union

if TYPE_CHECKING:
    from .config import ResilienceConfig

LOGGER = logging.getLogger(__name__)

ConnectCallable = Callable[[], Awaitable[None]]
ReconnectedCallback = Callable[[], Union[Awaitable[None], None]]


class ReconnectReason(str, Enum):
    """Reason for requesting a reconnection."""

    CONNECTION_LOST = "connection_lost"
    """The radio closed the connection or a read/write failed."""

    INITIAL_CONNECT_FAILED = "initial_connect_failed"
    """The radio could not be reached while the bridge was starting."""

    NOT_DISCOVERED = "not_discovered"
    """No radio announced itself within the discovery timeout."""


class SupervisorState(str, Enum):
    IDLE = "idle"
    RECONNECTING = "reconnecting"
    WAITING = "waiting"
    STOPPED = "stopped"


class ReconnectSupervisor:
    """Serializes reconnect attempts with exponential backoff and jitter.

    ``connect`` resolves the radio address and opens the channel; it raises on
    failure. After a successful attempt every reconnected callback runs, in
    registration order. When all attempts of a round fail the supervisor waits
    ``reconnect_max_seconds`` and starts another round.
    """

    def __init__(
        self,
        connect: ConnectCallable,
        resilience: ResilienceConfig,
        *,
        min_delay: float = 0.05,
    ) -> None:
        self._connect = connect
        self._resilience = resilience
        self._min_delay = min_delay

        self._state = SupervisorState.STOPPED
        self._reconnect_lock = asyncio.Lock()
        self._reconnect_event = asyncio.Event()
        self._stop_event = asyncio.Event()
        self._pending_reason: Optional[ReconnectReason] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._reconnected_callbacks: List[ReconnectedCallback] = []
        self.attempts = 0

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def register_reconnected_callback(self, callback: ReconnectedCallback) -> None:
        self._reconnected_callbacks.append(callback)

    def request_reconnect(self, reason: ReconnectReason) -> None:
        """Ask for a reconnect. Safe to call repeatedly; requests coalesce."""

        if self._stop_event.is_set() or self._task is None:
            LOGGER.debug("Ignoring reconnect request (%s): supervisor stopped", reason.value)
            return

        if self._pending_reason is None:
            LOGGER.debug("Reconnect requested: %s", reason.value)
            self._pending_reason = reason
        self._reconnect_event.set()

    def start(self) -> None:
        if self.running:
            LOGGER.warning("Reconnect supervisor already running")
            return

        self._stop_event.clear()
        self._reconnect_event.clear()
        self._pending_reason = None
        self._state = SupervisorState.IDLE
        self._task = asyncio.create_task(self._supervision_loop())

    async def stop(self) -> None:
        self._stop_event.set()
        self._reconnect_event.set()

        task = self._task
        self._task = None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._pending_reason = None
        self._state = SupervisorState.STOPPED

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _supervision_loop(self) -> None:
        while not self._stop_event.is_set():
            await self._reconnect_event.wait()
            self._reconnect_event.clear()

            if self._stop_event.is_set():
                break

            async with self._reconnect_lock:
                reason = self._pending_reason
                self._pending_reason = None
                if reason is None:
                    continue
                await self._execute_reconnect(reason)

    async def _execute_reconnect(self, reason: ReconnectReason) -> None:
        LOGGER.info("Reconnecting to radio (reason=%s)", reason.value)
        self._state = SupervisorState.RECONNECTING

        if not await self._connect_with_backoff():
            if self._stop_event.is_set():
                return
            self._state = SupervisorState.WAITING
            retry_in = max(self._min_delay, self._resilience.reconnect_max_seconds)
            LOGGER.error(
                "Failed to reconnect after %d attempts; next round in %.1fs",
                self._resilience.reconnect_max_attempts,
                retry_in,
            )
            if not await self._sleep(retry_in):
                self._pending_reason = reason
                self._reconnect_event.set()
            return

        self._state = SupervisorState.IDLE
        for callback in self._reconnected_callbacks:
            try:
                result = callback()
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                LOGGER.exception("Reconnected callback failed")

    async def _connect_with_backoff(self) -> bool:
        delay = max(self._min_delay, self._resilience.reconnect_initial_seconds)
        max_delay = max(delay, self._resilience.reconnect_max_seconds)
        jitter_ratio = max(0.0, min(1.0, self._resilience.reconnect_jitter_ratio))
        max_attempts = max(1, self._resilience.reconnect_max_attempts)

        attempt = 0
        while not self._stop_event.is_set() and attempt < max_attempts:
            attempt += 1
            self.attempts += 1

            try:
                LOGGER.debug("Radio connection attempt %d", attempt)
                await self._connect()
                LOGGER.info("Radio connection restored on attempt %d", attempt)
                return True
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if attempt >= max_attempts:
                    LOGGER.warning("Connection attempt %d failed: %s", attempt, exc)
                    break
                LOGGER.warning(
                    "Connection attempt %d failed: %s, retrying in %.1fs",
                    attempt,
                    exc,
                    delay,
                )

            sleep_for = delay
            if jitter_ratio > 0.0:
                jitter = delay * jitter_ratio
                sleep_for = random.uniform(max(self._min_delay, delay - jitter), delay + jitter)

            if await self._sleep(sleep_for):
                break

            delay = min(delay * 2, max_delay)

        return False

    async def _sleep(self, seconds: float) -> bool:
        """Wait ``seconds``; returns ``True`` if stop was requested meanwhile."""

        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False
