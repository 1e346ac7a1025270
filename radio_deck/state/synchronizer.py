"""Canonical device state and the display push policy.

Every externally observable change to :class:`DeviceState` goes through
:meth:`StateSynchronizer.apply`. That is the single place deciding when the
display surface hears about a change:

- discrete events (connection, mode, TX, DSP toggles, tuning step) push an
  ``appState`` message immediately
- screen changes push ``screenChange`` and memory edits push ``dataList``
- continuously varying fields (frequency, meters) are marked dirty and flushed
  on a periodic tick so a busy VFO knob cannot flood the display link
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..core import (
    APP_STATE,
    DATA_LIST,
    METER_UPDATE,
    SCREEN_CHANGE,
    TUNING_STEPS,
    DeviceState,
    DisplayPush,
    MemorySlot,
    Mode,
    PushListener,
    Screen,
    frequency_in_band,
)
from ..core.models import MEMORY_SLOT_COUNT

LOGGER = logging.getLogger(__name__)

DISCRETE_FIELDS = frozenset(
    {
        "connected",
        "mode",
        "tx_active",
        "nb_enabled",
        "nr_enabled",
        "tuning_step_index",
        "tuning_step_hz",
    }
)
METER_FIELDS = frozenset({"s_meter_dbm", "power_meter_watts", "swr_ratio"})
KNOWN_FIELDS = frozenset(field.name for field in dataclasses.fields(DeviceState))


class StateSynchronizer:
    """Owns the single mutable copy of the device state."""

    def __init__(
        self,
        *,
        push_interval: float = 1.0,
        initial: Optional[DeviceState] = None,
    ) -> None:
        self._push_interval = push_interval
        self._state = initial or DeviceState()
        self._lock = threading.RLock()
        self._listeners: List[PushListener] = []
        self._frequency_dirty = False
        self._meters_dirty = False
        self._tick_task: Optional[asyncio.Task[None]] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def snapshot(self) -> DeviceState:
        with self._lock:
            return self._state

    def subscribe(self, listener: PushListener) -> Callable[[], None]:
        """Register a push listener and return a callable that removes it."""

        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                with contextlib.suppress(ValueError):
                    self._listeners.remove(listener)

        return _unsubscribe

    def apply(self, update: Mapping[str, Any]) -> None:
        """Validate and fold a partial update, pushing discrete changes at once."""

        pushes: List[DisplayPush] = []
        with self._lock:
            changes = self._validate(update)
            if not changes:
                return

            previous = self._state
            current = dataclasses.replace(previous, **changes)
            changed = {
                name
                for name in changes
                if getattr(previous, name) != getattr(current, name)
            }
            if not changed:
                return

            self._state = current

            if "frequency_hz" in changed:
                self._frequency_dirty = True
            if changed & METER_FIELDS:
                self._meters_dirty = True

            if changed & DISCRETE_FIELDS:
                # A full appState carries the frequency too.
                self._frequency_dirty = False
                pushes.append(DisplayPush(APP_STATE, current.as_payload()))
            if "active_screen" in changed:
                pushes.append(
                    DisplayPush(SCREEN_CHANGE, {"screen": current.active_screen.value})
                )
            if "memory_slots" in changed:
                pushes.append(_memory_list(current))

        self._deliver(pushes)

    def flush(self) -> None:
        """Push pending continuous-field changes. Called by the periodic tick."""

        pushes: List[DisplayPush] = []
        with self._lock:
            state = self._state
            if self._frequency_dirty:
                pushes.append(DisplayPush(APP_STATE, state.as_payload()))
                self._frequency_dirty = False
            if self._meters_dirty:
                pushes.append(DisplayPush(METER_UPDATE, state.meters_payload()))
                self._meters_dirty = False

        self._deliver(pushes)

    def push_full(self) -> None:
        """Push the complete state, e.g. after start or when a client asks for it."""

        with self._lock:
            state = self._state
            self._frequency_dirty = False
            self._meters_dirty = False

        self._deliver(
            [
                DisplayPush(APP_STATE, state.as_payload()),
                DisplayPush(SCREEN_CHANGE, {"screen": state.active_screen.value}),
                _memory_list(state),
            ]
        )

    def start(self) -> None:
        """Start the periodic push tick."""

        if self._tick_task is not None and not self._tick_task.done():
            return
        self._tick_task = asyncio.create_task(self._tick_loop())

    async def stop(self) -> None:
        """Cancel the periodic push tick."""

        if self._tick_task is None:
            return
        self._tick_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._tick_task
        self._tick_task = None

    @property
    def running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._push_interval)
            try:
                self.flush()
            except Exception:
                LOGGER.exception("Periodic state push failed")

    def _deliver(self, pushes: List[DisplayPush]) -> None:
        if not pushes:
            return
        with self._lock:
            listeners = list(self._listeners)
        for push in pushes:
            for listener in listeners:
                try:
                    listener(push)
                except Exception:
                    LOGGER.exception("State push listener failed for %s", push.type)

    def _validate(self, update: Mapping[str, Any]) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}

        for name, value in update.items():
            if name not in KNOWN_FIELDS:
                LOGGER.warning("Dropping unknown state field %r", name)
                continue

            if name == "frequency_hz":
                if (
                    isinstance(value, bool)
                    or not isinstance(value, int)
                    or not frequency_in_band(value)
                ):
                    LOGGER.warning("Rejected out-of-band frequency %r", value)
                    continue
                changes[name] = value
            elif name == "mode":
                try:
                    changes[name] = Mode(value)
                except ValueError:
                    LOGGER.warning("Rejected unknown mode %r", value)
            elif name == "active_screen":
                try:
                    changes[name] = Screen(value)
                except ValueError:
                    LOGGER.warning("Rejected unknown screen %r", value)
            elif name in ("tuning_step_index", "tuning_step_hz"):
                continue
            elif name == "memory_slots":
                slots = _coerce_memory_slots(value)
                if slots is None:
                    LOGGER.warning("Rejected malformed memory slot list %r", value)
                    continue
                changes[name] = slots
            elif name in METER_FIELDS:
                try:
                    changes[name] = float(value)
                except (TypeError, ValueError):
                    LOGGER.warning("Rejected non-numeric %s=%r", name, value)
            else:
                changes[name] = bool(value)

        step_changes = _resolve_tuning_step(update)
        if step_changes is not None:
            changes.update(step_changes)

        return changes


def _resolve_tuning_step(update: Mapping[str, Any]) -> Optional[Dict[str, int]]:
    """Derive an agreeing index/value pair from whichever one the update carries."""

    has_index = "tuning_step_index" in update
    has_hz = "tuning_step_hz" in update
    if not has_index and not has_hz:
        return None

    index: Optional[int] = None
    if has_index:
        raw_index = update["tuning_step_index"]
        if isinstance(raw_index, int) and 0 <= raw_index < len(TUNING_STEPS):
            index = raw_index
        else:
            LOGGER.warning("Rejected tuning step index %r", raw_index)
            return None

    if has_hz:
        raw_hz = update["tuning_step_hz"]
        if raw_hz not in TUNING_STEPS:
            LOGGER.warning("Rejected tuning step %r Hz", raw_hz)
            return None
        hz_index = TUNING_STEPS.index(raw_hz)
        if index is not None and index != hz_index:
            LOGGER.warning(
                "Rejected disagreeing tuning step index=%s hz=%s", index, raw_hz
            )
            return None
        index = hz_index

    assert index is not None
    return {"tuning_step_index": index, "tuning_step_hz": TUNING_STEPS[index]}


def _coerce_memory_slots(value: Any) -> Optional[tuple]:
    if not isinstance(value, (list, tuple)) or len(value) != MEMORY_SLOT_COUNT:
        return None

    slots = []
    for item in value:
        if item is None:
            slots.append(None)
            continue
        if isinstance(item, MemorySlot):
            slot = item
        elif isinstance(item, Mapping):
            try:
                slot = MemorySlot(
                    frequency_hz=int(item["frequency_hz"]), mode=Mode(item["mode"])
                )
            except (KeyError, TypeError, ValueError):
                return None
        else:
            return None
        if not frequency_in_band(slot.frequency_hz):
            return None
        slots.append(slot)
    return tuple(slots)


def _memory_list(state: DeviceState) -> DisplayPush:
    return DisplayPush(DATA_LIST, {"list": "memory", "items": state.memory_payload()})
