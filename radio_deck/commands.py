"""Command layer turning action ids into radio commands and state updates."""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Sequence, Tuple, Union

from .action_names import ActionNames
from .core import (
    TUNING_STEPS,
    ActionDescriptor,
    KeyDescriptor,
    MemorySlot,
    Mode,
    Screen,
    StateSink,
    frequency_in_band,
)
from .core.models import MEMORY_SLOT_COUNT
from .protocol import hz_to_mhz

LOGGER = logging.getLogger(__name__)

SLICE = "0"

_MODE_CYCLE: Tuple[Mode, ...] = tuple(Mode)
_SLOT_OPTIONS = tuple(str(index) for index in range(1, MEMORY_SLOT_COUNT + 1))

_SCREEN_ACTIONS = {
    ActionNames.SHOW_VFO: Screen.VFO,
    ActionNames.SHOW_DSP: Screen.DSP,
    ActionNames.SHOW_MEMORY: Screen.MEMORY,
    ActionNames.SHOW_TX: Screen.TX,
    ActionNames.SHOW_POTA: Screen.POTA,
}


class CommandProcessingError(RuntimeError):
    """Raised when an action cannot be carried out."""

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        action_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.action_id = action_id


class RadioCommandClient(Protocol):
    """Minimal interface the commander needs from the command channel."""

    @property
    def is_connected(self) -> bool: ...

    async def send(self, verb: str, args: Union[str, Sequence[str]] = "") -> int: ...


ACTION_DESCRIPTORS: Tuple[ActionDescriptor, ...] = (
    ActionDescriptor(
        ActionNames.TUNE_UP,
        "Tune Up",
        "Raise the VFO frequency by the tuning step",
        "VFO",
        default_value="1",
    ),
    ActionDescriptor(
        ActionNames.TUNE_DOWN,
        "Tune Down",
        "Lower the VFO frequency by the tuning step",
        "VFO",
        default_value="1",
    ),
    ActionDescriptor(ActionNames.STEP_UP, "Step Up", "Larger tuning step", "VFO"),
    ActionDescriptor(ActionNames.STEP_DOWN, "Step Down", "Smaller tuning step", "VFO"),
    ActionDescriptor(
        ActionNames.SET_MODE,
        "Set Mode",
        "Select a demodulation mode",
        "VFO",
        value_options=tuple(mode.value for mode in Mode),
        default_value=Mode.USB.value,
    ),
    ActionDescriptor(ActionNames.NEXT_MODE, "Next Mode", "Cycle modes", "VFO"),
    ActionDescriptor(ActionNames.TOGGLE_NB, "Noise Blanker", "Toggle NB", "DSP"),
    ActionDescriptor(ActionNames.TOGGLE_NR, "Noise Reduction", "Toggle NR", "DSP"),
    ActionDescriptor(ActionNames.TOGGLE_TX, "MOX", "Toggle transmit", "TX"),
    ActionDescriptor(
        ActionNames.MEMORY_STORE,
        "Store Memory",
        "Store frequency and mode in a memory slot",
        "Memory",
        value_options=_SLOT_OPTIONS,
        default_value="1",
    ),
    ActionDescriptor(
        ActionNames.MEMORY_RECALL,
        "Recall Memory",
        "Tune to a memory slot",
        "Memory",
        value_options=_SLOT_OPTIONS,
        default_value="1",
    ),
    ActionDescriptor(
        ActionNames.SHOW_SCREEN,
        "Show Screen",
        "Switch the display screen",
        "Navigation",
        value_options=tuple(screen.value for screen in Screen),
        default_value=Screen.VFO.value,
    ),
    ActionDescriptor(ActionNames.SHOW_VFO, "VFO", "Show the VFO screen", "Navigation"),
    ActionDescriptor(ActionNames.SHOW_DSP, "DSP", "Show the DSP screen", "Navigation"),
    ActionDescriptor(
        ActionNames.SHOW_MEMORY, "Memory", "Show the memory screen", "Navigation"
    ),
    ActionDescriptor(ActionNames.SHOW_TX, "TX", "Show the TX screen", "Navigation"),
    ActionDescriptor(ActionNames.SHOW_POTA, "POTA", "Show the POTA screen", "Navigation"),
)


DEFAULT_KEYS: Tuple[KeyDescriptor, ...] = (
    KeyDescriptor("vfo_knob_left", "VFO knob counter-clockwise", "encoder_left"),
    KeyDescriptor("vfo_knob_right", "VFO knob clockwise", "encoder_right"),
    KeyDescriptor("vfo_knob_push", "VFO knob push", "encoder_press"),
    KeyDescriptor("ptt", "Push to talk", "hold"),
    KeyDescriptor("mode_key", "Mode key", "press"),
)


class RadioCommander:
    """Single command-issuing function behind every input source.

    Actions that affect the radio send a command first and only then apply
    the optimistic state; a send failure leaves the state untouched. Status
    lines echoed by the radio later reconcile anything the guess got wrong.
    """

    def __init__(self, channel: RadioCommandClient, state: StateSink) -> None:
        self._channel = channel
        self._state = state

    async def execute(self, action_id: str, value: Optional[str] = None) -> None:
        """Execute an action.

        Raises:
            CommandProcessingError: If the action is unknown or its value invalid.
            RadioConnectionError: If the radio is unreachable.
        """
        LOGGER.debug("[ActionDispatch] %s value=%r", action_id, value)

        if action_id in (ActionNames.TUNE_UP, ActionNames.TUNE_DOWN):
            direction = 1 if action_id == ActionNames.TUNE_UP else -1
            await self._tune_by_steps(direction * _parse_ticks(action_id, value))
            return

        if action_id == ActionNames.STEP_UP:
            self._shift_step(1)
            return
        if action_id == ActionNames.STEP_DOWN:
            self._shift_step(-1)
            return

        if action_id == ActionNames.SET_MODE:
            await self._set_mode(_parse_mode(action_id, value))
            return
        if action_id == ActionNames.NEXT_MODE:
            current = self._state.snapshot().mode
            index = (_MODE_CYCLE.index(current) + 1) % len(_MODE_CYCLE)
            await self._set_mode(_MODE_CYCLE[index])
            return

        if action_id == ActionNames.TOGGLE_NB:
            enabled = not self._state.snapshot().nb_enabled
            await self._channel.send("slice set", f"{SLICE} nb={int(enabled)}")
            self._state.apply({"nb_enabled": enabled})
            return
        if action_id == ActionNames.TOGGLE_NR:
            enabled = not self._state.snapshot().nr_enabled
            await self._channel.send("slice set", f"{SLICE} nr={int(enabled)}")
            self._state.apply({"nr_enabled": enabled})
            return
        if action_id == ActionNames.TOGGLE_TX:
            active = not self._state.snapshot().tx_active
            await self._channel.send("xmit", str(int(active)))
            self._state.apply({"tx_active": active})
            return

        if action_id == ActionNames.MEMORY_STORE:
            self._store_memory(_parse_slot(action_id, value))
            return
        if action_id == ActionNames.MEMORY_RECALL:
            await self._recall_memory(_parse_slot(action_id, value))
            return

        if action_id == ActionNames.SHOW_SCREEN:
            self._state.apply({"active_screen": _parse_screen(action_id, value)})
            return
        if action_id in _SCREEN_ACTIONS:
            self._state.apply({"active_screen": _SCREEN_ACTIONS[action_id]})
            return

        raise CommandProcessingError(
            f"Unknown action: {action_id}", code="unsupported_action", action_id=action_id
        )

    async def _tune_by_steps(self, steps: int) -> None:
        snapshot = self._state.snapshot()
        target = snapshot.frequency_hz + steps * snapshot.tuning_step_hz
        await self._tune(target)

    async def _tune(self, frequency_hz: int) -> None:
        if not frequency_in_band(frequency_hz):
            raise CommandProcessingError(
                f"Frequency {frequency_hz} Hz is outside the device bands",
                code="out_of_band",
            )
        await self._channel.send("slice tune", f"{SLICE} {hz_to_mhz(frequency_hz)}")
        self._state.apply({"frequency_hz": frequency_hz})

    async def _set_mode(self, mode: Mode) -> None:
        await self._channel.send("slice set", f"{SLICE} mode={mode.value}")
        self._state.apply({"mode": mode})

    def _shift_step(self, delta: int) -> None:
        current = self._state.snapshot().tuning_step_index
        index = max(0, min(len(TUNING_STEPS) - 1, current + delta))
        if index == current:
            return
        self._state.apply({"tuning_step_index": index})

    def _store_memory(self, slot: int) -> None:
        snapshot = self._state.snapshot()
        slots = list(snapshot.memory_slots)
        slots[slot] = MemorySlot(frequency_hz=snapshot.frequency_hz, mode=snapshot.mode)
        self._state.apply({"memory_slots": tuple(slots)})
        LOGGER.info("Stored %d Hz %s in memory %d", snapshot.frequency_hz, snapshot.mode.value, slot + 1)

    async def _recall_memory(self, slot: int) -> None:
        stored = self._state.snapshot().memory_slots[slot]
        if stored is None:
            raise CommandProcessingError(
                f"Memory slot {slot + 1} is empty",
                code="empty_slot",
                action_id=ActionNames.MEMORY_RECALL,
            )
        await self._tune(stored.frequency_hz)
        await self._set_mode(stored.mode)


def _parse_ticks(action_id: str, value: Optional[str]) -> int:
    if value in (None, ""):
        return 1
    try:
        ticks = int(value)
    except (TypeError, ValueError) as exc:
        raise CommandProcessingError(
            f"Invalid tick count {value!r}", code="invalid_value", action_id=action_id
        ) from exc
    if ticks < 1:
        raise CommandProcessingError(
            f"Tick count must be positive, got {ticks}",
            code="invalid_value",
            action_id=action_id,
        )
    return ticks


def _parse_mode(action_id: str, value: Optional[str]) -> Mode:
    try:
        return Mode(str(value).upper())
    except ValueError as exc:
        raise CommandProcessingError(
            f"Unknown mode {value!r}", code="invalid_value", action_id=action_id
        ) from exc


def _parse_screen(action_id: str, value: Optional[str]) -> Screen:
    try:
        return Screen(str(value).upper())
    except ValueError as exc:
        raise CommandProcessingError(
            f"Unknown screen {value!r}", code="invalid_value", action_id=action_id
        ) from exc


def _parse_slot(action_id: str, value: Optional[str]) -> int:
    if str(value) not in _SLOT_OPTIONS:
        raise CommandProcessingError(
            f"Memory slot must be 1-{MEMORY_SLOT_COUNT}, got {value!r}",
            code="invalid_value",
            action_id=action_id,
        )
    return int(str(value)) - 1
