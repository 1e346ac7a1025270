from typing import List, Tuple

import pytest

from radio_deck.action_names import ActionNames
from radio_deck.commands import CommandProcessingError, RadioCommander
from radio_deck.core import DeviceState, MemorySlot, Mode, RadioConnectionError, Screen
from radio_deck.state import StateSynchronizer


class FakeChannel:
    """Records sent commands; refuses them while disconnected."""

    def __init__(self, connected: bool = True) -> None:
        self.connected = connected
        self.sent: List[Tuple[str, str]] = []

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def send(self, verb: str, args: str = "") -> int:
        if not self.connected:
            raise RadioConnectionError(f"Cannot send {verb!r}: channel is disconnected")
        self.sent.append((verb, args))
        return len(self.sent)


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def state() -> StateSynchronizer:
    return StateSynchronizer()


@pytest.fixture
def commander(channel: FakeChannel, state: StateSynchronizer) -> RadioCommander:
    return RadioCommander(channel, state)


@pytest.mark.asyncio
async def test_step_up_moves_index_and_value_together(commander, state, channel) -> None:
    await commander.execute(ActionNames.STEP_UP)

    snapshot = state.snapshot()
    assert snapshot.tuning_step_index == 3
    assert snapshot.tuning_step_hz == 1000
    assert channel.sent == []


@pytest.mark.asyncio
async def test_step_changes_clamp_at_ends(commander, state) -> None:
    for _ in range(10):
        await commander.execute(ActionNames.STEP_UP)
    assert state.snapshot().tuning_step_hz == 10_000

    for _ in range(10):
        await commander.execute(ActionNames.STEP_DOWN)
    assert state.snapshot().tuning_step_hz == 1


@pytest.mark.asyncio
async def test_tune_sends_mhz_and_applies_frequency(commander, state, channel) -> None:
    await commander.execute(ActionNames.TUNE_UP, "3")
    await commander.execute(ActionNames.TUNE_DOWN)

    assert channel.sent == [
        ("slice tune", "0 14.200300"),
        ("slice tune", "0 14.200200"),
    ]
    assert state.snapshot().frequency_hz == 14_200_200


@pytest.mark.asyncio
async def test_tune_outside_band_is_rejected(channel) -> None:
    state = StateSynchronizer(
        initial=DeviceState(
            frequency_hz=30_050, tuning_step_index=4, tuning_step_hz=10_000
        )
    )
    commander = RadioCommander(channel, state)

    with pytest.raises(CommandProcessingError) as excinfo:
        await commander.execute(ActionNames.TUNE_DOWN)

    assert excinfo.value.code == "out_of_band"
    assert channel.sent == []
    assert state.snapshot().frequency_hz == 30_050


@pytest.mark.asyncio
async def test_invalid_tick_count(commander) -> None:
    for value in ("zero", "0", "-2"):
        with pytest.raises(CommandProcessingError):
            await commander.execute(ActionNames.TUNE_UP, value)


@pytest.mark.asyncio
async def test_mode_selection_and_cycle(commander, state, channel) -> None:
    await commander.execute(ActionNames.SET_MODE, "cw")
    assert state.snapshot().mode == Mode.CW

    await commander.execute(ActionNames.NEXT_MODE)
    assert state.snapshot().mode == Mode.AM

    state.apply({"mode": "RTTY"})
    await commander.execute(ActionNames.NEXT_MODE)
    assert state.snapshot().mode == Mode.USB

    assert channel.sent == [
        ("slice set", "0 mode=CW"),
        ("slice set", "0 mode=AM"),
        ("slice set", "0 mode=USB"),
    ]

    with pytest.raises(CommandProcessingError):
        await commander.execute(ActionNames.SET_MODE, "WFM")


@pytest.mark.asyncio
async def test_toggles_send_and_apply(commander, state, channel) -> None:
    await commander.execute(ActionNames.TOGGLE_NB)
    await commander.execute(ActionNames.TOGGLE_NR)
    await commander.execute(ActionNames.TOGGLE_TX)
    await commander.execute(ActionNames.TOGGLE_TX)

    assert channel.sent == [
        ("slice set", "0 nb=1"),
        ("slice set", "0 nr=1"),
        ("xmit", "1"),
        ("xmit", "0"),
    ]
    snapshot = state.snapshot()
    assert snapshot.nb_enabled and snapshot.nr_enabled
    assert snapshot.tx_active is False


@pytest.mark.asyncio
async def test_disconnected_send_leaves_state_untouched(state) -> None:
    channel = FakeChannel(connected=False)
    commander = RadioCommander(channel, state)

    with pytest.raises(RadioConnectionError):
        await commander.execute(ActionNames.TOGGLE_TX)
    with pytest.raises(RadioConnectionError):
        await commander.execute(ActionNames.TUNE_UP)

    assert state.snapshot() == DeviceState()
    assert channel.sent == []


@pytest.mark.asyncio
async def test_memory_store_and_recall(commander, state, channel) -> None:
    state.apply({"frequency_hz": 7_074_000, "mode": "DIGU"})
    await commander.execute(ActionNames.MEMORY_STORE, "3")

    assert state.snapshot().memory_slots[2] == MemorySlot(7_074_000, Mode.DIGU)
    assert channel.sent == []

    state.apply({"frequency_hz": 14_000_000, "mode": "CW"})
    await commander.execute(ActionNames.MEMORY_RECALL, "3")

    assert channel.sent == [("slice tune", "0 7.074000"), ("slice set", "0 mode=DIGU")]
    assert state.snapshot().frequency_hz == 7_074_000
    assert state.snapshot().mode == Mode.DIGU


@pytest.mark.asyncio
async def test_memory_slot_validation(commander) -> None:
    with pytest.raises(CommandProcessingError) as excinfo:
        await commander.execute(ActionNames.MEMORY_RECALL, "1")
    assert excinfo.value.code == "empty_slot"

    for value in (None, "0", "9", "two"):
        with pytest.raises(CommandProcessingError):
            await commander.execute(ActionNames.MEMORY_STORE, value)


@pytest.mark.asyncio
async def test_screen_actions_are_local(commander, state, channel) -> None:
    await commander.execute(ActionNames.SHOW_POTA)
    assert state.snapshot().active_screen == Screen.POTA

    await commander.execute(ActionNames.SHOW_SCREEN, "memory")
    assert state.snapshot().active_screen == Screen.MEMORY

    with pytest.raises(CommandProcessingError):
        await commander.execute(ActionNames.SHOW_SCREEN, "settings")
    assert channel.sent == []


@pytest.mark.asyncio
async def test_unknown_action(commander) -> None:
    with pytest.raises(CommandProcessingError) as excinfo:
        await commander.execute("launch_rocket")

    assert excinfo.value.code == "unsupported_action"
