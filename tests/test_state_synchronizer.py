import asyncio
import threading

import pytest

from conftest import PushRecorder, wait_for_condition
from radio_deck.core import (
    APP_STATE,
    DATA_LIST,
    METER_UPDATE,
    SCREEN_CHANGE,
    DeviceState,
    MemorySlot,
    Mode,
    Screen,
)
from radio_deck.state import StateSynchronizer


@pytest.fixture
def synchronizer(recorder: PushRecorder) -> StateSynchronizer:
    sync = StateSynchronizer(push_interval=0.05)
    sync.subscribe(recorder)
    return sync


def test_snapshot_is_immutable(synchronizer: StateSynchronizer) -> None:
    snapshot = synchronizer.snapshot()

    with pytest.raises(AttributeError):
        snapshot.frequency_hz = 7_000_000  # type: ignore[misc]

    synchronizer.apply({"frequency_hz": 7_000_000})
    assert snapshot.frequency_hz == 14_200_000
    assert synchronizer.snapshot().frequency_hz == 7_000_000


def test_step_index_and_value_move_together(synchronizer: StateSynchronizer) -> None:
    assert synchronizer.snapshot().tuning_step_index == 2
    assert synchronizer.snapshot().tuning_step_hz == 100

    synchronizer.apply({"tuning_step_index": 3})

    state = synchronizer.snapshot()
    assert state.tuning_step_index == 3
    assert state.tuning_step_hz == 1000

    synchronizer.apply({"tuning_step_hz": 10})
    state = synchronizer.snapshot()
    assert (state.tuning_step_index, state.tuning_step_hz) == (1, 10)


def test_invalid_or_disagreeing_steps_are_rejected(synchronizer: StateSynchronizer) -> None:
    synchronizer.apply({"tuning_step_index": 9})
    synchronizer.apply({"tuning_step_hz": 250})
    synchronizer.apply({"tuning_step_index": 0, "tuning_step_hz": 1000})

    state = synchronizer.snapshot()
    assert (state.tuning_step_index, state.tuning_step_hz) == (2, 100)


def test_out_of_band_frequency_is_dropped(synchronizer: StateSynchronizer) -> None:
    synchronizer.apply({"frequency_hz": 900_000_000, "mode": "CW"})
    synchronizer.apply({"frequency_hz": -5})
    synchronizer.apply({"frequency_hz": "14074000"})

    state = synchronizer.snapshot()
    assert state.frequency_hz == 14_200_000
    assert state.mode == Mode.CW


def test_unknown_fields_and_values_are_dropped(synchronizer: StateSynchronizer) -> None:
    synchronizer.apply({"volume": 11, "mode": "WFM", "active_screen": "SETTINGS"})

    assert synchronizer.snapshot() == DeviceState()


def test_discrete_changes_push_immediately(
    synchronizer: StateSynchronizer, recorder: PushRecorder
) -> None:
    synchronizer.apply({"connected": True})
    synchronizer.apply({"mode": Mode.LSB})
    synchronizer.apply({"mode": "LSB"})

    pushes = recorder.of_type(APP_STATE)
    assert len(pushes) == 2
    assert pushes[0].payload["connected"] is True
    assert pushes[1].payload["mode"] == "LSB"


def test_screen_change_push(synchronizer: StateSynchronizer, recorder: PushRecorder) -> None:
    synchronizer.apply({"active_screen": "DSP"})

    assert [push.type for push in recorder.pushes] == [SCREEN_CHANGE]
    assert recorder.pushes[0].payload == {"screen": "DSP"}
    assert synchronizer.snapshot().active_screen == Screen.DSP


def test_memory_edit_pushes_data_list(
    synchronizer: StateSynchronizer, recorder: PushRecorder
) -> None:
    slots = [None] * 8
    slots[0] = {"frequency_hz": 7_074_000, "mode": "DIGU"}

    synchronizer.apply({"memory_slots": slots})

    assert synchronizer.snapshot().memory_slots[0] == MemorySlot(7_074_000, Mode.DIGU)
    pushes = recorder.of_type(DATA_LIST)
    assert len(pushes) == 1
    assert pushes[0].payload["list"] == "memory"
    assert pushes[0].payload["items"][0] == {"frequencyHz": 7_074_000, "mode": "DIGU"}
    assert pushes[0].payload["items"][1] is None


def test_malformed_memory_list_is_rejected(synchronizer: StateSynchronizer) -> None:
    synchronizer.apply({"memory_slots": [None] * 3})
    synchronizer.apply({"memory_slots": [{"frequency_hz": 1, "mode": "USB"}] + [None] * 7})

    assert synchronizer.snapshot().memory_slots == (None,) * 8


def test_continuous_fields_wait_for_flush(
    synchronizer: StateSynchronizer, recorder: PushRecorder
) -> None:
    synchronizer.apply({"frequency_hz": 14_201_000})
    synchronizer.apply({"frequency_hz": 14_202_000})
    synchronizer.apply({"s_meter_dbm": -73})

    assert recorder.pushes == []

    synchronizer.flush()

    assert [push.type for push in recorder.pushes] == [APP_STATE, METER_UPDATE]
    assert recorder.pushes[0].payload["frequencyHz"] == 14_202_000
    assert recorder.pushes[1].payload["sMeterDbm"] == -73.0

    synchronizer.flush()
    assert len(recorder.pushes) == 2


def test_discrete_push_carries_pending_frequency(
    synchronizer: StateSynchronizer, recorder: PushRecorder
) -> None:
    synchronizer.apply({"frequency_hz": 14_250_000})
    synchronizer.apply({"tx_active": True})
    synchronizer.flush()

    pushes = recorder.of_type(APP_STATE)
    assert len(pushes) == 1
    assert pushes[0].payload["frequencyHz"] == 14_250_000


def test_push_full_sends_every_view(
    synchronizer: StateSynchronizer, recorder: PushRecorder
) -> None:
    synchronizer.push_full()

    assert [push.type for push in recorder.pushes] == [APP_STATE, SCREEN_CHANGE, DATA_LIST]


def test_failing_listener_does_not_block_others(recorder: PushRecorder) -> None:
    sync = StateSynchronizer()

    def broken(push):
        raise RuntimeError("boom")

    sync.subscribe(broken)
    sync.subscribe(recorder)
    sync.apply({"connected": True})

    assert len(recorder.pushes) == 1


def test_unsubscribe_stops_delivery(recorder: PushRecorder) -> None:
    sync = StateSynchronizer()
    unsubscribe = sync.subscribe(recorder)

    unsubscribe()
    unsubscribe()
    sync.apply({"connected": True})

    assert recorder.pushes == []


def test_concurrent_apply_keeps_state_consistent() -> None:
    sync = StateSynchronizer()

    def worker(offset: int) -> None:
        for step in range(200):
            sync.apply({"frequency_hz": 14_000_000 + offset + step})
            sync.apply({"tuning_step_index": (offset + step) % 5})

    threads = [threading.Thread(target=worker, args=(n * 1000,)) for n in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    state = sync.snapshot()
    assert state.tuning_step_hz == (1, 10, 100, 1_000, 10_000)[state.tuning_step_index]


@pytest.mark.asyncio
async def test_tick_flushes_periodically(
    synchronizer: StateSynchronizer, recorder: PushRecorder
) -> None:
    synchronizer.start()
    try:
        assert synchronizer.running
        synchronizer.apply({"s_meter_dbm": -90.0})
        await wait_for_condition(lambda: recorder.of_type(METER_UPDATE))
    finally:
        await synchronizer.stop()

    assert not synchronizer.running
    synchronizer.apply({"s_meter_dbm": -80.0})
    await asyncio.sleep(0.15)
    assert len(recorder.of_type(METER_UPDATE)) == 1
