"""Unit tests for ReconnectSupervisor.

Covers request coalescing, backoff rounds, reconnected callbacks and clean
shutdown of the supervision task.
"""

import asyncio

import pytest

from conftest import wait_for_condition
from radio_deck.config import ResilienceConfig
from radio_deck.connection import ReconnectReason, ReconnectSupervisor, SupervisorState
from radio_deck.core import RadioConnectionError


class FakeConnector:
    """Connect callable that fails a configurable number of times."""

    def __init__(self, failures: int = 0, delay: float = 0.0):
        self.failures = failures
        self.delay = delay
        self.call_count = 0
        self.concurrent = 0
        self.max_concurrent = 0

    async def __call__(self) -> None:
        self.call_count += 1
        self.concurrent += 1
        self.max_concurrent = max(self.max_concurrent, self.concurrent)
        try:
            if self.delay > 0:
                await asyncio.sleep(self.delay)
            if self.call_count <= self.failures:
                raise RadioConnectionError("Simulated connection failure")
        finally:
            self.concurrent -= 1


def _resilience(**overrides) -> ResilienceConfig:
    values = dict(
        reconnect_initial_seconds=0.01,
        reconnect_max_seconds=0.05,
        reconnect_jitter_ratio=0.0,
        reconnect_max_attempts=3,
    )
    values.update(overrides)
    return ResilienceConfig(**values)


@pytest.fixture
def supervisor_setup():
    """Create a supervisor with a fake connector."""

    def _create(failures: int = 0, delay: float = 0.0, **overrides):
        connector = FakeConnector(failures=failures, delay=delay)
        supervisor = ReconnectSupervisor(
            connector, _resilience(**overrides), min_delay=0.01
        )
        return supervisor, connector

    return _create


@pytest.mark.asyncio
async def test_reconnect_reason_enum_values():
    assert ReconnectReason.CONNECTION_LOST.value == "connection_lost"
    assert ReconnectReason.INITIAL_CONNECT_FAILED.value == "initial_connect_failed"
    assert ReconnectReason.NOT_DISCOVERED.value == "not_discovered"


@pytest.mark.asyncio
async def test_request_ignored_until_started(supervisor_setup):
    supervisor, connector = supervisor_setup()

    supervisor.request_reconnect(ReconnectReason.CONNECTION_LOST)
    await asyncio.sleep(0.02)

    assert supervisor.state == SupervisorState.STOPPED
    assert connector.call_count == 0


@pytest.mark.asyncio
async def test_reconnect_invokes_callbacks(supervisor_setup):
    supervisor, connector = supervisor_setup()
    sync_calls = []
    async_done = asyncio.Event()

    async def on_reconnected_async():
        async_done.set()

    supervisor.register_reconnected_callback(lambda: sync_calls.append(True))
    supervisor.register_reconnected_callback(on_reconnected_async)
    supervisor.start()
    try:
        supervisor.request_reconnect(ReconnectReason.CONNECTION_LOST)
        await asyncio.wait_for(async_done.wait(), timeout=1.0)
    finally:
        await supervisor.stop()

    assert connector.call_count == 1
    assert sync_calls == [True]


@pytest.mark.asyncio
async def test_failing_callback_does_not_break_others(supervisor_setup):
    supervisor, _ = supervisor_setup()
    seen = []

    def broken():
        raise RuntimeError("boom")

    supervisor.register_reconnected_callback(broken)
    supervisor.register_reconnected_callback(lambda: seen.append("ok"))
    supervisor.start()
    try:
        supervisor.request_reconnect(ReconnectReason.CONNECTION_LOST)
        await wait_for_condition(lambda: seen == ["ok"])
    finally:
        await supervisor.stop()


@pytest.mark.asyncio
async def test_requests_are_coalesced(supervisor_setup):
    supervisor, connector = supervisor_setup(delay=0.05)
    supervisor.start()
    try:
        for _ in range(5):
            supervisor.request_reconnect(ReconnectReason.CONNECTION_LOST)
        await asyncio.sleep(0.2)
    finally:
        await supervisor.stop()

    assert connector.call_count == 1
    assert connector.max_concurrent == 1


@pytest.mark.asyncio
async def test_backoff_retries_until_success(supervisor_setup):
    supervisor, connector = supervisor_setup(failures=2)
    restored = asyncio.Event()
    supervisor.register_reconnected_callback(restored.set)
    supervisor.start()
    try:
        supervisor.request_reconnect(ReconnectReason.INITIAL_CONNECT_FAILED)
        await asyncio.wait_for(restored.wait(), timeout=1.0)
    finally:
        await supervisor.stop()

    assert connector.call_count == 3
    assert supervisor.state == SupervisorState.STOPPED


@pytest.mark.asyncio
async def test_exhausted_round_schedules_another(supervisor_setup):
    supervisor, connector = supervisor_setup(failures=4, reconnect_max_attempts=2)
    restored = asyncio.Event()
    supervisor.register_reconnected_callback(restored.set)
    supervisor.start()
    try:
        supervisor.request_reconnect(ReconnectReason.NOT_DISCOVERED)
        await wait_for_condition(lambda: supervisor.state == SupervisorState.WAITING)
        await asyncio.wait_for(restored.wait(), timeout=2.0)
    finally:
        await supervisor.stop()

    assert connector.call_count == 5


@pytest.mark.asyncio
async def test_stop_interrupts_backoff(supervisor_setup):
    supervisor, connector = supervisor_setup(
        failures=100, reconnect_initial_seconds=5.0, reconnect_max_seconds=5.0
    )
    supervisor.start()
    supervisor.request_reconnect(ReconnectReason.CONNECTION_LOST)
    await wait_for_condition(lambda: connector.call_count == 1)

    await asyncio.wait_for(supervisor.stop(), timeout=1.0)

    assert not supervisor.running
    assert supervisor.state == SupervisorState.STOPPED
    supervisor.request_reconnect(ReconnectReason.CONNECTION_LOST)
    await asyncio.sleep(0.02)
    assert connector.call_count == 1


@pytest.mark.asyncio
async def test_supervisor_can_restart(supervisor_setup):
    supervisor, connector = supervisor_setup()

    supervisor.start()
    await supervisor.stop()
    supervisor.start()
    try:
        assert supervisor.running
        supervisor.request_reconnect(ReconnectReason.CONNECTION_LOST)
        await wait_for_condition(lambda: connector.call_count == 1)
    finally:
        await supervisor.stop()
