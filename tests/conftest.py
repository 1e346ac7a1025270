import asyncio
from typing import Any, Dict, List, Mapping, Optional

import pytest
import pytest_asyncio

from radio_deck.core import DeviceState, DisplayPush


class RecordingSink:
    """State sink that records every update and folds known fields."""

    def __init__(self, initial: Optional[DeviceState] = None) -> None:
        self.updates: List[Dict[str, Any]] = []
        self._state = initial or DeviceState()

    def apply(self, update: Mapping[str, Any]) -> None:
        self.updates.append(dict(update))

    def snapshot(self) -> DeviceState:
        return self._state

    def count(self, field: str, value: Any) -> int:
        return sum(1 for update in self.updates if update.get(field) == value)


class FakeRadio:
    """Loopback TCP server speaking the radio's line protocol."""

    def __init__(self) -> None:
        self.lines: List[str] = []
        self.connections = 0
        self._server: Optional[asyncio.AbstractServer] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._line_event = asyncio.Event()
        self._client_event = asyncio.Event()
        self.port = 0

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]

    async def stop(self) -> None:
        await self.drop_client()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def _handle(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self.connections += 1
        self._writer = writer
        self._client_event.set()
        writer.write(b"V1.4.0.0\nH2A6F1C3B\n")
        await writer.drain()
        try:
            while True:
                raw = await reader.readline()
                if not raw:
                    break
                self.lines.append(raw.decode("utf-8").rstrip("\r\n"))
                self._line_event.set()
        except ConnectionError:
            pass
        finally:
            writer.close()

    async def wait_client(self, timeout: float = 2.0) -> None:
        await asyncio.wait_for(self._client_event.wait(), timeout)

    async def wait_lines(self, count: int, timeout: float = 2.0) -> List[str]:
        async def _wait() -> None:
            while len(self.lines) < count:
                self._line_event.clear()
                await self._line_event.wait()

        await asyncio.wait_for(_wait(), timeout)
        return list(self.lines)

    async def send_raw(self, data: bytes) -> None:
        assert self._writer is not None
        self._writer.write(data)
        await self._writer.drain()

    async def send(self, line: str) -> None:
        await self.send_raw(f"{line}\n".encode("utf-8"))

    async def drop_client(self) -> None:
        writer, self._writer = self._writer, None
        self._client_event.clear()
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass


class PushRecorder:
    def __init__(self) -> None:
        self.pushes: List[DisplayPush] = []

    def __call__(self, push: DisplayPush) -> None:
        self.pushes.append(push)

    def of_type(self, push_type: str) -> List[DisplayPush]:
        return [push for push in self.pushes if push.type == push_type]


async def wait_for_condition(predicate, timeout: float = 2.0, interval: float = 0.01) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(interval)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def recorder() -> PushRecorder:
    return PushRecorder()


@pytest_asyncio.fixture
async def fake_radio():
    radio = FakeRadio()
    await radio.start()
    try:
        yield radio
    finally:
        await radio.stop()
