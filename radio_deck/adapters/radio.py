"""Command channel to the radio over its persistent TCP connection."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import OrderedDict
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..core import CommandRequest, CommandResponse, RadioConnectionError, StateSink
from ..protocol import (
    HandleLine,
    MessageLine,
    StatusLine,
    VersionLine,
    parse_line,
    status_to_update,
)

LOGGER = logging.getLogger(__name__)
WIRE_LOGGER = logging.getLogger(f"{__name__}.wire")

DisconnectListener = Callable[[str], None]
OpenConnection = Callable[
    ..., Awaitable[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]
]

_RECENT_RESPONSES = 256


class ChannelState(str, Enum):
    """Connection state of the command channel."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class CommandChannel:
    """Frames outbound commands and interprets inbound lines.

    The channel never retries on its own. A failed connect or a lost socket
    leaves it ``DISCONNECTED``; the bridge lifecycle decides what happens next.

    Inbound bytes are buffered and split on line terminators, so a line split
    across TCP segments is only parsed once complete. Lines are handled in
    arrival order on the single reader task.
    """

    def __init__(
        self,
        sink: StateSink,
        *,
        connect_timeout: float = 5.0,
        read_size: int = 4096,
        open_connection: Optional[OpenConnection] = None,
    ) -> None:
        self._sink = sink
        self._connect_timeout = connect_timeout
        self._read_size = read_size
        self._open_connection = open_connection or asyncio.open_connection

        self._state = ChannelState.DISCONNECTED
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._buffer = b""
        self._next_sequence = 1
        self._pending: Dict[int, asyncio.Future[CommandResponse]] = {}
        self._recent: "OrderedDict[int, CommandResponse]" = OrderedDict()
        self._disconnect_listeners: List[DisconnectListener] = []
        self._address: Optional[Tuple[str, int]] = None
        self.handle: Optional[str] = None
        self.version: Optional[str] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ChannelState.CONNECTED

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        return self._address

    def add_disconnect_listener(self, listener: DisconnectListener) -> None:
        """Invoke ``listener(reason)`` once per transition to DISCONNECTED."""

        if listener not in self._disconnect_listeners:
            self._disconnect_listeners.append(listener)

    async def connect(self, host: str, port: int) -> None:
        """Open the connection and reset the sequence counter.

        Raises:
            RadioConnectionError: If the radio cannot be reached.
        """

        if self._state != ChannelState.DISCONNECTED:
            raise RadioConnectionError(
                f"Cannot connect while channel is {self._state.value}"
            )

        self._state = ChannelState.CONNECTING
        LOGGER.info("Connecting to radio at %s:%s", host, port)

        try:
            reader, writer = await asyncio.wait_for(
                self._open_connection(host, port), timeout=self._connect_timeout
            )
        except (OSError, asyncio.TimeoutError) as exc:
            self._state = ChannelState.DISCONNECTED
            raise RadioConnectionError(
                f"Failed to connect to radio at {host}:{port}: {exc or 'timed out'}"
            ) from exc

        self._reader = reader
        self._writer = writer
        self._address = (host, port)
        self._buffer = b""
        self._next_sequence = 1
        self._recent.clear()
        self.handle = None
        self.version = None
        self._state = ChannelState.CONNECTED
        self._reader_task = asyncio.create_task(self._read_loop(reader))

        LOGGER.info("Connected to radio at %s:%s", host, port)
        self._sink.apply({"connected": True})

    async def send(self, verb: str, args: Union[str, Sequence[str]] = "") -> int:
        """Frame and write one command, returning its sequence id.

        Raises:
            RadioConnectionError: If the channel is not connected or the write fails.
                Nothing is queued and nothing reaches the wire in that case.
        """

        writer = self._writer
        if self._state != ChannelState.CONNECTED or writer is None:
            raise RadioConnectionError(
                f"Cannot send {verb!r}: channel is {self._state.value}"
            )

        arguments = args if isinstance(args, str) else " ".join(args)
        request = CommandRequest(
            sequence_id=self._next_sequence, verb=verb, arguments=arguments
        )
        self._next_sequence += 1
        self._pending[request.sequence_id] = (
            asyncio.get_running_loop().create_future()
        )

        frame = request.encode()
        WIRE_LOGGER.debug(">> %s", frame.decode("utf-8").rstrip())
        try:
            writer.write(frame)
            await writer.drain()
        except (OSError, RuntimeError) as exc:
            self._mark_disconnected(f"write failed: {exc}")
            raise RadioConnectionError(f"Failed to send {verb!r}: {exc}") from exc

        return request.sequence_id

    async def wait_response(
        self, sequence_id: int, timeout: float
    ) -> CommandResponse:
        """Wait for the response correlated with ``sequence_id``.

        The channel applies no timeout of its own; the caller supplies one.

        Raises:
            KeyError: If the sequence id was never issued on this connection.
            asyncio.TimeoutError: If no response arrives within ``timeout``.
            RadioConnectionError: If the connection drops while waiting.
        """

        recent = self._recent.get(sequence_id)
        if recent is not None:
            return recent

        future = self._pending.get(sequence_id)
        if future is None:
            raise KeyError(f"Unknown sequence id {sequence_id}")

        return await asyncio.wait_for(asyncio.shield(future), timeout=timeout)

    async def close(self) -> None:
        """Close the connection. Safe to call in any state."""

        self._mark_disconnected("closed by bridge")

        task = self._reader_task
        self._reader_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        try:
            while True:
                data = await reader.read(self._read_size)
                if not data:
                    self._mark_disconnected("connection closed by radio")
                    return
                self.feed(data)
        except asyncio.CancelledError:
            raise
        except (OSError, asyncio.IncompleteReadError) as exc:
            self._mark_disconnected(f"read failed: {exc}")

    def feed(self, data: bytes) -> None:
        """Buffer raw bytes and handle every complete line in arrival order."""

        self._buffer += data
        *lines, self._buffer = self._buffer.split(b"\n")
        for raw in lines:
            line = raw.rstrip(b"\r").decode("utf-8", errors="replace")
            if not line:
                continue
            WIRE_LOGGER.debug("<< %s", line)
            try:
                self._handle_line(line)
            except Exception:
                LOGGER.exception("Failed to handle radio line %r", line)

    def _handle_line(self, line: str) -> None:
        parsed = parse_line(line)

        if isinstance(parsed, CommandResponse):
            self._resolve(parsed)
            return

        if isinstance(parsed, StatusLine):
            update = status_to_update(parsed.body)
            if update:
                self._sink.apply(update)
            return

        if isinstance(parsed, VersionLine):
            self.version = parsed.version
            LOGGER.info("Radio protocol version %s", parsed.version)
            return

        if isinstance(parsed, HandleLine):
            self.handle = parsed.handle
            LOGGER.debug("Assigned client handle %s", parsed.handle)
            return

        if isinstance(parsed, MessageLine):
            LOGGER.info("Radio message %s: %s", parsed.code, parsed.text)
            return

        LOGGER.debug("Ignoring unrecognised radio line %r", line)

    def _resolve(self, response: CommandResponse) -> None:
        if not response.ok:
            LOGGER.warning(
                "Radio rejected command %d (status=%08X): %s",
                response.sequence_id,
                response.status,
                response.data,
            )

        self._recent[response.sequence_id] = response
        while len(self._recent) > _RECENT_RESPONSES:
            self._recent.popitem(last=False)

        future = self._pending.pop(response.sequence_id, None)
        if future is not None and not future.done():
            future.set_result(response)

    def _mark_disconnected(self, reason: str) -> None:
        if self._state == ChannelState.DISCONNECTED:
            return

        LOGGER.warning("Radio channel disconnected: %s", reason)
        self._state = ChannelState.DISCONNECTED

        writer = self._writer
        self._writer = None
        self._reader = None
        if writer is not None:
            with contextlib.suppress(Exception):
                writer.close()

        pending = self._pending
        self._pending = {}
        for future in pending.values():
            if not future.done():
                future.set_exception(RadioConnectionError(reason))
                # Nobody may be waiting on it.
                future.exception()

        self._sink.apply({"connected": False})

        for listener in list(self._disconnect_listeners):
            try:
                listener(reason)
            except Exception:
                LOGGER.exception("Disconnect listener failed")
