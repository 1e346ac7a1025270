"""UDP telemetry listener feeding meter readings into the device state."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from ..config import TelemetryConfig
from ..core import MalformedTelemetry, StateSink, TelemetryReading
from .cadence import MeterThrottle
from .decoder import decode

LOGGER = logging.getLogger(__name__)


class TelemetryConfigurationError(RuntimeError):
    """Raised when the telemetry listener cannot be set up."""


def dbm_to_watts(value_dbm: float) -> float:
    return 10 ** ((value_dbm - 30.0) / 10.0)


class _TelemetryProtocol(asyncio.DatagramProtocol):
    def __init__(self, stream: "TelemetryStream") -> None:
        self._stream = stream

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self._stream.handle_datagram(data)

    def error_received(self, exc: Exception) -> None:
        LOGGER.debug("Telemetry socket error: %s", exc)


class TelemetryStream:
    """Owns the telemetry socket; decodes, throttles and folds meter readings."""

    def __init__(
        self,
        config: TelemetryConfig,
        sink: StateSink,
        *,
        monotonic: Optional[Callable[[], float]] = None,
    ) -> None:
        self._config = config
        self._sink = sink
        self._monotonic = monotonic or time.monotonic
        self._throttle = MeterThrottle(config.throttle_seconds)
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._malformed = 0
        self._accepted = 0
        self._fields: Dict[int, str] = {
            config.s_meter_id: "s_meter_dbm",
            config.power_meter_id: "power_meter_watts",
            config.swr_meter_id: "swr_ratio",
        }

    @property
    def malformed_count(self) -> int:
        return self._malformed

    @property
    def accepted_count(self) -> int:
        return self._accepted

    @property
    def dropped_count(self) -> int:
        return self._throttle.dropped_count

    @property
    def is_listening(self) -> bool:
        return self._transport is not None

    @property
    def local_port(self) -> Optional[int]:
        if self._transport is None:
            return None
        sockname = self._transport.get_extra_info("sockname")
        return sockname[1] if sockname else None

    async def start(self) -> None:
        if self._transport is not None:
            return

        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _TelemetryProtocol(self),
                local_addr=(self._config.bind_host, self._config.port),
            )
        except OSError as exc:
            raise TelemetryConfigurationError(
                f"Cannot bind telemetry port {self._config.bind_host}:{self._config.port}: {exc}"
            ) from exc

        self._transport = transport
        self._throttle.reset()
        LOGGER.info(
            "Telemetry listening on udp %s:%s (throttle %.1fs)",
            self._config.bind_host,
            self.local_port,
            self._throttle.interval,
        )

    async def stop(self) -> None:
        transport = self._transport
        self._transport = None
        if transport is not None:
            transport.close()
            LOGGER.info("Telemetry listener closed")

    def handle_datagram(self, data: bytes) -> Optional[TelemetryReading]:
        """Decode one datagram; returns the reading if it passed the throttle gate."""

        result = decode(data, self._monotonic())
        if isinstance(result, MalformedTelemetry):
            self._malformed += 1
            LOGGER.debug(
                "Dropped malformed telemetry (%s, %d bytes)", result.reason, result.length
            )
            return None

        if not self._throttle.evaluate(result).accepted:
            return None

        self._accepted += 1
        field = self._fields.get(result.meter_id)
        if field is None:
            LOGGER.debug("Ignoring unmapped meter %d", result.meter_id)
            return result

        if field == "power_meter_watts":
            value = dbm_to_watts(result.value_dbm)
        else:
            value = result.value_dbm
        self._sink.apply({field: value})
        return result
