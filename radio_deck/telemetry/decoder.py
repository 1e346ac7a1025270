"""Decoder for the radio's binary meter datagrams.

Layout (big-endian)::

    offset 0  u16  meter id
    offset 2  i16  signal value, 1/128 dB units
    offset 4  ...  header/padding up to the 16 byte minimum

The signal field is signed. Reading it unsigned turns -200 (0xFF38) into
65336 and reports a strong +510 dBm signal instead of -1.5625 dBm.
"""

from __future__ import annotations

import struct
import time
from typing import Optional, Union

from ..core import MalformedTelemetry, TelemetryReading

MIN_PAYLOAD_LENGTH = 16
VALUE_SCALE = 128.0

_HEADER = struct.Struct(">Hh")


def decode(
    data: bytes, received_at: Optional[float] = None
) -> Union[TelemetryReading, MalformedTelemetry]:
    """Decode a datagram into a reading, or describe why it is malformed."""

    length = len(data)
    if length < MIN_PAYLOAD_LENGTH:
        return MalformedTelemetry(
            reason=f"payload shorter than {MIN_PAYLOAD_LENGTH} bytes", length=length
        )

    meter_id, raw_value = _HEADER.unpack_from(data, 0)
    return TelemetryReading(
        meter_id=meter_id,
        value_dbm=raw_value / VALUE_SCALE,
        received_at=time.monotonic() if received_at is None else received_at,
    )
