import struct

from radio_deck.core import MalformedTelemetry, TelemetryReading
from radio_deck.telemetry import MIN_PAYLOAD_LENGTH, decode


def _payload(meter_id: int, raw: int) -> bytes:
    return struct.pack(">Hh", meter_id, raw) + bytes(MIN_PAYLOAD_LENGTH - 4)


def test_negative_signal_keeps_its_sign() -> None:
    data = bytes([0x00, 0x01, 0xFF, 0x38]) + bytes(12)

    result = decode(data, received_at=5.0)

    assert isinstance(result, TelemetryReading)
    assert result.meter_id == 1
    assert result.value_dbm == -1.5625
    assert result.received_at == 5.0


def test_positive_signal_is_scaled() -> None:
    result = decode(_payload(3, 256), received_at=0.0)

    assert isinstance(result, TelemetryReading)
    assert result.meter_id == 3
    assert result.value_dbm == 2.0


def test_meter_id_is_unsigned() -> None:
    result = decode(_payload(0xFFFE, -1), received_at=0.0)

    assert isinstance(result, TelemetryReading)
    assert result.meter_id == 0xFFFE
    assert result.value_dbm == -1 / 128.0


def test_short_payloads_are_malformed() -> None:
    for length in (0, 1, 4, MIN_PAYLOAD_LENGTH - 1):
        result = decode(bytes(length), received_at=0.0)
        assert isinstance(result, MalformedTelemetry)
        assert result.length == length


def test_extra_trailing_bytes_are_ignored() -> None:
    result = decode(_payload(2, -12800) + b"\xaa" * 40, received_at=0.0)

    assert isinstance(result, TelemetryReading)
    assert result.value_dbm == -100.0
