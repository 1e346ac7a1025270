"""Telemetry decoding, throttling and streaming."""

from .cadence import MeterThrottle, TelemetryCadenceError, ThrottleDecision
from .decoder import MIN_PAYLOAD_LENGTH, VALUE_SCALE, decode
from .stream import TelemetryConfigurationError, TelemetryStream, dbm_to_watts

__all__ = [
    "MIN_PAYLOAD_LENGTH",
    "MeterThrottle",
    "TelemetryCadenceError",
    "TelemetryConfigurationError",
    "TelemetryStream",
    "ThrottleDecision",
    "VALUE_SCALE",
    "dbm_to_watts",
    "decode",
]
