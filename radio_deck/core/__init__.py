"""Core primitives for radio-deck."""

from .errors import InvalidRegistration, RadioConnectionError, RadioNotDiscovered
from .models import (
    APP_STATE,
    DATA_LIST,
    DEVICE_BANDS,
    METER_UPDATE,
    SCREEN_CHANGE,
    TUNING_STEPS,
    ActionDescriptor,
    CommandRequest,
    CommandResponse,
    DeviceState,
    DiscoveredRadio,
    DiscoveryTimeout,
    DisplayPush,
    KeyDescriptor,
    KeyMode,
    MalformedTelemetry,
    MemorySlot,
    Mode,
    Screen,
    TelemetryReading,
    frequency_in_band,
)
from .protocols import EventHandler, EventSource, PushListener, StateSink

__all__ = [
    "APP_STATE",
    "DATA_LIST",
    "DEVICE_BANDS",
    "METER_UPDATE",
    "SCREEN_CHANGE",
    "TUNING_STEPS",
    "ActionDescriptor",
    "CommandRequest",
    "CommandResponse",
    "DeviceState",
    "DiscoveredRadio",
    "DiscoveryTimeout",
    "DisplayPush",
    "EventHandler",
    "EventSource",
    "InvalidRegistration",
    "KeyDescriptor",
    "KeyMode",
    "MalformedTelemetry",
    "MemorySlot",
    "Mode",
    "PushListener",
    "RadioConnectionError",
    "RadioNotDiscovered",
    "Screen",
    "StateSink",
    "TelemetryReading",
    "frequency_in_band",
]
