"""Domain models for device state, commands, telemetry and input descriptors."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


class Mode(str, Enum):
    """Demodulation modes supported by the radio."""

    USB = "USB"
    LSB = "LSB"
    CW = "CW"
    AM = "AM"
    FM = "FM"
    DIGU = "DIGU"
    DIGL = "DIGL"
    SAM = "SAM"
    NFM = "NFM"
    RTTY = "RTTY"


class Screen(str, Enum):
    """Screens the display surface can show."""

    VFO = "VFO"
    DSP = "DSP"
    MEMORY = "MEMORY"
    TX = "TX"
    POTA = "POTA"


class KeyMode(str, Enum):
    """Routing modes a physical key binding may declare."""

    PRESS = "press"
    RELEASE = "release"
    HOLD = "hold"
    TOGGLE = "toggle"
    DOUBLE_TAP = "double_tap"
    LONG_PRESS = "long_press"
    REPEAT = "repeat"
    ENCODER_LEFT = "encoder_left"
    ENCODER_RIGHT = "encoder_right"
    ENCODER_PRESS = "encoder_press"
    TOUCH = "touch"
    SWIPE = "swipe"


TUNING_STEPS: Tuple[int, ...] = (1, 10, 100, 1_000, 10_000)
DEFAULT_TUNING_STEP_INDEX = 2

# Receive coverage of the device, inclusive bounds in Hz.
DEVICE_BANDS: Tuple[Tuple[int, int], ...] = ((30_000, 54_000_000),)

MEMORY_SLOT_COUNT = 8


def frequency_in_band(frequency_hz: int) -> bool:
    return any(low <= frequency_hz <= high for low, high in DEVICE_BANDS)


@dataclass(frozen=True)
class MemorySlot:
    frequency_hz: int
    mode: Mode

    def as_payload(self) -> Dict[str, Any]:
        return {"frequencyHz": self.frequency_hz, "mode": self.mode.value}


@dataclass(frozen=True)
class DeviceState:
    """Immutable view of the radio as last reconciled by the synchronizer."""

    connected: bool = False
    frequency_hz: int = 14_200_000
    mode: Mode = Mode.USB
    tuning_step_index: int = DEFAULT_TUNING_STEP_INDEX
    tuning_step_hz: int = TUNING_STEPS[DEFAULT_TUNING_STEP_INDEX]
    tx_active: bool = False
    nb_enabled: bool = False
    nr_enabled: bool = False
    s_meter_dbm: float = -127.0
    power_meter_watts: float = 0.0
    swr_ratio: float = 1.0
    memory_slots: Tuple[Optional[MemorySlot], ...] = (None,) * MEMORY_SLOT_COUNT
    active_screen: Screen = Screen.VFO

    def memory_payload(self) -> list[Optional[Dict[str, Any]]]:
        return [slot.as_payload() if slot else None for slot in self.memory_slots]

    def meters_payload(self) -> Dict[str, Any]:
        return {
            "sMeterDbm": round(self.s_meter_dbm, 2),
            "powerMeterWatts": round(self.power_meter_watts, 2),
            "swrRatio": round(self.swr_ratio, 2),
        }

    def as_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "connected": self.connected,
            "frequencyHz": self.frequency_hz,
            "mode": self.mode.value,
            "tuningStepIndex": self.tuning_step_index,
            "tuningStepHz": self.tuning_step_hz,
            "txActive": self.tx_active,
            "nbEnabled": self.nb_enabled,
            "nrEnabled": self.nr_enabled,
            "memorySlots": self.memory_payload(),
            "activeScreen": self.active_screen.value,
        }
        payload.update(self.meters_payload())
        return payload


@dataclass(frozen=True)
class CommandRequest:
    sequence_id: int
    verb: str
    arguments: str = ""

    def encode(self) -> bytes:
        body = f"{self.verb} {self.arguments}" if self.arguments else self.verb
        return f"C{self.sequence_id}|{body}\n".encode("utf-8")


@dataclass(frozen=True)
class CommandResponse:
    sequence_id: int
    status: int
    data: str = ""

    @property
    def ok(self) -> bool:
        return self.status == 0


@dataclass(frozen=True)
class TelemetryReading:
    meter_id: int
    value_dbm: float
    received_at: float


@dataclass(frozen=True)
class MalformedTelemetry:
    """Decode failure for a telemetry datagram; counted, never raised."""

    reason: str
    length: int


@dataclass(frozen=True)
class ActionDescriptor:
    id: str
    display_name: str
    description: str = ""
    category: str = "General"
    value_options: Optional[Tuple[str, ...]] = None
    default_value: Optional[str] = None

    def as_payload(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "description": self.description,
            "category": self.category,
            "valueOptions": list(self.value_options) if self.value_options else None,
            "defaultValue": self.default_value,
        }


@dataclass(frozen=True)
class KeyDescriptor:
    """Physical key binding. ``mode`` is the raw declared value until validated."""

    id: str
    description: str = ""
    mode: Optional[str] = None


@dataclass(frozen=True)
class DiscoveredRadio:
    host: str
    port: int
    model: str = ""
    serial: str = ""
    nickname: str = ""
    version: str = ""
    fields: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DiscoveryTimeout:
    """No matching announcement arrived in time. A normal outcome, not an error."""

    timeout: float
    port: int


@dataclass(frozen=True)
class DisplayPush:
    type: str
    payload: Any

    def as_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "payload": self.payload}


APP_STATE = "appState"
SCREEN_CHANGE = "screenChange"
METER_UPDATE = "meterUpdate"
DATA_LIST = "dataList"
