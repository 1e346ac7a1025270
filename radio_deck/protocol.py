"""Line parsing for the radio's text command protocol.

Outbound commands are ``C<seq>|<verb> <args>``. Inbound lines start with a
single type character:

- ``R<seq>|<hex status>|<data>``  response correlated to a command
- ``S<handle>|<object> key=value ...``  unsolicited status
- ``V<version>``  protocol version, sent once on connect
- ``H<handle>``  client handle assigned by the radio
- ``M<code>|<text>``  radio message
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union

from .core import CommandResponse, TUNING_STEPS

LOGGER = logging.getLogger(__name__)

TX_INTERLOCK_STATES = frozenset({"PTT_REQUESTED", "TRANSMITTING", "UNKEY_REQUESTED"})


@dataclass(frozen=True)
class StatusLine:
    handle: str
    body: str


@dataclass(frozen=True)
class VersionLine:
    version: str


@dataclass(frozen=True)
class HandleLine:
    handle: str


@dataclass(frozen=True)
class MessageLine:
    code: str
    text: str


@dataclass(frozen=True)
class UnknownLine:
    raw: str


ParsedLine = Union[
    CommandResponse, StatusLine, VersionLine, HandleLine, MessageLine, UnknownLine
]


def parse_line(line: str) -> ParsedLine:
    """Classify one complete inbound line."""

    if not line:
        return UnknownLine(raw=line)

    kind, rest = line[0], line[1:]

    if kind == "R":
        parts = rest.split("|", 2)
        if len(parts) < 2:
            return UnknownLine(raw=line)
        try:
            sequence_id = int(parts[0])
            status = int(parts[1], 16) if parts[1] else 0
        except ValueError:
            return UnknownLine(raw=line)
        data = parts[2] if len(parts) > 2 else ""
        return CommandResponse(sequence_id=sequence_id, status=status, data=data)

    if kind == "S":
        handle, sep, body = rest.partition("|")
        if not sep:
            return UnknownLine(raw=line)
        return StatusLine(handle=handle, body=body)

    if kind == "V":
        return VersionLine(version=rest)

    if kind == "H":
        return HandleLine(handle=rest)

    if kind == "M":
        code, _, text = rest.partition("|")
        return MessageLine(code=code, text=text)

    return UnknownLine(raw=line)


def _key_values(tokens: list[str]) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for token in tokens:
        key, sep, value = token.partition("=")
        if sep:
            values[key] = value
    return values


def mhz_to_hz(value: str) -> Optional[int]:
    try:
        return int((Decimal(value) * 1_000_000).to_integral_value())
    except (InvalidOperation, ValueError):
        return None


def hz_to_mhz(frequency_hz: int) -> str:
    return f"{Decimal(frequency_hz) / Decimal(1_000_000):.6f}"


def status_to_update(body: str, *, slice_index: str = "0") -> Dict[str, Any]:
    """Translate a status body into a partial device state update.

    Unrecognised objects and keys yield an empty update. Values are passed on
    as parsed; range and enum validation belongs to the synchronizer.
    """

    tokens = body.split()
    if not tokens:
        return {}

    update: Dict[str, Any] = {}
    obj = tokens[0]

    if obj == "slice":
        if len(tokens) < 2 or tokens[1] != slice_index:
            return {}
        values = _key_values(tokens[2:])
        if "RF_frequency" in values:
            frequency = mhz_to_hz(values["RF_frequency"])
            if frequency is not None:
                update["frequency_hz"] = frequency
        if "mode" in values:
            update["mode"] = values["mode"].upper()
        if "nb" in values:
            update["nb_enabled"] = values["nb"] == "1"
        if "nr" in values:
            update["nr_enabled"] = values["nr"] == "1"
        if "step" in values:
            try:
                step = int(values["step"])
            except ValueError:
                step = None
            if step in TUNING_STEPS:
                update["tuning_step_hz"] = step
        return update

    if obj == "interlock":
        values = _key_values(tokens[1:])
        if "state" in values:
            update["tx_active"] = values["state"] in TX_INTERLOCK_STATES
        return update

    if obj == "transmit":
        values = _key_values(tokens[1:])
        if "mox" in values:
            update["tx_active"] = values["mox"] == "1"
        return update

    return update
