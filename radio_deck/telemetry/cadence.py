"""Per-meter throttle gate for telemetry readings.

A reading passes the gate only when at least ``interval`` seconds have elapsed
since the last *accepted* reading for the same meter id. Rejected readings are
dropped on the floor; nothing is queued, so the state only ever reflects the
latest sample that made it through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

from ..core import TelemetryReading

LOGGER = logging.getLogger(__name__)


class TelemetryCadenceError(RuntimeError):
    """Raised when the throttle configuration is invalid."""


@dataclass(frozen=True)
class ThrottleDecision:
    """Result of evaluating a reading against the gate.

    Attributes:
        accepted: True if the reading should be folded into the state
        retry_after: Seconds until the meter's gate reopens (None when accepted)
    """

    accepted: bool
    retry_after: Optional[float] = None


class MeterThrottle:
    """Minimum-interval gate keyed by meter id.

    Thread-safety: not thread-safe. The telemetry stream calls it from the
    event loop only.
    """

    def __init__(self, interval: float) -> None:
        if interval < 0:
            raise TelemetryCadenceError(
                f"Throttle interval must be non-negative, got {interval}"
            )
        self._interval = interval
        self._last_accepted: Dict[int, float] = {}
        self._dropped = 0

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def dropped_count(self) -> int:
        return self._dropped

    def evaluate(self, reading: TelemetryReading) -> ThrottleDecision:
        last = self._last_accepted.get(reading.meter_id)
        if last is not None:
            elapsed = reading.received_at - last
            if elapsed < self._interval:
                self._dropped += 1
                return ThrottleDecision(
                    accepted=False, retry_after=self._interval - elapsed
                )

        self._last_accepted[reading.meter_id] = reading.received_at
        return ThrottleDecision(accepted=True)

    def reset(self, meter_id: Optional[int] = None) -> None:
        """Forget acceptance history for one meter, or all of them."""

        if meter_id is None:
            self._last_accepted.clear()
        else:
            self._last_accepted.pop(meter_id, None)
