"""Protocol definitions for collaborators wired together by the bridge."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Mapping, Protocol

from .models import DeviceState, DisplayPush

EventHandler = Callable[[Any], Awaitable[None] | None]
PushListener = Callable[[DisplayPush], None]


class EventSource(Protocol):
    """Anything that delivers named inbound events to registered handlers."""

    def add_listener(self, event_type: str, handler: EventHandler) -> None:
        """Route events of ``event_type`` to ``handler``."""
        ...


class StateSink(Protocol):
    """Receiver of partial device state updates."""

    def apply(self, update: Mapping[str, Any]) -> None:
        """Fold a partial update into the canonical state."""
        ...

    def snapshot(self) -> DeviceState:
        """Return the current immutable state."""
        ...
